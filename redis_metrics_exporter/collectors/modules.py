"""Loaded module info (``INFO MODULES``) and Tile38's ``SERVER EXT`` stats."""

import logging

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError, ParseWarning
from redis_metrics_exporter.core.replies import ErrorReply, as_map, as_text
from redis_metrics_exporter.parsing.info import parse_info, to_float

logger = logging.getLogger(__name__)

TILE38_PREFIX = "tile38_"


def _emit_mapped(ctx: ScrapeContext, field: str, value: str) -> None:
    mapping = ctx.registry.resolve(field)
    if mapping is None:
        return
    try:
        ctx.emit(mapping.exported_name, mapping.kind, to_float(value))
    except ParseWarning as e:
        logger.debug(f"couldn't parse {field}, err: {e}")


async def extract_modules_metrics(ctx: ScrapeContext) -> None:
    reply = await ctx.execute("INFO", "MODULES")
    if isinstance(reply, ErrorReply):
        raise CommandError("INFO MODULES", reply.message)

    report = parse_info(as_text(reply, "INFO MODULES"))
    for module in report.modules:
        ctx.gauge(
            "module_info",
            1,
            module.name,
            module.ver,
            module.api,
            module.filters,
            module.usedby,
            module.using,
        )
    for entry in report.entries:
        _emit_mapped(ctx, entry.field, entry.value)


async def extract_tile38_metrics(ctx: ScrapeContext) -> None:
    reply = await ctx.execute("SERVER", "EXT")
    if isinstance(reply, ErrorReply):
        raise CommandError("SERVER EXT", reply.message)

    for field, value in as_map(reply, "SERVER EXT").items():
        _emit_mapped(ctx, TILE38_PREFIX + field, as_text(value, field))
