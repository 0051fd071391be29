"""User-supplied Lua scripts whose results are exported as metrics.

A script returns a flat array of alternating names and values; each numeric
value becomes ``script_values{key=<name>,filename=<path>}``.
"""

import logging

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import ErrorReply, as_map, as_text

logger = logging.getLogger(__name__)


async def run_script(ctx: ScrapeContext, filename: str, script: bytes) -> bool:
    """Evaluate one script; returns whether it succeeded.

    A failure is logged and reported as ``script_result=0``; values already
    emitted for this script are discarded.
    """
    mark = len(ctx.sink)
    try:
        reply = await ctx.execute("EVAL", script, 0)
        if isinstance(reply, ErrorReply):
            raise CommandError("EVAL", reply.message)
        for key, value in as_map(reply, f"script {filename}").items():
            try:
                number = float(as_text(value))
            except ValueError:
                logger.debug(f"script {filename}: value of {key!r} is not numeric, skipped")
                continue
            ctx.gauge("script_values", number, key, filename)
    except Exception as e:
        del ctx.sink[mark:]
        logger.error(f"Error running lua script {filename}, err: {e}")
        ctx.gauge("script_result", 0, filename)
        return False

    ctx.gauge("script_result", 1, filename)
    return True


async def extract_lua_script_metrics(ctx: ScrapeContext, scripts: dict) -> None:
    for filename, script in scripts.items():
        await run_script(ctx, filename, script)
