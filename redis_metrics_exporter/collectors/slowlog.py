"""Slow log metrics."""

import logging

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.replies import ErrorReply, as_array, as_float

logger = logging.getLogger(__name__)


async def extract_slowlog_metrics(ctx: ScrapeContext) -> None:
    length = await ctx.execute("SLOWLOG", "LEN")
    if isinstance(length, ErrorReply):
        logger.debug(f"SLOWLOG LEN err: {length.message}")
    else:
        ctx.gauge("slowlog_length", as_float(length, "SLOWLOG LEN"))

    reply = await ctx.execute("SLOWLOG", "GET", "1")
    if isinstance(reply, ErrorReply):
        logger.debug(f"SLOWLOG GET err: {reply.message}")
        return

    last_id = 0.0
    last_duration = 0.0
    entries = as_array(reply, "SLOWLOG GET")
    if entries:
        # [id, unix time, duration usec, args, ...]
        entry = as_array(entries[0], "slowlog entry")
        if len(entry) >= 3:
            last_id = as_float(entry[0], "slowlog id")
            last_duration = as_float(entry[2], "slowlog duration") / 1e6

    ctx.gauge("slowlog_last_id", last_id)
    ctx.gauge("last_slow_execution_duration_seconds", last_duration)
