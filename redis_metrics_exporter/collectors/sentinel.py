"""Per-master details from a Sentinel's ``SENTINEL`` commands."""

import logging
from typing import Dict

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import ErrorReply, Reply, as_array, as_float, as_map, as_text

logger = logging.getLogger(__name__)

# SENTINEL MASTERS field -> exported setting
MASTER_SETTINGS = {
    "down-after-milliseconds": "sentinel_master_setting_down_after_milliseconds",
    "failover-timeout": "sentinel_master_setting_failover_timeout",
    "parallel-syncs": "sentinel_master_setting_parallel_syncs",
    "quorum": "sentinel_master_setting_ckquorum",
}


def _is_down(peer: Dict[str, Reply]) -> bool:
    flags = as_text(peer["flags"]) if "flags" in peer else ""
    return "s_down" in flags or "o_down" in flags


async def _sentinel(ctx: ScrapeContext, *args) -> Reply:
    reply = await ctx.execute("SENTINEL", *args)
    if isinstance(reply, ErrorReply):
        raise CommandError(f"SENTINEL {args[0]}", reply.message)
    return reply


async def extract_sentinel_metrics(ctx: ScrapeContext) -> None:
    for master_reply in as_array(await _sentinel(ctx, "MASTERS"), "SENTINEL MASTERS"):
        master = as_map(master_reply, "SENTINEL MASTERS entry")
        name = as_text(master["name"])
        ip = as_text(master["ip"]) if "ip" in master else ""
        port = as_text(master["port"]) if "port" in master else ""
        address = f"{ip}:{port}"

        for field, metric in MASTER_SETTINGS.items():
            if field in master:
                ctx.gauge(metric, as_float(master[field], field), name, address)

        quorum = await ctx.execute("SENTINEL", "CKQUORUM", name)
        if isinstance(quorum, ErrorReply):
            ctx.gauge("sentinel_master_ckquorum_status", 0, name, quorum.message)
        else:
            ctx.gauge("sentinel_master_ckquorum_status", 1, name, as_text(quorum))

        sentinels = as_array(await _sentinel(ctx, "SENTINELS", name), "SENTINEL SENTINELS")
        ok_sentinels = sum(1 for s in sentinels if not _is_down(as_map(s, "sentinel")))
        # the sentinel answering counts too
        ctx.gauge("sentinel_master_ok_sentinels", ok_sentinels + 1, name, address)

        slaves = as_array(await _sentinel(ctx, "SLAVES", name), "SENTINEL SLAVES")
        ok_slaves = sum(1 for s in slaves if not _is_down(as_map(s, "slave")))
        ctx.gauge("sentinel_master_ok_slaves", ok_slaves, name, address)
