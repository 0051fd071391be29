"""Latency spikes (``LATENCY LATEST``) and per-command histograms (``LATENCY HISTOGRAM``)."""

import logging

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.replies import ErrorReply, as_array, as_float, as_map, as_text
from redis_metrics_exporter.parsing.info import InfoReport

logger = logging.getLogger(__name__)


async def extract_latency_latest(ctx: ScrapeContext) -> None:
    reply = await ctx.execute("LATENCY", "LATEST")
    if isinstance(reply, ErrorReply):
        logger.debug(f"LATENCY LATEST err: {reply.message}")
        return

    # each event: [name, unix time of last spike, latest ms, max ms, ...]
    for event in as_array(reply, "LATENCY LATEST"):
        items = as_array(event, "LATENCY LATEST event")
        if len(items) < 3:
            logger.debug(f"short LATENCY LATEST event: {items}")
            continue
        name = as_text(items[0])
        ctx.gauge("latency_spike_last", as_float(items[1]), name)
        ctx.gauge("latency_spike_duration_seconds", as_float(items[2]) / 1000, name)


async def extract_latency_histograms(ctx: ScrapeContext, report: InfoReport) -> None:
    """Export ``LATENCY HISTOGRAM`` as cumulative ``le`` buckets per command.

    The bucket counts reported by the server are already cumulative. The sum
    comes from the command's ``usec`` in commandstats.
    """
    reply = await ctx.execute("LATENCY", "HISTOGRAM")
    if isinstance(reply, ErrorReply):
        logger.debug(f"LATENCY HISTOGRAM err: {reply.message}")
        return

    usec_by_cmd = {stat.cmd: stat.usec for stat in report.commandstats}
    for cmd, details in as_map(reply, "LATENCY HISTOGRAM").items():
        details = as_map(details, f"LATENCY HISTOGRAM {cmd}")
        calls = as_float(details["calls"], f"{cmd} calls") if "calls" in details else 0.0
        buckets = {}
        if "histogram_usec" in details:
            buckets = as_map(details["histogram_usec"], f"{cmd} histogram_usec")

        for upper_bound, count in buckets.items():
            ctx.gauge("commands_latencies_usec_bucket", as_float(count), cmd, upper_bound)
        ctx.gauge("commands_latencies_usec_bucket", calls, cmd, "+Inf")
        ctx.gauge("commands_latencies_usec_count", calls, cmd)
        ctx.gauge("commands_latencies_usec_sum", usec_by_cmd.get(cmd, 0.0), cmd)


async def extract_latency_metrics(ctx: ScrapeContext, report: InfoReport) -> None:
    await extract_latency_latest(ctx)
    if not ctx.settings.exclude_latency_histogram_metrics:
        await extract_latency_histograms(ctx, report)
