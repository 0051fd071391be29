"""Turns a parsed ``INFO`` report into observations."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict

from redis_metrics_exporter.core.context import ROLE_MASTER, ROLE_SLAVE, ROLE_UNKNOWN, ScrapeContext
from redis_metrics_exporter.core.errors import ParseWarning
from redis_metrics_exporter.parsing.info import InfoReport, parse_info, to_float

logger = logging.getLogger(__name__)

INSTANCE_INFO_FIELDS = (
    "role",
    "redis_version",
    "redis_build_id",
    "redis_mode",
    "os",
    "maxmemory_policy",
    "tcp_port",
    "run_id",
    "process_id",
    "master_replid",
)

SLAVE_INFO_FIELDS = ("master_host", "master_port", "slave_read_only")

# Sentinel section scalars, exported under a sentinel_ prefix
SENTINEL_FIELDS = {
    "sentinel_masters": "sentinel_masters",
    "sentinel_tilt": "sentinel_tilt",
    "sentinel_running_scripts": "sentinel_running_scripts",
    "sentinel_scripts_queue_length": "sentinel_scripts_queue_length",
    "sentinel_simulate_failure_flags": "sentinel_simulate_failure_flags",
}


def quantile_label(percentile: str) -> str:
    """``p99.9`` -> ``0.999``; decimal arithmetic keeps the label exact."""
    try:
        return str(Decimal(percentile.lstrip("p")) / 100)
    except InvalidOperation:
        raise ParseWarning(f"bad percentile label {percentile!r}") from None


def _emit_scalars(ctx: ScrapeContext, report: InfoReport) -> None:
    for entry in report.entries:
        if entry.field in SENTINEL_FIELDS:
            try:
                ctx.gauge(SENTINEL_FIELDS[entry.field], to_float(entry.value))
            except ParseWarning as e:
                logger.debug(f"{entry.field}: {e}")
            continue

        mapping = ctx.registry.resolve(entry.field)
        if mapping is None:
            continue
        try:
            value = to_float(entry.value)
        except ParseWarning as e:
            logger.debug(f"couldn't parse {entry.field}, err: {e}")
            continue
        ctx.emit(mapping.exported_name, mapping.kind, value)


def _emit_instance_info(ctx: ScrapeContext, fields: Dict[str, str]) -> None:
    ctx.gauge("instance_info", 1, *(fields.get(name, "") for name in INSTANCE_INFO_FIELDS))

    uptime = fields.get("uptime_in_seconds")
    if uptime is None:
        return
    try:
        server_time = fields.get("server_time_usec")
        now = to_float(server_time) / 1e6 if server_time is not None else ctx.now
        ctx.gauge("start_time_seconds", now - to_float(uptime))
    except ParseWarning as e:
        logger.debug(f"couldn't compute start time: {e}")


def _emit_replication(ctx: ScrapeContext, report: InfoReport, fields: Dict[str, str]) -> None:
    if ctx.role == ROLE_SLAVE:
        master_host = fields.get("master_host", "")
        master_port = fields.get("master_port", "")
        for source, name in (
            ("master_link_status", "master_link_up"),
            ("master_last_io_seconds_ago", "master_last_io_seconds_ago"),
            ("master_sync_in_progress", "master_sync_in_progress"),
            ("slave_repl_offset", "slave_repl_offset"),
        ):
            if source not in fields:
                continue
            try:
                ctx.gauge(name, to_float(fields[source]), master_host, master_port)
            except ParseWarning as e:
                logger.debug(f"{source}: {e}")
        ctx.gauge("slave_info", 1, master_host, master_port, fields.get("slave_read_only", ""))

    for replica in report.replicas:
        labels = (replica.ip, replica.port, replica.state)
        if replica.offset is not None:
            ctx.gauge("connected_slave_offset_bytes", replica.offset, *labels)
        if replica.lag is not None:
            ctx.gauge("connected_slave_lag_seconds", replica.lag, *labels)


def _emit_keyspace(ctx: ScrapeContext, report: InfoReport) -> None:
    seen = set()
    for record in report.keyspace:
        db = f"db{record.db}"
        seen.add(record.db)
        ctx.gauge("db_keys", record.keys, db)
        ctx.gauge("db_keys_expiring", record.expires, db)
        ctx.gauge("db_avg_ttl_seconds", record.avg_ttl / 1000, db)
        if record.cached_keys is not None:
            ctx.gauge("db_keys_cached", record.cached_keys, db)

    if ctx.settings.include_metrics_for_empty_databases:
        for db in range(ctx.db_count):
            if db not in seen:
                ctx.gauge("db_keys", 0, f"db{db}")
                ctx.gauge("db_keys_expiring", 0, f"db{db}")


def _emit_commandstats(ctx: ScrapeContext, report: InfoReport) -> None:
    for stat in report.commandstats:
        ctx.counter("commands_total", stat.calls, stat.cmd)
        ctx.counter("commands_duration_seconds_total", stat.usec / 1e6, stat.cmd)
        if stat.rejected_calls is not None:
            ctx.counter("commands_rejected_calls_total", stat.rejected_calls, stat.cmd)
        if stat.failed_calls is not None:
            ctx.counter("commands_failed_calls_total", stat.failed_calls, stat.cmd)

    for err in report.errorstats:
        ctx.counter("errors_total", err.count, err.err)

    for record in report.latency_percentiles:
        for percentile, value in record.percentiles:
            try:
                ctx.gauge("latency_percentiles_usec", value, record.cmd, quantile_label(percentile))
            except ParseWarning as e:
                logger.debug(f"latency_percentiles_usec_{record.cmd}: {e}")


def _emit_sentinel_masters(ctx: ScrapeContext, report: InfoReport) -> None:
    for master in report.sentinel_masters:
        status = 1 if master.status == "ok" else 0
        ctx.gauge("sentinel_master_status", status, master.name, master.address, master.status)
        ctx.gauge("sentinel_master_slaves", master.slaves, master.name, master.address)
        ctx.gauge("sentinel_master_sentinels", master.sentinels, master.name, master.address)


def extract_info_metrics(ctx: ScrapeContext, report: InfoReport) -> str:
    """Emit everything derived from ``report`` and return the instance role.

    Extraction only reads ``report`` and the context settings, so running it
    twice over the same report yields identical observations.
    """
    fields = report.fields
    role = fields.get("role", ROLE_UNKNOWN)
    ctx.role = role if role in (ROLE_MASTER, ROLE_SLAVE) else ROLE_UNKNOWN

    _emit_scalars(ctx, report)
    _emit_instance_info(ctx, fields)
    _emit_replication(ctx, report, fields)
    _emit_keyspace(ctx, report)
    _emit_commandstats(ctx, report)
    _emit_sentinel_masters(ctx, report)
    return ctx.role


def extract_cluster_info_metrics(ctx: ScrapeContext, text: str) -> None:
    """``CLUSTER INFO`` uses the same line format as ``INFO``; map its fields."""
    report = parse_info(text)
    for entry in report.entries:
        mapping = ctx.registry.resolve(entry.field)
        if mapping is None:
            continue
        try:
            ctx.emit(mapping.exported_name, mapping.kind, to_float(entry.value))
        except ParseWarning as e:
            logger.debug(f"couldn't parse {entry.field}, err: {e}")
