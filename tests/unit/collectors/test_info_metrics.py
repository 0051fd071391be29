"""Unit tests for turning INFO reports into observations."""

import pytest

from redis_metrics_exporter.collectors.info import (
    extract_cluster_info_metrics,
    extract_info_metrics,
    quantile_label,
)
from redis_metrics_exporter.core.context import ROLE_MASTER, ROLE_SLAVE, ROLE_UNKNOWN
from redis_metrics_exporter.core.errors import ParseWarning
from redis_metrics_exporter.metrics.observation import MetricKind
from redis_metrics_exporter.parsing.info import parse_info

SLAVE_INFO = """# Replication
role:slave
master_host:10.0.0.1
master_port:6379
master_link_status:up
master_last_io_seconds_ago:1
master_sync_in_progress:0
slave_repl_offset:500
slave_read_only:1
"""

SENTINEL_INFO = """# Sentinel
sentinel_masters:1
sentinel_tilt:0
master0:name=mymaster,status=ok,address=127.0.0.1:6379,slaves=2,sentinels=3
master1:name=other,status=odown,address=127.0.0.1:6380,slaves=0,sentinels=1
"""


def _extract(make_context, text, db_count=16, **overrides):
    ctx = make_context(**overrides)
    ctx.db_count = db_count
    role = extract_info_metrics(ctx, parse_info(text))
    return ctx, role


class TestQuantileLabel:
    """Test percentile label conversion."""

    @pytest.mark.parametrize(
        "label,expected", [("p50", "0.5"), ("p99", "0.99"), ("p99.9", "0.999"), ("p100", "1")]
    )
    def test_labels(self, label, expected):
        assert quantile_label(label) == expected

    def test_invalid(self):
        with pytest.raises(ParseWarning):
            quantile_label("pxx")


class TestExtractInfoMetrics:
    """Test extraction of scalar and compound INFO fields."""

    def test_role(self, make_context, sample_info):
        ctx, role = _extract(make_context, sample_info)

        assert role == ROLE_MASTER
        assert ctx.role == ROLE_MASTER

    def test_mapped_scalars(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        assert series(ctx.sink, "memory_used_bytes") == {(): 1048576.0}
        assert series(ctx.sink, "memory_max_bytes") == {(): 0.0}
        assert series(ctx.sink, "mem_fragmentation_ratio") == {(): 1.5}
        assert series(ctx.sink, "rdb_last_bgsave_status") == {(): 1.0}
        assert series(ctx.sink, "connected_clients") == {(): 5.0}
        assert series(ctx.sink, "max_clients") == {(): 10000.0}

    def test_counter_kinds(self, make_context, sample_info):
        ctx, _ = _extract(make_context, sample_info)

        kinds = {o.name: o.kind for o in ctx.sink}
        assert kinds["keyspace_hits_total"] == MetricKind.COUNTER
        assert kinds["cpu_sys_seconds_total"] == MetricKind.COUNTER
        assert kinds["memory_used_bytes"] == MetricKind.GAUGE

    def test_unmapped_and_system_fields(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)
        assert series(ctx.sink, "total_system_memory_bytes") == {}

        ctx, _ = _extract(make_context, sample_info, include_system_metrics=True)
        assert series(ctx.sink, "total_system_memory_bytes") == {(): 8589934592.0}

    def test_instance_info_and_start_time(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        [labels] = series(ctx.sink, "instance_info")
        assert labels == (
            "master",
            "7.2.4",
            "7b8617dd94058f85",
            "standalone",
            "Linux 6.1.0 x86_64",
            "noeviction",
            "6379",
            "4c7ba7f7b2f0e9b4d0a3c3b0b6b1b0c1d2e3f4a5",
            "1",
            "8d5a6e1f0c3b2a19",
        )
        assert series(ctx.sink, "start_time_seconds") == {(): 1_700_000_000.0 - 1000}

    def test_start_time_falls_back_to_scrape_clock(self, make_context, series):
        ctx, _ = _extract(make_context, "uptime_in_seconds:60\n")

        assert series(ctx.sink, "start_time_seconds") == {(): ctx.now - 60}

    def test_connected_replicas(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        labels = ("10.0.0.2", "6380", "online")
        assert series(ctx.sink, "connected_slave_offset_bytes") == {labels: 1234.0}
        assert series(ctx.sink, "connected_slave_lag_seconds") == {labels: 1.0}

    def test_slave_metrics(self, make_context, series):
        ctx, role = _extract(make_context, SLAVE_INFO)

        assert role == ROLE_SLAVE
        master = ("10.0.0.1", "6379")
        assert series(ctx.sink, "master_link_up") == {master: 1.0}
        assert series(ctx.sink, "master_last_io_seconds_ago") == {master: 1.0}
        assert series(ctx.sink, "slave_repl_offset") == {master: 500.0}
        assert series(ctx.sink, "slave_info") == {master + ("1",): 1.0}

    def test_unknown_role(self, make_context):
        _, role = _extract(make_context, "used_memory:1\n")

        assert role == ROLE_UNKNOWN

    def test_keyspace_with_empty_database_padding(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        keys = series(ctx.sink, "db_keys")
        assert len(keys) == 16
        assert keys[("db0",)] == 10.0
        assert keys[("db3",)] == 1.0
        assert keys[("db15",)] == 0.0
        assert series(ctx.sink, "db_keys_expiring")[("db0",)] == 2.0
        assert series(ctx.sink, "db_avg_ttl_seconds") == {("db0",): 5.0, ("db3",): 0.0}

    def test_keyspace_without_padding(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info, include_metrics_for_empty_databases=False)

        assert series(ctx.sink, "db_keys") == {("db0",): 10.0, ("db3",): 1.0}

    def test_commandstats(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        assert series(ctx.sink, "commands_total") == {("get",): 21.0, ("set",): 10.0}
        assert series(ctx.sink, "commands_duration_seconds_total")[("get",)] == pytest.approx(175e-6)
        assert series(ctx.sink, "commands_rejected_calls_total")[("set",)] == 1.0
        assert series(ctx.sink, "commands_failed_calls_total")[("set",)] == 2.0
        assert series(ctx.sink, "errors_total") == {("ERR",): 4.0}

    def test_latency_percentiles(self, make_context, sample_info, series):
        ctx, _ = _extract(make_context, sample_info)

        assert series(ctx.sink, "latency_percentiles_usec") == {
            ("get", "0.5"): 8.015,
            ("get", "0.99"): 20.095,
            ("get", "0.999"): 30.079,
        }

    def test_sentinel(self, make_context, series):
        ctx, _ = _extract(make_context, SENTINEL_INFO)

        assert series(ctx.sink, "sentinel_masters") == {(): 1.0}
        assert series(ctx.sink, "sentinel_tilt") == {(): 0.0}
        assert series(ctx.sink, "sentinel_master_status") == {
            ("mymaster", "127.0.0.1:6379", "ok"): 1.0,
            ("other", "127.0.0.1:6380", "odown"): 0.0,
        }
        assert series(ctx.sink, "sentinel_master_sentinels")[("mymaster", "127.0.0.1:6379")] == 3.0
        assert series(ctx.sink, "sentinel_master_slaves")[("mymaster", "127.0.0.1:6379")] == 2.0

    def test_non_numeric_values_are_skipped(self, make_context, series):
        ctx, _ = _extract(make_context, "used_memory:lots\nconnected_clients:3\n")

        assert series(ctx.sink, "memory_used_bytes") == {}
        assert series(ctx.sink, "connected_clients") == {(): 3.0}

    def test_extraction_is_repeatable(self, make_context, sample_info):
        first, _ = _extract(make_context, sample_info)
        second, _ = _extract(make_context, sample_info)

        assert first.sink == second.sink


class TestClusterInfo:
    """Test CLUSTER INFO extraction."""

    def test_cluster_fields(self, make_context, series):
        ctx = make_context()
        extract_cluster_info_metrics(
            ctx,
            "cluster_state:ok\r\ncluster_slots_assigned:16384\r\n"
            "cluster_known_nodes:6\r\ncluster_stats_messages_sent:100\r\n",
        )

        assert series(ctx.sink, "cluster_state") == {(): 1.0}
        assert series(ctx.sink, "cluster_slots_assigned") == {(): 16384.0}
        assert series(ctx.sink, "cluster_known_nodes") == {(): 6.0}
        [sent] = [o for o in ctx.sink if o.name == "cluster_messages_sent_total"]
        assert sent.kind == MetricKind.COUNTER
        assert sent.value == 100.0
