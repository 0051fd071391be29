"""Unit tests for the INFO report parser."""

import pytest

from redis_metrics_exporter.core.errors import ParseWarning
from redis_metrics_exporter.core.replies import REDACTED
from redis_metrics_exporter.parsing.info import (
    CommandStatRecord,
    ErrorStatRecord,
    KeyspaceRecord,
    ModuleRecord,
    ReplicaRecord,
    SentinelMasterRecord,
    parse_info,
    to_float,
)


class TestToFloat:
    """Test value coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [("12", 12.0), ("1.5", 1.5), ("ok", 1.0), ("up", 1.0), ("true", 1.0),
         ("err", 0.0), ("fail", 0.0), ("down", 0.0), ("false", 0.0)],
    )
    def test_values(self, value, expected):
        assert to_float(value) == expected

    def test_non_numeric(self):
        with pytest.raises(ParseWarning):
            to_float("noeviction")


class TestParseInfo:
    """Test parsing of INFO reports."""

    def test_sections_and_scalars(self, sample_info):
        report = parse_info(sample_info)

        assert "Server" in report.sections
        assert report.has_section("keyspace")
        assert not report.has_section("Sentinel")
        assert report.get("used_memory") == "1048576"
        assert report.get("maxmemory_policy") == "noeviction"
        assert report.fields["role"] == "master"
        assert report.get("missing", "default") == "default"

    def test_entry_sections(self):
        report = parse_info("# Memory\nused_memory:10\n")

        [entry] = report.entries
        assert (entry.section, entry.field, entry.value) == ("Memory", "used_memory", "10")

    def test_keyspace(self, sample_info):
        report = parse_info(sample_info)

        assert report.keyspace == [
            KeyspaceRecord(db=0, keys=10, expires=2, avg_ttl=5000),
            KeyspaceRecord(db=3, keys=1, expires=0, avg_ttl=0),
        ]
        assert "db0" not in report.fields

    def test_keyspace_optional_fields(self):
        report = parse_info("db1:keys=5,expires=1,avg_ttl=10,subexpiry=0,cached_keys=3\n")

        assert report.keyspace == [
            KeyspaceRecord(db=1, keys=5, expires=1, avg_ttl=10, subexpiry=0, cached_keys=3)
        ]

    def test_keyspace_line_missing_expires_is_dropped(self):
        report = parse_info("db0:keys=5,avg_ttl=10\ndb1:keys=1,expires=0,avg_ttl=0\n")

        assert [record.db for record in report.keyspace] == [1]

    def test_replicas(self, sample_info):
        report = parse_info(sample_info)

        assert report.replicas == [
            ReplicaRecord(index=0, ip="10.0.0.2", port="6380", state="online", offset=1234, lag=1)
        ]

    def test_legacy_replica_format(self):
        report = parse_info("slave0:10.0.0.3,6381,online\n")

        assert report.replicas == [ReplicaRecord(0, "10.0.0.3", "6381", "online")]

    def test_commandstats(self, sample_info):
        report = parse_info(sample_info)

        assert report.commandstats[1] == CommandStatRecord(
            cmd="set", calls=10, usec=100, usec_per_call=10.0, rejected_calls=1, failed_calls=2
        )

    def test_commandstats_without_optional_counts(self):
        report = parse_info("cmdstat_ping:calls=3,usec=1,usec_per_call=0.33\n")

        [stat] = report.commandstats
        assert stat.rejected_calls is None
        assert stat.failed_calls is None

    def test_latency_percentiles_keep_order(self, sample_info):
        [record] = parse_info(sample_info).latency_percentiles

        assert record.cmd == "get"
        assert record.percentiles == (("p50", 8.015), ("p99", 20.095), ("p99.9", 30.079))

    def test_errorstats(self, sample_info):
        assert parse_info(sample_info).errorstats == [ErrorStatRecord("ERR", 4)]

    def test_sentinel_masters(self):
        text = (
            "# Sentinel\n"
            "sentinel_masters:1\n"
            "master0:name=mymaster,status=ok,address=127.0.0.1:6379,slaves=2,sentinels=3\n"
        )
        report = parse_info(text)

        assert report.sentinel_masters == [
            SentinelMasterRecord("mymaster", "ok", "127.0.0.1:6379", 2, 3)
        ]
        assert report.get("sentinel_masters") == "1"

    def test_master_prefixed_scalars_are_not_sentinel_masters(self):
        report = parse_info("master_host:10.0.0.1\nmaster_port:6379\n")

        assert report.sentinel_masters == []
        assert report.get("master_host") == "10.0.0.1"

    def test_modules(self):
        report = parse_info(
            "# Modules\nmodule:name=search,ver=20809,api=1,filters=0,usedby=[],using=[ReJSON]\n"
        )

        assert report.modules == [ModuleRecord("search", "20809", "1", "0", "[]", "[ReJSON]")]

    def test_malformed_lines_are_skipped(self):
        report = parse_info("no separator here\n\n#\ncmdstat_get:calls=x,usec=1\nused_memory:5\n")

        assert report.commandstats == []
        assert report.get("used_memory") == "5"

    def test_crlf_and_whitespace(self):
        report = parse_info("# Server\r\nredis_version:7.0.0\r\n")

        assert report.get("redis_version") == "7.0.0"

    def test_bytes_with_invalid_utf8_are_redacted(self):
        report = parse_info(b"# Server\nbad_value:\xff\xfe\nused_memory:7\n")

        assert report.get("bad_value") == REDACTED
        assert report.get("used_memory") == "7"

    def test_duplicate_field_keeps_last_value(self):
        report = parse_info("used_memory:1\nused_memory:2\n")

        assert report.fields["used_memory"] == "2"
        assert report.get("used_memory") == "2"

    def test_parsing_is_deterministic(self, sample_info):
        assert parse_info(sample_info) == parse_info(sample_info)
