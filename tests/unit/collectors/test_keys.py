"""Unit tests for keyspace scanning and key checks."""

import pytest

from redis_metrics_exporter.collectors.keys import (
    KeyspaceScanner,
    check_key,
    extract_check_key_metrics,
    extract_count_keys_metrics,
)
from redis_metrics_exporter.core.errors import CommandError, ProtocolError
from redis_metrics_exporter.core.replies import ErrorReply


def _scan(cursor, pattern, count=1000):
    return ("SCAN", cursor, "MATCH", pattern, "COUNT", str(count))


def _string_key(key, value, memory=56):
    return {
        ("TYPE", key): b"string",
        ("STRLEN", key): len(value),
        ("GET", key): value,
        ("MEMORY", "USAGE", key): memory,
    }


class TestKeyspaceScanner:
    """Test the SCAN cursor loop."""

    @pytest.mark.asyncio
    async def test_follows_cursor_and_dedups(self, make_context):
        ctx = make_context(
            {
                _scan("0", "user:*", 10): [b"17", [b"user:1", b"user:2"]],
                _scan("17", "user:*", 10): [b"0", [b"user:2", b"user:3"]],
            }
        )

        keys = await KeyspaceScanner(ctx, batch_size=10, max_iterations=100).scan("user:*")

        assert keys == [b"user:1", b"user:2", b"user:3"]
        assert ctx.scan_budget_exceeded == 0

    @pytest.mark.asyncio
    async def test_stops_at_iteration_budget(self, make_context):
        ctx = make_context(
            {
                _scan("0", "*", 10): [b"7", [b"a"]],
                _scan("7", "*", 10): [b"7", [b"b"]],
            }
        )

        keys = await KeyspaceScanner(ctx, batch_size=10, max_iterations=2).scan("*")

        assert keys == [b"a", b"b"]
        assert ctx.scan_budget_exceeded == 1
        assert len(ctx.executor.calls) == 2

    @pytest.mark.asyncio
    async def test_error_reply(self, make_context):
        ctx = make_context({_scan("0", "*", 10): ErrorReply("ERR syntax error")})

        with pytest.raises(CommandError, match="SCAN"):
            await KeyspaceScanner(ctx, 10, 10).scan("*")

    @pytest.mark.asyncio
    async def test_malformed_reply(self, make_context):
        ctx = make_context({_scan("0", "*", 10): [b"0", [b"a"], b"extra"]})

        with pytest.raises(ProtocolError):
            await KeyspaceScanner(ctx, 10, 10).scan("*")

    @pytest.mark.asyncio
    async def test_binary_keys_are_kept_verbatim(self, make_context):
        ctx = make_context({_scan("0", "*", 10): [b"0", [b"\xff\x00"]]})

        assert await KeyspaceScanner(ctx, 10, 10).scan("*") == [b"\xff\x00"]


class TestCheckKey:
    """Test per-key size, value and memory metrics."""

    @pytest.mark.asyncio
    async def test_numeric_string(self, make_context, series):
        ctx = make_context(_string_key("counter", b"42"))

        await check_key(ctx, 0, b"counter")

        assert series(ctx.sink, "key_size") == {("db0", "counter"): 2.0}
        assert series(ctx.sink, "key_value") == {("db0", "counter"): 42.0}
        assert series(ctx.sink, "key_memory_usage_bytes") == {("db0", "counter"): 56.0}

    @pytest.mark.asyncio
    async def test_text_string(self, make_context, series):
        ctx = make_context(_string_key("greeting", b"hello"))

        await check_key(ctx, 0, b"greeting")

        assert series(ctx.sink, "key_value") == {}
        assert series(ctx.sink, "key_value_as_string") == {("db0", "greeting", "hello"): 1.0}

    @pytest.mark.asyncio
    async def test_values_can_be_disabled(self, make_context, series):
        ctx = make_context(_string_key("counter", b"42"), disable_exporting_key_values=True)

        await check_key(ctx, 0, b"counter")

        assert not ctx.executor.called("GET", "counter")
        assert series(ctx.sink, "key_value") == {}
        assert series(ctx.sink, "key_size") == {("db0", "counter"): 2.0}

    @pytest.mark.asyncio
    async def test_list_uses_llen(self, make_context, series):
        ctx = make_context(
            {
                ("TYPE", "queue"): b"list",
                ("LLEN", "queue"): 7,
                ("MEMORY", "USAGE", "queue"): ErrorReply("ERR unknown command"),
            }
        )

        await check_key(ctx, 2, b"queue")

        assert series(ctx.sink, "key_size") == {("db2", "queue"): 7.0}
        assert series(ctx.sink, "key_memory_usage_bytes") == {}

    @pytest.mark.asyncio
    async def test_missing_key(self, make_context):
        ctx = make_context({("TYPE", "gone"): b"none"})

        await check_key(ctx, 0, b"gone")

        assert ctx.sink == []
        assert ctx.executor.calls == [("TYPE", "gone")]


class TestExtractCheckKeyMetrics:
    """Test the key check and key count steps."""

    @pytest.mark.asyncio
    async def test_patterns_and_single_keys(self, make_context, series):
        replies = {
            ("SELECT", "1"): b"OK",
            ("SELECT", "0"): b"OK",
            _scan("0", "user:*"): [b"0", [b"user:1"]],
        }
        replies.update(_string_key("user:1", b"5"))
        replies.update(_string_key("config", b"on"))
        ctx = make_context(replies, check_keys="db1=user:*", check_single_keys="config")

        await extract_check_key_metrics(ctx)

        assert series(ctx.sink, "key_value") == {("db1", "user:1"): 5.0}
        assert series(ctx.sink, "key_value_as_string") == {("db0", "config", "on"): 1.0}
        assert ctx.executor.calls.index(("SELECT", "1")) < ctx.executor.calls.index(("SELECT", "0"))

    @pytest.mark.asyncio
    async def test_failing_pattern_is_rolled_back(self, make_context, series):
        replies = {
            _scan("0", "a*"): [b"0", [b"a1"]],
            ("TYPE", "a1"): b"string",
            ("STRLEN", "a1"): 1,
            ("GET", "a1"): CommandError("GET", "timeout"),
            _scan("0", "b*"): [b"0", [b"b1"]],
        }
        replies.update(_string_key("b1", b"9"))
        ctx = make_context(replies, check_keys="a*,b*")

        await extract_check_key_metrics(ctx)

        assert series(ctx.sink, "key_size") == {("db0", "b1"): 1.0}
        assert series(ctx.sink, "key_value") == {("db0", "b1"): 9.0}

    @pytest.mark.asyncio
    async def test_count_keys(self, make_context, series):
        ctx = make_context(
            {
                ("SELECT", "2"): b"OK",
                _scan("0", "queue:*"): [b"0", [b"queue:a", b"queue:b", b"queue:c"]],
            },
            count_keys="db2=queue:*",
        )

        await extract_count_keys_metrics(ctx)

        assert series(ctx.sink, "keys_count") == {("db2", "queue:*"): 3.0}

    @pytest.mark.asyncio
    async def test_count_keys_skips_unselectable_database(self, make_context, series):
        ctx = make_context(
            {
                ("SELECT", "5"): ErrorReply("ERR DB index is out of range"),
                _scan("0", "queue:*"): [b"0", [b"queue:a"]],
            },
            count_keys="db5=jobs:*,queue:*",
        )

        await extract_count_keys_metrics(ctx)

        assert series(ctx.sink, "keys_count") == {("db0", "queue:*"): 1.0}
