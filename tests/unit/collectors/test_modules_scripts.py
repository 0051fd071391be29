"""Unit tests for module, Tile38 and Lua script metrics."""

import pytest

from redis_metrics_exporter.collectors.modules import extract_modules_metrics, extract_tile38_metrics
from redis_metrics_exporter.collectors.scripts import extract_lua_script_metrics, run_script
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import ErrorReply
from redis_metrics_exporter.metrics.observation import MetricKind

SCRIPT = b"return {'users', '10', 'label', 'abc'}"


class TestModules:
    """Test INFO MODULES metrics."""

    @pytest.mark.asyncio
    async def test_module_info(self, make_context, series):
        ctx = make_context(
            {
                ("INFO", "MODULES"): (
                    b"# Modules\r\n"
                    b"module:name=search,ver=20809,api=1,filters=0,usedby=[],using=[ReJSON]\r\n"
                    b"# search_index\r\n"
                    b"search_number_of_indexes:2\r\n"
                    b"search_total_cycles:7\r\n"
                )
            }
        )

        await extract_modules_metrics(ctx)

        assert series(ctx.sink, "module_info") == {
            ("search", "20809", "1", "0", "[]", "[ReJSON]"): 1.0
        }
        assert series(ctx.sink, "search_number_of_indexes") == {(): 2.0}
        [cycles] = [o for o in ctx.sink if o.name == "search_cycles_total"]
        assert cycles.kind == MetricKind.COUNTER

    @pytest.mark.asyncio
    async def test_modules_error(self, make_context):
        ctx = make_context({("INFO", "MODULES"): ErrorReply("ERR syntax error")})

        with pytest.raises(CommandError):
            await extract_modules_metrics(ctx)

    @pytest.mark.asyncio
    async def test_tile38(self, make_context, series):
        ctx = make_context(
            {("SERVER", "EXT"): [b"aof_size", b"1024", b"num_objects", b"5", b"unknown", b"x"]}
        )

        await extract_tile38_metrics(ctx)

        assert series(ctx.sink, "tile38_aof_size_bytes") == {(): 1024.0}
        assert series(ctx.sink, "tile38_num_objects_total") == {(): 5.0}
        assert len(ctx.sink) == 2


class TestScripts:
    """Test Lua script evaluation."""

    @pytest.mark.asyncio
    async def test_script_values(self, make_context, series):
        ctx = make_context({("EVAL", SCRIPT.decode(), "0"): [b"users", b"10", b"label", b"abc"]})

        assert await run_script(ctx, "collect.lua", SCRIPT) is True

        assert series(ctx.sink, "script_values") == {("users", "collect.lua"): 10.0}
        assert series(ctx.sink, "script_result") == {("collect.lua",): 1.0}

    @pytest.mark.asyncio
    async def test_script_error(self, make_context, series):
        ctx = make_context({("EVAL", SCRIPT.decode(), "0"): ErrorReply("ERR user_script:1 boom")})

        assert await run_script(ctx, "collect.lua", SCRIPT) is False

        assert series(ctx.sink, "script_values") == {}
        assert series(ctx.sink, "script_result") == {("collect.lua",): 0.0}

    @pytest.mark.asyncio
    async def test_malformed_result_discards_values(self, make_context, series):
        ctx = make_context({("EVAL", SCRIPT.decode(), "0"): [b"users", b"10", b"dangling"]})

        await run_script(ctx, "collect.lua", SCRIPT)

        assert series(ctx.sink, "script_values") == {}
        assert series(ctx.sink, "script_result") == {("collect.lua",): 0.0}

    @pytest.mark.asyncio
    async def test_each_script_is_independent(self, make_context, series):
        broken = b"error('x')"
        ctx = make_context(
            {
                ("EVAL", SCRIPT.decode(), "0"): [b"users", b"10"],
                ("EVAL", broken.decode(), "0"): ErrorReply("ERR x"),
            }
        )

        await extract_lua_script_metrics(ctx, {"broken.lua": broken, "collect.lua": SCRIPT})

        assert series(ctx.sink, "script_result") == {("broken.lua",): 0.0, ("collect.lua",): 1.0}
        assert series(ctx.sink, "script_values") == {("users", "collect.lua"): 10.0}
