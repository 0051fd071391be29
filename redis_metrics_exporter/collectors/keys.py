"""Keyspace scanning, per-key checks and key counts."""

import logging
from typing import Dict, Iterable, List, Optional

from redis_metrics_exporter.core.config import KeyCheck
from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError, ProtocolError, ScanBudgetExceeded
from redis_metrics_exporter.core.replies import (
    ErrorReply,
    Integer,
    Text,
    as_array,
    as_float,
    as_text,
    decode_text,
)

logger = logging.getLogger(__name__)

# Command returning the length of a key, by TYPE
SIZE_COMMANDS: Dict[str, str] = {
    "string": "STRLEN",
    "list": "LLEN",
    "set": "SCARD",
    "zset": "ZCARD",
    "hash": "HLEN",
    "stream": "XLEN",
}


class KeyspaceScanner:
    """Walks ``SCAN`` cursors for one connection.

    The cursor is followed until the server returns ``0``. Each pattern gets
    at most ``max_iterations`` SCAN calls; when that runs out, the keys found
    so far are returned and the overrun is counted on the context.
    """

    def __init__(self, ctx: ScrapeContext, batch_size: int, max_iterations: int):
        self.ctx = ctx
        self.batch_size = batch_size
        self.max_iterations = max_iterations

    async def scan(self, pattern: str) -> List[bytes]:
        """Return the distinct keys matching ``pattern`` in the selected database."""
        keys: List[bytes] = []
        seen = set()
        cursor = "0"
        iterations = 0

        while True:
            if iterations >= self.max_iterations:
                budget = ScanBudgetExceeded(pattern, iterations)
                self.ctx.scan_budget_exceeded += 1
                logger.warning(f"{budget}, returning {len(keys)} keys")
                break

            reply = await self.ctx.execute(
                "SCAN", cursor, "MATCH", pattern, "COUNT", self.batch_size
            )
            iterations += 1
            if isinstance(reply, ErrorReply):
                raise CommandError("SCAN", reply.message)

            items = as_array(reply, "SCAN")
            if len(items) != 2:
                raise ProtocolError(f"SCAN: expected [cursor, keys], got {len(items)} elements")
            cursor = as_text(items[0], "SCAN cursor")
            for item in as_array(items[1], "SCAN keys"):
                if not isinstance(item, Text):
                    raise ProtocolError(f"SCAN: key is not a string: {item!r}")
                if item.raw not in seen:
                    seen.add(item.raw)
                    keys.append(item.raw)

            if cursor == "0":
                break

        return keys


def scanner_for(ctx: ScrapeContext) -> KeyspaceScanner:
    return KeyspaceScanner(
        ctx, ctx.settings.check_keys_batch_size, ctx.settings.max_scan_iterations
    )


async def check_key(ctx: ScrapeContext, db: int, key: bytes) -> None:
    """Emit size, value and memory usage of one key in the selected database."""
    db_label = f"db{db}"
    key_label = decode_text(key)

    key_type = as_text(await ctx.execute("TYPE", key), "TYPE")
    if key_type == "none":
        logger.debug(f"key {key_label!r} not found in {db_label}, skipped")
        return

    size_command = SIZE_COMMANDS.get(key_type)
    if size_command is None:
        logger.debug(f"key {key_label!r} has unsupported type {key_type}")
    else:
        size = await ctx.execute(size_command, key)
        if isinstance(size, ErrorReply):
            logger.error(f"{size_command} {key_label!r} err: {size.message}")
        else:
            ctx.gauge("key_size", as_float(size, size_command), db_label, key_label)

    if key_type == "string" and not ctx.settings.disable_exporting_key_values:
        value = await ctx.execute("GET", key)
        if isinstance(value, (Text, Integer)):
            text = as_text(value)
            number = _as_number(text)
            if number is not None:
                ctx.gauge("key_value", number, db_label, key_label)
            else:
                ctx.gauge("key_value_as_string", 1, db_label, key_label, text)

    usage = await ctx.execute("MEMORY", "USAGE", key)
    if isinstance(usage, ErrorReply):
        logger.debug(f"MEMORY USAGE {key_label!r} err: {usage.message}, skipped")
    elif isinstance(usage, Integer):
        ctx.gauge("key_memory_usage_bytes", usage.value, db_label, key_label)


def _as_number(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


async def _check_keys(ctx: ScrapeContext, checks: Iterable[KeyCheck], scan: bool) -> None:
    scanner = scanner_for(ctx)
    for check in checks:
        mark = len(ctx.sink)
        try:
            await ctx.select(check.db)
            keys = await scanner.scan(check.pattern) if scan else [check.pattern.encode()]
            for key in keys:
                await check_key(ctx, check.db, key)
        except Exception as e:
            del ctx.sink[mark:]
            logger.error(f"couldn't check keys {check.pattern!r} in db{check.db}, err: {e}")


async def extract_check_key_metrics(ctx: ScrapeContext) -> None:
    await _check_keys(ctx, ctx.settings.key_checks(), scan=True)
    await _check_keys(ctx, ctx.settings.single_key_checks(), scan=False)


async def extract_count_keys_metrics(ctx: ScrapeContext) -> None:
    scanner = scanner_for(ctx)
    for check in ctx.settings.count_key_checks():
        try:
            await ctx.select(check.db)
            keys = await scanner.scan(check.pattern)
        except Exception as e:
            logger.error(f"couldn't count keys {check.pattern!r} in db{check.db}, err: {e}")
            continue
        ctx.gauge("keys_count", len(keys), f"db{check.db}", check.pattern)
