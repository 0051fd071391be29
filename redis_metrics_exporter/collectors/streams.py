"""Stream, consumer group and consumer metrics from ``XINFO``."""

import logging
from typing import Iterable

from redis_metrics_exporter.collectors.keys import scanner_for
from redis_metrics_exporter.core.config import KeyCheck
from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import (
    ErrorReply,
    Nil,
    Reply,
    as_array,
    as_float,
    as_map,
    as_text,
    decode_text,
)

logger = logging.getLogger(__name__)


def stream_id_ms(stream_id: str) -> float:
    """Millisecond part of a stream ID (``1638125141232-0`` -> 1638125141232)."""
    return float(stream_id.split("-", 1)[0])


def _entry_id(entry: Reply) -> str:
    """ID of a ``[id, [field, value, ...]]`` entry."""
    items = as_array(entry, "stream entry")
    return as_text(items[0], "stream entry id") if items else ""


async def _xinfo(ctx: ScrapeContext, *args) -> Reply:
    reply = await ctx.execute("XINFO", *args)
    if isinstance(reply, ErrorReply):
        raise CommandError(f"XINFO {args[0]}", reply.message)
    return reply


async def check_stream(ctx: ScrapeContext, db: int, key: bytes) -> None:
    db_label = f"db{db}"
    stream = decode_text(key)

    key_type = as_text(await ctx.execute("TYPE", key), "TYPE")
    if key_type != "stream":
        logger.debug(f"{stream!r} in {db_label} is a {key_type}, not a stream, skipped")
        return

    info = as_map(await _xinfo(ctx, "STREAM", key), "XINFO STREAM")
    ctx.gauge("stream_length", as_float(info["length"]), db_label, stream)
    ctx.gauge("stream_radix_tree_keys", as_float(info["radix-tree-keys"]), db_label, stream)
    ctx.gauge("stream_radix_tree_nodes", as_float(info["radix-tree-nodes"]), db_label, stream)
    ctx.gauge("stream_groups", as_float(info["groups"]), db_label, stream)
    ctx.gauge("stream_last_generated_id", stream_id_ms(as_text(info["last-generated-id"])), db_label, stream)
    if "max-deleted-entry-id" in info:
        max_deleted = stream_id_ms(as_text(info["max-deleted-entry-id"]))
        ctx.gauge("stream_max_deleted_entry_id", max_deleted, db_label, stream)
    for field, name in (("first-entry", "stream_first_entry_id"), ("last-entry", "stream_last_entry_id")):
        entry = info.get(field)
        if entry is not None and not isinstance(entry, Nil):
            entry_id = _entry_id(entry)
            if entry_id:
                ctx.gauge(name, stream_id_ms(entry_id), db_label, stream)

    for group_reply in as_array(await _xinfo(ctx, "GROUPS", key), "XINFO GROUPS"):
        group = as_map(group_reply, "XINFO GROUPS entry")
        group_name = as_text(group["name"])
        labels = (db_label, stream, group_name)
        ctx.gauge("stream_group_consumers", as_float(group["consumers"]), *labels)
        ctx.gauge("stream_group_messages_pending", as_float(group["pending"]), *labels)
        ctx.gauge("stream_group_last_delivered_id", stream_id_ms(as_text(group["last-delivered-id"])), *labels)
        # entries-read and lag are nil when the server can't compute them
        for field, name in (("entries-read", "stream_group_entries_read"), ("lag", "stream_group_lag")):
            value = group.get(field, Nil())
            if not isinstance(value, Nil):
                ctx.gauge(name, as_float(value), *labels)

        if ctx.settings.streams_exclude_consumer_metrics:
            continue
        consumers = await _xinfo(ctx, "CONSUMERS", key, group_name)
        for consumer_reply in as_array(consumers, "XINFO CONSUMERS"):
            consumer = as_map(consumer_reply, "XINFO CONSUMERS entry")
            consumer_labels = labels + (as_text(consumer["name"]),)
            ctx.gauge("stream_group_consumer_messages_pending", as_float(consumer["pending"]), *consumer_labels)
            ctx.gauge("stream_group_consumer_idle_seconds", as_float(consumer["idle"]) / 1000, *consumer_labels)


async def _check_streams(ctx: ScrapeContext, checks: Iterable[KeyCheck], scan: bool) -> None:
    scanner = scanner_for(ctx)
    for check in checks:
        mark = len(ctx.sink)
        try:
            await ctx.select(check.db)
            keys = await scanner.scan(check.pattern) if scan else [check.pattern.encode()]
            for key in keys:
                await check_stream(ctx, check.db, key)
        except Exception as e:
            del ctx.sink[mark:]
            logger.error(f"couldn't check streams {check.pattern!r} in db{check.db}, err: {e}")


async def extract_stream_metrics(ctx: ScrapeContext) -> None:
    await _check_streams(ctx, ctx.settings.stream_checks(), scan=True)
    await _check_streams(ctx, ctx.settings.single_stream_checks(), scan=False)
