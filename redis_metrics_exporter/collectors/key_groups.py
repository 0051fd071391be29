"""Key group metrics: keys matching a pattern, folded into a bounded set of groups.

A key's group is the key itself with the text captured by each ``*`` of the
rule's pattern normalized: within a capture, ``:``-separated segments that
look like identifiers (numbers, hex hashes, UUIDs) become ``*``. So with the
pattern ``user:*`` the keys ``user:42:cart`` and ``user:43:cart`` both land in
the group ``user:*:cart``.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from redis_metrics_exporter.collectors.keys import scanner_for
from redis_metrics_exporter.core.config import KeyGroupRule
from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import Integer, decode_text

logger = logging.getLogger(__name__)

PLACEHOLDER = "*"
OVERFLOW_GROUP = "overflow"

_DIGITS = re.compile(r"^[0-9]+$")
_HEX = re.compile(r"^[0-9a-fA-F]{8,}$")
_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def normalize_segment(segment: str) -> str:
    if _DIGITS.match(segment) or _HEX.match(segment) or _UUID.match(segment):
        return PLACEHOLDER
    return segment


def normalize(text: str) -> str:
    return ":".join(normalize_segment(segment) for segment in text.split(":"))


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a ``SCAN MATCH`` glob into a regex with one group per ``*``."""
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            out.append("(.*?)")
        elif c == "?":
            out.append(".")
        elif c == "\\" and i + 1 < len(pattern):
            i += 1
            out.append(re.escape(pattern[i]))
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out), re.DOTALL)


def group_for(regex: "re.Pattern[str]", key: str) -> str:
    """Reduce ``key`` to its group identifier under ``regex``."""
    m = regex.fullmatch(key)
    if m is None or not m.groups():
        return normalize(key)

    parts = []
    last = 0
    for index in range(1, len(m.groups()) + 1):
        start, end = m.span(index)
        parts.append(key[last:start])
        parts.append(normalize(key[start:end]))
        last = end
    parts.append(key[last:])
    return "".join(parts)


@dataclass
class GroupStats:
    count: int = 0
    memory_bytes: int = 0


class KeyGroupAggregator:
    """Group -> stats, capped at ``max_groups`` distinct groups.

    Once the cap is reached, keys of groups not already present are added to
    the ``overflow`` bucket. ``overflow`` is reserved: a group of that name
    goes to the bucket too. ``distinct_groups`` still counts every group seen.
    """

    def __init__(self, max_groups: int):
        self.max_groups = max_groups
        self.groups: Dict[str, GroupStats] = {}
        self.overflow: Optional[GroupStats] = None
        self._seen = set()

    def add(self, group: str, memory_bytes: int) -> None:
        self._seen.add(group)
        stats = self.groups.get(group)
        if stats is None:
            if group == OVERFLOW_GROUP or len(self.groups) >= self.max_groups:
                if self.overflow is None:
                    self.overflow = GroupStats()
                stats = self.overflow
            else:
                stats = self.groups[group] = GroupStats()
        stats.count += 1
        stats.memory_bytes += memory_bytes

    @property
    def distinct_groups(self) -> int:
        return len(self._seen)

    def items(self) -> Iterator[Tuple[str, GroupStats]]:
        yield from self.groups.items()
        if self.overflow is not None:
            yield OVERFLOW_GROUP, self.overflow


async def _memory_usage(ctx: ScrapeContext, keys: List[bytes]) -> List[int]:
    """``MEMORY USAGE`` for each key, pipelined in batches. Errors count as 0."""
    usage: List[int] = []
    batch_size = ctx.settings.check_keys_batch_size
    for i in range(0, len(keys), batch_size):
        batch = keys[i : i + batch_size]
        replies = await ctx.executor.execute_many([("MEMORY", "USAGE", key) for key in batch])
        usage.extend(reply.value if isinstance(reply, Integer) else 0 for reply in replies)
    return usage


async def _collect_rule(ctx: ScrapeContext, rule: KeyGroupRule) -> List[Tuple[str, int]]:
    keys = await scanner_for(ctx).scan(rule.key_pattern)
    usage = await _memory_usage(ctx, keys)
    regex = glob_to_regex(rule.key_pattern)
    return [(group_for(regex, decode_text(key)), memory) for key, memory in zip(keys, usage)]


def _databases(rules: List[KeyGroupRule], db_count: int) -> List[int]:
    dbs = set()
    for rule in rules:
        if rule.database_selector is None:
            dbs.update(range(max(db_count, 1)))
        else:
            dbs.add(rule.database_selector)
    return sorted(dbs)


async def extract_key_group_metrics(ctx: ScrapeContext) -> None:
    rules = ctx.settings.key_group_rules()
    if not rules:
        return

    start = time.monotonic()
    for db in _databases(rules, ctx.db_count):
        applicable = [rule for rule in rules if rule.applies_to(db)]
        aggregator = KeyGroupAggregator(min(rule.max_distinct_groups for rule in applicable))
        try:
            await ctx.select(db)
        except CommandError as e:
            logger.error(f"couldn't select db{db} for key groups, err: {e}")
            continue

        for rule in applicable:
            try:
                contributions = await _collect_rule(ctx, rule)
            except Exception as e:
                logger.error(f"couldn't collect key groups for {rule.key_pattern!r} in db{db}, err: {e}")
                continue
            for group, memory in contributions:
                aggregator.add(group, memory)

        db_label = f"db{db}"
        for group, stats in aggregator.items():
            ctx.gauge("key_group_count", stats.count, db_label, group)
            ctx.gauge("key_group_memory_usage_bytes", stats.memory_bytes, db_label, group)
        ctx.gauge("number_of_distinct_key_groups", aggregator.distinct_groups, db_label)

    took_ms = (time.monotonic() - start) * 1000
    ctx.gauge("last_key_groups_scrape_duration_milliseconds", took_ms)
