"""Parser for ``INFO``-style status reports.

The report is a sequence of ``# Section`` headers followed by ``field:value``
lines. Scalar fields end up in ``InfoReport.entries``; the handful of fields
whose value has its own grammar (keyspace, replicas, command stats, latency
percentiles, sentinel masters, error stats, modules) are parsed into typed
records instead.

Parsing is pure: it does no I/O, keeps no state between calls and never
raises on malformed input. A line that fails its grammar is logged at debug
level and dropped.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from redis_metrics_exporter.core.errors import ParseWarning
from redis_metrics_exporter.core.replies import REDACTED, decode_text

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"ok", "true", "up"})
_FALSE_VALUES = frozenset({"err", "fail", "false", "down"})

_KEYSPACE_FIELD = re.compile(r"^db(\d+)$")
_REPLICA_FIELD = re.compile(r"^slave(\d+)$")
_SENTINEL_MASTER_FIELD = re.compile(r"^master(\d+)$")
_CMDSTAT_PREFIX = "cmdstat_"
_LATENCY_PREFIX = "latency_percentiles_usec_"
_ERRORSTAT_PREFIX = "errorstat_"


def to_float(value: str) -> float:
    """Coerce a report value to a number.

    ``ok``/``true``/``up`` read as 1 and ``err``/``fail``/``false``/``down``
    as 0, so status fields can be exported like any other gauge.

    Raises:
        ParseWarning: the value is not numeric
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return 1.0
    if lowered in _FALSE_VALUES:
        return 0.0
    try:
        return float(lowered)
    except ValueError:
        raise ParseWarning(f"{value!r} is not numeric") from None


def _split_pairs(value: str) -> Dict[str, str]:
    """Split ``a=1,b=2`` into a dict. Items without ``=`` are ignored."""
    pairs = {}
    for item in value.split(","):
        key, sep, val = item.partition("=")
        if sep:
            pairs[key.strip()] = val.strip()
    return pairs


@dataclass(frozen=True)
class InfoEntry:
    section: str
    field: str
    value: str


@dataclass(frozen=True)
class KeyspaceRecord:
    db: int
    keys: float
    expires: float
    avg_ttl: float
    subexpiry: Optional[float] = None
    cached_keys: Optional[float] = None


@dataclass(frozen=True)
class ReplicaRecord:
    index: int
    ip: str
    port: str
    state: str
    offset: Optional[float] = None
    lag: Optional[float] = None


@dataclass(frozen=True)
class CommandStatRecord:
    cmd: str
    calls: float
    usec: float
    usec_per_call: Optional[float] = None
    rejected_calls: Optional[float] = None
    failed_calls: Optional[float] = None


@dataclass(frozen=True)
class LatencyPercentilesRecord:
    """``percentiles`` keeps the report's own labels (``p50``, ``p99.9``) in order."""

    cmd: str
    percentiles: Tuple[Tuple[str, float], ...]


@dataclass(frozen=True)
class SentinelMasterRecord:
    name: str
    status: str
    address: str
    slaves: float
    sentinels: float


@dataclass(frozen=True)
class ErrorStatRecord:
    err: str
    count: float


@dataclass(frozen=True)
class ModuleRecord:
    name: str
    ver: str
    api: str
    filters: str
    usedby: str
    using: str


@dataclass
class InfoReport:
    """Everything extracted from one report."""

    entries: List[InfoEntry] = field(default_factory=list)
    sections: List[str] = field(default_factory=list)
    keyspace: List[KeyspaceRecord] = field(default_factory=list)
    replicas: List[ReplicaRecord] = field(default_factory=list)
    commandstats: List[CommandStatRecord] = field(default_factory=list)
    latency_percentiles: List[LatencyPercentilesRecord] = field(default_factory=list)
    sentinel_masters: List[SentinelMasterRecord] = field(default_factory=list)
    errorstats: List[ErrorStatRecord] = field(default_factory=list)
    modules: List[ModuleRecord] = field(default_factory=list)

    @property
    def fields(self) -> Dict[str, str]:
        """Field to value; a field reported twice keeps its last value."""
        return {entry.field: entry.value for entry in self.entries}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for entry in reversed(self.entries):
            if entry.field == name:
                return entry.value
        return default

    def has_section(self, name: str) -> bool:
        return any(section.lower() == name.lower() for section in self.sections)


def _parse_keyspace(db: str, value: str) -> KeyspaceRecord:
    pairs = _split_pairs(value)
    missing = [name for name in ("keys", "expires", "avg_ttl") if name not in pairs]
    if missing:
        raise ParseWarning(f"db{db}: missing {', '.join(missing)}")
    return KeyspaceRecord(
        db=int(db),
        keys=to_float(pairs["keys"]),
        expires=to_float(pairs["expires"]),
        avg_ttl=to_float(pairs["avg_ttl"]),
        subexpiry=to_float(pairs["subexpiry"]) if "subexpiry" in pairs else None,
        cached_keys=to_float(pairs["cached_keys"]) if "cached_keys" in pairs else None,
    )


def _parse_replica(index: str, value: str) -> ReplicaRecord:
    if "=" not in value:
        # Redis < 2.8: slave0:<ip>,<port>,<state>
        parts = value.split(",")
        if len(parts) != 3:
            raise ParseWarning(f"slave{index}: unexpected format {value!r}")
        return ReplicaRecord(int(index), parts[0], parts[1], parts[2])

    pairs = _split_pairs(value)
    for name in ("ip", "port", "state"):
        if name not in pairs:
            raise ParseWarning(f"slave{index}: missing {name}")
    return ReplicaRecord(
        index=int(index),
        ip=pairs["ip"],
        port=pairs["port"],
        state=pairs["state"],
        offset=to_float(pairs["offset"]) if "offset" in pairs else None,
        lag=to_float(pairs["lag"]) if "lag" in pairs else None,
    )


def _parse_cmdstat(cmd: str, value: str) -> CommandStatRecord:
    pairs = _split_pairs(value)
    if "calls" not in pairs or "usec" not in pairs:
        raise ParseWarning(f"cmdstat_{cmd}: missing calls or usec")

    def optional(name: str) -> Optional[float]:
        return to_float(pairs[name]) if name in pairs else None

    return CommandStatRecord(
        cmd=cmd,
        calls=to_float(pairs["calls"]),
        usec=to_float(pairs["usec"]),
        usec_per_call=optional("usec_per_call"),
        rejected_calls=optional("rejected_calls"),
        failed_calls=optional("failed_calls"),
    )


def _parse_latency_percentiles(cmd: str, value: str) -> LatencyPercentilesRecord:
    pairs = _split_pairs(value)
    if not pairs:
        raise ParseWarning(f"latency_percentiles_usec_{cmd}: no percentiles")
    percentiles = []
    for label, raw in pairs.items():
        if not label.startswith("p"):
            raise ParseWarning(f"latency_percentiles_usec_{cmd}: bad percentile {label!r}")
        percentiles.append((label, to_float(raw)))
    return LatencyPercentilesRecord(cmd, tuple(percentiles))


def _parse_sentinel_master(index: str, value: str) -> SentinelMasterRecord:
    # master0:name=mymaster,status=ok,address=127.0.0.1:6379,slaves=1,sentinels=3
    pairs = _split_pairs(value)
    for name in ("name", "status", "address", "slaves", "sentinels"):
        if name not in pairs:
            raise ParseWarning(f"master{index}: missing {name}")
    return SentinelMasterRecord(
        name=pairs["name"],
        status=pairs["status"],
        address=pairs["address"],
        slaves=to_float(pairs["slaves"]),
        sentinels=to_float(pairs["sentinels"]),
    )


def _parse_errorstat(err: str, value: str) -> ErrorStatRecord:
    pairs = _split_pairs(value)
    if "count" not in pairs:
        raise ParseWarning(f"errorstat_{err}: missing count")
    return ErrorStatRecord(err, to_float(pairs["count"]))


def _parse_module(value: str) -> ModuleRecord:
    pairs = _split_pairs(value)
    if "name" not in pairs:
        raise ParseWarning(f"module: missing name in {value!r}")
    return ModuleRecord(
        name=pairs["name"],
        ver=pairs.get("ver", ""),
        api=pairs.get("api", ""),
        filters=pairs.get("filters", ""),
        usedby=pairs.get("usedby", ""),
        using=pairs.get("using", ""),
    )


def _decode_line(raw: bytes) -> str:
    """Decode one line; an undecodable field or value becomes the redaction marker."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        key, sep, value = raw.partition(b":")
        if not sep:
            return REDACTED
        return f"{decode_text(key)}:{decode_text(value)}"


def _lines(text: Union[str, bytes]) -> List[str]:
    if isinstance(text, bytes):
        return [_decode_line(line) for line in text.split(b"\n")]
    return text.split("\n")


def parse_info(text: Union[str, bytes]) -> InfoReport:
    """Parse an ``INFO`` reply (or any report in the same line format)."""
    report = InfoReport()
    section = ""

    for line in _lines(text):
        line = line.strip()
        if not line:
            continue
        if line.startswith("#"):
            section = line.lstrip("#").strip()
            report.sections.append(section)
            continue

        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.strip()
        value = value.strip()

        try:
            if _parse_compound(report, name, value):
                continue
        except ParseWarning as e:
            logger.debug(f"skipping malformed line in section {section!r}: {e}")
            continue
        except ValueError as e:
            logger.debug(f"skipping malformed line {line!r}: {e}")
            continue

        report.entries.append(InfoEntry(section, name, value))

    return report


def _parse_compound(report: InfoReport, name: str, value: str) -> bool:
    """Parse ``name`` into a record if it has a compound grammar.

    Returns False for plain scalar fields.
    """
    m = _KEYSPACE_FIELD.match(name)
    if m:
        report.keyspace.append(_parse_keyspace(m.group(1), value))
        return True

    m = _REPLICA_FIELD.match(name)
    if m:
        report.replicas.append(_parse_replica(m.group(1), value))
        return True

    m = _SENTINEL_MASTER_FIELD.match(name)
    if m and "name=" in value:
        report.sentinel_masters.append(_parse_sentinel_master(m.group(1), value))
        return True

    if name.startswith(_CMDSTAT_PREFIX):
        report.commandstats.append(_parse_cmdstat(name[len(_CMDSTAT_PREFIX) :], value))
        return True

    if name.startswith(_LATENCY_PREFIX):
        report.latency_percentiles.append(
            _parse_latency_percentiles(name[len(_LATENCY_PREFIX) :], value)
        )
        return True

    if name.startswith(_ERRORSTAT_PREFIX):
        report.errorstats.append(_parse_errorstat(name[len(_ERRORSTAT_PREFIX) :], value))
        return True

    if name == "module":
        report.modules.append(_parse_module(value))
        return True

    return False
