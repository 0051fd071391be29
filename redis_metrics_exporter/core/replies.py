"""Typed Redis replies.

Every reply coming back from the executor is one of ``Text``, ``Integer``,
``Array``, ``Nil`` or ``ErrorReply``. Call sites go through the ``as_*``
helpers below, which raise ``ProtocolError`` on any other variant instead of
coercing silently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from redis.exceptions import ResponseError

from redis_metrics_exporter.core.errors import ProtocolError

# Substituted for keys, values and labels that are not valid UTF-8
REDACTED = "<redacted>"


def decode_text(raw: bytes) -> str:
    """Decode bytes as UTF-8, returning the redaction marker when that fails."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return REDACTED


@dataclass(frozen=True)
class Text:
    """Bulk or simple string reply. ``raw`` is kept so keys can be sent back verbatim."""

    raw: bytes

    @property
    def value(self) -> str:
        return decode_text(self.raw)


@dataclass(frozen=True)
class Integer:
    value: int


@dataclass(frozen=True)
class Array:
    items: Tuple["Reply", ...]


@dataclass(frozen=True)
class Nil:
    pass


@dataclass(frozen=True)
class ErrorReply:
    message: str


Reply = Union[Text, Integer, Array, Nil, ErrorReply]


def from_wire(raw: Any) -> Reply:
    """Convert a value read off the connection into a ``Reply``."""
    if raw is None:
        return Nil()
    if isinstance(raw, ResponseError):
        return ErrorReply(str(raw))
    if isinstance(raw, bytes):
        return Text(raw)
    if isinstance(raw, str):
        return Text(raw.encode("utf-8"))
    if isinstance(raw, bool):
        return Integer(int(raw))
    if isinstance(raw, int):
        return Integer(raw)
    if isinstance(raw, float):
        # RESP3 doubles
        return Text(repr(raw).encode())
    if isinstance(raw, (list, tuple, set)):
        return Array(tuple(from_wire(item) for item in raw))
    if isinstance(raw, dict):
        # RESP3 maps are flattened to the RESP2 key/value layout
        flat: List[Reply] = []
        for key, value in raw.items():
            flat.append(from_wire(key))
            flat.append(from_wire(value))
        return Array(tuple(flat))
    raise ProtocolError(f"unsupported reply type {type(raw).__name__}")


def _describe(reply: Reply) -> str:
    if isinstance(reply, ErrorReply):
        return f"error reply ({reply.message})"
    return type(reply).__name__


def as_text(reply: Reply, what: str = "reply") -> str:
    if isinstance(reply, Text):
        return reply.value
    if isinstance(reply, Integer):
        return str(reply.value)
    raise ProtocolError(f"{what}: expected text, got {_describe(reply)}")


def as_int(reply: Reply, what: str = "reply") -> int:
    if isinstance(reply, Integer):
        return reply.value
    if isinstance(reply, Text):
        try:
            return int(reply.value)
        except ValueError:
            raise ProtocolError(f"{what}: {reply.value!r} is not an integer") from None
    raise ProtocolError(f"{what}: expected integer, got {_describe(reply)}")


def as_float(reply: Reply, what: str = "reply") -> float:
    if isinstance(reply, Integer):
        return float(reply.value)
    if isinstance(reply, Text):
        try:
            return float(reply.value)
        except ValueError:
            raise ProtocolError(f"{what}: {reply.value!r} is not a number") from None
    raise ProtocolError(f"{what}: expected number, got {_describe(reply)}")


def as_array(reply: Reply, what: str = "reply") -> Tuple[Reply, ...]:
    if isinstance(reply, Array):
        return reply.items
    if isinstance(reply, Nil):
        return ()
    raise ProtocolError(f"{what}: expected array, got {_describe(reply)}")


def as_map(reply: Reply, what: str = "reply") -> Dict[str, Reply]:
    """Interpret a flat ``[key, value, key, value, ...]`` array as a mapping."""
    items = as_array(reply, what)
    if len(items) % 2 != 0:
        raise ProtocolError(f"{what}: odd number of elements ({len(items)})")
    return {as_text(items[i], what): items[i + 1] for i in range(0, len(items), 2)}


def is_error(reply: Reply) -> bool:
    return isinstance(reply, ErrorReply)
