"""Parsing of ``CONFIG GET *`` replies."""

import logging
from typing import List, NamedTuple, Optional, Tuple

from redis_metrics_exporter.core.errors import ProtocolError
from redis_metrics_exporter.core.replies import Reply, Text, as_array, decode_text

logger = logging.getLogger(__name__)


def parse_config_reply(reply: Reply) -> List[Tuple[Optional[str], Optional[str]]]:
    """Pair up the flat key/value array returned by ``CONFIG GET``.

    Keys or values that aren't text come back as None so the caller can log
    and skip them individually.

    Raises:
        ProtocolError: the reply isn't an array or has an odd number of elements
    """
    items = as_array(reply, "CONFIG GET")
    if len(items) % 2 != 0:
        raise ProtocolError(f"invalid config: odd number of elements ({len(items)})")

    def text(item: Reply) -> Optional[str]:
        return decode_text(item.raw) if isinstance(item, Text) else None

    return [(text(items[i]), text(items[i + 1])) for i in range(0, len(items), 2)]


class BufferLimit(NamedTuple):
    client_class: str
    hard_bytes: Optional[float]
    soft_bytes: Optional[float]
    soft_seconds: Optional[float]


def _number(token: str) -> Optional[float]:
    try:
        return float(token)
    except ValueError:
        return None


def parse_client_output_buffer_limit(value: str) -> List[BufferLimit]:
    """Parse ``normal 0 0 0 slave 268435456 67108864 60 pubsub 33554432 8388608 60``.

    Tokens come in strides of four: class, hard limit, soft limit, soft
    seconds. A non-numeric limit is returned as None; an incomplete trailing
    stride is dropped.
    """
    tokens = value.strip().strip('"').split()
    limits = []
    for i in range(0, len(tokens), 4):
        stride = tokens[i : i + 4]
        if len(stride) < 4:
            logger.warning(f"client-output-buffer-limit: dropping incomplete entry {stride}")
            break
        limits.append(
            BufferLimit(stride[0], _number(stride[1]), _number(stride[2]), _number(stride[3]))
        )
    return limits
