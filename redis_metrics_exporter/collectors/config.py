"""Config metrics from ``CONFIG GET *``."""

import logging

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import ProtocolError
from redis_metrics_exporter.core.replies import REDACTED, Reply
from redis_metrics_exporter.metrics.mapping import REDACTED_CONFIG_KEYS
from redis_metrics_exporter.parsing.config import (
    parse_client_output_buffer_limit,
    parse_config_reply,
)

logger = logging.getLogger(__name__)

# Always exported as config_<key> when numeric
NUMERIC_CONFIG_KEYS = ("io-threads", "maxclients", "maxmemory")


def _number(value: str):
    try:
        return float(value)
    except ValueError:
        return None


def extract_config_metrics(ctx: ScrapeContext, reply: Reply) -> int:
    """Emit config series and return the ``databases`` setting (0 when absent).

    Raises:
        ProtocolError: odd-length reply, or ``databases`` isn't an integer
    """
    db_count = 0
    for key, value in parse_config_reply(reply):
        if key is None:
            logger.error("invalid config key name, skipped")
            continue
        if value is None:
            logger.debug(f"invalid config value for key name {key}, skipped")
            continue

        if key == "databases":
            try:
                db_count = int(value)
            except ValueError:
                raise ProtocolError(f"invalid config value for key databases: {value!r}") from None

        if ctx.settings.include_config_metrics:
            if key in REDACTED_CONFIG_KEYS and ctx.settings.redact_config_metrics:
                ctx.gauge("config_key_value", 1, key, REDACTED)
            else:
                ctx.gauge("config_key_value", 1, key, value)
                number = _number(value)
                if number is not None:
                    ctx.gauge("config_value", number, key)

        if key in NUMERIC_CONFIG_KEYS:
            number = _number(value)
            if number is not None:
                ctx.gauge(f"config_{key.replace('-', '_')}", number)

        if key == "client-output-buffer-limit":
            for limit in parse_client_output_buffer_limit(value):
                if limit.hard_bytes is not None:
                    ctx.gauge("config_client_output_buffer_limit_bytes", limit.hard_bytes, limit.client_class, "hard")
                if limit.soft_bytes is not None:
                    ctx.gauge("config_client_output_buffer_limit_bytes", limit.soft_bytes, limit.client_class, "soft")
                if limit.soft_seconds is not None:
                    ctx.gauge(
                        "config_client_output_buffer_limit_overcome_seconds",
                        limit.soft_seconds,
                        limit.client_class,
                        "soft",
                    )

    return db_count
