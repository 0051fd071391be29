"""Per-connection metrics from ``CLIENT LIST``."""

import logging
from typing import Dict, List

from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import ErrorReply, as_text

logger = logging.getLogger(__name__)


def parse_client_list(text: str) -> List[Dict[str, str]]:
    """One dict per ``id=3 addr=127.0.0.1:6379 name= ...`` line."""
    clients = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        client = {}
        for item in line.split(" "):
            key, sep, value = item.partition("=")
            if sep:
                client[key] = value
        clients.append(client)
    return clients


def _number(client: Dict[str, str], field: str):
    try:
        return float(client[field])
    except (KeyError, ValueError):
        return None


async def extract_connected_client_metrics(ctx: ScrapeContext) -> None:
    reply = await ctx.execute("CLIENT", "LIST")
    if isinstance(reply, ErrorReply):
        raise CommandError("CLIENT LIST", reply.message)

    for client in parse_client_list(as_text(reply, "CLIENT LIST")):
        host, _, port = client.get("addr", "").rpartition(":")
        labels = (
            client.get("id", ""),
            client.get("name", ""),
            client.get("flags", ""),
            client.get("db", ""),
            host,
            port if ctx.settings.export_client_port else "",
        )
        ctx.gauge("connected_client_info", 1, *labels)

        for field, metric in (
            ("omem", "connected_client_output_buffer_memory_usage_bytes"),
            ("tot-mem", "connected_client_total_memory_used_bytes"),
        ):
            value = _number(client, field)
            if value is not None:
                ctx.gauge(metric, value, *labels)

        age = _number(client, "age")
        if age is not None:
            ctx.gauge("connected_client_created_at_timestamp", ctx.now - age, *labels)
        idle = _number(client, "idle")
        if idle is not None:
            ctx.gauge("connected_client_idle_since_timestamp", ctx.now - idle, *labels)
