"""Per-scrape state shared by the extraction steps."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List

from redis_metrics_exporter.core.config import ExporterSettings
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.executor import CommandExecutor
from redis_metrics_exporter.core.replies import ErrorReply, Reply
from redis_metrics_exporter.metrics.catalog import MetricCatalog
from redis_metrics_exporter.metrics.mapping import MetricMappingRegistry
from redis_metrics_exporter.metrics.observation import MetricKind, Observation

logger = logging.getLogger(__name__)

ROLE_MASTER = "master"
ROLE_SLAVE = "slave"
ROLE_UNKNOWN = "unknown"


@dataclass
class ScrapeContext:
    """Everything one scrape needs; created per scrape and never shared.

    Observations are appended to ``sink`` in emission order. Steps that fail
    truncate ``sink`` back to where they started.
    """

    executor: CommandExecutor
    settings: ExporterSettings
    registry: MetricMappingRegistry
    catalog: MetricCatalog
    sink: List[Observation] = field(default_factory=list)
    db_count: int = 0
    role: str = ROLE_UNKNOWN
    selected_db: int = 0
    now: float = field(default_factory=time.time)
    scan_budget_exceeded: int = 0

    def emit(self, name: str, kind: MetricKind, value: float, *label_values: Any) -> None:
        label_names = self.catalog.label_names(name)
        if len(label_names) != len(label_values):
            raise ValueError(
                f"{name} expects labels {label_names}, got {len(label_values)} values"
            )
        labels = tuple(zip(label_names, (str(v) for v in label_values)))
        self.sink.append(Observation(name, kind, float(value), labels))

    def gauge(self, name: str, value: float, *label_values: Any) -> None:
        self.emit(name, MetricKind.GAUGE, value, *label_values)

    def counter(self, name: str, value: float, *label_values: Any) -> None:
        self.emit(name, MetricKind.COUNTER, value, *label_values)

    def emit_field(self, field_name: str, value: float) -> bool:
        """Emit a mapped report field. Returns False when the field isn't mapped."""
        mapping = self.registry.resolve(field_name)
        if mapping is None:
            return False
        self.emit(mapping.exported_name, mapping.kind, value)
        return True

    async def execute(self, command: str, *args: Any) -> Reply:
        return await self.executor.execute(command, *args)

    async def select(self, db: int) -> None:
        """Switch the connection to ``db`` unless it's already selected."""
        if db == self.selected_db:
            return
        reply = await self.executor.execute("SELECT", db)
        if isinstance(reply, ErrorReply):
            raise CommandError("SELECT", reply.message)
        self.selected_db = db
