"""Prometheus exposition of scrape observations."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from prometheus_client import (
    PLATFORM_COLLECTOR,
    PROCESS_COLLECTOR,
    CollectorRegistry,
    Info,
    generate_latest,
)
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from redis_metrics_exporter.metrics.catalog import MetricCatalog
from redis_metrics_exporter.metrics.observation import MetricKind, Observation

logger = logging.getLogger(__name__)


class ObservationCollector(Collector):
    """Exposes a fixed list of observations as metric families.

    Observations of the same name share one family. When the same series
    (name and label values) shows up more than once, the first one wins.
    """

    def __init__(
        self,
        observations: Sequence[Observation],
        catalog: Optional[MetricCatalog] = None,
        namespace: str = "redis",
    ):
        self.observations = list(observations)
        self.catalog = catalog
        self.namespace = namespace

    def _full_name(self, name: str) -> str:
        return f"{self.namespace}_{name}" if self.namespace else name

    def _help(self, name: str) -> str:
        descriptor = self.catalog.get(name) if self.catalog is not None else None
        return descriptor.help if descriptor else f"{name} metric"

    def collect(self) -> Iterable[Metric]:
        families: Dict[str, Metric] = {}
        family_labels: Dict[str, Tuple[str, ...]] = {}
        seen = set()

        for observation in self.observations:
            series = (observation.name, observation.labels)
            if series in seen:
                logger.debug(f"duplicate series {observation.name}{dict(observation.labels)}, dropped")
                continue
            seen.add(series)

            family = families.get(observation.name)
            if family is None:
                family_class = (
                    CounterMetricFamily if observation.kind == MetricKind.COUNTER else GaugeMetricFamily
                )
                family = family_class(
                    self._full_name(observation.name),
                    self._help(observation.name),
                    labels=observation.label_names,
                )
                families[observation.name] = family
                family_labels[observation.name] = observation.label_names
            elif family_labels[observation.name] != observation.label_names:
                logger.error(
                    f"{observation.name}: label names {observation.label_names} "
                    f"don't match {family_labels[observation.name]}, dropped"
                )
                continue
            family.add_metric(list(observation.label_values), observation.value)

        return list(families.values())


def build_info_collector(namespace: str, version: str) -> Info:
    info = Info(
        "exporter_build",
        "redis exporter build info",
        namespace=namespace,
        registry=None,
    )
    info.info({"version": version})
    return info


def render(
    observations: Sequence[Observation],
    catalog: Optional[MetricCatalog] = None,
    namespace: str = "redis",
    extra_collectors: Iterable[Collector] = (),
    include_process_metrics: bool = True,
) -> bytes:
    """Render observations plus any extra collectors in the text format."""
    registry = CollectorRegistry()
    registry.register(ObservationCollector(observations, catalog, namespace))
    for collector in extra_collectors:
        registry.register(collector)
    if include_process_metrics:
        registry.register(PROCESS_COLLECTOR)
        registry.register(PLATFORM_COLLECTOR)
    return generate_latest(registry)


def render_scrape(exporter, observations: List[Observation], version: str) -> bytes:
    """Exposition for one scrape of ``exporter``, including its self-metrics."""
    settings = exporter.settings
    extra: List[Collector] = list(exporter.metrics.collectors())
    if not settings.redis_metrics_only:
        extra.append(build_info_collector(settings.namespace, version))
    return render(
        observations,
        exporter.catalog,
        settings.namespace,
        extra_collectors=extra,
        include_process_metrics=not settings.redis_metrics_only,
    )
