"""Observations: one sampled value of one series."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class Observation:
    """A named, labeled sample.

    ``name`` is not namespaced; the exposition layer adds the prefix.
    ``labels`` is ordered the way the family's descriptor declares them.
    """

    name: str
    kind: MetricKind
    value: float
    labels: Tuple[Tuple[str, str], ...] = ()

    @property
    def label_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.labels)

    @property
    def label_values(self) -> Tuple[str, ...]:
        return tuple(value for _, value in self.labels)

    def label(self, name: str) -> str:
        for label_name, value in self.labels:
            if label_name == name:
                return value
        raise KeyError(name)
