"""Redis Metrics Exporter - translates Redis INFO and keyspace introspection into Prometheus series."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("redis-metrics-exporter")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for development without install
