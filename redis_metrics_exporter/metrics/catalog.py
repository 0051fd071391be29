"""Read-only catalog of metric descriptors.

The catalog answers "what could be exported and with which labels". It is
used to label observations at emission time and to list the known families
(``describe``); it is never written to while scraping.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple

from redis_metrics_exporter.core.errors import ConfigurationError
from redis_metrics_exporter.metrics.mapping import MetricMappingRegistry

_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

CLIENT_LABELS = ("id", "name", "flags", "db", "host", "port")
STREAM_LABELS = ("db", "stream")
STREAM_GROUP_LABELS = ("db", "stream", "group")
STREAM_CONSUMER_LABELS = ("db", "stream", "group", "consumer")
SENTINEL_MASTER_LABELS = ("master_name", "master_address")
MASTER_LINK_LABELS = ("master_host", "master_port")
SLAVE_LABELS = ("slave_ip", "slave_port", "slave_state")


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    help: str
    label_names: Tuple[str, ...] = ()


# name: (help text, label names)
STATIC_DESCRIPTORS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "commands_duration_seconds_total": ("Total amount of time in seconds spent per command", ("cmd",)),
    "commands_failed_calls_total": ("Total number of errors prior command execution per command", ("cmd",)),
    "commands_latencies_usec_bucket": ("Cumulative count of calls per command latency bucket", ("cmd", "le")),
    "commands_latencies_usec_count": ("Number of calls in the latency histogram per command", ("cmd",)),
    "commands_latencies_usec_sum": ("Total time spent per command in microseconds", ("cmd",)),
    "commands_rejected_calls_total": ("Total number of errors within command execution per command", ("cmd",)),
    "commands_total": ("Total number of calls per command", ("cmd",)),
    "config_client_output_buffer_limit_bytes": ("The configured buffer limits per class", ("class", "limit")),
    "config_client_output_buffer_limit_overcome_seconds": (
        "How long for buffer limits per class to be exceeded before replicas are dropped",
        ("class", "limit"),
    ),
    "config_io_threads": ("config_io_threads metric", ()),
    "config_key_value": ("Config key and value", ("key", "value")),
    "config_maxclients": ("config_maxclients metric", ()),
    "config_maxmemory": ("config_maxmemory metric", ()),
    "config_value": ("Config key and value as metric", ("key",)),
    "connected_client_created_at_timestamp": ("Unix timestamp at which the client connected", CLIENT_LABELS),
    "connected_client_idle_since_timestamp": ("Unix timestamp since which the client is idle", CLIENT_LABELS),
    "connected_client_info": ("Details about a connected client", CLIENT_LABELS),
    "connected_client_output_buffer_memory_usage_bytes": ("Output buffer memory of the client", CLIENT_LABELS),
    "connected_client_total_memory_used_bytes": ("Total memory used by the client", CLIENT_LABELS),
    "connected_slave_lag_seconds": ("Lag of connected slave", SLAVE_LABELS),
    "connected_slave_offset_bytes": ("Offset of connected slave", SLAVE_LABELS),
    "db_avg_ttl_seconds": ("Avg TTL in seconds", ("db",)),
    "db_keys": ("Total number of keys by DB", ("db",)),
    "db_keys_cached": ("Total number of cached keys by DB", ("db",)),
    "db_keys_expiring": ("Total number of expiring keys by DB", ("db",)),
    "errors_total": ("Total number of errors per error type", ("err",)),
    "exporter_last_scrape_connect_time_seconds": ("Time in seconds the last connect took", ()),
    "exporter_last_scrape_error": ("The last scrape error status.", ("err",)),
    "exporter_last_scrape_ping_time_seconds": ("Time in seconds the last PING took", ()),
    "instance_info": (
        "Information about the Redis instance",
        (
            "role",
            "redis_version",
            "redis_build_id",
            "redis_mode",
            "os",
            "maxmemory_policy",
            "tcp_port",
            "run_id",
            "process_id",
            "master_replid",
        ),
    ),
    "key_group_count": ("Count of keys in key group", ("db", "key_group")),
    "key_group_memory_usage_bytes": ("Total memory usage of key group in bytes", ("db", "key_group")),
    "key_memory_usage_bytes": ('The memory usage of "key" in bytes', ("db", "key")),
    "key_size": ('The length or size of "key"', ("db", "key")),
    "key_value": ('The value of "key"', ("db", "key")),
    "key_value_as_string": ('The value of "key" as a string', ("db", "key", "val")),
    "keys_count": ("Count of keys", ("db", "key")),
    "last_key_groups_scrape_duration_milliseconds": (
        "Duration of the last key group metrics scrape in milliseconds",
        (),
    ),
    "last_slow_execution_duration_seconds": (
        "The amount of time needed for last slow execution, in seconds",
        (),
    ),
    "latency_percentiles_usec": ("Latency percentile distribution per command", ("cmd", "quantile")),
    "latency_spike_duration_seconds": ("Length of the last latency spike in seconds", ("event_name",)),
    "latency_spike_last": ("When the latency spike last occurred", ("event_name",)),
    "master_last_io_seconds_ago": ("Master last io seconds ago", MASTER_LINK_LABELS),
    "master_link_up": ("Master link status on Redis slave", MASTER_LINK_LABELS),
    "master_sync_in_progress": ("Master sync in progress", MASTER_LINK_LABELS),
    "module_info": (
        "Information about loaded Redis module",
        ("name", "ver", "api", "filters", "usedby", "using"),
    ),
    "number_of_distinct_key_groups": ("Number of distinct key groups", ("db",)),
    "script_result": ("Result of the collect script evaluation", ("filename",)),
    "script_values": ("Values returned by the collect script", ("key", "filename")),
    "sentinel_master_ckquorum_status": ("Master ckquorum status", ("master_name", "message")),
    "sentinel_master_ok_sentinels": (
        "The number of okay sentinels monitoring this master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_ok_slaves": ("The number of okay slaves of the master", SENTINEL_MASTER_LABELS),
    "sentinel_master_sentinels": (
        "The number of sentinels monitoring this master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_setting_ckquorum": (
        "Show the current ckquorum config for each master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_setting_down_after_milliseconds": (
        "Show the current down-after-milliseconds config for each master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_setting_failover_timeout": (
        "Show the current failover-timeout config for each master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_setting_parallel_syncs": (
        "Show the current parallel-syncs config for each master",
        SENTINEL_MASTER_LABELS,
    ),
    "sentinel_master_slaves": ("The number of slaves of the master", SENTINEL_MASTER_LABELS),
    "sentinel_master_status": (
        "Master status on Sentinel",
        ("master_name", "master_address", "master_status"),
    ),
    "sentinel_masters": ("The number of masters this sentinel is watching", ()),
    "sentinel_running_scripts": ("Number of scripts in execution right now", ()),
    "sentinel_scripts_queue_length": ("Queue of user scripts to execute", ()),
    "sentinel_simulate_failure_flags": ("Failures simulations", ()),
    "sentinel_tilt": ("Sentinel is in TILT mode", ()),
    "slave_info": ("Information about the Redis slave", ("master_host", "master_port", "read_only")),
    "slave_repl_offset": ("Slave replication offset", MASTER_LINK_LABELS),
    "slowlog_last_id": ("Last id of slowlog", ()),
    "slowlog_length": ("Total slowlog", ()),
    "start_time_seconds": ("Start time of the Redis instance since unix epoch in seconds.", ()),
    "stream_first_entry_id": ("The epoch timestamp (ms) of the first message in the stream", STREAM_LABELS),
    "stream_group_consumer_idle_seconds": ("Consumer idle time in seconds", STREAM_CONSUMER_LABELS),
    "stream_group_consumer_messages_pending": (
        "Pending number of messages for this specific consumer",
        STREAM_CONSUMER_LABELS,
    ),
    "stream_group_consumers": ("Consumers count of stream group", STREAM_GROUP_LABELS),
    "stream_group_entries_read": ("Total number of entries read from the stream group", STREAM_GROUP_LABELS),
    "stream_group_lag": (
        "The number of messages waiting to be delivered to the stream group's consumers",
        STREAM_GROUP_LABELS,
    ),
    "stream_group_last_delivered_id": ("The epoch timestamp (ms) of the last delivered message", STREAM_GROUP_LABELS),
    "stream_group_messages_pending": ("Pending number of messages in that stream group", STREAM_GROUP_LABELS),
    "stream_groups": ("Groups count of stream", STREAM_LABELS),
    "stream_last_entry_id": ("The epoch timestamp (ms) of the last message in the stream", STREAM_LABELS),
    "stream_last_generated_id": ("The epoch timestamp (ms) of the latest message on the stream", STREAM_LABELS),
    "stream_length": ("The number of elements of the stream", STREAM_LABELS),
    "stream_max_deleted_entry_id": (
        "The epoch timestamp (ms) of last message was deleted from the stream",
        STREAM_LABELS,
    ),
    "stream_radix_tree_keys": ("Radix tree keys count", STREAM_LABELS),
    "stream_radix_tree_nodes": ("Radix tree nodes count", STREAM_LABELS),
    "up": ("Information about the Redis instance", ()),
}


class MetricCatalog:
    """Static descriptors plus one unlabeled descriptor per mapped field."""

    def __init__(
        self,
        registry: MetricMappingRegistry,
        static: Optional[Dict[str, Tuple[str, Sequence[str]]]] = None,
    ):
        descriptors: Dict[str, MetricDescriptor] = {}
        for name, (help_text, labels) in (STATIC_DESCRIPTORS if static is None else static).items():
            labels = tuple(labels)
            for label in labels:
                if not _LABEL_NAME.match(label):
                    raise ConfigurationError(f"{name}: invalid label name {label!r}")
            if len(set(labels)) != len(labels):
                raise ConfigurationError(f"{name}: duplicate label names {labels}")
            descriptors[name] = MetricDescriptor(name, help_text, labels)

        for mapping in registry.mappings():
            existing = descriptors.get(mapping.exported_name)
            if existing is not None and existing.label_names:
                raise ConfigurationError(
                    f"mapped metric {mapping.exported_name} collides with a labeled descriptor"
                )
            if existing is None:
                descriptors[mapping.exported_name] = MetricDescriptor(
                    mapping.exported_name, f"{mapping.exported_name} metric"
                )
        self._descriptors = descriptors

    def get(self, name: str) -> Optional[MetricDescriptor]:
        return self._descriptors.get(name)

    def label_names(self, name: str) -> Tuple[str, ...]:
        descriptor = self._descriptors.get(name)
        return descriptor.label_names if descriptor else ()

    def describe(self) -> Iterator[MetricDescriptor]:
        """Every known descriptor, sorted by name."""
        for name in sorted(self._descriptors):
            yield self._descriptors[name]

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
