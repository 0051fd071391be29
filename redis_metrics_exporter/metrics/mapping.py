"""Field-name to metric-name mapping for INFO-style reports.

The tables are plain data: naming differences between Redis versions, forks
(KeyDB, Tile38) and modules (RediSearch) are handled by adding entries, not
by branching in the extraction code.
"""

from typing import Dict, FrozenSet, Iterator, NamedTuple, Optional

from redis_metrics_exporter.core.errors import ConfigurationError
from redis_metrics_exporter.metrics.observation import MetricKind

GAUGE_FIELDS: Dict[str, str] = {
    # # Server
    "uptime_in_seconds": "uptime_in_seconds",
    "process_id": "process_id",
    "io_threads_active": "io_threads_active",
    # # Clients
    "connected_clients": "connected_clients",
    "blocked_clients": "blocked_clients",
    "maxclients": "max_clients",
    "tracking_clients": "tracking_clients",
    "clients_in_timeout_table": "clients_in_timeout_table",
    "pubsub_clients": "pubsub_clients",  # Redis 7.4
    "watching_clients": "watching_clients",  # Redis 7.4
    "total_watched_keys": "total_watched_keys",  # Redis 7.4
    "total_blocking_keys": "total_blocking_keys",  # Redis 7.2
    "total_blocking_keys_on_nokey": "total_blocking_keys_on_nokey",  # Redis 7.2
    # redis 2,3,4.x
    "client_longest_output_list": "client_longest_output_list",
    "client_biggest_input_buf": "client_biggest_input_buf",
    # renamed in redis 5.x
    "client_recent_max_output_buffer": "client_recent_max_output_buffer_bytes",
    "client_recent_max_input_buffer": "client_recent_max_input_buffer_bytes",
    # # Memory
    "allocator_active": "allocator_active_bytes",
    "allocator_allocated": "allocator_allocated_bytes",
    "allocator_resident": "allocator_resident_bytes",
    "allocator_frag_ratio": "allocator_frag_ratio",
    "allocator_frag_bytes": "allocator_frag_bytes",
    "allocator_muzzy": "allocator_muzzy_bytes",
    "allocator_rss_ratio": "allocator_rss_ratio",
    "allocator_rss_bytes": "allocator_rss_bytes",
    "used_memory": "memory_used_bytes",
    "used_memory_rss": "memory_used_rss_bytes",
    "used_memory_peak": "memory_used_peak_bytes",
    "used_memory_lua": "memory_used_lua_bytes",
    "used_memory_vm_eval": "memory_used_vm_eval_bytes",  # Redis 7.0
    "used_memory_scripts_eval": "memory_used_scripts_eval_bytes",  # Redis 7.0
    "used_memory_overhead": "memory_used_overhead_bytes",
    "used_memory_startup": "memory_used_startup_bytes",
    "used_memory_dataset": "memory_used_dataset_bytes",
    "number_of_cached_scripts": "number_of_cached_scripts",  # Redis 7.0
    "number_of_functions": "number_of_functions",  # Redis 7.0
    "number_of_libraries": "number_of_libraries",  # Redis 7.4
    "used_memory_vm_functions": "memory_used_vm_functions_bytes",  # Redis 7.0
    "used_memory_scripts": "memory_used_scripts_bytes",  # Redis 7.0
    "used_memory_functions": "memory_used_functions_bytes",  # Redis 7.0
    "used_memory_vm_total": "memory_used_vm_total",  # Redis 7.0
    "maxmemory": "memory_max_bytes",
    "maxmemory_reservation": "memory_max_reservation_bytes",
    "maxmemory_desired_reservation": "memory_max_reservation_desired_bytes",
    "maxfragmentationmemory_reservation": "memory_max_fragmentation_reservation_bytes",
    "maxfragmentationmemory_desired_reservation": "memory_max_fragmentation_reservation_desired_bytes",
    "mem_fragmentation_ratio": "mem_fragmentation_ratio",
    "mem_fragmentation_bytes": "mem_fragmentation_bytes",
    "mem_clients_slaves": "mem_clients_slaves",
    "mem_clients_normal": "mem_clients_normal",
    "mem_cluster_links": "mem_cluster_links_bytes",
    "mem_aof_buffer": "mem_aof_buffer_bytes",
    "mem_replication_backlog": "mem_replication_backlog_bytes",
    "expired_stale_perc": "expired_stale_percentage",
    # the sum of AOF and slaves buffer, see evict.c
    "mem_not_counted_for_evict": "mem_not_counted_for_eviction_bytes",
    "mem_total_replication_buffers": "mem_total_replication_buffers_bytes",  # Redis 7.0
    "mem_overhead_db_hashtable_rehashing": "mem_overhead_db_hashtable_rehashing_bytes",  # Redis 7.4
    "lazyfree_pending_objects": "lazyfree_pending_objects",
    "lazyfreed_objects": "lazyfreed_objects",
    "active_defrag_running": "active_defrag_running",
    "migrate_cached_sockets": "migrate_cached_sockets_total",
    "active_defrag_hits": "defrag_hits",
    "active_defrag_misses": "defrag_misses",
    "active_defrag_key_hits": "defrag_key_hits",
    "active_defrag_key_misses": "defrag_key_misses",
    # # Persistence
    "loading": "loading_dump_file",
    "async_loading": "async_loading",  # Redis 7.0
    "rdb_changes_since_last_save": "rdb_changes_since_last_save",
    "rdb_bgsave_in_progress": "rdb_bgsave_in_progress",
    "rdb_last_save_time": "rdb_last_save_timestamp_seconds",
    "rdb_last_bgsave_status": "rdb_last_bgsave_status",
    "rdb_last_bgsave_time_sec": "rdb_last_bgsave_duration_sec",
    "rdb_current_bgsave_time_sec": "rdb_current_bgsave_duration_sec",
    "rdb_saves": "rdb_saves_total",
    "rdb_last_cow_size": "rdb_last_cow_size_bytes",
    "rdb_last_load_keys_expired": "rdb_last_load_expired_keys",  # Redis 7.0
    "rdb_last_load_keys_loaded": "rdb_last_load_loaded_keys",  # Redis 7.0
    "aof_enabled": "aof_enabled",
    "aof_rewrite_in_progress": "aof_rewrite_in_progress",
    "aof_rewrite_scheduled": "aof_rewrite_scheduled",
    "aof_last_rewrite_time_sec": "aof_last_rewrite_duration_sec",
    "aof_current_rewrite_time_sec": "aof_current_rewrite_duration_sec",
    "aof_last_cow_size": "aof_last_cow_size_bytes",
    "aof_current_size": "aof_current_size_bytes",
    "aof_base_size": "aof_base_size_bytes",
    "aof_pending_rewrite": "aof_pending_rewrite",
    "aof_buffer_length": "aof_buffer_length",
    "aof_rewrite_buffer_length": "aof_rewrite_buffer_length",  # Redis 7.0
    "aof_pending_bio_fsync": "aof_pending_bio_fsync",
    "aof_delayed_fsync": "aof_delayed_fsync",
    "aof_last_bgrewrite_status": "aof_last_bgrewrite_status",
    "aof_last_write_status": "aof_last_write_status",
    "module_fork_in_progress": "module_fork_in_progress",
    "module_fork_last_cow_size": "module_fork_last_cow_size",
    # # Stats
    "current_eviction_exceeded_time": "current_eviction_exceeded_time_ms",
    "pubsub_channels": "pubsub_channels",
    "pubsub_patterns": "pubsub_patterns",
    "pubsubshard_channels": "pubsubshard_channels",  # Redis 7.0.3
    "latest_fork_usec": "latest_fork_usec",
    "tracking_total_keys": "tracking_total_keys",
    "tracking_total_items": "tracking_total_items",
    "tracking_total_prefixes": "tracking_total_prefixes",
    # # Replication
    "connected_slaves": "connected_slaves",
    "repl_backlog_size": "replication_backlog_bytes",
    "repl_backlog_active": "repl_backlog_is_active",
    "repl_backlog_first_byte_offset": "repl_backlog_first_byte_offset",
    "repl_backlog_histlen": "repl_backlog_history_bytes",
    "master_repl_offset": "master_repl_offset",
    "second_repl_offset": "second_repl_offset",
    "slave_expires_tracked_keys": "slave_expires_tracked_keys",
    "slave_priority": "slave_priority",
    "sync_full": "replica_resyncs_full",
    "sync_partial_ok": "replica_partial_resync_accepted",
    "sync_partial_err": "replica_partial_resync_denied",
    # # Cluster (INFO) and CLUSTER INFO
    "cluster_enabled": "cluster_enabled",
    "cluster_state": "cluster_state",
    "cluster_slots_assigned": "cluster_slots_assigned",
    "cluster_slots_ok": "cluster_slots_ok",
    "cluster_slots_pfail": "cluster_slots_pfail",
    "cluster_slots_fail": "cluster_slots_fail",
    "cluster_known_nodes": "cluster_known_nodes",
    "cluster_size": "cluster_size",
    "cluster_current_epoch": "cluster_current_epoch",
    "cluster_my_epoch": "cluster_my_epoch",
    "cluster_stats_messages_sent": "cluster_messages_sent_total",
    "cluster_stats_messages_received": "cluster_messages_received_total",
    # # Tile38, see https://tile38.com/commands/server/
    "tile38_aof_size": "tile38_aof_size_bytes",
    "tile38_avg_point_size": "tile38_avg_item_size_bytes",
    "tile38_sys_cpus": "tile38_cpus_total",
    "tile38_heap_released_bytes": "tile38_heap_released_bytes",
    "tile38_heap_alloc_bytes": "tile38_heap_size_bytes",
    "tile38_http_transport": "tile38_http_transport",
    "tile38_in_memory_size": "tile38_in_memory_size_bytes",
    "tile38_max_heap_size": "tile38_max_heap_size_bytes",
    "tile38_alloc_bytes": "tile38_mem_alloc_bytes",
    "tile38_num_collections": "tile38_num_collections_total",
    "tile38_num_hooks": "tile38_num_hooks_total",
    "tile38_num_objects": "tile38_num_objects_total",
    "tile38_num_points": "tile38_num_points_total",
    "tile38_pointer_size": "tile38_pointer_size_bytes",
    "tile38_read_only": "tile38_read_only",
    "tile38_go_threads": "tile38_threads_total",
    "tile38_go_goroutines": "tile38_go_goroutines_total",
    "tile38_last_gc_time_seconds": "tile38_last_gc_time_seconds",
    "tile38_next_gc_bytes": "tile38_next_gc_bytes",
    # KeyDB
    "server_threads": "server_threads_total",
    "long_lock_waits": "long_lock_waits_total",
    "current_client_thread": "current_client_thread",
    # RediSearch module
    "search_number_of_indexes": "search_number_of_indexes",
    "search_used_memory_indexes": "search_used_memory_indexes_bytes",
    "search_global_idle": "search_global_idle",
    "search_global_total": "search_global_total",
    "search_bytes_collected": "search_collected_bytes",
    "search_dialect_1": "search_dialect_1",
    "search_dialect_2": "search_dialect_2",
    "search_dialect_3": "search_dialect_3",
    "search_dialect_4": "search_dialect_4",
    # RediSearch module v8.0
    "search_number_of_active_indexes": "search_number_of_active_indexes",
    "search_number_of_active_indexes_running_queries": "search_number_of_active_indexes_running_queries",
    "search_number_of_active_indexes_indexing": "search_number_of_active_indexes_indexing",
    "search_total_active_write_threads": "search_total_active_write_threads",
    "search_smallest_memory_index": "search_smallest_memory_index_bytes",
    "search_largest_memory_index": "search_largest_memory_index_bytes",
    "search_used_memory_vector_index": "search_used_memory_vector_index_bytes",
    # gc metrics split into user and internal in RediSearch 8.0
    "search_global_idle_user": "search_global_idle_user",
    "search_global_idle_internal": "search_global_idle_internal",
    "search_global_total_user": "search_global_total_user",
    "search_global_total_internal": "search_global_total_internal",
    # renamed from search_bytes_collected
    "search_gc_bytes_collected": "search_gc_collected_bytes",
    "search_gc_total_docs_not_collected": "search_gc_total_docs_not_collected",
    "search_gc_marked_deleted_vectors": "search_gc_marked_deleted_vectors",
    "search_errors_indexing_failures": "search_errors_indexing_failures",
}

COUNTER_FIELDS: Dict[str, str] = {
    "total_connections_received": "connections_received_total",
    "total_commands_processed": "commands_processed_total",
    "rejected_connections": "rejected_connections_total",
    "total_net_input_bytes": "net_input_bytes_total",
    "total_net_output_bytes": "net_output_bytes_total",
    "total_net_repl_input_bytes": "net_repl_input_bytes_total",
    "total_net_repl_output_bytes": "net_repl_output_bytes_total",
    "expired_subkeys": "expired_subkeys_total",
    "expired_keys": "expired_keys_total",
    # see expire.c
    "expired_time_cap_reached_count": "expired_time_cap_reached_total",
    "expire_cycle_cpu_milliseconds": "expire_cycle_cpu_time_ms_total",
    "evicted_keys": "evicted_keys_total",
    "evicted_clients": "evicted_clients_total",  # Redis 7.0
    "evicted_scripts": "evicted_scripts_total",  # Redis 7.4
    "total_eviction_exceeded_time": "eviction_exceeded_time_ms_total",
    "keyspace_hits": "keyspace_hits_total",
    "keyspace_misses": "keyspace_misses_total",
    "used_cpu_sys": "cpu_sys_seconds_total",
    "used_cpu_user": "cpu_user_seconds_total",
    "used_cpu_sys_children": "cpu_sys_children_seconds_total",
    "used_cpu_user_children": "cpu_user_children_seconds_total",
    "used_cpu_sys_main_thread": "cpu_sys_main_thread_seconds_total",
    "used_cpu_user_main_thread": "cpu_user_main_thread_seconds_total",
    "unexpected_error_replies": "unexpected_error_replies_total",
    "total_error_replies": "total_error_replies_total",
    "dump_payload_sanitizations": "dump_payload_sanitizations_total",
    "total_reads_processed": "total_reads_processed_total",
    "total_writes_processed": "total_writes_processed_total",
    "io_threaded_reads_processed": "io_threaded_reads_processed_total",
    "io_threaded_writes_processed": "io_threaded_writes_processed_total",
    "client_query_buffer_limit_disconnections": "client_query_buffer_limit_disconnections_total",
    "client_output_buffer_limit_disconnections": "client_output_buffer_limit_disconnections_total",
    "reply_buffer_shrinks": "reply_buffer_shrinks_total",
    "reply_buffer_expands": "reply_buffer_expands_total",
    "acl_access_denied_auth": "acl_access_denied_auth_total",
    "acl_access_denied_cmd": "acl_access_denied_cmd_total",
    "acl_access_denied_key": "acl_access_denied_key_total",
    "acl_access_denied_channel": "acl_access_denied_channel_total",
    # KeyDB
    "cached_keys": "cached_keys_total",
    "storage_provider_read_hits": "storage_provider_read_hits_total",
    "storage_provider_read_misses": "storage_provider_read_misses_total",
    # RediSearch module
    "search_total_indexing_time": "search_indexing_time_ms_total",
    "search_total_cycles": "search_cycles_total",
    "search_total_ms_run": "search_run_ms_total",
    # RediSearch module v8.0
    "search_gc_total_cycles": "search_gc_cycles_total",
    "search_gc_total_ms_run": "search_gc_run_ms_total",
    "search_total_queries_processed": "search_queries_processed_total",
    "search_total_query_commands": "search_query_commands_total",
    "search_total_query_execution_time_ms": "search_query_execution_time_ms_total",
    "search_total_active_queries": "search_active_queries_total",
}

# Only exported with include_system_metrics, the value leaks host details
SYSTEM_GAUGE_FIELDS: Dict[str, str] = {
    "total_system_memory": "total_system_memory_bytes",
}

# Config values whose content is never exported when redaction is on
REDACTED_CONFIG_KEYS: FrozenSet[str] = frozenset(
    {"masterauth", "requirepass", "tls-key-file-pass", "tls-client-key-file-pass"}
)


class MetricMapping(NamedTuple):
    exported_name: str
    kind: MetricKind


class MetricMappingRegistry:
    """Immutable lookup from report field names to exported metrics."""

    def __init__(
        self,
        gauges: Optional[Dict[str, str]] = None,
        counters: Optional[Dict[str, str]] = None,
        include_system_metrics: bool = False,
    ):
        gauges = dict(GAUGE_FIELDS if gauges is None else gauges)
        counters = dict(COUNTER_FIELDS if counters is None else counters)
        if include_system_metrics:
            gauges.update(SYSTEM_GAUGE_FIELDS)

        overlap = sorted(set(gauges) & set(counters))
        if overlap:
            raise ConfigurationError(
                f"fields mapped as both gauge and counter: {', '.join(overlap)}"
            )
        # the text exposition always names counter samples <name>_total
        unsuffixed = sorted(name for name in counters.values() if not name.endswith("_total"))
        if unsuffixed:
            raise ConfigurationError(
                f"counter names must end in _total: {', '.join(unsuffixed)}"
            )

        table: Dict[str, MetricMapping] = {}
        for field, name in gauges.items():
            table[field] = MetricMapping(name, MetricKind.GAUGE)
        for field, name in counters.items():
            table[field] = MetricMapping(name, MetricKind.COUNTER)
        self._table = table

    def resolve(self, field: str) -> Optional[MetricMapping]:
        """Return the exported name and kind for ``field``, or None if unknown."""
        return self._table.get(field)

    def __contains__(self, field: str) -> bool:
        return field in self._table

    def __len__(self) -> int:
        return len(self._table)

    def mappings(self) -> Iterator[MetricMapping]:
        """Every distinct exported metric, in table order."""
        seen = set()
        for mapping in self._table.values():
            if mapping.exported_name not in seen:
                seen.add(mapping.exported_name)
                yield mapping
