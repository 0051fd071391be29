"""
Test configuration and fixtures for the Redis metrics exporter.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from redis_metrics_exporter.core.config import ExporterSettings
from redis_metrics_exporter.core.context import ScrapeContext
from redis_metrics_exporter.core.errors import CommandError
from redis_metrics_exporter.core.replies import Array, ErrorReply, Integer, Nil, Reply, Text, from_wire
from redis_metrics_exporter.metrics.catalog import MetricCatalog
from redis_metrics_exporter.metrics.mapping import MetricMappingRegistry

# Fixed clock for tests that derive timestamps from ctx.now
NOW = 1_700_000_000.0

SAMPLE_INFO = """# Server
redis_version:7.2.4
redis_git_sha1:00000000
redis_build_id:7b8617dd94058f85
redis_mode:standalone
os:Linux 6.1.0 x86_64
process_id:1
run_id:4c7ba7f7b2f0e9b4d0a3c3b0b6b1b0c1d2e3f4a5
tcp_port:6379
server_time_usec:1700000000000000
uptime_in_seconds:1000

# Clients
connected_clients:5
blocked_clients:0
maxclients:10000

# Memory
used_memory:1048576
maxmemory:0
maxmemory_policy:noeviction
mem_fragmentation_ratio:1.50
total_system_memory:8589934592

# Persistence
loading:0
rdb_last_bgsave_status:ok

# Stats
total_connections_received:10
total_commands_processed:100
keyspace_hits:7
keyspace_misses:3

# Replication
role:master
connected_slaves:1
slave0:ip=10.0.0.2,port=6380,state=online,offset=1234,lag=1
master_replid:8d5a6e1f0c3b2a19
master_repl_offset:1234

# CPU
used_cpu_sys:1.5
used_cpu_user:2.5

# Commandstats
cmdstat_get:calls=21,usec=175,usec_per_call=8.33,rejected_calls=0,failed_calls=0
cmdstat_set:calls=10,usec=100,usec_per_call=10.00,rejected_calls=1,failed_calls=2

# Errorstats
errorstat_ERR:count=4

# Latencystats
latency_percentiles_usec_get:p50=8.015,p99=20.095,p99.9=30.079

# Cluster
cluster_enabled:0

# Keyspace
db0:keys=10,expires=2,avg_ttl=5000
db3:keys=1,expires=0,avg_ttl=0
"""


def _normalize(arg: Any) -> str:
    if isinstance(arg, bytes):
        return arg.decode("utf-8", errors="replace")
    return str(arg)


class FakeExecutor:
    """Serves canned replies keyed by the command and its arguments.

    Table values may be ``Reply`` variants, plain Python values (converted
    like wire values) or exceptions, which are raised. Commands missing from
    the table get an ``ERR unknown command`` error reply.
    """

    def __init__(self, replies: Optional[Dict[Tuple[str, ...], Any]] = None, db: int = 0):
        self.replies = dict(replies or {})
        self.calls: List[Tuple[str, ...]] = []
        self.closed = False
        self.db = db

    def _reply(self, command: Tuple[str, ...]) -> Reply:
        self.calls.append(command)
        if command not in self.replies:
            return ErrorReply(f"ERR unknown command '{' '.join(command)}'")
        value = self.replies[command]
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, (Text, Integer, Array, Nil, ErrorReply)):
            return value
        return from_wire(value)

    async def execute(self, command: str, *args: Any) -> Reply:
        return self._reply(tuple(_normalize(a) for a in (command,) + args))

    async def execute_many(self, commands: Sequence[Sequence[Any]]) -> List[Reply]:
        return [self._reply(tuple(_normalize(a) for a in c)) for c in commands]

    async def close(self) -> None:
        self.closed = True

    def called(self, *command: str) -> bool:
        return tuple(command) in self.calls


@pytest.fixture
def fake_executor():
    """The FakeExecutor class, for tests that build their own tables."""
    return FakeExecutor


@pytest.fixture
def failing_command():
    """Build the exception an executor raises on a connection-level failure."""

    def _make(command: str = "INFO") -> CommandError:
        return CommandError(command, "connection reset by peer")

    return _make


@pytest.fixture
def make_settings():
    """ExporterSettings that ignore any local .env file."""

    def _make(**overrides) -> ExporterSettings:
        return ExporterSettings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def make_context(make_settings):
    """Build a ScrapeContext backed by a FakeExecutor."""

    def _make(replies=None, db=0, **overrides) -> ScrapeContext:
        settings = make_settings(**overrides)
        registry = MetricMappingRegistry(include_system_metrics=settings.include_system_metrics)
        return ScrapeContext(
            executor=FakeExecutor(replies, db=db),
            settings=settings,
            registry=registry,
            catalog=MetricCatalog(registry),
            selected_db=db,
            now=NOW,
        )

    return _make


@pytest.fixture
def series():
    """Index observations of one metric by their label values."""

    def _series(observations, name: str) -> Dict[Tuple[str, ...], float]:
        return {o.label_values: o.value for o in observations if o.name == name}

    return _series


@pytest.fixture
def sample_info() -> str:
    return SAMPLE_INFO
