"""Scrape orchestration.

``RedisExporter.scrape()`` runs one scrape against one target and returns the
observations it produced. Scrapes of the same exporter are serialized; every
scrape opens its own connection and builds its own ``ScrapeContext``.

Order of work:

1. connect (failure: only ``up=0`` and the error are reported)
2. PING and CLIENT SETNAME, when enabled
3. ``CONFIG GET *`` (terminal on I/O failure or a malformed reply)
4. ``INFO ALL`` (terminal on failure) and, for cluster nodes, ``CLUSTER INFO``
5. independent steps; a failing step is logged and its output discarded
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from opentelemetry import trace
from prometheus_client import Counter, Summary

from redis_metrics_exporter.collectors.clients import extract_connected_client_metrics
from redis_metrics_exporter.collectors.config import extract_config_metrics
from redis_metrics_exporter.collectors.info import extract_cluster_info_metrics, extract_info_metrics
from redis_metrics_exporter.collectors.key_groups import extract_key_group_metrics
from redis_metrics_exporter.collectors.keys import (
    extract_check_key_metrics,
    extract_count_keys_metrics,
)
from redis_metrics_exporter.collectors.latency import extract_latency_metrics
from redis_metrics_exporter.collectors.modules import extract_modules_metrics, extract_tile38_metrics
from redis_metrics_exporter.collectors.scripts import extract_lua_script_metrics
from redis_metrics_exporter.collectors.sentinel import extract_sentinel_metrics
from redis_metrics_exporter.collectors.slowlog import extract_slowlog_metrics
from redis_metrics_exporter.collectors.streams import extract_stream_metrics
from redis_metrics_exporter.core.config import DEFAULT_DATABASE_COUNT, ExporterSettings
from redis_metrics_exporter.core.context import ROLE_SLAVE, ScrapeContext
from redis_metrics_exporter.core.errors import CommandError, ExporterError, ScrapeConnectionError
from redis_metrics_exporter.core.executor import (
    CLIENT_NAME,
    CommandExecutor,
    RedisConnectionExecutor,
    mask_redis_url,
)
from redis_metrics_exporter.core.replies import ErrorReply, Text, as_text
from redis_metrics_exporter.metrics.catalog import MetricCatalog
from redis_metrics_exporter.metrics.mapping import MetricMappingRegistry
from redis_metrics_exporter.metrics.observation import MetricKind, Observation
from redis_metrics_exporter.parsing.info import InfoReport, parse_info

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ExecutorFactory = Callable[[str], Awaitable[CommandExecutor]]


class ExporterMetrics:
    """Exporter self-metrics that live across scrapes.

    They're created unregistered and added to the registry of each
    exposition, next to the scrape's own observations.
    """

    def __init__(self, namespace: str = "redis"):
        self.scrapes_total = Counter(
            "exporter_scrapes",
            "Current total redis scrapes.",
            namespace=namespace,
            registry=None,
        )
        self.scrape_duration = Summary(
            "exporter_scrape_duration_seconds",
            "Duration of scrape by the exporter",
            namespace=namespace,
            registry=None,
        )
        self.target_scrape_request_errors = Counter(
            "target_scrape_request_errors",
            "Errors in requests to the exporter",
            namespace=namespace,
            registry=None,
        )
        self.scan_budget_exceeded = Counter(
            "exporter_scan_budget_exceeded",
            "SCAN loops stopped by the iteration cap",
            namespace=namespace,
            registry=None,
        )

    def collectors(self) -> list:
        return [
            self.scrapes_total,
            self.scrape_duration,
            self.target_scrape_request_errors,
            self.scan_budget_exceeded,
        ]


def build_registry(settings: ExporterSettings) -> MetricMappingRegistry:
    return MetricMappingRegistry(include_system_metrics=settings.include_system_metrics)


def build_catalog(registry: MetricMappingRegistry) -> MetricCatalog:
    return MetricCatalog(registry)


def _scrape_status(error: Optional[str]) -> List[Observation]:
    return [
        Observation(
            "exporter_last_scrape_error",
            MetricKind.GAUGE,
            0.0 if error is None else 1.0,
            (("err", error or ""),),
        ),
        Observation("up", MetricKind.GAUGE, 1.0 if error is None else 0.0),
    ]


class RedisExporter:
    """Scrapes one Redis target."""

    def __init__(
        self,
        settings: ExporterSettings,
        target: Optional[str] = None,
        password: Optional[str] = None,
        registry: Optional[MetricMappingRegistry] = None,
        catalog: Optional[MetricCatalog] = None,
        metrics: Optional[ExporterMetrics] = None,
        executor_factory: Optional[ExecutorFactory] = None,
        scripts: Optional[Dict[str, bytes]] = None,
    ):
        self.settings = settings
        self.target = target or settings.redis_addr
        self.password = password
        self.registry = registry or build_registry(settings)
        self.catalog = catalog or build_catalog(self.registry)
        self.metrics = metrics or ExporterMetrics(settings.namespace)
        self.scripts = settings.load_scripts() if scripts is None else scripts
        self._executor_factory = executor_factory or self._connect
        self._lock = asyncio.Lock()
        settings.validate_key_options()

    async def _connect(self, url: str) -> CommandExecutor:
        password = self.password
        if password is None and self.settings.redis_password is not None:
            password = self.settings.redis_password.get_secret_value()
        return await RedisConnectionExecutor.connect(
            url,
            username=self.settings.redis_user,
            password=password,
            timeout=self.settings.connection_timeout,
            tls_client_cert_file=self.settings.tls_client_cert_file,
            tls_client_key_file=self.settings.tls_client_key_file,
            tls_ca_cert_file=self.settings.tls_ca_cert_file,
            skip_tls_verification=self.settings.skip_tls_verification,
        )

    async def scrape(self) -> List[Observation]:
        """Run one scrape and return its observations in emission order."""
        async with self._lock:
            self.metrics.scrapes_total.inc()
            started = time.monotonic()
            observations: List[Observation] = []

            with tracer.start_as_current_span("redis_exporter.scrape") as span:
                span.set_attribute("redis.target", mask_redis_url(self.target))
                error: Optional[str] = None
                try:
                    await self._scrape_host(observations)
                except ScrapeConnectionError as e:
                    observations.clear()
                    error = str(e)
                except Exception as e:
                    logger.error(f"scrape of {mask_redis_url(self.target)} failed: {e}")
                    error = str(e)
                span.set_attribute("redis.up", error is None)

            observations.extend(_scrape_status(error))
            self.metrics.scrape_duration.observe(time.monotonic() - started)
            return observations

    async def _scrape_host(self, sink: List[Observation]) -> None:
        started = time.monotonic()
        executor = await self._executor_factory(self.target)
        ctx = ScrapeContext(
            executor,
            self.settings,
            self.registry,
            self.catalog,
            sink=sink,
            selected_db=executor.db,
        )
        try:
            ctx.gauge("exporter_last_scrape_connect_time_seconds", time.monotonic() - started)
            logger.debug(f"connecting took {time.monotonic() - started:.6f} seconds")
            await self._handshake(ctx)

            db_count = await self._configure(ctx)
            report = await self._introspect(ctx)

            if report.get("cluster_enabled") == "1" or self.settings.is_cluster:
                if await self._cluster_info(ctx):
                    # cluster nodes only have database 0
                    db_count = 1
            if db_count == 0:
                db_count = DEFAULT_DATABASE_COUNT
            ctx.db_count = db_count
            logger.debug(f"dbCount: {db_count}")

            role = extract_info_metrics(ctx, report)
            await self._run_steps(ctx, report, role)
        finally:
            await executor.close()
            if ctx.scan_budget_exceeded:
                self.metrics.scan_budget_exceeded.inc(ctx.scan_budget_exceeded)

    async def _handshake(self, ctx: ScrapeContext) -> None:
        if self.settings.ping_on_connect:
            started = time.monotonic()
            try:
                reply = await ctx.execute("PING")
                if isinstance(reply, ErrorReply):
                    raise CommandError("PING", reply.message)
                ctx.gauge("exporter_last_scrape_ping_time_seconds", time.monotonic() - started)
            except CommandError as e:
                logger.error(f"Couldn't PING server, err: {e}")

        if self.settings.set_client_name:
            try:
                reply = await ctx.execute("CLIENT", "SETNAME", CLIENT_NAME)
                if isinstance(reply, ErrorReply):
                    raise CommandError("CLIENT SETNAME", reply.message)
            except CommandError as e:
                logger.error(f"Couldn't set client name, err: {e}")

    async def _configure(self, ctx: ScrapeContext) -> int:
        """Export config metrics and return the configured database count (0 if unknown)."""
        command = self.settings.config_command
        if command == "-":
            logger.debug("Skipping config metrics")
            return 0

        reply = await ctx.execute(command, "GET", "*")
        if isinstance(reply, ErrorReply):
            logger.debug(f"Redis CONFIG err: {reply.message}")
            return 0
        return extract_config_metrics(ctx, reply)

    async def _introspect(self, ctx: ScrapeContext) -> InfoReport:
        reply = await ctx.execute("INFO", "ALL")
        if isinstance(reply, ErrorReply) or not (isinstance(reply, Text) and reply.raw):
            logger.debug(f"Redis INFO ALL err: {reply}")
            reply = await ctx.execute("INFO")
            if isinstance(reply, ErrorReply):
                raise CommandError("INFO", reply.message)
        if not isinstance(reply, Text):
            raise CommandError("INFO", f"unexpected reply {reply!r}")
        return parse_info(reply.raw)

    async def _cluster_info(self, ctx: ScrapeContext) -> bool:
        mark = len(ctx.sink)
        try:
            reply = await ctx.execute("CLUSTER", "INFO")
            if isinstance(reply, ErrorReply):
                raise CommandError("CLUSTER INFO", reply.message)
            extract_cluster_info_metrics(ctx, as_text(reply, "CLUSTER INFO"))
            return True
        except ExporterError as e:
            del ctx.sink[mark:]
            logger.error(f"Redis CLUSTER INFO err: {e}")
            return False

    async def _run_step(self, ctx: ScrapeContext, step, *args) -> None:
        mark = len(ctx.sink)
        try:
            await step(ctx, *args)
        except Exception as e:
            del ctx.sink[mark:]
            logger.error(f"{step.__name__}() err: {e}")

    async def _run_steps(self, ctx: ScrapeContext, report: InfoReport, role: str) -> None:
        settings = self.settings
        await self._run_step(ctx, extract_latency_metrics, report)

        # checks can be skipped on masters to keep load off them
        if role == ROLE_SLAVE or not settings.skip_checks_for_role_master:
            await self._run_step(ctx, extract_check_key_metrics)
            await self._run_step(ctx, extract_count_keys_metrics)
            await self._run_step(ctx, extract_stream_metrics)
        else:
            logger.info(f"skipping checkKeys metrics, role: {role}")

        await self._run_step(ctx, extract_slowlog_metrics)
        await self._run_step(ctx, extract_key_group_metrics)

        if report.has_section("Sentinel"):
            await self._run_step(ctx, extract_sentinel_metrics)
        if settings.export_client_list:
            await self._run_step(ctx, extract_connected_client_metrics)
        if settings.is_tile38:
            await self._run_step(ctx, extract_tile38_metrics)
        if settings.include_modules_metrics:
            await self._run_step(ctx, extract_modules_metrics)
        if self.scripts:
            await self._run_step(ctx, extract_lua_script_metrics, self.scripts)

    async def discover_cluster_nodes(self) -> List[str]:
        """Target URLs of every node listed by ``CLUSTER NODES`` on this target.

        Raises:
            ExporterError: the target can't be reached or isn't a cluster node
        """
        scheme = urlparse(self.target).scheme or "redis"
        executor = await self._executor_factory(self.target)
        try:
            reply = await executor.execute("CLUSTER", "NODES")
        finally:
            await executor.close()
        if isinstance(reply, ErrorReply):
            raise CommandError("CLUSTER NODES", reply.message)

        targets = []
        for line in as_text(reply, "CLUSTER NODES").splitlines():
            parts = line.split(" ")
            if len(parts) < 2:
                continue
            # <id> <ip:port@cport[,hostname]> <flags> ...
            address = parts[1].split("@", 1)[0]
            if address and not address.startswith(":"):
                targets.append(f"{scheme}://{address}")
        return targets
