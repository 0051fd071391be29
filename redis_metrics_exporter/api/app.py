"""FastAPI application exposing the exporter over HTTP."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI

from redis_metrics_exporter import __version__
from redis_metrics_exporter.api.auth import require_basic_auth
from redis_metrics_exporter.api.health import router as health_router
from redis_metrics_exporter.api.metrics import metrics_endpoint
from redis_metrics_exporter.api.metrics import router as metrics_router
from redis_metrics_exporter.api.middleware import setup_middleware
from redis_metrics_exporter.core.config import ExporterSettings, settings as default_settings
from redis_metrics_exporter.core.executor import mask_redis_url
from redis_metrics_exporter.exporter import (
    ExecutorFactory,
    ExporterMetrics,
    RedisExporter,
    build_catalog,
    build_registry,
)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

logger = logging.getLogger(__name__)


def configure_logging(settings: ExporterSettings) -> None:
    level = "DEBUG" if settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    settings = app.state.settings
    logger.info(f"Starting up {settings.app_name} {__version__}...")
    logger.info(f"Redis target: {mask_redis_url(settings.redis_addr)}")
    logger.info(f"Providing metrics at {settings.host}:{settings.port}{settings.metric_path}")
    yield
    logger.info("Shutting down exporter")


def create_app(
    settings: Optional[ExporterSettings] = None,
    executor_factory: Optional[ExecutorFactory] = None,
) -> FastAPI:
    """Build the app; startup-time configuration errors are raised here."""
    settings = settings or default_settings
    registry = build_registry(settings)
    catalog = build_catalog(registry)
    metrics = ExporterMetrics(settings.namespace)
    scripts = settings.load_scripts()

    app = FastAPI(
        title=settings.app_name,
        description="Prometheus exporter for Redis metrics",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.catalog = catalog
    app.state.metrics = metrics
    app.state.scripts = scripts
    app.state.executor_factory = executor_factory
    app.state.password_map = settings.password_map()
    app.state.exporter = RedisExporter(
        settings,
        password=app.state.password_map.get(settings.redis_addr),
        registry=registry,
        catalog=catalog,
        metrics=metrics,
        executor_factory=executor_factory,
        scripts=scripts,
    )

    setup_middleware(app)

    auth = [Depends(require_basic_auth)]
    app.include_router(health_router, dependencies=auth, tags=["Health"])
    app.add_api_route(
        settings.metric_path,
        metrics_endpoint,
        methods=["GET"],
        dependencies=auth,
        tags=["Metrics"],
    )
    app.include_router(metrics_router, dependencies=auth, tags=["Metrics"])
    return app
