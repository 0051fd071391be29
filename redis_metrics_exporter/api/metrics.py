"""Metrics endpoints: the configured target, multi-target scrapes and discovery."""

import logging
from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from redis_metrics_exporter import __version__
from redis_metrics_exporter.core.config import normalize_redis_url
from redis_metrics_exporter.core.errors import ConfigurationError, ExporterError
from redis_metrics_exporter.exporter import RedisExporter
from redis_metrics_exporter.metrics.exposition import render_scrape

logger = logging.getLogger(__name__)

router = APIRouter()


async def _scrape_response(exporter: RedisExporter) -> Response:
    observations = await exporter.scrape()
    body = render_scrape(exporter, observations, __version__)
    return Response(content=body, media_type=CONTENT_TYPE_LATEST)


async def metrics_endpoint(request: Request) -> Response:
    """Scrape the configured target. Mounted at ``settings.metric_path``."""
    return await _scrape_response(request.app.state.exporter)


@router.get("/scrape")
async def scrape_target(request: Request, target: str = Query(default="")):
    """Scrape ``target`` with the exporter's settings (multi-target pattern)."""
    state = request.app.state
    if not target:
        state.metrics.target_scrape_request_errors.inc()
        raise HTTPException(status_code=400, detail="'target' parameter must be specified")

    target = normalize_redis_url(target)
    try:
        parsed = urlparse(target)
        if parsed.scheme == "unix":
            valid = bool(parsed.path)
        else:
            valid = parsed.scheme in ("redis", "rediss") and bool(parsed.hostname)
    except ValueError:
        valid = False
    if not valid:
        state.metrics.target_scrape_request_errors.inc()
        logger.debug(f"invalid target parameter: {target}")
        raise HTTPException(status_code=400, detail=f"Invalid 'target' parameter: {target}")

    exporter = RedisExporter(
        state.settings,
        target=target,
        password=state.password_map.get(target),
        registry=state.registry,
        catalog=state.catalog,
        metrics=state.metrics,
        executor_factory=state.executor_factory,
        scripts=state.scripts,
    )
    return await _scrape_response(exporter)


@router.get("/discover-cluster-nodes")
async def discover_cluster_nodes(request: Request):
    """Prometheus HTTP service discovery document for the configured cluster."""
    try:
        targets = await request.app.state.exporter.discover_cluster_nodes()
    except ExporterError as e:
        logger.error(f"Couldn't discover cluster nodes: {e}")
        raise HTTPException(status_code=500, detail=f"Couldn't discover cluster nodes: {e}")
    return JSONResponse([{"targets": targets, "labels": {}}])


@router.post("/-/reload", response_class=PlainTextResponse)
async def reload_password_file(request: Request):
    """Re-read the password file without restarting."""
    state = request.app.state
    if not state.settings.redis_password_file:
        raise HTTPException(status_code=400, detail="There is no pwd file specified")

    try:
        state.password_map = state.settings.password_map()
    except ConfigurationError as e:
        logger.error(f"Error reloading redis passwords from file: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Reloaded redis passwords from {state.settings.redis_password_file}")
    return "ok"
