"""Top-level `serve` CLI command."""

from typing import Optional

import click

from redis_metrics_exporter.core.config import normalize_redis_url, settings
from redis_metrics_exporter.core.errors import ConfigurationError


@click.command()
@click.option("--host", default=None, help="Listen host (default: REDIS_EXPORTER_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Listen port (default: 9121)")
@click.option("--redis-addr", default=None, help="Target Redis URL")
@click.option("--log-level", default=None, help="Logging level")
def serve(host: Optional[str], port: Optional[int], redis_addr: Optional[str], log_level: Optional[str]):
    """Serve metrics over HTTP."""
    import uvicorn

    from redis_metrics_exporter.api.app import configure_logging, create_app

    overrides = {}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    if redis_addr:
        overrides["redis_addr"] = normalize_redis_url(redis_addr)
    if log_level:
        overrides["log_level"] = log_level
    config = settings.model_copy(update=overrides)

    configure_logging(config)
    try:
        app = create_app(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
