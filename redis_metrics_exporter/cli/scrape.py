"""Top-level `scrape` CLI command: one scrape printed to stdout."""

import asyncio
import logging
import sys
from typing import Optional

import click

from redis_metrics_exporter import __version__
from redis_metrics_exporter.core.config import normalize_redis_url, settings
from redis_metrics_exporter.core.errors import ConfigurationError
from redis_metrics_exporter.exporter import RedisExporter
from redis_metrics_exporter.metrics.exposition import render_scrape


@click.command()
@click.option("--redis-addr", default=None, help="Target Redis URL")
@click.option("--redis-only", is_flag=True, help="Leave out exporter and process metrics")
def scrape(redis_addr: Optional[str], redis_only: bool):
    """Scrape the target once and print the exposition."""
    overrides = {}
    if redis_addr:
        overrides["redis_addr"] = normalize_redis_url(redis_addr)
    if redis_only:
        overrides["redis_metrics_only"] = True
    config = settings.model_copy(update=overrides)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        exporter = RedisExporter(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    observations = asyncio.run(exporter.scrape())
    click.echo(render_scrape(exporter, observations, __version__).decode(), nl=False)

    up = next((o.value for o in observations if o.name == "up"), 0.0)
    if not up:
        sys.exit(1)
