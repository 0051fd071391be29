"""Top-level `describe` CLI command: list every metric the exporter knows."""

import json

import click

from redis_metrics_exporter.core.config import settings
from redis_metrics_exporter.exporter import build_catalog, build_registry


@click.command()
@click.option("--as-json", is_flag=True, help="Output as JSON")
def describe(as_json: bool):
    """List metric names, labels and help texts."""
    catalog = build_catalog(build_registry(settings))
    prefix = f"{settings.namespace}_" if settings.namespace else ""

    if as_json:
        payload = [
            {
                "name": prefix + descriptor.name,
                "labels": list(descriptor.label_names),
                "help": descriptor.help,
            }
            for descriptor in catalog.describe()
        ]
        click.echo(json.dumps(payload, indent=2))
        return

    for descriptor in catalog.describe():
        labels = ",".join(descriptor.label_names)
        click.echo(f"{prefix}{descriptor.name}{{{labels}}}  {descriptor.help}")
