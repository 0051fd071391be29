"""CLI interface for the Redis metrics exporter."""

import importlib

import click

# Map command names to their module:attribute for lazy import
_COMMANDS = {
    "serve": "redis_metrics_exporter.cli.serve:serve",
    "scrape": "redis_metrics_exporter.cli.scrape:scrape",
    "describe": "redis_metrics_exporter.cli.describe:describe",
}


class LazyGroup(click.Group):
    """Resolves subcommands on first use so ``--help`` doesn't import the web stack."""

    def list_commands(self, ctx):
        # Keep stable ordering for help output
        return list(_COMMANDS.keys())

    def get_command(self, ctx, name):
        target = _COMMANDS.get(name)
        if not target:
            return None
        module_path, attr = target.split(":", 1)
        mod = importlib.import_module(module_path)
        return getattr(mod, attr)


@click.command(cls=LazyGroup)
def main():
    """Redis metrics exporter CLI."""
    pass


if __name__ == "__main__":
    main()
