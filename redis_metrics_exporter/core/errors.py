"""Exception taxonomy for the exporter.

Only connection failures (and, during the config fetch, protocol failures)
abort a scrape. Everything else is caught by the step that raised it.
"""


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigurationError(ExporterError):
    """Invalid settings or static tables, raised at startup."""


class ScrapeConnectionError(ExporterError):
    """Could not connect to or authenticate with the target."""


class CommandError(ExporterError):
    """A command could not be completed (I/O failure, timeout)."""

    def __init__(self, command: str, message: str):
        super().__init__(f"{command}: {message}")
        self.command = command


class ProtocolError(ExporterError):
    """A reply did not have the shape the caller expected."""


class ParseWarning(ExporterError):
    """A single malformed status line or field; never leaves the parser."""


class ScanBudgetExceeded(ExporterError):
    """The SCAN iteration cap was reached before the cursor wrapped."""

    def __init__(self, pattern: str, iterations: int):
        super().__init__(f"SCAN for {pattern!r} stopped after {iterations} iterations")
        self.pattern = pattern
        self.iterations = iterations
