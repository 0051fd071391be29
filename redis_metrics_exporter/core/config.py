"""Configuration management using Pydantic Settings."""

import json
import re
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from redis_metrics_exporter.core.errors import ConfigurationError

ENV_FILE_OPT: str | None = None

# Only load .env if it exists (for local development)
_env_path = Path(".env")
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)
    ENV_FILE_OPT = str(_env_path)

# Redis' built-in value of the `databases` config
DEFAULT_DATABASE_COUNT = 16

_DB_SELECTOR = re.compile(r"^(?:db)?(\d+|\*)$")


class KeyCheck(BaseModel):
    """A key (or glob pattern) to inspect in one database."""

    db: int = Field(default=0, ge=0, description="Database number")
    pattern: str = Field(..., min_length=1, description="Exact key name or SCAN MATCH pattern")

    model_config = ConfigDict(frozen=True)


class KeyGroupRule(BaseModel):
    """Classifies keys matching a pattern into a bounded number of groups.

    Example:
        KeyGroupRule(database_selector=None, key_pattern="session:*", max_distinct_groups=100)
    """

    database_selector: Optional[int] = Field(
        default=0,
        ge=0,
        description="Database the rule applies to. None applies it to every database.",
    )
    key_pattern: str = Field(..., min_length=1, description="SCAN MATCH glob pattern")
    max_distinct_groups: int = Field(
        default=100,
        gt=0,
        description="Group labels emitted per database before keys fold into 'overflow'.",
    )

    model_config = ConfigDict(frozen=True)

    def applies_to(self, db: int) -> bool:
        return self.database_selector is None or self.database_selector == db


def _parse_selector_items(arg: str, setting: str) -> List[tuple]:
    """Split ``db=pattern`` / ``dbN:pattern`` / ``pattern`` items of a comma-separated list.

    Returns (selector, pattern) tuples where selector is a digit string or ``*``.
    """
    items = []
    for item in arg.split(","):
        item = item.strip()
        if not item:
            continue

        selector, pattern = "0", item
        if "=" in item:
            raw_selector, pattern = item.split("=", 1)
            m = _DB_SELECTOR.match(raw_selector.strip())
            if not m:
                raise ConfigurationError(f"{setting}: invalid database selector in {item!r}")
            selector = m.group(1)
        else:
            head, sep, rest = item.partition(":")
            m = _DB_SELECTOR.match(head)
            if sep and rest and m:
                selector, pattern = m.group(1), rest

        pattern = pattern.strip()
        if not pattern:
            raise ConfigurationError(f"{setting}: empty key pattern in {item!r}")
        items.append((selector, pattern))
    return items


def parse_key_arg(arg: str, setting: str = "keys") -> List[KeyCheck]:
    """Parse a comma-separated list of ``[dbN=|dbN:]pattern`` entries.

    Entries without a database selector apply to database 0.
    """
    checks = []
    for selector, pattern in _parse_selector_items(arg, setting):
        if selector == "*":
            raise ConfigurationError(f"{setting}: '*' database selector is only valid for key groups")
        checks.append(KeyCheck(db=int(selector), pattern=pattern))
    return checks


def parse_key_group_arg(arg: str, max_distinct_groups: int) -> List[KeyGroupRule]:
    """Parse key group rules; a ``*`` selector applies the rule to every database."""
    return [
        KeyGroupRule(
            database_selector=None if selector == "*" else int(selector),
            key_pattern=pattern,
            max_distinct_groups=max_distinct_groups,
        )
        for selector, pattern in _parse_selector_items(arg, "check_key_groups")
    ]


def load_password_map(path: str) -> Dict[str, str]:
    """Load a JSON object mapping target URLs to passwords."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"couldn't load password file {path}: {e}") from e
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ConfigurationError(f"password file {path} must be a JSON object of strings")
    return data


def normalize_redis_url(url: str) -> str:
    """Accept valkey:// and valkeys:// schemes and bare host:port addresses."""
    if url.startswith("valkey://"):
        return "redis://" + url[len("valkey://") :]
    if url.startswith("valkeys://"):
        return "rediss://" + url[len("valkeys://") :]
    if url and "://" not in url:
        return f"redis://{url}"
    return url


class ExporterSettings(BaseSettings):
    """Exporter configuration.

    Loads settings from ``REDIS_EXPORTER_*`` environment variables. In local
    development these can be provided via a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_EXPORTER_",
        env_file=ENV_FILE_OPT,
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = "Redis Metrics Exporter"
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Web
    host: str = Field(default="0.0.0.0", description="Listen host")
    port: int = Field(default=9121, description="Listen port")
    metric_path: str = Field(default="/metrics", description="Path under which to expose metrics")
    basic_auth_username: Optional[str] = Field(default=None, description="HTTP basic auth user")
    basic_auth_password: Optional[SecretStr] = Field(
        default=None, description="HTTP basic auth password"
    )

    # Target
    redis_addr: str = Field(default="redis://localhost:6379", description="Target Redis URL")
    redis_user: Optional[str] = Field(default=None, description="User name for ACL auth")
    redis_password: Optional[SecretStr] = Field(default=None, description="Password")
    redis_password_file: Optional[str] = Field(
        default=None, description="JSON file mapping target URLs to passwords"
    )
    connection_timeout: float = Field(
        default=15.0, gt=0, description="Connect and command timeout in seconds"
    )
    namespace: str = Field(default="redis", description="Namespace prefix of exported metrics")
    config_command: str = Field(
        default="CONFIG", description="Name of the CONFIG command; '-' skips config metrics"
    )

    # TLS
    tls_client_cert_file: Optional[str] = Field(default=None, description="Client certificate")
    tls_client_key_file: Optional[str] = Field(default=None, description="Client key")
    tls_ca_cert_file: Optional[str] = Field(default=None, description="CA certificate")
    skip_tls_verification: bool = Field(default=False, description="Skip server cert check")

    # Key and stream checks
    check_keys: str = Field(default="", description="Key patterns to check, found via SCAN")
    check_single_keys: str = Field(default="", description="Exact keys to check")
    check_streams: str = Field(default="", description="Stream patterns to check")
    check_single_streams: str = Field(default="", description="Exact streams to check")
    count_keys: str = Field(default="", description="Patterns whose matches are counted")
    check_key_groups: str = Field(default="", description="Key group patterns")
    check_keys_batch_size: int = Field(default=1000, gt=0, description="SCAN COUNT hint")
    max_distinct_key_groups: int = Field(
        default=100, gt=0, description="Distinct key groups per database"
    )
    max_scan_iterations: int = Field(
        default=10000, gt=0, description="SCAN calls per pattern before giving up"
    )
    streams_exclude_consumer_metrics: bool = Field(default=False)
    disable_exporting_key_values: bool = Field(default=False)
    script: str = Field(default="", description="Comma-separated Lua script paths")

    # Feature toggles
    include_config_metrics: bool = Field(default=False)
    redact_config_metrics: bool = Field(default=True)
    include_modules_metrics: bool = Field(default=False)
    include_system_metrics: bool = Field(default=False)
    include_metrics_for_empty_databases: bool = Field(default=True)
    exclude_latency_histogram_metrics: bool = Field(default=False)
    skip_checks_for_role_master: bool = Field(default=False)
    is_cluster: bool = Field(default=False)
    is_tile38: bool = Field(default=False)
    export_client_list: bool = Field(default=False)
    export_client_port: bool = Field(default=False)
    ping_on_connect: bool = Field(default=False)
    set_client_name: bool = Field(default=True)
    redis_metrics_only: bool = Field(default=False)

    @field_validator("redis_addr")
    @classmethod
    def _normalize_addr(cls, v: str) -> str:
        return normalize_redis_url(v.strip())

    @field_validator("metric_path")
    @classmethod
    def _metric_path_absolute(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("metric_path must start with '/'")
        return v

    def key_checks(self) -> List[KeyCheck]:
        return parse_key_arg(self.check_keys, "check_keys")

    def single_key_checks(self) -> List[KeyCheck]:
        return parse_key_arg(self.check_single_keys, "check_single_keys")

    def stream_checks(self) -> List[KeyCheck]:
        return parse_key_arg(self.check_streams, "check_streams")

    def single_stream_checks(self) -> List[KeyCheck]:
        return parse_key_arg(self.check_single_streams, "check_single_streams")

    def count_key_checks(self) -> List[KeyCheck]:
        return parse_key_arg(self.count_keys, "count_keys")

    def key_group_rules(self) -> List[KeyGroupRule]:
        return parse_key_group_arg(self.check_key_groups, self.max_distinct_key_groups)

    def validate_key_options(self) -> None:
        """Parse every key option once so bad input fails at startup."""
        self.key_checks()
        self.single_key_checks()
        self.stream_checks()
        self.single_stream_checks()
        self.count_key_checks()
        self.key_group_rules()

    def load_scripts(self) -> Dict[str, bytes]:
        """Read the configured Lua scripts, keyed by file path."""
        scripts = {}
        for path in (p.strip() for p in self.script.split(",")):
            if not path:
                continue
            try:
                scripts[path] = Path(path).read_bytes()
            except OSError as e:
                raise ConfigurationError(f"couldn't read script {path}: {e}") from e
        return scripts

    def password_map(self) -> Dict[str, str]:
        if not self.redis_password_file:
            return {}
        return load_password_map(self.redis_password_file)


# Global settings instance
settings = ExporterSettings()
