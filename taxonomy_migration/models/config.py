"""Configuration models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
import json
import os

from ..exceptions import ConfigurationError

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 1000
DEFAULT_BATCH_SIZE = 50
DEFAULT_LOG_DISPLAY_LIMIT = 50

ENV_PREFIX = "TAXONOMY_MIGRATION_"


class SourceType(str, Enum):
    """Where relationship records are read from."""
    MEMORY = "memory"
    FILE = "file"  # CSV/JSON export of the connection table
    SQL = "sql"  # Direct database connection


class TargetType(str, Enum):
    """Where terms and entities live."""
    MEMORY = "memory"
    WORDPRESS = "wordpress"  # WordPress REST API


def validate_batch_size(value: Any) -> int:
    """
    Coerce and bound-check a batch size.

    Raises:
        ConfigurationError: If the value is not an integer in [1, 1000]
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Batch size must be an integer, got {value!r}")
    try:
        size = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Batch size must be an integer, got {value!r}")
    if isinstance(value, float) and value != size:
        raise ConfigurationError(f"Batch size must be an integer, got {value!r}")
    if not MIN_BATCH_SIZE <= size <= MAX_BATCH_SIZE:
        raise ConfigurationError(
            f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}, got {size}"
        )
    return size


@dataclass
class SourceConfig:
    """Configuration for the relationship source."""
    type: SourceType = SourceType.MEMORY

    # For file sources
    file_path: Optional[str] = None

    # For SQL sources
    database_url: Optional[str] = None
    table_prefix: str = "wp_"

    # For memory sources (fixtures)
    rows: list = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type.value,
            "file_path": self.file_path,
            "database_url": self.database_url,
            "table_prefix": self.table_prefix,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceConfig":
        """Create from dictionary representation."""
        return cls(
            type=SourceType(data.get("type", "memory")),
            file_path=data.get("file_path"),
            database_url=data.get("database_url"),
            table_prefix=data.get("table_prefix", "wp_"),
            rows=list(data.get("rows", [])),
        )


@dataclass
class TargetConfig:
    """Configuration for the term and entity stores."""
    type: TargetType = TargetType.MEMORY

    # For WordPress targets
    base_url: Optional[str] = None
    username: Optional[str] = None
    api_key: Optional[str] = None  # Application password
    lookup_post_types: List[str] = field(default_factory=list)  # Post types related entities may have
    rate_limit: Optional[float] = None  # Requests per second
    max_read_retries: int = 2

    # For memory targets (fixtures)
    fixtures: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation. Credentials are omitted."""
        return {
            "type": self.type.value,
            "base_url": self.base_url,
            "username": self.username,
            "lookup_post_types": self.lookup_post_types,
            "rate_limit": self.rate_limit,
            "max_read_retries": self.max_read_retries,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetConfig":
        """Create from dictionary representation."""
        return cls(
            type=TargetType(data.get("type", "memory")),
            base_url=data.get("base_url"),
            username=data.get("username"),
            api_key=data.get("api_key"),
            lookup_post_types=list(data.get("lookup_post_types", [])),
            rate_limit=data.get("rate_limit"),
            max_read_retries=int(data.get("max_read_retries", 2)),
            fixtures=dict(data.get("fixtures", {})),
        )


@dataclass
class MigrationConfig:
    """Configuration for a migration."""
    source_post_type: str
    target_taxonomy: str
    connection_type: str

    # Execution options
    batch_size: int = DEFAULT_BATCH_SIZE
    dry_run: bool = False
    batch_delay: float = 0.5  # Seconds between batches in the local driver
    request_timeout: float = 30.0  # Per-call timeout for remote stores

    # Display
    log_display_limit: int = DEFAULT_LOG_DISPLAY_LIMIT

    # Collaborators
    source: SourceConfig = field(default_factory=SourceConfig)
    target: TargetConfig = field(default_factory=TargetConfig)

    # Persistence of status/progress/log
    option_store_path: Optional[str] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigurationError: On the first invalid setting
        """
        for name in ("source_post_type", "target_taxonomy", "connection_type"):
            if not getattr(self, name):
                raise ConfigurationError(f"'{name}' is required")
        self.batch_size = validate_batch_size(self.batch_size)
        if self.request_timeout <= 0:
            raise ConfigurationError("'request_timeout' must be positive")
        if self.batch_delay < 0:
            raise ConfigurationError("'batch_delay' must not be negative")
        if self.log_display_limit < 1:
            raise ConfigurationError("'log_display_limit' must be at least 1")
        if self.source.type == SourceType.FILE and not self.source.file_path:
            raise ConfigurationError("File sources require 'file_path'")
        if self.source.type == SourceType.SQL and not self.source.database_url:
            raise ConfigurationError("SQL sources require 'database_url'")
        if self.target.type == TargetType.WORDPRESS and not self.target.base_url:
            raise ConfigurationError("WordPress targets require 'base_url'")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_post_type": self.source_post_type,
            "target_taxonomy": self.target_taxonomy,
            "connection_type": self.connection_type,
            "batch_size": self.batch_size,
            "dry_run": self.dry_run,
            "batch_delay": self.batch_delay,
            "request_timeout": self.request_timeout,
            "log_display_limit": self.log_display_limit,
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "option_store_path": self.option_store_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            source_post_type=data.get("source_post_type", ""),
            target_taxonomy=data.get("target_taxonomy", ""),
            connection_type=data.get("connection_type", ""),
            batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
            dry_run=bool(data.get("dry_run", False)),
            batch_delay=float(data.get("batch_delay", 0.5)),
            request_timeout=float(data.get("request_timeout", 30.0)),
            log_display_limit=int(data.get("log_display_limit", DEFAULT_LOG_DISPLAY_LIMIT)),
            source=SourceConfig.from_dict(data.get("source", {})),
            target=TargetConfig.from_dict(data.get("target", {})),
            option_store_path=data.get("option_store_path"),
        )

    @classmethod
    def from_json_file(cls, path: str, env: Optional[Dict[str, str]] = None) -> "MigrationConfig":
        """Load from a JSON file, then apply environment overrides."""
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not read config file {path}: {e}")
        return cls.from_dict(apply_env_overrides(data, env))

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "MigrationConfig":
        """Build entirely from environment variables."""
        return cls.from_dict(apply_env_overrides({}, env))


def apply_env_overrides(data: Dict[str, Any], env: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Overlay TAXONOMY_MIGRATION_* and WordPress credential variables.

    Args:
        data: Config dictionary (not modified)
        env: Environment mapping, defaults to os.environ

    Returns:
        New config dictionary with overrides applied
    """
    env = os.environ if env is None else env
    merged = dict(data)
    merged["source"] = dict(data.get("source", {}))
    merged["target"] = dict(data.get("target", {}))

    simple = {
        "SOURCE_POST_TYPE": "source_post_type",
        "TARGET_TAXONOMY": "target_taxonomy",
        "CONNECTION_TYPE": "connection_type",
        "BATCH_SIZE": "batch_size",
        "REQUEST_TIMEOUT": "request_timeout",
        "OPTION_STORE_PATH": "option_store_path",
    }
    for suffix, key in simple.items():
        value = env.get(ENV_PREFIX + suffix)
        if value:
            merged[key] = value

    if env.get(ENV_PREFIX + "DRY_RUN"):
        merged["dry_run"] = env[ENV_PREFIX + "DRY_RUN"].lower() in ("1", "true", "yes")

    if env.get(ENV_PREFIX + "DATABASE_URL"):
        merged["source"]["type"] = SourceType.SQL.value
        merged["source"]["database_url"] = env[ENV_PREFIX + "DATABASE_URL"]

    if env.get("WP_BASE_URL"):
        merged["target"]["type"] = TargetType.WORDPRESS.value
        merged["target"]["base_url"] = env["WP_BASE_URL"]
    if env.get("WP_USERNAME"):
        merged["target"]["username"] = env["WP_USERNAME"]
    if env.get("WP_APP_PASSWORD"):
        merged["target"]["api_key"] = env["WP_APP_PASSWORD"]

    if "request_timeout" in merged:
        merged["request_timeout"] = float(merged["request_timeout"])
    return merged
