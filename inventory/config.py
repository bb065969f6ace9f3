"""
Configuration Management

Immutable configuration for the inventory API. Settings are loaded once
from an optional .config.json file, overridden by INVENTORY_* environment
variables, and injected into the application and its services.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(".config.json")


class Environment(Enum):
    """Supported environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class DatabaseConfig:
    """Document store connection settings"""
    uri: str = "mongodb://localhost:27017"
    name: str = "inventory"
    timeout_ms: int = 5000


@dataclass(frozen=True)
class ApiServiceConfig:
    """Behaviour switches of the inventory API"""
    # Refuses every mutating endpoint when set
    read_only: bool = False
    resource_file_path: Path = field(default_factory=lambda: Path("resources"))
    lms_template: str = "templates/template_lms.xlsm"

    @property
    def lms_template_path(self) -> Path:
        return self.resource_file_path / self.lms_template


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class WebConfig:
    """Web interface configuration"""
    host: str = "0.0.0.0"
    port: int = 11000
    log_level: str = "info"
    cors_origins: Tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class Configuration:
    """Root configuration object handed to create_app()"""
    environment: Environment = Environment.DEVELOPMENT
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    api_service: ApiServiceConfig = field(default_factory=ApiServiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _read_json_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.info(f"No configuration file at {path}, using defaults")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    # Keys starting with an underscore are comments
    return {k: v for k, v in data.items() if not k.startswith("_")}


def _get_value(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """
    Walk nested configuration keys

    Args:
        data: Parsed configuration file
        *keys: Path of keys, e.g. ('database', 'uri')
        default: Value returned when any key is missing

    Returns:
        The configured value or the default
    """
    value: Any = data
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            return default
        value = value[key]
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}")
        return default


def load_config(path: Optional[Path] = None) -> Configuration:
    """
    Build the configuration from defaults, the JSON file and the environment

    Environment variables win over the file, the file wins over defaults.
    """
    data = _read_json_config(Path(path) if path else DEFAULT_CONFIG_FILE)

    env_mode = os.getenv("INVENTORY_ENVIRONMENT") or _get_value(data, "environment", "mode", default="development")
    try:
        environment = Environment(env_mode)
    except ValueError:
        logger.warning(f"Unknown environment {env_mode!r}, falling back to development")
        environment = Environment.DEVELOPMENT

    database = DatabaseConfig(
        uri=os.getenv("INVENTORY_MONGO_URI") or _get_value(data, "database", "uri", default=DatabaseConfig.uri),
        name=os.getenv("INVENTORY_MONGO_DB") or _get_value(data, "database", "name", default=DatabaseConfig.name),
        timeout_ms=_env_int(
            "INVENTORY_MONGO_TIMEOUT_MS",
            int(_get_value(data, "database", "timeout_ms", default=DatabaseConfig.timeout_ms)),
        ),
    )

    api_service = ApiServiceConfig(
        read_only=_env_bool(
            "INVENTORY_READ_ONLY",
            bool(_get_value(data, "api_service", "read_only", default=False)),
        ),
        resource_file_path=Path(
            os.getenv("INVENTORY_RESOURCE_FILE_PATH")
            or _get_value(data, "api_service", "resource_file_path", default="resources")
        ),
        lms_template=_get_value(data, "api_service", "lms_template", default=ApiServiceConfig.lms_template),
    )

    level_name = (os.getenv("INVENTORY_LOG_LEVEL") or _get_value(data, "logging", "level", default="INFO")).upper()
    try:
        level = LogLevel(level_name)
    except ValueError:
        logger.warning(f"Unknown log level {level_name!r}, using INFO")
        level = LogLevel.INFO
    logging_config = LoggingConfig(
        level=level,
        format=_get_value(data, "logging", "format", default=LoggingConfig.format),
        date_format=_get_value(data, "logging", "date_format", default=LoggingConfig.date_format),
    )

    origins: List[str] = _get_value(data, "web", "cors_origins", default=["*"])
    web = WebConfig(
        host=os.getenv("INVENTORY_HOST") or _get_value(data, "web", "host", default=WebConfig.host),
        port=_env_int("INVENTORY_PORT", int(_get_value(data, "web", "port", default=WebConfig.port))),
        log_level=_get_value(data, "web", "log_level", default=WebConfig.log_level),
        cors_origins=tuple(origins),
    )

    return Configuration(
        environment=environment,
        database=database,
        api_service=api_service,
        logging=logging_config,
        web=web,
    )
