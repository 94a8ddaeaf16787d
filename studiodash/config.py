"""
StudioDash Configuration Module
===============================

Configuration management for the StudioDash back-end. Settings are plain
dataclasses grouped by concern (database, cache, retry, logging, modules) and
loaded from several sources in priority order.

Author: StudioDash Development Team
License: MIT
"""

import os
import json
import logging
import logging.handlers
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Tuple
from pathlib import Path
from enum import Enum

import yaml
from dotenv import load_dotenv, find_dotenv


# ==================== ENUMS AND CONSTANTS ====================

class Environment(Enum):
    """Supported environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# Configuration file patterns
CONFIG_FILE_PATTERNS = [
    "studiodash.yml", "studiodash.yaml",
    "studiodash.json",
]

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path.cwd(),
    Path.cwd() / "config",
    Path.home() / ".studiodash",
]


# ==================== VALIDATION UTILITIES ====================

class ValidationError(Exception):
    """Configuration validation error."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        self.message = message
        super().__init__(f"Validation error for field '{field}': {message}")


class ConfigValidator:
    """Configuration validation utilities."""

    @staticmethod
    def validate_positive_int(value: int, field_name: str) -> None:
        """Validate positive integer."""
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(field_name, value, "Must be a positive integer")

    @staticmethod
    def validate_non_negative_int(value: int, field_name: str) -> None:
        """Validate non-negative integer."""
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(field_name, value, "Must be a non-negative integer")

    @staticmethod
    def validate_positive_number(value: float, field_name: str) -> None:
        """Validate positive int or float."""
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValidationError(field_name, value, "Must be a positive number")

    @staticmethod
    def validate_database_url(url: str, field_name: str = "url") -> None:
        """Validate an SQLAlchemy database URL."""
        if not url or "://" not in url:
            raise ValidationError(field_name, url, "Must be a database URL such as 'sqlite:///studiodash.db'")


# ==================== DATABASE SETTINGS ====================

@dataclass
class DatabaseSettings:
    """Database connection and pooling settings."""

    url: str = "sqlite:///studiodash.db"

    # Pool settings (ignored for SQLite)
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 5
    pool_recycle: int = 3600

    echo_queries: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and (":memory:" in self.url or self.url.rstrip("/") == "sqlite:")

    def validate(self) -> None:
        """Validate database settings."""
        ConfigValidator.validate_database_url(self.url, "url")
        ConfigValidator.validate_positive_int(self.pool_size, "pool_size")
        ConfigValidator.validate_non_negative_int(self.max_overflow, "max_overflow")
        ConfigValidator.validate_positive_int(self.pool_timeout, "pool_timeout")
        ConfigValidator.validate_positive_int(self.pool_recycle, "pool_recycle")


# ==================== CACHE SETTINGS ====================

@dataclass
class CacheSettings:
    """In-memory cache settings."""

    enabled: bool = True
    default_timeout: int = 60  # seconds, MemoryCache default
    repository_timeout: int = 300  # 5 minutes for cached repositories
    single_flight: bool = False

    def validate(self) -> None:
        """Validate cache settings."""
        ConfigValidator.validate_positive_int(self.default_timeout, "default_timeout")
        ConfigValidator.validate_positive_int(self.repository_timeout, "repository_timeout")


# ==================== RETRY SETTINGS ====================

@dataclass
class RetrySettings:
    """Retry-with-backoff settings for database operations."""

    max_retries: int = 3
    initial_delay: float = 0.1  # seconds, doubled on every attempt

    def validate(self) -> None:
        """Validate retry settings."""
        ConfigValidator.validate_positive_int(self.max_retries, "max_retries")
        ConfigValidator.validate_positive_number(self.initial_delay, "initial_delay")


# ==================== LOGGING SETTINGS ====================

@dataclass
class LoggingSettings:
    """Logging configuration settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # Console logging
    console_enabled: bool = True

    # File logging
    file_enabled: bool = False
    file_path: str = "logs/studiodash.log"
    file_max_size: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5

    # Logger-specific levels
    logger_levels: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate logging settings."""
        if self.file_enabled:
            ConfigValidator.validate_positive_int(self.file_max_size, "file_max_size")
            ConfigValidator.validate_positive_int(self.file_backup_count, "file_backup_count")

        valid_levels = {level.value for level in LogLevel}
        for logger_name, level in self.logger_levels.items():
            if level not in valid_levels:
                raise ValidationError(f"logger_levels.{logger_name}", level, f"Must be one of: {sorted(valid_levels)}")


# ==================== MODULE SETTINGS ====================

@dataclass
class ModuleSettings:
    """Feature module settings."""

    # Module ids switched off at startup
    disabled: List[str] = field(default_factory=list)

    def validate(self) -> None:
        """Validate module settings."""
        for i, module_id in enumerate(self.disabled):
            if not isinstance(module_id, str) or not module_id.strip():
                raise ValidationError(f"disabled[{i}]", module_id, "Module ids must be non-empty strings")


# ==================== MAIN APP SETTINGS ====================

@dataclass
class AppSettings:
    """Main application settings container."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    app_name: str = "StudioDash"

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    modules: ModuleSettings = field(default_factory=ModuleSettings)

    def validate_configuration(self) -> List[ValidationError]:
        """Validate all configuration settings and return list of errors."""
        errors = []

        components = (
            ("database", self.database),
            ("cache", self.cache),
            ("retry", self.retry),
            ("logging", self.logging),
            ("modules", self.modules),
        )
        for name, component in components:
            try:
                component.validate()
            except ValidationError as e:
                errors.append(ValidationError(f"{name}.{e.field}", e.value, e.message))

        if self.environment == Environment.PRODUCTION:
            if self.debug:
                errors.append(ValidationError("debug", True, "Debug mode should be disabled in production"))
            if self.database.is_memory:
                errors.append(ValidationError("database.url", self.database.url,
                                              "In-memory database is not allowed in production"))

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate_configuration()) == 0

    def get_validation_summary(self) -> str:
        """Get a summary of validation results."""
        errors = self.validate_configuration()

        if not errors:
            return "Configuration is valid"

        summary = f"Configuration has {len(errors)} error(s):\n"
        for i, error in enumerate(errors, 1):
            summary += f"  {i}. {error}\n"

        return summary


# ==================== CONFIGURATION LOADER ====================

class ConfigurationLoader:
    """Loads configuration from multiple sources with priority order."""

    # env var -> (path..., converter)
    ENV_MAPPINGS: Dict[str, Tuple[Any, ...]] = {
        "STUDIODASH_ENV": ("environment", str),
        "STUDIODASH_DEBUG": ("debug", bool),
        "DATABASE_URL": ("database", "url", str),
        "DATABASE_POOL_SIZE": ("database", "pool_size", int),
        "DATABASE_POOL_TIMEOUT": ("database", "pool_timeout", int),
        "CACHE_ENABLED": ("cache", "enabled", bool),
        "CACHE_DEFAULT_TTL": ("cache", "default_timeout", int),
        "CACHE_REPOSITORY_TTL": ("cache", "repository_timeout", int),
        "CACHE_SINGLE_FLIGHT": ("cache", "single_flight", bool),
        "DB_MAX_RETRIES": ("retry", "max_retries", int),
        "DB_RETRY_INITIAL_DELAY": ("retry", "initial_delay", float),
        "LOG_LEVEL": ("logging", "level", str),
        "LOG_FILE": ("logging", "file_path", str),
        "STUDIODASH_DISABLED_MODULES": ("modules", "disabled", list),
    }

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def load_configuration(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
    ) -> AppSettings:
        """
        Load configuration from multiple sources in priority order:
        1. Environment variables (highest priority)
        2. Configuration file (YAML/JSON)
        3. .env file (feeds the environment variables)
        4. Default values per environment (lowest priority)
        """
        env_path = env_file or find_dotenv(usecwd=True)
        if env_path and Path(env_path).exists():
            load_dotenv(env_path, override=False)
            self.logger.info(f"Loaded environment file: {env_path}")

        config_data = self._get_default_config()

        config_file_data = self._load_config_file(config_file)
        if config_file_data:
            config_data = self._deep_merge(config_data, config_file_data)
            self.logger.info("Loaded configuration file")

        env_data = self._load_from_env_vars()
        if env_data:
            config_data = self._deep_merge(config_data, env_data)
            self.logger.info("Loaded environment variables")

        return self._create_app_settings(config_data)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration based on environment."""
        env = Environment(os.getenv("STUDIODASH_ENV", Environment.DEVELOPMENT.value))

        if env == Environment.TESTING:
            return {
                "environment": "testing",
                "database": {"url": "sqlite:///:memory:"},
                "retry": {"initial_delay": 0.01},
                "logging": {"level": "WARNING", "console_enabled": False},
            }
        if env == Environment.PRODUCTION:
            return {
                "environment": "production",
                "debug": False,
                "database": {"url": "postgresql://localhost/studiodash", "pool_size": 10},
                "logging": {"level": "WARNING", "file_enabled": True,
                            "file_path": "/var/log/studiodash/production.log"},
            }
        return {
            "environment": "development",
            "debug": True,
            "database": {"url": "sqlite:///studiodash_dev.db"},
            "logging": {"level": "DEBUG"},
        }

    def _find_config_file(self, config_file: Optional[str] = None) -> Optional[Path]:
        """Find configuration file in standard locations."""
        if config_file:
            path = Path(config_file)
            if path.exists():
                return path
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        for search_path in DEFAULT_CONFIG_PATHS:
            for pattern in CONFIG_FILE_PATTERNS:
                config_path = search_path / pattern
                if config_path.exists():
                    return config_path

        return None

    def _load_config_file(self, config_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Load configuration from YAML or JSON file."""
        config_path = self._find_config_file(config_file)

        if not config_path:
            return None

        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ('.yml', '.yaml'):
                return yaml.safe_load(f) or {}
            if config_path.suffix.lower() == '.json':
                return json.load(f)

        self.logger.warning(f"Unsupported config file format: {config_path}")
        return None

    def _load_from_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        for env_var, mapping in self.ENV_MAPPINGS.items():
            raw = os.getenv(env_var)
            if raw is None:
                continue

            *path, converter = mapping
            if converter is bool:
                value = raw.lower() in ('true', '1', 'yes', 'on')
            elif converter is list:
                value = [item.strip() for item in raw.split(",") if item.strip()]
            else:
                try:
                    value = converter(raw)
                except ValueError:
                    self.logger.warning(f"Invalid value for {env_var}: {raw}")
                    continue

            self._set_nested_value(config, tuple(path[:-1]), path[-1], value)

        if os.getenv("LOG_FILE"):
            self._set_nested_value(config, ("logging",), "file_enabled", True)

        return config

    def _set_nested_value(self, config: Dict[str, Any], path: Tuple[str, ...], key: str, value: Any) -> None:
        """Set a nested configuration value."""
        current = config

        for part in path:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[key] = value

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_app_settings(self, config_data: Dict[str, Any]) -> AppSettings:
        """Create AppSettings object from configuration dictionary."""
        config_data = dict(config_data)
        try:
            if "environment" in config_data:
                config_data["environment"] = Environment(config_data["environment"])

            logging_data = dict(config_data.pop("logging", {}))
            if "level" in logging_data:
                logging_data["level"] = LogLevel(str(logging_data["level"]).upper())

            return AppSettings(
                database=DatabaseSettings(**config_data.pop("database", {})),
                cache=CacheSettings(**config_data.pop("cache", {})),
                retry=RetrySettings(**config_data.pop("retry", {})),
                logging=LoggingSettings(**logging_data),
                modules=ModuleSettings(**config_data.pop("modules", {})),
                **config_data
            )
        except (TypeError, ValueError) as e:
            self.logger.error(f"Error creating AppSettings: {e}")
            raise ValueError(f"Invalid configuration data: {e}") from e


# ==================== CONFIGURATION MANAGER ====================

class ConfigurationManager:
    """Process-wide configuration holder."""

    _instance: Optional['ConfigurationManager'] = None
    _config: Optional[AppSettings] = None

    def __new__(cls) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.loader = ConfigurationLoader()

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded configuration (used by tests)."""
        cls._instance = None
        cls._config = None

    def load_config(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
        validate: bool = True
    ) -> AppSettings:
        """Load and validate configuration."""
        config = self.loader.load_configuration(config_file, env_file)

        if validate:
            errors = config.validate_configuration()
            if errors:
                error_messages = [str(error) for error in errors]
                self.logger.error("Configuration validation failed")
                raise ValueError("Configuration validation failed:\n" + "\n".join(error_messages))

        type(self)._config = config
        self.logger.info(f"Configuration loaded for environment: {config.environment.value}")
        return config

    def get_config(self) -> AppSettings:
        """Get the current configuration, loading it on first use."""
        if self._config is None:
            return self.load_config()
        return self._config

    def to_dict(self) -> Dict[str, Any]:
        """Current configuration as plain data."""
        config = self.get_config()
        data = asdict(config)
        data["environment"] = config.environment.value
        data["logging"]["level"] = config.logging.level.value
        return data

    def get_config_summary(self) -> str:
        """Get a summary of current configuration."""
        config = self.get_config()

        summary = f"""
StudioDash Configuration Summary
================================
Environment: {config.environment.value}
Debug Mode: {config.debug}

Database: {config.database.url}
Cache: {'enabled' if config.cache.enabled else 'disabled'} (repository TTL {config.cache.repository_timeout}s, single-flight {'on' if config.cache.single_flight else 'off'})
Retry: {config.retry.max_retries} attempts, initial delay {config.retry.initial_delay}s
Log Level: {config.logging.level.value}
Disabled Modules: {', '.join(config.modules.disabled) or 'none'}

Validation Status: {config.get_validation_summary()}
"""
        return summary.strip()


def get_settings() -> AppSettings:
    """Shortcut for ``ConfigurationManager().get_config()``."""
    return ConfigurationManager().get_config()


# ==================== LOGGING SETUP ====================

def setup_logging(settings: LoggingSettings) -> None:
    """
    Configure the root logger from logging settings.

    Args:
        settings: Logging configuration
    """
    root = logging.getLogger()
    root.setLevel(settings.level.value)

    for handler in list(root.handlers):
        if getattr(handler, "_studiodash", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(settings.format, settings.date_format)
    handlers: List[logging.Handler] = []

    if settings.console_enabled:
        handlers.append(logging.StreamHandler())

    if settings.file_enabled:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.file_max_size,
            backupCount=settings.file_backup_count,
            encoding="utf-8",
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._studiodash = True
        root.addHandler(handler)

    for logger_name, level in settings.logger_levels.items():
        logging.getLogger(logger_name).setLevel(level)
