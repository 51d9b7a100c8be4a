"""
Configuration Management for Engagement Core
Standalone configuration system with environment variable overrides
"""

import yaml
import logging
import threading
from pathlib import Path
from typing import Dict, Any, Optional, Literal, List
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# ============================================================================
# Core Configuration Classes
# ============================================================================


class APIConfig(BaseSettings):
    """API Server Configuration"""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=8000, description="API port")
    prefix: str = Field(default="/api/v1", description="API prefix")
    debug: bool = Field(default=False, description="Debug mode")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]


class DatabaseConfig(BaseSettings):
    """Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///./engagement_core.db",
        description="Async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL queries")
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max overflow connections")


class LoggingConfig(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file_path: Optional[str] = Field(
        default=None, description="Log file path (console only when unset)"
    )


class CounterSettings(BaseSettings):
    """Transactional counter updater settings"""

    model_config = SettingsConfigDict(env_prefix="COUNTER_")

    max_attempts: int = Field(
        default=3, description="Optimistic transaction attempts before queueing"
    )
    base_delay_seconds: float = Field(
        default=1.0, description="Backoff base; attempt n waits base * 2^n"
    )
    backoff_multiplier: float = Field(
        default=2.0, description="Exponential backoff multiplier"
    )
    jitter: float = Field(
        default=0.0, description="Random extra delay as a fraction of the wait"
    )
    max_delay_seconds: Optional[float] = Field(
        default=None, description="Upper bound for a single backoff wait"
    )

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """At least one attempt is required"""
        if v < 1:
            raise ValueError("max_attempts must be at least 1")
        return v


class FanoutSettings(BaseSettings):
    """Notification fan-out settings"""

    model_config = SettingsConfigDict(env_prefix="FANOUT_")

    chunk_size: int = Field(
        default=500, description="Maximum writes per fan-out transaction"
    )


class ReconciliationSettings(BaseSettings):
    """Repair sweep settings"""

    model_config = SettingsConfigDict(env_prefix="RECONCILE_")

    page_size: int = Field(default=500, description="Records per sweep page")
    sweep_hour_utc: int = Field(default=3, description="Hour of the daily sweep")
    queue_interval_minutes: int = Field(
        default=15, description="Interval between reconciliation queue passes"
    )


class EventSettings(BaseSettings):
    """Change event ingestion settings"""

    model_config = SettingsConfigDict(env_prefix="EVENTS_")

    inline_dispatch: bool = Field(
        default=False, description="Dispatch posted events in-process instead of Celery"
    )
    ledger_enabled: bool = Field(
        default=True, description="Skip events whose id was already processed"
    )


class AuthSettings(BaseSettings):
    """Identity provider integration"""

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    uid_header: str = Field(
        default="X-Auth-Uid", description="Trusted header carrying the caller uid"
    )
    min_password_length: int = Field(default=6, description="Minimum password length")
    bcrypt_rounds: int = Field(default=12, ge=4, le=31, description="bcrypt cost factor")


class VectorIndexSettings(BaseSettings):
    """Search metadata sink (optional)"""

    model_config = SettingsConfigDict(env_prefix="VECTOR_")

    url: Optional[str] = Field(default=None, description="Metadata endpoint base URL")
    api_key: Optional[str] = Field(default=None, description="Bearer token for the endpoint")
    namespace: str = Field(default="videos", description="Index namespace")
    timeout_seconds: float = Field(default=10.0, description="Request timeout")


class CeleryConfig(BaseSettings):
    """Celery Task Queue Configuration"""

    model_config = SettingsConfigDict(env_prefix="CELERY_")

    # Broker Settings
    broker_url: str = Field(
        default="redis://localhost:6379/0",
        description="Celery message broker URL (Redis or RabbitMQ)",
    )
    result_backend: str = Field(
        default="redis://localhost:6379/0",
        description="Task result storage backend URL",
    )

    # Task Serialization
    task_serializer: str = Field(default="json", description="Task serialization format")
    result_serializer: str = Field(
        default="json", description="Result serialization format"
    )
    accept_content: List[str] = Field(
        default=["json"], description="Accepted content types"
    )

    # Worker Settings
    worker_concurrency: int = Field(
        default=4, description="Number of concurrent worker processes"
    )
    worker_prefetch_multiplier: int = Field(
        default=1, description="Tasks to prefetch per worker"
    )
    worker_max_tasks_per_child: int = Field(
        default=1000,
        description="Max tasks before worker restart (memory leak prevention)",
    )

    # Task Execution Settings
    task_time_limit: int = Field(
        default=540, description="Hard task timeout in seconds"
    )
    task_soft_time_limit: int = Field(
        default=480, description="Soft task timeout in seconds"
    )
    task_acks_late: bool = Field(
        default=True, description="Acknowledge tasks after completion (at-least-once)"
    )
    task_reject_on_worker_lost: bool = Field(
        default=True, description="Reject tasks if worker dies"
    )

    # Retry Settings
    task_max_retries: int = Field(
        default=5, description="Maximum redeliveries for a trigger event"
    )
    task_default_retry_delay: int = Field(
        default=30, description="Default delay between redeliveries (seconds)"
    )

    # Queue Settings
    task_default_queue: str = Field(default="default", description="Default task queue name")
    task_routes: dict = Field(
        default={
            "tasks.triggers.*": {"queue": "triggers"},
            "tasks.scheduled.*": {"queue": "maintenance"},
            "tasks.migrations.*": {"queue": "maintenance"},
        },
        description="Task routing configuration",
    )

    # Result Backend Settings
    result_expires: int = Field(
        default=86400, description="Task result expiration time (24 hours)"
    )

    # Beat Scheduler Settings
    beat_scheduler: str = Field(
        default="celery.beat:PersistentScheduler",
        description="Celery Beat scheduler class",
    )
    beat_schedule_filename: str = Field(
        default="celerybeat-schedule", description="Beat schedule database filename"
    )

    # Logging
    worker_hijack_root_logger: bool = Field(
        default=False, description="Don't hijack root logger"
    )
    worker_log_format: str = Field(
        default="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
        description="Worker log format",
    )

    task_compression: Literal["gzip", "bzip2", ""] = Field(
        default="", description="Task compression algorithm"
    )


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Main Application Configuration
    Aggregates all configuration modules with unified access
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize application configuration

        Args:
            config_path: Optional YAML config file path
        """
        self.config_path = config_path or "configs/app.yaml"
        self.yaml_config = self._load_yaml_config()

        self.api = APIConfig()
        self.database = DatabaseConfig()
        self.logging = LoggingConfig()
        self.celery = CeleryConfig()

        self.counters = CounterSettings()
        self.fanout = FanoutSettings()
        self.reconciliation = ReconciliationSettings()
        self.events = EventSettings()
        self.auth = AuthSettings()
        self.vector_index = VectorIndexSettings()

    def _load_yaml_config(self) -> Dict[str, Any]:
        """Load YAML configuration file"""
        config_file = Path(self.config_path)

        if not config_file.exists():
            logger.debug(f"Config file not found: {config_file}, using defaults")
            return {}

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            return {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot notation key"""
        keys = key.split(".")
        value = self.yaml_config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def to_dict(self) -> Dict[str, Any]:
        """Export full configuration as dictionary"""
        return {
            "api": self.api.model_dump(),
            "database": self.database.model_dump(),
            "logging": self.logging.model_dump(),
            "counters": self.counters.model_dump(),
            "fanout": self.fanout.model_dump(),
            "reconciliation": self.reconciliation.model_dump(),
            "events": self.events.model_dump(),
            "auth": self.auth.model_dump(exclude={"bcrypt_rounds"}),
        }

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration summary"""
        return {
            "app": self.yaml_config.get("app", {}),
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "prefix": self.api.prefix,
                "debug": self.api.debug,
            },
            "database": {
                "url": self.database.url,
            },
            "counters": {
                "max_attempts": self.counters.max_attempts,
                "base_delay_seconds": self.counters.base_delay_seconds,
            },
            "fanout": {
                "chunk_size": self.fanout.chunk_size,
            },
            "reconciliation": {
                "page_size": self.reconciliation.page_size,
                "sweep_hour_utc": self.reconciliation.sweep_hour_utc,
            },
            "events": {
                "inline_dispatch": self.events.inline_dispatch,
                "ledger_enabled": self.events.ledger_enabled,
            },
        }


# ============================================================================
# Global Configuration Instance (Singleton)
# ============================================================================

_config: Optional[Config] = None
_config_lock = threading.Lock()


@lru_cache()
def get_config(config_path: Optional[str] = None) -> Config:
    """
    Get or create global configuration instance (Thread-safe singleton)

    Args:
        config_path: Optional path to config file

    Returns:
        Config instance
    """
    global _config

    if _config is None:
        with _config_lock:
            if _config is None:
                _config = Config(config_path)
                logger.info("✅ Configuration initialized")

    return _config


def reload_config(config_path: Optional[str] = None) -> Config:
    """
    Force reload configuration

    Args:
        config_path: Optional new config path

    Returns:
        New Config instance
    """
    global _config

    with _config_lock:
        get_config.cache_clear()
        _config = Config(config_path)
        logger.info("🔄 Configuration reloaded")

    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)"""
    global _config

    with _config_lock:
        get_config.cache_clear()
        _config = None
        logger.info("🗑️ Configuration reset")


# ============================================================================
# Configuration Validation
# ============================================================================


def validate_config(config: Optional[Config] = None) -> Dict[str, Any]:
    """
    Validate configuration

    Args:
        config: Config instance (uses global if None)

    Returns:
        Validation result with errors and warnings
    """
    if config is None:
        config = get_config()

    errors = []
    warnings = []

    if config.logging.file_path:
        log_path = Path(config.logging.file_path)
        if not log_path.parent.exists():
            try:
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Cannot create log directory: {e}")

    if not config.database.url:
        errors.append("Database URL not configured")
    elif "+" not in config.database.url.split("://")[0]:
        errors.append("Database URL must name an async driver (e.g. sqlite+aiosqlite)")

    if config.fanout.chunk_size < 1:
        errors.append("Fan-out chunk size must be positive")

    if config.reconciliation.page_size < 1:
        errors.append("Reconciliation page size must be positive")

    if config.counters.base_delay_seconds == 0:
        warnings.append("Counter backoff delay is zero - retries will not wait")

    if config.events.inline_dispatch:
        warnings.append("Events are dispatched inline - no redelivery on failure")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
    }


# ============================================================================
# Convenience Functions
# ============================================================================


def get_counter_settings() -> CounterSettings:
    """Get counter updater settings (shortcut)"""
    return get_config().counters


def setup_logging(config: Optional[Config] = None) -> None:
    """
    Setup logging based on configuration

    Args:
        config: Config instance (uses global if None)
    """
    import logging.handlers

    if config is None:
        config = get_config()

    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(config.logging.format))
    root_logger.addHandler(console_handler)

    if config.logging.file_path:
        log_path = Path(config.logging.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(config.logging.format))
        root_logger.addHandler(file_handler)

    logger.info(f"📝 Logging configured: level={config.logging.level}")
