"""
Centralized configuration management for the Care Pathway Service
"""

import os
import logging
import logging.handlers
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from functools import lru_cache

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Database configuration settings"""
    uri: str = field(default_factory=lambda: os.getenv("MONGODB_URI", "mongodb://localhost:27017"))
    name: str = field(default_factory=lambda: os.getenv("PATHWAY_DB", "urology_pathway"))
    max_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_POOL_SIZE", "50")))
    min_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_MIN_POOL_SIZE", "10")))
    max_idle_time_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_MAX_IDLE_TIME_MS", "10000")))
    server_selection_timeout_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")))

    # Collection names
    patients_collection: str = "patients"
    appointments_collection: str = "appointments"
    notes_collection: str = "patient_notes"
    discharge_summaries_collection: str = "discharge_summaries"
    mdt_meetings_collection: str = "mdt_meetings"


@dataclass
class RedisConfig:
    """Redis configuration settings"""
    enabled: bool = field(default_factory=lambda: os.getenv("REDIS_ENABLED", "false").lower() == "true")
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    password: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    max_connections: int = field(default_factory=lambda: int(os.getenv("REDIS_POOL_SIZE", "20")))
    socket_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_SOCKET_TIMEOUT", "30")))
    socket_connect_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_CONNECT_TIMEOUT", "30")))
    decode_responses: bool = False  # We want bytes for orjson serialization

    default_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CACHE_DEFAULT_TTL", "300")))


@dataclass
class HTTPConfig:
    """HTTP client settings for the clinical records API"""
    base_url: str = field(default_factory=lambda: os.getenv("CLINICAL_API_URL", "http://localhost:5000/api"))
    api_token: Optional[str] = field(default_factory=lambda: os.getenv("CLINICAL_API_TOKEN"))
    total_timeout: int = field(default_factory=lambda: int(os.getenv("HTTP_TOTAL_TIMEOUT", "30")))
    connect_timeout: int = field(default_factory=lambda: int(os.getenv("HTTP_CONNECT_TIMEOUT", "10")))
    max_pool_size: int = field(default_factory=lambda: int(os.getenv("CONNECTION_POOL_SIZE", "100")))
    max_per_host: int = field(default_factory=lambda: int(os.getenv("HTTP_MAX_PER_HOST", "30")))
    ttl_dns_cache: int = field(default_factory=lambda: int(os.getenv("HTTP_DNS_CACHE_TTL", "300")))


@dataclass
class StoreConfig:
    """Which storage adapter backs the pathway stores"""
    backend: str = field(default_factory=lambda: os.getenv("STORE_BACKEND", "http"))


@dataclass
class PathwayConfig:
    """Transition orchestration settings"""
    psa_velocity_threshold: float = field(default_factory=lambda: float(os.getenv("PSA_VELOCITY_THRESHOLD", "0.75")))
    default_follow_up_time: str = field(default_factory=lambda: os.getenv("DEFAULT_FOLLOW_UP_TIME", "09:00"))
    default_follow_up_months: int = field(default_factory=lambda: int(os.getenv("DEFAULT_FOLLOW_UP_MONTHS", "3")))

    # Best-effort steps (recurring bookings, audit note, view refresh)
    enrichment_max_attempts: int = field(default_factory=lambda: int(os.getenv("ENRICHMENT_MAX_ATTEMPTS", "1")))
    enrichment_retry_delay_seconds: float = field(default_factory=lambda: float(os.getenv("ENRICHMENT_RETRY_DELAY", "0.5")))
    refresh_views: bool = field(default_factory=lambda: os.getenv("REFRESH_VIEWS", "true").lower() == "true")
    view_cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("VIEW_CACHE_TTL", "300")))

    def __post_init__(self):
        if self.enrichment_max_attempts < 1:
            raise ValueError("enrichment_max_attempts must be at least 1")
        if self.psa_velocity_threshold <= 0:
            raise ValueError("psa_velocity_threshold must be positive")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    # File logging
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    max_file_size: int = field(default_factory=lambda: int(os.getenv("LOG_MAX_FILE_SIZE", "10485760")))  # 10MB
    backup_count: int = field(default_factory=lambda: int(os.getenv("LOG_BACKUP_COUNT", "5")))


@dataclass
class ApplicationConfig:
    """Main application configuration"""
    # Basic app settings
    app_name: str = field(default_factory=lambda: os.getenv("APP_NAME", "Care Pathway Service"))
    app_version: str = field(default_factory=lambda: os.getenv("APP_VERSION", "1.0.0"))
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Server settings
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))

    # Component configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    pathway: PathwayConfig = field(default_factory=PathwayConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate configuration after initialization"""
        self.validate()

    def validate(self):
        """Validate configuration settings"""
        errors = []

        if self.store.backend not in ("http", "mongo"):
            errors.append(f"Unknown store backend '{self.store.backend}'")

        if self.store.backend == "mongo":
            if not self.database.uri:
                errors.append("Database URI is required when using the mongo store")
            if not self.database.name:
                errors.append("Database name is required when using the mongo store")

        if self.store.backend == "http" and not self.http.base_url:
            errors.append("Clinical API URL is required when using the http store")

        if self.redis.enabled and not (1 <= self.redis.port <= 65535):
            errors.append("Redis port must be between 1 and 65535")

        if self.environment == "production" and self.store.backend == "http" and not self.http.api_token:
            errors.append("Clinical API token must be set in production")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary (for logging/debugging)"""
        config_dict = {}
        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, '__dict__'):
                config_dict[field_name] = field_value.__dict__.copy()
                # Mask sensitive values
                if field_name == 'http' and config_dict[field_name].get('api_token'):
                    config_dict[field_name]['api_token'] = '***masked***'
                elif field_name == 'redis' and config_dict[field_name].get('password'):
                    config_dict[field_name]['password'] = '***masked***'
            else:
                config_dict[field_name] = field_value
        return config_dict


@lru_cache(maxsize=1)
def get_config() -> ApplicationConfig:
    """
    Get application configuration singleton.
    Uses LRU cache to ensure same instance is returned.
    """
    config = ApplicationConfig()
    logger.info(f"Configuration loaded for environment: {config.environment}")
    return config


def load_config_from_file(file_path: str) -> ApplicationConfig:
    """
    Load configuration from a JSON file.

    Keys are environment variable names, optionally grouped into sections
    ({"redis": {"redis_host": "cache"}}). Values are exported to the
    environment and the cached config is rebuilt.
    """
    import json

    try:
        with open(file_path, 'r') as f:
            config_data = json.load(f)

        for key, value in config_data.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    os.environ[sub_key.upper()] = str(sub_value)
            else:
                os.environ[key.upper()] = str(value)

        get_config.cache_clear()
        return get_config()

    except FileNotFoundError:
        logger.error(f"Configuration file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file: {e}")
        raise


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the root logger from LoggingConfig"""
    config = config or get_config().logging

    handlers = [logging.StreamHandler()]
    if config.log_file:
        handlers.append(logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count
        ))

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
        handlers=handlers,
        force=True
    )


# Convenience functions for common config access patterns
def get_database_config() -> DatabaseConfig:
    """Get database configuration"""
    return get_config().database


def get_redis_config() -> RedisConfig:
    """Get Redis configuration"""
    return get_config().redis


def get_http_config() -> HTTPConfig:
    """Get clinical API client configuration"""
    return get_config().http


def get_pathway_config() -> PathwayConfig:
    """Get pathway orchestration configuration"""
    return get_config().pathway
