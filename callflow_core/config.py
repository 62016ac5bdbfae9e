"""
Configuration for the Call Flow Engine.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(str, Enum):
    """Version storage backends."""

    MEMORY = "memory"
    DATABASE = "database"


class ValidationConfig(BaseSettings):
    """Flow validation limits."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    max_nodes_per_flow: int = Field(default=500, ge=1, description="Max nodes per flow")
    max_connections_per_node: int = Field(
        default=20, ge=1, description="Max connections per node"
    )


class StorageConfig(BaseSettings):
    """Storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Version storage backend",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./callflow.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Max connections beyond pool size")
    echo: bool = Field(default=False, description="Echo SQL statements")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="callflow-engine", description="Service name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="pretty", description="Log format (json, pretty, simple)")

    # API settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    api_prefix: str = Field(default="/api/v1", description="API prefix")
    enable_docs: bool = Field(default=True, description="Enable API docs")

    # Sub-configurations
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
