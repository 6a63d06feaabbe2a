"""Configuration management for the skew protection service.

This module provides a centralized configuration system that loads settings
from environment variables (via .env file) with sensible defaults.
"""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables with defaults."""

    model_config = SettingsConfigDict(
        # Look for .env file in the project root (parent of the package)
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Affinity token transport
    affinity_header_name: str = Field(
        default="X-Deployment-Id",
        description="Request header carrying the affinity token",
    )
    affinity_cookie_name: str = Field(
        default="__skew_dpl",
        description="Cookie carrying the affinity token",
    )
    affinity_cookie_max_age: int = Field(
        default=86400,
        description="Lifetime of the affinity cookie in seconds",
    )

    # Draining
    drain_grace_period_seconds: float = Field(
        default=300.0,
        description="How long a draining deployment is kept for pinned clients",
    )
    drain_poll_interval_seconds: float = Field(
        default=15.0,
        description="Interval between sweeps that retire drained deployments",
    )
    token_idle_timeout_seconds: float = Field(
        default=120.0,
        description="A token not presented for this long no longer holds its deployment",
    )

    # Health checks
    health_check_path: str = Field(
        default="/health",
        description="Path polled on a deployment target before promotion",
    )
    health_check_request_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for a single health check request",
    )
    health_check_initial_interval_seconds: float = Field(
        default=1.0,
        description="First backoff delay between health check attempts",
    )
    health_check_max_interval_seconds: float = Field(
        default=30.0,
        description="Upper bound for the health check backoff delay",
    )
    rollout_timeout_seconds: float = Field(
        default=600.0,
        description="Overall bound on waiting for a deployment to become healthy",
    )

    # Proxy
    proxy_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for requests forwarded to a deployment target",
    )

    # Token tracking
    token_tracker_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where outstanding affinity tokens are tracked",
    )

    # Redis Configuration
    redis_host: str = Field(
        default="localhost",
        description="Redis host address",
    )
    redis_port: int = Field(
        default=6379,
        description="Redis port number",
    )
    redis_db: int = Field(
        default=0,
        description="Redis database number",
    )
    redis_password: Optional[str] = Field(
        default=None,
        description="Redis password (if required)",
    )
    redis_max_connections: int = Field(
        default=10,
        description="Maximum number of Redis connections in pool",
    )
    redis_key_prefix: str = Field(
        default="skew:tokens:",
        description="Prefix for per-deployment token sets",
    )

    # API
    api_key: str = Field(
        default="1234567890",
        description="API key required by the admin endpoints",
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware",
    )
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")

    @field_validator("redis_port", "port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is within valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator(
        "drain_grace_period_seconds",
        "drain_poll_interval_seconds",
        "token_idle_timeout_seconds",
        "health_check_request_timeout_seconds",
        "health_check_initial_interval_seconds",
        "health_check_max_interval_seconds",
        "rollout_timeout_seconds",
        "proxy_timeout_seconds",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Validate that durations are strictly positive."""
        if v <= 0:
            raise ValueError("Duration must be greater than zero")
        return v

    @field_validator("health_check_path")
    @classmethod
    def validate_health_check_path(cls, v: str) -> str:
        """Health check paths are always absolute."""
        return v if v.startswith("/") else f"/{v}"

    @property
    def redis_config(self) -> dict:
        """Generate Redis config object for redis.asyncio."""
        config = {
            "host": self.redis_host,
            "port": self.redis_port,
            "db": self.redis_db,
            "max_connections": self.redis_max_connections,
        }
        if self.redis_password:
            config["password"] = self.redis_password
        return config


# Singleton instance - import this in other modules
settings = Settings()
