"""Configuration management for HookRelay."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """HookRelay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKRELAY_ prefix. For example:
        HOOKRELAY_MAX_RETRIES=5
        HOOKRELAY_DELIVERY_TIMEOUT_SECONDS=2.5
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Per-request timeout for outbound webhook calls",
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum in-flight HTTP requests per fan-out",
    )
    treat_any_response_as_success: bool = Field(
        default=False,
        description=(
            "Count any received HTTP response as a successful delivery. "
            "When False (default) only 2xx responses succeed and other "
            "status codes enter the retry chain."
        ),
    )
    signature_header_prefix: str = Field(
        default="X-HookRelay",
        min_length=1,
        description="Prefix for the signature and metadata headers on outbound calls",
    )

    # Retry
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Most delivery attempts per event and webhook, the initial try included",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Delay before the second attempt (doubles for each later one)",
    )

    # Lookup cache
    webhook_cache_ttl_seconds: float = Field(
        default=3600.0,
        ge=0.0,
        description="TTL for cached webhook lookups by event type (0 disables caching)",
    )

    # Delivery workers
    delivery_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of background workers draining the delivery queue",
    )
    delivery_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum events waiting for delivery before intake is rejected",
    )

    # Pagination
    default_page_size: int = Field(default=50, ge=1, description="Default list page size")
    max_page_size: int = Field(default=500, ge=1, description="Largest accepted page size")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log format: json (production) or text (development)",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Bind address for `python -m hookrelay`")
    port: int = Field(default=3000, ge=1, le=65535, description="Port for `python -m hookrelay`")

    # CORS
    cors_enabled: bool = Field(default=False, description="Enable CORS middleware")
    cors_allow_origins: list[str] = Field(
        default_factory=list,
        description="Allowed origins for CORS requests",
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )

    model_config = {
        "env_prefix": "HOOKRELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "Settings":
        """Ensure the default page size fits under the maximum."""
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) "
                f"exceeds max_page_size ({self.max_page_size})"
            )
        if self.env == "production" and self.treat_any_response_as_success:
            logger.warning(
                "treat_any_response_as_success is enabled in production; "
                "4xx/5xx responses will not be retried"
            )
        return self


# Global settings instance
settings = Settings()
