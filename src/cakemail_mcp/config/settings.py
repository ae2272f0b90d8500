"""Configuration settings for the Cakemail MCP server.

This module defines the configuration settings for the Cakemail MCP
server, including account credentials, the API endpoint, and the
resilience knobs of the request execution layer. Settings are loaded from
environment variables and .env files.
"""

from typing import Literal, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError
from ..models import (
    CircuitBreakerConfig,
    ClientConfig,
    RateLimitConfig,
    RetryConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All durations are expressed in seconds.

    :param cakemail_username: Cakemail account username (password grant)
    :type cakemail_username: Optional[str]
    :param cakemail_password: Cakemail account password (password grant)
    :type cakemail_password: Optional[str]
    :param cakemail_base_url: Base URL for the Cakemail API
    :type cakemail_base_url: str
    :param cakemail_timeout: Per-call deadline
    :type cakemail_timeout: float
    :param cakemail_max_concurrent_requests: Request queue capacity
    :type cakemail_max_concurrent_requests: int
    :param log_level: Logging level for the application
    :type log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )

    # Account credentials
    cakemail_username: Optional[str] = Field(
        None, description="Cakemail account username"
    )
    cakemail_password: Optional[str] = Field(
        None, description="Cakemail account password"
    )

    # API Configuration
    cakemail_base_url: str = Field(
        "https://api.cakemail.dev", description="Cakemail API Base URL"
    )
    cakemail_timeout: float = Field(30.0, gt=0, description="Per-call timeout")
    cakemail_max_concurrent_requests: int = Field(
        10, ge=1, description="Maximum concurrently in-flight requests"
    )
    cakemail_debug: bool = Field(False, description="Verbose request logging")

    # Retry
    cakemail_retry_max_attempts: int = Field(3, ge=1)
    cakemail_retry_base_delay: float = Field(1.0, ge=0)
    cakemail_retry_max_delay: float = Field(30.0, ge=0)
    cakemail_retry_jitter: float = Field(0.25, ge=0, lt=1)

    # Rate limiting
    cakemail_rate_limit_enabled: bool = Field(True)
    cakemail_rate_limit_capacity: float = Field(10.0, ge=1)
    cakemail_rate_limit_refill_rate: float = Field(
        5.0, gt=0, description="Tokens added per second"
    )

    # Circuit breaker
    cakemail_circuit_breaker_enabled: bool = Field(False)
    cakemail_circuit_breaker_failure_threshold: int = Field(5, ge=1)
    cakemail_circuit_breaker_reset_timeout: float = Field(60.0, gt=0)

    # MCP Server Configuration
    mcp_server_name: str = Field("cakemail-api", description="MCP Server Name")
    mcp_server_host: str = Field("127.0.0.1", description="MCP Server Host")
    mcp_server_port: int = Field(9080, description="MCP Server Port")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept log levels in any case."""
        return v.upper() if isinstance(v, str) else v

    @field_validator("cakemail_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Remove a trailing slash so paths can be appended verbatim.

        :param v: The configured base URL
        :type v: str
        :return: Base URL without trailing slash
        :rtype: str
        """
        return v.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        """Return whether both username and password are configured."""
        return bool(
            self.cakemail_username
            and self.cakemail_username.strip()
            and self.cakemail_password
        )

    def to_client_config(self) -> ClientConfig:
        """Build the request execution layer configuration.

        :return: Immutable client configuration
        :rtype: ClientConfig
        """
        return ClientConfig(
            base_url=self.cakemail_base_url,
            username=self.cakemail_username or "",
            password=self.cakemail_password or "",
            timeout=self.cakemail_timeout,
            max_concurrent_requests=self.cakemail_max_concurrent_requests,
            retry=RetryConfig(
                max_attempts=self.cakemail_retry_max_attempts,
                base_delay=self.cakemail_retry_base_delay,
                max_delay=self.cakemail_retry_max_delay,
                jitter=self.cakemail_retry_jitter,
            ),
            rate_limit=RateLimitConfig(
                enabled=self.cakemail_rate_limit_enabled,
                capacity=self.cakemail_rate_limit_capacity,
                refill_rate=self.cakemail_rate_limit_refill_rate,
            ),
            circuit_breaker=CircuitBreakerConfig(
                enabled=self.cakemail_circuit_breaker_enabled,
                failure_threshold=self.cakemail_circuit_breaker_failure_threshold,
                reset_timeout=self.cakemail_circuit_breaker_reset_timeout,
            ),
        )


def get_settings() -> Settings:
    """Load settings from the current environment.

    :return: Fresh settings instance
    :rtype: Settings
    :raises ConfigurationError: If an environment variable fails validation
    """
    try:
        return Settings()
    except ValidationError as e:
        first = e.errors()[0]
        setting = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid configuration: {setting}: {first.get('msg')}",
            setting=setting,
        ) from e
