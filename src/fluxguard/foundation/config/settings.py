"""Environment-based defaults using pydantic-settings.

The subsystems never read the environment themselves. Applications that want
environment-driven defaults build configs from these settings explicitly.

Example:
    >>> from fluxguard.foundation.config import get_settings
    >>> settings = get_settings()
    >>> scheduler = AdvancedRetryScheduler(settings.retry.to_config(), settings.breaker.to_config())

    # Or with environment variables:
    # FLUXGUARD_RETRY_MAX_ATTEMPTS=5
    # FLUXGUARD_BREAKER_FAILURE_THRESHOLD=0.25
    # FLUXGUARD_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from fluxguard.plugins import PluginRegistryConfig
    from fluxguard.runtime.middleware import MiddlewarePipelineConfig
    from fluxguard.runtime.resilience import CircuitBreakerConfig
    from fluxguard.runtime.retry import AdvancedRetryConfig


class BreakerSettings(BaseSettings):
    """Default circuit breaker thresholds."""

    model_config = SettingsConfigDict(env_prefix="FLUXGUARD_BREAKER_", extra="ignore")

    failure_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    success_threshold: PositiveInt = 3
    timeout: NonNegativeFloat = Field(default=60.0, description="Seconds OPEN before a probe")
    monitoring_window: PositiveFloat = Field(default=60.0, description="Sliding window in seconds")
    minimum_requests: Annotated[int, Field(ge=0)] = 10

    def to_config(self, name: str = "default") -> CircuitBreakerConfig:
        from fluxguard.runtime.resilience import CircuitBreakerConfig
        return CircuitBreakerConfig(**self.model_dump(), name=name)


class RetrySettings(BaseSettings):
    """Default retry scheduling."""

    model_config = SettingsConfigDict(env_prefix="FLUXGUARD_RETRY_", extra="ignore")

    max_attempts: PositiveInt = 3
    initial_delay: NonNegativeFloat = Field(default=1.0, description="First delay in seconds")
    max_delay: NonNegativeFloat = Field(default=30.0, description="Delay cap in seconds")
    backoff_strategy: Literal["exponential", "linear", "fibonacci", "constant"] = "exponential"
    jitter: bool = True
    jitter_type: Literal["full", "equal", "decorrelated"] = "full"
    max_jitter: Annotated[float, Field(ge=0.0, le=1.0)] = 0.1
    attempt_timeout: PositiveFloat | None = None
    total_timeout: PositiveFloat | None = None
    retry_on_network_error: bool = True
    retry_on_timeout: bool = True

    def to_config(self) -> AdvancedRetryConfig:
        from fluxguard.runtime.retry import AdvancedRetryConfig, JitterConfig
        values = self.model_dump(exclude={"jitter", "jitter_type", "max_jitter"})
        return AdvancedRetryConfig(
            **values,
            jitter=JitterConfig(enabled=self.jitter, type=self.jitter_type, max_jitter=self.max_jitter),
        )


class MiddlewareSettings(BaseSettings):
    """Default middleware pipeline behavior."""

    model_config = SettingsConfigDict(env_prefix="FLUXGUARD_MIDDLEWARE_", extra="ignore")

    stop_on_error: bool = True
    timeout: PositiveFloat | None = Field(default=10.0, description="Per-middleware timeout in seconds")
    enable_profiling: bool = False
    max_middleware: PositiveInt = 100

    def to_config(self) -> MiddlewarePipelineConfig:
        from fluxguard.runtime.middleware import MiddlewarePipelineConfig
        return MiddlewarePipelineConfig(**self.model_dump())


class PluginSettings(BaseSettings):
    """Default plugin registry limits."""

    model_config = SettingsConfigDict(env_prefix="FLUXGUARD_PLUGINS_", extra="ignore")

    max_plugins: PositiveInt = 50
    load_timeout: PositiveFloat | None = Field(default=10.0, description="Factory timeout in seconds")
    auto_start: bool = True

    def to_config(self) -> PluginRegistryConfig:
        from fluxguard.plugins import PluginRegistryConfig
        return PluginRegistryConfig(**self.model_dump())


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="FLUXGUARD_LOG_", extra="ignore")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "text"
    include_timestamps: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class FluxguardSettings(BaseSettings):
    """Root settings.

    Loads configuration from environment variables with the FLUXGUARD_ prefix.

    Example environment variables:
        FLUXGUARD_ENVIRONMENT=production
        FLUXGUARD_BREAKER_TIMEOUT=30
        FLUXGUARD_RETRY_BACKOFF_STRATEGY=linear
        FLUXGUARD_MIDDLEWARE_STOP_ON_ERROR=false
        FLUXGUARD_PLUGINS_MAX_PLUGINS=20
    """

    model_config = SettingsConfigDict(
        env_prefix="FLUXGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = "development"

    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    middleware: MiddlewareSettings = Field(default_factory=MiddlewareSettings)
    plugins: PluginSettings = Field(default_factory=PluginSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> FluxguardSettings:
    """Get the process-wide settings instance (cached)."""
    return FluxguardSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings; the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
