"""
Shared configuration management for the content access layer.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DAY_SECONDS = 24 * 60 * 60


class RateLimitConfig(BaseModel):
    """Sliding-window quota for one external endpoint; immutable."""

    model_config = ConfigDict(frozen=True)

    max_requests: int = Field(ge=1)
    window_seconds: float = Field(gt=0)
    queue_limit: Optional[int] = Field(default=None, ge=0)


def _default_rate_limits() -> Dict[str, RateLimitConfig]:
    return {
        "openai": RateLimitConfig(max_requests=3, window_seconds=1.0, queue_limit=10),
        "sunnah-api": RateLimitConfig(max_requests=5, window_seconds=1.0, queue_limit=20),
        "quran-api": RateLimitConfig(max_requests=10, window_seconds=1.0, queue_limit=50),
        "supabase": RateLimitConfig(max_requests=50, window_seconds=1.0, queue_limit=100),
        "edge-function": RateLimitConfig(max_requests=10, window_seconds=1.0, queue_limit=30),
    }


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONTENT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: Optional[str] = Field(default=None)
    postgres_dsn: Optional[str] = Field(default=None)
    quran_api_url: str = Field(default="https://api.alquran.cloud/v1")
    hadith_api_url: str = Field(default="https://api.sunnah.com/v1")
    deepl_api_url: str = Field(default="https://api-free.deepl.com/v2")
    openai_api_url: str = Field(default="https://api.openai.com/v1")
    edge_function_url: Optional[str] = Field(default=None)
    http_timeout_seconds: float = Field(default=15.0, gt=0)

    # Credentials
    sunnah_api_key: Optional[str] = Field(default=None)
    deepl_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")


class ContentSettings(BaseConfig):
    """Settings for the request orchestration layer."""

    service_name: str = Field(default="content")

    # Tiered cache
    cache_default_ttl: float = Field(default=300.0, gt=0)
    memory_cache_max_size: int = Field(default=100, ge=1)
    memory_cache_policy: Literal["fifo", "lru"] = Field(default="lru")
    remote_cache_table: Optional[str] = Field(default=None)

    # Batching
    batch_delay_seconds: float = Field(default=0.05, ge=0)
    batch_all_or_nothing: bool = Field(default=False)

    # Performance monitor
    performance_enabled: bool = Field(default=True)
    max_metrics_per_name: int = Field(default=1000, ge=1)

    # Background writes
    background_queue_size: int = Field(default=500, ge=1)

    # Retry
    retry_attempts: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0)

    # Content TTLs
    quran_ttl_seconds: float = Field(default=30 * DAY_SECONDS)
    hadith_ttl_seconds: float = Field(default=7 * DAY_SECONDS)
    dua_ttl_seconds: float = Field(default=7 * DAY_SECONDS)
    translation_ttl_seconds: float = Field(default=30 * DAY_SECONDS)

    # Rate limiting
    rate_limits: Dict[str, RateLimitConfig] = Field(default_factory=_default_rate_limits)


def get_settings(**overrides) -> ContentSettings:
    """Get settings, applying explicit overrides over the environment."""
    return ContentSettings(**overrides)
