"""Map Core Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Every timing knob is positive (validated at load time)
    - get_settings() is cached (lru_cache) — single instance per process
    - A missing map access token is fatal to rendering only (ConfigurationError
      raised by require_map_token, never at load time)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - GEOTROVE_ prefix: the core is embedded in a host app with its own env vars
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from geotrove.core.backoff import RetryPolicy
from geotrove.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Map core settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="GEOTROVE_", case_sensitive=False,
        extra="ignore",
    )

    # Map access
    map_access_token: str | None = None

    # Marker lifecycle
    refresh_debounce_ms: int = 100
    marker_grace_window_ms: int = 5_000
    focus_zoom: float = 18.0

    # Render readiness retry
    render_retry_max_attempts: int = 5
    render_retry_base_delay_ms: int = 500
    render_retry_max_delay_ms: int = 8_000

    # Pin placement
    pin_watchdog_interval_ms: int = 100
    pin_watchdog_window_ms: int = 3_000

    # Clustering
    cluster_zoom_threshold: float = 10.0
    cluster_merge_tolerance_deg: float = 0.05

    # Location
    location_high_accuracy: bool = True
    location_timeout_ms: int = 10_000
    location_max_age_ms: int = 300_000

    # Nearby fetch
    nearby_cooldown_ms: int = 3_000
    nearby_radius_meters: float = 1_000.0
    viewport_refresh_debounce_ms: int = 250

    # Collectible Directory (HTTP)
    directory_base_url: str = "http://localhost:4000/api"
    directory_timeout_seconds: float = 10.0
    directory_max_retries: int = 3
    directory_base_delay_ms: int = 500
    directory_max_delay_ms: int = 8_000

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator(
        "refresh_debounce_ms", "marker_grace_window_ms",
        "render_retry_max_attempts", "render_retry_base_delay_ms",
        "pin_watchdog_interval_ms", "pin_watchdog_window_ms",
        "location_timeout_ms", "nearby_cooldown_ms",
        "cluster_merge_tolerance_deg", "directory_timeout_seconds",
    )
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("map_access_token", mode="before")
    @classmethod
    def blank_token_is_missing(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def render_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.render_retry_max_attempts,
            base_delay_ms=self.render_retry_base_delay_ms,
            max_delay_ms=self.render_retry_max_delay_ms,
        )

    @property
    def directory_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.directory_max_retries,
            base_delay_ms=self.directory_base_delay_ms,
            max_delay_ms=self.directory_max_delay_ms,
            jitter=0.25,
        )

    def require_map_token(self) -> str:
        if not self.map_access_token:
            raise ConfigurationError("map_access_token")
        return self.map_access_token


@lru_cache
def get_settings() -> Settings:
    return Settings()
