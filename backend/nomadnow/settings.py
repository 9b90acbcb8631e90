"""Settings for the Nomad Now directory backend."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    secret_key: str = _env_field("change-me", "SECRET_KEY")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("nomadnow-directory", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    # External collaborators
    nomads_api_base_url: str = _env_field("http://localhost:3000", "NOMADS_API_BASE_URL")
    nomads_invitations_base_url: Optional[str] = _env_field(None, "NOMADS_INVITATIONS_BASE_URL")
    nomads_preferences_backend: Literal["redis", "http"] = _env_field("redis", "NOMADS_PREFERENCES_BACKEND")
    nomads_http_timeout_seconds: float = _env_field(10.0, "NOMADS_HTTP_TIMEOUT_SECONDS")
    nomads_include_hidden: bool = _env_field(False, "NOMADS_INCLUDE_HIDDEN")
    nomads_local_profile_prefix: str = _env_field("nomads:profile:", "NOMADS_LOCAL_PROFILE_PREFIX")
    nomads_preferences_prefix: str = _env_field("nomads:prefs:", "NOMADS_PREFERENCES_PREFIX")
    nomads_sample_fallback: bool = _env_field(True, "NOMADS_SAMPLE_FALLBACK")

    # Status thresholds (minutes since last activity)
    nomads_online_window_minutes: int = _env_field(120, "NOMADS_ONLINE_WINDOW_MINUTES")
    nomads_available_window_minutes: int = _env_field(480, "NOMADS_AVAILABLE_WINDOW_MINUTES")

    # Filtering and windowing
    nomads_default_max_distance_km: Optional[float] = _env_field(50.0, "NOMADS_DEFAULT_MAX_DISTANCE_KM")
    nomads_pagination_mode: Literal["page", "infinite"] = _env_field("page", "NOMADS_PAGINATION_MODE")
    nomads_page_size: int = _env_field(9, "NOMADS_PAGE_SIZE")

    # Refresh scheduling
    nomads_realtime_updates: bool = _env_field(True, "NOMADS_REALTIME_UPDATES")
    nomads_refresh_interval_seconds: float = _env_field(30.0, "NOMADS_REFRESH_INTERVAL_SECONDS")
    # Second refresh after a profile edit absorbs eventually-consistent backend writes.
    nomads_profile_followup_delay_seconds: float = _env_field(1.5, "NOMADS_PROFILE_FOLLOWUP_DELAY_SECONDS")
    nomads_error_ttl_seconds: float = _env_field(5.0, "NOMADS_ERROR_TTL_SECONDS")
    nomads_signal_channel: str = _env_field("nomads:signals", "NOMADS_SIGNAL_CHANNEL")
    # Per-viewer engines unused for this long are closed; 0 keeps them until shutdown.
    nomads_engine_idle_ttl_seconds: float = _env_field(900.0, "NOMADS_ENGINE_IDLE_TTL_SECONDS")
    nomads_engine_sweep_interval_seconds: float = _env_field(60.0, "NOMADS_ENGINE_SWEEP_INTERVAL_SECONDS")

    # Invitations
    nomads_invitation_message_max_length: int = _env_field(500, "NOMADS_INVITATION_MESSAGE_MAX_LENGTH")

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("nomads_page_size")
    def _positive_page_size(cls, value: int) -> int:  # type: ignore[override]
        if value < 1:
            raise ValueError("page size must be at least 1")
        return value

    @field_validator("nomads_default_max_distance_km", mode="before")
    def _blank_distance(cls, value):  # type: ignore[override]
        """Treat an empty env value as "no distance limit"."""
        if value in ("", "none", "None"):
            return None
        return value


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
