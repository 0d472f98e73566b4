"""Settings for the group chat backend."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    # "memory" keeps the content tree in-process; "redis" shares it across workers
    store_backend: str = _env_field("memory", "STORE_BACKEND")
    store_prefix: str = _env_field("gc:", "STORE_PREFIX")
    store_cas_retries: int = _env_field(16, "STORE_CAS_RETRIES")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("groupchat-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    cors_allow_origins: Optional[str] = _env_field(None, "CORS_ALLOW_ORIGINS")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")

    # Messaging knobs
    message_preview_chars: int = _env_field(50, "MESSAGE_PREVIEW_CHARS")
    max_message_chars: int = _env_field(4000, "MAX_MESSAGE_CHARS")
    deleted_message_text: str = _env_field("This message was deleted", "DELETED_MESSAGE_TEXT")
    default_group_name: str = _env_field("Unnamed Group", "DEFAULT_GROUP_NAME")
    max_group_participants: int = _env_field(256, "MAX_GROUP_PARTICIPANTS")
    default_temp_kick_hours: int = _env_field(24, "DEFAULT_TEMP_KICK_HOURS")
    invite_code_bytes: int = _env_field(16, "INVITE_CODE_BYTES")
    notification_stream_maxlen: int = _env_field(100_000, "NOTIFICATION_STREAM_MAXLEN")
    # "store" writes notifications/<recipient>/<id>; "stream" appends to a Redis stream
    notification_sink: str = _env_field("store", "NOTIFICATION_SINK")

    # Suspension reconciler loop
    reconciler_enabled: bool = _env_field(False, "RECONCILER_ENABLED")
    reconciler_interval_seconds: float = _env_field(60.0, "RECONCILER_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("store_backend", mode="before")
    def _normalise_backend(cls, value):  # type: ignore[override]
        text = str(value or "memory").strip().lower()
        if text not in ("memory", "redis"):
            raise ValueError(f"unsupported store backend: {value}")
        return text

    @field_validator("notification_sink", mode="before")
    def _normalise_sink(cls, value):  # type: ignore[override]
        text = str(value or "store").strip().lower()
        if text not in ("store", "stream"):
            raise ValueError(f"unsupported notification sink: {value}")
        return text

    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
