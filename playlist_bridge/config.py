from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".playlist-bridge"
PLAYLIST_PRIVACY_VALUES: frozenset[str] = frozenset({"private", "unlisted", "public"})
LOG_DIR_NAME = "logs"
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "telemetry_enabled",
    "broad_fallback_enabled",
    "spotify_playlist_public",
)


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class AppSettings(BaseSettings):
    """
    Runtime configuration for playlist conversions.

    Every option is read from `PLAYLIST_BRIDGE_*` environment variables or a
    local `.env` file. Provider tokens are never configured here; they arrive
    with each conversion request.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLAYLIST_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        validate_default=True,
        description="Root runtime directory for logs and local artifacts.",
    )
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / LOG_DIR_NAME,
        validate_default=True,
        description="Directory for log files. Defaults to `${PLAYLIST_BRIDGE_DATA_DIR}/logs`.",
    )

    # Logging and telemetry.
    log_level: str = Field(default="INFO", description="Console log level (stdout).")
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry sink backend. `log` writes structured events, `none` drops them.",
    )

    # YouTube Data API quota.
    youtube_daily_quota_limit: int = Field(
        default=10_000,
        gt=0,
        description="Daily YouTube Data API unit budget a single conversion may spend.",
    )
    youtube_playlist_create_cost: int = Field(
        default=50,
        ge=0,
        description="Units charged for playlists.insert.",
    )
    youtube_search_cost: int = Field(
        default=100,
        ge=0,
        description="Units charged for search.list.",
    )
    youtube_playlist_append_cost: int = Field(
        default=50,
        ge=0,
        description="Units charged for playlistItems.insert.",
    )
    youtube_quota_safety_margin: int | None = Field(
        default=None,
        ge=0,
        description="Units held back below the budget. Unset reserves one worst-case call.",
    )
    youtube_playlist_privacy: Literal["private", "unlisted", "public"] = Field(
        default="private",
        description="Privacy status of playlists created on YouTube.",
    )
    youtube_search_category_id: str | None = Field(
        default="10",
        description="Video category filter for catalog searches (10 is Music).",
    )

    # Spotify Web API.
    spotify_api_base_url: str = Field(
        default="https://api.spotify.com/v1",
        description="Spotify Web API base URL.",
    )
    spotify_http_timeout_seconds: float = Field(
        default=15.0,
        description="HTTP timeout for Spotify requests.",
    )
    spotify_playlist_public: bool = Field(
        default=False,
        description="Create Spotify playlists as public.",
    )
    spotify_request_budget: int = Field(
        default=10_000,
        gt=0,
        description="Maximum Spotify write/search calls per conversion. Each call costs one unit.",
    )
    spotify_quota_safety_margin: int | None = Field(
        default=None,
        ge=0,
        description="Calls held back below the Spotify request budget.",
    )

    # Matching.
    precise_max_results: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Search results requested per item in precise mode.",
    )
    broad_max_results: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Search results requested per item in broad mode.",
    )
    broad_query_qualifier: str = Field(
        default="official audio",
        description="Words appended to broad-mode queries.",
    )
    broad_fallback_enabled: bool = Field(
        default=False,
        description="Retry an empty precise search once with the broad query when quota allows.",
    )

    # Pacing and run limits.
    youtube_item_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pause between items when writing to YouTube in precise mode.",
    )
    youtube_item_delay_broad_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between items when writing to YouTube in broad mode.",
    )
    spotify_item_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Pause between items when writing to Spotify.",
    )
    youtube_rate_limit_max_requests: int = Field(
        default=10,
        ge=1,
        description="Process-wide YouTube calls allowed per rate-limit window.",
    )
    youtube_rate_limit_window_seconds: float = Field(
        default=1.0,
        gt=0,
        description="YouTube rate-limit window size in seconds.",
    )
    spotify_rate_limit_max_requests: int = Field(
        default=20,
        ge=1,
        description="Process-wide Spotify calls allowed per rate-limit window.",
    )
    spotify_rate_limit_window_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Spotify rate-limit window size in seconds.",
    )
    default_batch_limit: int | None = Field(
        default=10,
        ge=1,
        description="Items converted per Spotify-to-YouTube request when the caller sends none.",
    )
    run_deadline_seconds: float | None = Field(
        default=900.0,
        gt=0,
        description="Wall-clock limit for one conversion, checked between items.",
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PLAYLIST_BRIDGE_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("PLAYLIST_BRIDGE_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("youtube_playlist_privacy", mode="before")
    @classmethod
    def _normalize_playlist_privacy(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PLAYLIST_BRIDGE_YOUTUBE_PLAYLIST_PRIVACY must be a string.")
        normalized = value.strip().lower()
        if normalized in PLAYLIST_PRIVACY_VALUES:
            return normalized
        raise ValueError(
            "PLAYLIST_BRIDGE_YOUTUBE_PLAYLIST_PRIVACY must be set to: private, unlisted, public."
        )

    @field_validator("spotify_api_base_url", mode="before")
    @classmethod
    def _normalize_spotify_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("PLAYLIST_BRIDGE_SPOTIFY_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("PLAYLIST_BRIDGE_SPOTIFY_API_BASE_URL must not be empty.")
        return normalized

    @field_validator("youtube_search_category_id", mode="before")
    @classmethod
    def _normalize_category_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip()
        return normalized or None

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def _resolve_paths(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def load_settings() -> AppSettings:
    settings = AppSettings()
    if "log_dir" in settings.model_fields_set:
        return settings
    return settings.model_copy(update={"log_dir": settings.data_dir / LOG_DIR_NAME})
