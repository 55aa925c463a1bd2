"""Runtime settings, read from ``YTD_STREAM_*`` environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server and delivery configuration."""

    model_config = SettingsConfigDict(env_prefix="YTD_STREAM_", env_file=".env", extra="ignore")

    host: str = Field("127.0.0.1", description="Interface the HTTP server binds to.")
    port: int = Field(8000, description="Port the HTTP server listens on.")
    log_level: str = Field("INFO", description="Root logging level.")
    ffmpeg_path: str | None = Field(
        None, description="Explicit ffmpeg binary. Located on PATH when unset."
    )
    chunk_size: int = Field(256 * 1024, description="Bytes read per streaming step.")
    upstream_connect_timeout: float = Field(
        15.0, description="Seconds allowed to connect to a media upstream."
    )
    audio_bitrate: str = Field("192k", description="AAC bitrate used when audio is re-encoded.")
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
