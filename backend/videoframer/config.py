import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "VideoFramer API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Local artifact storage (downloads/, rendered/, uploads/ live under this root)
    storage_root: str = "/tmp/videoframer"

    # Overlay templates (PNG/JPEG with a transparent region)
    overlays_dir: str = "overlays"

    # Queue broker. When unreachable at startup the API falls back to direct mode.
    redis_url: str = "redis://localhost:6379/0"
    queue_enabled: bool = True
    queue_name: str = "videoframer"
    broker_probe_timeout_s: float = 3.0
    queue_max_attempts: int = 2
    queue_backoff_s: float = 2.0

    # External tools
    ytdlp_path: str = "yt-dlp"
    ytdlp_format: str = "mp4/best[ext=mp4]/best"
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Acquisition
    allowed_source_domains: list[str] = [
        "tiktok.com",
        "instagram.com",
        "youtube.com",
        "youtu.be",
        "twitter.com",
        "x.com",
        "facebook.com",
        "fb.watch",
    ]
    max_upload_size_mb: int = 500

    # Transform encode settings (tuned for small files that re-upload quickly)
    transform_max_dimension: int = 720
    transform_preset: str = "veryfast"
    transform_crf: int = 30
    transform_maxrate: str = "2M"
    transform_bufsize: str = "4M"
    transform_audio_bitrate: str = "64k"
    transform_audio_sample_rate: int = 44100
    transform_audio_channels: int = 1

    # Rate limiting (expensive operations only)
    rate_limit_max_requests: int = 20
    rate_limit_window_s: int = 3600

    # Artifact expiry
    artifact_ttl_s: int = 1800
    sweep_interval_s: int = 600

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @property
    def downloads_dir(self) -> Path:
        return Path(self.storage_root) / "downloads"

    @property
    def rendered_dir(self) -> Path:
        return Path(self.storage_root) / "rendered"

    @property
    def uploads_dir(self) -> Path:
        return Path(self.storage_root) / "uploads"

    @property
    def artifact_dirs(self) -> list[Path]:
        return [self.downloads_dir, self.rendered_dir, self.uploads_dir]


@lru_cache
def get_settings() -> Settings:
    return Settings()
