"""Application configuration utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os
import tempfile

from dotenv import load_dotenv

from utils.exceptions import ConfigurationError


load_dotenv()


@dataclass(frozen=True)
class DeepgramSettings:
    api_key: Optional[str] = None
    model: str = "nova-2"
    language: str = "en"
    smart_format: bool = True


@dataclass(frozen=True)
class LookupSettings:
    url: Optional[str] = None
    param: str = "sbat_id"


@dataclass(frozen=True)
class DownloadSettings:
    max_concurrent: int = 5
    retry_attempts: int = 1
    retry_backoff_seconds: float = 0.5
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class AudioSettings:
    channels: int = 2
    sample_rate: int = 44100
    bitrate: str = "192k"
    codec: str = "libmp3lame"
    format: str = "mp3"
    strip_metadata: bool = False


@dataclass(frozen=True)
class WorkspaceSettings:
    root: Path = field(default_factory=lambda: Path(tempfile.gettempdir()) / "stream-audio-jobs")
    ttl_minutes: float = 30.0
    sweep_interval_minutes: float = 5.0


@dataclass(frozen=True)
class AppConfig:
    deepgram: DeepgramSettings
    lookup: LookupSettings
    downloads: DownloadSettings
    audio: AudioSettings
    workspace: WorkspaceSettings
    allowed_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))


def _int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    workspace_root = os.getenv("WORKSPACE_ROOT")

    return AppConfig(
        deepgram=DeepgramSettings(
            api_key=os.getenv("DEEPGRAM_API_KEY") or None,
            model=os.getenv("DEEPGRAM_MODEL", "nova-2"),
            language=os.getenv("DEEPGRAM_LANGUAGE", "en"),
            smart_format=_bool("DEEPGRAM_SMART_FORMAT", True),
        ),
        lookup=LookupSettings(
            url=os.getenv("LOOKUP_URL") or None,
            param=os.getenv("LOOKUP_PARAM", "sbat_id"),
        ),
        downloads=DownloadSettings(
            max_concurrent=_int("MAX_CONCURRENT_DOWNLOADS", 5),
            retry_attempts=_int("SEGMENT_RETRY_ATTEMPTS", 1),
            retry_backoff_seconds=_float("SEGMENT_RETRY_BACKOFF_SECONDS", 0.5),
            timeout_seconds=_float("HTTP_TIMEOUT_SECONDS", 60.0),
        ),
        audio=AudioSettings(
            channels=_int("AUDIO_CHANNELS", 2),
            sample_rate=_int("AUDIO_SAMPLE_RATE", 44100),
            bitrate=os.getenv("AUDIO_BITRATE", "192k"),
            codec=os.getenv("AUDIO_CODEC", "libmp3lame"),
            format=os.getenv("AUDIO_FORMAT", "mp3"),
            strip_metadata=_bool("AUDIO_STRIP_METADATA", False),
        ),
        workspace=WorkspaceSettings(
            root=Path(workspace_root) if workspace_root else WorkspaceSettings().root,
            ttl_minutes=_float("JOB_TTL_MINUTES", 30.0),
            sweep_interval_minutes=_float("SWEEP_INTERVAL_MINUTES", 5.0),
        ),
        allowed_origins=tuple(
            origin.strip()
            for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
        ),
    )
