"""
Narrator - Configuration

Service settings are loaded from environment variables (or ``.env``) with
Pydantic validation. Per-session replay options come from request payloads
and are parsed leniently: anything unrecognized falls back to its default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Optional

from pydantic_settings import BaseSettings

from .narration_types import NarrativeStyle, VoiceMode, parse_enum

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ─── ElevenLabs ───
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = "piTKgcLEGmPE4e6mEKli"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    synthesis_timeout_seconds: float = 30.0

    # ─── Speech cache ───
    speech_cache_dir: str = ".cache/voice"
    speech_cache_max_entries: int = 500
    speech_cache_max_bytes: int = 0  # 0 = unbounded

    # ─── Analysis cache ───
    analysis_cache_path: str = ".cache/analysis.db"
    analysis_cache_max_entries: int = 1000
    analysis_cache_ttl_days: int = 30

    # ─── Replay ───
    replay_base_delay_seconds: float = 1.0

    # ─── App ───
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def voice_enabled(self) -> bool:
        return bool(self.elevenlabs_api_key)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root handler once; later calls only adjust the level."""
    level_name = (level or get_settings().log_level or "INFO").upper()
    numeric = logging.getLevelName(level_name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
    root.setLevel(numeric)


# =============================================================================
# REPLAY SESSION OPTIONS
# =============================================================================

MIN_SPEED = 0.25
MAX_SPEED = 3.0


def _pick(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return None


def _as_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _as_positive_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value) if value > 0 else default


@dataclass(frozen=True)
class ReplayConfig:
    """
    Options for one replay session.

    Accepts the web client's camelCase keys (``voiceNarrationEnabled``,
    ``cinematicMode``, ``style``, ``voiceMode``) as well as snake_case.
    """
    voice_narration_enabled: bool = False
    cinematic_mode: bool = True
    style: NarrativeStyle = NarrativeStyle.DRAMATIC
    # None = pick a mode per move from its dominant emotion
    voice_mode: Optional[VoiceMode] = None
    base_delay_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]], base_delay_seconds: Optional[float] = None) -> ReplayConfig:
        data = data or {}
        defaults = cls()
        delay_default = base_delay_seconds if base_delay_seconds else defaults.base_delay_seconds
        return cls(
            voice_narration_enabled=_as_bool(
                _pick(data, "voiceNarrationEnabled", "voice_narration_enabled"),
                defaults.voice_narration_enabled,
            ),
            cinematic_mode=_as_bool(_pick(data, "cinematicMode", "cinematic_mode"), defaults.cinematic_mode),
            style=parse_enum(NarrativeStyle, _pick(data, "style"), defaults.style),
            voice_mode=parse_enum(VoiceMode, _pick(data, "voiceMode", "voice_mode")),
            base_delay_seconds=_as_positive_float(
                _pick(data, "baseDelaySeconds", "base_delay_seconds"),
                delay_default,
            ),
        )

    def to_dict(self) -> dict:
        return {
            "voiceNarrationEnabled": self.voice_narration_enabled,
            "cinematicMode": self.cinematic_mode,
            "style": self.style.value,
            "voiceMode": self.voice_mode.value if self.voice_mode else None,
            "baseDelaySeconds": self.base_delay_seconds,
        }
