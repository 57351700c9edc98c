"""
Configuration and settings for Live Orb.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_MOODS = ("neutral", "sad", "good", "mystical", "angry")


def get_api_key() -> Optional[str]:
    """Get the Gemini API key from the environment."""
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")


class ModelConfig(BaseModel):
    """Remote model service configuration."""

    api_key: Optional[str] = Field(default_factory=get_api_key, repr=False)
    model: str = Field(
        default_factory=lambda: os.environ.get(
            "LIVE_ORB_MODEL", "gemini-2.5-flash-native-audio-preview-12-2025"
        )
    )
    voice: str = Field(default="Kore")
    summary_model: str = Field(
        default_factory=lambda: os.environ.get("LIVE_ORB_SUMMARY_MODEL", "gemini-3-pro-preview")
    )
    enable_search: bool = Field(default=True)


class AudioSettings(BaseModel):
    """Capture and playback configuration."""

    input_sample_rate: int = Field(default=16000, gt=0)
    output_sample_rate: int = Field(default=24000, gt=0)
    frame_size: int = Field(default=2048, gt=0)  # ~128ms at 16kHz
    input_device: Optional[int] = Field(default=None)
    output_device: Optional[int] = Field(default=None)


class SessionSettings(BaseModel):
    """Session lifecycle configuration."""

    reconnect_delay: float = Field(default=2.0, gt=0)  # seconds, fixed, no backoff
    grounding_link_cap: int = Field(default=5, ge=1)
    mood_vocabulary: list[str] = Field(default_factory=lambda: list(DEFAULT_MOODS))
    send_queue_size: int = Field(default=64, ge=1)
    document_char_limit: int = Field(default=15000, ge=1)

    @field_validator("mood_vocabulary")
    @classmethod
    def _normalize_moods(cls, value: list[str]) -> list[str]:
        moods = [m.strip().lower() for m in value if m and m.strip()]
        if "neutral" not in moods:
            moods.insert(0, "neutral")
        return moods


class ServerConfig(BaseModel):
    """Signal server configuration."""

    host: str = Field(
        default_factory=lambda: os.environ.get("LIVE_ORB_HOST", "127.0.0.1")
    )
    port: int = Field(
        default_factory=lambda: int(os.environ.get("LIVE_ORB_PORT", "8765"))
    )
    cors_origins: list[str] = Field(default=["*"])


class OrbConfig(BaseModel):
    """Main configuration."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "OrbConfig":
        """Load a config preset from a YAML file.

        Sections that are missing fall back to defaults; unknown keys are
        ignored.
        """
        import yaml

        yaml_path = Path(path).expanduser()
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Config file {yaml_path} must contain a mapping")

        sections = {name: raw[name] for name in cls.model_fields if isinstance(raw.get(name), dict)}
        return cls(**sections)


# Global config instance
_config: OrbConfig | None = None


def get_config() -> OrbConfig:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = OrbConfig()
    return _config


def set_config(config: OrbConfig) -> None:
    """Set the global configuration."""
    global _config
    _config = config
