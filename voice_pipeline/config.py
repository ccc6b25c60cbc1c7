"""
Voice Pipeline configuration.

Loads front-end settings from environment variables. The front end never
sees the language-model credential; it only knows where the relay lives.
"""
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_FALLBACK_MESSAGE = "Sorry, I couldn't process that"


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "180  # words per minute" -> 180
    - "180" -> 180
    - None -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = (os.environ.get(key) or "").split("#")[0].strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = (os.environ.get(key) or "").split("#")[0].strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


@dataclass
class VoiceConfig:
    """Voice pipeline configuration."""

    # Backend relay
    relay_url: str = "http://127.0.0.1:8000"
    assistant_timeout_seconds: float = 10.0

    # Capture behaviour
    continuous: bool = False
    auto_restart: bool = False
    language: str = "en-US"

    # Playback
    tts_rate: int = 180
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE

    # Behavior prompt scenario (voice_pipeline/scenarios/<name>.yaml)
    prompt_scenario: str = "default"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "VoiceConfig":
        """Load configuration from environment variables."""
        return cls(
            relay_url=os.environ.get("RELAY_URL", "http://127.0.0.1:8000").rstrip("/"),
            assistant_timeout_seconds=_parse_float_env("ASSISTANT_TIMEOUT_SECONDS", 10.0),
            continuous=_parse_bool_env("CONTINUOUS_LISTENING", False),
            auto_restart=_parse_bool_env("CAPTURE_AUTO_RESTART", False),
            language=os.environ.get("CAPTURE_LANGUAGE", "en-US"),
            tts_rate=_parse_int_env("TTS_RATE", default=180),
            fallback_message=os.environ.get("FALLBACK_MESSAGE") or DEFAULT_FALLBACK_MESSAGE,
            prompt_scenario=os.environ.get("BEHAVIOR_PROMPT", "default"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )


def get_config() -> VoiceConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = VoiceConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[VoiceConfig] = None
