"""
Relay server configuration.

The relay is the only process that holds the language-model credential. It is
read once from the environment (or .env_local / .env.local during local
development) and never logged or returned to clients.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Groq exposes an OpenAI-compatible chat completions API
DEFAULT_LLM_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_LLM_MODEL = "llama-3.1-8b-instant"

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful voice assistant. Your replies are spoken aloud, so keep "
    "them short and conversational and avoid markdown, lists and code."
)


def _load_env_files() -> None:
    root = Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        env_file = root / name
        if env_file.exists():
            load_dotenv(env_file, override=False)


def _parse_float_env(key: str, default: float) -> float:
    value = (os.environ.get(key) or "").split("#")[0].strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_int_env(key: str, default: int) -> int:
    value = (os.environ.get(key) or "").split("#")[0].strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class RelayConfig:
    """Relay server configuration."""

    api_key: str = field(repr=False)
    base_url: str = DEFAULT_LLM_BASE_URL
    model: str = DEFAULT_LLM_MODEL
    temperature: float = 0.7
    timeout_seconds: float = 15.0
    default_prompt: str = DEFAULT_SYSTEM_PROMPT

    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables."""
        _load_env_files()

        api_key = os.environ.get("LLM_API_KEY") or os.environ.get("GROQ_API_KEY") or ""
        if not api_key.strip():
            raise ValueError("LLM_API_KEY (or GROQ_API_KEY) is required")

        return cls(
            api_key=api_key.strip(),
            base_url=(os.environ.get("LLM_BASE_URL") or DEFAULT_LLM_BASE_URL).rstrip("/"),
            model=os.environ.get("LLM_MODEL") or DEFAULT_LLM_MODEL,
            temperature=_parse_float_env("LLM_TEMPERATURE", 0.7),
            timeout_seconds=_parse_float_env("LLM_TIMEOUT_SECONDS", 15.0),
            default_prompt=os.environ.get("RELAY_DEFAULT_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            host=os.environ.get("RELAY_HOST", "127.0.0.1"),
            port=_parse_int_env("RELAY_PORT", 8000),
        )


def get_config() -> RelayConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = RelayConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests change the environment between cases)."""
    global _config
    _config = None


# Global config instance (lazy loaded)
_config: Optional[RelayConfig] = None
