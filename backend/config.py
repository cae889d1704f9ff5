"""Settings loaded from environment variables (+ optional .env)."""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _api_key(name: str) -> Optional[str]:
    value = os.getenv(name)
    # Placeholder from .env.example counts as missing
    if not value or value == "your-api-key-here":
        return None
    return value


@dataclass(frozen=True)
class Settings:
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5"
    max_tokens: int = 512
    llm_timeout_seconds: float = 30.0

    openai_api_key: Optional[str] = None
    transcription_model: str = "whisper-1"

    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    reminder_lead_minutes: int = 15
    notice_limit: int = 50
    database_path: str = "voicetasker.db"

    log_level: str = "INFO"
    log_dir: Optional[str] = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        anthropic_api_key=_api_key("ANTHROPIC_API_KEY"),
        anthropic_model=os.getenv("VOICETASKER_MODEL", "claude-sonnet-4-5"),
        max_tokens=_env_int("VOICETASKER_MAX_TOKENS", 512),
        llm_timeout_seconds=_env_float("VOICETASKER_LLM_TIMEOUT_SECONDS", 30.0),
        openai_api_key=_api_key("OPENAI_API_KEY"),
        transcription_model=os.getenv("VOICETASKER_TRANSCRIPTION_MODEL", "whisper-1"),
        cors_origins=_env_list("VOICETASKER_CORS_ORIGINS", ["http://localhost:5173"]),
        reminder_lead_minutes=_env_int("VOICETASKER_REMINDER_LEAD_MINUTES", 15),
        notice_limit=_env_int("VOICETASKER_NOTICE_LIMIT", 50),
        database_path=os.getenv("VOICETASKER_DATABASE_PATH") or "voicetasker.db",
        log_level=os.getenv("VOICETASKER_LOG_LEVEL", "INFO").upper(),
        log_dir=os.getenv("VOICETASKER_LOG_DIR") or None,
    )
