from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Tuple

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
GEMINI_ENDPOINT_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_HF_ENDPOINT = "https://router.huggingface.co/v1/chat/completions"
DEFAULT_TEMPLATE_API_BASE_URL = "http://127.0.0.1:8000/api/v1"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("config: ignoring non-integer %s=%r (using %d)", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("config: ignoring non-numeric %s=%r (using %s)", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read from the environment once at startup."""

    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    hugging_face_api_key: str = ""
    hf_endpoint: str = DEFAULT_HF_ENDPOINT
    llm_timeout_secs: float = 120.0
    min_html_length: int = 500
    generation_deadline_secs: float = 0.0
    fallback_enabled: bool = True
    template_api_base_url: str = DEFAULT_TEMPLATE_API_BASE_URL
    template_api_timeout_secs: float = 10.0
    code_store_dir: str = "cache/template_code"
    redis_url: str = ""
    rate_window_seconds: int = 3600
    rate_max_requests: int = 30
    allow_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    log_level: str = "INFO"
    mock_users_enabled: bool = True

    @property
    def gemini_endpoint(self) -> str:
        return GEMINI_ENDPOINT_TEMPLATE.format(model=self.gemini_model)

    @classmethod
    def from_env(cls) -> "Settings":
        origins = tuple(o.strip() for o in _env_str("ALLOW_ORIGINS", "*").split(",") if o.strip())
        min_html = _env_int("MIN_HTML_LENGTH", 500)
        if min_html < 0:
            min_html = 0
        return cls(
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", DEFAULT_GEMINI_MODEL) or DEFAULT_GEMINI_MODEL,
            hugging_face_api_key=_env_str("HUGGING_FACE_API_KEY"),
            hf_endpoint=_env_str("HF_ENDPOINT", DEFAULT_HF_ENDPOINT) or DEFAULT_HF_ENDPOINT,
            llm_timeout_secs=_env_float("LLM_TIMEOUT_SECS", 120.0),
            min_html_length=min_html,
            generation_deadline_secs=max(0.0, _env_float("GENERATION_DEADLINE_SECS", 0.0)),
            fallback_enabled=_env_bool("FALLBACK_ENABLED", True),
            template_api_base_url=(
                _env_str("TEMPLATE_API_BASE_URL", DEFAULT_TEMPLATE_API_BASE_URL) or DEFAULT_TEMPLATE_API_BASE_URL
            ).rstrip("/"),
            template_api_timeout_secs=_env_float("TEMPLATE_API_TIMEOUT_SECS", 10.0),
            code_store_dir=_env_str("CODE_STORE_DIR", "cache/template_code") or "cache/template_code",
            redis_url=_env_str("REDIS_URL"),
            rate_window_seconds=_env_int("RATE_WINDOW_SECONDS", 3600),
            rate_max_requests=_env_int("RATE_MAX_REQUESTS", 30),
            allow_origins=origins or ("*",),
            log_level=_env_str("LOG_LEVEL", "INFO").upper() or "INFO",
            mock_users_enabled=_env_bool("MOCK_USERS_ENABLED", True),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
