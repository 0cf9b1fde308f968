"""
Environment-driven configuration.

All values are read once per process into an immutable Settings object. Tests
build their own Settings (or call get_settings.cache_clear()) instead of
mutating the process-wide one.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)

POLLINATIONS_API_URL = "https://text.pollinations.ai/openai"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

TRUTHY = {"1", "true", "yes", "on"}


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️  {name}={raw!r} is not a number, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️  {name}={raw!r} is not an integer, using {default}")
        return default


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"

    pollinations_api_url: str = POLLINATIONS_API_URL
    pollinations_token: Optional[str] = None
    pollinations_model: str = "openai"
    pollinations_timeout: float = 30.0

    openai_api_url: str = OPENAI_API_URL
    openai_api_key: Optional[str] = None
    openai_organization: Optional[str] = None
    openai_project: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0

    gemini_api_base: str = GEMINI_API_BASE
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-pro"
    gemini_timeout: float = 120.0

    render_backend: str = "auto"

    max_attempts: int = 3
    base_delay: float = 2.0

    allow_insecure_tls: bool = False

    rapid_api_key: Optional[str] = None
    rapid_api_host: Optional[str] = None

    profile_store_dir: str = os.path.join(tempfile.gettempdir(), "profilegen-profiles")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"production", "prod"}

    @property
    def verify_tls(self) -> bool:
        """Certificate verification is only ever relaxed outside production."""
        return not (self.allow_insecure_tls and not self.is_production)

    @classmethod
    def from_env(cls) -> "Settings":
        app_env = _env_str("APP_ENV", "development")
        allow_insecure = (_env_str("ALLOW_INSECURE_TLS", "") or "").lower() in TRUTHY
        if allow_insecure and app_env.lower() in {"production", "prod"}:
            logger.warning("⚠️  ALLOW_INSECURE_TLS is ignored in production")
            allow_insecure = False

        return cls(
            app_env=app_env,
            pollinations_api_url=_env_str("POLLINATIONS_API_URL", POLLINATIONS_API_URL),
            pollinations_token=_env_str("POLLINATIONS_API_TOKEN"),
            pollinations_model=_env_str("POLLINATIONS_MODEL", "openai"),
            pollinations_timeout=_env_float("POLLINATIONS_TIMEOUT_SECONDS", 30.0),
            openai_api_url=_env_str("OPENAI_API_URL", OPENAI_API_URL),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_organization=_env_str("OPENAI_ORGANIZATION"),
            openai_project=_env_str("OPENAI_PROJECT"),
            openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini"),
            openai_timeout=_env_float("OPENAI_TIMEOUT_SECONDS", 60.0),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-pro"),
            gemini_timeout=_env_float("GEMINI_TIMEOUT_SECONDS", 120.0),
            render_backend=(_env_str("HTML_RENDER_BACKEND", "auto") or "auto").lower(),
            max_attempts=max(1, _env_int("LLM_MAX_ATTEMPTS", 3)),
            base_delay=max(0.0, _env_float("LLM_BASE_DELAY_SECONDS", 2.0)),
            allow_insecure_tls=allow_insecure,
            rapid_api_key=_env_str("RAPID_API_KEY"),
            rapid_api_host=_env_str("RAPID_API_HOST"),
            profile_store_dir=_env_str(
                "PROFILE_STORE_DIR",
                os.path.join(tempfile.gettempdir(), "profilegen-profiles"),
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings.from_env()
    logger.info(f"Settings loaded (env={settings.app_env})")
    logger.info(f"Pollinations token present: {bool(settings.pollinations_token)}")
    logger.info(f"OpenAI key present: {bool(settings.openai_api_key)}")
    logger.info(f"Gemini key present: {bool(settings.gemini_api_key)}")
    if not settings.verify_tls:
        logger.warning("⚠️  TLS certificate verification disabled for outbound LLM calls")
    return settings
