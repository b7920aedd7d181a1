"""
Runtime configuration for the assessment core.

Values come from the process environment, falling back to a local ``.env``
file. Use :func:`get_settings` rather than instantiating :class:`Settings`
directly so the whole process shares one snapshot.
"""

import logging
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Assessment core settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ============= Generative Service =============
    GROQ_API_KEY: Optional[SecretStr] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    LLM_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    LLM_RETRY_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    # ============= Cache =============
    CACHE_TTL_MINUTES: int = Field(default=60, ge=0)

    # ============= Question Generation =============
    RESPONSE_LANGUAGE: str = "English"
    MAX_QUESTIONS_PER_REQUEST: int = Field(default=10, ge=1)
    DEFAULT_QUESTION_POINTS: float = Field(default=10.0, gt=0)

    # ============= Logging =============
    LOG_LEVEL: str = "INFO"

    @property
    def cache_ttl_seconds(self) -> float:
        return self.CACHE_TTL_MINUTES * 60.0


@lru_cache()
def get_settings() -> Settings:
    load_dotenv()
    return Settings()


_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a single stream handler to the ``assessment`` logger."""
    logger = logging.getLogger("assessment")
    logger.setLevel((level or get_settings().LOG_LEVEL).upper())
    if not any(getattr(h, "_assessment_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._assessment_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
