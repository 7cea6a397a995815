"""Application settings and configuration management."""
from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    LLM_PROVIDER: Literal["auto", "gemini", "openai"] = "auto"
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    LLM_CONFIG_PATH: Optional[str] = None

    LLM_TIMEOUT_S: float = Field(default=60.0, gt=0)
    LLM_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    LLM_RETRY_BACKOFF_S: float = Field(default=1.0, ge=0)

    INTERVIEWER_NAME: str = "Zavi"
    TOTAL_QUESTIONS: int = Field(default=5, ge=1)
    CANDIDATE_QUESTION_LIMIT: int = Field(default=1, ge=1)
    MAX_FOLLOW_UPS_PER_QUESTION: int = Field(default=1, ge=0)
    HISTORY_WINDOW: int = Field(default=6, ge=1)

    SESSION_BACKEND: Literal["memory", "sqlite", "redis"] = "memory"
    DB_PATH: str = Field(default="data/interview.db")
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_S: int = Field(default=86400, ge=60)

    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", validate_assignment=True)


settings = Settings()
