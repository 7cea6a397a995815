"""LLM route configuration and provider selection."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from .settings import Settings

logger = logging.getLogger(__name__)

Provider = Literal["gemini", "openai"]

GEMINI_GENERATION_DEFAULTS: Dict[str, Any] = {
    "temperature": 0.3,
    "topK": 20,
    "topP": 0.8,
    "maxOutputTokens": 2048,
}


class LlmRoute(BaseModel):
    """LLM endpoint configuration."""

    name: str
    provider: Provider
    base_url: str
    endpoint: str
    model: str
    timeout_s: float = Field(default=60.0, ge=0.1)
    api_key: Optional[str] = Field(default=None, repr=False)
    api_key_env: Optional[str] = None
    extra_headers: Dict[str, str] = Field(default_factory=dict)
    generation: Dict[str, Any] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Route file root: named routes plus the one used for interview text."""

    llm_routes: Dict[str, LlmRoute]
    default_route: str


def load_config(path: Path) -> AppConfig:
    """Load configuration from disk."""

    data = path.read_text(encoding="utf-8")
    return AppConfig.model_validate_json(data)


def resolve_default_route(cfg: AppConfig) -> LlmRoute:
    """Return the route named by ``default_route``."""

    if cfg.default_route not in cfg.llm_routes:
        raise KeyError(f"Route '{cfg.default_route}' missing from llm_routes")
    return cfg.llm_routes[cfg.default_route]


def gemini_route(settings: Settings) -> LlmRoute:
    return LlmRoute(
        name="gemini",
        provider="gemini",
        base_url=settings.GEMINI_BASE_URL,
        endpoint=f"/models/{settings.GEMINI_MODEL}:generateContent",
        model=settings.GEMINI_MODEL,
        timeout_s=settings.LLM_TIMEOUT_S,
        api_key=settings.GEMINI_API_KEY or None,
        api_key_env="GEMINI_API_KEY",
        generation=dict(GEMINI_GENERATION_DEFAULTS),
    )


def openai_route(settings: Settings) -> LlmRoute:
    return LlmRoute(
        name="openai",
        provider="openai",
        base_url=settings.OPENAI_BASE_URL,
        endpoint="/chat/completions",
        model=settings.OPENAI_MODEL,
        timeout_s=settings.LLM_TIMEOUT_S,
        api_key=settings.OPENAI_API_KEY or None,
        api_key_env="OPENAI_API_KEY",
        generation={"temperature": 0.3, "max_tokens": 2048},
    )


def route_from_settings(settings: Settings) -> Optional[LlmRoute]:
    """Pick the text-generation route.

    A JSON route file named by ``LLM_CONFIG_PATH`` wins. Otherwise ``auto``
    prefers OpenAI, then Gemini. ``None`` means no key is configured and the
    interviewer runs on its deterministic fallbacks.
    """

    if settings.LLM_CONFIG_PATH:
        return resolve_default_route(load_config(Path(settings.LLM_CONFIG_PATH)))
    provider = settings.LLM_PROVIDER
    if provider == "openai" or (provider == "auto" and settings.OPENAI_API_KEY):
        if not settings.OPENAI_API_KEY:
            logger.warning("LLM_PROVIDER=openai but OPENAI_API_KEY is empty")
            return None
        return openai_route(settings)
    if provider == "gemini" or (provider == "auto" and settings.GEMINI_API_KEY):
        if not settings.GEMINI_API_KEY:
            logger.warning("LLM_PROVIDER=gemini but GEMINI_API_KEY is empty")
            return None
        return gemini_route(settings)
    return None
