"""Configuration package for the interview service."""
from .llm import AppConfig, LlmRoute, load_config, resolve_default_route, route_from_settings
from .registry import TEXT_MODEL_KEY, bind_model, get_model, has_model, unbind_model
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "load_config",
    "resolve_default_route",
    "route_from_settings",
    "TEXT_MODEL_KEY",
    "bind_model",
    "get_model",
    "has_model",
    "unbind_model",
    "Settings",
    "settings",
]
