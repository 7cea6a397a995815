"""Application factory for the interview phase API."""
from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_error_handlers
from api.routes import health_router, practice_router, router
from config import TEXT_MODEL_KEY, Settings, bind_model, route_from_settings, settings as default_settings
from llm_gateway import generate_text
from observability import configure_logging
from services.sessions import build_controller
from storage.migrate import migrate
from storage.sessions import SessionStore


logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, *, store: Optional[SessionStore] = None) -> FastAPI:  # Build the application
    settings = settings or default_settings
    configure_logging()

    app = FastAPI(title="Interview Phase API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    route = route_from_settings(settings)
    if route is not None:
        bind_model(TEXT_MODEL_KEY, partial(generate_text, cfg=route))
        logger.info("Text model bound: provider=%s model=%s", route.provider, route.model)
    else:
        logger.warning("No LLM API key configured, interviewer runs in simulation mode")

    migrate(settings.DB_PATH)
    app.state.controller = build_controller(settings, store=store)
    app.state.llm_provider = route.provider if route else None

    register_error_handlers(app)
    app.include_router(router)
    app.include_router(health_router)
    app.include_router(practice_router)
    return app


__all__ = ["create_app"]
