"""Helpers for wiring the session store and phase controller."""
from __future__ import annotations

import logging
import math
from typing import Optional

from config.settings import Settings
from interview_flow.controller import PhaseController
from interview_flow.interviewer import Interviewer
from storage.sessions import SessionStore, build_session_store

logger = logging.getLogger(__name__)

LOCK_MARGIN_S = 60


def llm_turn_budget_s(settings: Settings) -> float:
    """Worst-case wall time of one retried model call: every attempt times out."""

    attempts = settings.LLM_MAX_ATTEMPTS
    return attempts * settings.LLM_TIMEOUT_S + (attempts - 1) * settings.LLM_RETRY_BACKOFF_S


def session_lock_ttl_s(settings: Settings) -> int:
    # A locked operation makes at most one retried model call.
    return math.ceil(llm_turn_budget_s(settings)) + LOCK_MARGIN_S


def session_store_from_settings(settings: Settings) -> SessionStore:
    """Create the store named by ``SESSION_BACKEND``."""

    store = build_session_store(
        settings.SESSION_BACKEND,
        db_path=settings.DB_PATH,
        redis_url=settings.REDIS_URL,
        ttl_s=settings.SESSION_TTL_S,
        lock_ttl_s=session_lock_ttl_s(settings),
    )
    logger.info("Session backend: %s", settings.SESSION_BACKEND)
    return store


def build_controller(
    settings: Settings,
    *,
    store: Optional[SessionStore] = None,
    interviewer: Optional[Interviewer] = None,
) -> PhaseController:
    """Assemble a controller from settings, reusing ``store`` when given."""

    return PhaseController.from_settings(
        settings,
        store if store is not None else session_store_from_settings(settings),
        interviewer=interviewer,
    )
