"""Exception handlers mapping controller errors to JSON responses."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.schemas import ErrorResp, FieldError
from interview_flow.controller import PhaseTransitionError
from storage.sessions import SessionLockTimeout, SessionNotFoundError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _respond(status_code: int, body: ErrorResp) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump(by_alias=True, exclude_none=True)),
    )


def _field_errors(errors: List[Any]) -> List[FieldError]:
    result: List[FieldError] = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        result.append(FieldError(field=".".join(loc) or "body", message=error.get("msg", "invalid value")))
    return result


async def session_not_found_handler(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    return _respond(
        404,
        ErrorResp(message="Interview not found", interview_id=exc.interview_id, timestamp=_now()),
    )


async def phase_transition_handler(request: Request, exc: PhaseTransitionError) -> JSONResponse:
    return _respond(
        409,
        ErrorResp(message=str(exc), interview_id=exc.interview_id, phase=exc.current, timestamp=_now()),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _respond(
        400,
        ErrorResp(message="Invalid request", errors=_field_errors(exc.errors()), timestamp=_now()),
    )


async def lock_timeout_handler(request: Request, exc: SessionLockTimeout) -> JSONResponse:
    return _respond(503, ErrorResp(message="Interview is busy, retry shortly", timestamp=_now()))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _respond(500, ErrorResp(message="Internal server error", timestamp=_now()))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
    app.add_exception_handler(PhaseTransitionError, phase_transition_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SessionLockTimeout, lock_timeout_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = ["register_error_handlers"]
