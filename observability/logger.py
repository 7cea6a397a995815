"""Structured event logging for the interview phase controller."""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
import time
import uuid
from typing import Any

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENABLE_FILE_LOGS = os.getenv("ENABLE_FILE_LOGS", "1") in ("1", "true", "True")
LOG_FILE = os.getenv("LOG_FILE", "logs/interview.log")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", "5242880"))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

HUMAN_FORMAT = "[%(asctime)s] %(levelname)s %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_events = logging.getLogger("interview.events")
_events.setLevel(LOG_LEVEL)
_events.propagate = False


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Attach a stdout handler to the root logger once so module loggers show up."""

    root = logging.getLogger()
    if any(getattr(handler, "_interview_console", False) for handler in root.handlers):
        return
    console = logging.StreamHandler(stream=sys.stdout)
    console.setFormatter(logging.Formatter(HUMAN_FORMAT, datefmt=DATE_FORMAT))
    console._interview_console = True  # type: ignore[attr-defined]
    root.addHandler(console)
    root.setLevel(level)


def _ensure_handlers() -> None:
    if _events.handlers:
        return

    console = logging.StreamHandler(stream=sys.stdout)
    console.setLevel(LOG_LEVEL)
    console.setFormatter(logging.Formatter(HUMAN_FORMAT, datefmt=DATE_FORMAT))
    console.addFilter(lambda record: getattr(record, "is_json", False) is not True)
    _events.addHandler(console)

    if not ENABLE_FILE_LOGS:
        return

    log_dir = os.path.dirname(LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    # One JSON object per line, for ingestion
    json_file = logging.handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
    )
    json_file.setLevel(LOG_LEVEL)
    json_file.setFormatter(logging.Formatter("%(message)s"))
    json_file.addFilter(lambda record: getattr(record, "is_json", False) is True)
    _events.addHandler(json_file)


def _format_human(evt: dict[str, Any]) -> str:
    base = f"interview={evt.get('interview_id')} kind={evt.get('kind')}"
    extras: list[str] = []
    for key in ("phase", "from_phase", "to_phase", "label", "attempt", "question_number", "ms", "outcome"):
        if key in evt:
            extras.append(f"{key}={evt[key]}")
    return base + (" " + " ".join(extras) if extras else "")


def _emit(level: int, message: str, *, is_json: bool) -> None:
    record = _events.makeRecord(
        name=_events.name,
        level=level,
        fn="",
        lno=0,
        msg=message,
        args=(),
        exc_info=None,
    )
    record.is_json = is_json  # type: ignore[attr-defined]
    _events.handle(record)


def log_event(kind: str, interview_id: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a human line to stdout and, when enabled, a JSON line to the log file."""

    _ensure_handlers()

    payload: dict[str, Any] = {
        "ts": time.time(),
        "trace": str(uuid.uuid4()),
        "kind": kind,
        "interview_id": interview_id,
    }
    payload.update(fields)

    _emit(level, _format_human(payload), is_json=False)
    if ENABLE_FILE_LOGS:
        _emit(level, json.dumps(payload, ensure_ascii=False, default=str), is_json=True)


__all__ = ["configure_logging", "log_event"]
