"""Simple span helper for timing interviewer calls."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from .logger import log_event


@contextmanager
def span(name: str, interview_id: str, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except Exception:
        outcome = "error"
        raise
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        log_event("span", interview_id, label=name, ms=elapsed_ms, outcome=outcome, **fields)


__all__ = ["span"]
