"""Audit trail of interview phase transitions."""
from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

from .sqlite import get_conn


class PhaseTransitionRecord(BaseModel):
    interview_id: str
    from_phase: Optional[str]
    to_phase: str
    question_count: int
    trigger: str
    timestamp: str = ""


def insert_phase_transition(*, db_path: Optional[str] = None, **data) -> int:
    """Insert a phase transition row and return its primary key."""

    payload = PhaseTransitionRecord(**data)
    timestamp = payload.timestamp or dt.datetime.now(dt.timezone.utc).isoformat()
    with get_conn(db_path) as conn:
        cur = conn.cursor()
        cur.execute(
            """INSERT INTO phase_transitions
               (timestamp, interview_id, from_phase, to_phase, question_count, trigger)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                timestamp,
                payload.interview_id,
                payload.from_phase,
                payload.to_phase,
                payload.question_count,
                payload.trigger,
            ),
        )
        return int(cur.lastrowid)


def list_phase_transitions(
    interview_id: Optional[str] = None, limit: int = 50, *, db_path: Optional[str] = None
) -> List[PhaseTransitionRecord]:
    """Most recent transitions first, optionally for one interview."""

    query = "SELECT timestamp, interview_id, from_phase, to_phase, question_count, trigger FROM phase_transitions"
    params: tuple = ()
    if interview_id:
        query += " WHERE interview_id = ?"
        params = (interview_id,)
    query += " ORDER BY id DESC LIMIT ?"
    params = params + (limit,)
    with get_conn(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [PhaseTransitionRecord(**dict(row)) for row in rows]


__all__ = ["PhaseTransitionRecord", "insert_phase_transition", "list_phase_transitions"]
