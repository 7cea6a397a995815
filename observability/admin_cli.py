"""Lightweight CLI helpers for inspecting interview phase data."""
from __future__ import annotations

import argparse
from typing import Optional

from config.settings import settings
from storage.sessions import SessionNotFoundError, SqliteSessionStore
from storage.transitions import list_phase_transitions


def tail_transitions(limit: int = 20, interview_id: Optional[str] = None) -> None:
    for record in list_phase_transitions(interview_id, limit, db_path=settings.DB_PATH):
        print(
            f"[{record.timestamp}] {record.interview_id} {record.from_phase or '-'} -> {record.to_phase} "
            f"questions={record.question_count} trigger={record.trigger}"
        )


def print_conversation(interview_id: str) -> int:
    store = SqliteSessionStore(settings.DB_PATH)
    try:
        state = store.get(interview_id)
    except SessionNotFoundError:
        print(f"interview not found: {interview_id}")
        return 1
    print(f"{state.interview_id} phase={state.phase.value} questions={state.question_count}")
    for message in state.messages:
        print(f"  {message.role:>9} [{message.kind or '-'}] {message.content}")
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--tail-transitions", type=int, help="Show the latest phase transitions")
    parser.add_argument("--interview", help="Limit transitions to one interview id")
    parser.add_argument("--conversation", help="Print a stored conversation (sqlite backend)")
    args = parser.parse_args(argv)

    if args.tail_transitions:
        tail_transitions(args.tail_transitions, args.interview)
    if args.conversation:
        return print_conversation(args.conversation)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
