from __future__ import annotations  # Phase controller for the interview state machine

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from config import Settings
from interview_evaluation import evaluate_interview
from observability import log_event
from storage.sessions import SessionStore
from storage.transitions import insert_phase_transition

from . import fallbacks
from .interviewer import Interviewer
from .models import (
    AnswerContext,
    CandidateAnswerOutcome,
    CompletionOutcome,
    ConversationSnapshot,
    InterviewSessionState,
    Phase,
    PhaseMessage,
    TurnOutcome,
)
from .tracker import count_primary_questions, last_assistant_message

logger = logging.getLogger(__name__)

Evaluator = Callable[..., Any]

_EXCHANGE_KINDS = ("question", "follow_up", "answer")


class PhaseTransitionError(RuntimeError):  # Operation not allowed from the session's current phase
    def __init__(self, interview_id: str, operation: str, current: Phase, allowed: Sequence[Phase], reason: str = "") -> None:
        self.interview_id = interview_id
        self.operation = operation
        self.current = current
        self.allowed = list(allowed)
        expected = ", ".join(phase.value for phase in self.allowed)
        message = f"{operation} is not allowed in phase {current.value} (expected {expected})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def new_interview_id() -> str:
    return f"interview_{uuid.uuid4().hex}"


class PhaseController:
    """Drives one interview through its phases.

    Every operation loads the session under the store's per-interview lock,
    checks the current phase, asks the interviewer for its line, appends the
    messages and saves. Phases only move forward and each one is entered
    exactly once; calling an operation from the wrong phase raises
    ``PhaseTransitionError``.
    """

    def __init__(
        self,
        store: SessionStore,
        interviewer: Interviewer,
        *,
        total_questions: int = 5,
        candidate_question_limit: int = 1,
        max_follow_ups: int = 1,
        evaluator: Optional[Evaluator] = None,
        audit: bool = True,
        audit_db_path: Optional[str] = None,
        id_factory: Callable[[], str] = new_interview_id,
    ) -> None:
        self.store = store
        self.interviewer = interviewer
        self.total_questions = total_questions
        self.candidate_question_limit = candidate_question_limit
        self.max_follow_ups = max_follow_ups
        self._evaluator = evaluator or evaluate_interview
        self._audit = audit
        self._audit_db_path = audit_db_path
        self._id_factory = id_factory

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: SessionStore,
        *,
        interviewer: Optional[Interviewer] = None,
        **overrides: Any,
    ) -> "PhaseController":
        params: Dict[str, Any] = dict(
            total_questions=settings.TOTAL_QUESTIONS,
            candidate_question_limit=settings.CANDIDATE_QUESTION_LIMIT,
            max_follow_ups=settings.MAX_FOLLOW_UPS_PER_QUESTION,
            audit_db_path=settings.DB_PATH,
        )
        params.update(overrides)
        return cls(store, interviewer or Interviewer.from_settings(settings), **params)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def start(self) -> PhaseMessage:
        interview_id = self._id_factory()
        state = InterviewSessionState(interview_id=interview_id)
        welcome = self.interviewer.welcome(interview_id=interview_id)
        state.append("assistant", welcome, "welcome")
        self.store.create(state)
        self._record(state, None, Phase.WELCOME, trigger="start")
        return self._phase_message(state, welcome)

    def explain(self, interview_id: str) -> PhaseMessage:
        with self._session(interview_id) as state:
            self._require(state, "explanation", Phase.WELCOME)
            text = self.interviewer.explanation(interview_id=interview_id)
            state.append("assistant", text, "explanation")
            self._advance(state, Phase.EXPLANATION, trigger="explanation")
        return self._phase_message(state, text)

    def first_question(self, interview_id: str) -> PhaseMessage:
        with self._session(interview_id) as state:
            self._require(state, "first_question", Phase.EXPLANATION)
            question = self.interviewer.first_question(interview_id=interview_id)
            state.append("assistant", question, "question")
            state.question_count = 1
            state.follow_ups_for_current = 0
            self._advance(state, Phase.QUESTIONS, trigger="first_question")
        return self._phase_message(state, question)

    def analyze_and_respond(self, interview_id: str, user_response: str) -> TurnOutcome:
        """Record an answer, comment on it and ask the follow-up or next question.

        The explicit ``question_count`` decides the question number. Once the
        answer to the last question is in, no further question is asked and
        the session moves to ``CANDIDATE_QUESTIONS``.
        """

        with self._session(interview_id) as state:
            self._require(state, "analyze_and_respond", Phase.QUESTIONS)
            question_number = state.question_count
            is_last = question_number >= self.total_questions
            follow_up_allowed = (
                state.follow_ups_for_current < self.max_follow_ups
                and question_number < self.total_questions - 1
            )
            context = AnswerContext(
                user_response=user_response,
                current_question=last_assistant_message(state.messages) or "",
                question_number=question_number,
                total_questions=self.total_questions,
                conversation_history=state.history(),
                follow_up_allowed=follow_up_allowed,
            )
            state.append("user", user_response, "answer")
            derived = self._derived_question_count(state)
            follow_ups_asked = sum(1 for m in state.messages if m.kind == "follow_up")
            if derived - follow_ups_asked != question_number:
                logger.debug(
                    "Derived question count %d (%d follow-ups) differs from explicit %d interview=%s",
                    derived,
                    follow_ups_asked,
                    question_number,
                    interview_id,
                )

            result = self.interviewer.analyze_and_respond(context, interview_id=interview_id)
            state.append("assistant", result.comment, "comment")

            follow_up: Optional[str] = None
            next_question: Optional[str] = None
            if is_last:
                if result.next_question or result.should_ask_follow_up:
                    log_event(
                        "last_question_guard",
                        interview_id,
                        level=logging.WARNING,
                        question_number=question_number,
                        outcome="next_question_dropped",
                    )
            elif result.should_ask_follow_up and result.follow_up_question and follow_up_allowed:
                follow_up = result.follow_up_question
                state.append("assistant", follow_up, "follow_up")
                state.follow_ups_for_current += 1
            else:
                next_question = result.next_question or fallbacks.fallback_question(question_number)
                state.append("assistant", next_question, "question")
                state.question_count += 1
                state.follow_ups_for_current = 0

            if is_last:
                self._advance(state, Phase.CANDIDATE_QUESTIONS, trigger="last_answer")

            log_event(
                "turn",
                interview_id,
                question_number=question_number,
                outcome="follow_up" if follow_up else ("next_question" if next_question else "last_answer"),
                fallback=result.fallback,
            )
        return TurnOutcome(
            interview_id=interview_id,
            comment=result.comment,
            should_ask_follow_up=follow_up is not None,
            follow_up_question=follow_up,
            should_continue_to_next=follow_up is None,
            next_question=next_question,
            reasoning=result.reasoning,
            question_number=question_number,
            total_questions=self.total_questions,
            should_transition_to_candidate_questions=is_last,
            phase=state.phase,
        )

    def transition_to_candidate_questions(self, interview_id: str) -> PhaseMessage:
        with self._session(interview_id) as state:
            self._require(state, "transition_to_candidate_questions", Phase.CANDIDATE_QUESTIONS)
            if state.invitation_sent:
                raise PhaseTransitionError(
                    interview_id,
                    "transition_to_candidate_questions",
                    state.phase,
                    [Phase.CANDIDATE_QUESTIONS],
                    reason="invitation already sent",
                )
            text = self.interviewer.transition_to_candidate_questions(interview_id=interview_id)
            state.append("assistant", text, "transition")
            state.invitation_sent = True
            log_event("candidate_invitation", interview_id, phase=state.phase.value)
        return self._phase_message(state, text)

    def answer_candidate_question(self, interview_id: str, question: str) -> CandidateAnswerOutcome:
        with self._session(interview_id) as state:
            self._require(state, "answer_candidate_question", Phase.CANDIDATE_QUESTIONS)
            if state.candidate_question_count >= self.candidate_question_limit:
                raise PhaseTransitionError(
                    interview_id,
                    "answer_candidate_question",
                    state.phase,
                    [Phase.CANDIDATE_QUESTIONS],
                    reason="candidate question limit reached",
                )
            history = state.history()
            state.append("user", question, "candidate_question")
            answer = self.interviewer.answer_candidate_question(question, history, interview_id=interview_id)
            state.append("assistant", answer, "candidate_answer")
            state.candidate_question_count += 1
        return CandidateAnswerOutcome(
            interview_id=interview_id,
            answer=answer,
            question_count=state.candidate_question_count,
            question_limit=self.candidate_question_limit,
            should_say_farewell=state.candidate_question_count >= self.candidate_question_limit,
            phase=state.phase,
        )

    def farewell(self, interview_id: str) -> PhaseMessage:
        with self._session(interview_id) as state:
            self._require(state, "farewell", Phase.CANDIDATE_QUESTIONS)
            text = self.interviewer.farewell(interview_id=interview_id)
            state.append("assistant", text, "farewell")
            self._advance(state, Phase.FAREWELL, trigger="farewell")
        return self._phase_message(state, text)

    def complete(self, interview_id: str) -> CompletionOutcome:
        with self._session(interview_id) as state:
            self._require(state, "complete", Phase.FAREWELL)
            self._advance(state, Phase.COMPLETED, trigger="complete")
        return CompletionOutcome(
            interview_id=interview_id,
            phase=state.phase,
            message=fallbacks.COMPLETION_MESSAGE,
            conversation_length=len(state.messages),
            evaluation_url=f"/evaluation/{interview_id}",
        )

    def conversation(self, interview_id: str) -> ConversationSnapshot:
        state = self.store.get(interview_id)
        return ConversationSnapshot(
            interview_id=state.interview_id,
            phase=state.phase,
            question_count=state.question_count,
            derived_question_count=self._derived_question_count(state),
            candidate_question_count=state.candidate_question_count,
            total_questions=self.total_questions,
            phase_history=list(state.phase_history),
            messages=list(state.messages),
            created_at=state.created_at,
            updated_at=state.updated_at,
        )

    def evaluation(self, interview_id: str) -> Dict[str, Any]:
        """Evaluate a completed interview once and cache the report on the session."""

        with self._session(interview_id) as state:
            self._require(state, "evaluation", Phase.COMPLETED)
            if state.evaluation is None:
                state.evaluation = self._evaluate(state)
                log_event("evaluation", interview_id, phase=state.phase.value, outcome="generated")
            return dict(state.evaluation)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @contextmanager
    def _session(self, interview_id: str) -> Iterator[InterviewSessionState]:
        with self.store.lock(interview_id):
            state = self.store.get(interview_id)
            yield state
            state.updated_at = datetime.now(timezone.utc).isoformat()
            self.store.save(state)

    def _require(self, state: InterviewSessionState, operation: str, *allowed: Phase) -> None:
        if state.phase not in allowed:
            log_event(
                "phase_rejected",
                state.interview_id,
                level=logging.WARNING,
                phase=state.phase.value,
                label=operation,
            )
            raise PhaseTransitionError(state.interview_id, operation, state.phase, allowed)

    def _advance(self, state: InterviewSessionState, to_phase: Phase, *, trigger: str) -> None:
        from_phase = state.phase
        if to_phase in state.phase_history:
            raise PhaseTransitionError(state.interview_id, trigger, from_phase, [], reason=f"{to_phase.value} already entered")
        state.phase = to_phase
        state.phase_history.append(to_phase)
        self._record(state, from_phase, to_phase, trigger=trigger)

    def _record(self, state: InterviewSessionState, from_phase: Optional[Phase], to_phase: Phase, *, trigger: str) -> None:
        log_event(
            "phase_transition",
            state.interview_id,
            from_phase=from_phase.value if from_phase else None,
            to_phase=to_phase.value,
            question_number=state.question_count,
            label=trigger,
        )
        if not self._audit:
            return
        try:
            insert_phase_transition(
                db_path=self._audit_db_path,
                interview_id=state.interview_id,
                from_phase=from_phase.value if from_phase else None,
                to_phase=to_phase.value,
                question_count=state.question_count,
                trigger=trigger,
            )
        except sqlite3.Error as exc:
            logger.warning("Unable to write phase transition audit for %s: %s", state.interview_id, exc)

    def _derived_question_count(self, state: InterviewSessionState) -> int:
        # Comments and candidate-phase lines are not interview questions; follow-ups still count.
        exchange = [m for m in state.messages if m.kind in _EXCHANGE_KINDS]
        return count_primary_questions(exchange)

    def _evaluate(self, state: InterviewSessionState) -> Dict[str, Any]:
        report = self._evaluator(
            state,
            attempts=self.interviewer.attempts,
            backoff_s=self.interviewer.backoff_s,
            sleep=self.interviewer.sleep,
        )
        if hasattr(report, "model_dump"):
            return report.model_dump()
        return dict(report)

    def _phase_message(self, state: InterviewSessionState, text: str) -> PhaseMessage:
        return PhaseMessage(
            interview_id=state.interview_id,
            phase=state.phase,
            message=text,
            question_count=state.question_count,
        )


__all__ = ["PhaseController", "PhaseTransitionError", "new_interview_id"]
