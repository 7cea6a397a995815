from __future__ import annotations

import logging
import time
from textwrap import dedent
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from config import TEXT_MODEL_KEY, get_model, has_model
from interview_flow.models import ConversationMessage, InterviewSessionState
from interview_flow.parser import ResponseParseError, extract_json_object
from llm_gateway import RetriesExhaustedError, with_retries
from observability import log_event, span

logger = logging.getLogger(__name__)

FALLBACK_FEEDBACK = "Clear and well structured answers. Solid knowledge of the topic comes through."
FALLBACK_STRENGTHS = ["Clear and direct communication", "Shows technical knowledge"]
FALLBACK_IMPROVEMENTS = ["Add more specific examples", "Consider scalability aspects"]


class QuestionAnswer(BaseModel):  # One interviewer question and the candidate's answer
    question: str
    answer: str


class InterviewEvaluation(BaseModel):  # Final report for a completed interview
    score: int = Field(ge=1, le=10)
    feedback: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    technical_accuracy: int = Field(ge=1, le=10)
    communication_clarity: int = Field(ge=1, le=10)
    completeness: int = Field(ge=1, le=10)
    answered_questions: int = Field(default=0, ge=0)
    fallback: bool = False


def answered_pairs(messages: Sequence[ConversationMessage]) -> List[QuestionAnswer]:  # Pair answers with the question they reply to
    pairs: List[QuestionAnswer] = []
    question = ""
    for message in messages:
        if message.role == "assistant" and message.kind in ("question", "follow_up"):
            question = message.content
        elif message.role == "user" and message.kind == "answer":
            pairs.append(QuestionAnswer(question=question, answer=message.content))
    return pairs


def evaluate_interview(
    session: InterviewSessionState,
    *,
    attempts: int = 3,
    backoff_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> InterviewEvaluation:
    """Score the answered questions of ``session`` with the bound text model.

    Falls back to a word-count based report when no model is bound or every
    attempt fails.
    """

    pairs = answered_pairs(session.messages)
    return _score(
        "evaluation",
        _build_task(pairs),
        pairs,
        request_id=session.interview_id,
        attempts=attempts,
        backoff_s=backoff_s,
        sleep=sleep,
    )


def evaluate_answer(
    question: str,
    answer: str,
    job_role: str = "software developer",
    *,
    experience_level: Optional[str] = None,
    request_id: str = "-",
    attempts: int = 3,
    backoff_s: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> InterviewEvaluation:
    """Score a single answer to ``question`` for ``job_role``, outside any session."""

    pair = QuestionAnswer(question=question, answer=answer)
    return _score(
        "answer_evaluation",
        _build_answer_task(pair, job_role, experience_level),
        [pair],
        request_id=request_id,
        attempts=attempts,
        backoff_s=backoff_s,
        sleep=sleep,
    )


def _score(
    label: str,
    task: str,
    pairs: Sequence[QuestionAnswer],
    *,
    request_id: str,
    attempts: int,
    backoff_s: float,
    sleep: Callable[[float], None],
) -> InterviewEvaluation:
    if not has_model(TEXT_MODEL_KEY):
        log_event("llm_fallback", request_id, label=label, outcome="simulation")
        return fallback_evaluation(pairs)

    model = get_model(TEXT_MODEL_KEY)

    def _attempt() -> InterviewEvaluation:
        return parse_evaluation(model(prompt=task), answered=len(pairs))

    try:
        with span(label, request_id):
            return with_retries(_attempt, attempts=attempts, backoff_s=backoff_s, sleep=sleep, label=label)
    except RetriesExhaustedError as exc:
        logger.error("%s exhausted %d attempts: %s", label, exc.attempts, exc.last_error)
        log_event(
            "llm_fallback",
            request_id,
            level=logging.ERROR,
            label=label,
            attempt=exc.attempts,
            outcome="retries_exhausted",
        )
        return fallback_evaluation(pairs)

    model = get_model(TEXT_MODEL_KEY)
    task = _build_task(pairs)

    def _attempt() -> InterviewEvaluation:
        return parse_evaluation(model(prompt=task), answered=len(pairs))

    try:
        with span("evaluation", session.interview_id):
            return with_retries(_attempt, attempts=attempts, backoff_s=backoff_s, sleep=sleep, label="evaluation")
    except RetriesExhaustedError as exc:
        logger.error("evaluation exhausted %d attempts: %s", exc.attempts, exc.last_error)
        log_event(
            "llm_fallback",
            session.interview_id,
            level=logging.ERROR,
            label="evaluation",
            attempt=exc.attempts,
            outcome="retries_exhausted",
        )
        return fallback_evaluation(pairs)


def parse_evaluation(text: str, *, answered: int = 0) -> InterviewEvaluation:  # Validate a model reply
    data = extract_json_object(text)
    if data is None:
        raise ResponseParseError("no JSON object in evaluation reply")
    data["answered_questions"] = answered
    data.pop("fallback", None)
    return InterviewEvaluation.model_validate(data)


def fallback_evaluation(pairs: Sequence[QuestionAnswer]) -> InterviewEvaluation:
    words = sum(len(pair.answer.split()) for pair in pairs)
    score = min(10, max(1, words // 10))
    return InterviewEvaluation(
        score=score,
        feedback=FALLBACK_FEEDBACK,
        strengths=list(FALLBACK_STRENGTHS),
        improvements=list(FALLBACK_IMPROVEMENTS),
        technical_accuracy=score,
        communication_clarity=min(10, score + 1),
        completeness=max(1, score - 1),
        answered_questions=len(pairs),
        fallback=True,
    )


_REPLY_FORMAT = dedent(
    """
    Reply with EXACTLY this JSON object and nothing else:
    {
      "score": <integer 1-10>,
      "feedback": "<overall feedback, at most 100 words>",
      "strengths": ["<strength 1>", "<strength 2>"],
      "improvements": ["<improvement 1>", "<improvement 2>"],
      "technical_accuracy": <integer 1-10>,
      "communication_clarity": <integer 1-10>,
      "completeness": <integer 1-10>
    }
    """
).strip()


def _build_task(pairs: Sequence[QuestionAnswer]) -> str:  # Compose evaluation prompt
    transcript = "\n\n".join(
        f"QUESTION {index}: {pair.question}\nANSWER {index}: {pair.answer}"
        for index, pair in enumerate(pairs, start=1)
    ) or "(the candidate gave no answers)"
    header = dedent(
        """
        You are an expert evaluator of job interviews. Evaluate the candidate's
        answers below using these criteria:
        1. Technical accuracy (1-10)
        2. Communication clarity (1-10)
        3. Completeness of the answers (1-10)
        """
    ).strip()
    return f"{header}\n\n{transcript}\n\n{_REPLY_FORMAT}"


def _build_answer_task(pair: QuestionAnswer, job_role: str, experience_level: Optional[str]) -> str:
    candidate = f"{experience_level} {job_role}" if experience_level else job_role
    header = (
        f"You are an expert evaluator of technical interviews. Evaluate this answer from a "
        f"candidate for the role of {candidate} using technical accuracy, communication "
        "clarity and completeness (each 1-10)."
    )
    return f'{header}\n\nQUESTION: "{pair.question}"\n\nCANDIDATE ANSWER: "{pair.answer}"\n\n{_REPLY_FORMAT}'


__all__ = [
    "InterviewEvaluation",
    "QuestionAnswer",
    "answered_pairs",
    "evaluate_answer",
    "evaluate_interview",
    "fallback_evaluation",
    "parse_evaluation",
]
