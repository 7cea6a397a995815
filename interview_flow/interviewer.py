from __future__ import annotations  # LLM-backed interviewer lines with retry and fallback

import logging
import re
import time
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from config import TEXT_MODEL_KEY, Settings, get_model, has_model
from llm_gateway import RetriesExhaustedError, strip_code_fences, with_retries
from observability import log_event, span

from . import fallbacks, prompts
from .models import AnalysisResult, AnswerContext, ExperienceLevel, PlannedQuestion, QuestionCategory
from .parser import ResponseParseError, is_complete_sentence, parse_analysis

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SELF_REFERENCE = re.compile(r"\b(as an ai|language model|ai model|as a model)\b", re.IGNORECASE)


def validate_message(text: str, *, min_chars: int, require_sentence_end: bool = False) -> str:
    """Clean a plain-text reply and enforce the minimum-content contract.

    Terminal punctuation is only demanded when ``require_sentence_end`` is set;
    greetings and farewells may close with an emoji or a colon.
    """

    cleaned = strip_code_fences(text or "").strip().strip('"').strip()
    if len(cleaned) < min_chars:
        raise ResponseParseError(f"message too short ({len(cleaned)} chars)")
    if _SELF_REFERENCE.search(cleaned):
        raise ResponseParseError("message refers to the model itself")
    if require_sentence_end and not is_complete_sentence(cleaned):
        raise ResponseParseError("message looks truncated")
    return cleaned


class Interviewer:
    """Produces every interviewer utterance.

    Each call goes through the text model bound under ``TEXT_MODEL_KEY`` with a
    bounded retry loop. When every attempt fails, or no model is bound, the
    deterministic line from ``fallbacks`` is returned instead. Upstream errors
    never escape.
    """

    def __init__(
        self,
        *,
        name: str = "Zavi",
        total_questions: int = 5,
        attempts: int = 3,
        backoff_s: float = 1.0,
        history_window: int = 6,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self.total_questions = total_questions
        self.attempts = attempts
        self.backoff_s = backoff_s
        self.history_window = history_window
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "Interviewer":
        params = dict(
            name=settings.INTERVIEWER_NAME,
            total_questions=settings.TOTAL_QUESTIONS,
            attempts=settings.LLM_MAX_ATTEMPTS,
            backoff_s=settings.LLM_RETRY_BACKOFF_S,
            history_window=settings.HISTORY_WINDOW,
        )
        params.update(overrides)
        return cls(**params)

    # ------------------------------------------------------------------
    # Phase messages
    # ------------------------------------------------------------------
    def welcome(self, *, interview_id: str) -> str:
        return self._message(
            "welcome",
            prompts.welcome_prompt(self.name),
            fallbacks.welcome_message(self.name),
            interview_id=interview_id,
            min_chars=20,
        )

    def explanation(self, *, interview_id: str) -> str:
        return self._message(
            "explanation",
            prompts.explanation_prompt(self.name, self.total_questions),
            fallbacks.explanation_message(self.total_questions),
            interview_id=interview_id,
            min_chars=20,
        )

    def first_question(self, *, interview_id: str) -> str:
        return self._message(
            "first_question",
            prompts.first_question_prompt(self.name),
            fallbacks.first_question(),
            interview_id=interview_id,
            min_chars=15,
        )

    def transition_to_candidate_questions(self, *, interview_id: str) -> str:
        return self._message(
            "transition",
            prompts.transition_prompt(self.name, self.total_questions),
            fallbacks.TRANSITION_MESSAGE,
            interview_id=interview_id,
            min_chars=20,
        )

    def answer_candidate_question(
        self, question: str, history: Sequence[Dict[str, str]], *, interview_id: str
    ) -> str:
        prompt = prompts.candidate_answer_prompt(
            question, history, interviewer=self.name, window=self.history_window
        )
        return self._message(
            "candidate_answer",
            prompt,
            fallbacks.CANDIDATE_ANSWER,
            interview_id=interview_id,
            min_chars=50,
            require_sentence_end=True,
        )

    def farewell(self, *, interview_id: str) -> str:
        return self._message(
            "farewell",
            prompts.farewell_prompt(self.name),
            fallbacks.FAREWELL_MESSAGE,
            interview_id=interview_id,
            min_chars=20,
        )

    def analyze_and_respond(self, context: AnswerContext, *, interview_id: str) -> AnalysisResult:
        """Comment on an answer and decide between follow-up and next question."""

        prompt = prompts.analyze_prompt(context, interviewer=self.name, window=self.history_window)
        result = self._generate(
            "analyze_and_respond",
            prompt,
            parse_analysis,
            interview_id=interview_id,
        )
        if result is None:
            return fallbacks.fallback_analysis(context.question_number, context.total_questions)
        return self._enforce_limits(result, context, interview_id=interview_id)

    # ------------------------------------------------------------------
    # Practice questions
    # ------------------------------------------------------------------
    def generate_question(
        self,
        job_role: str,
        level: ExperienceLevel = "mid",
        category: QuestionCategory = "technical",
        previous_questions: Sequence[str] = (),
        *,
        request_id: str = "-",
    ) -> str:
        """One role- and level-aware question that repeats none of ``previous_questions``."""

        asked = {q.strip().lower() for q in previous_questions}

        def _parse(raw: str) -> str:
            question = validate_message(raw, min_chars=15)
            if question.lower() in asked:
                raise ResponseParseError("question was already asked")
            return question

        prompt = prompts.generate_question_prompt(job_role, level, category, previous_questions)
        question = self._generate("generate_question", prompt, _parse, interview_id=request_id)
        if question is None:
            return fallbacks.bank_question(category, level, previous_questions)
        return question

    def plan_questions(
        self,
        job_role: str,
        level: ExperienceLevel = "mid",
        count: int = 5,
        category: QuestionCategory = "technical",
        *,
        request_id: str = "-",
    ) -> List[PlannedQuestion]:
        planned: List[PlannedQuestion] = []
        for order in range(1, count + 1):
            question = self.generate_question(
                job_role,
                level,
                category,
                [p.question for p in planned],
                request_id=request_id,
            )
            planned.append(PlannedQuestion(id=f"q_{order}", question=question, order=order))
        return planned

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _enforce_limits(self, result: AnalysisResult, context: AnswerContext, *, interview_id: str) -> AnalysisResult:
        update: Dict[str, object] = {}
        if context.question_number >= context.total_questions and (
            result.next_question or result.should_ask_follow_up
        ):
            logger.warning(
                "Model ignored last-question instructions interview=%s question=%d; forcing nextQuestion=null",
                interview_id,
                context.question_number,
            )
            log_event(
                "last_question_guard",
                interview_id,
                level=logging.WARNING,
                question_number=context.question_number,
                outcome="model_output_overridden",
            )
            update = {
                "next_question": None,
                "should_ask_follow_up": False,
                "follow_up_question": None,
                "should_continue_to_next": True,
                "reasoning": "last question (forced)",
            }
        elif result.should_ask_follow_up and not context.follow_up_allowed:
            update = {"should_ask_follow_up": False, "follow_up_question": None}
        return result.model_copy(update=update) if update else result

    def _message(
        self,
        label: str,
        prompt: str,
        fallback: str,
        *,
        interview_id: str,
        min_chars: int,
        require_sentence_end: bool = False,
    ) -> str:
        text = self._generate(
            label,
            prompt,
            lambda raw: validate_message(raw, min_chars=min_chars, require_sentence_end=require_sentence_end),
            interview_id=interview_id,
        )
        return fallback if text is None else text

    def _generate(
        self,
        label: str,
        prompt: str,
        parse: Callable[[str], T],
        *,
        interview_id: str,
    ) -> Optional[T]:
        if not has_model(TEXT_MODEL_KEY):
            logger.debug("No text model bound, using fallback for %s", label)
            log_event("llm_fallback", interview_id, label=label, outcome="simulation")
            return None
        model = get_model(TEXT_MODEL_KEY)

        def _attempt() -> T:
            return parse(model(prompt=prompt))

        try:
            with span(label, interview_id):
                return with_retries(
                    _attempt,
                    attempts=self.attempts,
                    backoff_s=self.backoff_s,
                    sleep=self.sleep,
                    label=label,
                )
        except RetriesExhaustedError as exc:
            logger.error("%s exhausted %d attempts: %s", label, exc.attempts, exc.last_error)
            log_event(
                "llm_fallback",
                interview_id,
                level=logging.ERROR,
                label=label,
                attempt=exc.attempts,
                outcome="retries_exhausted",
            )
            return None


__all__ = ["Interviewer", "validate_message"]
