from __future__ import annotations

import json

from config.registry import TEXT_MODEL_KEY, bind_model
from interview_flow import fallbacks
from interview_flow.interviewer import Interviewer
from interview_flow.models import AnswerContext
from llm_gateway import LlmStatusError

GOOD_COMMENT = "Thanks, your experience building Python services and designing APIs came through clearly."
GOOD_MESSAGE = "Welcome, it is a pleasure to meet you and I look forward to hearing about your experience today."


def _interviewer(sleeps):
    return Interviewer(total_questions=5, attempts=3, backoff_s=1.0, sleep=sleeps.append)


def _context(number, *, follow_up_allowed=True):
    return AnswerContext(
        user_response="I led the migration of our billing service to Python.",
        current_question="Tell me about a recent project.",
        question_number=number,
        total_questions=5,
        follow_up_allowed=follow_up_allowed,
    )


def _analysis(**overrides):
    data = {
        "comment": GOOD_COMMENT,
        "shouldAskFollowUp": False,
        "followUpQuestion": None,
        "shouldContinueToNext": True,
        "nextQuestion": "What was the hardest trade-off you made in that project?",
        "reasoning": "clear",
    }
    data.update(overrides)
    return json.dumps(data)


def test_simulation_mode_uses_fallbacks():
    sleeps = []
    interviewer = _interviewer(sleeps)
    assert interviewer.welcome(interview_id="i1") == fallbacks.welcome_message("Zavi")
    result = interviewer.analyze_and_respond(_context(2), interview_id="i1")
    assert result.fallback is True
    assert result.next_question == fallbacks.fallback_question(2)
    assert sleeps == []


def test_bound_model_message_is_used(fake_model):
    assert _interviewer([]).farewell(interview_id="i1") == fake_model.message
    assert len(fake_model.prompts) == 1


def test_three_failures_yield_fallback_never_raise():
    sleeps = []
    calls = []

    def failing(*, prompt):
        calls.append(prompt)
        raise LlmStatusError(500, "upstream down")

    bind_model(TEXT_MODEL_KEY, failing)
    result = _interviewer(sleeps).analyze_and_respond(_context(3), interview_id="i1")
    assert len(calls) == 3
    assert sleeps == [1.0, 1.0]
    assert result.comment == fallbacks.FALLBACK_COMMENT
    assert result.reasoning == fallbacks.FALLBACK_REASONING
    assert result.should_ask_follow_up is False


def test_invalid_reply_is_retried_then_accepted():
    replies = iter(["Too short", GOOD_MESSAGE])
    bind_model(TEXT_MODEL_KEY, lambda *, prompt: next(replies))
    sleeps = []
    assert _interviewer(sleeps).explanation(interview_id="i1") == GOOD_MESSAGE
    assert sleeps == [1.0]


def test_self_reference_is_rejected():
    bind_model(TEXT_MODEL_KEY, lambda *, prompt: "As an AI language model, I am happy to welcome you today.")
    assert _interviewer([]).welcome(interview_id="i1") == fallbacks.welcome_message("Zavi")


def test_last_question_guard_nulls_next_question():
    bind_model(
        TEXT_MODEL_KEY,
        lambda *, prompt: _analysis(
            shouldAskFollowUp=True, followUpQuestion="Can you expand on the deployment pipeline?"
        ),
    )
    result = _interviewer([]).analyze_and_respond(_context(5), interview_id="i1")
    assert result.next_question is None
    assert result.should_ask_follow_up is False
    assert result.follow_up_question is None
    assert result.should_continue_to_next is True


def test_last_question_fallback_has_no_next_question():
    bind_model(TEXT_MODEL_KEY, lambda *, prompt: "nope")
    result = _interviewer([]).analyze_and_respond(_context(5), interview_id="i1")
    assert result.fallback is True
    assert result.next_question is None


def test_follow_up_dropped_when_not_allowed():
    bind_model(
        TEXT_MODEL_KEY,
        lambda *, prompt: _analysis(
            shouldAskFollowUp=True, followUpQuestion="Which metrics did you track afterwards?"
        ),
    )
    result = _interviewer([]).analyze_and_respond(_context(4, follow_up_allowed=False), interview_id="i1")
    assert result.should_ask_follow_up is False
    assert result.follow_up_question is None
    assert result.next_question is not None


def test_prompt_carries_question_number(fake_model):
    _interviewer([]).analyze_and_respond(_context(2), interview_id="i1")
    assert "QUESTION NUMBER: 2 of 5" in fake_model.prompts[-1]


def test_welcome_ending_with_emoji_is_accepted_first_try():
    greeting = "Hello! I'm Zavi, your virtual interviewer, and I'm so glad to meet you today 😊"
    calls = []

    def model(*, prompt):
        calls.append(prompt)
        return greeting

    bind_model(TEXT_MODEL_KEY, model)
    sleeps = []
    assert _interviewer(sleeps).welcome(interview_id="i1") == greeting
    assert len(calls) == 1
    assert sleeps == []


def test_candidate_answer_still_requires_sentence_end():
    cut_off = "That is a great question, our engineering team ships to production several times and"
    replies = iter([cut_off, GOOD_MESSAGE + " We release weekly on a regular cadence."])
    bind_model(TEXT_MODEL_KEY, lambda *, prompt: next(replies))
    sleeps = []
    answer = _interviewer(sleeps).answer_candidate_question("How often do you release?", [], interview_id="i1")
    assert answer.endswith("cadence.")
    assert sleeps == [1.0]


def test_generated_question_repeating_history_is_retried():
    asked = "How would you design a rate limiter for a public API?"
    fresh = "How would you roll out a database schema change without downtime?"
    replies = iter([asked, fresh])
    prompts_seen = []

    def model(*, prompt):
        prompts_seen.append(prompt)
        return next(replies)

    bind_model(TEXT_MODEL_KEY, model)
    sleeps = []
    question = _interviewer(sleeps).generate_question("backend developer", "senior", "technical", [asked])
    assert question == fresh
    assert sleeps == [1.0]
    assert f"- {asked}" in prompts_seen[0]
    assert "senior backend developer" in prompts_seen[0]


def test_planned_questions_fall_back_to_distinct_bank_entries():
    planned = _interviewer([]).plan_questions("developer", "junior", 3, "situational")
    assert [p.order for p in planned] == [1, 2, 3]
    assert planned[0].question == fallbacks.QUESTION_BANK["situational"]["junior"]
    assert len({p.question for p in planned}) == 3
