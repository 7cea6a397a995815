from __future__ import annotations

import json

import pytest

from config.registry import TEXT_MODEL_KEY, bind_model
from interview_flow import fallbacks
from interview_flow.controller import PhaseController, PhaseTransitionError
from interview_flow.interviewer import Interviewer
from interview_flow.models import Phase
from storage.sessions import InMemorySessionStore, SessionNotFoundError
from storage.transitions import list_phase_transitions


@pytest.fixture
def controller(tmp_db):
    return PhaseController(
        InMemorySessionStore(),
        Interviewer(backoff_s=0, sleep=lambda _: None),
        total_questions=5,
        candidate_question_limit=1,
        max_follow_ups=1,
        audit_db_path=tmp_db,
    )


def _to_questions(controller):
    interview_id = controller.start().interview_id
    controller.explain(interview_id)
    controller.first_question(interview_id)
    return interview_id


def test_start_creates_welcome_session(controller):
    outcome = controller.start()
    assert outcome.phase == Phase.WELCOME
    assert outcome.interview_id.startswith("interview_")
    state = controller.store.get(outcome.interview_id)
    assert state.messages[0].kind == "welcome"
    assert state.phase_history == [Phase.WELCOME]


def test_unknown_interview_raises_not_found(controller):
    with pytest.raises(SessionNotFoundError):
        controller.explain("missing")
    with pytest.raises(SessionNotFoundError):
        controller.first_question("missing")
    with pytest.raises(SessionNotFoundError):
        controller.conversation("missing")


def test_wrong_phase_raises_transition_error(controller):
    interview_id = controller.start().interview_id
    with pytest.raises(PhaseTransitionError) as excinfo:
        controller.first_question(interview_id)
    assert excinfo.value.current == Phase.WELCOME
    controller.explain(interview_id)
    with pytest.raises(PhaseTransitionError):
        controller.explain(interview_id)


def test_failed_operation_leaves_session_untouched(controller):
    interview_id = controller.start().interview_id
    with pytest.raises(PhaseTransitionError):
        controller.farewell(interview_id)
    state = controller.store.get(interview_id)
    assert state.phase == Phase.WELCOME
    assert len(state.messages) == 1


def test_five_answers_transition_exactly_once(controller, fake_model):
    interview_id = _to_questions(controller)
    outcomes = [controller.analyze_and_respond(interview_id, f"Answer number {n} with details.") for n in range(1, 6)]

    assert [o.question_number for o in outcomes] == [1, 2, 3, 4, 5]
    assert all(o.next_question for o in outcomes[:4])
    assert outcomes[4].next_question is None
    assert [o.should_transition_to_candidate_questions for o in outcomes] == [False, False, False, False, True]
    assert outcomes[4].phase == Phase.CANDIDATE_QUESTIONS

    state = controller.store.get(interview_id)
    assert state.phase_history.count(Phase.CANDIDATE_QUESTIONS) == 1
    assert state.question_count == 5

    with pytest.raises(PhaseTransitionError):
        controller.analyze_and_respond(interview_id, "One more answer.")


def test_question_five_never_gets_next_question_even_if_model_insists(controller):
    def stubborn(*, prompt):
        if "QUESTION NUMBER" in prompt:
            return json.dumps(
                {
                    "comment": "Thanks, that was a detailed and thoughtful answer about your team.",
                    "shouldAskFollowUp": False,
                    "nextQuestion": "Here is a sixth question that should never be asked?",
                }
            )
        return "Hello and welcome, I am glad you could join me for this conversation today."

    bind_model(TEXT_MODEL_KEY, stubborn)
    interview_id = _to_questions(controller)
    for n in range(4):
        controller.analyze_and_respond(interview_id, f"answer {n}")
    last = controller.analyze_and_respond(interview_id, "final answer")
    assert last.question_number == 5
    assert last.next_question is None
    assert last.should_transition_to_candidate_questions is True
    questions = [m for m in controller.store.get(interview_id).messages if m.kind == "question"]
    assert len(questions) == 5


def test_follow_up_keeps_count_and_limit_is_enforced(controller):
    follow_up = "Could you give a concrete example of that decision?"

    def curious(*, prompt):
        if "QUESTION NUMBER" in prompt:
            return json.dumps(
                {
                    "comment": "Interesting, the scaling work you described sounds challenging.",
                    "shouldAskFollowUp": True,
                    "followUpQuestion": follow_up,
                    "nextQuestion": "What motivates you most in your daily work?",
                }
            )
        return "Hello and welcome, I am glad you could join me for this conversation today."

    bind_model(TEXT_MODEL_KEY, curious)
    interview_id = _to_questions(controller)

    first = controller.analyze_and_respond(interview_id, "short")
    assert first.should_ask_follow_up is True
    assert first.follow_up_question == follow_up
    assert first.next_question is None
    assert first.question_number == 1

    second = controller.analyze_and_respond(interview_id, "longer answer")
    assert second.should_ask_follow_up is False
    assert second.question_number == 1
    assert second.next_question == "What motivates you most in your daily work?"
    assert controller.store.get(interview_id).question_count == 2


def test_simulation_mode_runs_on_fallback_questions(controller):
    interview_id = _to_questions(controller)
    outcome = controller.analyze_and_respond(interview_id, "I have five years of backend experience.")
    assert outcome.comment == fallbacks.FALLBACK_COMMENT
    assert outcome.next_question == fallbacks.fallback_question(1)


def _to_candidate_questions(controller):
    interview_id = _to_questions(controller)
    for n in range(5):
        controller.analyze_and_respond(interview_id, f"answer {n}")
    return interview_id


def test_candidate_phase_and_completion(controller):
    interview_id = _to_candidate_questions(controller)

    invitation = controller.transition_to_candidate_questions(interview_id)
    assert invitation.message == fallbacks.TRANSITION_MESSAGE
    with pytest.raises(PhaseTransitionError):
        controller.transition_to_candidate_questions(interview_id)

    answer = controller.answer_candidate_question(interview_id, "What does the team work on?")
    assert answer.question_count == 1
    assert answer.should_say_farewell is True
    with pytest.raises(PhaseTransitionError):
        controller.answer_candidate_question(interview_id, "And the salary?")

    farewell = controller.farewell(interview_id)
    assert farewell.phase == Phase.FAREWELL
    done = controller.complete(interview_id)
    assert done.phase == Phase.COMPLETED
    assert done.evaluation_url == f"/evaluation/{interview_id}"
    assert done.message == fallbacks.COMPLETION_MESSAGE

    state = controller.store.get(interview_id)
    assert state.phase_history == [
        Phase.WELCOME,
        Phase.EXPLANATION,
        Phase.QUESTIONS,
        Phase.CANDIDATE_QUESTIONS,
        Phase.FAREWELL,
        Phase.COMPLETED,
    ]


def test_evaluation_only_after_completion_and_cached(controller):
    calls = []

    def evaluator(session, **_):
        calls.append(session.interview_id)
        return {"score": 7, "feedback": "Good."}

    controller._evaluator = evaluator
    interview_id = _to_candidate_questions(controller)
    with pytest.raises(PhaseTransitionError):
        controller.evaluation(interview_id)
    controller.farewell(interview_id)
    controller.complete(interview_id)

    assert controller.evaluation(interview_id)["score"] == 7
    assert controller.evaluation(interview_id)["score"] == 7
    assert calls == [interview_id]


def test_transitions_are_audited(controller):
    interview_id = _to_questions(controller)
    records = list_phase_transitions(interview_id, limit=10)
    assert [r.to_phase for r in reversed(records)] == ["WELCOME", "EXPLANATION", "QUESTIONS"]
    assert records[0].trigger == "first_question"


def test_conversation_snapshot_reports_counts(controller, fake_model):
    interview_id = _to_questions(controller)
    controller.analyze_and_respond(interview_id, "An answer about my work.")
    snapshot = controller.conversation(interview_id)
    assert snapshot.question_count == 2
    assert snapshot.derived_question_count == 2
    assert snapshot.phase == Phase.QUESTIONS
    assert [m.role for m in snapshot.messages][-3:] == ["user", "assistant", "assistant"]


def test_derived_count_ignores_comments_after_follow_up(controller, caplog):
    turns = []

    def curious(*, prompt):
        if "QUESTION NUMBER" in prompt and not turns:
            turns.append(prompt)
            return json.dumps(
                {
                    "comment": "Interesting, the scaling work you described sounds challenging.",
                    "shouldAskFollowUp": True,
                    "followUpQuestion": "Could you give a concrete example of that decision?",
                    "nextQuestion": None,
                }
            )
        if "QUESTION NUMBER" in prompt:
            return json.dumps(
                {
                    "comment": "Thanks, that example makes the trade-off you faced very clear.",
                    "shouldAskFollowUp": False,
                    "nextQuestion": "What motivates you most in your daily work?",
                }
            )
        return "Hello and welcome, I am glad you could join me for this conversation today."

    bind_model(TEXT_MODEL_KEY, curious)
    interview_id = _to_questions(controller)
    caplog.set_level("DEBUG", logger="interview_flow.controller")

    controller.analyze_and_respond(interview_id, "short")
    controller.analyze_and_respond(interview_id, "longer answer with an example")

    snapshot = controller.conversation(interview_id)
    assert snapshot.question_count == 2
    assert snapshot.derived_question_count == 3
    assert "differs from explicit" not in caplog.text
