"""FastAPI routes for interview phase control."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from api.schemas import (
    AnswerEvaluationResp,
    AnswerReq,
    CandidateAnswerResp,
    CandidateQuestionReq,
    CompleteResp,
    ConversationResp,
    EvaluateResponseReq,
    EvaluationResp,
    GenerateQuestionReq,
    GeneratedQuestionResp,
    HealthResp,
    InfoResp,
    MessageOut,
    PhaseResp,
    SimulateInterviewReq,
    SimulationResp,
    StateOut,
    TurnResp,
)
from config import TEXT_MODEL_KEY, has_model
from interview_evaluation import evaluate_answer
from interview_flow.controller import PhaseController
from interview_flow.models import PHASE_ORDER, PhaseMessage


router = APIRouter(prefix="/api/interviews")
health_router = APIRouter(prefix="/api")
practice_router = APIRouter(prefix="/api/ai")


def get_controller(request: Request) -> PhaseController:
    return request.app.state.controller


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _phase_resp(outcome: PhaseMessage) -> PhaseResp:
    return PhaseResp(timestamp=_now(), **outcome.model_dump())


@router.get("/", response_model=InfoResp)
def info(controller: PhaseController = Depends(get_controller)) -> InfoResp:
    return InfoResp(
        name=f"{controller.interviewer.name} interview API",
        phases=PHASE_ORDER,
        total_questions=controller.total_questions,
        endpoints={
            "start": "POST /api/interviews/start",
            "explanation": "POST /api/interviews/{id}/explanation",
            "firstQuestion": "POST /api/interviews/{id}/first-question",
            "analyzeAndRespond": "POST /api/interviews/{id}/analyze-and-respond",
            "transitionToCandidateQuestions": "POST /api/interviews/{id}/transition-to-candidate-questions",
            "answerCandidateQuestion": "POST /api/interviews/{id}/answer-candidate-question",
            "farewell": "POST /api/interviews/{id}/farewell",
            "complete": "POST /api/interviews/{id}/complete",
            "conversation": "GET /api/interviews/{id}/conversation",
            "evaluation": "GET /api/interviews/{id}/evaluation",
            "generateQuestion": "POST /api/ai/generate-question",
            "evaluateResponse": "POST /api/ai/evaluate-response",
            "simulateInterview": "POST /api/ai/simulate-interview",
        },
    )


@router.post("/start", response_model=PhaseResp)
def start(controller: PhaseController = Depends(get_controller)) -> PhaseResp:
    return _phase_resp(controller.start())


@router.post("/{interview_id}/explanation", response_model=PhaseResp)
def explanation(interview_id: str, controller: PhaseController = Depends(get_controller)) -> PhaseResp:
    return _phase_resp(controller.explain(interview_id))


@router.post("/{interview_id}/first-question", response_model=PhaseResp)
def first_question(interview_id: str, controller: PhaseController = Depends(get_controller)) -> PhaseResp:
    return _phase_resp(controller.first_question(interview_id))


@router.post("/{interview_id}/analyze-and-respond", response_model=TurnResp)
def analyze_and_respond(
    interview_id: str,
    req: AnswerReq,
    controller: PhaseController = Depends(get_controller),
) -> TurnResp:
    outcome = controller.analyze_and_respond(interview_id, req.user_response)
    return TurnResp(timestamp=_now(), **outcome.model_dump())


@router.post("/{interview_id}/transition-to-candidate-questions", response_model=PhaseResp)
def transition_to_candidate_questions(
    interview_id: str, controller: PhaseController = Depends(get_controller)
) -> PhaseResp:
    return _phase_resp(controller.transition_to_candidate_questions(interview_id))


@router.post("/{interview_id}/answer-candidate-question", response_model=CandidateAnswerResp)
def answer_candidate_question(
    interview_id: str,
    req: CandidateQuestionReq,
    controller: PhaseController = Depends(get_controller),
) -> CandidateAnswerResp:
    outcome = controller.answer_candidate_question(interview_id, req.question)
    return CandidateAnswerResp(timestamp=_now(), **outcome.model_dump())


@router.post("/{interview_id}/farewell", response_model=PhaseResp)
def farewell(interview_id: str, controller: PhaseController = Depends(get_controller)) -> PhaseResp:
    return _phase_resp(controller.farewell(interview_id))


@router.post("/{interview_id}/complete", response_model=CompleteResp)
def complete(interview_id: str, controller: PhaseController = Depends(get_controller)) -> CompleteResp:
    outcome = controller.complete(interview_id)
    return CompleteResp(timestamp=_now(), **outcome.model_dump())


@router.get("/{interview_id}/conversation", response_model=ConversationResp)
def conversation(interview_id: str, controller: PhaseController = Depends(get_controller)) -> ConversationResp:
    snapshot = controller.conversation(interview_id)
    return ConversationResp(
        interview_id=snapshot.interview_id,
        conversation=[MessageOut(**message.model_dump()) for message in snapshot.messages],
        state=StateOut(
            phase=snapshot.phase,
            question_count=snapshot.question_count,
            derived_question_count=snapshot.derived_question_count,
            candidate_question_count=snapshot.candidate_question_count,
            total_questions=snapshot.total_questions,
            phase_history=snapshot.phase_history,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        ),
        timestamp=_now(),
    )


@router.get("/{interview_id}/evaluation", response_model=EvaluationResp)
def evaluation(interview_id: str, controller: PhaseController = Depends(get_controller)) -> EvaluationResp:
    report = controller.evaluation(interview_id)
    return EvaluationResp(interview_id=interview_id, timestamp=_now(), **report)


@practice_router.post("/generate-question", response_model=GeneratedQuestionResp)
def generate_question(
    req: GenerateQuestionReq, controller: PhaseController = Depends(get_controller)
) -> GeneratedQuestionResp:
    question = controller.interviewer.generate_question(
        req.job_role, req.experience_level, req.category, req.previous_questions
    )
    return GeneratedQuestionResp(
        question=question,
        job_role=req.job_role,
        experience_level=req.experience_level,
        category=req.category,
        timestamp=_now(),
    )


@practice_router.post("/evaluate-response", response_model=AnswerEvaluationResp)
def evaluate_response(
    req: EvaluateResponseReq, controller: PhaseController = Depends(get_controller)
) -> AnswerEvaluationResp:
    interviewer = controller.interviewer
    report = evaluate_answer(
        req.question,
        req.answer,
        req.job_role,
        experience_level=req.experience_level,
        attempts=interviewer.attempts,
        backoff_s=interviewer.backoff_s,
        sleep=interviewer.sleep,
    )
    return AnswerEvaluationResp(timestamp=_now(), **report.model_dump(exclude={"answered_questions"}))


@practice_router.post("/simulate-interview", response_model=SimulationResp)
def simulate_interview(
    req: SimulateInterviewReq, controller: PhaseController = Depends(get_controller)
) -> SimulationResp:
    simulation_id = f"simulation_{uuid.uuid4().hex}"
    questions = controller.interviewer.plan_questions(
        req.job_role, req.experience_level, req.question_count, req.category, request_id=simulation_id
    )
    return SimulationResp(
        simulation_id=simulation_id,
        job_role=req.job_role,
        experience_level=req.experience_level,
        duration=req.duration,
        questions=questions,
        created_at=_now(),
    )


@health_router.get("/health", response_model=HealthResp)
def health(request: Request) -> HealthResp:
    return HealthResp(
        llm_provider=getattr(request.app.state, "llm_provider", None),
        simulation=not has_model(TEXT_MODEL_KEY),
        session_backend=getattr(request.app.state.controller.store, "backend", "custom"),
        timestamp=_now(),
    )
