"""Pydantic schemas for the interview phase API."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from interview_flow.models import ExperienceLevel, Phase, PlannedQuestion, QuestionCategory, Role


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


class AnswerReq(ApiModel):
    user_response: str = Field(min_length=1, max_length=10000)

    @field_validator("user_response")
    @classmethod
    def _check_response(cls, value: str) -> str:
        return _not_blank(value)


class CandidateQuestionReq(ApiModel):
    question: str = Field(min_length=1, max_length=2000)

    @field_validator("question")
    @classmethod
    def _check_question(cls, value: str) -> str:
        return _not_blank(value)


class GenerateQuestionReq(ApiModel):
    job_role: str = Field(min_length=1, max_length=200)
    experience_level: ExperienceLevel
    category: QuestionCategory = "technical"
    previous_questions: List[str] = Field(default_factory=list, max_length=50)

    @field_validator("job_role")
    @classmethod
    def _check_role(cls, value: str) -> str:
        return _not_blank(value)


class EvaluateResponseReq(ApiModel):
    question: str = Field(min_length=1, max_length=2000)
    answer: str = Field(min_length=1, max_length=10000)
    job_role: str = Field(min_length=1, max_length=200)
    experience_level: ExperienceLevel

    @field_validator("question", "answer", "job_role")
    @classmethod
    def _check_text(cls, value: str) -> str:
        return _not_blank(value)


class SimulateInterviewReq(ApiModel):
    job_role: str = Field(min_length=1, max_length=200)
    experience_level: ExperienceLevel
    category: QuestionCategory = "technical"
    duration: int = Field(default=30, ge=5, le=180)
    question_count: int = Field(default=5, ge=1, le=10)

    @field_validator("job_role")
    @classmethod
    def _check_role(cls, value: str) -> str:
        return _not_blank(value)


class PhaseResp(ApiModel):
    interview_id: str
    phase: Phase
    message: str
    question_count: int = 0
    timestamp: str


class TurnResp(ApiModel):
    interview_id: str
    comment: str
    should_ask_follow_up: bool
    follow_up_question: Optional[str] = None
    should_continue_to_next: bool
    next_question: Optional[str] = None
    reasoning: str
    question_number: int
    total_questions: int
    should_transition_to_candidate_questions: bool
    phase: Phase
    timestamp: str


class CandidateAnswerResp(ApiModel):
    interview_id: str
    answer: str
    question_count: int
    question_limit: int
    should_say_farewell: bool
    phase: Phase
    timestamp: str


class CompleteResp(ApiModel):
    interview_id: str
    phase: Phase
    completed: bool = True
    message: str
    conversation_length: int
    evaluation_url: str
    timestamp: str


class MessageOut(ApiModel):
    role: Role
    content: str
    kind: Optional[str] = None
    created_at: str


class StateOut(ApiModel):
    phase: Phase
    question_count: int
    derived_question_count: int
    candidate_question_count: int
    total_questions: int
    phase_history: List[Phase] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ConversationResp(ApiModel):
    interview_id: str
    conversation: List[MessageOut] = Field(default_factory=list)
    state: StateOut
    timestamp: str


class EvaluationResp(ApiModel):
    interview_id: str
    score: int
    feedback: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    technical_accuracy: int
    communication_clarity: int
    completeness: int
    answered_questions: int
    fallback: bool = False
    timestamp: str


class GeneratedQuestionResp(ApiModel):
    question: str
    job_role: str
    experience_level: ExperienceLevel
    category: QuestionCategory
    timestamp: str


class AnswerEvaluationResp(ApiModel):
    score: int
    feedback: str
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    technical_accuracy: int
    communication_clarity: int
    completeness: int
    fallback: bool = False
    timestamp: str


class SimulationResp(ApiModel):
    simulation_id: str
    job_role: str
    experience_level: ExperienceLevel
    duration: int
    questions: List[PlannedQuestion]
    created_at: str


class HealthResp(ApiModel):
    status: str = "ok"
    llm_provider: Optional[str] = None
    simulation: bool
    session_backend: str
    timestamp: str


class InfoResp(ApiModel):
    name: str
    phases: List[Phase]
    total_questions: int
    endpoints: Dict[str, str]


class FieldError(ApiModel):
    field: str
    message: str


class ErrorResp(ApiModel):
    success: bool = False
    message: str
    interview_id: Optional[str] = None
    phase: Optional[Phase] = None
    errors: List[FieldError] = Field(default_factory=list)
    timestamp: str
