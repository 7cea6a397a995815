from __future__ import annotations  # Interview session state models

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["assistant", "user"]
MessageKind = Literal[
    "welcome",
    "explanation",
    "question",
    "follow_up",
    "comment",
    "answer",
    "transition",
    "candidate_question",
    "candidate_answer",
    "farewell",
]

ExperienceLevel = Literal["junior", "mid", "senior"]
QuestionCategory = Literal["technical", "behavioral", "situational"]


class Phase(str, Enum):  # Fixed interview lifecycle, in order
    WELCOME = "WELCOME"
    EXPLANATION = "EXPLANATION"
    QUESTIONS = "QUESTIONS"
    CANDIDATE_QUESTIONS = "CANDIDATE_QUESTIONS"
    FAREWELL = "FAREWELL"
    COMPLETED = "COMPLETED"


PHASE_ORDER: List[Phase] = list(Phase)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationMessage(BaseModel):  # One utterance in the interview transcript
    role: Role
    content: str
    kind: Optional[MessageKind] = None
    created_at: str = Field(default_factory=_utcnow)


class InterviewSessionState(BaseModel):  # Everything the controller knows about one interview
    interview_id: str
    phase: Phase = Phase.WELCOME
    question_count: int = Field(default=0, ge=0)
    candidate_question_count: int = Field(default=0, ge=0)
    follow_ups_for_current: int = Field(default=0, ge=0)
    invitation_sent: bool = False
    messages: List[ConversationMessage] = Field(default_factory=list)
    phase_history: List[Phase] = Field(default_factory=lambda: [Phase.WELCOME])
    evaluation: Optional[Dict] = None
    created_at: str = Field(default_factory=_utcnow)
    updated_at: str = Field(default_factory=_utcnow)

    def append(self, role: Role, content: str, kind: Optional[MessageKind] = None) -> ConversationMessage:
        message = ConversationMessage(role=role, content=content, kind=kind)
        self.messages.append(message)
        self.updated_at = message.created_at
        return message

    def history(self) -> List[Dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in self.messages]


class AnalysisResult(BaseModel):  # Interviewer decision for one answer
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    comment: str
    should_ask_follow_up: bool = False
    follow_up_question: Optional[str] = None
    should_continue_to_next: bool = True
    next_question: Optional[str] = None
    reasoning: str = "model analysis"
    fallback: bool = Field(default=False, exclude=True)


class AnswerContext(BaseModel):  # Inputs for the analyze-and-respond prompt
    user_response: str
    current_question: str
    question_number: int
    total_questions: int
    conversation_history: List[Dict[str, str]] = Field(default_factory=list)
    follow_up_allowed: bool = True


class TurnOutcome(BaseModel):  # Controller result for analyze-and-respond
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


class CandidateAnswerOutcome(BaseModel):  # Controller result for a candidate question
    interview_id: str
    answer: str
    question_count: int
    question_limit: int
    should_say_farewell: bool
    phase: Phase


class PhaseMessage(BaseModel):  # Interviewer line produced by a phase operation
    interview_id: str
    phase: Phase
    message: str
    question_count: int = 0


class CompletionOutcome(BaseModel):  # Result of closing an interview
    interview_id: str
    phase: Phase
    message: str
    conversation_length: int
    evaluation_url: str


class ConversationSnapshot(BaseModel):  # Transcript plus state counters
    interview_id: str
    phase: Phase
    question_count: int
    derived_question_count: int
    candidate_question_count: int
    total_questions: int
    phase_history: List[Phase]
    messages: List[ConversationMessage]
    created_at: str
    updated_at: str


class PlannedQuestion(BaseModel):  # One generated question of a practice set
    id: str
    question: str
    order: int


__all__ = [
    "AnalysisResult",
    "AnswerContext",
    "CandidateAnswerOutcome",
    "CompletionOutcome",
    "ConversationMessage",
    "ConversationSnapshot",
    "ExperienceLevel",
    "InterviewSessionState",
    "MessageKind",
    "PHASE_ORDER",
    "Phase",
    "PhaseMessage",
    "PlannedQuestion",
    "QuestionCategory",
    "Role",
    "TurnOutcome",
]
