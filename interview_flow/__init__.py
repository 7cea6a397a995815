"""Interview phase flow: models, transcript tracking, parsing and the interviewer."""
from .interviewer import Interviewer, validate_message
from .models import (
    AnalysisResult,
    AnswerContext,
    ConversationMessage,
    InterviewSessionState,
    Phase,
    PHASE_ORDER,
)
from .parser import ResponseParseError, parse_analysis
from .tracker import count_primary_questions, last_assistant_message

__all__ = [
    "AnalysisResult",
    "AnswerContext",
    "ConversationMessage",
    "Interviewer",
    "InterviewSessionState",
    "PHASE_ORDER",
    "Phase",
    "ResponseParseError",
    "count_primary_questions",
    "last_assistant_message",
    "parse_analysis",
    "validate_message",
]
