from .evaluation import (
    InterviewEvaluation,
    QuestionAnswer,
    answered_pairs,
    evaluate_answer,
    evaluate_interview,
    fallback_evaluation,
    parse_evaluation,
)

__all__ = [
    "InterviewEvaluation",
    "QuestionAnswer",
    "answered_pairs",
    "evaluate_answer",
    "evaluate_interview",
    "fallback_evaluation",
    "parse_evaluation",
]
