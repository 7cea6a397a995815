"""Deterministic interviewer lines used when the text model is unavailable."""
from __future__ import annotations

from typing import Dict, List, Sequence

from .models import AnalysisResult, ExperienceLevel, QuestionCategory

FALLBACK_COMMENT = "Understood, thank you for sharing that with me."
FALLBACK_REASONING = "fallback: text model unavailable"
SALVAGE_NEXT_QUESTION = "Could you tell me more about the project you just mentioned and your role in it?"

FALLBACK_QUESTIONS: List[str] = [
    "To start, tell me about yourself and the experience most relevant to this role.",
    "Could you tell me more about your professional experience so far?",
    "Describe a difficult technical problem you solved and how you approached it.",
    "Tell me about a time you had to work with a teammate who disagreed with you.",
    "How do you keep your skills up to date as tools and practices change?",
]


def welcome_message(name: str) -> str:
    return (
        f"Hello! I'm {name}, your virtual interviewer. It's a pleasure to meet you, "
        "and I'm looking forward to this conversation. My goal is to give you a comfortable "
        "space to share your experience. Let me know whenever you're ready to begin!"
    )


def explanation_message(total_questions: int) -> str:
    return (
        f"Here is how our interview will work: first, I'll ask you {total_questions} questions "
        "about your experience and skills. After that, you'll have the chance to ask me about "
        "the company and the position. Finally, I'll put everything together into detailed feedback."
    )


def first_question() -> str:
    return FALLBACK_QUESTIONS[0]


def fallback_question(question_number: int) -> str:
    """Question to ask after ``question_number`` has been answered."""

    index = max(0, min(question_number, len(FALLBACK_QUESTIONS) - 1))
    return FALLBACK_QUESTIONS[index]


def fallback_analysis(question_number: int, total_questions: int) -> AnalysisResult:
    next_question = None if question_number >= total_questions else fallback_question(question_number)
    return AnalysisResult(
        comment=FALLBACK_COMMENT,
        should_ask_follow_up=False,
        follow_up_question=None,
        should_continue_to_next=True,
        next_question=next_question,
        reasoning=FALLBACK_REASONING,
        fallback=True,
    )


TRANSITION_MESSAGE = (
    "Great, that wraps up my questions. Now it's your turn: do you have any questions "
    "for me about the position or the company?"
)

CANDIDATE_ANSWER = (
    "That's a great question. In this role you would work on challenging projects with modern "
    "technology, in a collaborative team that values continuous learning and growth. "
    "The HR team can share more specific details about benefits and compensation."
)

FAREWELL_MESSAGE = (
    "Thank you so much for your time and your answers. It was a pleasure talking with you. "
    "I'll now process everything to prepare your personalized evaluation. Best of luck!"
)

COMPLETION_MESSAGE = "Interview finished. Generating evaluation..."


QUESTION_BANK: Dict[str, Dict[str, str]] = {
    "technical": {
        "junior": "What is the difference between a list and a tuple in Python, and when would you use each?",
        "mid": "How would you implement authentication for a web API using JSON Web Tokens?",
        "senior": "How would you design a microservice architecture for an e-commerce platform?",
    },
    "behavioral": {
        "junior": "Describe a situation where you had to learn a new technology quickly.",
        "mid": "Tell me about a challenging project you worked on and how you handled it.",
        "senior": "Describe how you have mentored junior developers in your experience.",
    },
    "situational": {
        "junior": "What would you do if you found a bug in a teammate's code?",
        "mid": "How would you prioritise your work when several urgent deadlines overlap?",
        "senior": "How would you lead the migration of a legacy application to a modern stack?",
    },
}
DEFAULT_BANK_QUESTION = "Tell me about your experience in software development."


def bank_question(
    category: QuestionCategory, level: ExperienceLevel, previous: Sequence[str] = ()
) -> str:
    """Pick a canned question for ``category``/``level`` that was not asked yet."""

    by_level = QUESTION_BANK.get(category, {})
    candidates = [by_level.get(level, DEFAULT_BANK_QUESTION)]
    candidates += [q for q in by_level.values() if q not in candidates]
    candidates += [q for q in FALLBACK_QUESTIONS[1:] if q not in candidates]
    asked = {q.strip().lower() for q in previous}
    for question in candidates:
        if question.lower() not in asked:
            return question
    return candidates[0]


__all__ = [
    "CANDIDATE_ANSWER",
    "COMPLETION_MESSAGE",
    "FALLBACK_COMMENT",
    "FALLBACK_QUESTIONS",
    "FALLBACK_REASONING",
    "FAREWELL_MESSAGE",
    "QUESTION_BANK",
    "SALVAGE_NEXT_QUESTION",
    "TRANSITION_MESSAGE",
    "bank_question",
    "explanation_message",
    "fallback_analysis",
    "fallback_question",
    "first_question",
    "welcome_message",
]
