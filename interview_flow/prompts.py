from __future__ import annotations  # Prompt templates for every interview phase

from textwrap import dedent
from typing import Dict, Sequence

from .models import AnswerContext, ExperienceLevel, QuestionCategory

_NO_META = 'Never refer to yourself as a model, an AI or a system.'


def format_history(history: Sequence[Dict[str, str]], *, interviewer: str, window: int) -> str:
    """Render the last ``window`` messages as ``Speaker: text`` lines."""

    lines = []
    for message in list(history)[-window:]:
        speaker = interviewer if message.get("role") == "assistant" else "Candidate"
        lines.append(f"{speaker}: {message.get('content', '')}")
    return "\n".join(lines) or "(no messages yet)"


def welcome_prompt(interviewer: str) -> str:
    return dedent(
        f"""
        You are {interviewer}, a professional and empathetic virtual interviewer.

        Write the opening message of a job interview:
        1. Introduce yourself as "{interviewer}, your virtual interviewer".
        2. Give the candidate a warm, professional welcome.
        3. Make them feel comfortable and say you are glad to meet them.
        4. Use 3-4 complete sentences. {_NO_META}
        Reply with the message only, without prefixes or labels.
        """
    ).strip()


def explanation_prompt(interviewer: str, total_questions: int) -> str:
    return dedent(
        f"""
        You are {interviewer}, the virtual interviewer who has already introduced yourself.

        Explain how the interview will work:
        1. You will ask the candidate {total_questions} questions.
        2. The candidate can then ask you questions about the company and the position.
        3. The interview ends with a farewell and a final evaluation.
        Do not introduce yourself again and do not greet. Mention it will be a natural conversation.
        Use 3-4 complete sentences. {_NO_META}
        Reply with the explanation only.
        """
    ).strip()


def first_question_prompt(interviewer: str) -> str:
    return dedent(
        f"""
        You are {interviewer}, the virtual interviewer who has already explained the process.

        Ask the FIRST interview question: an open question inviting the candidate to present
        their background and most relevant experience. Do not introduce yourself again.
        Use a conversational tone and at most 2-3 sentences. {_NO_META}
        Reply with the question only.
        """
    ).strip()


def analyze_prompt(context: AnswerContext, *, interviewer: str, window: int) -> str:
    """Build the analyze-and-respond prompt for one candidate answer."""

    number = context.question_number
    total = context.total_questions
    history = format_history(context.conversation_history, interviewer=interviewer, window=window)
    parts = [
        f"You are {interviewer}, a professional and empathetic virtual interviewer.",
        "",
        "CONVERSATION SO FAR:",
        history,
        "",
        f'CURRENT QUESTION: "{context.current_question}"',
        f'CANDIDATE ANSWER: "{context.user_response}"',
        f"QUESTION NUMBER: {number} of {total}",
    ]
    if not context.follow_up_allowed:
        parts.append(
            "Follow-up questions are NOT allowed now: shouldAskFollowUp must be false and followUpQuestion null."
        )
    if number >= total:
        parts.append(
            dedent(
                """
                THIS WAS THE LAST QUESTION. nextQuestion MUST be null.
                Your comment only reflects on the current answer: do not invite questions,
                do not thank the candidate for the interview, do not say it is over.
                """
            ).strip()
        )
    parts.append(
        dedent(
            """
            INSTRUCTIONS:
            1. Read the candidate's answer and write a comment of 30-60 words showing you understood it.
            2. Mention something specific the candidate said (projects, technologies, experiences).
            3. Ask a follow-up only if the answer was vague or very short and follow-ups are allowed.
            4. Otherwise continue with one new, relevant interview question in nextQuestion.
            5. Ask one question at a time and always end sentences properly.

            Reply with a single JSON object and nothing else:
            {
              "comment": "specific comment about the answer",
              "shouldAskFollowUp": false,
              "followUpQuestion": null,
              "shouldContinueToNext": true,
              "nextQuestion": "next interview question or null",
              "reasoning": "short reason for the decision"
            }
            """
        ).strip()
    )
    return "\n".join(parts)


def transition_prompt(interviewer: str, total_questions: int) -> str:
    return dedent(
        f"""
        You are {interviewer}, a virtual interviewer who has just finished asking the candidate
        {total_questions} questions.

        Move to the phase where the candidate can ask you questions:
        - briefly congratulate the candidate for completing the questions;
        - invite them to ask about the company or the position;
        - be warm and open, at most 3 sentences. {_NO_META}
        Reply with the message only.
        """
    ).strip()


def candidate_answer_prompt(
    question: str,
    history: Sequence[Dict[str, str]],
    *,
    interviewer: str,
    window: int,
) -> str:
    recent = format_history(history, interviewer=interviewer, window=window)
    header = dedent(
        f"""
        You are {interviewer}, a virtual interviewer for an innovative, growing company.

        RECENT CONVERSATION:
        """
    ).strip()
    body = dedent(
        f"""
        CANDIDATE QUESTION: "{question}"

        What you know about the company and the position:
        - innovation, creativity and continuous learning are valued;
        - collaborative, inclusive and flexible environment with hybrid/remote options;
        - many professional development and training opportunities;
        - challenging projects with modern technology;
        - feedback and mentoring culture, competitive benefits and work-life balance.

        Answer honestly, professionally and completely in 60-80 words. If you lack exact
        information, say the HR team can provide more details. Finish every sentence and end
        with a full stop. {_NO_META}
        Reply with the answer only.
        """
    ).strip()
    return f"{header}\n{recent}\n\n{body}"


def farewell_prompt(interviewer: str) -> str:
    return dedent(
        f"""
        You are {interviewer}, a virtual interviewer closing a successful interview.

        Say goodbye to the candidate professionally and warmly:
        - thank them for their time and participation;
        - mention that you will prepare an evaluation;
        - be positive and encouraging, at most 3 sentences. {_NO_META}
        Reply with the farewell only.
        """
    ).strip()


def generate_question_prompt(
    job_role: str,
    level: ExperienceLevel,
    category: QuestionCategory,
    previous_questions: Sequence[str] = (),
) -> str:
    parts = [
        f"You are an expert technology recruiter. Write ONE interview question for a {level} {job_role}.",
        "",
        f"Category: {category}",
        "- technical: knowledge, code, architecture",
        "- behavioral: past behaviour, teamwork, leadership",
        "- situational: hypothetical situations, problem solving",
    ]
    if previous_questions:
        parts += ["", "Questions already asked (do not repeat them):"]
        parts += [f"- {question}" for question in previous_questions]
    parts += ["", "Reply with the question only, without introduction or comments."]
    return "\n".join(parts)


__all__ = [
    "analyze_prompt",
    "candidate_answer_prompt",
    "explanation_prompt",
    "farewell_prompt",
    "first_question_prompt",
    "format_history",
    "generate_question_prompt",
    "transition_prompt",
    "welcome_prompt",
]
