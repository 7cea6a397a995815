"""Extract the interviewer decision JSON from free-form model output.

Model replies arrive wrapped in markdown fences, surrounded by prose, or as a
plain conversational paragraph. ``parse_analysis`` isolates the outermost JSON
object, validates it against a minimum-content contract and, when the reply
carries no usable JSON (or the comment field swallowed the whole object),
falls back to salvaging the prose around it.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from llm_gateway import strip_code_fences

from .fallbacks import SALVAGE_NEXT_QUESTION
from .models import AnalysisResult

logger = logging.getLogger(__name__)

MIN_COMMENT_CHARS = 30
MIN_QUESTION_CHARS = 20
MIN_SALVAGE_CHARS = 20

_FIELD_MARKERS = ('"comment"', '"nextQuestion"', '"shouldAskFollowUp"', '"followUpQuestion"', '"shouldContinueToNext"')
_EMBEDDED_OBJECT = re.compile(r"\{\s*\"?\w+\"?\s*:")
_SENTENCE_END = re.compile(r"[.!?…][\"'”»)\]]*$")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


class ResponseParseError(ValueError):  # Model output failed the content contract
    pass


class EmbeddedJsonError(ResponseParseError):  # Comment field contains the JSON payload itself
    pass


class NoJsonFoundError(ResponseParseError):  # Reply has no JSON object at all
    pass


def parse_analysis(text: str) -> AnalysisResult:
    """Parse an analyze-and-respond reply, salvaging prose when JSON is unusable."""

    try:
        return parse_structured(text)
    except (EmbeddedJsonError, NoJsonFoundError) as exc:
        logger.warning("Structured parse rejected (%s), trying conversational salvage", exc)
        salvaged = salvage_conversational(text)
        if salvaged is None:
            raise ResponseParseError(f"no usable content: {exc}") from exc
        return salvaged


def parse_structured(text: str) -> AnalysisResult:
    data = extract_json_object(text)
    if data is None:
        raise NoJsonFoundError("no JSON object in reply")

    raw_comment = _as_text(data.get("comment"))
    raw_next = _as_text(data.get("nextQuestion"))
    if not raw_comment and not raw_next:
        raise ResponseParseError("JSON lacks comment and nextQuestion")
    if _embeds_json(raw_comment):
        raise EmbeddedJsonError("comment embeds a JSON object")

    comment = _clean_field(raw_comment)
    if len(comment) < MIN_COMMENT_CHARS:
        raise ResponseParseError(f"comment too short ({len(comment)} chars)")
    if not is_complete_sentence(comment):
        raise ResponseParseError("comment looks truncated")

    next_question = _clean_field(raw_next) or None
    if next_question is not None and len(next_question) < MIN_QUESTION_CHARS:
        raise ResponseParseError(f"nextQuestion too short ({len(next_question)} chars)")

    follow_up = _clean_field(_as_text(data.get("followUpQuestion"))) or None
    should_follow = _as_bool(data.get("shouldAskFollowUp"), default=False) and follow_up is not None

    return AnalysisResult(
        comment=comment,
        should_ask_follow_up=should_follow,
        follow_up_question=follow_up if should_follow else None,
        should_continue_to_next=_as_bool(data.get("shouldContinueToNext"), default=True),
        next_question=next_question,
        reasoning=_clean_field(_as_text(data.get("reasoning"))) or "model analysis",
    )


def salvage_conversational(text: str) -> Optional[AnalysisResult]:
    """Build a decision from the prose around (or instead of) a JSON object."""

    cleaned = strip_code_fences(text or "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        prose = f"{cleaned[:start]} {cleaned[end + 1:]}"
    else:
        prose = cleaned
    prose = " ".join(prose.split())
    if not prose or "{" in prose or "}" in prose or _mentions_fields(prose):
        return None
    sentences = [item for item in _SENTENCE_SPLIT.split(prose) if item.strip()]
    comment = " ".join(sentences[:2]).strip()
    if len(comment) < MIN_SALVAGE_CHARS:
        return None
    if not is_complete_sentence(comment):
        comment = comment.rstrip(",;: ") + "."
    return AnalysisResult(
        comment=comment,
        should_ask_follow_up=False,
        follow_up_question=None,
        should_continue_to_next=True,
        next_question=SALVAGE_NEXT_QUESTION,
        reasoning="conversational reply salvaged",
    )


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the object between the first ``{`` and the last ``}``, if it parses."""

    cleaned = strip_code_fences(text or "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        return None
    return data


def is_complete_sentence(text: str) -> bool:
    return bool(_SENTENCE_END.search(text.strip()))


def _embeds_json(value: str) -> bool:
    if not value:
        return False
    if any(marker in value for marker in _FIELD_MARKERS):
        return True
    return bool(_EMBEDDED_OBJECT.search(value))


def _mentions_fields(prose: str) -> bool:
    if re.search(r"\"?comment\"?\s*:", prose, flags=re.IGNORECASE):
        return True
    return any(marker.strip('"') in prose for marker in _FIELD_MARKERS[1:])


def _clean_field(value: str) -> str:
    text = value.replace("{", "").replace("}", "")
    text = " ".join(text.split())
    text = re.sub(r"^comment:\s*", "", text, flags=re.IGNORECASE)
    return text.strip().strip("\"'").strip()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() in {"null", "none", "undefined"}:
        return ""
    return text


def _as_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return default


__all__ = [
    "EmbeddedJsonError",
    "NoJsonFoundError",
    "ResponseParseError",
    "extract_json_object",
    "is_complete_sentence",
    "parse_analysis",
    "parse_structured",
    "salvage_conversational",
]
