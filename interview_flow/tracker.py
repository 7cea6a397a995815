"""Primary-question counting over a conversation transcript."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from .models import ConversationMessage

MessageLike = Union[ConversationMessage, Mapping[str, Any]]


def _role(message: MessageLike) -> str:
    if isinstance(message, ConversationMessage):
        return message.role
    return str(message.get("role", ""))


def _content(message: MessageLike) -> str:
    if isinstance(message, ConversationMessage):
        return message.content
    return str(message.get("content", ""))


def count_primary_questions(messages: Sequence[MessageLike]) -> int:
    """Count assistant messages that open a new exchange.

    An assistant message counts when it is the first message or directly
    follows a user message. A second consecutive assistant message (a
    follow-up or a comment continuation) does not count.
    """

    count = 0
    previous_was_user = True
    for message in messages:
        if _role(message) == "assistant":
            if previous_was_user:
                count += 1
            previous_was_user = False
        else:
            previous_was_user = True
    return count


def last_assistant_message(messages: Sequence[MessageLike]) -> Optional[str]:
    for message in reversed(messages):
        if _role(message) == "assistant":
            return _content(message)
    return None


__all__ = ["count_primary_questions", "last_assistant_message"]
