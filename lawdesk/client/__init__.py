"""
Consumer side of the vector-search endpoint: HTTP client, response decoding
and persisted conversation state.
"""

from .ask import AskClient, AskError
from .conversation import (
    ChatMessage,
    ConversationSlot,
    ConversationStore,
    DEFAULT_GREETING,
    QUICK_QUESTIONS,
    default_messages,
    restore_messages,
    show_quick_questions,
)

__all__ = [
    "AskClient",
    "AskError",
    "ChatMessage",
    "ConversationSlot",
    "ConversationStore",
    "DEFAULT_GREETING",
    "QUICK_QUESTIONS",
    "default_messages",
    "restore_messages",
    "show_quick_questions",
]
