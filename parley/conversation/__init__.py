"""
In-memory conversation model and store.
"""

from parley.conversation.models import (
    Conversation,
    GenerationStatus,
    Message,
    MessageRole,
    StreamingMessage,
)
from parley.conversation.store import ConversationStore

__all__ = [
    "Conversation",
    "ConversationStore",
    "GenerationStatus",
    "Message",
    "MessageRole",
    "StreamingMessage",
]
