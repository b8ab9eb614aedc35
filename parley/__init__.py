"""
Parley - streaming chat orchestration for OpenAI-compatible model providers.
"""

from parley.conversation import Conversation, ConversationStore, GenerationStatus, Message, MessageRole
from parley.generation import GenerationController, create_controller
from parley.utilities import ParleyConfig, get_config

__version__ = "1.0.0"

__all__ = [
    "Conversation",
    "ConversationStore",
    "GenerationStatus",
    "Message",
    "MessageRole",
    "GenerationController",
    "create_controller",
    "ParleyConfig",
    "get_config",
    "__version__",
]
