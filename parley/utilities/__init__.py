"""
Shared configuration, error types and logging helpers.
"""

from parley.utilities.config import BackendProvider, ParleyConfig, get_config
from parley.utilities.errors import (
    ConfigurationError,
    ConversationNotFoundError,
    DecodeError,
    InvalidStateError,
    ParleyError,
    ProviderRejectedError,
    TitleGenerationError,
    TransportError,
    ValidationError,
)

__all__ = [
    "BackendProvider",
    "ParleyConfig",
    "get_config",
    "ParleyError",
    "ValidationError",
    "ConfigurationError",
    "ProviderRejectedError",
    "TransportError",
    "DecodeError",
    "InvalidStateError",
    "ConversationNotFoundError",
    "TitleGenerationError",
]
