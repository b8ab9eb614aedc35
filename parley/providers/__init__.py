"""
Provider access: SSE parsing, HTTP transport and the chat backends.
"""

from parley.providers.backends import (
    ChatBackend,
    DirectBackend,
    MockBackend,
    ProxyBackend,
    create_backend,
    relay_events,
)
from parley.providers.events import Done, ProviderEvent, ReasoningDelta, StreamError, TextDelta
from parley.providers.mock import MockResponses
from parley.providers.sse import EventStreamParser
from parley.providers.transport import ChatTransport

__all__ = [
    # Backends
    "ChatBackend",
    "DirectBackend",
    "ProxyBackend",
    "MockBackend",
    "create_backend",
    "relay_events",
    # Events
    "ProviderEvent",
    "TextDelta",
    "ReasoningDelta",
    "Done",
    "StreamError",
    # Plumbing
    "EventStreamParser",
    "ChatTransport",
    "MockResponses",
]
