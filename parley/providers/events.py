"""
Backend-agnostic events produced while streaming a chat response.

A backend stream is a sequence of TextDelta / ReasoningDelta events that
always ends with exactly one Done or StreamError.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TextDelta:
    """A fragment of visible response text."""

    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    """A fragment of model reasoning, kept apart from visible content."""

    text: str


@dataclass(frozen=True)
class Done:
    """The response completed normally."""


@dataclass(frozen=True)
class StreamError:
    """The response failed; ``message`` is safe to show to the user."""

    message: str


ProviderEvent = Union[TextDelta, ReasoningDelta, Done, StreamError]

