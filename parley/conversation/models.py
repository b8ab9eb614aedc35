"""
Conversation data model.

Messages are immutable; a running generation accumulates into a
StreamingMessage and only its snapshots are written into a Conversation.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def new_id() -> str:
    """Generate a unique identifier for conversations and messages."""
    return str(uuid.uuid4())


class MessageRole(str, Enum):
    """Author of a message"""

    USER = "user"
    ASSISTANT = "assistant"


class GenerationStatus(str, Enum):
    """
    Lifecycle of a generation session.

    IDLE accepts new submissions. SUBMITTING is the brief window between
    accepting text and starting the stream. STREAMING receives provider
    events. ERROR is held only while a failure is written to the transcript.
    """

    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    """A single chat message."""

    id: str
    role: MessageRole
    content: str
    timestamp: datetime
    reasoning: str = ""

    @classmethod
    def create(cls, role: MessageRole, content: str) -> "Message":
        return cls(id=new_id(), role=role, content=content, timestamp=datetime.now())

    def to_dict(self) -> dict[str, Any]:
        """Convert message to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "reasoning": self.reasoning,
        }


@dataclass
class StreamingMessage:
    """
    The mutable tail of a conversation while a response is streaming.

    Keeps the placeholder's identity and accumulates content and reasoning
    separately. ``snapshot()`` yields the immutable Message written to the
    store after every delta.
    """

    id: str
    role: MessageRole
    timestamp: datetime
    _content: list[str] = field(default_factory=list, repr=False)
    _reasoning: list[str] = field(default_factory=list, repr=False)

    @classmethod
    def placeholder(cls) -> "StreamingMessage":
        return cls(id=new_id(), role=MessageRole.ASSISTANT, timestamp=datetime.now())

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning)

    @property
    def is_empty(self) -> bool:
        return not any(self._content)

    def append_text(self, text: str) -> None:
        self._content.append(text)

    def append_reasoning(self, text: str) -> None:
        self._reasoning.append(text)

    def snapshot(self, suffix: str = "") -> Message:
        return Message(
            id=self.id,
            role=self.role,
            content=self.content + suffix,
            timestamp=self.timestamp,
            reasoning=self.reasoning,
        )


@dataclass
class Conversation:
    """A chat thread. Title and last_updated change over its lifetime."""

    id: str
    title: str
    messages: list[Message] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.now)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def to_dict(self) -> dict[str, Any]:
        """Convert conversation to dictionary."""
        data = asdict(self)
        data["messages"] = [m.to_dict() for m in self.messages]
        data["last_updated"] = self.last_updated.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data
