"""
Pydantic models for chat-related API endpoints.

Request/response models for conversations, messages and streamed generations.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from parley.conversation.models import Conversation, Message


# ========== MESSAGE MODELS ==========
class MessageInfo(BaseModel):
    """A single message in a conversation."""

    id: str = Field(..., description="Unique message identifier")
    role: str = Field(..., description="Author role (user or assistant)")
    content: str = Field(..., description="Message text (Markdown)")
    timestamp: str = Field(..., description="Creation timestamp (ISO format)")
    reasoning: str = Field(default="", description="Model reasoning, if any was streamed")

    @classmethod
    def from_message(cls, message: Message) -> "MessageInfo":
        return cls(**message.to_dict())


# ========== CONVERSATION MODELS ==========
class ConversationSummary(BaseModel):
    """Conversation information without its messages."""

    id: str = Field(..., description="Unique conversation identifier")
    title: str = Field(..., description="Conversation title")
    message_count: int = Field(default=0, description="Number of messages")
    last_updated: str = Field(..., description="Last update timestamp (ISO format)")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            title=conversation.title,
            message_count=len(conversation.messages),
            last_updated=conversation.last_updated.isoformat(),
            created_at=conversation.created_at.isoformat(),
        )

    class Config:
        json_schema_extra = {
            "example": {
                "id": "85c619ca-cd1e-4567-89ab-cdef01234567",
                "title": "Python Development Help",
                "message_count": 4,
                "last_updated": "2026-01-25T14:30:00",
                "created_at": "2026-01-25T14:00:00",
            }
        }


class ConversationDetail(ConversationSummary):
    """Conversation information including its messages."""

    messages: list[MessageInfo] = Field(default_factory=list, description="Messages, oldest first")

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationDetail":
        summary = ConversationSummary.from_conversation(conversation)
        return cls(
            **summary.model_dump(),
            messages=[MessageInfo.from_message(m) for m in conversation.messages],
        )


class ConversationResponse(BaseModel):
    """Response model for conversation operations."""

    status: str = Field(..., description="Operation status")
    message: str = Field(..., description="Status message")
    conversation: ConversationDetail = Field(..., description="Conversation information")


class ConversationListResponse(BaseModel):
    """Response model for listing conversations."""

    conversations: list[ConversationSummary] = Field(
        ..., description="Conversations, most recently updated first"
    )
    selected_id: Optional[str] = Field(default=None, description="Selected conversation ID")
    total: int = Field(..., description="Total number of conversations")


class DeleteConversationResponse(BaseModel):
    """Response model for conversation deletion."""

    status: str = Field(..., description="Operation status")
    message: str = Field(..., description="Status message")
    deleted: int = Field(..., description="Number of conversations deleted")
    selected_id: Optional[str] = Field(default=None, description="Selected conversation ID afterwards")


# ========== GENERATION MODELS ==========
class ChatRequest(BaseModel):
    """Request model for sending a chat message."""

    message: str = Field(
        ...,
        min_length=1,
        description="User message content",
        examples=["What is machine learning?"],
    )
    model: Optional[str] = Field(
        default=None,
        description="Model identifier (uses the current model if None)",
        examples=["openai/gpt-4o-mini"],
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Validate message is not empty after stripping."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("message cannot be empty")
        return stripped

    class Config:
        json_schema_extra = {
            "example": {
                "message": "What is machine learning?",
                "model": "openai/gpt-4o-mini",
            }
        }


class ChatStreamChunk(BaseModel):
    """Model for streaming chat chunks."""

    type: str = Field(
        ...,
        description="Chunk type (status, token, reasoning, message, error, done)",
        examples=["status", "token", "reasoning", "message", "error", "done"],
    )
    content: Optional[str] = Field(
        default=None,
        description="Content (for status, token, reasoning and error chunks)",
    )
    data: Optional[dict[str, Any]] = Field(
        default=None,
        description="Data payload (for message, error and done chunks)",
    )

    class Config:
        json_schema_extra = {
            "examples": [
                {"type": "status", "content": "streaming", "data": None},
                {"type": "token", "content": "Machine", "data": None},
                {
                    "type": "done",
                    "content": None,
                    "data": {
                        "conversation_id": "85c619ca-cd1e-4567-89ab-cdef01234567",
                        "processing_time": 1.234,
                    },
                },
            ]
        }


class ModelRequest(BaseModel):
    """Request model for switching the current model."""

    model: str = Field(..., min_length=1, description="Model identifier")


class StatusResponse(BaseModel):
    """Response model for generation status."""

    status: str = Field(..., description="Generation status (idle, submitting, streaming, error)")
    model: str = Field(..., description="Current model identifier")
    selected_id: Optional[str] = Field(default=None, description="Selected conversation ID")
    active_conversation_id: Optional[str] = Field(
        default=None, description="Conversation the running generation writes to"
    )
    last_error: Optional[str] = Field(default=None, description="Most recent generation error")


class StopResponse(BaseModel):
    """Response model for stopping a generation."""

    stopped: bool = Field(..., description="Whether a running generation was stopped")
    status: str = Field(..., description="Generation status afterwards")


# ========== WEBSOCKET MODELS ==========
class WebSocketMessage(BaseModel):
    """Envelope for WebSocket traffic in both directions."""

    type: str = Field(..., description="message, stop or ping from clients; chunk types from the server")
    content: Optional[str] = Field(default=None, description="Message text or chunk content")
    data: dict[str, Any] = Field(default_factory=dict, description="Additional data payload")
