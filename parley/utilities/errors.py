"""
Error taxonomy for Parley.

Provider and transport failures are converted into transcript messages by the
generation controller; decode and title-generation failures are recovered
where they happen; invalid-state errors are programming faults and propagate.
"""


class ParleyError(Exception):
    """Base class for all Parley errors."""


class ValidationError(ParleyError):
    """Input rejected before any work started (empty text, busy controller)."""


class ConfigurationError(ParleyError):
    """Configuration value out of range or missing."""


class ProviderRejectedError(ParleyError):
    """The model provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(f"API Error ({status_code}): {message}")


class TransportError(ParleyError):
    """Network failure or timeout while talking to the provider."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class DecodeError(ParleyError):
    """A single SSE payload could not be decoded."""


class InvalidStateError(ParleyError):
    """An internal invariant was violated."""


class ConversationNotFoundError(ParleyError, KeyError):
    """No conversation exists with the given id."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")

    def __str__(self) -> str:
        return f"Conversation not found: {self.conversation_id}"


class TitleGenerationError(ParleyError):
    """The naming collaborator could not produce a title."""


def redact_secret(text: str, secret: str | None) -> str:
    """Replace every occurrence of ``secret`` in ``text`` with a mask."""
    if not secret:
        return text
    return text.replace(secret, "***")
