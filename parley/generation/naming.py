"""
Conversation title generation.

Asks a small, fast model for a short title based on the first message.
Failures raise TitleGenerationError; callers fall back to fallback_title().
"""

import logging
import re
from typing import Optional

from parley.providers.mock import MockResponses
from parley.providers.transport import ChatTransport
from parley.utilities.config import NamingConfig
from parley.utilities.errors import ParleyError, TitleGenerationError

logger = logging.getLogger(__name__)

NAMING_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise, descriptive names for chat "
    "conversations. Generate a short (2-5 words), clear title that captures the main "
    "topic or intent of the user's message. Do not use quotes, punctuation, or extra "
    "formatting. Just return the title."
)

FALLBACK_WORD_LIMIT = 4
ELLIPSIS = "…"


def fallback_title(content: str) -> str:
    """
    Derive a title locally from the first message.

    Messages of up to four words are used verbatim; longer ones are cut to
    their first four words followed by an ellipsis.
    """
    words = content.split()
    if len(words) <= FALLBACK_WORD_LIMIT:
        return content
    return " ".join(words[:FALLBACK_WORD_LIMIT]) + ELLIPSIS


def clean_title(raw: str) -> str:
    """Strip quotes and punctuation from a generated title."""
    title = raw.strip()
    for quote in ('"', "'", "`"):
        title = title.replace(quote, "")
    title = re.sub(r"[^\w\s-]", "", title)
    return title.strip()


class ThreadNamingService:
    """Generates conversation titles with a non-streaming completion call."""

    def __init__(
        self,
        transport: ChatTransport,
        config: Optional[NamingConfig] = None,
        mock: Optional[MockResponses] = None,
    ):
        """
        Args:
            transport: Transport used for the completion request
            config: Naming model and limits
            mock: Canned names used when the transport has no API key
        """
        self.transport = transport
        self.config = config or NamingConfig()
        self.mock = mock

    @property
    def in_mock_mode(self) -> bool:
        return self.mock is not None and not self.transport.api_key

    async def generate_thread_name(self, first_prompt: str) -> str:
        """
        Generate a concise title for a conversation.

        Args:
            first_prompt: The conversation's first user message

        Returns:
            A cleaned, non-empty title

        Raises:
            TitleGenerationError: If the request fails or yields nothing usable
        """
        if self.in_mock_mode:
            await self.mock.simulate_processing_delay()
            return self.mock.pick_thread_name()

        messages = [
            {
                "role": "user",
                "content": f'Create a title for this conversation based on this message: "{first_prompt}"',
            }
        ]

        try:
            raw = await self.transport.complete(
                messages,
                self.config.model,
                system_prompt=NAMING_SYSTEM_PROMPT,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.config.timeout,
            )
        except ParleyError as e:
            raise TitleGenerationError(f"Title request failed: {e}") from e

        title = clean_title(raw)
        if not title:
            raise TitleGenerationError("Generated title was empty after cleaning")

        logger.debug(f"Generated thread name: {title!r}")
        return title
