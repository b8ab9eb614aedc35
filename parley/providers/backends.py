"""
Chat backends: interchangeable ways of turning a conversation into a stream
of ProviderEvents.

Every backend honours the same contract. The returned stream is finite, its
last event is exactly one Done or StreamError, and it never raises; internal
faults become StreamError events. Cancellation (closing the stream or
cancelling the task) is never converted.
"""

import logging
from typing import AsyncIterator, Optional, Protocol, Sequence, runtime_checkable

from parley.conversation.models import Message
from parley.providers.events import Done, ProviderEvent, StreamError, TextDelta
from parley.providers.mock import MockResponses
from parley.providers.sse import EventStreamParser
from parley.providers.transport import ChatTransport
from parley.utilities.config import BackendProvider, ParleyConfig
from parley.utilities.errors import ParleyError

logger = logging.getLogger(__name__)


@runtime_checkable
class ChatBackend(Protocol):
    """Streaming chat capability shared by every backend."""

    def stream_chat(
        self,
        history: Sequence[Message],
        model_id: str,
        *,
        system_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> AsyncIterator[ProviderEvent]: ...


async def relay_events(chunks: AsyncIterator[str]) -> AsyncIterator[ProviderEvent]:
    """
    Parse raw SSE chunks into events and terminate the stream properly.

    Stops after the first StreamError; otherwise appends Done once the
    stream hits ``[DONE]`` or closes cleanly. ``chunks`` is always closed.
    """
    parser = EventStreamParser()
    events = parser.parse(chunks)
    try:
        async for event in events:
            yield event
            if isinstance(event, StreamError):
                return
    except ParleyError as e:
        logger.warning(f"Chat stream failed: {e}")
        yield StreamError(str(e))
        return
    except Exception as e:
        logger.error(f"Unexpected chat stream failure: {e}", exc_info=True)
        yield StreamError(f"Failed to stream message: {type(e).__name__}")
        return
    finally:
        await events.aclose()
        await chunks.aclose()

    if not parser.done:
        logger.debug("Stream closed without [DONE]; treating as complete")
    yield Done()


class DirectBackend:
    """Calls the provider's chat-completions endpoint from this process."""

    def __init__(self, transport: ChatTransport):
        self.transport = transport

    def stream_chat(
        self,
        history: Sequence[Message],
        model_id: str,
        *,
        system_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> AsyncIterator[ProviderEvent]:
        chunks = self.transport.stream_chat(
            history,
            model_id,
            endpoint=self.transport.completions_url(base_url),
            api_key=api_key,
            system_prompt=system_prompt,
        )
        return relay_events(chunks)


class ProxyBackend:
    """
    Forwards requests to an operator-controlled proxy.

    The proxy holds the provider credentials, so no Authorization header is
    sent. Without a configured URL the stream is a single StreamError.
    """

    def __init__(self, name: str, proxy_url: str, transport: ChatTransport, setting: str = ""):
        """
        Args:
            name: Human-readable proxy name used in messages ("Firebase")
            proxy_url: Full URL of the proxy endpoint
            transport: Transport used to reach it
            setting: Environment variable that configures the URL
        """
        self.name = name
        self.proxy_url = proxy_url
        self.transport = transport
        self.setting = setting

    def stream_chat(
        self,
        history: Sequence[Message],
        model_id: str,
        *,
        system_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> AsyncIterator[ProviderEvent]:
        if not self.proxy_url:
            return self._not_configured()

        chunks = self.transport.stream_chat(
            history,
            model_id,
            endpoint=self.proxy_url,
            api_key="",
            system_prompt=system_prompt,
        )
        return relay_events(chunks)

    async def _not_configured(self) -> AsyncIterator[ProviderEvent]:
        hint = f" Set {self.setting}." if self.setting else ""
        yield StreamError(f"{self.name} proxy not configured.{hint}")


class MockBackend:
    """Streams canned demo responses; used when no API key is configured."""

    def __init__(self, responses: Optional[MockResponses] = None):
        self.responses = responses or MockResponses()

    async def stream_chat(
        self,
        history: Sequence[Message],
        model_id: str,
        *,
        system_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> AsyncIterator[ProviderEvent]:
        logger.info(f"Mock mode: streaming demo response for {model_id}")
        async for word in self.responses.stream_words():
            yield TextDelta(word)
        yield Done()


def create_backend(
    config: ParleyConfig, transport: Optional[ChatTransport] = None
) -> ChatBackend:
    """
    Select the backend named by ``config.provider.backend``.

    The choice is made once; swap backends by building a new controller.
    """
    provider = config.provider
    transport = transport or ChatTransport.from_config(
        provider,
        temperature=config.generation.temperature,
        max_tokens=config.generation.max_tokens,
    )

    if provider.backend == BackendProvider.FIREBASE:
        logger.info("Using Firebase proxy backend")
        return ProxyBackend("Firebase", provider.firebase_proxy_url, transport, "PARLEY_FIREBASE_PROXY_URL")

    if provider.backend == BackendProvider.SUPABASE:
        logger.info("Using Supabase proxy backend")
        return ProxyBackend("Supabase", provider.supabase_proxy_url, transport, "PARLEY_SUPABASE_PROXY_URL")

    if not provider.is_api_key_configured and provider.mock_when_unconfigured:
        logger.warning("No API key configured; using mock responses")
        return MockBackend(MockResponses(delay_scale=config.generation.mock_delay_scale))

    logger.info(f"Using direct backend at {provider.base_url}")
    return DirectBackend(transport)
