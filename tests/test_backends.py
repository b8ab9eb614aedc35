import httpx

from conftest import content_chunk, mock_client, sse_body
from parley.conversation.models import Message, MessageRole
from parley.providers.backends import (
    ChatBackend,
    DirectBackend,
    MockBackend,
    ProxyBackend,
    create_backend,
    relay_events,
)
from parley.providers.events import Done, ReasoningDelta, StreamError, TextDelta
from parley.providers.mock import MOCK_RESPONSES, MockResponses
from parley.providers.transport import ChatTransport
from parley.utilities.config import BackendProvider, ParleyConfig
from parley.utilities.errors import TransportError


def transport_for(handler, api_key: str = "sk-test") -> ChatTransport:
    return ChatTransport(
        base_url="https://provider.test/v1", api_key=api_key, client=mock_client(handler)
    )


def history():
    return [Message.create(MessageRole.USER, "Hello")]


async def collect(stream):
    return [event async for event in stream]


# ========== DIRECT BACKEND ==========
class TestDirectBackend:
    async def test_streams_deltas_then_done(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = sse_body(
                {"choices": [{"delta": {"reasoning": "hmm"}}]},
                content_chunk("Hel"),
                content_chunk("lo"),
            )
            return httpx.Response(200, content=body)

        backend = DirectBackend(transport_for(handler))
        events = await collect(backend.stream_chat(history(), "m"))

        assert events == [ReasoningDelta("hmm"), TextDelta("Hel"), TextDelta("lo"), Done()]

    async def test_graceful_close_without_done_marker(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=sse_body(content_chunk("Hi"), done=False))

        backend = DirectBackend(transport_for(handler))
        events = await collect(backend.stream_chat(history(), "m"))

        assert events == [TextDelta("Hi"), Done()]

    async def test_rejection_becomes_single_stream_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": {"message": "Upstream exploded"}})

        backend = DirectBackend(transport_for(handler))
        events = await collect(backend.stream_chat(history(), "m"))

        assert events == [StreamError("API Error (500): Upstream exploded")]

    async def test_in_stream_error_ends_stream(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = sse_body(content_chunk("So far"), {"error": {"message": "Overloaded"}}, content_chunk("x"))
            return httpx.Response(200, content=body)

        backend = DirectBackend(transport_for(handler))
        events = await collect(backend.stream_chat(history(), "m"))

        assert events == [TextDelta("So far"), StreamError("Overloaded")]

    async def test_base_url_override(self):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, content=sse_body())

        backend = DirectBackend(transport_for(handler))
        await collect(backend.stream_chat(history(), "m", base_url="https://other.test/api/"))

        assert urls == ["https://other.test/api/chat/completions"]


# ========== PROXY BACKENDS ==========
class TestProxyBackend:
    async def test_unconfigured_proxy_reports_error(self):
        backend = ProxyBackend("Firebase", "", transport_for(lambda r: httpx.Response(200)), "PARLEY_FIREBASE_PROXY_URL")

        events = await collect(backend.stream_chat(history(), "m"))

        assert len(events) == 1
        assert isinstance(events[0], StreamError)
        assert "Firebase proxy not configured" in events[0].message
        assert "PARLEY_FIREBASE_PROXY_URL" in events[0].message

    async def test_posts_to_proxy_without_credentials(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, content=sse_body(content_chunk("via proxy")))

        backend = ProxyBackend("Supabase", "https://proxy.test/functions/chat", transport_for(handler))
        events = await collect(backend.stream_chat(history(), "m", api_key="ignored"))

        assert events == [TextDelta("via proxy"), Done()]
        assert str(captured["request"].url) == "https://proxy.test/functions/chat"
        assert "Authorization" not in captured["request"].headers


# ========== MOCK BACKEND ==========
class TestMockBackend:
    async def test_streams_a_canned_response(self):
        backend = MockBackend(MockResponses(delay_scale=0))

        events = await collect(backend.stream_chat(history(), "m"))

        assert events[-1] == Done()
        text = "".join(e.text for e in events[:-1])
        assert text in MOCK_RESPONSES

    def test_satisfies_protocol(self):
        assert isinstance(MockBackend(), ChatBackend)


# ========== RELAY ==========
class TestRelayEvents:
    async def test_transport_failure_becomes_stream_error(self):
        async def failing_chunks():
            yield 'data: {"choices":[{"delta":{"content":"a"}}]}\n'
            raise TransportError("Request timeout. Please try again.")

        events = await collect(relay_events(failing_chunks()))

        assert events == [TextDelta("a"), StreamError("Request timeout. Please try again.")]

    async def test_unexpected_failure_is_named_not_raised(self):
        async def broken_chunks():
            raise RuntimeError("bug")
            yield ""

        events = await collect(relay_events(broken_chunks()))

        assert events == [StreamError("Failed to stream message: RuntimeError")]

    async def test_closing_early_closes_source(self):
        closed = []

        async def endless_chunks():
            try:
                while True:
                    yield 'data: {"choices":[{"delta":{"content":"x"}}]}\n'
            finally:
                closed.append(True)

        stream = relay_events(endless_chunks())
        assert await stream.__anext__() == TextDelta("x")
        await stream.aclose()

        assert closed == [True]


# ========== SELECTION ==========
class TestCreateBackend:
    def test_direct_with_key(self):
        config = ParleyConfig()
        config.provider.api_key = "sk-test"

        assert isinstance(create_backend(config), DirectBackend)

    def test_mock_without_key(self):
        assert isinstance(create_backend(ParleyConfig()), MockBackend)

    def test_direct_without_key_when_mock_disabled(self):
        config = ParleyConfig()
        config.provider.mock_when_unconfigured = False

        assert isinstance(create_backend(config), DirectBackend)

    def test_proxies(self):
        config = ParleyConfig()
        config.provider.backend = BackendProvider.SUPABASE
        config.provider.supabase_proxy_url = "https://proxy.test"

        backend = create_backend(config)

        assert isinstance(backend, ProxyBackend)
        assert backend.name == "Supabase"
        assert backend.proxy_url == "https://proxy.test"

        config.provider.backend = BackendProvider.FIREBASE
        assert create_backend(config).name == "Firebase"
