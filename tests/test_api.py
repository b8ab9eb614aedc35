import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.app import app
from backend.dependencies import get_controller_dependency
from backend.streaming import BUSY_MESSAGE, _detached_tasks, relay_generation
from conftest import ScriptedBackend, StubNamer
from parley.conversation.models import GenerationStatus
from parley.generation.controller import STOPPED_SUFFIX, GenerationController, format_error
from parley.providers.events import Done, ReasoningDelta, StreamError, TextDelta


@pytest.fixture
def build_client(store, config):
    def factory(*scripts, naming=None, **backend_options):
        backend = ScriptedBackend(*scripts, **backend_options)
        controller = GenerationController(store, backend, naming=naming, config=config)
        app.dependency_overrides[get_controller_dependency] = lambda: controller
        return TestClient(app), controller

    yield factory
    app.dependency_overrides.clear()


def read_chunks(response) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


async def drain(stream) -> list:
    return [chunk async for chunk in stream]


# ========== CONVERSATIONS ==========
class TestConversationRoutes:
    def test_create_list_get_delete(self, build_client):
        client, controller = build_client()

        created = client.post("/api/chat/conversations")
        assert created.status_code == 201
        conversation_id = created.json()["conversation"]["id"]

        listing = client.get("/api/chat/conversations").json()
        assert listing["total"] == 1
        assert listing["selected_id"] == conversation_id

        detail = client.get(f"/api/chat/conversations/{conversation_id}")
        assert detail.status_code == 200
        assert detail.json()["title"] == "New Chat"

        deleted = client.delete(f"/api/chat/conversations/{conversation_id}")
        assert deleted.status_code == 200
        assert deleted.json()["selected_id"] is None

    def test_unknown_conversation_is_404(self, build_client):
        client, _ = build_client()

        assert client.get("/api/chat/conversations/missing").status_code == 404
        assert client.delete("/api/chat/conversations/missing").status_code == 404
        assert client.post("/api/chat/conversations/missing/select").status_code == 404

    def test_select_and_delete_all(self, build_client):
        client, controller = build_client()
        first = client.post("/api/chat/conversations").json()["conversation"]["id"]
        client.post("/api/chat/conversations")

        selected = client.post(f"/api/chat/conversations/{first}/select")
        assert selected.json()["conversation"]["id"] == first
        assert controller.store.selected_id == first

        cleared = client.delete("/api/chat/conversations").json()
        assert cleared["deleted"] == 2


# ========== STREAMING ==========
class TestMessageStream:
    def test_streams_tokens_then_final_message(self, build_client):
        client, controller = build_client(
            [ReasoningDelta("hmm"), TextDelta("Hel"), TextDelta("lo"), Done()],
            naming=StubNamer("Greeting"),
        )

        response = client.post("/api/chat/messages/stream", json={"message": "Hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        chunks = read_chunks(response)
        types = [c["type"] for c in chunks]

        assert [c["content"] for c in chunks if c["type"] == "token"] == ["Hel", "lo"]
        assert [c["content"] for c in chunks if c["type"] == "reasoning"] == ["hmm"]
        assert "streaming" in [c["content"] for c in chunks if c["type"] == "status"]
        assert types[-1] == "done"

        message = next(c for c in chunks if c["type"] == "message")
        assert message["data"]["content"] == "Hello"
        assert message["data"]["role"] == "assistant"
        assert chunks[-1]["data"]["conversation_id"] == controller.store.selected_id

    def test_provider_error_is_reported(self, build_client):
        client, _ = build_client([StreamError("boom")])

        chunks = read_chunks(client.post("/api/chat/messages/stream", json={"message": "Hi"}))

        errors = [c for c in chunks if c["type"] == "error"]
        messages = [c for c in chunks if c["type"] == "message"]
        assert errors[0]["content"] == "boom"
        assert messages[0]["data"]["content"] == format_error("boom")

    def test_blank_message_rejected(self, build_client):
        client, _ = build_client()

        response = client.post("/api/chat/messages/stream", json={"message": "   "})

        assert response.status_code == 422

    def test_busy_controller_returns_conflict(self):
        app.dependency_overrides[get_controller_dependency] = lambda: SimpleNamespace(is_busy=True)
        try:
            response = TestClient(app).post("/api/chat/messages/stream", json={"message": "Hi"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 409


# ========== RELAY ==========
class TestRelayGeneration:
    async def test_rejected_submission_sees_no_other_generation(self, store, config):
        backend = ScriptedBackend([TextDelta("secret-for-first"), Done()], pause_after=0)
        controller = GenerationController(store, backend, config=config)

        first = relay_generation(controller, "first")
        second = relay_generation(controller, "second")
        first_chunk = asyncio.create_task(anext(first))
        second_chunks = asyncio.create_task(drain(second))

        rejected = await second_chunks

        assert [(c.type, c.content) for c in rejected] == [("error", BUSY_MESSAGE)]
        assert rejected[0].data == {"code": 409}

        await backend.reached.wait()
        backend.release.set()
        accepted = [await first_chunk] + await drain(first)

        assert [c.content for c in accepted if c.type == "token"] == ["secret-for-first"]
        assert accepted[-1].type == "done"
        assert len(backend.calls) == 1

    async def test_closing_stream_stops_generation(self, store, config):
        backend = ScriptedBackend(
            [TextDelta("Partial"), TextDelta(" more"), Done()], pause_after=0
        )
        controller = GenerationController(store, backend, config=config)

        stream = relay_generation(controller, "Hi")
        async for chunk in stream:
            if chunk.type == "token":
                break
        await stream.aclose()

        assert controller.status == GenerationStatus.IDLE
        assert controller.messages[-1].content == "Partial" + STOPPED_SUFFIX

        backend.release.set()
        await asyncio.gather(*list(_detached_tasks))

        assert controller.messages[-1].content == "Partial" + STOPPED_SUFFIX
        assert backend.closed == [0]


# ========== CONTROL ==========
class TestControlRoutes:
    def test_status_and_stop_when_idle(self, build_client):
        client, controller = build_client()

        status = client.get("/api/chat/status").json()
        assert status["status"] == "idle"
        assert status["model"] == controller.current_model_id

        stop = client.post("/api/chat/stop").json()
        assert stop == {"stopped": False, "status": "idle"}

    async def test_stop_mid_stream(self, build_client):
        _, controller = build_client(
            [TextDelta("Partial"), TextDelta(" more"), Done()], pause_after=0
        )
        backend = controller.backend

        generation = asyncio.create_task(controller.submit("Hi"))
        await backend.reached.wait()

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/api/chat/stop")

        assert response.json() == {"stopped": True, "status": "idle"}
        assert controller.messages[-1].content == "Partial" + STOPPED_SUFFIX

        backend.release.set()
        await generation
        assert controller.status == GenerationStatus.IDLE

    def test_set_model(self, build_client):
        client, controller = build_client()

        response = client.put("/api/chat/model", json={"model": "meta/llama-3-8b"})

        assert response.status_code == 200
        assert response.json()["model"] == "meta/llama-3-8b"
        assert controller.current_model_id == "meta/llama-3-8b"

    def test_health(self, build_client):
        client, _ = build_client()

        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["backend"] in ("direct", "firebase", "supabase")


# ========== WEBSOCKET ==========
class TestWebSocket:
    def test_ping_and_message(self, build_client):
        client, controller = build_client([TextDelta("Hi "), TextDelta("back"), Done()])

        with client.websocket_connect("/ws/chat") as websocket:
            assert websocket.receive_json()["type"] == "connected"

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json()["type"] == "pong"

            websocket.send_json({"type": "message", "content": "Hello"})
            received = []
            while True:
                message = websocket.receive_json()
                received.append(message)
                if message["type"] == "done":
                    break

        tokens = "".join(m["content"] for m in received if m["type"] == "token")
        assert tokens == "Hi back"
        assert controller.messages[-1].content == "Hi back"

    def test_unknown_type_and_bad_json(self, build_client):
        client, _ = build_client()

        with client.websocket_connect("/ws/chat") as websocket:
            websocket.receive_json()

            websocket.send_json({"type": "dance"})
            assert websocket.receive_json()["data"]["code"] == 400

            websocket.send_text("{not json")
            assert websocket.receive_json()["content"] == "Invalid JSON format"

            websocket.send_json({"type": "stop"})
            stop = websocket.receive_json()
            assert stop["type"] == "status"
            assert stop["data"]["stopped"] is False

    def test_stop_while_tokens_stream(self, build_client):
        script = [TextDelta(f"w{i} ") for i in range(100)] + [Done()]
        client, controller = build_client(script, delay=0.02)

        with client.websocket_connect("/ws/chat") as websocket:
            websocket.receive_json()
            websocket.send_json({"type": "message", "content": "Talk a lot"})

            while websocket.receive_json()["type"] != "token":
                pass
            websocket.send_json({"type": "stop"})

            received = []
            while True:
                message = websocket.receive_json()
                received.append(message)
                if message["type"] == "done":
                    break

        stop_replies = [m for m in received if m["type"] == "status" and m["data"]]
        final = next(m for m in received if m["type"] == "message")

        assert stop_replies[0]["data"]["stopped"] is True
        assert final["data"]["content"].endswith(STOPPED_SUFFIX)
        assert controller.messages[-1].content == final["data"]["content"]
        assert controller.status == GenerationStatus.IDLE
