import asyncio
import json
from typing import Callable, Optional

import httpx
import pytest

from parley.conversation.store import ConversationStore
from parley.generation.controller import GenerationController
from parley.providers.events import Done, TextDelta
from parley.utilities.config import ParleyConfig
from parley.utilities.errors import TitleGenerationError


# ========== FAKE COLLABORATORS ==========
class ScriptedBackend:
    """
    Backend that replays scripted events, one script per call.

    With ``pause_after`` set, the first call stops after that event index
    until ``release`` is set, so tests can act mid-stream. ``delay`` sleeps
    after every event.
    """

    def __init__(self, *scripts, pause_after: Optional[int] = None, delay: float = 0.0):
        self.scripts = [list(s) for s in scripts] or [[TextDelta("ok"), Done()]]
        self.pause_after = pause_after
        self.delay = delay
        self.calls = []
        self.closed = []
        self.reached = asyncio.Event()
        self.release = asyncio.Event()

    async def stream_chat(self, history, model_id, *, system_prompt=None, api_key=None, base_url=None):
        call_index = len(self.calls)
        self.calls.append(
            {"history": list(history), "model_id": model_id, "system_prompt": system_prompt}
        )
        script = self.scripts[min(call_index, len(self.scripts) - 1)]

        try:
            for i, event in enumerate(script):
                yield event
                if call_index == 0 and self.pause_after == i:
                    self.reached.set()
                    await self.release.wait()
                if self.delay:
                    await asyncio.sleep(self.delay)
        finally:
            self.closed.append(call_index)


class StubNamer:
    """Title generator returning a fixed title, or failing when title is None."""

    def __init__(self, title: Optional[str] = None):
        self.title = title
        self.prompts = []

    async def generate_thread_name(self, first_prompt: str) -> str:
        self.prompts.append(first_prompt)
        if self.title is None:
            raise TitleGenerationError("naming unavailable")
        return self.title


# ========== FIXTURES ==========
@pytest.fixture
def config() -> ParleyConfig:
    config = ParleyConfig()
    config.generation.mock_delay_scale = 0.0
    config.generation.system_prompt = "Be brief."
    return config


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def make_controller(store, config) -> Callable[..., GenerationController]:
    def factory(backend, naming=None) -> GenerationController:
        return GenerationController(store, backend, naming=naming, config=config)

    return factory


# ========== HTTP HELPERS ==========
def sse_body(*records, done: bool = True) -> bytes:
    """Frame JSON records as an SSE response body."""
    lines = [f"data: {json.dumps(record)}\n\n" for record in records]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def content_chunk(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
