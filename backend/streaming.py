"""
Generation relay shared by the SSE endpoint and the WebSocket handler.

Turns controller notifications into ChatStreamChunks and runs a submission
while its chunks are drained by the caller.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Optional

from backend.models.chat import ChatStreamChunk, MessageInfo
from parley.conversation.models import GenerationStatus, MessageRole
from parley.generation.controller import GenerationController

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A generation is already in progress"

# Submissions still finishing after their client disconnected
_detached_tasks: set[asyncio.Task] = set()


class GenerationRelay:
    """
    Controller listener that emits the chunks of one generation.

    Starts forwarding when its own submission task is accepted, then sends
    only the text added since the previous notification, so each token is
    sent exactly once.
    """

    def __init__(self, controller: GenerationController, emit: Callable[[ChatStreamChunk], None]):
        self.controller = controller
        self.emit = emit
        self.task: Optional[asyncio.Task] = None
        self.conversation_id: Optional[str] = None
        self.saw_error = False
        self._status = GenerationStatus.IDLE
        self._started = False
        self._finished = False
        self._message_id: Optional[str] = None
        self._content_sent = 0
        self._reasoning_sent = 0

    def __call__(self) -> None:
        if self._finished:
            return

        status = self.controller.status
        # Listeners run inside the submitting task, so a generation started
        # by another client is notified from a different task
        if not self._started:
            if status != GenerationStatus.SUBMITTING or asyncio.current_task() is not self.task:
                return
            self._started = True

        if status != self._status:
            self._status = status
            if status == GenerationStatus.ERROR:
                self.saw_error = True
            self.emit(ChatStreamChunk(type="status", content=status.value))
            if status == GenerationStatus.IDLE:
                self._finished = True
                return

        partial = self.controller.partial_response
        if partial is None:
            return

        if self._message_id is None:
            self._message_id = partial.id
            self.conversation_id = self.controller.active_conversation_id
        elif partial.id != self._message_id:
            return

        if len(partial.content) > self._content_sent:
            self.emit(ChatStreamChunk(type="token", content=partial.content[self._content_sent:]))
            self._content_sent = len(partial.content)

        if len(partial.reasoning) > self._reasoning_sent:
            self.emit(
                ChatStreamChunk(type="reasoning", content=partial.reasoning[self._reasoning_sent:])
            )
            self._reasoning_sent = len(partial.reasoning)

    def final_chunks(self, processing_time: float) -> list[ChatStreamChunk]:
        """Chunks describing the finished generation: messages, error, done."""
        chunks = []
        conversation = (
            self.controller.store.get(self.conversation_id) if self.conversation_id else None
        )

        if conversation is not None:
            # Assistant messages written after the last user message
            trailing = []
            for message in reversed(conversation.messages):
                if message.role == MessageRole.USER:
                    break
                trailing.append(message)
            for message in reversed(trailing):
                chunks.append(
                    ChatStreamChunk(type="message", data=MessageInfo.from_message(message).model_dump())
                )

        if self.saw_error and self.controller.last_error:
            chunks.append(ChatStreamChunk(type="error", content=self.controller.last_error))

        chunks.append(
            ChatStreamChunk(
                type="done",
                data={
                    "conversation_id": self.conversation_id,
                    "title": conversation.title if conversation else None,
                    "processing_time": processing_time,
                },
            )
        )
        return chunks


async def relay_generation(
    controller: GenerationController,
    message: str,
    model: Optional[str] = None,
) -> AsyncIterator[ChatStreamChunk]:
    """
    Submit a message and yield its chunks as they happen.

    Closing the iterator early (client gone) stops the generation.
    """
    queue: asyncio.Queue[Optional[ChatStreamChunk]] = asyncio.Queue()
    relay = GenerationRelay(controller, queue.put_nowait)
    start_time = time.time()

    controller.add_listener(relay)
    task = asyncio.create_task(controller.submit(message, model))
    relay.task = task
    task.add_done_callback(lambda _: queue.put_nowait(None))

    try:
        while True:
            chunk = await queue.get()
            if chunk is None:
                break
            yield chunk

        accepted = task.result()
        if not accepted:
            logger.info("Submission rejected: controller busy")
            yield ChatStreamChunk(type="error", content=BUSY_MESSAGE, data={"code": 409})
            return

        processing_time = time.time() - start_time
        for chunk in relay.final_chunks(processing_time):
            yield chunk
        logger.info(f"Stream completed in {processing_time:.3f}s")

    finally:
        controller.remove_listener(relay)
        if not task.done():
            logger.info("Client went away; stopping generation")
            controller.stop()
            _detached_tasks.add(task)
            task.add_done_callback(_detached_tasks.discard)


def to_sse(chunk: ChatStreamChunk) -> str:
    """Frame a chunk as a Server-Sent Event."""
    return f"data: {chunk.model_dump_json()}\n\n"
