"""
WebSocket Chat Handler

Real-time bidirectional chat via WebSocket. Clients can stop a generation
while its tokens are still arriving.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import WebSocket, WebSocketDisconnect

from backend.models.chat import ChatStreamChunk, WebSocketMessage
from backend.streaming import BUSY_MESSAGE, relay_generation
from parley.generation.controller import GenerationController

logger = logging.getLogger(__name__)


class ChatWebSocketHandler:
    """Handler for WebSocket chat connections."""

    def __init__(self, websocket: WebSocket, controller: GenerationController):
        """
        Initialize WebSocket handler.

        Args:
            websocket: WebSocket connection
            controller: Generation controller shared with the HTTP routes
        """
        self.websocket = websocket
        self.controller = controller
        self.connected = False
        self._generation: Optional[asyncio.Task] = None

    async def connect(self):
        """Accept the WebSocket connection and greet the client."""
        await self.websocket.accept()
        self.connected = True
        logger.info("WebSocket chat connected")

        await self.send_message(
            message_type="connected",
            data={
                "message": "WebSocket connection established",
                "model": self.controller.current_model_id,
                "status": self.controller.status.value,
            },
        )

    async def disconnect(self):
        """Stop any generation this client started and close the connection."""
        if self._generation is not None and not self._generation.done():
            self.controller.stop()
            self._generation.cancel()

        if self.connected:
            self.connected = False
            try:
                await self.websocket.close()
                logger.info("WebSocket chat disconnected")
            except RuntimeError as e:
                # Already closed by the client
                logger.debug(f"WebSocket already closed: {e}")

    async def send_message(
        self,
        message_type: str,
        content: str | None = None,
        data: dict[str, Any] | None = None,
    ):
        """
        Send a message to the client.

        Args:
            message_type: Message type (connected, status, token, reasoning, message, error, done, pong)
            content: Message content (optional)
            data: Additional data payload (optional)
        """
        message = WebSocketMessage(type=message_type, content=content, data=data or {})
        await self.websocket.send_text(message.model_dump_json())

    async def send_chunk(self, chunk: ChatStreamChunk):
        await self.send_message(chunk.type, content=chunk.content, data=chunk.data)

    async def send_error(self, error_message: str, code: int = 500):
        """
        Send an error message to the client.

        Args:
            error_message: Error description
            code: Error code
        """
        await self.send_message(message_type="error", content=error_message, data={"code": code})

    async def handle_user_message(self, message: str, options: dict[str, Any] | None = None):
        """
        Start generating a reply without blocking the receive loop.

        Args:
            message: User message content
            options: Optional settings (model)
        """
        if self.controller.is_busy:
            await self.send_error(BUSY_MESSAGE, code=409)
            return

        model = (options or {}).get("model")
        logger.info(f"Processing WebSocket message: '{message[:50]}' (model={model})")
        self._generation = asyncio.create_task(self._stream_reply(message, model))

    async def _stream_reply(self, message: str, model: Optional[str]):
        try:
            async for chunk in relay_generation(self.controller, message, model):
                await self.send_chunk(chunk)
        except WebSocketDisconnect:
            logger.info("Client disconnected mid-generation")

    async def handle_stop(self):
        stopped = self.controller.stop()
        await self.send_message(
            message_type="status",
            content=self.controller.status.value,
            data={"stopped": stopped},
        )

    async def handle_ping(self):
        """Handle ping message (keepalive)."""
        await self.send_message(message_type="pong")

    async def listen(self):
        """
        Main message loop - listen for incoming messages and handle them.

        Runs until the connection is closed.
        """
        try:
            while self.connected:
                raw_message = await self.websocket.receive_text()

                try:
                    data = json.loads(raw_message)
                except json.JSONDecodeError:
                    logger.warning("Invalid JSON received over WebSocket")
                    await self.send_error("Invalid JSON format", code=400)
                    continue

                message_type = data.get("type", "message")
                content = data.get("content")
                options = data.get("data") or {}

                if message_type == "message":
                    if not content or not str(content).strip():
                        await self.send_error("Message content is required", code=400)
                        continue
                    await self.handle_user_message(str(content), options)

                elif message_type == "stop":
                    await self.handle_stop()

                elif message_type == "ping":
                    await self.handle_ping()

                else:
                    logger.warning(f"Unknown message type: {message_type}")
                    await self.send_error(f"Unknown message type: {message_type}", code=400)

        except WebSocketDisconnect:
            logger.info("Client disconnected from chat WebSocket")
            self.connected = False

        finally:
            await self.disconnect()


async def chat_websocket_endpoint(websocket: WebSocket, controller: GenerationController):
    """
    WebSocket endpoint for real-time chat.

    Message format (client → server):
        {"type": "message", "content": "What is machine learning?", "data": {"model": "..."}}
        {"type": "stop"}
        {"type": "ping"}

    Message format (server → client):
        {
            "type": "token",          # or "status", "reasoning", "message", "error", "done", "pong"
            "content": "Machine",     # token content (for type="token")
            "data": {...}             # additional data
        }
    """
    handler = ChatWebSocketHandler(websocket=websocket, controller=controller)
    await handler.connect()
    await handler.listen()
