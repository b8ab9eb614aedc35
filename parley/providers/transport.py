"""
HTTP transport for OpenAI-compatible chat-completion endpoints.

Streams response bodies chunk by chunk with httpx and maps HTTP and network
failures onto Parley's error types. API keys never appear in error text.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

import httpx

from parley.conversation.models import Message
from parley.utilities.config import ProviderConfig
from parley.utilities.errors import ProviderRejectedError, TransportError, redact_secret

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timeout. Please try again."


class ChatTransport:
    """
    Sends chat-completion requests to a provider or proxy endpoint.

    Responsibilities:
        - Build the JSON body and headers
        - Stream the response body lazily (no full buffering)
        - Close the connection as soon as the consumer stops reading
        - Convert non-2xx responses and network failures into errors
    """

    def __init__(
        self,
        base_url: str = "https://openrouter.ai/api/v1",
        api_key: str = "",
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        app_name: str = "Parley",
        app_url: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the transport.

        Args:
            base_url: Provider API root, e.g. https://openrouter.ai/api/v1
            api_key: Default bearer token (may be empty for proxies)
            timeout: Read/write/pool timeout in seconds
            connect_timeout: Connect timeout in seconds
            temperature: Sampling temperature sent with every request
            max_tokens: Completion token limit sent with every request
            app_name: Value of the X-Title attribution header
            app_url: Value of the HTTP-Referer attribution header
            client: Shared AsyncClient; when given it is reused and never closed here
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.app_name = app_name
        self.app_url = app_url
        self._client = client

    @classmethod
    def from_config(
        cls,
        provider: ProviderConfig,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "ChatTransport":
        return cls(
            base_url=provider.base_url,
            api_key=provider.api_key,
            timeout=provider.timeout,
            connect_timeout=provider.connect_timeout,
            temperature=temperature,
            max_tokens=max_tokens,
            app_name=provider.app_name,
            app_url=provider.app_url,
            client=client,
        )

    def completions_url(self, base_url: Optional[str] = None) -> str:
        return f"{(base_url or self.base_url).rstrip('/')}/chat/completions"

    # ========== STREAMING ==========
    async def stream_chat(
        self,
        history: Sequence[Message],
        model_id: str,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        POST a streaming completion request and yield decoded text chunks.

        Args:
            history: Conversation so far, oldest first
            model_id: Provider model identifier (e.g. 'openai/gpt-4o-mini')
            endpoint: Full URL to post to (default: <base_url>/chat/completions)
            api_key: Bearer token override; empty string sends no Authorization
            system_prompt: Optional system instructions prepended to the history

        Yields:
            Text chunks exactly as they arrive

        Raises:
            ProviderRejectedError: On a non-2xx response (before any chunk)
            TransportError: On network failure or timeout
        """
        url = endpoint or self.completions_url()
        key = self.api_key if api_key is None else api_key
        payload = self.build_payload(history, model_id, system_prompt=system_prompt, stream=True)
        headers = self.build_headers(key, stream=True)

        logger.debug(f"Streaming {model_id} via {url} ({len(payload['messages'])} messages)")

        try:
            async with self._client_context() as client:
                async with client.stream("POST", url, json=payload, headers=headers) as response:
                    if not response.is_success:
                        body = await response.aread()
                        raise self._rejection(response.status_code, body, key)

                    async for chunk in response.aiter_text():
                        yield chunk
        except httpx.TimeoutException as e:
            raise TransportError(TIMEOUT_MESSAGE, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(
                redact_secret(f"Failed to stream message: {e}", key), cause=e
            ) from e

    # ========== NON-STREAMING ==========
    async def complete(
        self,
        history: Sequence[Message] | Sequence[dict[str, str]],
        model_id: str,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send a non-streaming completion request and return the message text.

        Raises:
            ProviderRejectedError: On a non-2xx response or empty content
            TransportError: On network failure or timeout
        """
        url = endpoint or self.completions_url()
        key = self.api_key if api_key is None else api_key
        payload = self.build_payload(
            history,
            model_id,
            system_prompt=system_prompt,
            stream=False,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        request_timeout = httpx.Timeout(timeout) if timeout is not None else self.timeout

        try:
            async with self._client_context() as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers=self.build_headers(key, stream=False),
                    timeout=request_timeout,
                )
        except httpx.TimeoutException as e:
            raise TransportError(TIMEOUT_MESSAGE, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(
                redact_secret(f"Failed to send message: {e}", key), cause=e
            ) from e

        if not response.is_success:
            raise self._rejection(response.status_code, response.content, key)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None

        if not isinstance(content, str) or not content:
            raise ProviderRejectedError("Empty response from API", response.status_code)
        return content

    async def list_models(
        self, base_url: Optional[str] = None, api_key: Optional[str] = None
    ) -> list[str]:
        """
        Fetch the model identifiers a provider offers.

        Accepts both ``{"data": [{"id": ...}]}`` and ``{"models": [...]}`` shapes.
        """
        url = f"{(base_url or self.base_url).rstrip('/')}/models"
        key = self.api_key if api_key is None else api_key

        try:
            async with self._client_context() as client:
                response = await client.get(url, headers=self.build_headers(key, stream=False))
        except httpx.TimeoutException as e:
            raise TransportError(TIMEOUT_MESSAGE, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(
                redact_secret(f"Failed to fetch models: {e}", key), cause=e
            ) from e

        if not response.is_success:
            raise self._rejection(response.status_code, response.content, key)

        data = response.json()
        if isinstance(data.get("data"), list):
            return [model["id"] for model in data["data"]]
        if isinstance(data.get("models"), list):
            return [
                model.get("id", str(model)) if isinstance(model, dict) else str(model)
                for model in data["models"]
            ]
        raise ProviderRejectedError("Unexpected models response", response.status_code)

    # ========== HELPERS ==========
    def build_payload(
        self,
        history: Sequence[Message] | Sequence[dict[str, str]],
        model_id: str,
        system_prompt: Optional[str] = None,
        stream: bool = True,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """Build the chat-completions JSON body."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(message_to_json(m) for m in history)

        payload: dict[str, Any] = {
            "model": model_id,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    def build_headers(self, api_key: str, stream: bool) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if stream:
            headers["Accept"] = "text/event-stream"
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_name:
            headers["X-Title"] = self.app_name
        return headers

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @staticmethod
    def _rejection(status_code: int, body: bytes, api_key: str) -> ProviderRejectedError:
        message = decode_error_message(body)
        logger.warning(f"Provider rejected request with status {status_code}")
        return ProviderRejectedError(redact_secret(message, api_key), status_code)


def message_to_json(message: Message | dict[str, str]) -> dict[str, str]:
    """Convert a Message to the provider's ``{role, content}`` format."""
    if isinstance(message, dict):
        return {"role": message["role"], "content": message["content"]}
    return {"role": message.role.value, "content": message.content}


def decode_error_message(body: bytes) -> str:
    """Extract ``error.message`` from an error body, falling back to raw text."""
    text = body.decode("utf-8", errors="replace").strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text[:200] or "Unknown error"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
    return "Unknown error"
