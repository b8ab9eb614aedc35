"""
Generation Controller for Parley

Drives one chat generation at a time: appends the user's message, streams
the assistant reply into the selected conversation, supports stopping
mid-stream and names new conversations in the background.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from parley.conversation.models import (
    Conversation,
    GenerationStatus,
    Message,
    MessageRole,
    StreamingMessage,
)
from parley.conversation.store import ConversationStore
from parley.generation.naming import ThreadNamingService, fallback_title
from parley.providers.backends import ChatBackend, create_backend
from parley.providers.events import Done, ReasoningDelta, StreamError, TextDelta
from parley.providers.mock import MockResponses
from parley.providers.transport import ChatTransport
from parley.utilities.config import ParleyConfig, get_config
from parley.utilities.errors import (
    ConversationNotFoundError,
    ProviderRejectedError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STOPPED_SUFFIX = "\n\n*[Response stopped by user]*"

Listener = Callable[[], None]


def format_error(message: str) -> str:
    """Render a provider failure as an assistant message."""
    return f"❌ **Error**: {message}\n\nPlease check your API key configuration and try again."


@dataclass
class _Session:
    """State of a single in-flight generation."""

    conversation_id: str
    message: StreamingMessage
    cancelled: bool = False


class GenerationController:
    """
    Orchestrates chat generations against a ConversationStore.

    Status moves idle -> submitting -> streaming -> idle, passing through
    error when the provider fails. Only one generation runs at a time across
    all conversations. Listeners are called with no arguments after every
    observable change and read the controller's state themselves.
    """

    def __init__(
        self,
        store: ConversationStore,
        backend: ChatBackend,
        naming: Optional[ThreadNamingService] = None,
        config: Optional[ParleyConfig] = None,
    ):
        """
        Args:
            store: Conversation store to read and mutate
            backend: Streaming chat backend
            naming: Title generator for new conversations (None: local fallback titles)
            config: Parley configuration (default: get_config())
        """
        self.store = store
        self.backend = backend
        self.naming = naming
        self.config = config or get_config()

        self._status = GenerationStatus.IDLE
        self._session: Optional[_Session] = None
        self._model_id = self.config.generation.default_model
        self._last_error: Optional[str] = None
        self._last_reasoning = ""
        self._listeners: list[Listener] = []
        self._title_tasks: set[asyncio.Task] = set()

    # ========== STATE ==========
    @property
    def status(self) -> GenerationStatus:
        return self._status

    @property
    def is_busy(self) -> bool:
        return self._status != GenerationStatus.IDLE

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_reasoning(self) -> str:
        """Reasoning text of the most recent generation, if the model sent any."""
        return self._last_reasoning

    @property
    def current_model_id(self) -> str:
        return self._model_id

    def set_model(self, model_id: str) -> None:
        if not model_id.strip():
            raise ValidationError("Model id must not be empty")
        self._model_id = model_id.strip()
        self._notify()

    @property
    def active_conversation_id(self) -> Optional[str]:
        """Conversation the running generation writes to, if any."""
        return self._session.conversation_id if self._session else None

    @property
    def partial_response(self) -> Optional[Message]:
        """Snapshot of the reply being streamed, if any."""
        return self._session.message.snapshot() if self._session else None

    @property
    def selected_conversation(self) -> Optional[Conversation]:
        return self.store.selected

    @property
    def messages(self) -> list[Message]:
        """Messages of the selected conversation."""
        conversation = self.store.selected
        return list(conversation.messages) if conversation else []

    # ========== CONVERSATIONS ==========
    def create_conversation(self) -> Conversation:
        conversation = self.store.create()
        self._notify()
        return conversation

    def select_conversation(self, conversation_id: str) -> None:
        if conversation_id not in self.store:
            raise ConversationNotFoundError(conversation_id)
        self.store.select(conversation_id)
        self._notify()

    def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation, stopping its generation first if one is running.

        Returns:
            True if deleted, False if it did not exist
        """
        if self._session is not None and self._session.conversation_id == conversation_id:
            self.stop()

        deleted = self.store.delete(conversation_id)
        if deleted:
            self._notify()
        return deleted

    def delete_all_conversations(self) -> int:
        self.stop()
        count = self.store.delete_all()
        self._notify()
        return count

    # ========== LISTENERS ==========
    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Listener {listener!r} failed: {e}", exc_info=True)

    # ========== GENERATION ==========
    async def submit(self, text: str, model_id: Optional[str] = None) -> bool:
        """
        Send a user message and stream the assistant's reply.

        Returns once the reply has finished, failed or been stopped. Provider
        failures end up in the transcript, not as exceptions.

        Args:
            text: The user's message
            model_id: Model to use (default: current_model_id)

        Returns:
            True if the message was accepted, False if it was ignored
            (blank text or a generation already running)
        """
        try:
            content = self._check_submission(text)
        except ValidationError as e:
            logger.debug(f"Submission ignored: {e}")
            return False

        self._status = GenerationStatus.SUBMITTING
        self._last_error = None
        self._last_reasoning = ""

        conversation = self.store.selected
        if conversation is None:
            conversation = self.store.create()

        is_first_message = not conversation.messages
        self.store.append_message(conversation.id, Message.create(MessageRole.USER, content))
        self._notify()

        if is_first_message:
            self._spawn_title_task(conversation.id, content)

        history = [m for m in conversation.messages if m.content]

        session = _Session(conversation.id, StreamingMessage.placeholder())
        self._session = session
        self._status = GenerationStatus.STREAMING
        self._notify()

        self.store.append_message(conversation.id, session.message.snapshot())
        self._notify()

        model = model_id or self._model_id
        logger.info(f"Generating reply with {model} ({len(history)} messages)")

        try:
            failure = await self._consume(session, history, model)
        except asyncio.CancelledError:
            self._cancel(session)
            raise
        except BaseException:
            if self._session is session:
                self._release(session)
            raise

        if self._session is not session:
            logger.info("Generation stopped by user")
        elif failure is not None:
            self._fail(session, failure)
        else:
            self._complete(session)
        return True

    def stop(self) -> bool:
        """
        Stop the running generation.

        Keeps what has streamed so far, marked as stopped, and makes the
        controller idle immediately. Nothing more is written to the
        transcript by the stopped generation.

        Returns:
            True if a generation was stopped, False if none was streaming
        """
        session = self._session
        if session is None or self._status != GenerationStatus.STREAMING:
            return False

        session.cancelled = True
        if not session.message.is_empty:
            self.store.replace_last_message(
                session.conversation_id, session.message.snapshot(STOPPED_SUFFIX)
            )
        self._release(session)
        return True

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending title generations to finish."""
        pending = [task for task in self._title_tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending)
            pending = [task for task in self._title_tasks if not task.done()]

    # ========== HELPERS ==========
    def _check_submission(self, text: str) -> str:
        content = text.strip()
        if not content:
            raise ValidationError("Message is empty")
        if self._status != GenerationStatus.IDLE:
            raise ValidationError(f"Generation already in progress ({self._status.value})")
        return content

    async def _consume(
        self, session: _Session, history: list[Message], model_id: str
    ) -> Optional[str]:
        """
        Apply backend events to the session until it ends.

        Returns:
            The failure message, or None on completion or cancellation
        """
        events = self.backend.stream_chat(
            history,
            model_id,
            system_prompt=self.config.generation.system_prompt,
        )

        try:
            async with aclosing(events):
                async for event in events:
                    if session.cancelled:
                        return None

                    if isinstance(event, TextDelta):
                        session.message.append_text(event.text)
                        self._write_tail(session)
                    elif isinstance(event, ReasoningDelta):
                        session.message.append_reasoning(event.text)
                        self._write_tail(session)
                    elif isinstance(event, Done):
                        return None
                    elif isinstance(event, StreamError):
                        return event.message
        except (ProviderRejectedError, TransportError) as e:
            logger.warning(f"Backend raised instead of reporting an error event: {e}")
            return str(e)

        return None

    def _write_tail(self, session: _Session) -> None:
        self.store.replace_last_message(session.conversation_id, session.message.snapshot())
        self._notify()

    def _complete(self, session: _Session) -> None:
        logger.info(f"Generation complete ({len(session.message.content)} chars)")
        self._release(session)

    def _fail(self, session: _Session, message: str) -> None:
        logger.error(f"Generation failed: {message}")
        self._status = GenerationStatus.ERROR
        self._last_error = message

        formatted = format_error(message)
        if session.message.is_empty:
            self.store.replace_last_message(
                session.conversation_id,
                Message(
                    id=session.message.id,
                    role=MessageRole.ASSISTANT,
                    content=formatted,
                    timestamp=session.message.timestamp,
                ),
            )
        else:
            self.store.append_message(
                session.conversation_id, Message.create(MessageRole.ASSISTANT, formatted)
            )
        self._notify()

        self._release(session)

    def _cancel(self, session: _Session) -> None:
        """The submitting task itself was cancelled; treat it like stop()."""
        if self._session is session:
            self.stop()

    def _release(self, session: _Session) -> None:
        session.cancelled = True
        self._session = None
        self._last_reasoning = session.message.reasoning
        self._status = GenerationStatus.IDLE
        if session.conversation_id in self.store:
            self.store.touch(session.conversation_id)
        self._notify()

    # ========== TITLES ==========
    def _spawn_title_task(self, conversation_id: str, content: str) -> None:
        task = asyncio.create_task(self._generate_title(conversation_id, content))
        self._title_tasks.add(task)
        task.add_done_callback(self._title_tasks.discard)

    async def _generate_title(self, conversation_id: str, content: str) -> None:
        title = None
        if self.naming is not None and self.config.naming.enabled:
            try:
                title = await asyncio.wait_for(
                    self.naming.generate_thread_name(content),
                    timeout=self.config.naming.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Title generation timed out; using fallback title")
            except Exception as e:
                logger.warning(f"Title generation failed; using fallback title: {e}")

        if not title:
            title = fallback_title(content)

        if conversation_id not in self.store:
            logger.debug(f"Conversation {conversation_id} deleted before it was named")
            return

        self.store.rename(conversation_id, title)
        self._notify()


def create_controller(
    config: Optional[ParleyConfig] = None,
    store: Optional[ConversationStore] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> GenerationController:
    """
    Wire a controller with the backend and title generator named by ``config``.

    Args:
        config: Parley configuration (default: get_config())
        store: Store to drive (default: a new, empty one)
        client: Shared HTTP client for the transport

    Returns:
        A ready GenerationController
    """
    config = config or get_config()
    transport = ChatTransport.from_config(
        config.provider,
        temperature=config.generation.temperature,
        max_tokens=config.generation.max_tokens,
        client=client,
    )

    mock = None
    if config.provider.mock_when_unconfigured:
        mock = MockResponses(delay_scale=config.generation.mock_delay_scale)

    naming = None
    if config.naming.enabled:
        naming = ThreadNamingService(transport, config.naming, mock=mock)

    return GenerationController(
        store or ConversationStore(),
        create_backend(config, transport),
        naming=naming,
        config=config,
    )
