"""
Conversation Store for Parley

Keeps conversations in process memory along with the selection pointer.
Conversations are ordered by when they were last touched.
"""

import itertools
import logging
from datetime import datetime
from typing import Optional

from parley.conversation.models import Conversation, Message, new_id
from parley.utilities.errors import ConversationNotFoundError, InvalidStateError

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


class ConversationStore:
    """
    In-memory collection of conversations.

    Features:
        - Create/select/delete conversations
        - Append and tail-replace messages
        - Most-recently-updated ordering
    """

    def __init__(self):
        self._conversations: dict[str, Conversation] = {}
        self._selected_id: Optional[str] = None
        # Monotonic counter, secondary sort key when timestamps collide
        self._revision = itertools.count()
        self._revisions: dict[str, int] = {}

    # ========== QUERIES ==========
    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def selected(self) -> Optional[Conversation]:
        """The selected conversation, or None if nothing (valid) is selected."""
        if self._selected_id is None:
            return None
        return self._conversations.get(self._selected_id)

    @property
    def conversations(self) -> list[Conversation]:
        """All conversations in creation order."""
        return list(self._conversations.values())

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def list_ordered(self) -> list[Conversation]:
        """
        Return conversations sorted by last update, most recent first.

        Ties on last_updated are broken by touch order, not creation order:
        of two conversations touched within the same clock tick, the one
        touched last comes first.
        """
        return sorted(
            self._conversations.values(),
            key=lambda c: (c.last_updated, self._revisions[c.id]),
            reverse=True,
        )

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    # ========== MUTATIONS ==========
    def create(self) -> Conversation:
        """
        Create an empty conversation and select it.

        Returns:
            The new Conversation
        """
        now = datetime.now()
        conversation = Conversation(
            id=new_id(),
            title=DEFAULT_TITLE,
            messages=[],
            last_updated=now,
            created_at=now,
        )
        self._conversations[conversation.id] = conversation
        self._revisions[conversation.id] = next(self._revision)
        self._selected_id = conversation.id

        logger.info(f"Created conversation: {conversation.id}")
        return conversation

    def select(self, conversation_id: Optional[str]) -> None:
        """Point the selection at ``conversation_id`` (or clear it with None)."""
        self._selected_id = conversation_id

    def delete(self, conversation_id: str) -> bool:
        """
        Delete a conversation.

        If it was selected, the selection moves to the most recently created
        remaining conversation, or None.

        Returns:
            True if deleted, False if not found
        """
        if conversation_id not in self._conversations:
            return False

        del self._conversations[conversation_id]
        del self._revisions[conversation_id]

        if self._selected_id == conversation_id:
            remaining = list(self._conversations)
            self._selected_id = remaining[-1] if remaining else None

        logger.info(f"Deleted conversation: {conversation_id}")
        return True

    def delete_all(self) -> int:
        """
        Delete all conversations.

        Returns:
            Number of conversations deleted
        """
        count = len(self._conversations)
        self._conversations.clear()
        self._revisions.clear()
        self._selected_id = None

        logger.info(f"Deleted all {count} conversation(s)")
        return count

    def append_message(self, conversation_id: str, message: Message) -> None:
        conversation = self._require(conversation_id)
        conversation.messages.append(message)
        self._touch(conversation)
        logger.debug(f"Added {message.role.value} message {message.id} to {conversation_id}")

    def replace_last_message(self, conversation_id: str, message: Message) -> None:
        """
        Replace the final message of a conversation.

        Raises:
            InvalidStateError: If the conversation has no messages
        """
        conversation = self._require(conversation_id)
        if not conversation.messages:
            raise InvalidStateError(
                f"Cannot replace last message of empty conversation {conversation_id}"
            )
        conversation.messages[-1] = message
        self._touch(conversation)

    def rename(self, conversation_id: str, title: str) -> None:
        conversation = self._require(conversation_id)
        conversation.title = title
        self._touch(conversation)
        logger.debug(f"Renamed conversation {conversation_id} to {title!r}")

    def touch(self, conversation_id: str) -> None:
        """Mark a conversation as updated now."""
        self._touch(self._require(conversation_id))

    # ========== HELPERS ==========
    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def _touch(self, conversation: Conversation) -> None:
        conversation.last_updated = datetime.now()
        self._revisions[conversation.id] = next(self._revision)
