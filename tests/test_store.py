import pytest

from parley.conversation.models import Message, MessageRole, StreamingMessage
from parley.conversation.store import DEFAULT_TITLE, ConversationStore
from parley.utilities.errors import ConversationNotFoundError, InvalidStateError


def user(text: str) -> Message:
    return Message.create(MessageRole.USER, text)


# ========== CREATION & SELECTION ==========
class TestCreateAndSelect:
    def test_create_selects_new_conversation(self, store):
        first = store.create()
        second = store.create()

        assert store.selected_id == second.id
        assert store.selected is second
        assert first.title == DEFAULT_TITLE
        assert first.messages == []
        assert len(store) == 2

    def test_selection_of_unknown_id_resolves_to_none(self, store):
        store.create()
        store.select("missing")

        assert store.selected is None


# ========== ORDERING ==========
class TestOrdering:
    def test_most_recently_updated_first(self, store):
        a = store.create()
        b = store.create()
        c = store.create()

        store.append_message(a.id, user("bump"))

        assert [conv.id for conv in store.list_ordered()] == [a.id, c.id, b.id]

    def test_rename_counts_as_update(self, store):
        a = store.create()
        b = store.create()

        store.rename(a.id, "Renamed")

        assert [conv.id for conv in store.list_ordered()] == [a.id, b.id]
        assert a.title == "Renamed"


# ========== DELETION ==========
class TestDelete:
    def test_unknown_id_is_a_no_op(self, store):
        a = store.create()

        assert store.delete("does-not-exist") is False
        assert store.selected_id == a.id
        assert len(store) == 1

    def test_deleting_selected_moves_selection(self, store):
        a = store.create()
        b = store.create()
        c = store.create()

        store.delete(c.id)
        assert store.selected_id == b.id

        store.select(a.id)
        store.delete(b.id)
        assert store.selected_id == a.id

        store.delete(a.id)
        assert store.selected_id is None

    def test_deleting_other_keeps_selection(self, store):
        a = store.create()
        b = store.create()

        store.delete(a.id)

        assert store.selected_id == b.id

    def test_delete_all(self, store):
        store.create()
        store.create()

        assert store.delete_all() == 2
        assert len(store) == 0
        assert store.selected_id is None


# ========== MESSAGES ==========
class TestMessages:
    def test_replace_last_message(self, store):
        conversation = store.create()
        store.append_message(conversation.id, user("hi"))
        tail = StreamingMessage.placeholder()
        store.append_message(conversation.id, tail.snapshot())

        tail.append_text("Hello")
        store.replace_last_message(conversation.id, tail.snapshot())

        assert [m.content for m in conversation.messages] == ["hi", "Hello"]
        assert conversation.messages[-1].id == tail.id

    def test_replace_on_empty_conversation_raises(self, store):
        conversation = store.create()

        with pytest.raises(InvalidStateError):
            store.replace_last_message(conversation.id, user("x"))

    def test_unknown_conversation_raises_key_error(self, store):
        with pytest.raises(KeyError):
            store.append_message("missing", user("x"))

        with pytest.raises(ConversationNotFoundError) as exc_info:
            store.rename("missing", "Title")
        assert str(exc_info.value) == "Conversation not found: missing"


class TestStreamingMessage:
    def test_snapshot_keeps_identity(self):
        tail = StreamingMessage.placeholder()
        tail.append_reasoning("step")
        tail.append_text("Par")
        tail.append_text("tial")

        snapshot = tail.snapshot(suffix="!")

        assert snapshot.id == tail.id
        assert snapshot.timestamp == tail.timestamp
        assert snapshot.role == MessageRole.ASSISTANT
        assert snapshot.content == "Partial!"
        assert snapshot.reasoning == "step"
        assert not tail.is_empty
        assert StreamingMessage.placeholder().is_empty

    def test_to_dict(self):
        message = user("hello")

        data = message.to_dict()

        assert data["role"] == "user"
        assert data["content"] == "hello"
        assert data["timestamp"] == message.timestamp.isoformat()


def test_fixture_store_is_empty(store: ConversationStore):
    assert store.list_ordered() == []
    assert store.selected is None
