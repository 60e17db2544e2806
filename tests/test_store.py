"""Unit tests for chat persistence."""
import logging

import pytest
import pytest_asyncio

from convoflow.conversation import ChatRecord
from convoflow.messages import text_content
from convoflow.store import ChatRecorder, ChatStore, create_chat_store
from convoflow.store.sqlite import SQLiteChatStore


def make_record(chat_id: str, factory, *texts: str) -> ChatRecord:
    return ChatRecord(
        id=chat_id,
        title=f"chat {chat_id}",
        message_history_index=0,
        messages=[factory.user(text) for text in texts],
    )


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "sqlite":
        chat_store = create_chat_store("sqlite", path=tmp_path / "chats.db")
    else:
        chat_store = create_chat_store("memory")
    await chat_store.connect()
    yield chat_store
    await chat_store.disconnect()


class TestChatStore:
    """Tests shared by every store backend."""

    def test_chat_store_is_abstract(self):
        """Test that ChatStore cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ChatStore()  # type: ignore

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, factory):
        record = make_record("s1", factory, "hello", "world")
        record.message_history_index = 1

        await store.save_chat(record)
        loaded = await store.load_chat("s1")

        assert loaded.id == "s1"
        assert loaded.title == "chat s1"
        assert loaded.message_history_index == 1
        assert [text_content(m) for m in loaded.messages] == ["hello", "world"]
        assert loaded.messages[0].id == record.messages[0].id

    @pytest.mark.asyncio
    async def test_load_missing_chat(self, store):
        assert await store.load_chat("missing") is None

    @pytest.mark.asyncio
    async def test_save_replaces_messages(self, store, factory):
        await store.save_chat(make_record("s1", factory, "a"))
        await store.save_chat(make_record("s1", factory, "a", "b"))

        loaded = await store.load_chat("s1")

        assert len(loaded.messages) == 2

    @pytest.mark.asyncio
    async def test_list_is_most_recent_first(self, store, factory):
        for chat_id in ("s1", "s2", "s3"):
            await store.save_chat(make_record(chat_id, factory, "x"))
        await store.save_chat(make_record("s1", factory, "x", "y"))

        chats = await store.list_chats(limit=2)

        assert [chat.id for chat in chats] == ["s1", "s3"]

    @pytest.mark.asyncio
    async def test_delete_chat(self, store, factory):
        await store.save_chat(make_record("s1", factory, "x"))

        await store.delete_chat("s1")
        await store.delete_chat("s1")

        assert await store.load_chat("s1") is None


class TestCreateChatStore:
    """Tests for the store factory."""

    def test_create_memory_store(self):
        assert create_chat_store("memory").backend_type == "memory"

    def test_create_sqlite_store(self, tmp_path):
        chat_store = create_chat_store("sqlite", path=tmp_path / "c.db")

        assert isinstance(chat_store, SQLiteChatStore)
        assert chat_store.db_path == tmp_path / "c.db"

    def test_unsupported_backend(self):
        with pytest.raises(ValueError, match="Unsupported chat store backend"):
            create_chat_store("redis")


class FailingStore:
    async def save_chat(self, record):
        raise OSError("disk full")


class TestChatRecorder:
    """Tests for ChatRecorder."""

    @pytest.mark.asyncio
    async def test_latest_record_is_saved(self, factory):
        chat_store = create_chat_store("memory")
        recorder = ChatRecorder(chat_store)

        recorder(make_record("s1", factory, "a"))
        recorder(make_record("s1", factory, "a", "b"))
        await recorder.flush()

        loaded = await chat_store.load_chat("s1")
        assert len(loaded.messages) == 2

    @pytest.mark.asyncio
    async def test_save_failure_is_logged(self, factory, caplog):
        recorder = ChatRecorder(FailingStore())

        with caplog.at_level(logging.ERROR):
            recorder(make_record("s1", factory, "a"))
            await recorder.flush()

        assert "Failed to persist chat s1" in caplog.text
