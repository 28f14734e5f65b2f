"""Unit tests for chat message stores and stored-message mapping."""

import pytest

from concierge.models.chat import StoredMessage
from concierge.models.conversation import MessageRole
from concierge.services.chat_service import to_conversation_history
from concierge.services.message_store import FileMessageStore, InMemoryMessageStore, SessionNotFoundError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryMessageStore()
    return FileMessageStore(str(tmp_path / "sessions"))


class TestMessageStores:
    """Behavior shared by every MessageStore implementation."""

    @pytest.mark.asyncio
    async def test_history_in_order(self, store):
        await store.append_message("session-1", MessageRole.USER, "Hello")
        await store.append_message("session-1", MessageRole.ASSISTANT, "Hi, how can I help?")
        await store.append_message("session-1", MessageRole.USER, "Privacy policy?")

        history = await store.get_history("session-1")

        assert [m.content for m in history] == ["Hello", "Hi, how can I help?", "Privacy policy?"]
        assert [m.role for m in history] == ["user", "assistant", "user"]
        assert all(m.session_id == "session-1" for m in history)

    @pytest.mark.asyncio
    async def test_sessions_isolated(self, store):
        await store.append_message("a", MessageRole.USER, "for a")
        await store.append_message("b", MessageRole.USER, "for b")

        assert [m.content for m in await store.get_history("a")] == ["for a"]
        assert await store.get_history("missing") == []

    @pytest.mark.asyncio
    async def test_upsert_session(self, store):
        created = await store.upsert_session("session-1")
        updated = await store.upsert_session("session-1", user_id="user-42")

        assert created.user_id is None
        assert updated.user_id == "user-42"
        assert updated.updated_at >= created.created_at
        assert (await store.get_session("session-1")).user_id == "user-42"
        assert await store.get_session("unknown") is None

    @pytest.mark.asyncio
    async def test_list_sessions(self, store):
        await store.upsert_session("first")
        await store.upsert_session("second")

        sessions = await store.list_sessions()

        assert {s.session_id for s in sessions} == {"first", "second"}

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        created = await store.upsert_session("session-1")
        created.user_id = "intruder"
        saved = await store.append_message("session-1", MessageRole.USER, "Hello")
        saved.content = "changed"
        (await store.get_history("session-1"))[0].content = "changed again"

        assert (await store.get_session("session-1")).user_id is None
        assert [m.content for m in await store.get_history("session-1")] == ["Hello"]

    @pytest.mark.asyncio
    async def test_list_sessions_for_user(self, store):
        await store.upsert_session("older", user_id="user-1")
        await store.upsert_session("other", user_id="user-2")
        await store.upsert_session("anonymous")
        await store.upsert_session("newer", user_id="user-1")
        await store.upsert_session("older", user_id="user-1")

        sessions = await store.list_sessions(user_id="user-1")

        assert [s.session_id for s in sessions] == ["older", "newer"]

    @pytest.mark.asyncio
    async def test_delete_session_removes_messages(self, store):
        await store.upsert_session("session-1", user_id="user-1")
        await store.append_message("session-1", MessageRole.USER, "Hello")

        await store.delete_session("session-1", "user-1")

        assert await store.get_session("session-1") is None
        assert await store.get_history("session-1") == []
        assert await store.list_sessions() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id,user_id", [
        ("missing", "user-1"),
        ("owned", "user-2"),
        ("anonymous", "user-1"),
    ])
    async def test_delete_session_requires_owner(self, store, session_id, user_id):
        await store.upsert_session("owned", user_id="user-1")
        await store.upsert_session("anonymous")
        await store.append_message("owned", MessageRole.USER, "keep me")

        with pytest.raises(SessionNotFoundError):
            await store.delete_session(session_id, user_id)

        assert [m.content for m in await store.get_history("owned")] == ["keep me"]


class TestFileMessageStore:
    """File specific behavior."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "sessions")
        await FileMessageStore(path).append_message("s1", MessageRole.USER, "persisted")

        reopened = FileMessageStore(path)

        assert [m.content for m in await reopened.get_history("s1")] == ["persisted"]
        assert (await reopened.get_session("s1")) is not None

    @pytest.mark.asyncio
    async def test_rejects_unsafe_session_id(self, tmp_path):
        store = FileMessageStore(str(tmp_path))

        with pytest.raises(ValueError):
            await store.append_message("../escape", MessageRole.USER, "nope")

    @pytest.mark.asyncio
    async def test_delete_removes_files(self, tmp_path):
        store = FileMessageStore(str(tmp_path))
        await store.upsert_session("s1", user_id="user-1")
        await store.append_message("s1", MessageRole.USER, "bye")

        await store.delete_session("s1", "user-1")

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_skips_corrupt_lines(self, tmp_path):
        store = FileMessageStore(str(tmp_path))
        await store.append_message("s1", MessageRole.USER, "good")
        with open(tmp_path / "s1.jsonl", "a") as f:
            f.write("{not json}\n")

        assert [m.content for m in await store.get_history("s1")] == ["good"]


class TestHistoryMapping:
    """Stored messages become conversation turns."""

    def test_roles_mapped(self):
        messages = [
            StoredMessage(session_id="s", role=MessageRole.USER, content="Hi"),
            StoredMessage(session_id="s", role=MessageRole.ASSISTANT, content="Hello"),
            StoredMessage(session_id="s", role=MessageRole.SYSTEM, content="Note"),
        ]

        history = to_conversation_history(messages)

        assert [(t.role, t.content[0].type) for t in history] == [
            ("user", "input_text"),
            ("assistant", "output_text"),
            ("user", "input_text"),
        ]
