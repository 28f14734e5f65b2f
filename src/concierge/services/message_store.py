"""Chat session and message persistence used by the calling layer."""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles

from concierge.models.chat import ChatSession, StoredMessage
from concierge.models.conversation import MessageRole


logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class SessionNotFoundError(Exception):
    """The session does not exist or is not owned by the caller."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found or unauthorized: {session_id}")
        self.session_id = session_id


class MessageStore(ABC):
    """Storage contract for chat sessions and their messages."""

    @abstractmethod
    async def upsert_session(self, session_id: str, user_id: Optional[str] = None) -> ChatSession:
        """Create the session if missing, otherwise bump its ``updated_at``."""
        pass

    @abstractmethod
    async def append_message(self, session_id: str, role: MessageRole, content: str) -> StoredMessage:
        pass

    @abstractmethod
    async def get_history(self, session_id: str) -> List[StoredMessage]:
        """Messages of a session, oldest first."""
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        pass

    @abstractmethod
    async def list_sessions(self, user_id: Optional[str] = None) -> List[ChatSession]:
        """Sessions, most recently updated first, optionally only those owned by ``user_id``."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: str, user_id: str) -> None:
        """Delete a session owned by ``user_id`` together with its messages.

        Raises:
            SessionNotFoundError: If the session does not exist or belongs to someone else
        """
        pass


class InMemoryMessageStore(MessageStore):
    """Process-local store, mainly for tests and one-shot CLI runs.

    Callers always receive copies; stored records change only through the store.
    """

    def __init__(self):
        self._sessions: Dict[str, ChatSession] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}

    async def upsert_session(self, session_id: str, user_id: Optional[str] = None) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ChatSession(session_id=session_id, user_id=user_id)
            self._sessions[session_id] = session
            self._messages[session_id] = []
        else:
            if user_id and not session.user_id:
                session.user_id = user_id
            session.touch()
        return session.model_copy()

    async def append_message(self, session_id: str, role: MessageRole, content: str) -> StoredMessage:
        if session_id not in self._sessions:
            await self.upsert_session(session_id)
        message = StoredMessage(session_id=session_id, role=role, content=content)
        self._messages[session_id].append(message)
        return message.model_copy()

    async def get_history(self, session_id: str) -> List[StoredMessage]:
        return [message.model_copy() for message in self._messages.get(session_id, [])]

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        session = self._sessions.get(session_id)
        return session.model_copy() if session is not None else None

    async def list_sessions(self, user_id: Optional[str] = None) -> List[ChatSession]:
        sessions = [s for s in self._sessions.values() if user_id is None or s.user_id == user_id]
        return [s.model_copy() for s in sorted(sessions, key=lambda s: s.updated_at, reverse=True)]

    async def delete_session(self, session_id: str, user_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None or session.user_id is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        del self._sessions[session_id]
        self._messages.pop(session_id, None)


class FileMessageStore(MessageStore):
    """
    Stores each session as two files under ``storage_path``:
    ``<session_id>.session.json`` for the session record and
    ``<session_id>.jsonl`` with one message per line.
    """

    def __init__(self, storage_path: str = "~/.concierge/sessions"):
        """Initialize the store.

        Args:
            storage_path: Directory for session files, created if missing
        """
        self.logger = logging.getLogger(__name__)
        self.storage_path = Path(storage_path).expanduser()
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self._locks:
            self._locks[session_id] = asyncio.Lock()
        return self._locks[session_id]

    def _session_file(self, session_id: str) -> Path:
        return self.storage_path / f"{_checked_id(session_id)}.session.json"

    def _messages_file(self, session_id: str) -> Path:
        return self.storage_path / f"{_checked_id(session_id)}.jsonl"

    async def upsert_session(self, session_id: str, user_id: Optional[str] = None) -> ChatSession:
        async with self._lock(session_id):
            session = await self._read_session(session_id)
            if session is None:
                session = ChatSession(session_id=session_id, user_id=user_id)
                self.logger.info(f"Created chat session {session_id}")
            else:
                if user_id and not session.user_id:
                    session.user_id = user_id
                session.touch()
            await self._write_session(session)
            return session

    async def append_message(self, session_id: str, role: MessageRole, content: str) -> StoredMessage:
        if await self.get_session(session_id) is None:
            await self.upsert_session(session_id)

        message = StoredMessage(session_id=session_id, role=role, content=content)
        async with self._lock(session_id):
            async with aiofiles.open(self._messages_file(session_id), 'a') as f:
                await f.write(message.model_dump_json() + "\n")
        return message

    async def get_history(self, session_id: str) -> List[StoredMessage]:
        messages_file = self._messages_file(session_id)
        if not messages_file.exists():
            return []

        messages: List[StoredMessage] = []
        async with aiofiles.open(messages_file, 'r') as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(StoredMessage.model_validate_json(line))
                except ValueError as e:
                    self.logger.error(f"Skipping corrupt message in {messages_file.name}: {e}")
        return messages

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        return await self._read_session(session_id)

    async def list_sessions(self, user_id: Optional[str] = None) -> List[ChatSession]:
        sessions: List[ChatSession] = []
        for session_file in self.storage_path.glob("*.session.json"):
            session_id = session_file.name[:-len(".session.json")]
            session = await self._read_session(session_id)
            if session is not None and (user_id is None or session.user_id == user_id):
                sessions.append(session)
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def delete_session(self, session_id: str, user_id: str) -> None:
        async with self._lock(session_id):
            session = await self._read_session(session_id)
            if session is None or session.user_id is None or session.user_id != user_id:
                raise SessionNotFoundError(session_id)

            for path in (self._messages_file(session_id), self._session_file(session_id)):
                if path.exists():
                    path.unlink()

        self._locks.pop(session_id, None)
        self.logger.info(f"Deleted chat session {session_id}")


    async def _read_session(self, session_id: str) -> Optional[ChatSession]:
        session_file = self._session_file(session_id)
        if not session_file.exists():
            return None

        try:
            async with aiofiles.open(session_file, 'r') as f:
                content = await f.read()
            return ChatSession(**json.loads(content))
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to load session {session_id}: {str(e)}")
            return None

    async def _write_session(self, session: ChatSession) -> None:
        async with aiofiles.open(self._session_file(session.session_id), 'w') as f:
            await f.write(session.model_dump_json(indent=2))


def _checked_id(session_id: str) -> str:
    if not _SESSION_ID_PATTERN.match(session_id or ""):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id
