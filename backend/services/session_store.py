"""
Session Storage
Backends for conversation sessions behind a four-operation contract:
get, save, delete, list_all.
"""
import json
import logging
import os
import threading
from typing import Dict, List, Optional, Protocol

from models.candidate import ConversationSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, session_id: str) -> Optional[ConversationSession]:
        ...

    def save(self, session: ConversationSession) -> None:
        ...

    def delete(self, session_id: str) -> bool:
        ...

    def list_all(self) -> List[ConversationSession]:
        ...


class InMemorySessionStore:
    """Process-local store. Returns copies so callers never mutate stored state."""

    def __init__(self):
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def save(self, session: ConversationSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def list_all(self) -> List[ConversationSession]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sessions.values()]

    def __len__(self) -> int:
        return len(self._sessions)


class JsonFileSessionStore:
    """Store sessions in one JSON document keyed by session id"""

    def __init__(self, storage_file: str = "chat_sessions.json"):
        self.storage_file = storage_file
        self._lock = threading.Lock()
        self._ensure_storage_exists()

    def _ensure_storage_exists(self):
        """Create storage file if it doesn't exist"""
        directory = os.path.dirname(self.storage_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.storage_file):
            with open(self.storage_file, 'w') as f:
                json.dump({}, f)

    def _load(self) -> Dict[str, dict]:
        try:
            with open(self.storage_file, 'r') as f:
                return json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.error(f"Session store {self.storage_file} is corrupt, starting empty: {e}")
            return {}

    def _write(self, data: Dict[str, dict]) -> None:
        tmp_file = f"{self.storage_file}.tmp"
        with open(tmp_file, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_file, self.storage_file)

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            raw = self._load().get(session_id)
        if raw is None:
            return None
        return ConversationSession.model_validate(raw)

    def save(self, session: ConversationSession) -> None:
        with self._lock:
            data = self._load()
            data[session.id] = session.model_dump(mode="json")
            self._write(data)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            data = self._load()
            if session_id not in data:
                return False
            del data[session_id]
            self._write(data)
        logger.info(f"Deleted session {session_id} from {self.storage_file}")
        return True

    def list_all(self) -> List[ConversationSession]:
        with self._lock:
            data = self._load()
        sessions = []
        for session_id, raw in data.items():
            try:
                sessions.append(ConversationSession.model_validate(raw))
            except ValueError as e:
                logger.warning(f"Skipping unreadable session {session_id}: {e}")
        return sessions
