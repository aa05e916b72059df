"""Live consultation session storage.

Sessions only live as long as their channel; nothing here is persisted.
The store is injected into the orchestrator so another backend can replace
the in-memory default.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
from cardio_intake.models.session import Session
import asyncio
import logging

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Key-value store of sessions by channel id, plus per-channel locks."""

    @abstractmethod
    async def get(self, channel_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def set(self, channel_id: str, session: Session) -> None:
        ...

    @abstractmethod
    async def delete(self, channel_id: str) -> None:
        ...

    @abstractmethod
    def lock(self, channel_id: str) -> asyncio.Lock:
        """Lock serializing turns on one channel."""


class InMemorySessionStore(SessionStore):
    """Process-local store; per-key operations are atomic on the event loop."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def get(self, channel_id: str) -> Optional[Session]:
        return self._sessions.get(channel_id)

    async def set(self, channel_id: str, session: Session) -> None:
        self._sessions[channel_id] = session

    async def delete(self, channel_id: str) -> None:
        if self._sessions.pop(channel_id, None) is not None:
            logger.info(f"Cleaned up session for channel {channel_id}")
        self._locks.pop(channel_id, None)

    def lock(self, channel_id: str) -> asyncio.Lock:
        return self._locks.setdefault(channel_id, asyncio.Lock())

    def __len__(self) -> int:
        return len(self._sessions)


# Global store instance
_session_store: Optional[InMemorySessionStore] = None


def get_session_store() -> InMemorySessionStore:
    """Get or create the in-memory session store."""
    global _session_store
    if _session_store is None:
        _session_store = InMemorySessionStore()
    return _session_store
