"""
Session store for Service Wizard Bot

In-memory per-chat wizard sessions with idle TTL, plus a background sweep
that evicts abandoned conversations.

Store methods are synchronous and never await, so each call is atomic on the
event loop. A whole conversational turn spans awaits (replies, webhook
delivery), so callers hold ``chat_lock(chat_id)`` for the turn; the sweep
skips any chat whose lock is held.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Callable, Dict, Optional

from service_wizard.models import NO_SESSION_STEP, Session, SessionMetadata

logger = logging.getLogger(__name__)


class _ChatLock:
    """Lock for one chat plus the number of tasks using or waiting on it"""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SessionStore:
    """
    Per-chat session storage with expiry.

    Args:
        ttl: Idle seconds after which a session is expired
        sweep_interval: Seconds between background sweeps (default: ttl / 6)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl: float = 1800,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self.sweep_interval = sweep_interval if sweep_interval is not None else ttl / 6
        if not 0 < self.sweep_interval < ttl:
            raise ValueError(
                f"sweep_interval must be between 0 and ttl ({ttl}), got {self.sweep_interval}"
            )
        self._clock = clock

        self._sessions: Dict[int, Session] = {}
        self._metadata: Dict[int, SessionMetadata] = {}
        self._locks: Dict[int, _ChatLock] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    # ========================================================================
    # Session Operations
    # ========================================================================

    def create(
        self,
        chat_id: int,
        service_type: str,
        metadata: Optional[SessionMetadata] = None,
    ) -> Session:
        """Start a fresh session at step 0, replacing whatever the chat had"""
        now = self._clock()
        session = Session(
            service_type=service_type,
            current_step=0,
            collected_data={},
            created_at=now,
            last_activity_at=now,
        )
        self._sessions[chat_id] = session
        if metadata is not None:
            self._metadata[chat_id] = metadata
        else:
            self._metadata.pop(chat_id, None)
        return session.snapshot()

    def get(self, chat_id: int) -> Optional[Session]:
        """Return a copy of the live session and extend its life; expired sessions are dropped"""
        session = self._live(chat_id)
        if session is None:
            return None
        session.last_activity_at = self._clock()
        return session.snapshot()

    def merge_data(self, chat_id: int, values: Dict[str, Any]) -> None:
        """Shallow-merge field values into the session"""
        session = self._live(chat_id)
        if session is None:
            return
        session.collected_data.update(values)
        session.last_activity_at = self._clock()

    def advance_step(self, chat_id: int) -> None:
        """Move the session forward by exactly one step"""
        session = self._live(chat_id)
        if session is None:
            return
        session.current_step += 1
        session.last_activity_at = self._clock()

    def current_step_of(self, chat_id: int) -> int:
        """Current step index, or NO_SESSION_STEP when the chat has no live session"""
        session = self._live(chat_id)
        if session is None:
            return NO_SESSION_STEP
        return session.current_step

    def delete(self, chat_id: int) -> None:
        """Remove the session and its metadata; safe to call when absent"""
        self._sessions.pop(chat_id, None)
        self._metadata.pop(chat_id, None)

    def is_active(self, chat_id: int) -> bool:
        session = self._sessions.get(chat_id)
        return session is not None and not self._is_expired(session)

    def get_metadata(self, chat_id: int) -> Optional[SessionMetadata]:
        return self._metadata.get(chat_id)

    def clear(self) -> int:
        """Drop every session, returning how many were held"""
        count = len(self._sessions)
        self._sessions.clear()
        self._metadata.clear()
        return count

    def __len__(self) -> int:
        return len(self._sessions)

    # ========================================================================
    # Per-chat Exclusivity
    # ========================================================================

    @asynccontextmanager
    async def chat_lock(self, chat_id: int) -> AsyncIterator[None]:
        """Serialize turns for one chat; other chats are unaffected"""
        entry = self._locks.get(chat_id)
        if entry is None:
            entry = self._locks[chat_id] = _ChatLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(chat_id, None)

    def is_locked(self, chat_id: int) -> bool:
        entry = self._locks.get(chat_id)
        return entry is not None and entry.users > 0

    # ========================================================================
    # Expiry
    # ========================================================================

    def sweep_expired(self) -> int:
        """
        Evict every expired session not currently inside a turn.

        Returns:
            Number of sessions evicted
        """
        expired = [
            chat_id for chat_id, session in self._sessions.items()
            if self._is_expired(session) and not self.is_locked(chat_id)
        ]
        for chat_id in expired:
            self.delete(chat_id)

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    async def start(self) -> None:
        """Start the background sweep task"""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Session sweep started (ttl={self.ttl}s, interval={self.sweep_interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task"""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._sweep_task
        self._sweep_task = None
        logger.info("Session sweep stopped")

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.exception(f"Session sweep failed: {e}")

    def _is_expired(self, session: Session) -> bool:
        return self._clock() - session.last_activity_at >= self.ttl

    def _live(self, chat_id: int) -> Optional[Session]:
        session = self._sessions.get(chat_id)
        if session is None:
            return None
        if self._is_expired(session):
            self.delete(chat_id)
            return None
        return session
