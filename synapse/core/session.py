"""In-process session registry used by transports.

Purpose of this abstraction:
    Give each session its own `Scratchpad` and make sure at most one request runs
    against it at a time. Nothing is persisted; sessions live as long as the
    process (or until discarded).

Concurrency:
    Each session carries an `asyncio.Lock`. Transports call `acquire` and reject
    the request when the session is busy instead of queueing it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

from synapse.core.scratchpad import Scratchpad


logger = logging.getLogger(__name__)


@dataclass
class Session:
    session_id: str
    scratchpad: Scratchpad = field(default_factory=Scratchpad)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def busy(self) -> bool:
        return self.lock.locked()


class SessionRegistry:
    """Maps session ids to sessions; owned by one transport instance."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get_or_create(self, session_id: str | None = None) -> Session:
        """Return the session for `session_id`, creating it if needed.

        A missing/blank id creates a fresh session with a generated id.
        """
        key = (session_id or "").strip() or uuid.uuid4().hex
        session = self._sessions.get(key)
        if session is None:
            session = Session(session_id=key)
            self._sessions[key] = session
            logger.info("Created session %s", key)
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        """Drop a session and its scratchpad. Returns whether it existed."""
        removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("Discarded session %s", session_id)
        return removed is not None

    def __len__(self) -> int:
        return len(self._sessions)
