"""In-process session table keyed by session id, with idle eviction."""
import logging
import time
import uuid

from trialgate.models.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, idle_timeout_s: float, clock=time.monotonic):
        self._sessions: dict[str, Session] = {}
        self._idle_timeout_s = idle_timeout_s
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, session_id: str | None = None) -> Session:
        self.evict_idle()
        now = self._clock()
        session = Session(
            session_id=session_id or str(uuid.uuid4()),
            created_at=now,
            last_seen=now,
        )
        self._sessions[session.session_id] = session
        logger.info("Session %s created (%d active)", session.session_id, len(self._sessions))
        return session

    def get_or_create(self, session_id: str) -> tuple[Session, bool]:
        self.evict_idle()
        session = self._sessions.get(session_id)
        if session is None:
            return self.create(session_id), True
        session.last_seen = self._clock()
        return session, False

    def evict_idle(self) -> int:
        """Drop sessions idle past the timeout, skipping any with an exchange in flight."""
        cutoff = self._clock() - self._idle_timeout_s
        stale = [
            sid for sid, s in self._sessions.items()
            if s.last_seen < cutoff and not s.lock.locked()
        ]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Evicted %d idle sessions", len(stale))
        return len(stale)
