import logging
import threading
import time
import uuid
from collections.abc import Callable

from degreeplan.core.config import settings
from degreeplan.core.errors import ForbiddenError, NotFound
from degreeplan.services.gateway import SqlPlanGateway
from degreeplan.services.session import PlanEditingSession, SessionState

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Open editing sessions, kept between HTTP requests by session id.

    Sessions that are closed, failed to open, or sat idle for longer than
    `idle_seconds` are dropped on the next registry access. When
    `max_sessions` is reached, opening another evicts the least recently
    used session that is not saving.
    """

    def __init__(
        self,
        gateway: SqlPlanGateway,
        idle_seconds: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.session_idle_seconds
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_open_sessions
        self._clock = clock
        self._sessions: dict[str, PlanEditingSession] = {}
        self._last_used: dict[str, float] = {}
        self._lock = threading.Lock()

    def open(self, plan_id: str, user_id: str | None) -> tuple[str, PlanEditingSession]:
        session = PlanEditingSession(self.gateway, plan_id, user_id).open()
        if not session.plan.is_public and session.plan.owner_id != user_id:
            session.close()
            raise NotFound("Plan not found.", resource_id=plan_id)
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sweep()
            while len(self._sessions) >= self.max_sessions and self._evict_oldest():
                pass
            self._sessions[session_id] = session
            self._last_used[session_id] = self._clock()
        logger.info("Registered session %s for plan %s", session_id, plan_id)
        return session_id, session

    def get(self, session_id: str, user_id: str | None = None) -> PlanEditingSession:
        with self._lock:
            self._sweep()
            session = self._sessions.get(session_id)
            if session is not None and session.user_id == user_id:
                self._last_used[session_id] = self._clock()
        if session is None:
            raise NotFound("Editing session not found.", resource_id=session_id)
        if session.user_id != user_id:
            raise ForbiddenError("This editing session belongs to another user.")
        return session

    def close(self, session_id: str, user_id: str | None = None) -> None:
        session = self.get(session_id, user_id)
        session.close()
        with self._lock:
            self._drop(session_id)

    def close_plan(self, plan_id: str) -> int:
        """Close every open session of a plan, e.g. after the plan is deleted."""
        with self._lock:
            matching = [sid for sid, s in self._sessions.items() if s.plan_id == plan_id]
            for session_id in matching:
                self._sessions[session_id].close()
                self._drop(session_id)
        if matching:
            logger.info("Closed %d session(s) of plan %s", len(matching), plan_id)
        return len(matching)

    def __len__(self) -> int:
        with self._lock:
            self._sweep()
            return len(self._sessions)

    # Callers hold self._lock for the helpers below

    def _drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_used.pop(session_id, None)

    def _sweep(self) -> None:
        cutoff = self._clock() - self.idle_seconds
        for session_id, session in list(self._sessions.items()):
            if session.state in (SessionState.CLOSED, SessionState.ERROR):
                self._drop(session_id)
            elif session.state is not SessionState.SAVING and self._last_used[session_id] <= cutoff:
                if session.dirty:
                    logger.warning("Evicting idle session %s with unsaved edits to plan %s", session_id, session.plan_id)
                session.close()
                self._drop(session_id)

    def _evict_oldest(self) -> bool:
        candidates = [sid for sid, s in self._sessions.items() if s.state is not SessionState.SAVING]
        if not candidates:
            return False
        session_id = min(candidates, key=self._last_used.__getitem__)
        session = self._sessions[session_id]
        if session.dirty:
            logger.warning("Evicting session %s with unsaved edits to plan %s", session_id, session.plan_id)
        session.close()
        self._drop(session_id)
        return True
