"""Session management for MCP connections.

Sessions are keyed by the client-supplied ``Mcp-Session-Id`` header. The
coordinator guarantees one creation per session id even when several
requests for a new id arrive at once: the first installs a pending future,
the rest await it and get the same Session object.

Lifecycle per id: absent -> pending -> active -> evicted.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from background import PeriodicTask
from oauth.models import AuthContext

logger = logging.getLogger(__name__)

SESSION_TIMEOUT_SECONDS = 30 * 60
SESSION_SWEEP_INTERVAL_SECONDS = 15 * 60
MAX_SESSIONS = 1000

# History is trimmed to the newest HISTORY_KEEP entries once it exceeds HISTORY_LIMIT
HISTORY_LIMIT = 100
HISTORY_KEEP = 50


class SessionLimitExceeded(Exception):
    """Raised when creating a session would exceed the configured maximum."""


class SessionCreationAborted(Exception):
    """Raised to requests waiting on a session whose creator was cancelled."""


@dataclass
class Session:
    id: str
    created_at: float
    last_activity: float
    auth_context: AuthContext | None = None
    client_info: dict = field(default_factory=dict)
    history: list[dict] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> dict:
        return {
            "session_id": self.id,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
            "history_length": len(self.history),
            "client_id": self.auth_context.client_id if self.auth_context else "anonymous",
        }


SessionHook = Callable[[Session], Awaitable[None]]


class SessionCoordinator:
    """Owns all session state; nothing else mutates a Session."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        timeout: float = SESSION_TIMEOUT_SECONDS,
        max_sessions: int = MAX_SESSIONS,
        sweep_interval: float = SESSION_SWEEP_INTERVAL_SECONDS,
        on_create: SessionHook | None = None,
        on_teardown: SessionHook | None = None,
    ):
        self._clock = clock
        self.timeout = timeout
        self.max_sessions = max_sessions
        self.on_create = on_create
        self.on_teardown = on_teardown

        self._sessions: dict[str, Session] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self._sweeper = PeriodicTask("session-idle-sweep", sweep_interval, self.sweep)

    # ============== Lifecycle ==============

    def start(self) -> None:
        self._sweeper.start()

    async def shutdown(self) -> None:
        """Stop the idle sweep and tear down every active session."""
        logger.info("[SESSION] Shutting down...")
        await self._sweeper.stop()
        for session_id in list(self._sessions):
            await self.destroy(session_id)
        logger.info("[SESSION] Shutdown complete")

    # ============== Lookup / creation ==============

    async def get_or_create(
        self,
        session_id: str,
        auth_context: AuthContext | None = None,
        client_info: dict | None = None,
        entry: dict | None = None,
    ) -> Session:
        """Return the session for ``session_id``, creating it at most once."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._touch(session, client_info)
                self._record(session, entry)
                return session

            future = self._pending.get(session_id)
            creator = future is None
            if creator:
                future = asyncio.get_running_loop().create_future()
                self._pending[session_id] = future

        if not creator:
            logger.info(f"[SESSION] Waiting for pending session: {session_id}")
            session = await asyncio.shield(future)
            async with self._lock:
                self._touch(session, client_info)
            self._record(session, entry)
            return session

        try:
            session = await self._create(session_id, auth_context, client_info or {})
        except asyncio.CancelledError:
            async with self._lock:
                self._pending.pop(session_id, None)
            # Waiters were not cancelled; they get a creation failure instead
            future.set_exception(SessionCreationAborted(f"Creation of session {session_id} was cancelled"))
            future.exception()
            raise
        except Exception as e:
            async with self._lock:
                self._pending.pop(session_id, None)
            future.set_exception(e)
            # Mark retrieved; waiters (if any) still receive it
            future.exception()
            logger.warning(f"[SESSION] Failed to create session {session_id}: {e}")
            raise

        async with self._lock:
            self._sessions[session_id] = session
            self._pending.pop(session_id, None)
        future.set_result(session)

        owner = session.auth_context.client_id if session.auth_context else None
        logger.info(f"[SESSION] Created session: {session_id}", extra={"session_id": session_id, "client_id": owner})
        self._record(session, entry)
        return session

    async def _create(self, session_id: str, auth_context: AuthContext | None, client_info: dict) -> Session:
        # Our own pending marker is counted in _pending
        if len(self._sessions) + len(self._pending) > self.max_sessions:
            raise SessionLimitExceeded(f"Maximum sessions ({self.max_sessions}) exceeded")

        now = self._clock()
        session = Session(
            id=session_id,
            created_at=now,
            last_activity=now,
            auth_context=auth_context,
            client_info=dict(client_info),
        )
        if self.on_create is not None:
            await self.on_create(session)
        return session

    def _touch(self, session: Session, client_info: dict | None) -> None:
        session.last_activity = self._clock()
        ip_address = (client_info or {}).get("ip_address")
        if ip_address and ip_address != session.client_info.get("ip_address"):
            logger.info(
                f"[SESSION] IP changed for session {session.id}: "
                f"{session.client_info.get('ip_address')} -> {ip_address}",
                extra={"session_id": session.id},
            )
            session.client_info["ip_address"] = ip_address

    def _record(self, session: Session, entry: dict | None) -> None:
        if entry is None:
            return
        session.history.append({"timestamp": self._clock(), **entry})
        if len(session.history) > HISTORY_LIMIT:
            del session.history[:-HISTORY_KEEP]

    def add_to_history(self, session_id: str, entry: dict) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        self._record(session, entry)
        return True

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def is_pending(self, session_id: str) -> bool:
        return session_id in self._pending

    # ============== Teardown ==============

    async def destroy(self, session_id: str) -> bool:
        """Remove an active session and run its teardown hook."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False

        if self.on_teardown is not None:
            try:
                await self.on_teardown(session)
            except Exception as e:
                logger.error(f"[SESSION] Error during teardown for {session_id}: {e}")

        logger.info(f"[SESSION] Destroyed session: {session_id}")
        return True

    async def sweep(self) -> int:
        """Evict sessions idle for longer than the timeout."""
        now = self._clock()
        stale = [sid for sid, s in self._sessions.items() if now - s.last_activity > self.timeout]
        if stale:
            logger.info(f"[SESSION] Cleaning up {len(stale)} stale sessions")
        evicted = 0
        for session_id in stale:
            session = self._sessions.get(session_id)
            # Skip sessions that saw activity since the scan
            if session is None or self._clock() - session.last_activity <= self.timeout:
                continue
            if await self.destroy(session_id):
                evicted += 1
        return evicted

    # ============== Stats ==============

    def stats(self) -> dict:
        sessions = list(self._sessions.values())
        result = {
            "active": len(sessions),
            "pending": len(self._pending),
            "sessions": [s.summary() for s in sessions],
        }
        if sessions:
            result["oldest_session"] = min(s.created_at for s in sessions)
            result["newest_session"] = max(s.created_at for s in sessions)
        return result

    def __len__(self) -> int:
        return len(self._sessions)
