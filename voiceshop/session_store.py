from __future__ import annotations

import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional

from .models import CartLine, IntentEntities

SESSION_PREFIX = "session"


class AddRequestState(str, Enum):
    """Progress of an add-to-cart request across turns."""
    IDLE = "idle"
    AWAITING_ATTRIBUTES = "awaiting_attributes"
    RESOLVING = "resolving"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class PendingProduct:
    """Partially specified add-to-cart request waiting for attribute values."""
    entities: IntentEntities
    missing: List[str] = field(default_factory=list)


@dataclass
class HistoryEntry:
    role: str
    message: str


@dataclass
class SessionState:
    """Per-conversation mutable state."""
    session_id: str
    user_id: Optional[str] = None
    history: List[HistoryEntry] = field(default_factory=list)
    cart: List[CartLine] = field(default_factory=list)
    cart_loaded: bool = False
    pending: Optional[PendingProduct] = None
    add_state: AddRequestState = AddRequestState.IDLE
    updated_at: float = field(default_factory=time.time)

    def remember(self, role: str, message: str, window: int) -> None:
        """Append a turn and keep only the most recent `window` entries."""
        self.history.append(HistoryEntry(role=role, message=message or ""))
        if window > 0 and len(self.history) > window:
            del self.history[: len(self.history) - window]

    def clear_pending(self) -> None:
        self.pending = None


def user_id_from_session(session_id: Optional[str]) -> Optional[str]:
    """Purpose: Extract the user identity embedded in a "session:<userId>" id.
    Inputs/Outputs: Input is a session id; output is the user id or None.
    Side Effects / State: None.
    Dependencies: None.
    Failure Modes: Ids without a ":" or with an empty suffix are anonymous.
    If Removed: Order history and durable cart sync cannot find their owner.
    Testing Notes: "session:u1" -> "u1"; "abc" -> None; "session:" -> None.
    """
    if not session_id or ":" not in session_id:
        return None
    user_id = session_id.split(":", 1)[1].strip()
    return user_id or None


def session_id_for_user(user_id: str) -> str:
    return f"{SESSION_PREFIX}:{user_id}"


class SessionStore:
    """Bounded in-memory session map with LRU eviction, TTL expiry, and per-session locks."""

    def __init__(
        self,
        max_sessions: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Initialize the session store.
        Inputs/Outputs: Inputs are the size cap, idle TTL, and a clock; no return value.
        Side Effects / State: Creates empty session and lock maps.
        Dependencies: None beyond the standard library.
        Failure Modes: None.
        If Removed: Conversations lose history, cart, and pending products between turns.
        Testing Notes: Inject a fake clock to exercise TTL expiry deterministically.
        """
        self._max_sessions = max_sessions
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: "OrderedDict[str, SessionState]" = OrderedDict()
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionState]:
        """Purpose: Return a live session and mark it most recently used.
        Inputs/Outputs: Input is session_id; output is SessionState or None.
        Side Effects / State: Drops the session if its TTL has expired.
        Dependencies: Uses _expired.
        Failure Modes: Unknown or expired sessions return None.
        If Removed: Every turn starts a fresh conversation.
        Testing Notes: Advance the fake clock past the TTL and expect None.
        """
        with self._guard:
            state = self._sessions.get(session_id)
            if state is None:
                return None
            if self._expired(state):
                self._sessions.pop(session_id, None)
                return None
            self._sessions.move_to_end(session_id)
            return state

    def get_or_create(self, session_id: str) -> SessionState:
        state = self.get(session_id)
        if state is None:
            state = SessionState(
                session_id=session_id,
                user_id=user_id_from_session(session_id),
                updated_at=self._clock(),
            )
            self.put(state)
        return state

    def put(self, state: SessionState) -> None:
        """Purpose: Store or refresh a session, evicting least-recently-used ones.
        Inputs/Outputs: Input is SessionState; no return value.
        Side Effects / State: Updates updated_at and may evict other sessions.
        Dependencies: Uses _prune.
        Failure Modes: None.
        If Removed: Sessions never persist past the current turn.
        Testing Notes: With max_sessions=2, a third put evicts the oldest.
        """
        with self._guard:
            state.updated_at = self._clock()
            self._sessions[state.session_id] = state
            self._sessions.move_to_end(state.session_id)
            self._prune()

    def evict(self, session_id: str) -> bool:
        with self._guard:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._guard:
            return session_id in self._sessions

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Serialize turns for one session id; other sessions proceed in parallel."""
        with self._guard:
            session_lock = self._locks.setdefault(session_id, threading.Lock())
        with session_lock:
            yield

    def _expired(self, state: SessionState) -> bool:
        if not self._ttl or self._ttl <= 0:
            return False
        return (self._clock() - state.updated_at) > self._ttl

    def _prune(self) -> None:
        # Expired sessions go first, then least-recently-used above the cap.
        for session_id in [sid for sid, state in self._sessions.items() if self._expired(state)]:
            self._sessions.pop(session_id, None)
        if self._max_sessions and self._max_sessions > 0:
            while len(self._sessions) > self._max_sessions:
                self._sessions.popitem(last=False)
        # Locks for sessions that are gone and not held can be dropped.
        for session_id in [sid for sid in self._locks if sid not in self._sessions]:
            if not self._locks[session_id].locked():
                del self._locks[session_id]
