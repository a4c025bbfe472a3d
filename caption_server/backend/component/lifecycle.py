"""Session lifecycle: inactivity expiry, stale-flush timers and cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional

from caption_server.backend.component.scheduled_task import (
    ScheduledTask,
    TaskScheduler,
)
from caption_server.config.default import DEFAULT_INACTIVITY_TIMEOUT_SEC

if TYPE_CHECKING:
    from caption_server.backend.application.session_store import Session, SessionStore

LOGGER = logging.getLogger("caption_server.lifecycle")

# Stale checks fire just past the threshold so the strict ">" comparison holds.
STALE_CHECK_EPSILON_SEC = 0.05


class LifecycleState(str, Enum):
    ACTIVE = "active"
    CLEANED = "cleaned"


class CleanupReason(str, Enum):
    STOPPED = "stopped"
    DISCONNECTED = "disconnected"
    INACTIVE = "inactive"
    REPLACED = "replaced"
    SHUTDOWN = "shutdown"


def _noop_session(_session: "Session") -> None:
    return None


def _noop_cleaned(_session: "Session", _reason: CleanupReason) -> None:
    return None


@dataclass
class LifecycleHooks:
    on_stale_check: Callable[["Session"], None] = field(default=_noop_session)
    on_timeout: Callable[["Session"], None] = field(default=_noop_session)
    on_cleaned: Callable[["Session", CleanupReason], None] = field(
        default=_noop_cleaned
    )


@dataclass
class _LifecycleEntry:
    session: "Session"
    state: LifecycleState = LifecycleState.ACTIVE
    inactivity_task: Optional[ScheduledTask] = None
    stale_task: Optional[ScheduledTask] = None

    def cancel_timers(self) -> None:
        if self.inactivity_task is not None:
            self.inactivity_task.cancel()
            self.inactivity_task = None
        if self.stale_task is not None:
            self.stale_task.cancel()
            self.stale_task = None


class SessionLifecycleManager:
    """Owns the Active → Cleaned transition for every session in the store."""

    def __init__(
        self,
        store: "SessionStore",
        scheduler: TaskScheduler,
        inactivity_timeout_sec: float = DEFAULT_INACTIVITY_TIMEOUT_SEC,
        stale_after_sec: Optional[float] = None,
        hooks: Optional[LifecycleHooks] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._inactivity_timeout_sec = float(inactivity_timeout_sec)
        self._stale_after_sec = stale_after_sec
        self._hooks = hooks or LifecycleHooks()
        self._entries: Dict[str, _LifecycleEntry] = {}

    def register(self, session: "Session") -> None:
        """Put a freshly created session into ``ACTIVE`` and arm its inactivity timer."""
        entry = _LifecycleEntry(session=session)
        previous = self._entries.get(session.session_id)
        if previous is not None:
            previous.cancel_timers()
        self._entries[session.session_id] = entry
        self._arm_inactivity(entry)

    def touch(self, session: "Session") -> None:
        """Re-arm timers after a successful chunk."""
        entry = self._entry_for(session)
        if entry is None:
            return
        self._arm_inactivity(entry)
        if self._stale_after_sec is not None:
            if entry.stale_task is not None:
                entry.stale_task.cancel()
            entry.stale_task = self._scheduler.call_later(
                self._stale_after_sec + STALE_CHECK_EPSILON_SEC,
                lambda: self._on_stale(entry),
            )

    def state_of(self, session: "Session") -> LifecycleState:
        entry = self._entry_for(session)
        if entry is None:
            return LifecycleState.CLEANED
        return entry.state

    def cleanup(
        self, session: "Session", reason: CleanupReason = CleanupReason.STOPPED
    ) -> bool:
        """Release every resource held by ``session``; idempotent."""
        entry = self._entry_for(session)
        if session.cleaned:
            return False
        if entry is not None:
            entry.cancel_timers()
            entry.state = LifecycleState.CLEANED
            self._entries.pop(session.session_id, None)
        session.scheduler.clear()
        session.translation_cache.clear()
        session.cleaned = True
        self._store.remove(session.session_id, session)
        LOGGER.info(
            "Session cleaned reason=%s captions=%d", reason.value, len(session.captions)
        )
        try:
            self._hooks.on_cleaned(session, reason)
        except Exception:
            LOGGER.exception("Session cleanup hook failed")
        return True

    def cleanup_all(self, reason: CleanupReason = CleanupReason.SHUTDOWN) -> int:
        sessions = [entry.session for entry in list(self._entries.values())]
        return sum(1 for session in sessions if self.cleanup(session, reason))

    def _entry_for(self, session: "Session") -> Optional[_LifecycleEntry]:
        entry = self._entries.get(session.session_id)
        if entry is None or entry.session is not session:
            return None
        return entry

    def _arm_inactivity(self, entry: _LifecycleEntry) -> None:
        if entry.inactivity_task is not None:
            entry.inactivity_task.cancel()
        if self._inactivity_timeout_sec <= 0:
            entry.inactivity_task = None
            return
        entry.inactivity_task = self._scheduler.call_later(
            self._inactivity_timeout_sec, lambda: self._on_inactive(entry)
        )

    def _on_inactive(self, entry: _LifecycleEntry) -> None:
        if entry.state is LifecycleState.CLEANED:
            return
        LOGGER.info(
            "Session inactive for %.0fs; cleaning up", self._inactivity_timeout_sec
        )
        self._hooks.on_timeout(entry.session)
        self.cleanup(entry.session, CleanupReason.INACTIVE)

    def _on_stale(self, entry: _LifecycleEntry) -> None:
        entry.stale_task = None
        if entry.state is LifecycleState.CLEANED:
            return
        self._hooks.on_stale_check(entry.session)


__all__ = [
    "CleanupReason",
    "LifecycleHooks",
    "LifecycleState",
    "SessionLifecycleManager",
    "STALE_CHECK_EPSILON_SEC",
]
