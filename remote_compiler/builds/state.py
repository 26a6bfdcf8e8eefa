"""Thread-safe observable build state.

The engine is the only writer. Readers get copies via snapshot() or
subscribe to receive a copy after every update.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from remote_compiler.types import BuildState

logger = logging.getLogger(__name__)

StateListener = Callable[[BuildState], None]


class BuildStateStore:
    """Holds the current BuildState behind a lock and notifies observers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = BuildState()
        self._listeners: list[StateListener] = []

    def snapshot(self) -> BuildState:
        """Return a copy of the current state."""
        with self._lock:
            return replace(self._state)

    def reset(self) -> BuildState:
        """Restore every field to its initial value."""
        with self._lock:
            self._state = BuildState()
            snapshot = replace(self._state)
        self._notify(snapshot)
        return snapshot

    def update(self, **changes: Any) -> BuildState:
        """Apply field changes and notify observers.

        Progress never decreases while a build is running; terminal
        failure states are the only place progress drops back to 0.0.
        """
        with self._lock:
            new_state = replace(self._state, **changes)
            if (
                "progress" in changes
                and not new_state.phase.is_terminal
                and new_state.progress < self._state.progress
            ):
                new_state.progress = self._state.progress
            self._state = new_state
            snapshot = replace(new_state)
        self._notify(snapshot)
        return snapshot

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register an observer.

        Returns:
            Callable that removes the observer.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: BuildState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(replace(snapshot))
            except Exception:
                logger.exception("Build state listener %r failed", listener)


__all__ = ["BuildStateStore", "StateListener"]
