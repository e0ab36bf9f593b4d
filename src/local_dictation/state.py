# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Session state machine for Local Dictation.

One StateMachine instance exists per running service. It is owned by the
pipeline orchestrator and is the single source of truth for what the
dictation session is doing:

    IDLE -> RECORDING -> PROCESSING (-> POST_PROCESSING) -> IDLE

Every change goes through transition(), which validates the move against
TRANSITIONS under one lock. Anything outside the table raises
InvalidTransitionError and leaves the state untouched.
"""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Tuple

from .errors import InvalidTransitionError
from .utils import log


class SessionState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    POST_PROCESSING = "post_processing"


class Trigger(Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    CAPTURE_ERROR = "capture_error"
    REFINE = "refine"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Transition:
    from_state: SessionState
    to_state: SessionState
    timestamp: datetime
    trigger: Trigger


# (from, to) -> triggers allowed for that move
TRANSITIONS: Dict[Tuple[SessionState, SessionState], FrozenSet[Trigger]] = {
    (SessionState.IDLE, SessionState.RECORDING): frozenset({Trigger.ACTIVATE}),
    (SessionState.RECORDING, SessionState.PROCESSING): frozenset({Trigger.DEACTIVATE}),
    (SessionState.RECORDING, SessionState.IDLE): frozenset({Trigger.CAPTURE_ERROR}),
    (SessionState.PROCESSING, SessionState.IDLE): frozenset({Trigger.COMPLETED, Trigger.FAILED}),
    # Refinement sub-phase, only entered when refinement is configured
    (SessionState.PROCESSING, SessionState.POST_PROCESSING): frozenset({Trigger.REFINE}),
    (SessionState.POST_PROCESSING, SessionState.IDLE): frozenset({Trigger.COMPLETED, Trigger.FAILED}),
}

HISTORY_SIZE = 50

Subscriber = Callable[[Transition], None]


def is_allowed(from_state: SessionState, to_state: SessionState, trigger: Trigger) -> bool:
    """Check a move against the transition table."""
    return trigger in TRANSITIONS.get((from_state, to_state), frozenset())


class StateMachine:
    """Thread-safe session state holder with synchronous change notifications."""

    def __init__(self):
        self._state = SessionState.IDLE
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self._history: deque = deque(maxlen=HISTORY_SIZE)

    @property
    def current(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def history(self) -> List[Transition]:
        """Most recent transitions, oldest first."""
        with self._lock:
            return list(self._history)

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def transition(self, to_state: SessionState, trigger: Trigger) -> SessionState:
        """
        Move to to_state.

        Subscribers are called synchronously while the lock is held, so every
        subscriber observes transitions in the order they happened.

        Raises:
            InvalidTransitionError: If (current, to_state, trigger) is not in
                the transition table. The state is left unchanged.
        """
        with self._lock:
            from_state = self._state
            if not is_allowed(from_state, to_state, trigger):
                error = InvalidTransitionError(from_state, to_state, trigger)
                log(f"BUG: {error}", "ERR")
                raise error

            self._state = to_state
            record = Transition(
                from_state=from_state,
                to_state=to_state,
                timestamp=datetime.now(timezone.utc),
                trigger=trigger,
            )
            self._history.append(record)
            log(f"State: {from_state.name} -> {to_state.name} ({trigger.value})", "DEBUG")

            for callback in list(self._subscribers):
                try:
                    callback(record)
                except Exception as e:
                    log(f"State subscriber failed: {e}", "WARN")

            return to_state
