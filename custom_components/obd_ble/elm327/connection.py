"""Link lifecycle state machine and the interpreter setup script."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Sequence, Tuple

from .telemetry import Statistics

RECONNECT_DELAY = 10.0  # seconds spent disconnected before rescanning

# (command, settle delay in seconds)
INIT_SCRIPT: Tuple[Tuple[str, float], ...] = (
    ("ATZ", 1.5),  # reset
    ("ATE0", 0.2),  # echo off
    ("ATL0", 0.2),  # linefeeds off
    ("ATS0", 0.2),  # spaces off
    ("ATSP0", 0.5),  # automatic protocol
)
INIT_LEAD_IN = 0.5

LOGGER = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    INITIALIZING = "initializing"
    CONNECTED = "connected"
    ERROR = "error"


IDLE_STATES = (ConnectionState.DISCONNECTED, ConnectionState.ERROR)
LINKED_STATES = (ConnectionState.INITIALIZING, ConnectionState.CONNECTED)


class ConnectionStateMachine:
    """Current link state plus the fixed-interval reconnect rule."""

    def __init__(
        self,
        statistics: Statistics,
        now: float,
        *,
        auto_reconnect: bool = True,
        reconnect_delay: float = RECONNECT_DELAY,
        debug_logging: bool = True,
    ) -> None:
        self._statistics = statistics
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay
        self.debug_logging = debug_logging
        self._state = ConnectionState.DISCONNECTED
        self._last_transition_time = now

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_transition_time(self) -> float:
        return self._last_transition_time

    def time_in_state(self, now: float) -> float:
        return now - self._last_transition_time

    def transition(self, new_state: ConnectionState, now: float) -> bool:
        """Move to ``new_state``; returns False when already there."""
        if new_state == self._state:
            return False
        previous = self._state
        self._state = new_state
        self._last_transition_time = now
        if self.debug_logging:
            LOGGER.debug("State: %s -> %s", previous.name, new_state.name)
        return True

    def reconnect_due(self, now: float, link_active: bool) -> bool:
        """True once an idle, unlinked machine has waited out the reconnect delay."""
        return (
            self.auto_reconnect
            and not link_active
            and self._state in IDLE_STATES
            and self.time_in_state(now) > self.reconnect_delay
        )

    def begin_reconnect(self, now: float) -> int:
        """Count an automatic reconnect and move to SCANNING."""
        self._statistics.record_reconnect_attempt()
        attempts = self._statistics.reconnect_attempts
        LOGGER.info("Auto-reconnect attempt #%s", attempts)
        self.transition(ConnectionState.SCANNING, now)
        return attempts


class InitSequence:
    """Paces the setup script across ticks instead of sleeping between commands."""

    def __init__(
        self,
        send: Callable[[str], None],
        now: float,
        script: Sequence[Tuple[str, float]] = INIT_SCRIPT,
        lead_in: float = INIT_LEAD_IN,
    ) -> None:
        self._send = send
        self._script = tuple(script)
        self._step = 0
        self._next_at = now + lead_in

    @property
    def finished(self) -> bool:
        return self._step >= len(self._script)

    def advance(self, now: float) -> bool:
        """Send whichever step is due; True when the script has fully settled."""
        if now < self._next_at:
            return False
        if self.finished:
            return True
        command, settle = self._script[self._step]
        self._send(command)
        self._step += 1
        self._next_at = now + settle
        return False


__all__ = [
    "ConnectionState",
    "ConnectionStateMachine",
    "INIT_SCRIPT",
    "InitSequence",
    "RECONNECT_DELAY",
]
