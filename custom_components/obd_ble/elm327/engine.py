"""Tick-driven ELM327 client engine.

The engine owns the connection state machine, the command queue, the frame
assembler and the telemetry/statistics holders. Transports never touch any of
these directly: they post :data:`LinkEvent` objects through the handler the
engine registers with them, and every event is consumed inside :meth:`Engine.tick`.
"""

from __future__ import annotations

import logging
import queue
import time
from dataclasses import asdict, dataclass
from typing import Callable, Mapping, Optional, Protocol, Sequence, Union

import voluptuous as vol

from .commands import CommandQueue, build_channel_descriptors
from .connection import (
    IDLE_STATES,
    LINKED_STATES,
    ConnectionState,
    ConnectionStateMachine,
    InitSequence,
)
from .decoders import CHANNEL_ORDER
from .frames import FrameAssembler, encode_request
from .telemetry import Statistics, TelemetrySnapshot

DEFAULT_TARGET = "OBD2_Simulator_BLE"
EVENT_QUEUE_SIZE = 256

OPTION_DEBUG_LOGGING = "debug_logging"
OPTION_VERBOSE_LOGGING = "verbose_logging"
OPTION_AUTO_RECONNECT = "auto_reconnect"
OPTION_REQUEST_TIMEOUT = "request_timeout"
OPTION_TARGET_IDENTIFIER = "target_identifier"

LOGGER = logging.getLogger(__name__)


ENGINE_CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(OPTION_DEBUG_LOGGING, default=True): vol.Boolean(),
        vol.Optional(OPTION_VERBOSE_LOGGING, default=False): vol.Boolean(),
        vol.Optional(OPTION_AUTO_RECONNECT, default=True): vol.Boolean(),
        vol.Optional(OPTION_REQUEST_TIMEOUT, default=2.0): vol.All(
            vol.Coerce(float), vol.Range(min=0.1, max=60.0)
        ),
        vol.Optional(OPTION_TARGET_IDENTIFIER, default=DEFAULT_TARGET): vol.All(
            str, vol.Length(min=1)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class EngineConfig:
    debug_logging: bool = True
    verbose_logging: bool = False
    auto_reconnect: bool = True
    request_timeout: float = 2.0
    target_identifier: str = DEFAULT_TARGET

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "EngineConfig":
        """Validate user supplied options; raises ``vol.Invalid`` on bad values."""
        return cls(**ENGINE_CONFIG_SCHEMA(dict(data)))

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DeviceDiscovered:
    address: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ScanFinished:
    """A scan ended without finding the target."""


@dataclass(frozen=True)
class LinkUp:
    """Connected, characteristics resolved and notifications enabled."""


@dataclass(frozen=True)
class ConnectFailed:
    reason: str


@dataclass(frozen=True)
class LinkDown:
    pass


@dataclass(frozen=True)
class BytesReceived:
    data: bytes


LinkEvent = Union[DeviceDiscovered, ScanFinished, LinkUp, ConnectFailed, LinkDown, BytesReceived]
EventHandler = Callable[[LinkEvent], None]


class TransportAdapter(Protocol):
    def set_event_handler(self, handler: Optional[EventHandler]) -> None: ...

    def start_scan(self, target: str) -> None: ...

    def connect(self, target: str) -> bool: ...

    def send(self, data: bytes) -> None: ...

    def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...


class Engine:
    """Composition root driven by a periodic, non-blocking :meth:`tick`."""

    def __init__(
        self,
        transport: TransportAdapter,
        config: Optional[EngineConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        channels: Sequence[str] = CHANNEL_ORDER,
    ) -> None:
        self.config = config or EngineConfig()
        self._transport = transport
        self._clock = clock
        self._channels = tuple(channels)
        self._events: "queue.Queue[LinkEvent]" = queue.Queue(maxsize=EVENT_QUEUE_SIZE)

        self._statistics = Statistics()
        self._snapshot = TelemetrySnapshot()
        self._assembler = FrameAssembler()
        self._machine = ConnectionStateMachine(
            self._statistics,
            clock(),
            auto_reconnect=self.config.auto_reconnect,
            debug_logging=self.config.debug_logging,
        )
        self._queue = CommandQueue(
            self._send_command,
            self._snapshot,
            self._statistics,
            debug_logging=self.config.debug_logging,
            verbose_logging=self.config.verbose_logging,
        )
        self._init: Optional[InitSequence] = None
        self._link_active = False
        self._rescan_pending = False

        transport.set_event_handler(self.post_event)

    @property
    def command_queue(self) -> CommandQueue:
        return self._queue

    def get_snapshot(self) -> TelemetrySnapshot:
        return self._snapshot.copy()

    def get_statistics(self) -> Statistics:
        return self._statistics.copy()

    def get_connection_state(self) -> ConnectionState:
        return self._machine.state

    def current_uptime(self) -> float:
        return self._statistics.current_uptime(self._clock())

    def post_event(self, event: LinkEvent) -> None:
        """Hand an event to the tick loop; safe to call from any thread."""
        try:
            self._events.put_nowait(event)
        except queue.Full:
            LOGGER.warning("Event queue full, dropping %s", type(event).__name__)

    def on_bytes_received(self, data: bytes) -> None:
        self.post_event(BytesReceived(bytes(data)))

    def start(self) -> None:
        """Begin scanning for the configured target right away."""
        if self._machine.state not in IDLE_STATES:
            LOGGER.debug("Ignoring start while %s", self._machine.state.name)
            return
        self._begin_scan(self._clock())

    def disconnect(self) -> None:
        """Drop the link on request; auto-reconnect still applies afterwards."""
        self._transport.disconnect()
        self._handle_link_down(self._clock())

    def tick(self) -> None:
        now = self._clock()
        # Lifecycle first: an ERROR entered while draining stays visible for one tick.
        self._run_lifecycle(now)
        self._drain_events(now)
        if self._machine.state is ConnectionState.CONNECTED:
            self._queue.check_timeout(now)
            self._queue.process(now)

    def _drain_events(self, now: float) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            self._dispatch(event, now)

    def _dispatch(self, event: LinkEvent, now: float) -> None:
        if isinstance(event, BytesReceived):
            self._handle_bytes(event.data, now)
        elif isinstance(event, DeviceDiscovered):
            self._handle_discovered(event, now)
        elif isinstance(event, LinkUp):
            self._handle_link_up(now)
        elif isinstance(event, ConnectFailed):
            self._handle_connect_failed(event.reason, now)
        elif isinstance(event, LinkDown):
            self._handle_link_down(now)
        elif isinstance(event, ScanFinished):
            self._handle_scan_finished(now)
        else:
            LOGGER.warning("Ignoring unknown transport event %r", event)

    def _run_lifecycle(self, now: float) -> None:
        if self._rescan_pending and not self._link_active:
            self._rescan_pending = False
            self._begin_scan(now)
        elif self._machine.reconnect_due(now, self._link_active):
            self._machine.begin_reconnect(now)
            self._transport.start_scan(self.config.target_identifier)

        if self._machine.state is ConnectionState.INITIALIZING and self._init is not None:
            if self._init.advance(now):
                self._finish_initialization(now)

    def _begin_scan(self, now: float) -> None:
        self._machine.transition(ConnectionState.SCANNING, now)
        LOGGER.info("Starting BLE scan for %s", self.config.target_identifier)
        self._transport.start_scan(self.config.target_identifier)

    def _handle_bytes(self, data: bytes, now: float) -> None:
        if self.config.verbose_logging:
            LOGGER.debug("Raw BLE data: %r (buffer %r)", data, self._assembler.pending)
        frame = self._assembler.feed(data)
        if frame is None:
            return
        if self.config.debug_logging and frame:
            LOGGER.debug("Complete response: %r", frame)
        if self._machine.state is ConnectionState.CONNECTED:
            self._queue.accept_frame(frame, now)

    def _handle_discovered(self, event: DeviceDiscovered, now: float) -> None:
        if self._machine.state is not ConnectionState.SCANNING:
            LOGGER.debug("Ignoring discovery of %s outside of a scan", event.address)
            return
        LOGGER.info("Found target %s (%s)", event.name or "unnamed", event.address)
        self._machine.transition(ConnectionState.CONNECTING, now)
        if not self._transport.connect(event.address):
            self._handle_connect_failed("connection attempt could not be started", now)

    def _handle_link_up(self, now: float) -> None:
        if self._machine.state is not ConnectionState.CONNECTING:
            LOGGER.debug("Ignoring link-up while %s", self._machine.state.name)
            return
        self._link_active = True
        self._statistics.mark_connected(now)
        self._machine.transition(ConnectionState.CONNECTED, now)
        LOGGER.info("Connected to OBD2 adapter, initializing")

        self._queue.reset()
        self._assembler.clear()
        self._machine.transition(ConnectionState.INITIALIZING, now)
        self._init = InitSequence(self._send_command, now)

    def _finish_initialization(self, now: float) -> None:
        self._init = None
        self._assembler.clear()
        self._queue.load(build_channel_descriptors(self.config.request_timeout, self._channels))
        self._machine.transition(ConnectionState.CONNECTED, now)
        LOGGER.info("OBD2 initialization complete")

    def _handle_connect_failed(self, reason: str, now: float) -> None:
        LOGGER.warning("Failed to connect to %s: %s", self.config.target_identifier, reason)
        if self._machine.state in LINKED_STATES:
            self._handle_link_down(now)
        self._machine.transition(ConnectionState.ERROR, now)
        self._rescan_pending = True

    def _handle_scan_finished(self, now: float) -> None:
        if self._machine.state is not ConnectionState.SCANNING:
            return
        LOGGER.info("Scan finished without finding %s", self.config.target_identifier)
        self._machine.transition(ConnectionState.DISCONNECTED, now)

    def _handle_link_down(self, now: float) -> None:
        if not self._link_active:
            return
        self._link_active = False
        uptime = self._statistics.mark_disconnected(now)
        self._queue.reset()
        self._assembler.clear()
        self._init = None
        self._machine.transition(ConnectionState.DISCONNECTED, now)
        LOGGER.info("BLE disconnected, uptime was %.1fs", uptime)
        if self._machine.auto_reconnect:
            LOGGER.info(
                "Will attempt reconnection in %.0fs", self._machine.reconnect_delay
            )

    def _send_command(self, command: str) -> None:
        if not self._transport.is_connected():
            LOGGER.debug("Not connected, dropping command %s", command)
            return
        self._transport.send(encode_request(command))
        if self.config.debug_logging:
            LOGGER.debug("Sent: %s", command)


__all__ = [
    "BytesReceived",
    "ConnectFailed",
    "DeviceDiscovered",
    "ENGINE_CONFIG_SCHEMA",
    "Engine",
    "EngineConfig",
    "LinkDown",
    "LinkEvent",
    "LinkUp",
    "ScanFinished",
    "TransportAdapter",
]
