"""Round-robin request scheduler with a single outstanding request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .decoders import (
    CHANNEL_DEFINITIONS,
    CHANNEL_ORDER,
    TIMEOUT_MARKER,
    is_no_data,
)
from .errors import ProtocolError
from .telemetry import Statistics, TelemetrySnapshot

CHECK_INTERVAL = 0.1  # seconds between queue passes
DEFAULT_REQUEST_TIMEOUT = 2.0

LOGGER = logging.getLogger(__name__)

SendCallback = Callable[[str], None]


@dataclass(frozen=True)
class ChannelDescriptor:
    request_text: str
    decode: Callable[[str], float]
    timeout: float
    output_slot: str


@dataclass
class InFlightRequest:
    queue_index: int
    sent_at: float
    awaiting_response: bool = True
    response: Optional[str] = None
    received_at: Optional[float] = None

    def resolve(self, response: str, now: float) -> None:
        self.response = response
        self.received_at = now
        self.awaiting_response = False


def build_channel_descriptors(
    timeout: float = DEFAULT_REQUEST_TIMEOUT, channels: Sequence[str] = CHANNEL_ORDER
) -> List[ChannelDescriptor]:
    """Create the polling descriptors for ``channels`` in queue order."""
    descriptors: List[ChannelDescriptor] = []
    for channel in channels:
        decoder = CHANNEL_DEFINITIONS[channel].decoder
        descriptors.append(
            ChannelDescriptor(
                request_text=decoder.request,
                decode=decoder,
                timeout=timeout,
                output_slot=channel,
            )
        )
    return descriptors


class CommandQueue:
    """Poll channel descriptors one at a time and account for every outcome.

    The queue never has more than one request on the wire. A request is
    resolved either by a frame from the interpreter or by the timeout check,
    then classified on the next (throttled) pass, which also advances to the
    next descriptor and sends it.
    """

    def __init__(
        self,
        send: SendCallback,
        snapshot: TelemetrySnapshot,
        statistics: Statistics,
        *,
        check_interval: float = CHECK_INTERVAL,
        debug_logging: bool = True,
        verbose_logging: bool = False,
    ) -> None:
        self._send = send
        self._snapshot = snapshot
        self._statistics = statistics
        self.check_interval = check_interval
        self.debug_logging = debug_logging
        self.verbose_logging = verbose_logging

        self._descriptors: List[ChannelDescriptor] = []
        self._index = 0
        self._in_flight: Optional[InFlightRequest] = None
        self._last_check: Optional[float] = None

    @property
    def descriptors(self) -> Sequence[ChannelDescriptor]:
        return tuple(self._descriptors)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def in_flight(self) -> Optional[InFlightRequest]:
        return self._in_flight

    def load(self, descriptors: Sequence[ChannelDescriptor]) -> None:
        """Replace the polling set and start again from the first descriptor."""
        self.reset()
        self._descriptors = list(descriptors)
        LOGGER.info("Command queue ready with %s commands", len(self._descriptors))

    def reset(self) -> None:
        self._descriptors = []
        self._index = 0
        self._in_flight = None
        self._last_check = None

    def accept_frame(self, frame: str, now: float) -> bool:
        """Attach ``frame`` to the in-flight request; False if nobody asked for it."""
        request = self._in_flight
        if request is None or not request.awaiting_response:
            LOGGER.debug("Discarding unsolicited frame %r", frame)
            return False
        request.resolve(frame, now)
        if self.debug_logging:
            LOGGER.debug(
                "Response to %s completed in %.0f ms",
                self._descriptors[request.queue_index].request_text,
                (now - request.sent_at) * 1000,
            )
        return True

    def check_timeout(self, now: float) -> bool:
        """Resolve a request that has waited longer than its descriptor allows."""
        request = self._in_flight
        if request is None or not request.awaiting_response:
            return False
        descriptor = self._descriptors[request.queue_index]
        if now - request.sent_at <= descriptor.timeout:
            return False
        LOGGER.warning("Command timeout: %s", descriptor.request_text)
        request.resolve(TIMEOUT_MARKER, now)
        return True

    def process(self, now: float) -> None:
        """Classify a resolved request, then send the next one."""
        if self._last_check is not None and now - self._last_check < self.check_interval:
            return
        self._last_check = now

        if not self._descriptors:
            return

        request = self._in_flight
        if request is not None and not request.awaiting_response:
            self._classify(request, now)
            self._index = (self._index + 1) % len(self._descriptors)
            self._in_flight = None

        if self._in_flight is None:
            self._dispatch(now)

    def _classify(self, request: InFlightRequest, now: float) -> None:
        descriptor = self._descriptors[request.queue_index]
        frame = request.response or ""
        try:
            value = self._decode(descriptor, frame)
        except ValueError as exc:
            self._statistics.record_failure()
            if self.debug_logging:
                LOGGER.debug("Request %s failed: %s", descriptor.request_text, exc)
            return

        received_at = request.received_at if request.received_at is not None else now
        self._snapshot.update(descriptor.output_slot, value, now)
        self._statistics.record_success(received_at - request.sent_at)
        if self.verbose_logging:
            LOGGER.debug("Parsed %s: %s", descriptor.request_text, value)

    @staticmethod
    def _decode(descriptor: ChannelDescriptor, frame: str) -> float:
        if not frame:
            raise ProtocolError("Empty response")
        if frame == TIMEOUT_MARKER:
            raise ProtocolError("No response before timeout")
        if is_no_data(frame):
            raise ProtocolError("No data for channel")
        return descriptor.decode(frame)

    def _dispatch(self, now: float) -> None:
        descriptor = self._descriptors[self._index]
        self._send(descriptor.request_text)
        self._in_flight = InFlightRequest(queue_index=self._index, sent_at=now)
        self._statistics.record_request()
        if self.verbose_logging:
            LOGGER.debug("Queued request %s", descriptor.request_text)


__all__ = [
    "CHECK_INTERVAL",
    "ChannelDescriptor",
    "CommandQueue",
    "InFlightRequest",
    "build_channel_descriptors",
]
