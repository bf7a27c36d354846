"""Public package surface for the ELM327-over-BLE protocol engine.

:mod:`elm327.engine` holds the tick-driven client, the lower-level pieces
(framing, decoders, command queue, state machine, telemetry) live in their own
modules, and :mod:`elm327.ble` provides the Bleak transport.
"""

from .ble import RX_CHAR_UUID, SERVICE_UUID, TX_CHAR_UUID, BleakTransport
from .commands import ChannelDescriptor, CommandQueue, InFlightRequest
from .connection import ConnectionState
from .decoders import (  # noqa: F401
    CHANNEL_DEFINITIONS,
    CHANNEL_ORDER,
    ChannelDefinition,
    PidDecoder,
    decode_channel,
)
from .engine import (
    ENGINE_CONFIG_SCHEMA,
    Engine,
    EngineConfig,
    TransportAdapter,
)
from .errors import DecodeError, ObdError, ProtocolError, TransportError
from .frames import FrameAssembler
from .telemetry import Reading, Statistics, TelemetrySnapshot

__all__ = [
    "CHANNEL_DEFINITIONS",
    "CHANNEL_ORDER",
    "ENGINE_CONFIG_SCHEMA",
    "RX_CHAR_UUID",
    "SERVICE_UUID",
    "TX_CHAR_UUID",
    "BleakTransport",
    "ChannelDefinition",
    "ChannelDescriptor",
    "CommandQueue",
    "ConnectionState",
    "DecodeError",
    "Engine",
    "EngineConfig",
    "FrameAssembler",
    "InFlightRequest",
    "ObdError",
    "PidDecoder",
    "ProtocolError",
    "Reading",
    "Statistics",
    "TelemetrySnapshot",
    "TransportAdapter",
    "TransportError",
    "decode_channel",
]
