"""Decoders for the OBD-II mode 01 channels polled over the ELM327 link."""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .errors import DecodeError

MODE_CURRENT_DATA = "01"
NO_DATA_MARKER = "NO DATA"
TIMEOUT_MARKER = "TIMEOUT"

CHANNEL_ENGINE_SPEED = "engine_speed"
CHANNEL_VEHICLE_SPEED = "vehicle_speed"
CHANNEL_COOLANT_TEMPERATURE = "coolant_temperature"
CHANNEL_OIL_TEMPERATURE = "oil_temperature"
CHANNEL_FUEL_LEVEL = "fuel_level"
CHANNEL_THROTTLE_POSITION = "throttle_position"
CHANNEL_ENGINE_LOAD = "engine_load"
CHANNEL_INTAKE_AIRFLOW = "intake_airflow"


def _word_quarter(a: int, b: int) -> float:
    return ((a * 256) + b) / 4.0


def _single_byte(a: int, _b: int) -> float:
    return float(a)


def _temperature(a: int, _b: int) -> float:
    return float(a - 40)


def _percentage(a: int, _b: int) -> float:
    return (a * 100.0) / 255.0


def _word_hundredth(a: int, b: int) -> float:
    return ((a * 256) + b) / 100.0


@dataclass(frozen=True)
class PidDecoder:
    """Decode the positive response to a single mode 01 PID request."""

    pid: str
    data_bytes: int
    formula: Callable[[int, int], float]
    mode: str = MODE_CURRENT_DATA

    @property
    def request(self) -> str:
        return f"{self.mode}{self.pid}"

    @property
    def header(self) -> str:
        # Positive responses echo the mode with 0x40 added, then the PID.
        return f"{int(self.mode, 16) + 0x40:02X}{self.pid}"

    @property
    def min_length(self) -> int:
        return len(self.header) + 2 * self.data_bytes

    def __call__(self, frame: str) -> float:
        payload = self._payload(frame)
        offset = len(self.header)
        try:
            data = bytes.fromhex(payload[offset : offset + 2 * self.data_bytes])
        except ValueError as exc:
            raise DecodeError(f"Non-hex data bytes in {frame!r}") from exc
        a = data[0]
        b = data[1] if self.data_bytes > 1 else 0
        return self.formula(a, b)

    def _payload(self, frame: str) -> str:
        """Return the compact response line that carries this PID."""
        lines = [line.replace(" ", "").upper() for line in frame.splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            raise DecodeError("Empty response")

        candidate = next((line for line in lines if line.startswith(self.header)), lines[0])
        if len(candidate) < self.min_length:
            raise DecodeError(
                f"Response {frame!r} shorter than {self.min_length} characters"
            )
        if not candidate.startswith(self.header):
            raise DecodeError(f"Expected header {self.header}, received {candidate[:4]}")
        return candidate


@dataclass(frozen=True)
class ChannelDefinition:
    name: str
    unit: str
    decoder: PidDecoder
    description: str = ""


CHANNEL_DEFINITIONS: Dict[str, ChannelDefinition] = {
    CHANNEL_ENGINE_SPEED: ChannelDefinition(
        name="Engine Speed",
        unit="rpm",
        decoder=PidDecoder("0C", 2, _word_quarter),
    ),
    CHANNEL_VEHICLE_SPEED: ChannelDefinition(
        name="Vehicle Speed",
        unit="km/h",
        decoder=PidDecoder("0D", 1, _single_byte),
    ),
    CHANNEL_COOLANT_TEMPERATURE: ChannelDefinition(
        name="Coolant Temperature",
        unit="°C",
        decoder=PidDecoder("05", 1, _temperature),
    ),
    CHANNEL_OIL_TEMPERATURE: ChannelDefinition(
        name="Oil Temperature",
        unit="°C",
        decoder=PidDecoder("5C", 1, _temperature),
    ),
    CHANNEL_FUEL_LEVEL: ChannelDefinition(
        name="Fuel Level",
        unit="%",
        decoder=PidDecoder("2F", 1, _percentage),
        description="Fuel tank level input",
    ),
    CHANNEL_THROTTLE_POSITION: ChannelDefinition(
        name="Throttle Position",
        unit="%",
        decoder=PidDecoder("11", 1, _percentage),
        description="Absolute throttle position",
    ),
    CHANNEL_ENGINE_LOAD: ChannelDefinition(
        name="Engine Load",
        unit="%",
        decoder=PidDecoder("04", 1, _percentage),
        description="Calculated engine load",
    ),
    CHANNEL_INTAKE_AIRFLOW: ChannelDefinition(
        name="Intake Airflow",
        unit="g/s",
        decoder=PidDecoder("10", 2, _word_hundredth),
        description="Mass air flow sensor rate",
    ),
}

# Polling order of the round-robin queue.
CHANNEL_ORDER: Tuple[str, ...] = (
    CHANNEL_ENGINE_SPEED,
    CHANNEL_VEHICLE_SPEED,
    CHANNEL_COOLANT_TEMPERATURE,
    CHANNEL_OIL_TEMPERATURE,
    CHANNEL_FUEL_LEVEL,
    CHANNEL_THROTTLE_POSITION,
    CHANNEL_ENGINE_LOAD,
    CHANNEL_INTAKE_AIRFLOW,
)


def is_no_data(frame: str) -> bool:
    return frame.startswith(NO_DATA_MARKER)


def decode_channel(channel: str, frame: str) -> float:
    """Decode ``frame`` for ``channel``, raising :class:`DecodeError` on failure."""
    definition = CHANNEL_DEFINITIONS.get(channel)
    if definition is None:
        raise DecodeError(f"Unknown channel {channel!r}")
    return definition.decoder(frame)


__all__ = [
    "CHANNEL_DEFINITIONS",
    "CHANNEL_ORDER",
    "ChannelDefinition",
    "NO_DATA_MARKER",
    "PidDecoder",
    "TIMEOUT_MARKER",
    "decode_channel",
    "is_no_data",
]
