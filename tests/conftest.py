import sys
from pathlib import Path
from typing import List, Optional

# The library lives inside the integration directory; import it as ``elm327``
# the same way the CLI does so Home Assistant is not needed for these tests.
ROOT = Path(__file__).resolve().parents[1] / "custom_components" / "obd_ble"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from elm327.connection import ConnectionState
from elm327.engine import (
    BytesReceived,
    DeviceDiscovered,
    Engine,
    EngineConfig,
    LinkDown,
    LinkUp,
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """In-memory transport recording every command the engine sends."""

    def __init__(self) -> None:
        self.handler = None
        self.connected = False
        self.accept_connect = True
        self.sent: List[str] = []
        self.scans: List[str] = []
        self.connects: List[str] = []
        self.disconnects = 0

    def set_event_handler(self, handler) -> None:
        self.handler = handler

    def start_scan(self, target: str) -> None:
        self.scans.append(target)

    def connect(self, target: str) -> bool:
        self.connects.append(target)
        return self.accept_connect

    def send(self, data: bytes) -> None:
        if self.connected:
            self.sent.append(data.decode("ascii"))

    def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    def discover(self, address: str = "AA:BB:CC:DD:EE:FF", name: Optional[str] = None) -> None:
        self.handler(DeviceDiscovered(address, name))

    def link_up(self) -> None:
        self.connected = True
        self.handler(LinkUp())

    def link_down(self) -> None:
        self.connected = False
        self.handler(LinkDown())

    def reply(self, text: str) -> None:
        self.handler(BytesReceived(text.encode("ascii")))

    @property
    def requests(self) -> List[str]:
        """Polling requests sent after initialization, without terminators."""
        return [cmd.rstrip("\r") for cmd in self.sent if not cmd.startswith("AT")]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def engine(transport: FakeTransport, clock: FakeClock) -> Engine:
    return Engine(transport, EngineConfig(request_timeout=2.0), clock=clock)


def bring_online(engine: Engine, transport: FakeTransport, clock: FakeClock) -> None:
    """Scan, connect and run the setup script until the engine polls."""
    engine.start()
    transport.discover()
    engine.tick()
    transport.link_up()
    for _ in range(100):
        engine.tick()
        if engine.get_connection_state() is ConnectionState.CONNECTED:
            return
        clock.advance(0.1)
    raise AssertionError("engine never finished initialization")


@pytest.fixture
def online_engine(engine: Engine, transport: FakeTransport, clock: FakeClock) -> Engine:
    bring_online(engine, transport, clock)
    return engine
