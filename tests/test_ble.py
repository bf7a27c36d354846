import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from bleak.exc import BleakError

from elm327.ble import (
    RX_CHAR_UUID,
    SERVICE_UUID,
    TX_CHAR_UUID,
    BleakTransport,
    is_obd_adapter,
    matches_target,
)
from elm327.engine import (
    BytesReceived,
    ConnectFailed,
    DeviceDiscovered,
    LinkDown,
    LinkUp,
    ScanFinished,
)

ADDRESS = "AA:BB:CC:DD:EE:FF"


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def make_device(name="OBD2_Simulator_BLE", address=ADDRESS):
    return SimpleNamespace(name=name, address=address)


def make_client(*, service=True, notify=True):
    rx = SimpleNamespace(uuid=RX_CHAR_UUID, properties=["notify"] if notify else ["read"])
    tx = SimpleNamespace(uuid=TX_CHAR_UUID, properties=["write-without-response"])
    characteristics = {RX_CHAR_UUID: rx, TX_CHAR_UUID: tx}
    uart = MagicMock()
    uart.get_characteristic.side_effect = characteristics.get

    client = MagicMock()
    client.services.get_service.return_value = uart if service else None
    client.start_notify = AsyncMock()
    client.write_gatt_char = AsyncMock()
    client.disconnect = AsyncMock()
    return client


def test_matches_target_by_service_name_or_address():
    device = make_device(name=None)
    assert matches_target(device, SimpleNamespace(service_uuids=[SERVICE_UUID.upper()], local_name=None), "x")
    assert matches_target(
        device, SimpleNamespace(service_uuids=[], local_name="OBD2_Simulator_BLE"), "OBD2_Simulator_BLE"
    )
    assert matches_target(device, SimpleNamespace(service_uuids=[], local_name=None), ADDRESS.lower())
    assert not matches_target(device, SimpleNamespace(service_uuids=[], local_name="Other"), "OBD2")


def test_scan_reports_discovered_device():
    events = []

    async def run():
        transport = BleakTransport()
        transport.set_event_handler(events.append)
        with patch(
            "elm327.ble.BleakScanner.find_device_by_filter",
            new=AsyncMock(return_value=make_device()),
        ):
            transport.start_scan("OBD2_Simulator_BLE")
            await settle()

    asyncio.run(run())
    assert events == [DeviceDiscovered(ADDRESS, "OBD2_Simulator_BLE")]


def test_scan_without_match_or_with_error_finishes():
    events = []

    async def run():
        transport = BleakTransport()
        transport.set_event_handler(events.append)
        with patch("elm327.ble.BleakScanner.find_device_by_filter", new=AsyncMock(return_value=None)):
            transport.start_scan("OBD2_Simulator_BLE")
            await settle()
        with patch(
            "elm327.ble.BleakScanner.find_device_by_filter",
            new=AsyncMock(side_effect=BleakError("adapter not found")),
        ):
            transport.start_scan("OBD2_Simulator_BLE")
            await settle()

    asyncio.run(run())
    assert events == [ScanFinished(), ScanFinished()]


def test_known_device_skips_scan():
    events = []

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.BleakScanner.find_device_by_filter", new=AsyncMock()) as finder:
            transport.start_scan(ADDRESS)
            await settle()
            finder.assert_not_awaited()

    asyncio.run(run())
    assert events == [DeviceDiscovered(ADDRESS, "OBD2_Simulator_BLE")]


def test_connect_to_undiscovered_device_fails():
    events = []

    async def run():
        transport = BleakTransport()
        transport.set_event_handler(events.append)
        assert transport.connect(ADDRESS)
        await settle()
        assert not transport.is_connected()

    asyncio.run(run())
    assert len(events) == 1
    assert isinstance(events[0], ConnectFailed)
    assert "not been discovered" in events[0].reason


def test_missing_service_fails_and_disconnects():
    events = []
    client = make_client(service=False)

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)):
            transport.connect(ADDRESS)
            await settle()

    asyncio.run(run())
    assert events == [ConnectFailed("UART service not found on device")]
    client.disconnect.assert_awaited_once()


def test_notifications_must_be_supported():
    events = []
    client = make_client(notify=False)

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)):
            transport.connect(ADDRESS)
            await settle()

    asyncio.run(run())
    assert events == [ConnectFailed("RX characteristic does not support notifications")]


def test_connected_transport_relays_traffic():
    events = []
    client = make_client()

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)) as connect:
            assert transport.connect(ADDRESS)
            assert not transport.connect(ADDRESS)
            await settle()
            disconnected_callback = connect.call_args.kwargs["disconnected_callback"]

        assert transport.is_connected()
        notify_callback = client.start_notify.call_args.args[1]
        notify_callback(None, bytearray(b"41 0C 1A F8\r>"))

        transport.send(b"010D\r")
        await settle()
        client.write_gatt_char.assert_awaited_once_with(TX_CHAR_UUID, b"010D\r", response=False)

        disconnected_callback(client)
        assert not transport.is_connected()
        transport.send(b"010D\r")
        await settle()
        assert client.write_gatt_char.await_count == 1

    asyncio.run(run())
    assert events == [LinkUp(), BytesReceived(b"41 0C 1A F8\r>"), LinkDown()]


def test_write_failure_is_not_fatal():
    client = make_client()
    client.write_gatt_char.side_effect = BleakError("write failed")

    async def run():
        transport = BleakTransport(ble_device=make_device())
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)):
            transport.connect(ADDRESS)
            await settle()
        transport.send(b"010C\r")
        await settle()
        assert transport.is_connected()

    asyncio.run(run())


def test_close_disconnects_and_reports_link_down():
    events = []
    client = make_client()

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)):
            transport.connect(ADDRESS)
            await settle()
        transport.disconnect()
        await settle()
        assert not transport.is_connected()
        await transport.async_close()

    asyncio.run(run())
    assert events == [LinkUp(), LinkDown()]
    client.disconnect.assert_awaited_once()


def test_is_obd_adapter_requires_uart_or_simulator_name():
    assert is_obd_adapter(None, [SERVICE_UUID.upper()])
    assert is_obd_adapter("OBD2_Simulator_BLE", [])
    assert not is_obd_adapter("Thermometer", ["0000180f-0000-1000-8000-00805f9b34fb"])


def test_resolver_is_consulted_on_every_scan():
    events = []
    fresh = make_device(name="OBD2 adapter")
    answers = [None, fresh]
    resolver = MagicMock(side_effect=lambda target: answers.pop(0))

    async def run():
        transport = BleakTransport(ble_device=make_device(), device_resolver=resolver)
        transport.set_event_handler(events.append)
        with patch("elm327.ble.BleakScanner.find_device_by_filter", new=AsyncMock()) as finder:
            transport.start_scan(ADDRESS)
            await settle()
            transport.start_scan(ADDRESS)
            await settle()
            finder.assert_not_awaited()

    asyncio.run(run())
    assert resolver.call_count == 2
    assert events == [ScanFinished(), DeviceDiscovered(ADDRESS, "OBD2 adapter")]


def test_failed_connect_forgets_cached_device():
    events = []
    client = make_client(service=False)

    async def run():
        transport = BleakTransport(ble_device=make_device())
        transport.set_event_handler(events.append)
        with patch("elm327.ble.establish_connection", new=AsyncMock(return_value=client)):
            transport.connect(ADDRESS)
            await settle()
        with patch(
            "elm327.ble.BleakScanner.find_device_by_filter", new=AsyncMock(return_value=None)
        ) as finder:
            transport.start_scan(ADDRESS)
            await settle()
            finder.assert_awaited_once()

    asyncio.run(run())
    assert events == [ConnectFailed("UART service not found on device"), ScanFinished()]


def test_unexpected_scan_error_still_finishes_scan():
    events = []

    async def run():
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(lambda _loop, _context: None)
        transport = BleakTransport()
        transport.set_event_handler(events.append)
        with patch(
            "elm327.ble.BleakScanner.find_device_by_filter",
            new=AsyncMock(side_effect=OSError("adapter vanished")),
        ):
            transport.start_scan("OBD2_Simulator_BLE")
            await settle()

    asyncio.run(run())
    assert events == [ScanFinished()]
