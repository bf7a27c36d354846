"""Bleak transport for ELM327 adapters exposing a Nordic UART service."""

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Iterable, Optional, Set

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak_retry_connector import establish_connection

from .engine import (
    DEFAULT_TARGET,
    BytesReceived,
    ConnectFailed,
    DeviceDiscovered,
    EventHandler,
    LinkDown,
    LinkEvent,
    LinkUp,
    ScanFinished,
)
from .errors import TransportError

# Nordic UART Service used by BLE OBD2 adapters and the simulator
SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
TX_CHAR_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"  # write requests here
RX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # responses are notified here

SCAN_TIMEOUT = 10.0

DeviceResolver = Callable[[str], Optional[BLEDevice]]

LOGGER = logging.getLogger(__name__)


def advertises_uart(service_uuids: Iterable[str]) -> bool:
    return SERVICE_UUID in (uuid.lower() for uuid in service_uuids or ())


def is_obd_adapter(name: Optional[str], service_uuids: Iterable[str]) -> bool:
    """Return True for adapters we know how to talk to."""
    return advertises_uart(service_uuids) or name == DEFAULT_TARGET


def matches_target(device: BLEDevice, advertisement: AdvertisementData, target: str) -> bool:
    """Accept devices advertising the UART service or carrying the target name/address."""
    if advertises_uart(advertisement.service_uuids):
        return True
    name = advertisement.local_name or device.name
    return name == target or device.address.upper() == target.upper()


class BleakTransport:
    """Non-blocking transport: every BLE operation runs as a background task.

    Results are reported back as link events through the handler registered
    with :meth:`set_event_handler`, so the engine only ever sees them on its
    own tick.
    """

    def __init__(
        self,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        ble_device: Optional[BLEDevice] = None,
        device_resolver: Optional[DeviceResolver] = None,
        scan_timeout: float = SCAN_TIMEOUT,
    ) -> None:
        self._loop = loop
        self._ble_device = ble_device
        self._device_resolver = device_resolver
        self.scan_timeout = scan_timeout

        self._client: Optional[BleakClient] = None
        self._connected = False
        self._connecting = False
        self._handler: Optional[EventHandler] = None
        self._tasks: Set[asyncio.Task] = set()

    def set_event_handler(self, handler: Optional[EventHandler]) -> None:
        self._handler = handler

    def is_connected(self) -> bool:
        return self._connected

    def start_scan(self, target: str) -> None:
        self._spawn(self._scan(target))

    def connect(self, target: str) -> bool:
        if self._connecting or self._client is not None:
            LOGGER.debug("Connection to %s already in progress", target)
            return False
        self._connecting = True
        self._spawn(self._connect(target))
        return True

    def send(self, data: bytes) -> None:
        if not self._connected or self._client is None:
            return
        self._spawn(self._write(data))

    def disconnect(self) -> None:
        self._spawn(self._disconnect())

    async def async_close(self) -> None:
        """Cancel outstanding work and release the BLE connection."""
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with suppress(asyncio.CancelledError):
                await task
        self._handler = None
        await self._disconnect()

    async def _scan(self, target: str) -> None:
        device: Optional[BLEDevice] = None
        try:
            device = await self._find_device(target)
        except BleakError as exc:
            LOGGER.warning("BLE scan failed: %s", exc)
        finally:
            # The engine waits in SCANNING until it hears one way or the other.
            if device is None:
                self._post(ScanFinished())

        if device is not None:
            self._ble_device = device
            self._post(DeviceDiscovered(device.address, device.name))

    async def _find_device(self, target: str) -> Optional[BLEDevice]:
        if self._device_resolver is not None:
            device = self._device_resolver(target)
            if device is None:
                LOGGER.debug("%s is not currently reachable", target)
            return device

        cached = self._ble_device
        if cached is not None and cached.address.upper() == target.upper():
            return cached

        LOGGER.debug("Scanning %.0fs for %s", self.scan_timeout, target)
        return await BleakScanner.find_device_by_filter(
            lambda dev, adv: matches_target(dev, adv, target),
            timeout=self.scan_timeout,
        )

    async def _connect(self, target: str) -> None:
        try:
            await self._establish(target)
        except (BleakError, TransportError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Connection to %s failed: %s", target, exc)
            self._ble_device = None
            await self._disconnect()
            self._post(ConnectFailed(str(exc) or type(exc).__name__))
            return
        finally:
            self._connecting = False
        self._post(LinkUp())

    async def _establish(self, target: str) -> None:
        device = self._ble_device
        if device is None or device.address.upper() != target.upper():
            raise TransportError(f"Device {target} has not been discovered")

        LOGGER.info("Connecting to %s", device.address)
        self._client = await establish_connection(
            BleakClient,
            device,
            device.name or device.address,
            disconnected_callback=self._handle_disconnect,
        )

        service = self._client.services.get_service(SERVICE_UUID)
        if service is None:
            raise TransportError("UART service not found on device")
        tx_characteristic = service.get_characteristic(TX_CHAR_UUID)
        rx_characteristic = service.get_characteristic(RX_CHAR_UUID)
        if tx_characteristic is None or rx_characteristic is None:
            raise TransportError("TX/RX characteristics not found on device")
        if "notify" not in rx_characteristic.properties:
            raise TransportError("RX characteristic does not support notifications")

        await self._client.start_notify(rx_characteristic, self._handle_notification)
        self._connected = True
        LOGGER.info("Registered for notifications on %s", device.address)

    async def _write(self, data: bytes) -> None:
        client = self._client
        if client is None:
            return
        try:
            await client.write_gatt_char(TX_CHAR_UUID, data, response=False)
        except BleakError as exc:
            # The request then times out in the command queue.
            LOGGER.warning("Write of %r failed: %s", data, exc)

    async def _disconnect(self) -> None:
        client = self._client
        self._client = None
        was_connected = self._connected
        self._connected = False
        if client is None:
            return
        try:
            await client.disconnect()
            LOGGER.debug("Disconnected from device.")
        except BleakError as exc:
            LOGGER.debug("Error while disconnecting: %s", exc)
        if was_connected:
            self._post(LinkDown())

    def _handle_disconnect(self, _client: BleakClient) -> None:
        if not self._connected:
            return
        self._connected = False
        self._client = None
        self._post(LinkDown())

    def _handle_notification(self, _sender: object, data: bytearray) -> None:
        self._post(BytesReceived(bytes(data)))

    def _post(self, event: LinkEvent) -> None:
        handler = self._handler
        if handler is not None:
            handler(event)

    def _spawn(self, coro: Awaitable[None]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = [
    "BleakTransport",
    "RX_CHAR_UUID",
    "SERVICE_UUID",
    "TX_CHAR_UUID",
    "is_obd_adapter",
    "matches_target",
]
