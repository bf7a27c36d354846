"""Runtime that drives the ELM327 engine from the Home Assistant event loop."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from bleak.backends.device import BLEDevice
from homeassistant.components import bluetooth
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.event import async_track_time_interval

from .elm327 import (
    BleakTransport,
    ConnectionState,
    Engine,
    EngineConfig,
    Statistics,
    TelemetrySnapshot,
)
from .elm327.engine import OPTION_TARGET_IDENTIFIER

from .const import CONF_DEVICE_NAME, CONF_MAC, DOMAIN, TICK_INTERVAL

LOGGER = logging.getLogger(__name__)


class ObdRuntime:
    """Owns the engine and its BLE transport and publishes telemetry to entities."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        self._hass = hass
        self._entry = entry
        self._mac: str = entry.data[CONF_MAC]
        self._device_name: str = entry.data.get(CONF_DEVICE_NAME, self._mac)

        self._config = EngineConfig.from_mapping(
            {**entry.options, OPTION_TARGET_IDENTIFIER: self._mac}
        )
        self._transport = BleakTransport(loop=hass.loop, device_resolver=self._resolve_device)
        self._engine = Engine(self._transport, self._config)
        self._unsub_tick: Optional[Callable[[], None]] = None

        self._snapshot = TelemetrySnapshot()
        self._statistics = Statistics()
        self._available = False

        self.update_signal = f"{DOMAIN}_{entry.entry_id}_update"
        self.availability_signal = f"{DOMAIN}_{entry.entry_id}_availability"

    @property
    def mac(self) -> str:
        return self._mac

    @property
    def device_name(self) -> str:
        return self._device_name

    @property
    def available(self) -> bool:
        return self._available

    @property
    def statistics(self) -> Statistics:
        return self._statistics

    @property
    def connection_state(self) -> ConnectionState:
        return self._engine.get_connection_state()

    def get_value(self, channel: str) -> Optional[float]:
        """Return the latest decoded value for a channel."""
        return self._snapshot.value(channel)

    async def async_start(self) -> None:
        """Start scanning and schedule the engine tick."""
        if self._unsub_tick:
            return
        self._engine.start()
        self._unsub_tick = async_track_time_interval(
            self._hass, self._async_tick, TICK_INTERVAL
        )

    async def async_stop(self) -> None:
        """Stop ticking and release the BLE link."""
        if self._unsub_tick:
            self._unsub_tick()
            self._unsub_tick = None
        self._set_available(False)
        await self._transport.async_close()

    @callback
    def _resolve_device(self, address: str) -> Optional[BLEDevice]:
        """Ask the bluetooth manager for the freshest connectable device."""
        return bluetooth.async_ble_device_from_address(self._hass, address, connectable=True)

    @callback
    def _async_tick(self, _now: datetime) -> None:
        try:
            self._engine.tick()
        except Exception:  # pragma: no cover
            LOGGER.exception("Engine tick failed for %s", self._mac)
            return

        self._set_available(self._engine.get_connection_state() is ConnectionState.CONNECTED)

        snapshot = self._engine.get_snapshot()
        statistics = self._engine.get_statistics()
        if snapshot == self._snapshot and statistics == self._statistics:
            return
        self._snapshot = snapshot
        self._statistics = statistics
        async_dispatcher_send(self._hass, self.update_signal)

    def _set_available(self, available: bool) -> None:
        if self._available == available:
            return
        self._available = available
        async_dispatcher_send(self._hass, self.availability_signal, available)
