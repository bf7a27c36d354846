"""Constants for the OBD2 BLE Home Assistant integration."""

from __future__ import annotations

from datetime import timedelta

from homeassistant.const import Platform

DOMAIN = "obd_ble"
PLATFORMS: list[Platform] = [Platform.SENSOR, Platform.BINARY_SENSOR]

CONF_MAC = "mac"
CONF_DEVICE_NAME = "device_name"

TICK_INTERVAL = timedelta(milliseconds=50)
