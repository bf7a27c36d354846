"""Config flow for the OBD2 BLE custom integration."""

from __future__ import annotations

import logging
from typing import Optional

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.components.bluetooth import BluetoothServiceInfoBleak
from homeassistant.core import callback

from .elm327 import EngineConfig
from .elm327.ble import is_obd_adapter
from .elm327.engine import (
    OPTION_AUTO_RECONNECT,
    OPTION_DEBUG_LOGGING,
    OPTION_REQUEST_TIMEOUT,
    OPTION_TARGET_IDENTIFIER,
    OPTION_VERBOSE_LOGGING,
)

from .const import CONF_DEVICE_NAME, CONF_MAC, DOMAIN

LOGGER = logging.getLogger(__name__)


class ObdBleConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle the configuration flow."""

    VERSION = 1

    def __init__(self) -> None:
        self._discovery_mac: Optional[str] = None
        self._discovery_name: Optional[str] = None

    async def async_step_user(self, user_input: Optional[dict] = None):
        """Abort manual setup; bluetooth discovery handles onboarding."""
        return self.async_abort(reason="bluetooth_only")

    async def async_step_bluetooth(self, discovery_info: BluetoothServiceInfoBleak):
        """Handle an adapter found by the HA bluetooth integration."""
        if not is_obd_adapter(discovery_info.name, discovery_info.service_uuids):
            LOGGER.debug("Ignoring %s: no UART service advertised", discovery_info.address)
            return self.async_abort(reason="not_supported")

        mac = discovery_info.address
        await self.async_set_unique_id(mac)
        self._abort_if_unique_id_configured()
        self._discovery_mac = mac
        self._discovery_name = discovery_info.name or mac
        self.context["title_placeholders"] = {"name": self._discovery_name}
        return await self.async_step_discovery_confirm()

    async def async_step_discovery_confirm(self, user_input: Optional[dict] = None):
        """Confirm adding a discovered adapter."""
        if user_input is None:
            return self.async_show_form(
                step_id="discovery_confirm",
                description_placeholders={"name": self._discovery_name or self._discovery_mac or ""},
                data_schema=vol.Schema({}),
            )

        if not self._discovery_mac:
            return self.async_abort(reason="unknown")

        data = {CONF_MAC: self._discovery_mac}
        if self._discovery_name:
            data[CONF_DEVICE_NAME] = self._discovery_name
        return self.async_create_entry(title=self._discovery_name or self._discovery_mac, data=data)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: config_entries.ConfigEntry):
        return ObdBleOptionsFlowHandler(config_entry)


class ObdBleOptionsFlowHandler(config_entries.OptionsFlow):
    """Edit the engine logging, reconnect and timeout options."""

    def __init__(self, entry: config_entries.ConfigEntry) -> None:
        self._entry = entry

    async def async_step_init(self, user_input: Optional[dict] = None):
        errors: dict[str, str] = {}
        if user_input is not None:
            try:
                config = EngineConfig.from_mapping(user_input)
            except vol.Invalid as exc:
                LOGGER.debug("Rejected options %s: %s", user_input, exc)
                errors["base"] = "invalid_options"
            else:
                options = config.as_dict()
                # The target always comes from the config entry address.
                options.pop(OPTION_TARGET_IDENTIFIER)
                return self.async_create_entry(title="", data=options)

        current = EngineConfig.from_mapping(self._entry.options)
        schema = vol.Schema(
            {
                vol.Optional(OPTION_DEBUG_LOGGING, default=current.debug_logging): bool,
                vol.Optional(OPTION_VERBOSE_LOGGING, default=current.verbose_logging): bool,
                vol.Optional(OPTION_AUTO_RECONNECT, default=current.auto_reconnect): bool,
                vol.Optional(OPTION_REQUEST_TIMEOUT, default=current.request_timeout): vol.Coerce(float),
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema, errors=errors)
