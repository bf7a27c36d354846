"""Home Assistant integration entry-point for BLE OBD2 adapters."""

from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import DOMAIN, PLATFORMS
from .runtime import ObdRuntime

LOGGER = logging.getLogger(__name__)


async def async_setup(hass: HomeAssistant, config: dict) -> bool:
    """Set up the OBD2 BLE integration (YAML not supported)."""
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Load a config entry."""
    hass.data.setdefault(DOMAIN, {})
    runtime = ObdRuntime(hass, entry)
    hass.data[DOMAIN][entry.entry_id] = runtime
    await runtime.async_start()
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(_async_reload_entry))
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    runtime: ObdRuntime | None = hass.data[DOMAIN].pop(entry.entry_id, None)
    if runtime:
        await runtime.async_stop()
        stats = runtime.statistics
        LOGGER.debug(
            "Unloaded %s after %s requests (%.1f%% successful, %s reconnects)",
            entry.title,
            stats.total_requests,
            stats.success_rate,
            stats.reconnect_attempts,
        )
    return unload_ok


async def _async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Options changed: rebuild the engine with the new configuration."""
    LOGGER.debug("Reloading %s after options update", entry.title)
    await hass.config_entries.async_reload(entry.entry_id)
