"""Binary sensor reporting whether the OBD2 adapter link is polling."""

from __future__ import annotations

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntity,
    BinarySensorEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EntityCategory
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .runtime import ObdRuntime

CONNECTIVITY_SENSOR = BinarySensorEntityDescription(
    key="connected",
    name="Adapter Connected",
    device_class=BinarySensorDeviceClass.CONNECTIVITY,
    entity_category=EntityCategory.DIAGNOSTIC,
)


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up the OBD2 connectivity binary sensor."""
    runtime: ObdRuntime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([ObdConnectivityBinarySensor(runtime, CONNECTIVITY_SENSOR)])


class ObdConnectivityBinarySensor(BinarySensorEntity):
    """On while the engine is in the CONNECTED state."""

    def __init__(
        self, runtime: ObdRuntime, description: BinarySensorEntityDescription
    ) -> None:
        self._runtime = runtime
        self.entity_description = description
        self._attr_should_poll = False
        self._attr_unique_id = f"{runtime.mac}_{description.key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, runtime.mac)},
            manufacturer="ELM327",
            model="BLE OBD2 adapter",
            name=runtime.device_name,
        )

    async def async_added_to_hass(self) -> None:
        """Track availability changes of the runtime."""
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                self._runtime.availability_signal,
                self._handle_availability,
            )
        )

    @callback
    def _handle_availability(self, _available: bool) -> None:
        self.async_write_ha_state()

    @property
    def is_on(self) -> bool:
        return self._runtime.available

    @property
    def extra_state_attributes(self) -> dict[str, str]:
        return {"state": self._runtime.connection_state.value}
