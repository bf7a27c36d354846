"""Sensor entities for the OBD2 BLE integration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import (
    PERCENTAGE,
    EntityCategory,
    UnitOfSpeed,
    UnitOfTemperature,
    UnitOfTime,
)
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.device_registry import DeviceInfo

from .elm327 import Statistics
from .elm327.decoders import (
    CHANNEL_COOLANT_TEMPERATURE,
    CHANNEL_ENGINE_LOAD,
    CHANNEL_ENGINE_SPEED,
    CHANNEL_FUEL_LEVEL,
    CHANNEL_INTAKE_AIRFLOW,
    CHANNEL_OIL_TEMPERATURE,
    CHANNEL_THROTTLE_POSITION,
    CHANNEL_VEHICLE_SPEED,
)

from .const import DOMAIN
from .runtime import ObdRuntime


@dataclass
class ObdChannelSensorDescription(SensorEntityDescription):
    """Describes a sensor backed by one polled OBD2 channel."""

    channel: str = ""
    decimals: Optional[int] = None


@dataclass
class ObdStatisticSensorDescription(SensorEntityDescription):
    """Describes a sensor derived from the request statistics."""

    value_fn: Callable[[Statistics], float | int] = lambda stats: 0


CHANNEL_SENSORS: tuple[ObdChannelSensorDescription, ...] = (
    ObdChannelSensorDescription(
        key=CHANNEL_ENGINE_SPEED,
        name="Engine Speed",
        native_unit_of_measurement="rpm",
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_ENGINE_SPEED,
        decimals=0,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_VEHICLE_SPEED,
        name="Vehicle Speed",
        native_unit_of_measurement=UnitOfSpeed.KILOMETERS_PER_HOUR,
        device_class=SensorDeviceClass.SPEED,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_VEHICLE_SPEED,
        decimals=0,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_COOLANT_TEMPERATURE,
        name="Coolant Temperature",
        native_unit_of_measurement=UnitOfTemperature.CELSIUS,
        device_class=SensorDeviceClass.TEMPERATURE,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_COOLANT_TEMPERATURE,
        decimals=1,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_OIL_TEMPERATURE,
        name="Oil Temperature",
        native_unit_of_measurement=UnitOfTemperature.CELSIUS,
        device_class=SensorDeviceClass.TEMPERATURE,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_OIL_TEMPERATURE,
        decimals=1,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_FUEL_LEVEL,
        name="Fuel Level",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_FUEL_LEVEL,
        decimals=1,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_THROTTLE_POSITION,
        name="Throttle Position",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_THROTTLE_POSITION,
        decimals=1,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_ENGINE_LOAD,
        name="Engine Load",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_ENGINE_LOAD,
        decimals=1,
    ),
    ObdChannelSensorDescription(
        key=CHANNEL_INTAKE_AIRFLOW,
        name="Intake Airflow",
        native_unit_of_measurement="g/s",
        state_class=SensorStateClass.MEASUREMENT,
        channel=CHANNEL_INTAKE_AIRFLOW,
        decimals=2,
    ),
)

STATISTIC_SENSORS: tuple[ObdStatisticSensorDescription, ...] = (
    ObdStatisticSensorDescription(
        key="success_rate",
        name="Request Success Rate",
        native_unit_of_measurement=PERCENTAGE,
        state_class=SensorStateClass.MEASUREMENT,
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda stats: round(stats.success_rate, 1),
    ),
    ObdStatisticSensorDescription(
        key="average_response_time",
        name="Average Response Time",
        native_unit_of_measurement=UnitOfTime.MILLISECONDS,
        device_class=SensorDeviceClass.DURATION,
        state_class=SensorStateClass.MEASUREMENT,
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda stats: round(stats.average_response_time * 1000),
    ),
    ObdStatisticSensorDescription(
        key="reconnect_attempts",
        name="Reconnect Attempts",
        state_class=SensorStateClass.TOTAL_INCREASING,
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda stats: stats.reconnect_attempts,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    """Set up OBD2 sensor entities."""
    runtime: ObdRuntime = hass.data[DOMAIN][entry.entry_id]
    entities: list[SensorEntity] = [
        ObdChannelSensor(runtime, description) for description in CHANNEL_SENSORS
    ]
    entities.extend(
        ObdStatisticSensor(runtime, description) for description in STATISTIC_SENSORS
    )
    async_add_entities(entities)


class ObdSensorBase(SensorEntity):
    """Dispatcher-driven sensor attached to one runtime."""

    def __init__(self, runtime: ObdRuntime, description: SensorEntityDescription) -> None:
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
        """Attach dispatcher listeners."""
        self.async_on_remove(
            async_dispatcher_connect(self.hass, self._runtime.update_signal, self._handle_coordinator_update)
        )
        self.async_on_remove(
            async_dispatcher_connect(self.hass, self._runtime.availability_signal, self._handle_availability)
        )

    @callback
    def _handle_coordinator_update(self) -> None:
        self.async_write_ha_state()

    @callback
    def _handle_availability(self, _available: bool) -> None:
        self.async_write_ha_state()


class ObdChannelSensor(ObdSensorBase):
    """Last known value of a polled channel; kept (not zeroed) when requests fail."""

    entity_description: ObdChannelSensorDescription

    @property
    def available(self) -> bool:
        return self._runtime.available and self.native_value is not None

    @property
    def native_value(self) -> float | None:
        value = self._runtime.get_value(self.entity_description.channel)
        if value is None:
            return None
        if self.entity_description.decimals is not None:
            value = round(value, self.entity_description.decimals)
        return value


class ObdStatisticSensor(ObdSensorBase):
    """Request statistics; these stay available while the link is down."""

    entity_description: ObdStatisticSensorDescription

    @property
    def native_value(self) -> float | int:
        return self.entity_description.value_fn(self._runtime.statistics)
