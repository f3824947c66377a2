"""Temperature sensors for Haier hOn air conditioners."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.const import UnitOfTemperature

from .const import CAP_INDOOR_TEMPERATURE, CAP_OUTDOOR_TEMPERATURE, DOMAIN
from .entity import HonEntity

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from . import HonRuntimeData
    from .coordinator import HonDeviceCoordinator

TEMPERATURE_SENSORS = (CAP_INDOOR_TEMPERATURE, CAP_OUTDOOR_TEMPERATURE)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up indoor and outdoor temperature sensors."""
    runtime: HonRuntimeData = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        HonTemperatureSensor(coordinator, capability)
        for coordinator in runtime.coordinators.values()
        for capability in TEMPERATURE_SENSORS
    )


class HonTemperatureSensor(HonEntity, SensorEntity):
    """Temperature reported by the appliance."""

    _attr_device_class = SensorDeviceClass.TEMPERATURE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UnitOfTemperature.CELSIUS

    def __init__(self, coordinator: HonDeviceCoordinator, capability: str) -> None:
        """Initialize the sensor for one temperature capability."""
        super().__init__(coordinator, capability)
        self._capability = capability
        self._attr_translation_key = capability

    @property
    def native_value(self) -> float | None:
        """Return the reported temperature."""
        return self.capabilities.get(self._capability)
