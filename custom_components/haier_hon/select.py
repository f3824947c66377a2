"""Select entities for Haier hOn air conditioners."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.select import SelectEntity
from homeassistant.const import EntityCategory

from .const import CAP_ECO_PILOT, DOMAIN
from .entity import HonEntity
from .mapper import ECO_PILOT_TABLE

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from . import HonRuntimeData
    from .coordinator import HonDeviceCoordinator


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up eco pilot selects."""
    runtime: HonRuntimeData = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        HonEcoPilotSelect(coordinator) for coordinator in runtime.coordinators.values()
    )


class HonEcoPilotSelect(HonEntity, SelectEntity):
    """Eco pilot (human presence sensing) mode."""

    _attr_translation_key = CAP_ECO_PILOT
    _attr_entity_category = EntityCategory.CONFIG
    _attr_options = ECO_PILOT_TABLE.options

    def __init__(self, coordinator: HonDeviceCoordinator) -> None:
        """Initialize the eco pilot select."""
        super().__init__(coordinator, CAP_ECO_PILOT)

    @property
    def current_option(self) -> str | None:
        """Return the current eco pilot mode."""
        return self.capabilities.get(CAP_ECO_PILOT)

    async def async_select_option(self, option: str) -> None:
        """Change the eco pilot mode."""
        await self._async_call(self.coordinator.async_set_eco_pilot(option))
