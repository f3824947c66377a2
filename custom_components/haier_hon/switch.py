"""Switch entities for the boolean toggles of Haier hOn air conditioners."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant.components.switch import SwitchEntity
from homeassistant.const import EntityCategory

from .const import DOMAIN, TOGGLE_MAP
from .entity import HonEntity

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
    """Set up one switch per toggle and appliance."""
    runtime: HonRuntimeData = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        HonToggleSwitch(coordinator, capability)
        for coordinator in runtime.coordinators.values()
        for capability in TOGGLE_MAP
    )


class HonToggleSwitch(HonEntity, SwitchEntity):
    """A boolean appliance setting such as silent or health mode."""

    _attr_entity_category = EntityCategory.CONFIG

    def __init__(self, coordinator: HonDeviceCoordinator, capability: str) -> None:
        """Initialize the switch for one toggle capability."""
        super().__init__(coordinator, capability)
        self._capability = capability
        self._attr_translation_key = capability

    @property
    def is_on(self) -> bool | None:
        """Return True when the toggle is enabled."""
        return self.capabilities.get(self._capability)

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Enable the toggle."""
        await self._async_call(
            self.coordinator.async_set_toggle(self._capability, True)
        )

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Disable the toggle."""
        await self._async_call(
            self.coordinator.async_set_toggle(self._capability, False)
        )
