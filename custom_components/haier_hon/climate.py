"""Climate entities for Haier hOn air conditioners.

Anti-freeze (10 degree heating) has no HVAC mode of its own in Home
Assistant, so it is exposed as a preset on top of heat mode.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.components.climate import (
    ATTR_HVAC_MODE,
    PRESET_NONE,
    ClimateEntity,
    ClimateEntityFeature,
    HVACMode,
)
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature

from .const import (
    CAP_FAN_MODE,
    CAP_HVAC_MODE,
    CAP_INDOOR_TEMPERATURE,
    CAP_POWER,
    CAP_SWING_MODE,
    CAP_TARGET_TEMPERATURE,
    DOMAIN,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    MODE_ANTI_FREEZE,
    MODE_HEAT,
    SWING_MODE_REVERSE_MAP,
)
from .entity import HonEntity
from .mapper import FAN_MODE_TABLE

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from . import HonRuntimeData

_LOGGER = logging.getLogger(__name__)

PRESET_ANTI_FREEZE = MODE_ANTI_FREEZE


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up climate entities for Haier hOn air conditioners."""
    runtime: HonRuntimeData = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        HonClimateEntity(coordinator) for coordinator in runtime.coordinators.values()
    )


class HonClimateEntity(HonEntity, ClimateEntity):
    """Climate entity for a Haier hOn air conditioner."""

    _attr_name = None
    _attr_temperature_unit = UnitOfTemperature.CELSIUS
    _attr_target_temperature_step = 1
    _attr_min_temp = MIN_TEMPERATURE
    _attr_max_temp = MAX_TEMPERATURE
    _attr_hvac_modes = [
        HVACMode.OFF,
        HVACMode.AUTO,
        HVACMode.COOL,
        HVACMode.HEAT,
        HVACMode.DRY,
        HVACMode.FAN_ONLY,
    ]
    _attr_fan_modes = FAN_MODE_TABLE.options
    _attr_swing_modes = list(SWING_MODE_REVERSE_MAP)
    _attr_preset_modes = [PRESET_NONE, PRESET_ANTI_FREEZE]
    _attr_supported_features = (
        ClimateEntityFeature.TARGET_TEMPERATURE
        | ClimateEntityFeature.FAN_MODE
        | ClimateEntityFeature.SWING_MODE
        | ClimateEntityFeature.PRESET_MODE
        | ClimateEntityFeature.TURN_OFF
        | ClimateEntityFeature.TURN_ON
    )
    _attr_translation_key = "air_conditioner"

    @property
    def _in_anti_freeze(self) -> bool:
        return self.capabilities.get(CAP_HVAC_MODE) == MODE_ANTI_FREEZE

    @property
    def hvac_mode(self) -> HVACMode | None:
        """Return the current HVAC mode."""
        capabilities = self.capabilities
        if CAP_POWER not in capabilities:
            return None
        if not capabilities[CAP_POWER]:
            return HVACMode.OFF
        mode = capabilities.get(CAP_HVAC_MODE)
        if mode is None:
            return None
        if mode == MODE_ANTI_FREEZE:
            return HVACMode.HEAT
        return HVACMode(mode)

    @property
    def preset_mode(self) -> str:
        """Return the current preset mode."""
        return PRESET_ANTI_FREEZE if self._in_anti_freeze else PRESET_NONE

    @property
    def target_temperature(self) -> float | None:
        """Return the target temperature."""
        return self.capabilities.get(CAP_TARGET_TEMPERATURE)

    @property
    def current_temperature(self) -> float | None:
        """Return the indoor temperature."""
        return self.capabilities.get(CAP_INDOOR_TEMPERATURE)

    @property
    def fan_mode(self) -> str | None:
        """Return the fan mode."""
        return self.capabilities.get(CAP_FAN_MODE)

    @property
    def swing_mode(self) -> str | None:
        """Return the swing mode."""
        return self.capabilities.get(CAP_SWING_MODE)

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        """Set the HVAC mode, turning the appliance off for ``HVACMode.OFF``."""
        _LOGGER.debug("Setting HVAC mode of %s to %s", self.name, hvac_mode)
        if hvac_mode == HVACMode.OFF:
            await self._async_call(self.coordinator.async_set_power(False))
            return
        await self._async_call(self.coordinator.async_set_hvac_mode(str(hvac_mode)))

    async def async_set_preset_mode(self, preset_mode: str) -> None:
        """Enter or leave anti-freeze."""
        if preset_mode == PRESET_ANTI_FREEZE:
            await self._async_call(
                self.coordinator.async_set_hvac_mode(MODE_ANTI_FREEZE)
            )
        elif self._in_anti_freeze:
            await self._async_call(self.coordinator.async_set_hvac_mode(MODE_HEAT))

    async def async_set_temperature(self, **kwargs: Any) -> None:
        """Set the target temperature, optionally switching mode first."""
        if (hvac_mode := kwargs.get(ATTR_HVAC_MODE)) is not None:
            await self.async_set_hvac_mode(hvac_mode)
        if (temperature := kwargs.get(ATTR_TEMPERATURE)) is not None:
            await self._async_call(self.coordinator.async_set_temperature(temperature))

    async def async_set_fan_mode(self, fan_mode: str) -> None:
        """Set the fan mode."""
        await self._async_call(self.coordinator.async_set_fan_mode(fan_mode))

    async def async_set_swing_mode(self, swing_mode: str) -> None:
        """Set the swing mode."""
        await self._async_call(self.coordinator.async_set_swing_mode(swing_mode))

    async def async_turn_on(self) -> None:
        """Turn the appliance on in its last mode."""
        await self._async_call(self.coordinator.async_set_power(True))

    async def async_turn_off(self) -> None:
        """Turn the appliance off."""
        await self._async_call(self.coordinator.async_set_power(False))
