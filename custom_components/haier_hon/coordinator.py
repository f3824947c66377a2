"""Coordinator for Haier hOn integration."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from homeassistant.core import CALLBACK_TYPE, callback
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers import device_registry as dr
from homeassistant.helpers.event import async_call_later
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import HonApiError, HonAuthError, HonNetworkError, is_network_failure
from .command import HonCommand, HonCommandBuilder, build_envelope
from .const import (
    COMMAND_SETTLE_DELAY,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    EVENT_CAPABILITY_CHANGED,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    UNAVAILABLE_REAUTH_REQUIRED,
)
from .mapper import decode_state

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .api import HonCloudClient
    from .models import ApplianceDescriptor, CommandDefinition

_LOGGER = logging.getLogger(__name__)


def clamp_poll_interval(seconds: float) -> timedelta:
    """Return the poll interval bounded to the supported range."""
    return timedelta(seconds=min(max(seconds, MIN_POLL_INTERVAL), MAX_POLL_INTERVAL))


class HonDeviceCoordinator(DataUpdateCoordinator[dict[str, Any]]):
    """Polls one appliance and sends its commands.

    After every write, polled state is ignored for a short settle window so
    the optimistic values are not overwritten by state the appliance has
    not caught up with yet. A single extra refresh runs when the window
    closes.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: ConfigEntry,
        cloud: HonCloudClient,
        appliance: ApplianceDescriptor,
        definition: CommandDefinition,
        *,
        mobile_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN}_{appliance.mac_address}",
            update_interval=clamp_poll_interval(poll_interval),
        )
        self.cloud = cloud
        self.appliance = appliance
        self.definition = definition
        self.builder = HonCommandBuilder(definition)
        self.unavailable_reason: str | None = None
        self._mobile_id = mobile_id
        self._skip_until = 0.0
        self._settle_unsub: CALLBACK_TYPE | None = None

    @property
    def mac_address(self) -> str:
        """Return the canonical MAC address of the appliance."""
        return self.appliance.mac_address

    @property
    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the last known capability values."""
        return dict(self.data or {})

    def set_poll_interval(self, seconds: float) -> None:
        """Apply a new poll interval, bounded to the supported range."""
        self.update_interval = clamp_poll_interval(seconds)

    async def _async_update_data(self) -> dict[str, Any]:
        previous = self.data
        if previous is not None and time.monotonic() < self._skip_until:
            _LOGGER.debug("Skipping poll for %s, command settling", self.mac_address)
            return previous

        try:
            state = await self.cloud.async_get_appliance_state(self.mac_address)
        except HonAuthError as err:
            if is_network_failure(err):
                return self._keep_previous(previous, err)
            self.unavailable_reason = UNAVAILABLE_REAUTH_REQUIRED
            error_msg = f"Authentication failed while polling {self.mac_address}: {err}"
            raise ConfigEntryAuthFailed(error_msg) from err
        except (HonNetworkError, HonApiError) as err:
            return self._keep_previous(previous, err)

        self.unavailable_reason = None
        if state is None:
            _LOGGER.debug("No state payload for %s", self.mac_address)
            return previous or {}

        merged = {**(previous or {}), **decode_state(state)}
        if previous is not None:
            self._fire_capability_changes(previous, merged)
        return merged

    def _keep_previous(
        self, previous: dict[str, Any] | None, err: Exception
    ) -> dict[str, Any]:
        if previous is None:
            error_msg = f"Error fetching state for {self.mac_address}: {err}"
            raise UpdateFailed(error_msg) from err
        _LOGGER.warning(
            "Error polling %s, keeping last known state: %s", self.mac_address, err
        )
        return previous

    @callback
    def async_resume_polling(self) -> None:
        """Poll again right away after the session was repaired.

        A poll that raised ConfigEntryAuthFailed stops the refresh schedule,
        so the next successful refresh has to be requested explicitly.
        """
        self.unavailable_reason = None
        self.hass.async_create_task(self.async_request_refresh())

    def _fire_capability_changes(
        self, previous: dict[str, Any], current: dict[str, Any]
    ) -> None:
        changed = [
            capability
            for capability, value in current.items()
            if capability in previous and previous[capability] != value
        ]
        if not changed:
            return

        device = dr.async_get(self.hass).async_get_device(
            identifiers={(DOMAIN, self.mac_address)}
        )
        for capability in changed:
            _LOGGER.debug(
                "%s changed on %s: %s -> %s",
                capability,
                self.mac_address,
                previous[capability],
                current[capability],
            )
            self.hass.bus.async_fire(
                EVENT_CAPABILITY_CHANGED,
                {
                    "device_id": device.id if device else None,
                    "mac_address": self.mac_address,
                    "capability": capability,
                    "value": current[capability],
                    "previous": previous[capability],
                },
            )

    async def async_execute(self, command: HonCommand) -> None:
        """Send a command and apply its expected result optimistically.

        Raises:
            HonAuthError: If the session could not be authenticated.
            HonApiError: If the appliance rejected the command.
            HonNetworkError: If the cloud could not be reached.

        """
        envelope = build_envelope(
            self.mac_address, command, self.definition, mobile_id=self._mobile_id
        )
        await self.cloud.async_send_command(envelope)

        self._skip_until = time.monotonic() + COMMAND_SETTLE_DELAY
        self._schedule_settle_refresh()
        self.async_set_updated_data({**self.snapshot, **command.capabilities})

    def _schedule_settle_refresh(self) -> None:
        self._cancel_settle_refresh()
        self._settle_unsub = async_call_later(
            self.hass, COMMAND_SETTLE_DELAY, self._async_settle_refresh
        )

    def _cancel_settle_refresh(self) -> None:
        if self._settle_unsub is not None:
            self._settle_unsub()
            self._settle_unsub = None

    async def _async_settle_refresh(self, _now: datetime) -> None:
        self._settle_unsub = None
        self._skip_until = 0.0
        await self.async_refresh()

    async def async_set_power(self, on: bool) -> None:
        """Turn the appliance on or off."""
        await self.async_execute(self.builder.build_power(on, self.snapshot))

    async def async_set_hvac_mode(self, mode: str) -> None:
        """Switch the HVAC mode, turning the appliance on."""
        await self.async_execute(self.builder.build_mode(mode, self.snapshot))

    async def async_set_temperature(self, temperature: float) -> None:
        """Set the target temperature."""
        await self.async_execute(
            self.builder.build_temperature(temperature, self.snapshot)
        )

    async def async_set_fan_mode(self, fan_mode: str) -> None:
        """Set the fan speed."""
        await self.async_execute(self.builder.build_fan_mode(fan_mode, self.snapshot))

    async def async_set_swing_mode(self, swing_mode: str) -> None:
        """Set the swing mode."""
        await self.async_execute(
            self.builder.build_swing_mode(swing_mode, self.snapshot)
        )

    async def async_set_eco_pilot(self, value: str) -> None:
        """Set the eco pilot mode."""
        await self.async_execute(self.builder.build_eco_pilot(value, self.snapshot))

    async def async_set_toggle(self, capability: str, enabled: bool) -> None:
        """Set one of the boolean toggles."""
        await self.async_execute(
            self.builder.build_toggle(capability, enabled, self.snapshot)
        )

    async def async_shutdown(self) -> None:
        """Cancel the pending settle refresh and stop polling."""
        self._cancel_settle_refresh()
        await super().async_shutdown()
