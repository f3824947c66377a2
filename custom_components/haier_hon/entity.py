"""Base entity for Haier hOn appliances."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
from homeassistant.helpers.device_registry import CONNECTION_NETWORK_MAC, DeviceInfo
from homeassistant.helpers.entity import Entity

from .api import HonApiClientError, HonAuthError, HonValidationError
from .const import DOMAIN

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from .coordinator import HonDeviceCoordinator

_LOGGER = logging.getLogger(__name__)


class HonEntity(Entity):
    """Entity backed by the coordinator of one appliance."""

    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self, coordinator: HonDeviceCoordinator, key: str | None = None
    ) -> None:
        """Initialize the entity.

        Args:
            coordinator: Coordinator of the appliance.
            key: Suffix distinguishing this entity from its siblings.

        """
        self.coordinator = coordinator
        self._coordinator_listener_unsub = None
        appliance = coordinator.appliance
        self._attr_unique_id = (
            f"{appliance.mac_address}_{key}" if key else appliance.mac_address
        )
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, appliance.mac_address)},
            connections={(CONNECTION_NETWORK_MAC, appliance.mac_address)},
            name=appliance.name,
            manufacturer=appliance.brand,
            model=appliance.model_name,
            serial_number=appliance.serial_number,
            sw_version=appliance.fw_version,
        )

    @property
    def capabilities(self) -> dict[str, Any]:
        """Return the last known capability values of the appliance."""
        return self.coordinator.data or {}

    @property
    def available(self) -> bool:
        """Return True while the appliance is reachable and authenticated."""
        return (
            self.coordinator.last_update_success
            and self.coordinator.unavailable_reason is None
        )

    async def async_added_to_hass(self) -> None:
        """Subscribe to coordinator updates."""
        await super().async_added_to_hass()
        self._coordinator_listener_unsub = self.coordinator.async_add_listener(
            self._handle_coordinator_update
        )

    async def async_will_remove_from_hass(self) -> None:
        """Unsubscribe from coordinator updates."""
        await super().async_will_remove_from_hass()
        if self._coordinator_listener_unsub is not None:
            self._coordinator_listener_unsub()
            self._coordinator_listener_unsub = None

    def _handle_coordinator_update(self) -> None:
        self.async_write_ha_state()

    async def _async_call(self, action: Awaitable[None]) -> None:
        """Await a coordinator write, surfacing failures to the caller."""
        try:
            await action
        except HonValidationError as err:
            raise ServiceValidationError(str(err)) from err
        except HonAuthError as err:
            _LOGGER.warning(
                "Authentication error for %s, re-authentication required", self.name
            )
            self.coordinator.config_entry.async_start_reauth(self.hass)
            error_msg = f"Authentication failed: {err}"
            raise HomeAssistantError(error_msg) from err
        except HonApiClientError as err:
            _LOGGER.exception("Error while sending command to %s", self.name)
            error_msg = f"Error communicating with hOn cloud: {err}"
            raise HomeAssistantError(error_msg) from err
