"""The Haier hOn integration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from homeassistant.const import Platform
from homeassistant.core import callback
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady

from .api import (
    HonApiClientError,
    HonAuthError,
    HonCloudClient,
    create_session_client,
    is_network_failure,
)
from .auth import HonSessionManager
from .const import (
    APPLIANCE_TYPE_AC,
    CONF_ACCESS_TOKEN,
    CONF_ID_TOKEN,
    CONF_MOBILE_ID,
    CONF_POLL_INTERVAL,
    CONF_REFRESH_TOKEN,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
)
from .coordinator import HonDeviceCoordinator

if TYPE_CHECKING:
    import httpx
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .login import InteractiveLoginHandler
    from .models import Credentials

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.CLIMATE, Platform.SELECT, Platform.SENSOR, Platform.SWITCH]


@dataclass
class HonRuntimeData:
    """Objects shared by every appliance of one account."""

    session: httpx.AsyncClient
    cloud: HonCloudClient
    coordinators: dict[str, HonDeviceCoordinator] = field(default_factory=dict)

    def repair_session(self, session_manager: HonSessionManager) -> None:
        """Replace the session of every appliance in one step and poll again."""
        self.cloud.session_manager = session_manager
        for coordinator in self.coordinators.values():
            coordinator.async_resume_polling()


def create_session_manager(
    hass: HomeAssistant,
    entry: ConfigEntry,
    session: httpx.AsyncClient,
    login_handler: InteractiveLoginHandler | None = None,
) -> HonSessionManager:
    """Create a session manager that persists rotated tokens to the entry."""

    @callback
    def _update_tokens(credentials: Credentials) -> None:
        data = {
            **entry.data,
            CONF_ACCESS_TOKEN: credentials.access_token,
            CONF_ID_TOKEN: credentials.id_token,
        }
        if credentials.refresh_token:
            data[CONF_REFRESH_TOKEN] = credentials.refresh_token
        hass.config_entries.async_update_entry(entry, data=data)
        _LOGGER.debug("Stored rotated tokens for entry %s", entry.entry_id)

    return HonSessionManager(
        session,
        entry.data[CONF_MOBILE_ID],
        on_tokens_updated=_update_tokens,
        login_handler=login_handler,
    )


async def _async_start_session(
    session_manager: HonSessionManager, data: dict[str, Any]
) -> None:
    """Start the session from stored tokens, refreshing if they went stale."""
    refresh_token = data.get(CONF_REFRESH_TOKEN)
    try:
        await session_manager.async_initialize_with_tokens(
            data[CONF_ACCESS_TOKEN], data[CONF_ID_TOKEN], refresh_token
        )
    except HonAuthError as err:
        if not refresh_token or is_network_failure(err):
            raise
        _LOGGER.info("Stored tokens rejected, refreshing session: %s", err)
        await session_manager.async_ensure_authenticated()


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Haier hOn from a config entry."""
    _LOGGER.info("Setting up Haier hOn integration for entry %s", entry.entry_id)

    session = create_session_client(hass)
    session_manager = create_session_manager(hass, entry, session)
    cloud = HonCloudClient(session, session_manager)
    poll_interval = entry.options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)

    try:
        await _async_start_session(session_manager, dict(entry.data))
        appliances = [
            appliance
            for appliance in await cloud.async_get_appliances()
            if appliance.appliance_type.upper() == APPLIANCE_TYPE_AC
        ]
        _LOGGER.info("Found %d air conditioners", len(appliances))

        runtime = HonRuntimeData(session=session, cloud=cloud)
        for appliance in appliances:
            definition = await cloud.async_get_command_definition(appliance)
            _LOGGER.debug(
                "Appliance %s has %d mandatory and %d ancillary parameters",
                appliance.mac_address,
                len(definition.mandatory_parameters),
                len(definition.ancillary_parameters),
            )
            runtime.coordinators[appliance.mac_address] = HonDeviceCoordinator(
                hass,
                entry,
                cloud,
                appliance,
                definition,
                mobile_id=entry.data[CONF_MOBILE_ID],
                poll_interval=poll_interval,
            )
    except HonAuthError as err:
        if is_network_failure(err):
            error_msg = f"Cannot reach hOn cloud: {err}"
            raise ConfigEntryNotReady(error_msg) from err
        error_msg = f"Authentication failed: {err}"
        raise ConfigEntryAuthFailed(error_msg) from err
    except HonApiClientError as err:
        error_msg = f"Error communicating with hOn cloud: {err}"
        raise ConfigEntryNotReady(error_msg) from err

    for coordinator in runtime.coordinators.values():
        await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = runtime
    entry.async_on_unload(entry.add_update_listener(async_update_options))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info(
        "Successfully set up Haier hOn integration for entry %s", entry.entry_id
    )
    return True


async def async_update_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Apply the poll interval after the entry changed."""
    runtime: HonRuntimeData | None = hass.data.get(DOMAIN, {}).get(entry.entry_id)
    if runtime is None:
        return
    poll_interval = entry.options.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)
    for coordinator in runtime.coordinators.values():
        coordinator.set_poll_interval(poll_interval)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    _LOGGER.info("Unloading Haier hOn integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        runtime: HonRuntimeData = hass.data[DOMAIN].pop(entry.entry_id)
        for coordinator in runtime.coordinators.values():
            await coordinator.async_shutdown()
        _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    else:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)
    return unload_ok
