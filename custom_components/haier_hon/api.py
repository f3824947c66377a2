"""API client for Haier hOn climate appliances.

This module provides the error taxonomy, response validation, payload
extraction helpers and the authenticated cloud client used for appliance
discovery, state polling and command sending.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from homeassistant.helpers.httpx_client import create_async_httpx_client
from httpx_retries import Retry, RetryTransport

from .const import (
    API_URL,
    APP_VERSION,
    APPLIANCE_TYPE_AC,
    EXCLUDED_ANCILLARY_PARAMETER,
    MOBILE_OS,
    USER_AGENT,
)
from .models import ApplianceDescriptor, CommandDefinition, Credentials

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .auth import HonSessionManager

_LOGGER = logging.getLogger(__name__)

# HTTP status codes
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403


class HonApiClientError(Exception):
    """Base exception for hOn API client errors."""


class HonAuthError(HonApiClientError):
    """Missing, invalid or expired credentials, or a failed token exchange."""


class HonNetworkError(HonApiClientError):
    """Transport failure or timeout while talking to the cloud."""


class HonApiError(HonApiClientError):
    """Non-success response from a reachable server."""

    def __init__(self, status: int, body: str) -> None:
        """Store the HTTP status and response body."""
        super().__init__(f"Request failed: {status} - {body}")
        self.status = status
        self.body = body


class HonValidationError(HonApiClientError):
    """Rejected request, e.g. an unknown mode or a locked temperature."""


class HonMappingError(HonApiClientError):
    """Wire value without a known capability counterpart."""


def is_network_failure(err: BaseException) -> bool:
    """Return True when an error was ultimately caused by a transport failure."""
    cause: BaseException | None = err
    while cause is not None:
        if isinstance(cause, HonNetworkError):
            return True
        cause = cause.__cause__
    return False


def canonical_mac(mac_address: str) -> str:
    """Return the MAC address without the volatile ``#timestamp`` suffix."""
    return mac_address.split("#", 1)[0]


def create_headers() -> dict[str, str]:
    """Create base HTTP headers mimicking the hOn mobile app.

    Returns:
        Dictionary containing HTTP headers for unauthenticated requests.

    """
    return {
        "User-Agent": USER_AGENT,
        "Accept": "*/*",
        "Accept-Language": "en-US;q=1",
    }


def create_auth_headers(credentials: Credentials) -> dict[str, str]:
    """Create HTTP headers for device API requests.

    Args:
        credentials: Authenticated session credentials.

    Returns:
        Dictionary containing HTTP headers with the exchange and id tokens.

    """
    headers = create_headers()
    headers["Content-Type"] = "application/json"
    headers["cognito-token"] = credentials.exchange_token or ""
    headers["id-token"] = credentials.id_token or ""
    return headers


def is_http_error(status: int) -> bool:
    """Check if HTTP status code indicates an error."""
    return status >= HTTP_BAD_REQUEST


def is_auth_error(status: int) -> bool:
    """Check if HTTP status code indicates an authorization failure."""
    return status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN)


def validate_response(response: httpx.Response) -> dict[str, Any]:
    """Validate HTTP response and return parsed JSON data.

    Args:
        response: HTTP response object to validate.

    Returns:
        Parsed JSON data from response.

    Raises:
        HonAuthError: If the server rejected the credentials.
        HonApiError: If the server answered with any other error, or with
            a body that is not JSON.

    """
    if is_auth_error(response.status_code):
        auth_error = f"Authorization failed: {response.status_code}"
        raise HonAuthError(auth_error)

    if is_http_error(response.status_code):
        raise HonApiError(response.status_code, response.text)

    try:
        return response.json()
    except ValueError as err:
        raise HonApiError(response.status_code, response.text) from err


def resolve_parameter(definition: dict[str, Any]) -> tuple[bool, Any]:
    """Resolve the value a schema parameter contributes to a command.

    Args:
        definition: Parameter entry from the command catalogue.

    Returns:
        Tuple of (has_value, value).

    """
    if definition.get("typology") == "fixed" and "fixedValue" in definition:
        return True, definition["fixedValue"]
    if "defaultValue" in definition:
        return True, definition["defaultValue"]
    return False, None


def extract_command_definition(data: dict[str, Any]) -> CommandDefinition:
    """Extract mandatory and ancillary parameters from a retrieve response.

    Args:
        data: API response data dictionary.

    Returns:
        CommandDefinition for the appliance.

    """
    payload = data.get("payload") or data
    settings = payload.get("settings", {}).get("setParameters", {})

    mandatory: dict[str, Any] = {}
    for name, definition in settings.get("parameters", {}).items():
        if definition.get("mandatory") != 1:
            continue
        has_value, value = resolve_parameter(definition)
        if has_value:
            mandatory[name] = value

    ancillary: dict[str, Any] = {}
    for name, definition in settings.get("ancillaryParameters", {}).items():
        if name == EXCLUDED_ANCILLARY_PARAMETER:
            continue
        has_value, value = resolve_parameter(definition)
        if has_value:
            ancillary[name] = value

    appliance_model = payload.get("applianceModel") or {}
    options = appliance_model.get("options") or payload.get("options") or {}

    return CommandDefinition(
        mandatory_parameters=mandatory,
        ancillary_parameters=ancillary,
        appliance_options=options,
    )


def extract_appliances(data: dict[str, Any]) -> list[ApplianceDescriptor]:
    """Extract appliance list from API response.

    Args:
        data: API response data dictionary.

    Returns:
        List of ApplianceDescriptor objects, MAC addresses canonicalized.

    """
    appliances = (data.get("payload") or {}).get("appliances") or []
    descriptors = []
    for appliance in appliances:
        raw_mac = appliance.get("macAddress") or appliance.get("applianceId") or ""
        mac_address = canonical_mac(str(raw_mac))
        if not mac_address:
            _LOGGER.debug("Skipping appliance without MAC address: %s", appliance)
            continue
        descriptors.append(
            ApplianceDescriptor(
                mac_address=mac_address,
                model_id=str(appliance.get("applianceModelId") or ""),
                firmware_id=appliance.get("eepromId"),
                appliance_type=appliance.get("applianceTypeName") or "",
                series=appliance.get("series"),
                appliance_id=appliance.get("applianceId"),
                name=(
                    appliance.get("nickName") or appliance.get("modelName") or "Haier AC"
                ),
                model_name=appliance.get("modelName"),
                serial_number=appliance.get("serialNumber"),
                brand=appliance.get("brand") or "Haier",
                code=appliance.get("code"),
                fw_version=appliance.get("fwVersion"),
            )
        )
    return descriptors


def extract_state(data: dict[str, Any]) -> dict[str, Any] | None:
    """Flatten a context response into wire parameter name -> raw value.

    Args:
        data: API response data dictionary.

    Returns:
        Device state mapping, or None when the response has no payload.

    """
    context = data.get("payload")
    if not context:
        return None

    state: dict[str, Any] = {}
    shadow = context.get("shadow") or {}
    state.update(shadow.get("parameters") or {})
    if "lastConnEvent" in context:
        state["lastConnEvent"] = context["lastConnEvent"]
    return state


def create_session_client(hass: HomeAssistant) -> httpx.AsyncClient:
    """Create HTTP client with retry logic for hOn API.

    Args:
        hass: Home Assistant instance.

    Returns:
        Configured httpx AsyncClient with retry transport.

    """
    base_client = create_async_httpx_client(hass, timeout=5.0)
    retry = Retry(total=3, backoff_factor=0.5)
    base_client._transport = RetryTransport(  # noqa: SLF001
        transport=base_client._transport,  # noqa: SLF001
        retry=retry,
    )
    return base_client


class HonCloudClient:
    """Authenticated client for the hOn device API.

    Every call makes sure the session is authenticated, retries exactly once
    after refreshing when the server rejects the credentials, and translates
    transport failures into HonNetworkError. The session manager is looked up
    on each call so a repaired session is picked up by every device sharing
    this client.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        session_manager: HonSessionManager,
    ) -> None:
        """Initialize the cloud client.

        Args:
            session: HTTP client session.
            session_manager: Shared credential owner for the account.

        """
        self._session = session
        self.session_manager = session_manager

    async def _async_send(
        self,
        method: str,
        path: str,
        credentials: Credentials,
        *,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{API_URL}{path}"
        try:
            return await self._session.request(
                method,
                url,
                headers=create_auth_headers(credentials),
                params=params,
                json=payload,
            )
        except httpx.RequestError as err:
            error_msg = f"Connection error for {method} {path}: {err}"
            raise HonNetworkError(error_msg) from err

    async def async_request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an authenticated request and return the parsed JSON.

        Raises:
            HonAuthError: If the credentials are rejected after one refresh.
            HonApiError: If the server answered with a non-success status.
            HonNetworkError: If the server could not be reached.

        """
        session_manager = self.session_manager
        credentials = await session_manager.async_ensure_authenticated()

        _LOGGER.debug("HTTP %s %s", method, path)
        response = await self._async_send(
            method, path, credentials, params=params, payload=payload
        )

        if is_auth_error(response.status_code):
            _LOGGER.debug(
                "Got %s for %s %s, refreshing session and retrying once",
                response.status_code,
                method,
                path,
            )
            credentials = await session_manager.async_refresh()
            response = await self._async_send(
                method, path, credentials, params=params, payload=payload
            )
            if is_auth_error(response.status_code):
                session_manager.mark_failed()
                auth_error = (
                    f"Authorization failed after refresh: {response.status_code}"
                )
                raise HonAuthError(auth_error)

        return validate_response(response)

    async def async_get_appliances(self) -> list[ApplianceDescriptor]:
        """Fetch appliances registered on the account."""
        _LOGGER.debug("Fetching appliances from hOn API")
        data = await self.async_request("GET", "/commands/v1/appliance")
        appliances = extract_appliances(data)
        _LOGGER.debug("Retrieved %d appliances from hOn API", len(appliances))
        return appliances

    async def async_get_command_definition(
        self, appliance: ApplianceDescriptor
    ) -> CommandDefinition:
        """Fetch the command/parameter schema of an appliance."""
        params = {
            "applianceType": appliance.appliance_type or APPLIANCE_TYPE_AC,
            "applianceModelId": appliance.model_id,
            "macAddress": appliance.mac_address,
            "os": MOBILE_OS,
            "appVersion": APP_VERSION,
            "code": appliance.code or "",
        }
        if appliance.firmware_id:
            params["firmwareId"] = appliance.firmware_id
        if appliance.fw_version:
            params["fwVersion"] = appliance.fw_version
        if appliance.series:
            params["series"] = appliance.series

        _LOGGER.debug("Fetching command definitions for %s", appliance.mac_address)
        data = await self.async_request("GET", "/commands/v1/retrieve", params=params)
        return extract_command_definition(data)

    async def async_get_appliance_state(self, mac_address: str) -> dict[str, Any] | None:
        """Fetch the current wire state of an appliance."""
        params = {
            "macAddress": mac_address,
            "applianceType": APPLIANCE_TYPE_AC,
            "category": "CYCLE",
        }
        data = await self.async_request("GET", "/commands/v1/context", params=params)
        return extract_state(data)

    async def async_send_command(self, envelope: dict[str, Any]) -> dict[str, Any]:
        """Send a command envelope built by the command builder."""
        _LOGGER.debug(
            "Sending %s to %s: %s",
            envelope.get("commandName"),
            envelope.get("macAddress"),
            envelope.get("parameters"),
        )
        return await self.async_request("POST", "/commands/v1/send", payload=envelope)
