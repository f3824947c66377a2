"""
Configuration flow for Haier hOn integration.

This module handles the setup and configuration of the Haier hOn
integration through Home Assistant's config flow system. Accounts can be
added with email and password, or with OAuth tokens captured from another
client when the interactive login is not available.
"""

import base64
import json
import logging
import uuid
from collections.abc import Awaitable, Mapping
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import (
    SOURCE_REAUTH,
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.core import callback

from . import HonRuntimeData, create_session_manager
from .api import (
    HonApiClientError,
    HonAuthError,
    HonNetworkError,
    create_session_client,
    is_network_failure,
)
from .auth import HonSessionManager
from .const import (
    CONF_ACCESS_TOKEN,
    CONF_ID_TOKEN,
    CONF_MOBILE_ID,
    CONF_POLL_INTERVAL,
    CONF_REFRESH_TOKEN,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_UNKNOWN,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
)
from .login import AuraLoginHandler
from .models import Credentials

_LOGGER = logging.getLogger(__name__)

STEP_CREDENTIALS = "credentials"
STEP_TOKENS = "tokens"


def token_subject(id_token: str) -> str | None:
    """Return the email or subject claim of an id token, if readable.

    The token is not verified; the claim only serves as a stable unique id.
    """
    try:
        payload = id_token.split(".")[1]
        padded = payload + "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError):
        return None
    subject = claims.get("email") or claims.get("sub")
    return str(subject).lower() if subject else None


def credentials_to_data(credentials: Credentials) -> dict[str, Any]:
    """Return the entry data keys for a set of credentials."""
    return {
        CONF_ACCESS_TOKEN: credentials.access_token,
        CONF_ID_TOKEN: credentials.id_token,
        CONF_REFRESH_TOKEN: credentials.refresh_token,
    }


class HonConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Haier hOn integration."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        """Return the options flow handler for this config entry."""
        return HonOptionsFlow()

    def _create_session_manager(self) -> HonSessionManager:
        """Create a session manager for this flow.

        During reauth the manager is bound to the existing entry, so the
        tokens it obtains are persisted there and the running appliances
        can adopt it.
        """
        login_handler = AuraLoginHandler()
        if self.source == SOURCE_REAUTH:
            entry = self._get_reauth_entry()
            runtime: HonRuntimeData | None = self.hass.data.get(DOMAIN, {}).get(
                entry.entry_id
            )
            session = runtime.session if runtime else create_session_client(self.hass)
            return create_session_manager(self.hass, entry, session, login_handler)

        return HonSessionManager(
            create_session_client(self.hass),
            str(uuid.uuid4()),
            login_handler=login_handler,
        )

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Let the user choose how to sign in."""
        return self.async_show_menu(
            step_id="user", menu_options=[STEP_CREDENTIALS, STEP_TOKENS]
        )

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Start re-authentication after the session could not be recovered."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Let the user choose how to sign in again."""
        return self.async_show_menu(
            step_id="reauth_confirm", menu_options=[STEP_CREDENTIALS, STEP_TOKENS]
        )

    async def async_step_credentials(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Sign in with email and password.

        Args:
            user_input: User input data containing email and password.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            email = user_input[CONF_EMAIL]
            session_manager = self._create_session_manager()
            errors = await self._async_try(
                session_manager.async_perform_full_login(
                    email, user_input[CONF_PASSWORD]
                )
            )
            if not errors:
                _LOGGER.info("Successfully signed in to hOn")
                return await self._async_finish(
                    session_manager, email.lower(), {CONF_EMAIL: email}
                )

        default_email = ""
        if self.source == SOURCE_REAUTH:
            default_email = self._get_reauth_entry().data.get(CONF_EMAIL, "")

        return self.async_show_form(
            step_id=STEP_CREDENTIALS,
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_EMAIL, default=default_email): str,
                    vol.Required(CONF_PASSWORD): str,
                }
            ),
            errors=errors,
        )

    async def async_step_tokens(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Sign in with OAuth tokens obtained elsewhere."""
        errors: dict[str, str] = {}

        if user_input is not None:
            session_manager = self._create_session_manager()
            errors = await self._async_try(
                session_manager.async_initialize_with_tokens(
                    user_input[CONF_ACCESS_TOKEN].strip(),
                    user_input[CONF_ID_TOKEN].strip(),
                    (user_input.get(CONF_REFRESH_TOKEN) or "").strip() or None,
                )
            )
            if not errors:
                _LOGGER.info("Successfully validated hOn tokens")
                return await self._async_finish(
                    session_manager, token_subject(user_input[CONF_ID_TOKEN]), {}
                )

        return self.async_show_form(
            step_id=STEP_TOKENS,
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_ACCESS_TOKEN): str,
                    vol.Required(CONF_ID_TOKEN): str,
                    vol.Optional(CONF_REFRESH_TOKEN): str,
                }
            ),
            errors=errors,
        )

    async def _async_try(self, login: Awaitable[Credentials]) -> dict[str, str]:
        """Await a login coroutine and translate failures to form errors."""
        try:
            await login
        except HonAuthError as err:
            if is_network_failure(err):
                _LOGGER.warning("Connection error (%s): %s", ERROR_CANNOT_CONNECT, err)
                return {"base": ERROR_CANNOT_CONNECT}
            _LOGGER.warning("Authentication failed (%s): %s", ERROR_INVALID_AUTH, err)
            return {"base": ERROR_INVALID_AUTH}
        except HonNetworkError as err:
            _LOGGER.warning("Connection error (%s): %s", ERROR_CANNOT_CONNECT, err)
            return {"base": ERROR_CANNOT_CONNECT}
        except HonApiClientError:
            _LOGGER.exception("API client error (%s)", ERROR_API_ERROR)
            return {"base": ERROR_API_ERROR}
        except Exception:
            _LOGGER.exception(
                "Unexpected error during authentication (%s)", ERROR_UNKNOWN
            )
            return {"base": ERROR_UNKNOWN}
        return {}

    async def _async_finish(
        self,
        session_manager: HonSessionManager,
        unique_id: str | None,
        extra_data: dict[str, Any],
    ) -> ConfigFlowResult:
        """Create the entry, or hand the new session to a running entry."""
        token_data = credentials_to_data(session_manager.credentials)

        if self.source == SOURCE_REAUTH:
            entry = self._get_reauth_entry()
            data = {**entry.data, **token_data, **extra_data}
            runtime: HonRuntimeData | None = self.hass.data.get(DOMAIN, {}).get(
                entry.entry_id
            )
            if runtime is None:
                return self.async_update_reload_and_abort(entry, data=data)
            runtime.repair_session(session_manager)
            self.hass.config_entries.async_update_entry(entry, data=data)
            _LOGGER.info("Replaced hOn session for entry %s", entry.entry_id)
            return self.async_abort(reason="reauth_successful")

        if unique_id:
            await self.async_set_unique_id(unique_id)
            self._abort_if_unique_id_configured()

        title = "Haier hOn"
        if email := extra_data.get(CONF_EMAIL):
            title = f"Haier hOn ({email})"
        return self.async_create_entry(
            title=title,
            data={
                **token_data,
                **extra_data,
                CONF_MOBILE_ID: session_manager.mobile_id,
            },
        )


class HonOptionsFlow(OptionsFlow):
    """Options flow for the poll interval."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Show or process the options form."""
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        current = self.config_entry.options.get(
            CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL
        )
        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Optional(CONF_POLL_INTERVAL, default=current): vol.All(
                        vol.Coerce(int),
                        vol.Range(min=MIN_POLL_INTERVAL, max=MAX_POLL_INTERVAL),
                    ),
                }
            ),
        )
