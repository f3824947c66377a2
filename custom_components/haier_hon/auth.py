"""Session management for the hOn cloud.

The hOn cloud needs two layers of credentials: OAuth tokens from the
Salesforce account portal, and a short-lived "cognito" token obtained by
exchanging the OAuth id token at the device API. ``HonSessionManager`` owns
both for one account and is shared by every appliance of that account.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
import secrets
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .api import (
    HonApiClientError,
    HonApiError,
    HonAuthError,
    HonNetworkError,
    create_headers,
    is_http_error,
)
from .const import (
    API_URL,
    APP_VERSION,
    AUTH_API,
    CLIENT_ID,
    DEVICE_MODEL,
    MAX_LOGIN_REDIRECTS,
    MOBILE_OS,
    OS_VERSION,
    REDIRECT_URI,
    TOKEN_LIFETIME,
    TOKEN_REFRESH_BUFFER,
)
from .login import LoginTranscript, absolute_auth_url
from .models import Credentials

if TYPE_CHECKING:
    from collections.abc import Callable

    from .login import InteractiveLoginHandler

_LOGGER = logging.getLogger(__name__)

URL_IN_BODY_RE = re.compile(r"(?:url|href)\s*=\s*['\"]([^'\"]+)['\"]", re.IGNORECASE)


class SessionState(StrEnum):
    """Authentication state of a session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"


async def async_exchange_id_token(
    session: httpx.AsyncClient,
    id_token: str,
    mobile_id: str,
) -> str:
    """Exchange an OAuth id token for a device API access token.

    Args:
        session: HTTP client session.
        id_token: OAuth id token.
        mobile_id: Stable identifier of this installation.

    Returns:
        The service access ("cognito") token.

    Raises:
        HonAuthError: If the server refuses or omits the token.
        HonNetworkError: If the server could not be reached.

    """
    headers = create_headers()
    headers["Content-Type"] = "application/json"
    headers["id-token"] = id_token
    payload = {
        "appVersion": APP_VERSION,
        "mobileId": mobile_id,
        "osVersion": OS_VERSION,
        "os": MOBILE_OS,
        "deviceModel": DEVICE_MODEL,
    }

    _LOGGER.debug("Exchanging id token for device API token")
    try:
        response = await session.post(
            f"{API_URL}/auth/v1/login", headers=headers, json=payload
        )
    except httpx.RequestError as err:
        error_msg = f"Connection error during token exchange: {err}"
        raise HonNetworkError(error_msg) from err

    if is_http_error(response.status_code):
        error_msg = (
            f"Token exchange failed: {response.status_code} - {response.text}"
        )
        raise HonAuthError(error_msg)

    try:
        token = response.json()["cognitoUser"]["Token"]
    except (ValueError, KeyError, TypeError) as err:
        error_msg = "No service access token in exchange response"
        raise HonAuthError(error_msg) from err
    if not token:
        error_msg = "No service access token in exchange response"
        raise HonAuthError(error_msg)
    return token


async def async_refresh_tokens(
    session: httpx.AsyncClient,
    refresh_token: str,
) -> dict[str, Any]:
    """Run the OAuth refresh-token grant.

    Args:
        session: HTTP client session.
        refresh_token: Stored OAuth refresh token.

    Returns:
        Token response containing at least ``access_token`` and ``id_token``.

    Raises:
        HonAuthError: If the grant is refused or incomplete.
        HonNetworkError: If the server could not be reached.

    """
    form = {
        "grant_type": "refresh_token",
        "client_id": CLIENT_ID,
        "refresh_token": refresh_token,
    }

    _LOGGER.debug("Refreshing OAuth tokens")
    try:
        response = await session.post(
            f"{AUTH_API}/services/oauth2/token", headers=create_headers(), data=form
        )
    except httpx.RequestError as err:
        error_msg = f"Connection error during token refresh: {err}"
        raise HonNetworkError(error_msg) from err

    if is_http_error(response.status_code):
        error_msg = f"Token refresh failed: {response.status_code} - {response.text}"
        raise HonAuthError(error_msg)

    try:
        data = response.json()
    except ValueError as err:
        raise HonApiError(response.status_code, response.text) from err

    if not data.get("access_token") or not data.get("id_token"):
        error_msg = "Token refresh response is missing tokens"
        raise HonAuthError(error_msg)
    return data


class HonSessionManager:
    """Owns the credentials of one hOn account.

    Refresh is single-flight: concurrent callers share one in-flight refresh
    task and observe the same outcome. The task slot is emptied as soon as
    the refresh finishes, whether it succeeded or not, so the next caller
    may try again.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        mobile_id: str,
        *,
        on_tokens_updated: Callable[[Credentials], None] | None = None,
        login_handler: InteractiveLoginHandler | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            session: HTTP client session used for the auth endpoints.
            mobile_id: Stable identifier of this installation.
            on_tokens_updated: Called with the new credentials after each
                successful login, initialization or refresh.
            login_handler: Parser for the interactive login surface.
            now: Clock returning an aware UTC datetime.

        """
        self._session = session
        self._mobile_id = mobile_id
        self._on_tokens_updated = on_tokens_updated
        self._login_handler = login_handler
        self._now = now or (lambda: datetime.now(UTC))
        self._credentials = Credentials()
        self._state = SessionState.UNAUTHENTICATED
        self._refresh_task: asyncio.Task[Credentials] | None = None

    @property
    def state(self) -> SessionState:
        """Return the current authentication state."""
        return self._state

    @property
    def mobile_id(self) -> str:
        """Return the installation identifier sent with the token exchange."""
        return self._mobile_id

    @property
    def credentials(self) -> Credentials:
        """Return the current credentials snapshot."""
        return self._credentials

    @property
    def is_terminal(self) -> bool:
        """Return True when only a new login can recover the session."""
        return (
            self._state is SessionState.FAILED
            and not self._credentials.refresh_token
        )

    def _is_expiring(self) -> bool:
        expire_at = self._credentials.expire_at
        if expire_at is None:
            return True
        return self._now() >= expire_at - timedelta(seconds=TOKEN_REFRESH_BUFFER)

    def _notify_tokens_updated(self) -> None:
        if self._on_tokens_updated is not None:
            self._on_tokens_updated(self._credentials)

    async def _async_exchange(self) -> None:
        """Obtain a service access token for the current id token."""
        id_token = self._credentials.id_token
        if not id_token:
            error_msg = "No id token to exchange"
            raise HonAuthError(error_msg)
        exchange_token = await async_exchange_id_token(
            self._session, id_token, self._mobile_id
        )
        self._credentials = replace(self._credentials, exchange_token=exchange_token)

    async def _async_install(self, credentials: Credentials) -> Credentials:
        """Install freshly issued OAuth tokens and run the exchange."""
        self._state = SessionState.AUTHENTICATING
        self._credentials = replace(credentials, exchange_token=None)
        try:
            await self._async_exchange()
        except HonApiClientError as err:
            self._state = SessionState.UNAUTHENTICATED
            _LOGGER.warning("Token exchange failed: %s", err)
            error_msg = f"Token exchange failed: {err}"
            raise HonAuthError(error_msg) from err

        self._state = SessionState.AUTHENTICATED
        self._notify_tokens_updated()
        return self._credentials

    async def async_initialize_with_tokens(
        self,
        access_token: str,
        id_token: str,
        refresh_token: str | None = None,
    ) -> Credentials:
        """Install stored tokens and obtain a service access token.

        Raises:
            HonAuthError: If the token exchange fails; the cause is chained.

        """
        credentials = Credentials(
            access_token=access_token,
            id_token=id_token,
            refresh_token=refresh_token or self._credentials.refresh_token,
            expire_at=self._now() + timedelta(seconds=TOKEN_LIFETIME),
        )
        result = await self._async_install(credentials)
        _LOGGER.info("Initialized hOn session with stored tokens")
        return result

    async def async_ensure_authenticated(self) -> Credentials:
        """Return valid credentials, refreshing them when close to expiry.

        Raises:
            HonAuthError: If a refresh is needed but impossible or fails.

        """
        if self._state is SessionState.AUTHENTICATED and not self._is_expiring():
            return self._credentials

        if self._refresh_task is None and not self._credentials.refresh_token:
            self._state = SessionState.FAILED
            error_msg = "No refresh token available, re-authentication required"
            raise HonAuthError(error_msg)

        return await self.async_refresh()

    async def async_refresh(self) -> Credentials:
        """Refresh the session, joining a refresh already in flight.

        Raises:
            HonAuthError: If the refresh or the following exchange fails.

        """
        if self._refresh_task is None:
            task = asyncio.create_task(self._async_do_refresh())
            task.add_done_callback(self._clear_refresh_task)
            self._refresh_task = task
        else:
            _LOGGER.debug("Joining in-flight token refresh")
        return await asyncio.shield(self._refresh_task)

    def _clear_refresh_task(self, task: asyncio.Task[Credentials]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _async_do_refresh(self) -> Credentials:
        refresh_token = self._credentials.refresh_token
        if not refresh_token:
            self._state = SessionState.FAILED
            error_msg = "No refresh token available, re-authentication required"
            raise HonAuthError(error_msg)

        self._state = SessionState.REFRESHING
        try:
            data = await async_refresh_tokens(self._session, refresh_token)
            expires_in = data.get("expires_in") or TOKEN_LIFETIME
            self._credentials = Credentials(
                access_token=data["access_token"],
                id_token=data["id_token"],
                refresh_token=data.get("refresh_token") or refresh_token,
                expire_at=self._now() + timedelta(seconds=int(expires_in)),
            )
            await self._async_exchange()
        except HonApiClientError as err:
            self._state = SessionState.FAILED
            _LOGGER.warning("Token refresh failed: %s", err)
            error_msg = f"Token refresh failed: {err}"
            raise HonAuthError(error_msg) from err

        self._state = SessionState.AUTHENTICATED
        _LOGGER.info("Successfully refreshed hOn session")
        self._notify_tokens_updated()
        return self._credentials

    def mark_failed(self) -> None:
        """Record that the server keeps rejecting the current credentials."""
        _LOGGER.warning("hOn session rejected after refresh, marking as failed")
        self._state = SessionState.FAILED

    async def async_perform_full_login(self, email: str, password: str) -> Credentials:
        """Log in with account credentials through the OAuth portal.

        Best effort: the login surface is server-templated and may change.

        Raises:
            HonAuthError: If the login surface is not understood or the
                login is refused.
            HonNetworkError: If the portal could not be reached.

        """
        if self._login_handler is None:
            error_msg = "Interactive login is not available"
            raise HonAuthError(error_msg)

        self._state = SessionState.AUTHENTICATING
        self._session.cookies.clear()
        try:
            _LOGGER.debug("Step 1: initializing OAuth flow")
            login_url = await self._async_init_oauth_flow()
            _LOGGER.debug("Step 2: loading login page")
            transcript = await self._async_load_login_page(login_url, email, password)
            _LOGGER.debug("Step 3: completing interactive login")
            credentials = await self._login_handler.async_complete_interactive_login(
                self._session, transcript
            )
        except httpx.RequestError as err:
            self._state = SessionState.UNAUTHENTICATED
            error_msg = f"Connection error during login: {err}"
            raise HonNetworkError(error_msg) from err
        except HonAuthError:
            self._state = SessionState.UNAUTHENTICATED
            raise

        _LOGGER.debug("Step 4: exchanging id token")
        result = await self._async_install(credentials)
        _LOGGER.info("Authenticated with full login")
        return result

    async def _async_init_oauth_flow(self) -> str:
        nonce = secrets.token_hex(16)
        state = base64.b64encode(json.dumps({"nonce": nonce}).encode()).decode()
        # response_type needs a literal "+", so the query is built by hand
        auth_url = (
            f"{AUTH_API}/services/oauth2/authorize/expid_Login?"
            "response_type=token+id_token"
            f"&client_id={quote(CLIENT_ID, safe='')}"
            f"&redirect_uri={quote(REDIRECT_URI, safe='')}"
            "&display=touch"
            f"&scope={quote('api openid refresh_token web', safe='')}"
            f"&nonce={nonce}"
            f"&state={quote(state, safe='')}"
        )

        response = await self._session.get(
            auth_url, headers=create_headers(), follow_redirects=False
        )
        if location := response.headers.get("location"):
            return absolute_auth_url(location)

        if match := URL_IN_BODY_RE.search(response.text):
            return absolute_auth_url(match.group(1))

        error_msg = "Failed to extract login URL from OAuth response"
        raise HonAuthError(error_msg)

    async def _async_load_login_page(
        self, login_url: str, email: str, password: str
    ) -> LoginTranscript:
        url = httpx.URL(login_url).copy_merge_params(
            {"System": "IoT_Mobile_App", "RegistrationSubChannel": "hOn"}
        )
        history = [str(url)]
        response = await self._session.get(
            url, headers=create_headers(), follow_redirects=False
        )

        for _ in range(MAX_LOGIN_REDIRECTS):
            location = response.headers.get("location")
            if not response.is_redirect or not location:
                break
            next_url = absolute_auth_url(location)
            history.append(next_url)
            response = await self._session.get(
                next_url, headers=create_headers(), follow_redirects=False
            )

        return LoginTranscript(
            login_url=login_url,
            final_url=str(response.url),
            status=response.status_code,
            html=response.text,
            email=email,
            password=password,
            history=history,
        )
