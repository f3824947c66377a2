"""Interactive login surface for the hOn OAuth flow.

The hOn account portal is a Salesforce community site whose login page is a
server-rendered Aura application. Its structure is outside our control, so
the parsing lives behind ``InteractiveLoginHandler`` and can be replaced
without touching the session state machine.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import parse_qs, unquote, urlsplit

from .api import HonAuthError, create_headers
from .const import AUTH_API, MAX_TOKEN_REDIRECTS, REDIRECT_URI, TOKEN_LIFETIME
from .models import Credentials

if TYPE_CHECKING:
    import httpx

_LOGGER = logging.getLogger(__name__)

HANDLE_REDIRECT_RE = re.compile(r"handleRedirect\(['\"]([^'\"]+)['\"]\)")
HREF_RE = re.compile(r"href\s*=\s*['\"]([^'\"]+)['\"]", re.IGNORECASE)
FWUID_RE = re.compile(r'"fwuid":"([^"]+)"')
LOADED_RE = re.compile(r'"loaded":(\{[^}]*\})')


@dataclass
class LoginTranscript:
    """What the session manager saw while reaching the login surface."""

    login_url: str
    final_url: str
    status: int
    html: str
    email: str
    password: str = field(repr=False)
    history: list[str] = field(default_factory=list)


class InteractiveLoginHandler(Protocol):
    """Completes a login once the login surface has been reached."""

    async def async_complete_interactive_login(
        self, session: httpx.AsyncClient, transcript: LoginTranscript
    ) -> Credentials:
        """Return credentials without an exchange token, or raise HonAuthError."""


def absolute_auth_url(url: str) -> str:
    """Resolve a path relative to the account portal."""
    return f"{AUTH_API}{url}" if url.startswith("/") else url


def parse_token_fragment(url: str, now: datetime | None = None) -> Credentials:
    """Parse the OAuth tokens carried by the fragment of a redirect URL.

    Args:
        url: Final redirect URL, e.g. ``hon://...#access_token=...``.
        now: Issue time used to compute the expiry.

    Returns:
        Credentials with access, id and refresh tokens and expiry set.

    Raises:
        HonAuthError: If the fragment is missing or lacks the tokens.

    """
    _, _, fragment = url.partition("#")
    if not fragment:
        error_msg = "No token fragment found in redirect URL"
        raise HonAuthError(error_msg)

    params = {key: values[0] for key, values in parse_qs(fragment).items()}
    access_token = params.get("access_token")
    id_token = params.get("id_token")
    if not access_token or not id_token:
        error_msg = "Failed to extract tokens from redirect URL"
        raise HonAuthError(error_msg)

    refresh_token = params.get("refresh_token")
    try:
        expires_in = int(params.get("expires_in", TOKEN_LIFETIME))
    except ValueError:
        expires_in = TOKEN_LIFETIME

    issued_at = now or datetime.now(UTC)
    return Credentials(
        access_token=access_token,
        id_token=id_token,
        refresh_token=unquote(refresh_token) if refresh_token else None,
        expire_at=issued_at + timedelta(seconds=expires_in),
    )


def parse_aura_context(html: str) -> tuple[str, dict[str, Any]]:
    """Extract the Aura framework id and loaded-components map from a page.

    Raises:
        HonAuthError: If the page is not an Aura login page.

    """
    fwuid_match = FWUID_RE.search(html)
    loaded_match = LOADED_RE.search(html)
    if not fwuid_match or not loaded_match:
        error_msg = "Login page structure not recognized: not an Aura page"
        raise HonAuthError(error_msg)
    try:
        loaded = json.loads(loaded_match.group(1))
    except ValueError as err:
        error_msg = "Login page structure not recognized: bad Aura context"
        raise HonAuthError(error_msg) from err
    return fwuid_match.group(1), loaded


def extract_login_redirect(result: dict[str, Any]) -> str:
    """Extract the post-login redirect URL from an Aura action response.

    Raises:
        HonAuthError: If the response reports an error or carries no URL.

    """
    if result.get("exceptionEvent"):
        raise HonAuthError(result.get("exceptionMessage") or "Login failed")

    for event in result.get("events") or []:
        url = ((event.get("attributes") or {}).get("values") or {}).get("url")
        if url:
            return url

    actions = result.get("actions") or []
    if actions:
        action = actions[0]
        if action.get("state") == "ERROR":
            errors = action.get("error") or [{}]
            raise HonAuthError(
                errors[0].get("message") or "Login failed - invalid credentials"
            )
        if action.get("returnValue"):
            return action["returnValue"]

    error_msg = "Failed to get redirect URL from login response"
    raise HonAuthError(error_msg)


class AuraLoginHandler:
    """Submits credentials to the Salesforce Aura login form."""

    async def async_complete_interactive_login(
        self, session: httpx.AsyncClient, transcript: LoginTranscript
    ) -> Credentials:
        """Log in through the Aura form and follow redirects to the tokens."""
        html = transcript.html
        page_url = transcript.final_url

        if redirect := HANDLE_REDIRECT_RE.search(html):
            _LOGGER.debug("Following script redirect on login page")
            response = await session.get(
                absolute_auth_url(redirect.group(1)),
                headers=create_headers(),
                follow_redirects=True,
            )
            html = response.text
            page_url = str(response.url)

        fwuid, loaded = parse_aura_context(html)
        start_url = unquote(
            parse_qs(urlsplit(page_url).query).get("startURL", [""])[0]
        )

        redirect_url = await self._async_submit_credentials(
            session, transcript, fwuid, loaded, start_url
        )
        final_url = await self._async_follow_to_tokens(session, redirect_url)
        return parse_token_fragment(final_url)

    async def _async_submit_credentials(
        self,
        session: httpx.AsyncClient,
        transcript: LoginTranscript,
        fwuid: str,
        loaded: dict[str, Any],
        start_url: str,
    ) -> str:
        message = {
            "actions": [
                {
                    "id": "79;a",
                    "descriptor": "apex://LightningLoginCustomController/ACTION$login",
                    "callingDescriptor": "markup://c:loginForm",
                    "params": {
                        "username": transcript.email,
                        "password": transcript.password,
                        "startUrl": start_url,
                    },
                }
            ]
        }
        aura_context = {
            "mode": "PROD",
            "fwuid": fwuid,
            "app": "siteforce:loginApp2",
            "loaded": loaded,
            "dn": [],
            "globals": {},
            "uad": False,
        }
        form = {
            "message": json.dumps(message),
            "aura.context": json.dumps(aura_context),
            "aura.pageURI": start_url,
            "aura.token": "null",
        }

        _LOGGER.debug("Submitting credentials to login form")
        response = await session.post(
            f"{AUTH_API}/s/sfsites/aura",
            params={"r": "3", "other.LightningLoginCustom.login": "1"},
            headers=create_headers(),
            data=form,
        )
        try:
            result = response.json()
        except ValueError as err:
            error_msg = f"Unexpected login response: {response.status_code}"
            raise HonAuthError(error_msg) from err
        return extract_login_redirect(result)

    async def _async_follow_to_tokens(
        self, session: httpx.AsyncClient, start_url: str
    ) -> str:
        current_url = absolute_auth_url(start_url)

        for _ in range(MAX_TOKEN_REDIRECTS):
            if REDIRECT_URI in current_url or "#access_token=" in current_url:
                break

            response = await session.get(
                current_url, headers=create_headers(), follow_redirects=False
            )
            if location := response.headers.get("location"):
                current_url = absolute_auth_url(location)
                continue

            if href := HREF_RE.search(response.text):
                current_url = absolute_auth_url(href.group(1).replace("&amp;", "&"))
                continue

            break

        return current_url
