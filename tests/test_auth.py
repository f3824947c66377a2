"""Tests for the hOn session manager."""

import asyncio
import json
import re
from datetime import timedelta
from unittest.mock import Mock

import httpx
import pytest
from pytest_httpx import HTTPXMock

from custom_components.haier_hon.api import HonAuthError, HonNetworkError
from custom_components.haier_hon.auth import (
    HonSessionManager,
    SessionState,
    async_exchange_id_token,
)
from custom_components.haier_hon.const import API_URL, AUTH_API
from custom_components.haier_hon.login import AuraLoginHandler

from .conftest import FIXED_NOW, TEST_MOBILE_ID, FakeClock

EXCHANGE_URL = f"{API_URL}/auth/v1/login"
TOKEN_URL = f"{AUTH_API}/services/oauth2/token"


def add_exchange(httpx_mock: HTTPXMock, token: str = "cognito") -> None:
    """Register a successful token exchange response."""
    httpx_mock.add_response(
        method="POST", url=EXCHANGE_URL, json={"cognitoUser": {"Token": token}}
    )


def add_refresh(httpx_mock: HTTPXMock, **overrides: object) -> None:
    """Register a successful refresh-token grant response."""
    body = {"access_token": "access2", "id_token": "id2", **overrides}
    httpx_mock.add_response(method="POST", url=TOKEN_URL, json=body)


async def initialized_manager(
    session: httpx.AsyncClient,
    httpx_mock: HTTPXMock,
    clock: FakeClock,
    on_tokens_updated: Mock | None = None,
) -> HonSessionManager:
    """Create a manager authenticated with stored tokens."""
    add_exchange(httpx_mock)
    manager = HonSessionManager(
        session, TEST_MOBILE_ID, on_tokens_updated=on_tokens_updated, now=clock
    )
    await manager.async_initialize_with_tokens("access", "id", "refresh")
    return manager


class TestExchangeIdToken:
    """Tests for async_exchange_id_token function."""

    @pytest.mark.asyncio
    async def test_exchange_returns_token_and_sends_identity(
        self, httpx_mock: HTTPXMock
    ) -> None:
        """Test that the exchange posts the id token and installation id."""
        add_exchange(httpx_mock)
        async with httpx.AsyncClient() as session:
            token = await async_exchange_id_token(session, "id", TEST_MOBILE_ID)

        assert token == "cognito"
        request = httpx_mock.get_request()
        assert request.headers["id-token"] == "id"
        assert json.loads(request.content)["mobileId"] == TEST_MOBILE_ID

    @pytest.mark.asyncio
    async def test_exchange_raises_auth_error_without_token(
        self, httpx_mock: HTTPXMock
    ) -> None:
        """Test that a response without cognitoUser.Token is rejected."""
        httpx_mock.add_response(method="POST", url=EXCHANGE_URL, json={})
        async with httpx.AsyncClient() as session:
            with pytest.raises(HonAuthError):
                await async_exchange_id_token(session, "id", TEST_MOBILE_ID)

    @pytest.mark.asyncio
    async def test_exchange_raises_network_error_on_timeout(
        self, httpx_mock: HTTPXMock
    ) -> None:
        """Test that transport failures are reported as HonNetworkError."""
        httpx_mock.add_exception(httpx.ReadTimeout("slow"))
        async with httpx.AsyncClient() as session:
            with pytest.raises(HonNetworkError):
                await async_exchange_id_token(session, "id", TEST_MOBILE_ID)


class TestInitializeWithTokens:
    """Tests for async_initialize_with_tokens."""

    @pytest.mark.asyncio
    async def test_initialize_authenticates_and_sets_expiry(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that stored tokens are exchanged and given an 8 hour lifetime."""
        callback = Mock()
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock, callback)

        assert manager.state is SessionState.AUTHENTICATED
        credentials = manager.credentials
        assert credentials.authenticated
        assert credentials.exchange_token == "cognito"
        assert credentials.refresh_token == "refresh"
        assert credentials.expire_at == FIXED_NOW + timedelta(hours=8)
        callback.assert_called_once_with(credentials)

    @pytest.mark.asyncio
    async def test_initialize_failure_leaves_session_unauthenticated(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that a failed exchange raises with the cause attached."""
        httpx_mock.add_response(method="POST", url=EXCHANGE_URL, status_code=401)
        async with httpx.AsyncClient() as session:
            manager = HonSessionManager(session, TEST_MOBILE_ID, now=clock)
            with pytest.raises(HonAuthError) as exc_info:
                await manager.async_initialize_with_tokens("access", "id", "refresh")

        assert manager.state is SessionState.UNAUTHENTICATED
        assert exc_info.value.__cause__ is not None
        assert manager.credentials.exchange_token is None


class TestEnsureAuthenticated:
    """Tests for async_ensure_authenticated."""

    @pytest.mark.asyncio
    async def test_returns_cached_credentials_while_fresh(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that no request is made while the tokens are fresh."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            clock.advance(3600)
            credentials = await manager.async_ensure_authenticated()

        assert credentials.exchange_token == "cognito"
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_refreshes_within_expiry_buffer(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that tokens expiring within five minutes are refreshed."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            add_refresh(httpx_mock)
            add_exchange(httpx_mock, "cognito2")
            clock.advance(8 * 3600 - 240)
            credentials = await manager.async_ensure_authenticated()

        assert credentials.id_token == "id2"
        assert credentials.exchange_token == "cognito2"
        assert manager.state is SessionState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that expired credentials are refreshed once for all callers."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            add_refresh(httpx_mock)
            add_exchange(httpx_mock, "cognito2")
            clock.advance(9 * 3600)
            results = await asyncio.gather(
                manager.async_ensure_authenticated(),
                manager.async_ensure_authenticated(),
                manager.async_ensure_authenticated(),
            )

        assert len(httpx_mock.get_requests(url=TOKEN_URL)) == 1
        # One exchange from initialization, one from the refresh.
        assert len(httpx_mock.get_requests(url=EXCHANGE_URL)) == 2
        assert all(result.exchange_token == "cognito2" for result in results)

    @pytest.mark.asyncio
    async def test_fails_without_refresh_token(self, clock: FakeClock) -> None:
        """Test that a session without refresh token cannot recover."""
        manager = HonSessionManager(Mock(), TEST_MOBILE_ID, now=clock)
        with pytest.raises(HonAuthError):
            await manager.async_ensure_authenticated()

        assert manager.state is SessionState.FAILED
        assert manager.is_terminal


class TestRefresh:
    """Tests for async_refresh."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens_and_reexchanges(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that a refresh rotates tokens and runs a new exchange."""
        callback = Mock()
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock, callback)
            add_refresh(httpx_mock, refresh_token="refresh2", expires_in=3600)
            add_exchange(httpx_mock, "cognito2")
            credentials = await manager.async_refresh()

        assert credentials.access_token == "access2"
        assert credentials.refresh_token == "refresh2"
        assert credentials.exchange_token == "cognito2"
        assert credentials.expire_at == FIXED_NOW + timedelta(seconds=3600)
        assert callback.call_count == 2
        exchange_request = httpx_mock.get_requests(url=EXCHANGE_URL)[-1]
        assert exchange_request.headers["id-token"] == "id2"

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that the old refresh token is kept when none is returned."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            add_refresh(httpx_mock)
            add_exchange(httpx_mock, "cognito2")
            credentials = await manager.async_refresh()

        assert credentials.refresh_token == "refresh"
        assert credentials.expire_at == FIXED_NOW + timedelta(hours=8)

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_request(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that concurrent callers trigger exactly one refresh."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            add_refresh(httpx_mock)
            add_exchange(httpx_mock, "cognito2")
            results = await asyncio.gather(
                manager.async_refresh(),
                manager.async_refresh(),
                manager.async_refresh(),
            )

        assert len(httpx_mock.get_requests(url=TOKEN_URL)) == 1
        assert len(httpx_mock.get_requests(url=EXCHANGE_URL)) == 2
        assert all(result == results[0] for result in results)
        assert results[0].exchange_token == "cognito2"

    @pytest.mark.asyncio
    async def test_failed_refresh_is_shared_and_released(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that a failure reaches every caller and a later call retries."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=400)
            results = await asyncio.gather(
                manager.async_refresh(),
                manager.async_refresh(),
                return_exceptions=True,
            )
            assert all(isinstance(result, HonAuthError) for result in results)
            assert manager.state is SessionState.FAILED
            assert not manager.is_terminal

            add_refresh(httpx_mock)
            add_exchange(httpx_mock, "cognito3")
            credentials = await manager.async_refresh()

        assert credentials.exchange_token == "cognito3"
        assert manager.state is SessionState.AUTHENTICATED
        assert len(httpx_mock.get_requests(url=TOKEN_URL)) == 2

    @pytest.mark.asyncio
    async def test_refresh_transport_failure_is_auth_error(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that a transport failure surfaces as HonAuthError with cause."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
            httpx_mock.add_exception(httpx.ConnectError("down"), url=TOKEN_URL)
            with pytest.raises(HonAuthError) as exc_info:
                await manager.async_refresh()

        assert isinstance(exc_info.value.__cause__, HonNetworkError)
        assert manager.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_mark_failed_sets_failed_state(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that mark_failed keeps the refresh token for recovery."""
        async with httpx.AsyncClient() as session:
            manager = await initialized_manager(session, httpx_mock, clock)
        manager.mark_failed()
        assert manager.state is SessionState.FAILED
        assert not manager.is_terminal


LOGIN_PAGE_HTML = """
<html><script>
var auraConfig = {"fwuid":"fw-123","loaded":{"APPLICATION@markup://siteforce:loginApp2":"abc"}};
</script></html>
"""


class TestFullLogin:
    """Tests for async_perform_full_login."""

    @pytest.mark.asyncio
    async def test_full_login_follows_flow_to_tokens(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test the full login through the Aura login form."""
        httpx_mock.add_response(
            method="GET",
            url=re.compile(r".*/services/oauth2/authorize/expid_Login\?.*"),
            status_code=302,
            headers={
                "Location": "/s/login/?startURL=%2Fsetup%2Fsecur%2FRemoteAccess"
            },
        )
        httpx_mock.add_response(
            method="GET",
            url=re.compile(r".*/s/login/\?.*"),
            text=LOGIN_PAGE_HTML,
        )
        httpx_mock.add_response(
            method="POST",
            url=re.compile(r".*/s/sfsites/aura\?.*"),
            json={
                "events": [
                    {
                        "attributes": {
                            "values": {"url": f"{AUTH_API}/secur/frontdoor.jsp?x=1"}
                        }
                    }
                ]
            },
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{AUTH_API}/secur/frontdoor.jsp?x=1",
            status_code=302,
            headers={
                "Location": (
                    "hon://mobilesdk/detect/oauth/done#access_token=a1"
                    "&id_token=i1&refresh_token=r1%3D%3D&expires_in=3600"
                )
            },
        )
        add_exchange(httpx_mock, "cognito-login")

        async with httpx.AsyncClient() as session:
            manager = HonSessionManager(
                session, TEST_MOBILE_ID, login_handler=AuraLoginHandler(), now=clock
            )
            credentials = await manager.async_perform_full_login(
                "user@example.com", "secret"
            )

        assert manager.state is SessionState.AUTHENTICATED
        assert credentials.access_token == "a1"
        assert credentials.id_token == "i1"
        assert credentials.refresh_token == "r1=="
        assert credentials.exchange_token == "cognito-login"

        login_page = httpx_mock.get_requests(url=re.compile(r".*/s/login/\?.*"))[0]
        assert login_page.url.params["System"] == "IoT_Mobile_App"
        assert login_page.url.params["RegistrationSubChannel"] == "hOn"
        aura = httpx_mock.get_requests(url=re.compile(r".*/s/sfsites/aura\?.*"))[0]
        assert b"user%40example.com" in aura.content

    @pytest.mark.asyncio
    async def test_full_login_without_handler_raises(self, clock: FakeClock) -> None:
        """Test that a manager without login handler refuses full login."""
        manager = HonSessionManager(Mock(), TEST_MOBILE_ID, now=clock)
        with pytest.raises(HonAuthError):
            await manager.async_perform_full_login("user@example.com", "secret")

    @pytest.mark.asyncio
    async def test_full_login_reports_unrecognized_page(
        self, httpx_mock: HTTPXMock, clock: FakeClock
    ) -> None:
        """Test that an unknown login page is reported as HonAuthError."""
        httpx_mock.add_response(
            method="GET",
            url=re.compile(r".*/services/oauth2/authorize/expid_Login\?.*"),
            status_code=302,
            headers={"Location": "/s/login/"},
        )
        httpx_mock.add_response(
            method="GET",
            url=re.compile(r".*/s/login/.*"),
            text="<html>maintenance</html>",
        )
        async with httpx.AsyncClient() as session:
            manager = HonSessionManager(
                session, TEST_MOBILE_ID, login_handler=AuraLoginHandler(), now=clock
            )
            with pytest.raises(HonAuthError, match="not recognized"):
                await manager.async_perform_full_login("user@example.com", "secret")

        assert manager.state is SessionState.UNAUTHENTICATED
