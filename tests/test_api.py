"""Tests for the low-level PowerSwitch API client."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from unittest.mock import patch

import pytest
from aiohttp import ClientError, web

from pypowerswitch.api import PowerSwitchAPI
from pypowerswitch.auth import AuthenticationHandler
from pypowerswitch.exceptions import AuthenticationRequiredError
from pypowerswitch.models import Session
from pypowerswitch.resilience import ExponentialBackoff, RateLimiter


if TYPE_CHECKING:
    from collections.abc import Callable

    from aiohttp import ClientSession
    from aiohttp.test_utils import TestClient


def _logged_in_handler(base_url: str, session: ClientSession) -> AuthenticationHandler:
    handler = AuthenticationHandler(base_url, session=session)
    handler._current = Session(username="alice", access_token="token-1", refresh_token="refresh-1")
    handler._last_version = 1
    return handler


class FlakyService:
    """Small service whose responses are scripted per request."""

    def __init__(self, statuses: list[int]) -> None:
        self.statuses = statuses
        self.seen: list[dict[str, Any]] = []

    def make_app(self) -> web.Application:
        async def relays(request: web.Request) -> web.Response:
            self.seen.append({"path": request.path, "auth": request.headers.get("Authorization")})
            status = self.statuses.pop(0) if self.statuses else HTTPStatus.OK
            if status == HTTPStatus.TOO_MANY_REQUESTS:
                return web.Response(status=status, headers={"Retry-After": "0"})
            if status != HTTPStatus.OK:
                return web.Response(status=status)
            return web.json_response({"items": [{"id": "r1", "instance": 0, "name": "Lamp", "on": False}]})

        async def update(request: web.Request) -> web.Response:
            self.seen.append({"path": request.path, "body": await request.json()})
            return web.Response(status=HTTPStatus.NO_CONTENT)

        app = web.Application()
        app.router.add_get("/v1/clients/{client_id}/relays", relays)
        app.router.add_put("/v1/clients/{client_id}/relays/{device_id}", update)
        return app


@pytest.fixture
def make_api(aiohttp_client: Any) -> Callable[..., Any]:
    """Build a logged-in PowerSwitchAPI against a scripted service."""

    async def _make(service: FlakyService, **kwargs: Any) -> PowerSwitchAPI:
        test_client: TestClient = await aiohttp_client(service.make_app())
        base_url = str(test_client.make_url(""))
        handler = _logged_in_handler(base_url, test_client.session)
        return PowerSwitchAPI(auth_handler=handler, session=test_client.session, base_url=base_url, **kwargs)

    return _make


class TestRequest:
    """Test PowerSwitchAPI.request."""

    async def test_sends_bearer_token(self, make_api: Callable[..., Any]) -> None:
        """Test requests carry the access token."""
        service = FlakyService([])
        api = await make_api(service)

        status, data = await api.get_relays("gw-1")

        assert status == HTTPStatus.OK
        assert data is not None
        assert data["items"][0]["id"] == "r1"
        assert service.seen[0]["auth"] == "Bearer token-1"

    async def test_no_content_returns_empty_dict(self, make_api: Callable[..., Any]) -> None:
        """Test 204 responses yield an empty body."""
        service = FlakyService([])
        api = await make_api(service)

        status, data = await api.update_relay("gw-1", "r1", on=True)

        assert status == HTTPStatus.NO_CONTENT
        assert data == {}
        assert service.seen[0]["body"] == {"on": True}

    async def test_error_status_returns_none(self, make_api: Callable[..., Any]) -> None:
        """Test error responses carry no data."""
        service = FlakyService([HTTPStatus.NOT_FOUND])
        api = await make_api(service)

        status, data = await api.get_relays("gw-1")

        assert status == HTTPStatus.NOT_FOUND
        assert data is None

    async def test_rate_limit_retried(self, make_api: Callable[..., Any]) -> None:
        """Test 429 responses are retried when a rate limiter is configured."""
        service = FlakyService([HTTPStatus.TOO_MANY_REQUESTS, HTTPStatus.TOO_MANY_REQUESTS])
        api = await make_api(service, rate_limiter=RateLimiter())

        status, _ = await api.get_relays("gw-1")

        assert status == HTTPStatus.OK
        assert len(service.seen) == 3

    async def test_rate_limit_exhausted(self, make_api: Callable[..., Any]) -> None:
        """Test the 429 status is returned once retries are exhausted."""
        service = FlakyService([HTTPStatus.TOO_MANY_REQUESTS] * 10)
        api = await make_api(service, rate_limiter=RateLimiter())

        status, data = await api.get_relays("gw-1")

        assert status == HTTPStatus.TOO_MANY_REQUESTS
        assert data is None
        assert len(service.seen) == 4

    async def test_rate_limit_without_limiter(self, make_api: Callable[..., Any]) -> None:
        """Test 429 is returned immediately without a rate limiter."""
        service = FlakyService([HTTPStatus.TOO_MANY_REQUESTS])
        api = await make_api(service)

        status, _ = await api.get_relays("gw-1")

        assert status == HTTPStatus.TOO_MANY_REQUESTS
        assert len(service.seen) == 1

    async def test_requires_login(self, aiohttp_client: Any) -> None:
        """Test requests without a session fail before any I/O."""
        service = FlakyService([])
        test_client = await aiohttp_client(service.make_app())
        handler = AuthenticationHandler(str(test_client.make_url("")), session=test_client.session)
        api = PowerSwitchAPI(auth_handler=handler, session=test_client.session)

        with pytest.raises(AuthenticationRequiredError):
            await api.get_clients()

        assert service.seen == []

    async def test_requires_http_session(self) -> None:
        """Test using the API outside the context manager is a usage error."""
        api = PowerSwitchAPI(auth_handler=AuthenticationHandler())

        with pytest.raises(RuntimeError, match="Session not initialized"):
            await api.get_clients()


class TestTransportRetry:
    """Test backoff on connection errors."""

    async def test_connection_error_retried(self, mock_session: ClientSession) -> None:
        """Test transient connection errors are retried with backoff."""
        handler = _logged_in_handler("https://api.example.com", mock_session)
        api = PowerSwitchAPI(
            auth_handler=handler,
            session=mock_session,
            base_url="https://api.example.com",
            backoff=ExponentialBackoff(base_delay=0.0, max_retries=2, jitter=False),
        )
        mock_session.request.side_effect = ClientError("reset")

        with pytest.raises(ClientError):
            await api.get_clients()

        assert mock_session.request.call_count == 2

    async def test_connection_error_without_backoff(self, mock_session: ClientSession) -> None:
        """Test connection errors propagate after one attempt by default."""
        handler = _logged_in_handler("https://api.example.com", mock_session)
        api = PowerSwitchAPI(auth_handler=handler, session=mock_session, base_url="https://api.example.com")
        mock_session.request.side_effect = TimeoutError()

        with patch("pypowerswitch.api.asyncio.sleep") as mock_sleep, pytest.raises(TimeoutError):
            await api.get_clients()

        mock_sleep.assert_not_called()
        assert mock_session.request.call_count == 1

    async def test_path_segments_are_quoted(self, mock_session: ClientSession) -> None:
        """Test identifiers cannot escape their path segment."""
        handler = _logged_in_handler("https://api.example.com", mock_session)
        api = PowerSwitchAPI(auth_handler=handler, session=mock_session, base_url="https://api.example.com")
        mock_session.request.side_effect = ClientError("offline")

        with pytest.raises(ClientError):
            await api.update_relay("gw/1", "relay 2", on=False)

        method, url = mock_session.request.call_args.args
        assert method == "PUT"
        assert url == "https://api.example.com/v1/clients/gw%2F1/relays/relay%202"
        assert mock_session.request.call_args.kwargs["json"] == {"on": False}


class TestContextManager:
    """Test session ownership."""

    async def test_owned_session_closed(self) -> None:
        """Test a session created by the API is closed on exit."""
        handler = AuthenticationHandler()
        api = PowerSwitchAPI(auth_handler=handler)

        async with api:
            session = api._session
            assert session is not None
            assert handler._session is session

        assert session.closed is True
        assert api._session is None

    async def test_injected_session_not_closed(self, mock_session: ClientSession) -> None:
        """Test an injected session is left open."""
        api = PowerSwitchAPI(auth_handler=AuthenticationHandler(), session=mock_session)

        async with api:
            pass

        assert mock_session.closed is False
