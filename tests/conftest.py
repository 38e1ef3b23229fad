"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import itertools
from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import ClientSession, web

from pypowerswitch.client import PowerSwitchClient
from pypowerswitch.store import MemorySessionStore


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from aiohttp.test_utils import TestClient


class FakeBackend:
    """In-process PowerSwitch service used by the tests.

    Attributes mirror the service state and can be changed by tests to
    simulate failures.
    """

    def __init__(self) -> None:
        self.users: dict[str, str] = {"alice": "hunter2"}
        self.clients: list[dict[str, Any]] = [
            {"id": "gw-1", "name": "Living room", "connected": True},
            {"id": "gw-2", "name": "Garage", "connected": False},
        ]
        self.relays: dict[str, list[dict[str, Any]]] = {
            "gw-1": [
                {"id": "relay-a", "instance": 0, "name": "Lamp", "on": False},
                {"id": "relay-b", "instance": 1, "name": "Heater", "on": True},
            ],
            "gw-2": [],
        }
        self.access_tokens: set[str] = set()
        self.refresh_tokens: dict[str, str] = {}
        self.revoked: list[str] = []
        self.requests: list[tuple[str, str]] = []

        self.expires_in: int | None = 3600
        self.issue_refresh_tokens = True
        self.token_delay = 0.0
        self.token_status: int | None = None
        self.clients_delay = 0.0
        self.clients_status: int | None = None
        self.relay_update_status: int | None = None
        self.revoke_status = HTTPStatus.OK
        self.revoke_invalidates = True

        self._counter = itertools.count(1)

    def _issue(self, username: str) -> dict[str, Any]:
        n = next(self._counter)
        access = f"access-{n}"
        self.access_tokens.add(access)
        body: dict[str, Any] = {"access_token": access, "token_type": "Bearer"}
        if self.expires_in is not None:
            body["expires_in"] = self.expires_in
        if self.issue_refresh_tokens:
            refresh = f"refresh-{n}"
            self.refresh_tokens[refresh] = username
            body["refresh_token"] = refresh
        return body

    def _authorized(self, request: web.Request) -> bool:
        header = request.headers.get("Authorization", "")
        return header.startswith("Bearer ") and header.removeprefix("Bearer ") in self.access_tokens

    def make_app(self) -> web.Application:
        @web.middleware
        async def record(request: web.Request, handler: Any) -> web.StreamResponse:
            self.requests.append((request.method, request.path))
            return await handler(request)

        async def token(request: web.Request) -> web.Response:
            if self.token_delay:
                await asyncio.sleep(self.token_delay)
            if self.token_status is not None:
                return web.Response(status=self.token_status)
            body = await request.json()
            grant = body.get("grant_type")
            if grant == "password":
                username = body.get("username")
                if username not in self.users or self.users[username] != body.get("password"):
                    return web.json_response({"error": "invalid_grant"}, status=HTTPStatus.UNAUTHORIZED)
                return web.json_response(self._issue(username))
            if grant == "refresh_token":
                username = self.refresh_tokens.pop(body.get("refresh_token"), None)
                if username is None:
                    return web.json_response({"error": "invalid_grant"}, status=HTTPStatus.BAD_REQUEST)
                return web.json_response(self._issue(username))
            return web.json_response({"error": "unsupported_grant_type"}, status=HTTPStatus.BAD_REQUEST)

        async def revoke(request: web.Request) -> web.Response:
            body = await request.json()
            self.revoked.append(body.get("token"))
            if self.revoke_invalidates:
                self.refresh_tokens.pop(body.get("token"), None)
            return web.json_response({}, status=self.revoke_status)

        async def get_clients(request: web.Request) -> web.Response:
            if self.clients_delay:
                await asyncio.sleep(self.clients_delay)
            if not self._authorized(request):
                return web.Response(status=HTTPStatus.UNAUTHORIZED)
            if self.clients_status is not None:
                return web.Response(status=self.clients_status)
            return web.json_response({"items": self.clients, "total": len(self.clients)})

        async def get_relays(request: web.Request) -> web.Response:
            if not self._authorized(request):
                return web.Response(status=HTTPStatus.UNAUTHORIZED)
            relays = self.relays.get(request.match_info["client_id"])
            if relays is None:
                return web.Response(status=HTTPStatus.NOT_FOUND)
            return web.json_response({"items": relays})

        async def put_relay(request: web.Request) -> web.Response:
            if not self._authorized(request):
                return web.Response(status=HTTPStatus.UNAUTHORIZED)
            if self.relay_update_status is not None:
                return web.Response(status=self.relay_update_status)
            relays = self.relays.get(request.match_info["client_id"], [])
            relay = next((r for r in relays if r["id"] == request.match_info["device_id"]), None)
            if relay is None:
                return web.Response(status=HTTPStatus.NOT_FOUND)
            body = await request.json()
            relay["on"] = body["on"]
            return web.Response(status=HTTPStatus.NO_CONTENT)

        app = web.Application(middlewares=[record])
        app.router.add_post("/v1/oauth/token", token)
        app.router.add_post("/v1/oauth/revoke", revoke)
        app.router.add_get("/v1/clients", get_clients)
        app.router.add_get("/v1/clients/{client_id}/relays", get_relays)
        app.router.add_put("/v1/clients/{client_id}/relays/{device_id}", put_relay)
        return app


@pytest.fixture
def backend() -> FakeBackend:
    """Create a fresh fake PowerSwitch service."""
    return FakeBackend()


@pytest.fixture
async def server(aiohttp_client: Any, backend: FakeBackend) -> TestClient:
    """Serve the fake backend on a local port."""
    return await aiohttp_client(backend.make_app())


@pytest.fixture
def store() -> MemorySessionStore:
    """Create an empty in-memory session store."""
    return MemorySessionStore()


@pytest.fixture
async def client(server: TestClient, store: MemorySessionStore) -> AsyncGenerator[PowerSwitchClient]:
    """Create a PowerSwitchClient talking to the fake backend."""
    ps_client = PowerSwitchClient(
        base_url=str(server.make_url("")),
        session=server.session,
        store=store,
    )
    async with ps_client:
        yield ps_client


@pytest.fixture
async def mock_session() -> AsyncGenerator[ClientSession]:
    """Create a mock aiohttp ClientSession.

    Yields:
        Mock ClientSession for testing.
    """
    session = AsyncMock(spec=ClientSession)
    session.closed = False

    async def mock_close() -> None:
        session.closed = True

    session.close = mock_close

    yield session

    if not session.closed:
        await session.close()


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Create mock aiohttp responses usable as async context managers."""

    def _make(status: int = HTTPStatus.OK, json_data: Any = None, headers: dict[str, str] | None = None) -> MagicMock:
        response = MagicMock()
        response.status = status
        response.headers = headers or {}
        response.json = AsyncMock(return_value=json_data)
        response.__aenter__ = AsyncMock(return_value=response)
        response.__aexit__ = AsyncMock(return_value=None)
        return response

    return _make
