"""Session-oriented facade for PowerSwitch gateways and relays.

This module provides the high-level client an application talks to. It
coordinates the authentication handler and the low-level API layer, and
reports the outcome of every network operation as a
:class:`~pypowerswitch.result.Result` instead of raising.
"""

from __future__ import annotations

import asyncio
import json
import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, TypeVar

from aiohttp import ClientError, ContentTypeError

from pypowerswitch.api import PowerSwitchAPI
from pypowerswitch.auth import AuthenticationHandler
from pypowerswitch.const import DEFAULT_BASE_URL, DEFAULT_OPERATION_TIMEOUT, DEFAULT_TIMEOUT
from pypowerswitch.exceptions import (
    AuthenticationError,
    DeviceError,
    InvalidParameterError,
    NotFoundError,
    PowerSwitchConnectionError,
    PowerSwitchError,
    PowerSwitchTimeoutError,
    RateLimitError,
    ServerError,
)
from pypowerswitch.models import Client, Clients, RelayDevice, Session
from pypowerswitch.parsers import parse_clients, parse_relay_devices
from pypowerswitch.result import Err, Ok


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    from aiohttp import ClientSession

    from pypowerswitch.resilience import ExponentialBackoff, RateLimiter
    from pypowerswitch.result import Result
    from pypowerswitch.store import SessionStore

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class PowerSwitchClient:
    """Session client for logging in and controlling relay devices.

    Every network operation is a coroutine resolving to exactly one
    :class:`~pypowerswitch.result.Ok` or :class:`~pypowerswitch.result.Err`.
    Failures (rejected credentials, network errors, timeouts, unknown
    gateways or devices, server errors, invalid arguments) are carried by
    ``Err`` as a :class:`~pypowerswitch.exceptions.PowerSwitchError` and are
    never raised. Results are delivered to the awaiting task.

    The one exception is misuse: calling a network operation outside
    ``async with`` and without an injected ``session`` raises RuntimeError.

    Session state is binary: unauthenticated or authenticated. A successful
    login or silent login authenticates, logout unauthenticates, and a failed
    login or silent login leaves the state unchanged.

    Example:
        Login, then switch every relay of the first gateway on:

        ```python
        from pypowerswitch import FileSessionStore, PowerSwitchClient

        async with PowerSwitchClient(store=FileSessionStore()) as client:
            if client.is_silent_login_possible():
                result = await client.silent_login()
            else:
                result = await client.login("alice", "hunter2")
            result.unwrap()

            gateways = (await client.request_gateways()).unwrap()
            relays = (await client.request_relay_devices(gateways[0])).unwrap()
            for relay in relays:
                await client.set_relay_device_state(relay, True)
        ```
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: ClientSession | None = None,
        store: SessionStore | None = None,
        auth_handler: AuthenticationHandler | None = None,
        on_session_updated: Callable[[AuthenticationHandler], None] | None = None,
        request_timeout: float = DEFAULT_TIMEOUT,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        backoff: ExponentialBackoff | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the PowerSwitch client.

        Args:
            base_url: Base URL for the API.
            session: Optional aiohttp ClientSession. If not provided, one will be
                created when entering the context manager.
            store: Where resumable sessions are persisted for silent login.
                Defaults to an in-memory store.
            auth_handler: Optional pre-configured AuthenticationHandler. If not
                provided, one will be created.
            on_session_updated: Optional callback invoked when a new session is
                installed. Ignored when auth_handler is given.
            request_timeout: Timeout in seconds for each HTTP request.
            operation_timeout: Overall timeout in seconds for each operation,
                including retries and token refreshes.
            backoff: Optional ExponentialBackoff for retrying transient failures.
            rate_limiter: Optional RateLimiter for handling 429 responses.
        """
        if auth_handler is not None:
            self._auth_handler = auth_handler
        else:
            self._auth_handler = AuthenticationHandler(
                base_url=base_url,
                session=session,
                store=store,
                on_session_updated=on_session_updated,
                request_timeout=request_timeout,
                backoff=backoff,
                rate_limiter=rate_limiter,
            )

        self._api = PowerSwitchAPI(
            auth_handler=self._auth_handler,
            session=session,
            base_url=base_url,
            request_timeout=request_timeout,
            backoff=backoff,
            rate_limiter=rate_limiter,
        )
        self._operation_timeout = operation_timeout

    @property
    def api(self) -> PowerSwitchAPI:
        """Get the underlying API client for direct low-level access."""
        return self._api

    @property
    def auth_handler(self) -> AuthenticationHandler:
        """Get the authentication handler."""
        return self._auth_handler

    @property
    def session(self) -> Session | None:
        """Get the active session, or None when unauthenticated."""
        return self._auth_handler.session

    @property
    def is_authenticated(self) -> bool:
        """Check if a session is active."""
        return self._auth_handler.is_authenticated()

    async def __aenter__(self) -> PowerSwitchClient:
        """Enter the context manager.

        Opens the HTTP session if needed. Does not log in.
        """
        await self._api.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the context manager and close the HTTP session if owned.

        The login session is kept, so a later client can resume it.
        """
        await self._api.__aexit__(exc_type, exc_val, exc_tb)

    async def _run(self, operation: str, func: Callable[[], Awaitable[T]]) -> Result[T]:
        """Run an operation under the operation timeout and wrap its outcome.

        Cancellation propagates and produces no result.
        """
        try:
            async with asyncio.timeout(self._operation_timeout):
                value = await func()
        except PowerSwitchError as exc:
            _LOGGER.debug("%s failed: %s", operation, exc)
            return Err(exc)
        except TimeoutError as exc:
            _LOGGER.debug("%s timed out", operation)
            error = PowerSwitchTimeoutError(f"{operation} timed out")
            error.__cause__ = exc
            return Err(error)
        except (ContentTypeError, json.JSONDecodeError) as exc:
            error = ServerError(f"Invalid JSON response from API: {exc}")
            error.__cause__ = exc
            return Err(error)
        except ClientError as exc:
            _LOGGER.debug("%s failed to connect: %s", operation, exc)
            error = PowerSwitchConnectionError(f"Failed to connect to API: {exc}")
            error.__cause__ = exc
            return Err(error)
        else:
            return Ok(value)

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str) -> Result[None]:
        """Log in with username and password.

        Args:
            username: Account name. Must be non-empty.
            password: Account password. Must be non-empty. Not retained.

        Returns:
            Ok(None) once a session is established, otherwise Err with an
            AuthenticationError, LoginInProgressError, InvalidParameterError,
            network, timeout or server error.
        """

        async def _login() -> None:
            await self._auth_handler.login(username, password)

        return await self._run("login", _login)

    def is_silent_login_possible(self) -> bool:
        """Check if silent_login() has something to resume.

        Synchronous and local: never makes a network request.

        Returns:
            True if a refresh token is held in memory or in the session store.
        """
        return self._auth_handler.can_resume()

    async def silent_login(self) -> Result[None]:
        """Resume a previously established session without credentials.

        Returns:
            Ok(None) once a session is established, otherwise Err with an
            AuthenticationRequiredError when nothing is resumable, an
            AuthenticationError when the service rejects the resumption, or a
            LoginInProgressError, network, timeout or server error.
        """

        async def _resume() -> None:
            await self._auth_handler.resume()

        return await self._run("silent_login", _resume)

    async def logout(self) -> None:
        """Log out.

        Always succeeds locally: the session and its persisted copy are
        dropped before the remote revoke is attempted. Revoke failures are
        logged, not raised.
        """
        await self._auth_handler.logout()

    # -------------------------------------------------------------------------
    # Gateways and relays
    # -------------------------------------------------------------------------

    async def request_gateways(self) -> Result[Clients]:
        """Request all gateways of the logged-in user.

        Returns:
            Ok with a (possibly empty) Clients collection, otherwise Err.
        """

        async def _request() -> Clients:
            status, data = await self._api.get_clients()
            if status != HTTPStatus.OK or data is None:
                raise _status_error(status, "Failed to get gateways")

            clients = parse_clients(data)
            _LOGGER.debug("Found %d gateway(s)", len(clients))
            return clients

        return await self._run("request_gateways", _request)

    async def request_relay_devices(self, client: Client) -> Result[list[RelayDevice]]:
        """Request the relay devices attached to a gateway.

        Args:
            client: Gateway obtained from request_gateways().

        Returns:
            Ok with a new list of RelayDevice in backend order, otherwise Err.
            An unknown gateway yields Err(NotFoundError).
        """

        async def _request() -> list[RelayDevice]:
            if not isinstance(client, Client):
                msg = "A gateway is required"
                raise InvalidParameterError(msg, parameter_name="client", value=client)

            status, data = await self._api.get_relays(client.client_id)
            if status != HTTPStatus.OK or data is None:
                raise _status_error(status, f"Failed to get relays of gateway {client.client_id}", client.client_id)

            relays = parse_relay_devices(client.client_id, data)
            _LOGGER.debug("Gateway %s has %d relay(s)", client.client_id, len(relays))
            return relays

        return await self._run("request_relay_devices", _request)

    async def set_relay_device_state(self, device: RelayDevice, on: bool) -> Result[None]:  # noqa: FBT001
        """Switch a relay device on or off.

        The passed RelayDevice is not modified; request the relays again to
        observe the new state.

        Args:
            device: Relay obtained from request_relay_devices().
            on: Target state.

        Returns:
            Ok(None) once the service accepted the change, otherwise Err. An
            unknown relay yields Err(NotFoundError); a relay that rejects the
            command or cannot be reached yields Err(DeviceError).
        """

        async def _update() -> None:
            if not isinstance(device, RelayDevice):
                msg = "A relay device is required"
                raise InvalidParameterError(msg, parameter_name="device", value=device)
            if not isinstance(on, bool):
                msg = "Relay state must be a bool"
                raise InvalidParameterError(msg, parameter_name="on", value=on)

            status, _ = await self._api.update_relay(device.client_id, device.device_id, on=on)
            if status not in (HTTPStatus.OK, HTTPStatus.NO_CONTENT):
                error = _status_error(status, f"Failed to switch relay {device.device_id}", device.device_id)
                if type(error) is ServerError and status < HTTPStatus.INTERNAL_SERVER_ERROR:
                    msg = f"Relay {device.device_id} rejected the command (HTTP {status})"
                    error = DeviceError(msg, device_id=device.device_id)
                elif status == HTTPStatus.GATEWAY_TIMEOUT:
                    error = DeviceError(f"Relay {device.device_id} is unreachable", device_id=device.device_id)
                raise error

            _LOGGER.info("Relay %s switched %s", device.device_id, "on" if on else "off")

        return await self._run("set_relay_device_state", _update)


def _status_error(status: int, message: str, resource_id: str | None = None) -> PowerSwitchError:
    """Map an unsuccessful HTTP status to an exception."""
    text = f"{message}: HTTP {status}"
    error: PowerSwitchError
    if status in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
        error = AuthenticationError(text)
    elif status == HTTPStatus.NOT_FOUND:
        error = NotFoundError(text, resource_id=resource_id)
    elif status == HTTPStatus.TOO_MANY_REQUESTS:
        error = RateLimitError(text)
    else:
        error = ServerError(text, status=status)
    return error
