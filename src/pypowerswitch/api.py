"""Low-level API client for PowerSwitch REST endpoints.

Thin HTTP layer over the PowerSwitch REST endpoints. Endpoint helpers hand
back the raw status and decoded body; mapping statuses to errors is left to
the caller.
"""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from aiohttp import ClientError, ClientSession, ClientTimeout

from pypowerswitch.const import API_VERSION_PREFIX, DEFAULT_BASE_URL, DEFAULT_TIMEOUT, MAX_RATE_LIMIT_RETRIES


if TYPE_CHECKING:
    from types import TracebackType

    from pypowerswitch.auth import AuthenticationHandler
    from pypowerswitch.resilience import ExponentialBackoff, RateLimiter

_LOGGER = logging.getLogger(__name__)


class PowerSwitchAPI:
    """Low-level API client for the PowerSwitch platform.

    This class handles raw HTTP communication with the PowerSwitch API,
    including request construction, bearer authentication and response parsing.

    Every method returns a (status, body) pair and leaves status handling to
    the caller.

    Example:
        ```python
        from aiohttp import ClientSession
        from pypowerswitch.api import PowerSwitchAPI
        from pypowerswitch.auth import AuthenticationHandler

        async with ClientSession() as session:
            auth = AuthenticationHandler(session=session)
            api = PowerSwitchAPI(auth_handler=auth, session=session)

            async with api:
                await auth.login("alice", "hunter2")

                status, data = await api.get_clients()
                client_id = data["items"][0]["id"]

                status, relays = await api.get_relays(client_id)
                status, _ = await api.update_relay(client_id, relays["items"][0]["id"], on=True)
        ```
    """

    def __init__(
        self,
        *,
        auth_handler: AuthenticationHandler,
        session: ClientSession | None = None,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = DEFAULT_TIMEOUT,
        backoff: ExponentialBackoff | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            auth_handler: AuthenticationHandler owning the session tokens.
            session: Optional aiohttp ClientSession. If not provided, one will be
                created when entering the context manager.
            base_url: Base URL for the API.
            request_timeout: Timeout in seconds for each HTTP request.
            backoff: Optional ExponentialBackoff for retrying connection errors
                and timeouts.
            rate_limiter: Optional RateLimiter for retrying 429 responses.
        """
        self._auth_handler = auth_handler
        self._session = session
        self._owns_session = session is None
        self._base_url = base_url.rstrip("/")
        self._request_timeout = request_timeout

        self._backoff = backoff
        self._rate_limiter = rate_limiter

    @property
    def auth_handler(self) -> AuthenticationHandler:
        """Get the authentication handler."""
        return self._auth_handler

    async def __aenter__(self) -> PowerSwitchAPI:
        """Enter the context manager.

        Creates the session if needed and shares it with the auth handler.

        Raises:
            Exception: Re-raises any exception after cleaning up resources.
        """
        try:
            if self._session is None:
                self._session = ClientSession()
                self._owns_session = True

            self._auth_handler.set_session(self._session)
            await self._auth_handler.__aenter__()
        except Exception:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
            raise
        else:
            return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self._auth_handler.__aexit__(exc_type, exc_val, exc_tb)

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        retry_auth: bool = True,
        _rate_limit_retries: int = 0,
    ) -> tuple[int, dict[str, Any] | None]:
        """Make an authenticated API request.

        Every endpoint helper goes through here. Besides sending the request it
        takes care of:
        - Bearer authentication headers
        - Rate limiting (429 responses)
        - One session refresh on 401/403
        - Retrying connection errors and timeouts when a backoff is configured
        - Response parsing

        Args:
            method: HTTP verb.
            endpoint: API endpoint path (e.g., "/clients").
            json_data: Optional JSON data for request body.
            params: Optional query parameters.
            retry_auth: Whether to refresh the session and retry on 401/403.
            _rate_limit_retries: Number of 429 retries already made for this call.

        Returns:
            Tuple of (status_code, response_data). Response data is None unless
            the status is 200, 201 or 204.

        Raises:
            RuntimeError: If session is not initialized or is closed.
            AuthenticationRequiredError: If not logged in.
            TimeoutError: If request times out.
            ClientError: If connection fails.
        """
        if self._session is None:
            msg = "Session not initialized. Use 'async with' or provide a session."
            raise RuntimeError(msg)

        if self._session.closed:
            msg = "Session is closed. Cannot make request."
            raise RuntimeError(msg)

        await self._auth_handler.ensure_authenticated()

        auth_session = self._auth_handler.session
        seen_version = auth_session.version if auth_session is not None else 0
        url = f"{self._base_url}{API_VERSION_PREFIX}{endpoint}"
        headers = {"Authorization": f"Bearer {self._auth_handler.access_token or ''}"}

        async with await self._send(method, url, json_data=json_data, params=params, headers=headers) as response:
            if response.status == HTTPStatus.TOO_MANY_REQUESTS and self._rate_limiter is not None:
                if _rate_limit_retries >= MAX_RATE_LIMIT_RETRIES:
                    _LOGGER.error(
                        "Rate limit retry exhausted after %d attempts for %s",
                        MAX_RATE_LIMIT_RETRIES,
                        endpoint,
                    )
                    return response.status, None

                delay = self._rate_limiter.get_retry_delay(response.status, response.headers.get("Retry-After"))
                _LOGGER.warning(
                    "Rate limited (429), waiting %.2fs before retry (attempt %d/%d)",
                    delay,
                    _rate_limit_retries + 1,
                    MAX_RATE_LIMIT_RETRIES,
                )
                await asyncio.sleep(delay)

                return await self.request(
                    method,
                    endpoint,
                    json_data=json_data,
                    params=params,
                    retry_auth=retry_auth,
                    _rate_limit_retries=_rate_limit_retries + 1,
                )

            if retry_auth and self._auth_handler.should_retry_on_status(response.status):
                await self._auth_handler.handle_auth_retry(response.status, seen_version)

                return await self.request(
                    method,
                    endpoint,
                    json_data=json_data,
                    params=params,
                    retry_auth=False,
                )

            response_data = None
            if response.status in (HTTPStatus.OK, HTTPStatus.CREATED, HTTPStatus.NO_CONTENT):
                # Substring match handles "application/json; charset=utf-8"
                if "application/json" in response.content_type:
                    response_data = await response.json()
                else:
                    response_data = {}

            _LOGGER.debug("%s %s -> %d", method, endpoint, response.status)
            return response.status, response_data

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json_data: dict[str, Any] | None,
        params: dict[str, str] | None,
        headers: dict[str, str],
    ) -> Any:
        """Send a request, retrying transport failures when a backoff is configured.

        Returns:
            The aiohttp response, to be used as an async context manager.
        """
        assert self._session is not None
        max_attempts = self._backoff.max_retries if self._backoff is not None else 1
        timeout = ClientTimeout(total=self._request_timeout)

        for attempt in range(max_attempts):
            try:
                return await self._session.request(
                    method,
                    url,
                    json=json_data,
                    params=params,
                    headers=headers,
                    timeout=timeout,
                )
            except (TimeoutError, ClientError) as exc:
                if attempt >= max_attempts - 1:
                    _LOGGER.exception("Request to %s failed", url)
                    raise

                assert self._backoff is not None
                delay = self._backoff.calculate_delay(attempt)
                _LOGGER.warning(
                    "Request to %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    url,
                    attempt + 1,
                    max_attempts,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

        msg = "Unexpected state: no response and no exception"
        raise RuntimeError(msg)

    # -------------------------------------------------------------------------
    # Gateway Endpoints
    # -------------------------------------------------------------------------

    async def get_clients(self) -> tuple[int, dict[str, Any] | None]:
        """Get all gateways of the authenticated user.

        Returns:
            Tuple of (status_code, response_data) where response_data has format:
            {"items": [{"id": str, "name": str, "connected": bool}], "total": int}
        """
        return await self.request("GET", "/clients")

    # -------------------------------------------------------------------------
    # Relay Endpoints
    # -------------------------------------------------------------------------

    async def get_relays(self, client_id: str) -> tuple[int, dict[str, Any] | None]:
        """Get relay devices attached to a gateway.

        Args:
            client_id: Gateway's unique identifier.

        Returns:
            Tuple of (status_code, response_data) where response_data has format:
            {"items": [{"id": str, "instance": int, "name": str, "on": bool}]}
        """
        return await self.request("GET", f"/clients/{quote(client_id, safe='')}/relays")

    async def update_relay(
        self,
        client_id: str,
        device_id: str,
        *,
        on: bool,
    ) -> tuple[int, dict[str, Any] | None]:
        """Switch a relay device on or off.

        Args:
            client_id: Gateway's unique identifier.
            device_id: Relay's unique identifier.
            on: Target state.

        Returns:
            Tuple of (status_code, response_data).
        """
        return await self.request(
            "PUT",
            f"/clients/{quote(client_id, safe='')}/relays/{quote(device_id, safe='')}",
            json_data={"on": on},
        )
