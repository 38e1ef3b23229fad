"""Authentication handler for the PowerSwitch API."""

from __future__ import annotations

import asyncio
import json
import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from aiohttp import ClientError, ClientSession, ClientTimeout, ContentTypeError

from pypowerswitch.const import (
    API_VERSION_PREFIX,
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT,
    GRANT_TYPE_PASSWORD,
    GRANT_TYPE_REFRESH_TOKEN,
)
from pypowerswitch.exceptions import (
    AuthenticationError,
    AuthenticationRequiredError,
    InvalidParameterError,
    LoginInProgressError,
    PowerSwitchConnectionError,
    PowerSwitchError,
    PowerSwitchTimeoutError,
    RateLimitError,
    ServerError,
)
from pypowerswitch.models import Session, TokenResponse
from pypowerswitch.parsers import parse_token_response
from pypowerswitch.store import MemorySessionStore


if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from pypowerswitch.resilience import ExponentialBackoff, RateLimiter
    from pypowerswitch.store import SessionStore

_LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (PowerSwitchTimeoutError, PowerSwitchConnectionError, RateLimitError, ServerError)


class AuthenticationHandler:
    """Handle authentication with the PowerSwitch API.

    The handler owns the single active :class:`~pypowerswitch.models.Session`.
    It performs password login, silent login with a refresh token, transparent
    refresh of expired access tokens, and logout with best-effort remote
    revocation.

    At most one login or silent login runs at a time. A second attempt made
    while one is in flight fails immediately with LoginInProgressError.

    Session Update Callback:
        After every successful login, silent login or refresh the
        on_session_updated callback is invoked with the handler instance:

        Example:
            def handle_session_update(handler: AuthenticationHandler) -> None:
                my_app.session_version = handler.session.version

            handler = AuthenticationHandler(on_session_updated=handle_session_update)

    Attributes:
        base_url: Base URL for the API (without trailing slash).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        session: ClientSession | None = None,
        store: SessionStore | None = None,
        on_session_updated: Callable[[AuthenticationHandler], None] | None = None,
        request_timeout: float = DEFAULT_TIMEOUT,
        backoff: ExponentialBackoff | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the authentication handler.

        Args:
            base_url: Base URL for the API.
            session: Optional aiohttp ClientSession. If not provided, one will be
                created when entering the context manager.
            store: Where resumable sessions are persisted for silent login.
                Defaults to an in-memory store.
            on_session_updated: Optional callback invoked when a new session is
                installed.
            request_timeout: Timeout in seconds for each token request.
            backoff: Optional ExponentialBackoff. If provided, token requests
                failing for transient reasons are retried. Rejected credentials
                are never retried.
            rate_limiter: Optional RateLimiter used to honour Retry-After on 429.
        """
        self.base_url = base_url.rstrip("/")

        self._session = session
        self._owns_session = session is None
        self._store: SessionStore = store if store is not None else MemorySessionStore()
        self._current: Session | None = None
        self._last_version = 0
        self._logout_count = 0
        self._auth_lock = asyncio.Lock()
        self._on_session_updated = on_session_updated
        self._request_timeout = request_timeout
        self._backoff = backoff
        self._rate_limiter = rate_limiter

    def set_session(self, session: ClientSession) -> None:
        """Set the aiohttp session for this handler.

        The handler will not take ownership and will not close this session.

        Args:
            session: The aiohttp ClientSession to use for requests.
        """
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> AuthenticationHandler:
        if self._session is None:
            self._session = ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        """Get the active session, or None when unauthenticated."""
        return self._current

    @property
    def access_token(self) -> str | None:
        """Get the access token of the active session."""
        return self._current.access_token if self._current is not None else None

    @property
    def store(self) -> SessionStore:
        """Get the session store used for silent login."""
        return self._store

    def is_authenticated(self) -> bool:
        """Check if a session is active."""
        return self._current is not None

    def can_resume(self) -> bool:
        """Check if a silent login could be attempted.

        Looks at the active session and the session store only. Never makes a
        network request.

        Returns:
            True if a refresh token is available.
        """
        return self._resumable_session() is not None

    def _resumable_session(self) -> Session | None:
        if self._current is not None and self._current.can_resume:
            return self._current

        stored = self._store.load()
        if stored is not None and stored.can_resume:
            return stored
        return None

    def _install(self, username: str, token: TokenResponse, *, previous: Session | None = None) -> Session:
        """Install a new session built from a token response."""
        base_version = max(self._last_version, previous.version if previous is not None else 0)
        if token.refresh_token is None and previous is not None and previous.refresh_token:
            # Service did not rotate the refresh token; keep the one we have.
            token = TokenResponse(token.access_token, previous.refresh_token, token.expires_in)

        session = Session.from_token_response(username, token, version=base_version + 1)
        self._current = session
        self._last_version = session.version

        try:
            if session.can_resume:
                self._store.save(session)
            else:
                self._store.clear()
        except OSError as exc:
            _LOGGER.warning("Could not persist session: %s", exc)

        if self._on_session_updated is not None:
            self._on_session_updated(self)

        return session

    def _validate_session(self) -> ClientSession:
        if self._session is None:
            msg = "Session not initialized. Use 'async with' or provide a session."
            raise RuntimeError(msg)

        if self._session.closed:
            msg = "Session is closed. Cannot make requests."
            raise RuntimeError(msg)

        return self._session

    # -------------------------------------------------------------------------
    # Login / silent login / logout
    # -------------------------------------------------------------------------

    def _reject_if_in_progress(self) -> None:
        if self._auth_lock.locked():
            msg = "Another login is already in progress"
            raise LoginInProgressError(msg)

    async def login(self, username: str, password: str) -> Session:
        """Authenticate with username and password.

        On failure the previously active session (if any) is left untouched.

        Args:
            username: Account name.
            password: Account password. Never stored.

        Returns:
            The newly installed session.

        Raises:
            InvalidParameterError: If username or password is empty.
            LoginInProgressError: If another login is in flight.
            AuthenticationError: If the service rejects the credentials.
            PowerSwitchTimeoutError: If the request times out.
            PowerSwitchConnectionError: If a connection error occurs.
            ServerError: If the service fails or responds unexpectedly.
        """
        if not isinstance(username, str) or not username.strip():
            msg = "Username must be a non-empty string"
            raise InvalidParameterError(msg, parameter_name="username", value=username)
        if not isinstance(password, str) or not password:
            msg = "Password must be a non-empty string"
            raise InvalidParameterError(msg, parameter_name="password")

        self._validate_session()
        self._reject_if_in_progress()

        async with self._auth_lock:
            token = await self._request_token(
                {"grant_type": GRANT_TYPE_PASSWORD, "username": username, "password": password},
                rejected_msg="Authentication failed: Invalid credentials",
            )
            session = self._install(username, token)

        _LOGGER.info("Login successful for %s", username)
        return session

    async def resume(self) -> Session:
        """Resume a session without credentials (silent login).

        Uses the refresh token of the active session, or of the session
        persisted in the store.

        Returns:
            The newly installed session.

        Raises:
            LoginInProgressError: If another login is in flight.
            AuthenticationRequiredError: If no resumable session exists.
            AuthenticationError: If the service rejects the refresh token.
            PowerSwitchTimeoutError: If the request times out.
            PowerSwitchConnectionError: If a connection error occurs.
        """
        self._reject_if_in_progress()

        async with self._auth_lock:
            candidate = self._resumable_session()
            if candidate is None:
                msg = "No resumable session available"
                raise AuthenticationRequiredError(msg)

            self._validate_session()
            try:
                session = await self._refresh_from(candidate)
            except AuthenticationRequiredError:
                raise
            except AuthenticationError:
                if self._current is None:
                    _LOGGER.warning("Stored session for %s was rejected, discarding it", candidate.username)
                    self._store.clear()
                raise

        _LOGGER.info("Silent login successful for %s", session.username)
        return session

    async def logout(self) -> None:
        """End the session.

        Local state and the persisted session are always cleared. Remote
        revocation is best effort; its failures are logged and not raised.
        A token refresh still in flight is discarded once it completes.
        """
        session = self._current or self._store.load()

        # Refreshes already in flight must not reinstall a session
        self._logout_count += 1
        self._current = None
        try:
            self._store.clear()
        except OSError as exc:
            _LOGGER.warning("Could not remove persisted session: %s", exc)

        if session is None:
            _LOGGER.debug("Logout requested without an active session")
            return

        _LOGGER.info("Logged out %s", session.username)

        if self._session is None or self._session.closed:
            _LOGGER.debug("Skipping remote revoke, no open HTTP session")
            return

        try:
            await self._revoke(session)
        except (PowerSwitchError, ClientError, TimeoutError) as exc:
            _LOGGER.warning("Remote session revoke failed: %s", exc)

    # -------------------------------------------------------------------------
    # Token refresh
    # -------------------------------------------------------------------------

    async def ensure_authenticated(self) -> None:
        """Ensure a usable access token exists, refreshing it if expired.

        Raises:
            AuthenticationRequiredError: If there is no active session, or the
                expired session has no refresh token.
            AuthenticationError: If the refresh is rejected.
        """
        current = self._current
        if current is None:
            msg = "Not logged in"
            raise AuthenticationRequiredError(msg)

        if current.is_expired():
            _LOGGER.debug("Access token expired, refreshing")
            await self._refresh_if_unchanged(current.version)

    async def _refresh_if_unchanged(self, seen_version: int) -> None:
        """Refresh the active session unless another task already replaced it."""
        async with self._auth_lock:
            current = self._current
            if current is None:
                msg = "Not logged in"
                raise AuthenticationRequiredError(msg)

            if current.version != seen_version:
                _LOGGER.debug("Session already refreshed (version %d)", current.version)
                return

            if not current.can_resume:
                msg = "Session expired and cannot be refreshed, log in again"
                raise AuthenticationRequiredError(msg)

            await self._refresh_from(current)

    async def _refresh_from(self, candidate: Session) -> Session:
        if candidate.refresh_token is None:
            msg = "Session has no refresh token"
            raise AuthenticationRequiredError(msg)

        logouts = self._logout_count
        token = await self._request_token(
            {"grant_type": GRANT_TYPE_REFRESH_TOKEN, "refresh_token": candidate.refresh_token},
            rejected_msg="Session could not be resumed: refresh token rejected",
        )
        if self._logout_count != logouts:
            _LOGGER.debug("Discarding refreshed session for %s, logged out meanwhile", candidate.username)
            msg = "Logged out while the session was being refreshed"
            raise AuthenticationRequiredError(msg)

        return self._install(candidate.username, token, previous=candidate)

    def should_retry_on_status(self, status_code: int) -> bool:
        """Check if a status code should trigger a token refresh.

        Returns:
            True for 401 Unauthorized and 403 Forbidden.
        """
        return status_code in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN)

    async def handle_auth_retry(self, status_code: int, seen_version: int | None = None) -> None:
        """Refresh the session after a 401/403 API response.

        Args:
            status_code: HTTP status code that triggered the retry.
            seen_version: Session version the failed request was sent with.
                If the session changed since, no refresh is made.

        Raises:
            AuthenticationRequiredError: If there is no session or it has no
                refresh token.
            AuthenticationError: If the service rejects the refresh.
        """
        if not self.should_retry_on_status(status_code):
            return

        _LOGGER.warning("Received status %d, attempting to refresh session", status_code)

        if seen_version is None:
            seen_version = self._current.version if self._current is not None else 0

        try:
            await self._refresh_if_unchanged(seen_version)
        except AuthenticationRequiredError:
            raise
        except AuthenticationError:
            msg = f"Session refresh failed after receiving status {status_code}. Log in again."
            raise AuthenticationError(msg) from None

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _request_token(self, payload: dict[str, Any], *, rejected_msg: str) -> TokenResponse:
        """POST to the token endpoint, retrying transient failures with backoff."""
        max_attempts = self._backoff.max_retries if self._backoff is not None else 1

        for attempt in range(max_attempts):
            try:
                return await self._token_attempt(payload, rejected_msg=rejected_msg)
            except _RETRYABLE_ERRORS as exc:
                if attempt >= max_attempts - 1:
                    _LOGGER.warning("Token request failed after %d attempt(s): %s", max_attempts, exc)
                    raise

                if isinstance(exc, RateLimitError) and exc.retry_after is not None:
                    delay = exc.retry_after
                else:
                    assert self._backoff is not None
                    delay = self._backoff.calculate_delay(attempt)

                _LOGGER.warning(
                    "Token request attempt %d failed, retrying in %.2fs: %s",
                    attempt + 1,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

        msg = "Authentication failed for unknown reason"
        raise AuthenticationError(msg)

    async def _token_attempt(self, payload: dict[str, Any], *, rejected_msg: str) -> TokenResponse:
        session = self._validate_session()
        url = f"{self.base_url}{API_VERSION_PREFIX}/oauth/token"
        timeout = ClientTimeout(total=self._request_timeout)

        _LOGGER.debug("Requesting token (%s grant) from %s", payload.get("grant_type"), url)

        try:
            async with session.post(url, json=payload, timeout=timeout) as response:
                if response.status == HTTPStatus.TOO_MANY_REQUESTS:
                    retry_after = None
                    if self._rate_limiter is not None:
                        retry_after = self._rate_limiter.get_retry_delay(
                            response.status, response.headers.get("Retry-After")
                        )
                    msg = f"Rate limited (status {response.status})"
                    raise RateLimitError(msg, retry_after=retry_after)

                if response.status in (HTTPStatus.BAD_REQUEST, HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
                    raise AuthenticationError(rejected_msg)

                if response.status >= HTTPStatus.INTERNAL_SERVER_ERROR:
                    msg = f"Authentication failed with server error {response.status}"
                    raise ServerError(msg, status=response.status)

                if response.status != HTTPStatus.OK:
                    msg = f"Authentication failed with status {response.status}"
                    raise AuthenticationError(msg)

                data = await response.json()
                if not isinstance(data, dict):
                    msg = "Unexpected token response: expected an object"
                    raise ServerError(msg, status=response.status)

                return parse_token_response(data)

        except TimeoutError as exc:
            msg = "Authentication request timed out"
            raise PowerSwitchTimeoutError(msg) from exc

        except (ContentTypeError, json.JSONDecodeError) as exc:
            msg = f"Invalid JSON response from API: {exc}"
            raise ServerError(msg) from exc

        except ClientError as exc:
            msg = f"Failed to connect to API: {exc}"
            raise PowerSwitchConnectionError(msg) from exc

    async def _revoke(self, session: Session) -> None:
        client_session = self._validate_session()
        url = f"{self.base_url}{API_VERSION_PREFIX}/oauth/revoke"
        token = session.refresh_token or session.access_token
        headers = {"Authorization": f"Bearer {session.access_token}"}
        timeout = ClientTimeout(total=self._request_timeout)

        async with client_session.post(url, json={"token": token}, headers=headers, timeout=timeout) as response:
            if response.status not in (HTTPStatus.OK, HTTPStatus.NO_CONTENT):
                msg = f"Revoke failed with status {response.status}"
                raise ServerError(msg, status=response.status)

        _LOGGER.debug("Session revoked remotely")
