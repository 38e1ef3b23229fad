"""Python client library for PowerSwitch gateways and relay devices.

This package provides an async client for logging in to the PowerSwitch cloud
service and discovering and switching relay devices attached to gateways.

The library is organized into three layers:
1. **API Layer** (pypowerswitch.api): Low-level HTTP communication with the PowerSwitch API
2. **Auth Layer** (pypowerswitch.auth): Session lifecycle, token refresh and silent login
3. **Client Layer** (pypowerswitch.client): Result-returning session facade

Example:
    Basic usage:

    ```python
    from pypowerswitch import PowerSwitchClient

    async with PowerSwitchClient() as client:
        result = await client.login("alice", "hunter2")
        if result.is_err():
            print(f"Login failed: {result.error}")
            return

        gateways = await client.request_gateways()
        for gateway in gateways.unwrap():
            relays = (await client.request_relay_devices(gateway)).unwrap()
            for relay in relays:
                print(f"{gateway.name}/{relay.name}: {'on' if relay.on else 'off'}")

        await client.logout()
    ```

    Resuming a session on the next start:

    ```python
    from pypowerswitch import FileSessionStore, PowerSwitchClient

    async with PowerSwitchClient(store=FileSessionStore()) as client:
        if client.is_silent_login_possible():
            result = await client.silent_login()
    ```
"""

from __future__ import annotations

from pypowerswitch.api import PowerSwitchAPI
from pypowerswitch.auth import AuthenticationHandler
from pypowerswitch.client import PowerSwitchClient
from pypowerswitch.exceptions import (
    AuthenticationError,
    AuthenticationRequiredError,
    DeviceError,
    ErrorKind,
    InvalidParameterError,
    LoginInProgressError,
    NotFoundError,
    PowerSwitchConnectionError,
    PowerSwitchError,
    PowerSwitchTimeoutError,
    RateLimitError,
    ServerError,
)
from pypowerswitch.models import Client, Clients, RelayDevice, Session, TokenResponse
from pypowerswitch.parsers import (
    parse_client,
    parse_clients,
    parse_relay_device,
    parse_relay_devices,
    parse_token_response,
)
from pypowerswitch.resilience import ExponentialBackoff, RateLimiter
from pypowerswitch.result import Err, Ok, Result
from pypowerswitch.store import FileSessionStore, MemorySessionStore, SessionStore


__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "AuthenticationHandler",
    "AuthenticationRequiredError",
    "Client",
    "Clients",
    "DeviceError",
    "Err",
    "ErrorKind",
    "ExponentialBackoff",
    "FileSessionStore",
    "InvalidParameterError",
    "LoginInProgressError",
    "MemorySessionStore",
    "NotFoundError",
    "Ok",
    "PowerSwitchAPI",
    "PowerSwitchClient",
    "PowerSwitchConnectionError",
    "PowerSwitchError",
    "PowerSwitchTimeoutError",
    "RateLimitError",
    "RateLimiter",
    "RelayDevice",
    "Result",
    "ServerError",
    "Session",
    "SessionStore",
    "TokenResponse",
    "__version__",
    "parse_client",
    "parse_clients",
    "parse_relay_device",
    "parse_relay_devices",
    "parse_token_response",
]
