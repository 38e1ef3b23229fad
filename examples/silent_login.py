"""Silent login example.

The first run asks for credentials and stores the refresh token in
~/.config/pypowerswitch/session.json. Later runs resume the session without
a password until the service rejects the stored token.

This example demonstrates:
- Persisting sessions with FileSessionStore
- Retrying transient failures with ExponentialBackoff and RateLimiter
- Reacting to session updates
"""

import asyncio
import getpass
import logging

from pypowerswitch import (
    AuthenticationHandler,
    ErrorKind,
    ExponentialBackoff,
    FileSessionStore,
    PowerSwitchClient,
    RateLimiter,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def on_session_updated(handler: AuthenticationHandler) -> None:
    """Report every new session version."""
    print(f"Session updated: {handler.session!r}")


async def main() -> None:
    """Resume a stored session or fall back to a password login."""
    async with PowerSwitchClient(
        store=FileSessionStore(),
        on_session_updated=on_session_updated,
        backoff=ExponentialBackoff(base_delay=0.5, max_retries=4),
        rate_limiter=RateLimiter(max_retry_delay=30.0),
    ) as client:
        result = None
        if client.is_silent_login_possible():
            result = await client.silent_login()
            if result.is_err():
                print(f"Silent login failed: {result.error}")

        if result is None or result.is_err():
            username = input("Username: ")
            password = getpass.getpass("Password: ")
            result = await client.login(username, password)

        if result.is_err():
            print(f"Login failed: {result.error}")
            return

        gateways = await client.request_gateways()
        if gateways.is_err() and gateways.error.kind is ErrorKind.RATE_LIMITED:
            print("Service is busy, try again later")
            return

        for gateway in gateways.unwrap():
            print(f"{gateway.name}: {'connected' if gateway.connected else 'offline'}")

        # No logout: keep the stored session for the next run.


if __name__ == "__main__":
    asyncio.run(main())
