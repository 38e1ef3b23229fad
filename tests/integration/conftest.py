"""Pytest configuration and fixtures for integration tests."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv

from pypowerswitch import MemorySessionStore, PowerSwitchClient
from pypowerswitch.const import DEFAULT_BASE_URL


if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


# Load .env file from project root
env_path = Path(__file__).parents[2] / ".env"
load_dotenv(env_path)


@pytest.fixture(scope="session")
def integration_config() -> dict[str, str]:
    """Load integration test configuration from environment.

    Tests are skipped unless POWERSWITCH_USERNAME and POWERSWITCH_PASSWORD
    are set (directly or through .env).
    """
    username = os.getenv("POWERSWITCH_USERNAME")
    password = os.getenv("POWERSWITCH_PASSWORD")
    base_url = os.getenv("POWERSWITCH_API_BASE_URL", DEFAULT_BASE_URL)

    if not username or not password:
        pytest.skip("Set POWERSWITCH_USERNAME and POWERSWITCH_PASSWORD in .env to run integration tests")

    return {
        "username": username,
        "password": password,
        "base_url": base_url,
    }


@pytest.fixture
def test_client_id() -> str | None:
    """Gateway to use for relay tests, or None for the first discovered one."""
    return os.getenv("POWERSWITCH_TEST_CLIENT_ID")


@pytest.fixture
async def integration_client(integration_config: dict[str, str]) -> AsyncGenerator[PowerSwitchClient]:
    """Create a logged-in client against the live service."""
    async with PowerSwitchClient(integration_config["base_url"], store=MemorySessionStore()) as client:
        result = await client.login(integration_config["username"], integration_config["password"])
        if result.is_err():
            pytest.fail(f"Login failed: {result.error}")
        yield client
        await client.logout()


@pytest.fixture(autouse=True)
async def rate_limit_delay(request: pytest.FixtureRequest) -> AsyncGenerator[None]:
    """Pause between live tests so the service does not rate limit the suite."""
    yield
    if "integration" in request.keywords:
        await asyncio.sleep(1.0)
