"""Integration tests for pypowerswitch library.

These tests use real API credentials from .env file and make actual API calls.
They are marked with @pytest.mark.integration and deselected by default.

To run integration tests:
    pytest tests/integration -v -m integration

Environment variables required in .env:
    POWERSWITCH_USERNAME: Account name
    POWERSWITCH_PASSWORD: Account password
    POWERSWITCH_API_BASE_URL: API base URL (optional, defaults to production)
    POWERSWITCH_TEST_CLIENT_ID: Gateway used for relay tests (optional)
"""
