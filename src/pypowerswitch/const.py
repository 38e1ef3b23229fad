"""Constants for pypowerswitch library."""

from __future__ import annotations

from pathlib import Path


# API Configuration
DEFAULT_BASE_URL = "https://api.powerswitch.example.com"
API_VERSION_PREFIX = "/v1"
DEFAULT_TIMEOUT = 30  # seconds, per HTTP request
DEFAULT_OPERATION_TIMEOUT = 30.0  # seconds, per facade operation including retries

# OAuth grants
GRANT_TYPE_PASSWORD = "password"
GRANT_TYPE_REFRESH_TOKEN = "refresh_token"

# Seconds before access token expiry at which it is treated as expired
TOKEN_EXPIRY_MARGIN_SECONDS = 60

# Maximum number of rate-limit retries to prevent infinite recursion
MAX_RATE_LIMIT_RETRIES = 3

# Session persistence
DEFAULT_SESSION_FILE = Path.home() / ".config" / "pypowerswitch" / "session.json"
SESSION_FILE_MODE = 0o600
SESSION_FILE_FORMAT_VERSION = 1
