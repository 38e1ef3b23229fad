"""Session persistence for silent login.

A store keeps the resumable part of a :class:`~pypowerswitch.models.Session`
(username, tokens and expiry) between process runs. Passwords are never
persisted. All store operations are synchronous and local so that
``PowerSwitchClient.is_silent_login_possible()`` never touches the network.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pypowerswitch.const import DEFAULT_SESSION_FILE, SESSION_FILE_FORMAT_VERSION, SESSION_FILE_MODE
from pypowerswitch.models import Session


__all__ = [
    "FileSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "session_from_dict",
    "session_to_dict",
]

_LOGGER = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    """Storage backend for resumable sessions."""

    def load(self) -> Session | None:
        """Return the persisted session, or None if there is none."""
        ...

    def save(self, session: Session) -> None:
        """Persist the given session, replacing any previous one."""
        ...

    def clear(self) -> None:
        """Remove the persisted session."""
        ...


def session_to_dict(session: Session) -> dict[str, Any]:
    """Serialize the resumable fields of a session."""
    return {
        "format": SESSION_FILE_FORMAT_VERSION,
        "username": session.username,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": session.expires_at.isoformat() if session.expires_at else None,
        "version": session.version,
        "created_at": session.created_at.isoformat(),
    }


def _timestamp(data: dict[str, Any], key: str) -> datetime | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        msg = f"Session field {key!r} must be an ISO timestamp"
        raise ValueError(msg)

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def session_from_dict(data: dict[str, Any]) -> Session:
    """Rebuild a session from :func:`session_to_dict` output.

    Raises:
        ValueError: If the data is not a supported session record, or a field
            has the wrong type.
    """
    if data.get("format") != SESSION_FILE_FORMAT_VERSION:
        msg = f"Unsupported session format: {data.get('format')!r}"
        raise ValueError(msg)

    try:
        username = data["username"]
        access_token = data["access_token"]
    except KeyError as exc:
        msg = f"Session record is missing {exc}"
        raise ValueError(msg) from exc

    if not isinstance(username, str) or not isinstance(access_token, str):
        msg = "Session username and access_token must be strings"
        raise ValueError(msg)

    refresh_token = data.get("refresh_token")
    if refresh_token is not None and not isinstance(refresh_token, str):
        msg = "Session refresh_token must be a string"
        raise ValueError(msg)

    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        msg = f"Session version must be an integer, got {version!r}"
        raise ValueError(msg)

    kwargs: dict[str, Any] = {}
    created_at = _timestamp(data, "created_at")
    if created_at is not None:
        kwargs["created_at"] = created_at

    return Session(
        username=username,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=_timestamp(data, "expires_at"),
        version=version,
        **kwargs,
    )


class MemorySessionStore:
    """Process-local session store.

    Useful for tests and for applications that persist tokens themselves
    through ``on_session_updated``.
    """

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    def load(self) -> Session | None:
        return self._session

    def save(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStore:
    """JSON file session store.

    The file is created with owner-only permissions. A missing, unreadable
    or corrupt file is treated as "no session".

    Attributes:
        path: Location of the session file.
    """

    def __init__(self, path: Path | str = DEFAULT_SESSION_FILE) -> None:
        self.path = Path(path)

    def load(self) -> Session | None:
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                _LOGGER.debug("Ignoring session file %s: not a JSON object", self.path)
                return None
            return session_from_dict(data)
        except (OSError, ValueError) as exc:
            _LOGGER.debug("Ignoring unreadable session file %s: %s", self.path, exc)
            return None

    def save(self, session: Session) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(mode=SESSION_FILE_MODE, exist_ok=True)
        self.path.chmod(SESSION_FILE_MODE)
        self.path.write_text(json.dumps(session_to_dict(session), indent=2), encoding="utf-8")
        _LOGGER.debug("Session saved to %s", self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        _LOGGER.debug("Session file %s removed", self.path)
