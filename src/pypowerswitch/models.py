"""Data models for PowerSwitch API requests and responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pypowerswitch.const import TOKEN_EXPIRY_MARGIN_SECONDS


if TYPE_CHECKING:
    from collections.abc import Iterator


__all__ = [
    "Client",
    "Clients",
    "RelayDevice",
    "Session",
    "TokenResponse",
]


@dataclass(frozen=True)
class TokenResponse:
    """Response from the token endpoint.

    Attributes:
        access_token: Bearer token for API requests.
        refresh_token: Token used to resume the session later, if issued.
        expires_in: Lifetime of the access token in seconds, if reported.
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


@dataclass(frozen=True)
class Session:
    """Authenticated context for gateway and relay operations.

    A session is immutable. Every login, silent login or token refresh
    installs a new instance with a higher ``version``.

    Attributes:
        username: Account the session belongs to.
        access_token: Bearer token for API requests.
        refresh_token: Token used for silent login, if the service issued one.
        expires_at: When the access token stops being accepted, if known.
        version: Monotonic counter bumped on every session transition.
        created_at: When this session instance was created.
    """

    username: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_token_response(cls, username: str, token: TokenResponse, *, version: int) -> Session:
        """Build a session from a token endpoint response."""
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=token.expires_in) if token.expires_in is not None else None
        return cls(
            username=username,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=expires_at,
            version=version,
            created_at=now,
        )

    @property
    def can_resume(self) -> bool:
        """Check if the session carries a refresh token."""
        return bool(self.refresh_token)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the access token is expired or about to expire.

        Args:
            now: Reference time. Defaults to the current UTC time.

        Returns:
            True if the token expires within the safety margin.
        """
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        return now >= self.expires_at - timedelta(seconds=TOKEN_EXPIRY_MARGIN_SECONDS)

    def __repr__(self) -> str:
        return (
            f"Session(username={self.username!r}, version={self.version}, "
            f"expires_at={self.expires_at!r}, can_resume={self.can_resume})"
        )


@dataclass(frozen=True)
class Client:
    """A gateway that aggregates one or more relay devices.

    Attributes:
        client_id: Unique gateway identifier.
        name: Human-readable gateway name.
        connected: Whether the gateway is currently reachable by the service.
        raw_data: Original API response data for debugging.
    """

    client_id: str
    name: str
    connected: bool = False
    raw_data: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class Clients:
    """Ordered, immutable collection of gateways.

    Attributes:
        items: Gateways in the order returned by the service.
        total: Total number of gateways reported by the service.
    """

    items: tuple[Client, ...] = ()
    total: int = 0

    def __iter__(self) -> Iterator[Client]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> Client:
        return self.items[index]

    def get(self, client_id: str) -> Client | None:
        """Get a gateway by ID.

        Args:
            client_id: The gateway's unique identifier.

        Returns:
            Client instance if present, None otherwise.
        """
        for client in self.items:
            if client.client_id == client_id:
                return client
        return None


@dataclass(frozen=True)
class RelayDevice:
    """A switchable relay attached to a gateway.

    Attributes:
        device_id: Unique relay identifier.
        client_id: Identifier of the gateway the relay belongs to.
        name: Human-readable relay name.
        instance_id: Relay instance number on its gateway.
        on: Relay state as last reported by the service.
        raw_data: Original API response data for debugging.
    """

    device_id: str
    client_id: str
    name: str
    instance_id: int = 0
    on: bool = False
    raw_data: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
