"""Parsing utilities for PowerSwitch API responses.

This module provides shared parsing functions used by the authentication
handler and PowerSwitchClient to convert raw API responses into data models.
Backend ordering of gateways and relays is preserved.
"""

from __future__ import annotations

from typing import Any

from pypowerswitch.exceptions import ServerError
from pypowerswitch.models import Client, Clients, RelayDevice, TokenResponse


__all__ = [
    "parse_client",
    "parse_clients",
    "parse_relay_device",
    "parse_relay_devices",
    "parse_token_response",
]


def _require(data: dict[str, Any], key: str, what: str) -> Any:
    if not isinstance(data, dict):
        msg = f"Unexpected {what} response: expected an object"
        raise ServerError(msg)
    value = data.get(key)
    if value is None or value == "":
        msg = f"Unexpected {what} response: missing '{key}'"
        raise ServerError(msg)
    return value


def _flag(data: dict[str, Any], key: str, what: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        msg = f"Unexpected {what} response: '{key}' is not a boolean"
        raise ServerError(msg)
    return value


def _items(data: Any, what: str) -> list[Any]:
    if not isinstance(data, dict):
        msg = f"Unexpected {what} response: expected an object"
        raise ServerError(msg)
    items = data.get("items", [])
    if not isinstance(items, list):
        msg = f"Unexpected {what} response: 'items' is not a list"
        raise ServerError(msg)
    return items


def parse_token_response(data: dict[str, Any]) -> TokenResponse:
    """Parse a token endpoint response.

    Args:
        data: Raw response in format:
              {"access_token": str, "refresh_token": str, "expires_in": int}

    Returns:
        TokenResponse instance.

    Raises:
        ServerError: If the access token is missing.
    """
    access_token = _require(data, "access_token", "token")

    expires_in = data.get("expires_in")
    try:
        expires_in = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None

    return TokenResponse(
        access_token=str(access_token),
        refresh_token=data.get("refresh_token") or None,
        expires_in=expires_in,
    )


def parse_client(data: dict[str, Any]) -> Client:
    """Parse a single gateway descriptor.

    Args:
        data: Raw gateway data in format {"id": str, "name": str, "connected": bool}.

    Returns:
        Client instance. The name falls back to the gateway ID.
    """
    client_id = str(_require(data, "id", "gateway"))
    return Client(
        client_id=client_id,
        name=data.get("name") or client_id,
        connected=_flag(data, "connected", "gateway"),
        raw_data=data,
    )


def parse_clients(data: dict[str, Any]) -> Clients:
    """Parse the gateway list response.

    Args:
        data: Raw response in format {"items": [...], "total": int}.

    Returns:
        Clients collection in backend order.
    """
    items = tuple(parse_client(item) for item in _items(data, "gateway list"))
    total = data.get("total")
    return Clients(items=items, total=total if isinstance(total, int) else len(items))


def parse_relay_device(client_id: str, data: dict[str, Any]) -> RelayDevice:
    """Parse a single relay descriptor.

    Args:
        client_id: Identifier of the gateway the relay was listed under.
        data: Raw relay data in format
              {"id": str, "instance": int, "name": str, "on": bool}.

    Returns:
        RelayDevice instance.
    """
    device_id = str(_require(data, "id", "relay"))
    instance = data.get("instance", 0)
    try:
        instance_id = int(instance)
    except (TypeError, ValueError):
        instance_id = 0

    return RelayDevice(
        device_id=device_id,
        client_id=client_id,
        name=data.get("name") or f"Relay {instance_id}",
        instance_id=instance_id,
        on=_flag(data, "on", "relay"),
        raw_data=data,
    )


def parse_relay_devices(client_id: str, data: dict[str, Any]) -> list[RelayDevice]:
    """Parse the relay list response of a gateway.

    Args:
        client_id: Identifier of the gateway.
        data: Raw response in format {"items": [...]}.

    Returns:
        New list of RelayDevice instances in backend order.
    """
    return [parse_relay_device(client_id, item) for item in _items(data, "relay list")]
