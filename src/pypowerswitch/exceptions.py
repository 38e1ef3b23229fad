"""Custom exceptions for pypowerswitch library.

Every failure reported by :class:`pypowerswitch.client.PowerSwitchClient` is an
instance of :class:`PowerSwitchError` carrying a machine-readable
:class:`ErrorKind` next to its human-readable message.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable category of a failure."""

    UNKNOWN = "unknown"
    AUTHENTICATION = "authentication"
    AUTHENTICATION_REQUIRED = "authentication_required"
    LOGIN_IN_PROGRESS = "login_in_progress"
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVER = "server"
    DEVICE = "device"
    INVALID_PARAMETER = "invalid_parameter"


class PowerSwitchError(Exception):
    """Base exception for all PowerSwitch errors.

    Attributes:
        kind: Category of the failure.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    @property
    def message(self) -> str:
        """Human-readable description of the failure."""
        return str(self)


class AuthenticationError(PowerSwitchError):
    """Exception raised when the service rejects credentials or tokens."""

    kind = ErrorKind.AUTHENTICATION


class AuthenticationRequiredError(AuthenticationError):
    """Exception raised when an operation needs a session and none exists."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED


class LoginInProgressError(AuthenticationError):
    """Exception raised when a login is attempted while another is in flight."""

    kind = ErrorKind.LOGIN_IN_PROGRESS


class PowerSwitchConnectionError(PowerSwitchError):
    """Exception raised for connection failures."""

    kind = ErrorKind.NETWORK


class PowerSwitchTimeoutError(PowerSwitchError):
    """Exception raised when API requests timeout."""

    kind = ErrorKind.TIMEOUT


class RateLimitError(PowerSwitchError):
    """Exception raised when API rate limit is exceeded.

    Attributes:
        retry_after: Optional number of seconds to wait before retrying.
    """

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "", retry_after: float | None = None) -> None:
        """Initialize RateLimitError.

        Args:
            message: Error message.
            retry_after: Optional number of seconds to wait before retrying.
        """
        super().__init__(message)
        self.retry_after = retry_after


class NotFoundError(PowerSwitchError):
    """Exception raised when a gateway or relay device is unknown to the service.

    Attributes:
        resource_id: Optional identifier of the missing resource.
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "", resource_id: str | None = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class ServerError(PowerSwitchError):
    """Exception raised for server-side failures and malformed responses.

    Attributes:
        status: Optional HTTP status code returned by the service.
    """

    kind = ErrorKind.SERVER

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DeviceError(PowerSwitchError):
    """Exception raised when a relay device rejects or cannot apply a command.

    Attributes:
        device_id: Optional device ID associated with the error.
    """

    kind = ErrorKind.DEVICE

    def __init__(self, message: str = "", device_id: str | None = None) -> None:
        """Initialize DeviceError.

        Args:
            message: Error message.
            device_id: Optional device ID associated with the error.
        """
        super().__init__(message)
        self.device_id = device_id


class InvalidParameterError(PowerSwitchError):
    """Exception raised for invalid parameter values.

    Attributes:
        parameter_name: Optional name of the invalid parameter.
        value: Optional value that was invalid.
    """

    kind = ErrorKind.INVALID_PARAMETER

    def __init__(
        self,
        message: str = "",
        parameter_name: str | None = None,
        value: Any = None,
    ) -> None:
        """Initialize InvalidParameterError.

        Args:
            message: Error message.
            parameter_name: Optional name of the invalid parameter.
            value: Optional value that was invalid.
        """
        super().__init__(message)
        self.parameter_name = parameter_name
        self.value = value
