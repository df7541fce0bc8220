"""
Custom exceptions for the payout daemon.

Provides a hierarchy of typed exceptions for better error handling
and more informative error messages.
"""

from typing import Any, Optional


class PayoutDaemonError(Exception):
    """Base exception for all payout daemon errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(PayoutDaemonError):
    """Base exception for device-related errors."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class DeviceTimeoutError(DeviceError):
    """The transport got no response within its timeout and retries."""

    pass


class DeviceNotReadyError(DeviceError):
    """Command addressed to a device whose initialization did not complete."""

    pass


class MalformedResponseError(DeviceError):
    """The device or transport returned data that violates the protocol layout."""

    pass


class ProtocolIntegrityError(DeviceError):
    """The device is in an unknown protocol state; continuing is unsafe."""

    pass


# =============================================================================
# Infrastructure Errors
# =============================================================================


class MessageBusError(PayoutDaemonError):
    """Base exception for message bus errors."""

    pass


class RedisConnectionError(MessageBusError):
    """Error connecting to Redis."""

    pass


class TransportLoadError(PayoutDaemonError):
    """The serial line or the device transport could not be set up."""

    pass
