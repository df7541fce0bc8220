"""
Core module - Foundation layer with no external dependencies.

Contains:
- Exceptions
- Interfaces (Protocols) of the device transport and the publisher
- Value Objects
"""

from .exceptions import (
    PayoutDaemonError,
    DeviceError,
    DeviceTimeoutError,
    DeviceNotReadyError,
    MalformedResponseError,
    ProtocolIntegrityError,
    MessageBusError,
    RedisConnectionError,
    TransportLoadError,
)
from .interfaces import (
    DeviceRole,
    ResponseStatus,
    TransportReply,
    ChannelData,
    SetupInfo,
    PollEvent,
    PollResult,
    DeviceTransport,
    MessagePublisher,
)
from .value_objects import (
    DenominationLevel,
    CommandResult,
    VersionResult,
    LevelsResult,
    RejectReasonResult,
    ChannelSecurityResult,
)


__all__ = [
    # Exceptions
    "PayoutDaemonError",
    "DeviceError",
    "DeviceTimeoutError",
    "DeviceNotReadyError",
    "MalformedResponseError",
    "ProtocolIntegrityError",
    "MessageBusError",
    "RedisConnectionError",
    "TransportLoadError",
    # Interfaces
    "DeviceRole",
    "ResponseStatus",
    "TransportReply",
    "ChannelData",
    "SetupInfo",
    "PollEvent",
    "PollResult",
    "DeviceTransport",
    "MessagePublisher",
    # Value Objects
    "DenominationLevel",
    "CommandResult",
    "VersionResult",
    "LevelsResult",
    "RejectReasonResult",
    "ChannelSecurityResult",
]
