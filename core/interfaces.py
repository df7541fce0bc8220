"""
Interfaces (Protocols) for the payout daemon.

Defines the contract of the SSP device transport and of the message
publisher using Python's Protocol for structural subtyping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional, Protocol, runtime_checkable


# =============================================================================
# Enums
# =============================================================================


class DeviceRole(str, Enum):
    """Role of a cash device on the SSP bus."""

    HOPPER = "hopper"
    VALIDATOR = "validator"


class ResponseStatus(IntEnum):
    """Status byte leading every SSP response (TIMEOUT is transport-local)."""

    OK = 0xF0
    UNKNOWN_COMMAND = 0xF2
    INCORRECT_PARAMETERS = 0xF3
    INVALID_PARAMETER = 0xF4
    COMMAND_NOT_PROCESSED = 0xF5
    SOFTWARE_ERROR = 0xF6
    CHECKSUM_ERROR = 0xF7
    FAILURE = 0xF8
    HEADER_FAILURE = 0xF9
    KEY_NOT_SET = 0xFA
    TIMEOUT = 0xFF

    @classmethod
    def from_byte(cls, value: int) -> "ResponseStatus":
        """Map a raw status byte, unknown values count as FAILURE."""
        try:
            return cls(value)
        except ValueError:
            return cls.FAILURE


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class TransportReply:
    """
    Result of one transport call.

    Attributes:
        status: Device status byte, or TIMEOUT when nothing came back.
        data: Response bytes following the status byte.
    """

    status: ResponseStatus
    data: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.OK

    @classmethod
    def timeout(cls) -> "TransportReply":
        return cls(ResponseStatus.TIMEOUT)


@dataclass(frozen=True)
class ChannelData:
    """One channel of a device dataset (value in major currency units)."""

    channel: int
    value: int
    currency: str


@dataclass(frozen=True)
class SetupInfo:
    """Capabilities reported by the SETUP REQUEST command."""

    unit_type: int
    channels: tuple[ChannelData, ...] = field(default_factory=tuple)
    firmware_version: Optional[str] = None

    @property
    def number_of_channels(self) -> int:
        return len(self.channels)


@dataclass(frozen=True)
class PollEvent:
    """
    One event returned by a POLL command.

    Attributes:
        kind: SSP event code.
        data1: First data value (channel, amount or sub-code).
        data2: Second data value (requested amount of incomplete operations).
        currency: ISO currency code for value-reporting events.
    """

    kind: int
    data1: int = 0
    data2: int = 0
    currency: str = ""


@dataclass(frozen=True)
class PollResult:
    """Status and events of one POLL command."""

    status: ResponseStatus
    events: tuple[PollEvent, ...] = field(default_factory=tuple)


# =============================================================================
# Transport Interface
# =============================================================================


@runtime_checkable
class DeviceTransport(Protocol):
    """
    Encrypted SSP transport bound to one device address.

    Implementations handle framing, CRC, eSSP key exchange and retries.
    Every call returns once the device answered or the retries are used up.
    """

    async def sync(self) -> ResponseStatus:
        ...

    async def setup_encryption(self, key: int) -> ResponseStatus:
        ...

    async def host_protocol(self, version: int) -> ResponseStatus:
        ...

    async def setup_request(self) -> tuple[ResponseStatus, Optional[SetupInfo]]:
        ...

    async def enable(self) -> ResponseStatus:
        ...

    async def disable(self) -> ResponseStatus:
        ...

    async def set_inhibits(self, low_channels: int, high_channels: int) -> ResponseStatus:
        ...

    async def enable_payout(self, unit_type: int) -> ResponseStatus:
        ...

    async def set_route(self, amount: int, currency: str, route: int) -> ResponseStatus:
        ...

    async def set_coinmech_inhibits(
        self, value: int, currency: str, enabled: bool
    ) -> ResponseStatus:
        ...

    async def payout(self, amount: int, currency: str, option: int) -> TransportReply:
        ...

    async def poll(self) -> PollResult:
        ...

    async def run_calibration(self) -> ResponseStatus:
        ...

    async def send_command(self, payload: bytes) -> TransportReply:
        """Send an opcode plus arguments, return the decoded response."""
        ...

    async def close(self) -> None:
        ...


# =============================================================================
# Publisher Interface
# =============================================================================


@runtime_checkable
class MessagePublisher(Protocol):
    """Protocol for publishing JSON bodies to bus topics."""

    async def publish(self, topic: str, body: dict[str, Any]) -> None:
        ...
