"""
Value Objects for the payout daemon.

Immutable results decoded from SSP responses.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.interfaces import ResponseStatus


@dataclass(frozen=True)
class DenominationLevel:
    """
    Stored level of one denomination.

    Attributes:
        value: Denomination value in minor units.
        level: Number of coins/notes stored.
        currency: ISO currency code.
    """

    value: int
    level: int
    currency: str

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "level": self.level, "cc": self.currency}


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of a codec operation.

    Attributes:
        status: Device status byte of the response.
        error_code: Extra error byte sent with COMMAND_NOT_PROCESSED, if any.
    """

    status: ResponseStatus
    error_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.OK


@dataclass(frozen=True)
class VersionResult(CommandResult):
    version: str = ""


@dataclass(frozen=True)
class LevelsResult(CommandResult):
    levels: tuple[DenominationLevel, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RejectReasonResult(CommandResult):
    code: int = 0
    reason: str = "undefined"


@dataclass(frozen=True)
class ChannelSecurityResult(CommandResult):
    # channel number (1-based) -> security level name
    channels: dict[int, str] = field(default_factory=dict)
