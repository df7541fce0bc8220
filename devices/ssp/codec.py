"""
SSP Protocol Command Codec.

Builds the raw payload of SSP commands the device transport has no helper
for and decodes their responses into value objects.

The codec sits on top of a DeviceTransport: the transport owns framing,
CRC, encryption and wire retries; the codec only knows opcodes and field
layouts (all multi-byte fields little-endian).
"""

import logging
import struct
from typing import Optional

from core.exceptions import DeviceTimeoutError, MalformedResponseError
from core.interfaces import DeviceTransport, ResponseStatus, TransportReply
from core.value_objects import (
    ChannelSecurityResult,
    CommandResult,
    DenominationLevel,
    LevelsResult,
    RejectReasonResult,
    VersionResult,
)

from .constants import (
    CHANNEL_SECURITY_LEVELS,
    DATASET_VERSION_LENGTH,
    FIRMWARE_VERSION_LENGTH,
    LEVEL_RECORD_LENGTH,
    MIN_FLOAT_PAYOUT,
    REFILL_MODE_PAYLOAD,
    Command,
    get_reject_reason,
)


logger = logging.getLogger(__name__)

_LEVEL_RECORD = struct.Struct("<HI3s")
_FLOAT_ARGS = struct.Struct("<HI3sB")


def encode_currency(currency: str) -> bytes:
    """Encode an ISO currency code as the 3 ASCII bytes used on the wire."""
    raw = currency.encode("ascii")
    if len(raw) != 3:
        raise ValueError(f"Currency code must be 3 characters: {currency!r}")
    return raw


def decode_ascii(data: bytes) -> str:
    """Decode a fixed-width ASCII field, dropping NUL padding."""
    return data.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()


class SSPCodec:
    """
    Encoder/decoder for SSP commands sent through ``send_command``.

    Every call returns the device status inside its result object. A
    transport timeout raises DeviceTimeoutError instead, so it is never
    confused with a status the device reported. The codec never retries.

    Attributes:
        transport: Transport bound to one device address.
        device_name: Label used in log lines and errors.
    """

    def __init__(self, transport: DeviceTransport, device_name: Optional[str] = None) -> None:
        self._transport = transport
        self._device_name = device_name

    @property
    def transport(self) -> DeviceTransport:
        """Get the underlying transport."""
        return self._transport

    async def _send(self, command: Command, payload: bytes = b"") -> TransportReply:
        reply = await self._transport.send_command(bytes([command]) + payload)
        if reply.status == ResponseStatus.TIMEOUT:
            raise DeviceTimeoutError(
                f"Timeout waiting for response to {command.name}",
                device_name=self._device_name,
            )
        logger.debug(
            f"{self._device_name}: {command.name} -> 0x{int(reply.status):02X} "
            f"({len(reply.data)} data bytes)"
        )
        return reply

    def _require(self, reply: TransportReply, length: int, what: str) -> None:
        if len(reply.data) < length:
            raise MalformedResponseError(
                f"{what}: expected {length} bytes, got {len(reply.data)}",
                device_name=self._device_name,
            )

    async def _simple(self, command: Command, payload: bytes = b"") -> CommandResult:
        reply = await self._send(command, payload)
        return CommandResult(status=reply.status)

    # =========================================================================
    # Version Information
    # =========================================================================

    async def get_firmware_version(self) -> VersionResult:
        """Read the 16 character firmware version string."""
        reply = await self._send(Command.GET_FIRMWARE_VERSION)
        if not reply.ok:
            return VersionResult(status=reply.status)
        self._require(reply, FIRMWARE_VERSION_LENGTH, "firmware version")
        return VersionResult(
            status=reply.status,
            version=decode_ascii(reply.data[:FIRMWARE_VERSION_LENGTH]),
        )

    async def get_dataset_version(self) -> VersionResult:
        """Read the 8 character dataset version string."""
        reply = await self._send(Command.GET_DATASET_VERSION)
        if not reply.ok:
            return VersionResult(status=reply.status)
        self._require(reply, DATASET_VERSION_LENGTH, "dataset version")
        return VersionResult(
            status=reply.status,
            version=decode_ascii(reply.data[:DATASET_VERSION_LENGTH]),
        )

    # =========================================================================
    # Levels
    # =========================================================================

    async def get_all_levels(self) -> LevelsResult:
        """
        Read the stored level of every denomination.

        Returns:
            LevelsResult, with an empty tuple when the device reports no
            records.
        """
        reply = await self._send(Command.GET_ALL_LEVELS)
        if not reply.ok:
            return LevelsResult(status=reply.status)

        self._require(reply, 1, "all levels")
        count = reply.data[0]
        self._require(reply, 1 + count * LEVEL_RECORD_LENGTH, "all levels")

        levels = []
        for i in range(count):
            offset = 1 + i * LEVEL_RECORD_LENGTH
            level, value, currency = _LEVEL_RECORD.unpack_from(reply.data, offset)
            levels.append(
                DenominationLevel(value=value, level=level, currency=decode_ascii(currency))
            )
        return LevelsResult(status=reply.status, levels=tuple(levels))

    async def set_denomination_level(
        self, level: int, amount: int, currency: str
    ) -> CommandResult:
        """
        Set the stored level of one denomination.

        The device treats only a level of 0 as absolute, any other level is
        added to the current count.

        Args:
            level: Number of coins/notes (increment unless 0).
            amount: Denomination value in minor units.
            currency: ISO currency code.
        """
        payload = _LEVEL_RECORD.pack(level, amount, encode_currency(currency))
        return await self._simple(Command.SET_DENOMINATION_LEVEL, payload)

    # =========================================================================
    # Payout / Float
    # =========================================================================

    async def payout(self, amount: int, currency: str, option: int) -> CommandResult:
        """
        Pay out an amount through the transport helper.

        Returns:
            CommandResult carrying the error byte on COMMAND_NOT_PROCESSED.
        """
        reply = await self._transport.payout(amount, currency, option)
        if reply.status == ResponseStatus.TIMEOUT:
            raise DeviceTimeoutError(
                "Timeout waiting for response to PAYOUT",
                device_name=self._device_name,
            )
        return CommandResult(
            status=reply.status,
            error_code=None if reply.ok or not reply.data else reply.data[0],
        )

    async def float_amount(self, amount: int, currency: str, option: int) -> CommandResult:
        """
        Float the device down to ``amount``, keeping at least 100 minor units.

        Args:
            amount: Target amount in minor units.
            currency: ISO currency code.
            option: OPTION_BYTE_DO or OPTION_BYTE_TEST.
        """
        payload = _FLOAT_ARGS.pack(MIN_FLOAT_PAYOUT, amount, encode_currency(currency), option)
        reply = await self._send(Command.FLOAT_AMOUNT, payload)
        return CommandResult(
            status=reply.status,
            error_code=None if reply.ok or not reply.data else reply.data[0],
        )

    async def empty(self) -> CommandResult:
        """Move all stored coins/notes to the cashbox."""
        return await self._simple(Command.EMPTY)

    async def smart_empty(self) -> CommandResult:
        """Empty to the cashbox while counting what was moved."""
        return await self._simple(Command.SMART_EMPTY)

    # =========================================================================
    # Notes
    # =========================================================================

    async def last_reject_note(self) -> RejectReasonResult:
        """Read the reason the last note was rejected."""
        reply = await self._send(Command.LAST_REJECT_NOTE)
        if not reply.ok:
            return RejectReasonResult(status=reply.status)
        self._require(reply, 1, "last reject note")
        code = reply.data[0]
        return RejectReasonResult(status=reply.status, code=code, reason=get_reject_reason(code))

    async def channel_security_data(self) -> ChannelSecurityResult:
        """Read the security level configured for each channel."""
        reply = await self._send(Command.CHANNEL_SECURITY_DATA)
        if not reply.ok:
            return ChannelSecurityResult(status=reply.status)
        self._require(reply, 1, "channel security data")
        count = reply.data[0]
        self._require(reply, 1 + count, "channel security data")
        channels = {
            channel: CHANNEL_SECURITY_LEVELS.get(reply.data[channel], "unknown")
            for channel in range(1, count + 1)
        }
        return ChannelSecurityResult(status=reply.status, channels=channels)

    async def set_refill_mode(self) -> CommandResult:
        """Put the payout into refill mode (notes go to storage first)."""
        return await self._simple(Command.SET_REFILL_MODE, REFILL_MODE_PAYLOAD)

    # =========================================================================
    # Bezel / Display
    # =========================================================================

    async def configure_bezel(
        self, red: int, green: int, blue: int, non_volatile: bool = False
    ) -> CommandResult:
        """Set the bezel colour, optionally stored across power cycles."""
        payload = bytes([red & 0xFF, green & 0xFF, blue & 0xFF, 1 if non_volatile else 0])
        return await self._simple(Command.CONFIGURE_BEZEL, payload)

    async def display_on(self) -> CommandResult:
        return await self._simple(Command.DISPLAY_ON)

    async def display_off(self) -> CommandResult:
        return await self._simple(Command.DISPLAY_OFF)
