"""
SSP Protocol Constants and Enumerations.

Command opcodes for the commands encoded by this package, poll event codes
and the lookup tables used to render device codes as text.
"""

from enum import IntEnum
from typing import Final


# Protocol constants
HOST_PROTOCOL_VERSION: Final[int] = 0x06
MIN_FLOAT_PAYOUT: Final[int] = 100  # minimum value to keep floating, minor units
FIRMWARE_VERSION_LENGTH: Final[int] = 16
DATASET_VERSION_LENGTH: Final[int] = 8
LEVEL_RECORD_LENGTH: Final[int] = 9  # 2 level + 4 value + 3 currency

# Payout/float option byte (protocol version >= 6)
OPTION_BYTE_DO: Final[int] = 0x58
OPTION_BYTE_TEST: Final[int] = 0x19

REFILL_MODE_PAYLOAD: Final[bytes] = bytes([0x05, 0x81, 0x10, 0x11, 0x01, 0x01, 0x52, 0xF5])


class Command(IntEnum):
    """SSP commands built by the codec (the transport covers the rest)."""

    DISPLAY_ON = 0x03
    DISPLAY_OFF = 0x04
    CHANNEL_SECURITY_DATA = 0x0F
    LAST_REJECT_NOTE = 0x17
    GET_FIRMWARE_VERSION = 0x20
    GET_DATASET_VERSION = 0x21
    GET_ALL_LEVELS = 0x22
    SET_REFILL_MODE = 0x30
    SET_DENOMINATION_LEVEL = 0x34
    FLOAT_AMOUNT = 0x3D
    EMPTY = 0x3F
    SMART_EMPTY = 0x52
    CONFIGURE_BEZEL = 0x54


class PollEventKind(IntEnum):
    """Event codes returned inside a POLL response."""

    SLAVE_RESET = 0xF1
    READ = 0xEF
    CREDIT = 0xEE
    REJECTING = 0xED
    REJECTED = 0xEC
    STACKING = 0xCC
    STACKED = 0xEB
    SAFE_JAM = 0xEA
    UNSAFE_JAM = 0xE9
    DISABLED = 0xE8
    FRAUD_ATTEMPT = 0xE6
    STACKER_FULL = 0xE7
    CLEARED_FROM_FRONT = 0xE1
    CLEARED_INTO_CASHBOX = 0xE2
    CASHBOX_REMOVED = 0xE3
    CASHBOX_REPLACED = 0xE4
    STORED = 0xDB
    DISPENSING = 0xDA
    DISPENSED = 0xD2
    JAMMED = 0xD5
    FLOATING = 0xD7
    FLOATED = 0xD8
    INCOMPLETE_PAYOUT = 0xDC
    INCOMPLETE_FLOAT = 0xDD
    CASHBOX_PAID = 0xDE
    COIN_CREDIT = 0xDF
    EMPTYING = 0xC2
    EMPTY = 0xC3
    SMART_EMPTYING = 0xB3
    SMART_EMPTIED = 0xB4
    CALIBRATION_FAIL = 0x83


class CalibrationFailure(IntEnum):
    """Sub-codes of the CALIBRATION_FAIL event."""

    NO_FAILURE = 0x00
    SENSOR_FLAP = 0x01
    SENSOR_EXIT = 0x02
    SENSOR_COIL1 = 0x03
    SENSOR_COIL2 = 0x04
    NOT_INITIALISED = 0x05
    CHECKSUM_ERROR = 0x06
    COMMAND_RECAL = 0x07


CALIBRATION_ERRORS: Final[dict[int, str]] = {
    CalibrationFailure.NO_FAILURE: "no error",
    CalibrationFailure.SENSOR_FLAP: "sensor flap",
    CalibrationFailure.SENSOR_EXIT: "sensor exit",
    CalibrationFailure.SENSOR_COIL1: "sensor coil 1",
    CalibrationFailure.SENSOR_COIL2: "sensor coil 2",
    CalibrationFailure.NOT_INITIALISED: "not initialized",
    CalibrationFailure.CHECKSUM_ERROR: "checksum error",
}


# Error byte following COMMAND_NOT_PROCESSED for payout and float
PAYOUT_ERRORS: Final[dict[int, str]] = {
    0x01: "not enough value in smart payout",
    0x02: "can't pay exact amount",
    0x03: "smart payout busy",
    0x04: "smart payout disabled",
}


def get_payout_error(code: int | None) -> str:
    """Get the text for a payout/float error byte."""
    if code is None:
        return "unknown"
    return PAYOUT_ERRORS.get(code, "unknown")


# LAST REJECT NOTE reason codes
REJECT_REASONS: Final[dict[int, str]] = {
    0x00: "note accepted",
    0x01: "note length incorrect",
    0x02: "undisclosed (reject reason 2)",
    0x03: "undisclosed (reject reason 3)",
    0x04: "undisclosed (reject reason 4)",
    0x05: "undisclosed (reject reason 5)",
    0x06: "channel inhibited",
    0x07: "second note inserted",
    0x08: "undisclosed (reject reason 8)",
    0x09: "note recognised in more than one channel",
    0x0A: "undisclosed (reject reason 10)",
    0x0B: "note too long",
    0x0C: "undisclosed (reject reason 12)",
    0x0D: "mechanism slow/stalled",
    0x0E: "strimming attempt detected",
    0x0F: "fraud channel reject",
    0x10: "no notes inserted",
    0x11: "peak detect fail",
    0x12: "twisted note detected",
    0x13: "escrow time-out",
    0x14: "bar code scan fail",
    0x15: "rear sensor 2 fail",
    0x16: "slot fail 1",
    0x17: "slot fail 2",
    0x18: "lens over-sample",
    0x19: "width detect fail",
    0x1A: "short note detected",
    0x1B: "note payout",
    0x1C: "unable to stack note",
}


def get_reject_reason(code: int) -> str:
    """Get human-readable reject reason, "undefined" for unknown codes."""
    return REJECT_REASONS.get(code, "undefined")


CHANNEL_SECURITY_LEVELS: Final[dict[int, str]] = {
    0: "unused",
    1: "low",
    2: "standard",
    3: "high",
    4: "inhibited",
}
