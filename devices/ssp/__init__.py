"""
SSP Protocol Package.

Opcodes, event codes and the command codec for ITL SMART Hopper and
NV200/SMART Payout devices speaking SSP protocol version 6.

Example:
    from devices.ssp import SSPCodec

    codec = SSPCodec(transport, device_name="Ms. Note")
    levels = await codec.get_all_levels()
"""

from .codec import (
    SSPCodec,
    decode_ascii,
    encode_currency,
)
from .constants import (
    CALIBRATION_ERRORS,
    CHANNEL_SECURITY_LEVELS,
    HOST_PROTOCOL_VERSION,
    OPTION_BYTE_DO,
    OPTION_BYTE_TEST,
    CalibrationFailure,
    Command,
    PollEventKind,
    get_payout_error,
    get_reject_reason,
)


__all__ = [
    # Codec
    'SSPCodec',
    'decode_ascii',
    'encode_currency',

    # Constants and enums
    'CALIBRATION_ERRORS',
    'CHANNEL_SECURITY_LEVELS',
    'HOST_PROTOCOL_VERSION',
    'OPTION_BYTE_DO',
    'OPTION_BYTE_TEST',
    'CalibrationFailure',
    'Command',
    'PollEventKind',

    # Utility functions
    'get_payout_error',
    'get_reject_reason',
]
