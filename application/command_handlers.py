"""
Command handlers of the payout daemon.

Each handler publishes exactly one response. Handlers run while the
dispatcher holds the target device's lock, after the settle delay.
"""

from __future__ import annotations

from typing import Any, Final, Optional

from application.command_handler import CommandHandler, RequestContext
from core.exceptions import DeviceTimeoutError
from core.interfaces import ResponseStatus
from core.value_objects import CommandResult
from devices.ssp import OPTION_BYTE_DO, OPTION_BYTE_TEST, get_payout_error
from loggers import logger


MAX_AMOUNT: Final[int] = 0xFFFFFFFF  # 4-byte amount field
MAX_LEVEL: Final[int] = 0xFFFF  # 2-byte level field
HIGH_CHANNELS: Final[int] = 0xFF  # channels 9-16, not in use


# =============================================================================
# Request Validation
# =============================================================================


async def require_number(ctx: RequestContext, name: str, maximum: int = MAX_AMOUNT) -> Optional[int]:
    """
    Read a whole, non-negative number property.

    Publishes the validation error and returns None when the property is
    unusable, so no protocol command is sent.
    """
    value: Any = ctx.body.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        await ctx.error(f"property '{name}' missing or not a number")
        return None

    if isinstance(value, float):
        if not value.is_integer():
            await ctx.error(f"property '{name}' must be a whole number of minor currency units")
            return None
        value = int(value)

    if value < 0 or value > maximum:
        await ctx.error(f"property '{name}' out of range")
        return None
    return value


async def require_channels(ctx: RequestContext) -> Optional[int]:
    """
    Read the "channels" property as a bit mask of channels 1-8.

    Every digit 1-8 in the string selects a channel, other characters are
    ignored.
    """
    channels = ctx.body.get("channels")
    if not isinstance(channels, str):
        await ctx.error("property 'channels' missing or not a string")
        return None
    return channels_to_mask(channels)


def channels_to_mask(channels: str) -> int:
    mask = 0
    for channel in range(1, 9):
        if str(channel) in channels:
            mask |= 1 << (channel - 1)
    return mask


# =============================================================================
# Empty / Enable / Disable
# =============================================================================


async def handle_empty(ctx: RequestContext) -> None:
    """Start emptying; the device reports progress as events."""
    try:
        if ctx.command == "smart-empty":
            await ctx.session.codec.smart_empty()
        else:
            await ctx.session.codec.empty()
    except DeviceTimeoutError as e:
        logger.warning(f"{ctx.session.name}: {ctx.command}: {e}")
    await ctx.accepted()


async def handle_enable(ctx: RequestContext) -> None:
    await ctx.session.transport.enable()
    await ctx.accepted()


async def handle_disable(ctx: RequestContext) -> None:
    await ctx.session.transport.disable()
    await ctx.accepted()


# =============================================================================
# Channel Inhibits
# =============================================================================


async def _set_inhibits(ctx: RequestContext, mask: int) -> None:
    session = ctx.session
    status = await session.transport.set_inhibits(mask, HIGH_CHANNELS)
    if status == ResponseStatus.OK:
        # Only an acknowledged mask becomes the session state
        session.apply_inhibits(mask)
        await ctx.ok()
    else:
        logger.warning(f"{session.name}: set inhibits 0x{mask:02X} failed ({status.name})")
        await ctx.failed()


async def handle_enable_channels(ctx: RequestContext) -> None:
    """Enable the listed channels, leaving the others unchanged."""
    selected = await require_channels(ctx)
    if selected is None:
        return
    await _set_inhibits(ctx, ctx.session.channel_inhibits | selected)


async def handle_disable_channels(ctx: RequestContext) -> None:
    """Disable the listed channels, leaving the others unchanged."""
    selected = await require_channels(ctx)
    if selected is None:
        return
    await _set_inhibits(ctx, ctx.session.channel_inhibits & ~selected & 0xFF)


async def handle_inhibit_channels(ctx: RequestContext) -> None:
    """Enable every channel except the listed ones."""
    selected = await require_channels(ctx)
    if selected is None:
        return
    await _set_inhibits(ctx, 0xFF & ~selected)


# =============================================================================
# Payout / Float
# =============================================================================


async def _reply_payout_result(ctx: RequestContext, result: CommandResult) -> None:
    if result.ok:
        await ctx.ok()
        return
    # A failed payout answers 0xF5 followed by an error byte
    await ctx.error(get_payout_error(result.error_code))


async def handle_payout(ctx: RequestContext) -> None:
    """Handle "do-payout" and "test-payout"."""
    amount = await require_number(ctx, "amount")
    if amount is None:
        return

    option = OPTION_BYTE_DO if ctx.command == "do-payout" else OPTION_BYTE_TEST
    try:
        result = await ctx.session.codec.payout(amount, ctx.settings.currency, option)
    except DeviceTimeoutError as e:
        logger.warning(f"{ctx.session.name}: {ctx.command}: {e}")
        result = CommandResult(status=ResponseStatus.TIMEOUT)
    await _reply_payout_result(ctx, result)


async def handle_float(ctx: RequestContext) -> None:
    """Handle "do-float" and "test-float"."""
    amount = await require_number(ctx, "amount")
    if amount is None:
        return

    option = OPTION_BYTE_DO if ctx.command == "do-float" else OPTION_BYTE_TEST
    try:
        result = await ctx.session.codec.float_amount(amount, ctx.settings.currency, option)
    except DeviceTimeoutError as e:
        logger.warning(f"{ctx.session.name}: {ctx.command}: {e}")
        result = CommandResult(status=ResponseStatus.TIMEOUT)
    await _reply_payout_result(ctx, result)


# =============================================================================
# Information
# =============================================================================


async def handle_get_firmware_version(ctx: RequestContext) -> None:
    result = await ctx.session.codec.get_firmware_version()
    if not result.ok:
        await ctx.failed()
        return
    await ctx.reply_with(
        {"msgId": ctx.response_id, "correlId": ctx.msg_id, "version": result.version}
    )


async def handle_get_dataset_version(ctx: RequestContext) -> None:
    result = await ctx.session.codec.get_dataset_version()
    if not result.ok:
        await ctx.failed()
        return
    await ctx.reply_with(
        {"msgId": ctx.response_id, "correlId": ctx.msg_id, "version": result.version}
    )


async def handle_get_all_levels(ctx: RequestContext) -> None:
    result = await ctx.session.codec.get_all_levels()
    if not result.ok:
        await ctx.failed()
        return
    await ctx.reply_with(
        {
            "msgId": ctx.response_id,
            "correlId": ctx.msg_id,
            "levels": [level.to_dict() for level in result.levels],
        }
    )


async def handle_set_denomination_level(ctx: RequestContext) -> None:
    """
    Set the absolute level of one denomination.

    The device adds non-zero levels to the stored count, so the level is
    reset to zero first (result ignored) and then set.
    """
    level_field = await require_number(ctx, "level")
    if level_field is None:
        return
    amount_field = await require_number(ctx, "amount")
    if amount_field is None:
        return

    if ctx.settings.swap_denomination_fields:
        level, amount = amount_field, level_field
        level_property = "amount"
    else:
        level, amount = level_field, amount_field
        level_property = "level"

    if level > MAX_LEVEL:
        await ctx.error(f"property '{level_property}' out of range")
        return

    codec = ctx.session.codec
    currency = ctx.settings.currency

    if level > 0:
        try:
            await codec.set_denomination_level(0, amount, currency)
        except DeviceTimeoutError as e:
            logger.warning(f"{ctx.session.name}: resetting level of {amount} failed: {e}")

    result = await codec.set_denomination_level(level, amount, currency)
    await ctx.ok_or_failed(result.ok)


async def handle_last_reject_note(ctx: RequestContext) -> None:
    try:
        result = await ctx.session.codec.last_reject_note()
    except DeviceTimeoutError:
        await ctx.reply_with({"correlId": ctx.msg_id, "timeout": "last reject note"})
        return

    if not result.ok:
        await ctx.failed()
        return
    await ctx.reply_with(
        {
            "msgId": ctx.response_id,
            "correlId": ctx.msg_id,
            "reason": result.reason,
            "code": result.code,
        }
    )


async def handle_channel_security_data(ctx: RequestContext) -> None:
    result = await ctx.session.codec.channel_security_data()
    if not result.ok:
        await ctx.failed()
        return
    await ctx.reply_with(
        {
            "msgId": ctx.response_id,
            "correlId": ctx.msg_id,
            "channels": {str(channel): level for channel, level in result.channels.items()},
        }
    )


# =============================================================================
# Registration
# =============================================================================


def register_default_commands(handler: CommandHandler) -> CommandHandler:
    """Register all device commands on a CommandHandler."""
    handler.register("empty", handle_empty, "Move all stored cash to the cashbox")
    handler.register("smart-empty", handle_empty, "Empty to the cashbox, counting what was moved")
    handler.register("enable", handle_enable, "Enable the device")
    handler.register("disable", handle_disable, "Disable the device")
    handler.register("enable-channels", handle_enable_channels, "Enable the listed channels")
    handler.register("disable-channels", handle_disable_channels, "Disable the listed channels")
    handler.register("inhibit-channels", handle_inhibit_channels, "Enable all but the listed channels")
    handler.register("test-float", handle_float, "Check whether a float would succeed")
    handler.register("do-float", handle_float, "Float the device down to an amount")
    handler.register("test-payout", handle_payout, "Check whether a payout would succeed")
    handler.register("do-payout", handle_payout, "Pay out an amount")
    handler.register("get-firmware-version", handle_get_firmware_version, "Read the firmware version")
    handler.register("get-dataset-version", handle_get_dataset_version, "Read the dataset version")
    handler.register("channel-security-data", handle_channel_security_data, "Read channel security levels")
    handler.register("get-all-levels", handle_get_all_levels, "Read all denomination levels")
    handler.register("set-denomination-level", handle_set_denomination_level, "Set a denomination level")
    handler.register("last-reject-note", handle_last_reject_note, "Read the last note reject reason")
    return handler
