"""
Event Translator - Maps SSP poll events to bus event bodies.

Each event kind maps to one event name and a fixed field set. The hopper
and the validator differ for a few kinds (read, credit, fraud attempt,
smart emptying/emptied); everything else is shared. Unknown kinds are
still published, tagged "unknown" with the raw code.
"""

from __future__ import annotations

from typing import Any, Callable

from core.exceptions import ProtocolIntegrityError
from core.interfaces import DeviceRole, PollEvent, ResponseStatus
from devices.ssp import CALIBRATION_ERRORS, HOST_PROTOCOL_VERSION, CalibrationFailure, PollEventKind
from domain.device_session import DeviceSession
from loggers import logger


EventBody = dict[str, Any]
Formatter = Callable[[DeviceSession, PollEvent], EventBody]


# =============================================================================
# Field Formatters
# =============================================================================


def _plain(name: str) -> Formatter:
    return lambda session, event: {"event": name}


def _amount(name: str) -> Formatter:
    return lambda session, event: {"event": name, "amount": event.data1}


def _amount_cc(name: str) -> Formatter:
    return lambda session, event: {"event": name, "amount": event.data1, "cc": event.currency}


def _incomplete(name: str) -> Formatter:
    return lambda session, event: {
        "event": name,
        "dispensed": event.data1,
        "requested": event.data2,
        "cc": event.currency,
    }


def _calibration_fail(session: DeviceSession, event: PollEvent) -> EventBody:
    if event.data1 == CalibrationFailure.COMMAND_RECAL:
        return {"event": "recalibrating"}
    error = CALIBRATION_ERRORS.get(event.data1)
    if error is None:
        return {"event": "calibration fail", "error": "unknown", "code": event.data1}
    return {"event": "calibration fail", "error": error}


def _hopper_read(session: DeviceSession, event: PollEvent) -> EventBody:
    # data1 > 0 means a coin has been validated
    if event.data1 > 0:
        return {"event": "read", "channel": event.data1}
    return {"event": "reading"}


def _validator_read(session: DeviceSession, event: PollEvent) -> EventBody:
    # data1 > 0 means a note has been validated and is in escrow
    if event.data1 > 0:
        amount = session.channel_value(event.data1) * 100
        return {"event": "read", "amount": amount, "channel": event.data1}
    return {"event": "reading"}


def _hopper_credit(session: DeviceSession, event: PollEvent) -> EventBody:
    return {"event": "credit", "channel": event.data1, "cc": event.currency}


def _validator_credit(session: DeviceSession, event: PollEvent) -> EventBody:
    amount = session.channel_value(event.data1) * 100
    return {"event": "credit", "amount": amount, "channel": event.data1}


def _validator_fraud_attempt(session: DeviceSession, event: PollEvent) -> EventBody:
    return {"event": "fraud attempt", "dispensed": event.data1}


# =============================================================================
# Translation Tables
# =============================================================================


SHARED_EVENTS: dict[int, Formatter] = {
    PollEventKind.SLAVE_RESET: _plain("unit reset"),
    PollEventKind.REJECTING: _plain("rejecting"),
    PollEventKind.REJECTED: _plain("rejected"),
    PollEventKind.STACKING: _plain("stacking"),
    PollEventKind.STORED: _plain("stored"),
    PollEventKind.STACKED: _plain("stacked"),
    PollEventKind.SAFE_JAM: _plain("safe jam"),
    PollEventKind.UNSAFE_JAM: _plain("unsafe jam"),
    PollEventKind.DISABLED: _plain("disabled"),
    PollEventKind.FRAUD_ATTEMPT: _plain("fraud attempt"),
    PollEventKind.STACKER_FULL: _plain("stacker full"),
    PollEventKind.CLEARED_FROM_FRONT: _plain("cleared from front"),
    PollEventKind.CLEARED_INTO_CASHBOX: _plain("cleared into cashbox"),
    PollEventKind.CASHBOX_REMOVED: _plain("cashbox removed"),
    PollEventKind.CASHBOX_REPLACED: _plain("cashbox replaced"),
    PollEventKind.DISPENSING: _amount("dispensing"),
    PollEventKind.DISPENSED: _amount("dispensed"),
    PollEventKind.JAMMED: _plain("jammed"),
    PollEventKind.FLOATING: _amount_cc("floating"),
    PollEventKind.FLOATED: _amount_cc("floated"),
    PollEventKind.INCOMPLETE_PAYOUT: _incomplete("incomplete payout"),
    PollEventKind.INCOMPLETE_FLOAT: _incomplete("incomplete float"),
    PollEventKind.CASHBOX_PAID: _amount_cc("cashbox paid"),
    PollEventKind.COIN_CREDIT: _amount_cc("coin credit"),
    PollEventKind.EMPTYING: _plain("emptying"),
    PollEventKind.EMPTY: _plain("empty"),
    PollEventKind.SMART_EMPTYING: _plain("smart emptying"),
    PollEventKind.SMART_EMPTIED: _plain("smart emptied"),
    PollEventKind.CALIBRATION_FAIL: _calibration_fail,
}

HOPPER_EVENTS: dict[int, Formatter] = {
    **SHARED_EVENTS,
    PollEventKind.READ: _hopper_read,
    PollEventKind.CREDIT: _hopper_credit,
    PollEventKind.SMART_EMPTYING: _amount_cc("smart emptying"),
    PollEventKind.SMART_EMPTIED: _amount_cc("smart emptied"),
}

VALIDATOR_EVENTS: dict[int, Formatter] = {
    **SHARED_EVENTS,
    PollEventKind.READ: _validator_read,
    PollEventKind.CREDIT: _validator_credit,
    PollEventKind.FRAUD_ATTEMPT: _validator_fraud_attempt,
}

EVENT_TABLES: dict[DeviceRole, dict[int, Formatter]] = {
    DeviceRole.HOPPER: HOPPER_EVENTS,
    DeviceRole.VALIDATOR: VALIDATOR_EVENTS,
}


# =============================================================================
# Translator
# =============================================================================


class EventTranslator:
    """
    Translates poll events and runs the device side effects they require.
    """

    def __init__(self, protocol_version: int = HOST_PROTOCOL_VERSION) -> None:
        self._protocol_version = protocol_version

    def translate(self, session: DeviceSession, event: PollEvent) -> EventBody:
        """
        Build the event body for one poll event.

        Raises:
            MalformedResponseError: If a channel-indexed event refers to a
                channel outside the device's channel table.
        """
        formatter = EVENT_TABLES[session.role].get(event.kind)
        if formatter is None:
            return {"event": "unknown", "id": f"0x{event.kind:02X}"}
        return formatter(session, event)

    async def apply_side_effects(self, session: DeviceSession, event: PollEvent) -> None:
        """
        Run the protocol calls an event requires.

        The caller holds the session lock.

        Raises:
            ProtocolIntegrityError: If the protocol version cannot be
                re-pinned after a unit reset.
        """
        if event.kind == PollEventKind.SLAVE_RESET:
            status = await session.transport.host_protocol(self._protocol_version)
            if status != ResponseStatus.OK:
                raise ProtocolIntegrityError(
                    f"SSP host protocol failed after reset ({status.name})",
                    device_name=session.name,
                )
            logger.info(f"{session.name}: host protocol {self._protocol_version} re-pinned after reset")

        elif (
            event.kind == PollEventKind.CALIBRATION_FAIL
            and event.data1 == CalibrationFailure.COMMAND_RECAL
        ):
            status = await session.transport.run_calibration()
            logger.info(f"{session.name}: calibration started ({status.name})")
