"""
Unit tests for poll event translation and event side effects.
"""

import pytest

from core.exceptions import MalformedResponseError, ProtocolIntegrityError
from core.interfaces import PollEvent, ResponseStatus
from devices.ssp import CalibrationFailure, PollEventKind
from domain.event_translator import EventTranslator


@pytest.fixture
def translator():
    return EventTranslator(protocol_version=6)


# =============================================================================
# Translation
# =============================================================================


class TestValidatorEvents:
    """Tests for validator event bodies."""

    def test_read_with_channel(self, translator, validator):
        body = translator.translate(validator, PollEvent(PollEventKind.READ, data1=3))
        assert body == {"event": "read", "amount": 2000, "channel": 3}

    def test_read_without_channel(self, translator, validator):
        body = translator.translate(validator, PollEvent(PollEventKind.READ, data1=0))
        assert body == {"event": "reading"}

    def test_credit(self, translator, validator):
        body = translator.translate(validator, PollEvent(PollEventKind.CREDIT, data1=7))
        assert body == {"event": "credit", "amount": 50000, "channel": 7}

    def test_credit_outside_channel_table(self, translator, validator):
        with pytest.raises(MalformedResponseError) as exc_info:
            translator.translate(validator, PollEvent(PollEventKind.CREDIT, data1=9))
        assert exc_info.value.details["channel"] == 9

    def test_fraud_attempt(self, translator, validator):
        body = translator.translate(validator, PollEvent(PollEventKind.FRAUD_ATTEMPT, data1=150))
        assert body == {"event": "fraud attempt", "dispensed": 150}

    def test_dispensed(self, translator, validator):
        body = translator.translate(validator, PollEvent(PollEventKind.DISPENSED, data1=550))
        assert body == {"event": "dispensed", "amount": 550}

    def test_incomplete_payout(self, translator, validator):
        event = PollEvent(PollEventKind.INCOMPLETE_PAYOUT, data1=500, data2=550, currency="EUR")
        body = translator.translate(validator, event)
        assert body == {"event": "incomplete payout", "dispensed": 500, "requested": 550, "cc": "EUR"}

    def test_smart_emptied_has_no_amount(self, translator, validator):
        event = PollEvent(PollEventKind.SMART_EMPTIED, data1=1000, currency="EUR")
        assert translator.translate(validator, event) == {"event": "smart emptied"}


class TestHopperEvents:
    """Tests for hopper event bodies."""

    def test_read_with_channel(self, translator, hopper):
        body = translator.translate(hopper, PollEvent(PollEventKind.READ, data1=2))
        assert body == {"event": "read", "channel": 2}

    def test_credit(self, translator, hopper):
        event = PollEvent(PollEventKind.CREDIT, data1=4, currency="EUR")
        assert translator.translate(hopper, event) == {"event": "credit", "channel": 4, "cc": "EUR"}

    def test_fraud_attempt_is_plain(self, translator, hopper):
        event = PollEvent(PollEventKind.FRAUD_ATTEMPT, data1=150)
        assert translator.translate(hopper, event) == {"event": "fraud attempt"}

    def test_coin_credit(self, translator, hopper):
        event = PollEvent(PollEventKind.COIN_CREDIT, data1=200, currency="EUR")
        assert translator.translate(hopper, event) == {"event": "coin credit", "amount": 200, "cc": "EUR"}

    def test_smart_emptying_reports_amount(self, translator, hopper):
        event = PollEvent(PollEventKind.SMART_EMPTYING, data1=1250, currency="EUR")
        body = translator.translate(hopper, event)
        assert body == {"event": "smart emptying", "amount": 1250, "cc": "EUR"}

    def test_calibration_fail(self, translator, hopper):
        event = PollEvent(PollEventKind.CALIBRATION_FAIL, data1=CalibrationFailure.SENSOR_COIL2)
        assert translator.translate(hopper, event) == {"event": "calibration fail", "error": "sensor coil 2"}

    def test_calibration_recal(self, translator, hopper):
        event = PollEvent(PollEventKind.CALIBRATION_FAIL, data1=CalibrationFailure.COMMAND_RECAL)
        assert translator.translate(hopper, event) == {"event": "recalibrating"}

    def test_calibration_unknown_code(self, translator, hopper):
        event = PollEvent(PollEventKind.CALIBRATION_FAIL, data1=0x42)
        body = translator.translate(hopper, event)
        assert body == {"event": "calibration fail", "error": "unknown", "code": 0x42}


class TestUnknownEvents:
    """Tests for event codes without a translation."""

    def test_unknown_code(self, translator, validator):
        assert translator.translate(validator, PollEvent(0x99)) == {"event": "unknown", "id": "0x99"}

    def test_unknown_code_hopper(self, translator, hopper):
        assert translator.translate(hopper, PollEvent(0x0A)) == {"event": "unknown", "id": "0x0A"}


# =============================================================================
# Side Effects
# =============================================================================


class TestSideEffects:
    """Tests for protocol calls triggered by events."""

    @pytest.mark.asyncio
    async def test_reset_repins_protocol(self, translator, validator, validator_transport):
        await translator.apply_side_effects(validator, PollEvent(PollEventKind.SLAVE_RESET))
        assert validator_transport.calls == [("host_protocol", 6)]

    @pytest.mark.asyncio
    async def test_reset_repin_failure(self, translator, validator, validator_transport):
        validator_transport.statuses["host_protocol"] = ResponseStatus.FAILURE

        with pytest.raises(ProtocolIntegrityError) as exc_info:
            await translator.apply_side_effects(validator, PollEvent(PollEventKind.SLAVE_RESET))

        assert exc_info.value.device_name == "Ms. Note"

    @pytest.mark.asyncio
    async def test_recal_starts_calibration(self, translator, hopper, hopper_transport):
        event = PollEvent(PollEventKind.CALIBRATION_FAIL, data1=CalibrationFailure.COMMAND_RECAL)
        await translator.apply_side_effects(hopper, event)
        assert hopper_transport.call_names() == ["run_calibration"]

    @pytest.mark.asyncio
    async def test_other_events_have_no_side_effects(self, translator, hopper, hopper_transport):
        await translator.apply_side_effects(hopper, PollEvent(PollEventKind.DISPENSED, data1=10))
        event = PollEvent(PollEventKind.CALIBRATION_FAIL, data1=CalibrationFailure.SENSOR_FLAP)
        await translator.apply_side_effects(hopper, event)
        assert hopper_transport.calls == []
