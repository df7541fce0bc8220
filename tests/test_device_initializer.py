"""
Unit tests for the device startup sequence.
"""

import asyncio

import pytest

from core.interfaces import DeviceRole, ResponseStatus, TransportReply
from devices.ssp import Command
from domain.device_initializer import DeviceInitializer
from domain.device_session import DeviceSession, SessionRegistry
from infrastructure.settings import ROUTE_CASHBOX, ROUTE_STORAGE

from conftest import FakeTransport


OK = ResponseStatus.OK


@pytest.fixture
def initializer(settings):
    return DeviceInitializer(settings)


def script_versions(transport: FakeTransport) -> None:
    transport.replies[Command.GET_FIRMWARE_VERSION] = TransportReply(OK, b"NV0200433220000\x00")
    transport.replies[Command.GET_DATASET_VERSION] = TransportReply(OK, b"EUR01610")


# =============================================================================
# Handshake
# =============================================================================


class TestInitialize:
    """Tests for the per-device handshake."""

    @pytest.mark.asyncio
    async def test_handshake_order(self, initializer, validator, validator_transport):
        validator.ready = False
        script_versions(validator_transport)

        assert await initializer.initialize(validator) is True

        assert validator.ready
        assert validator_transport.call_names() == [
            "sync",
            "setup_encryption",
            "host_protocol",
            "setup_request",
            "send_command",
            "send_command",
            "enable",
        ]
        assert ("setup_encryption", validator.session_key) in validator_transport.calls
        assert ("host_protocol", 6) in validator_transport.calls
        assert validator.capabilities.unit_type == 0x06
        assert len(validator.channels) == 7

    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", ["sync", "setup_encryption", "host_protocol", "setup_request", "enable"])
    async def test_failing_step_leaves_device_not_ready(self, initializer, validator, validator_transport, step):
        script_versions(validator_transport)
        validator_transport.statuses[step] = ResponseStatus.TIMEOUT

        assert await initializer.initialize(validator) is False

        assert not validator.ready
        assert validator_transport.call_names()[-1] == step

    @pytest.mark.asyncio
    async def test_version_failures_are_not_fatal(self, initializer, validator, validator_transport):
        validator_transport.replies[Command.GET_FIRMWARE_VERSION] = TransportReply.timeout()

        assert await initializer.initialize(validator) is True
        assert validator.ready

    @pytest.mark.asyncio
    async def test_no_transport(self, initializer):
        session = DeviceSession(0x10, "Mr. Coin", DeviceRole.HOPPER, 0x0123456701234567)
        session.ready = True

        assert await initializer.initialize(session) is False
        assert not session.ready

    @pytest.mark.asyncio
    async def test_waits_for_line(self, initializer, hopper, validator, validator_transport):
        await hopper.lock.acquire()
        task = asyncio.create_task(initializer.initialize(validator))
        await asyncio.sleep(0)
        assert validator_transport.calls == []

        hopper.lock.release()
        assert await task is True
        assert validator_transport.call_names()[0] == "sync"


# =============================================================================
# Configuration
# =============================================================================


class TestConfigure:
    """Tests for role specific configuration."""

    @pytest.mark.asyncio
    async def test_configure_hopper(self, initializer, hopper, hopper_transport):
        await initializer.configure_hopper(hopper)

        assert hopper_transport.calls == [
            ("set_coinmech_inhibits", 10, "EUR", True),
            ("set_coinmech_inhibits", 20, "EUR", True),
            ("set_coinmech_inhibits", 50, "EUR", True),
            ("set_coinmech_inhibits", 100, "EUR", True),
            ("set_coinmech_inhibits", 200, "EUR", True),
        ]
        assert hopper.ready

    @pytest.mark.asyncio
    async def test_configure_validator(self, initializer, validator, validator_transport):
        validator.channel_inhibits = 0x3F

        await initializer.configure_validator(validator)

        assert validator_transport.sent == [bytes([0x30, 0x05, 0x81, 0x10, 0x11, 0x01, 0x01, 0x52, 0xF5])]
        routes = [call[1:] for call in validator_transport.calls if call[0] == "set_route"]
        assert routes[0] == (500, "EUR", ROUTE_CASHBOX)
        assert routes[-1] == (50000, "EUR", ROUTE_STORAGE)
        assert len(routes) == 7
        assert validator_transport.call_names()[-2:] == ["set_inhibits", "enable_payout"]
        assert ("set_inhibits", 0, 0) in validator_transport.calls
        assert ("enable_payout", 0x06) in validator_transport.calls
        assert validator.channel_inhibits == 0x00
        assert validator.ready

    @pytest.mark.asyncio
    async def test_refill_mode_failure_is_logged(self, initializer, validator, validator_transport):
        validator_transport.replies[Command.SET_REFILL_MODE] = TransportReply.timeout()

        await initializer.configure_validator(validator)

        assert validator.ready

    @pytest.mark.asyncio
    async def test_enable_payout_failure(self, initializer, validator, validator_transport):
        validator_transport.statuses["enable_payout"] = ResponseStatus.FAILURE

        await initializer.configure_validator(validator)

        assert not validator.ready

    @pytest.mark.asyncio
    async def test_inhibit_failure(self, initializer, validator, validator_transport):
        validator_transport.statuses["set_inhibits"] = ResponseStatus.FAILURE

        await initializer.configure_validator(validator)

        assert not validator.ready
        assert "enable_payout" not in validator_transport.call_names()

    @pytest.mark.asyncio
    async def test_not_ready_device_is_not_configured(self, initializer, hopper, hopper_transport):
        hopper.ready = False

        await initializer.configure_hopper(hopper)

        assert hopper_transport.calls == []


# =============================================================================
# Startup
# =============================================================================


class TestInitializeAll:
    """Tests for the startup of both devices."""

    @pytest.mark.asyncio
    async def test_validator_first(self, initializer, hopper_transport, validator_transport):
        order = []
        for name, transport in (("hopper", hopper_transport), ("validator", validator_transport)):
            script_versions(transport)
            sync = transport.sync

            async def tracked_sync(name=name, sync=sync):
                order.append(name)
                return await sync()

            transport.sync = tracked_sync

        registry = SessionRegistry()
        registry.register(DeviceSession(0x10, "Mr. Coin", DeviceRole.HOPPER, 1, hopper_transport))
        registry.register(DeviceSession(0x00, "Ms. Note", DeviceRole.VALIDATOR, 1, validator_transport))

        results = await initializer.initialize_all(registry)

        assert order == ["validator", "hopper"]
        assert results == {"Mr. Coin": True, "Ms. Note": True}
        assert "enable_payout" in validator_transport.call_names()
        assert "set_coinmech_inhibits" in hopper_transport.call_names()

    @pytest.mark.asyncio
    async def test_one_device_failing(self, initializer, hopper_transport, validator_transport):
        hopper_transport.statuses["sync"] = ResponseStatus.TIMEOUT
        registry = SessionRegistry()
        registry.register(DeviceSession(0x10, "Mr. Coin", DeviceRole.HOPPER, 1, hopper_transport))
        registry.register(DeviceSession(0x00, "Ms. Note", DeviceRole.VALIDATOR, 1, validator_transport))

        results = await initializer.initialize_all(registry)

        assert results == {"Mr. Coin": False, "Ms. Note": True}
        assert "set_coinmech_inhibits" not in hopper_transport.call_names()
