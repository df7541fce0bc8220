"""
Pytest configuration for payout daemon tests.

Adds the project root to sys.path so that tests can import modules
properly, and provides a scripted device transport and an in-memory
publisher.
"""

import asyncio
import sys
from collections import deque
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import pytest


# Add the project root to sys.path for proper imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


from core.interfaces import (  # noqa: E402
    ChannelData,
    DeviceRole,
    PollResult,
    ResponseStatus,
    SetupInfo,
    TransportReply,
)
from domain.device_session import DeviceSession, SessionRegistry  # noqa: E402
from infrastructure.redis_publisher import ResponsePublisher  # noqa: E402
from infrastructure.settings import PayoutSettings, Settings  # noqa: E402


# =============================================================================
# Fakes
# =============================================================================


class FakeTransport:
    """
    Scripted DeviceTransport.

    Every call is recorded in ``calls``; raw commands are also recorded in
    ``sent``. Status results come from ``statuses`` (default OK), raw
    command replies from ``replies`` keyed by opcode, poll results are
    consumed from ``polls``.
    """

    def __init__(self, setup_info: Optional[SetupInfo] = None) -> None:
        self.setup_info = setup_info or SetupInfo(unit_type=0x03)
        self.statuses: dict[str, ResponseStatus] = {}
        self.replies: dict[int, Any] = {}
        self.polls: deque[PollResult] = deque()
        self.payout_reply = TransportReply(ResponseStatus.OK)
        self.calls: list[tuple] = []
        self.sent: list[bytes] = []
        self.closed = False

    def _status(self, name: str, *args: Any) -> ResponseStatus:
        self.calls.append((name, *args))
        return self.statuses.get(name, ResponseStatus.OK)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def sync(self) -> ResponseStatus:
        return self._status("sync")

    async def setup_encryption(self, key: int) -> ResponseStatus:
        return self._status("setup_encryption", key)

    async def host_protocol(self, version: int) -> ResponseStatus:
        return self._status("host_protocol", version)

    async def setup_request(self):
        status = self._status("setup_request")
        return status, (self.setup_info if status == ResponseStatus.OK else None)

    async def enable(self) -> ResponseStatus:
        return self._status("enable")

    async def disable(self) -> ResponseStatus:
        return self._status("disable")

    async def set_inhibits(self, low_channels: int, high_channels: int) -> ResponseStatus:
        return self._status("set_inhibits", low_channels, high_channels)

    async def enable_payout(self, unit_type: int) -> ResponseStatus:
        return self._status("enable_payout", unit_type)

    async def set_route(self, amount: int, currency: str, route: int) -> ResponseStatus:
        return self._status("set_route", amount, currency, route)

    async def set_coinmech_inhibits(self, value: int, currency: str, enabled: bool) -> ResponseStatus:
        return self._status("set_coinmech_inhibits", value, currency, enabled)

    async def payout(self, amount: int, currency: str, option: int) -> TransportReply:
        self.calls.append(("payout", amount, currency, option))
        return self.payout_reply

    async def poll(self) -> PollResult:
        self.calls.append(("poll",))
        if self.polls:
            return self.polls.popleft()
        return PollResult(ResponseStatus.OK)

    async def run_calibration(self) -> ResponseStatus:
        return self._status("run_calibration")

    async def send_command(self, payload: bytes) -> TransportReply:
        self.calls.append(("send_command", payload))
        self.sent.append(payload)
        reply = self.replies.get(payload[0], TransportReply(ResponseStatus.OK))
        if isinstance(reply, list):
            return reply.pop(0)
        return reply

    async def close(self) -> None:
        self.closed = True


class RecordingPublisher:
    """MessagePublisher keeping every published message in memory."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, body: dict[str, Any]) -> None:
        self.messages.append((topic, body))

    def bodies(self, topic: Optional[str] = None) -> list[dict[str, Any]]:
        return [body for t, body in self.messages if topic is None or t == topic]


# =============================================================================
# Fixtures
# =============================================================================


VALIDATOR_CHANNELS = (
    ChannelData(1, 5, "EUR"),
    ChannelData(2, 10, "EUR"),
    ChannelData(3, 20, "EUR"),
    ChannelData(4, 50, "EUR"),
    ChannelData(5, 100, "EUR"),
    ChannelData(6, 200, "EUR"),
    ChannelData(7, 500, "EUR"),
)

HOPPER_CHANNELS = (
    ChannelData(1, 10, "EUR"),
    ChannelData(2, 20, "EUR"),
    ChannelData(3, 50, "EUR"),
    ChannelData(4, 100, "EUR"),
    ChannelData(5, 200, "EUR"),
)


@pytest.fixture
def settings() -> Settings:
    """Settings without delays."""
    base = Settings()
    return replace(
        base,
        payout=replace(
            base.payout,
            settle_delay_s=0.0,
            poll_interval_s=0.01,
            quit_check_interval_s=0.01,
        ),
    )


@pytest.fixture
def payout_settings(settings: Settings) -> PayoutSettings:
    return settings.payout


@pytest.fixture
def hopper_transport() -> FakeTransport:
    return FakeTransport(SetupInfo(unit_type=0x03, channels=HOPPER_CHANNELS))


@pytest.fixture
def validator_transport() -> FakeTransport:
    return FakeTransport(SetupInfo(unit_type=0x06, channels=VALIDATOR_CHANNELS))


@pytest.fixture
def line_lock() -> asyncio.Lock:
    """Lock of the serial line both devices share."""
    return asyncio.Lock()


@pytest.fixture
def hopper(hopper_transport: FakeTransport, line_lock: asyncio.Lock) -> DeviceSession:
    session = DeviceSession(
        0x10, "Mr. Coin", DeviceRole.HOPPER, 0x0123456701234567, hopper_transport, lock=line_lock
    )
    session.set_capabilities(hopper_transport.setup_info)
    session.ready = True
    return session


@pytest.fixture
def validator(validator_transport: FakeTransport, line_lock: asyncio.Lock) -> DeviceSession:
    session = DeviceSession(
        0x00, "Ms. Note", DeviceRole.VALIDATOR, 0x0123456701234567, validator_transport, lock=line_lock
    )
    session.set_capabilities(validator_transport.setup_info)
    session.ready = True
    return session


@pytest.fixture
def sessions(hopper: DeviceSession, validator: DeviceSession) -> SessionRegistry:
    registry = SessionRegistry()
    registry.register(hopper)
    registry.register(validator)
    return registry


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def replies(publisher: RecordingPublisher, settings: Settings) -> ResponsePublisher:
    return ResponsePublisher(publisher, settings.topics)


@pytest.fixture
def shutdown() -> asyncio.Event:
    return asyncio.Event()
