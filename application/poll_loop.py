"""
Poll Loop - Periodic device polling.

Polls every ready device once per period (hopper first, then validator),
translates the returned events and publishes one message per event as
soon as it is translated.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from core.exceptions import DeviceError, MalformedResponseError, ProtocolIntegrityError
from core.interfaces import DeviceRole, ResponseStatus
from domain.device_session import DeviceSession, SessionRegistry
from domain.event_translator import EventTranslator
from infrastructure.redis_publisher import ResponsePublisher
from infrastructure.settings import PayoutSettings
from loggers import logger


POLL_ORDER: tuple[DeviceRole, ...] = (DeviceRole.HOPPER, DeviceRole.VALIDATOR)


class PollLoop:
    """
    Periodic poll of the SSP devices.

    Attributes:
        sessions: Device sessions by role.
        translator: Poll event translator.
        replies: Publisher for device events.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        translator: EventTranslator,
        replies: ResponsePublisher,
        settings: Optional[PayoutSettings] = None,
    ) -> None:
        self._sessions = sessions
        self._translator = translator
        self._replies = replies
        self._settings = settings or PayoutSettings()

    async def run(self, shutdown: asyncio.Event) -> None:
        """
        Poll until the shutdown token is set.

        Raises:
            ProtocolIntegrityError: If a device cannot be re-pinned after a
                reset; the daemon must stop.
        """
        logger.info("Poll loop started")
        while not shutdown.is_set():
            await self.poll_all()
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self._settings.poll_interval_s)
            except asyncio.TimeoutError:
                pass
        logger.info("Poll loop stopped")

    async def poll_all(self) -> None:
        """Run one poll cycle over all ready devices."""
        for role in POLL_ORDER:
            if role not in self._sessions:
                continue
            session = self._sessions.get(role)
            if session.ready:
                await self.poll_device(session)

    async def poll_device(self, session: DeviceSession) -> None:
        """
        Poll one device and publish its events.

        Raises:
            ProtocolIntegrityError: Propagated from event side effects.
        """
        async with session.lock:
            await asyncio.sleep(self._settings.settle_delay_s)

            result = await session.transport.poll()

            if result.status == ResponseStatus.TIMEOUT:
                logger.warning(f"polling '{session.name}' timed out")
                return

            if result.status == ResponseStatus.KEY_NOT_SET:
                # The device lost its session key, negotiate it again
                status = await session.transport.setup_encryption(session.session_key)
                logger.warning(f"'{session.name}': key not set, setup encryption -> {status.name}")
                return

            if result.status != ResponseStatus.OK:
                logger.warning(f"polling '{session.name}' returned 0x{int(result.status):02X}")
                return

            for event in result.events:
                await self._handle_event(session, event)

    async def _handle_event(self, session: DeviceSession, event) -> None:
        try:
            body = self._translator.translate(session, event)
        except MalformedResponseError as e:
            logger.error(f"'{session.name}': malformed event 0x{event.kind:02X}: {e}")
            await self._replies.publish_event(
                session.role,
                {
                    "event": "malformed device response",
                    "id": f"0x{event.kind:02X}",
                    "data1": event.data1,
                    "error": e.message,
                },
            )
            return

        await self._replies.publish_event(session.role, body)

        try:
            await self._translator.apply_side_effects(session, event)
        except ProtocolIntegrityError:
            raise
        except DeviceError as e:
            logger.error(f"'{session.name}': handling event 0x{event.kind:02X} failed: {e}")
