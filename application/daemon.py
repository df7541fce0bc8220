"""
Payout Daemon - Process orchestration.

Connects to Redis, opens the SSP line, initializes both devices and then
runs three cooperating tasks on one event loop until the shutdown token
is set: the request listener, the poll loop and the quit check.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Final, Optional

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from application.command_handler import CommandHandler
from application.command_handlers import register_default_commands
from application.poll_loop import PollLoop
from core.exceptions import ProtocolIntegrityError, RedisConnectionError, TransportLoadError
from core.interfaces import DeviceRole, DeviceTransport
from domain.device_initializer import DeviceInitializer
from domain.device_session import DeviceSession, SessionRegistry
from domain.event_translator import EventTranslator
from infrastructure.redis_publisher import RedisPublisher, ResponsePublisher
from infrastructure.serial_port import SerialLine
from infrastructure.settings import Settings, get_settings
from loggers import logger


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK: Final[int] = 0
EXIT_REDIS_UNAVAILABLE: Final[int] = 1
EXIT_PROTOCOL_INTEGRITY: Final[int] = 3


def as_text(value):
    """Pub/sub fields arrive as bytes unless the client decodes responses."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class PayoutDaemon:
    """
    The payout daemon process.

    Attributes:
        settings: Application settings.
        sessions: The hopper and validator sessions.
        shutdown: Token set by signals and by the "quit" command.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        redis: Optional[Redis] = None,
        serial_line: Optional[SerialLine] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.shutdown = asyncio.Event()

        self._redis = redis
        self._serial_line = serial_line or SerialLine(self.settings)
        self.sessions = self._build_sessions(self._serial_line.lock)
        self._pubsub: Optional[PubSub] = None

        self.replies: Optional[ResponsePublisher] = None
        self.dispatcher: Optional[CommandHandler] = None
        self.poll_loop: Optional[PollLoop] = None

    def _build_sessions(self, line_lock: asyncio.Lock) -> SessionRegistry:
        registry = SessionRegistry()
        key = self.settings.ssp.fixed_key
        registry.register(
            DeviceSession(
                device_id=self.settings.hopper.device_id,
                name=self.settings.hopper.name,
                role=DeviceRole.HOPPER,
                session_key=key,
                lock=line_lock,
            )
        )
        registry.register(
            DeviceSession(
                device_id=self.settings.validator.device_id,
                name=self.settings.validator.name,
                role=DeviceRole.VALIDATOR,
                session_key=key,
                lock=line_lock,
            )
        )
        return registry

    # =========================================================================
    # Startup
    # =========================================================================

    async def connect_redis(self) -> Redis:
        """
        Connect to Redis and verify the connection.

        Raises:
            RedisConnectionError: If Redis does not answer PING.
        """
        if self._redis is None:
            self._redis = Redis(
                host=self.settings.redis.host,
                port=self.settings.redis.port,
                decode_responses=self.settings.redis.decode_responses,
            )
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise RedisConnectionError(
                f"could not establish connection to redis at "
                f"{self.settings.redis.host}:{self.settings.redis.port}: {e}"
            )
        return self._redis

    def attach_hardware(self, transports: Optional[dict[int, DeviceTransport]] = None) -> bool:
        """
        Attach one transport to each session.

        Args:
            transports: Prebuilt transports by device id; opened from the
                serial line when omitted.

        Returns:
            False when the hardware is unavailable.
        """
        if transports is None:
            ids = [s.device_id for s in self.sessions.get_all()]
            try:
                transports = self._serial_line.open(ids)
            except TransportLoadError as e:
                logger.critical(f"cash hardware unavailable: {e}")
                return False

        for session in self.sessions.get_all():
            transport = transports.get(session.device_id)
            if transport is not None:
                session.attach_transport(transport)
        return True

    def build_components(self, redis: Redis) -> None:
        """Wire publisher, dispatcher and poll loop."""
        self.replies = ResponsePublisher(RedisPublisher(redis), self.settings.topics)
        self.dispatcher = register_default_commands(
            CommandHandler(
                self.sessions,
                self.replies,
                self.shutdown,
                settings=self.settings.payout,
                topics=self.settings.topics,
            )
        )
        self.poll_loop = PollLoop(
            self.sessions,
            EventTranslator(self.settings.ssp.protocol_version),
            self.replies,
            settings=self.settings.payout,
        )

        commands = self.dispatcher.get_available_commands()
        logger.info(f"accepting {len(commands)} commands")
        for command in commands:
            logger.debug(f"  {command['name']}: {command['description']}")

    def install_signal_handlers(self) -> None:
        """Set the shutdown token on SIGINT/SIGTERM."""
        def signal_handler() -> None:
            self.shutdown.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

    # =========================================================================
    # Tasks
    # =========================================================================

    async def listen(self, pubsub: PubSub) -> None:
        """Dispatch request messages until the shutdown token is set."""
        timeout = self.settings.payout.quit_check_interval_s
        while not self.shutdown.is_set():
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
            if message is None or message.get("type") != "message":
                continue

            try:
                await self.dispatcher.handle_message(
                    as_text(message["channel"]), as_text(message["data"])
                )
            except Exception as e:
                logger.error(f"Unexpected error processing message: {e}")

    async def check_quit(self) -> None:
        """Liveness check of the shutdown token."""
        while not self.shutdown.is_set():
            await asyncio.sleep(self.settings.payout.quit_check_interval_s)
        logger.info("shutdown requested, going to exit event loop")

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self, transports: Optional[dict[int, DeviceTransport]] = None) -> int:
        """
        Run the daemon until shutdown.

        Returns:
            Process exit code.
        """
        try:
            redis = await self.connect_redis()
        except RedisConnectionError as e:
            logger.critical(f"fatal: {e.message}")
            return EXIT_REDIS_UNAVAILABLE

        logger.info(
            f"using redis at {self.settings.redis.host}:{self.settings.redis.port} "
            f"and hardware device {self.settings.serial.device}"
        )

        self.build_components(redis)

        if self.attach_hardware(transports):
            await DeviceInitializer(self.settings).initialize_all(self.sessions)

        self.install_signal_handlers()

        topics = self.settings.topics
        self._pubsub = redis.pubsub()
        await self._pubsub.subscribe(topics.metacash, topics.hopper_request, topics.validator_request)
        logger.info("open for business")

        tasks = [
            asyncio.create_task(self.listen(self._pubsub), name="listener"),
            asyncio.create_task(self.poll_loop.run(self.shutdown), name="poll-loop"),
            asyncio.create_task(self.check_quit(), name="check-quit"),
        ]

        exit_code = EXIT_OK
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            self.shutdown.set()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, ProtocolIntegrityError):
                    logger.critical(f"fatal: {result.message}")
                    exit_code = EXIT_PROTOCOL_INTEGRITY
                elif isinstance(result, BaseException):
                    logger.error(f"Task {task.get_name()} failed: {result}")
                    exit_code = max(exit_code, EXIT_REDIS_UNAVAILABLE)
        finally:
            await self.close()

        logger.info("exiting")
        return exit_code

    async def close(self) -> None:
        """Release Redis and the serial line."""
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe()
                await self._pubsub.aclose()
            except RedisError as e:
                logger.error(f"Error closing pubsub: {e}")
            self._pubsub = None

        await self._serial_line.close()

        if self._redis is not None:
            try:
                await self._redis.aclose()
            except RedisError as e:
                logger.error(f"Error closing redis: {e}")
