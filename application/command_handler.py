"""
Command Handler - Routes bus requests to command handlers.

Validates inbound request messages, resolves the command name to exactly
one handler and makes sure every parseable request is answered once.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import DeviceTimeoutError, MalformedResponseError
from core.interfaces import DeviceRole
from domain.device_session import DeviceSession, SessionRegistry
from infrastructure.redis_publisher import ResponsePublisher
from infrastructure.settings import PayoutSettings, TopicSettings
from loggers import logger


COMMAND_MATCHING_EXACT = "exact"
COMMAND_MATCHING_LEGACY = "legacy-substring"

# Order in which the legacy matcher searches the raw message body
LEGACY_COMMAND_ORDER: tuple[str, ...] = (
    "empty",
    "smart-empty",
    "enable",
    "disable",
    "enable-channels",
    "disable-channels",
    "inhibit-channels",
    "test-float",
    "do-float",
    "test-payout",
    "do-payout",
    "get-firmware-version",
    "get-dataset-version",
    "channel-security-data",
    "get-all-levels",
    "set-denomination-level",
    "last-reject-note",
)


def new_response_id() -> str:
    """Time-based id of a response message."""
    return str(uuid.uuid1())


# =============================================================================
# Request Context
# =============================================================================


@dataclass
class RequestContext:
    """
    Everything a command handler needs for one request.

    Attributes:
        raw: Raw message text.
        body: Parsed JSON body.
        cmd: Value of the "cmd" property.
        command: Resolved command name (differs from cmd in legacy matching).
        msg_id: Value of the "msgId" property, echoed as correlId.
        response_id: Fresh id of the response message.
        session: Target device session.
        response_topic: Topic the response goes to.
        replies: Publisher for the single response.
        settings: Payout behaviour settings.
    """

    raw: str
    body: dict[str, Any]
    cmd: str
    msg_id: str
    response_id: str
    session: DeviceSession
    response_topic: str
    replies: ResponsePublisher
    settings: PayoutSettings = field(default_factory=PayoutSettings)
    command: str = ""

    async def ok(self) -> None:
        await self.replies.reply_ok(self.response_topic, self.response_id, self.msg_id)

    async def failed(self) -> None:
        await self.replies.reply_failed(self.response_topic, self.response_id, self.msg_id)

    async def accepted(self) -> None:
        await self.replies.reply_accepted(self.response_topic, self.response_id, self.msg_id)

    async def error(self, error: str, **extra: Any) -> None:
        await self.replies.reply_error(self.response_topic, self.msg_id, error, **extra)

    async def reply_with(self, body: dict[str, Any]) -> None:
        await self.replies.reply_with(self.response_topic, body)

    async def ok_or_failed(self, ok: bool) -> None:
        if ok:
            await self.ok()
        else:
            await self.failed()


CommandHandlerFunc = Callable[[RequestContext], Awaitable[None]]


@dataclass
class CommandDefinition:
    """
    Definition of a command.

    Attributes:
        name: Command name.
        handler: Handler function.
        description: Human-readable description.
    """

    name: str
    handler: CommandHandlerFunc
    description: str = ""


# =============================================================================
# Command Handler
# =============================================================================


class CommandHandler:
    """
    Routes request messages to their handlers.

    Attributes:
        sessions: Device sessions by role.
        replies: Response publisher.
        shutdown: Token set by the "quit" command.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        replies: ResponsePublisher,
        shutdown: asyncio.Event,
        settings: Optional[PayoutSettings] = None,
        topics: Optional[TopicSettings] = None,
    ) -> None:
        self._sessions = sessions
        self._replies = replies
        self._shutdown = shutdown
        self._settings = settings or PayoutSettings()
        self._topics = topics or replies.topics
        self._commands: dict[str, CommandDefinition] = {}

        if self._settings.command_matching not in (COMMAND_MATCHING_EXACT, COMMAND_MATCHING_LEGACY):
            raise ValueError(f"Unknown command matching mode: {self._settings.command_matching!r}")

        self._request_topics: dict[str, DeviceRole] = {
            self._topics.hopper_request: DeviceRole.HOPPER,
            self._topics.validator_request: DeviceRole.VALIDATOR,
        }

    def register(
        self,
        command_name: str,
        handler: CommandHandlerFunc,
        description: str = "",
    ) -> None:
        """
        Register a command handler.

        Args:
            command_name: The name of the command.
            handler: The async handler function.
            description: Human-readable description.
        """
        self._commands[command_name] = CommandDefinition(
            name=command_name,
            handler=handler,
            description=description,
        )

    def get_available_commands(self) -> list[dict[str, Any]]:
        """Get list of available commands with their descriptions."""
        return [
            {"name": cmd.name, "description": cmd.description}
            for cmd in self._commands.values()
        ]

    def resolve(self, cmd: str, raw: str) -> Optional[CommandDefinition]:
        """
        Resolve a request to one registered command.

        Args:
            cmd: Parsed "cmd" property.
            raw: Raw message text, searched in legacy mode.

        Returns:
            The command definition or None.
        """
        if self._settings.command_matching == COMMAND_MATCHING_EXACT:
            return self._commands.get(cmd)

        for name in LEGACY_COMMAND_ORDER:
            if name in self._commands and self._is_command(raw, name):
                return self._commands[name]
        return None

    @staticmethod
    def _is_command(raw: str, name: str) -> bool:
        return f'"cmd":"{name}"' in raw

    def _is_quit(self, cmd: str, raw: str) -> bool:
        if self._settings.command_matching == COMMAND_MATCHING_EXACT:
            return cmd == "quit"
        return self._is_command(raw, "quit")

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_message(self, topic: str, raw: str) -> None:
        """
        Handle one message received on a subscribed topic.

        Messages on topics other than the request topics are ignored.
        """
        role = self._request_topics.get(topic)
        if role is None:
            if topic == self._topics.metacash:
                logger.debug(f"metacash message ignored: {raw}")
            return

        session = self._sessions.get(role)
        response_topic = self._replies.response_topic(role)

        try:
            body = json.loads(raw)
        except json.JSONDecodeError as e:
            await self._replies.reply_with(
                response_topic,
                {"error": "could not parse json", "reason": e.msg, "line": e.lineno},
            )
            return

        msg_id = body.get("msgId") if isinstance(body, dict) else None
        if not isinstance(msg_id, str):
            await self._replies.reply_with(
                response_topic, {"error": "property 'msgId' missing or not a string"}
            )
            return

        cmd = body.get("cmd")
        if not isinstance(cmd, str):
            await self._replies.reply_error(
                response_topic, msg_id, "property 'cmd' missing or not a string"
            )
            return

        ctx = RequestContext(
            raw=raw,
            body=body,
            cmd=cmd,
            msg_id=msg_id,
            response_id=new_response_id(),
            session=session,
            response_topic=response_topic,
            replies=self._replies,
            settings=self._settings,
        )

        logger.info(
            f"processing cmd='{cmd}' from msgId='{msg_id}' in topic='{topic}' "
            f"for device='{session.name}'"
        )

        if self._is_quit(cmd, raw):
            await ctx.ok()
            self._shutdown.set()
            return

        # Commands below need the actual hardware
        if not session.ready:
            await ctx.error("hardware unavailable")
            return

        definition = self.resolve(cmd, raw)
        if definition is None:
            logger.warning(f"Unknown command: {cmd}")
            await ctx.error("unknown command", cmd=cmd)
            return

        ctx.command = definition.name
        await self._execute(definition, ctx)

    async def _execute(self, definition: CommandDefinition, ctx: RequestContext) -> None:
        session = ctx.session
        try:
            async with session.lock:
                await asyncio.sleep(self._settings.settle_delay_s)
                await definition.handler(ctx)
        except DeviceTimeoutError as e:
            logger.warning(f"{session.name}: '{definition.name}' timed out: {e}")
            await ctx.failed()
        except MalformedResponseError as e:
            logger.error(f"{session.name}: '{definition.name}' got a malformed response: {e}")
            await ctx.failed()
        except Exception as e:
            logger.exception(f"Error executing command '{definition.name}': {e}")
            await ctx.error("internal error")
