"""
Device Session - Per-peripheral state of one SSP device.

Each cash device (hopper and validator) is represented by exactly one
session for the lifetime of the process. The session owns the transport
handle, the channel-inhibit mask and the capabilities discovered during
initialization.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from core.exceptions import DeviceNotReadyError, MalformedResponseError
from core.interfaces import ChannelData, DeviceRole, DeviceTransport, SetupInfo
from devices.ssp import SSPCodec
from loggers import logger


# =============================================================================
# Device Session
# =============================================================================


class DeviceSession:
    """
    State of one SSP device.

    Attributes:
        device_id: SSP address of the device.
        name: Human-readable label.
        role: Hopper or validator.
        session_key: Fixed key used to negotiate encryption.
        channel_inhibits: Bit n-1 set means channel n is enabled.
        capabilities: Unit type and channel table, set once by the initializer.
        ready: True only after initialization completed.
        lock: Serializes protocol calls on the serial line. Sessions that
            share one line must share one lock.
    """

    def __init__(
        self,
        device_id: int,
        name: str,
        role: DeviceRole,
        session_key: int,
        transport: Optional[DeviceTransport] = None,
        lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self.device_id = device_id
        self.name = name
        self.role = role
        self.session_key = session_key
        self.channel_inhibits = 0x00
        self.capabilities: Optional[SetupInfo] = None
        self.ready = False
        self.lock = lock or asyncio.Lock()
        self._transport: Optional[DeviceTransport] = None
        self._codec: Optional[SSPCodec] = None
        if transport is not None:
            self.attach_transport(transport)

    def __repr__(self) -> str:
        return (
            f"DeviceSession(name={self.name!r}, id=0x{self.device_id:02X}, "
            f"role={self.role.value}, ready={self.ready})"
        )

    # =========================================================================
    # Transport
    # =========================================================================

    def attach_transport(self, transport: DeviceTransport) -> None:
        """Bind the transport for this device address."""
        self._transport = transport
        self._codec = SSPCodec(transport, device_name=self.name)

    @property
    def has_transport(self) -> bool:
        return self._transport is not None

    @property
    def transport(self) -> DeviceTransport:
        """
        Get the transport handle.

        Raises:
            DeviceNotReadyError: If no transport was attached.
        """
        if self._transport is None:
            raise DeviceNotReadyError("No transport attached", device_name=self.name)
        return self._transport

    @property
    def codec(self) -> SSPCodec:
        """Get the command codec bound to this device's transport."""
        if self._codec is None:
            raise DeviceNotReadyError("No transport attached", device_name=self.name)
        return self._codec

    # =========================================================================
    # Readiness
    # =========================================================================

    def mark_ready(self) -> None:
        self.ready = True
        logger.info(f"{self.name}: ready")

    def mark_not_ready(self, reason: str = "") -> None:
        self.ready = False
        logger.warning(f"{self.name}: not ready{': ' + reason if reason else ''}")

    # =========================================================================
    # Capabilities
    # =========================================================================

    def set_capabilities(self, info: SetupInfo) -> None:
        self.capabilities = info

    @property
    def channels(self) -> tuple[ChannelData, ...]:
        if self.capabilities is None:
            return ()
        return self.capabilities.channels

    def channel_value(self, channel: int) -> int:
        """
        Look up the value (major units) of a 1-based channel index.

        Raises:
            MalformedResponseError: If the index is outside the channel table.
        """
        channels = self.channels
        if channel < 1 or channel > len(channels):
            raise MalformedResponseError(
                f"Channel {channel} outside channel table of {len(channels)} channels",
                device_name=self.name,
                details={"channel": channel},
            )
        return channels[channel - 1].value

    # =========================================================================
    # Channel Inhibits
    # =========================================================================

    def apply_inhibits(self, mask: int) -> None:
        """Record an inhibit mask the device has acknowledged."""
        self.channel_inhibits = mask & 0xFF
        logger.debug(f"{self.name}: channel inhibits are now {self.channel_inhibits:08b}")


# =============================================================================
# Session Registry
# =============================================================================


class SessionRegistry:
    """
    Registry holding exactly one session per device role.
    """

    def __init__(self) -> None:
        self._sessions: dict[DeviceRole, DeviceSession] = {}

    def register(self, session: DeviceSession) -> None:
        """
        Register a session.

        Raises:
            ValueError: If a session for the same role already exists.
        """
        if session.role in self._sessions:
            raise ValueError(f"Session for {session.role.value} already registered")
        self._sessions[session.role] = session
        logger.debug(f"Registered session: {session!r}")

    def get(self, role: DeviceRole) -> DeviceSession:
        return self._sessions[role]

    @property
    def hopper(self) -> DeviceSession:
        return self._sessions[DeviceRole.HOPPER]

    @property
    def validator(self) -> DeviceSession:
        return self._sessions[DeviceRole.VALIDATOR]

    def get_all(self) -> list[DeviceSession]:
        return list(self._sessions.values())

    def __contains__(self, role: DeviceRole) -> bool:
        return role in self._sessions
