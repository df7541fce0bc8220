"""
Serial line and transport loading.

Opens the shared SSP serial line with pyserial and builds one device
transport per SSP address from a configurable factory. The factory is
named as "module:callable" and called as ``factory(port, device_id, settings)``.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import stat
from typing import Any, Callable, Final, Optional

import serial

from core.exceptions import TransportLoadError
from core.interfaces import DeviceTransport
from infrastructure.settings import Settings
from loggers import logger


PARITIES: Final[dict[str, str]] = {
    "N": serial.PARITY_NONE,
    "E": serial.PARITY_EVEN,
    "O": serial.PARITY_ODD,
}

STOPBITS: Final[dict[int, float]] = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}


TransportFactory = Callable[[serial.Serial, int, Settings], DeviceTransport]


def check_character_device(path: str) -> None:
    """
    Verify that ``path`` exists and is a character device.

    Raises:
        TransportLoadError: If the path cannot be opened or is not a device.
    """
    try:
        mode = os.stat(path).st_mode
    except OSError as e:
        raise TransportLoadError(f"opening device {path} failed: {e.strerror}")
    if not stat.S_ISCHR(mode):
        raise TransportLoadError(f"{path} is not a device")


def open_serial_port(settings: Settings) -> serial.Serial:
    """
    Open the SSP serial line (9600 8N2 by default).

    Raises:
        TransportLoadError: If pyserial cannot open the port.
    """
    options = settings.serial
    try:
        return serial.Serial(
            port=options.device,
            baudrate=options.baudrate,
            bytesize=options.bytesize,
            stopbits=STOPBITS[options.stopbits],
            parity=PARITIES[options.parity],
            timeout=options.timeout,
        )
    except (serial.SerialException, ValueError, KeyError) as e:
        raise TransportLoadError(f"could not open serial device {options.device}: {e}")


def load_transport_factory(target: Optional[str]) -> TransportFactory:
    """
    Resolve a "module:callable" transport factory.

    Raises:
        TransportLoadError: If the target cannot be resolved to a callable.
    """
    if not target:
        raise TransportLoadError("no device transport configured")

    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise TransportLoadError(f"transport factory must look like 'module:callable': {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise TransportLoadError(f"cannot import transport module {module_name!r}: {e}")

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise TransportLoadError(f"{target!r} is not callable")
    return factory


# =============================================================================
# Serial Line
# =============================================================================


class SerialLine:
    """
    Shared SSP serial line with one transport per device address.

    Attributes:
        port: Open pyserial port, None until opened.
        transports: Device id to transport.
        lock: Held for every exchange on the line, whichever device it
            addresses. Only one device operation is in flight at a time.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.port: Optional[serial.Serial] = None
        self.transports: dict[int, DeviceTransport] = {}
        self.lock = asyncio.Lock()

    def open(self, device_ids: list[int]) -> dict[int, DeviceTransport]:
        """
        Open the line and build the transports.

        Args:
            device_ids: SSP addresses sharing the line.

        Returns:
            Device id to transport.

        Raises:
            TransportLoadError: If any part of the setup fails; the line is
                closed again before raising.
        """
        device = self._settings.serial.device
        logger.info(f"opening serial device: {device}")

        factory = load_transport_factory(self._settings.ssp.transport_factory)
        check_character_device(device)
        self.port = open_serial_port(self._settings)

        try:
            for device_id in device_ids:
                self.transports[device_id] = factory(self.port, device_id, self._settings)
        except Exception as e:
            self._close_port()
            self.transports.clear()
            raise TransportLoadError(f"transport factory failed: {e}") from e

        return self.transports

    async def close(self) -> None:
        """Close all transports and the serial port."""
        for device_id, transport in self.transports.items():
            try:
                await transport.close()
            except Exception as e:
                logger.error(f"Error closing transport 0x{device_id:02X}: {e}")
        self.transports.clear()
        self._close_port()

    def _close_port(self) -> None:
        if self.port is not None and self.port.is_open:
            self.port.close()
        self.port = None

    def __repr__(self) -> str:
        state: Any = self.port.port if self.port is not None else None
        return f"SerialLine(port={state!r}, transports={len(self.transports)})"
