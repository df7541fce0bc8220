"""
Device Initializer - SSP handshake and post-init configuration.

Brings each device from power-up to a usable state:
sync, encryption, protocol version, capabilities, versions, enable.
Then applies role specific configuration (hopper coin mechanism
inhibits, validator refill mode, routes, inhibits and payout enable).
"""

from __future__ import annotations

from core.exceptions import DeviceError
from core.interfaces import DeviceRole, ResponseStatus
from domain.device_session import DeviceSession, SessionRegistry
from infrastructure.settings import ROUTES, Settings, get_settings
from loggers import logger


class DeviceInitializer:
    """
    Runs the startup sequence of the SSP devices.

    A failing step aborts only the device it belongs to; the session is
    left not ready and the daemon keeps running.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    # =========================================================================
    # Handshake
    # =========================================================================

    async def initialize(self, session: DeviceSession) -> bool:
        """
        Run the handshake for one device.

        Args:
            session: Session with an attached transport.

        Returns:
            True if the device is initialized and enabled.
        """
        logger.info(f"Initializing device (id=0x{session.device_id:02X}, '{session.name}')")
        session.ready = False

        if not session.has_transport:
            session.mark_not_ready("no transport")
            return False

        transport = session.transport
        protocol_version = self._settings.ssp.protocol_version

        async with session.lock:
            if not await self._step(session, "sync", transport.sync()):
                return False
            logger.info(f"{session.name}: device found")

            if not await self._step(
                session, "setup encryption", transport.setup_encryption(session.session_key)
            ):
                return False
            logger.info(f"{session.name}: encryption setup")

            if not await self._step(
                session, "host protocol", transport.host_protocol(protocol_version)
            ):
                return False
            logger.info(f"{session.name}: host protocol {protocol_version} verified")

            status, info = await transport.setup_request()
            if status != ResponseStatus.OK or info is None:
                session.mark_not_ready(f"setup request failed ({status.name})")
                return False
            session.set_capabilities(info)

            logger.info(f"{session.name}: unit type 0x{info.unit_type:02X}, channels:")
            for channel in info.channels:
                logger.info(f"  channel {channel.channel}: {channel.value} {channel.currency}")

            await self._log_versions(session)

            if not await self._step(session, "enable", transport.enable()):
                return False

        session.mark_ready()
        logger.info(f"{session.name}: device has been successfully initialized")
        return True

    async def _step(self, session: DeviceSession, name: str, call) -> bool:
        status = await call
        if status != ResponseStatus.OK:
            session.mark_not_ready(f"{name} failed ({status.name})")
            return False
        return True

    async def _log_versions(self, session: DeviceSession) -> None:
        # Informational only, failures do not stop initialization
        try:
            firmware = await session.codec.get_firmware_version()
            if firmware.ok:
                logger.info(f"{session.name}: full firmware version: {firmware.version}")
            else:
                logger.warning(f"{session.name}: firmware version failed ({firmware.status.name})")

            dataset = await session.codec.get_dataset_version()
            if dataset.ok:
                logger.info(f"{session.name}: full dataset version: {dataset.version}")
            else:
                logger.warning(f"{session.name}: dataset version failed ({dataset.status.name})")
        except DeviceError as e:
            logger.warning(f"{session.name}: reading versions failed: {e}")

    # =========================================================================
    # Post-init configuration
    # =========================================================================

    async def configure_hopper(self, session: DeviceSession) -> None:
        """Enable the coin mechanism for every discovered channel."""
        if not session.ready:
            return

        async with session.lock:
            for channel in session.channels:
                status = await session.transport.set_coinmech_inhibits(
                    channel.value, channel.currency, True
                )
                if status != ResponseStatus.OK:
                    logger.warning(
                        f"{session.name}: enabling coin mech for {channel.value} "
                        f"{channel.currency} failed ({status.name})"
                    )

    async def configure_validator(self, session: DeviceSession) -> None:
        """
        Configure the note validator and its payout unit.

        Refill mode and route failures are logged. A failure to set the
        inhibits or to enable the payout leaves the validator not ready.
        """
        if not session.ready:
            return

        currency = self._settings.payout.currency

        async with session.lock:
            # Reject notes unfit for storage instead of routing them to the cashbox
            try:
                refill = await session.codec.set_refill_mode()
                if not refill.ok:
                    logger.error(f"{session.name}: setting refill mode failed ({refill.status.name})")
            except DeviceError as e:
                logger.error(f"{session.name}: setting refill mode failed: {e}")

            for amount, destination in self._settings.payout.validator_routes:
                status = await session.transport.set_route(amount, currency, ROUTES[destination])
                if status != ResponseStatus.OK:
                    logger.warning(
                        f"{session.name}: routing {amount} {currency} to {destination} "
                        f"failed ({status.name})"
                    )

            # All channels disabled until a client enables them
            status = await session.transport.set_inhibits(0x00, 0x00)
            if status != ResponseStatus.OK:
                session.mark_not_ready(f"inhibits failed ({status.name})")
                return
            session.apply_inhibits(0x00)

            unit_type = session.capabilities.unit_type if session.capabilities else 0
            status = await session.transport.enable_payout(unit_type)
            if status != ResponseStatus.OK:
                session.mark_not_ready(f"enable payout failed ({status.name})")
                return

        logger.info(f"{session.name}: payout configured")

    # =========================================================================
    # Startup
    # =========================================================================

    async def initialize_all(self, registry: SessionRegistry) -> dict[str, bool]:
        """
        Initialize both devices, validator first, then configure them.

        Returns:
            Dictionary of device name to readiness.
        """
        order = (DeviceRole.VALIDATOR, DeviceRole.HOPPER)
        for role in order:
            if role not in registry:
                continue
            session = registry.get(role)
            try:
                await self.initialize(session)
            except DeviceError as e:
                session.mark_not_ready(str(e))

        if DeviceRole.HOPPER in registry:
            await self.configure_hopper(registry.hopper)
        if DeviceRole.VALIDATOR in registry:
            await self.configure_validator(registry.validator)

        results = {s.name: s.ready for s in registry.get_all()}
        logger.info(f"Device initialization finished: {results}")
        return results
