"""
Application settings.

Provides typed configuration for Redis, the SSP serial line, the two cash
devices and the command/poll behaviour of the daemon.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Final, Optional


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection settings."""

    host: str = "127.0.0.1"
    port: int = 6379
    decode_responses: bool = True


@dataclass(frozen=True)
class SerialPortSettings:
    """Serial port configuration for the shared SSP line."""

    device: str = "/dev/ttyACM0"
    baudrate: int = 9600
    bytesize: int = 8
    stopbits: int = 2
    parity: str = "N"
    timeout: float = 1.0


@dataclass(frozen=True)
class TopicSettings:
    """Redis pub/sub topic names."""

    metacash: str = "metacash"
    hopper_request: str = "hopper-request"
    validator_request: str = "validator-request"
    hopper_response: str = "hopper-response"
    validator_response: str = "validator-response"
    hopper_event: str = "hopper-event"
    validator_event: str = "validator-event"


@dataclass(frozen=True)
class SSPSettings:
    """SSP (Secure Serial Protocol) settings."""

    fixed_key: int = 0x0123456701234567
    protocol_version: int = 6
    timeout_ms: int = 1000
    retry_level: int = 3
    # "module:callable" building a DeviceTransport for one device address
    transport_factory: Optional[str] = None


@dataclass(frozen=True)
class DeviceSettings:
    """Static identity of one cash device."""

    device_id: int
    name: str


@dataclass(frozen=True)
class PayoutSettings:
    """Command handling and polling behaviour."""

    currency: str = "EUR"
    poll_interval_s: float = 1.0
    settle_delay_s: float = 0.3
    quit_check_interval_s: float = 0.5
    # "exact" compares the parsed cmd, "legacy-substring" searches the raw body
    command_matching: str = "exact"
    # set-denomination-level historically read level from "amount" and vice versa
    swap_denomination_fields: bool = True
    # note value (minor units) -> route, applied to the validator after init
    validator_routes: tuple[tuple[int, str], ...] = (
        (500, "cashbox"),
        (1000, "cashbox"),
        (2000, "cashbox"),
        (5000, "storage"),
        (10000, "storage"),
        (20000, "storage"),
        (50000, "storage"),
    )


@dataclass(frozen=True)
class ServiceSettings:
    """External service URLs."""

    loki_url: Optional[str] = None


@dataclass(frozen=True)
class LoggingSettings:
    """Log output settings."""

    log_file: str = "logs/payoutd.log"
    app: str = "payoutd"


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    redis: RedisSettings = field(default_factory=RedisSettings)
    serial: SerialPortSettings = field(default_factory=SerialPortSettings)
    topics: TopicSettings = field(default_factory=TopicSettings)
    ssp: SSPSettings = field(default_factory=SSPSettings)
    payout: PayoutSettings = field(default_factory=PayoutSettings)
    services: ServiceSettings = field(default_factory=ServiceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    hopper: DeviceSettings = field(
        default_factory=lambda: DeviceSettings(device_id=0x10, name="Mr. Coin")
    )
    validator: DeviceSettings = field(
        default_factory=lambda: DeviceSettings(device_id=0x00, name="Ms. Note")
    )

    def with_overrides(
        self,
        redis_host: Optional[str] = None,
        redis_port: Optional[int] = None,
        serial_device: Optional[str] = None,
        transport_factory: Optional[str] = None,
    ) -> "Settings":
        """
        Return a copy with command line overrides applied.

        Args:
            redis_host: Redis host name.
            redis_port: Redis port.
            serial_device: Path of the SSP serial device.
            transport_factory: Transport factory as "module:callable".

        Returns:
            New Settings instance.
        """
        changes: dict[str, Any] = {}
        if redis_host is not None or redis_port is not None:
            changes["redis"] = replace(
                self.redis,
                host=redis_host if redis_host is not None else self.redis.host,
                port=redis_port if redis_port is not None else self.redis.port,
            )
        if serial_device is not None:
            changes["serial"] = replace(self.serial, device=serial_device)
        if transport_factory is not None:
            changes["ssp"] = replace(self.ssp, transport_factory=transport_factory)
        return replace(self, **changes)


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Replace the settings singleton (used by the CLI)."""
    global _settings
    _settings = settings


# =============================================================================
# Protocol Constants
# =============================================================================


ROUTE_STORAGE: Final[int] = 0x00
ROUTE_CASHBOX: Final[int] = 0x01

ROUTES: Final[dict[str, int]] = {
    "storage": ROUTE_STORAGE,
    "cashbox": ROUTE_CASHBOX,
}
