"""
Infrastructure layer - External dependencies and implementations.

Contains:
- Configuration (exported here)
- Redis publisher (infrastructure.redis_publisher)
- Serial line and transport loading (infrastructure.serial_port)

Only the settings are re-exported: the logger reads them while the
package is imported.
"""

from .settings import (
    Settings,
    get_settings,
    set_settings,
)


__all__ = [
    "Settings",
    "get_settings",
    "set_settings",
]
