"""
Domain layer - Device sessions and device behaviour.

Contains:
- Device sessions with their registry
- Device initializer
- Poll event translator
"""

from .device_session import (
    DeviceSession,
    SessionRegistry,
)
from .device_initializer import DeviceInitializer
from .event_translator import EventTranslator


__all__ = [
    # Sessions
    "DeviceSession",
    "SessionRegistry",
    # Startup
    "DeviceInitializer",
    # Events
    "EventTranslator",
]
