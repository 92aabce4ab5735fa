"""Services package exports."""

from gatehouse.services.logging_service import configure_logging
from gatehouse.services.presence_bus import PresenceBus

__all__ = [
    "PresenceBus",
    "configure_logging",
]
