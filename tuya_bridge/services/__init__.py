"""Bridge services: device list loading and Home Assistant discovery."""

from .device_loader import DeviceListLoader
from .discovery_service import DiscoveryService

__all__ = [
    'DeviceListLoader',
    'DiscoveryService',
]
