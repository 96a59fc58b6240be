"""Tuya LAN to MQTT bridge - Main Package"""

__version__ = '1.0.0'
__description__ = 'Bridges Tuya local-network devices to MQTT with Home Assistant discovery'

# Core patterns - most fundamental
from .core import StateMachine, CircuitBreaker

# Models - domain objects
from .models import DeviceIdentity, SubDeviceConfig, Route, DpsSchemaItem

# State and drivers
from .state import StateStore
from .drivers import DriverRegistry, build_default_registry

# Sessions and orchestration
from .session import ConnectionSession, SessionTiming
from .orchestration import BridgeOrchestrator, DeviceOrchestrator, SubDevice

# Protocols
from .protocols import ProtocolFactory

__all__ = [
    # Core
    'StateMachine',
    'CircuitBreaker',

    # Models
    'DeviceIdentity',
    'SubDeviceConfig',
    'Route',
    'DpsSchemaItem',

    # State and drivers
    'StateStore',
    'DriverRegistry',
    'build_default_registry',

    # Sessions and orchestration
    'ConnectionSession',
    'SessionTiming',
    'BridgeOrchestrator',
    'DeviceOrchestrator',
    'SubDevice',

    # Factories
    'ProtocolFactory',
]
