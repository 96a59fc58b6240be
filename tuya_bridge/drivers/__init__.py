"""Device drivers: route tables, DPS schema and command translation per device type."""

from .base_driver import DeviceDriver, DriverCallbacks
from .command_translator import CommandTranslator
from .computer_power_switch import ComputerPowerSwitchDriver
from .default_driver import CATEGORY_NAMES, DefaultDriver
from .motion_sensor import MotionSensorDriver
from .registry import DriverRegistry, build_default_registry
from .route_table import RouteTable
from .smart_plug import SmartPlugDriver

__all__ = [
    'DeviceDriver', 'DriverCallbacks', 'CommandTranslator', 'RouteTable',
    'DriverRegistry', 'build_default_registry', 'CATEGORY_NAMES',
    'DefaultDriver', 'ComputerPowerSwitchDriver', 'SmartPlugDriver', 'MotionSensorDriver',
]
