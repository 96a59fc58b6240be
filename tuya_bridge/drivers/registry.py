import logging
from typing import Dict, Optional, Type

from .base_driver import DeviceDriver, DriverCallbacks
from .computer_power_switch import ComputerPowerSwitchDriver
from .default_driver import DefaultDriver
from .motion_sensor import MotionSensorDriver
from .smart_plug import SmartPlugDriver


class DriverRegistry:
    """Maps a device-type tag to the driver class that serves it."""

    def __init__(self, default: Type[DeviceDriver] = DefaultDriver):
        self._registry: Dict[str, Type[DeviceDriver]] = {}
        self.default = default
        self.logger = logging.getLogger(self.__class__.__name__)

    def register(self, device_type: str, driver_cls: Type[DeviceDriver]) -> None:
        """Register a driver; re-registering a tag replaces the previous class."""
        previous = self._registry.get(device_type)
        if previous is not None:
            self.logger.warning(
                f"Driver for device type '{device_type}' re-registered: "
                f"{previous.__name__} replaced by {driver_cls.__name__}"
            )
        self._registry[device_type] = driver_cls

    def get(self, device_type: Optional[str]) -> Type[DeviceDriver]:
        return self._registry.get(device_type or "", self.default)

    def create_driver(self, device_type: Optional[str], device_id: str, name: str,
                      callbacks: DriverCallbacks, category: Optional[str] = None) -> DeviceDriver:
        """
        Create the driver for `device_type`.

        Unknown tags fall back to the default driver so every device still
        gets status, generic data point commands and the common routes.
        """
        handler = self._registry.get(device_type or "")
        if handler is None:
            if device_type and device_type != "Default":
                self.logger.info(f"No driver registered for '{device_type}', using {self.default.__name__}")
            handler = self.default
        return handler(device_id, name, callbacks, category=category)

    def types(self):
        return list(self._registry)

    def __contains__(self, device_type: str) -> bool:
        return device_type in self._registry


def build_default_registry() -> DriverRegistry:
    registry = DriverRegistry()
    for driver_cls in (DefaultDriver, ComputerPowerSwitchDriver, SmartPlugDriver, MotionSensorDriver):
        registry.register(driver_cls.device_type, driver_cls)
    return registry
