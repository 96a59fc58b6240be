from tuya_bridge.models import DpsSchemaItem
from .base_driver import DeviceDriver
from .default_driver import POWER_ON_BEHAVIOR


class SmartPlugDriver(DeviceDriver):
    """Gosund WP3-B style plug (category cz)."""

    device_type = "SmartPlug"

    async def init(self) -> None:
        self.metadata.update(category="cz", model="WP3-B")

        self.expose(DpsSchemaItem("1", "switch_1", "Power Switch", "Boolean"), icon="mdi:power-socket-eu")
        self.expose(DpsSchemaItem("9", "countdown_1", "Countdown Timer", "Integer", unit="s"), icon="mdi:timer")
        self.expose(DpsSchemaItem("16", "child_lock", "Child Lock", "Boolean"), icon="mdi:lock")
        self.expose(DpsSchemaItem("38", "relay_status", "Power-on Behavior", "Enum",
                                  values=POWER_ON_BEHAVIOR), icon="mdi:power-settings")
        self.expose(DpsSchemaItem("39", "light", "LED Indicator", "Enum",
                                  values={"none": "Off", "relay": "Follow Switch", "pos": "Always On"}),
                    icon="mdi:led-on")

        self.register_standard_functions(["switch_1", "countdown_1", "relay_status"])
        self.register_custom_functions(["child_lock", "light"])
