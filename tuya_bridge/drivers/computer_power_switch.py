"""
Computer power switch (JH-usb, Tuya/eWeLink).

Controls the computer's power relay and USB port, plus the reset line
through two write-only buttons.
"""

from tuya_bridge.core.exceptions import CommandValidationError
from tuya_bridge.models import AccessMode, DpsSchemaItem
from .base_driver import DeviceDriver
from .default_driver import POWER_ON_BEHAVIOR

PRESS = "PRESS"

# button route -> reset_mode value
RESET_BUTTONS = {
    "reset_soft": "Reset",
    "reset_force": "forceReset",
}


class ComputerPowerSwitchDriver(DeviceDriver):

    device_type = "ComputerPowerSwitch"

    async def init(self) -> None:
        self.metadata.update(category="switch", model="Computer Power Switch",
                             manufacturer="Tuya/eWeLink")

        self.expose(DpsSchemaItem("1", "switch_1", "Computer Power Switch", "Boolean"),
                    "computer_power", icon="mdi:desktop-tower")
        self.expose(DpsSchemaItem("7", "switch_usb", "USB Power Switch", "Boolean"),
                    "usb_power", icon="mdi:usb-port")
        self.expose(DpsSchemaItem("38", "relay_status", "Power-on Behavior", "Enum",
                                  values=POWER_ON_BEHAVIOR),
                    "power_on_behavior", icon="mdi:power-settings")
        self.expose(DpsSchemaItem("40", "child_lock", "Child Lock", "Boolean"),
                    "child_lock", icon="mdi:lock")
        self.expose(DpsSchemaItem("101", "reset_mode", "Reset Mode", "Enum",
                                  access=AccessMode.WRITE_ONLY,
                                  values={"Reset": "Soft Reset", "forceReset": "Force Reset", "0": "Idle"}),
                    "reset_mode", icon="mdi:restart")
        self.expose(DpsSchemaItem("102", "rf_remote", "RF Remote Control", "Enum",
                                  values={"on": "On", "off": "Off"}),
                    "rf_remote", icon="mdi:remote")

        self.buttons.update(reset_soft="Soft Reset", reset_force="Force Reset")
        self.icons.update(reset_soft="mdi:restart", reset_force="mdi:power-cycle")

        self.register_standard_functions(["switch_1", "switch_usb", "relay_status", "child_lock"])
        self.register_custom_functions(["reset_mode", "rf_remote"])

    async def process_command(self, message: str, route_name: str) -> bool:
        if route_name not in RESET_BUTTONS:
            return await super().process_command(message, route_name)
        if message.strip().upper() != PRESS:
            raise CommandValidationError(route_name, message, PRESS)
        self.logger.info(f"{self.name}: {self.buttons[route_name]} requested")
        return await super().process_command(RESET_BUTTONS[route_name], "reset_mode")
