from tuya_bridge.models import AccessMode, DpsSchemaItem
from .base_driver import DeviceDriver

# Tuya standard category codes, used for labelling only
CATEGORY_NAMES = {
    "dj": "Light",
    "kg": "Switch",
    "kt": "Air Conditioner",
    "sp": "Smart Camera",
    "ms": "Residential Lock",
    "sd": "Robot Vacuum",
    "kj": "Air Purifier",
    "rs": "Water Heater",
    "cz": "Socket",
    "cl": "Curtain",
    "fs": "Fan",
    "js": "Water Purifier",
    "pir": "Motion Sensor",
    "wk": "Thermostat",
    "pc": "Power Strip",
    "jtmspro": "Dehumidifier",
    "jsq": "Humidifier",
    "xxj": "Diffuser",
    "cs": "Pet Feeder",
    "sfkzq": "Irrigator",
    "dlq": "Electric Blanket",
    "hj": "Door/Window Controller",
    "qn": "Heater",
    "zndb": "Bathroom Heater",
    "bhqz": "Smart Milk Kettle",
    "mjj": "Cat Toilet",
    "cjq": "Pet Fountain",
    "cwwsq": "Pet Ball Thrower",
    "cwlsq": "Pet Treat Feeder",
    "ylj": "Towel Rack",
    "znbl": "Electric Fireplace",
    "znzwy": "Smart Indoor Garden",
}

POWER_ON_BEHAVIOR = {"off": "Off", "on": "On", "memory": "Memory"}


def category_name(code) -> str:
    return CATEGORY_NAMES.get(code or "", "Unknown Device")


class DefaultDriver(DeviceDriver):
    """
    Fallback driver for devices without a dedicated implementation.

    Exposes the data points most Tuya devices share; anything else is
    still reachable through the generic `dps/<key>` command path.
    """

    device_type = "Default"

    async def init(self) -> None:
        category = self.metadata.get("category") or "unknown"
        self.metadata.update(category=category, category_name=category_name(category))

        self.expose(DpsSchemaItem("1", "switch", "Power Switch", "Boolean"))
        self.expose(DpsSchemaItem("2", "countdown", "Countdown", "Integer", unit="s"))
        self.expose(DpsSchemaItem("3", "mode", "Mode", "Enum"))
        self.expose(DpsSchemaItem("4", "battery_percentage", "Battery Percentage", "Integer",
                                  access=AccessMode.READ_ONLY, unit="%"))

        # described, not routed
        self.register_schema(DpsSchemaItem("9", "countdown_1", "Countdown Timer", "Integer", unit="s"))
        for index, dps in enumerate(("20", "21", "22"), start=1):
            self.register_schema(DpsSchemaItem(dps, f"switch_{index}", f"Switch {index}", "Boolean"))
        self.register_schema(DpsSchemaItem("38", "relay_status", "Power-on Behavior", "Enum",
                                           values=POWER_ON_BEHAVIOR))
        self.register_schema(DpsSchemaItem("40", "child_lock", "Child Lock", "Boolean"))

        self.register_standard_functions(["switch", "countdown", "mode"])
