from tuya_bridge.models import AccessMode, DpsSchemaItem
from .base_driver import DeviceDriver

RO = AccessMode.READ_ONLY


class MotionSensorDriver(DeviceDriver):
    """HW400B passive infrared sensor (category pir), usually behind a gateway."""

    device_type = "MotionSensor"

    async def init(self) -> None:
        self.metadata.update(category="pir", model="HW400B")

        self.expose(DpsSchemaItem("1", "pir", "Motion Detected", "Enum", access=RO,
                                  values={"none": "No Motion", "pir": "Motion Detected"}),
                    icon="mdi:motion-sensor")
        self.expose(DpsSchemaItem("4", "battery_percentage", "Battery Percentage", "Integer",
                                  access=RO, unit="%"), icon="mdi:battery")
        self.expose(DpsSchemaItem("9", "sensitivity", "Sensitivity", "Enum",
                                  values={"low": "Low", "medium": "Medium", "high": "High"}),
                    icon="mdi:tune")
        self.expose(DpsSchemaItem("11", "va_temperature", "Temperature", "Integer",
                                  access=RO, unit="°C"), icon="mdi:thermometer")
        self.expose(DpsSchemaItem("12", "va_humidity", "Humidity", "Integer",
                                  access=RO, unit="%"), icon="mdi:water-percent")

        self.register_standard_functions(["pir", "battery_percentage", "va_temperature", "va_humidity"])
        self.register_custom_functions(["sensitivity"])
