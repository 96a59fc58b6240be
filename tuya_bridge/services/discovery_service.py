"""
Home Assistant MQTT discovery.

Builds one discovery document per driver route (and per driver button)
from the route's value type, enum values and the DPS schema attached to
it, and publishes them retained under `<prefix>/<component>/<id>/config`.
The bridge itself is announced as a device with diagnostic sensors for
its uptime, connected device count and status.
"""

import json
import logging
from typing import Any, Dict, List, Tuple

from tuya_bridge.models import AccessMode, ValueType

DEFAULT_ICON = "mdi:toggle-switch"
PRESS_PAYLOAD = "PRESS"

BRIDGE_MODEL = "Tuya MQTT Bridge"
BRIDGE_MANUFACTURER = "tuya-mqtt"
# (unique id suffix, stats topic, label, extra fields)
BRIDGE_SENSORS = (
    ("uptime", "uptime", "Uptime", {"device_class": "timestamp"}),
    ("devices", "devices_count", "Connected Devices", {"icon": "mdi:devices"}),
    ("status", "status", "Status", {"icon": "mdi:bridge"}),
)


class DiscoveryService:

    def __init__(self, bus, prefix: str = "homeassistant"):
        self.bus = bus
        self.prefix = prefix.rstrip("/")
        self.logger = logging.getLogger(self.__class__.__name__)

    async def publish_device(self, device) -> None:
        entities = self.entities_for(device)
        for component, object_id, payload in entities:
            topic = f"{self.prefix}/{component}/{object_id}/config"
            self.logger.debug(f"Home Assistant config topic: {topic}")
            await self.bus.publish(topic, json.dumps(payload), True)
        self.logger.info(f"Published discovery for {device} ({len(entities)} entities)")

    def entities_for(self, device) -> List[Tuple[str, str, Dict[str, Any]]]:
        driver = device.driver
        entities = []
        for name, route in driver.routes.all().items():
            schema = driver.schema.get(route.dps_key)
            component, extra = self._component(route, schema)
            payload = self._base_payload(device, name, schema.name if schema else None)
            if component == "sensor":
                del payload["command_topic"]
            payload.update(extra)
            entities.append((component, f"{device.device_id}_{name}", payload))

        for name, label in driver.buttons.items():
            payload = self._base_payload(device, name, label)
            del payload["state_topic"]
            payload["payload_press"] = PRESS_PAYLOAD
            entities.append(("button", f"{device.device_id}_{name}", payload))
        return entities

    @staticmethod
    def _component(route, schema) -> Tuple[str, Dict[str, Any]]:
        writable = schema is None or schema.access is not AccessMode.READ_ONLY
        unit = {"unit_of_measurement": schema.unit} if schema and schema.unit else {}
        if not writable:
            return "sensor", unit
        if route.value_type is ValueType.BOOL:
            return "switch", {"payload_on": "ON", "payload_off": "OFF"}
        if route.value_type is ValueType.ENUM and route.allowed_values:
            return "select", {"options": list(route.allowed_values)}
        if route.value_type in (ValueType.INT, ValueType.FLOAT):
            extra = dict(unit)
            if schema is not None:
                for key, value in (("min", schema.minimum), ("max", schema.maximum), ("step", schema.step)):
                    if value is not None:
                        extra[key] = value
            return "number", extra
        return "sensor", unit

    @staticmethod
    def _base_payload(device, route: str, label) -> Dict[str, Any]:
        driver = device.driver
        meta = driver.metadata
        return {
            "name": f"{device.name} {label or route.replace('_', ' ').title()}",
            "state_topic": f"{device.topic}{route}",
            "command_topic": f"{device.topic}{route}/command",
            "availability_topic": f"{device.topic}status",
            "payload_available": "online",
            "payload_not_available": "offline",
            "unique_id": f"{device.device_id}_{route}",
            "device": {
                "ids": [device.device_id],
                "name": device.name,
                "mf": meta.get("manufacturer", "Tuya"),
                "mdl": meta.get("model") or meta.get("category_name") or meta.get("device_type"),
            },
            "icon": driver.icons.get(route, DEFAULT_ICON),
        }

    # ------------------------------------------------------------ bridge

    def bridge_device(self, bridge_id: str, name: str) -> Dict[str, Any]:
        return {
            "identifiers": [bridge_id],
            "name": name,
            "model": BRIDGE_MODEL,
            "manufacturer": BRIDGE_MANUFACTURER,
        }

    def bridge_sensors(self, bridge_id: str, name: str, base_topic: str) -> List[Tuple[str, Dict[str, Any]]]:
        """Diagnostic sensors for the bridge itself, keyed by object id."""
        device = {"identifiers": [bridge_id], "name": name}
        sensors = []
        for suffix, stat, label, extra in BRIDGE_SENSORS:
            payload = {
                "name": f"{name} {label}",
                "unique_id": f"{bridge_id}_{suffix}",
                "state_topic": f"{base_topic}{bridge_id}/{stat}",
                "entity_category": "diagnostic",
                "device": device,
            }
            payload.update(extra)
            sensors.append((f"{bridge_id}_{suffix}", payload))
        return sensors

    async def publish_bridge(self, bridge_id: str, name: str, base_topic: str) -> None:
        await self.bus.publish(f"{self.prefix}/device/{bridge_id}/config",
                               json.dumps(self.bridge_device(bridge_id, name)), True)
        for object_id, payload in self.bridge_sensors(bridge_id, name, base_topic):
            await self.bus.publish(f"{self.prefix}/sensor/{object_id}/config", json.dumps(payload), True)
        self.logger.info(f"Published discovery for bridge {bridge_id}")
