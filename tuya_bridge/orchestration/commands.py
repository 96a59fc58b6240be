from abc import ABC, abstractmethod
from typing import Any, Dict
import asyncio
import logging

from tuya_bridge.core.exceptions import ConfigurationError, ProtocolError
from .device_orchestrator import DeviceOrchestrator

class BridgeCommand(ABC):
    """Base class for bridge startup commands"""

    def __init__(self, context: Dict[str, Any]):
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def execute(self) -> Dict[str, Any]:
        """Execute the command and return results"""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback command effects if possible"""
        pass

class LoadDeviceListCommand(BridgeCommand):
    """Command to load and validate the device list file"""

    async def execute(self) -> Dict[str, Any]:
        loader = self.context.get("loader")
        if not loader:
            raise ValueError("DeviceListLoader not found in context")

        try:
            identities = loader.load()
        except ConfigurationError as e:
            self.logger.error(f"Device list load failed: {e}")
            return {"success": False, "error": str(e)}

        sub_count = sum(len(identity.sub_devices) for identity in identities)
        self.logger.info(f"Loaded {len(identities)} devices with {sub_count} sub-devices")
        return {"identities": identities, "success": True}

    async def rollback(self) -> None:
        # Loading the device list doesn't need rollback
        pass

class ConnectMessageBusCommand(BridgeCommand):
    """Command to connect the message bus and subscribe to command topics"""

    async def execute(self) -> Dict[str, Any]:
        bus = self.context["bus"]
        base_topic = self.context.get("base_topic", "tuya/")

        bus.set_message_handler(self.context["message_handler"])
        try:
            await bus.connect()
            patterns = [
                f"{base_topic}+/command",
                f"{base_topic}+/+/command",
                f"{base_topic}+/dps/+/command",
                *self.context.get("status_topics", []),
            ]
            for pattern in patterns:
                await bus.subscribe(pattern)
            await bus.publish(f"{base_topic}bridge/status", "online", True)
        except (ProtocolError, OSError) as e:
            self.logger.error(f"Message bus connection failed: {e}")
            return {"success": False, "error": str(e)}

        self.logger.info(f"Message bus connected, subscribed to {len(patterns)} topic patterns")
        return {"bus_connected": True, "success": True}

    async def rollback(self) -> None:
        bus = self.context["bus"]
        try:
            await bus.publish(f"{self.context.get('base_topic', 'tuya/')}bridge/status", "offline", True)
            await bus.disconnect()
        except (ProtocolError, OSError) as e:
            self.logger.error(f"Error disconnecting message bus: {e}")

class CreateDevicesCommand(BridgeCommand):
    """Command to build an orchestrator for every configured device"""

    async def execute(self) -> Dict[str, Any]:
        identities = self.context.get("identities", [])
        transport_factory = self.context["transport_factory"]
        discovery = self.context.get("discovery")

        devices: Dict[str, DeviceOrchestrator] = {}
        for identity in identities:
            if identity.device_id in devices:
                self.logger.warning(f"Duplicate device id {identity.device_id} in device list, skipping {identity}")
                continue
            device = DeviceOrchestrator(
                identity,
                transport_factory(identity),
                self.context["bus"],
                self.context["registry"],
                base_topic=self.context.get("base_topic", "tuya/"),
                timing=self.context.get("timing"),
                persistence=self.context.get("persistence"),
            )
            if discovery is not None:
                device.attach_discovery(discovery)
            devices[identity.device_id] = device
            self.logger.info(f"Created device {identity} with driver {device.driver.__class__.__name__}")

        return {"devices": devices, "success": True}

    async def rollback(self) -> None:
        self.context["devices"] = {}

class StartDevicesCommand(BridgeCommand):
    """Command to open every device session"""

    async def execute(self) -> Dict[str, Any]:
        devices = self.context.get("devices", {})
        await asyncio.gather(*(device.start() for device in devices.values()))
        connected = sum(1 for device in devices.values() if device.session.connected)
        self.logger.info(f"Started {len(devices)} devices, {connected} connected")
        return {"success": True}

    async def rollback(self) -> None:
        devices = self.context.get("devices", {})
        results = await asyncio.gather(*(device.stop() for device in devices.values()), return_exceptions=True)
        for device, result in zip(devices.values(), results):
            if isinstance(result, Exception):
                self.logger.error(f"Error stopping {device}: {result}")
