"""
Common behaviour of everything that appears on the bus as a device.

Directly connected devices (`DeviceOrchestrator`) and sub-devices behind a
gateway (`SubDevice`) share the state store, the driver, status
publication and the command fallback path. They differ only in how reads
and writes reach the hardware.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from tuya_bridge.core.exceptions import CommandValidationError, DeviceConnectionError
from tuya_bridge.drivers import DriverCallbacks, DriverRegistry
from tuya_bridge.models import CommandOutcome, normalize_key
from tuya_bridge.protocols.ports import MessageBus
from tuya_bridge.state import StatePersistence, StateStore

GET_STATES = "get-states"


class BridgedDevice(ABC):

    def __init__(self, device_id: str, name: str, topic_name: str, device_type: str,
                 bus: MessageBus, registry: DriverRegistry, base_topic: str = "tuya/",
                 category: Optional[str] = None, persistence: Optional[StatePersistence] = None):
        self.device_id = device_id
        self.name = name
        self.topic_name = topic_name
        self.topic = f"{base_topic}{topic_name}/"
        self.bus = bus
        self.store = StateStore(device_id, persistence)
        self.driver = registry.create_driver(
            device_type, device_id, name,
            DriverCallbacks(publish=self._publish_route, send_command=self._send_command),
            category=category,
        )
        self.discovery = None
        self.online = False
        self._restored = False
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{device_id}]")

    def __str__(self) -> str:
        return f"{self.name} ({self.device_id})"

    # ---------------------------------------------------------------- hardware

    @abstractmethod
    async def _send_command(self, dps: str, value: Any) -> Any:
        """Deliver one data point write to the hardware."""

    @abstractmethod
    async def request_states(self) -> None:
        """Ask the hardware for a full status report."""

    # ---------------------------------------------------------------- publishing

    async def publish(self, subtopic: str, payload: str, retain: bool = True) -> None:
        await self.bus.publish(f"{self.topic}{subtopic}", payload, retain)

    async def _publish_route(self, route: str, payload: str, retain: bool = True) -> None:
        await self.publish(route, payload, retain)

    async def publish_status(self, online: bool) -> None:
        self.online = online
        status = "online" if online else "offline"
        await self.publish("status", status)
        self.logger.info(f"{self} is {status}")

    async def _prepare(self) -> None:
        """Restore persisted state once, then (re)initialise the driver with every known value."""
        if not self._restored:
            self.store.restore()
            self._restored = True
        await self.driver.init()
        self.driver.seed(self.store.get_all())

    async def _announce(self) -> None:
        """Status, discovery and the current value of every route."""
        await self.publish_status(True)
        await self.republish()
        self.store.mark_published()

    async def republish(self) -> None:
        if self.discovery is not None:
            await self.discovery.publish_device(self)
        await self.driver.publish_all()

    # ---------------------------------------------------------------- state

    async def apply_dps(self, dps: Mapping[Any, Any]) -> None:
        """Diff a reported batch and publish whatever changed."""
        changed = self.store.update_state(dps)
        self.driver.seed(dps)
        if not changed:
            return
        values = {key: self.store.get_value(key) for key in changed}
        await self.driver.update_state(values)
        # data points no route exposes are still visible as raw values
        routed = {route.dps_key for route in self.driver.routes.routes_for_keys(changed)}
        for key in changed:
            if key not in routed:
                await self.publish(f"dps/{key}", json.dumps(values[key]))
        self.store.mark_published()

    # ---------------------------------------------------------------- commands

    async def handle_command(self, route: str, message: str) -> CommandOutcome:
        """
        Handle a command addressed to `<device>/<route>/command`.

        The driver's named routes are tried first; anything they do not
        cover goes to the generic data point path.
        """
        try:
            if await self.driver.process_command(message, route):
                return CommandOutcome.HANDLED
            return await self._handle_generic(route, message)
        except CommandValidationError as e:
            self.logger.warning(f"Dropped command for {self}: {e}")
            return CommandOutcome.INVALID
        except DeviceConnectionError as e:
            self.logger.error(f"Command for {self} on '{route}' failed: {e}")
            return CommandOutcome.FAILED

    async def _handle_generic(self, route: str, message: str) -> CommandOutcome:
        if route == "command":
            return await self._handle_device_command(message)
        if route == "dps":
            return await self._handle_dps_command(message)
        if route.startswith("dps/"):
            key = normalize_key(route[len("dps/"):])
            await self._send_command(key, _decode(message))
            return CommandOutcome.HANDLED
        self.logger.debug(f"No route '{route}' on {self}")
        return CommandOutcome.UNHANDLED

    async def _handle_device_command(self, message: str) -> CommandOutcome:
        if message.strip().lower() == GET_STATES:
            await self.request_states()
            return CommandOutcome.HANDLED
        command = _decode(message)
        if not isinstance(command, dict):
            self.logger.warning(f"Invalid command for {self}: {message!r}")
            return CommandOutcome.INVALID
        # only numeric keys address data points directly
        writes = {k: v for k, v in command.items() if str(k).isdigit()}
        if not writes:
            self.logger.warning(f"Command for {self} names no data point: {message!r}")
            return CommandOutcome.INVALID
        return await self._write_all(writes)

    async def _handle_dps_command(self, message: str) -> CommandOutcome:
        command = _decode(message)
        if not isinstance(command, dict) or not command:
            self.logger.warning(f"DPS command for {self} must be a JSON object: {message!r}")
            return CommandOutcome.INVALID
        return await self._write_all(command)

    async def _write_all(self, writes: Dict[Any, Any]) -> CommandOutcome:
        for key, value in writes.items():
            await self._send_command(normalize_key(key), value)
        return CommandOutcome.HANDLED


def _decode(message: str) -> Any:
    """JSON value when the payload parses, else the raw string."""
    try:
        return json.loads(message)
    except ValueError:
        return message
