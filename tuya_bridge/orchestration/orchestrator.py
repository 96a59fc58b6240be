from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional
import asyncio
import logging

from tuya_bridge.drivers import DriverRegistry
from tuya_bridge.models import CommandOutcome, DeviceIdentity
from tuya_bridge.protocols.ports import DeviceTransport, MessageBus
from tuya_bridge.session import SessionTiming
from tuya_bridge.state import StatePersistence
from .bridged_device import BridgedDevice
from .device_orchestrator import DeviceOrchestrator
from .state_machine import BridgeStateMachine, BridgeState
from .commands import (
    BridgeCommand,
    LoadDeviceListCommand,
    ConnectMessageBusCommand,
    CreateDevicesCommand,
    StartDevicesCommand
)

COMMAND_SUFFIX = "/command"

class BridgeOrchestrator:
    """Main orchestrator using command pattern and state machine"""

    def __init__(self, loader, bus: MessageBus, registry: DriverRegistry,
                 transport_factory: Callable[[DeviceIdentity], DeviceTransport],
                 base_topic: str = "tuya/",
                 timing: Optional[SessionTiming] = None,
                 persistence: Optional[StatePersistence] = None,
                 discovery=None,
                 shutdown_timeout: float = 15.0,
                 bridge_id: str = "tuya-mqtt",
                 bridge_name: Optional[str] = None,
                 stats_delay: float = 5.0,
                 stats_interval: float = 60.0):
        self.bus = bus
        self.base_topic = base_topic
        self.shutdown_timeout = shutdown_timeout
        self.discovery = discovery
        self.bridge_id = bridge_id
        self.bridge_name = bridge_name or bridge_id
        self.stats_delay = stats_delay
        self.stats_interval = stats_interval
        self.started_at: Optional[datetime] = None
        self._stats_task: Optional[asyncio.Task] = None
        self.status_topics = [f"{discovery.prefix}/status", "hass/status"] if discovery else []
        self.state_machine = BridgeStateMachine()
        self.context: Dict[str, Any] = {
            "loader": loader,
            "bus": bus,
            "registry": registry,
            "transport_factory": transport_factory,
            "base_topic": base_topic,
            "timing": timing,
            "persistence": persistence,
            "discovery": discovery,
            "status_topics": self.status_topics,
            "message_handler": self.on_message,
        }
        self.executed_commands: List[BridgeCommand] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def devices(self) -> Dict[str, DeviceOrchestrator]:
        return self.context.get("devices", {})

    async def startup(self) -> bool:
        """Execute startup sequence using command pattern"""
        try:
            command_sequence = [
                (LoadDeviceListCommand, BridgeState.DEVICE_LIST_LOAD),
                (ConnectMessageBusCommand, BridgeState.BUS_CONNECT),
                (CreateDevicesCommand, BridgeState.DEVICE_CREATION),
                (StartDevicesCommand, BridgeState.DEVICE_STARTUP),
            ]

            for command_class, target_state in command_sequence:
                if not self.state_machine.transition_to(target_state):
                    raise RuntimeError(f"Failed to transition to {target_state}")

                command = command_class(self.context)
                result = await command.execute()

                if not result.get("success", False):
                    await self._rollback_commands()
                    self.state_machine.transition_to(BridgeState.ERROR_RECOVERY)
                    return False

                self.context.update(result)
                self.executed_commands.append(command)

            self.state_machine.transition_to(BridgeState.OPERATIONAL)
            await self._start_reporting()
            self.logger.info(f"Bridge startup completed with {len(self.devices)} devices")
            return True

        except Exception as e:
            self.logger.exception(f"Bridge startup failed: {e}")
            await self._stop_reporting()
            await self._rollback_commands()
            self.state_machine.transition_to(BridgeState.ERROR_RECOVERY)
            return False

    async def _rollback_commands(self):
        """Rollback executed commands in reverse order"""
        for command in reversed(self.executed_commands):
            try:
                await command.rollback()
            except Exception as e:
                self.logger.error(f"Error during rollback: {e}")

        self.executed_commands.clear()

    async def shutdown(self):
        """Stop every device within the shutdown timeout, then release the bus"""
        if self.state_machine.stopped:
            return
        self.state_machine.transition_to(BridgeState.SHUTDOWN)
        await self._stop_reporting()
        starts = [c for c in self.executed_commands if isinstance(c, StartDevicesCommand)]
        if starts:
            try:
                await asyncio.wait_for(starts[0].rollback(), self.shutdown_timeout)
            except asyncio.TimeoutError:
                self.logger.error(f"Devices did not stop within {self.shutdown_timeout:.0f}s")
            self.executed_commands.remove(starts[0])
        await self._rollback_commands()
        self.logger.info("Bridge shutdown completed")

    # ------------------------------------------------------------------ routing

    def iter_devices(self) -> Iterator[BridgedDevice]:
        for device in self.devices.values():
            yield from device.all_devices()

    def find_device(self, key: str) -> Optional[BridgedDevice]:
        """Match a topic level against device topic names first, then ids."""
        candidates = list(self.iter_devices())
        for device in candidates:
            if device.topic_name == key:
                return device
        for device in candidates:
            if device.device_id == key:
                return device
        return None

    async def on_message(self, topic: str, payload: str) -> Optional[CommandOutcome]:
        if topic in self.status_topics:
            self.logger.info(f"Home Assistant status topic {topic} received message: {payload}")
            if payload.strip() == "online":
                await self.republish_all()
            return None

        if not topic.startswith(self.base_topic) or not topic.endswith(COMMAND_SUFFIX):
            return None
        path = topic[len(self.base_topic):-len(COMMAND_SUFFIX)]
        device_key, _, route = path.partition("/")
        device = self.find_device(device_key)
        if device is None:
            self.logger.warning(f"Command for unknown device '{device_key}' on {topic}")
            return None

        self.logger.debug(f"Received command {topic} -> {payload!r}")
        outcome = await device.handle_command(route or "command", payload)
        if outcome is CommandOutcome.UNHANDLED:
            self.logger.warning(f"No handler for route '{route}' on {device}")
        return outcome

    async def republish_all(self) -> None:
        if self.discovery and self.state_machine.operational:
            await self.discovery.publish_bridge(self.bridge_id, self.bridge_name, self.base_topic)
        for device in self.iter_devices():
            if device.online:
                await device.republish()

    # ---------------------------------------------------------------- bridge stats

    def stats_topic(self, stat: str) -> str:
        return f"{self.base_topic}{self.bridge_id}/{stat}"

    async def publish_stats(self) -> None:
        online = sum(1 for device in self.iter_devices() if device.online)
        await self.bus.publish(self.stats_topic("uptime"), self.started_at.isoformat(), True)
        await self.bus.publish(self.stats_topic("devices_count"), str(online), True)
        await self.bus.publish(self.stats_topic("status"), "online", True)
        self.logger.debug(f"Bridge stats published: {online} devices online")

    async def _start_reporting(self):
        self.started_at = datetime.now(timezone.utc)
        if self.discovery:
            await self.discovery.publish_bridge(self.bridge_id, self.bridge_name, self.base_topic)
        self._stats_task = asyncio.create_task(self._stats_loop())

    async def _stop_reporting(self):
        task, self._stats_task = self._stats_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _stats_loop(self):
        await asyncio.sleep(self.stats_delay)
        while True:
            try:
                await self.publish_stats()
            except Exception as e:
                self.logger.error(f"Failed to publish bridge stats: {e}")
            await asyncio.sleep(self.stats_interval)
