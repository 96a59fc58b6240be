"""
Sub-devices behind a gateway.

A sub-device has no connection of its own: reads and writes travel
through the parent's session tagged with the sub-device's cid, and data
reaches it when the parent demultiplexes an incoming report.
"""

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from tuya_bridge.drivers import DriverRegistry
from tuya_bridge.models import CommandOutcome, SubDeviceConfig, SubDeviceMode
from tuya_bridge.protocols.ports import MessageBus
from tuya_bridge.session import SessionTiming
from tuya_bridge.state import StatePersistence
from .bridged_device import BridgedDevice

if TYPE_CHECKING:
    from .device_orchestrator import DeviceOrchestrator


@dataclass(frozen=True)
class SubDevicePolicy:
    """What a sub-device mode allows; the only place the mode is interpreted."""
    polls: bool
    accepts_commands: bool

    @classmethod
    def for_mode(cls, mode: SubDeviceMode) -> "SubDevicePolicy":
        if mode is SubDeviceMode.PASSIVE:
            # battery sensors sleep most of the time; silence means nothing
            return cls(polls=False, accepts_commands=False)
        return cls(polls=True, accepts_commands=True)


class SubDevice(BridgedDevice):

    def __init__(self, config: SubDeviceConfig, parent: "DeviceOrchestrator", bus: MessageBus,
                 registry: DriverRegistry, base_topic: str = "tuya/",
                 timing: Optional[SessionTiming] = None,
                 persistence: Optional[StatePersistence] = None):
        super().__init__(
            config.cid, config.display_name, config.topic_name, config.device_type,
            bus, registry, base_topic=base_topic, category=config.category,
            persistence=persistence if config.persist else None,
        )
        self.config = config
        self.cid = config.cid
        self.parent = parent
        self.policy = SubDevicePolicy.for_mode(config.mode)
        self.timing = timing or SessionTiming()
        self.polls_missed = 0
        self._ready = False
        self._poll_task: Optional[asyncio.Task] = None

    def __str__(self) -> str:
        return f"{self.name} (cid {self.cid} via {self.parent.device_id})"

    @property
    def mode(self) -> SubDeviceMode:
        return self.config.mode

    # ---------------------------------------------------------------- parent events

    async def on_parent_connected(self) -> None:
        self.polls_missed = 0
        await self._prepare()
        self._ready = True
        await self._announce()
        if self.policy.polls:
            self._start_polling()
            await self.request_states()

    async def on_parent_disconnected(self) -> None:
        self._stop_polling()
        self._ready = False
        if self.online:
            await self.publish_status(False)

    async def on_data(self, dps: Mapping[Any, Any]) -> None:
        self.logger.debug(f"Received data from parent device {self.parent.device_id}: {dict(dps)}")
        self.polls_missed = 0
        if self._ready and not self.online:
            await self._announce()
        await self.apply_dps(dps)

    # ---------------------------------------------------------------- polling

    def _start_polling(self) -> None:
        self._stop_polling()
        self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _poll_loop(self) -> None:
        while self._ready:
            await asyncio.sleep(self.timing.poll_interval)
            if not self._ready:
                break
            await self._poll_tick()

    async def _poll_tick(self) -> None:
        """Issue one poll, then judge the earlier ones (warn 1-3 misses, offline beyond)."""
        await self.request_states()
        limit = self.timing.heartbeat_max_missed
        if self.online and self.polls_missed > limit:
            self.logger.error(f"Sub-device {self} not responding to refresh commands... reporting as disconnected")
            await self.publish_status(False)
        elif self.online and self.polls_missed > 0:
            plural = "times" if self.polls_missed > 1 else "time"
            self.logger.warning(f"Sub-device {self} has not responded to refresh command {self.polls_missed} {plural}")
        self.polls_missed += 1

    # ---------------------------------------------------------------- hardware

    async def request_states(self) -> None:
        await self.parent.request_get(self.cid)

    async def _send_command(self, dps: str, value: Any) -> Any:
        return await self.parent.send_sub_command(self.cid, dps, value)

    async def handle_command(self, route: str, message: str) -> CommandOutcome:
        if not self.policy.accepts_commands:
            self.logger.warning(f"Sub-device {self} is passive and does not accept commands (route '{route}')")
            return CommandOutcome.REJECTED
        return await super().handle_command(route, message)
