import asyncio
from typing import Any, Dict, List, Optional

from tuya_bridge.core.exceptions import DeviceConnectionError
from tuya_bridge.drivers import DriverRegistry
from tuya_bridge.models import DeviceIdentity
from tuya_bridge.protocols.ports import DeviceTransport, MessageBus
from tuya_bridge.session import ConnectionSession, SessionTiming
from tuya_bridge.state import StatePersistence
from .bridged_device import BridgedDevice
from .sub_device import SubDevice


class DeviceOrchestrator(BridgedDevice):
    """
    One directly connected device: its session, state store and driver,
    plus the sub-devices reachable through it.

    Follows the session: on connect the driver is initialised and the
    device announced; on link loss the device goes offline, the
    sub-devices are told, and after a grace period the session's
    reconnect sequence runs.
    """

    def __init__(self, identity: DeviceIdentity, transport: DeviceTransport, bus: MessageBus,
                 registry: DriverRegistry, base_topic: str = "tuya/",
                 timing: Optional[SessionTiming] = None,
                 persistence: Optional[StatePersistence] = None):
        super().__init__(
            identity.device_id, identity.display_name, identity.topic_name, identity.device_type,
            bus, registry, base_topic=base_topic, category=identity.category,
            persistence=persistence if identity.persist else None,
        )
        self.identity = identity
        self.timing = timing or SessionTiming()
        self.session = ConnectionSession(identity, transport, self.timing)
        self.session.set_callbacks(
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
            on_data=self.on_data,
        )
        self.sub_devices: Dict[str, SubDevice] = {
            cfg.cid: SubDevice(cfg, self, bus, registry, base_topic=base_topic,
                               timing=self.timing, persistence=persistence)
            for cfg in identity.sub_devices
        }
        self._stopping = False
        self._reconnect_task: Optional[asyncio.Task] = None

    def __str__(self) -> str:
        return str(self.identity)

    def all_devices(self) -> List[BridgedDevice]:
        return [self, *self.sub_devices.values()]

    def attach_discovery(self, discovery) -> None:
        for device in self.all_devices():
            device.discovery = discovery

    # ---------------------------------------------------------------- lifecycle

    async def start(self) -> None:
        """Connect; a failed first attempt goes straight into the reconnect sequence."""
        self._stopping = False
        try:
            await self.session.connect()
        except DeviceConnectionError as e:
            self.logger.error(f"Error connecting to device {self.identity}: {e}")
            await self.publish_status(False)
            self._schedule_reconnect(grace=0)

    async def stop(self) -> None:
        self._stopping = True
        task, self._reconnect_task = self._reconnect_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for sub in self.sub_devices.values():
            await sub.on_parent_disconnected()
        await self.session.close()
        await self.publish_status(False)
        self.store.save()

    async def _on_connected(self) -> None:
        await self._prepare()
        await self._announce()
        for sub in self.sub_devices.values():
            await sub.on_parent_connected()
        await self.session.get()

    async def _on_disconnected(self) -> None:
        await self.publish_status(False)
        for sub in self.sub_devices.values():
            await sub.on_parent_disconnected()
        if not self._stopping:
            self._schedule_reconnect(grace=self.timing.disconnect_grace)

    def _schedule_reconnect(self, grace: float) -> None:
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._recover(grace))

    async def _recover(self, grace: float) -> None:
        if grace:
            await asyncio.sleep(grace)
        if not self._stopping:
            await self.session.reconnect()

    # ---------------------------------------------------------------- data

    async def on_data(self, payload: Dict[str, Any]) -> None:
        """Route a status report to this device or to the sub-device its cid names."""
        dps = payload.get("dps")
        cid = payload.get("cid")
        if cid:
            sub = self.sub_devices.get(str(cid))
            if sub is None:
                self.logger.error(f"Sub-device with cid {cid} not found on {self.identity}")
                return
            await sub.on_data(dps or {})
            return
        if not isinstance(dps, dict):
            self.logger.debug(f"Ignoring payload without dps from {self.identity}: {payload}")
            return
        await self.apply_dps(dps)

    async def request_states(self) -> None:
        await self.session.get()

    async def request_get(self, cid: str) -> None:
        await self.session.get(cid)

    async def _send_command(self, dps: str, value: Any) -> Any:
        return await self.session.set(dps, value)

    async def send_sub_command(self, cid: str, dps: str, value: Any) -> Any:
        return await self.session.set(dps, value, cid=cid)
