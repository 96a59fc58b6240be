"""
Tuya LAN Protocol Client Implementation
tinytuya based transport for one directly connected device and its sub-devices
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import tinytuya

from tuya_bridge.core.exceptions import DeviceConnectionError
from tuya_bridge.models import DeviceIdentity
from tuya_bridge.protocols.base_protocol_client import BaseProtocolClient, ProtocolClientConfig, ProtocolType, ConnectionState
from tuya_bridge.protocols.ports import DeviceTransport

# tinytuya error codes that mean the link itself is gone
LINK_ERRORS = {"901", "905"}


class TuyaTransport(BaseProtocolClient, DeviceTransport):
    """
    Tuya LAN transport.

    tinytuya is blocking, so every call runs in a worker thread and all
    calls for one device are serialised by a single lock. A receive loop
    picks up reports the device pushes on its own (local button presses,
    sub-device events).
    """

    connection_error = DeviceConnectionError

    def __init__(self, config: ProtocolClientConfig):
        if config.protocol_type != ProtocolType.TUYA_LAN:
            raise ValueError("Config must be for TUYA_LAN protocol")

        super().__init__(config)

        params = config.connection_params
        self.device_id: str = params.get('id')
        self.local_key: str = params.get('key')
        self._address: Optional[str] = params.get('ip')
        self.version = float(params.get('version') or 3.3)
        self.receive_timeout = params.get('receive_timeout', 1)

        self.device: Optional[tinytuya.Device] = None
        self._children: Dict[str, tinytuya.Device] = {}
        self._lock = asyncio.Lock()
        self._receive_task: Optional[asyncio.Task] = None

    @staticmethod
    def config_for(identity: DeviceIdentity, timeout: float = 5.0) -> ProtocolClientConfig:
        return ProtocolClientConfig(
            ProtocolType.TUYA_LAN,
            {"id": identity.device_id, "key": identity.key, "ip": identity.ip, "version": identity.version},
            metadata={"name": identity.display_name},
            max_retries=1,
            timeout=timeout,
        )

    @property
    def address(self) -> Optional[str]:
        return self._address

    def _validate_config(self):
        if not self.device_id or not self.local_key:
            raise ValueError("Tuya device id and local key are required")

    async def _initialize_client(self):
        # the device object is built once the address is known
        pass

    # DeviceTransport port
    async def find(self) -> str:
        info = await asyncio.to_thread(tinytuya.find_device, self.device_id)
        address = (info or {}).get('ip')
        if not address:
            raise DeviceConnectionError(f"Device id {self.device_id} not found on the local network")
        self._address = address
        if info.get('version'):
            self.version = float(info['version'])
        self.device = None
        return address

    async def _connect(self):
        if not self._address:
            raise DeviceConnectionError(f"No address known for device id {self.device_id}")
        if self.device is None:
            self.device = tinytuya.Device(
                self.device_id, self._address, self.local_key,
                version=self.version, persist=True,
                connection_timeout=self.config.timeout,
            )
        result = await self._call(self.device.status)
        self._check(result, "connect")
        self.logger.info(f"Connected to {self.device_id} at {self._address} (protocol {self.version})")

        # the receive loop runs only while connected
        self.connection_state = ConnectionState.CONNECTED

        if self._receive_task is None or self._receive_task.done():
            self._receive_task = asyncio.create_task(self._receive_loop())
        if isinstance(result, dict) and 'dps' in result:
            await self._deliver(result)

    async def _disconnect(self):
        task, self._receive_task = self._receive_task, None
        if task and task is not asyncio.current_task():
            task.cancel()
        if self.device is not None:
            await self._call(self.device.close)
        self._children.clear()

    async def get(self, cid: Optional[str] = None) -> None:
        result = await self._call(self._target(cid).status)
        self._check(result, "get")
        if isinstance(result, dict) and 'dps' in result:
            await self._deliver(result, cid)

    async def refresh(self, cid: Optional[str] = None) -> None:
        # the answer is pushed and picked up by the receive loop
        await self._call(self._target(cid).updatedps, None, True)

    async def set(self, dps: str, value: Any, cid: Optional[str] = None) -> Any:
        index = int(dps) if str(dps).isdigit() else dps
        result = await self._call(self._target(cid).set_value, index, value)
        self._check(result, "set")
        if isinstance(result, dict) and 'dps' in result:
            await self._deliver(result, cid)
        return result

    async def heartbeat(self) -> None:
        result = await self._call(self._require_device().heartbeat, False)
        if result is not None and not _is_error(result):
            await self._safe_callback(self.on_heartbeat)

    # internals
    def _require_device(self) -> tinytuya.Device:
        if self.device is None or self.connection_state != ConnectionState.CONNECTED:
            raise DeviceConnectionError(f"Device id {self.device_id} is not connected")
        return self.device

    def _target(self, cid: Optional[str]) -> tinytuya.Device:
        parent = self._require_device()
        if not cid:
            return parent
        child = self._children.get(cid)
        if child is None:
            child = tinytuya.Device(cid, cid=cid, parent=parent)
            self._children[cid] = child
        return child

    async def _call(self, fn, *args):
        async with self._lock:
            worker = asyncio.ensure_future(asyncio.to_thread(fn, *args))
            try:
                return await asyncio.shield(worker)
            except asyncio.CancelledError:
                # the thread cannot be interrupted; hold the lock until the device call returns
                await _drain(worker)
                raise

    def _receive_once(self):
        # a short socket timeout for polling, then back to the connect timeout for requests
        self.device.set_socketTimeout(self.receive_timeout)
        try:
            return self.device.receive()
        finally:
            self.device.set_socketTimeout(self.config.timeout)

    def _check(self, result: Any, what: str) -> None:
        if _is_error(result):
            raise DeviceConnectionError(f"{what} on {self.device_id} failed: {result.get('Error')} ({result.get('Err')})")

    async def _deliver(self, result: Dict[str, Any], cid: Optional[str] = None) -> None:
        payload = {"dps": result.get('dps', {})}
        if result.get('cid') or cid:
            payload["cid"] = result.get('cid') or cid
        await self._safe_callback(self.on_data, payload)

    async def _receive_loop(self):
        while self.connection_state == ConnectionState.CONNECTED:
            result = await self._call(self._receive_once)
            if result is None:
                await asyncio.sleep(0)
                continue
            if _is_error(result):
                if str(result.get('Err')) in LINK_ERRORS:
                    self.logger.warning(f"Link to {self.device_id} lost: {result.get('Error')}")
                    self.connection_state = ConnectionState.DISCONNECTED
                    self._receive_task = None
                    await self._safe_callback(self.on_disconnected)
                    return
                self.logger.debug(f"Ignoring error report from {self.device_id}: {result}")
                continue
            await self._safe_callback(self.on_heartbeat)
            if 'dps' in result:
                await self._deliver(result)


def _is_error(result: Any) -> bool:
    return isinstance(result, dict) and 'Error' in result


async def _drain(worker: asyncio.Future) -> None:
    """Wait for a worker thread whose caller was cancelled and discard its outcome."""
    while not worker.done():
        try:
            await asyncio.wait({worker})
        except asyncio.CancelledError:
            continue
    if not worker.cancelled() and worker.exception() is not None:
        logging.getLogger(TuyaTransport.__name__).debug(f"Abandoned device call failed: {worker.exception()}")
