"""Shared fakes and fixtures.

The fakes implement the bridge's transport and bus ports in memory so
sessions, orchestrators and the bridge can be driven without a broker or
real devices.
"""
from typing import Any, List, Optional, Tuple

import pytest

from tuya_bridge.core.exceptions import DeviceConnectionError, ProtocolError
from tuya_bridge.drivers import build_default_registry
from tuya_bridge.protocols.ports import DeviceTransport, MessageBus
from tuya_bridge.session import SessionTiming


class FakeTransport(DeviceTransport):
    """In-memory device link recording every request."""

    def __init__(self, address: Optional[str] = "10.0.0.5", fail_connects: int = 0):
        super().__init__()
        self._address = address
        self.found_address = "10.0.0.99"
        self.fail_connects = fail_connects
        self.find_calls = 0
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.heartbeats = 0
        self.gets: List[Optional[str]] = []
        self.refreshes: List[Optional[str]] = []
        self.sets: List[Tuple[str, Any, Optional[str]]] = []

    @property
    def address(self):
        return self._address

    async def find(self):
        self.find_calls += 1
        self._address = self.found_address
        return self._address

    async def connect(self):
        self.connect_calls += 1
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise DeviceConnectionError("connection refused")

    async def disconnect(self):
        self.disconnect_calls += 1

    async def get(self, cid=None):
        self.gets.append(cid)

    async def refresh(self, cid=None):
        self.refreshes.append(cid)

    async def set(self, dps, value, cid=None):
        self.sets.append((dps, value, cid))
        return {"dps": {dps: value}}

    async def heartbeat(self):
        self.heartbeats += 1

    # device side helpers
    async def push(self, dps, cid=None):
        payload = {"dps": dps}
        if cid:
            payload["cid"] = cid
        await self.on_data(payload)

    async def drop(self):
        await self.on_disconnected()


class FakeBus(MessageBus):
    """In-memory broker keeping every publish in order."""

    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.connected = False
        self.published: List[Tuple[str, str, bool]] = []
        self.subscriptions: List[str] = []
        self.handler = None

    async def connect(self):
        if self.fail_connect:
            raise ProtocolError("broker unreachable")
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def publish(self, topic, payload, retain=True):
        self.published.append((topic, payload, retain))

    async def subscribe(self, pattern):
        self.subscriptions.append(pattern)

    def set_message_handler(self, handler):
        self.handler = handler

    def payloads(self, topic: str) -> List[str]:
        return [payload for t, payload, _ in self.published if t == topic]

    def last(self, topic: str) -> Optional[str]:
        payloads = self.payloads(topic)
        return payloads[-1] if payloads else None

    def topics(self) -> List[str]:
        return [t for t, _, _ in self.published]

    def clear(self):
        self.published.clear()


@pytest.fixture
def timing():
    """Timing with instant retries; heartbeat and poll loops never fire on their own."""
    return SessionTiming(
        heartbeat_interval=3600,
        reconnect_delays=(0.0, 0.0),
        disconnect_grace=0.0,
        poll_interval=3600,
        connect_timeout=1.0,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def registry():
    return build_default_registry()
