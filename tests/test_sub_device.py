"""Unit tests for sub-devices behind a gateway.

Tests cover:
    - Status following the parent link
    - Active polling and the missed-poll rule
    - Passive sub-devices never polled and refusing commands
    - Data and commands travelling with the cid
"""

import pytest
import pytest_asyncio

from tuya_bridge.models import CommandOutcome, DeviceIdentity, SubDeviceConfig, SubDeviceMode
from tuya_bridge.orchestration import DeviceOrchestrator, SubDevicePolicy

SENSOR = SubDeviceConfig("cid-pir", name="Hall Sensor", mode=SubDeviceMode.PASSIVE, device_type="MotionSensor")
OUTLET = SubDeviceConfig("cid-plug", name="Garden Outlet", mode=SubDeviceMode.ACTIVE, device_type="SmartPlug")
GATEWAY = DeviceIdentity(device_id="gw1", key="secret", ip="10.0.0.7", name="Gateway",
                         sub_devices=(SENSOR, OUTLET))


@pytest_asyncio.fixture
async def gateway(transport, bus, registry, timing):
    device = DeviceOrchestrator(GATEWAY, transport, bus, registry, base_topic="tuya/", timing=timing)
    await device.start()
    yield device
    await device.stop()


# ============================================
# Policy Tests
# ============================================

class TestSubDevicePolicy:
    """Test the mode interpretation."""

    def test_active(self):
        """Active sub-devices are polled and writable."""
        policy = SubDevicePolicy.for_mode(SubDeviceMode.ACTIVE)
        assert policy.polls and policy.accepts_commands

    def test_passive(self):
        """Passive sub-devices are neither polled nor writable."""
        policy = SubDevicePolicy.for_mode(SubDeviceMode.PASSIVE)
        assert not policy.polls and not policy.accepts_commands


# ============================================
# Status Tests
# ============================================

class TestStatus:
    """Test sub-device status publication."""

    @pytest.mark.asyncio
    async def test_online_with_parent(self, gateway, bus):
        """Both modes come online when the gateway connects."""
        assert bus.last("tuya/hall_sensor/status") == "online"
        assert bus.last("tuya/garden_outlet/status") == "online"

    @pytest.mark.asyncio
    async def test_offline_with_parent(self, gateway, bus, transport):
        """Losing the gateway takes every sub-device offline."""
        gateway._stopping = True
        await transport.drop()
        assert bus.last("tuya/gateway/status") == "offline"
        assert bus.last("tuya/hall_sensor/status") == "offline"
        assert bus.last("tuya/garden_outlet/status") == "offline"

    @pytest.mark.asyncio
    async def test_all_devices(self, gateway):
        """The gateway lists itself and its sub-devices."""
        assert [d.device_id for d in gateway.all_devices()] == ["gw1", "cid-pir", "cid-plug"]


# ============================================
# Polling Tests
# ============================================

class TestPolling:
    """Test active polling."""

    @pytest.mark.asyncio
    async def test_only_active_is_polled(self, gateway, transport):
        """The active sub-device is asked for its state, the passive one never."""
        assert "cid-plug" in transport.gets
        assert "cid-pir" not in transport.gets
        assert gateway.sub_devices["cid-pir"]._poll_task is None

    @pytest.mark.asyncio
    async def test_missed_polls_take_it_offline(self, gateway, bus):
        """Four unanswered polls are tolerated, the fifth reports offline."""
        outlet = gateway.sub_devices["cid-plug"]
        for _ in range(4):
            await outlet._poll_tick()
        assert outlet.online

        await outlet._poll_tick()
        assert not outlet.online
        assert bus.last("tuya/garden_outlet/status") == "offline"

    @pytest.mark.asyncio
    async def test_data_brings_it_back(self, gateway, bus, transport):
        """A report after going offline announces the sub-device again."""
        outlet = gateway.sub_devices["cid-plug"]
        for _ in range(5):
            await outlet._poll_tick()
        assert not outlet.online

        await transport.push({"1": True}, cid="cid-plug")
        assert outlet.online
        assert outlet.polls_missed == 0
        assert bus.last("tuya/garden_outlet/status") == "online"

    @pytest.mark.asyncio
    async def test_poll_keeps_requesting(self, gateway, transport):
        """Every poll tick asks the gateway for the sub-device's state."""
        outlet = gateway.sub_devices["cid-plug"]
        transport.gets.clear()
        await outlet._poll_tick()
        await outlet._poll_tick()
        assert transport.gets == ["cid-plug", "cid-plug"]


# ============================================
# Data and Command Tests
# ============================================

class TestDataAndCommands:
    """Test cid routing in both directions."""

    @pytest.mark.asyncio
    async def test_data_reaches_sub_device(self, gateway, bus, transport):
        """Reports tagged with a cid update only that sub-device."""
        await transport.push({"1": "none"}, cid="cid-pir")
        await transport.push({"1": "pir"}, cid="cid-pir")
        assert bus.payloads("tuya/hall_sensor/pir") == ["pir"]
        assert gateway.store.get_all() == {}

    @pytest.mark.asyncio
    async def test_active_command_carries_cid(self, gateway, transport):
        """Writes to an active sub-device go through the gateway with its cid."""
        outlet = gateway.sub_devices["cid-plug"]
        assert await outlet.handle_command("switch_1", "ON") is CommandOutcome.HANDLED
        assert transport.sets == [("1", True, "cid-plug")]

    @pytest.mark.asyncio
    async def test_passive_rejects_commands(self, gateway, transport):
        """Passive sub-devices refuse every command."""
        sensor = gateway.sub_devices["cid-pir"]
        assert await sensor.handle_command("sensitivity", "high") is CommandOutcome.REJECTED
        assert await sensor.handle_command("command", "get-states") is CommandOutcome.REJECTED
        assert transport.sets == []
