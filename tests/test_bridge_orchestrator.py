"""Unit tests for the bridge orchestrator.

Tests cover:
    - Startup command sequence and state machine
    - Rollback when a startup step fails
    - Command topic routing
    - Republish on Home Assistant birth messages
    - Bridge discovery and periodic stats
    - Shutdown and the bridge state machine
"""

import asyncio
import json
from datetime import datetime

import pytest
import pytest_asyncio

from conftest import FakeBus, FakeTransport
from tuya_bridge.core.exceptions import ConfigurationError
from tuya_bridge.models import CommandOutcome, DeviceIdentity, SubDeviceConfig, SubDeviceMode
from tuya_bridge.orchestration import BridgeOrchestrator, BridgeState, BridgeStateMachine
from tuya_bridge.services import DiscoveryService

IDENTITIES = [
    DeviceIdentity(device_id="pc1", key="k1", ip="10.0.0.2", name="Office PC", device_type="ComputerPowerSwitch"),
    DeviceIdentity(device_id="gw1", key="k2", ip="10.0.0.3", name="Gateway",
                   sub_devices=(SubDeviceConfig("cid-pir", name="Hall Sensor",
                                                mode=SubDeviceMode.PASSIVE, device_type="MotionSensor"),)),
]


class StaticLoader:
    def __init__(self, identities=None, error=None):
        self.identities = identities or []
        self.error = error

    def load(self):
        if self.error:
            raise self.error
        return list(self.identities)


@pytest.fixture
def transports():
    return {}


def make_bridge(bus, registry, timing, transports, loader=None, discovery=True, **kwargs):
    return BridgeOrchestrator(
        loader=loader or StaticLoader(IDENTITIES),
        bus=bus,
        registry=registry,
        transport_factory=lambda identity: transports.setdefault(identity.device_id, FakeTransport()),
        base_topic="tuya/",
        timing=timing,
        discovery=DiscoveryService(bus) if discovery else None,
        **kwargs,
    )


@pytest_asyncio.fixture
async def bridge(bus, registry, timing, transports):
    orchestrator = make_bridge(bus, registry, timing, transports)
    assert await orchestrator.startup()
    yield orchestrator
    await orchestrator.shutdown()


# ============================================
# Startup Tests
# ============================================

class TestStartup:
    """Test the startup sequence."""

    @pytest.mark.asyncio
    async def test_startup_reaches_operational(self, bridge, bus):
        """A clean start connects the bus, creates and starts every device."""
        assert bridge.state_machine.current_state == BridgeState.OPERATIONAL
        assert bus.connected
        assert set(bridge.devices) == {"pc1", "gw1"}
        assert all(device.session.connected for device in bridge.devices.values())
        assert bus.last("tuya/bridge/status") == "online"

    @pytest.mark.asyncio
    async def test_subscriptions(self, bridge, bus):
        """Command topics and both Home Assistant status topics are subscribed."""
        assert bus.subscriptions == [
            "tuya/+/command",
            "tuya/+/+/command",
            "tuya/+/dps/+/command",
            "homeassistant/status",
            "hass/status",
        ]

    @pytest.mark.asyncio
    async def test_discovery_published(self, bridge, bus):
        """Every device publishes its discovery documents on connect."""
        topics = bus.topics()
        assert "homeassistant/switch/pc1_computer_power/config" in topics
        assert "homeassistant/button/pc1_reset_soft/config" in topics
        assert "homeassistant/sensor/cid-pir_pir/config" in topics

    @pytest.mark.asyncio
    async def test_loader_failure(self, bus, registry, timing, transports):
        """A broken device list stops startup before the bus is touched."""
        bridge = make_bridge(bus, registry, timing, transports,
                             loader=StaticLoader(error=ConfigurationError("bad file")))
        assert await bridge.startup() is False
        assert bridge.state_machine.current_state == BridgeState.ERROR_RECOVERY
        assert not bus.connected
        assert transports == {}

    @pytest.mark.asyncio
    async def test_bus_failure_rolls_back(self, registry, timing, transports):
        """An unreachable broker ends startup without creating devices."""
        bus = FakeBus(fail_connect=True)
        bridge = make_bridge(bus, registry, timing, transports)
        assert await bridge.startup() is False
        assert bridge.state_machine.current_state == BridgeState.ERROR_RECOVERY
        assert bridge.executed_commands == []
        assert transports == {}

    @pytest.mark.asyncio
    async def test_duplicate_device_ids_skipped(self, bus, registry, timing, transports):
        """A repeated device id keeps only the first entry."""
        loader = StaticLoader([IDENTITIES[0], IDENTITIES[0]])
        bridge = make_bridge(bus, registry, timing, transports, loader=loader)
        assert await bridge.startup()
        assert list(bridge.devices) == ["pc1"]
        await bridge.shutdown()


# ============================================
# Routing Tests
# ============================================

class TestRouting:
    """Test inbound message routing."""

    @pytest.mark.asyncio
    async def test_route_command(self, bridge, transports):
        """<base><device>/<route>/command reaches the device's driver."""
        outcome = await bridge.on_message("tuya/office_pc/computer_power/command", "ON")
        assert outcome is CommandOutcome.HANDLED
        assert transports["pc1"].sets == [("1", True, None)]

    @pytest.mark.asyncio
    async def test_device_id_addressing(self, bridge, transports):
        """A device can also be addressed by its id."""
        await bridge.on_message("tuya/pc1/usb_power/command", "OFF")
        assert transports["pc1"].sets == [("7", False, None)]

    @pytest.mark.asyncio
    async def test_device_command_topic(self, bridge, transports):
        """<base><device>/command is the device command route."""
        transports["pc1"].gets.clear()
        outcome = await bridge.on_message("tuya/office_pc/command", "get-states")
        assert outcome is CommandOutcome.HANDLED
        assert transports["pc1"].gets == [None]

    @pytest.mark.asyncio
    async def test_single_dps_topic(self, bridge, transports):
        """<base><device>/dps/<key>/command writes one data point."""
        await bridge.on_message("tuya/office_pc/dps/102/command", '"on"')
        assert transports["pc1"].sets == [("102", "on", None)]

    @pytest.mark.asyncio
    async def test_button_topic(self, bridge, transports):
        """Button presses arrive on their own route."""
        await bridge.on_message("tuya/office_pc/reset_force/command", "PRESS")
        assert transports["pc1"].sets == [("101", "forceReset", None)]

    @pytest.mark.asyncio
    async def test_sub_device_topic(self, bridge, transports):
        """Sub-devices are addressed by their own topic name."""
        outcome = await bridge.on_message("tuya/hall_sensor/sensitivity/command", "high")
        assert outcome is CommandOutcome.REJECTED
        assert transports["gw1"].sets == []

    @pytest.mark.asyncio
    async def test_unknown_device(self, bridge, transports):
        """Commands for unknown devices are ignored."""
        assert await bridge.on_message("tuya/toaster/switch/command", "ON") is None
        assert all(t.sets == [] for t in transports.values())

    @pytest.mark.asyncio
    async def test_foreign_topic(self, bridge):
        """Topics outside the base topic are ignored."""
        assert await bridge.on_message("zigbee2mqtt/lamp/set", "ON") is None

    @pytest.mark.asyncio
    async def test_bus_handler_installed(self, bridge, bus):
        """The bus delivers inbound messages to the bridge."""
        assert bus.handler == bridge.on_message


# ============================================
# Home Assistant Status Tests
# ============================================

class TestHomeAssistantStatus:
    """Test republish on Home Assistant restart."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("topic", ["homeassistant/status", "hass/status"])
    async def test_online_triggers_republish(self, bridge, bus, transports, topic):
        """Home Assistant coming online gets discovery and every known value again."""
        await transports["pc1"].push({"1": True})
        bus.clear()
        await bridge.on_message(topic, "online")
        assert "homeassistant/switch/pc1_computer_power/config" in bus.topics()
        assert bus.last("tuya/office_pc/computer_power") == "ON"

    @pytest.mark.asyncio
    async def test_offline_ignored(self, bridge, bus):
        """Home Assistant going offline publishes nothing."""
        bus.clear()
        await bridge.on_message("homeassistant/status", "offline")
        assert bus.published == []

    @pytest.mark.asyncio
    async def test_offline_devices_not_republished(self, bridge, bus, transports):
        """Only online devices are republished."""
        bridge.devices["gw1"]._stopping = True
        await transports["gw1"].drop()
        bus.clear()
        await bridge.on_message("hass/status", "online")
        assert not any(t.startswith("tuya/gateway/") for t in bus.topics())
        assert not any(t.startswith("tuya/hall_sensor/") for t in bus.topics())

    @pytest.mark.asyncio
    async def test_no_status_topics_without_discovery(self, registry, timing, transports):
        """With discovery disabled no Home Assistant topic is subscribed."""
        bus = FakeBus()
        bridge = make_bridge(bus, registry, timing, transports, discovery=False)
        assert await bridge.startup()
        assert "homeassistant/status" not in bus.subscriptions
        assert not any(t.startswith("homeassistant/") for t in bus.topics())
        await bridge.shutdown()


# ============================================
# Shutdown Tests
# ============================================

class TestShutdown:
    """Test orderly shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self, bus, registry, timing, transports):
        """Devices go offline, the bridge status goes offline and the bus disconnects."""
        bridge = make_bridge(bus, registry, timing, transports)
        await bridge.startup()
        await bridge.shutdown()

        assert bridge.state_machine.current_state == BridgeState.SHUTDOWN
        assert not bus.connected
        assert bus.last("tuya/office_pc/status") == "offline"
        assert bus.last("tuya/hall_sensor/status") == "offline"
        assert bus.last("tuya/bridge/status") == "offline"
        assert all(t.disconnect_calls == 1 for t in transports.values())

    @pytest.mark.asyncio
    async def test_discovery_payload_is_json(self, bridge, bus):
        """Discovery documents are valid JSON with the device block."""
        payload = json.loads(bus.last("homeassistant/switch/pc1_computer_power/config"))
        assert payload["device"]["ids"] == ["pc1"]
        assert payload["command_topic"] == "tuya/office_pc/computer_power/command"

    @pytest.mark.asyncio
    async def test_shutdown_after_failed_startup(self, registry, timing, transports, caplog):
        """Stopping a bridge whose startup failed is a clean transition."""
        bus = FakeBus(fail_connect=True)
        bridge = make_bridge(bus, registry, timing, transports)
        assert await bridge.startup() is False

        await bridge.shutdown()

        assert bridge.state_machine.current_state == BridgeState.SHUTDOWN
        assert "Invalid state transition" not in caplog.text

    @pytest.mark.asyncio
    async def test_shutdown_twice(self, bridge, bus):
        """A second shutdown does nothing."""
        await bridge.shutdown()
        bus.clear()
        await bridge.shutdown()
        assert bus.published == []


# ============================================
# Bridge State Machine Tests
# ============================================

class TestBridgeStateMachine:
    """Test the bridge lifecycle transitions."""

    def test_startup_phases_in_order(self):
        """Startup walks the phases in order and cannot skip one."""
        machine = BridgeStateMachine()
        assert not machine.can_transition_to(BridgeState.BUS_CONNECT)
        for phase in (BridgeState.DEVICE_LIST_LOAD, BridgeState.BUS_CONNECT, BridgeState.DEVICE_CREATION,
                      BridgeState.DEVICE_STARTUP, BridgeState.OPERATIONAL):
            assert machine.transition_to(phase)
        assert machine.operational

    @pytest.mark.parametrize("state", [s for s in BridgeState if s is not BridgeState.SHUTDOWN])
    def test_shutdown_reachable_from_every_phase(self, state):
        """A stop request is accepted whatever the bridge is doing."""
        machine = BridgeStateMachine()
        machine.current_state = state
        assert machine.transition_to(BridgeState.SHUTDOWN)
        assert machine.stopped

    def test_shutdown_is_terminal(self):
        """Nothing follows shutdown."""
        machine = BridgeStateMachine()
        machine.transition_to(BridgeState.SHUTDOWN)
        assert not any(machine.can_transition_to(state) for state in BridgeState)

    def test_error_recovery_retries_from_device_list(self):
        """A failed startup can be started again."""
        machine = BridgeStateMachine()
        machine.transition_to(BridgeState.DEVICE_LIST_LOAD)
        assert machine.transition_to(BridgeState.ERROR_RECOVERY)
        assert machine.transition_to(BridgeState.DEVICE_LIST_LOAD)

    @pytest.mark.asyncio
    async def test_startup_retry_after_failure(self, bus, registry, timing, transports):
        """startup() can run again once the device list is fixed."""
        loader = StaticLoader(error=ConfigurationError("bad file"))
        bridge = make_bridge(bus, registry, timing, transports, loader=loader)
        assert await bridge.startup() is False

        loader.error = None
        loader.identities = [IDENTITIES[0]]
        assert await bridge.startup()
        assert bridge.state_machine.operational
        await bridge.shutdown()


# ============================================
# Bridge Reporting Tests
# ============================================

class TestBridgeReporting:
    """Test the bridge's own discovery documents and stats."""

    @pytest.mark.asyncio
    async def test_bridge_discovery_published(self, bridge, bus):
        """The bridge announces itself with three diagnostic sensors."""
        device = json.loads(bus.last("homeassistant/device/tuya-mqtt/config"))
        assert device["identifiers"] == ["tuya-mqtt"]
        assert device["model"] == "Tuya MQTT Bridge"

        uptime = json.loads(bus.last("homeassistant/sensor/tuya-mqtt_uptime/config"))
        assert uptime["device_class"] == "timestamp"
        assert uptime["entity_category"] == "diagnostic"
        assert uptime["state_topic"] == "tuya/tuya-mqtt/uptime"

        count = json.loads(bus.last("homeassistant/sensor/tuya-mqtt_devices/config"))
        assert count["state_topic"] == "tuya/tuya-mqtt/devices_count"
        status = json.loads(bus.last("homeassistant/sensor/tuya-mqtt_status/config"))
        assert status["state_topic"] == "tuya/tuya-mqtt/status"
        assert status["device"] == {"identifiers": ["tuya-mqtt"], "name": "tuya-mqtt"}

    @pytest.mark.asyncio
    async def test_stats_content(self, bridge, bus):
        """Stats carry the start time, the online device count and the status."""
        await bridge.publish_stats()

        started = datetime.fromisoformat(bus.last("tuya/tuya-mqtt/uptime"))
        assert started.tzinfo is not None
        assert bus.last("tuya/tuya-mqtt/devices_count") == "3"
        assert bus.last("tuya/tuya-mqtt/status") == "online"
        assert all(retain for topic, _, retain in bus.published if topic.startswith("tuya/tuya-mqtt/"))

    @pytest.mark.asyncio
    async def test_count_follows_offline_devices(self, bridge, bus, transports):
        """Devices that went offline are not counted."""
        bridge.devices["gw1"]._stopping = True
        await transports["gw1"].drop()
        await bridge.publish_stats()
        assert bus.last("tuya/tuya-mqtt/devices_count") == "1"

    @pytest.mark.asyncio
    async def test_stats_published_periodically(self, bus, registry, timing, transports):
        """Stats follow the first delay and then repeat, and stop with the bridge."""
        bridge = make_bridge(bus, registry, timing, transports, stats_delay=0.0, stats_interval=0.01)
        assert await bridge.startup()
        await asyncio.sleep(0.1)
        assert len(bus.payloads("tuya/tuya-mqtt/status")) >= 2

        await bridge.shutdown()
        published = len(bus.payloads("tuya/tuya-mqtt/status"))
        await asyncio.sleep(0.05)
        assert len(bus.payloads("tuya/tuya-mqtt/status")) == published

    @pytest.mark.asyncio
    async def test_custom_bridge_identity(self, bus, registry, timing, transports):
        """Bridge id and name come from the constructor."""
        bridge = make_bridge(bus, registry, timing, transports, bridge_id="attic", bridge_name="Attic Bridge")
        assert await bridge.startup()
        uptime = json.loads(bus.last("homeassistant/sensor/attic_uptime/config"))
        assert uptime["name"] == "Attic Bridge Uptime"
        assert uptime["state_topic"] == "tuya/attic/uptime"
        await bridge.shutdown()

    @pytest.mark.asyncio
    async def test_no_bridge_discovery_without_discovery(self, registry, timing, transports):
        """With discovery disabled the stats still go out but nothing is announced."""
        bus = FakeBus()
        bridge = make_bridge(bus, registry, timing, transports, discovery=False)
        assert await bridge.startup()
        await bridge.publish_stats()
        assert bus.last("tuya/tuya-mqtt/status") == "online"
        assert not any(t.startswith("homeassistant/") for t in bus.topics())
        await bridge.shutdown()

    @pytest.mark.asyncio
    async def test_birth_message_republishes_bridge(self, bridge, bus):
        """Home Assistant coming online gets the bridge documents again."""
        bus.clear()
        await bridge.on_message("homeassistant/status", "online")
        assert "homeassistant/device/tuya-mqtt/config" in bus.topics()
