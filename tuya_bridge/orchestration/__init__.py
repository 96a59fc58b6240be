# tuya_bridge/orchestration/__init__.py
"""Orchestration layer: per-device lifecycle, sub-devices and bridge startup."""

from .bridged_device import BridgedDevice
from .device_orchestrator import DeviceOrchestrator
from .sub_device import SubDevice, SubDevicePolicy
from .orchestrator import BridgeOrchestrator
from .state_machine import BridgeStateMachine, BridgeState
from .commands import (
    BridgeCommand,
    LoadDeviceListCommand,
    ConnectMessageBusCommand,
    CreateDevicesCommand,
    StartDevicesCommand
)

__all__ = [
    'BridgedDevice',
    'DeviceOrchestrator',
    'SubDevice',
    'SubDevicePolicy',
    'BridgeOrchestrator',
    'BridgeStateMachine',
    'BridgeState',
    'BridgeCommand',
    'LoadDeviceListCommand',
    'ConnectMessageBusCommand',
    'CreateDevicesCommand',
    'StartDevicesCommand'
]
