# tuya_bridge/core/__init__.py
"""Core infrastructure components for the Tuya to MQTT bridge."""

# Import order: most fundamental to most specific

from .exceptions import (
    TuyaBridgeError,
    ConfigurationError,
    ProtocolError,
    DeviceConnectionError,
    CommandValidationError,
    CircuitOpenError,
)

from .patterns.state_machine import StateMachine, LinkState
from .patterns.circuit_breaker import CircuitBreaker, BreakerConfig, BreakerState


__all__ = [
    "StateMachine",
    "LinkState",
    "CircuitBreaker",
    "BreakerConfig",
    "BreakerState",
    "TuyaBridgeError",
    "ConfigurationError",
    "ProtocolError",
    "DeviceConnectionError",
    "CommandValidationError",
    "CircuitOpenError",
]
