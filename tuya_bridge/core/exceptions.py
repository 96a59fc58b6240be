"""
Centralised exception definitions for the Tuya to MQTT bridge.
All custom exceptions should inherit from TuyaBridgeError.
"""

class TuyaBridgeError(Exception):
    """Base class for every custom exception thrown by this project."""

class ConfigurationError(TuyaBridgeError):
    """Raised when the device list, configuration files or environment variables are invalid."""

class ProtocolError(TuyaBridgeError):
    """Generic failure inside a protocol client (Tuya LAN, MQTT, …)."""

class DeviceConnectionError(ProtocolError, ConnectionError):
    """A device could not be found, connected or written to."""

class CommandValidationError(TuyaBridgeError, ValueError):
    """An inbound command payload cannot be converted to the route's value type."""

    def __init__(self, route: str, message: str, expected: str):
        super().__init__(f"route '{route}' expects {expected}, got {message!r}")
        self.route = route
        self.message = message
        self.expected = expected

class CircuitOpenError(TuyaBridgeError):
    """Raised by the circuit breaker while it refuses calls."""
