"""
Protocol Client Framework
Base abstract class and configuration shared by the MQTT bus and the Tuya LAN transport
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Callable, Optional, Type
import asyncio
import logging
import time
from enum import Enum

from tuya_bridge.core.exceptions import ProtocolError


class ProtocolType(Enum):
    """Enumeration of supported protocol types."""
    MQTT = "mqtt"
    TUYA_LAN = "tuya_lan"


class ConnectionState(Enum):
    """Connection state enumeration."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


class ProtocolClientConfig:
    """Configuration class for protocol clients."""

    def __init__(self,
                 protocol_type: ProtocolType,
                 connection_params: Dict[str, Any],
                 metadata: Dict[str, Any] = None,
                 max_retries: int = 5,
                 retry_delay: float = 1.0,
                 max_retry_delay: float = 60.0,
                 timeout: float = 30):
        self.protocol_type = protocol_type
        self.connection_params = connection_params
        self.metadata = metadata or {}
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.timeout = timeout


class BaseProtocolClient(ABC):
    """
    Abstract base class for protocol clients.

    Implements the Template Method pattern: `connect()` validates the
    configuration, initializes the client once and connects with retry;
    subclasses fill in the protocol specific steps.
    """

    # raised when every connection attempt failed
    connection_error: Type[ProtocolError] = ProtocolError

    def __init__(self, config: ProtocolClientConfig):
        super().__init__()
        self.config = config
        self.logger = logging.getLogger(f"{self.__class__.__name__}")
        self.connection_state = ConnectionState.DISCONNECTED
        self.retry_count = 0
        self._initialized = False
        self._start_time: Optional[float] = None

    # Template method - defines the algorithm skeleton
    async def connect(self) -> None:
        self._validate_config()
        if not self._initialized:
            await self._initialize_client()
            self._initialized = True
        await self._connect_with_retry()
        self._start_time = time.time()

    async def disconnect(self) -> None:
        try:
            await self._disconnect()
        finally:
            self.connection_state = ConnectionState.DISCONNECTED

    # Context manager protocol
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False

    # Abstract methods that subclasses must implement (Strategy pattern)
    @abstractmethod
    async def _initialize_client(self):
        """Initialize the protocol-specific client."""
        pass

    @abstractmethod
    async def _connect(self):
        """Establish connection to the protocol server/broker/device."""
        pass

    @abstractmethod
    async def _disconnect(self):
        """Disconnect from the protocol server/broker/device."""
        pass

    @abstractmethod
    def _validate_config(self):
        """Validate protocol-specific configuration."""
        pass

    async def _connect_with_retry(self):
        """Connect with exponential backoff retry strategy."""
        self.retry_count = 0

        while True:
            try:
                self.connection_state = ConnectionState.CONNECTING
                await self._connect()
                self.connection_state = ConnectionState.CONNECTED
                self.retry_count = 0
                self.logger.info("Successfully connected")
                return

            except (ProtocolError, OSError) as e:
                self.retry_count += 1
                self.connection_state = ConnectionState.RECONNECTING

                if self.retry_count >= self.config.max_retries:
                    self.connection_state = ConnectionState.ERROR
                    if isinstance(e, self.connection_error):
                        raise
                    raise self.connection_error(
                        f"Failed to connect after {self.config.max_retries} attempts: {e}") from e

                delay = min(
                    self.config.retry_delay * (2 ** (self.retry_count - 1)),
                    self.config.max_retry_delay
                )

                self.logger.warning(f"Connection attempt {self.retry_count} failed: {e}. Retrying in {delay:.2f}s...")
                await asyncio.sleep(delay)

    async def _safe_callback(self, callback: Optional[Callable], *args, **kwargs):
        """Safely execute callback functions."""
        if callback is None:
            return
        try:
            if asyncio.iscoroutinefunction(callback):
                await callback(*args, **kwargs)
            else:
                callback(*args, **kwargs)
        except Exception as e:
            self.logger.exception(f"Error in callback: {e}")

    # Utility methods
    def get_connection_state(self) -> ConnectionState:
        """Get current connection state."""
        return self.connection_state

    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self.connection_state == ConnectionState.CONNECTED

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "protocol_type": self.config.protocol_type.value,
            "connection_state": self.connection_state.value,
            "retry_count": self.retry_count,
            "uptime": time.time() - self._start_time if self._start_time else 0.0,
        }
