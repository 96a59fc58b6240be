"""
Ports between the bridge core and its transports.

`DeviceTransport` is the device side (one instance per directly connected
device), `MessageBus` the broker side (one instance per process). The core
only ever talks to these interfaces; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

DataHandler = Callable[[Dict[str, Any]], Awaitable[None]]
EventHandler = Callable[[], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]
MessageHandler = Callable[[str, str], Awaitable[None]]


class DeviceTransport(ABC):
    """Local-network link to one device (and the sub-devices behind it)."""

    def __init__(self):
        self.on_data: Optional[DataHandler] = None
        self.on_heartbeat: Optional[EventHandler] = None
        self.on_disconnected: Optional[EventHandler] = None
        self.on_error: Optional[ErrorHandler] = None

    def set_handlers(self, on_data: DataHandler = None, on_heartbeat: EventHandler = None,
                     on_disconnected: EventHandler = None, on_error: ErrorHandler = None) -> None:
        """
        Install event handlers.

        `on_data` receives `{"dps": {...}, "cid": <optional>}` for every
        status report, whether solicited or pushed by the device.
        """
        self.on_data = on_data
        self.on_heartbeat = on_heartbeat
        self.on_disconnected = on_disconnected
        self.on_error = on_error

    @property
    @abstractmethod
    def address(self) -> Optional[str]:
        """Current network address, None until found."""

    @abstractmethod
    async def find(self) -> str:
        """Locate the device on the LAN and return its address."""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def get(self, cid: Optional[str] = None) -> None:
        """Request a status report; the answer arrives through `on_data`."""

    @abstractmethod
    async def refresh(self, cid: Optional[str] = None) -> None:
        """Ask the device to re-read its data points; the answer arrives through `on_data`."""

    @abstractmethod
    async def set(self, dps: str, value: Any, cid: Optional[str] = None) -> Any:
        """Write one data point and return the device's acknowledgement."""

    @abstractmethod
    async def heartbeat(self) -> None:
        pass


class MessageBus(ABC):
    """Topic based publish/subscribe broker."""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def publish(self, topic: str, payload: str, retain: bool = True) -> None:
        pass

    @abstractmethod
    async def subscribe(self, pattern: str) -> None:
        pass

    @abstractmethod
    def set_message_handler(self, handler: MessageHandler) -> None:
        """Install the coroutine called with `(topic, payload)` for every inbound message."""
