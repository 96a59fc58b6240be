"""
Device driver framework.

A driver bundles what is specific to one device type: its route table,
its DPS schema and the translation of commands and values between the
bus and the device. It never touches the connection itself; it talks to
the outside world only through the callbacks it is constructed with.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional
import logging

from tuya_bridge.models import DpsSchemaItem, Route, ValueType, normalize_key
from .command_translator import CommandTranslator
from .route_table import RouteTable

# schema kind -> route value type
KIND_VALUE_TYPES = {
    "Boolean": ValueType.BOOL,
    "Integer": ValueType.INT,
    "Float": ValueType.FLOAT,
    "Enum": ValueType.ENUM,
}


@dataclass(frozen=True)
class DriverCallbacks:
    """Outbound ports of a driver."""
    publish: Callable[[str, str, bool], Awaitable[None]]      # (route, payload, retain)
    send_command: Callable[[str, Any], Awaitable[Any]]        # (dps key, value)


class DeviceDriver(ABC):
    """
    Abstract base class for device-type drivers.

    Subclasses register their routes and schema in `init()`. Everything
    else (state propagation, command translation) is shared.
    """

    device_type = "Default"

    def __init__(self, device_id: str, name: str, callbacks: DriverCallbacks,
                 category: Optional[str] = None):
        self.device_id = device_id
        self.name = name
        self.callbacks = callbacks
        self.routes = RouteTable()
        self.translator = CommandTranslator()
        self.schema: Dict[str, DpsSchemaItem] = {}
        self.standard_functions: List[str] = []
        self.custom_functions: List[str] = []
        self.metadata: Dict[str, Any] = {
            "name": name,
            "device_type": self.device_type,
            "category": category,
        }
        self.icons: Dict[str, str] = {}
        self.buttons: Dict[str, str] = {}          # button route -> label, write-only actions
        self._values: Dict[str, Any] = {}
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{device_id}]")

    @abstractmethod
    async def init(self) -> None:
        """Register routes and DPS schema."""
        pass

    # ------------------------------------------------------------------ state

    def seed(self, values: Mapping[Any, Any]) -> None:
        """Merge DPS values without publishing anything."""
        for key, value in values.items():
            self._values[normalize_key(key)] = value

    async def update_state(self, batch: Mapping[Any, Any]) -> None:
        """Merge DPS values and publish every route bound to one of them."""
        self.seed(batch)
        for route in self.routes.routes_for_keys(batch.keys()):
            await self.publish_state(route.name)

    async def publish_state(self, route_name: str) -> None:
        route = self.routes.get(route_name)
        if route is None:
            self.logger.debug(f"No route definition found for {route_name}")
            return
        if route.dps_key not in self._values:
            self.logger.debug(f"No value yet for dps {route.dps_key} of route {route_name}")
            return
        message = self.translator.to_message(route, self._values[route.dps_key])
        self.logger.debug(f"Publishing state to {route_name}: {message}")
        await self.callbacks.publish(route_name, message, True)

    async def publish_all(self) -> None:
        for name in self.routes.names():
            await self.publish_state(name)

    def get_value(self, key: Any) -> Any:
        return self._values.get(normalize_key(key))

    # --------------------------------------------------------------- commands

    async def process_command(self, message: str, route_name: str) -> bool:
        """
        Translate and forward a command addressed to `route_name`.

        Returns False when the route is unknown so the caller can try its
        generic data point path. Raises CommandValidationError when the
        payload does not fit the route's value type; nothing is sent then.
        """
        route = self.routes.get(route_name)
        if route is None:
            return False
        value = self.translator.to_dps_value(route, message)
        self.logger.debug(f"Processing command for route {route_name}: {message!r} -> dps {route.dps_key}={value!r}")
        await self.callbacks.send_command(route.dps_key, value)
        return True

    # ---------------------------------------------------------- registration

    def register_route(self, name: str, dps_key: Any, value_type: ValueType,
                       allowed_values: Optional[Iterable[str]] = None) -> None:
        self.routes.register(Route.of(name, dps_key, value_type, tuple(allowed_values or ())))

    def register_schema(self, item: DpsSchemaItem) -> None:
        if item.dps_id in self.schema:
            self.logger.debug(f"DPS schema {item.dps_id} already exists, skipping registration")
            return
        self.schema[item.dps_id] = item

    def expose(self, item: DpsSchemaItem, route_name: Optional[str] = None,
               icon: Optional[str] = None) -> None:
        """Register a schema item together with a route bound to its data point."""
        self.register_schema(item)
        name = route_name or item.code
        self.register_route(name, item.dps_id, KIND_VALUE_TYPES.get(item.kind, ValueType.STRING),
                            item.values.keys())
        if icon:
            self.icons[name] = icon

    def register_standard_functions(self, functions: Iterable[str]) -> None:
        self.standard_functions.extend(f for f in functions if f not in self.standard_functions)

    def register_custom_functions(self, functions: Iterable[str]) -> None:
        self.custom_functions.extend(f for f in functions if f not in self.custom_functions)

    def schema_for(self, route_name: str) -> Optional[DpsSchemaItem]:
        route = self.routes.get(route_name)
        return self.schema.get(route.dps_key) if route else None

    def route_names(self) -> List[str]:
        return self.routes.names() + [b for b in self.buttons if b not in self.routes]
