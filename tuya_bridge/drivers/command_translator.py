import json
import math
from typing import Any, Callable, Dict

from tuya_bridge.core.exceptions import CommandValidationError
from tuya_bridge.models import Route, ValueType

TRUE_PAYLOADS = frozenset({"ON", "true", "1"})


def _to_float(message: str) -> float:
    value = float(message)
    if not math.isfinite(value):
        raise ValueError(f"non-finite value: {message}")
    return value


class CommandTranslator:
    """Converts bus payloads to typed DPS values and DPS values back to payloads."""

    def __init__(self):
        self.converters: Dict[ValueType, Callable[[str], Any]] = {
            ValueType.BOOL: lambda msg: msg in TRUE_PAYLOADS,
            ValueType.INT: lambda msg: int(msg.strip()),
            ValueType.FLOAT: lambda msg: _to_float(msg.strip()),
            ValueType.ENUM: str,
            ValueType.STRING: str,
        }

    def to_dps_value(self, route: Route, message: str) -> Any:
        """Convert a command payload for `route`; numeric garbage raises CommandValidationError."""
        converter = self.converters.get(route.value_type, str)
        try:
            return converter(message)
        except (TypeError, ValueError):
            raise CommandValidationError(route.name, message, route.value_type.value) from None

    @staticmethod
    def to_message(route: Route, value: Any) -> str:
        if route.value_type == ValueType.BOOL:
            return "ON" if value else "OFF"
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)
