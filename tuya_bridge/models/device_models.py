from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
import re

from tuya_bridge.core.exceptions import ConfigurationError


###############################################################################
# 1. ENUMERATIONS -------------------------------------------------------------
###############################################################################

class ValueType(Enum):
    """Value type carried by a route."""
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "str"
    ENUM = "enum"


class AccessMode(Enum):
    READ_WRITE = "rw"
    READ_ONLY = "ro"
    WRITE_ONLY = "wo"

    @property
    def writable(self) -> bool:
        return self is not AccessMode.READ_ONLY


class SubDeviceMode(Enum):
    """ACTIVE sub-devices are polled through the gateway, PASSIVE ones only report."""
    ACTIVE = "active"
    PASSIVE = "passive"


class CommandOutcome(Enum):
    HANDLED = "handled"
    UNHANDLED = "unhandled"
    REJECTED = "rejected"
    INVALID = "invalid"
    FAILED = "failed"


###############################################################################
# 2. DEVICE IDENTITY ----------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class SubDeviceConfig:
    """Logical device reachable through a gateway's session by its cid."""
    cid: str
    name: Optional[str] = None
    mode: SubDeviceMode = SubDeviceMode.ACTIVE
    device_type: str = "Default"
    category: Optional[str] = None
    persist: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.cid

    @property
    def topic_name(self) -> str:
        return sanitize_name(self.name) if self.name else self.cid

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Dict[str, Any], name: Optional[str] = None) -> "SubDeviceConfig":
        cid = row.get("cid")
        if not cid:
            raise ConfigurationError(f"sub-device {name or row!r} has no cid")
        passive = row.get("passive", False)
        mode = row.get("mode")
        return cls(
            cid         = str(cid),
            name        = row.get("name") or name,
            mode        = SubDeviceMode(mode) if mode else
                          (SubDeviceMode.PASSIVE if passive else SubDeviceMode.ACTIVE),
            device_type = row.get("type") or "Default",
            category    = row.get("category"),
            persist     = bool(row.get("persist", False)),
        )


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Immutable projection of one entry of the device list."""
    device_id: str
    key: str
    ip: Optional[str] = None
    version: str = "3.3"
    device_type: str = "Default"
    name: Optional[str] = None
    category: Optional[str] = None
    persist: bool = False
    sub_devices: Tuple[SubDeviceConfig, ...] = field(default_factory=tuple)

    @property
    def display_name(self) -> str:
        return self.name or self.device_id

    @property
    def topic_name(self) -> str:
        return sanitize_name(self.name) if self.name else self.device_id

    def __str__(self) -> str:
        where = f"{self.ip}, " if self.ip else ""
        return f"{self.display_name} ({where}{self.device_id})"

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DeviceIdentity":
        device_id = row.get("id") or row.get("deviceId")
        key = row.get("key") or row.get("localKey")
        if not device_id or not key:
            raise ConfigurationError(f"device entry needs an id and a key: {row!r}")
        return cls(
            device_id   = str(device_id),
            key         = str(key),
            ip          = row.get("ip"),
            version     = str(row.get("version") or row.get("protocolVersion") or "3.3"),
            device_type = row.get("type") or "Default",
            name        = row.get("name"),
            category    = row.get("category"),
            persist     = bool(row.get("persist", False)),
            sub_devices = _parse_sub_devices(row.get("subDevices") or row.get("sub_devices")),
        )


###############################################################################
# 3. DATA POINTS, ROUTES & SCHEMA ---------------------------------------------
###############################################################################

@dataclass(slots=True)
class DataPointEntry:
    key: str
    value: Any
    changed: bool = False


@dataclass(frozen=True, slots=True)
class Route:
    """Named channel bound to exactly one data point."""
    name: str
    dps_key: str
    value_type: ValueType = ValueType.STRING
    allowed_values: Tuple[str, ...] = ()

    @classmethod
    def of(cls, name: str, dps_key: Any, value_type: ValueType,
           allowed_values: Optional[Tuple[str, ...]] = None) -> "Route":
        return cls(name, normalize_key(dps_key), value_type, tuple(allowed_values or ()))


@dataclass(frozen=True, slots=True)
class DpsSchemaItem:
    """Descriptive metadata for one data point; only the value type is enforced."""
    dps_id: str
    code: str
    name: Optional[str] = None
    kind: str = "Boolean"               # Boolean / Integer / Enum / String / Json / Raw
    access: AccessMode = AccessMode.READ_WRITE
    values: Mapping[str, str] = field(default_factory=dict)
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    step: Optional[float] = None
    scale: Optional[int] = None
    unit: Optional[str] = None


###############################################################################
# 4. HELPERS ------------------------------------------------------------------
###############################################################################

def normalize_key(key: Any) -> str:
    """`1`, `"1"` and `1.0` all name data point "1"."""
    if isinstance(key, bool):
        raise TypeError(f"invalid data point key: {key!r}")
    if isinstance(key, float) and key.is_integer():
        key = int(key)
    return str(key).strip()


def sanitize_name(name: str) -> str:
    return re.sub(r"[\s+#/]", "_", name.lower())


def _parse_sub_devices(raw: Any) -> Tuple[SubDeviceConfig, ...]:
    if not raw:
        return ()
    if isinstance(raw, dict):
        return tuple(SubDeviceConfig.from_row(cfg, name) for name, cfg in raw.items())
    if isinstance(raw, list):
        return tuple(SubDeviceConfig.from_row(cfg) for cfg in raw)
    raise ConfigurationError(f"subDevices must be a list or an object, got {type(raw).__name__}")
