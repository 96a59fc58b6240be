"""Data models and domain objects."""

from .device_models import (
    ValueType,
    AccessMode,
    SubDeviceMode,
    CommandOutcome,
    SubDeviceConfig,
    DeviceIdentity,
    DataPointEntry,
    Route,
    DpsSchemaItem,
    normalize_key,
    sanitize_name,
)

__all__ = [
    # Enumerations
    'ValueType',
    'AccessMode',
    'SubDeviceMode',
    'CommandOutcome',

    # Domain models
    'SubDeviceConfig',
    'DeviceIdentity',
    'DataPointEntry',
    'Route',
    'DpsSchemaItem',

    # Helpers
    'normalize_key',
    'sanitize_name',
]
