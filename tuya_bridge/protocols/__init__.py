"""Protocol client implementations."""

from .base_protocol_client import (
    BaseProtocolClient,
    ProtocolType,
    ProtocolClientConfig,
    ConnectionState
)

from .ports import DeviceTransport, MessageBus
from .mqtt_client import MQTTClient
from .tuya_transport import TuyaTransport
from .protocol_factory import ProtocolFactory

__all__ = [
    # Base classes
    'BaseProtocolClient',
    'ProtocolType',
    'ProtocolClientConfig',
    'ConnectionState',

    # Ports
    'DeviceTransport',
    'MessageBus',

    # Implementations
    'MQTTClient',
    'TuyaTransport',

    # Factory
    'ProtocolFactory'
]
