import logging

from tuya_bridge.protocols.mqtt_client import MQTTClient
from tuya_bridge.protocols.tuya_transport import TuyaTransport
from tuya_bridge.protocols.base_protocol_client import BaseProtocolClient, ProtocolClientConfig, ProtocolType

logger = logging.getLogger(__name__)

class ProtocolFactory:

    _registry = {
        ProtocolType.MQTT : MQTTClient,
        ProtocolType.TUYA_LAN : TuyaTransport,
    }

    @classmethod
    def create(cls, protocol_type: ProtocolType, config: ProtocolClientConfig) -> BaseProtocolClient:
        """
        Create a protocol client.

        Args:
            protocol_type (ProtocolType): MQTT or TUYA_LAN
            config (ProtocolClientConfig): Connection parameters

        Returns:
            BaseProtocolClient: Configured protocol client instance
        """
        handler = cls._registry.get(protocol_type)
        if not handler:
            raise ValueError(f"No handler registered for protocol: {protocol_type}")

        logger.debug(f"Creating {handler.__name__} for {config.metadata.get('name', protocol_type.value)}")
        return handler(config)
