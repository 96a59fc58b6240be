"""
MQTT Protocol Client Implementation
paho-mqtt based message bus for the bridge
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple
import paho.mqtt.client as mqtt

from tuya_bridge.core.exceptions import ProtocolError
from tuya_bridge.protocols.base_protocol_client import BaseProtocolClient, ProtocolClientConfig, ProtocolType, ConnectionState
from tuya_bridge.protocols.ports import MessageBus, MessageHandler


class MQTTClient(BaseProtocolClient, MessageBus):
    """
    MQTT message bus.

    Features:
    - Last will on the bridge status topic
    - Subscriptions restored after a broker reconnect
    - paho network thread handed over to the asyncio loop through a queue
    """

    def __init__(self, config: ProtocolClientConfig):
        if config.protocol_type != ProtocolType.MQTT:
            raise ValueError("Config must be for MQTT protocol")

        super().__init__(config)

        self.client: Optional[mqtt.Client] = None
        self.subscribed_topics: Set[str] = set()
        self._handler: Optional[MessageHandler] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: "asyncio.Queue[Tuple[str, bytes]]" = asyncio.Queue()
        self._dispatch_task: Optional[asyncio.Task] = None

        self._parse_mqtt_config()

    def _parse_mqtt_config(self):
        """Parse MQTT-specific configuration parameters."""
        params = self.config.connection_params

        self.broker_host = params.get('host', 'localhost')
        self.broker_port = params.get('port', 1883)
        self.client_id = params.get('client_id', 'tuya-bridge')
        self.keepalive = params.get('keepalive', 60)
        self.qos = params.get('qos', 1)
        self.username = params.get('username')
        self.password = params.get('password')
        self.will_topic = params.get('will_topic')

    def _validate_config(self):
        """Validate MQTT-specific configuration."""
        if not self.broker_host:
            raise ValueError("MQTT broker host is required")

        if not isinstance(self.broker_port, int) or not (1 <= self.broker_port <= 65535):
            raise ValueError("MQTT broker port must be a valid port number")

    async def _initialize_client(self):
        """Initialize the MQTT client."""
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311
        )

        if self.username:
            self.client.username_pw_set(self.username, self.password)

        if self.will_topic:
            self.client.will_set(self.will_topic, "offline", qos=self.qos, retain=True)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message
        self.client.on_subscribe = self._on_subscribe

        self.logger.info(f"MQTT client initialized with ID: {self.client_id}")

    async def _connect(self):
        """Establish connection to MQTT broker."""
        self._loop = asyncio.get_running_loop()
        self.logger.info(f"Connecting to MQTT broker at {self.broker_host}:{self.broker_port}")

        result = self.client.connect(
            host=self.broker_host,
            port=self.broker_port,
            keepalive=self.keepalive
        )
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ProtocolError(f"MQTT connection failed with code: {result}")

        # Start the network loop in a separate thread
        self.client.loop_start()

        start_time = self._loop.time()
        while not self.client.is_connected():
            if self._loop.time() - start_time > self.config.timeout:
                self.client.loop_stop()
                raise ProtocolError(f"Connection timeout after {self.config.timeout}s")
            await asyncio.sleep(0.1)

        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.create_task(self._dispatch_messages())

    async def _disconnect(self):
        """Disconnect from MQTT broker."""
        if self._dispatch_task:
            self._dispatch_task.cancel()
            self._dispatch_task = None
        if self.client and self.client.is_connected():
            self.logger.info("Disconnecting from MQTT broker")
            self.client.disconnect()
        if self.client:
            self.client.loop_stop()
        self.subscribed_topics.clear()

    # MessageBus port
    def set_message_handler(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def subscribe(self, pattern: str) -> None:
        """Subscribe to a topic pattern; it is renewed whenever the broker connection comes back."""
        if not self.client or not self.client.is_connected():
            raise ProtocolError("MQTT client is not connected")

        result, _mid = self.client.subscribe(pattern, self.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise ProtocolError(f"Failed to subscribe to topic '{pattern}': {result}")

        self.subscribed_topics.add(pattern)
        self.logger.info(f"Subscribed to topic '{pattern}' with QoS {self.qos}")

    async def publish(self, topic: str, payload: str, retain: bool = True) -> None:
        if not self.client or not self.client.is_connected():
            self.logger.warning(f"Dropping message for '{topic}': MQTT client is not connected")
            return

        info = self.client.publish(topic, payload, self.qos, retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(f"Failed to publish message to topic '{topic}': {mqtt.error_string(info.rc)}")
            return
        self.logger.debug(f"Published '{payload}' to topic '{topic}'")

    async def _dispatch_messages(self):
        """Feed queued messages to the handler on the event loop."""
        while True:
            topic, payload = await self._queue.get()
            try:
                text = payload.decode("utf-8")
            except UnicodeDecodeError:
                self.logger.warning(f"Ignoring non UTF-8 payload on topic '{topic}'")
                continue
            await self._safe_callback(self._handler, topic, text)

    # MQTT Event Callbacks (paho network thread)
    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback for when client connects to broker."""
        if reason_code.is_failure:
            self.logger.error(f"MQTT connection refused: {reason_code}")
            self.connection_state = ConnectionState.ERROR
            return
        self.logger.info("Connected to MQTT broker")
        self.connection_state = ConnectionState.CONNECTED
        for topic in self.subscribed_topics:
            client.subscribe(topic, self.qos)
        if self.will_topic:
            client.publish(self.will_topic, "online", self.qos, True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        """Callback for when client disconnects from broker."""
        if reason_code.is_failure:
            self.logger.warning(f"Unexpected disconnection from MQTT broker ({reason_code})")
        else:
            self.logger.info("Disconnected from MQTT broker")
        self.connection_state = ConnectionState.DISCONNECTED

    def _on_message(self, client, userdata, msg):
        """Callback for when a message is received."""
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (msg.topic, msg.payload))
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Received message on topic '{msg.topic}': {len(msg.payload)} bytes")

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
        """Callback for when subscription is acknowledged."""
        self.logger.debug(f"Subscription {mid} acknowledged: {[str(rc) for rc in reason_code_list]}")

    def get_subscribed_topics(self) -> List[str]:
        """Get list of currently subscribed topics."""
        return list(self.subscribed_topics)

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats.update(subscriptions=len(self.subscribed_topics), queued=self._queue.qsize())
        return stats
