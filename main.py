#!/usr/bin/env python3
import asyncio, signal, sys
from config.logging_config import configure
from config.app_config import settings
from tuya_bridge.drivers import build_default_registry
from tuya_bridge.orchestration import BridgeOrchestrator
from tuya_bridge.protocols import ProtocolClientConfig, ProtocolFactory, ProtocolType, TuyaTransport
from tuya_bridge.services import DeviceListLoader, DiscoveryService
from tuya_bridge.session import SessionTiming
from tuya_bridge.state import StatePersistence


def build_bus():
    config = ProtocolClientConfig(
        ProtocolType.MQTT,
        {
            "host": settings.MQTT_HOST,
            "port": settings.MQTT_PORT,
            "client_id": settings.MQTT_CLIENT_ID,
            "qos": settings.MQTT_QOS,
            "username": settings.MQTT_USER,
            "password": settings.MQTT_PASS,
            "will_topic": f"{settings.BASE_TOPIC}bridge/status",
        },
        timeout=settings.CONNECT_TIMEOUT,
    )
    return ProtocolFactory.create(ProtocolType.MQTT, config)


def build_transport(identity):
    return ProtocolFactory.create(
        ProtocolType.TUYA_LAN, TuyaTransport.config_for(identity, settings.CONNECT_TIMEOUT))


async def async_main() -> int:
    configure()
    bus = build_bus()
    orchestrator = BridgeOrchestrator(
        loader=DeviceListLoader(settings.DEVICES_FILE),
        bus=bus,
        registry=build_default_registry(),
        transport_factory=build_transport,
        base_topic=settings.BASE_TOPIC,
        timing=SessionTiming.from_settings(settings),
        persistence=StatePersistence(settings.PERSIST_DIR),
        discovery=DiscoveryService(bus, settings.DISCOVERY_PREFIX) if settings.DISCOVERY_ENABLED else None,
        shutdown_timeout=settings.SHUTDOWN_TIMEOUT,
        bridge_id=settings.BRIDGE_ID,
        bridge_name=settings.BRIDGE_NAME,
        stats_delay=settings.BRIDGE_STATS_DELAY,
        stats_interval=settings.BRIDGE_STATS_INTERVAL,
    )
    if not await orchestrator.startup():
        return 1

    # keep process alive until asked to stop
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()
    await orchestrator.shutdown()
    return 0

if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit("🌙  graceful shutdown")
