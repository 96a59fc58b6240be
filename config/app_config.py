"""Centralised application settings (dotenv + env overrides)."""
from __future__ import annotations
import os
from pathlib import Path
from dotenv import load_dotenv

ROOT = Path(__file__).parents[1]
load_dotenv(ROOT / ".env", override=False)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _delays(name: str, default: str) -> tuple[float, ...]:
    return tuple(float(part) for part in os.getenv(name, default).split(",") if part.strip())


class settings:                            # pylint: disable=too-few-public-methods
    MQTT_HOST        = os.getenv("MQTT_HOST", "localhost")
    MQTT_PORT        = int(os.getenv("MQTT_PORT", 1883))
    MQTT_USER        = os.getenv("MQTT_USER") or None
    MQTT_PASS        = os.getenv("MQTT_PASS") or None
    MQTT_CLIENT_ID   = os.getenv("MQTT_CLIENT_ID", "tuya-bridge")
    MQTT_QOS         = int(os.getenv("MQTT_QOS", 1))
    BASE_TOPIC       = os.getenv("BASE_TOPIC", "tuya/")

    DISCOVERY_ENABLED = _flag("DISCOVERY_ENABLED", "true")
    DISCOVERY_PREFIX  = os.getenv("DISCOVERY_PREFIX", "homeassistant")

    BRIDGE_ID             = os.getenv("BRIDGE_ID", "tuya-mqtt")
    BRIDGE_NAME           = os.getenv("BRIDGE_NAME") or None
    BRIDGE_STATS_DELAY    = float(os.getenv("BRIDGE_STATS_DELAY", 5))
    BRIDGE_STATS_INTERVAL = float(os.getenv("BRIDGE_STATS_INTERVAL", 60))

    DEVICES_FILE     = os.getenv("DEVICES_FILE", str(ROOT / "devices.json"))
    PERSIST_DIR      = os.getenv("PERSIST_DIR", str(ROOT / "state"))
    LOG_LEVEL        = os.getenv("LOG_LEVEL", "INFO").upper()

    HEARTBEAT_INTERVAL          = float(os.getenv("HEARTBEAT_INTERVAL", 10))
    HEARTBEAT_MAX_MISSED        = int(os.getenv("HEARTBEAT_MAX_MISSED", 3))
    RECONNECT_DELAYS            = _delays("RECONNECT_DELAYS", "10,60")
    RECONNECT_MAX_ATTEMPTS      = int(os.getenv("RECONNECT_MAX_ATTEMPTS", 0))
    RECONNECT_BREAKER_THRESHOLD = int(os.getenv("RECONNECT_BREAKER_THRESHOLD", 10))
    RECONNECT_BREAKER_COOLDOWN  = float(os.getenv("RECONNECT_BREAKER_COOLDOWN", 300))
    DISCONNECT_GRACE            = float(os.getenv("DISCONNECT_GRACE", 5))
    SUBDEVICE_POLL_INTERVAL     = float(os.getenv("SUBDEVICE_POLL_INTERVAL", 10))
    CONNECT_TIMEOUT             = float(os.getenv("CONNECT_TIMEOUT", 5))
    SHUTDOWN_TIMEOUT            = float(os.getenv("SHUTDOWN_TIMEOUT", 15))
