# device_loader.py

from pathlib import Path
from typing import Any, Dict, List
import logging

import json5

from tuya_bridge.core.exceptions import ConfigurationError
from tuya_bridge.models import DeviceIdentity


logger = logging.getLogger(__name__)


class DeviceListLoader:
    """Reads the device list, a JSON5 array of device objects (comments and trailing commas allowed)."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> List[DeviceIdentity]:
        logger.info(f"Loading devices config from: {self.path}")
        if not self.path.exists():
            raise ConfigurationError(f"Devices config file not found: {self.path}")

        try:
            rows = json5.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Could not parse devices config file {self.path}: {e}") from e

        if not isinstance(rows, list):
            raise ConfigurationError("Devices config must be an array")
        if not rows:
            raise ConfigurationError(f"No devices found in {self.path}")

        identities = [self._row_to_obj(index, row) for index, row in enumerate(rows)]
        logger.info(f"Loaded {len(identities)} device configurations")
        return identities

    @staticmethod
    def _row_to_obj(index: int, row: Dict[str, Any]) -> DeviceIdentity:
        if not isinstance(row, dict):
            raise ConfigurationError(f"Device entry {index} must be an object, got {type(row).__name__}")
        return DeviceIdentity.from_row(row)
