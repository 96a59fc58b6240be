"""
Data point (DPS) state store.

Holds the last known value of every data point a device has reported and
decides which of them changed with each incoming batch. The first value
ever seen for a key is a baseline and is never reported as a change.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tuya_bridge.models import DataPointEntry, normalize_key


class StatePersistence:
    """Stores device states as JSON documents keyed by device id."""

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _path(self, device_id: str) -> Path:
        return self.directory / f"{device_id}.json"

    def save(self, device_id: str, entries: Mapping[str, DataPointEntry]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        data = {key: {"value": e.value, "changed": e.changed} for key, e in entries.items()}
        tmp = self._path(device_id).with_suffix(".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self._path(device_id))
        self.logger.debug(f"Persisted {len(data)} data points for {device_id}")

    def load(self, device_id: str) -> Dict[str, Any]:
        path = self._path(device_id)
        if not path.exists():
            return {}
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.logger.error(f"Error restoring persisted state for {device_id}: {e}")
            return {}
        if not isinstance(raw, dict):
            self.logger.error(f"Ignoring persisted state for {device_id}: expected an object, got {type(raw).__name__}")
            return {}
        values = {}
        for key, item in raw.items():
            # older files stored {"key": {"val": ...}}
            if not isinstance(item, dict) or not ("value" in item or "val" in item):
                self.logger.warning(f"Skipping malformed persisted entry {device_id} dps.{key}: {item!r}")
                continue
            values[key] = item["value"] if "value" in item else item["val"]
        return values


class StateStore:
    """Last-known DPS values of one device (or sub-device)."""

    def __init__(self, device_id: str, persistence: Optional[StatePersistence] = None):
        self.device_id = device_id
        self.persistence = persistence
        self._entries: Dict[str, DataPointEntry] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def update_state(self, batch: Mapping[Any, Any]) -> List[str]:
        """Merge a batch of DPS values and return the keys whose value changed."""
        for entry in self._entries.values():
            entry.changed = False

        # 1 and "1" name the same data point; the last one in the batch wins
        normalized = {normalize_key(raw_key): value for raw_key, value in batch.items()}

        changed: List[str] = []
        for key, value in normalized.items():
            entry = self._entries.get(key)
            if entry is None:
                self.logger.debug(f"Baseline for {self.device_id} dps.{key}: {value!r}")
                self._entries[key] = DataPointEntry(key, value)
                continue
            if _differs(entry.value, value):
                self.logger.info(f"State change: device={self.device_id}, dps.{key}: {entry.value!r} → {value!r}")
                entry.value, entry.changed = value, True
                changed.append(key)

        if changed and self.persistence:
            self.save()
        return changed

    def get_value(self, key: Any) -> Any:
        entry = self._entries.get(normalize_key(key))
        return entry.value if entry else None

    def has(self, key: Any) -> bool:
        return normalize_key(key) in self._entries

    def get_all(self) -> Dict[str, Any]:
        return {key: e.value for key, e in self._entries.items()}

    def entries(self) -> Dict[str, DataPointEntry]:
        return dict(self._entries)

    def changed_keys(self) -> List[str]:
        return [key for key, e in self._entries.items() if e.changed]

    def mark_published(self) -> None:
        for entry in self._entries.values():
            entry.changed = False

    def save(self) -> None:
        if self.persistence:
            try:
                self.persistence.save(self.device_id, self._entries)
            except OSError as e:
                self.logger.error(f"Error saving persisted state for {self.device_id}: {e}")

    def restore(self) -> List[str]:
        """Load persisted values; they are flagged changed so they republish once."""
        if not self.persistence:
            return []
        keys: List[str] = []
        for raw_key, value in self.persistence.load(self.device_id).items():
            key = normalize_key(raw_key)
            self._entries[key] = DataPointEntry(key, value, changed=True)
            keys.append(key)
        if keys:
            self.logger.info(f"Restored {len(keys)} data points for {self.device_id}")
        return keys


def _differs(old: Any, new: Any) -> bool:
    # True == 1 in Python; a device switching representation is still a change
    return type(old) is not type(new) or old != new
