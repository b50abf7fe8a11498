"""Channel storage backed by one YAML file per channel"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

import yaml

from ..automation.automation_models import Channel, ScheduleConfig
from ..automation.exceptions import ConcurrencyConflict


def slugify(name: str) -> str:
    """Channel id derived from its display name"""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _merge(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Field-level merge; nested mappings are merged rather than replaced"""
    merged = dict(current)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ChannelStore:
    """Persists channels and their automation settings"""

    def __init__(self, data_dir: str = "./data"):
        self.logger = logging.getLogger("autopilot.storage.channels")
        self.channels_dir = Path(data_dir) / "channels"
        self.channels_dir.mkdir(parents=True, exist_ok=True)

        # Serializes read-modify-write cycles within this process
        self.state_lock = Lock()

    def _path(self, channel_id: str) -> Path:
        return self.channels_dir / f"{channel_id}.yaml"

    def _read(self, channel_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(channel_id)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or None

    def _write(self, channel: Channel) -> None:
        data = channel.model_dump(mode="json")
        fd, tmp_path = tempfile.mkstemp(dir=self.channels_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self._path(channel.id))
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def list_all(self) -> List[Channel]:
        """All stored channels, sorted by id"""
        channels = []
        for channel_file in sorted(self.channels_dir.glob("*.yaml")):
            try:
                with open(channel_file, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
                channels.append(Channel(**data))
            except Exception as e:
                self.logger.error(f"Failed to load channel file {channel_file.name}: {e}")
        return channels

    def list_enabled(self) -> List[Channel]:
        """Channels whose automation is enabled"""
        return [c for c in self.list_all() if c.automation is not None and c.automation.enabled]

    def get(self, channel_id: str) -> Optional[Channel]:
        data = self._read(channel_id)
        return Channel(**data) if data else None

    def create(self, name: str, channel_id: Optional[str] = None, **fields) -> Channel:
        """Create a channel; the id defaults to a slug of the name"""
        channel_id = channel_id or slugify(name)
        if not channel_id:
            raise ValueError(f"Cannot derive a channel id from name {name!r}")

        channel = Channel(id=channel_id, name=name, **fields)
        with self.state_lock:
            if self._path(channel_id).exists():
                raise ValueError(f"Channel already exists: {channel_id}")
            self._write(channel)

        self.logger.info(f"Created channel '{name}' (ID: {channel_id})")
        return channel

    def update(self, channel_id: str, changes: Dict[str, Any],
               expected: Optional[Dict[str, Any]] = None) -> Optional[Channel]:
        """
        Merge partial changes into a channel.

        `expected` maps automation field names to the values they must still
        hold; a mismatch raises ConcurrencyConflict and nothing is written.
        Returns None if the channel does not exist.
        """
        with self.state_lock:
            current = self._read(channel_id)
            if current is None:
                return None

            if expected:
                automation = Channel(**current).automation or ScheduleConfig()
                for field, value in expected.items():
                    actual = getattr(automation, field)
                    if actual != value:
                        raise ConcurrencyConflict(
                            channel_id,
                            f"Channel {channel_id}: expected {field}={value!r}, found {actual!r}"
                        )

            updated = Channel(**_merge(current, changes))
            self._write(updated)
            return updated

    def import_channels_from_file(self, filepath: str) -> int:
        """Bulk-create channels from a YAML or JSON file with a `channels` list"""
        import_path = Path(filepath)
        if not import_path.exists():
            raise FileNotFoundError(f"Import file not found: {filepath}")

        with open(import_path, 'r', encoding='utf-8') as f:
            if filepath.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        imported_count = 0
        for item in (data or {}).get('channels', []):
            try:
                item = dict(item)
                name = item.pop('name')
                self.create(name, channel_id=item.pop('id', None), **item)
                imported_count += 1
            except Exception as e:
                self.logger.warning(f"Failed to import channel: {e}")

        self.logger.info(f"Imported {imported_count} channels")
        return imported_count
