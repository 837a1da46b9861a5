# device_registry.py
"""
FILE: device_registry.py
DESCRIPTION:
  Process-lifetime cache of discovered devices: serial -> (MeterRecord, ChannelSchema).
  Written once per device at discovery, read by the poll loop and by the
  discovery replay. Only touched from the asyncio loop, so no locking.
"""
from __future__ import annotations

from typing import Iterator, Optional

from models import ChannelSchema, DeviceEntry, MeterRecord


class DeviceRegistry:
    def __init__(self):
        # dicts keep insertion order; replay relies on it.
        self._entries: dict[str, DeviceEntry] = {}

    def put(self, record: MeterRecord, schema: ChannelSchema) -> bool:
        """Store a device. Returns False (and keeps the first entry) if the serial is already known."""
        serial = record.device_serial
        if serial in self._entries:
            return False
        self._entries[serial] = DeviceEntry(record, schema)
        return True

    def get(self, serial: str) -> Optional[DeviceEntry]:
        return self._entries.get(serial)

    def list_all(self) -> list[DeviceEntry]:
        return list(self._entries.values())

    def __contains__(self, serial) -> bool:
        return serial in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DeviceEntry]:
        return iter(self.list_all())
