# models.py
"""
FILE: models.py
DESCRIPTION:
  Immutable records decoded from the DataEasy dumps.
  - MeterRecord: one row of the meter registry, keyed by header name.
  - ChannelDefinition / ChannelSchema: per-device channel layout.
  - Reading / ReadingSet: one poll of a device, aligned to its schema.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from exceptions import AlignmentError

Value = Union[int, float, str, None]


@dataclass(frozen=True, eq=True)
class MeterRecord:
    """A registry row. Header order is kept so the info payload mirrors the dump."""

    values: Mapping[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def as_dict(self) -> dict[str, Optional[str]]:
        return dict(self.values)

    @property
    def device_serial(self) -> Optional[str]:
        return self.get("ID_DEVICE")

    @property
    def manufacturer_code(self) -> Optional[str]:
        return self.get("MANF_CODE")

    @property
    def medium(self) -> Optional[str]:
        return self.get("MEDIUM")

    @property
    def version(self) -> Optional[str]:
        return self.get("VERSION")

    @property
    def customer_name(self) -> Optional[str]:
        return self.get("NAME_CUSTOMER")

    @property
    def device_path(self) -> str:
        """Relative URL of the device folder on the concentrator."""
        return (
            f"DB/{self.device_serial}-"
            f"{self.manufacturer_code}{self.medium}{self.version}"
        )


@dataclass(frozen=True)
class ChannelDefinition:
    SU: Optional[str] = None
    ST: Optional[str] = None
    T: Optional[str] = None
    TV: Optional[str] = None
    Description: Optional[str] = None
    Units: Optional[str] = None
    LABEL: Optional[str] = None
    TOLOG: Optional[str] = None
    MAINDB: Optional[str] = None
    TYPELOG: Optional[str] = None
    Multiplier: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "ChannelDefinition":
        """Build a definition from a header -> value mapping, ignoring unknown columns."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in mapping.items() if k in known})


@dataclass(frozen=True)
class ChannelSchema:
    channels: tuple[ChannelDefinition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "channels", tuple(self.channels))

    def __len__(self) -> int:
        return len(self.channels)

    def __iter__(self):
        return iter(self.channels)

    def __getitem__(self, idx: int) -> ChannelDefinition:
        return self.channels[idx]


@dataclass(frozen=True)
class Reading:
    channel_index: int
    label: str
    description: Optional[str]
    value: Value
    unit: Optional[str]

    def as_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "description": self.description,
            "value": self.value,
            "unit": self.unit,
        }


@dataclass(frozen=True)
class ReadingSet:
    """All readings of one poll. Must have exactly one reading per schema channel."""

    timestamp: datetime
    readings: tuple[Reading, ...]
    schema: ChannelSchema

    def __post_init__(self):
        object.__setattr__(self, "readings", tuple(self.readings))
        if len(self.readings) != len(self.schema):
            raise AlignmentError(
                f"{len(self.readings)} readings for a schema of {len(self.schema)} channels"
            )
        for idx, reading in enumerate(self.readings):
            if reading.channel_index != idx:
                raise AlignmentError(
                    f"reading at position {idx} carries channel index {reading.channel_index}"
                )

    def __iter__(self):
        return iter(self.readings)

    def __len__(self) -> int:
        return len(self.readings)


@dataclass(frozen=True)
class DeviceEntry:
    record: MeterRecord
    schema: ChannelSchema
