# parsers.py
"""
FILE: parsers.py
DESCRIPTION:
  Decoders for the three text dumps served by the DataEasy concentrator.
  - decode_registry(): REGISTRY_METER.dbs -> list of MeterRecord (CRLF lines).
  - decode_channel_schema(): alldb.dbs -> ChannelSchema (LF lines, header/value pairs).
  - decode_readings(): LOG/last.txt -> ReadingSet aligned to a ChannelSchema ('$' fields).
  - decode_label() / decode_unit() / decode_multiplier(): per-channel helpers.

  The channel order produced by decode_channel_schema() is the order in which
  values appear in the log line (after two leading fields). Nothing in the log
  line itself identifies a channel, so the schema must be the one fetched for
  the same device.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from exceptions import (
    ChannelFetchError,
    ReadingsFetchError,
    RegistryFormatError,
)
from models import ChannelDefinition, ChannelSchema, MeterRecord, Reading, ReadingSet
from utils import host_tz_offset, integral, is_number, round_half_up

ERROR_MARKER = "ERROR"
NO_UNIT = "date e time"

REGISTRY_LINE_BREAK = "\r\n"
SCHEMA_LINE_BREAK = "\n"
FIELD_SEP = ";"
LOG_FIELD_SEP = "$"

# Log line: <local epoch>$<reserved>$<channel 0>$<channel 1>...
LOG_VALUE_OFFSET = 2


# --- Registry ---

def decode_registry(payload: str) -> list[MeterRecord]:
    if ERROR_MARKER in payload:
        raise RegistryFormatError("Concentrator returned an error for the meter registry")

    lines = payload.strip().split(REGISTRY_LINE_BREAK)
    if len(lines) < 2:
        raise RegistryFormatError("Meter registry has no header row")

    # Line 0 is a title/separator row.
    headers = lines[1].split(FIELD_SEP)

    records = []
    for line in lines[2:]:
        if not line:
            continue
        values = line.split(FIELD_SEP)
        records.append(MeterRecord({
            key: (values[idx] if idx < len(values) else None)
            for idx, key in enumerate(headers)
        }))
    return records


# --- Channel schema ---

def decode_channel_schema(payload: str) -> ChannelSchema:
    if ERROR_MARKER in payload:
        raise ChannelFetchError("Concentrator returned an error for the channel list")

    lines = payload.split(SCHEMA_LINE_BREAK)
    channels = []

    for g in range(0, len(lines) - 1, 2):
        keys = lines[g].split(FIELD_SEP)
        values = lines[g + 1].split(FIELD_SEP)

        # Two fields or fewer means the channel is not in use; it also has no
        # slot in the log line.
        if len(values) <= 2:
            continue

        # First and last fields are empty boundary artifacts of ';a;b;c;'.
        entry = {
            keys[j]: values[j]
            for j in range(1, len(values) - 1)
            if j < len(keys)
        }
        channels.append(ChannelDefinition.from_mapping(entry))

    return ChannelSchema(tuple(channels))


# --- Per-channel helpers ---

def decode_label(definition: ChannelDefinition) -> str:
    label = definition.LABEL or ""
    for part in (definition.T, definition.SU, definition.ST):
        if part is not None and part != "0":
            label += " - " + part
    return label


def decode_unit(definition: ChannelDefinition) -> Optional[str]:
    if definition.Units is None:
        return None
    unit = definition.Units.strip()
    if unit == "" or unit == NO_UNIT:
        return None
    return unit


def decode_multiplier(definition: ChannelDefinition) -> float:
    """Multiplier column as float; 1.0 when the column is missing, 0.0 (no scaling) when blank or garbage."""
    if definition.Multiplier is None:
        return 1.0
    raw = definition.Multiplier.strip()
    if not is_number(raw):
        return 0.0
    return float(raw)


def decode_value(raw_value: Optional[str], definition: ChannelDefinition):
    if raw_value is None:
        return None
    if not is_number(raw_value):
        # Device specific sentinels (e.g. "----", "E01") are passed through.
        return raw_value

    number = float(raw_value)
    if not math.isfinite(number):
        # "Infinity", "1e400": not representable in JSON, keep the raw text.
        return raw_value
    multiplier = decode_multiplier(definition)
    if multiplier != 0:
        return integral(round_half_up(multiplier * number, 2))
    return integral(number)


# --- Log line ---

def decode_timestamp(raw_ts: str, tz_offset: Optional[int] = None) -> datetime:
    """The concentrator logs local wall-clock epochs; shift them by this host's offset."""
    try:
        local_epoch = int(raw_ts.strip())
    except (AttributeError, ValueError):
        raise ReadingsFetchError(f"Invalid log timestamp: {raw_ts!r}")

    if tz_offset is None:
        tz_offset = host_tz_offset()
    return datetime.fromtimestamp(local_epoch + tz_offset, tz=timezone.utc)


def decode_readings(payload: str, schema: ChannelSchema, tz_offset: Optional[int] = None) -> ReadingSet:
    if not payload or ERROR_MARKER in payload:
        raise ReadingsFetchError("Could not get last log of device")

    fields = payload.split(SCHEMA_LINE_BREAK)[0].split(LOG_FIELD_SEP)
    ts = decode_timestamp(fields[0], tz_offset)

    readings = []
    for idx, definition in enumerate(schema):
        pos = idx + LOG_VALUE_OFFSET
        raw_value = fields[pos] if pos < len(fields) else None
        readings.append(Reading(
            channel_index=idx,
            label=decode_label(definition),
            description=definition.Description,
            value=decode_value(raw_value, definition),
            unit=decode_unit(definition),
        ))

    return ReadingSet(ts, tuple(readings), schema)
