# field_meta.py
"""
FILE: field_meta.py
DESCRIPTION:
  Maps the physical units reported by DataEasy channels to Home Assistant
  sensor metadata.
  - UNIT_META: source unit -> (device_class, state_class, display unit, scaling)
  - get_unit_meta(): lookup with an all-None fallback (generic numeric sensor)
"""
from typing import NamedTuple, Optional


class UnitMeta(NamedTuple):
    device_class: Optional[str] = None
    state_class: Optional[str] = None
    unit: Optional[str] = None
    scaling_factor: Optional[float] = None


# Keys are case-sensitive: "mK" (millikelvin) is not "MK".
UNIT_META = {
    "C": UnitMeta("temperature", None, "°C", None),
    "F": UnitMeta("temperature", None, "°F", None),
    "K": UnitMeta("temperature", None, None, None),
    "mK": UnitMeta("temperature", None, "K", 0.001),
    "kWh": UnitMeta("energy", "total_increasing", None, None),
    "kW": UnitMeta("power", None, None, None),
    "m3/h": UnitMeta("volume_flow_rate", None, "m³/h", None),
    "m3": UnitMeta("water", "total_increasing", "m³", None),
}

NO_META = UnitMeta()


def get_unit_meta(unit):
    """Return the UnitMeta for a decoded unit; unknown or missing units get NO_META."""
    if not unit:
        return NO_META
    return UNIT_META.get(unit, NO_META)


def unit_of_measurement(unit):
    """Unit shown in Home Assistant: the remapped one when known, else the source unit."""
    return get_unit_meta(unit).unit or unit or None
