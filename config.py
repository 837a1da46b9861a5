# config.py
"""
FILE: config.py
DESCRIPTION:
  Runtime settings, read once at import.
  - Base values come from the add-on options file (JSON, optional).
  - Environment variables override the options file.
  Other modules read these as plain module attributes (config.MQTT_SETTINGS, ...).
"""
import json
import os

from utils import split_csv

OPTIONS_PATH = os.getenv("DATAEASY_OPTIONS", "/data/options.json")


def load_options(path=OPTIONS_PATH):
    """Return the add-on options dict, or {} when the file is missing or unreadable."""
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        print(f"[CONFIG] WARNING: Could not read {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


_OPTIONS = load_options()


def _setting(env_key, option_key, default=None):
    value = os.getenv(env_key)
    if value is not None and value != "":
        return value
    value = _OPTIONS.get(option_key)
    if value is None or value == "":
        return default
    return value


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


# --- Devices & schedule ---
DEVICES = split_csv(_setting("DATAEASY_DEVICES", "devices", ""))
REFRESH_INTERVAL_MINUTES = _as_float(_setting("DATAEASY_REFRESH_MINUTES", "refresh_interval_minutes", 5), 5.0)

# --- DataEasy HTTP API ---
API_SETTINGS = {
    "base_url": _setting("DATAEASY_URL", "api_base_url", ""),
    "user": _setting("DATAEASY_USER", "api_username", ""),
    "pass": _setting("DATAEASY_PASS", "api_password", ""),
    "timeout": _as_float(_setting("DATAEASY_TIMEOUT", "api_timeout", 30), 30.0),
}

# --- MQTT broker ---
MQTT_SETTINGS = {
    "host": _setting("MQTT_HOST", "mqtt_host", "localhost"),
    "port": _as_int(_setting("MQTT_PORT", "mqtt_port", 1883), 1883),
    "protocol": str(_setting("MQTT_PROTOCOL", "mqtt_protocol", "mqtt")).strip().lower(),
    "user": _setting("MQTT_USER", "mqtt_user", ""),
    "pass": _setting("MQTT_PASS", "mqtt_password", ""),
    "client_id": _setting("MQTT_CLIENT_ID", "mqtt_client_id", "caleffi-dataeasy"),
    "ca_cert": _setting("MQTT_CA_CERT", "mqtt_ca_cert", ""),
}

TOPIC_ROOT = _setting("MQTT_TOPIC_ROOT", "topic_root", "caleffi-dataeasy")

# --- Home Assistant discovery ---
HA_DISCOVERY_PREFIX = _setting("HA_DISCOVERY_PREFIX", "ha_discovery_prefix", "homeassistant")
UNIQUE_ID_PREFIX = _setting("UNIQUE_ID_PREFIX", "unique_id_prefix", "caleffi_dataeasy")
DEVICE_NAME_PREFIX = _setting("DEVICE_NAME_PREFIX", "device_name_prefix", "Caleffi DataEasy")
DEVICE_MANUFACTURER = "Caleffi"

# --- Console ---
VERBOSE_TRANSMISSIONS = _as_bool(_setting("VERBOSE_TRANSMISSIONS", "verbose_transmissions", False))
