# mqtt_handler.py
"""
FILE: mqtt_handler.py
DESCRIPTION:
  Manages the connection to the MQTT Broker.
  - Availability (LWT) topic: 'online' on connect, 'offline' via last will / on stop.
  - Device info, Home Assistant discovery and per-channel readings (all retained).
  - Re-publishes discovery for every known device when Home Assistant reports
    '<prefix>/status' = online (HA restarted and lost its entity cache).

  paho runs its network loop in its own thread. When an asyncio loop is given,
  connect/disconnect/status reactions are handed over to that loop, so the
  DeviceRegistry is only ever touched from one thread.
"""
import json
from enum import Enum

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

# Local imports
import config
from device_registry import DeviceRegistry
from field_meta import get_unit_meta, unit_of_measurement
from parsers import decode_label, decode_unit
from utils import iso_utc

HA_ONLINE = "online"
LAST_UPDATE_SUFFIX = "last_update"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# --- Topics ---

def device_topic(topic_root, serial):
    return f"{topic_root}/{serial}"


def channel_topic(topic_root, serial, channel_index):
    return f"{device_topic(topic_root, serial)}/{channel_index}"


def last_update_topic(topic_root, serial):
    return f"{device_topic(topic_root, serial)}/ts"


def discovery_topic(discovery_prefix, serial, unique_id):
    return f"{discovery_prefix}/sensor/{serial}/{unique_id}/config"


def value_template(scaling_factor):
    if scaling_factor is None:
        return "{{ value_json.value }}"
    return f"{{{{ value_json.value | float(0) * {scaling_factor} }}}}"


def _compact(payload):
    """Drop keys whose value is None; HA treats a missing key as 'not set'."""
    return {k: v for k, v in payload.items() if v is not None}


# --- Discovery payloads (pure) ---

def build_discovery_messages(
    record,
    schema,
    *,
    topic_root,
    discovery_prefix,
    availability_topic,
    unique_id_prefix,
    device_name_prefix,
    manufacturer=None,
):
    """Return [(config_topic, json_payload), ...] for one device.

    One sensor per channel plus a 'Last Update' timestamp sensor. Unique ids
    only depend on the serial and the channel position, so publishing the
    same device twice overwrites the same retained configs.
    """
    serial = record.device_serial
    device_registry = _compact({
        "identifiers": [serial],
        "name": f"{device_name_prefix} {record.customer_name or serial}",
        "manufacturer": manufacturer,
        "serial_number": serial,
    })

    messages = []
    for idx, channel in enumerate(schema):
        source_unit = decode_unit(channel)
        meta = get_unit_meta(source_unit)
        unique_id = f"{unique_id_prefix}_{serial}_{idx}"
        payload = _compact({
            "name": decode_label(channel),
            "unique_id": unique_id,
            "device_class": meta.device_class,
            "state_class": meta.state_class,
            "unit_of_measurement": unit_of_measurement(source_unit),
            "state_topic": channel_topic(topic_root, serial, idx),
            "value_template": value_template(meta.scaling_factor),
            "availability_topic": availability_topic,
            "device": device_registry,
        })
        messages.append((discovery_topic(discovery_prefix, serial, unique_id), json.dumps(payload)))

    unique_id = f"{unique_id_prefix}_{serial}_{LAST_UPDATE_SUFFIX}"
    payload = {
        "name": "Last Update",
        "unique_id": unique_id,
        "device_class": "timestamp",
        "state_topic": last_update_topic(topic_root, serial),
        "availability_topic": availability_topic,
        "device": device_registry,
    }
    messages.append((discovery_topic(discovery_prefix, serial, unique_id), json.dumps(payload)))
    return messages


def build_replay_messages(entries, **kwargs):
    """Discovery messages for every registry entry, in registry order."""
    messages = []
    for entry in entries:
        messages.extend(build_discovery_messages(entry.record, entry.schema, **kwargs))
    return messages


class DataEasyMQTT:
    def __init__(self, registry=None, loop=None):
        self.registry = registry if registry is not None else DeviceRegistry()
        self.loop = loop
        self.state = ConnectionState.DISCONNECTED

        settings = config.MQTT_SETTINGS
        self.topic_root = config.TOPIC_ROOT
        self.discovery_prefix = config.HA_DISCOVERY_PREFIX
        self.TOPIC_AVAILABILITY = f"{self.topic_root}/_internal/lwt"
        self.TOPIC_HA_STATUS = f"{self.discovery_prefix}/status"

        protocol = str(settings.get("protocol") or "mqtt").lower()
        transport = "websockets" if protocol in ("ws", "wss") else "tcp"

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=settings.get("client_id") or "",
            transport=transport,
        )
        if settings.get("user"):
            self.client.username_pw_set(settings["user"], settings.get("pass") or None)
        if protocol in ("mqtts", "wss") or settings.get("ca_cert"):
            self.client.tls_set(ca_certs=settings.get("ca_cert") or None)
        self.client.will_set(self.TOPIC_AVAILABILITY, "offline", retain=True)

        # Callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    # --- Event plumbing ---

    def _dispatch(self, handler, *args):
        """Run a state handler on the asyncio loop when we have one, inline otherwise."""
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(handler, *args)
        else:
            handler(*args)

    def _on_connect(self, c, u, f, rc, p=None):
        if rc == 0:
            self._dispatch(self.handle_connected)
        else:
            print(f"[MQTT] Connection Failed! Code: {rc}")

    def _on_disconnect(self, c, u, f, rc, p=None):
        self._dispatch(self.handle_disconnected, rc)

    def _on_message(self, client, userdata, msg):
        if msg.topic != self.TOPIC_HA_STATUS:
            return
        payload = msg.payload.decode("utf-8", errors="replace") if msg.payload else ""
        print(f"[MQTT] [DEBUG] Received {msg.topic}: {payload}")
        self._dispatch(self.handle_discovery_status, payload)

    # --- State handlers ---

    def handle_connected(self):
        self.state = ConnectionState.CONNECTED
        self.mark_online()
        self.client.subscribe(self.TOPIC_HA_STATUS)
        print("[MQTT] Connected Successfully.")

    def handle_disconnected(self, rc=None):
        was_connected = self.state == ConnectionState.CONNECTED
        self.state = ConnectionState.DISCONNECTED
        if was_connected:
            print(f"[MQTT] WARNING: Disconnected from broker ({rc}). Reconnecting...")

    def handle_discovery_status(self, payload):
        if str(payload).strip() != HA_ONLINE:
            return 0
        print(f"[MQTT] Home Assistant is online. Re-publishing discovery for {len(self.registry)} device(s).")
        return self.replay_discovery()

    # --- Lifecycle ---

    def start(self):
        settings = config.MQTT_SETTINGS
        print(f"[STARTUP] Connecting to MQTT Broker at {settings['host']}:{settings['port']}...")
        self.state = ConnectionState.CONNECTING
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)
        self.client.connect_async(settings["host"], settings["port"])
        self.client.loop_start()

    def stop(self):
        self.client.publish(self.TOPIC_AVAILABILITY, "offline", retain=True)
        self.client.loop_stop()
        self.client.disconnect()
        self.state = ConnectionState.DISCONNECTED

    def mark_online(self):
        self.client.publish(self.TOPIC_AVAILABILITY, "online", retain=True)

    # --- Publishing ---

    def register_device(self, record, schema):
        """Cache the device, then publish its info and discovery configs."""
        serial = record.device_serial
        if not self.registry.put(record, schema):
            print(f"[MQTT] WARNING: Device {serial} already registered; keeping its first channel list.")
        entry = self.registry.get(serial)

        self.client.publish(
            f"{device_topic(self.topic_root, serial)}/info",
            json.dumps(entry.record.as_dict(), ensure_ascii=False),
            retain=True,
        )
        self.publish_discovery(entry.record, entry.schema)

    def _discovery_kwargs(self):
        return {
            "topic_root": self.topic_root,
            "discovery_prefix": self.discovery_prefix,
            "availability_topic": self.TOPIC_AVAILABILITY,
            "unique_id_prefix": config.UNIQUE_ID_PREFIX,
            "device_name_prefix": config.DEVICE_NAME_PREFIX,
            "manufacturer": config.DEVICE_MANUFACTURER,
        }

    def publish_discovery(self, record, schema):
        print(f"[MQTT] Publishing HA discovery for device {record.device_serial} ({len(schema)} channels)")
        messages = build_discovery_messages(record, schema, **self._discovery_kwargs())
        for topic, payload in messages:
            self.client.publish(topic, payload, retain=True)
        return len(messages)

    def replay_discovery(self):
        """Re-publish discovery for every cached device from registry state only."""
        messages = build_replay_messages(self.registry.list_all(), **self._discovery_kwargs())
        for topic, payload in messages:
            self.client.publish(topic, payload, retain=True)
        return len(messages)

    def publish_readings(self, record, reading_set):
        serial = record.device_serial
        for reading in reading_set:
            self.client.publish(
                channel_topic(self.topic_root, serial, reading.channel_index),
                json.dumps(reading.as_dict(), ensure_ascii=False),
                retain=True,
            )
            if config.VERBOSE_TRANSMISSIONS:
                unit = f" {reading.unit}" if reading.unit else ""
                print(f"-> TX [{serial}/{reading.channel_index}]: {reading.label} = {reading.value}{unit}")

        self.client.publish(
            last_update_topic(self.topic_root, serial),
            iso_utc(reading_set.timestamp),
            retain=True,
        )
