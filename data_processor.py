# data_processor.py
"""
FILE: data_processor.py
DESCRIPTION:
  Runs the per-device poll cycles.
  - run_cycle(): discover (once) -> fetch last log -> decode -> publish.
  - poll_loop(): runs run_cycle() now and then every interval, forever.
  Errors never leave a cycle: they are printed and the next tick retries.
  A device whose channel list could not be fetched retries discovery on its
  next tick; other devices keep their own schedule.
"""
import asyncio

from exceptions import DataEasyError


def _tally(counts):
    return f"ok={counts['ok']} failed={counts['failed']}"


class DataProcessor:
    def __init__(self, client, mqtt_handler):
        self.client = client
        self.mqtt_handler = mqtt_handler
        self.registry = mqtt_handler.registry
        self.stats = {}
        self._sleep = asyncio.sleep

    async def discover(self, record):
        serial = record.device_serial
        schema = await self.client.get_meter_channels(record)
        print(f"[POLL] Fetched {len(schema)} channels for meter {serial}")
        self.mqtt_handler.register_device(record, schema)
        return self.registry.get(serial)

    async def run_cycle(self, record):
        """One fetch -> decode -> publish pass. Returns True when readings were published."""
        serial = record.device_serial
        counts = self.stats.setdefault(serial, {"ok": 0, "failed": 0})
        try:
            entry = self.registry.get(serial)
            if entry is None:
                entry = await self.discover(record)

            readings = await self.client.get_last_readings(entry.record, entry.schema)
            print(f"[POLL] Got readings for meter {serial}")

            self.mqtt_handler.publish_readings(entry.record, readings)
        except asyncio.CancelledError:
            raise
        except DataEasyError as e:
            counts["failed"] += 1
            print(f"[POLL] ERROR: Meter {serial}: {type(e).__name__}: {e} ({_tally(counts)})")
            return False
        except Exception as e:
            counts["failed"] += 1
            print(f"[POLL] ERROR: Unexpected failure for meter {serial}: {type(e).__name__}: {e} ({_tally(counts)})")
            return False

        counts["ok"] += 1
        print(f"[POLL] Published {len(readings)} readings for meter {serial} ({_tally(counts)})")
        return True

    async def poll_loop(self, record, interval_seconds):
        """Cycle immediately, then once per interval. Slow cycles delay only this device."""
        print(f"[POLL] Polling meter {record.device_serial} every {interval_seconds:g} seconds.")
        while True:
            await self.run_cycle(record)
            await self._sleep(interval_seconds)
