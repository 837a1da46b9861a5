#!/usr/bin/env python3
"""
FILE: main.py
DESCRIPTION:
  The main executable script.
  - Installs the timestamped, colour-tagged print used by every module.
  - Reads the meter registry (fatal on failure), picks the configured meters
    and starts one poll task per meter on a single asyncio loop.
"""
import asyncio
import builtins
import re
import sys
from datetime import datetime

# --- 1. GLOBAL LOGGING & COLOR SETUP ---
c_cyan    = "\033[1;36m"   # Bold Cyan (Meter serials / JSON Keys)
c_magenta = "\033[1;35m"   # Bold Magenta (System Tags / DEBUG Header)
c_green   = "\033[1;32m"   # Bold Green (DATA Header / INFO)
c_yellow  = "\033[1;33m"   # Bold Yellow (WARN Only)
c_red     = "\033[1;31m"   # Bold Red (ERROR)
c_white   = "\033[1;37m"   # Bold White (Values / Brackets / Colons)
c_dim     = "\033[37m"     # Standard White (Timestamp)
c_reset   = "\033[0m"

_original_print = builtins.print


def get_source_color(clean_text):
    clean = clean_text.lower()
    if "mqtt" in clean: return c_magenta
    if "startup" in clean: return c_magenta
    if "config" in clean: return c_magenta
    if "poll" in clean: return c_green
    if "shutdown" in clean: return c_red
    return c_cyan


def highlight_json(text):
    text = re.sub(r'("[^"]+")\s*:', f'{c_cyan}\\1{c_reset}{c_white}:{c_reset}', text)
    text = re.sub(r':\s*("[^"]+")', f': {c_white}\\1{c_reset}', text)
    text = re.sub(r':\s*(-?\d+\.?\d*)', f': {c_white}\\1{c_reset}', text)
    text = re.sub(r':\s*(true|false|null)', f': {c_white}\\1{c_reset}', text)
    return text


def timestamped_print(*args, **kwargs):
    now = datetime.now().strftime("%H:%M:%S")
    time_prefix = f"{c_dim}[{now}]{c_reset}"
    msg = " ".join(map(str, args))
    lower_msg = msg.lower()

    header = f"{c_green}INFO{c_reset}{c_white}:{c_reset}"
    special_formatting_applied = False

    if any(x in lower_msg for x in ["error", "critical", "failed", "crashed"]):
        header = f"{c_red}ERROR{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("CRITICAL:", "").replace("ERROR:", "").strip()
    elif "warning" in lower_msg:
        header = f"{c_yellow}WARN{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("WARNING:", "").strip()
    elif "debug" in lower_msg:
        header = f"{c_magenta}DEBUG{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("[DEBUG]", "").replace("[debug]", "").strip()
        if "{" in msg and "}" in msg: msg = highlight_json(msg)
    elif "-> tx" in lower_msg:
        header = f"{c_green}DATA{c_reset}{c_white}:{c_reset}"
        msg = msg.replace("-> TX", "").strip()
        match = re.match(r".*?\[(.*?)(?:\])?:\s+(.*)", msg)
        if match:
            src_text = match.group(1).replace("]", "")
            val = match.group(2)
            msg = f"{c_white}[{c_reset}{c_cyan}{src_text}{c_reset}{c_white}]:{c_reset} {c_white}{val}{c_reset}"
            special_formatting_applied = True

    if not special_formatting_applied:
        match = re.match(r"^\[(.*?)\]\s*(.*)", msg)
        if match:
            src_text = match.group(1)
            rest_of_msg = match.group(2).strip()
            s_color = get_source_color(src_text)
            msg = f"{c_white}[{c_reset}{s_color}{src_text}{c_reset}{c_white}]:{c_reset} {rest_of_msg}"

    _original_print(f"{time_prefix} {header} {msg}", flush=True, **kwargs)


builtins.print = timestamped_print


import config
from data_processor import DataProcessor
from dataeasy_client import DataEasyClient
from device_registry import DeviceRegistry
from exceptions import RegistryFetchError, RegistryFormatError
from mqtt_handler import DataEasyMQTT


def select_meters(records, wanted):
    """Keep the registry rows whose serial is configured, first occurrence wins."""
    wanted = set(wanted)
    selected = []
    seen = set()
    for record in records:
        serial = record.device_serial
        if serial not in wanted:
            print(f"[STARTUP] [DEBUG] Skipped device {serial}")
            continue
        if serial in seen:
            print(f"[STARTUP] WARNING: Duplicate serial '{serial}' in meter registry. Keeping the first entry.")
            continue
        seen.add(serial)
        print(f"[STARTUP] Found requested device with SN {serial}")
        selected.append(record)

    for serial in sorted(wanted - seen):
        print(f"[STARTUP] WARNING: Configured device {serial} is not in the meter registry.")
    return selected


async def run():
    loop = asyncio.get_running_loop()

    registry = DeviceRegistry()
    mqtt_handler = DataEasyMQTT(registry=registry, loop=loop)
    mqtt_handler.start()

    api = config.API_SETTINGS
    client = DataEasyClient(api["base_url"], api["user"], api["pass"], timeout=api["timeout"])
    tasks = []
    try:
        try:
            records = await client.get_meters()
        except (RegistryFetchError, RegistryFormatError) as e:
            print(f"[CRITICAL] Could not read meter registry: {e}")
            sys.exit(1)
        print(f"[STARTUP] Meter registry lists {len(records)} device(s).")

        meters = select_meters(records, config.DEVICES)
        if not meters:
            print("[STARTUP] WARNING: No configured device found. Nothing to poll; staying connected to MQTT.")

        processor = DataProcessor(client, mqtt_handler)
        interval = config.REFRESH_INTERVAL_MINUTES * 60
        for record in meters:
            tasks.append(asyncio.create_task(
                processor.poll_loop(record, interval),
                name=f"fetch-{record.device_serial}",
            ))

        print("[STARTUP] Main function launched")
        # poll_loop never returns; this only ends on cancellation.
        if tasks:
            await asyncio.gather(*tasks)
        else:
            # Keep the broker session (availability, HA status replay) until stopped.
            await asyncio.Event().wait()
    finally:
        for task in tasks:
            task.cancel()
        await client.close()
        mqtt_handler.stop()


def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\n[SHUTDOWN] Stopped.")


if __name__ == "__main__":
    main()
