# dataeasy_client.py
"""
FILE: dataeasy_client.py
DESCRIPTION:
  Async HTTP access to the DataEasy concentrator (basic auth, text/plain).
  - get_meters(): DB/REGISTRY_METER.dbs
  - get_meter_channels(): DB/<device>/alldb.dbs
  - get_last_readings(): DB/<device>/LOG/last.txt
  Transport errors are wrapped into the fetch error of the endpoint that failed,
  so callers only deal with the types in exceptions.py.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp
from aiohttp import BasicAuth, ClientTimeout

from exceptions import (
    ChannelFetchError,
    ReadingsFetchError,
    RegistryFetchError,
)
from models import ChannelSchema, MeterRecord, ReadingSet
from parsers import decode_channel_schema, decode_readings, decode_registry

REGISTRY_PATH = "DB/REGISTRY_METER.dbs"


class DataEasyClient:
    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = BasicAuth(username, password) if username else None
        self.timeout = ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "DataEasyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed and self._owns_session:
            await self._session.close()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _get_text(self, path: str, error_cls) -> str:
        session = self._get_session()
        print(f"[HTTP] [DEBUG] GET {path}")
        try:
            async with session.get(
                self.url(path),
                headers={"Accept": "text/plain"},
                auth=self.auth,
            ) as response:
                if response.status == 404:
                    raise error_cls(f"Not found: {path}")
                response.raise_for_status()
                return await response.text()
        except aiohttp.ClientResponseError as err:
            raise error_cls(f"HTTP {err.status} for {path}: {err.message}") from err
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise error_cls(f"Connection error for {path}: {err!r}") from err

    async def get_meters(self) -> list[MeterRecord]:
        payload = await self._get_text(REGISTRY_PATH, RegistryFetchError)
        return decode_registry(payload)

    async def get_meter_channels(self, record: MeterRecord) -> ChannelSchema:
        payload = await self._get_text(f"{record.device_path}/alldb.dbs", ChannelFetchError)
        return decode_channel_schema(payload)

    async def get_last_readings(self, record: MeterRecord, schema: ChannelSchema) -> ReadingSet:
        payload = await self._get_text(f"{record.device_path}/LOG/last.txt", ReadingsFetchError)
        return decode_readings(payload, schema)
