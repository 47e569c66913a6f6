from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

import httpx

from ..core.errors import AdapterError
from ..domain.models import EnergySummary

logger = logging.getLogger(__name__)

ATTRIBUTION = "Powered by Enphase Energy (http://enphase.com)"


class EnphaseClient:
    """Enphase Enlighten v2 API client for one PV system.

    The system is looked up by name once in ``connect()``; afterwards
    ``poll_summary`` owns the request cadence (the API is rate limited per
    key, so callers should not poll on their own).
    """

    adapter_id = "enphase"

    def __init__(
        self,
        api_key: str,
        user_id: str,
        system_name: str,
        base_url: str = "https://api.enphaseenergy.com/api/v2",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._user_id = user_id
        self._system_name = system_name
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.system_id: Optional[int] = None
        self._closed = asyncio.Event()

    async def _get(self, path: str) -> dict:
        params = {"key": self._api_key, "user_id": self._user_id}
        try:
            resp = await self._client.get(f"{self._base_url}{path}", params=params)
        except httpx.HTTPError as e:
            raise AdapterError(f"GET {path} failed: {e}", adapter=self.adapter_id) from e

        if resp.status_code == 409:
            raise AdapterError(f"rate limit exceeded on {path}: {resp.text}", adapter=self.adapter_id)
        if resp.status_code != 200:
            raise AdapterError(f"GET {path} returned HTTP {resp.status_code}: {resp.text}", adapter=self.adapter_id)
        try:
            return resp.json()
        except ValueError as e:
            raise AdapterError(f"GET {path} returned invalid JSON: {e}", adapter=self.adapter_id) from e

    async def connect(self) -> None:
        """Resolve the configured system name to a system id."""
        try:
            data = await self._get("/systems")
        except AdapterError as e:
            raise AdapterError(f"system lookup failed: {e.message}", adapter=self.adapter_id, recoverable=False) from e

        try:
            system_id = next(
                (int(s["system_id"]) for s in data.get("systems", []) if s.get("system_name") == self._system_name),
                None,
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise AdapterError(
                f"unexpected systems payload {data!r}: {e}", adapter=self.adapter_id, recoverable=False
            ) from e

        if system_id is not None:
            self.system_id = system_id
            logger.info("Enphase system %r has id %s", self._system_name, self.system_id)
            return

        raise AdapterError(f"no system named {self._system_name!r}", adapter=self.adapter_id, recoverable=False)

    async def fetch_summary(self) -> EnergySummary:
        if self.system_id is None:
            raise AdapterError("not connected", adapter=self.adapter_id, recoverable=False)
        data = await self._get(f"/systems/{self.system_id}/summary")
        try:
            return EnergySummary(
                current_power=int(data["current_power"]),
                energy_lifetime=int(data["energy_lifetime"]),
                energy_today=int(data["energy_today"]),
                system_id=data.get("system_id"),
                status=data.get("status"),
                last_report_at=data.get("last_report_at"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AdapterError(f"unexpected summary payload {data!r}: {e}", adapter=self.adapter_id) from e

    async def poll_summary(
        self,
        interval_s: float,
        on_error: Optional[Callable[[AdapterError], None]] = None,
    ) -> AsyncIterator[EnergySummary]:
        """Yield a summary every ``interval_s`` until ``close()`` is called.

        Recoverable fetch failures go to ``on_error`` (or the log) and the
        stream keeps going; anything else ends the stream with the error.
        """
        while not self._closed.is_set():
            try:
                summary = await self.fetch_summary()
            except AdapterError as e:
                if not e.recoverable:
                    raise
                if on_error is None:
                    logger.warning("Enphase poll failed: %s", e)
                else:
                    on_error(e)
            else:
                yield summary

            try:
                await asyncio.wait_for(self._closed.wait(), timeout=interval_s)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        self._closed.set()
        if self._owns_client:
            await self._client.aclose()
