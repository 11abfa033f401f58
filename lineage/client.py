import asyncio
import json
import logging
import random
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from . import database
from .config import Settings, get_settings
from .errors import UpstreamError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class RateLimiter:
    """
    Process-wide minimum delay between upstream requests.

    Shared by every fetch regardless of which league it is for, so concurrent
    league syncs queue behind one another instead of multiplying the request rate.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self._lock = asyncio.Lock()
        self._last_call = 0.0

    async def wait(self):
        async with self._lock:
            now = time.monotonic()
            delay = self.min_interval - (now - self._last_call)
            if delay > 0:
                await asyncio.sleep(delay)
            self._last_call = time.monotonic()

    def reset(self):
        self._last_call = 0.0


class SleeperClient:
    """
    Caching, rate-limited client for the Sleeper API.

    Created once per process (the app lifespan does this) and closed with
    ``aclose()``. Responses are cached in the ``api_cache`` table for
    ``cache_ttl_seconds``; a TTL of 0 disables the cache.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.api_url = self.settings.sleeper_api_url.rstrip("/")
        self.cache_ttl_seconds = self.settings.cache_ttl_seconds
        self.limiter = limiter or RateLimiter(self.settings.min_request_interval)
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            transport=transport,
            timeout=self.settings.request_timeout_seconds,
            headers={"accept": "application/json"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    async def clear_cache(self):
        db = await database.get_db_connection()
        try:
            await db.execute("DELETE FROM api_cache")
            await db.commit()
        finally:
            await db.close()

    async def _read_cache(self, url: str):
        if self.cache_ttl_seconds <= 0:
            return None
        db = await database.get_db_connection()
        try:
            cursor = await db.execute("SELECT data, timestamp FROM api_cache WHERE url = ?", (url,))
            row = await cursor.fetchone()
        finally:
            await db.close()
        if row:
            timestamp = datetime.fromisoformat(row["timestamp"])
            if datetime.utcnow() - timestamp < timedelta(seconds=self.cache_ttl_seconds):
                return json.loads(row["data"])
        return None

    async def _write_cache(self, url: str, data: Any):
        if self.cache_ttl_seconds <= 0:
            return
        db = await database.get_db_connection()
        try:
            await db.execute(
                "INSERT OR REPLACE INTO api_cache (url, data, timestamp) VALUES (?, ?, ?)",
                (url, json.dumps(data), datetime.utcnow().isoformat()),
            )
            await db.commit()
        finally:
            await db.close()

    async def _fetch(self, url: str):
        attempts = max(1, self.settings.max_retries)
        last_status = None
        last_message = ""
        for attempt in range(1, attempts + 1):
            await self.limiter.wait()
            try:
                response = await self._http.get(url)
            except httpx.TransportError as e:
                last_status, last_message = None, repr(e)
            else:
                if response.status_code not in RETRYABLE_STATUS:
                    response.raise_for_status()
                    return response.json()
                last_status, last_message = response.status_code, response.reason_phrase

            if attempt < attempts:
                backoff = min(
                    self.settings.backoff_base_seconds * 2 ** (attempt - 1),
                    self.settings.backoff_cap_seconds,
                )
                logger.warning(
                    "Sleeper GET %s failed (%s), retry %d/%d in %.2fs",
                    url, last_status or last_message, attempt, attempts - 1, backoff,
                )
                await self._sleep(backoff + random.uniform(0, 0.25))
        raise UpstreamError(url, last_status, last_message)

    async def get(self, url: str):
        """
        A generic, caching GET request for the Sleeper API.
        """
        cached = await self._read_cache(url)
        if cached is not None:
            return cached
        try:
            fresh_data = await self._fetch(url)
        except httpx.HTTPStatusError as e:
            raise UpstreamError(url, e.response.status_code, e.response.reason_phrase) from e
        await self._write_cache(url, fresh_data)
        return fresh_data

    async def _get_or_empty(self, url: str, empty):
        # Listings for weeks or drafts that never happened come back as 404
        try:
            return await self.get(url)
        except UpstreamError as e:
            if e.status == 404:
                logger.warning("Sleeper GET %s returned 404, treating as empty", url)
                return empty
            raise

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/user/{user_id}")

    async def get_league(self, league_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/league/{league_id}")

    async def get_league_users(self, league_id: str) -> List[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/league/{league_id}/users") or []

    async def get_league_rosters(self, league_id: str) -> List[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/league/{league_id}/rosters") or []

    async def get_league_transactions(self, league_id: str, week: int) -> List[Dict[str, Any]]:
        url = f"{self.api_url}/league/{league_id}/transactions/{week}"
        return await self._get_or_empty(url, []) or []

    async def get_league_drafts(self, league_id: str) -> List[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/league/{league_id}/drafts") or []

    async def get_draft(self, draft_id: str) -> Optional[Dict[str, Any]]:
        return await self.get(f"{self.api_url}/draft/{draft_id}")

    async def get_draft_picks(self, draft_id: str) -> List[Dict[str, Any]]:
        return await self._get_or_empty(f"{self.api_url}/draft/{draft_id}/picks", []) or []

    async def get_league_traded_picks(self, league_id: str) -> List[Dict[str, Any]]:
        return await self._get_or_empty(f"{self.api_url}/league/{league_id}/traded_picks", []) or []

    async def get_draft_traded_picks(self, draft_id: str) -> List[Dict[str, Any]]:
        return await self._get_or_empty(f"{self.api_url}/draft/{draft_id}/traded_picks", []) or []

    async def get_all_players(self) -> Dict[str, Dict[str, Any]]:
        return await self.get(f"{self.api_url}/players/nfl") or {}
