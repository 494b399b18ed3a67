from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime

import httpx
from sgp4.api import Satrec

from ..config import settings
from .position_provider import PositionProvider, PositionProviderError
from .registry import TrackedObjectRegistry
from .tracked_object import InputError, TrackedObject

logger = logging.getLogger(__name__)

GM_EARTH_KM3_S2 = 398600.4418
R_EARTH_EQUATORIAL_KM = 6378.137


class TLESourceError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def category_for_name(name: str) -> str:
    upper = name.upper()
    if " DEB" in upper or upper.startswith("DEB") or "R/B" in upper:
        return "debris"
    return "payload"


class IngestService:
    HTTP_TIMEOUT_SECONDS = 30
    HTTP_MAX_RETRIES = 3
    HTTP_RETRY_DELAY_SECONDS = 0.5
    RETRYABLE_HTTP_STATUSES = {403, 429, 500, 502, 503, 504}

    def __init__(
        self,
        registry: TrackedObjectRegistry,
        provider: PositionProvider,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.registry = registry
        self.provider = provider
        self.transport = transport

    async def ingest_latest_tles(self, epoch: datetime | None = None) -> int:
        text = await self._download_tle_text()
        # Propagation, frame conversion and the commit are blocking work.
        return await asyncio.to_thread(self.ingest_tle_text, text, epoch)

    def ingest_tle_text(self, text: str, epoch: datetime | None = None) -> int:
        """Place every parsed element set at ``epoch`` and upsert it into the registry."""
        epoch = epoch or datetime.utcnow()
        records = self._parse_tle_text(text)[: settings.ingest_max_objects]

        objects: list[TrackedObject] = []
        skipped = 0
        for record in records:
            try:
                geo = self.provider.geodetic_at((record["line1"], record["line2"]), epoch)
                objects.append(
                    TrackedObject.from_mapping(
                        {
                            **record,
                            "lat": round(geo.latitude_deg, 4),
                            "lng": round(geo.longitude_deg, 4),
                            "alt_km": round(geo.altitude_km, 2),
                            "type": category_for_name(record["name"]),
                        }
                    )
                )
            except (PositionProviderError, InputError) as exc:
                skipped += 1
                logger.warning("Skipping %s during ingestion: %s", record["object_id"], exc)

        count = self.registry.upsert_many(objects)
        logger.info("Ingestion stored %s objects (skipped %s)", count, skipped)
        return count

    async def _download_tle_text(self) -> str:
        last_error: TLESourceError | None = None
        for source_url in self._bulk_tle_source_urls():
            try:
                text = await self._fetch_text_with_retries(source_url)
                if text.strip():
                    logger.info("Fetched TLE catalog from %s", source_url)
                    return text
            except TLESourceError as exc:
                last_error = exc
                logger.warning("TLE fetch failed for %s: %s", source_url, exc)
                continue

        if last_error is not None:
            raise last_error
        raise TLESourceError("TLE source returned an empty payload")

    def _parse_tle_text(self, text: str) -> list[dict]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        parsed = []
        idx = 0
        while idx + 2 < len(lines):
            name, line1, line2 = lines[idx], lines[idx + 1], lines[idx + 2]
            if not line1.startswith("1 ") or not line2.startswith("2 "):
                # Out of step with the name/line1/line2 triplets; resync on the next line.
                idx += 1
                continue
            idx += 3
            if name.startswith("0 "):
                name = name[2:]
            try:
                sat = Satrec.twoline2rv(line1, line2)
                semi_major_km = self._semi_major_axis_from_mean_motion(sat.no_kozai)
                if semi_major_km - R_EARTH_EQUATORIAL_KM > settings.leo_max_altitude_km:
                    continue
                parsed.append(
                    {
                        "object_id": str(sat.satnum),
                        "name": name.strip() or str(sat.satnum),
                        "line1": line1,
                        "line2": line2,
                        "speed_kms": round(math.sqrt(GM_EARTH_KM3_S2 / semi_major_km), 2),
                    }
                )
            except (ValueError, ZeroDivisionError) as exc:
                logger.debug("Unparseable TLE for %s: %s", name, exc)
                continue
        return parsed

    @staticmethod
    def _semi_major_axis_from_mean_motion(no_kozai: float) -> float:
        # Mean motion is in radians/minute.
        n = no_kozai / 60.0
        return (GM_EARTH_KM3_S2 / (n * n)) ** (1.0 / 3.0)

    @staticmethod
    def _http_headers() -> dict[str, str]:
        return {
            "User-Agent": "OrbitWatch/1.0",
            "Accept": "text/plain, */*;q=0.9",
        }

    @staticmethod
    def _dedupe_urls(urls: list[str]) -> list[str]:
        seen: set[str] = set()
        deduped: list[str] = []
        for url in urls:
            key = url.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            deduped.append(key)
        return deduped

    def _bulk_tle_source_urls(self) -> list[str]:
        primary = settings.tle_source_url
        primary_lower = primary.lower()
        celestrak_fallbacks = [
            "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=3le",
            "https://celestrak.org/NORAD/elements/active.txt",
        ]
        if "celestrak.org" in primary_lower or "celestrak.com" in primary_lower:
            return self._dedupe_urls([primary, *celestrak_fallbacks])
        return [primary]

    async def _fetch_text_with_retries(self, url: str) -> str:
        retry_delay_seconds = self.HTTP_RETRY_DELAY_SECONDS
        async with httpx.AsyncClient(
            timeout=self.HTTP_TIMEOUT_SECONDS,
            headers=self._http_headers(),
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            for attempt in range(1, self.HTTP_MAX_RETRIES + 1):
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                    return response.text
                except httpx.HTTPStatusError as exc:
                    status = exc.response.status_code if exc.response is not None else None
                    if status in self.RETRYABLE_HTTP_STATUSES and attempt < self.HTTP_MAX_RETRIES:
                        await asyncio.sleep(retry_delay_seconds)
                        retry_delay_seconds *= 2
                        continue
                    raise TLESourceError(f"TLE source responded with HTTP {status}", status_code=status) from exc
                except httpx.RequestError as exc:
                    if attempt < self.HTTP_MAX_RETRIES:
                        await asyncio.sleep(retry_delay_seconds)
                        retry_delay_seconds *= 2
                        continue
                    raise TLESourceError(f"TLE source request failed: {exc}") from exc
        raise TLESourceError(f"TLE source request failed: {url}")
