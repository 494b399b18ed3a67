import asyncio
import time
from datetime import datetime

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orbitwatch.config import settings
from orbitwatch.db import Base
from orbitwatch.services.ingest_service import IngestService, TLESourceError, category_for_name
from orbitwatch.services.position_provider import GeodeticPosition, PositionProviderError
from orbitwatch.services.registry import TrackedObjectRegistry

ISS_LINE1 = "1 25544U 98067A   24045.51782528  .00011988  00000-0  21539-3 0  9992"
ISS_LINE2 = "2 25544  51.6418 283.1113 0005188 107.9657  12.7847 15.50095752440727"
DEB_LINE1 = "1 90000U 24001A   26052.50000000  .00010000  00000-0  15000-3 0  9991"
DEB_LINE2 = "2 90000  51.6400 210.5000 0005000  75.0000 285.0000 15.50000000000017"

CATALOG_TEXT = f"""ISS (ZARYA)
{ISS_LINE1}
{ISS_LINE2}
COSMOS 2251 DEB
{DEB_LINE1}
{DEB_LINE2}
"""


class FixedGeodeticProvider:
    def __init__(self, failing: set[str] | None = None, delay_s: float = 0.0):
        self.failing = failing or set()
        self.delay_s = delay_s

    def position_at(self, elements, epoch):
        raise NotImplementedError

    def geodetic_at(self, elements, epoch):
        if self.delay_s:
            time.sleep(self.delay_s)
        if elements[0][2:7].strip() in self.failing:
            raise PositionProviderError("decayed")
        return GeodeticPosition(latitude_deg=12.345678, longitude_deg=-45.678912, altitude_km=420.12345)


@pytest.fixture()
def registry():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield TrackedObjectRegistry(session)
    finally:
        session.close()


def test_category_for_name():
    assert category_for_name("ISS (ZARYA)") == "payload"
    assert category_for_name("COSMOS 2251 DEB") == "debris"
    assert category_for_name("SL-16 R/B") == "debris"


def test_parse_skips_out_of_step_lines():
    service = IngestService(registry=None, provider=FixedGeodeticProvider())
    parsed = service._parse_tle_text("stray header\n" + CATALOG_TEXT)
    assert [record["object_id"] for record in parsed] == ["25544", "90000"]
    assert parsed[0]["name"] == "ISS (ZARYA)"
    assert 7.0 < parsed[0]["speed_kms"] < 8.0


def test_parse_strips_3le_name_prefix():
    service = IngestService(registry=None, provider=FixedGeodeticProvider())
    parsed = service._parse_tle_text(f"0 ISS (ZARYA)\n{ISS_LINE1}\n{ISS_LINE2}\n")
    assert parsed[0]["name"] == "ISS (ZARYA)"


def test_ingest_tle_text_upserts_objects(registry):
    service = IngestService(registry, FixedGeodeticProvider())
    count = service.ingest_tle_text(CATALOG_TEXT, epoch=datetime(2024, 2, 15))

    assert count == 2
    iss, deb = registry.snapshot()
    assert iss.object_id == "25544"
    assert iss.category == "payload"
    assert iss.latitude_deg == 12.3457
    assert iss.longitude_deg == -45.6789
    assert iss.altitude_km == 420.12
    assert iss.orbital_elements == (ISS_LINE1, ISS_LINE2)
    assert deb.category == "debris"


def test_ingest_skips_objects_provider_cannot_place(registry):
    service = IngestService(registry, FixedGeodeticProvider(failing={"90000"}))
    count = service.ingest_tle_text(CATALOG_TEXT, epoch=datetime(2024, 2, 15))

    assert count == 1
    assert [obj.object_id for obj in registry.snapshot()] == ["25544"]


def test_reingest_updates_in_place(registry):
    service = IngestService(registry, FixedGeodeticProvider())
    service.ingest_tle_text(CATALOG_TEXT)
    service.ingest_tle_text(CATALOG_TEXT)
    assert len(registry.snapshot()) == 2


def test_ingest_keeps_event_loop_responsive(registry, monkeypatch):
    service = IngestService(registry, FixedGeodeticProvider(delay_s=0.25))

    async def fake_download():
        return CATALOG_TEXT

    monkeypatch.setattr(service, "_download_tle_text", fake_download)

    async def run():
        gaps: list[float] = []

        async def ticker():
            last = time.perf_counter()
            while True:
                await asyncio.sleep(0.02)
                now = time.perf_counter()
                gaps.append(now - last)
                last = now

        tick_task = asyncio.create_task(ticker())
        count = await service.ingest_latest_tles(epoch=datetime(2024, 2, 15))
        tick_task.cancel()
        return count, gaps

    count, gaps = asyncio.run(run())
    assert count == 2
    assert len(gaps) > 5
    assert max(gaps) < 0.2


class TestDownload:
    CUSTOM_URL = "https://tle.example.test/catalog.txt"

    @pytest.fixture(autouse=True)
    def no_retry_delay(self, monkeypatch):
        monkeypatch.setattr(IngestService, "HTTP_RETRY_DELAY_SECONDS", 0.0)

    def _service(self, handler):
        return IngestService(registry=None, provider=FixedGeodeticProvider(), transport=httpx.MockTransport(handler))

    def test_retryable_status_then_success(self, monkeypatch):
        monkeypatch.setattr(settings, "tle_source_url", self.CUSTOM_URL)
        statuses = iter([503, 200])
        requests: list[str] = []

        def handler(request):
            requests.append(str(request.url))
            status = next(statuses)
            return httpx.Response(status, text=CATALOG_TEXT if status == 200 else "")

        text = asyncio.run(self._service(handler)._download_tle_text())
        assert text == CATALOG_TEXT
        assert requests == [self.CUSTOM_URL, self.CUSTOM_URL]

    def test_non_retryable_status_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "tle_source_url", self.CUSTOM_URL)
        requests: list[str] = []

        def handler(request):
            requests.append(str(request.url))
            return httpx.Response(404)

        with pytest.raises(TLESourceError) as excinfo:
            asyncio.run(self._service(handler)._download_tle_text())
        assert excinfo.value.status_code == 404
        assert len(requests) == 1

    def test_retries_exhausted_on_connection_errors(self, monkeypatch):
        monkeypatch.setattr(settings, "tle_source_url", self.CUSTOM_URL)
        requests: list[str] = []

        def handler(request):
            requests.append(str(request.url))
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TLESourceError, match="request failed"):
            asyncio.run(self._service(handler)._download_tle_text())
        assert len(requests) == IngestService.HTTP_MAX_RETRIES

    def test_celestrak_fallback_used_when_primary_fails(self, monkeypatch):
        primary = "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=tle"
        monkeypatch.setattr(settings, "tle_source_url", primary)
        requests: list[str] = []

        def handler(request):
            requests.append(str(request.url))
            if "FORMAT=3le" in str(request.url):
                return httpx.Response(200, text=CATALOG_TEXT)
            return httpx.Response(404)

        text = asyncio.run(self._service(handler)._download_tle_text())
        assert text == CATALOG_TEXT
        assert requests == [primary, "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=3le"]

    def test_empty_payload_everywhere_raises(self, monkeypatch):
        monkeypatch.setattr(
            settings, "tle_source_url", "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=tle"
        )

        def handler(request):
            return httpx.Response(200, text="  \n")

        with pytest.raises(TLESourceError, match="empty payload") as excinfo:
            asyncio.run(self._service(handler)._download_tle_text())
        assert excinfo.value.status_code is None

    def test_ingest_latest_tles_stores_downloaded_catalog(self, registry, monkeypatch):
        monkeypatch.setattr(settings, "tle_source_url", self.CUSTOM_URL)
        service = IngestService(
            registry,
            FixedGeodeticProvider(),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=CATALOG_TEXT)),
        )

        count = asyncio.run(service.ingest_latest_tles(epoch=datetime(2024, 2, 15)))
        assert count == 2
        assert [obj.object_id for obj in registry.snapshot()] == ["25544", "90000"]
