from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from orbitwatch.services.position_provider import PositionProviderError, Sgp4PositionProvider

ISS_LINE1 = "1 25544U 98067A   24045.51782528  .00011988  00000-0  21539-3 0  9992"
ISS_LINE2 = "2 25544  51.6418 283.1113 0005188 107.9657  12.7847 15.50095752440727"
ISS = (ISS_LINE1, ISS_LINE2)
ISS_EPOCH = datetime(2024, 2, 14, 12, 25, 40)


@pytest.fixture(scope="module")
def provider():
    return Sgp4PositionProvider(iers_auto_download=False)


class TestPositionAt:
    def test_leo_radius(self, provider):
        position = provider.position_at(ISS, ISS_EPOCH)
        assert position.shape == (3,)
        assert 6600.0 < float(np.linalg.norm(position)) < 6900.0

    def test_moves_between_epochs(self, provider):
        p0 = provider.position_at(ISS, ISS_EPOCH)
        p1 = provider.position_at(ISS, ISS_EPOCH + timedelta(minutes=1))
        # Roughly 7.7 km/s orbital speed
        assert 400.0 < float(np.linalg.norm(p1 - p0)) < 500.0

    def test_aware_epoch_matches_naive_utc(self, provider):
        naive = provider.position_at(ISS, ISS_EPOCH)
        aware = provider.position_at(ISS, ISS_EPOCH.replace(tzinfo=timezone.utc))
        assert np.allclose(naive, aware)

    def test_sgp4_error_code_raises(self, provider, monkeypatch):
        class DecayedSatrec:
            def sgp4(self, jd, fr):
                return 6, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)

        monkeypatch.setattr(
            "orbitwatch.services.position_provider._satrec", lambda line1, line2: DecayedSatrec()
        )
        with pytest.raises(PositionProviderError, match="decayed"):
            provider.position_at(ISS, ISS_EPOCH)


class TestGeodeticAt:
    def test_iss_sub_point(self, provider):
        geo = provider.geodetic_at(ISS, ISS_EPOCH)
        assert abs(geo.latitude_deg) <= 52.0
        assert -180.0 <= geo.longitude_deg <= 180.0
        assert 350.0 < geo.altitude_km < 450.0
