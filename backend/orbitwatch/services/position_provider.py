"""Position Provider: SGP4 state vectors and geodetic sub-points.

The screening core only depends on the ``PositionProvider`` protocol; the
SGP4 implementation below is the one wired into the API and ingestion.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Protocol

import numpy as np
from astropy import units as u
from astropy.coordinates import ITRS, TEME, CartesianRepresentation
from astropy.time import Time
from astropy.utils import iers
from sgp4.api import Satrec, jday

from ..config import settings
from .tracked_object import OrbitalElements

logger = logging.getLogger(__name__)

SGP4_ERROR_MESSAGES = {
    1: "mean elements out of range",
    2: "mean motion less than 0.0",
    3: "perturbation elements out of range",
    4: "semi-latus rectum < 0.0",
    5: "epoch elements are sub-orbital",
    6: "satellite has decayed",
}


class PositionProviderError(RuntimeError):
    """The provider could not place an object at the requested epoch."""


@dataclass(frozen=True)
class GeodeticPosition:
    latitude_deg: float
    longitude_deg: float
    altitude_km: float


class PositionProvider(Protocol):
    def position_at(self, elements: OrbitalElements, epoch: datetime) -> np.ndarray:
        ...

    def geodetic_at(self, elements: OrbitalElements, epoch: datetime) -> GeodeticPosition:
        ...


@lru_cache(maxsize=2048)
def _satrec(line1: str, line2: str) -> Satrec:
    return Satrec.twoline2rv(line1, line2)


def _as_utc(epoch: datetime) -> datetime:
    if epoch.tzinfo is None:
        return epoch
    return epoch.astimezone(timezone.utc).replace(tzinfo=None)


class Sgp4PositionProvider:
    """Propagates TLEs with SGP4; positions are TEME [km]."""

    def __init__(self, iers_auto_download: bool | None = None):
        if iers_auto_download is None:
            iers_auto_download = settings.iers_auto_download
        iers.conf.auto_download = iers_auto_download

    def state_at(self, elements: OrbitalElements, epoch: datetime) -> tuple[np.ndarray, np.ndarray]:
        """Return (position [km], velocity [km/s]) in TEME.

        Raises:
            PositionProviderError: If the TLE cannot be parsed or SGP4 reports
                an error code for this epoch.
        """
        line1, line2 = elements
        try:
            sat = _satrec(line1, line2)
        except Exception as exc:
            raise PositionProviderError(f"Unparseable orbital elements: {exc}") from exc

        dt = _as_utc(epoch)
        jd, fr = jday(
            dt.year, dt.month, dt.day,
            dt.hour, dt.minute,
            dt.second + dt.microsecond / 1e6,
        )
        err, pos, vel = sat.sgp4(jd, fr)
        if err != 0:
            msg = SGP4_ERROR_MESSAGES.get(err, f"unknown error code {err}")
            raise PositionProviderError(f"SGP4 error code {err} at {dt.isoformat()}: {msg}")
        return np.array(pos), np.array(vel)

    def position_at(self, elements: OrbitalElements, epoch: datetime) -> np.ndarray:
        position, _ = self.state_at(elements, epoch)
        return position

    def geodetic_at(self, elements: OrbitalElements, epoch: datetime) -> GeodeticPosition:
        """Sub-satellite point on the WGS-84 ellipsoid at ``epoch``."""
        position = self.position_at(elements, epoch)
        try:
            obstime = Time(_as_utc(epoch), scale="utc")
            teme = TEME(CartesianRepresentation(position * u.km), obstime=obstime)
            location = teme.transform_to(ITRS(obstime=obstime)).earth_location
            geo = location.to_geodetic("WGS84")
        except Exception as exc:
            logger.warning("TEME to geodetic conversion failed at %s: %s", epoch, exc)
            raise PositionProviderError(f"Frame conversion failed: {exc}") from exc

        longitude = float(geo.lon.wrap_at(180 * u.deg).deg)
        return GeodeticPosition(
            latitude_deg=float(geo.lat.deg),
            longitude_deg=longitude,
            altitude_km=float(geo.height.to(u.km).value),
        )
