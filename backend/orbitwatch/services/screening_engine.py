from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter

import numpy as np

from ..config import settings
from .orbital_constants import (
    ALTITUDE_BAND_KM,
    EARTH_RADIUS_KM,
    RiskTier,
    classify_risk,
    round_half_away,
)
from .position_provider import PositionProvider
from .risk_scorer import RiskAssessment, score
from .tca_finder import refine_high_risk_pairs
from .tracked_object import ConjunctionPair, InputError, TrackedObject

logger = logging.getLogger(__name__)

classify = classify_risk


def geodetic_to_cartesian(latitude_deg, longitude_deg, altitude_km) -> np.ndarray:
    """Earth-centred cartesian coordinates [km] on a spherical Earth.

    Accepts scalars or equal-length arrays; returns shape (3,) or (N, 3).
    """
    lat = np.deg2rad(np.asarray(latitude_deg, dtype=float))
    lon = np.deg2rad(np.asarray(longitude_deg, dtype=float))
    r = EARTH_RADIUS_KM + np.asarray(altitude_km, dtype=float)
    x = r * np.cos(lat) * np.cos(lon)
    y = r * np.cos(lat) * np.sin(lon)
    z = r * np.sin(lat)
    return np.stack([x, y, z], axis=-1)


def _validate_snapshot(objects) -> list[TrackedObject]:
    if isinstance(objects, (str, bytes)) or not isinstance(objects, Sequence):
        raise InputError(f"Snapshot must be a sequence of tracked objects, got {type(objects).__name__}")
    seen: set[str] = set()
    for obj in objects:
        if not isinstance(obj, TrackedObject):
            raise InputError(f"Snapshot entries must be TrackedObject, got {type(obj).__name__}")
        if obj.object_id in seen:
            raise InputError(f"Duplicate object id in snapshot: {obj.object_id}")
        seen.add(obj.object_id)
    return list(objects)


def scan(objects: Sequence[TrackedObject], altitude_band_km: float = ALTITUDE_BAND_KM) -> list[ConjunctionPair]:
    """Find every reportable pair in a snapshot.

    Pairs whose altitudes differ by more than ``altitude_band_km`` are skipped
    before any trigonometry. Survivors get a straight-line distance between
    their instantaneous positions, rounded half away from zero to 2 decimals,
    and are kept when that distance maps to a risk tier. Output follows the
    snapshot order: (0, 1), (0, 2), ..., (1, 2), ...

    Raises:
        InputError: If ``objects`` is not a sequence of TrackedObject or
            repeats an identifier.
    """
    snapshot = _validate_snapshot(objects)
    n = len(snapshot)
    if n < 2:
        return []

    altitudes = np.array([obj.altitude_km for obj in snapshot], dtype=float)
    coords = geodetic_to_cartesian(
        [obj.latitude_deg for obj in snapshot],
        [obj.longitude_deg for obj in snapshot],
        altitudes,
    )

    pairs: list[ConjunctionPair] = []
    for i in range(n):
        for j in range(i + 1, n):
            if abs(altitudes[i] - altitudes[j]) > altitude_band_km:
                continue
            distance_km = round_half_away(float(np.linalg.norm(coords[i] - coords[j])), 2)
            risk = classify_risk(distance_km)
            if risk is None:
                continue
            pairs.append(
                ConjunctionPair(
                    first_id=snapshot[i].object_id,
                    first_name=snapshot[i].name,
                    second_id=snapshot[j].object_id,
                    second_name=snapshot[j].name,
                    distance_km=distance_km,
                    risk=risk,
                )
            )
    return pairs


@dataclass(frozen=True)
class ScreeningResult:
    epoch: datetime
    conjunctions: list[ConjunctionPair]
    assessment: RiskAssessment

    @property
    def high_risk(self) -> list[ConjunctionPair]:
        return [pair for pair in self.conjunctions if pair.risk is RiskTier.HIGH]


class ScreeningEngine:
    def __init__(
        self,
        provider: PositionProvider,
        altitude_band_km: float | None = None,
        horizon_minutes: int | None = None,
        step_minutes: int | None = None,
        max_workers: int | None = None,
        timeout_seconds: float | None = None,
    ):
        self.provider = provider
        self.altitude_band_km = altitude_band_km if altitude_band_km is not None else settings.altitude_band_km
        self.horizon_minutes = horizon_minutes if horizon_minutes is not None else settings.tca_horizon_minutes
        self.step_minutes = step_minutes if step_minutes is not None else settings.tca_step_minutes
        self.max_workers = max_workers if max_workers is not None else settings.refine_max_workers
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.refine_timeout_seconds

    def run(self, objects: Sequence[TrackedObject], epoch: datetime | None = None) -> ScreeningResult:
        """Scan a snapshot, refine its High pairs and score the population."""
        started_at = perf_counter()
        epoch = epoch or datetime.utcnow()

        conjunctions = scan(objects, altitude_band_km=self.altitude_band_km)
        scan_ms = (perf_counter() - started_at) * 1000.0

        conjunctions = refine_high_risk_pairs(
            conjunctions,
            objects,
            epoch,
            self.provider,
            max_workers=self.max_workers,
            timeout_seconds=self.timeout_seconds,
            horizon_minutes=self.horizon_minutes,
            step_minutes=self.step_minutes,
        )
        high_risk = [pair for pair in conjunctions if pair.risk is RiskTier.HIGH]
        assessment = score(objects, high_risk)

        logger.info(
            "Screening pass complete: objects=%s conjunctions=%s high_risk=%s score=%s label=%s scan_ms=%.1f total_ms=%.1f",
            len(objects),
            len(conjunctions),
            len(high_risk),
            assessment.score,
            assessment.label.value,
            scan_ms,
            (perf_counter() - started_at) * 1000.0,
        )
        return ScreeningResult(epoch=epoch, conjunctions=conjunctions, assessment=assessment)
