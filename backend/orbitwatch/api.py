from datetime import datetime
from functools import lru_cache
import logging
from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .db import get_session
from .schemas import (
    AddSatelliteRequest,
    AddSatelliteResponse,
    ConjunctionItem,
    DataResponse,
    KesslerScore,
    RemovalImpact,
    RemovedObject,
    RemoveSatelliteResponse,
    TimeToClosest,
    TrackedObjectItem,
)
from .services.position_provider import PositionProvider, PositionProviderError, Sgp4PositionProvider
from .services.registry import DuplicateObjectError, TrackedObjectRegistry
from .services.risk_scorer import RiskAssessment
from .services.screening_engine import ScreeningEngine, scan
from .services.tle_validator import validate_tle
from .services.tracked_object import (
    ConjunctionPair,
    InputError,
    TCAComputed,
    TCAError,
    TCAOutcome,
    TrackedObject,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

CUSTOM_OBJECT_SPEED_KMS = 7.5


@lru_cache(maxsize=1)
def get_position_provider() -> PositionProvider:
    return Sgp4PositionProvider()


def _api_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


def _object_item(obj: TrackedObject) -> TrackedObjectItem:
    line1, line2 = obj.orbital_elements if obj.orbital_elements else (None, None)
    return TrackedObjectItem(
        id=obj.object_id,
        name=obj.name,
        lat=obj.latitude_deg,
        lng=obj.longitude_deg,
        alt_km=obj.altitude_km,
        speed_kms=obj.speed_kms,
        type=obj.category,
        tle1=line1,
        tle2=line2,
    )


def _time_to_closest(outcome: TCAOutcome) -> TimeToClosest:
    if isinstance(outcome, TCAComputed):
        return TimeToClosest(
            status=outcome.status,
            duration=outcome.formatted,
            seconds=int(outcome.elapsed.total_seconds()),
        )
    if isinstance(outcome, TCAError):
        return TimeToClosest(status=outcome.status, reason=outcome.reason or None)
    return TimeToClosest(status=outcome.status)


def _conjunction_item(pair: ConjunctionPair) -> ConjunctionItem:
    return ConjunctionItem(
        sat1=pair.first_id,
        sat1Name=pair.first_name,
        sat2=pair.second_id,
        sat2Name=pair.second_name,
        distance_km=pair.distance_km,
        risk=pair.risk.value,
        time_to_closest=_time_to_closest(pair.time_to_closest),
    )


def _kessler(assessment: RiskAssessment) -> KesslerScore:
    return KesslerScore(
        population_size=assessment.population_size,
        high_risk_pair_count=assessment.high_risk_pair_count,
        score=assessment.score,
        label=assessment.label.value,
    )


@router.get("/data", response_model=DataResponse)
def data(db: Session = Depends(get_session), provider: PositionProvider = Depends(get_position_provider)):
    objects = TrackedObjectRegistry(db).snapshot()
    result = ScreeningEngine(provider).run(objects)
    return DataResponse(
        satellites=[_object_item(obj) for obj in objects],
        collisions=[_conjunction_item(pair) for pair in result.conjunctions],
        kessler=_kessler(result.assessment),
        last_updated=result.epoch,
    )


@router.get("/kessler", response_model=KesslerScore)
def kessler(db: Session = Depends(get_session), provider: PositionProvider = Depends(get_position_provider)):
    objects = TrackedObjectRegistry(db).snapshot()
    return _kessler(ScreeningEngine(provider).run(objects).assessment)


@router.post("/satellite/add", response_model=AddSatelliteResponse)
def add_satellite(
    payload: AddSatelliteRequest,
    db: Session = Depends(get_session),
    provider: PositionProvider = Depends(get_position_provider),
):
    endpoint_started = perf_counter()
    line1 = (payload.tle_line1 or "").strip()
    line2 = (payload.tle_line2 or "").strip()
    if not line1 or not line2:
        raise _api_error(400, "INVALID_TLE", "Both TLE lines required.")
    if not line1.startswith("1") or not line2.startswith("2"):
        raise _api_error(400, "INVALID_TLE", "Line 1 must start with '1', Line 2 with '2'.")

    validation = validate_tle(line1, line2)
    if not validation.valid:
        raise _api_error(400, "INVALID_TLE", "; ".join(validation.errors))

    now = datetime.utcnow()
    elements = (validation.line1, validation.line2)
    try:
        geo = provider.geodetic_at(elements, now)
        new_object = TrackedObject(
            object_id=validation.catalog_number,
            name=f"CUSTOM-{validation.catalog_number}",
            latitude_deg=round(geo.latitude_deg, 4),
            longitude_deg=round(geo.longitude_deg, 4),
            altitude_km=round(geo.altitude_km, 2),
            orbital_elements=elements,
            category="payload",
            speed_kms=CUSTOM_OBJECT_SPEED_KMS,
        )
    except (PositionProviderError, InputError) as exc:
        logger.warning("API /satellite/add propagation failed: catalog=%s %s", validation.catalog_number, exc)
        raise _api_error(400, "PROPAGATION_FAILED", "Could not compute position from TLE.") from exc

    registry = TrackedObjectRegistry(db)
    try:
        registry.add(new_object)
    except DuplicateObjectError as exc:
        raise _api_error(409, "DUPLICATE_OBJECT", str(exc)) from exc

    objects = registry.snapshot()
    result = ScreeningEngine(provider).run(objects, epoch=now)
    new_collisions = [pair for pair in result.conjunctions if pair.involves(new_object.object_id)]
    logger.info(
        "API /satellite/add finished: object_id=%s new_collisions=%s total_elapsed_s=%.1f",
        new_object.object_id,
        len(new_collisions),
        perf_counter() - endpoint_started,
    )
    return AddSatelliteResponse(
        added=_object_item(new_object),
        satellites=[_object_item(obj) for obj in objects],
        new_collisions=[_conjunction_item(pair) for pair in new_collisions],
        kessler=_kessler(result.assessment),
        last_updated=now,
    )


@router.delete("/satellite/{object_id}", response_model=RemoveSatelliteResponse)
def remove_satellite(
    object_id: str,
    db: Session = Depends(get_session),
    provider: PositionProvider = Depends(get_position_provider),
):
    registry = TrackedObjectRegistry(db)
    before = registry.snapshot()
    target = next((obj for obj in before if obj.object_id == object_id), None)
    if target is None:
        raise _api_error(404, "NOT_FOUND", f"No satellite with id {object_id} found.")

    resolved = sum(1 for pair in scan(before) if pair.involves(object_id))

    registry.remove(object_id)
    after = registry.snapshot()
    result = ScreeningEngine(provider).run(after)

    plural = "s" if resolved != 1 else ""
    return RemoveSatelliteResponse(
        removed=RemovedObject(id=target.object_id, name=target.name),
        impact=RemovalImpact(
            collisions_resolved=resolved,
            risk_delta="REDUCED" if resolved > 0 else "UNCHANGED",
            summary=f"Removing this object resolved {resolved} conjunction warning{plural}.",
        ),
        satellites=[_object_item(obj) for obj in after],
        collisions=[_conjunction_item(pair) for pair in result.conjunctions],
        kessler=_kessler(result.assessment),
        last_updated=result.epoch,
    )
