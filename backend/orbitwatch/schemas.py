from datetime import datetime

from pydantic import BaseModel


class TrackedObjectItem(BaseModel):
    id: str
    name: str
    lat: float
    lng: float
    alt_km: float
    speed_kms: float | None = None
    type: str | None = None
    tle1: str | None = None
    tle2: str | None = None


class TimeToClosest(BaseModel):
    status: str
    duration: str | None = None
    seconds: int | None = None
    reason: str | None = None


class ConjunctionItem(BaseModel):
    sat1: str
    sat1Name: str
    sat2: str
    sat2Name: str
    distance_km: float
    risk: str
    time_to_closest: TimeToClosest


class KesslerScore(BaseModel):
    population_size: int
    high_risk_pair_count: int
    score: int
    label: str


class DataResponse(BaseModel):
    satellites: list[TrackedObjectItem]
    collisions: list[ConjunctionItem]
    kessler: KesslerScore
    last_updated: datetime


class AddSatelliteRequest(BaseModel):
    tle_line1: str | None = None
    tle_line2: str | None = None


class AddSatelliteResponse(BaseModel):
    added: TrackedObjectItem
    satellites: list[TrackedObjectItem]
    new_collisions: list[ConjunctionItem]
    kessler: KesslerScore
    last_updated: datetime


class RemovedObject(BaseModel):
    id: str
    name: str


class RemovalImpact(BaseModel):
    collisions_resolved: int
    risk_delta: str
    summary: str


class RemoveSatelliteResponse(BaseModel):
    removed: RemovedObject
    impact: RemovalImpact
    satellites: list[TrackedObjectItem]
    collisions: list[ConjunctionItem]
    kessler: KesslerScore
    last_updated: datetime
