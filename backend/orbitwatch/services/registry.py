from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import TrackedObjectRecord
from .tracked_object import TrackedObject

logger = logging.getLogger(__name__)


class DuplicateObjectError(Exception):
    def __init__(self, object_id: str):
        super().__init__(f"Object {object_id} is already tracked")
        self.object_id = object_id


def to_tracked_object(record: TrackedObjectRecord) -> TrackedObject:
    elements = (record.line1, record.line2) if record.line1 and record.line2 else None
    return TrackedObject(
        object_id=record.object_id,
        name=record.name,
        latitude_deg=record.latitude_deg,
        longitude_deg=record.longitude_deg,
        altitude_km=record.altitude_km,
        orbital_elements=elements,
        category=record.category,
        speed_kms=record.speed_kms,
    )


def _apply(record: TrackedObjectRecord, obj: TrackedObject) -> None:
    record.name = obj.name
    record.latitude_deg = obj.latitude_deg
    record.longitude_deg = obj.longitude_deg
    record.altitude_km = obj.altitude_km
    record.speed_kms = obj.speed_kms
    record.category = obj.category
    record.line1 = obj.orbital_elements[0] if obj.orbital_elements else None
    record.line2 = obj.orbital_elements[1] if obj.orbital_elements else None


class TrackedObjectRegistry:
    """Population storage. Screening only ever sees ``snapshot()`` copies."""

    def __init__(self, db: Session):
        self.db = db

    def _record(self, object_id: str) -> TrackedObjectRecord | None:
        return self.db.execute(
            select(TrackedObjectRecord).where(TrackedObjectRecord.object_id == object_id)
        ).scalar_one_or_none()

    def snapshot(self) -> list[TrackedObject]:
        records = self.db.execute(
            select(TrackedObjectRecord).order_by(TrackedObjectRecord.id)
        ).scalars().all()
        return [to_tracked_object(record) for record in records]

    def get(self, object_id: str) -> TrackedObject | None:
        record = self._record(object_id)
        return to_tracked_object(record) if record else None

    def add(self, obj: TrackedObject) -> TrackedObject:
        if self._record(obj.object_id) is not None:
            raise DuplicateObjectError(obj.object_id)
        record = TrackedObjectRecord(object_id=obj.object_id)
        _apply(record, obj)
        self.db.add(record)
        self.db.commit()
        logger.info("Tracked object added: object_id=%s name=%s", obj.object_id, obj.name)
        return obj

    def upsert_many(self, objects: list[TrackedObject]) -> int:
        if not objects:
            return 0
        existing = {
            record.object_id: record
            for record in self.db.execute(
                select(TrackedObjectRecord).where(
                    TrackedObjectRecord.object_id.in_([obj.object_id for obj in objects])
                )
            ).scalars().all()
        }
        now = datetime.utcnow()
        for obj in objects:
            record = existing.get(obj.object_id)
            if record is None:
                record = TrackedObjectRecord(object_id=obj.object_id)
                self.db.add(record)
                existing[obj.object_id] = record
            _apply(record, obj)
            record.updated_at = now
        self.db.commit()
        return len(objects)

    def remove(self, object_id: str) -> TrackedObject | None:
        record = self._record(object_id)
        if record is None:
            return None
        removed = to_tracked_object(record)
        self.db.delete(record)
        self.db.commit()
        logger.info("Tracked object removed: object_id=%s", object_id)
        return removed
