"""Snapshot types shared by the screening services."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, ClassVar, Mapping, Optional, Union

from .orbital_constants import RiskTier


class InputError(ValueError):
    """Raised when a snapshot or one of its objects cannot be screened."""


OrbitalElements = tuple[str, str]


@dataclass(frozen=True)
class TrackedObject:
    """One object in a population snapshot.

    Attributes:
        object_id: Identifier, unique within a snapshot.
        name: Display name.
        latitude_deg: Geodetic latitude [deg], in [-90, 90].
        longitude_deg: Geodetic longitude [deg], in [-180, 180].
        altitude_km: Height above the reference sphere [km], >= 0.
        orbital_elements: Raw TLE line pair, if known.
        category: Free-form tag such as "payload" or "debris".
        speed_kms: Approximate orbital speed [km/s], informational only.
    """
    object_id: str
    name: str
    latitude_deg: float
    longitude_deg: float
    altitude_km: float
    orbital_elements: Optional[OrbitalElements] = None
    category: Optional[str] = None
    speed_kms: Optional[float] = None

    def __post_init__(self) -> None:
        _require_range(self.object_id, "latitude_deg", self.latitude_deg, -90.0, 90.0)
        _require_range(self.object_id, "longitude_deg", self.longitude_deg, -180.0, 180.0)
        _require_range(self.object_id, "altitude_km", self.altitude_km, 0.0, math.inf)

    @property
    def has_elements(self) -> bool:
        return bool(
            self.orbital_elements
            and self.orbital_elements[0]
            and self.orbital_elements[1]
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrackedObject":
        """Build an object from a loosely shaped record.

        Accepts the short keys used by the dashboard feed (``lat``, ``lng``,
        ``alt_km``, ``tle1``, ``tle2``, ``type``) as well as the field names.
        """
        if not isinstance(data, Mapping):
            raise InputError(f"Tracked object must be a mapping, got {type(data).__name__}")

        object_id = data.get("object_id", data.get("id"))
        if object_id is None or str(object_id).strip() == "":
            raise InputError("Tracked object is missing its identifier")
        object_id = str(object_id)

        line1 = data.get("tle1", data.get("line1"))
        line2 = data.get("tle2", data.get("line2"))
        elements = data.get("orbital_elements")
        if elements is None and line1 and line2:
            elements = (str(line1), str(line2))

        return cls(
            object_id=object_id,
            name=str(data.get("name") or object_id),
            latitude_deg=_coordinate(data, object_id, "latitude_deg", "lat"),
            longitude_deg=_coordinate(data, object_id, "longitude_deg", "lng"),
            altitude_km=_coordinate(data, object_id, "altitude_km", "alt_km"),
            orbital_elements=tuple(elements) if elements else None,
            category=data.get("category", data.get("type")),
            speed_kms=data.get("speed_kms"),
        )


def _coordinate(data: Mapping[str, Any], object_id: str, key: str, short_key: str) -> float:
    raw = data.get(key, data.get(short_key))
    if raw is None:
        raise InputError(f"Tracked object {object_id} is missing {key}")
    if isinstance(raw, bool):
        raise InputError(f"Tracked object {object_id} has non-numeric {key}: {raw!r}")
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise InputError(f"Tracked object {object_id} has non-numeric {key}: {raw!r}") from exc


def _require_range(object_id: str, key: str, value: Any, low: float, high: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(f"Tracked object {object_id} has non-numeric {key}: {value!r}")
    if not math.isfinite(value):
        raise InputError(f"Tracked object {object_id} has non-finite {key}")
    if value < low or value > high:
        raise InputError(f"Tracked object {object_id} has {key}={value} outside [{low}, {high}]")


# --- Time-of-closest-approach outcomes ---


@dataclass(frozen=True)
class TCAComputed:
    """Minimum separation found ``elapsed`` after the reference epoch."""
    status: ClassVar[str] = "computed"
    elapsed: timedelta

    @property
    def formatted(self) -> str:
        total = int(self.elapsed.total_seconds())
        hours, rem = divmod(total, 3600)
        minutes, seconds = divmod(rem, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


@dataclass(frozen=True)
class TCAUnavailable:
    """One of the objects has no orbital elements."""
    status: ClassVar[str] = "unavailable"


@dataclass(frozen=True)
class TCAError:
    """The search was aborted: provider failure, timeout or internal fault."""
    status: ClassVar[str] = "error"
    reason: str = ""


@dataclass(frozen=True)
class TCANotYetComputed:
    """Refinement was not attempted for this pair."""
    status: ClassVar[str] = "not_yet_computed"


TCAOutcome = Union[TCAComputed, TCAUnavailable, TCAError, TCANotYetComputed]


@dataclass(frozen=True)
class ConjunctionPair:
    """A reportable close approach between two objects of one snapshot.

    ``first_id`` always refers to the object that comes earlier in the
    snapshot.
    """
    first_id: str
    first_name: str
    second_id: str
    second_name: str
    distance_km: float
    risk: RiskTier
    time_to_closest: TCAOutcome = field(default_factory=TCANotYetComputed)

    def involves(self, object_id: str) -> bool:
        return object_id in (self.first_id, self.second_id)
