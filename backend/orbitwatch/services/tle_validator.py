"""TLE validation using format checks and SGP4 parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sgp4.api import Satrec


@dataclass
class TLEValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    sat: Satrec | None = None
    line1: str = ""
    line2: str = ""
    catalog_number: str = ""
    inclination_deg: float = 0.0
    mean_motion: float = 0.0
    epoch: datetime | None = None


def _tle_checksum(line: str) -> int:
    """Compute TLE modulo-10 checksum for columns 1-68."""
    total = 0
    for ch in line[:68]:
        if ch.isdigit():
            total += int(ch)
        elif ch == "-":
            total += 1
    return total % 10


def _fix_checksum(line: str) -> str:
    return line[:68] + str(_tle_checksum(line))


def _tle_epoch(line1: str) -> datetime:
    epoch_year = int(line1[18:20])
    epoch_day = float(line1[20:32])
    full_year = 2000 + epoch_year if epoch_year < 57 else 1900 + epoch_year
    return datetime(full_year, 1, 1) + timedelta(days=epoch_day - 1)


def validate_tle(line1: str, line2: str) -> TLEValidationResult:
    """Validate a TLE pair and return the parsed record or the reasons it was rejected.

    Checksums are recomputed rather than checked, since hand-entered element
    sets rarely carry a correct one.
    """
    line1 = (line1 or "").strip()
    line2 = (line2 or "").strip()
    errors: list[str] = []

    if len(line1) < 69:
        errors.append(f"TLE line 1 too short: expected 69 chars, got {len(line1)}")
    if len(line2) < 69:
        errors.append(f"TLE line 2 too short: expected 69 chars, got {len(line2)}")
    if errors:
        return TLEValidationResult(valid=False, errors=errors)

    if line1[0] != "1":
        errors.append("TLE line 1 must start with '1'")
    if line2[0] != "2":
        errors.append("TLE line 2 must start with '2'")
    if errors:
        return TLEValidationResult(valid=False, errors=errors)

    line1 = _fix_checksum(line1)
    line2 = _fix_checksum(line2)

    try:
        cat1 = int(line1[2:7])
        cat2 = int(line2[2:7])
        if cat1 != cat2:
            errors.append(f"Catalog number mismatch: line 1 has {cat1}, line 2 has {cat2}")
    except ValueError:
        errors.append("Cannot parse catalog number from TLE lines")
    if errors:
        return TLEValidationResult(valid=False, errors=errors)

    try:
        sat = Satrec.twoline2rv(line1, line2)
        epoch = _tle_epoch(line1)
        inclination_deg = float(line2[8:16])
        mean_motion = float(line2[52:63])
    except Exception as exc:
        errors.append(f"SGP4 parsing failed: {exc}")
        return TLEValidationResult(valid=False, errors=errors)

    return TLEValidationResult(
        valid=True,
        sat=sat,
        line1=line1,
        line2=line2,
        catalog_number=str(sat.satnum),
        inclination_deg=inclination_deg,
        mean_motion=mean_motion,
        epoch=epoch,
    )
