"""Constants and tiering rules for conjunction screening.

Units: km, seconds, degrees unless otherwise noted.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

# --- Earth model for the instantaneous scan ---
EARTH_RADIUS_KM = 6371.0  # Mean spherical radius [km]

# --- Screening thresholds ---
ALTITUDE_BAND_KM = 50.0  # Pairs further apart in altitude are never compared
HIGH_RISK_MAX_KM = 5.0
MEDIUM_RISK_MAX_KM = 25.0
LOW_RISK_MAX_KM = 50.0

# --- Closest-approach search ---
TCA_HORIZON_MINUTES = 90
TCA_STEP_MINUTES = 1

# --- Kessler score ---
KESSLER_SENSITIVITY = 10000
KESSLER_CRITICAL_ABOVE = 70
KESSLER_ELEVATED_ABOVE = 40


class RiskTier(Enum):
    """Distance-based conjunction tier."""
    HIGH = "High"      # distance <= 5 km
    MEDIUM = "Medium"  # 5 < distance <= 25 km
    LOW = "Low"        # 25 < distance <= 50 km


class AssessmentLabel(Enum):
    """Population-wide label attached to a Kessler score."""
    NOMINAL = "Nominal"
    ELEVATED = "Elevated"
    CRITICAL = "Critical"


def classify_risk(distance_km: float) -> RiskTier | None:
    """Map a separation distance to its risk tier.

    Thresholds are inclusive on the upper bound, so a boundary value lands in
    the stricter tier. Returns None for pairs too far apart to report.
    """
    if distance_km <= HIGH_RISK_MAX_KM:
        return RiskTier.HIGH
    if distance_km <= MEDIUM_RISK_MAX_KM:
        return RiskTier.MEDIUM
    if distance_km <= LOW_RISK_MAX_KM:
        return RiskTier.LOW
    return None


def round_half_away(value: float, places: int = 2) -> float:
    """Round to ``places`` decimals, ties going away from zero.

    Goes through the shortest repr of the float so that 0.125 rounds to 0.13
    instead of following the binary expansion.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))
