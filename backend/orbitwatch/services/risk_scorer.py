"""Population-wide Kessler score."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sized

from .orbital_constants import (
    KESSLER_CRITICAL_ABOVE,
    KESSLER_ELEVATED_ABOVE,
    KESSLER_SENSITIVITY,
    AssessmentLabel,
    RiskTier,
    round_half_away,
)
from .tracked_object import ConjunctionPair


@dataclass(frozen=True)
class RiskAssessment:
    population_size: int
    high_risk_pair_count: int
    score: int
    label: AssessmentLabel


def label_for(score_value: int) -> AssessmentLabel:
    if score_value > KESSLER_CRITICAL_ABOVE:
        return AssessmentLabel.CRITICAL
    if score_value > KESSLER_ELEVATED_ABOVE:
        return AssessmentLabel.ELEVATED
    return AssessmentLabel.NOMINAL


def kessler_score(population_size: int, high_risk_pair_count: int) -> RiskAssessment:
    """Score ``high_risk_pair_count / population_size`` on a saturating 0-100 scale.

    The ratio is multiplied by 10000 before clamping, so a single High pair in
    a population of 100 already saturates the score. An empty population
    scores 0 (Nominal).
    """
    if population_size <= 0:
        return RiskAssessment(0, high_risk_pair_count, 0, AssessmentLabel.NOMINAL)

    raw = round_half_away(high_risk_pair_count * KESSLER_SENSITIVITY / population_size, 0)
    value = int(min(100, max(0, raw)))
    return RiskAssessment(population_size, high_risk_pair_count, value, label_for(value))


def score(objects: Sized, high_risk_pairs: Iterable[ConjunctionPair]) -> RiskAssessment:
    """Kessler score for a snapshot; only pairs tiered High are counted."""
    high = sum(1 for pair in high_risk_pairs if pair.risk is RiskTier.HIGH)
    return kessler_score(len(objects), high)
