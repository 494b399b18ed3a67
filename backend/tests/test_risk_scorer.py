from orbitwatch.services.orbital_constants import AssessmentLabel, RiskTier
from orbitwatch.services.risk_scorer import kessler_score, label_for, score
from orbitwatch.services.tracked_object import ConjunctionPair


def _pair(risk: RiskTier) -> ConjunctionPair:
    return ConjunctionPair(
        first_id="a", first_name="A", second_id="b", second_name="B", distance_km=1.0, risk=risk,
    )


def test_small_population_saturates():
    result = kessler_score(10, 1)
    assert result.score == 100
    assert result.label is AssessmentLabel.CRITICAL


def test_large_population_stays_nominal():
    result = kessler_score(1000, 1)
    assert result.score == 10
    assert result.label is AssessmentLabel.NOMINAL


def test_zero_population_is_nominal():
    result = score([], [])
    assert result.population_size == 0
    assert result.high_risk_pair_count == 0
    assert result.score == 0
    assert result.label is AssessmentLabel.NOMINAL


def test_label_boundaries():
    assert label_for(40) is AssessmentLabel.NOMINAL
    assert label_for(41) is AssessmentLabel.ELEVATED
    assert label_for(70) is AssessmentLabel.ELEVATED
    assert label_for(71) is AssessmentLabel.CRITICAL
    assert kessler_score(1000, 5).label is AssessmentLabel.ELEVATED
    assert kessler_score(1000, 8).label is AssessmentLabel.CRITICAL


def test_half_rounds_up():
    assert kessler_score(20000, 1).score == 1
    assert kessler_score(40000, 1).score == 0


def test_only_high_pairs_count():
    objects = list(range(1000))
    pairs = [_pair(RiskTier.HIGH), _pair(RiskTier.MEDIUM), _pair(RiskTier.HIGH), _pair(RiskTier.LOW)]
    result = score(objects, pairs)
    assert result.high_risk_pair_count == 2
    assert result.score == 20
    assert result.label is AssessmentLabel.NOMINAL
