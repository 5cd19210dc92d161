from kaibrain.classifier import Archetype, classify
from kaibrain.metrics import MetricsSnapshot

BIASED = {"UP": 0.7, "RIGHT": 0.1, "DOWN": 0.1, "LEFT": 0.1}


def test_too_few_sessions_is_cautious():
    m = MetricsSnapshot(total_sessions=1, boundary_hugging=0.9, cyclic_pattern=True)
    assert classify(m) == Archetype.CAUTIOUS
    assert classify(MetricsSnapshot()) == Archetype.CAUTIOUS


def test_wall_hugger_wins_over_predictable():
    m = MetricsSnapshot(
        total_sessions=4,
        boundary_hugging=0.7,
        pattern_repetition=0.6,
        directional_bias=BIASED,
    )
    assert classify(m) == Archetype.WALL_HUGGER


def test_each_rule():
    assert classify(MetricsSnapshot(total_sessions=3, cyclic_pattern=True)) == Archetype.SPIRAL_ADDICT
    assert classify(MetricsSnapshot(total_sessions=3, score_trend=0.4, average_score=40)) == Archetype.IMPROVING
    assert classify(MetricsSnapshot(total_sessions=3, greed_ratio=0.8, total_deaths=3)) == Archetype.GREEDY
    assert classify(MetricsSnapshot(total_sessions=3, average_reaction_ms=900, comfort_zone=0.1)) == Archetype.ERRATIC
    assert classify(MetricsSnapshot(total_sessions=3, pattern_repetition=0.5, directional_bias=BIASED)) == Archetype.PREDICTABLE


def test_rules_need_every_condition():
    # improving needs a meaningful average too
    assert classify(MetricsSnapshot(total_sessions=3, score_trend=0.9, average_score=10)) == Archetype.CAUTIOUS
    # greedy needs a high death rate
    assert classify(MetricsSnapshot(total_sessions=4, greed_ratio=0.8, total_deaths=2)) == Archetype.CAUTIOUS


def test_spiral_beats_improving():
    m = MetricsSnapshot(total_sessions=5, cyclic_pattern=True, score_trend=0.8, average_score=60)
    assert classify(m) == Archetype.SPIRAL_ADDICT
