from kaibrain.escalation import EscalationLevel, EscalationState, advance, initial_state


def test_time_threshold_edge():
    s = initial_state(0.0)
    assert advance(s, 10.0, 5, 1.0).level == EscalationLevel.SUBTLE_INTERFERENCE
    assert advance(s, 9.9, 5, 1.0).level == EscalationLevel.OBSERVATION


def test_length_threshold():
    s = initial_state(0.0)
    assert advance(s, 0.0, 6, 1.0).level == 1
    s1 = EscalationState(level=EscalationLevel.SUBTLE_INTERFERENCE)
    assert advance(s1, 0.0, 11, 1.0).level == 2
    s2 = EscalationState(level=EscalationLevel.ACTIVE_MANIPULATION)
    assert advance(s2, 0.0, 16, 1.0).level == 3


def test_one_level_per_evaluation():
    s = initial_state(0.0)
    levels = []
    for t in range(5):
        s = advance(s, 45.0, 30, float(t))
        levels.append(int(s.level))
    assert levels == [1, 2, 3, 3, 3]


def test_never_decreases():
    s = EscalationState(level=EscalationLevel.ACTIVE_MANIPULATION, entered_at=5.0)
    after = advance(s, 0.0, 1, 10.0)
    assert after.level == EscalationLevel.ACTIVE_MANIPULATION
    assert after.entered_at == 5.0


def test_entered_at_stamped():
    s = advance(initial_state(0.0), 12.0, 1, 12_000.0)
    assert s.entered_at == 12_000.0
