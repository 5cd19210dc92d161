import random

from kaibrain.classifier import Archetype
from kaibrain.commentary import (
    ALTERNATE_LINES,
    COOLDOWN_MAX_MS,
    COOLDOWN_MIN_MS,
    DEATH_LINES,
    DECOY_REACTION_LINES,
    ESCALATION_DEATH_LINES,
    NEW_SESSION_LINE,
    START_LINES,
    CommentaryDispatcher,
    CommentaryGenerator,
    Priority,
    Trigger,
)
from kaibrain.metrics import MetricsSnapshot

M = MetricsSnapshot()


class EchoGenerator(CommentaryGenerator):
    def line_for(self, trigger, archetype, m):
        return "► SAME"


def _dispatcher(seed=0):
    return CommentaryDispatcher(random.Random(seed))


def test_normal_waits_for_cooldown():
    d = _dispatcher()
    first = d.dispatch([Trigger("speed")], 0.0, Archetype.CAUTIOUS, M)
    assert len(first) == 1
    assert COOLDOWN_MIN_MS <= d.cooldown_until <= COOLDOWN_MAX_MS
    assert d.dispatch([Trigger("obstacle")], 100.0, Archetype.CAUTIOUS, M) == []
    assert d.dispatch([Trigger("taunt", Priority.LOW)], 2999.0, Archetype.CAUTIOUS, M) == []
    assert len(d.dispatch([Trigger("obstacle")], COOLDOWN_MAX_MS, Archetype.CAUTIOUS, M)) == 1


def test_high_priority_bypasses_cooldown():
    d = _dispatcher()
    d.dispatch([Trigger("speed")], 0.0, Archetype.CAUTIOUS, M)
    until = d.cooldown_until
    events = d.dispatch([Trigger("escalation", Priority.HIGH, {"level": 2})], 10.0, Archetype.CAUTIOUS, M)
    assert len(events) == 1
    assert events[0].priority == Priority.HIGH
    # high priority does not restart the cooldown
    assert d.cooldown_until == until


def test_one_event_per_category():
    d = _dispatcher()
    events = d.dispatch(
        [Trigger("decoy", context={"reason": "bait"}), Trigger("decoy", context={"reason": "comfort"})],
        0.0,
        Archetype.CAUTIOUS,
        M,
    )
    assert len(events) == 1


def test_priority_then_registration_order():
    d = _dispatcher()
    triggers = [
        Trigger("taunt", Priority.LOW),
        Trigger("obstacle"),
        Trigger("speed", context={"multiplier": 1.6}),
        Trigger("escalation", Priority.HIGH, {"level": 1}),
        Trigger("system", Priority.HIGH, {"message": "► WIN"}),
    ]
    events = d.dispatch(triggers, 0.0, Archetype.CAUTIOUS, M)
    # both highs, then the first normal; the rest fall under the new cooldown
    assert [e.source for e in events] == ["system", "escalation", "interference"]
    assert events[0].message == "► WIN"
    assert [e.priority for e in events] == [Priority.HIGH, Priority.HIGH, Priority.NORMAL]


def test_repeat_falls_back_to_alternate_pool():
    d = CommentaryDispatcher(random.Random(1), EchoGenerator(random.Random(1)))
    a = d.dispatch([Trigger("obstacle", Priority.HIGH)], 0.0, Archetype.CAUTIOUS, M)[0]
    b = d.dispatch([Trigger("obstacle", Priority.HIGH)], 1.0, Archetype.CAUTIOUS, M)[0]
    assert a.message == "► SAME"
    assert b.message != a.message
    assert b.message in ALTERNATE_LINES["obstacle"]


def test_immediate_ignores_cooldown():
    d = _dispatcher()
    d.dispatch([Trigger("speed")], 0.0, Archetype.CAUTIOUS, M)
    until = d.cooldown_until
    ev = d.immediate(Trigger("decoy_reaction"), Archetype.CAUTIOUS, M)
    assert ev.message in DECOY_REACTION_LINES or ev.message in ALTERNATE_LINES["decoy_reaction"]
    assert d.cooldown_until == until


def test_start_lines():
    gen = CommentaryGenerator(random.Random(2))
    assert gen.start_line(Archetype.GREEDY, 0) == NEW_SESSION_LINE
    assert gen.start_line(Archetype.GREEDY, 4) in START_LINES[Archetype.GREEDY]


def test_death_lines_follow_escalation():
    gen = CommentaryGenerator(random.Random(2))
    assert gen.death_line("wall", 40, 1, 100) in DEATH_LINES["wall"]
    assert gen.death_line("wall", 40, 2, 100) in ESCALATION_DEATH_LINES
    assert "ZERO" in gen.death_line(None, 0, 0, 0)


def test_score_notes():
    gen = CommentaryGenerator(random.Random(2))
    assert gen.score_note(0, 0).startswith("Score: zero")
    assert "participating" in gen.score_note(20, 50)
    assert "best" in gen.score_note(80, 80)
    assert "average" in gen.score_note(40, 80)


def test_reset_clears_state():
    d = _dispatcher()
    d.dispatch([Trigger("speed")], 0.0, Archetype.CAUTIOUS, M)
    d.reset()
    assert d.last_message is None
    assert not d.cooling_down(1.0)
