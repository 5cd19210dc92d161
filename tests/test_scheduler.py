from kaibrain.scheduler import Scheduler


def test_runs_when_due(clock):
    sched = Scheduler(clock)
    fired = []
    sched.call_later(1000, lambda: fired.append("a"), "s1")
    sched.call_later(500, lambda: fired.append("b"), "s1")
    assert sched.run_due() == 0
    clock.advance(600)
    assert sched.run_due() == 1
    clock.advance(600)
    assert sched.run_due() == 1
    assert fired == ["b", "a"]
    assert sched.pending() == 0


def test_cancel_session_drops_only_that_session(clock):
    sched = Scheduler(clock)
    fired = []
    sched.call_later(100, lambda: fired.append("old"), "s1")
    sched.call_later(100, lambda: fired.append("new"), "s2")
    assert sched.cancel_session("s1") == 1
    assert sched.pending("s1") == 0
    assert sched.pending("s2") == 1
    clock.advance(200)
    sched.run_due()
    assert fired == ["new"]


def test_cancel_handle(clock):
    sched = Scheduler(clock)
    fired = []
    h = sched.call_later(100, lambda: fired.append(1), "s1")
    assert sched.cancel(h)
    assert not sched.cancel(h)
    clock.advance(500)
    assert sched.run_due() == 0
    assert fired == []
