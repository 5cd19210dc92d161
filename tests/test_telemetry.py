from kaibrain.telemetry import TelemetryRecorder
from kaibrain.utils import is_cyclic, turn_angle


def test_move_without_session_is_ignored(clock):
    rec = TelemetryRecorder(clock)
    assert rec.record_move("UP", (5, 5), 1, (1, 1), 10, 10) is None
    assert rec.counters.direction_counts["UP"] == 0


def test_boundary_distance_and_flag(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    edge = rec.record_move("LEFT", (0, 5), 1, (9, 9), 10, 10)
    assert edge.boundary_distance == 0
    assert edge.near_boundary
    inner = rec.record_move("LEFT", (5, 5), 1, (9, 9), 10, 10)
    assert inner.boundary_distance == 4
    assert not inner.near_boundary
    assert inner.distance_to_objective == 8


def test_turn_angles_and_reversal(clock):
    assert turn_angle("UP", "RIGHT") == 90
    assert turn_angle("LEFT", "UP") == 90
    assert turn_angle("UP", "DOWN") == 180
    assert turn_angle(None, "DOWN") == 0

    rec = TelemetryRecorder(clock)
    rec.start_session()
    rec.record_move("RIGHT", (5, 5), 3, (1, 1), 10, 10)
    # a long body cannot fold back
    assert rec.record_move("LEFT", (4, 5), 3, (1, 1), 10, 10) is None
    m = rec.record_move("DOWN", (5, 6), 3, (1, 1), 10, 10)
    assert m.turn_angle == 90

    rec.start_session()
    rec.record_move("RIGHT", (5, 5), 1, (1, 1), 10, 10)
    assert rec.record_move("LEFT", (4, 5), 1, (1, 1), 10, 10).turn_angle == 180


def test_invalid_moves_are_ignored(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    assert rec.record_move("NORTH", (5, 5), 1, (1, 1), 10, 10) is None
    assert rec.record_move("UP", (10, 5), 1, (1, 1), 10, 10) is None
    assert rec.record_move("UP", (-1, 5), 1, (1, 1), 10, 10) is None
    assert rec.state().current_moves == ()


def test_reaction_latency(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    first = rec.record_move("UP", (5, 5), 1, (1, 1), 10, 10)
    clock.advance(150)
    second = rec.record_move("UP", (5, 4), 1, (1, 1), 10, 10)
    assert first.reaction_ms == 0.0
    assert second.reaction_ms == 150.0


def test_time_counters(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    rec.record_move("UP", (0, 5), 1, (1, 1), 10, 10)
    clock.advance(100)
    rec.record_move("UP", (0, 4), 1, (1, 1), 10, 10)
    clock.advance(100)
    rec.record_move("RIGHT", (5, 5), 1, (1, 1), 10, 10)
    assert rec.counters.alive_ms == 200.0
    assert rec.counters.near_boundary_ms == 100.0
    assert rec.counters.direction_counts["UP"] == 2
    assert rec.counters.direction_counts["RIGHT"] == 1


def test_recent_direction_ring_is_capped(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    for _ in range(25):
        clock.advance(50)
        rec.record_move("UP", (5, 5), 1, (1, 1), 10, 10)
    assert len(rec.state().recent_directions) == 20


def test_cyclic_sequences():
    assert is_cyclic(["UP", "RIGHT", "DOWN", "LEFT", "UP", "RIGHT", "DOWN", "LEFT"])
    assert is_cyclic(["UP", "LEFT", "DOWN", "RIGHT", "UP", "LEFT", "DOWN", "RIGHT"])
    assert not is_cyclic(["UP"] * 8)


def test_lap_detection_counter(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    for d in ["UP", "RIGHT", "DOWN", "LEFT", "UP", "RIGHT", "DOWN", "LEFT"]:
        clock.advance(100)
        rec.record_move(d, (5, 5), 1, (1, 1), 10, 10)
    assert rec.counters.cyclic_detections == 1


def test_rolling_window_evicts_oldest(clock):
    rec = TelemetryRecorder(clock, window=3)
    ids = []
    for i in range(5):
        ids.append(rec.start_session())
        clock.advance(1000)
        rec.end_session(i * 10, "wall")
    assert [s.session_id for s in rec.sessions] == ids[-3:]
    assert rec.end_session(0, None) is None


def test_restart_discards_unfinished_session(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    rec.record_move("UP", (5, 5), 1, (1, 1), 10, 10)
    rec.start_session()
    assert rec.sessions == []
    assert rec.state().current_moves == ()


def test_export_restore(clock):
    rec = TelemetryRecorder(clock)
    rec.start_session()
    rec.record_move("UP", (5, 5), 2, (1, 1), 10, 10)
    rec.record_interference("decoy", "comfort", 1.7, "cautious")
    clock.advance(500)
    rec.end_session(10, "self")

    other = TelemetryRecorder(clock)
    other.restore(rec.export())
    assert other.sessions[0].final_score == 10
    assert other.sessions[0].moves[0].length == 2
    assert other.sessions[0].escalation_events[0].severity == 1.0
    assert other.counters.direction_counts["UP"] == 1
