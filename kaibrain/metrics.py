from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from .telemetry import MoveRecord, Session, TelemetryState
from .utils import DIRECTIONS, clamp, direction_code, is_cyclic, mean_or

RECENT_SESSIONS = 5
COMFORT_REFERENCE = 10.0  # cells
CYCLIC_SESSION_SHARE = 0.3
REACTION_CEILING_MS = 2000.0


@dataclass(frozen=True)
class MetricsSnapshot:
    boundary_hugging: float = 0.0
    directional_bias: Mapping[str, float] = field(default_factory=lambda: {d: 0.0 for d in DIRECTIONS})
    cyclic_pattern: bool = False
    recent_cycle: bool = False
    average_reaction_ms: float = 0.0
    greed_ratio: float = 0.0
    pattern_repetition: float = 0.0
    comfort_zone: float = 0.0
    risk_tolerance: float = 0.0
    score_trend: float = 0.0
    total_sessions: int = 0
    total_deaths: int = 0
    best_score: int = 0
    average_score: float = 0.0
    interference_resistance: float = 0.0
    last_interference_response: float = 0.0

    def __post_init__(self):
        # read-only view
        object.__setattr__(self, "directional_bias", MappingProxyType(dict(self.directional_bias)))

    @property
    def max_directional_bias(self) -> float:
        return max(self.directional_bias.values(), default=0.0)

    @property
    def death_rate(self) -> float:
        if self.total_sessions == 0:
            return 0.0
        return self.total_deaths / float(self.total_sessions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boundary_hugging": self.boundary_hugging,
            "directional_bias": dict(self.directional_bias),
            "cyclic_pattern": self.cyclic_pattern,
            "recent_cycle": self.recent_cycle,
            "average_reaction_ms": self.average_reaction_ms,
            "greed_ratio": self.greed_ratio,
            "pattern_repetition": self.pattern_repetition,
            "comfort_zone": self.comfort_zone,
            "risk_tolerance": self.risk_tolerance,
            "score_trend": self.score_trend,
            "total_sessions": self.total_sessions,
            "total_deaths": self.total_deaths,
            "best_score": self.best_score,
            "average_score": self.average_score,
            "interference_resistance": self.interference_resistance,
            "last_interference_response": self.last_interference_response,
        }


def _recent_moves(state: TelemetryState) -> List[MoveRecord]:
    moves: List[MoveRecord] = []
    for s in state.sessions[-RECENT_SESSIONS:]:
        moves.extend(s.moves)
    moves.extend(state.current_moves)
    return moves


def _boundary_hugging(state: TelemetryState) -> float:
    if state.alive_ms <= 0:
        return 0.0
    return clamp(state.near_boundary_ms / state.alive_ms, 0.0, 1.0)


def _directional_bias(state: TelemetryState) -> Dict[str, float]:
    counts = dict(state.direction_counts)
    v = np.array([counts.get(d, 0) for d in DIRECTIONS], dtype=np.float64)
    total = float(np.sum(v))
    if total <= 0:
        return {d: 0.0 for d in DIRECTIONS}
    p = v / total
    return {d: float(p[i]) for i, d in enumerate(DIRECTIONS)}


def greed_ratio(sessions: Sequence[Session]) -> float:
    """Mean of (max length / survival seconds) over recent finished sessions."""
    ratios = []
    for s in sessions[-RECENT_SESSIONS:]:
        if s.end_time is None or not s.moves:
            continue
        seconds = s.duration_ms / 1000.0
        if seconds <= 0:
            continue
        ratios.append(s.max_length / seconds)
    return mean_or(ratios)


def pattern_repetition(directions: Sequence[str]) -> float:
    """Share of 3-move windows that show up again later in the sequence."""
    n = len(directions)
    if n == 0:
        return 0.0
    text = "".join(direction_code(d) for d in directions)
    repeats = 0
    for i in range(n - 3):
        if text[i:i + 3] in text[i + 3:]:
            repeats += 1
    return clamp(repeats / float(n), 0.0, 1.0)


def comfort_zone(moves: Sequence[MoveRecord]) -> float:
    if not moves:
        return 0.0
    avg = mean_or(max(0, m.boundary_distance) for m in moves)
    return clamp(avg / COMFORT_REFERENCE, 0.0, 1.0)


def risk_tolerance(moves: Sequence[MoveRecord]) -> float:
    if not moves:
        return 0.0
    risky = sum(1 for m in moves if m.boundary_distance <= 2 or (m.near_boundary and m.turn_angle >= 90))
    return clamp(risky / float(len(moves)), 0.0, 1.0)


def score_trend(scores: Sequence[float]) -> float:
    if len(scores) < 3:
        return 0.0
    recent = scores[-3:]
    older = scores[-6:-3]
    if len(older) == 0:
        return 0.0
    recent_avg = mean_or(recent)
    older_avg = mean_or(older)
    return clamp((recent_avg - older_avg) / max(older_avg, 10.0), -1.0, 1.0)


def _average_reaction(moves: Sequence[MoveRecord]) -> float:
    return mean_or(m.reaction_ms for m in moves if 0 < m.reaction_ms < REACTION_CEILING_MS)


def _interference_resistance(sessions: Sequence[Session]) -> float:
    if len(sessions) < 2:
        return 0.0
    adapted = interfered = 0
    for i, s in enumerate(sessions):
        if not s.escalation_events:
            continue
        interfered += 1
        if i + 1 < len(sessions) and sessions[i + 1].final_score > s.final_score:
            adapted += 1
    return adapted / float(interfered) if interfered else 0.0


def _last_interference_response(sessions: Sequence[Session]) -> float:
    if len(sessions) < 2:
        return 0.0
    for i in range(len(sessions) - 1, -1, -1):
        if sessions[i].escalation_events:
            if i + 1 < len(sessions):
                diff = sessions[i + 1].final_score - sessions[i].final_score
                return clamp(diff / 50.0, -1.0, 1.0)
            break
    return 0.0


def compute_metrics(state: TelemetryState) -> MetricsSnapshot:
    """Derive every play-style signal from the recorder state. No side effects."""
    sessions = state.sessions
    moves = _recent_moves(state)
    scores = [s.final_score for s in sessions]
    recent = list(state.recent_directions)[-8:]
    return MetricsSnapshot(
        boundary_hugging=_boundary_hugging(state),
        directional_bias=_directional_bias(state),
        cyclic_pattern=state.cyclic_detections > len(sessions) * CYCLIC_SESSION_SHARE,
        recent_cycle=len(recent) >= 8 and is_cyclic(recent),
        average_reaction_ms=_average_reaction(moves),
        greed_ratio=greed_ratio(sessions),
        pattern_repetition=pattern_repetition([m.direction for m in moves]),
        comfort_zone=comfort_zone(moves),
        risk_tolerance=risk_tolerance(moves),
        score_trend=score_trend(scores),
        total_sessions=len(sessions),
        total_deaths=sum(1 for s in sessions if s.termination_cause),
        best_score=int(max(scores, default=0)),
        average_score=mean_or(scores),
        interference_resistance=_interference_resistance(sessions),
        last_interference_response=_last_interference_response(sessions),
    )
