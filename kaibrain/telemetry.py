from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .utils import (
    DIRECTIONS,
    Position,
    boundary_distance,
    in_bounds,
    is_cyclic,
    is_direction,
    manhattan,
    turn_angle,
)

logger = logging.getLogger(__name__)

RECENT_DIRECTIONS = 20
CYCLE_WINDOW = 8
DEFAULT_WINDOW = 10


@dataclass(frozen=True)
class MoveRecord:
    timestamp: float  # ms
    direction: str
    position: Position
    length: int
    distance_to_objective: int
    near_boundary: bool
    boundary_distance: int
    turn_angle: int  # 0, 90 or 180
    reaction_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "direction": self.direction,
            "position": list(self.position),
            "length": self.length,
            "distance_to_objective": self.distance_to_objective,
            "near_boundary": self.near_boundary,
            "boundary_distance": self.boundary_distance,
            "turn_angle": self.turn_angle,
            "reaction_ms": self.reaction_ms,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "MoveRecord":
        pos = d["position"]
        return MoveRecord(
            timestamp=float(d["timestamp"]),
            direction=str(d["direction"]),
            position=(int(pos[0]), int(pos[1])),
            length=int(d.get("length", 1)),
            distance_to_objective=int(d.get("distance_to_objective", 0)),
            near_boundary=bool(d.get("near_boundary", False)),
            boundary_distance=int(d.get("boundary_distance", 0)),
            turn_angle=int(d.get("turn_angle", 0)),
            reaction_ms=float(d.get("reaction_ms", 0.0)),
        )


@dataclass(frozen=True)
class InterferenceRecord:
    kind: str  # escalation | decoy | speed | obstacle
    timestamp: float
    reason: str
    severity: float  # 0-1
    archetype: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "severity": self.severity,
            "archetype": self.archetype,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "InterferenceRecord":
        return InterferenceRecord(
            kind=str(d["kind"]),
            timestamp=float(d.get("timestamp", 0.0)),
            reason=str(d.get("reason", "")),
            severity=float(d.get("severity", 0.0)),
            archetype=str(d.get("archetype", "cautious")),
        )


@dataclass
class Session:
    session_id: str
    start_time: float
    end_time: Optional[float] = None
    moves: List[MoveRecord] = field(default_factory=list)
    final_score: int = 0
    termination_cause: Optional[str] = None  # wall | self | obstacle | None
    escalation_events: List[InterferenceRecord] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return float(self.end_time - self.start_time)

    @property
    def max_length(self) -> int:
        return max((m.length for m in self.moves), default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "moves": [m.to_dict() for m in self.moves],
            "final_score": self.final_score,
            "termination_cause": self.termination_cause,
            "escalation_events": [e.to_dict() for e in self.escalation_events],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Session":
        return Session(
            session_id=str(d["session_id"]),
            start_time=float(d["start_time"]),
            end_time=float(d["end_time"]) if d.get("end_time") is not None else None,
            moves=[MoveRecord.from_dict(m) for m in d.get("moves", [])],
            final_score=int(d.get("final_score", 0)),
            termination_cause=d.get("termination_cause"),
            escalation_events=[InterferenceRecord.from_dict(e) for e in d.get("escalation_events", [])],
        )


@dataclass
class RollingCounters:
    """Process-wide counters; they outlive any single session."""
    near_boundary_ms: float = 0.0
    alive_ms: float = 0.0
    direction_counts: Dict[str, int] = field(default_factory=lambda: {d: 0 for d in DIRECTIONS})
    cyclic_detections: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "near_boundary_ms": self.near_boundary_ms,
            "alive_ms": self.alive_ms,
            "direction_counts": dict(self.direction_counts),
            "cyclic_detections": self.cyclic_detections,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "RollingCounters":
        counts = {k: 0 for k in DIRECTIONS}
        for k, v in (d.get("direction_counts") or {}).items():
            if k in counts:
                counts[k] = int(v)
        return RollingCounters(
            near_boundary_ms=float(d.get("near_boundary_ms", 0.0)),
            alive_ms=float(d.get("alive_ms", 0.0)),
            direction_counts=counts,
            cyclic_detections=int(d.get("cyclic_detections", 0)),
        )


@dataclass(frozen=True)
class TelemetryState:
    """Read-only view handed to the metrics engine."""
    sessions: Tuple[Session, ...]
    current_moves: Tuple[MoveRecord, ...]
    near_boundary_ms: float
    alive_ms: float
    direction_counts: Tuple[Tuple[str, int], ...]
    cyclic_detections: int
    recent_directions: Tuple[str, ...]


class TelemetryRecorder:
    """
    Records one MoveRecord per accepted player move.

    - current session's move list
    - rolling window of completed sessions (most recent `window`, oldest evicted)
    - process-wide counters: near-boundary time, alive time, direction counts,
      cyclic-lap detections, and a ring of the last 20 directions
    """

    def __init__(self, clock: Callable[[], float], window: int = DEFAULT_WINDOW):
        self.clock = clock
        self.window = window
        self.current: Optional[Session] = None
        self.sessions: List[Session] = []
        self.counters = RollingCounters()
        self.recent_directions: Deque[str] = deque(maxlen=RECENT_DIRECTIONS)
        self._session_counter = 0
        self._last_move_time: Optional[float] = None
        self._last_direction: Optional[str] = None

    # ---------------------- Session boundaries ----------------------
    def start_session(self) -> str:
        now = self.clock()
        self._session_counter += 1
        sid = f"snake_{int(now)}_{self._session_counter}"
        if self.current is not None:
            logger.info("discarding unfinished session %s", self.current.session_id)
        self.current = Session(session_id=sid, start_time=now)
        self.recent_directions.clear()
        self._last_move_time = None
        self._last_direction = None
        return sid

    def end_session(self, final_score: int, termination_cause: Optional[str]) -> Optional[Session]:
        if self.current is None:
            return None
        session = self.current
        session.end_time = self.clock()
        session.final_score = int(final_score)
        session.termination_cause = termination_cause
        self.sessions.append(session)
        if len(self.sessions) > self.window:
            self.sessions = self.sessions[-self.window:]
        self.current = None
        return session

    # ---------------------- Recording ----------------------
    def record_move(
        self,
        direction: str,
        head: Position,
        length: int,
        objective: Position,
        board_width: int,
        board_height: int,
    ) -> Optional[MoveRecord]:
        if self.current is None:
            return None
        if not is_direction(direction):
            return None
        head = (int(head[0]), int(head[1]))
        if not in_bounds(head, board_width, board_height):
            return None
        angle = turn_angle(self._last_direction, direction)
        # a body longer than one cell cannot fold back onto its neck
        if angle == 180 and length > 1:
            return None

        now = self.clock()
        delta = now - self._last_move_time if self._last_move_time is not None else 0.0
        bdist = boundary_distance(head, board_width, board_height)
        move = MoveRecord(
            timestamp=now,
            direction=direction,
            position=head,
            length=int(length),
            distance_to_objective=manhattan(head, objective),
            near_boundary=bdist <= 1,
            boundary_distance=bdist,
            turn_angle=angle,
            reaction_ms=float(delta),
        )
        self.current.moves.append(move)
        self._update_counters(move, delta)
        self._last_move_time = now
        self._last_direction = direction
        return move

    def _update_counters(self, move: MoveRecord, delta: float) -> None:
        c = self.counters
        c.alive_ms += delta
        if move.near_boundary:
            c.near_boundary_ms += delta
        c.direction_counts[move.direction] = c.direction_counts.get(move.direction, 0) + 1
        self.recent_directions.append(move.direction)
        if len(self.recent_directions) >= CYCLE_WINDOW:
            if is_cyclic(list(self.recent_directions)[-CYCLE_WINDOW:]):
                c.cyclic_detections += 1

    def record_interference(self, kind: str, reason: str, severity: float, archetype: str) -> None:
        if self.current is None:
            return
        self.current.escalation_events.append(InterferenceRecord(
            kind=kind,
            timestamp=self.clock(),
            reason=reason,
            severity=float(max(0.0, min(1.0, severity))),
            archetype=archetype,
        ))

    # ---------------------- Views ----------------------
    def state(self) -> TelemetryState:
        c = self.counters
        return TelemetryState(
            sessions=tuple(self.sessions),
            current_moves=tuple(self.current.moves) if self.current is not None else (),
            near_boundary_ms=c.near_boundary_ms,
            alive_ms=c.alive_ms,
            direction_counts=tuple(sorted(c.direction_counts.items())),
            cyclic_detections=c.cyclic_detections,
            recent_directions=tuple(self.recent_directions),
        )

    def export(self) -> Dict[str, Any]:
        return {
            "counters": self.counters.to_dict(),
            "sessions": [s.to_dict() for s in self.sessions],
        }

    def restore(self, d: Dict[str, Any]) -> None:
        self.counters = RollingCounters.from_dict(d.get("counters") or {})
        sessions = [Session.from_dict(s) for s in d.get("sessions", [])]
        self.sessions = sessions[-self.window:]
