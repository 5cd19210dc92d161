"""
Persisted ledger format.

A ledger holds everything that outlives a process: the rolling window of
completed sessions and the cumulative counters. Older blobs are upgraded once,
at load time, by ``upgrade_ledger``.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .utils import DIRECTIONS

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2
LEGACY_CAUSES = {"wall": "wall", "self": "self", "block": "obstacle", "obstacle": "obstacle"}


class MoveModel(BaseModel):
    timestamp: float
    direction: str
    position: List[int]
    length: int = 1
    distance_to_objective: int = 0
    near_boundary: bool = False
    boundary_distance: int = 0
    turn_angle: int = 0
    reaction_ms: float = 0.0


class InterferenceModel(BaseModel):
    kind: str
    timestamp: float = 0.0
    reason: str = ""
    severity: float = Field(default=0.0, ge=0.0, le=1.0)
    archetype: str = "cautious"


class SessionModel(BaseModel):
    session_id: str
    start_time: float
    end_time: Optional[float] = None
    moves: List[MoveModel] = Field(default_factory=list)
    final_score: int = 0
    termination_cause: Optional[str] = None
    escalation_events: List[InterferenceModel] = Field(default_factory=list)


class CountersModel(BaseModel):
    near_boundary_ms: float = 0.0
    alive_ms: float = 0.0
    direction_counts: Dict[str, int] = Field(default_factory=lambda: {d: 0 for d in DIRECTIONS})
    cyclic_detections: int = 0


class SessionLedger(BaseModel):
    schema_version: int = CURRENT_SCHEMA_VERSION
    player_id: str = "default-user"
    updated_at: float = Field(default_factory=lambda: time.time() * 1000.0)
    counters: CountersModel = Field(default_factory=CountersModel)
    sessions: List[SessionModel] = Field(default_factory=list)

    def telemetry_payload(self) -> Dict[str, Any]:
        """Shape accepted by TelemetryRecorder.restore."""
        return {
            "counters": self.counters.model_dump(),
            "sessions": [s.model_dump() for s in self.sessions],
        }


# ---------------------- Upgrades ----------------------
def _upgrade_move_v1(m: Dict[str, Any]) -> Dict[str, Any]:
    pos = m.get("position") or {}
    if isinstance(pos, dict):
        pos = [pos.get("x", 0), pos.get("y", 0)]
    return {
        "timestamp": m.get("timestamp", 0.0),
        "direction": m.get("direction", "UP"),
        "position": list(pos),
        "length": m.get("snakeLength", 1),
        "distance_to_objective": m.get("distanceToFood", 0),
        "near_boundary": m.get("nearWall", False),
        "boundary_distance": m.get("wallDistance", 0),
        "turn_angle": m.get("turnAngle", 0),
        "reaction_ms": m.get("reactionTime", 0.0),
    }


def _upgrade_session_v1(s: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "session_id": s.get("sessionId", "legacy"),
        "start_time": s.get("startTime", 0.0),
        "end_time": s.get("endTime"),
        "moves": [_upgrade_move_v1(m) for m in s.get("moves", [])],
        "final_score": s.get("score", 0),
        "termination_cause": LEGACY_CAUSES.get(s.get("deathCause") or ""),
        "escalation_events": [
            {
                "kind": p.get("type", "unknown"),
                "timestamp": p.get("timestamp", 0.0),
                "reason": p.get("reason", ""),
                "severity": min(1.0, max(0.0, float(p.get("severity", 0.0)))),
                "archetype": p.get("playerBehavior", "cautious"),
            }
            for p in s.get("punishmentsTriggered", [])
        ],
    }


def _upgrade_v1(raw: Dict[str, Any]) -> Dict[str, Any]:
    counts = raw.get("directionCounts") or {}
    return {
        "schema_version": 2,
        "player_id": raw.get("userId", "default-user"),
        "updated_at": raw.get("lastUpdated", time.time() * 1000.0),
        "counters": {
            "near_boundary_ms": raw.get("totalWallHuggingTime", 0.0),
            "alive_ms": raw.get("totalGameTime", 0.0),
            "direction_counts": {d: int(counts.get(d, 0)) for d in DIRECTIONS},
            "cyclic_detections": raw.get("spiralPatterns", 0),
        },
        "sessions": [_upgrade_session_v1(s) for s in raw.get("recentSessions", [])],
    }


UPGRADES = {1: _upgrade_v1}


def schema_version_of(raw: Dict[str, Any]) -> int:
    if "schema_version" in raw:
        return int(raw["schema_version"])
    # the flat blob predates versioning
    return 1


def upgrade_ledger(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Bring a stored blob up to CURRENT_SCHEMA_VERSION, or None if it cannot be."""
    try:
        version = schema_version_of(raw)
    except (TypeError, ValueError):
        logger.warning("ledger has an unreadable schema_version; ignoring it")
        return None
    if version > CURRENT_SCHEMA_VERSION:
        logger.warning("ledger schema %d is newer than supported %d", version, CURRENT_SCHEMA_VERSION)
        return None
    data = dict(raw)
    while version < CURRENT_SCHEMA_VERSION:
        step = UPGRADES.get(version)
        if step is None:
            logger.warning("no upgrade path from ledger schema %d", version)
            return None
        try:
            data = step(data)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("ledger upgrade from schema %d failed: %s", version, e)
            return None
        version = schema_version_of(data)
    return data


def parse_ledger(raw: Optional[Dict[str, Any]]) -> Optional[SessionLedger]:
    if not raw:
        return None
    data = upgrade_ledger(raw)
    if data is None:
        return None
    try:
        return SessionLedger.model_validate(data)
    except ValidationError as e:
        logger.warning("discarding corrupt ledger: %s", e)
        return None
