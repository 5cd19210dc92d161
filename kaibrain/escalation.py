from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple


class EscalationLevel(IntEnum):
    OBSERVATION = 0
    SUBTLE_INTERFERENCE = 1
    ACTIVE_MANIPULATION = 2
    HOSTILE_TAKEOVER = 3


# level -> (elapsed seconds, body length) needed to leave it; either one suffices
THRESHOLDS: Dict[EscalationLevel, Tuple[float, int]] = {
    EscalationLevel.OBSERVATION: (10.0, 6),
    EscalationLevel.SUBTLE_INTERFERENCE: (20.0, 11),
    EscalationLevel.ACTIVE_MANIPULATION: (30.0, 16),
}


@dataclass(frozen=True)
class EscalationState:
    level: EscalationLevel = EscalationLevel.OBSERVATION
    entered_at: float = 0.0


def initial_state(now: float) -> EscalationState:
    return EscalationState(level=EscalationLevel.OBSERVATION, entered_at=now)


def advance(state: EscalationState, elapsed_s: float, length: int, now: float) -> EscalationState:
    """Move at most one level up. Never moves down."""
    limits = THRESHOLDS.get(state.level)
    if limits is None:
        return state
    min_seconds, min_length = limits
    if elapsed_s >= min_seconds or length >= min_length:
        return EscalationState(level=EscalationLevel(state.level + 1), entered_at=now)
    return state
