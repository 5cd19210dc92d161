from __future__ import annotations

from enum import Enum
from typing import Callable, List, Tuple

from .metrics import MetricsSnapshot


class Archetype(str, Enum):
    CAUTIOUS = "cautious"
    GREEDY = "greedy"
    ERRATIC = "erratic"
    PREDICTABLE = "predictable"
    IMPROVING = "improving"
    WALL_HUGGER = "wall-hugger"
    SPIRAL_ADDICT = "spiral-addict"


DEFAULT_ARCHETYPE = Archetype.CAUTIOUS
MIN_SESSIONS = 2

# First match wins. A player often satisfies several rules at once.
RULES: List[Tuple[Archetype, Callable[[MetricsSnapshot], bool]]] = [
    (Archetype.WALL_HUGGER, lambda m: m.boundary_hugging > 0.6),
    (Archetype.SPIRAL_ADDICT, lambda m: m.cyclic_pattern),
    (Archetype.IMPROVING, lambda m: m.score_trend > 0.3 and m.average_score > 20),
    (Archetype.GREEDY, lambda m: m.greed_ratio > 0.5 and m.total_deaths > m.total_sessions * 0.7),
    (Archetype.ERRATIC, lambda m: m.average_reaction_ms > 800 and m.comfort_zone < 0.3),
    (Archetype.PREDICTABLE, lambda m: m.pattern_repetition > 0.4 and m.max_directional_bias > 0.4),
]


def classify(m: MetricsSnapshot) -> Archetype:
    if m.total_sessions < MIN_SESSIONS:
        return DEFAULT_ARCHETYPE
    for archetype, rule in RULES:
        if rule(m):
            return archetype
    return DEFAULT_ARCHETYPE
