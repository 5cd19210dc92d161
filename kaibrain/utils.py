from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set, Tuple
import random

import numpy as np

Position = Tuple[int, int]

# Compass order, clockwise. Index distance between two entries is the turn size.
DIRECTIONS = ["UP", "RIGHT", "DOWN", "LEFT"]
CLOCKWISE = ["UP", "RIGHT", "DOWN", "LEFT"]
COUNTERCLOCKWISE = ["UP", "LEFT", "DOWN", "RIGHT"]

_CODES = {"UP": "U", "RIGHT": "R", "DOWN": "D", "LEFT": "L"}


def clamp(x: float, lo: float, hi: float) -> float:
    return float(max(lo, min(hi, x)))


def is_direction(d: Optional[str]) -> bool:
    return d in _CODES


def direction_code(d: str) -> str:
    # one char per move so substring search over a joined history is exact
    return _CODES[d]


def turn_angle(prev: Optional[str], cur: str) -> int:
    """Angle between two compass directions, shorter arc: 0, 90 or 180."""
    if not prev or prev == cur:
        return 0
    if prev not in _CODES or cur not in _CODES:
        return 0
    diff = abs(DIRECTIONS.index(cur) - DIRECTIONS.index(prev))
    if diff > 2:
        diff = 4 - diff
    return diff * 90


def boundary_distance(pos: Position, width: int, height: int) -> int:
    x, y = pos
    return int(min(x, y, width - 1 - x, height - 1 - y))


def manhattan(a: Position, b: Position) -> int:
    return int(abs(a[0] - b[0]) + abs(a[1] - b[1]))


def in_bounds(pos: Position, width: int, height: int) -> bool:
    return 0 <= pos[0] < width and 0 <= pos[1] < height


def adjacent8(a: Position, b: Position) -> bool:
    """True when b is a or one of its eight neighbours."""
    return abs(a[0] - b[0]) <= 1 and abs(a[1] - b[1]) <= 1


def rotations(cycle: Sequence[str]) -> List[List[str]]:
    return [list(cycle[i:]) + list(cycle[:i]) for i in range(len(cycle))]


def _contains_run(moves: Sequence[str], pattern: Sequence[str]) -> bool:
    n, m = len(moves), len(pattern)
    for i in range(n - m + 1):
        if list(moves[i:i + m]) == list(pattern):
            return True
    return False


def is_cyclic(moves: Sequence[str]) -> bool:
    """Does the sequence contain a full clockwise or counterclockwise lap?"""
    if len(moves) < 4:
        return False
    for pattern in rotations(CLOCKWISE) + rotations(COUNTERCLOCKWISE):
        if _contains_run(moves, pattern):
            return True
    return False


def mean_or(values: Iterable[float], default: float = 0.0) -> float:
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return float(default)
    return float(np.mean(arr))


def sample_free_cell(
    rng: random.Random,
    width: int,
    height: int,
    blocked: Set[Position],
    avoid_near: Optional[Position] = None,
    attempts: int = 50,
) -> Optional[Position]:
    """Rejection-sample a cell that is not blocked (and not next to avoid_near).

    Returns None once the attempts are used up.
    """
    if width <= 0 or height <= 0:
        return None
    for _ in range(attempts):
        cell = (rng.randrange(width), rng.randrange(height))
        if cell in blocked:
            continue
        if avoid_near is not None and adjacent8(avoid_near, cell):
            continue
        return cell
    return None
