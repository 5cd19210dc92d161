from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .metrics import MetricsSnapshot
from .scheduler import Scheduler
from .utils import Position, boundary_distance, clamp, in_bounds, sample_free_cell

logger = logging.getLogger(__name__)

VELOCITY_MIN = 0.5
VELOCITY_MAX = 3.0
CREEP_SECONDS = 30.0
CREEP_MAX = 0.5
COMFORT_SPEED_THRESHOLD = 0.6
COMFORT_STEP = 0.1
COMFORT_STEP_MS = 3000.0
SURGE_FACTOR = 1.5
SURGE_MS = 800.0
SURGE_RELEASE_MS = 1500.0
FLUCTUATION_CHANCE = 0.15
FLUCTUATION_MS = 3000.0
FLUCTUATION_PERIOD_MS = 600.0
FLUCTUATION_LOW = 0.7
FLUCTUATION_HIGH = 1.8

DECOY_CHANCE = 0.25
FORCED_DECOY_DELAY_MS = 1000.0
EXTRA_DECOY_CHANCE = 0.3
MAX_EXTRA_DECOYS = 2
FLICKER_MS = 200.0

OBSTACLE_ATTEMPTS = 50
LEVEL2_OBSTACLE_EVERY = 5

# decoy reason tags; commentary turns them into lines
REASON_SAFE_PLAY = "safe-play"
REASON_COMFORT = "comfort"
REASON_BAIT = "bait"
REASON_SWARM = "swarm"


@dataclass(frozen=True)
class BoardState:
    body: Tuple[Position, ...]  # head first
    objective: Position
    width: int
    height: int

    @property
    def head(self) -> Position:
        return self.body[0]

    @property
    def length(self) -> int:
        return len(self.body)

    @staticmethod
    def from_lists(body: Sequence[Sequence[int]], objective: Sequence[int], width: int, height: int) -> "BoardState":
        return BoardState(
            body=tuple((int(p[0]), int(p[1])) for p in body),
            objective=(int(objective[0]), int(objective[1])),
            width=int(width),
            height=int(height),
        )


@dataclass(frozen=True)
class Decoy:
    position: Position
    reason: str
    spawned_at: float

    def visible_at(self, now: float, level: int) -> bool:
        if level < 2:
            return True
        return int((now - self.spawned_at) // FLICKER_MS) % 2 == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"position": list(self.position), "reason": self.reason, "spawned_at": self.spawned_at}


@dataclass(frozen=True)
class Obstacle:
    position: Position

    def to_dict(self) -> Dict[str, Any]:
        return {"position": list(self.position)}


@dataclass(frozen=True)
class PlacementBias:
    boundary_weight: float = 0.0
    body_weight: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"boundary_weight": self.boundary_weight, "body_weight": self.body_weight}


@dataclass(frozen=True)
class EnvironmentEffects:
    tint: float = 0.0
    tremor: bool = False
    objective_pulse: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {"tint": self.tint, "tremor": self.tremor, "objective_pulse": self.objective_pulse}


@dataclass(frozen=True)
class InterferenceBundle:
    velocity_multiplier: float = 1.0
    decoys: Tuple[Decoy, ...] = ()
    obstacles: Tuple[Obstacle, ...] = ()
    placement_bias: PlacementBias = PlacementBias()
    environment: EnvironmentEffects = EnvironmentEffects()


@dataclass
class TickReport:
    velocity_multiplier: float
    decoys_spawned: List[Decoy] = field(default_factory=list)
    obstacles_spawned: List[Obstacle] = field(default_factory=list)
    fluctuation_started: bool = False


def placement_bias(m: MetricsSnapshot) -> PlacementBias:
    boundary = 0.0
    body = 0.0
    if m.comfort_zone > 0.7:
        boundary = 0.6
    if m.max_directional_bias > 0.4:
        body = 0.5
    if m.greed_ratio > 0.3 and m.boundary_hugging < 0.2:
        boundary = max(boundary, min(0.8, m.greed_ratio))
    return PlacementBias(boundary_weight=boundary, body_weight=body)


def environment_for(level: int) -> EnvironmentEffects:
    return EnvironmentEffects(tint=level * 0.15, tremor=level >= 3, objective_pulse=1.0 + level * 0.3)


class InterferenceEngine:
    """
    Per-tick gameplay perturbations for the current escalation level.

    - velocity multiplier: time creep, comfort steps, post-objective surge,
      level-3 sinusoidal fluctuation windows; always within [0.5, 3.0]
    - decoy objectives: random, comfort-forced and post-objective bait spawns
    - placement bias consulted by the objective placement routine
    - obstacles at level >= 2, paced by objectives consumed
    """

    def __init__(self, rng: random.Random, scheduler: Scheduler):
        self.rng = rng
        self.scheduler = scheduler
        self.reset(0.0, None)

    def reset(self, now: float, session_id: Optional[str]) -> None:
        self.session_id = session_id
        self.started_at = now
        self.level = 0
        self.velocity = 1.0
        self.decoys: List[Decoy] = []
        self.obstacles: List[Obstacle] = []
        self.placement = PlacementBias()
        self.environment = EnvironmentEffects()
        self.objectives_since_obstacle = 0
        self._comfort_bonus = 0.0
        self._last_comfort_step = now
        self._last_consumed: Optional[float] = None
        self._fluctuation_start: Optional[float] = None
        self._obstacle_quota: Optional[int] = None
        self._board: Optional[BoardState] = None
        self._fresh: List[Decoy] = []

    # ---------------------- Public API ----------------------
    def tick(
        self,
        now: float,
        elapsed_s: float,
        level: int,
        metrics: MetricsSnapshot,
        board: BoardState,
        has_won: bool = False,
    ) -> TickReport:
        self._board = board
        self.level = int(level)
        velocity, started = self._update_velocity(now, elapsed_s, self.level, metrics)
        self.velocity = velocity
        self.placement = placement_bias(metrics)
        spawned = self._update_decoys(now, self.level, metrics, board)
        blocks = self._update_obstacles(self.level, board, has_won)
        self.environment = environment_for(self.level)
        return TickReport(
            velocity_multiplier=velocity,
            decoys_spawned=spawned,
            obstacles_spawned=blocks,
            fluctuation_started=started,
        )

    def bundle(self) -> InterferenceBundle:
        return InterferenceBundle(
            velocity_multiplier=self.velocity,
            decoys=tuple(self.decoys),
            obstacles=tuple(self.obstacles),
            placement_bias=self.placement,
            environment=self.environment,
        )

    def on_objective_consumed(self, now: float) -> None:
        self._last_consumed = now
        self.objectives_since_obstacle += 1
        if self.level >= 2 and self.session_id is not None:
            self.scheduler.call_later(FORCED_DECOY_DELAY_MS, self._forced_decoy, self.session_id)

    def consume_decoy(self, position: Position) -> Optional[Decoy]:
        position = (int(position[0]), int(position[1]))
        for i, d in enumerate(self.decoys):
            if d.position == position:
                return self.decoys.pop(i)
        return None

    def decoy_visible(self, now: float) -> bool:
        return any(d.visible_at(now, self.level) for d in self.decoys)

    def spawn_obstacle(self, board: BoardState) -> Optional[Obstacle]:
        blocked: Set[Position] = set(board.body)
        blocked.add(board.objective)
        blocked.update(o.position for o in self.obstacles)
        cell = sample_free_cell(
            self.rng, board.width, board.height, blocked,
            avoid_near=board.head, attempts=OBSTACLE_ATTEMPTS,
        )
        if cell is None:
            logger.debug("no free obstacle cell after %d attempts", OBSTACLE_ATTEMPTS)
            return None
        ob = Obstacle(position=cell)
        self.obstacles.append(ob)
        return ob

    def place_objective(
        self,
        body: Sequence[Position],
        width: int,
        height: int,
        default: Position,
    ) -> Position:
        """Apply the current placement bias to a proposed objective cell."""
        occupied: Set[Position] = set((int(p[0]), int(p[1])) for p in body)
        occupied.update(o.position for o in self.obstacles)
        pos = (int(default[0]), int(default[1]))
        if self.placement.boundary_weight > 0 and self.rng.random() < self.placement.boundary_weight:
            ring = [c for c in self._ring_cells(width, height) if c not in occupied]
            if ring:
                pos = self.rng.choice(ring)
        if self.placement.body_weight > 0 and self.rng.random() < self.placement.body_weight:
            near = self._body_adjacent_cells(body, width, height, occupied)
            if near:
                pos = self.rng.choice(near)
        return pos

    # ---------------------- Velocity ----------------------
    def _update_velocity(self, now: float, elapsed_s: float, level: int, m: MetricsSnapshot) -> Tuple[float, bool]:
        value = 1.0 + min(max(elapsed_s, 0.0) / CREEP_SECONDS, 1.0) * CREEP_MAX
        if m.comfort_zone > COMFORT_SPEED_THRESHOLD and now - self._last_comfort_step >= COMFORT_STEP_MS:
            self._comfort_bonus += COMFORT_STEP
            self._last_comfort_step = now
        value += self._comfort_bonus
        if level >= 2:
            value *= self._surge_factor(now)
        started = False
        if level >= 3:
            if self._fluctuation_start is not None and now - self._fluctuation_start >= FLUCTUATION_MS:
                self._fluctuation_start = None
            if self._fluctuation_start is None and self.rng.random() < FLUCTUATION_CHANCE:
                self._fluctuation_start = now
                started = True
            if self._fluctuation_start is not None:
                value = self._fluctuation(now - self._fluctuation_start)
        else:
            self._fluctuation_start = None
        return clamp(value, VELOCITY_MIN, VELOCITY_MAX), started

    def _surge_factor(self, now: float) -> float:
        if self._last_consumed is None:
            return 1.0
        since = now - self._last_consumed
        if since < SURGE_MS:
            return SURGE_FACTOR
        if since < SURGE_RELEASE_MS:
            frac = (since - SURGE_MS) / (SURGE_RELEASE_MS - SURGE_MS)
            return SURGE_FACTOR - (SURGE_FACTOR - 1.0) * frac
        return 1.0

    @staticmethod
    def _fluctuation(t_ms: float) -> float:
        mid = (FLUCTUATION_LOW + FLUCTUATION_HIGH) / 2.0
        amp = (FLUCTUATION_HIGH - FLUCTUATION_LOW) / 2.0
        return mid + amp * math.sin(2.0 * math.pi * t_ms / FLUCTUATION_PERIOD_MS)

    # ---------------------- Decoys ----------------------
    def _decoy_cap(self, level: int) -> int:
        return 1 + MAX_EXTRA_DECOYS if level >= 3 else 1

    def _update_decoys(self, now: float, level: int, m: MetricsSnapshot, board: BoardState) -> List[Decoy]:
        spawned = list(self._fresh)
        self._fresh = []
        cap = self._decoy_cap(level)
        comfort = m.comfort_zone > 0.7 and m.risk_tolerance < 0.2
        if not self.decoys:
            reason = None
            if level >= 1 and self.rng.random() < DECOY_CHANCE:
                reason = REASON_SAFE_PLAY
            if comfort:
                reason = REASON_COMFORT
            if reason is not None:
                d = self._spawn_decoy(now, reason, board)
                if d is not None:
                    spawned.append(d)
        elif len(self.decoys) < cap:
            reason = None
            if comfort:
                reason = REASON_COMFORT
            elif level >= 3 and self.rng.random() < EXTRA_DECOY_CHANCE:
                reason = REASON_SWARM
            if reason is not None:
                d = self._spawn_decoy(now, reason, board)
                if d is not None:
                    spawned.append(d)
        return spawned

    def _spawn_decoy(self, now: float, reason: str, board: BoardState) -> Optional[Decoy]:
        blocked: Set[Position] = set(board.body)
        blocked.add(board.objective)
        blocked.update(o.position for o in self.obstacles)
        blocked.update(d.position for d in self.decoys)
        cell = sample_free_cell(self.rng, board.width, board.height, blocked)
        if cell is None:
            return None
        d = Decoy(position=cell, reason=reason, spawned_at=now)
        self.decoys.append(d)
        return d

    def _forced_decoy(self) -> None:
        if self._board is None or len(self.decoys) >= self._decoy_cap(self.level):
            return
        d = self._spawn_decoy(self.scheduler.clock(), REASON_BAIT, self._board)
        if d is not None:
            self._fresh.append(d)

    # ---------------------- Obstacles ----------------------
    def _quota(self, level: int) -> int:
        if level == 2:
            return LEVEL2_OBSTACLE_EVERY
        if self._obstacle_quota is None:
            self._obstacle_quota = 2 + self.rng.randrange(2)
        return self._obstacle_quota

    def _update_obstacles(self, level: int, board: BoardState, has_won: bool) -> List[Obstacle]:
        if has_won or level < 2:
            return []
        if self.objectives_since_obstacle < self._quota(level):
            return []
        ob = self.spawn_obstacle(board)
        if ob is None:
            return []
        self.objectives_since_obstacle = 0
        self._obstacle_quota = None
        return [ob]

    # ---------------------- Placement helpers ----------------------
    @staticmethod
    def _ring_cells(width: int, height: int) -> List[Position]:
        return [
            (x, y)
            for x in range(width)
            for y in range(height)
            if boundary_distance((x, y), width, height) <= 1
        ]

    @staticmethod
    def _body_adjacent_cells(
        body: Sequence[Position], width: int, height: int, occupied: Set[Position]
    ) -> List[Position]:
        out: List[Position] = []
        for seg in list(body)[1:]:
            sx, sy = int(seg[0]), int(seg[1])
            for c in ((sx + 1, sy), (sx - 1, sy), (sx, sy + 1), (sx, sy - 1)):
                if in_bounds(c, width, height) and c not in occupied and c not in out:
                    out.append(c)
        return out
