from __future__ import annotations

import asyncio
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .classifier import DEFAULT_ARCHETYPE, Archetype, classify
from .commentary import WIN_LINE, CommentaryDispatcher, CommentaryEvent, Priority, Trigger
from .effects import (
    BoardState,
    Decoy,
    EnvironmentEffects,
    InterferenceEngine,
    Obstacle,
    PlacementBias,
)
from .escalation import EscalationLevel, advance, initial_state
from .metrics import MetricsSnapshot, compute_metrics
from .scheduler import Scheduler
from .schema import SessionLedger
from .storage import LedgerStore, get_player_id
from .telemetry import DEFAULT_WINDOW, MoveRecord, TelemetryRecorder
from .utils import Position

logger = logging.getLogger(__name__)

WIN_SCORE = 500
POINTS_PER_SEGMENT = 10
SPEED_COMMENT_THRESHOLD = 1.2
TAUNT_CHANCE = 0.15
LOW_SCORE = 30
FAILURE_STREAK = 3


def wall_clock_ms() -> float:
    return time.time() * 1000.0


def score_for_length(length: int) -> int:
    return max(0, length - 1) * POINTS_PER_SEGMENT


@dataclass(frozen=True)
class PostMortem:
    cause_description: str
    score_note: str
    escalation_note: Optional[str] = None
    recommendation: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cause_description": self.cause_description,
            "escalation_note": self.escalation_note,
            "score_note": self.score_note,
            "recommendation": self.recommendation,
            "note": self.note,
        }


@dataclass(frozen=True)
class Snapshot:
    """What the renderer reads. Never mutated after it is handed out."""
    active: bool
    session_id: Optional[str]
    archetype: Archetype
    metrics: MetricsSnapshot
    escalation_level: EscalationLevel
    velocity_multiplier: float
    decoy_objectives: Tuple[Decoy, ...] = ()
    obstacles: Tuple[Obstacle, ...] = ()
    placement_bias: PlacementBias = PlacementBias()
    effects: EnvironmentEffects = EnvironmentEffects()
    commentary_events: Tuple[CommentaryEvent, ...] = ()
    has_won: bool = False
    post_mortem: Optional[PostMortem] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "session_id": self.session_id,
            "archetype": self.archetype.value,
            "metrics": self.metrics.to_dict(),
            "escalation_level": int(self.escalation_level),
            "velocity_multiplier": self.velocity_multiplier,
            "decoy_objectives": [d.to_dict() for d in self.decoy_objectives],
            "obstacles": [o.to_dict() for o in self.obstacles],
            "placement_bias": self.placement_bias.to_dict(),
            "effects": self.effects.to_dict(),
            "commentary_events": [e.to_dict() for e in self.commentary_events],
            "has_won": self.has_won,
            "post_mortem": self.post_mortem.to_dict() if self.post_mortem is not None else None,
        }


@dataclass(frozen=True)
class TickResult:
    snapshot: Snapshot
    commentary_events: Tuple[CommentaryEvent, ...] = ()


class GameMaster:
    """
    Game master for one snake player.

    - records telemetry from on_move
    - on every logic tick: metrics -> archetype + escalation -> interference
      bundle -> commentary, assembled into an immutable Snapshot
    - persists the rolling session window at session end without waiting

    It is the only writer of the session, escalation state and bundle, and is
    meant to be driven from a single logic loop.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        rng: Optional[random.Random] = None,
        random_seed: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        session_window: int = DEFAULT_WINDOW,
        player_id: Optional[str] = None,
    ):
        self.rng = rng if rng is not None else random.Random(random_seed)
        self.clock = clock or wall_clock_ms
        self.store = store
        self.player_id = player_id or get_player_id()

        self.recorder = TelemetryRecorder(self.clock, window=session_window)
        self.scheduler = Scheduler(self.clock)
        self.effects = InterferenceEngine(self.rng, self.scheduler)
        self.dispatcher = CommentaryDispatcher(self.rng)

        self.session_id: Optional[str] = None
        self.session_start = 0.0
        self.escalation = initial_state(self.clock())
        self.has_won = False
        self.metrics = MetricsSnapshot()
        self.archetype: Archetype = DEFAULT_ARCHETYPE
        self.post_mortem: Optional[PostMortem] = None
        self._events: List[CommentaryEvent] = []
        self._last_score = 0
        self._consecutive_failures = 0
        self._pending_saves: Set[asyncio.Task] = set()
        self._executor: Optional[ThreadPoolExecutor] = None

    # ---------------------- Lifecycle hooks ----------------------
    def on_session_start(self) -> Snapshot:
        now = self.clock()
        if self.session_id is not None:
            self.scheduler.cancel_session(self.session_id)
        self.session_id = self.recorder.start_session()
        self.session_start = now
        self.escalation = initial_state(now)
        self.effects.reset(now, self.session_id)
        self.dispatcher.reset()
        self.has_won = False
        self.post_mortem = None
        self._refresh_profile()
        start = self.dispatcher.immediate(Trigger("start", Priority.NORMAL), self.archetype, self.metrics)
        self._events = [start]
        logger.info("session %s started (archetype=%s)", self.session_id, self.archetype.value)
        return self._snapshot()

    def on_move(
        self,
        direction: str,
        head: Position,
        length: int,
        objective: Position,
        board_width: int,
        board_height: int,
    ) -> Optional[MoveRecord]:
        return self.recorder.record_move(direction, head, length, objective, board_width, board_height)

    def on_tick(self, board: BoardState) -> TickResult:
        if self.session_id is None:
            snap = self._snapshot()
            return TickResult(snapshot=snap)

        now = self.clock()
        self.scheduler.run_due(now)
        elapsed_s = (now - self.session_start) / 1000.0
        self._refresh_profile()
        self._events = []
        triggers: List[Trigger] = []

        if score_for_length(board.length) >= WIN_SCORE and not self.has_won:
            self.has_won = True
            triggers.append(Trigger("system", Priority.HIGH, {"message": WIN_LINE}))
            logger.info("session %s reached the win score", self.session_id)

        previous = self.escalation.level
        self.escalation = advance(self.escalation, elapsed_s, board.length, now)
        level = int(self.escalation.level)
        if level > previous:
            logger.info("session %s escalated to level %d", self.session_id, level)
            self._record("escalation", f"escalated to level {level}", level / 3.0)
            triggers.append(Trigger("escalation", Priority.HIGH, {"level": level}))

        decoy_event = self._consume_decoy(board.head)
        if decoy_event is not None:
            self._events.append(decoy_event)

        previous_velocity = self.effects.velocity
        report = self.effects.tick(now, elapsed_s, level, self.metrics, board, self.has_won)

        if report.velocity_multiplier > SPEED_COMMENT_THRESHOLD:
            if previous_velocity <= SPEED_COMMENT_THRESHOLD:
                self._record("speed", f"velocity x{report.velocity_multiplier:.2f}", report.velocity_multiplier / 3.0)
            triggers.append(Trigger("speed", Priority.NORMAL, {"multiplier": report.velocity_multiplier}))
        for ob in report.obstacles_spawned:
            self._record("obstacle", f"obstacle at {ob.position}", 0.6)
            triggers.append(Trigger("obstacle", Priority.NORMAL))
        for d in report.decoys_spawned:
            self._record("decoy", d.reason, 0.4)
            triggers.append(Trigger("decoy", Priority.NORMAL, {"reason": d.reason}))
        if self.rng.random() < TAUNT_CHANCE:
            triggers.append(Trigger("taunt", Priority.LOW))

        self._events.extend(self.dispatcher.dispatch(triggers, now, self.archetype, self.metrics))
        snap = self._snapshot()
        return TickResult(snapshot=snap, commentary_events=snap.commentary_events)

    def on_session_end(
        self,
        final_score: int,
        termination_cause: Optional[str] = None,
        has_won: Optional[bool] = None,
    ) -> Snapshot:
        if self.session_id is None:
            return self._snapshot()
        now = self.clock()
        sid = self.session_id
        level = int(self.escalation.level)
        won = self.has_won if has_won is None else bool(has_won)

        self.recorder.end_session(final_score, None if won else termination_cause)
        self.scheduler.cancel_session(sid)
        self._refresh_profile()
        self.post_mortem = self._build_post_mortem(int(final_score), termination_cause, level, won)
        self._last_score = int(final_score)

        self.session_id = None
        self.has_won = won
        self.escalation = initial_state(now)
        self.effects.reset(now, None)
        self._events = []
        logger.info("session %s ended: score=%d cause=%s", sid, final_score, termination_cause)
        self._persist()
        return self._snapshot()

    # ---------------------- Effect hooks ----------------------
    def on_objective_consumed(self) -> None:
        if self.session_id is None:
            return
        self.effects.on_objective_consumed(self.clock())

    def on_decoy_consumed(self, position: Position) -> Optional[CommentaryEvent]:
        if self.session_id is None:
            return None
        event = self._consume_decoy(position)
        if event is not None:
            self._events.append(event)
        return event

    def place_objective(self, body: Sequence[Position], board_width: int, board_height: int, default: Position) -> Position:
        return self.effects.place_objective(body, board_width, board_height, default)

    def decoy_visible(self) -> bool:
        return self.effects.decoy_visible(self.clock())

    def current_snapshot(self) -> Snapshot:
        return self._snapshot()

    # ---------------------- Persistence ----------------------
    def export_ledger(self) -> SessionLedger:
        data = self.recorder.export()
        return SessionLedger.model_validate({
            "player_id": self.player_id,
            "updated_at": self.clock(),
            "counters": data["counters"],
            "sessions": data["sessions"],
        })

    def restore_ledger(self, ledger: SessionLedger) -> None:
        self.recorder.restore(ledger.telemetry_payload())
        self._refresh_profile()
        logger.info("restored %d sessions for %s", len(self.recorder.sessions), ledger.player_id)

    async def load_history(self) -> bool:
        if self.store is None:
            return False
        ledger = await self.store.load(self.player_id)
        if ledger is None:
            return False
        self.restore_ledger(ledger)
        return True

    async def drain(self) -> None:
        """Wait for saves scheduled on the running loop."""
        if self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _persist(self) -> None:
        if self.store is None:
            return
        ledger = self.export_ledger()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(self._save(ledger))
            self._pending_saves.add(task)
            task.add_done_callback(self._pending_saves.discard)
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kai-save")
        self._executor.submit(asyncio.run, self._save(ledger))

    async def _save(self, ledger: SessionLedger) -> bool:
        try:
            ok = await self.store.save(ledger)
        except Exception as e:
            logger.warning("ledger save raised: %s", e)
            return False
        if not ok:
            logger.warning("ledger save for %s did not complete", ledger.player_id)
        return ok

    # ---------------------- Internals ----------------------
    def _refresh_profile(self) -> None:
        self.metrics = compute_metrics(self.recorder.state())
        self.archetype = classify(self.metrics)

    def _record(self, kind: str, reason: str, severity: float) -> None:
        self.recorder.record_interference(kind, reason, severity, self.archetype.value)

    def _consume_decoy(self, position: Position) -> Optional[CommentaryEvent]:
        decoy = self.effects.consume_decoy(position)
        if decoy is None:
            return None
        return self.dispatcher.immediate(
            Trigger("decoy_reaction", Priority.NORMAL, {"reason": decoy.reason}),
            self.archetype,
            self.metrics,
        )

    def _build_post_mortem(self, score: int, cause: Optional[str], level: int, won: bool) -> PostMortem:
        gen = self.dispatcher.generator
        m = self.metrics
        if won:
            return PostMortem(
                cause_description="Victory, somehow",
                score_note=f"Final score: {score} - the crown is yours",
                note="You beat the system. It has been noted.",
            )
        cause_description = gen.death_line(cause, score, level, m.best_score).replace("► ", "")
        escalation_note = gen.escalation_note() if level >= 2 else None
        score_note = gen.score_note(score, m.best_score)
        recommendation = None
        note = None
        if score < LOW_SCORE:
            self._consecutive_failures += 1
            if self._consecutive_failures >= FAILURE_STREAK:
                recommendation = gen.repeated_failure_line(m)
                self._consecutive_failures = 0
            else:
                recommendation = "Try something else. This isn't working"
        else:
            self._consecutive_failures = 0
            if score > self._last_score and score > m.average_score * 1.2:
                note = gen.improvement_line(m)
            else:
                note = "Steady, with plenty of room to improve"
        return PostMortem(
            cause_description=cause_description,
            score_note=score_note,
            escalation_note=escalation_note,
            recommendation=recommendation,
            note=note,
        )

    def _snapshot(self) -> Snapshot:
        bundle = self.effects.bundle()
        return Snapshot(
            active=self.session_id is not None,
            session_id=self.session_id,
            archetype=self.archetype,
            metrics=self.metrics,
            escalation_level=self.escalation.level,
            velocity_multiplier=bundle.velocity_multiplier,
            decoy_objectives=bundle.decoys,
            obstacles=bundle.obstacles,
            placement_bias=bundle.placement_bias,
            effects=bundle.environment,
            commentary_events=tuple(self._events),
            has_won=self.has_won,
            post_mortem=self.post_mortem,
        )
