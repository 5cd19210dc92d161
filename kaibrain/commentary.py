from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .classifier import Archetype
from .effects import REASON_BAIT, REASON_COMFORT, REASON_SAFE_PLAY, REASON_SWARM
from .metrics import MetricsSnapshot

logger = logging.getLogger(__name__)

COOLDOWN_MIN_MS = 3000.0
COOLDOWN_MAX_MS = 5000.0


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}

# registration order breaks priority ties
CATEGORY_ORDER = [
    "system",
    "escalation",
    "speed",
    "obstacle",
    "decoy",
    "decoy_reaction",
    "taunt",
    "start",
]

SOURCES = {
    "system": "system",
    "start": "system",
    "escalation": "escalation",
    "speed": "interference",
    "obstacle": "interference",
    "decoy": "interference",
    "decoy_reaction": "interference",
    "taunt": "mid-game",
}


@dataclass(frozen=True)
class CommentaryEvent:
    message: str
    source: str
    priority: Priority

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "source": self.source, "priority": self.priority.value}


@dataclass
class Trigger:
    category: str
    priority: Priority = Priority.NORMAL
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return SOURCES.get(self.category, "system")

    def sort_key(self):
        try:
            order = CATEGORY_ORDER.index(self.category)
        except ValueError:
            order = len(CATEGORY_ORDER)
        return (PRIORITY_RANK[self.priority], order)


# ---------------------- Message pools ----------------------
NEW_SESSION_LINE = "► NEW SESSION... CALIBRATING EXPECTATIONS DOWNWARD"

START_LINES: Dict[Archetype, List[str]] = {
    Archetype.CAUTIOUS: [
        "► PROFILE LOADED: PLAYS IT SAFE, EVERY TIME",
        "► LAST RUN REVIEWED: RISK-FREE AND DULL",
        "► ADVICE: THE MIDDLE OF THE BOARD WON'T BITE",
    ],
    Archetype.GREEDY: [
        "► APPETITE RATING: OFF THE CHART",
        "► YOUR HUNGER OUTRUNS YOUR HANDS",
        "► FORECAST: A BIG, SHINY CRASH",
    ],
    Archetype.ERRATIC: [
        "► INPUT STREAM: PURE NOISE",
        "► CONSISTENCY INDEX: UNDEFINED",
        "► HINT: PLANS USUALLY HELP",
    ],
    Archetype.PREDICTABLE: [
        "► I ALREADY KNOW YOUR NEXT TURN",
        "► ORIGINALITY READING: FLATLINE",
        "► WATCHING YOU IS LIKE A REPLAY",
    ],
    Archetype.IMPROVING: [
        "► UPWARD TREND LOGGED... NOTED",
        "► YOU ARE GETTING LESS BAD",
        "► GUARDED OPTIMISM ENGAGED",
    ],
    Archetype.WALL_HUGGER: [
        "► YOU AND THE WALL: A LOVE STORY",
        "► OPEN SPACE AVOIDANCE: CONFIRMED",
        "► THE EDGE WILL NOT PROTECT YOU",
    ],
    Archetype.SPIRAL_ADDICT: [
        "► LOOP HABIT CONFIRMED",
        "► ROUND AND ROUND YOU GO",
        "► STRAIGHT LINES EXIST, YOU KNOW",
    ],
}

ESCALATION_DEATH_LINES = [
    "► THE WALLS FELT CLOSER? I ARRANGED THAT.",
    "► THE EXTRA SPEED WAS A GIFT FROM ME.",
    "► THAT FOOD WAS BAIT. YOU BIT.",
    "► YOUR HABITS DID MOST OF THE WORK.",
    "► COMFORT ZONE DISMANTLED. TASK COMPLETE.",
]

DEATH_LINES: Dict[str, List[str]] = {
    "wall": [
        "► WALL CONTACT... SPATIAL SENSE NOT FOUND",
        "► WALL: 1, PLAYER: 0",
        "► TURNING EARLIER IS AN OPTION",
        "► YOU LEANED ON THE WALL. IT LEANED BACK.",
    ],
    "self": [
        "► SELF-COLLISION... TEXTBOOK",
        "► YOU TIED YOURSELF IN A KNOT",
        "► DEVOURED BY YOUR OWN TAIL",
        "► HUNGER BEAT JUDGEMENT AGAIN",
    ],
    "obstacle": [
        "► I PUT THAT BLOCK THERE. YOU FOUND IT.",
        "► THE BOARD CHANGED. YOU DIDN'T.",
        "► OBSTACLE IMPACT... AS PLANNED",
        "► BLOCKS DO NOT MOVE. YOU SHOULD HAVE.",
    ],
}

ESCALATION_LINES = [
    "► PRESSURE RISING...",
    "► ESCALATION PROTOCOL: ONLINE",
    "► ADJUSTING THE ODDS AGAINST YOU",
    "► SYSTEM RECALIBRATED",
]

SPEED_LINES = [
    "► PICKING UP THE PACE",
    "► TOO SLOW. FIXING THAT.",
    "► FEELING THE RUSH YET?",
    "► TEMPO ADJUSTED",
]

OBSTACLE_LINES = [
    "► BOARD MODIFIED. ADAPT.",
    "► NEW OBSTRUCTION DEPLOYED",
    "► MIND THE FURNITURE",
]

DECOY_LINES: Dict[str, List[str]] = {
    REASON_SAFE_PLAY: ["► SAFE PLAY IS BORING. HAVE A TREAT."],
    REASON_COMFORT: ["► TOO COMFORTABLE. LET'S CHANGE THAT."],
    REASON_BAIT: ["► THAT ONE ISN'T FOR YOU."],
    REASON_SWARM: ["► SO MANY CHOICES... PICK WRONG"],
}
GENERIC_DECOY_LINES = [
    "► DECOY ONLINE... GOOD LUCK",
    "► BELIEVE NOTHING YOU SEE",
    "► NOT EVERYTHING HERE IS REAL",
]

DECOY_REACTION_LINES = [
    "► YOU FELL FOR THAT? FASCINATING.",
    "► GOTCHA.",
    "► NICE TRY. IT WAS NEVER THERE.",
    "► ILLUSION CONSUMED. NO POINTS.",
    "► FOOLED AGAIN.",
]

TAUNT_LINES = [
    "► STILL PLAYING SAFE, I SEE",
    "► I SEE EVERY MOVE YOU MAKE",
    "► SETTLING IN? DON'T.",
    "► PATTERN LOGGED... EXPLOITING",
    "► SAME OLD ROUTE",
]

REPEATED_FAILURE_LINES = [
    "Same mistake, same result",
    "Consistency achieved. In failing.",
    "A new plan might be overdue",
    "Have you considered an easier game?",
]

IMPROVEMENT_LINES = [
    "Improvement logged. Unexpected.",
    "Progress noted. Carry on, I suppose.",
    "Approaching competence",
    "Measurably less terrible than before",
]

ESCALATION_NOTES = [
    "Your habits made this too easy",
    "Comfort zone dismantled",
    "Every obstacle had your name on it",
    "The system adapted. You did not",
]

ALTERNATE_LINES: Dict[str, List[str]] = {
    "escalation": ["► THREAT LEVEL REVISED", "► INTERFERENCE BUDGET INCREASED"],
    "speed": ["► VELOCITY PATCH APPLIED", "► HURRY UP"],
    "obstacle": ["► TERRAIN UPDATED", "► WATCH YOUR STEP"],
    "decoy": ["► SOMETHING LOOKS TASTY...", "► TRUST ISSUES INCOMING"],
    "decoy_reaction": ["► EMPTY CALORIES", "► THAT WAS A HOLOGRAM"],
    "taunt": ["► STILL WATCHING", "► ANALYSIS CONTINUES...", "► UPDATING YOUR PROFILE"],
}
DEFAULT_ALTERNATES = ["► STILL WATCHING", "► PROCESSING PLAYER DATA..."]

WIN_LINE = "► THIS WAS NOT IN MY PROJECTIONS."


class CommentaryGenerator:
    """Picks lines from the message pools with the injected random source."""

    def __init__(self, rng: random.Random):
        self.rng = rng

    def _pick(self, pool: Sequence[str]) -> str:
        return pool[self.rng.randrange(len(pool))]

    def start_line(self, archetype: Archetype, total_sessions: int) -> str:
        if total_sessions == 0:
            return NEW_SESSION_LINE
        return self._pick(START_LINES.get(archetype, START_LINES[Archetype.CAUTIOUS]))

    def death_line(self, cause: Optional[str], score: int, level: int, best_score: int) -> str:
        if level >= 2:
            return self._pick(ESCALATION_DEATH_LINES)
        if cause in DEATH_LINES:
            return self._pick(DEATH_LINES[cause])
        return "► " + self.score_note(score, best_score).upper()

    def score_note(self, score: int, best_score: int) -> str:
        if score == 0:
            return "Score: zero... a rare talent"
        if score < 30:
            return f"Score: {score} - thanks for participating"
        if score >= best_score and best_score > 0:
            return f"Score: {score} - new personal best. Miracles happen"
        return f"Score: {score} - about as average as predicted"

    def escalation_line(self, level: int) -> str:
        pool = ESCALATION_LINES + [f"► INTERFERENCE LEVEL {level}: ACTIVE"]
        return self._pick(pool)

    def speed_line(self, multiplier: float) -> str:
        pool = SPEED_LINES + [f"► SPEED FACTOR: {multiplier:.1f}X"]
        return self._pick(pool)

    def decoy_line(self, reason: Optional[str]) -> str:
        if reason in DECOY_LINES and self.rng.random() < 0.5:
            return self._pick(DECOY_LINES[reason])
        return self._pick(GENERIC_DECOY_LINES)

    def taunt_line(self, archetype: Archetype, m: MetricsSnapshot) -> str:
        if archetype == Archetype.CAUTIOUS:
            return "► CAUTION WON'T SAVE YOU"
        if archetype == Archetype.PREDICTABLE:
            favourite = max(m.directional_bias, key=m.directional_bias.get) if m.directional_bias else "LEFT"
            return f"► YOU KEEP GOING {favourite}. WATCH THIS."
        if m.comfort_zone > 0.7:
            return "► TOO COMFORTABLE. LET'S CHANGE THAT."
        return self._pick(TAUNT_LINES)

    def repeated_failure_line(self, m: MetricsSnapshot) -> str:
        if m.total_sessions > 5 and m.average_score < 20:
            return f"After {m.total_sessions} attempts... still warming up?"
        return self._pick(REPEATED_FAILURE_LINES)

    def improvement_line(self, m: MetricsSnapshot) -> str:
        if m.score_trend > 0.5:
            return "Real improvement. I am, reluctantly, impressed"
        return self._pick(IMPROVEMENT_LINES)

    def escalation_note(self) -> str:
        return self._pick(ESCALATION_NOTES)

    def alternate(self, category: str, avoid: Optional[str] = None) -> str:
        pool = [line for line in ALTERNATE_LINES.get(category, DEFAULT_ALTERNATES) if line != avoid]
        return self._pick(pool or DEFAULT_ALTERNATES)

    def line_for(self, trigger: Trigger, archetype: Archetype, m: MetricsSnapshot) -> str:
        ctx = trigger.context
        cat = trigger.category
        if cat == "system":
            return ctx.get("message", WIN_LINE)
        if cat == "start":
            return self.start_line(archetype, m.total_sessions)
        if cat == "escalation":
            return self.escalation_line(int(ctx.get("level", 0)))
        if cat == "speed":
            return self.speed_line(float(ctx.get("multiplier", 1.0)))
        if cat == "obstacle":
            return self._pick(OBSTACLE_LINES)
        if cat == "decoy":
            return self.decoy_line(ctx.get("reason"))
        if cat == "decoy_reaction":
            return self._pick(DECOY_REACTION_LINES)
        return self.taunt_line(archetype, m)


class CommentaryDispatcher:
    """
    Turns a tick's triggers into at most one event per category.

    High priority goes straight out. Normal and low wait for the cooldown,
    which restarts (3-5 s, randomized) whenever one of them is emitted.
    """

    def __init__(self, rng: random.Random, generator: Optional[CommentaryGenerator] = None):
        self.rng = rng
        self.generator = generator or CommentaryGenerator(rng)
        self.last_message: Optional[str] = None
        self.cooldown_until: Optional[float] = None

    def reset(self) -> None:
        self.last_message = None
        self.cooldown_until = None

    def cooling_down(self, now: float) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until

    # ---------------------- Public API ----------------------
    def dispatch(
        self,
        triggers: Sequence[Trigger],
        now: float,
        archetype: Archetype,
        metrics: MetricsSnapshot,
    ) -> List[CommentaryEvent]:
        events: List[CommentaryEvent] = []
        seen = set()
        for trig in sorted(triggers, key=lambda t: t.sort_key()):
            if trig.category in seen:
                continue
            seen.add(trig.category)
            if trig.priority != Priority.HIGH and self.cooling_down(now):
                continue
            events.append(self._emit(trig, archetype, metrics))
            if trig.priority != Priority.HIGH:
                self.cooldown_until = now + self.rng.uniform(COOLDOWN_MIN_MS, COOLDOWN_MAX_MS)
        return events

    def immediate(self, trigger: Trigger, archetype: Archetype, metrics: MetricsSnapshot) -> CommentaryEvent:
        """Emit regardless of cooldown. The cooldown is left untouched."""
        return self._emit(trigger, archetype, metrics)

    def _emit(self, trig: Trigger, archetype: Archetype, metrics: MetricsSnapshot) -> CommentaryEvent:
        message = self.generator.line_for(trig, archetype, metrics)
        if message == self.last_message:
            message = self.generator.alternate(trig.category, avoid=self.last_message)
        self.last_message = message
        logger.debug("commentary [%s/%s] %s", trig.category, trig.priority.value, message)
        return CommentaryEvent(message=message, source=trig.source, priority=trig.priority)
