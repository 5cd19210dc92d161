from .classifier import Archetype, classify
from .commentary import CommentaryDispatcher, CommentaryEvent, Priority, Trigger
from .core import GameMaster, PostMortem, Snapshot, TickResult
from .effects import BoardState, Decoy, InterferenceBundle, InterferenceEngine, Obstacle, PlacementBias
from .escalation import EscalationLevel, EscalationState
from .metrics import MetricsSnapshot, compute_metrics
from .schema import SessionLedger, upgrade_ledger
from .storage import FileLedgerStore, HttpLedgerStore, LedgerStore, RedisLedgerStore, get_ledger_store
from .telemetry import MoveRecord, Session, TelemetryRecorder

__all__ = [
    "Archetype",
    "BoardState",
    "CommentaryDispatcher",
    "CommentaryEvent",
    "Decoy",
    "EscalationLevel",
    "EscalationState",
    "FileLedgerStore",
    "GameMaster",
    "HttpLedgerStore",
    "InterferenceBundle",
    "InterferenceEngine",
    "LedgerStore",
    "MetricsSnapshot",
    "MoveRecord",
    "Obstacle",
    "PlacementBias",
    "PostMortem",
    "Priority",
    "RedisLedgerStore",
    "Session",
    "SessionLedger",
    "Snapshot",
    "TelemetryRecorder",
    "TickResult",
    "Trigger",
    "classify",
    "compute_metrics",
    "get_ledger_store",
    "upgrade_ledger",
]
