"""Per-service reconciliation state."""

from dataclasses import dataclass
from enum import Enum


class Phase(str, Enum):
    """Reconciliation loop phases."""

    INIT = "init"
    GRACE = "grace"
    IDLE = "idle"
    FETCHING = "fetching"
    VALIDATING = "validating"
    APPLYING = "applying"
    OBSERVING = "observing"
    RECOVERING = "recovering"
    ABORTED = "aborted"
    STOPPED = "stopped"


@dataclass
class ReconciliationState:
    """Mutable state owned by exactly one reconciliation loop."""

    current_commit: str | None = None
    last_successful_commit: str | None = None
    phase: Phase = Phase.INIT
    last_event_ts: float | None = None
    consecutive_failures: int = 0
    last_error: str | None = None
