"""Pipeline state model for orchestration."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

PipelinePhase = Literal[
    "idle",
    "chunking",
    "generating",
    "aggregating",
    "adjusting_difficulty",
    "done",
    "failed",
]

# Allowed successors of each phase
_TRANSITIONS: dict[str, frozenset[str]] = {
    "idle": frozenset({"chunking", "failed"}),
    "chunking": frozenset({"generating", "failed"}),
    "generating": frozenset({"aggregating", "failed"}),
    "aggregating": frozenset({"adjusting_difficulty", "done", "failed"}),
    "adjusting_difficulty": frozenset({"done", "failed"}),
    "done": frozenset(),
    "failed": frozenset(),
}


@dataclass
class PhaseTransition:
    """One recorded phase change."""

    phase: PipelinePhase
    at: datetime


@dataclass
class PipelineState:
    """State for one pipeline run. A fresh instance is created per run."""

    material_type: str
    status: PipelinePhase = "idle"
    history: list[PhaseTransition] = field(default_factory=list)

    # Progress/tracking
    units_total: int = 0
    units_done: int = 0
    failed_unit: str | None = None
    error: str | None = None

    def advance(self, phase: PipelinePhase) -> None:
        """Move to the next phase, recording the transition.

        Raises:
            RuntimeError: If the transition is not allowed from the current phase
        """
        if phase not in _TRANSITIONS[self.status]:
            raise RuntimeError(f"invalid pipeline transition {self.status} -> {phase}")
        self.status = phase
        self.history.append(PhaseTransition(phase=phase, at=datetime.now(timezone.utc)))

    def fail(self, error: BaseException, unit: str | None = None) -> None:
        """Move to `failed` from any non-terminal phase."""
        if self.status in ("done", "failed"):
            return
        self.failed_unit = unit
        self.error = str(error)
        self.advance("failed")

    @property
    def phases(self) -> list[str]:
        """Recorded phases in order, starting with idle."""
        return ["idle", *(t.phase for t in self.history)]
