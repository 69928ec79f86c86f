"""
Pipeline state machine.

Image path:
    IDLE → UPLOADING → ANALYZING_PRIMARY → (ANALYZING_FALLBACK) → ENRICHING
    → CACHING → PUBLISHED

Shortcuts:
    IDLE → PUBLISHED             (result cache hit on the upload fingerprint)
    IDLE → ANALYZING_PRIMARY     (barcode path, no upload)
    UPLOADING → ERRORED          (upload failures are not degraded)

Analysis failures never reach ERRORED: they degrade to an estimate.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from snapmeal.domain.shared.errors import InvalidTransitionError

logger = structlog.get_logger(__name__)


class PipelineState(str, Enum):
    """Pipeline states."""

    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    ANALYZING_PRIMARY = "ANALYZING_PRIMARY"
    ANALYZING_FALLBACK = "ANALYZING_FALLBACK"
    ENRICHING = "ENRICHING"
    CACHING = "CACHING"
    PUBLISHED = "PUBLISHED"
    ERRORED = "ERRORED"


ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset(
        {PipelineState.UPLOADING, PipelineState.ANALYZING_PRIMARY, PipelineState.PUBLISHED}
    ),
    PipelineState.UPLOADING: frozenset({PipelineState.ANALYZING_PRIMARY, PipelineState.ERRORED}),
    PipelineState.ANALYZING_PRIMARY: frozenset(
        {PipelineState.ANALYZING_FALLBACK, PipelineState.ENRICHING}
    ),
    PipelineState.ANALYZING_FALLBACK: frozenset({PipelineState.ENRICHING}),
    PipelineState.ENRICHING: frozenset({PipelineState.CACHING}),
    PipelineState.CACHING: frozenset({PipelineState.PUBLISHED}),
    PipelineState.PUBLISHED: frozenset(),
    PipelineState.ERRORED: frozenset(),
}

TERMINAL_STATES = frozenset({PipelineState.PUBLISHED, PipelineState.ERRORED})


class Transition(BaseModel):
    """Recorded state change."""

    model_config = ConfigDict(frozen=True)

    from_state: PipelineState
    to_state: PipelineState
    at: float = Field(..., description="Epoch seconds")
    detail: Optional[str] = None


class PipelineRun:
    """
    State of one pipeline request.

    Example:
        >>> run = PipelineRun()
        >>> run.transition(PipelineState.UPLOADING)
        >>> run.transition(PipelineState.ERRORED, detail="upload failed")
        >>> [t.to_state for t in run.history]
        [<PipelineState.UPLOADING: 'UPLOADING'>, <PipelineState.ERRORED: 'ERRORED'>]
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.state = PipelineState.IDLE
        self.history: List[Transition] = []
        self._clock = clock

    def can_transition(self, to_state: PipelineState) -> bool:
        return to_state in ALLOWED_TRANSITIONS[self.state]

    def transition(self, to_state: PipelineState, detail: Optional[str] = None) -> None:
        """
        Move to a new state.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if not self.can_transition(to_state):
            raise InvalidTransitionError(f"Cannot transition from {self.state.value} to {to_state.value}")

        self.history.append(
            Transition(from_state=self.state, to_state=to_state, at=self._clock(), detail=detail)
        )
        logger.debug("Pipeline transition", from_state=self.state.value, to_state=to_state.value, detail=detail)
        self.state = to_state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def states(self) -> List[PipelineState]:
        """Visited states in order, starting with IDLE."""
        return [PipelineState.IDLE] + [t.to_state for t in self.history]
