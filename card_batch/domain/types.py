"""
card_batch.domain.types -- Pure frozen dataclasses for chunked posting runs.

ZERO I/O.  Frozen dataclasses with enum status fields, following the same
pattern as the kernel DTOs.

Invariants enforced:
    - Record lifecycle: RECEIVED -> VALIDATING -> POSTING -> POSTED, or
      VALIDATING -> REJECTING -> REJECTED.  Any other move raises
      InvalidRecordTransitionError.
    - RunCounters are immutable; merging returns a new instance, so a chunk's
      counters only reach run state when the chunk commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from card_kernel.exceptions import InvalidRecordTransitionError


# =============================================================================
# Status enums
# =============================================================================


class RunStatus(str, Enum):
    """Run-level lifecycle status."""

    RUNNING = "running"
    COMPLETED = "completed"  # Every record posted
    COMPLETED_WITH_REJECTIONS = "completed_with_rejections"
    FAILED = "failed"  # Aborted: retries exhausted or skip limit exceeded
    CANCELLED = "cancelled"  # Stopped between chunks on request

    @property
    def is_resumable(self) -> bool:
        return self in (RunStatus.FAILED, RunStatus.CANCELLED)


class RecordState(str, Enum):
    """Per-record lifecycle state within a chunk."""

    RECEIVED = "received"
    VALIDATING = "validating"
    POSTING = "posting"
    POSTED = "posted"
    REJECTING = "rejecting"
    REJECTED = "rejected"


RECORD_TRANSITIONS: dict[RecordState, frozenset[RecordState]] = {
    RecordState.RECEIVED: frozenset({RecordState.VALIDATING}),
    RecordState.VALIDATING: frozenset({RecordState.POSTING, RecordState.REJECTING}),
    RecordState.POSTING: frozenset({RecordState.POSTED, RecordState.REJECTING}),
    RecordState.REJECTING: frozenset({RecordState.REJECTED}),
    RecordState.POSTED: frozenset(),
    RecordState.REJECTED: frozenset(),
}


def advance_record_state(current: RecordState, target: RecordState) -> RecordState:
    """Return ``target`` if the lifecycle allows current -> target."""
    if target not in RECORD_TRANSITIONS[current]:
        raise InvalidRecordTransitionError(current.value, target.value)
    return target


# =============================================================================
# Condition codes
# =============================================================================

CONDITION_CODE_OK = 0
CONDITION_CODE_REJECTIONS = 4


# =============================================================================
# Counters and results
# =============================================================================


@dataclass(frozen=True)
class RunCounters:
    """Records read, posted, rejected and skipped (system-error rejections).

    ``skipped`` records are also counted in ``rejected``: each one produced
    a SYSTEM_ERROR rejection record.
    """

    read: int = 0
    posted: int = 0
    rejected: int = 0
    skipped: int = 0

    def merge(self, other: RunCounters) -> RunCounters:
        return RunCounters(
            read=self.read + other.read,
            posted=self.posted + other.posted,
            rejected=self.rejected + other.rejected,
            skipped=self.skipped + other.skipped,
        )


@dataclass(frozen=True)
class ChunkResult:
    """Outcome of one committed chunk."""

    chunk_index: int
    first_offset: int
    counters: RunCounters
    attempts: int = 1


@dataclass(frozen=True)
class PostingRun:
    """Immutable snapshot of a persisted posting run."""

    run_id: UUID
    run_number: int
    status: RunStatus
    processing_date: date
    chunk_size: int
    retry_limit: int
    skip_limit: int
    counters: RunCounters
    chunks_committed: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_summary: str | None = None


@dataclass(frozen=True)
class PostingRunResult:
    """Immutable result of a run that finished (completed or cancelled).

    Returned by ``ChunkExecutionController.run()`` and ``resume()``.
    """

    run_id: UUID
    run_number: int
    status: RunStatus
    counters: RunCounters
    chunks_committed: int
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def condition_code(self) -> int:
        """Legacy job return code: 0 clean, 4 when anything was rejected."""
        if self.counters.rejected > 0:
            return CONDITION_CODE_REJECTIONS
        return CONDITION_CODE_OK
