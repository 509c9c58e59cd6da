"""
ChunkExecutionController -- chunked, retryable posting runs.

Contract:
    - ``run(records)`` starts a new posting run and drives every record
      through validation and then posting or rejection, chunk by chunk.
    - ``resume(run_id, records)`` continues a FAILED or CANCELLED run from
      its first uncommitted record.
    - ``cancel()`` asks a running run to stop at the next chunk boundary.

Architecture: card_batch/services.  Imports from card_batch.domain,
    card_batch.models, and kernel services.

Invariants enforced:
    - One transaction per chunk attempt; one SAVEPOINT per record.  A chunk
      commits all of its postings, rejections and run counters or none.
    - Transient storage failures roll the chunk back and retry it from its
      first record, at most ``retry_limit`` times with linear backoff.
    - Any other per-record exception becomes a SYSTEM_ERROR rejection and
      counts as a skip; exceeding ``skip_limit`` aborts the run.
    - Counters are chunk-local until commit, then merged into run state.
    - Generated transaction ids depend only on (processing date, run
      number, input offset), so a retried chunk regenerates the same ids.
    - All timestamps from the injected Clock.

Failure modes:
    - RetryExhaustedError: a chunk kept failing transiently.  Run FAILED.
    - SkipLimitExceededError: too many system-error records.  Run FAILED.
    - Any non-transient chunk-level failure (e.g. a commit rejected by the
      database) marks the run FAILED and propagates unchanged.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from datetime import date
from itertools import islice
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from card_kernel.domain.clock import Clock, SystemClock
from card_kernel.domain.dtos import TransactionInput
from card_kernel.domain.ports import ReferencePorts
from card_kernel.domain.validation import ValidationChain
from card_kernel.exceptions import (
    PostingRunNotFoundError,
    PostingRunNotResumableError,
    RetryExhaustedError,
    SkipLimitExceededError,
    TransientStorageError,
)
from card_kernel.logging_config import LogContext, get_logger
from card_kernel.selectors.reference_selector import SqlAlchemyReferencePorts
from card_kernel.services.posting_engine import PostingEngine, TransactionIdGenerator
from card_kernel.services.rejection_sink import RejectionSink
from card_kernel.services.sequence_service import SequenceService

from card_batch.domain.types import (
    ChunkResult,
    PostingRun,
    PostingRunResult,
    RecordState,
    RunCounters,
    RunStatus,
    advance_record_state,
)
from card_batch.models.run import PostingRunModel

logger = get_logger("batch.controller")


TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientStorageError,
    OperationalError,
    PoolTimeoutError,
    TimeoutError,
)


def is_transient(exc: BaseException) -> bool:
    """True when ``exc`` is expected to clear if the chunk is retried."""
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class ChunkExecutionController:
    """Drives posting runs over an iterable of TransactionInput.

    Non-goals:
        - Does NOT parallelize: chunks run one at a time and records within
          a chunk run sequentially.
        - Does NOT decode raw input; callers supply TransactionInput values.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        chunk_size: int = 1000,
        retry_limit: int = 3,
        skip_limit: int = 10,
        retry_backoff_seconds: float = 0.5,
        processing_date: date | None = None,
        ports_factory: Callable[[Session], ReferencePorts] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if retry_limit < 0:
            raise ValueError(f"retry_limit must be >= 0, got {retry_limit}")
        if skip_limit < 0:
            raise ValueError(f"skip_limit must be >= 0, got {skip_limit}")
        if retry_backoff_seconds < 0:
            raise ValueError(
                f"retry_backoff_seconds must be >= 0, got {retry_backoff_seconds}"
            )
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._chunk_size = chunk_size
        self._retry_limit = retry_limit
        self._skip_limit = skip_limit
        self._retry_backoff_seconds = retry_backoff_seconds
        self._processing_date = processing_date
        self._ports_factory = ports_factory or SqlAlchemyReferencePorts
        self._sleep = sleep
        self._cancel_event = threading.Event()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self, records: Iterable[TransactionInput]) -> PostingRunResult:
        """Start a new posting run over ``records``."""
        run = self._start_run()
        return self._execute(run, iter(records))

    def resume(
        self, run_id: UUID, records: Iterable[TransactionInput],
    ) -> PostingRunResult:
        """Continue a FAILED or CANCELLED run.

        ``records`` must be the same input the run started with; the records
        already committed (``records_read``) are skipped.
        """
        run = self._reopen_run(run_id)
        iterator = islice(iter(records), run.counters.read, None)
        logger.info(
            "posting_run_resumed",
            extra={
                "run_id": str(run_id),
                "run_number": run.run_number,
                "resume_offset": run.counters.read,
            },
        )
        return self._execute(run, iterator)

    def cancel(self) -> None:
        """Request a stop at the next chunk boundary."""
        self._cancel_event.set()
        logger.info("posting_run_cancel_requested")

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def _start_run(self) -> PostingRun:
        processing_date = self._processing_date or self._clock.today()
        session = self._session_factory()
        try:
            run_number = SequenceService(session).next_value(
                SequenceService.POSTING_RUN,
            )
            model = PostingRunModel(
                id=uuid4(),
                run_number=run_number,
                status=RunStatus.RUNNING.value,
                processing_date=processing_date,
                chunk_size=self._chunk_size,
                retry_limit=self._retry_limit,
                skip_limit=self._skip_limit,
                records_read=0,
                records_posted=0,
                records_rejected=0,
                records_skipped=0,
                chunks_committed=0,
                started_at=self._clock.now(),
            )
            session.add(model)
            session.flush()
            run = model.to_dto()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "posting_run_started",
            extra={
                "run_id": str(run.run_id),
                "run_number": run.run_number,
                "processing_date": processing_date.isoformat(),
                "chunk_size": self._chunk_size,
                "retry_limit": self._retry_limit,
                "skip_limit": self._skip_limit,
            },
        )
        return run

    def _reopen_run(self, run_id: UUID) -> PostingRun:
        session = self._session_factory()
        try:
            model = session.get(PostingRunModel, run_id, with_for_update=True)
            if model is None:
                raise PostingRunNotFoundError(str(run_id))
            status = RunStatus(model.status)
            if not status.is_resumable:
                raise PostingRunNotResumableError(str(run_id), status.value)
            model.status = RunStatus.RUNNING.value
            model.completed_at = None
            model.error_summary = None
            session.flush()
            run = model.to_dto()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return run

    def _finish_run(
        self, run_id: UUID, status: RunStatus, error_summary: str | None = None,
    ) -> PostingRun:
        session = self._session_factory()
        try:
            model = session.get(PostingRunModel, run_id, with_for_update=True)
            model.status = status.value
            model.completed_at = self._clock.now()
            model.error_summary = error_summary
            session.flush()
            run = model.to_dto()
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return run

    def _mark_failed(self, run_id: UUID, exc: BaseException) -> None:
        try:
            self._finish_run(run_id, RunStatus.FAILED, error_summary=str(exc))
        except Exception:
            # The original failure propagates; this one is only logged.
            logger.exception(
                "posting_run_mark_failed_error", extra={"run_id": str(run_id)},
            )
            return
        logger.error(
            "posting_run_failed",
            extra={
                "run_id": str(run_id),
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _execute(
        self, run: PostingRun, records: Iterator[TransactionInput],
    ) -> PostingRunResult:
        start_time = time.monotonic()
        id_generator = TransactionIdGenerator(run.processing_date, run.run_number)
        counters = run.counters
        chunks_committed = run.chunks_committed
        offset = run.counters.read
        status = RunStatus.RUNNING

        with LogContext.bind(run_id=run.run_id):
            try:
                while True:
                    if self._cancel_event.is_set():
                        status = RunStatus.CANCELLED
                        break
                    chunk = list(islice(records, self._chunk_size))
                    if not chunk:
                        break
                    result = self._process_chunk_with_retry(
                        run, chunk, chunks_committed, offset,
                        counters, id_generator,
                    )
                    counters = counters.merge(result.counters)
                    chunks_committed += 1
                    offset += len(chunk)

                if status is RunStatus.RUNNING:
                    status = (
                        RunStatus.COMPLETED_WITH_REJECTIONS
                        if counters.rejected > 0
                        else RunStatus.COMPLETED
                    )
                final = self._finish_run(run.run_id, status)
            except Exception as exc:
                self._mark_failed(run.run_id, exc)
                raise
            finally:
                self._cancel_event.clear()

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            "posting_run_finished",
            extra={
                "run_id": str(run.run_id),
                "status": status.value,
                "records_read": counters.read,
                "records_posted": counters.posted,
                "records_rejected": counters.rejected,
                "records_skipped": counters.skipped,
                "chunks_committed": chunks_committed,
                "duration_ms": duration_ms,
            },
        )
        return PostingRunResult(
            run_id=run.run_id,
            run_number=run.run_number,
            status=status,
            counters=counters,
            chunks_committed=chunks_committed,
            started_at=final.started_at,
            completed_at=final.completed_at,
            duration_ms=duration_ms,
        )

    def _process_chunk_with_retry(
        self,
        run: PostingRun,
        chunk: list[TransactionInput],
        chunk_index: int,
        first_offset: int,
        committed: RunCounters,
        id_generator: TransactionIdGenerator,
    ) -> ChunkResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                with LogContext.bind(chunk_index=chunk_index):
                    counters = self._process_chunk(
                        run, chunk, chunk_index, first_offset,
                        committed, id_generator,
                    )
            except Exception as exc:
                if not is_transient(exc):
                    raise
                if attempt > self._retry_limit:
                    logger.error(
                        "chunk_retry_exhausted",
                        extra={
                            "chunk_index": chunk_index,
                            "attempts": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise RetryExhaustedError(
                        str(run.run_id), chunk_index, attempt, str(exc),
                    ) from exc
                delay = self._retry_backoff_seconds * attempt
                logger.warning(
                    "chunk_retry_scheduled",
                    extra={
                        "chunk_index": chunk_index,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                if delay > 0:
                    self._sleep(delay)
                continue

            logger.info(
                "chunk_committed",
                extra={
                    "chunk_index": chunk_index,
                    "first_offset": first_offset,
                    "attempts": attempt,
                    "records_read": counters.read,
                    "records_posted": counters.posted,
                    "records_rejected": counters.rejected,
                    "records_skipped": counters.skipped,
                },
            )
            return ChunkResult(
                chunk_index=chunk_index,
                first_offset=first_offset,
                counters=counters,
                attempts=attempt,
            )

    def _process_chunk(
        self,
        run: PostingRun,
        chunk: list[TransactionInput],
        chunk_index: int,
        first_offset: int,
        committed: RunCounters,
        id_generator: TransactionIdGenerator,
    ) -> RunCounters:
        """One attempt at one chunk, in one transaction.  Commits on success."""
        session = self._session_factory()
        try:
            ports = self._ports_factory(session)
            chain = ValidationChain(ports, run.processing_date)
            engine = PostingEngine(session, ports, self._clock, id_generator)
            sink = RejectionSink(session, self._clock)
            posted = rejected = skipped = 0

            for position, txn in enumerate(chunk):
                record_offset = first_offset + position
                with LogContext.bind(
                    record_offset=record_offset, transaction_id=txn.transaction_id,
                ):
                    state, was_skipped = self._process_record(
                        session, chain, engine, sink, run, txn, record_offset,
                    )
                    if state is RecordState.POSTED:
                        posted += 1
                    else:
                        rejected += 1
                    if was_skipped:
                        skipped += 1
                        if committed.skipped + skipped > self._skip_limit:
                            raise SkipLimitExceededError(
                                str(run.run_id),
                                self._skip_limit,
                                committed.skipped + skipped,
                            )

            counters = RunCounters(
                read=len(chunk),
                posted=posted,
                rejected=rejected,
                skipped=skipped,
            )
            totals = committed.merge(counters)

            model = session.get(PostingRunModel, run.run_id, with_for_update=True)
            model.records_read = totals.read
            model.records_posted = totals.posted
            model.records_rejected = totals.rejected
            model.records_skipped = totals.skipped
            model.chunks_committed = chunk_index + 1
            session.commit()
            return counters
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _process_record(
        self,
        session: Session,
        chain: ValidationChain,
        engine: PostingEngine,
        sink: RejectionSink,
        run: PostingRun,
        txn: TransactionInput,
        record_offset: int,
    ) -> tuple[RecordState, bool]:
        """Validate then post or reject one record in its own SAVEPOINT.

        Returns the final record state and whether the record was skipped
        (rejected with SYSTEM_ERROR).
        Transient errors propagate so the chunk is retried.
        """
        state = RecordState.RECEIVED
        savepoint = session.begin_nested()
        try:
            state = advance_record_state(state, RecordState.VALIDATING)
            outcome = chain.validate(txn)
            if outcome.passed:
                state = advance_record_state(state, RecordState.POSTING)
                engine.post(txn, outcome, run_id=run.run_id, record_offset=record_offset)
            else:
                state = advance_record_state(state, RecordState.REJECTING)
                sink.reject(txn, outcome, run_id=run.run_id, record_offset=record_offset)
            savepoint.commit()
            final = (
                RecordState.POSTED if state is RecordState.POSTING
                else RecordState.REJECTED
            )
            return advance_record_state(state, final), False
        except Exception as exc:
            savepoint.rollback()
            if is_transient(exc):
                raise
            error = exc
            logger.warning(
                "record_skipped",
                exc_info=True,
                extra={"record_state": state.value},
            )
            if state is not RecordState.REJECTING:
                state = advance_record_state(state, RecordState.REJECTING)

        sink.reject_exception(txn, error, run_id=run.run_id, record_offset=record_offset)
        return advance_record_state(state, RecordState.REJECTED), True
