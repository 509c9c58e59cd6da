"""
PostingPipeline -- DI container for the daily posting pipeline.

Contract:
    Wires the session factory, clock, reference ports and configured limits
    into a ChunkExecutionController.  Single place where the pipeline's
    dependencies are composed.

Architecture: card_batch (top-level).  This is the canonical entry point
    for running a daily posting.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from card_kernel.db.engine import build_engine, create_tables
from card_kernel.db.immutability import register_immutability_listeners
from card_kernel.domain.clock import Clock, SystemClock
from card_kernel.domain.dtos import TransactionInput
from card_kernel.domain.ports import ReferencePorts
from card_kernel.exceptions import InvalidConfigError
from card_kernel.logging_config import configure_logging, get_logger

from card_batch.domain.types import PostingRunResult
from card_batch.services.controller import ChunkExecutionController

if TYPE_CHECKING:
    from card_config.schema import PipelineConfig

logger = get_logger("batch.orchestrator")


class PostingPipeline:
    """DI container for the posting pipeline.

    Contract:
        - ``from_config()`` builds an engine from the config's database_url.
        - ``from_session_factory()`` wires an existing session factory.
        - ``run()`` / ``resume()`` / ``cancel()`` delegate to the controller.

    Non-goals:
        - Does NOT decode raw input files -- callers supply TransactionInput.
        - Does NOT schedule runs.
    """

    def __init__(self, controller: ChunkExecutionController) -> None:
        self._controller = controller

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: Callable[[], Session],
        config: PipelineConfig,
        clock: Clock | None = None,
        ports_factory: Callable[[Session], ReferencePorts] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> PostingPipeline:
        """Create a fully wired pipeline around an existing session factory."""
        register_immutability_listeners()
        kwargs = {}
        if sleep is not None:
            kwargs["sleep"] = sleep
        controller = ChunkExecutionController(
            session_factory=session_factory,
            clock=clock or SystemClock(),
            chunk_size=config.chunk_size,
            retry_limit=config.retry_limit,
            skip_limit=config.skip_limit,
            retry_backoff_seconds=config.retry_backoff_seconds,
            processing_date=config.processing_date,
            ports_factory=ports_factory,
            **kwargs,
        )
        logger.info(
            "posting_pipeline_wired",
            extra={
                "chunk_size": config.chunk_size,
                "retry_limit": config.retry_limit,
                "skip_limit": config.skip_limit,
            },
        )
        return cls(controller)

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        clock: Clock | None = None,
        create_schema: bool = False,
    ) -> PostingPipeline:
        """Create a pipeline with its own engine built from ``database_url``.

        Raises:
            InvalidConfigError: If the config carries no database_url.
        """
        if not config.database_url:
            raise InvalidConfigError(
                "database_url", config.database_url, "required to build an engine",
            )
        configure_logging()
        engine = build_engine(config.database_url)
        if create_schema:
            create_tables(engine)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        return cls.from_session_factory(session_factory, config, clock=clock)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def run(self, records: Iterable[TransactionInput]) -> PostingRunResult:
        return self._controller.run(records)

    def resume(
        self, run_id: UUID, records: Iterable[TransactionInput],
    ) -> PostingRunResult:
        return self._controller.resume(run_id, records)

    def cancel(self) -> None:
        self._controller.cancel()

    @property
    def controller(self) -> ChunkExecutionController:
        return self._controller
