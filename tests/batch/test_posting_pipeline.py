"""Tests for card_batch.orchestrator.PostingPipeline wiring."""

from datetime import date
from decimal import Decimal

import pytest

from card_kernel.exceptions import InvalidConfigError

from card_batch.domain.types import RunStatus
from card_batch.orchestrator import PostingPipeline
from card_config.schema import PipelineConfig


class TestFromSessionFactory:
    def test_limits_flow_into_controller(self, session_factory, clock):
        config = PipelineConfig(chunk_size=7, retry_limit=1, skip_limit=2)

        pipeline = PostingPipeline.from_session_factory(
            session_factory, config, clock=clock,
        )

        controller = pipeline.controller
        assert controller._chunk_size == 7
        assert controller._retry_limit == 1
        assert controller._skip_limit == 2

    def test_run_posts_records(
        self, session_factory, clock, seed_reference, make_txn,
    ):
        seed_reference()
        pipeline = PostingPipeline.from_session_factory(
            session_factory,
            PipelineConfig(chunk_size=2, processing_date=date(2024, 3, 16)),
            clock=clock,
            sleep=lambda seconds: None,
        )

        result = pipeline.run([make_txn(), make_txn(amount=Decimal("-20.00"))])

        assert result.status == RunStatus.COMPLETED
        assert result.counters.posted == 2
        assert result.condition_code == 0

    def test_cancel_delegates(self, session_factory, clock):
        pipeline = PostingPipeline.from_session_factory(
            session_factory, PipelineConfig(), clock=clock,
        )

        pipeline.cancel()

        assert pipeline.controller.cancel_requested is True


class TestFromConfig:
    def test_requires_database_url(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            PostingPipeline.from_config(PipelineConfig())
        assert exc_info.value.field_name == "database_url"

    def test_builds_own_engine(self, clock):
        pipeline = PostingPipeline.from_config(
            PipelineConfig(database_url="sqlite://"), clock=clock, create_schema=True,
        )

        result = pipeline.run([])

        assert result.status == RunStatus.COMPLETED
        assert result.run_number == 1
