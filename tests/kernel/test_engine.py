"""Tests for card_kernel.db.engine -- engine construction and schema helpers."""

from sqlalchemy import inspect, select

from card_kernel.db.engine import build_engine, create_tables, drop_tables
from card_kernel.services.sequence_service import SequenceCounter


class TestBuildEngine:
    def test_in_memory_sqlite_shares_one_database(self):
        eng = build_engine("sqlite://")
        try:
            create_tables(eng)
            with eng.begin() as conn:
                conn.execute(
                    SequenceCounter.__table__.insert().values(
                        name="posting_run", current_value=4,
                    )
                )
            with eng.connect() as conn:
                value = conn.execute(select(SequenceCounter.current_value)).scalar()
            assert value == 4
        finally:
            eng.dispose()

    def test_savepoint_rollback_discards_only_inner_work(self, session):
        session.add(SequenceCounter(name="outer", current_value=1))
        session.flush()

        savepoint = session.begin_nested()
        session.add(SequenceCounter(name="inner", current_value=1))
        session.flush()
        savepoint.rollback()

        names = session.execute(select(SequenceCounter.name)).scalars().all()
        assert names == ["outer"]


class TestSchema:
    def test_create_tables_registers_every_pipeline_table(self):
        eng = build_engine("sqlite://")
        try:
            create_tables(eng)
            tables = set(inspect(eng).get_table_names())
        finally:
            eng.dispose()

        assert {
            "cards",
            "accounts",
            "category_balances",
            "posted_transactions",
            "transaction_rejections",
            "sequence_counters",
            "posting_runs",
        } <= tables

    def test_drop_tables_removes_them(self):
        eng = build_engine("sqlite://")
        try:
            create_tables(eng)
            drop_tables(eng)
            tables = inspect(eng).get_table_names()
        finally:
            eng.dispose()

        assert tables == []

    def test_create_tables_is_logged(self, captured_logs):
        eng = build_engine("sqlite://")
        try:
            create_tables(eng)
        finally:
            eng.dispose()

        [record] = [r for r in captured_logs() if r["message"] == "tables_created"]
        assert record["dialect"] == "sqlite"
