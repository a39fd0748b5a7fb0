"""
Tests for engine initialization and the transactional session scope.
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy import inspect

from controller_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from controller_kernel.domain.budget import Classification, GeneratedBudgetEntry
from controller_modules.budget.orm import GeneratedBudgetEntryModel


@pytest.fixture
def sqlite_engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


def model(month):
    entry = GeneratedBudgetEntry(
        rule_id="r1",
        target_account_ref="4.1",
        classification=Classification.MANUAL,
        year=2025,
        month=month,
        computed_value=Decimal("0"),
        note="Manual entry",
    )
    return GeneratedBudgetEntryModel.from_dto(
        entry, created_by="tester", generated_at=datetime(2025, 1, 1, tzinfo=UTC)
    )


class TestEngineLifecycle:

    def test_uninitialized(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_create_tables(self, sqlite_engine):
        assert "budget_generated_entries" in inspect(get_engine()).get_table_names()


class TestSessionScope:

    def test_commits_on_success(self, sqlite_engine):
        with session_scope() as session:
            session.add(model(1))

        with session_scope() as session:
            assert session.query(GeneratedBudgetEntryModel).count() == 1

    def test_rolls_back_on_error(self, sqlite_engine, captured_logs):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(model(1))
                session.flush()
                raise ValueError("boom")

        with session_scope() as session:
            assert session.query(GeneratedBudgetEntryModel).count() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
