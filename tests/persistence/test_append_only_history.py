"""
Append-only enforcement on stage history and additional settlement rows.

These tests go around the repositories and edit rows through the ORM
directly, which is exactly what the listeners exist to stop.
"""

import pytest

from fieldwork_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fieldwork_kernel.exceptions import ImmutabilityViolationError
from fieldwork_kernel.models import AdditionalSettlementModel, StageHistoryModel
from fieldwork_kernel.services.sql_repositories import SqlScheduleRepository


@pytest.fixture
def stored_job(session, make_job, engine):
    job = make_job()
    engine.register_additional_settlement(job, "cat-1", 1000, "야간", "admin-kim")
    SqlScheduleRepository(session).save_aggregate(job)
    session.commit()
    return job


class TestStageHistoryRows:
    def test_update_is_rejected(self, session, stored_job):
        row = session.query(StageHistoryModel).first()
        row.actor = "someone-else"

        with pytest.raises(ImmutabilityViolationError) as exc:
            session.flush()
        assert exc.value.entity_type == "StageHistoryModel"
        session.rollback()

        assert session.query(StageHistoryModel).first().actor == "system"

    def test_delete_is_rejected(self, session, stored_job):
        row = session.query(StageHistoryModel).first()
        session.delete(row)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert session.query(StageHistoryModel).count() == 3


class TestAdditionalSettlementRows:
    def test_update_is_rejected(self, session, stored_job):
        row = session.query(AdditionalSettlementModel).one()
        row.reason = "수정"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_is_rejected(self, session, stored_job):
        session.delete(session.query(AdditionalSettlementModel).one())

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert session.query(AdditionalSettlementModel).count() == 1

    def test_violation_is_logged(self, session, stored_job, captured_logs):
        session.query(AdditionalSettlementModel).one().reason = "수정"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[-1]["invariant"] == "append_only_history"
        assert blocked[-1]["operation"] == "UPDATE"


class TestListenerRegistration:
    def test_registration_is_idempotent(self, session, stored_job):
        register_immutability_listeners()
        register_immutability_listeners()
        unregister_immutability_listeners()

        row = session.query(StageHistoryModel).first()
        row.actor = "fixup"
        session.flush()
        session.rollback()

        register_immutability_listeners()
        row = session.query(StageHistoryModel).first()
        row.actor = "fixup"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
