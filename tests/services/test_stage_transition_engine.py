"""
StageTransitionEngine: worker gate, amount capture, cancellation and
additional settlements.
"""

from decimal import Decimal

import pytest

from fieldwork_kernel.domain.outcomes import (
    AwaitingWorkerAssignment,
    Transitioned,
    WorkerAssigned,
)
from fieldwork_kernel.domain.stages import PaymentStatus, WorkStage, WorkType
from fieldwork_kernel.domain.values import Cargo, Location, RateEntry, TransportInfo
from fieldwork_kernel.exceptions import (
    CategoryScheduleNotFoundError,
    CycleError,
    InvalidTransitionError,
    MissingAmountError,
    ValidationError,
    WorkerNotFoundError,
)
from fieldwork_kernel.services.process_path_resolver import ProcessPathResolver

TEST_ACTOR = "admin-kim"


def _to_in_progress(engine, job, category_id="cat-1", worker_id="w-kim"):
    engine.advance(job, category_id, WorkStage.PREPARING, TEST_ACTOR)
    return engine.assign_worker(job, category_id, worker_id, TEST_ACTOR)


class TestForwardSteps:
    def test_prepare(self, engine, make_job, clock):
        job = make_job()
        outcome = engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)

        assert isinstance(outcome, Transitioned)
        assert (outcome.from_stage, outcome.to_stage) == (
            WorkStage.SCHEDULED,
            WorkStage.PREPARING,
        )
        assert job.require("cat-1").stage is WorkStage.PREPARING
        assert job.stage_history[-1] == outcome.record
        assert outcome.record.actor == TEST_ACTOR
        assert outcome.record.timestamp == clock.now()

    def test_stage_given_as_label(self, engine, make_job):
        job = make_job()
        engine.advance(job, "cat-1", "준비중", TEST_ACTOR)
        assert job.require("cat-1").stage is WorkStage.PREPARING

    def test_unknown_stage_label(self, engine, make_job):
        with pytest.raises(ValidationError) as exc:
            engine.advance(make_job(), "cat-1", "끝", TEST_ACTOR)
        assert exc.value.field == "target_stage"

    @pytest.mark.parametrize("target", [WorkStage.IN_PROGRESS, WorkStage.COMPLETED])
    def test_skipping_a_stage_is_rejected(self, engine, make_job, target):
        job = make_job()
        history = job.stage_history
        with pytest.raises(InvalidTransitionError) as exc:
            engine.advance(job, "cat-1", target, TEST_ACTOR, amount=0)
        assert exc.value.code == "INVALID_TRANSITION"
        assert job.require("cat-1").stage is WorkStage.SCHEDULED
        assert job.stage_history == history

    def test_going_back_is_rejected(self, engine, make_job):
        job = make_job()
        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        with pytest.raises(InvalidTransitionError):
            engine.advance(job, "cat-1", WorkStage.SCHEDULED, TEST_ACTOR)

    def test_unknown_unit(self, engine, make_job):
        with pytest.raises(CategoryScheduleNotFoundError):
            engine.advance(make_job(), "cat-9", WorkStage.PREPARING, TEST_ACTOR)

    def test_settlement_input_only_on_completion(self, engine, make_job):
        with pytest.raises(ValidationError):
            engine.advance(make_job(), "cat-1", WorkStage.PREPARING, TEST_ACTOR, amount=100)


class TestWorkerGate:
    def test_start_without_worker_suspends(self, engine, make_job):
        job = make_job()
        engine.advance(job, "cat-2", WorkStage.PREPARING, TEST_ACTOR)
        history = job.stage_history

        outcome = engine.advance(job, "cat-2", WorkStage.IN_PROGRESS, TEST_ACTOR)

        assert isinstance(outcome, AwaitingWorkerAssignment)
        assert outcome.is_suspended
        assert outcome.requested_stage is WorkStage.IN_PROGRESS
        assert [w.name for w in outcome.candidates] == ["김반장", "이반장"]
        assert job.require("cat-2").stage is WorkStage.PREPARING
        assert job.stage_history == history

    def test_no_eligible_workers(self, engine, make_job, graph):
        netting = graph.add_category("그물")
        job = make_job()
        ProcessPathResolver().populate(job, graph.snapshot(), netting.id)
        engine.advance(job, netting.id, WorkStage.PREPARING, TEST_ACTOR)

        outcome = engine.advance(job, netting.id, WorkStage.IN_PROGRESS, TEST_ACTOR)
        assert isinstance(outcome, AwaitingWorkerAssignment)
        assert outcome.candidates == ()

    def test_assign_in_preparing_starts_the_work(self, engine, make_job, clock):
        job = make_job()
        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        clock.advance(60)

        outcome = engine.assign_worker(job, "cat-1", "w-kim", TEST_ACTOR)

        assert isinstance(outcome, Transitioned)
        assert outcome.to_stage is WorkStage.IN_PROGRESS
        unit = job.require("cat-1")
        assert (unit.worker_id, unit.worker_name) == ("w-kim", "김반장")
        assert job.actual_start == clock.now()

    def test_assign_in_scheduled_keeps_stage(self, engine, make_job):
        job = make_job()
        outcome = engine.assign_worker(job, "cat-1", "w-kim", TEST_ACTOR)

        assert isinstance(outcome, WorkerAssigned)
        assert outcome.stage is WorkStage.SCHEDULED
        assert len(job.stage_history) == 3

        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        started = engine.advance(job, "cat-1", WorkStage.IN_PROGRESS, TEST_ACTOR)
        assert isinstance(started, Transitioned)

    def test_reassign_in_progress(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job, "cat-2", "w-kim")
        outcome = engine.assign_worker(job, "cat-2", "w-lee", TEST_ACTOR)

        assert isinstance(outcome, WorkerAssigned)
        assert job.require("cat-2").worker_name == "이반장"
        assert job.require("cat-2").stage is WorkStage.IN_PROGRESS

    def test_unaffiliated_worker_is_allowed_with_warning(self, engine, make_job, captured_logs):
        job = make_job()
        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        engine.assign_worker(job, "cat-1", "w-park", TEST_ACTOR)

        assert job.require("cat-1").worker_name == "박기사"
        warnings = [
            r for r in captured_logs() if r["message"] == "worker_not_affiliated_with_category"
        ]
        assert warnings and warnings[0]["level"] == "WARNING"

    @pytest.mark.parametrize("worker_id", ["", "   "])
    def test_blank_worker(self, engine, make_job, worker_id):
        with pytest.raises(ValidationError):
            engine.assign_worker(make_job(), "cat-1", worker_id, TEST_ACTOR)

    def test_unknown_worker(self, engine, make_job):
        job = make_job()
        with pytest.raises(WorkerNotFoundError):
            engine.assign_worker(job, "cat-1", "w-nobody", TEST_ACTOR)
        assert job.require("cat-1").worker_id is None

    def test_assign_on_closed_unit(self, engine, make_job):
        job = make_job()
        engine.cancel(job, "cat-1", TEST_ACTOR)
        with pytest.raises(InvalidTransitionError):
            engine.assign_worker(job, "cat-1", "w-kim", TEST_ACTOR)


class TestCompletion:
    def test_complete_with_rate(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job)
        rate = RateEntry(base_rate=1000, quantity=3, unit="망")

        outcome = engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, rate=rate)

        unit = job.require("cat-1")
        assert outcome.to_stage is WorkStage.COMPLETED
        assert unit.amount == Decimal("3000")
        assert unit.rate == rate
        assert not unit.settlement_skipped

    def test_complete_with_amount(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job)
        engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, amount="2500")
        assert job.require("cat-1").amount == Decimal("2500")

    def test_skip_settlement(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job)
        engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, skip_settlement=True)

        unit = job.require("cat-1")
        assert unit.amount == Decimal("0")
        assert unit.settlement_skipped
        assert unit.rate is None

    def test_missing_amount(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job)
        with pytest.raises(MissingAmountError) as exc:
            engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR)
        assert exc.value.code == "MISSING_AMOUNT"
        assert job.require("cat-1").stage is WorkStage.IN_PROGRESS
        assert job.require("cat-1").amount is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"amount": -1},
            {"amount": 100, "rate": RateEntry(base_rate=1)},
            {"amount": 100, "skip_settlement": True},
        ],
    )
    def test_conflicting_or_bad_input(self, engine, make_job, kwargs):
        job = make_job()
        _to_in_progress(engine, job)
        with pytest.raises(ValidationError):
            engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, **kwargs)
        assert job.require("cat-1").stage is WorkStage.IN_PROGRESS

    def test_transport_unit_gets_surcharge(self, engine, graph, make_job):
        transport = graph.add_category("운송")
        graph.set_next("cat-3", transport.id)
        job = make_job(
            transport_info=TransportInfo(
                origin=Location(address="해남"),
                destination=Location(address="광주"),
                cargo=Cargo(type="배추", quantity=300, unit="망"),
                distance=10,
                distance_rate=1000,
                additional_fee=5000,
            )
        )
        rate = RateEntry(base_rate=50000, quantity=1)

        _to_in_progress(engine, job, transport.id)
        engine.advance(job, transport.id, WorkStage.COMPLETED, TEST_ACTOR, rate=rate)
        _to_in_progress(engine, job, "cat-1")
        engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, rate=rate)

        assert job.require(transport.id).amount == Decimal("65000")
        assert job.require("cat-1").amount == Decimal("50000")

    def test_transport_job_surcharges_every_unit(self, engine, make_job):
        job = make_job(
            work_type=WorkType.TRANSPORT,
            transport_info=TransportInfo(
                origin=Location(address="해남"),
                destination=Location(address="광주"),
                cargo=Cargo(type="배추", quantity=1, unit="대"),
                additional_fee=7000,
            ),
        )
        _to_in_progress(engine, job)
        engine.advance(
            job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, rate=RateEntry(base_rate=0)
        )
        assert job.require("cat-1").amount == Decimal("7000")

    def test_actual_end_set_when_all_units_close(self, engine, make_job, clock):
        job = make_job()
        for category_id in ("cat-1", "cat-2"):
            _to_in_progress(engine, job, category_id)
            engine.advance(job, category_id, WorkStage.COMPLETED, TEST_ACTOR, amount=100)
        assert job.actual_end is None

        clock.advance(3600)
        engine.cancel(job, "cat-3", TEST_ACTOR)

        assert job.is_terminal
        assert job.actual_end == clock.now()

    def test_terminal_unit_cannot_move(self, engine, make_job):
        job = make_job()
        _to_in_progress(engine, job)
        engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, amount=100)
        with pytest.raises(InvalidTransitionError):
            engine.cancel(job, "cat-1", TEST_ACTOR)


class TestCancellation:
    @pytest.mark.parametrize("steps", [0, 1, 2])
    def test_cancel_from_open_stages(self, engine, make_job, steps):
        job = make_job()
        if steps >= 1:
            engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        if steps >= 2:
            engine.assign_worker(job, "cat-1", "w-kim", TEST_ACTOR)

        outcome = engine.cancel(job, "cat-1", TEST_ACTOR)

        assert outcome.to_stage is WorkStage.CANCELLED
        assert job.stage_history[-1].stage is WorkStage.CANCELLED

    def test_cancel_detaches_payment(self, engine, make_job):
        job = make_job(payment_id="pay-1", payment_status=PaymentStatus.REQUESTED)
        engine.cancel(job, "cat-2", TEST_ACTOR)

        assert job.payment_id is None
        assert job.payment_status is PaymentStatus.PENDING

    def test_all_cancelled_has_no_actual_end(self, engine, make_job):
        job = make_job()
        for category_id in job.category_ids:
            engine.cancel(job, category_id, TEST_ACTOR)
        assert job.overall_stage is WorkStage.CANCELLED
        assert job.actual_end is None


class TestAdditionalSettlement:
    def test_register(self, engine, make_job, clock):
        job = make_job()
        _to_in_progress(engine, job)
        engine.advance(job, "cat-1", WorkStage.COMPLETED, TEST_ACTOR, amount=3000)

        entry = engine.register_additional_settlement(job, "cat-1", 500, " 야간 할증 ", TEST_ACTOR)

        assert entry.amount == Decimal("500")
        assert entry.reason == "야간 할증"
        assert entry.settled_at == clock.now()
        assert entry.registered_by == TEST_ACTOR
        assert job.require("cat-1").amount == Decimal("3000")
        assert job.total_settlement == Decimal("3500")

    def test_negative_adjustment_is_allowed(self, engine, make_job):
        job = make_job()
        engine.register_additional_settlement(job, "cat-2", "-1500", "감액")
        assert job.total_settlement == Decimal("-1500")

    @pytest.mark.parametrize("amount", [0, "0.00", Decimal("0"), Decimal("0.0000000001")])
    def test_zero_is_rejected(self, engine, make_job, amount):
        job = make_job()
        with pytest.raises(ValidationError) as exc:
            engine.register_additional_settlement(job, "cat-1", amount, "없음")
        assert exc.value.field == "amount"
        assert job.additional_settlements == ()

    def test_blank_reason(self, engine, make_job):
        with pytest.raises(ValidationError) as exc:
            engine.register_additional_settlement(make_job(), "cat-1", 100, "  ")
        assert exc.value.field == "reason"

    def test_unknown_unit(self, engine, make_job):
        with pytest.raises(CategoryScheduleNotFoundError):
            engine.register_additional_settlement(make_job(), "cat-9", 100, "x")


class TestTrace:
    def test_successful_transitions_reach_the_sink(self, engine, make_job, history_sink):
        job = make_job()
        _to_in_progress(engine, job)

        records = history_sink.for_schedule("job-1")
        assert [(r["from_stage"], r["to_stage"]) for r in records] == [
            ("예정", "준비중"),
            ("준비중", "진행중"),
        ]
        assert all(r["trace_type"] == "STAGE_TRANSITION" for r in records)
        assert records[0]["actor"] == TEST_ACTOR
        assert records[0]["category_name"] == "뽑기"

    def test_suspension_is_logged_not_sunk(self, engine, make_job, history_sink, captured_logs):
        job = make_job()
        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        engine.advance(job, "cat-1", WorkStage.IN_PROGRESS, TEST_ACTOR)

        assert len(history_sink.records) == 1
        traces = [r for r in captured_logs() if r["message"] == "stage_transition"]
        assert traces[-1]["outcome"] == "awaiting_worker"
        assert traces[-1]["schedule_id"] == "job-1"
        assert traces[-1]["actor_id"] == TEST_ACTOR

    def test_rejection_is_logged(self, engine, make_job, captured_logs):
        with pytest.raises(InvalidTransitionError):
            engine.advance(make_job(), "cat-1", WorkStage.COMPLETED, TEST_ACTOR, amount=1)
        traces = [r for r in captured_logs() if r["message"] == "stage_transition"]
        assert traces[-1]["outcome"] == "rejected"
        assert traces[-1]["level"] == "WARNING"


class TestPullingCuttingPackingScenario:
    def test_chain_from_planning_to_settlement(self, engine, graph, make_job, resolver):
        job = make_job()
        snapshot = graph.snapshot()
        assert [u.category_name for u in job.category_schedules] == ["뽑기", "자르기", "포장"]

        engine.advance(job, "cat-1", WorkStage.PREPARING, TEST_ACTOR)
        waiting = engine.advance(job, "cat-1", WorkStage.IN_PROGRESS, TEST_ACTOR)
        assert isinstance(waiting, AwaitingWorkerAssignment)
        assert [w.name for w in waiting.candidates] == ["김반장"]

        started = engine.assign_worker(job, "cat-1", "w-kim", TEST_ACTOR)
        assert isinstance(started, Transitioned)
        assert started.to_stage is WorkStage.IN_PROGRESS

        engine.advance(
            job,
            "cat-1",
            WorkStage.COMPLETED,
            TEST_ACTOR,
            rate=RateEntry(base_rate=1000, quantity=3),
        )
        assert job.require("cat-1").amount == Decimal("3000")
        assert resolver.progress_summary(job, snapshot).percentage == 33

        with pytest.raises(CycleError):
            graph.set_next("cat-3", "cat-1")

        with pytest.raises(ValidationError):
            engine.register_additional_settlement(job, "cat-1", 0, "할증")
        assert job.total_settlement == Decimal("3000")
