import pytest

from routejobs.core.errors import NotFoundError, PlanningStartError, ValidationError
from routejobs.models.feed import PlanningRun
from routejobs.models.job import JobStatus
from routejobs.schemas.planning import PlanningStart
from routejobs.schemas.provider import (
    Ack,
    DriverRoute,
    PlanningStartResult,
    PlanningStatusResult,
    RouteStop,
)
from routejobs.services import pickups, planning


def status(code, pct=None, success=True, error=None):
    return PlanningStatusResult(success=success, status=code, percentageComplete=pct, code=error)


def test_start_run_records_provider_id(db, provider):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-20", balancing="ON", balance_by="NUM"))
    assert run.planning_id == 42
    assert run.status == planning.RUNNING
    assert run.plan_date == "2026-10-20"
    assert provider.start_calls[0]["balancing"] == "ON"
    assert provider.start_calls[0]["balance_by"] == "NUM"


def test_start_failure_surfaces_provider_code(db, provider):
    provider.start_result = PlanningStartResult(
        success=False, code="ERR_NO_ORDERS", ordersWithInvalidLocation=["JP-1"]
    )
    with pytest.raises(PlanningStartError) as exc:
        planning.start_run(db, provider, PlanningStart(date="2026-10-20"))
    assert exc.value.context["provider_code"] == "ERR_NO_ORDERS"
    assert exc.value.context["invalid_orders"] == ["JP-1"]
    assert exc.value.status_code == 502


def test_start_rejects_bad_date(db, provider):
    with pytest.raises(ValidationError):
        planning.start_run(db, provider, PlanningStart(date="20/10/2026"))
    assert provider.start_calls == []


def test_poll_tracks_progress_until_finished(db, provider):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-20"))
    provider.statuses = [status("N"), status("R", 40), status("F", 95)]

    assert planning.poll_run(db, provider, run.id).status == planning.RUNNING
    run = planning.poll_run(db, provider, run.id)
    assert run.percent_complete == 40
    run = planning.poll_run(db, provider, run.id)
    assert run.status == planning.FINISHED
    assert run.percent_complete == 100

    # terminal runs are not polled again
    provider.statuses = [status("E")]
    assert planning.poll_run(db, provider, run.id).status == planning.FINISHED


def test_poll_error_records_code(db, provider):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-20"))
    provider.statuses = [status(None, success=False, error="ERR_PLAN_NOT_FOUND")]
    run = planning.poll_run(db, provider, run.id)
    assert run.status == planning.ERROR
    assert run.error_code == "ERR_PLAN_NOT_FOUND"


def test_stop_then_finish_reports_finished(db, provider):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-20"))
    run = planning.stop_run(db, provider, run.id)
    assert run.stop_requested
    assert provider.stop_calls == [42]

    provider.statuses = [status("F", 100)]
    run = planning.poll_run(db, provider, run.id)
    assert run.status == planning.FINISHED


def test_stop_not_acknowledged_leaves_run_untouched(db, provider):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-20"))
    provider.stop_ack = Ack(success=False, code="ERR_NOT_RUNNING")
    run = planning.stop_run(db, provider, run.id)
    assert not run.stop_requested
    assert run.status == planning.RUNNING


def test_unknown_run(db):
    with pytest.raises(NotFoundError):
        planning.get_run(db, "missing")


def test_route_sequence_numbers_pickups(db, provider, make_job, make_property):
    job = make_job(status=JobStatus.ASSIGNED)
    report = pickups.attach_pickups(db, job.id, [make_property().id for _ in range(3)])
    a, b, c = (p.order_no for p in report.attached)

    provider.routes["2026-10-19"] = [
        DriverRoute(
            driverSerial="DRV-1",
            stops=[
                RouteStop(orderNo=c),
                RouteStop(type="break"),
                RouteStop(orderNo=a),
                RouteStop(orderNo="UNKNOWN"),
            ],
        ),
        DriverRoute(driverSerial="DRV-2", stops=[RouteStop(orderNo=b, stopNumber=7)]),
    ]
    routes, sequenced = planning.sync_route_sequence(db, provider, "2026-10-19")
    assert routes == 2
    assert sequenced == 3

    by_order = {p.order_no: p.sequence_number for p in pickups.list_pickups(db, job.id)}
    assert by_order == {c: 1, a: 2, b: 7}


def test_watcher_runs_to_completion_and_sequences(session_factory, provider, db, make_job, make_property):
    job = make_job(status=JobStatus.ASSIGNED)
    report = pickups.attach_pickups(db, job.id, [make_property().id])
    order_no = report.attached[0].order_no
    provider.routes["2026-10-19"] = [DriverRoute(stops=[RouteStop(orderNo=order_no)])]

    run = planning.start_run(db, provider, PlanningStart(date="2026-10-19"))
    provider.statuses = [status("R", 10), status("R", 60), status("F", 100)]

    watcher = planning.PlanningWatcher(
        run.id,
        provider,
        session_factory,
        interval=0,
        max_polls=10,
        on_finished=planning.sequence_after_finish(provider),
    )
    watcher.run()

    assert watcher.final_status == planning.FINISHED
    db.expire_all()
    assert planning.get_run(db, run.id).percent_complete == 100
    assert pickups.list_pickups(db, job.id)[0].sequence_number == 1


def test_watcher_gives_up_after_max_polls(session_factory, provider, db):
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-19"))
    watcher = planning.PlanningWatcher(run.id, provider, session_factory, interval=0, max_polls=3)
    watcher.run()
    assert watcher.final_status is None
    db.expire_all()
    assert planning.get_run(db, run.id).status == planning.RUNNING


def test_finished_watcher_is_forgotten(session_factory, provider, db, monkeypatch):
    monkeypatch.setattr(planning.PlanningWatcher, "start", lambda self: None)
    run = planning.start_run(db, provider, PlanningStart(date="2026-10-19"))
    provider.statuses = [status("F", 100)]
    watchers = {}

    watcher = planning.watch_run(watchers, run.id, provider, session_factory, interval=0)
    assert watchers == {run.id: watcher}

    watcher.run()
    assert watcher.final_status == planning.FINISHED
    assert watchers == {}


def test_resume_picks_up_runs_left_running(session_factory, provider, db, monkeypatch):
    monkeypatch.setattr(planning.PlanningWatcher, "start", lambda self: None)
    db.add_all(
        [
            PlanningRun(id="run-interrupted", planning_id=7, plan_date="2026-10-19", status=planning.RUNNING),
            PlanningRun(id="run-done", planning_id=8, plan_date="2026-10-19", status=planning.FINISHED),
        ]
    )
    db.commit()
    provider.statuses = [status("F", 100)]
    watchers = {}

    resumed = planning.resume_runs(watchers, provider, session_factory)
    assert [w.run_id for w in resumed] == ["run-interrupted"]
    assert set(watchers) == {"run-interrupted"}
    assert planning.resume_runs(watchers, provider, session_factory) == []

    resumed[0].interval = 0
    resumed[0].run()
    db.expire_all()
    assert planning.get_run(db, "run-interrupted").status == planning.FINISHED
    assert watchers == {}
