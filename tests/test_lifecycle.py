from datetime import date

import pytest

from routejobs.core.errors import InvalidStateError, NotFoundError, ValidationError
from routejobs.models.job import JobStatus
from routejobs.schemas.job import JobCreate, JobUpdate
from routejobs.services import bidding, jobs


def _create(db, **overrides):
    payload = {"title": "Tuesday south route", "scheduled_date": "2026-10-20", "base_pay": 180.0}
    payload.update(overrides)
    return jobs.create_job(db, JobCreate(**payload))


def test_create_defaults_to_draft(db):
    job = _create(db)
    assert job.status == JobStatus.DRAFT
    assert job.scheduled_date == date(2026, 10, 20)
    assert job.estimated_stops == 0
    assert job.assigned_driver_id is None
    assert job.actual_pay is None


def test_create_with_publish_opens_job(db):
    job = _create(db, publish=True)
    assert job.status == JobStatus.OPEN


@pytest.mark.parametrize("value", [None, "", "10/20/2026", "2026-13-01", "2026-10-20T08:00"])
def test_create_rejects_bad_scheduled_date(db, value):
    with pytest.raises(ValidationError) as exc:
        _create(db, scheduled_date=value)
    assert exc.value.context["field"] == "scheduled_date"


def test_create_rejects_blank_title_and_bad_window(db):
    with pytest.raises(ValidationError):
        _create(db, title="   ")
    with pytest.raises(ValidationError):
        _create(db, start_time="14:00", end_time="08:00")
    with pytest.raises(ValidationError):
        _create(db, start_time="8am")


def test_publish_only_from_draft(db):
    job = _create(db)
    job = jobs.publish_job(db, job.id)
    assert job.status == JobStatus.OPEN

    with pytest.raises(InvalidStateError) as exc:
        jobs.publish_job(db, job.id)
    assert exc.value.context["current_status"] == "open"


def test_draft_is_not_visible_to_drivers(db):
    draft = _create(db)
    published = _create(db, publish=True)

    visible_ids = {j.id for j in jobs.list_visible_jobs(db)}
    assert published.id in visible_ids
    assert draft.id not in visible_ids


def test_update_editable_fields(db):
    job = _create(db)
    job = jobs.update_job(db, job.id, JobUpdate(notes="Gate code 4411", base_pay=210.0))
    assert job.notes == "Gate code 4411"
    assert job.base_pay == 210.0


def test_update_refused_after_assignment(db, make_user):
    driver = make_user()
    job = _create(db, publish=True)
    bidding.assign_direct(db, job.id, driver.id)

    with pytest.raises(InvalidStateError):
        jobs.update_job(db, job.id, JobUpdate(notes="too late"))


def test_update_schema_forbids_status_and_assignment():
    with pytest.raises(Exception):
        JobUpdate(status="completed")
    with pytest.raises(Exception):
        JobUpdate(assigned_driver_id="someone")


def test_cancel_is_idempotent(db):
    job = _create(db, publish=True)
    first = jobs.cancel_job(db, job.id, reason="Holiday")
    second = jobs.cancel_job(db, job.id)
    assert first.status == second.status == JobStatus.CANCELLED

    cancels = [e for e in jobs.list_job_events(db, job.id) if e.event_type == "CANCELLED"]
    assert len(cancels) == 1
    assert "Holiday" in cancels[0].message


def test_cancel_completed_job_is_rejected(db, make_job):
    job = make_job(status=JobStatus.COMPLETED)
    with pytest.raises(InvalidStateError) as exc:
        jobs.cancel_job(db, job.id)
    assert exc.value.context["allowed"] == []


def test_cancel_assigned_job_releases_driver_and_pay(db, make_user):
    driver = make_user()
    job = _create(db, publish=True)
    job = bidding.assign_direct(db, job.id, driver.id, actual_pay=190.0)
    assert job.actual_pay == 190.0

    job = jobs.cancel_job(db, job.id)
    assert job.status == JobStatus.CANCELLED
    assert job.assigned_driver_id is None
    assert job.actual_pay is None

    cancel_event = [e for e in jobs.list_job_events(db, job.id) if e.event_type == "CANCELLED"][0]
    assert driver.id in cancel_event.message


def test_progress_transitions_are_forward_only(db, make_job):
    job = make_job(status=JobStatus.OPEN)
    with pytest.raises(InvalidStateError):
        jobs.mark_in_progress(db, job.id)

    assigned = make_job(status=JobStatus.ASSIGNED)
    with pytest.raises(InvalidStateError):
        jobs.mark_completed(db, assigned.id)

    started = jobs.mark_in_progress(db, assigned.id)
    assert started.status == JobStatus.IN_PROGRESS
    assert jobs.mark_in_progress(db, assigned.id).status == JobStatus.IN_PROGRESS

    done = jobs.mark_completed(db, assigned.id)
    assert done.status == JobStatus.COMPLETED
    assert done.completed_at is not None
    # late start event after completion is a no-op
    assert jobs.mark_in_progress(db, assigned.id).status == JobStatus.COMPLETED


def test_can_transition_table():
    assert jobs.can_transition(JobStatus.DRAFT, JobStatus.OPEN)
    assert not jobs.can_transition(JobStatus.DRAFT, JobStatus.ASSIGNED)
    assert jobs.can_transition(JobStatus.BIDDING, JobStatus.OPEN)
    assert not jobs.can_transition(JobStatus.CANCELLED, JobStatus.OPEN)
    assert not jobs.can_transition(JobStatus.COMPLETED, JobStatus.CANCELLED)


def test_unknown_job_raises_not_found(db):
    with pytest.raises(NotFoundError):
        jobs.get_job(db, "missing")
