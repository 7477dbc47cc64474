"""
Job lifecycle: creation, publication, cancellation and the system-driven
progress transitions.

Status changes go through ``TRANSITIONS``; anything not listed there is
rejected with ``InvalidStateError``. Assignment fields (driver, pay, accepted
bid) are written only by ``routejobs.services.bidding``.
"""
from __future__ import annotations

import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from routejobs.core.errors import InvalidStateError, NotFoundError, ValidationError
from routejobs.models.event import JobEvent
from routejobs.models.job import BIDDABLE_STATUSES, Job, JobStatus, JobType
from routejobs.schemas.job import JobCreate, JobUpdate

logger = logging.getLogger("jobs")

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.DRAFT: frozenset({JobStatus.OPEN, JobStatus.CANCELLED}),
    JobStatus.OPEN: frozenset({JobStatus.BIDDING, JobStatus.ASSIGNED, JobStatus.CANCELLED}),
    JobStatus.BIDDING: frozenset({JobStatus.OPEN, JobStatus.ASSIGNED, JobStatus.CANCELLED}),
    JobStatus.ASSIGNED: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

EDITABLE_STATUSES = (JobStatus.DRAFT, JobStatus.OPEN, JobStatus.BIDDING)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def log_job_event(db: Session, job_id: str, actor_user_id: str | None, event_type: str, message: str | None = None):
    ev = JobEvent(
        id=str(uuid.uuid4()),
        job_id=job_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        message=message,
    )
    db.add(ev)


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(job: Job, target: JobStatus) -> None:
    if not can_transition(job.status, target):
        allowed = sorted(s.value for s in TRANSITIONS[job.status])
        raise InvalidStateError(
            f"Cannot transition job from {job.status.value} to {target.value}",
            job_id=job.id,
            current_status=job.status.value,
            requested_status=target.value,
            allowed=allowed,
        )


def parse_scheduled_date(value) -> date:
    if value is None or value == "":
        raise ValidationError("scheduled_date is required", field="scheduled_date")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not _DATE_RE.match(s):
        raise ValidationError("scheduled_date must be YYYY-MM-DD", field="scheduled_date", value=s)
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationError("scheduled_date is not a valid date", field="scheduled_date", value=s)


def _check_time_window(start_time: str | None, end_time: str | None) -> None:
    for name, value in (("start_time", start_time), ("end_time", end_time)):
        if value is not None and not _TIME_RE.match(value):
            raise ValidationError(f"{name} must be HH:MM", field=name, value=value)
    if start_time and end_time and end_time <= start_time:
        raise ValidationError("end_time must be after start_time", start_time=start_time, end_time=end_time)


def get_job(db: Session, job_id: str) -> Job:
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise NotFoundError("Job not found", job_id=job_id)
    return job


def list_jobs(
    db: Session,
    status: Optional[JobStatus] = None,
    job_type: Optional[JobType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    driver_id: Optional[str] = None,
) -> list[Job]:
    q = db.query(Job)
    if status is not None:
        q = q.filter(Job.status == status)
    if job_type is not None:
        q = q.filter(Job.job_type == job_type)
    if date_from is not None:
        q = q.filter(Job.scheduled_date >= date_from)
    if date_to is not None:
        q = q.filter(Job.scheduled_date <= date_to)
    if driver_id is not None:
        q = q.filter(Job.assigned_driver_id == driver_id)
    return q.order_by(Job.scheduled_date.asc(), Job.created_at.asc()).all()


def list_visible_jobs(db: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[Job]:
    """Jobs drivers can see and bid on. Drafts are never included."""
    q = db.query(Job).filter(Job.status.in_(BIDDABLE_STATUSES))
    if date_from is not None:
        q = q.filter(Job.scheduled_date >= date_from)
    if date_to is not None:
        q = q.filter(Job.scheduled_date <= date_to)
    return q.order_by(Job.scheduled_date.asc()).all()


def create_job(db: Session, payload: JobCreate, actor_user_id: str | None = None) -> Job:
    title = (payload.title or "").strip()
    if not title:
        raise ValidationError("title is required", field="title")
    scheduled = parse_scheduled_date(payload.scheduled_date)
    _check_time_window(payload.start_time, payload.end_time)
    if payload.base_pay is not None and payload.base_pay < 0:
        raise ValidationError("base_pay cannot be negative", field="base_pay")

    job = Job(
        id=str(uuid.uuid4()),
        title=title,
        description=payload.description,
        notes=payload.notes,
        job_type=payload.job_type,
        status=JobStatus.OPEN if payload.publish else JobStatus.DRAFT,
        scheduled_date=scheduled,
        start_time=payload.start_time,
        end_time=payload.end_time,
        estimated_stops=0,
        estimated_hours=payload.estimated_hours,
        base_pay=payload.base_pay,
        zone_id=payload.zone_id,
    )
    db.add(job)
    log_job_event(db, job.id, actor_user_id, "CREATED", f"Job created as {job.status.value} for {scheduled.isoformat()}")
    db.commit()
    db.refresh(job)
    logger.info("Created job %s (%s) in %s", job.id, job.job_type.value, job.status.value)
    return job


def update_job(db: Session, job_id: str, payload: JobUpdate, actor_user_id: str | None = None) -> Job:
    job = get_job(db, job_id)
    if job.status not in EDITABLE_STATUSES:
        raise InvalidStateError(
            "Job can only be edited before assignment",
            job_id=job.id,
            current_status=job.status.value,
        )

    changes = payload.model_dump(exclude_unset=True)
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("title cannot be blank", field="title")
        changes["title"] = title
    if "scheduled_date" in changes:
        changes["scheduled_date"] = parse_scheduled_date(changes["scheduled_date"])
    _check_time_window(changes.get("start_time", job.start_time), changes.get("end_time", job.end_time))
    if changes.get("base_pay") is not None and changes["base_pay"] < 0:
        raise ValidationError("base_pay cannot be negative", field="base_pay")

    for field, value in changes.items():
        setattr(job, field, value)

    if changes:
        log_job_event(db, job.id, actor_user_id, "UPDATED", "Updated " + ", ".join(sorted(changes)))
    db.commit()
    db.refresh(job)
    return job


def publish_job(db: Session, job_id: str, actor_user_id: str | None = None) -> Job:
    job = get_job(db, job_id)
    if job.status != JobStatus.DRAFT:
        raise InvalidStateError(
            "Only draft jobs can be published",
            job_id=job.id,
            current_status=job.status.value,
        )
    job.status = JobStatus.OPEN
    log_job_event(db, job.id, actor_user_id, "PUBLISHED", "Job published to drivers")
    db.commit()
    db.refresh(job)
    logger.info("Published job %s", job.id)
    return job


def cancel_job(db: Session, job_id: str, actor_user_id: str | None = None, reason: str | None = None) -> Job:
    from routejobs.services.bidding import release_assignment

    job = get_job(db, job_id)
    if job.status == JobStatus.CANCELLED:
        return job
    ensure_transition(job, JobStatus.CANCELLED)

    old = job.status.value
    released = release_assignment(db, job)
    job.status = JobStatus.CANCELLED

    message = f"Status {old} -> cancelled"
    if released:
        message += f" | released driver {released['driver_id']} (pay {released['actual_pay']})"
    if reason:
        message += f" | {reason.strip()}"
    log_job_event(db, job.id, actor_user_id, "CANCELLED", message)
    db.commit()
    db.refresh(job)
    logger.info("Cancelled job %s (was %s)", job.id, old)
    return job


def mark_in_progress(db: Session, job_id: str) -> Job:
    """Driven by the driver-status projection. Repeats and late calls are no-ops."""
    job = get_job(db, job_id)
    if job.status in (JobStatus.IN_PROGRESS, JobStatus.COMPLETED):
        return job
    ensure_transition(job, JobStatus.IN_PROGRESS)
    job.status = JobStatus.IN_PROGRESS
    log_job_event(db, job.id, None, "STATUS_CHANGED", "Status assigned -> in_progress (route started)")
    db.commit()
    db.refresh(job)
    logger.info("Job %s in progress", job.id)
    return job


def mark_completed(db: Session, job_id: str) -> Job:
    job = get_job(db, job_id)
    if job.status == JobStatus.COMPLETED:
        return job
    ensure_transition(job, JobStatus.COMPLETED)
    job.status = JobStatus.COMPLETED
    job.completed_at = datetime.now(timezone.utc)
    log_job_event(db, job.id, None, "STATUS_CHANGED", "Status in_progress -> completed (route ended)")
    db.commit()
    db.refresh(job)
    logger.info("Job %s completed", job.id)
    return job


def list_job_events(db: Session, job_id: str) -> list[JobEvent]:
    get_job(db, job_id)
    return (
        db.query(JobEvent)
        .filter(JobEvent.job_id == job_id)
        .order_by(JobEvent.created_at.asc())
        .all()
    )
