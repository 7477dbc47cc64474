"""
Turns driver and stop statuses from the feed into job and pickup updates.

Every update here is idempotent, since the same status is delivered again
whenever its driver or stop reappears in the feed.

Registered as an ``EventIngestor`` listener, so it runs on the ingestor's
thread with its own session.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from routejobs.models.job import Job, JobStatus
from routejobs.models.pickup import Pickup, PickupStatus
from routejobs.models.user import User
from routejobs.services.jobs import log_job_event, mark_completed, mark_in_progress
from routejobs.services.status_projection import COMPLETED, IN_PROGRESS

logger = logging.getLogger("progress_sync")

STOP_OUTCOMES = {
    "success": PickupStatus.COMPLETED,
    "failed": PickupStatus.FAILED,
    "rejected": PickupStatus.FAILED,
}


def apply_driver_status(db: Session, driver_key: str, status: str, route_day: date) -> list[Job]:
    driver = db.query(User).filter(User.external_driver_key == driver_key).first()
    if not driver:
        logger.debug("No driver mapped to feed key %s", driver_key)
        return []

    jobs = (
        db.query(Job)
        .filter(
            Job.assigned_driver_id == driver.id,
            Job.scheduled_date == route_day,
            Job.status.in_((JobStatus.ASSIGNED, JobStatus.IN_PROGRESS)),
        )
        .all()
    )
    touched = []
    for job in jobs:
        if status in (IN_PROGRESS, COMPLETED):
            job = mark_in_progress(db, job.id)
        if status == COMPLETED:
            job = mark_completed(db, job.id)
        touched.append(job)
    return touched


def apply_stop_status(db: Session, stop_key: str, kind: str) -> Pickup | None:
    outcome = STOP_OUTCOMES.get(kind)
    if outcome is None:
        return None
    pickup = (
        db.query(Pickup)
        .filter(Pickup.order_no == stop_key, Pickup.detached_at.is_(None))
        .first()
    )
    if not pickup or pickup.status == outcome:
        return pickup
    pickup.status = outcome
    log_job_event(db, pickup.job_id, None, "STOP_STATUS", f"Stop {pickup.order_no} -> {outcome.value}")
    db.commit()
    return pickup


def apply_statuses(db: Session, drivers: dict, stops: dict, route_day: date) -> None:
    for driver_key, status in drivers.items():
        apply_driver_status(db, driver_key, status, route_day)
    for stop_key, kind in stops.items():
        apply_stop_status(db, stop_key, kind)


def make_progress_listener(session_factory: Callable[[], Session], today: Callable[[], date] = date.today):
    def _listener(drivers: dict, stops: dict) -> None:
        with session_factory() as db:
            apply_statuses(db, drivers, stops, today())

    return _listener
