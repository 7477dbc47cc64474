"""
Bids and driver assignment.

This module is the only writer of ``Job.assigned_driver_id``,
``Job.actual_pay`` and ``Job.accepted_bid_id``. Assignment is a single
condition-checked UPDATE (``status IN (open, bidding)``) so two operators
accepting different bids cannot both win, and no reader ever sees a driver
without pay or pay without a driver.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from routejobs.core.errors import (
    ConcurrencyConflictError,
    DuplicateBidError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from routejobs.models.bid import Bid
from routejobs.models.job import BIDDABLE_STATUSES, Job, JobStatus
from routejobs.models.user import User, UserRole
from routejobs.services.jobs import get_job, log_job_event

logger = logging.getLogger("bidding")

DEFAULT_DRIVER_RATING = 5.0


def _get_driver(db: Session, driver_id: str) -> User:
    driver = (
        db.query(User)
        .filter(User.id == driver_id, User.role == UserRole.DRIVER, User.is_active == True)  # noqa: E712
        .first()
    )
    if not driver:
        raise NotFoundError("Driver not found", driver_id=driver_id)
    return driver


def _ensure_biddable(job: Job, action: str) -> None:
    if job.status not in BIDDABLE_STATUSES:
        raise InvalidStateError(
            f"Job is not open for {action}",
            job_id=job.id,
            current_status=job.status.value,
        )


def _check_amount(amount: Optional[float]) -> float:
    if amount is None or amount <= 0:
        raise ValidationError("A positive bid_amount is required", field="bid_amount", value=amount)
    return float(amount)


def _claim_job(db: Session, job_id: str, values: dict) -> bool:
    """Condition-checked write: only succeeds while the job is still biddable."""
    updated = (
        db.query(Job)
        .filter(Job.id == job_id, Job.status.in_(BIDDABLE_STATUSES))
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _sync_bidding_annotation(db: Session, job: Job) -> None:
    """open <-> bidding just records whether any bid exists."""
    has_bids = db.query(Bid.id).filter(Bid.job_id == job.id).first() is not None
    target = JobStatus.BIDDING if has_bids else JobStatus.OPEN
    (
        db.query(Job)
        .filter(Job.id == job.id, Job.status.in_(BIDDABLE_STATUSES))
        .update({Job.status: target}, synchronize_session=False)
    )


def get_bid_by_job_and_driver(db: Session, job_id: str, driver_id: str) -> Optional[Bid]:
    return db.query(Bid).filter(Bid.job_id == job_id, Bid.driver_id == driver_id).first()


def list_bids(db: Session, job_id: str) -> list[Bid]:
    get_job(db, job_id)
    return db.query(Bid).filter(Bid.job_id == job_id).order_by(Bid.created_at.asc()).all()


def submit_bid(
    db: Session,
    job_id: str,
    driver_id: str,
    amount: float,
    message: Optional[str] = None,
) -> Bid:
    amount = _check_amount(amount)
    job = get_job(db, job_id)
    _ensure_biddable(job, "bidding")
    driver = _get_driver(db, driver_id)

    if get_bid_by_job_and_driver(db, job_id, driver_id):
        raise DuplicateBidError("Driver already has a bid on this job", job_id=job_id, driver_id=driver_id)

    bid = Bid(
        id=str(uuid.uuid4()),
        job_id=job.id,
        driver_id=driver.id,
        bid_amount=amount,
        message=(message or "").strip() or None,
        driver_rating_at_bid=driver.rating if driver.rating is not None else DEFAULT_DRIVER_RATING,
    )
    db.add(bid)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise DuplicateBidError("Driver already has a bid on this job", job_id=job_id, driver_id=driver_id)

    _sync_bidding_annotation(db, job)
    log_job_event(db, job.id, driver.id, "BID_PLACED", f"Bid {amount:.2f} by driver {driver.id}")
    db.commit()
    db.refresh(bid)
    logger.info("Driver %s bid %.2f on job %s", driver.id, amount, job.id)
    return bid


def update_bid(
    db: Session,
    job_id: str,
    driver_id: str,
    amount: Optional[float] = None,
    message: Optional[str] = None,
) -> Bid:
    """Explicit re-submission. The rating snapshot is left untouched."""
    job = get_job(db, job_id)
    _ensure_biddable(job, "bid changes")
    bid = get_bid_by_job_and_driver(db, job_id, driver_id)
    if not bid:
        raise NotFoundError("Bid not found", job_id=job_id, driver_id=driver_id)

    if amount is not None:
        bid.bid_amount = _check_amount(amount)
    if message is not None:
        bid.message = message.strip() or None

    log_job_event(db, job.id, driver_id, "BID_UPDATED", f"Bid now {bid.bid_amount:.2f}")
    db.commit()
    db.refresh(bid)
    return bid


def withdraw_bid(db: Session, job_id: str, driver_id: str) -> None:
    job = get_job(db, job_id)
    _ensure_biddable(job, "bid withdrawal")
    bid = get_bid_by_job_and_driver(db, job_id, driver_id)
    if not bid:
        raise NotFoundError("Bid not found", job_id=job_id, driver_id=driver_id)

    db.delete(bid)
    db.flush()
    _sync_bidding_annotation(db, job)
    log_job_event(db, job.id, driver_id, "BID_WITHDRAWN", f"Driver {driver_id} withdrew bid")
    db.commit()


def accept_bid(db: Session, job_id: str, bid_id: str, actor_user_id: str | None = None) -> Job:
    job = get_job(db, job_id)
    bid = db.query(Bid).filter(Bid.id == bid_id, Bid.job_id == job_id).first()
    if not bid:
        raise NotFoundError("Bid not found on this job", job_id=job_id, bid_id=bid_id)

    if job.status not in BIDDABLE_STATUSES:
        raise InvalidStateError(
            "Job is no longer accepting bids",
            job_id=job.id,
            current_status=job.status.value,
            assigned_driver_id=job.assigned_driver_id,
            accepted_bid_id=job.accepted_bid_id,
        )

    claimed = _claim_job(
        db,
        job.id,
        {
            Job.status: JobStatus.ASSIGNED,
            Job.assigned_driver_id: bid.driver_id,
            Job.actual_pay: bid.bid_amount,
            Job.accepted_bid_id: bid.id,
        },
    )
    if not claimed:
        db.rollback()
        raise ConcurrencyConflictError(
            "Job was assigned by another request; refresh and retry",
            job_id=job_id,
            bid_id=bid_id,
        )

    log_job_event(
        db, job_id, actor_user_id, "BID_ACCEPTED",
        f"Accepted bid {bid.id} from driver {bid.driver_id} at {bid.bid_amount:.2f}",
    )
    db.commit()
    db.expire_all()
    logger.info("Accepted bid %s on job %s", bid.id, job_id)
    return get_job(db, job_id)


def assign_direct(
    db: Session,
    job_id: str,
    driver_id: str,
    actual_pay: Optional[float] = None,
    actor_user_id: str | None = None,
) -> Job:
    """Operator assignment without an auction. Pay falls back to base_pay."""
    job = get_job(db, job_id)
    driver = _get_driver(db, driver_id)

    if job.status not in BIDDABLE_STATUSES:
        raise InvalidStateError(
            "Only open jobs can be assigned",
            job_id=job.id,
            current_status=job.status.value,
            assigned_driver_id=job.assigned_driver_id,
        )

    pay = actual_pay if actual_pay is not None else job.base_pay
    if pay is None or pay < 0:
        raise ValidationError("actual_pay is required when the job has no base_pay", field="actual_pay")

    claimed = _claim_job(
        db,
        job.id,
        {
            Job.status: JobStatus.ASSIGNED,
            Job.assigned_driver_id: driver.id,
            Job.actual_pay: float(pay),
            Job.accepted_bid_id: None,
        },
    )
    if not claimed:
        db.rollback()
        raise ConcurrencyConflictError(
            "Job was assigned by another request; refresh and retry",
            job_id=job_id,
            driver_id=driver_id,
        )

    log_job_event(db, job_id, actor_user_id, "ASSIGNED", f"Assigned to driver {driver.id} at {float(pay):.2f}")
    db.commit()
    db.expire_all()
    logger.info("Directly assigned job %s to driver %s", job_id, driver.id)
    return get_job(db, job_id)


def release_assignment(db: Session, job: Job) -> Optional[dict]:
    """Clear driver and pay when a job leaves the assigned states (cancellation)."""
    if job.assigned_driver_id is None and job.actual_pay is None:
        return None
    released = {"driver_id": job.assigned_driver_id, "actual_pay": job.actual_pay}
    job.assigned_driver_id = None
    job.actual_pay = None
    return released


def is_actionable(job: Job) -> bool:
    return job.status in BIDDABLE_STATUSES
