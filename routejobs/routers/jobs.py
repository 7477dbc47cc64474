from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from routejobs.core.auth import require_operator
from routejobs.core.db import get_db
from routejobs.models.bid import Bid
from routejobs.models.job import JobStatus, JobType
from routejobs.models.user import User
from routejobs.schemas.bid import DirectAssign, JobBidOut
from routejobs.schemas.job import JobCancel, JobCreate, JobEventOut, JobOut, JobUpdate
from routejobs.schemas.pickup import AttachReportOut, PickupAttach, PickupOut
from routejobs.services import bidding, jobs, pickups

router = APIRouter(prefix="/jobs", tags=["jobs"])

operator = require_operator


def _bid_out(bid: Bid, job, names: dict[str, str]) -> JobBidOut:
    out = JobBidOut.model_validate(bid)
    out.driver_name = names.get(bid.driver_id)
    out.accepted = job.accepted_bid_id == bid.id
    out.actionable = bidding.is_actionable(job)
    return out


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return jobs.create_job(db, payload, actor_user_id=user.id)


@router.get("", response_model=list[JobOut])
def list_jobs(
    status_filter: Optional[JobStatus] = None,
    job_type: Optional[JobType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    return jobs.list_jobs(db, status=status_filter, job_type=job_type, date_from=date_from, date_to=date_to)


@router.get("/{job_id}", response_model=JobOut)
def get_job(job_id: str, db: Session = Depends(get_db), _user: User = Depends(operator)):
    return jobs.get_job(db, job_id)


@router.patch("/{job_id}", response_model=JobOut)
def update_job(
    job_id: str,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return jobs.update_job(db, job_id, payload, actor_user_id=user.id)


@router.post("/{job_id}/publish", response_model=JobOut)
def publish_job(job_id: str, db: Session = Depends(get_db), user: User = Depends(operator)):
    return jobs.publish_job(db, job_id, actor_user_id=user.id)


@router.post("/{job_id}/cancel", response_model=JobOut)
def cancel_job(
    job_id: str,
    payload: Optional[JobCancel] = None,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return jobs.cancel_job(db, job_id, actor_user_id=user.id, reason=payload.reason if payload else None)


@router.get("/{job_id}/events", response_model=list[JobEventOut])
def get_job_events(job_id: str, db: Session = Depends(get_db), _user: User = Depends(operator)):
    return jobs.list_job_events(db, job_id)


# -------------------
# BIDS / ASSIGNMENT
# -------------------
@router.get("/{job_id}/bids", response_model=list[JobBidOut])
def list_job_bids(job_id: str, db: Session = Depends(get_db), _user: User = Depends(operator)):
    job = jobs.get_job(db, job_id)
    bids = bidding.list_bids(db, job_id)
    driver_ids = {b.driver_id for b in bids}
    names = {u.id: u.name for u in db.query(User).filter(User.id.in_(driver_ids)).all()} if driver_ids else {}
    return [_bid_out(b, job, names) for b in bids]


@router.post("/{job_id}/bids/{bid_id}/accept", response_model=JobOut)
def accept_bid(job_id: str, bid_id: str, db: Session = Depends(get_db), user: User = Depends(operator)):
    return bidding.accept_bid(db, job_id, bid_id, actor_user_id=user.id)


@router.post("/{job_id}/assign", response_model=JobOut)
def assign_driver(
    job_id: str,
    payload: DirectAssign,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    return bidding.assign_direct(db, job_id, payload.driver_id, payload.actual_pay, actor_user_id=user.id)


# -------------------
# PICKUPS
# -------------------
@router.get("/{job_id}/pickups", response_model=list[PickupOut])
def list_job_pickups(
    job_id: str,
    include_detached: bool = False,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    return pickups.list_pickups(db, job_id, include_detached=include_detached)


@router.post("/{job_id}/pickups", response_model=AttachReportOut)
def attach_pickups(
    job_id: str,
    payload: PickupAttach,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    report = pickups.attach_pickups(db, job_id, payload.property_ids, payload.pickup_type, actor_user_id=user.id)
    return {
        "attached": report.attached,
        "skipped": [s.__dict__ for s in report.skipped],
        "estimated_stops": report.estimated_stops,
    }


@router.delete("/{job_id}/pickups/{pickup_id}", response_model=PickupOut)
def detach_pickup(
    job_id: str,
    pickup_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(operator),
):
    pickup = pickups.get_live_pickup(db, job_id, pickup_id)
    return pickups.detach_pickup(db, pickup.id, actor_user_id=user.id)
