"""
Attach and detach pickup stops on jobs.

Attaching is per-item: a batch that mixes fresh and already-claimed
properties attaches the fresh ones and reports the rest as skipped.
``Job.estimated_stops`` is recomputed in the same transaction as every
attach/detach so it always equals the number of live pickups.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from routejobs.core.errors import InvalidStateError, NotFoundError
from routejobs.models.job import Job, JobStatus, TERMINAL_STATUSES
from routejobs.models.pickup import Pickup, PickupStatus, PickupType
from routejobs.models.property import Property
from routejobs.services.jobs import get_job, log_job_event

logger = logging.getLogger("pickups")

ATTACHABLE_STATUSES = (JobStatus.DRAFT, JobStatus.OPEN, JobStatus.BIDDING, JobStatus.ASSIGNED)
LOCKED_STATUSES = (JobStatus.IN_PROGRESS, JobStatus.COMPLETED)


@dataclass
class SkippedProperty:
    property_id: str
    reason: str  # property_not_found, already_on_job, attached_to_active_job, duplicate_in_batch
    conflicting_job_id: Optional[str] = None


@dataclass
class AttachReport:
    attached: list[Pickup] = field(default_factory=list)
    skipped: list[SkippedProperty] = field(default_factory=list)
    estimated_stops: int = 0


def _live_pickups(db: Session):
    return db.query(Pickup).filter(Pickup.detached_at.is_(None))


def _make_order_no(pickup_id: str) -> str:
    return f"JP-{pickup_id.replace('-', '')[:12].upper()}"


def recompute_estimated_stops(db: Session, job: Job) -> int:
    db.flush()
    count = _live_pickups(db).filter(Pickup.job_id == job.id).count()
    job.estimated_stops = count
    return count


def active_pickup_for_property(db: Session, property_id: str) -> Optional[Pickup]:
    """The live pickup binding this property to a job that is not cancelled or completed."""
    return (
        _live_pickups(db)
        .join(Job, Job.id == Pickup.job_id)
        .filter(Pickup.property_id == property_id, Job.status.notin_(TERMINAL_STATUSES))
        .first()
    )


def get_live_pickup(db: Session, job_id: str, pickup_id: str) -> Pickup:
    pickup = (
        _live_pickups(db)
        .filter(Pickup.id == pickup_id, Pickup.job_id == job_id)
        .first()
    )
    if not pickup:
        raise NotFoundError("Pickup not found on this job", job_id=job_id, pickup_id=pickup_id)
    return pickup


def list_pickups(db: Session, job_id: str, include_detached: bool = False) -> list[Pickup]:
    get_job(db, job_id)
    q = db.query(Pickup).filter(Pickup.job_id == job_id)
    if not include_detached:
        q = q.filter(Pickup.detached_at.is_(None))
    return q.order_by(Pickup.sequence_number.asc(), Pickup.created_at.asc()).all()


def attach_pickups(
    db: Session,
    job_id: str,
    property_ids: Iterable[str],
    pickup_type: PickupType = PickupType.ROUTINE,
    actor_user_id: str | None = None,
) -> AttachReport:
    job = get_job(db, job_id)
    if job.status not in ATTACHABLE_STATUSES:
        raise InvalidStateError(
            "Stops cannot be added to this job",
            job_id=job.id,
            current_status=job.status.value,
        )

    report = AttachReport()
    seen: set[str] = set()

    for property_id in property_ids:
        if property_id in seen:
            report.skipped.append(SkippedProperty(property_id, "duplicate_in_batch"))
            continue
        seen.add(property_id)

        prop = db.query(Property).filter(Property.id == property_id).first()
        if not prop:
            report.skipped.append(SkippedProperty(property_id, "property_not_found"))
            continue

        existing = active_pickup_for_property(db, property_id)
        if existing is not None:
            reason = "already_on_job" if existing.job_id == job.id else "attached_to_active_job"
            report.skipped.append(SkippedProperty(property_id, reason, existing.job_id))
            continue

        pickup_id = str(uuid.uuid4())
        pickup = Pickup(
            id=pickup_id,
            job_id=job.id,
            property_id=prop.id,
            customer_id=prop.customer_id,
            pickup_type=pickup_type,
            status=PickupStatus.PENDING,
            order_no=_make_order_no(pickup_id),
        )
        db.add(pickup)
        db.flush()
        report.attached.append(pickup)

    report.estimated_stops = recompute_estimated_stops(db, job)
    if report.attached:
        log_job_event(
            db, job.id, actor_user_id, "STOPS_ADDED",
            f"{len(report.attached)} stop(s) attached, {len(report.skipped)} skipped",
        )
    db.commit()
    for pickup in report.attached:
        db.refresh(pickup)

    logger.info(
        "Attached %d stop(s) to job %s (%d skipped)", len(report.attached), job.id, len(report.skipped)
    )
    return report


def detach_pickup(db: Session, pickup_id: str, actor_user_id: str | None = None) -> Pickup:
    pickup = db.query(Pickup).filter(Pickup.id == pickup_id).first()
    if not pickup or pickup.detached_at is not None:
        raise NotFoundError("Pickup not found", pickup_id=pickup_id)

    job = get_job(db, pickup.job_id)
    if job.status in LOCKED_STATUSES:
        raise InvalidStateError(
            "Stops cannot be removed once the route has started",
            job_id=job.id,
            pickup_id=pickup.id,
            current_status=job.status.value,
        )

    pickup.detached_at = datetime.now(timezone.utc)
    recompute_estimated_stops(db, job)
    log_job_event(db, job.id, actor_user_id, "STOP_REMOVED", f"Stop {pickup.order_no} detached")
    db.commit()
    db.refresh(pickup)
    logger.info("Detached pickup %s from job %s", pickup.id, job.id)
    return pickup
