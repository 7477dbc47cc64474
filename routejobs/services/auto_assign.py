"""
Pickup-day placement for newly registered addresses.

The candidate is priced against every active job in the recent history
window: the cheapest place to slot it into the job's ordered stop list is
its insertion cost. Costs are averaged per weekday and the cheapest weekday
wins. Approval then depends on two independent ceilings, extra miles and
extra minutes, each of which may be unset (0/None) meaning unlimited.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from routejobs.core.config import settings
from routejobs.core.errors import InvalidStateError, NotFoundError
from routejobs.models.job import Job, JobStatus
from routejobs.models.pickup import Pickup
from routejobs.models.property import Property, ServiceStatus
from routejobs.models.zone import ServiceZone

logger = logging.getLogger("auto_assign")

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
EARTH_RADIUS_MILES = 3958.8

HISTORY_STATUSES = (
    JobStatus.OPEN,
    JobStatus.BIDDING,
    JobStatus.ASSIGNED,
    JobStatus.IN_PROGRESS,
    JobStatus.COMPLETED,
)

LatLng = tuple[float, float]


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def min_insertion_cost(stops: Sequence[LatLng], lat: float, lng: float) -> Optional[float]:
    """
    Cheapest extra distance (miles) to visit (lat, lng) somewhere in the
    ordered stop list: before the first stop, between any adjacent pair
    (d(a,x) + d(x,b) - d(a,b)), or after the last. None for an empty list.
    """
    if not stops:
        return None

    first, last = stops[0], stops[-1]
    best = min(
        haversine_miles(lat, lng, first[0], first[1]),
        haversine_miles(last[0], last[1], lat, lng),
    )
    for a, b in zip(stops, stops[1:]):
        cost = (
            haversine_miles(a[0], a[1], lat, lng)
            + haversine_miles(lat, lng, b[0], b[1])
            - haversine_miles(a[0], a[1], b[0], b[1])
        )
        best = min(best, cost)
    return max(best, 0.0)


def _within(value: float, limit: Optional[float]) -> bool:
    return not limit or value <= limit


@dataclass
class AutoAssignPolicy:
    window_days: int = 7
    metric: str = "distance"  # distance, time, both
    auto_assign: bool = False
    auto_approve: bool = False
    max_miles: Optional[float] = None
    max_minutes: Optional[float] = None
    avg_speed_mph: float = 25.0

    @classmethod
    def from_settings(cls, s=settings) -> "AutoAssignPolicy":
        return cls(
            window_days=s.PICKUP_OPTIMIZATION_WINDOW_DAYS,
            metric=s.PICKUP_OPTIMIZATION_METRIC,
            auto_assign=s.PICKUP_AUTO_ASSIGN,
            auto_approve=s.PICKUP_AUTO_APPROVE,
            max_miles=s.PICKUP_AUTO_APPROVE_MAX_MILES,
            max_minutes=s.PICKUP_AUTO_APPROVE_MAX_MINUTES,
            avg_speed_mph=s.AVG_SPEED_MPH,
        )

    def minutes_for(self, miles: float) -> float:
        return miles / self.avg_speed_mph * 60

    def score(self, miles: float, minutes: float) -> float:
        if self.metric == "time":
            return minutes
        if self.metric == "both":
            return miles + minutes / 60
        return miles

    def threshold_violations(self, miles: float, minutes: float) -> list[str]:
        violations = []
        if not _within(miles, self.max_miles):
            violations.append("distance")
        if not _within(minutes, self.max_minutes):
            violations.append("time")
        return violations


@dataclass
class DayOption:
    pickup_day: str
    insertion_miles: float
    insertion_minutes: float
    best_job_id: str
    routes_compared: int
    confidence: float


@dataclass
class Evaluation:
    property_id: str
    service_status: ServiceStatus
    auto_approved: bool
    reason: str
    pickup_day: Optional[str] = None
    insertion_miles: Optional[float] = None
    insertion_minutes: Optional[float] = None
    best_job_id: Optional[str] = None
    confidence: Optional[float] = None
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    violations: list[str] = field(default_factory=list)


def _job_stops(db: Session, job_id: str) -> list[LatLng]:
    rows = (
        db.query(Pickup.sequence_number, Property.latitude, Property.longitude)
        .join(Property, Property.id == Pickup.property_id)
        .filter(
            Pickup.job_id == job_id,
            Pickup.detached_at.is_(None),
            Property.latitude.isnot(None),
            Property.longitude.isnot(None),
        )
        .order_by(Pickup.created_at.asc())
        .all()
    )
    ordered = sorted(rows, key=lambda r: r[0] if r[0] is not None else 999)
    return [(lat, lng) for _, lat, lng in ordered]


def find_optimal_pickup_day(
    db: Session,
    lat: float,
    lng: float,
    policy: AutoAssignPolicy,
    today: Optional[date] = None,
) -> Optional[DayOption]:
    today = today or date.today()
    window_start = today - timedelta(days=policy.window_days)

    jobs = (
        db.query(Job)
        .filter(
            Job.scheduled_date >= window_start,
            Job.scheduled_date <= today,
            Job.status.in_(HISTORY_STATUSES),
        )
        .all()
    )

    groups: dict[str, dict] = {}
    compared = 0
    for job in jobs:
        miles = min_insertion_cost(_job_stops(db, job.id), lat, lng)
        if miles is None:
            continue
        compared += 1
        minutes = policy.minutes_for(miles)
        score = policy.score(miles, minutes)
        day = DAY_NAMES[job.scheduled_date.weekday()]

        group = groups.setdefault(
            day, {"miles": 0.0, "minutes": 0.0, "score": 0.0, "count": 0, "best_job": job.id, "best_score": score}
        )
        group["miles"] += miles
        group["minutes"] += minutes
        group["score"] += score
        group["count"] += 1
        if score < group["best_score"]:
            group["best_score"] = score
            group["best_job"] = job.id

    if not groups:
        return None

    day, group = min(groups.items(), key=lambda kv: kv[1]["score"] / kv[1]["count"])
    count = group["count"]
    return DayOption(
        pickup_day=day,
        insertion_miles=group["miles"] / count,
        insertion_minutes=group["minutes"] / count,
        best_job_id=group["best_job"],
        routes_compared=compared,
        confidence=min(compared / (policy.window_days * 0.7), 1.0) if policy.window_days else 1.0,
    )


def nearest_zone(db: Session, lat: float, lng: float) -> Optional[ServiceZone]:
    zones = (
        db.query(ServiceZone)
        .filter(
            ServiceZone.active == True,  # noqa: E712
            ServiceZone.center_lat.isnot(None),
            ServiceZone.center_lng.isnot(None),
        )
        .all()
    )
    if not zones:
        return None
    return min(zones, key=lambda z: haversine_miles(lat, lng, z.center_lat, z.center_lng))


def evaluate(
    db: Session,
    property_id: str,
    policy: Optional[AutoAssignPolicy] = None,
    today: Optional[date] = None,
) -> Evaluation:
    policy = policy or AutoAssignPolicy.from_settings()
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop:
        raise NotFoundError("Property not found", property_id=property_id)
    if prop.service_status != ServiceStatus.PENDING_REVIEW:
        raise InvalidStateError(
            f"Address already {prop.service_status.value}",
            property_id=prop.id,
            current_status=prop.service_status.value,
        )

    pending = ServiceStatus.PENDING_REVIEW
    if not policy.auto_assign:
        return Evaluation(prop.id, pending, False, "auto_assign_disabled")
    if prop.latitude is None or prop.longitude is None:
        return Evaluation(prop.id, pending, False, "missing_coordinates")

    option = find_optimal_pickup_day(db, prop.latitude, prop.longitude, policy, today)
    if option is None:
        return Evaluation(prop.id, pending, False, "no_route_history")

    zone = nearest_zone(db, prop.latitude, prop.longitude)
    violations = policy.threshold_violations(option.insertion_miles, option.insertion_minutes)

    if not policy.auto_approve:
        status, reason = pending, "auto_approve_disabled"
    elif violations:
        status, reason = pending, "exceeds_" + "_and_".join(violations)
    else:
        status, reason = ServiceStatus.APPROVED, "within_thresholds"

    prop.pickup_day = option.pickup_day
    prop.pickup_day_source = "route_optimized"
    prop.pickup_day_assigned_at = datetime.now(timezone.utc)
    if zone is not None and prop.zone_id is None:
        prop.zone_id = zone.id
    prop.service_status = status
    db.commit()

    logger.info(
        "Address %s -> %s (%.2f mi / %.1f min), %s",
        prop.id, option.pickup_day, option.insertion_miles, option.insertion_minutes, status.value,
    )
    return Evaluation(
        property_id=prop.id,
        service_status=status,
        auto_approved=status == ServiceStatus.APPROVED,
        reason=reason,
        pickup_day=option.pickup_day,
        insertion_miles=option.insertion_miles,
        insertion_minutes=option.insertion_minutes,
        best_job_id=option.best_job_id,
        confidence=option.confidence,
        zone_id=prop.zone_id,
        zone_name=zone.name if zone is not None else None,
        violations=violations,
    )
