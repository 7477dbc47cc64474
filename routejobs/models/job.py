import enum
from sqlalchemy import Column, String, Date, DateTime, Enum, Float, Integer, Text, ForeignKey
from sqlalchemy.sql import func

from routejobs.core.db import Base


class JobStatus(str, enum.Enum):
    DRAFT = "draft"
    OPEN = "open"
    BIDDING = "bidding"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JobType(str, enum.Enum):
    DAILY_ROUTE = "daily_route"
    BULK_PICKUP = "bulk_pickup"
    SPECIAL_PICKUP = "special_pickup"


# open and bidding differ only by whether a bid has been recorded
BIDDABLE_STATUSES = (JobStatus.OPEN, JobStatus.BIDDING)
ASSIGNED_STATUSES = (JobStatus.ASSIGNED, JobStatus.IN_PROGRESS, JobStatus.COMPLETED)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.CANCELLED)


class Job(Base):
    __tablename__ = "route_jobs"

    id = Column(String, primary_key=True)  # uuid string

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    job_type = Column(Enum(JobType), default=JobType.DAILY_ROUTE, nullable=False)
    status = Column(Enum(JobStatus), default=JobStatus.DRAFT, index=True, nullable=False)

    scheduled_date = Column(Date, index=True, nullable=False)
    start_time = Column(String, nullable=True)  # HH:MM
    end_time = Column(String, nullable=True)

    # estimated_stops is derived from live pickups, never set directly
    estimated_stops = Column(Integer, default=0, nullable=False)
    estimated_hours = Column(Float, nullable=True)
    base_pay = Column(Float, nullable=True)

    # Written only by the bidding service
    actual_pay = Column(Float, nullable=True)
    assigned_driver_id = Column(String, ForeignKey("users.id"), index=True, nullable=True)
    accepted_bid_id = Column(String, nullable=True)

    zone_id = Column(String, ForeignKey("service_zones.id"), index=True, nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
