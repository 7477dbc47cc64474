from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from routejobs.models.job import JobStatus, JobType


class JobCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    # kept as a string so a missing/odd date is reported by the service, not the parser
    scheduled_date: Optional[str] = None
    job_type: JobType = JobType.DAILY_ROUTE
    description: Optional[str] = None
    notes: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    base_pay: Optional[float] = None
    zone_id: Optional[str] = None
    publish: bool = False


class JobUpdate(BaseModel):
    """Operator-editable fields. Status, stop count and assignment are not here."""

    title: Optional[str] = Field(default=None, max_length=200)
    scheduled_date: Optional[str] = None
    job_type: Optional[JobType] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    base_pay: Optional[float] = None
    zone_id: Optional[str] = None

    class Config:
        extra = "forbid"


class JobCancel(BaseModel):
    reason: Optional[str] = None


class JobOut(BaseModel):
    id: str
    title: str
    description: Optional[str]
    notes: Optional[str]
    job_type: JobType
    status: JobStatus
    scheduled_date: date
    start_time: Optional[str]
    end_time: Optional[str]
    estimated_stops: int
    estimated_hours: Optional[float]
    base_pay: Optional[float]
    actual_pay: Optional[float]
    assigned_driver_id: Optional[str]
    accepted_bid_id: Optional[str]
    zone_id: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class JobEventOut(BaseModel):
    id: str
    job_id: str
    actor_user_id: Optional[str]
    event_type: str
    message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
