from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from routejobs.models.pickup import PickupStatus, PickupType


class PickupAttach(BaseModel):
    property_ids: list[str] = Field(min_length=1)
    pickup_type: PickupType = PickupType.ROUTINE


class PickupOut(BaseModel):
    id: str
    job_id: str
    property_id: str
    customer_id: str
    pickup_type: PickupType
    status: PickupStatus
    order_no: str
    sequence_number: Optional[int]
    created_at: datetime
    detached_at: Optional[datetime]

    class Config:
        from_attributes = True


class SkippedPropertyOut(BaseModel):
    property_id: str
    reason: str
    conflicting_job_id: Optional[str] = None


class AttachReportOut(BaseModel):
    attached: list[PickupOut]
    skipped: list[SkippedPropertyOut]
    estimated_stops: int
