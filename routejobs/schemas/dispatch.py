from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EvaluationOut(BaseModel):
    property_id: str
    service_status: str
    auto_approved: bool
    reason: str
    pickup_day: Optional[str] = None
    insertion_miles: Optional[float] = None
    insertion_minutes: Optional[float] = None
    best_job_id: Optional[str] = None
    confidence: Optional[float] = None
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    violations: list[str] = []

    class Config:
        from_attributes = True


class LiveStatusOut(BaseModel):
    drivers: dict[str, str]
    stops: dict[str, str]
    cursor: Optional[str] = None
    running: bool = False
    last_polled_at: Optional[datetime] = None
    last_error: Optional[str] = None


class LiveEventOut(BaseModel):
    kind: str
    driver_key: Optional[str] = None
    stop_key: Optional[str] = None
    timestamp: Optional[int] = None
    tag: Optional[str] = None

    class Config:
        from_attributes = True
