from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class BidCreate(BaseModel):
    bid_amount: float
    message: Optional[str] = Field(default=None, max_length=1000)


class BidUpdate(BaseModel):
    bid_amount: Optional[float] = None
    message: Optional[str] = Field(default=None, max_length=1000)


class BidOut(BaseModel):
    id: str
    job_id: str
    driver_id: str
    bid_amount: float
    message: Optional[str]
    driver_rating_at_bid: float
    created_at: datetime

    class Config:
        from_attributes = True


class JobBidOut(BidOut):
    driver_name: Optional[str] = None
    accepted: bool = False
    actionable: bool = False


class DirectAssign(BaseModel):
    driver_id: str
    actual_pay: Optional[float] = None
