from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class PlanningStart(BaseModel):
    date: str
    balancing: Literal["OFF", "ON", "ON_FORCE"] = "OFF"
    balance_by: Literal["WT", "NUM"] = "WT"
    start_with: Literal["EMPTY", "CURRENT"] = "EMPTY"
    clustering: bool = False


class PlanningRunOut(BaseModel):
    id: str
    planning_id: int
    plan_date: str
    status: str
    percent_complete: float
    stop_requested: bool
    error_code: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class RouteSequenceOut(BaseModel):
    date: str
    routes: int
    sequenced: int
