from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from routejobs.core.auth import require_driver
from routejobs.core.db import get_db
from routejobs.models.user import User
from routejobs.schemas.bid import BidCreate, BidOut, BidUpdate
from routejobs.schemas.job import JobOut
from routejobs.services import bidding, jobs

router = APIRouter(prefix="/driver/jobs", tags=["driver"])

driver_only = require_driver


@router.get("", response_model=list[JobOut])
def list_available_jobs(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: Session = Depends(get_db),
    _user: User = Depends(driver_only),
):
    return jobs.list_visible_jobs(db, date_from=date_from, date_to=date_to)


@router.get("/mine", response_model=list[JobOut])
def list_my_jobs(db: Session = Depends(get_db), user: User = Depends(driver_only)):
    return jobs.list_jobs(db, driver_id=user.id)


@router.post("/{job_id}/bid", response_model=BidOut, status_code=status.HTTP_201_CREATED)
def place_bid(
    job_id: str,
    payload: BidCreate,
    db: Session = Depends(get_db),
    user: User = Depends(driver_only),
):
    return bidding.submit_bid(db, job_id, user.id, payload.bid_amount, payload.message)


@router.put("/{job_id}/bid", response_model=BidOut)
def change_bid(
    job_id: str,
    payload: BidUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(driver_only),
):
    return bidding.update_bid(db, job_id, user.id, payload.bid_amount, payload.message)


@router.delete("/{job_id}/bid")
def withdraw_bid(job_id: str, db: Session = Depends(get_db), user: User = Depends(driver_only)):
    bidding.withdraw_bid(db, job_id, user.id)
    return {"ok": True}
