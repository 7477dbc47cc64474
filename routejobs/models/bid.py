from sqlalchemy import Column, String, DateTime, Float, Text, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from routejobs.core.db import Base


class Bid(Base):
    __tablename__ = "job_bids"
    __table_args__ = (UniqueConstraint("job_id", "driver_id", name="uq_job_bids_job_driver"),)

    id = Column(String, primary_key=True)  # uuid
    job_id = Column(String, ForeignKey("route_jobs.id"), index=True, nullable=False)
    driver_id = Column(String, ForeignKey("users.id"), index=True, nullable=False)

    bid_amount = Column(Float, nullable=False)
    message = Column(Text, nullable=True)
    driver_rating_at_bid = Column(Float, nullable=False)  # snapshot, never updated

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
