from sqlalchemy import Column, String, DateTime, Float, Integer, Boolean
from sqlalchemy.sql import func

from routejobs.core.db import Base


class FeedCursor(Base):
    __tablename__ = "feed_cursors"

    name = Column(String, primary_key=True)  # one row per feed
    tag = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class PlanningRun(Base):
    __tablename__ = "planning_runs"

    id = Column(String, primary_key=True)  # uuid
    planning_id = Column(Integer, index=True, nullable=False)  # provider run id
    plan_date = Column(String, nullable=False)  # YYYY-MM-DD

    status = Column(String, default="running", nullable=False)  # running, finished, error, cancelled
    percent_complete = Column(Float, default=0, nullable=False)
    stop_requested = Column(Boolean, default=False, nullable=False)
    error_code = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
