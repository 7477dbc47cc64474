from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.sql import func

from routejobs.core.db import Base


class JobEvent(Base):
    __tablename__ = "job_events"

    id = Column(String, primary_key=True)  # uuid
    job_id = Column(String, ForeignKey("route_jobs.id"), index=True, nullable=False)
    actor_user_id = Column(String, ForeignKey("users.id"), index=True, nullable=True)  # null = system

    # CREATED, PUBLISHED, BID_PLACED, BID_ACCEPTED, ASSIGNED, CANCELLED, STATUS_CHANGED, ...
    event_type = Column(String, nullable=False)
    message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
