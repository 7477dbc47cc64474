import enum
from sqlalchemy import Column, String, DateTime, Enum, Integer, ForeignKey
from sqlalchemy.sql import func

from routejobs.core.db import Base


class PickupType(str, enum.Enum):
    ROUTINE = "routine"
    SPECIAL = "special"
    MISSED_REDO = "missed_redo"


class PickupStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Pickup(Base):
    __tablename__ = "job_pickups"

    id = Column(String, primary_key=True)  # uuid
    job_id = Column(String, ForeignKey("route_jobs.id"), index=True, nullable=False)
    property_id = Column(String, ForeignKey("properties.id"), index=True, nullable=False)
    customer_id = Column(String, index=True, nullable=False)

    pickup_type = Column(Enum(PickupType), default=PickupType.ROUTINE, nullable=False)
    status = Column(Enum(PickupStatus), default=PickupStatus.PENDING, nullable=False)

    # stop identity in the provider's routes and event feed
    order_no = Column(String, unique=True, index=True, nullable=False)
    sequence_number = Column(Integer, nullable=True)  # set once a route run has ordered the stops

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    detached_at = Column(DateTime(timezone=True), nullable=True)
