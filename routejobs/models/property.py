import enum
from sqlalchemy import Column, String, DateTime, Enum, Float, ForeignKey
from sqlalchemy.sql import func

from routejobs.core.db import Base


class ServiceStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    DENIED = "denied"


class Property(Base):
    __tablename__ = "properties"

    id = Column(String, primary_key=True)  # uuid
    customer_id = Column(String, index=True, nullable=False)
    address = Column(String, nullable=False)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    zone_id = Column(String, ForeignKey("service_zones.id"), index=True, nullable=True)

    service_status = Column(Enum(ServiceStatus), default=ServiceStatus.PENDING_REVIEW, nullable=False)
    pickup_day = Column(String, nullable=True)         # monday .. sunday
    pickup_day_source = Column(String, nullable=True)  # route_optimized, manual
    pickup_day_assigned_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)
