from sqlalchemy import Column, String, Boolean, DateTime, Float, Text
from sqlalchemy.sql import func

from routejobs.core.db import Base


class ServiceZone(Base):
    __tablename__ = "service_zones"

    id = Column(String, primary_key=True)  # uuid
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    center_lat = Column(Float, nullable=True)
    center_lng = Column(Float, nullable=True)
    radius_miles = Column(Float, nullable=True)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
