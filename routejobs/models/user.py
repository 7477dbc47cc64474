import enum
from sqlalchemy import Column, String, Boolean, DateTime, Enum, Float
from sqlalchemy.sql import func

from routejobs.core.db import Base


class UserRole(str, enum.Enum):
    DRIVER = "DRIVER"
    DISPATCHER = "DISPATCHER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)  # uuid string
    name = Column(String, nullable=False)
    phone = Column(String, unique=True, index=True, nullable=True)
    role = Column(Enum(UserRole), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Drivers only
    rating = Column(Float, nullable=True)
    # driverSerial / driverName as it appears in the provider's event feed
    external_driver_key = Column(String, unique=True, index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
