"""
Shapes consumed from the route-optimization provider.

Field names follow the provider's JSON (camelCase); everything past the
client is these parsed models, never raw dicts.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FeedEvent(_ProviderModel):
    event: str
    unixTimestamp: Optional[int] = None
    utcTime: Optional[str] = None
    localTime: Optional[str] = None
    driverName: Optional[str] = None
    driverSerial: Optional[str] = None
    driverExternalId: Optional[str] = None
    orderNo: Optional[str] = None
    orderId: Optional[str] = None


class EventsPage(_ProviderModel):
    success: bool = True
    events: list[FeedEvent] = Field(default_factory=list)
    tag: Optional[str] = None
    remainingEvents: int = 0


class RouteStop(_ProviderModel):
    stopNumber: Optional[int] = None
    orderNo: Optional[str] = None
    id: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    scheduledAt: Optional[str] = None
    travelTime: Optional[int] = None  # seconds from previous stop
    distance: Optional[float] = None  # meters from previous stop
    type: Optional[str] = None  # break, depot


class DriverRoute(_ProviderModel):
    driverSerial: Optional[str] = None
    driverName: Optional[str] = None
    driverExternalId: Optional[str] = None
    duration: Optional[float] = None  # minutes
    distance: Optional[float] = None  # km
    stops: list[RouteStop] = Field(default_factory=list)


class RoutesPage(_ProviderModel):
    success: bool = True
    routes: list[DriverRoute] = Field(default_factory=list)


class PlanningStartResult(_ProviderModel):
    success: bool
    code: Optional[str] = None
    planningId: Optional[int] = None
    missingOrders: list[str] = Field(default_factory=list)
    ordersWithInvalidLocation: list[str] = Field(default_factory=list)


class PlanningStatusResult(_ProviderModel):
    success: bool
    code: Optional[str] = None
    status: Optional[str] = None  # N, R, C, F, E
    percentageComplete: Optional[float] = None


class Ack(_ProviderModel):
    success: bool
    code: Optional[str] = None
