"""
Driver and stop status projections built from the provider event feed.

Both projections are a pure fold over events: replaying an event, or the
whole history from empty, gives the same result. Driver completion is
sticky against stray per-stop events; a stop always takes its latest event.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from routejobs.schemas.provider import FeedEvent

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"

ROUTE_START_EVENTS = frozenset({"start_route", "on_duty"})
ROUTE_END_EVENTS = frozenset({"end_route", "off_duty"})
STOP_ACTIVITY_EVENTS = frozenset({"start_service", "success", "failed", "rejected"})


@dataclass(frozen=True)
class DriverEvent:
    kind: str
    driver_key: Optional[str] = None
    stop_key: Optional[str] = None
    timestamp: Optional[int] = None
    tag: Optional[str] = None

    @classmethod
    def from_feed(cls, evt: FeedEvent, tag: Optional[str] = None) -> "DriverEvent":
        return cls(
            kind=evt.event,
            driver_key=evt.driverSerial or evt.driverExternalId or evt.driverName,
            stop_key=evt.orderNo or evt.orderId,
            timestamp=evt.unixTimestamp,
            tag=tag,
        )


def next_driver_status(prior: Optional[str], kind: str) -> Optional[str]:
    if kind in ROUTE_START_EVENTS:
        return IN_PROGRESS
    if kind in ROUTE_END_EVENTS:
        return COMPLETED
    if kind in STOP_ACTIVITY_EVENTS:
        return prior if prior == COMPLETED else IN_PROGRESS
    return prior


def next_stop_status(prior: Optional[str], kind: str) -> str:
    return kind


class StatusProjection:
    """
    Holds the two status maps. Each update swaps in a new dict rather than
    mutating in place, so readers on other threads always see a whole map.
    """

    def __init__(self):
        self._drivers: dict[str, str] = {}
        self._stops: dict[str, str] = {}

    @property
    def driver_statuses(self) -> Mapping[str, str]:
        return self._drivers

    @property
    def stop_statuses(self) -> Mapping[str, str]:
        return self._stops

    def driver_status(self, driver_key: str) -> str:
        return self._drivers.get(driver_key, NOT_STARTED)

    def apply(self, event: DriverEvent) -> tuple[dict[str, str], dict[str, str]]:
        """Apply one event; returns the (driver, stop) entries that changed."""
        driver_changes: dict[str, str] = {}
        stop_changes: dict[str, str] = {}

        if event.driver_key:
            prior = self._drivers.get(event.driver_key)
            new = next_driver_status(prior, event.kind)
            if new is not None and new != prior:
                self._drivers = {**self._drivers, event.driver_key: new}
                driver_changes[event.driver_key] = new

        if event.stop_key:
            prior = self._stops.get(event.stop_key)
            new = next_stop_status(prior, event.kind)
            if new != prior:
                self._stops = {**self._stops, event.stop_key: new}
                stop_changes[event.stop_key] = new

        return driver_changes, stop_changes

    def apply_all(self, events: Iterable[DriverEvent]) -> tuple[dict[str, str], dict[str, str]]:
        driver_changes: dict[str, str] = {}
        stop_changes: dict[str, str] = {}
        for event in events:
            d, s = self.apply(event)
            driver_changes.update(d)
            stop_changes.update(s)
        return driver_changes, stop_changes

    def snapshot(self) -> dict:
        return {"drivers": dict(self._drivers), "stops": dict(self._stops)}
