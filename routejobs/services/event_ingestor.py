"""
Polls the provider's driver event feed and folds it into the status projection.

One loop per process: a background thread that polls, applies, then waits
for the interval. Because polls never overlap, this thread is the only
writer of the cursor and the projection. A restarted loop waits for the
previous thread to finish its in-flight poll first. Feed failures are logged
and the cursor is kept so the next tick retries from the same place.

Listeners receive the current status of every driver and stop named in the
batch, not only the entries that changed, so a listener that failed on one
tick catches up when the same driver or stop shows up again.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from routejobs.core.config import settings
from routejobs.core.errors import ExternalProviderError
from routejobs.models.feed import FeedCursor
from routejobs.services.status_projection import DriverEvent, StatusProjection

logger = logging.getLogger("event_ingestor")

FEED_NAME = "driver_events"

Listener = Callable[[dict, dict], None]


class EventIngestor:
    def __init__(
        self,
        client,
        session_factory: Callable[[], Session],
        interval: float | None = None,
        buffer_size: int | None = None,
        feed_name: str = FEED_NAME,
    ):
        self.client = client
        self.session_factory = session_factory
        self.interval = interval if interval is not None else settings.EVENT_POLL_INTERVAL_S
        self.feed_name = feed_name
        self.projection = StatusProjection()

        self._buffer: deque[DriverEvent] = deque(maxlen=buffer_size or settings.EVENT_BUFFER_SIZE)
        self._listeners: list[Listener] = []
        self._cursor: Optional[str] = None
        self._cursor_loaded = False

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.last_polled_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    # ----------------
    # cursor persistence
    # ----------------
    @property
    def cursor(self) -> Optional[str]:
        return self._cursor

    def _load_cursor(self) -> Optional[str]:
        if not self._cursor_loaded:
            with self.session_factory() as db:
                row = db.get(FeedCursor, self.feed_name)
                self._cursor = row.tag if row else None
            self._cursor_loaded = True
        return self._cursor

    def _save_cursor(self, tag: str) -> None:
        self._cursor = tag
        with self.session_factory() as db:
            row = db.get(FeedCursor, self.feed_name)
            if row is None:
                db.add(FeedCursor(name=self.feed_name, tag=tag))
            else:
                row.tag = tag
            db.commit()

    # ----------------
    # polling
    # ----------------
    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def poll(self, cursor: Optional[str]) -> tuple[list[DriverEvent], Optional[str]]:
        """Fetch events after ``cursor``. On failure returns ``([], cursor)``."""
        try:
            page = self.client.get_events(cursor)
        except ExternalProviderError as e:
            self.last_error = e.message
            logger.warning("Event feed poll failed, keeping cursor %s: %s", cursor, e.message)
            return [], cursor

        self.last_error = None
        new_cursor = page.tag or cursor
        events = [DriverEvent.from_feed(evt, new_cursor) for evt in page.events]
        return events, new_cursor

    def run_once(self) -> int:
        cursor = self._load_cursor()
        events, new_cursor = self.poll(cursor)
        self.last_polled_at = datetime.now(timezone.utc)

        if events:
            self._buffer.extend(events)
            self.projection.apply_all(events)
            drivers, stops = self._touched(events)
            if drivers or stops:
                self._notify(drivers, stops)

        if new_cursor and new_cursor != cursor:
            self._save_cursor(new_cursor)
        return len(events)

    def _touched(self, events: list[DriverEvent]) -> tuple[dict, dict]:
        known_drivers = self.projection.driver_statuses
        known_stops = self.projection.stop_statuses
        drivers = {e.driver_key: known_drivers[e.driver_key] for e in events if e.driver_key in known_drivers}
        stops = {e.stop_key: known_stops[e.stop_key] for e in events if e.stop_key in known_stops}
        return drivers, stops

    def _notify(self, drivers: dict, stops: dict) -> None:
        for listener in self._listeners:
            try:
                listener(drivers, stops)
            except Exception:
                logger.exception("Status listener %r failed", listener)

    # ----------------
    # loop control
    # ----------------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running and not self._stop.is_set():
            return
        previous = self._thread
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop, previous), name="event-ingestor", daemon=True
        )
        self._thread.start()
        logger.info("Event ingestor started (every %.1fs)", self.interval)

    def stop(self, wait: float | None = None) -> None:
        """Skip the next tick. An in-flight poll is allowed to finish."""
        self._stop.set()
        if wait is not None and self._thread is not None:
            self._thread.join(timeout=wait)
        logger.info("Event ingestor stopping")

    def _run(self, stop: threading.Event, previous: Optional[threading.Thread]) -> None:
        if previous is not None:
            previous.join()
        while not stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Event ingestor tick failed")
            stop.wait(self.interval)

    # ----------------
    # read side
    # ----------------
    def recent_events(self, limit: int | None = None) -> list[DriverEvent]:
        events = list(self._buffer)
        return events[-limit:] if limit else events

    def snapshot(self) -> dict:
        snap = self.projection.snapshot()
        snap.update(
            {
                "cursor": self._cursor,
                "running": self.running,
                "last_polled_at": self.last_polled_at,
                "last_error": self.last_error,
            }
        )
        return snap
