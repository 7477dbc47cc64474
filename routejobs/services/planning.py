"""
Route optimization runs against the provider.

``start_run`` returns as soon as the provider accepts the request; progress
is only learned by polling. ``PlanningWatcher`` is the per-run polling loop
and the only writer of that run's progress row. A stop request is
best-effort: if the run finishes anyway, ``finished`` is accepted as final.
"""
from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Optional

from sqlalchemy.orm import Session

from routejobs.core.config import settings
from routejobs.core.errors import ExternalProviderError, NotFoundError, PlanningStartError
from routejobs.models.feed import PlanningRun
from routejobs.models.pickup import Pickup
from routejobs.schemas.planning import PlanningStart
from routejobs.schemas.provider import DriverRoute
from routejobs.services.jobs import parse_scheduled_date

logger = logging.getLogger("planning")

RUNNING = "running"
FINISHED = "finished"
ERROR = "error"
CANCELLED = "cancelled"
TERMINAL_STATES = frozenset({FINISHED, ERROR, CANCELLED})

# provider codes: New, Running, Cancelled, Finished, Error
PROVIDER_STATES = {"N": RUNNING, "R": RUNNING, "C": CANCELLED, "F": FINISHED, "E": ERROR}

NON_STOP_TYPES = frozenset({"break", "depot"})


def get_run(db: Session, run_id: str) -> PlanningRun:
    run = db.query(PlanningRun).filter(PlanningRun.id == run_id).first()
    if not run:
        raise NotFoundError("Planning run not found", run_id=run_id)
    return run


def start_run(db: Session, client, params: PlanningStart) -> PlanningRun:
    plan_date = parse_scheduled_date(params.date).isoformat()
    result = client.start_planning(
        date=plan_date,
        balancing=params.balancing,
        balance_by=params.balance_by,
        start_with=params.start_with,
        clustering=params.clustering,
    )
    if not result.success or result.planningId is None:
        raise PlanningStartError(
            "Provider refused to start planning",
            provider_code=result.code or "UNKNOWN",
            invalid_orders=result.ordersWithInvalidLocation,
        )

    run = PlanningRun(
        id=str(uuid.uuid4()),
        planning_id=result.planningId,
        plan_date=plan_date,
        status=RUNNING,
        percent_complete=0,
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    logger.info("Started planning run %s (provider id %s) for %s", run.id, run.planning_id, plan_date)
    return run


def poll_run(db: Session, client, run_id: str) -> PlanningRun:
    run = get_run(db, run_id)
    if run.status in TERMINAL_STATES:
        return run

    status = client.get_planning_status(run.planning_id)
    if not status.success:
        run.status = ERROR
        run.error_code = status.code or "UNKNOWN"
    else:
        run.status = PROVIDER_STATES.get(status.status or "R", RUNNING)
        if status.percentageComplete is not None:
            run.percent_complete = float(status.percentageComplete)
        if run.status == FINISHED:
            run.percent_complete = 100.0

    db.commit()
    db.refresh(run)
    if run.status in TERMINAL_STATES:
        logger.info("Planning run %s ended: %s", run.id, run.status)
    return run


def stop_run(db: Session, client, run_id: str) -> PlanningRun:
    run = get_run(db, run_id)
    if run.status in TERMINAL_STATES:
        return run

    ack = client.stop_planning(run.planning_id)
    if not ack.success:
        logger.warning("Provider did not acknowledge stop for run %s: %s", run.id, ack.code)
        return run

    run.stop_requested = True
    db.commit()
    db.refresh(run)
    return run


def apply_route_sequence(db: Session, routes: list[DriverRoute]) -> int:
    """Number each live pickup by its position in its driver's stop list."""
    sequenced = 0
    for route in routes:
        position = 0
        for stop in route.stops:
            if (stop.type or "").lower() in NON_STOP_TYPES or not stop.orderNo:
                continue
            position += 1
            pickup = (
                db.query(Pickup)
                .filter(Pickup.order_no == stop.orderNo, Pickup.detached_at.is_(None))
                .first()
            )
            if pickup is None:
                continue
            pickup.sequence_number = stop.stopNumber if stop.stopNumber is not None else position
            sequenced += 1
    db.commit()
    return sequenced


def sync_route_sequence(db: Session, client, plan_date: str) -> tuple[int, int]:
    routes = client.get_routes(parse_scheduled_date(plan_date).isoformat())
    return len(routes), apply_route_sequence(db, routes)


class PlanningWatcher:
    """Polls one run until it reaches a terminal state or is stopped."""

    def __init__(
        self,
        run_id: str,
        client,
        session_factory: Callable[[], Session],
        interval: float | None = None,
        max_polls: int | None = None,
        on_finished: Optional[Callable[[Session, PlanningRun], None]] = None,
        on_exit: Optional[Callable[["PlanningWatcher"], None]] = None,
    ):
        self.run_id = run_id
        self.client = client
        self.session_factory = session_factory
        self.interval = interval if interval is not None else settings.PLANNING_POLL_INTERVAL_S
        self.max_polls = max_polls or settings.PLANNING_MAX_POLLS
        self.on_finished = on_finished
        self.on_exit = on_exit
        self.final_status: Optional[str] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name=f"planning-{self.run_id[:8]}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def tick(self) -> Optional[str]:
        with self.session_factory() as db:
            try:
                run = poll_run(db, self.client, self.run_id)
            except ExternalProviderError as e:
                logger.warning("Polling planning run %s failed: %s", self.run_id, e.message)
                return None
            if run.status == FINISHED and self.on_finished is not None:
                try:
                    self.on_finished(db, run)
                except ExternalProviderError as e:
                    logger.warning("Post-planning sync for run %s failed: %s", run.id, e.message)
            return run.status

    def run(self) -> None:
        try:
            self._watch()
        finally:
            if self.on_exit is not None:
                self.on_exit(self)

    def _watch(self) -> None:
        polls = 0
        while not self._stop.is_set() and polls < self.max_polls:
            status = self.tick()
            polls += 1
            if status in TERMINAL_STATES:
                self.final_status = status
                return
            self._stop.wait(self.interval)
        if not self._stop.is_set():
            logger.warning("Gave up watching planning run %s after %d polls", self.run_id, polls)


def sequence_after_finish(client) -> Callable[[Session, PlanningRun], None]:
    def _apply(db: Session, run: PlanningRun) -> None:
        routes, sequenced = sync_route_sequence(db, client, run.plan_date)
        logger.info("Run %s: sequenced %d stop(s) across %d route(s)", run.id, sequenced, routes)

    return _apply


def watch_run(
    watchers: dict,
    run_id: str,
    client,
    session_factory: Callable[[], Session],
    **kwargs,
) -> PlanningWatcher:
    """Start a watcher for ``run_id`` and keep it in ``watchers`` while it runs."""

    def _forget(watcher: PlanningWatcher) -> None:
        if watchers.get(watcher.run_id) is watcher:
            del watchers[watcher.run_id]

    watcher = PlanningWatcher(
        run_id,
        client,
        session_factory,
        on_finished=sequence_after_finish(client),
        on_exit=_forget,
        **kwargs,
    )
    watchers[run_id] = watcher
    watcher.start()
    return watcher


def resume_runs(watchers: dict, client, session_factory: Callable[[], Session]) -> list[PlanningWatcher]:
    """Pick up runs a previous process left in ``running``."""
    with session_factory() as db:
        run_ids = [
            run.id
            for run in db.query(PlanningRun).filter(PlanningRun.status == RUNNING).all()
            if run.id not in watchers
        ]
    resumed = [watch_run(watchers, run_id, client, session_factory) for run_id in run_ids]
    if resumed:
        logger.info("Resumed watching %d planning run(s)", len(resumed))
    return resumed
