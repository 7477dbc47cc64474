import os
import uuid
from datetime import date

os.environ.setdefault("JWT_SECRET", "test-secret-for-route-jobs-0123456789abcdef")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENT_FEED_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from routejobs.core.db import Base, get_db
from routejobs.core.security import create_access_token
from routejobs.main import app
from routejobs.models.job import Job, JobStatus, JobType
from routejobs.models.pickup import Pickup
from routejobs.models.property import Property, ServiceStatus
from routejobs.models.user import User, UserRole
from routejobs.schemas.provider import (
    Ack,
    DriverRoute,
    EventsPage,
    PlanningStartResult,
    PlanningStatusResult,
)
from routejobs.services.event_ingestor import EventIngestor

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class FakeProvider:
    """Stands in for OptimoRouteClient. Queue up responses per endpoint."""

    def __init__(self):
        self.event_pages: list = []
        self.routes: dict[str, list[DriverRoute]] = {}
        self.start_result = PlanningStartResult(success=True, planningId=42)
        self.statuses: list[PlanningStatusResult] = []
        self.stop_ack = Ack(success=True)
        self.event_calls: list = []
        self.start_calls: list = []
        self.stop_calls: list = []

    def get_events(self, after_tag=None):
        self.event_calls.append(after_tag)
        if not self.event_pages:
            return EventsPage(events=[], tag=after_tag)
        page = self.event_pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def get_routes(self, date):
        return self.routes.get(date, [])

    def start_planning(self, date, balancing="OFF", balance_by="WT", start_with="EMPTY", clustering=False):
        self.start_calls.append(
            {"date": date, "balancing": balancing, "balance_by": balance_by, "start_with": start_with}
        )
        return self.start_result

    def get_planning_status(self, planning_id):
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        if self.statuses:
            return self.statuses[0]
        return PlanningStatusResult(success=True, status="R", percentageComplete=0)

    def stop_planning(self, planning_id):
        self.stop_calls.append(planning_id)
        return self.stop_ack


@pytest.fixture
def session_factory():
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_user(db):
    def _make(role=UserRole.DRIVER, name=None, rating=None, external_driver_key=None, is_active=True):
        user = User(
            id=str(uuid.uuid4()),
            name=name or f"{role.value.title()} {uuid.uuid4().hex[:4]}",
            role=role,
            rating=rating,
            external_driver_key=external_driver_key,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_property(db):
    def _make(lat=None, lng=None, status=ServiceStatus.PENDING_REVIEW, address="1 Main St"):
        prop = Property(
            id=str(uuid.uuid4()),
            customer_id=str(uuid.uuid4()),
            address=address,
            latitude=lat,
            longitude=lng,
            service_status=status,
        )
        db.add(prop)
        db.commit()
        db.refresh(prop)
        return prop

    return _make


@pytest.fixture
def make_job(db):
    """Insert a job row directly, bypassing the lifecycle service."""

    def _make(status=JobStatus.OPEN, scheduled_date=None, base_pay=200.0, title="Monday north route", **fields):
        job = Job(
            id=str(uuid.uuid4()),
            title=title,
            job_type=JobType.DAILY_ROUTE,
            status=status,
            scheduled_date=scheduled_date or date(2026, 10, 19),
            estimated_stops=0,
            base_pay=base_pay,
            **fields,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job

    return _make


@pytest.fixture
def add_stop(db):
    """Attach a live pickup for a property directly (used to build route history)."""

    def _add(job, prop, sequence_number=None, order_no=None):
        pickup_id = str(uuid.uuid4())
        pickup = Pickup(
            id=pickup_id,
            job_id=job.id,
            property_id=prop.id,
            customer_id=prop.customer_id,
            order_no=order_no or f"JP-{pickup_id[:8].upper()}",
            sequence_number=sequence_number,
        )
        db.add(pickup)
        db.commit()
        return pickup

    return _add


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(subject=user.id, role=user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(session_factory, provider):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    saved = dict(app.state._state)
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    app.state.optimo_client = provider
    app.state.event_ingestor = EventIngestor(provider, session_factory, interval=0, buffer_size=200)
    app.state.planning_watchers = {}

    with TestClient(app) as c:
        yield c

    for watcher in list(app.state.planning_watchers.values()):
        watcher.stop()
        watcher.join(timeout=5)
    app.dependency_overrides.clear()
    app.state._state.clear()
    app.state._state.update(saved)
