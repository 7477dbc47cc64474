import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from routejobs.core.config import settings
from routejobs.core.db import Base, engine, SessionLocal
from routejobs.core.errors import DispatchError
from routejobs.routers.driver_jobs import router as driver_jobs_router
from routejobs.routers.jobs import router as jobs_router
from routejobs.routers.operations import router as operations_router
from routejobs.services import planning
from routejobs.services.event_ingestor import EventIngestor
from routejobs.services.optimo_client import OptimoRouteClient
from routejobs.services.progress_sync import make_progress_listener

# Import models so SQLAlchemy registers them before create_all()
import routejobs.models.user  # noqa: F401
import routejobs.models.zone  # noqa: F401
import routejobs.models.property  # noqa: F401
import routejobs.models.job  # noqa: F401
import routejobs.models.pickup  # noqa: F401
import routejobs.models.bid  # noqa: F401
import routejobs.models.event  # noqa: F401
import routejobs.models.feed  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("routejobs")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ingestor: EventIngestor = app.state.event_ingestor
    if settings.EVENT_FEED_ENABLED:
        ingestor.start()
    planning.resume_runs(app.state.planning_watchers, app.state.optimo_client, app.state.session_factory)
    yield
    ingestor.stop()
    for watcher in list(app.state.planning_watchers.values()):
        watcher.stop()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)

Base.metadata.create_all(bind=engine)

app.state.session_factory = SessionLocal
app.state.optimo_client = OptimoRouteClient()
app.state.event_ingestor = EventIngestor(app.state.optimo_client, SessionLocal)
app.state.event_ingestor.add_listener(make_progress_listener(SessionLocal))
app.state.planning_watchers = {}


@app.exception_handler(DispatchError)
def dispatch_error_handler(request: Request, exc: DispatchError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


app.include_router(jobs_router)
app.include_router(driver_jobs_router)
app.include_router(operations_router)


@app.get("/")
def root():
    return {"name": settings.APP_NAME, "docs": "/docs", "health": "/health"}


@app.get("/health")
def health():
    return {"ok": True}
