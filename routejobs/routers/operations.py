from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from routejobs.core.auth import require_operator
from routejobs.core.db import get_db
from routejobs.models.user import User
from routejobs.schemas.dispatch import EvaluationOut, LiveEventOut, LiveStatusOut
from routejobs.schemas.planning import PlanningRunOut, PlanningStart, RouteSequenceOut
from routejobs.schemas.provider import DriverRoute
from routejobs.services import auto_assign, planning

router = APIRouter(tags=["operations"])

operator = require_operator


# -------------------
# ADDRESS AUTO-ASSIGNMENT
# -------------------
@router.post("/properties/{property_id}/auto-assign", response_model=EvaluationOut)
def auto_assign_property(
    property_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    result = auto_assign.evaluate(db, property_id)
    return EvaluationOut(**{**result.__dict__, "service_status": result.service_status.value})


# -------------------
# ROUTE OPTIMIZATION
# -------------------
@router.post("/optimization/runs", response_model=PlanningRunOut, status_code=status.HTTP_202_ACCEPTED)
def start_optimization(
    payload: PlanningStart,
    request: Request,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    client = request.app.state.optimo_client
    run = planning.start_run(db, client, payload)

    planning.watch_run(request.app.state.planning_watchers, run.id, client, request.app.state.session_factory)
    return run


@router.get("/optimization/runs/{run_id}", response_model=PlanningRunOut)
def get_optimization(run_id: str, db: Session = Depends(get_db), _user: User = Depends(operator)):
    return planning.get_run(db, run_id)


@router.post("/optimization/runs/{run_id}/stop", response_model=PlanningRunOut)
def stop_optimization(
    run_id: str,
    request: Request,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    return planning.stop_run(db, request.app.state.optimo_client, run_id)


@router.get("/routes", response_model=list[DriverRoute])
def routes_for_day(date: str, request: Request, _user: User = Depends(operator)):
    return request.app.state.optimo_client.get_routes(date)


@router.post("/routes/{plan_date}/sequence", response_model=RouteSequenceOut)
def sequence_routes(
    plan_date: str,
    request: Request,
    db: Session = Depends(get_db),
    _user: User = Depends(operator),
):
    routes, sequenced = planning.sync_route_sequence(db, request.app.state.optimo_client, plan_date)
    return {"date": plan_date, "routes": routes, "sequenced": sequenced}


# -------------------
# LIVE STATUS
# -------------------
@router.get("/live/status", response_model=LiveStatusOut)
def live_status(request: Request, _user: User = Depends(operator)):
    return request.app.state.event_ingestor.snapshot()


@router.get("/live/events", response_model=list[LiveEventOut])
def live_events(request: Request, limit: int = 50, _user: User = Depends(operator)):
    return request.app.state.event_ingestor.recent_events(limit)
