"""
HTTP client for the route-optimization provider.

Sole responsibility: talk to the provider and return parsed models from
``routejobs.schemas.provider``. Transport failures, non-2xx responses and
payloads that do not parse are all raised as ``ExternalProviderError``.
"""
from __future__ import annotations

import logging
from typing import Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from routejobs.core.config import settings
from routejobs.core.errors import ExternalProviderError
from routejobs.schemas.provider import (
    Ack,
    DriverRoute,
    EventsPage,
    PlanningStartResult,
    PlanningStatusResult,
    RoutesPage,
)

logger = logging.getLogger("optimo_client")


class OptimoRouteClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or settings.OPTIMO_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.OPTIMO_API_KEY
        self.timeout = timeout if timeout is not None else settings.OPTIMO_TIMEOUT_S
        self.session = session or requests.Session()

    # ----------------
    # transport
    # ----------------
    def _request(self, method: str, endpoint: str, params: dict | None = None, body: dict | None = None) -> dict:
        url = f"{self.base_url}/{endpoint}"
        query = {"key": self.api_key, **(params or {})}
        try:
            response = self.session.request(
                method,
                url,
                params=query,
                json=body,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExternalProviderError(f"Provider unreachable: {e}", endpoint=endpoint)

        if not response.ok:
            raise ExternalProviderError(
                f"Provider error ({response.status_code})",
                endpoint=endpoint,
                status=response.status_code,
                body=response.text[:500],
            )
        try:
            return response.json()
        except ValueError:
            raise ExternalProviderError("Provider returned invalid JSON", endpoint=endpoint)

    def _parse(self, model, data: dict, endpoint: str):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ExternalProviderError("Provider returned malformed data", endpoint=endpoint, errors=e.errors()[:3])

    # ----------------
    # routes for day
    # ----------------
    def get_routes(self, date: str) -> list[DriverRoute]:
        data = self._request("GET", "get_routes", params={"date": date})
        return self._parse(RoutesPage, data, "get_routes").routes

    # ----------------
    # event feed
    # ----------------
    def get_events(self, after_tag: Optional[str] = None) -> EventsPage:
        params = {"afterTag": after_tag} if after_tag else {}
        data = self._request("GET", "get_events", params=params)
        page = self._parse(EventsPage, data, "get_events")
        if not page.success:
            raise ExternalProviderError("Provider rejected events request", endpoint="get_events")
        return page

    # ----------------
    # planning run control
    # ----------------
    def start_planning(
        self,
        date: str,
        balancing: str = "OFF",
        balance_by: str = "WT",
        start_with: str = "EMPTY",
        clustering: bool = False,
    ) -> PlanningStartResult:
        body = {
            "date": date,
            "balancing": balancing,
            "startWith": start_with,
            "clustering": clustering,
        }
        if balancing != "OFF":
            body["balanceBy"] = balance_by
        data = self._request("POST", "start_planning", body=body)
        return self._parse(PlanningStartResult, data, "start_planning")

    def get_planning_status(self, planning_id: int) -> PlanningStatusResult:
        data = self._request("GET", "get_planning_status", params={"planningId": str(planning_id)})
        return self._parse(PlanningStatusResult, data, "get_planning_status")

    def stop_planning(self, planning_id: int) -> Ack:
        data = self._request("POST", "stop_planning", body={"planningId": planning_id})
        return self._parse(Ack, data, "stop_planning")
