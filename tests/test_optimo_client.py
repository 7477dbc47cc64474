from unittest.mock import MagicMock

import pytest
import requests

from routejobs.core.errors import ExternalProviderError
from routejobs.services.optimo_client import OptimoRouteClient


def make_response(payload=None, status=200, text=""):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return OptimoRouteClient(base_url="https://optimo.test/v1/", api_key="k-123", timeout=3, session=session)


def test_get_events_sends_key_and_cursor(client, session):
    session.request.return_value = make_response(
        {
            "success": True,
            "events": [{"event": "start_route", "driverSerial": "DRV-1", "unixTimestamp": 10}],
            "tag": "t2",
            "remainingEvents": 0,
        }
    )
    page = client.get_events("t1")

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "GET"
    assert url == "https://optimo.test/v1/get_events"
    assert kwargs["params"] == {"key": "k-123", "afterTag": "t1"}
    assert kwargs["timeout"] == 3
    assert page.tag == "t2"
    assert page.events[0].driverSerial == "DRV-1"


def test_get_events_without_cursor_omits_tag(client, session):
    session.request.return_value = make_response({"success": True, "events": []})
    client.get_events()
    assert session.request.call_args.kwargs["params"] == {"key": "k-123"}


def test_unsuccessful_events_page_raises(client, session):
    session.request.return_value = make_response({"success": False, "code": "ERR_AUTH"})
    with pytest.raises(ExternalProviderError):
        client.get_events()


def test_transport_failure_raises_provider_error(client, session):
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(ExternalProviderError) as exc:
        client.get_routes("2026-10-19")
    assert exc.value.context["endpoint"] == "get_routes"


def test_http_error_status_raises(client, session):
    session.request.return_value = make_response(status=503, text="maintenance")
    with pytest.raises(ExternalProviderError) as exc:
        client.get_planning_status(42)
    assert exc.value.context["status"] == 503


def test_invalid_json_raises(client, session):
    session.request.return_value = make_response(ValueError("not json"))
    with pytest.raises(ExternalProviderError):
        client.stop_planning(42)


def test_malformed_payload_raises(client, session):
    session.request.return_value = make_response({"planningId": 5})
    with pytest.raises(ExternalProviderError):
        client.start_planning("2026-10-19")


def test_start_planning_body(client, session):
    session.request.return_value = make_response({"success": True, "planningId": 77})
    result = client.start_planning("2026-10-19", balancing="ON", balance_by="NUM", start_with="CURRENT")

    assert result.planningId == 77
    body = session.request.call_args.kwargs["json"]
    assert body == {
        "date": "2026-10-19",
        "balancing": "ON",
        "balanceBy": "NUM",
        "startWith": "CURRENT",
        "clustering": False,
    }


def test_balance_by_dropped_when_balancing_off(client, session):
    session.request.return_value = make_response({"success": True, "planningId": 78})
    client.start_planning("2026-10-19")
    assert "balanceBy" not in session.request.call_args.kwargs["json"]


def test_get_routes_parses_stops(client, session):
    session.request.return_value = make_response(
        {
            "success": True,
            "routes": [
                {
                    "driverSerial": "DRV-1",
                    "stops": [
                        {"stopNumber": 1, "orderNo": "JP-1", "latitude": 40.0, "longitude": -75.0},
                        {"stopNumber": 2, "type": "break"},
                    ],
                }
            ],
        }
    )
    routes = client.get_routes("2026-10-19")
    assert len(routes) == 1
    assert [s.orderNo for s in routes[0].stops] == ["JP-1", None]
    assert session.request.call_args.kwargs["params"]["date"] == "2026-10-19"
