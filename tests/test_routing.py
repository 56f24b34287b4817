import asyncio
import time

import pytest
import requests

from conftest import make_boat
from services.movement import advance_boats
from services.routing import (
    RouteDispatcher,
    RouteProvider,
    advance_along_route,
    cache_key,
    parse_osrm_route,
)

ORIGIN = (24.8712, 67.0456)
DEST = (24.8607, 67.0011)

OSRM_OK = {
    "code": "Ok",
    "routes": [
        {
            "distance": 5230.1,
            "duration": 610.4,
            "geometry": {"type": "LineString", "coordinates": [[67.0456, 24.8712], [67.03, 24.866], [67.0011, 24.8607]]},
        }
    ],
}


class FakeResponse:
    def __init__(self, payload=None, status=200, bad_json=False):
        self.payload = payload
        self.status = status
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value")
        return self.payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(url)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def provider_with(*responses, **kwargs):
    session = FakeSession(*responses)
    return RouteProvider(base_url="http://osrm.test", session=session, enabled=True, **kwargs), session


def test_parse_osrm_route_swaps_to_lat_lon():
    assert parse_osrm_route(OSRM_OK) == [(24.8712, 67.0456), (24.866, 67.03), (24.8607, 67.0011)]


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "NoRoute", "routes": []},
        {"code": "Ok", "routes": []},
        {"code": "Ok"},
    ],
)
def test_parse_osrm_route_without_route(payload):
    assert parse_osrm_route(payload) is None


def test_cache_key_rounds_to_five_decimals_and_is_directional():
    assert cache_key((1.123456789, 2.0), (3.0, 4.0)) == "1.12346,2.00000-3.00000,4.00000"
    assert cache_key(ORIGIN, DEST) != cache_key(DEST, ORIGIN)


def test_successful_route_is_cached():
    provider, session = provider_with(FakeResponse(OSRM_OK))
    first = provider.get_route(ORIGIN, DEST)
    second = provider.get_route(ORIGIN, DEST)
    assert first == second == parse_osrm_route(OSRM_OK)
    assert len(session.calls) == 1
    assert session.calls[0] == "http://osrm.test/route/v1/driving/67.0456,24.8712;67.0011,24.8607"
    assert provider.get_stats()["hits"] == 1


def test_reverse_direction_is_not_shared():
    provider, session = provider_with(FakeResponse(OSRM_OK), FakeResponse(OSRM_OK))
    provider.get_route(ORIGIN, DEST)
    provider.get_route(DEST, ORIGIN)
    assert len(session.calls) == 2


@pytest.mark.parametrize(
    "failure",
    [
        requests.ConnectionError("unreachable"),
        requests.Timeout("slow"),
        FakeResponse(status=503),
        FakeResponse(bad_json=True),
        FakeResponse({"code": "NoRoute"}),
        FakeResponse({"code": "Ok", "routes": [{"geometry": {}}]}),
    ],
)
def test_failures_return_none_and_are_not_cached(failure):
    provider, session = provider_with(failure, FakeResponse(OSRM_OK))
    assert provider.get_route(ORIGIN, DEST) is None
    assert provider.get_stats()["entries"] == 0
    # A later request for the same pair retries the service
    assert provider.get_route(ORIGIN, DEST) is not None
    assert len(session.calls) == 2


def test_disabled_provider_never_calls_out():
    provider, session = provider_with()
    provider.enabled = False
    assert provider.get_route(ORIGIN, DEST) is None
    assert session.calls == []


def test_cache_evicts_oldest_entry_when_full():
    provider, session = provider_with(FakeResponse(OSRM_OK), FakeResponse(OSRM_OK), FakeResponse(OSRM_OK), max_size=1)
    provider.get_route(ORIGIN, DEST)
    provider.get_route(DEST, ORIGIN)
    stats = provider.get_stats()
    assert stats["entries"] == 1
    assert stats["evictions"] == 1
    provider.get_route(ORIGIN, DEST)
    assert len(session.calls) == 3


def test_advance_along_empty_route_stays_put():
    assert advance_along_route((1.0, 1.0), [], 0.5) == ((1.0, 1.0), [])


def test_advance_consumes_reached_waypoints_then_moves_partially():
    route = [(0.0, 1.0), (0.0, 2.0), (0.0, 3.0)]
    pos, remaining = advance_along_route((0.0, 0.0), route, 1.5)
    assert pos == pytest.approx((0.0, 1.5))
    assert remaining == [(0.0, 2.0), (0.0, 3.0)]


def test_advance_exact_budget_lands_on_waypoint():
    pos, remaining = advance_along_route((0.0, 0.0), [(0.0, 1.0), (1.0, 1.0)], 1.0)
    assert pos == (0.0, 1.0)
    assert remaining == [(1.0, 1.0)]


def test_advance_past_end_of_route():
    pos, remaining = advance_along_route((0.0, 0.0), [(0.0, 0.5)], 2.0)
    assert pos == (0.0, 0.5)
    assert remaining == []


class EchoProvider(RouteProvider):
    """Returns a one-point route ending at the requested destination."""

    def __init__(self):
        super().__init__(enabled=True)

    def get_route(self, origin, destination):
        return [destination]


def test_dispatcher_inline_mode_writes_route():
    routes = {}
    dispatcher = RouteDispatcher(EchoProvider(), routes)
    dispatcher.request("B-01", ORIGIN, DEST)
    assert routes == {"B-01": [DEST]}


def test_dispatcher_inline_failure_leaves_route_absent():
    routes = {"B-01": [(0.0, 0.0)]}
    provider, _ = provider_with(requests.ConnectionError("down"))
    dispatcher = RouteDispatcher(provider, routes)
    dispatcher.request("B-01", ORIGIN, DEST)
    assert "B-01" not in routes


def test_dispatcher_async_mode_drops_stale_results():
    routes = {}
    dispatcher = RouteDispatcher(EchoProvider(), routes)
    first, second = (24.9, 67.1), (24.8, 67.2)

    async def scenario():
        dispatcher.attach(asyncio.get_running_loop())
        dispatcher.request("B-01", ORIGIN, first)
        dispatcher.request("B-01", ORIGIN, second)
        # Requests never block the caller
        assert "B-01" not in routes
        for _ in range(200):
            if dispatcher.in_flight == 0:
                break
            await asyncio.sleep(0.01)
        dispatcher.detach()

    asyncio.run(scenario())
    assert routes == {"B-01": [second]}


class SlowEchoProvider(EchoProvider):
    def get_route(self, origin, destination):
        time.sleep(0.1)
        return [origin, destination]


def test_route_home_arriving_after_boat_docks_is_dropped():
    routes = {}
    dispatcher = RouteDispatcher(SlowEchoProvider(), routes)
    home = (24.8607, 67.0011)
    boat = make_boat("B-1", home)
    boat.move_to((home[0] + 0.001, home[1]))

    async def scenario():
        dispatcher.attach(asyncio.get_running_loop())
        boat.send_home()
        dispatcher.request("B-1", boat.position, home)
        advance_boats([boat], [], [], routes, dispatcher.request, cancel_route=dispatcher.cancel)
        assert boat.status == "available"
        for _ in range(100):
            if dispatcher.in_flight == 0:
                break
            await asyncio.sleep(0.01)
        dispatcher.detach()

    asyncio.run(scenario())
    assert routes == {}


def test_dispatcher_cancel_discards_late_result():
    routes = {}
    dispatcher = RouteDispatcher(EchoProvider(), routes)

    async def scenario():
        dispatcher.attach(asyncio.get_running_loop())
        dispatcher.request("B-01", ORIGIN, DEST)
        dispatcher.cancel("B-01")
        for _ in range(200):
            if dispatcher.in_flight == 0:
                break
            await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert routes == {}
