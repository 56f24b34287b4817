import pytest

from models import RescueBoat, SOSAlert
from services.routing import RouteDispatcher, RouteProvider
from services.simulation import SimulationClock
from services.state import SimulationState
from utils.geo import offset_km

BASE = (24.8607, 67.0011)


class StubProvider(RouteProvider):
    """RouteProvider that never touches the network."""

    def __init__(self, canned=None, **kwargs):
        super().__init__(**kwargs)
        self.canned = canned or {}
        self.calls = []

    def fetch(self, origin, destination):
        self.calls.append((origin, destination))
        return self.canned.get(destination)


def make_boat(boat_id, point, name=None, capacity=15):
    return RescueBoat(
        boat_id=boat_id,
        name=name or f"Rescue {boat_id}",
        lat=point[0],
        lon=point[1],
        capacity=capacity,
        home_base=point,
    )


def make_alert(sos_id, point, people=10, **kwargs):
    return SOSAlert(
        sos_id=sos_id,
        village_id="V-00",
        village_name="Saddar",
        lat=point[0],
        lon=point[1],
        category="flood",
        severity=2,
        people_affected=people,
        **kwargs,
    )


def make_clock(boats, provider=None):
    state = SimulationState(boats=boats, villages=["Saddar", "Nazimabad"], seed=7)
    dispatcher = RouteDispatcher(provider or StubProvider(enabled=False), state.routes)
    return SimulationClock(state, dispatcher)


@pytest.fixture
def base_point():
    return BASE


@pytest.fixture
def fleet():
    """Five boats; B-01 sits at BASE and the rest are 12-15 km away."""
    return [
        make_boat("B-01", BASE, name="Rescue Alpha"),
        make_boat("B-02", offset_km(BASE, 0, 12), name="Rescue Bravo"),
        make_boat("B-03", offset_km(BASE, 0, -12), name="Rescue Charlie"),
        make_boat("B-04", offset_km(BASE, -12, 0), name="Rescue Delta"),
        make_boat("B-05", offset_km(BASE, 10, 10), name="Rescue Echo"),
    ]


@pytest.fixture
def clock(fleet):
    return make_clock(fleet)
