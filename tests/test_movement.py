import pytest

from config import Config
from conftest import BASE, make_alert, make_boat, make_clock
from models import AlertTarget, SafePoint, SafePointTarget
from services.movement import advance_alerts, advance_boats, apply_removals
from utils.geo import planar_distance

SPEED = Config.BOAT_SPEED
THRESHOLD = Config.ARRIVAL_THRESHOLD


class RouteLog:
    def __init__(self):
        self.requests = []

    def __call__(self, boat_id, origin, destination):
        self.requests.append((boat_id, origin, destination))


def far(point, d_lat=0.0, d_lon=0.0):
    return (point[0] + d_lat, point[1] + d_lon)


def test_available_boats_do_not_move():
    boat = make_boat("B-1", BASE)
    removed = advance_boats([boat], [make_alert("SOS-1", far(BASE, 0.05))], [], {}, RouteLog())
    assert boat.position == BASE
    assert removed == (set(), set())


def test_responding_boat_moves_straight_toward_alert():
    boat = make_boat("B-1", BASE)
    alert = make_alert("SOS-1", far(BASE, 0.02))
    boat.dispatch(AlertTarget(sos_id="SOS-1"))
    advance_boats([boat], [alert], [], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert boat.position == pytest.approx(far(BASE, SPEED))


def test_responding_boat_follows_route_when_available():
    boat = make_boat("B-1", BASE)
    alert = make_alert("SOS-1", far(BASE, 0.02))
    boat.dispatch(AlertTarget(sos_id="SOS-1"))
    routes = {"B-1": [far(BASE, 0, 0.001), far(BASE, 0.02, 0.001)]}
    advance_boats([boat], [alert], [], routes, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert boat.position == pytest.approx(far(BASE, 0.001, 0.001))
    assert routes["B-1"] == [far(BASE, 0.02, 0.001)]


def test_exhausted_route_is_dropped():
    boat = make_boat("B-1", BASE)
    alert = make_alert("SOS-1", far(BASE, 0.02))
    boat.dispatch(AlertTarget(sos_id="SOS-1"))
    routes = {"B-1": [far(BASE, 0.001)]}
    advance_boats([boat], [alert], [], routes, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert "B-1" not in routes


def test_distance_to_target_strictly_decreases_until_arrival():
    boat = make_boat("B-1", BASE)
    alert = make_alert("SOS-1", far(BASE, 0.013, -0.011))
    boat.dispatch(AlertTarget(sos_id="SOS-1"))
    last = planar_distance(boat.position, (alert.lat, alert.lon))
    for _ in range(100):
        removed, _ = advance_boats([boat], [alert], [], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
        if removed:
            break
        now = planar_distance(boat.position, (alert.lat, alert.lon))
        assert now < last
        last = now
    assert removed == {"SOS-1"}
    assert boat.position == (alert.lat, alert.lon)
    assert boat.status == "returning"
    assert boat.target is None


def test_arrival_requests_route_home():
    boat = make_boat("B-1", BASE)
    alert = make_alert("SOS-1", far(BASE, 0.001))
    boat.dispatch(AlertTarget(sos_id="SOS-1"))
    log = RouteLog()
    routes = {"B-1": [far(BASE, 0.001)]}
    advance_boats([boat], [alert], [], routes, log, speed=SPEED, threshold=THRESHOLD)
    assert log.requests == [("B-1", (alert.lat, alert.lon), BASE)]
    assert "B-1" not in routes


def test_missing_target_sends_boat_home():
    boat = make_boat("B-1", BASE)
    boat.move_to(far(BASE, 0.01))
    boat.dispatch(AlertTarget(sos_id="SOS-GONE"))
    log = RouteLog()
    removed = advance_boats([boat], [], [], {}, log)
    assert boat.status == "returning"
    assert boat.target is None
    assert removed == (set(), set())
    assert log.requests[0][0] == "B-1"


def test_returning_boat_reaches_home_and_becomes_available():
    boat = make_boat("B-1", BASE)
    boat.move_to(far(BASE, 0.009))
    boat.send_home()
    for _ in range(10):
        advance_boats([boat], [], [], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert boat.status == "available"
    assert boat.position == BASE


def test_boat_holds_at_safe_point_until_members_arrive():
    sp = SafePoint(safe_point_id="SP-1", lat=BASE[0], lon=BASE[1], assigned_alert_ids=["SOS-1", "SOS-2"])
    arrived = make_alert("SOS-1", BASE, safe_point_id="SP-1", reached_safe_point=True)
    walking = make_alert("SOS-2", far(BASE, 0.01), safe_point_id="SP-1")
    boat = make_boat("B-1", far(BASE, 0.001))
    boat.dispatch(SafePointTarget(safe_point_id="SP-1"))

    removed = advance_boats([boat], [arrived, walking], [sp], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert removed == (set(), set())
    assert boat.position == BASE
    assert boat.status == "responding"

    removed = advance_boats([boat], [arrived, walking], [sp], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert boat.position == BASE
    assert removed == (set(), set())

    walking.reached_safe_point = True
    removed = advance_boats([boat], [arrived, walking], [sp], {}, RouteLog(), speed=SPEED, threshold=THRESHOLD)
    assert removed == ({"SOS-1", "SOS-2"}, {"SP-1"})
    assert boat.status == "returning"


def test_alerts_migrate_at_half_speed_and_snap_on_arrival():
    sp = SafePoint(safe_point_id="SP-1", lat=BASE[0], lon=BASE[1], assigned_alert_ids=["SOS-1"])
    alert = make_alert("SOS-1", far(BASE, 0.0045), safe_point_id="SP-1")
    speed = SPEED * Config.ALERT_SPEED_FACTOR

    assert advance_alerts([alert], [sp], speed=speed, threshold=THRESHOLD) == []
    assert alert.position == pytest.approx(far(BASE, 0.0045 - speed))
    # Report location is preserved
    assert (alert.lat, alert.lon) == far(BASE, 0.0045)

    assert advance_alerts([alert], [sp], speed=speed, threshold=THRESHOLD) == []
    assert advance_alerts([alert], [sp], speed=speed, threshold=THRESHOLD) == ["SOS-1"]
    assert alert.reached_safe_point
    assert alert.position == BASE

    assert advance_alerts([alert], [sp], speed=speed, threshold=THRESHOLD) == []


def test_ungrouped_alerts_never_migrate():
    alert = make_alert("SOS-1", BASE)
    advance_alerts([alert], [])
    assert alert.current_lat is None and alert.current_lon is None


def test_alert_released_when_safe_point_disappears():
    alert = make_alert("SOS-1", BASE, safe_point_id="SP-GONE")
    advance_alerts([alert], [])
    assert alert.safe_point_id is None


def test_apply_removals_filters_and_clears_selection(fleet):
    clock = make_clock(fleet)
    state = clock.state
    state.alerts = [make_alert("SOS-1", BASE), make_alert("SOS-2", BASE)]
    state.safe_points = [SafePoint(safe_point_id="SP-1", lat=BASE[0], lon=BASE[1], assigned_alert_ids=[])]
    state.selected_sos_id = "SOS-1"
    state.pending.add("SOS-1")

    apply_removals(state, {"SOS-1"}, {"SP-1"})

    assert [a.sos_id for a in state.alerts] == ["SOS-2"]
    assert state.safe_points == []
    assert state.selected_sos_id is None
    assert state.pending == set()
