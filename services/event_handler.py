import logging
import math
from typing import Any, Callable, Dict, List, Optional

from config import Config
from models import AlertTarget, Assignment, Event, FloodZone, Point, SafePoint, SOSAlert
from services.clustering import attach_safe_points, group_nearby_alerts
from services.rationals import generate_rationales
from services.simulation import SimulationClock
from services.state import SimulationState
from utils.geo import distance, offset_km

logger = logging.getLogger(__name__)

RouteRequest = Callable[[str, Point, Point], None]

ALERT_CATEGORIES = ["flood", "stranded", "medical", "supplies"]
HOTSPOT_RADIUS_KM = 0.4
HOTSPOT_SHARE = 0.8


def _region_center() -> Point:
    return (Config.REGION_CENTER_LAT, Config.REGION_CENTER_LON)


def _random_point_in_region(state: SimulationState, margin: float = 1.0) -> Point:
    lat = Config.REGION_CENTER_LAT + (state.rng.random() - 0.5) * Config.REGION_LAT_SPAN * margin
    lon = Config.REGION_CENTER_LON + (state.rng.random() - 0.5) * Config.REGION_LON_SPAN * margin
    return (lat, lon)


def _random_point_in_circle(state: SimulationState, center: Point, radius_km: float) -> Point:
    # sqrt keeps the spread uniform over the disc area
    r = radius_km * math.sqrt(state.rng.random())
    theta = state.rng.random() * 2 * math.pi
    return offset_km(center, r * math.cos(theta), r * math.sin(theta))


def _random_point_in_zone(state: SimulationState, zone: FloodZone) -> Point:
    if zone.is_giant_flood:
        return _random_point_in_region(state)
    return _random_point_in_circle(state, (zone.lat, zone.lon), zone.radius_km)


def _new_alert(state: SimulationState, point: Point) -> SOSAlert:
    village_index = int(state.rng.integers(len(state.villages)))
    return SOSAlert(
        sos_id=state.next_sos_id(),
        village_id=f"V-{village_index:02d}",
        village_name=state.villages[village_index],
        lat=point[0],
        lon=point[1],
        category=ALERT_CATEGORIES[int(state.rng.integers(len(ALERT_CATEGORIES)))],
        severity=int(state.rng.integers(1, 4)),
        people_affected=int(state.rng.integers(5, 55)),
    )


def cluster_new_alerts(state: SimulationState) -> List[SafePoint]:
    """
    Groups ungrouped alerts that no boat is chasing or has provisionally
    claimed, and registers the resulting safe points.
    """
    busy = state.targeted_sos_ids() | state.pending
    eligible = [a for a in state.alerts if a.safe_point_id is None and a.sos_id not in busy]
    safe_points = group_nearby_alerts(eligible, Config.CLUSTER_RADIUS_KM, state.next_safe_point_id)
    attach_safe_points(state.alerts, safe_points)
    state.safe_points.extend(safe_points)
    return safe_points


def create_flood_zone(state: SimulationState) -> FloodZone:
    center = _random_point_in_region(state, margin=0.8)
    radius = Config.FLOOD_ZONE_MIN_RADIUS_KM + state.rng.random() * (
        Config.FLOOD_ZONE_MAX_RADIUS_KM - Config.FLOOD_ZONE_MIN_RADIUS_KM
    )
    zone = FloodZone(zone_id=state.next_zone_id(), lat=center[0], lon=center[1], radius_km=round(radius, 2))
    # A giant flood already covers everything; a regional zone narrows it again
    state.flood_zones = [z for z in state.flood_zones if not z.is_giant_flood] + [zone]
    logger.info("FLOOD_ZONE id=%s lat=%.5f lon=%.5f radius_km=%.2f", zone.zone_id, zone.lat, zone.lon, zone.radius_km)
    return zone


def create_giant_flood(state: SimulationState) -> List[SOSAlert]:
    """
    - Replace every flood zone with a single region-wide zone
    - Generate 25-40 alerts, most of them packed around a few hot spots
    - Group the new batch into safe points
    """
    center = _region_center()
    corner = (
        Config.REGION_CENTER_LAT + Config.REGION_LAT_SPAN / 2,
        Config.REGION_CENTER_LON + Config.REGION_LON_SPAN / 2,
    )
    zone = FloodZone(
        zone_id=state.next_zone_id(),
        lat=center[0],
        lon=center[1],
        radius_km=round(distance(center, corner), 2),
        is_giant_flood=True,
    )
    state.flood_zones = [zone]

    count = int(state.rng.integers(Config.GIANT_FLOOD_MIN_ALERTS, Config.GIANT_FLOOD_MAX_ALERTS + 1))
    hotspots = [_random_point_in_region(state, margin=0.8) for _ in range(int(state.rng.integers(4, 8)))]
    alerts = []
    for _ in range(count):
        if state.rng.random() < HOTSPOT_SHARE:
            spot = hotspots[int(state.rng.integers(len(hotspots)))]
            point = _random_point_in_circle(state, spot, HOTSPOT_RADIUS_KM)
        else:
            point = _random_point_in_region(state)
        alerts.append(_new_alert(state, point))

    state.alerts = alerts + state.alerts
    safe_points = cluster_new_alerts(state)
    logger.info(
        "GIANT_FLOOD zone=%s alerts=%d hotspots=%d safe_points=%d",
        zone.zone_id,
        len(alerts),
        len(hotspots),
        len(safe_points),
    )
    return alerts


def add_alert_in_flood_zone(state: SimulationState) -> Optional[SOSAlert]:
    """Returns None, without raising, when there is no flood zone to spawn in."""
    if not state.flood_zones:
        logger.warning("NEW_SOS_REFUSED reason=no_flood_zone")
        return None

    zone = state.flood_zones[int(state.rng.integers(len(state.flood_zones)))]
    alert = _new_alert(state, _random_point_in_zone(state, zone))
    state.alerts.insert(0, alert)
    cluster_new_alerts(state)
    logger.info("NEW_SOS id=%s village=%s zone=%s", alert.sos_id, alert.village_name, zone.zone_id)
    return alert


def remove_alert(state: SimulationState, sos_id: str) -> bool:
    """
    Deletes an alert. A safe point left without members is removed too; a
    boat heading to it aborts on its next movement tick.
    """
    alert = state.alert_by_id(sos_id)
    if alert is None:
        return False
    state.alerts = [a for a in state.alerts if a.sos_id != sos_id]

    sp = state.safe_point_by_id(alert.safe_point_id) if alert.safe_point_id else None
    if sp is not None:
        sp.assigned_alert_ids = [i for i in sp.assigned_alert_ids if i != sos_id]
        if not sp.assigned_alert_ids:
            state.safe_points = [s for s in state.safe_points if s.safe_point_id != sp.safe_point_id]
            logger.info("SAFE_POINT_EMPTY id=%s boat=%s", sp.safe_point_id, sp.assigned_boat_id)

    state.pending.discard(sos_id)
    if state.selected_sos_id == sos_id:
        state.selected_sos_id = None
    logger.info("REMOVED sos=%s", sos_id)
    return True


def select_alert(state: SimulationState, sos_id: Optional[str]) -> bool:
    if sos_id is not None and state.alert_by_id(sos_id) is None:
        return False
    state.selected_sos_id = sos_id
    return True


def assign_boat_manually(state: SimulationState, sos_id: str, boat_id: str, request_route: RouteRequest) -> bool:
    """
    Sends a specific boat to a specific individual alert.

    Unknown ids are ignored. Alerts grouped into a safe point are served
    through it and cannot be assigned individually. Any boat already chasing
    the alert is sent home, and a safe point the chosen boat was serving is
    released for the next assignment cycle.
    """
    boat = state.boat_by_id(boat_id)
    alert = state.alert_by_id(sos_id)
    if boat is None or alert is None:
        logger.info("MANUAL_DISPATCH_IGNORED boat=%s sos=%s reason=unknown_id", boat_id, sos_id)
        return False
    if alert.safe_point_id is not None:
        logger.info("MANUAL_DISPATCH_IGNORED boat=%s sos=%s reason=grouped", boat_id, sos_id)
        return False
    if boat.target_sos_id == sos_id:
        return True

    for other in state.boats:
        if other is not boat and other.target_sos_id == sos_id:
            other.send_home()
            request_route(other.boat_id, other.position, other.home_base)
            logger.info("RECALLED boat=%s sos=%s", other.boat_id, sos_id)

    if boat.target_safe_point_id is not None:
        sp = state.safe_point_by_id(boat.target_safe_point_id)
        if sp is not None:
            sp.assigned_boat_id = None

    state.pending.discard(sos_id)
    boat.dispatch(AlertTarget(sos_id=sos_id))
    request_route(boat.boat_id, boat.position, (alert.lat, alert.lon))

    km = distance(boat.position, (alert.lat, alert.lon))
    state.dispatch_log.extend(
        generate_rationales(
            [Assignment(boat_id=boat.boat_id, target=boat.target, distance_km=km)],
            {boat.boat_id: boat},
            reason="manual dispatch",
        )
    )
    logger.info("MANUAL_DISPATCH boat=%s sos=%s dist_km=%.3f", boat.boat_id, sos_id, km)
    return True


def apply_event(clock: SimulationClock, event: Event) -> Dict[str, Any]:
    """
    - Route an operator event to the matching trigger
    - Return a small JSON-able summary of the outcome
    """
    state = clock.state
    if event.type == "add_sos":
        alert = add_alert_in_flood_zone(state)
        return {"accepted": alert is not None, "sos_id": alert.sos_id if alert else None}
    if event.type == "remove_sos":
        return {"accepted": event.sos_id is not None and remove_alert(state, event.sos_id)}
    if event.type == "flood_zone":
        zone = create_flood_zone(state)
        return {"accepted": True, "zone_id": zone.zone_id}
    if event.type == "giant_flood":
        alerts = create_giant_flood(state)
        return {"accepted": True, "alerts_created": len(alerts)}
    if event.type == "assign_boat":
        if event.sos_id is None or event.boat_id is None:
            return {"accepted": False}
        return {"accepted": assign_boat_manually(state, event.sos_id, event.boat_id, clock.request_route)}
    if event.type == "select_sos":
        return {"accepted": select_alert(state, event.sos_id)}
    # toggle_simulation
    return {"accepted": True, "is_simulating": clock.toggle()}
