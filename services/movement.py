"""
Per-tick movement of boats and migrating alerts.

Boats cycle available -> responding -> returning -> available. Positions
advance along the boat's street route when one has arrived, otherwise in a
straight line. Arrivals produce removal sets that apply_removals applies once
every boat has been processed.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set, Tuple

from config import Config
from models import AlertTarget, Point, RescueBoat, SafePoint, SafePointTarget, SOSAlert
from services.routing import Route, advance_along_route
from utils.geo import move_towards, planar_distance

if TYPE_CHECKING:
    from services.state import SimulationState

logger = logging.getLogger(__name__)

RouteRequest = Callable[[str, Point, Point], None]
RouteCancel = Callable[[str], None]


def _step(boat: RescueBoat, destination: Point, routes: Dict[str, Route], speed: float) -> None:
    route = routes.get(boat.boat_id)
    if route:
        new_pos, remaining = advance_along_route(boat.position, route, speed)
        if remaining:
            routes[boat.boat_id] = remaining
        else:
            routes.pop(boat.boat_id, None)
    else:
        new_pos = move_towards(boat.position, destination, speed)
    boat.move_to(new_pos)


def _head_home(boat: RescueBoat, routes: Dict[str, Route], request_route: RouteRequest) -> None:
    boat.send_home()
    routes.pop(boat.boat_id, None)
    request_route(boat.boat_id, boat.position, boat.home_base)


def advance_boats(
    boats: List[RescueBoat],
    alerts: List[SOSAlert],
    safe_points: List[SafePoint],
    routes: Dict[str, Route],
    request_route: RouteRequest,
    speed: float = Config.BOAT_SPEED,
    threshold: float = Config.ARRIVAL_THRESHOLD,
    cancel_route: Optional[RouteCancel] = None,
) -> Tuple[Set[str], Set[str]]:
    """
    Runs one movement tick for every boat.

    `cancel_route` is called for boats that reach home so a route lookup
    still in flight is not applied to an idle boat.

    Returns (removed_sos_ids, removed_safe_point_ids) for the caller to apply.
    """
    alerts_by_id = {a.sos_id: a for a in alerts}
    safe_points_by_id = {s.safe_point_id: s for s in safe_points}
    removed_sos: Set[str] = set()
    removed_safe_points: Set[str] = set()

    for boat in boats:
        if boat.status == "available":
            continue

        if boat.status == "returning":
            if planar_distance(boat.position, boat.home_base) < threshold:
                boat.move_to(boat.home_base)
                boat.mark_available()
                routes.pop(boat.boat_id, None)
                if cancel_route is not None:
                    cancel_route(boat.boat_id)
                logger.info("HOME boat=%s", boat.boat_id)
            else:
                _step(boat, boat.home_base, routes, speed)
            continue

        if isinstance(boat.target, AlertTarget):
            alert = alerts_by_id.get(boat.target.sos_id)
            if alert is None:
                logger.info("ABORT boat=%s sos=%s reason=target_gone", boat.boat_id, boat.target.sos_id)
                _head_home(boat, routes, request_route)
                continue

            destination = (alert.lat, alert.lon)
            if planar_distance(boat.position, destination) < threshold:
                removed_sos.add(alert.sos_id)
                boat.move_to(destination)
                logger.info("RESCUE boat=%s sos=%s people=%d", boat.boat_id, alert.sos_id, alert.people_affected)
                _head_home(boat, routes, request_route)
            else:
                _step(boat, destination, routes, speed)
            continue

        if isinstance(boat.target, SafePointTarget):
            sp = safe_points_by_id.get(boat.target.safe_point_id)
            if sp is None:
                logger.info("ABORT boat=%s safe_point=%s reason=target_gone", boat.boat_id, boat.target.safe_point_id)
                _head_home(boat, routes, request_route)
                continue

            if planar_distance(boat.position, sp.position) >= threshold:
                _step(boat, sp.position, routes, speed)
                continue

            if boat.position != sp.position:
                boat.move_to(sp.position)
                routes.pop(boat.boat_id, None)
            members = [alerts_by_id[i] for i in sp.assigned_alert_ids if i in alerts_by_id]
            if all(m.reached_safe_point for m in members):
                removed_sos.update(m.sos_id for m in members)
                removed_safe_points.add(sp.safe_point_id)
                logger.info(
                    "RESCUE boat=%s safe_point=%s people=%d",
                    boat.boat_id,
                    sp.safe_point_id,
                    sum(m.people_affected for m in members),
                )
                _head_home(boat, routes, request_route)
            # Otherwise hold at the centroid until the remaining alerts arrive
            continue

        # Responding without a target cannot be produced by RescueBoat's
        # transitions, but recover rather than stall
        logger.warning("ORPHAN boat=%s status=%s", boat.boat_id, boat.status)
        _head_home(boat, routes, request_route)

    return removed_sos, removed_safe_points


def advance_alerts(
    alerts: List[SOSAlert],
    safe_points: List[SafePoint],
    speed: float = Config.BOAT_SPEED * Config.ALERT_SPEED_FACTOR,
    threshold: float = Config.ARRIVAL_THRESHOLD,
) -> List[str]:
    """
    Moves grouped alerts straight toward their safe point's centroid.

    Returns the ids of alerts that reached their safe point on this tick.
    """
    safe_points_by_id = {s.safe_point_id: s for s in safe_points}
    arrived = []
    for alert in alerts:
        if alert.safe_point_id is None or alert.reached_safe_point:
            continue

        sp = safe_points_by_id.get(alert.safe_point_id)
        if sp is None:
            logger.info("RELEASE sos=%s safe_point=%s reason=safe_point_gone", alert.sos_id, alert.safe_point_id)
            alert.safe_point_id = None
            alert.current_lat = None
            alert.current_lon = None
            continue

        pos = alert.position
        if planar_distance(pos, sp.position) < threshold:
            new_pos = sp.position
            alert.reached_safe_point = True
            arrived.append(alert.sos_id)
        else:
            new_pos = move_towards(pos, sp.position, speed)
        alert.current_lat, alert.current_lon = new_pos

    return arrived


def apply_removals(state: "SimulationState", removed_sos: Set[str], removed_safe_points: Set[str]) -> None:
    """
    Filters resolved alerts and safe points out of the state in one step and
    clears the selection if it pointed at a removed alert.
    """
    if not removed_sos and not removed_safe_points:
        return
    state.alerts = [a for a in state.alerts if a.sos_id not in removed_sos]
    state.safe_points = [s for s in state.safe_points if s.safe_point_id not in removed_safe_points]
    state.pending.difference_update(removed_sos)
    if state.selected_sos_id in removed_sos:
        state.selected_sos_id = None
    for sos_id in sorted(removed_sos):
        logger.info("RESOLVED sos=%s", sos_id)
