from typing import TYPE_CHECKING, Callable, List, Optional, Set, Tuple, Union

from models import (
    AlertTarget,
    Assignment,
    AssignmentPlan,
    Point,
    RescueBoat,
    SafePoint,
    SafePointTarget,
    SOSAlert,
)
from services.rationals import generate_rationales
from utils.distance_matrix import compute_distance_matrix, sorted_pairs
from utils.geo import distance
import logging

if TYPE_CHECKING:
    from services.state import SimulationState

logger = logging.getLogger(__name__)

RouteRequest = Callable[[str, Point, Point], None]
Candidate = Tuple[Union[AlertTarget, SafePointTarget], Point]


def _open_targets(
    boats: List[RescueBoat],
    alerts: List[SOSAlert],
    safe_points: List[SafePoint],
    pending: Set[str],
) -> List[Candidate]:
    """
    Safe points without a boat, then individual alerts that are ungrouped,
    not targeted by any boat and not provisionally claimed.
    """
    targeted = {b.target_sos_id for b in boats if b.target_sos_id is not None}
    served = {b.target_safe_point_id for b in boats if b.target_safe_point_id is not None}

    candidates: List[Candidate] = []
    for sp in safe_points:
        if sp.assigned_boat_id is None and sp.safe_point_id not in served:
            candidates.append((SafePointTarget(safe_point_id=sp.safe_point_id), sp.position))
    for alert in alerts:
        if alert.safe_point_id is not None:
            continue
        if alert.sos_id in targeted or alert.sos_id in pending:
            continue
        candidates.append((AlertTarget(sos_id=alert.sos_id), (alert.lat, alert.lon)))
    return candidates


def compute_assignments(
    boats: List[RescueBoat],
    alerts: List[SOSAlert],
    safe_points: List[SafePoint],
    pending: Set[str],
) -> AssignmentPlan:
    """
    Greedy nearest-distance matching of available boats to open targets:
    - Cost is the Haversine distance of every (boat, target) pair.
    - Pairs are taken in ascending order while both sides are unclaimed.
    - Accepted alert ids are added to `pending` until the plan is committed.
    This is not a minimum-cost matching; ties resolve by boat then target order.
    """
    plan = AssignmentPlan()
    free_boats = [b for b in boats if b.status == "available"]
    targets = _open_targets(boats, alerts, safe_points, pending)
    if not free_boats or not targets:
        return plan

    matrix = compute_distance_matrix([b.position for b in free_boats], [pos for _, pos in targets])
    claimed_boats: Set[int] = set()
    claimed_targets: Set[int] = set()

    for boat_idx, target_idx, dist_km in sorted_pairs(matrix):
        if boat_idx in claimed_boats or target_idx in claimed_targets:
            continue
        claimed_boats.add(boat_idx)
        claimed_targets.add(target_idx)

        target, _ = targets[target_idx]
        assignment = Assignment(boat_id=free_boats[boat_idx].boat_id, target=target, distance_km=dist_km)
        if isinstance(target, AlertTarget):
            pending.add(target.sos_id)
            plan.alert_assignments.append(assignment)
        else:
            plan.safe_point_assignments.append(assignment)

        if len(claimed_boats) == len(free_boats) or len(claimed_targets) == len(targets):
            break

    return plan


def reroute_returning_boats(
    boats: List[RescueBoat],
    alerts: List[SOSAlert],
    safe_points: List[SafePoint],
    pending: Set[str],
) -> Optional[Assignment]:
    """
    Picks the single nearest (returning boat, open target) pair, if any.
    At most one boat is rerouted per call to bound route lookups per tick.
    """
    returning = [b for b in boats if b.status == "returning"]
    targets = _open_targets(boats, alerts, safe_points, pending)
    if not returning or not targets:
        return None

    matrix = compute_distance_matrix([b.position for b in returning], [pos for _, pos in targets])
    boat_idx, target_idx, dist_km = sorted_pairs(matrix)[0]
    target, _ = targets[target_idx]
    if isinstance(target, AlertTarget):
        pending.add(target.sos_id)
    return Assignment(boat_id=returning[boat_idx].boat_id, target=target, distance_km=dist_km)


def commit_assignments(
    state: "SimulationState",
    assignments: List[Assignment],
    request_route: RouteRequest,
) -> List[Assignment]:
    """
    Applies assignments to the state: boats become responding, safe points
    record their boat, pending claims are released and routes are requested.
    Assignments whose boat or target vanished are dropped.
    """
    committed = []
    for a in assignments:
        boat = state.boat_by_id(a.boat_id)
        if isinstance(a.target, AlertTarget):
            state.pending.discard(a.target.sos_id)
            alert = state.alert_by_id(a.target.sos_id)
            destination = (alert.lat, alert.lon) if alert is not None else None
        else:
            sp = state.safe_point_by_id(a.target.safe_point_id)
            destination = sp.position if sp is not None else None
        if boat is None or destination is None:
            logger.info("DISPATCH_SKIPPED boat=%s target=%s", a.boat_id, a.target)
            continue

        was_returning = boat.status == "returning"
        boat.dispatch(a.target)
        if isinstance(a.target, SafePointTarget):
            sp.assigned_boat_id = boat.boat_id
        request_route(boat.boat_id, boat.position, destination)
        committed.append(a)
        logger.info(
            "%s boat=%s target=%s dist_km=%.3f",
            "REROUTE" if was_returning else "DISPATCH",
            boat.boat_id,
            a.target.sos_id if isinstance(a.target, AlertTarget) else a.target.safe_point_id,
            a.distance_km,
        )

    if committed:
        state.dispatch_log.extend(generate_rationales(committed, {b.boat_id: b for b in state.boats}))
    return committed


def find_nearest_available_boat(boats: List[RescueBoat], point: Point) -> Optional[RescueBoat]:
    available = [b for b in boats if b.status == "available"]
    if not available:
        return None
    return min(available, key=lambda b: distance(b.position, point))
