import itertools
import logging
from typing import Callable, List, Optional

from models import SafePoint, SOSAlert
from utils.geo import centroid, distance

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_RADIUS_KM = 1.0


def _sequential_ids() -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"SP-{next(counter):04d}"


def group_nearby_alerts(
    alerts: List[SOSAlert],
    radius_km: float = DEFAULT_CLUSTER_RADIUS_KM,
    id_factory: Optional[Callable[[], str]] = None,
) -> List[SafePoint]:
    """
    Greedy single-pass grouping of ungrouped alerts into safe points.

    Each alert not yet claimed becomes a seed and claims every other unclaimed
    alert within `radius_km` of it. Seeds with at least one neighbour form a
    safe point at the arithmetic-mean centroid of the members. Alerts that
    already carry a safe_point_id are ignored, and lone alerts stay ungrouped.
    The alerts themselves are not modified; see attach_safe_points.
    """
    next_id = id_factory or _sequential_ids()
    candidates = [a for a in alerts if a.safe_point_id is None]
    processed = set()
    safe_points: List[SafePoint] = []

    for seed in candidates:
        if seed.sos_id in processed:
            continue
        neighbours = [
            other
            for other in candidates
            if other.sos_id != seed.sos_id
            and other.sos_id not in processed
            and distance((seed.lat, seed.lon), (other.lat, other.lon)) <= radius_km
        ]
        if not neighbours:
            continue

        members = [seed] + neighbours
        lat, lon = centroid((m.lat, m.lon) for m in members)
        safe_point = SafePoint(
            safe_point_id=next_id(),
            lat=lat,
            lon=lon,
            assigned_alert_ids=[m.sos_id for m in members],
        )
        processed.update(m.sos_id for m in members)
        safe_points.append(safe_point)
        logger.info(
            "SAFE_POINT id=%s members=%d lat=%.5f lon=%.5f",
            safe_point.safe_point_id,
            len(members),
            lat,
            lon,
        )

    return safe_points


def attach_safe_points(alerts: List[SOSAlert], safe_points: List[SafePoint]) -> None:
    """Stamps every member alert with the id of the safe point it belongs to."""
    owner = {
        sos_id: sp.safe_point_id
        for sp in safe_points
        for sos_id in sp.assigned_alert_ids
    }
    for alert in alerts:
        if alert.sos_id in owner:
            alert.safe_point_id = owner[alert.sos_id]
