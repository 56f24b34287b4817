from typing import Dict, List

from config import Config
from models import AlertTarget, Assignment, RescueBoat
from utils.geo import estimate_arrival, format_distance


def generate_rationales(
    assignments: List[Assignment],
    boats: Dict[str, RescueBoat],
    reason: str = "nearest free boat",
) -> List[str]:
    """
    - One human-readable line per dispatch for the operator log
    - Boats missing from `boats` fall back to their id
    """
    rationales = []
    for a in assignments:
        boat = boats.get(a.boat_id)
        name = boat.name if boat is not None else a.boat_id
        if isinstance(a.target, AlertTarget):
            where = f"SOS {a.target.sos_id}"
        else:
            where = f"safe point {a.target.safe_point_id}"
        rationales.append(
            f"{name} dispatched to {where}: {reason}, "
            f"{format_distance(a.distance_km)} away, ETA {estimate_arrival(a.distance_km, Config.DEFAULT_SPEED_KMH)}"
        )
    return rationales
