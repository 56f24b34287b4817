import math
from typing import Iterable, Tuple

Point = Tuple[float, float]  # (lat, lon)

EARTH_RADIUS_KM = 6371
KM_PER_DEG_LAT = math.pi * EARTH_RADIUS_KM / 180


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(a: Point, b: Point) -> float:
    """Great-circle distance in km between two (lat, lon) points."""
    return haversine(a[0], a[1], b[0], b[1])


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_distance(km: float) -> str:
    if km < 1:
        return f"{_round_half_up(km * 1000)}m"
    return f"{km:.1f}km"


def estimate_arrival(distance_km: float, speed_kmh: float = 15) -> str:
    minutes = _round_half_up(distance_km / speed_kmh * 60)
    if minutes < 1:
        return "< 1 min"
    if minutes < 60:
        return f"~{minutes} min"
    return f"~{minutes // 60}h {minutes % 60}m"


def planar_distance(a: Point, b: Point) -> float:
    """
    Straight-line distance in degree space. Boat speed and arrival
    thresholds are expressed in the same unit.
    """
    return math.hypot(b[0] - a[0], b[1] - a[1])


def move_towards(pos: Point, target: Point, step: float) -> Point:
    d_lat = target[0] - pos[0]
    d_lon = target[1] - pos[1]
    dist = math.hypot(d_lat, d_lon)
    if dist <= step:
        return target
    ratio = step / dist
    return (pos[0] + d_lat * ratio, pos[1] + d_lon * ratio)


def centroid(points: Iterable[Point]) -> Point:
    points = list(points)
    if not points:
        raise ValueError("centroid of an empty point set")
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )


def offset_km(origin: Point, north_km: float, east_km: float) -> Point:
    # Local equirectangular approximation, fine at flood-zone scale
    lat = origin[0] + north_km / KM_PER_DEG_LAT
    lon = origin[1] + east_km / (KM_PER_DEG_LAT * math.cos(math.radians(origin[0])))
    return (lat, lon)
