"""
Configuration for the flood rescue dispatch simulator.
Environment-based settings with sensible defaults.
"""

import os
from pathlib import Path


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Simulation configuration with environment variable overrides"""

    BASE_DIR = Path(__file__).parent
    FLEET_PATH = Path(os.getenv("FLEET_PATH", BASE_DIR / "database" / "fleet.json"))
    VILLAGES_PATH = Path(os.getenv("VILLAGES_PATH", BASE_DIR / "database" / "villages.json"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Operating region (Karachi)
    REGION_CENTER_LAT = float(os.getenv("REGION_CENTER_LAT", 24.8607))
    REGION_CENTER_LON = float(os.getenv("REGION_CENTER_LON", 67.0011))
    REGION_LAT_SPAN = float(os.getenv("REGION_LAT_SPAN", 0.1))
    REGION_LON_SPAN = float(os.getenv("REGION_LON_SPAN", 0.2))

    # Movement, in degrees per movement tick
    BOAT_SPEED = float(os.getenv("BOAT_SPEED", 0.002))
    ARRIVAL_THRESHOLD = float(os.getenv("ARRIVAL_THRESHOLD", 0.003))
    ALERT_SPEED_FACTOR = float(os.getenv("ALERT_SPEED_FACTOR", 0.5))

    # Clustering
    CLUSTER_RADIUS_KM = float(os.getenv("CLUSTER_RADIUS_KM", 1.0))

    # Tick intervals (seconds)
    ASSIGNMENT_INTERVAL_S = float(os.getenv("ASSIGNMENT_INTERVAL_S", 1.0))
    ALERT_MOVE_INTERVAL_S = float(os.getenv("ALERT_MOVE_INTERVAL_S", 0.3))
    BOAT_MOVE_INTERVAL_S = float(os.getenv("BOAT_MOVE_INTERVAL_S", 0.3))

    # ETA display
    DEFAULT_SPEED_KMH = float(os.getenv("DEFAULT_SPEED_KMH", 15))

    # Street routing (OSRM)
    ROUTING_ENABLED = _env_bool("ROUTING_ENABLED", "true")
    OSRM_BASE_URL = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")
    OSRM_PROFILE = os.getenv("OSRM_PROFILE", "driving")
    ROUTING_TIMEOUT_S = float(os.getenv("ROUTING_TIMEOUT_S", 10))
    ROUTE_CACHE_MAX_SIZE = int(os.getenv("ROUTE_CACHE_MAX_SIZE", 1024))  # 0 = unbounded

    # Alert generation
    SIM_SEED = int(os.getenv("SIM_SEED")) if os.getenv("SIM_SEED") else None
    GIANT_FLOOD_MIN_ALERTS = 25
    GIANT_FLOOD_MAX_ALERTS = 40
    FLOOD_ZONE_MIN_RADIUS_KM = 1.5
    FLOOD_ZONE_MAX_RADIUS_KM = 4.0

    DISPATCH_LOG_SIZE = int(os.getenv("DISPATCH_LOG_SIZE", 50))
