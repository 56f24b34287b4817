"""
Single owned container for the mutable simulation state. Every tick handler
and trigger receives the same instance; nothing else holds references to the
alert, boat or safe-point lists.
"""

import itertools
from collections import deque
from typing import Deque, Dict, Iterator, List, Optional, Set

import numpy as np

from config import Config
from models import (
    FleetStatus,
    FloodZone,
    NearestBoat,
    RescueBoat,
    SafePoint,
    SimulationSnapshot,
    SOSAlert,
)
from services.assignment import find_nearest_available_boat
from services.routing import Route
from utils.geo import distance, estimate_arrival, format_distance


class SimulationState:
    def __init__(
        self,
        boats: List[RescueBoat],
        villages: Optional[List[str]] = None,
        seed: Optional[int] = None,
    ):
        self.alerts: List[SOSAlert] = []
        self.boats: List[RescueBoat] = boats
        self.safe_points: List[SafePoint] = []
        self.flood_zones: List[FloodZone] = []
        self.routes: Dict[str, Route] = {}
        self.pending: Set[str] = set()
        self.selected_sos_id: Optional[str] = None
        self.villages: List[str] = villages or ["Unknown"]
        self.dispatch_log: Deque[str] = deque(maxlen=Config.DISPATCH_LOG_SIZE)
        self.rng = np.random.default_rng(seed)
        self._sos_ids: Iterator[int] = itertools.count(1)
        self._safe_point_ids: Iterator[int] = itertools.count(1)
        self._zone_ids: Iterator[int] = itertools.count(1)

    def next_sos_id(self) -> str:
        return f"SOS-{next(self._sos_ids):06d}"

    def next_safe_point_id(self) -> str:
        return f"SP-{next(self._safe_point_ids):04d}"

    def next_zone_id(self) -> str:
        return f"FZ-{next(self._zone_ids):03d}"

    def alert_by_id(self, sos_id: str) -> Optional[SOSAlert]:
        return next((a for a in self.alerts if a.sos_id == sos_id), None)

    def boat_by_id(self, boat_id: str) -> Optional[RescueBoat]:
        return next((b for b in self.boats if b.boat_id == boat_id), None)

    def safe_point_by_id(self, safe_point_id: str) -> Optional[SafePoint]:
        return next((s for s in self.safe_points if s.safe_point_id == safe_point_id), None)

    def targeted_sos_ids(self) -> Set[str]:
        return {b.target_sos_id for b in self.boats if b.target_sos_id is not None}

    @property
    def selected_alert(self) -> Optional[SOSAlert]:
        if self.selected_sos_id is None:
            return None
        return self.alert_by_id(self.selected_sos_id)

    def fleet_status(self) -> FleetStatus:
        return FleetStatus(
            open_alerts=len(self.alerts),
            people_awaiting=sum(a.people_affected for a in self.alerts),
            open_safe_points=len(self.safe_points),
            boats_total=len(self.boats),
            boats_available=sum(1 for b in self.boats if b.status == "available"),
            boats_responding=sum(1 for b in self.boats if b.status == "responding"),
            boats_returning=sum(1 for b in self.boats if b.status == "returning"),
        )

    def nearest_boat_to_selection(self) -> Optional[NearestBoat]:
        alert = self.selected_alert
        if alert is None:
            return None
        boat = find_nearest_available_boat(self.boats, alert.position)
        if boat is None:
            return None
        km = distance(boat.position, alert.position)
        return NearestBoat(
            boat_id=boat.boat_id,
            name=boat.name,
            distance_km=round(km, 3),
            distance_label=format_distance(km),
            eta_label=estimate_arrival(km, Config.DEFAULT_SPEED_KMH),
        )

    def snapshot(self, is_simulating: bool) -> SimulationSnapshot:
        return SimulationSnapshot(
            alerts=[a.model_copy() for a in self.alerts],
            boats=[b.model_copy() for b in self.boats],
            safe_points=[s.model_copy(deep=True) for s in self.safe_points],
            flood_zones=[z.model_copy() for z in self.flood_zones],
            routes={boat_id: list(route) for boat_id, route in self.routes.items()},
            selected_sos=self.selected_alert.model_copy() if self.selected_alert else None,
            nearest_boat=self.nearest_boat_to_selection(),
            is_simulating=is_simulating,
            status=self.fleet_status(),
        )
