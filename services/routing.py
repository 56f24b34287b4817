"""
Street routing for rescue boats.

RouteProvider wraps an OSRM-compatible HTTP service with a directional cache.
RouteDispatcher issues lookups without blocking the simulation ticks and
writes results into the shared route map.
"""

import asyncio
import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import requests

from config import Config
from utils.geo import Point, planar_distance

logger = logging.getLogger(__name__)

Route = List[Point]


def cache_key(origin: Point, destination: Point) -> str:
    return f"{origin[0]:.5f},{origin[1]:.5f}-{destination[0]:.5f},{destination[1]:.5f}"


def parse_osrm_route(payload: Dict[str, Any]) -> Optional[Route]:
    """
    Extracts the first route of an OSRM /route response as (lat, lon) points.
    Returns None when the response reports no usable route.
    """
    if payload.get("code") != "Ok":
        return None
    routes = payload.get("routes") or []
    if not routes:
        return None
    # OSRM GeoJSON coordinates are [lon, lat]
    coords = routes[0]["geometry"]["coordinates"]
    points = [(float(lat), float(lon)) for lon, lat in coords]
    return points or None


class RouteProvider:
    """Directional route lookups with an in-memory cache of successful results."""

    def __init__(
        self,
        base_url: str = Config.OSRM_BASE_URL,
        profile: str = Config.OSRM_PROFILE,
        timeout: float = Config.ROUTING_TIMEOUT_S,
        max_size: int = Config.ROUTE_CACHE_MAX_SIZE,
        enabled: bool = Config.ROUTING_ENABLED,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout
        self.max_size = max_size
        self.enabled = enabled
        self.session = session or requests.Session()
        self._cache: "OrderedDict[str, Route]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "failures": 0, "evictions": 0}

    def get_route(self, origin: Point, destination: Point) -> Optional[Route]:
        if not self.enabled:
            return None

        key = cache_key(origin, destination)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._stats["hits"] += 1
                return list(cached)
            self._stats["misses"] += 1

        route = self.fetch(origin, destination)
        with self._lock:
            if route is None:
                self._stats["failures"] += 1
                return None
            self._store(key, route)
        return list(route)

    def fetch(self, origin: Point, destination: Point) -> Optional[Route]:
        url = (
            f"{self.base_url}/route/v1/{self.profile}/"
            f"{origin[1]},{origin[0]};{destination[1]},{destination[0]}"
        )
        try:
            response = self.session.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return parse_osrm_route(response.json())
        except requests.RequestException as e:
            logger.warning("ROUTE_FAIL from=%s to=%s error=%s", origin, destination, e)
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning("ROUTE_MALFORMED from=%s to=%s error=%s", origin, destination, e)
        return None

    def _store(self, key: str, route: Route) -> None:
        if self.max_size and len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
            self._stats["evictions"] += 1
        self._cache[key] = route

    def clear(self) -> int:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            return count

    def get_stats(self) -> Dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            "enabled": self.enabled,
            "entries": len(self._cache),
            "max_size": self.max_size,
            "hit_rate_percent": round(hit_rate, 1),
            **self._stats,
        }


def advance_along_route(current: Point, route: Route, step: float) -> Tuple[Point, Route]:
    """
    Walks up to `step` (degrees) along the polyline starting at `current`.

    Waypoints reached within the budget are consumed; otherwise the position
    moves part of the way toward the next waypoint and the budget is spent.
    Returns the new position and the unconsumed suffix of the route.
    """
    if not route:
        return current, []

    remaining = step
    pos = current
    index = 0
    while remaining > 0 and index < len(route):
        waypoint = route[index]
        dist = planar_distance(pos, waypoint)
        if dist <= remaining:
            pos = waypoint
            remaining -= dist
            index += 1
        else:
            ratio = remaining / dist
            pos = (
                pos[0] + (waypoint[0] - pos[0]) * ratio,
                pos[1] + (waypoint[1] - pos[1]) * ratio,
            )
            remaining = 0
    return pos, route[index:]


class RouteDispatcher:
    """
    Fire-and-forget route requests.

    Once attached to an event loop, lookups run in the loop's default executor
    and results are applied by done-callbacks on the loop thread, so the route
    map is only ever mutated from the thread running the ticks. Without a loop
    the lookup resolves inline.
    """

    def __init__(self, provider: RouteProvider, routes: Dict[str, Route]):
        self.provider = provider
        self.routes = routes
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._in_flight: Set[asyncio.Future] = set()
        # boat_id -> destination the latest request was issued for
        self._wanted: Dict[str, Point] = {}

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def detach(self) -> None:
        self._loop = None

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def request(self, boat_id: str, origin: Point, destination: Point) -> None:
        self.routes.pop(boat_id, None)
        self._wanted[boat_id] = destination

        if self._loop is None:
            self._apply(boat_id, destination, self.provider.get_route(origin, destination))
            return

        future = self._loop.run_in_executor(None, self.provider.get_route, origin, destination)
        self._in_flight.add(future)
        future.add_done_callback(self._on_done(boat_id, destination))

    def cancel(self, boat_id: str) -> None:
        self._wanted.pop(boat_id, None)
        self.routes.pop(boat_id, None)

    def _on_done(self, boat_id: str, destination: Point) -> Callable[[asyncio.Future], None]:
        def callback(future: asyncio.Future) -> None:
            self._in_flight.discard(future)
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                logger.warning("ROUTE_TASK_FAIL boat=%s error=%s", boat_id, exc)
                return
            self._apply(boat_id, destination, future.result())

        return callback

    def _apply(self, boat_id: str, destination: Point, route: Optional[Route]) -> None:
        if self._wanted.get(boat_id) != destination:
            logger.debug("ROUTE_STALE boat=%s to=%s", boat_id, destination)
            return
        if route:
            self.routes[boat_id] = route
            logger.debug("ROUTE_READY boat=%s waypoints=%d", boat_id, len(route))
        else:
            logger.info("ROUTE_FALLBACK boat=%s mode=straight_line", boat_id)
