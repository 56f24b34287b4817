import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from config import Config
from models import Assignment, Point
from services.assignment import commit_assignments, compute_assignments, reroute_returning_boats
from services.movement import advance_alerts, advance_boats, apply_removals
from services.routing import RouteDispatcher
from services.state import SimulationState

logger = logging.getLogger(__name__)


class SimulationClock:
    """
    Drives the three periodic tasks (assignment, alert migration, boat
    movement) on one asyncio loop. Each tick is synchronous and runs to
    completion; while paused every tick is a no-op and all state is kept.
    """

    def __init__(
        self,
        state: SimulationState,
        dispatcher: RouteDispatcher,
        assignment_interval: float = Config.ASSIGNMENT_INTERVAL_S,
        alert_interval: float = Config.ALERT_MOVE_INTERVAL_S,
        boat_interval: float = Config.BOAT_MOVE_INTERVAL_S,
    ):
        self.state = state
        self.dispatcher = dispatcher
        self.assignment_interval = assignment_interval
        self.alert_interval = alert_interval
        self.boat_interval = boat_interval
        self.running = True
        self.tick_counts: Dict[str, int] = {"assignment": 0, "alerts": 0, "boats": 0}
        # Created lazily so the clock can be built and ticked without a loop
        self._stop: Optional[asyncio.Event] = None

    def request_route(self, boat_id: str, origin: Point, destination: Point) -> None:
        self.dispatcher.request(boat_id, origin, destination)

    def tick_assignment(self) -> List[Assignment]:
        if not self.running:
            return []
        state = self.state
        plan = compute_assignments(state.boats, state.alerts, state.safe_points, state.pending)
        committed = commit_assignments(state, plan.all, self.request_route)

        reroute = reroute_returning_boats(state.boats, state.alerts, state.safe_points, state.pending)
        if reroute is not None:
            committed += commit_assignments(state, [reroute], self.request_route)

        self.tick_counts["assignment"] += 1
        return committed

    def tick_alerts(self) -> List[str]:
        if not self.running:
            return []
        arrived = advance_alerts(
            self.state.alerts,
            self.state.safe_points,
            speed=Config.BOAT_SPEED * Config.ALERT_SPEED_FACTOR,
            threshold=Config.ARRIVAL_THRESHOLD,
        )
        self.tick_counts["alerts"] += 1
        return arrived

    def tick_boats(self) -> Tuple[Set[str], Set[str]]:
        if not self.running:
            return set(), set()
        state = self.state
        removed_sos, removed_safe_points = advance_boats(
            state.boats,
            state.alerts,
            state.safe_points,
            state.routes,
            self.request_route,
            speed=Config.BOAT_SPEED,
            threshold=Config.ARRIVAL_THRESHOLD,
            cancel_route=self.dispatcher.cancel,
        )
        apply_removals(state, removed_sos, removed_safe_points)
        self.tick_counts["boats"] += 1
        return removed_sos, removed_safe_points

    def pause(self) -> None:
        self.running = False
        logger.info("SIMULATION paused")

    def resume(self) -> None:
        self.running = True
        logger.info("SIMULATION resumed")

    def toggle(self) -> bool:
        if self.running:
            self.pause()
        else:
            self.resume()
        return self.running

    async def _periodic(self, name: str, interval: float, handler: Callable[[], object]) -> None:
        while not self._stop.is_set():
            try:
                handler()
            except Exception:
                logger.exception("TICK_FAIL task=%s", name)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def run(self) -> None:
        if self._stop is None or self._stop.is_set():
            self._stop = asyncio.Event()
        self.dispatcher.attach(asyncio.get_running_loop())
        logger.info(
            "SIMULATION started assignment_s=%.2f alerts_s=%.2f boats_s=%.2f",
            self.assignment_interval,
            self.alert_interval,
            self.boat_interval,
        )
        try:
            await asyncio.gather(
                self._periodic("assignment", self.assignment_interval, self.tick_assignment),
                self._periodic("alerts", self.alert_interval, self.tick_alerts),
                self._periodic("boats", self.boat_interval, self.tick_boats),
            )
        finally:
            self.dispatcher.detach()
            logger.info("SIMULATION stopped")

    def stop(self) -> None:
        if self._stop is None:
            self._stop = asyncio.Event()
        self._stop.set()
