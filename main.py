import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException

from config import Config
from models import (
    Event,
    FleetStatus,
    FloodZone,
    ManualAssignment,
    Point,
    RescueBoat,
    SafePoint,
    SimulationSnapshot,
    SOSAlert,
)
from services.event_handler import (
    add_alert_in_flood_zone,
    apply_event,
    assign_boat_manually,
    create_flood_zone,
    create_giant_flood,
    remove_alert,
    select_alert,
)
from services.routing import RouteDispatcher, RouteProvider
from services.simulation import SimulationClock
from services.state import SimulationState
from utils.data_loader import load_fleet, load_villages


logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


def build_simulation(provider: Optional[RouteProvider] = None) -> SimulationClock:
    state = SimulationState(
        boats=load_fleet(str(Config.FLEET_PATH)),
        villages=load_villages(str(Config.VILLAGES_PATH)),
        seed=Config.SIM_SEED,
    )
    dispatcher = RouteDispatcher(provider or RouteProvider(), state.routes)
    return SimulationClock(state, dispatcher)


# Fleet is loaded once at startup; it is never destroyed
clock = build_simulation()


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(clock.run())
    try:
        yield
    finally:
        clock.stop()
        await task


app = FastAPI(title="Flood Rescue Dispatch", lifespan=lifespan)


@app.get("/snapshot")
async def get_snapshot() -> SimulationSnapshot:
    return clock.state.snapshot(clock.running)


@app.get("/alerts")
async def get_alerts() -> List[SOSAlert]:
    return clock.state.alerts


@app.get("/boats")
async def get_boats() -> List[RescueBoat]:
    return clock.state.boats


@app.get("/safe-points")
async def get_safe_points() -> List[SafePoint]:
    return clock.state.safe_points


@app.get("/flood-zones")
async def get_flood_zones() -> List[FloodZone]:
    return clock.state.flood_zones


@app.get("/routes")
async def get_routes() -> Dict[str, List[Point]]:
    return clock.state.routes


@app.get("/status")
async def get_status() -> FleetStatus:
    return clock.state.fleet_status()


@app.get("/dispatch-log")
async def get_dispatch_log() -> List[str]:
    return list(clock.state.dispatch_log)


@app.get("/routing/cache")
async def get_route_cache_stats() -> Dict[str, Any]:
    return clock.dispatcher.provider.get_stats()


@app.post("/alerts")
async def add_alert() -> SOSAlert:
    alert = add_alert_in_flood_zone(clock.state)
    if alert is None:
        raise HTTPException(status_code=409, detail="No active flood zone. Simulate a flood first.")
    return alert


@app.delete("/alerts/{sos_id}")
async def delete_alert(sos_id: str) -> Dict[str, Any]:
    if not remove_alert(clock.state, sos_id):
        raise HTTPException(status_code=404, detail=f"SOS {sos_id} not found")
    return {"removed": sos_id}


@app.post("/flood-zones")
async def add_flood_zone() -> FloodZone:
    return create_flood_zone(clock.state)


@app.post("/flood-zones/giant")
async def add_giant_flood() -> Dict[str, Any]:
    alerts = create_giant_flood(clock.state)
    return {
        "flood_zones": [z.model_dump() for z in clock.state.flood_zones],
        "alerts_created": len(alerts),
        "safe_points": len(clock.state.safe_points),
    }


@app.post("/assignments")
async def manual_assignment(request: ManualAssignment) -> Dict[str, Any]:
    assigned = assign_boat_manually(clock.state, request.sos_id, request.boat_id, clock.request_route)
    return {"assigned": assigned, "sos_id": request.sos_id, "boat_id": request.boat_id}


@app.post("/selection/{sos_id}")
async def select(sos_id: str) -> SimulationSnapshot:
    if not select_alert(clock.state, sos_id):
        raise HTTPException(status_code=404, detail=f"SOS {sos_id} not found")
    return clock.state.snapshot(clock.running)


@app.delete("/selection")
async def clear_selection() -> Dict[str, Any]:
    select_alert(clock.state, None)
    return {"selected_sos_id": None}


@app.post("/simulation/toggle")
async def toggle_simulation() -> Dict[str, Any]:
    return {"is_simulating": clock.toggle()}


@app.post("/event")
async def apply_event_endpoint(event: Event) -> Dict[str, Any]:
    if event.type == "assign_boat" and (event.sos_id is None or event.boat_id is None):
        raise HTTPException(status_code=400, detail="assign_boat requires sos_id and boat_id")
    return apply_event(clock, event)
