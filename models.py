from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, computed_field

from utils.geo import Point

AlertCategory = Literal["flood", "stranded", "medical", "supplies"]
BoatStatus = Literal["available", "responding", "returning"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SOSAlert(BaseModel):
    sos_id: str
    village_id: str
    village_name: str
    lat: float
    lon: float
    category: AlertCategory
    severity: int = Field(ge=1, le=3)  # 1 = low, 3 = critical
    people_affected: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=utc_now)
    safe_point_id: Optional[str] = None
    # Live position while migrating toward a safe point
    current_lat: Optional[float] = None
    current_lon: Optional[float] = None
    reached_safe_point: bool = False

    @property
    def position(self) -> Point:
        if self.current_lat is not None and self.current_lon is not None:
            return (self.current_lat, self.current_lon)
        return (self.lat, self.lon)


class AlertTarget(BaseModel):
    kind: Literal["sos"] = "sos"
    sos_id: str


class SafePointTarget(BaseModel):
    kind: Literal["safe_point"] = "safe_point"
    safe_point_id: str


Target = Annotated[Union[AlertTarget, SafePointTarget], Field(discriminator="kind")]


class RescueBoat(BaseModel):
    boat_id: str
    name: str
    lat: float
    lon: float
    status: BoatStatus = "available"
    capacity: int
    last_update: datetime = Field(default_factory=utc_now)
    target: Optional[Target] = None
    home_base: Point = Field(frozen=True)

    @property
    def position(self) -> Point:
        return (self.lat, self.lon)

    @computed_field
    @property
    def target_sos_id(self) -> Optional[str]:
        return self.target.sos_id if isinstance(self.target, AlertTarget) else None

    @computed_field
    @property
    def target_safe_point_id(self) -> Optional[str]:
        return self.target.safe_point_id if isinstance(self.target, SafePointTarget) else None

    def move_to(self, point: Point) -> None:
        self.lat, self.lon = point
        self.last_update = utc_now()

    def dispatch(self, target: Union[AlertTarget, SafePointTarget]) -> None:
        self.status = "responding"
        self.target = target
        self.last_update = utc_now()

    def send_home(self) -> None:
        self.status = "returning"
        self.target = None
        self.last_update = utc_now()

    def mark_available(self) -> None:
        self.status = "available"
        self.target = None
        self.last_update = utc_now()


class FloodZone(BaseModel):
    zone_id: str
    lat: float
    lon: float
    radius_km: float
    is_giant_flood: bool = False


class SafePoint(BaseModel):
    safe_point_id: str
    lat: float
    lon: float
    assigned_alert_ids: List[str]
    assigned_boat_id: Optional[str] = None

    @property
    def position(self) -> Point:
        return (self.lat, self.lon)


class Assignment(BaseModel):
    boat_id: str
    target: Target
    distance_km: float


class AssignmentPlan(BaseModel):
    alert_assignments: List[Assignment] = Field(default_factory=list)
    safe_point_assignments: List[Assignment] = Field(default_factory=list)

    @property
    def all(self) -> List[Assignment]:
        return self.safe_point_assignments + self.alert_assignments


class FleetStatus(BaseModel):
    open_alerts: int
    people_awaiting: int
    open_safe_points: int
    boats_total: int
    boats_available: int
    boats_responding: int
    boats_returning: int


class NearestBoat(BaseModel):
    boat_id: str
    name: str
    distance_km: float
    distance_label: str
    eta_label: str


class SimulationSnapshot(BaseModel):
    alerts: List[SOSAlert]
    boats: List[RescueBoat]
    safe_points: List[SafePoint]
    flood_zones: List[FloodZone]
    routes: Dict[str, List[Point]]
    selected_sos: Optional[SOSAlert] = None
    nearest_boat: Optional[NearestBoat] = None
    is_simulating: bool
    status: FleetStatus


class Event(BaseModel):
    type: Literal[
        "add_sos",
        "remove_sos",
        "flood_zone",
        "giant_flood",
        "assign_boat",
        "select_sos",
        "toggle_simulation",
    ]
    sos_id: Optional[str] = None
    boat_id: Optional[str] = None


class ManualAssignment(BaseModel):
    sos_id: str
    boat_id: str
