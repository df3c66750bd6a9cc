"""
Data Models for the Deployment Planner
Uses Pydantic for validation and serialization
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from enum import Enum


# ============================================================================
# ENUMERATIONS
# ============================================================================

class PlacementMode(str, Enum):
    """Interpretation of the next map interaction"""
    NONE = "none"
    CONTROLLER = "controller"
    DRONE = "drone"          # legacy single-point drone placement
    DRAWING = "drawing"


class DeploymentPhase(str, Enum):
    """Operator-visible workflow stage"""
    IDLE = "idle"
    CONFIGURING = "configuring"
    CALCULATING = "calculating"
    RESULT = "result"


class ControlCenterStatus(str, Enum):
    """Launch approval request progress"""
    IDLE = "idle"
    SENDING = "sending"
    APPROVED = "approved"
    NOT_APPROVED = "not_approved"


class FlightStatus(str, Enum):
    """Outcome tag stored in flight history"""
    LAUNCHED = "Launched"
    NOT_LAUNCHED = "Not Launched"


class DroneAvailability(str, Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"


# ============================================================================
# GEOMETRY
# ============================================================================

class Coordinate(BaseModel):
    """WGS84 point in degrees"""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class BoundingBox(BaseModel):
    """Axis-aligned box around a polygon (no antimeridian crossing)"""
    model_config = ConfigDict(frozen=True)

    north: float
    south: float
    east: float
    west: float

    def corners(self) -> List[List[float]]:
        """
        Image anchor corners as [lng, lat] pairs

        Order is top-left, top-right, bottom-right, bottom-left.
        """
        return [
            [self.west, self.north],
            [self.east, self.north],
            [self.east, self.south],
            [self.west, self.south],
        ]


# ============================================================================
# DEPLOYMENT SESSION
# ============================================================================

class ControllerConfig(BaseModel):
    """Ground controller placement"""
    model_config = ConfigDict(frozen=True)

    altitude: float = 0.0  # meters
    location: Optional[Coordinate] = None


class DroneConfig(BaseModel):
    """
    Drone placement

    `location` is derived from `drawn_area` (its centroid) whenever an area is
    set. Use deployment.drone_config_with_area to build one from a polygon.
    """
    model_config = ConfigDict(frozen=True)

    altitude: float = 0.0  # meters
    location: Optional[Coordinate] = None
    drawn_area: Optional[List[Coordinate]] = None

    @model_validator(mode='after')
    def check_area_location(self):
        if self.drawn_area is not None and self.location is None:
            raise ValueError("drone location must be derived when an area is set")
        return self


class SelectedDrone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    type: str = "general"
    battery_level: float = 0.0


class CalculationResult(BaseModel):
    """Server-computed overlay image, stored verbatim"""
    model_config = ConfigDict(frozen=True)

    image_data: str
    calculated_at: str


class DeploymentState(BaseModel):
    """Whole deployment session. Only the deployment reducer produces new ones."""
    model_config = ConfigDict(frozen=True)

    # Auth
    is_authenticated: bool = False
    user_id: Optional[str] = None

    user_location: Optional[Coordinate] = None
    selected_drone: Optional[SelectedDrone] = None

    controller_config: ControllerConfig = ControllerConfig()
    drone_config: DroneConfig = DroneConfig()

    phase: DeploymentPhase = DeploymentPhase.IDLE
    placement_mode: PlacementMode = PlacementMode.NONE

    calculation_result: Optional[CalculationResult] = None
    control_center_status: ControlCenterStatus = ControlCenterStatus.IDLE
    is_launched: bool = False

    # UI
    is_bottom_sheet_expanded: bool = False
    is_config_form_open: bool = False
    error_message: Optional[str] = None

    # Advances on every wipe; async completions compare against it
    generation: int = 0


# ============================================================================
# WIRE PAYLOADS
# ============================================================================

class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ControllerPayload(WireModel):
    altitude: float = Field(..., gt=0)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DronePayload(WireModel):
    altitude: float = Field(..., gt=0)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    area: List[Coordinate] = Field(..., min_length=3)


class CalculationRequest(WireModel):
    """Input of the communication-zone calculation"""
    drone_id: int
    drone_name: str
    controller: ControllerPayload
    drone: DronePayload


class CalculationResponse(WireModel):
    success: bool = True
    image_data: str
    calculated_at: str


class ApprovalRequest(WireModel):
    drone_id: int
    drone_name: str


class ApprovalResponse(WireModel):
    approved: bool
    message: str
    responded_at: str


class SaveHistoryRequest(WireModel):
    """Deployment outcome record"""
    drone_id: int
    drone_name: str
    drone_type: str
    controller_altitude: float
    controller_lat: float
    controller_lng: float
    drone_altitude: float
    drone_lat: float
    drone_lng: float
    operational_area: List[Coordinate]
    status: FlightStatus
    control_center_approved: Optional[bool] = None


class SaveHistoryResponse(WireModel):
    success: bool = True
    flight_id: int


class FlightHistoryEntry(SaveHistoryRequest):
    id: int
    user_id: str
    created_at: str


class User(WireModel):
    id: int
    serial_number: str
    name: str
    created_at: str


class LoginRequest(WireModel):
    serial_number: str = Field(..., min_length=1)


class LoginResponse(WireModel):
    success: bool = True
    user: User
    token: str


class VerifyResponse(WireModel):
    valid: bool
    user: Optional[User] = None


class Drone(WireModel):
    """Drone directory entry"""
    id: int
    name: str
    type: str
    status: DroneAvailability
    battery_level: float
    created_at: str


class PinConfig(WireModel):
    """Saved configuration template; every field optional"""
    controller_altitude: Optional[float] = None
    controller_lat: Optional[float] = None
    controller_lng: Optional[float] = None
    drone_altitude: Optional[float] = None
    drone_lat: Optional[float] = None
    drone_lng: Optional[float] = None
    drone_area: Optional[List[Coordinate]] = None


class PinRequest(WireModel):
    drone_id: int
    drone_name: str
    config: Optional[PinConfig] = None


class PinResponse(WireModel):
    success: bool = True
    already_pinned: bool


class PinnedDrone(PinConfig):
    id: int
    drone_id: int
    drone_name: str
    user_id: str
    created_at: str
    type: str = "unknown"
    status: str = "unknown"
    battery_level: float = 0.0


class RecentlyUsedRequest(WireModel):
    drone_id: int
    drone_name: str


class RecentlyUsedDrone(WireModel):
    id: int
    drone_id: int
    drone_name: str
    user_id: str
    used_at: str
    type: str = "unknown"
    status: str = "available"
    battery_level: float = 0.0
