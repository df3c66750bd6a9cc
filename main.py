"""
Deployment Planner - FastAPI Backend
Operator login, drone directory, communication-zone calculation, control
center approval, and flight history (mock implementations)
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import List
import asyncio
import base64
import logging
import random

from models import (
    ApprovalRequest, ApprovalResponse, CalculationRequest, CalculationResponse,
    Drone, FlightHistoryEntry, LoginRequest, LoginResponse, PinnedDrone,
    PinRequest, PinResponse, RecentlyUsedDrone, RecentlyUsedRequest,
    SaveHistoryRequest, SaveHistoryResponse, VerifyResponse
)
from database import MockDatabase, utc_now
import config
import geometry

logger = logging.getLogger(__name__)

# ============================================================================
# GLOBAL STATE
# ============================================================================

db = MockDatabase()

# ============================================================================
# FASTAPI SETUP
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration on startup and shutdown"""
    logger.info("Deployment planner backend starting...")
    logger.info("Calculation delay: %.1fs, approval delay: %.1fs",
                config.CALCULATION_DELAY, config.APPROVAL_DELAY)
    logger.info("Drones in directory: %d", len(db.drones))
    yield
    logger.info("Deployment planner backend shutting down...")


app = FastAPI(
    title="Deployment Planner API",
    description="Drone deployment planning: communication zones, approvals and flight history",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def generate_calculation_image(request: CalculationRequest) -> str:
    """
    Mock communication-zone image as an SVG data URI

    Green near the controller's side of the area fading to red at the edge,
    with a few blind spots.
    """
    size = config.CALCULATION_IMAGE_SIZE
    half = size / 2

    # Shift the strongest signal toward the controller, within the image
    box = geometry.bounding_box(request.drone.area)
    width = (box.east - box.west) or 1.0
    height = (box.north - box.south) or 1.0
    cx = min(max((request.controller.lng - box.west) / width, 0.0), 1.0) * 100
    cy = min(max((box.north - request.controller.lat) / height, 0.0), 1.0) * 100

    svg = f"""<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="0 0 {size} {size}">
  <defs>
    <radialGradient id="commGradient" cx="{cx:.0f}%" cy="{cy:.0f}%" r="75%">
      <stop offset="0%" style="stop-color:#22c55e;stop-opacity:0.8" />
      <stop offset="40%" style="stop-color:#22c55e;stop-opacity:0.6" />
      <stop offset="60%" style="stop-color:#eab308;stop-opacity:0.5" />
      <stop offset="80%" style="stop-color:#ef4444;stop-opacity:0.4" />
      <stop offset="100%" style="stop-color:#ef4444;stop-opacity:0.2" />
    </radialGradient>
  </defs>
  <rect width="{size}" height="{size}" fill="url(#commGradient)" />
  <ellipse cx="{size * 0.3:.0f}" cy="{size * 0.6:.0f}" rx="{size * 0.15:.0f}" ry="{size * 0.1:.0f}" fill="#ef4444" opacity="0.6" />
  <ellipse cx="{size * 0.7:.0f}" cy="{size * 0.3:.0f}" rx="{size * 0.12:.0f}" ry="{size * 0.18:.0f}" fill="#ef4444" opacity="0.5" />
  <circle cx="{half:.0f}" cy="{size * 0.8:.0f}" r="{size * 0.08:.0f}" fill="#ef4444" opacity="0.7" />
</svg>"""

    encoded = base64.b64encode(svg.encode('utf-8')).decode('ascii')
    return f"data:image/svg+xml;base64,{encoded}"


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/api/health")
async def health_check():
    """System health check"""
    return {"status": "ok", "timestamp": utc_now()}


# ---- Auth -------------------------------------------------------------------

@app.post("/api/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    """Log in with an operator serial number; unknown serials get a new operator"""
    user = db.find_user_by_serial_number(request.serial_number)

    if not user:
        user = db.create_user(request.serial_number, f"Operator {request.serial_number}")
        logger.info("Created operator for serial %s", request.serial_number)

    return LoginResponse(success=True, user=user, token=f"token-{user.id}")


@app.get("/api/auth/verify", response_model=VerifyResponse)
async def verify(token: str = Query(...)):
    """Verify a session token (simplified)"""
    try:
        user_id = int(token.replace('token-', ''))
    except ValueError:
        return VerifyResponse(valid=False)

    user = db.find_user_by_id(user_id)
    return VerifyResponse(valid=user is not None, user=user)


# ---- Drone directory --------------------------------------------------------

@app.get("/api/drones/search", response_model=List[Drone])
async def search_drones(query: str = ""):
    """Search drones by name"""
    if not query.strip():
        return []
    return db.search_drones(query)


@app.get("/api/drones/pinned", response_model=List[PinnedDrone])
async def get_pinned_drones(x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    """Pinned drones (configuration templates) of the caller"""
    return db.get_pinned_drones(x_user_id)


@app.post("/api/drones/pinned", response_model=PinResponse)
async def pin_drone(request: PinRequest,
                    x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    """Pin a drone, saving its configuration as a template"""
    already_pinned = db.pin_drone(request.drone_id, request.drone_name, x_user_id, request.config)
    return PinResponse(success=True, already_pinned=already_pinned)


@app.delete("/api/drones/pinned/{drone_id}")
async def unpin_drone(drone_id: int, x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    db.unpin_drone(drone_id, x_user_id)
    return {"success": True}


@app.get("/api/drones/recent", response_model=List[RecentlyUsedDrone])
async def get_recently_used(x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    return db.get_recently_used_drones(x_user_id)


@app.post("/api/drones/recent")
async def add_recently_used(request: RecentlyUsedRequest,
                            x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    db.add_to_recently_used(request.drone_id, request.drone_name, x_user_id)
    return {"success": True}


@app.get("/api/drones", response_model=List[Drone])
async def get_all_drones():
    """Get all drones"""
    return db.get_all_drones()


@app.get("/api/drones/{drone_id}", response_model=Drone)
async def get_drone(drone_id: int):
    """Get specific drone"""
    drone = db.get_drone_by_id(drone_id)
    if drone is None:
        raise HTTPException(404, "Drone not found")
    return drone


# ---- Flight -----------------------------------------------------------------

@app.post("/api/flight/calculate", response_model=CalculationResponse)
async def calculate(request: CalculationRequest):
    """
    Calculate the communication zone over the operational area

    Simulates the calculation latency and returns a mock overlay image.
    """
    logger.info("Calculating communication zone for %s (%d area points)",
                request.drone_name, len(request.drone.area))

    await asyncio.sleep(config.CALCULATION_DELAY)

    return CalculationResponse(
        success=True,
        image_data=generate_calculation_image(request),
        calculated_at=utc_now()
    )


@app.post("/api/flight/approval", response_model=ApprovalResponse)
async def request_approval(request: ApprovalRequest):
    """Ask the control center to approve a launch"""
    await asyncio.sleep(config.APPROVAL_DELAY)

    approved = random.random() < config.APPROVAL_PROBABILITY
    logger.info("Control center %s %s", "approved" if approved else "denied", request.drone_name)

    return ApprovalResponse(
        approved=approved,
        message=("Control center has approved the launch" if approved
                 else "Control center has denied the launch request"),
        responded_at=utc_now()
    )


@app.post("/api/flight/history", response_model=SaveHistoryResponse)
async def save_to_history(record: SaveHistoryRequest,
                          x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    """Append a deployment outcome to the flight history"""
    flight_id = db.save_flight_history(record, x_user_id)
    logger.info("Flight %d recorded for %s: %s", flight_id, record.drone_name, record.status.value)
    return SaveHistoryResponse(success=True, flight_id=flight_id)


@app.get("/api/flight/history", response_model=List[FlightHistoryEntry])
async def get_history(x_user_id: str = Header(default=config.DEFAULT_USER_ID)):
    """Launched flights of the caller"""
    return db.get_flight_history(x_user_id)


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=config.LOG_LEVEL)
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
