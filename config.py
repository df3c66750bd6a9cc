"""
Deployment Planner Configuration
Defines geometry constants, remote-call policy, map styling, and mock data
"""

import os

# ============================================================================
# GEOMETRY
# ============================================================================
# Local-area metric approximation (city scale). Not geodesically exact.

METERS_PER_DEGREE_LAT = 110540.0   # meters per degree of latitude
METERS_PER_DEGREE_LNG = 111320.0   # meters per degree of longitude at the equator
COS_LATITUDE_FLOOR = 1e-6          # guards the longitude scale near the poles
EARTH_RADIUS = 6371000.0           # meters (haversine)

CIRCLE_SEGMENTS = 64               # default N-gon resolution for circles
MIN_AREA_POINTS = 3                # minimum vertices of an operational area

TILE_SIZE = 256                    # Web-Mercator tile size in pixels
MAX_MERCATOR_LATITUDE = 85.05112878

# ============================================================================
# DEPLOYMENT DEFAULTS
# ============================================================================

DEFAULT_CONTROLLER_ALTITUDE = 1.5  # meters (hand-held controller)
DEFAULT_DRONE_ALTITUDE = 120.0     # meters (regulatory ceiling)
DEFAULT_OPERATIONAL_RADIUS = 500.0  # meters (quick-radius preview)

# Fallback operator location when none is known (Tel Aviv)
DEFAULT_USER_LOCATION = {'lat': 32.0853, 'lng': 34.7818}

# ============================================================================
# REMOTE CALLS
# ============================================================================

# Bounded timeout for calculation / approval / history calls (seconds)
REMOTE_CALL_TIMEOUT = float(os.getenv('REMOTE_CALL_TIMEOUT', '12.0'))

# Mock backend behaviour
CALCULATION_DELAY = 2.0      # seconds
APPROVAL_DELAY = 3.0         # seconds
APPROVAL_PROBABILITY = 0.8   # chance the control center approves

CALCULATION_IMAGE_SIZE = 300  # pixels (square SVG)

# ============================================================================
# MAP VIEW
# ============================================================================

MAP_CENTER = {'lat': 31.5, 'lng': 35.0}
MAP_ZOOM = 7
MAP_WIDTH = 1024   # viewport pixels
MAP_HEIGHT = 768
USER_ZOOM = 14     # zoom used when flying to the operator

# Southwest / northeast corners the map is restricted to
MAP_MAX_BOUNDS = {
    'south': 29.5,
    'west': 34.2,
    'north': 33.3,
    'east': 35.9,
}

BASEMAP_TILES = "https://a.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}@2x.png"
BASEMAP_ATTRIBUTION = "© CARTO"

# ============================================================================
# OVERLAY STYLING
# ============================================================================

AREA_COLOR = '#a855f7'
AREA_FILL_OPACITY = 0.15      # before a calculation result exists
AREA_LINE_WIDTH = 2
AREA_LINE_OPACITY = 0.8
OVERLAY_OPACITY = 0.8         # raster opacity of the calculated image

# ============================================================================
# MOCK DATA
# ============================================================================

MOCK_USERS = [
    {'serial_number': 'X7-99-ALPHA', 'name': 'Operator Alpha'},
    {'serial_number': 'B3-42-BRAVO', 'name': 'Operator Bravo'},
    {'serial_number': 'C1-88-CHARLIE', 'name': 'Operator Charlie'},
]

MOCK_DRONES = [
    {'name': 'Alpha-1', 'type': 'patrol', 'status': 'available', 'battery_level': 78},
    {'name': 'Svy-04', 'type': 'survey', 'status': 'available', 'battery_level': 15},
    {'name': 'Cam-7', 'type': 'camera', 'status': 'available', 'battery_level': 92},
    {'name': 'Recon Unit B2', 'type': 'recon', 'status': 'in_use', 'battery_level': 65},
    {'name': 'Cargo Heavy-X', 'type': 'cargo', 'status': 'available', 'battery_level': 88},
    {'name': 'Signal Relay 01', 'type': 'relay', 'status': 'maintenance', 'battery_level': 45},
    {'name': 'Scout-Delta', 'type': 'scout', 'status': 'available', 'battery_level': 100},
    {'name': 'Hawk-Eye', 'type': 'surveillance', 'status': 'available', 'battery_level': 72},
    {'name': 'Phantom-X9', 'type': 'stealth', 'status': 'available', 'battery_level': 95},
    {'name': 'Drone-01', 'type': 'general', 'status': 'available', 'battery_level': 84},
]

SEARCH_RESULT_LIMIT = 10
RECENTLY_USED_LIMIT = 7
HISTORY_LIMIT = 20

DEFAULT_USER_ID = 'default-user'

# ============================================================================
# API CONFIGURATION
# ============================================================================

API_HOST = os.getenv('API_HOST', "127.0.0.1")
API_PORT = int(os.getenv('API_PORT', '8000'))
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
