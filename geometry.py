"""
Geometry Module
Bounding boxes, centroids, metric offsets, and circle generation for drawn areas

All conversions are local-area (city scale) metric approximations, not exact
geodesic projections:
- a degree of latitude is taken as 110,540 m and a degree of longitude as
  111,320 m scaled by cos(latitude)
- polygons are assumed not to cross the antimeridian
- latitudes close to the poles are outside the supported range; the cosine is
  floored so the longitude scale stays finite there
"""

import math
from typing import List, Optional, Sequence, Tuple
from models import BoundingBox, Coordinate
import config


def open_ring(polygon: Sequence[Coordinate]) -> List[Coordinate]:
    """Drop the repeated closing vertex of a closed ring, if present"""
    points = list(polygon)
    if len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


def close_ring(polygon: Sequence[Coordinate]) -> List[Coordinate]:
    """Repeat the first vertex at the end unless the ring is already closed"""
    points = list(polygon)
    if points and points[0] != points[-1]:
        points.append(points[0])
    return points


def bounding_box(polygon: Sequence[Coordinate]) -> BoundingBox:
    """
    Smallest axis-aligned box containing every vertex

    Args:
        polygon: Vertices in any order; may be open or closed

    Returns:
        BoundingBox. An empty polygon gives an all-NaN box; one or two points
        give the box spanning exactly those points.
    """
    if not polygon:
        nan = float('nan')
        return BoundingBox(north=nan, south=nan, east=nan, west=nan)

    lats = [point.lat for point in polygon]
    lngs = [point.lng for point in polygon]

    return BoundingBox(
        north=max(lats),
        south=min(lats),
        east=max(lngs),
        west=min(lngs)
    )


def centroid(polygon: Sequence[Coordinate]) -> Optional[Coordinate]:
    """
    Vertex centroid (arithmetic mean of the vertices)

    This is an approximation of the area centroid. Drawn areas are small and
    roughly convex, where both agree closely; for non-convex or unevenly
    sampled shapes the mean can fall outside the polygon, though it always
    stays within its bounding box.

    Args:
        polygon: Vertices; a repeated closing vertex is ignored

    Returns:
        Coordinate, or None for an empty polygon
    """
    points = open_ring(polygon)
    if not points:
        return None

    box = bounding_box(points)
    lat = math.fsum(point.lat for point in points) / len(points)
    lng = math.fsum(point.lng for point in points) / len(points)

    # Rounding can push the mean a hair past an edge of the box
    lat = min(max(lat, box.south), box.north)
    lng = min(max(lng, box.west), box.east)

    return Coordinate(lat=lat, lng=lng)


def meters_to_degree_offset(meters: float, at_latitude: float) -> Tuple[float, float]:
    """
    Convert a metric distance to latitude / longitude degree offsets

    Args:
        meters: Distance in meters
        at_latitude: Latitude (degrees) where the offset is applied

    Returns:
        (d_lat, d_lng) in degrees
    """
    cos_lat = max(math.cos(math.radians(at_latitude)), config.COS_LATITUDE_FLOOR)

    d_lat = meters / config.METERS_PER_DEGREE_LAT
    d_lng = meters / (config.METERS_PER_DEGREE_LNG * cos_lat)

    return d_lat, d_lng


def circle_polygon(center: Coordinate, radius_meters: float,
                   segments: int = config.CIRCLE_SEGMENTS) -> List[Coordinate]:
    """
    Closed N-gon approximating a circle

    Vertices run counter-clockwise (east, north, west, south) starting due
    east of the center. The last point equals the first.

    Args:
        center: Circle center
        radius_meters: Radius in meters
        segments: Number of distinct vertices (>= 3)

    Returns:
        segments + 1 coordinates
    """
    if segments < 3:
        raise ValueError(f"a circle needs at least 3 segments, got {segments}")

    d_lat, d_lng = meters_to_degree_offset(radius_meters, center.lat)

    points = []
    for i in range(segments):
        theta = (i / segments) * (2 * math.pi)
        points.append(Coordinate(
            lat=center.lat + d_lat * math.sin(theta),
            lng=center.lng + d_lng * math.cos(theta)
        ))
    points.append(points[0])

    return points


def bounds_from_radius(center: Coordinate, radius_meters: float) -> BoundingBox:
    """Box enclosing a circle of the given radius (quick-radius previews)"""
    d_lat, d_lng = meters_to_degree_offset(radius_meters, center.lat)

    return BoundingBox(
        north=center.lat + d_lat,
        south=center.lat - d_lat,
        east=center.lng + d_lng,
        west=center.lng - d_lng
    )


def point_in_polygon(point: Coordinate, polygon: Sequence[Coordinate]) -> bool:
    """
    Ray-casting algorithm to determine if a point is inside a polygon

    Args:
        point: Coordinate to test
        polygon: Vertices (open or closed ring)

    Returns:
        True if point is inside polygon, False otherwise
    """
    vertices = open_ring(polygon)
    n = len(vertices)
    if n < 3:
        return False

    inside = False
    p1 = vertices[0]
    for i in range(1, n + 1):
        p2 = vertices[i % n]

        if point.lng > min(p1.lng, p2.lng):
            if point.lng <= max(p1.lng, p2.lng):
                if point.lat <= max(p1.lat, p2.lat):
                    if p1.lng != p2.lng:
                        xinters = (point.lng - p1.lng) * (p2.lat - p1.lat) / (p2.lng - p1.lng) + p1.lat
                    if p1.lat == p2.lat or point.lat <= xinters:
                        inside = not inside

        p1 = p2

    return inside


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """
    Great circle distance between two points

    Returns:
        Distance in meters
    """
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return config.EARTH_RADIUS * c


# ============================================================================
# WEB-MERCATOR PROJECTION
# ============================================================================

def project(coord: Coordinate, zoom: float) -> Tuple[float, float]:
    """World pixel (x, y) of a coordinate at the given zoom"""
    scale = config.TILE_SIZE * (2 ** zoom)
    lat = min(max(coord.lat, -config.MAX_MERCATOR_LATITUDE), config.MAX_MERCATOR_LATITUDE)
    sin_lat = math.sin(math.radians(lat))

    x = (coord.lng + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
    return x, y


def unproject(x: float, y: float, zoom: float) -> Coordinate:
    """Coordinate at a world pixel; x wraps around the globe, y is clamped"""
    scale = config.TILE_SIZE * (2 ** zoom)
    y = min(max(y, 0.0), scale)

    lng = (x / scale) * 360.0 - 180.0
    lng = (lng + 180.0) % 360.0 - 180.0
    n = math.pi - 2 * math.pi * y / scale
    lat = math.degrees(math.atan(math.sinh(n)))

    return Coordinate(lat=lat, lng=lng)


# ============================================================================
# FORMATTING
# ============================================================================

def format_coordinates(coord: Coordinate) -> str:
    """e.g. '32.0800° N, 34.7800° E'"""
    lat_dir = 'N' if coord.lat >= 0 else 'S'
    lng_dir = 'E' if coord.lng >= 0 else 'W'
    return f"{abs(coord.lat):.4f}° {lat_dir}, {abs(coord.lng):.4f}° {lng_dir}"


def format_distance(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000:.1f}km"
    return f"{int(math.floor(meters + 0.5))}m"
