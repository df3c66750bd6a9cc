"""
Map Interaction Adapter
Turns raw map clicks and finished drawings into deployment actions, and
mirrors the session onto the map (cursor, markers, area, result overlay)

The adapter never writes session state itself: every change goes through
DeploymentSession, and rendering reacts to the session's change notifications.
"""

import logging
from typing import Any, List, Optional

from models import Coordinate, DeploymentState, PlacementMode
from deployment import ActionType, DeploymentSession
from overlay import OverlayRenderer
import config
import placement

logger = logging.getLogger(__name__)

USER_MARKER = 'user'
CONTROLLER_MARKER = 'controller'
DRONE_MARKER = 'drone'


def _to_coordinate(point: Any) -> Coordinate:
    """Coordinate from a Coordinate, a {'lat', 'lng'} mapping, or a (lat, lng) pair"""
    if isinstance(point, Coordinate):
        return point
    if isinstance(point, dict):
        return Coordinate(lat=point['lat'], lng=point['lng'])
    lat, lng = point
    return Coordinate(lat=lat, lng=lng)


def coordinates_from_drawing(drawing: Any) -> List[Coordinate]:
    """
    Vertices of a finished drawing

    Args:
        drawing: A GeoJSON Feature or Polygon geometry as produced by
            Leaflet.draw ([lng, lat] pairs, closed outer ring), or a sequence
            of coordinate-like items

    Returns:
        Open ring of coordinates
    """
    if isinstance(drawing, dict) and 'type' in drawing:
        geometry_obj = drawing.get('geometry', drawing) if drawing['type'] == 'Feature' else drawing
        if geometry_obj.get('type') != 'Polygon':
            raise ValueError(f"Expected a Polygon drawing, got {geometry_obj.get('type')}")
        ring = geometry_obj['coordinates'][0]
        points = [Coordinate(lat=lat, lng=lng) for lng, lat in ring]
    else:
        points = [_to_coordinate(point) for point in drawing]

    if len(points) > 1 and points[0] == points[-1]:
        points.pop()
    return points


class MapInteractionAdapter:
    """Bridges a map surface and a deployment session"""

    def __init__(self, session: DeploymentSession, surface,
                 renderer: Optional[OverlayRenderer] = None):
        self.session = session
        self.surface = surface
        self.renderer = renderer or OverlayRenderer(surface)
        self._markers = set()
        self._unsubscribe = session.subscribe(self.sync)
        self.sync(session.state)

    def close(self):
        """Stop following the session"""
        self._unsubscribe()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def begin_placement(self, target: PlacementMode) -> DeploymentState:
        return self.session.enter_placement(target)

    def cancel_placement(self) -> DeploymentState:
        return self.session.cancel_placement()

    def on_click(self, x: float, y: float) -> bool:
        """Screen click; returns True when it placed something"""
        return self.on_coordinate_click(self.surface.unproject(x, y))

    def on_coordinate_click(self, coord: Coordinate) -> bool:
        placed = placement.consume_click(self.session.state.placement_mode, coord)
        if placed is None:
            # plain map panning
            return False

        if placed.mode == PlacementMode.CONTROLLER:
            self.session.set_controller_location(placed.coordinate)
        elif placed.mode == PlacementMode.DRONE:
            self.session.dispatch(ActionType.SET_DRONE_LOCATION, placed.coordinate)
        else:
            raise ValueError(f"Unexpected point placement: {placed.mode}")

        logger.info("Placed %s at (%.5f, %.5f)", placed.mode.value,
                    placed.coordinate.lat, placed.coordinate.lng)
        return True

    def on_draw_complete(self, drawing: Any) -> bool:
        """Finished polygon; returns True when it became the operational area"""
        points = coordinates_from_drawing(drawing)
        polygon = placement.consume_draw_end(self.session.state.placement_mode, points)
        if polygon is None:
            logger.warning("Ignoring drawing while not in drawing mode")
            return False

        self.session.set_drone_area(polygon)
        logger.info("Operational area set with %d points", len(polygon))
        return True

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _place_marker(self, marker_id: str, coord: Optional[Coordinate], label: Optional[str] = None) -> bool:
        """Add, move or remove a marker; returns True when newly added"""
        if coord is None:
            if marker_id in self._markers:
                self.surface.remove_marker(marker_id)
                self._markers.discard(marker_id)
            return False

        if marker_id in self._markers:
            self.surface.update_marker(marker_id, coord)
            return False

        self.surface.add_marker(marker_id, coord, label)
        self._markers.add(marker_id)
        return True

    def sync(self, state: DeploymentState):
        """Redraw everything the session state implies"""
        self.surface.set_cursor(placement.cursor_for(state.placement_mode))

        if self._place_marker(USER_MARKER, state.user_location, "You are here"):
            self.surface.fly_to(state.user_location, config.USER_ZOOM)

        self._place_marker(CONTROLLER_MARKER, state.controller_config.location, "Controller")

        drone_label = state.selected_drone.name if state.selected_drone else "DRONE-01"
        self._place_marker(DRONE_MARKER, state.drone_config.location, drone_label)

        self.renderer.render(state)

    def center_on_user(self):
        location = self.session.state.user_location
        if location is not None:
            self.surface.fly_to(location, config.USER_ZOOM)
