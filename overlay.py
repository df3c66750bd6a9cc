"""
Overlay Renderer
Anchors the calculated communication-zone image over the operational area

The area polygon is drawn with a translucent fill until a calculation result
exists; afterwards the fill is fully transparent so the image is the only
fill on the map, while the stroke keeps the boundary legible.
"""

import itertools
import logging
from typing import List, Optional, Sequence

from models import BoundingBox, CalculationResult, Coordinate, DeploymentState
import config
import geometry

logger = logging.getLogger(__name__)

AREA_LAYER = 'operational-area'
PREVIEW_LAYER = 'radius-preview'


def area_style(has_result: bool) -> dict:
    """Fill / stroke style of the operational-area polygon"""
    return {
        'fill_color': 'transparent' if has_result else config.AREA_COLOR,
        'fill_opacity': 0.0 if has_result else config.AREA_FILL_OPACITY,
        'line_color': config.AREA_COLOR,
        'line_width': config.AREA_LINE_WIDTH,
        'line_opacity': config.AREA_LINE_OPACITY,
    }


def overlay_placement(drawn_area: Sequence[Coordinate]) -> BoundingBox:
    """Box the result image is stretched over"""
    return geometry.bounding_box(drawn_area)


class OverlayRenderer:
    """Draws the operational area and the result image on a map surface"""

    def __init__(self, surface):
        self.surface = surface
        self.overlay_id: Optional[str] = None
        self._area_drawn = False
        self._preview_drawn = False
        self._rendered_area: Optional[List[Coordinate]] = None
        self._rendered_result: Optional[CalculationResult] = None
        self._ids = itertools.count(1)

    def render(self, state: DeploymentState):
        area = state.drone_config.drawn_area
        result = state.calculation_result

        if area == self._rendered_area and result == self._rendered_result:
            return

        self._render_area(area, result is not None)
        self._render_overlay(area, result)

        self._rendered_area = area
        self._rendered_result = result

    def _render_area(self, area: Optional[List[Coordinate]], has_result: bool):
        if self._area_drawn:
            self.surface.remove_polygon(AREA_LAYER)
            self._area_drawn = False

        if area:
            self.surface.add_polygon(AREA_LAYER, geometry.close_ring(area), area_style(has_result))
            self._area_drawn = True

    def _render_overlay(self, area: Optional[List[Coordinate]],
                        result: Optional[CalculationResult]):
        if self.overlay_id is not None:
            self.surface.remove_image_overlay(self.overlay_id)
            self.overlay_id = None

        if not area or result is None:
            return

        box = overlay_placement(area)
        self.overlay_id = f"result-overlay-{next(self._ids)}"
        self.surface.add_image_overlay(
            self.overlay_id,
            result.image_data,
            box.corners(),
            config.OVERLAY_OPACITY
        )
        logger.info("Result overlay %s anchored at N%.5f S%.5f E%.5f W%.5f",
                    self.overlay_id, box.north, box.south, box.east, box.west)

    def preview_radius(self, center: Coordinate,
                       radius_meters: float = config.DEFAULT_OPERATIONAL_RADIUS) -> List[Coordinate]:
        """Draw a quick circular preview of an operational radius"""
        circle = geometry.circle_polygon(center, radius_meters)
        self.clear_preview()
        self.surface.add_polygon(PREVIEW_LAYER, circle, area_style(False))
        self._preview_drawn = True
        return circle

    def clear_preview(self):
        if self._preview_drawn:
            self.surface.remove_polygon(PREVIEW_LAYER)
            self._preview_drawn = False
