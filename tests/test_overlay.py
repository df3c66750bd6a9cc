"""
Tests for the overlay renderer.
"""

import unittest

from map_canvas import MapCanvas
from models import CalculationResult, Coordinate, DeploymentState, DroneConfig
from overlay import AREA_LAYER, PREVIEW_LAYER, OverlayRenderer, area_style, overlay_placement
from fakes import IMAGE, CALCULATED_AT, TRIANGLE
import config
import geometry

RESULT = CalculationResult(image_data=IMAGE, calculated_at=CALCULATED_AT)


def state_with(area=None, result=None):
    drone_config = DroneConfig(altitude=120)
    if area:
        drone_config = DroneConfig(altitude=120, drawn_area=area, location=geometry.centroid(area))
    return DeploymentState(drone_config=drone_config, calculation_result=result)


class TestAreaStyle(unittest.TestCase):

    def test_translucent_fill_before_result(self):
        style = area_style(False)
        self.assertEqual(style['fill_color'], config.AREA_COLOR)
        self.assertEqual(style['fill_opacity'], config.AREA_FILL_OPACITY)

    def test_transparent_fill_with_result(self):
        style = area_style(True)
        self.assertEqual(style['fill_color'], 'transparent')
        self.assertEqual(style['fill_opacity'], 0.0)
        self.assertEqual(style['line_opacity'], config.AREA_LINE_OPACITY)
        self.assertEqual(style['line_width'], config.AREA_LINE_WIDTH)

    def test_overlay_placement_is_bounding_box(self):
        box = overlay_placement(TRIANGLE)
        self.assertEqual(box.corners(), [[34.78, 32.09], [34.80, 32.09], [34.80, 32.07], [34.78, 32.07]])


class TestOverlayRenderer(unittest.TestCase):

    def setUp(self):
        self.canvas = MapCanvas()
        self.renderer = OverlayRenderer(self.canvas)

    def test_area_without_result(self):
        self.renderer.render(state_with(TRIANGLE))

        polygon = self.canvas.polygons[AREA_LAYER]
        self.assertEqual(polygon['points'], geometry.close_ring(TRIANGLE))
        self.assertEqual(polygon['style'], area_style(False))
        self.assertEqual(self.canvas.overlays, {})

    def test_result_anchors_image_on_bounding_box(self):
        self.renderer.render(state_with(TRIANGLE, RESULT))

        self.assertEqual(len(self.canvas.overlays), 1)
        overlay = self.canvas.overlays[self.renderer.overlay_id]
        self.assertEqual(overlay['image'], IMAGE)
        self.assertEqual(overlay['corners'], [[34.78, 32.09], [34.80, 32.09], [34.80, 32.07], [34.78, 32.07]])
        self.assertEqual(overlay['opacity'], config.OVERLAY_OPACITY)
        self.assertEqual(self.canvas.polygons[AREA_LAYER]['style'], area_style(True))

    def test_new_result_replaces_overlay(self):
        self.renderer.render(state_with(TRIANGLE, RESULT))
        first = self.renderer.overlay_id

        other = CalculationResult(image_data="data:image/png;base64,AAAA", calculated_at=CALCULATED_AT)
        self.renderer.render(state_with(TRIANGLE, other))

        self.assertNotEqual(self.renderer.overlay_id, first)
        self.assertEqual(list(self.canvas.overlays), [self.renderer.overlay_id])

    def test_unchanged_state_draws_nothing(self):
        state = state_with(TRIANGLE, RESULT)
        self.renderer.render(state)
        commands = len(self.canvas.commands)

        self.renderer.render(state)

        self.assertEqual(len(self.canvas.commands), commands)

    def test_reset_clears_layers(self):
        self.renderer.render(state_with(TRIANGLE, RESULT))
        self.renderer.render(DeploymentState())

        self.assertEqual(self.canvas.polygons, {})
        self.assertEqual(self.canvas.overlays, {})
        self.assertIsNone(self.renderer.overlay_id)

    def test_preview_radius(self):
        center = Coordinate(lat=32.08, lng=34.78)
        circle = self.renderer.preview_radius(center, 250)

        self.assertEqual(len(circle), config.CIRCLE_SEGMENTS + 1)
        self.assertIn(PREVIEW_LAYER, self.canvas.polygons)

        self.renderer.clear_preview()
        self.assertNotIn(PREVIEW_LAYER, self.canvas.polygons)


if __name__ == '__main__':
    unittest.main()
