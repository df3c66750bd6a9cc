"""
Tests for the map interaction adapter.
"""

import unittest

from deployment import DeploymentSession
from map_adapter import (
    CONTROLLER_MARKER, DRONE_MARKER, USER_MARKER, MapInteractionAdapter,
    coordinates_from_drawing
)
from map_canvas import MapCanvas
from models import Coordinate, DeploymentPhase, PlacementMode
from operator_client import area_drawing
from overlay import AREA_LAYER
from errors import PlacementError
from fakes import ALPHA, TRIANGLE, FakeBackend, configure
import config
import geometry

CENTER = Coordinate(lat=32.08, lng=34.78)


class TestCoordinatesFromDrawing(unittest.TestCase):

    def test_geojson_feature(self):
        feature = {
            'type': 'Feature',
            'geometry': {
                'type': 'Polygon',
                'coordinates': [[[34.78, 32.08], [34.79, 32.09], [34.80, 32.07], [34.78, 32.08]]],
            },
        }
        self.assertEqual(coordinates_from_drawing(feature), TRIANGLE)

    def test_bare_polygon_geometry(self):
        polygon = {'type': 'Polygon', 'coordinates': [[[34.78, 32.08], [34.79, 32.09], [34.80, 32.07]]]}
        self.assertEqual(coordinates_from_drawing(polygon), TRIANGLE)

    def test_point_sequences(self):
        self.assertEqual(coordinates_from_drawing([(32.08, 34.78), (32.09, 34.79), (32.07, 34.80)]), TRIANGLE)
        self.assertEqual(coordinates_from_drawing([p.model_dump() for p in TRIANGLE]), TRIANGLE)

    def test_non_polygon_rejected(self):
        with self.assertRaises(ValueError):
            coordinates_from_drawing({'type': 'Point', 'coordinates': [34.78, 32.08]})


class TestMapInteractionAdapter(unittest.TestCase):

    def setUp(self):
        self.session = DeploymentSession(FakeBackend())
        self.canvas = MapCanvas(center=CENTER, zoom=14, width=800, height=600)
        self.adapter = MapInteractionAdapter(self.session, self.canvas)

    def tearDown(self):
        self.adapter.close()

    def test_click_without_placement_is_ignored(self):
        self.session.select_drone(ALPHA)
        before = self.session.state

        self.assertFalse(self.adapter.on_click(400, 300))
        self.assertIs(self.session.state, before)

    def test_controller_placement_from_screen_click(self):
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.CONTROLLER)
        self.assertEqual(self.canvas.cursor, 'crosshair')

        self.assertTrue(self.adapter.on_click(400, 300))

        state = self.session.state
        self.assertAlmostEqual(state.controller_config.location.lat, CENTER.lat, places=6)
        self.assertAlmostEqual(state.controller_config.location.lng, CENTER.lng, places=6)
        self.assertEqual(state.placement_mode, PlacementMode.NONE)
        self.assertEqual(self.canvas.cursor, '')
        self.assertIn(CONTROLLER_MARKER, self.canvas.markers)

    def test_second_click_moves_nothing(self):
        """After a placement completes, the mode is none and clicks are ignored."""
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.CONTROLLER)
        self.adapter.on_click(400, 300)
        placed = self.session.state.controller_config.location

        self.assertFalse(self.adapter.on_click(10, 10))
        self.assertEqual(self.session.state.controller_config.location, placed)

    def test_click_while_drawing_is_ignored(self):
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.DRAWING)

        self.assertFalse(self.adapter.on_click(400, 300))
        self.assertIsNone(self.session.state.controller_config.location)

    def test_draw_complete_sets_area(self):
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.DRAWING)

        drawing = area_drawing(CENTER, 500, corners=6)
        self.assertTrue(self.adapter.on_draw_complete(drawing))

        state = self.session.state
        self.assertEqual(len(state.drone_config.drawn_area), 6)
        self.assertEqual(state.drone_config.location, geometry.centroid(state.drone_config.drawn_area))
        self.assertEqual(state.placement_mode, PlacementMode.NONE)
        self.assertIn(DRONE_MARKER, self.canvas.markers)
        self.assertEqual(self.canvas.markers[DRONE_MARKER]['label'], "Alpha-1")
        self.assertIn(AREA_LAYER, self.canvas.polygons)

    def test_draw_outside_drawing_mode_is_ignored(self):
        self.session.select_drone(ALPHA)
        self.assertFalse(self.adapter.on_draw_complete(TRIANGLE))
        self.assertIsNone(self.session.state.drone_config.drawn_area)

    def test_legacy_drone_placement(self):
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.DRONE)

        self.assertTrue(self.adapter.on_coordinate_click(CENTER))
        self.assertEqual(self.session.state.drone_config.location, CENTER)

    def test_drone_placement_refused_while_area_drawn(self):
        configure(self.session)
        centroid = self.session.state.drone_config.location

        with self.assertRaises(PlacementError):
            self.adapter.begin_placement(PlacementMode.DRONE)

        self.assertEqual(self.session.state.placement_mode, PlacementMode.NONE)
        self.assertFalse(self.adapter.on_coordinate_click(TRIANGLE[0]))
        self.assertEqual(self.session.state.drone_config.location, centroid)

    def test_user_marker_centers_map_once(self):
        here = Coordinate(lat=32.1, lng=34.9)
        self.session.set_user_location(here)

        self.assertIn(USER_MARKER, self.canvas.markers)
        self.assertEqual(self.canvas.center, here)
        self.assertEqual(self.canvas.zoom, config.USER_ZOOM)

        self.canvas.fly_to(CENTER)
        self.session.set_user_location(Coordinate(lat=32.2, lng=34.9))
        self.assertEqual(self.canvas.center, CENTER)
        self.assertEqual(self.canvas.markers[USER_MARKER]['coordinate'].lat, 32.2)

    def test_reset_removes_markers(self):
        self.session.select_drone(ALPHA)
        self.session.set_controller_location(CENTER)
        self.session.set_drone_area(TRIANGLE)

        self.session.reset()

        self.assertNotIn(CONTROLLER_MARKER, self.canvas.markers)
        self.assertNotIn(DRONE_MARKER, self.canvas.markers)
        self.assertEqual(self.canvas.polygons, {})
        self.assertEqual(self.session.state.phase, DeploymentPhase.IDLE)

    def test_cancel_placement(self):
        self.session.select_drone(ALPHA)
        self.adapter.begin_placement(PlacementMode.CONTROLLER)
        self.adapter.cancel_placement()
        self.assertEqual(self.canvas.cursor, '')
        self.assertFalse(self.adapter.on_click(400, 300))

    def test_close_stops_following(self):
        self.adapter.close()
        self.session.select_drone(ALPHA)
        self.session.set_controller_location(CENTER)
        self.assertNotIn(CONTROLLER_MARKER, self.canvas.markers)


if __name__ == '__main__':
    unittest.main()
