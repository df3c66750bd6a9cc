"""
Tests for the in-memory map canvas and its folium export.
"""

import os
import tempfile
import unittest

import folium
from folium.raster_layers import ImageOverlay

from map_canvas import MapCanvas
from models import Coordinate
from overlay import area_style
from fakes import IMAGE, TRIANGLE

CENTER = Coordinate(lat=32.08, lng=34.78)


class TestViewport(unittest.TestCase):

    def setUp(self):
        self.canvas = MapCanvas(center=CENTER, zoom=14, width=800, height=600)

    def test_screen_center_is_map_center(self):
        coord = self.canvas.unproject(400, 300)
        self.assertAlmostEqual(coord.lat, CENTER.lat, places=6)
        self.assertAlmostEqual(coord.lng, CENTER.lng, places=6)

    def test_screen_axes(self):
        top_left = self.canvas.unproject(0, 0)
        self.assertGreater(top_left.lat, CENTER.lat)
        self.assertLess(top_left.lng, CENTER.lng)

    def test_project_matches_unproject(self):
        x, y = self.canvas.project(Coordinate(lat=32.085, lng=34.79))
        back = self.canvas.unproject(x, y)
        self.assertAlmostEqual(back.lat, 32.085, places=9)
        self.assertAlmostEqual(back.lng, 34.79, places=9)


class TestLayers(unittest.TestCase):

    def setUp(self):
        self.canvas = MapCanvas(center=CENTER)

    def test_marker_lifecycle(self):
        self.canvas.add_marker('controller', CENTER, "Controller")
        self.canvas.update_marker('controller', Coordinate(lat=32.0, lng=34.0))
        self.assertEqual(self.canvas.markers['controller']['coordinate'].lat, 32.0)

        self.canvas.remove_marker('controller')
        self.assertEqual(self.canvas.markers, {})
        self.assertEqual([c[0] for c in self.canvas.commands],
                         ['add_marker', 'update_marker', 'remove_marker'])

    def test_update_unknown_marker(self):
        with self.assertRaises(KeyError):
            self.canvas.update_marker('missing', CENTER)

    def test_cursor_recorded_on_change_only(self):
        self.canvas.set_cursor('crosshair')
        self.canvas.set_cursor('crosshair')
        self.assertEqual(self.canvas.commands, [('set_cursor', 'crosshair')])


class TestFoliumExport(unittest.TestCase):

    def setUp(self):
        self.canvas = MapCanvas(center=CENTER)
        self.canvas.add_polygon('operational-area', TRIANGLE, area_style(True))
        self.canvas.add_image_overlay('result-overlay-1', IMAGE,
                                      [[34.78, 32.09], [34.80, 32.09], [34.80, 32.07], [34.78, 32.07]], 0.8)
        self.canvas.add_marker('controller', CENTER, "Controller")

    def children_of_type(self, m, kind):
        return [child for child in m._children.values() if isinstance(child, kind)]

    def test_layers_exported(self):
        m = self.canvas.to_folium()

        self.assertIsInstance(m, folium.Map)
        self.assertEqual(len(self.children_of_type(m, ImageOverlay)), 1)
        self.assertEqual(len(self.children_of_type(m, folium.Polygon)), 1)
        self.assertEqual(len(self.children_of_type(m, folium.Marker)), 1)

    def test_overlay_bounds_are_south_west_north_east(self):
        overlay = self.children_of_type(self.canvas.to_folium(), ImageOverlay)[0]
        self.assertEqual(overlay.bounds, [[32.07, 34.78], [32.09, 34.80]])

    def test_save(self):
        with tempfile.TemporaryDirectory() as directory:
            path = self.canvas.save(os.path.join(directory, "map.html"))
            self.assertTrue(os.path.exists(path))


if __name__ == '__main__':
    unittest.main()
