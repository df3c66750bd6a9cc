"""
Map Canvas
The interactive rendering surface: click-to-coordinate, markers, polygons,
and image overlays

MapSurface is the capability the planner draws on. MapCanvas implements it in
memory (viewport, layers, and a command log) and exports the current layers
as a folium (Leaflet) map.
"""

import logging
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import folium
from folium.raster_layers import ImageOverlay

from models import Coordinate
import config
import geometry

logger = logging.getLogger(__name__)


class MapSurface(Protocol):
    """Rendering surface consumed by the map adapter and overlay renderer"""

    def unproject(self, x: float, y: float) -> Coordinate: ...

    def set_cursor(self, cursor: str) -> None: ...

    def fly_to(self, center: Coordinate, zoom: Optional[float] = None) -> None: ...

    def add_marker(self, marker_id: str, coordinate: Coordinate, label: Optional[str] = None) -> None: ...

    def update_marker(self, marker_id: str, coordinate: Coordinate) -> None: ...

    def remove_marker(self, marker_id: str) -> None: ...

    def add_polygon(self, layer_id: str, points: Sequence[Coordinate], style: dict) -> None: ...

    def remove_polygon(self, layer_id: str) -> None: ...

    def add_image_overlay(self, overlay_id: str, image_url: str,
                          corners: List[List[float]], opacity: float) -> None: ...

    def remove_image_overlay(self, overlay_id: str) -> None: ...


class MapCanvas:
    """In-memory map surface with a Web-Mercator viewport"""

    def __init__(self, center: Optional[Coordinate] = None, zoom: float = config.MAP_ZOOM,
                 width: int = config.MAP_WIDTH, height: int = config.MAP_HEIGHT):
        self.center = center or Coordinate(**config.MAP_CENTER)
        self.zoom = zoom
        self.width = width
        self.height = height
        self.cursor = ''
        self.markers: Dict[str, dict] = {}
        self.polygons: Dict[str, dict] = {}
        self.overlays: Dict[str, dict] = {}
        self.commands: List[Tuple] = []

    def _record(self, *command):
        self.commands.append(command)
        logger.debug("Map command %s", command[0])

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    def _origin(self) -> Tuple[float, float]:
        """World pixel of the viewport's top-left corner"""
        cx, cy = geometry.project(self.center, self.zoom)
        return cx - self.width / 2, cy - self.height / 2

    def unproject(self, x: float, y: float) -> Coordinate:
        """Coordinate under a screen pixel (origin at the top-left)"""
        ox, oy = self._origin()
        return geometry.unproject(ox + x, oy + y, self.zoom)

    def project(self, coordinate: Coordinate) -> Tuple[float, float]:
        """Screen pixel of a coordinate"""
        ox, oy = self._origin()
        x, y = geometry.project(coordinate, self.zoom)
        return x - ox, y - oy

    def fly_to(self, center: Coordinate, zoom: Optional[float] = None):
        self.center = center
        if zoom is not None:
            self.zoom = zoom
        self._record('fly_to', center, self.zoom)

    def set_cursor(self, cursor: str):
        if cursor != self.cursor:
            self.cursor = cursor
            self._record('set_cursor', cursor)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_marker(self, marker_id: str, coordinate: Coordinate, label: Optional[str] = None):
        self.markers[marker_id] = {'coordinate': coordinate, 'label': label}
        self._record('add_marker', marker_id, coordinate)

    def update_marker(self, marker_id: str, coordinate: Coordinate):
        if marker_id not in self.markers:
            raise KeyError(f"Unknown marker: {marker_id}")
        self.markers[marker_id]['coordinate'] = coordinate
        self._record('update_marker', marker_id, coordinate)

    def remove_marker(self, marker_id: str):
        if self.markers.pop(marker_id, None) is not None:
            self._record('remove_marker', marker_id)

    def add_polygon(self, layer_id: str, points: Sequence[Coordinate], style: dict):
        self.polygons[layer_id] = {'points': list(points), 'style': dict(style)}
        self._record('add_polygon', layer_id)

    def remove_polygon(self, layer_id: str):
        if self.polygons.pop(layer_id, None) is not None:
            self._record('remove_polygon', layer_id)

    def add_image_overlay(self, overlay_id: str, image_url: str,
                          corners: List[List[float]], opacity: float):
        self.overlays[overlay_id] = {'image': image_url, 'corners': corners, 'opacity': opacity}
        self._record('add_image_overlay', overlay_id)

    def remove_image_overlay(self, overlay_id: str):
        if self.overlays.pop(overlay_id, None) is not None:
            self._record('remove_image_overlay', overlay_id)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_folium(self) -> folium.Map:
        """Build a folium map showing the current layers"""
        bounds = config.MAP_MAX_BOUNDS
        m = folium.Map(
            location=[self.center.lat, self.center.lng],
            zoom_start=int(round(self.zoom)),
            tiles=None,
            max_bounds=True,
            min_lat=bounds['south'],
            max_lat=bounds['north'],
            min_lon=bounds['west'],
            max_lon=bounds['east']
        )
        folium.TileLayer(
            config.BASEMAP_TILES,
            attr=config.BASEMAP_ATTRIBUTION,
            name="Basemap"
        ).add_to(m)

        for overlay in self.overlays.values():
            # corners are [lng, lat]: top-left ... bottom-left
            (west, north), _, (east, south), _ = overlay['corners']
            ImageOverlay(
                image=overlay['image'],
                bounds=[[south, west], [north, east]],
                opacity=overlay['opacity']
            ).add_to(m)

        for polygon in self.polygons.values():
            style = polygon['style']
            folium.Polygon(
                locations=[[p.lat, p.lng] for p in polygon['points']],
                color=style['line_color'],
                weight=style['line_width'],
                opacity=style['line_opacity'],
                fill=True,
                fill_color=style['fill_color'],
                fill_opacity=style['fill_opacity']
            ).add_to(m)

        for marker_id, marker in self.markers.items():
            coordinate = marker['coordinate']
            folium.Marker(
                location=[coordinate.lat, coordinate.lng],
                tooltip=marker['label'] or marker_id
            ).add_to(m)

        return m

    def save(self, path: str) -> str:
        """Write the map as a standalone HTML file"""
        self.to_folium().save(path)
        logger.info("Map saved to %s", path)
        return path
