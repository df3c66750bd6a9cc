"""
Placement Mode Module
Decides what the next map click or finished drawing means

Exactly one placement mode is active at a time. These are pure functions over
PlacementMode; the deployment reducer is the only code that stores the mode.
"""

from typing import List, NamedTuple, Optional, Sequence
from models import Coordinate, PlacementMode
from errors import PlacementError


class Placement(NamedTuple):
    """A click attributed to a point-placement mode"""
    mode: PlacementMode
    coordinate: Coordinate


def _unknown(mode) -> PlacementError:
    return PlacementError(f"Unknown placement mode: {mode!r}")


def enter_placement(target: PlacementMode) -> PlacementMode:
    """
    Start a placement

    Any unfinished placement is replaced, never queued.

    Args:
        target: controller, drone, or drawing

    Returns:
        The new active mode
    """
    target = PlacementMode(target)
    if target == PlacementMode.NONE:
        raise PlacementError("Cannot enter placement without a target")
    if target in (PlacementMode.CONTROLLER, PlacementMode.DRONE, PlacementMode.DRAWING):
        return target
    raise _unknown(target)


def cancel_placement(mode: PlacementMode) -> PlacementMode:
    return PlacementMode.NONE


def consume_click(mode: PlacementMode, coord: Coordinate) -> Optional[Placement]:
    """
    Attribute a map click to the active point placement

    Returns:
        Placement for controller / drone modes, None when the click must be
        ignored (no placement active, or a drawing is in progress)
    """
    if mode == PlacementMode.NONE:
        return None
    if mode == PlacementMode.DRAWING:
        return None
    if mode in (PlacementMode.CONTROLLER, PlacementMode.DRONE):
        return Placement(mode, coord)
    raise _unknown(mode)


def consume_draw_end(mode: PlacementMode,
                     polygon: Sequence[Coordinate]) -> Optional[List[Coordinate]]:
    """
    Accept a finished drawing

    Returns:
        The polygon vertices when drawing is active, otherwise None
    """
    if mode == PlacementMode.DRAWING:
        return list(polygon)
    if mode in (PlacementMode.NONE, PlacementMode.CONTROLLER, PlacementMode.DRONE):
        return None
    raise _unknown(mode)


def is_active(mode: PlacementMode) -> bool:
    return mode != PlacementMode.NONE


def cursor_for(mode: PlacementMode) -> str:
    """Map canvas cursor for a mode"""
    return 'crosshair' if is_active(mode) else ''


def placement_prompt(mode: PlacementMode) -> Optional[str]:
    """Hint shown over the map while a placement is active"""
    if mode == PlacementMode.NONE:
        return None
    if mode == PlacementMode.CONTROLLER:
        return "Tap on map to place Controller"
    if mode == PlacementMode.DRONE:
        return "Tap on map to place Drone"
    if mode == PlacementMode.DRAWING:
        return "Draw the operational area on the map"
    raise _unknown(mode)
