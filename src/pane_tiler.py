"""
Window-pane subdivision of rectangular paste openings.

Splits a rectangle into a rows x cols grid of equal sub-openings separated by
webs of ``web_width`` and kept ``edge_gap`` away from every side of the
source. Pure geometry: no dataset access, no side effects.
"""
import logging
from dataclasses import dataclass
from typing import List, Tuple

from shapely.geometry import Polygon, box

logger = logging.getLogger(__name__)

# Aspect ratio below which a thermal pad gets a square grid.
SQUARE_GRID_ASPECT = 1.5

# Minimum outline area over bounding-box area for a fill to be paned.
RECTANGULAR_AREA_RATIO = 0.98


@dataclass(frozen=True)
class PaneRect:
    """One pane, given by its centre and size."""
    x: float
    y: float
    width: float
    height: float

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return (
            self.x - self.width / 2,
            self.y - self.height / 2,
            self.x + self.width / 2,
            self.y + self.height / 2,
        )

    def to_polygon(self) -> Polygon:
        return box(*self.bounds)


def tile_rectangle(
    cx: float,
    cy: float,
    width: float,
    height: float,
    rows: int,
    cols: int,
    web_width: float,
    edge_gap: float,
    min_pane_size: float = 0.0,
) -> List[PaneRect]:
    """Tile a rectangle centred at (cx, cy) into rows x cols panes.

    Panes are returned in raster order: left to right, then bottom row to
    top row (increasing y).

    Returns:
        The panes, or an empty list when the grid is not applicable (bad grid
        size, or a pane side at or below ``min_pane_size``, which is never
        less than zero).
    """
    if rows < 1 or cols < 1:
        return []

    inner_w = width - 2 * edge_gap
    inner_h = height - 2 * edge_gap
    pane_w = (inner_w - (cols - 1) * web_width) / cols
    pane_h = (inner_h - (rows - 1) * web_width) / rows

    limit = max(min_pane_size, 0.0)
    if pane_w <= limit or pane_h <= limit:
        logger.debug(
            "Pane grid %dx%d not applicable: pane %.6f x %.6f (limit %.6f)",
            rows, cols, pane_w, pane_h, limit,
        )
        return []

    start_x = cx - inner_w / 2 + pane_w / 2
    start_y = cy - inner_h / 2 + pane_h / 2

    panes = []
    for row in range(rows):
        for col in range(cols):
            panes.append(PaneRect(
                x=start_x + col * (pane_w + web_width),
                y=start_y + row * (pane_h + web_width),
                width=pane_w,
                height=pane_h,
            ))
    return panes


def grid_for_aspect(width: float, height: float) -> Tuple[int, int]:
    """(rows, cols) for a thermal pad: 2x2 near-square, 2x3 wide, 3x2 tall."""
    short = min(width, height)
    aspect = max(width, height) / short if short > 0 else float("inf")
    if aspect < SQUARE_GRID_ASPECT:
        return 2, 2
    if width > height:
        return 2, 3
    return 3, 2


def is_rectangular(points, tolerance: float = RECTANGULAR_AREA_RATIO) -> bool:
    """Whether an outline fills (nearly) all of its axis-aligned bounding box.

    Only such outlines can be replaced by panes without putting paste
    outside the copper.
    """
    if not points or len(points) < 3:
        return False
    polygon = Polygon(points)
    min_x, min_y, max_x, max_y = polygon.bounds
    bbox_area = (max_x - min_x) * (max_y - min_y)
    if bbox_area <= 0:
        return False
    return abs(polygon.area) >= bbox_area * tolerance
