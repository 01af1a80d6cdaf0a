"""
DXF cut file for laser-cut stencils.

Uses ezdxf to write the live apertures of a board dataset with layers:
  - CUT (red, ACI 1): paste apertures, window panes, fills, strokes
  - ENGRAVE (blue, ACI 5): fiducials, board outline, job label

Units: millimeters. Format: R2010.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

import ezdxf
from ezdxf.enums import TextEntityAlignment
from shapely import affinity
from shapely.geometry import LineString, MultiPolygon, Point, Polygon, box

from gerber_exporter import aperture_kind
from shape_store import BoardDataset, Shape, ShapeKind
from stencil_rules import resolve_rules
from unit_model import is_inches, native_to_mm, unit_scale

logger = logging.getLogger(__name__)


@dataclass
class DXFExportConfig:
    """Configuration for DXF export."""
    cut_layer: str = "CUT"
    engrave_layer: str = "ENGRAVE"
    cut_color: int = 1       # ACI red
    engrave_color: int = 5   # ACI blue
    add_board_outline: bool = True
    label: Optional[str] = None
    label_height_mm: float = 2.0
    arc_segments: int = 8    # per quarter circle


def dataset_to_dxf(
    dataset: BoardDataset,
    filepath: str,
    config: Optional[DXFExportConfig] = None,
    rules=None,
) -> str:
    """Export the live apertures of a dataset to a DXF file.

    Args:
        dataset: Board to export (not modified).
        filepath: Output DXF file path.
        config: DXF export settings.
        rules: ``StencilRules``, overrides dict, or None.

    Returns:
        Path to created DXF file.
    """
    if config is None:
        config = DXFExportConfig()
    scaled = resolve_rules(rules).scaled(unit_scale(dataset))
    inches = is_inches(dataset)

    doc = ezdxf.new("R2010")
    doc.units = ezdxf.units.MM
    msp = doc.modelspace()
    _setup_layers(doc, config)

    written = 0
    for shape in dataset.live_shapes():
        outline = _shape_outline(shape, dataset, scaled, config)
        if outline is None or outline.is_empty:
            continue
        outline = affinity.scale(
            outline,
            xfact=native_to_mm(1.0, inches),
            yfact=native_to_mm(1.0, inches),
            origin=(0, 0),
        )
        layer = config.engrave_layer if shape.is_fiducial else config.cut_layer
        _add_polygon_to_dxf(msp, outline, layer)
        written += 1

    if config.add_board_outline and dataset.bounds is not None:
        b = dataset.bounds
        frame = box(
            native_to_mm(b.min_x, inches), native_to_mm(b.min_y, inches),
            native_to_mm(b.max_x, inches), native_to_mm(b.max_y, inches),
        )
        _add_polygon_to_dxf(msp, frame, config.engrave_layer)
        if config.label:
            msp.add_text(
                config.label,
                height=config.label_height_mm,
                dxfattribs={"layer": config.engrave_layer},
            ).set_placement(
                (frame.bounds[0], frame.bounds[1] - config.label_height_mm * 2),
                align=TextEntityAlignment.BOTTOM_LEFT,
            )

    os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
    doc.saveas(filepath)
    logger.info("Exported DXF with %d apertures: %s", written, filepath)
    return filepath


# ─── Internal helpers ────────────────────────────────────────────────────────

def _setup_layers(doc, config: DXFExportConfig) -> None:
    """Create CUT and ENGRAVE layers."""
    doc.layers.add(config.cut_layer, color=config.cut_color)
    doc.layers.add(config.engrave_layer, color=config.engrave_color)


def _shape_outline(shape: Shape, dataset: BoardDataset, rules, config: DXFExportConfig):
    """Aperture outline in native units, or None when it has no area."""
    res = config.arc_segments

    if shape.kind is ShapeKind.STROKE:
        w, _ = dataset.shape_size(shape)
        line = LineString([
            (shape.x1 if shape.x1 is not None else shape.x, shape.y1 if shape.y1 is not None else shape.y),
            (shape.x2 if shape.x2 is not None else shape.x, shape.y2 if shape.y2 is not None else shape.y),
        ])
        return line.buffer(w / 2, resolution=res)

    if shape.kind is ShapeKind.FILL and shape.points and len(shape.points) >= 3 and not shape.is_fiducial:
        polygon = Polygon(shape.points)
        w0, h0 = dataset.ingested_size(shape)
        w1, h1 = dataset.shape_size(shape)
        if (w0, h0) != (w1, h1):
            polygon = affinity.scale(
                polygon, xfact=w1 / w0 if w0 else 1.0, yfact=h1 / h0 if h0 else 1.0,
                origin=(shape.x, shape.y),
            )
        return polygon

    if shape.is_pane:
        w, h = dataset.shape_size(shape)
        return _rounded_rect(shape.x, shape.y, w, h, shape.corner_radius or 0.0, res)

    kind, w, h = aperture_kind(shape, dataset, rules)
    if kind == "C":
        return Point(shape.x, shape.y).buffer(w / 2, resolution=res)
    if kind == "O":
        return _rounded_rect(shape.x, shape.y, w, h, min(w, h) / 2, res)
    return _rounded_rect(shape.x, shape.y, w, h, shape.corner_radius or 0.0, res)


def _rounded_rect(cx: float, cy: float, w: float, h: float, radius: float, res: int):
    if w <= 0 or h <= 0:
        return None
    radius = max(0.0, min(radius, min(w, h) / 2))
    if radius == 0.0:
        return box(cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)
    half_w, half_h = w / 2 - radius, h / 2 - radius
    if half_w > 0 and half_h > 0:
        core = box(cx - half_w, cy - half_h, cx + half_w, cy + half_h)
    elif half_w > 0 or half_h > 0:
        core = LineString([(cx - half_w, cy - half_h), (cx + half_w, cy + half_h)])
    else:
        core = Point(cx, cy)
    return core.buffer(radius, resolution=res)


def _add_polygon_to_dxf(msp, polygon, layer: str) -> None:
    """Add a Shapely polygon as closed LWPolylines (exterior and holes)."""
    if polygon.is_empty:
        return

    if isinstance(polygon, MultiPolygon):
        for geom in polygon.geoms:
            _add_polygon_to_dxf(msp, geom, layer)
        return

    for ring in [polygon.exterior, *polygon.interiors]:
        coords = list(ring.coords)[:-1]
        if len(coords) >= 3:
            msp.add_lwpolyline(coords, close=True, dxfattribs={"layer": layer})
