"""
One-pass professional CAM ruleset ("instant edit").

Every live, unmodified pad or fill is classified and treated once:

  tooSmall      left alone (below the printability floor)
  finePitch     per-side reduction, narrow side floored, exported oblong
  largeThermal  per-side thermal reduction, then window-paned by aspect;
                falls back to the thermal treatment when tiling fails or
                the outline is not rectangular
  thermal       per-side thermal reduction plus corner radius
  circle        diameter reduced, home-plate corner radius
  standard      per-side reduction plus corner radius

Shapes are marked ``modified`` so a second run in the same session is a no-op.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from modification_engine import is_paneable, make_panes
from pad_classifier import PadCategory, classify_shape
from pane_tiler import grid_for_aspect, tile_rectangle
from shape_store import MIN_EDIT_SIZE, BoardDataset, Shape, ShapeKind
from stencil_rules import ScaledRules, resolve_rules
from unit_model import unit_scale

logger = logging.getLogger(__name__)

_LOG_LABELS = [
    (PadCategory.FINE_PITCH, "Fine pitch oblong reduction", "leads"),
    (PadCategory.LARGE_THERMAL, "Window panes", "thermal pads"),
    (PadCategory.THERMAL, "Thermal reduction + corner radius", "pads"),
    (PadCategory.CIRCLE, "BGA home-plate reduction", "round pads"),
    (PadCategory.STANDARD, "Standard reduction + corner radius", "pads"),
    (PadCategory.TOO_SMALL, "Skipped below printable size", "pads"),
]


@dataclass
class InstantEditResult:
    log: List[str] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    panes_created: int = 0


def apply_instant_rules(dataset: BoardDataset, rules=None) -> InstantEditResult:
    """Apply the fixed ruleset to every eligible shape of ``dataset`` in place."""
    scaled = resolve_rules(rules).scaled(unit_scale(dataset))
    counts = {category.value: 0 for category in PadCategory}
    panes_created = 0

    logger.info("Instant edit on %d shapes", len(dataset.shapes))
    new_shapes: List[Shape] = []
    for shape in dataset.shapes:
        if not _is_eligible(shape):
            new_shapes.append(shape)
            continue

        category = classify_shape(shape, dataset, scaled)
        treated = _treat(shape, category, dataset, scaled)
        if category is PadCategory.LARGE_THERMAL and not treated[0].replaced_by_panes:
            category = PadCategory.THERMAL
        counts[category.value] += 1
        panes_created += len(treated) - 1
        new_shapes.extend(treated)

    dataset.shapes = new_shapes
    counts["panes"] = panes_created

    log = []
    for category, label, noun in _LOG_LABELS:
        line = f"{label}: {counts[category.value]} {noun}"
        if category is PadCategory.LARGE_THERMAL:
            line += f" ({panes_created} panes)"
        log.append(line)
    logger.info("Instant edit counts: %s", counts)
    return InstantEditResult(log=log, counts=counts, panes_created=panes_created)


def _is_eligible(shape: Shape) -> bool:
    return (
        shape.kind in (ShapeKind.PAD, ShapeKind.FILL)
        and not shape.deleted
        and not shape.modified
        and not shape.is_fiducial
    )


def _treat(
    shape: Shape,
    category: PadCategory,
    dataset: BoardDataset,
    rules: ScaledRules,
) -> List[Shape]:
    w, h = dataset.shape_size(shape)

    if category is PadCategory.TOO_SMALL:
        return [shape]

    if category is PadCategory.FINE_PITCH:
        new_w = w - 2 * rules.fine_pitch_reduction
        new_h = h - 2 * rules.fine_pitch_reduction
        if w <= h:
            new_w = max(new_w, rules.fine_pitch_min_width)
        else:
            new_h = max(new_h, rules.fine_pitch_min_width)
        return [shape.edited(
            w, h,
            modified_width=max(MIN_EDIT_SIZE, new_w),
            modified_height=max(MIN_EDIT_SIZE, new_h),
            convert_to_oblong=True,
            edit_type="finePitch",
        )]

    if category is PadCategory.LARGE_THERMAL and is_paneable(shape):
        red_w = w - 2 * rules.thermal_reduction
        red_h = h - 2 * rules.thermal_reduction
        rows, cols = grid_for_aspect(red_w, red_h)
        rects = tile_rectangle(
            shape.x, shape.y, red_w, red_h, rows, cols,
            rules.pane_web_width, rules.pane_edge_gap,
            min_pane_size=min(red_w, red_h) * rules.min_pane_fraction,
        )
        if rects:
            parent = shape.edited(
                w, h, deleted=True, replaced_by_panes=True, edit_type="windowPane",
            )
            return [parent] + make_panes(parent, rects, corner_radius=rules.corner_radius)
        logger.info("Thermal pad %s could not be paned, reducing instead", shape.id)
        return _reduce_with_radius(shape, w, h, rules.thermal_reduction, rules, "thermal")

    if category in (PadCategory.LARGE_THERMAL, PadCategory.THERMAL):
        return _reduce_with_radius(shape, w, h, rules.thermal_reduction, rules, "thermal")

    if category is PadCategory.CIRCLE:
        return _reduce_with_radius(shape, w, h, rules.standard_reduction, rules, "bga")

    return _reduce_with_radius(shape, w, h, rules.standard_reduction, rules, "standard")


def _reduce_with_radius(
    shape: Shape,
    w: float,
    h: float,
    per_side: float,
    rules: ScaledRules,
    edit_type: str,
) -> List[Shape]:
    new_w = max(MIN_EDIT_SIZE, w - 2 * per_side)
    new_h = max(MIN_EDIT_SIZE, h - 2 * per_side)
    radius = min(rules.corner_radius, min(new_w, new_h) / 4)
    return [shape.edited(
        w, h,
        modified_width=new_w,
        modified_height=new_h,
        corner_radius=radius,
        edit_type=edit_type,
    )]
