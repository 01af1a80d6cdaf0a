"""
Structured edit commands applied to a board dataset.

One command (reduce / enlarge / cornerRadius / windowPane / delete / reset /
modifyFids) is applied to every shape matching its target filter. The shape
sequence is rebuilt in order, so every input shape appears in the output
exactly once; window-paning is the only action that adds shapes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from pad_classifier import matches_target
from pane_tiler import is_rectangular, tile_rectangle
from shape_store import MIN_EDIT_SIZE, BoardDataset, Shape, ShapeKind
from stencil_rules import ScaledRules, resolve_rules
from unit_model import is_inches, to_native, unit_scale

logger = logging.getLogger(__name__)

ACTIONS = ("reduce", "enlarge", "scale", "cornerRadius", "windowPane", "delete", "reset", "modifyFids")
FIDUCIAL_SUFFIX = "-fid"


class CommandError(ValueError):
    """A command payload with a missing or mistyped field."""
    pass


@dataclass(frozen=True)
class WindowPaneSpec:
    """Grid parameters for the windowPane action.

    ``web_width``/``edge_gap`` are in ``unit`` (``mm``, ``mil``, ``in``) or in
    the dataset's native unit when ``unit`` is None; when omitted the
    ruleset's pane web and edge clearance are used.
    """
    rows: int = 2
    cols: int = 2
    web_width: Optional[float] = None
    edge_gap: Optional[float] = None
    reduction: float = 0.0
    unit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"rows": self.rows, "cols": self.cols, "reduction": self.reduction}
        if self.web_width is not None:
            out["webWidth"] = self.web_width
        if self.edge_gap is not None:
            out["edgeGap"] = self.edge_gap
        if self.unit is not None:
            out["unit"] = self.unit
        return out

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "WindowPaneSpec":
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise CommandError(f"windowPane must be an object, got {type(data).__name__}")
        return cls(
            rows=int(_number(data, "rows", 2) or 2),
            cols=int(_number(data, "cols", 2) or 2),
            web_width=_opt_float(data.get("webWidth")),
            edge_gap=_opt_float(data.get("edgeGap")),
            reduction=_number(data, "reduction", 0.0),
            unit=str(data["unit"]) if data.get("unit") else None,
        )


@dataclass(frozen=True)
class ModificationCommand:
    """The structured command schema shared with the command interpreter."""
    action: str
    target: str = "all"
    value: float = 0.0
    unit: str = "%"
    selected_only: bool = False
    window_pane: Optional[WindowPaneSpec] = None
    include_panes: bool = False
    fid_size: Optional[float] = None
    fid_unit: str = "mil"
    fid_shape: str = "circle"
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "action": self.action,
            "target": self.target,
            "value": self.value,
            "unit": self.unit,
            "selectedOnly": self.selected_only,
        }
        if self.window_pane is not None:
            out["windowPane"] = self.window_pane.to_dict()
        if self.include_panes:
            out["includePanes"] = True
        if self.fid_size is not None:
            out["fidSize"] = self.fid_size
            out["fidUnit"] = self.fid_unit
            out["fidShape"] = self.fid_shape
        if self.explanation:
            out["explanation"] = self.explanation
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModificationCommand":
        """Build a command from its wire dict.

        Raises:
            CommandError: if the payload or one of its fields has the wrong type.
        """
        if not isinstance(data, Mapping):
            raise CommandError(f"Command must be an object, got {type(data).__name__}")
        wp = data.get("windowPane")
        return cls(
            action=str(data.get("action") or ""),
            target=str(data.get("target") or "all"),
            value=_number(data, "value", 0.0),
            unit=str(data.get("unit") or "%"),
            selected_only=bool(data.get("selectedOnly", False)),
            window_pane=WindowPaneSpec.from_dict(wp) if wp else None,
            include_panes=bool(data.get("includePanes", False)),
            fid_size=_opt_float(data.get("fidSize")),
            fid_unit=str(data.get("fidUnit") or "mil"),
            fid_shape=str(data.get("fidShape") or "circle"),
            explanation=data.get("explanation"),
        )


@dataclass
class ModificationResult:
    modified_count: int = 0
    shape_count: int = 0
    panes_created: int = 0
    not_applicable: List[str] = field(default_factory=list)


@dataclass
class _EditContext:
    dataset: BoardDataset
    command: ModificationCommand
    rules: ScaledRules
    inches: bool


def apply_modification(
    dataset: BoardDataset,
    command,
    rules=None,
) -> ModificationResult:
    """Apply one command to ``dataset`` in place.

    Args:
        dataset: The board to edit; ``dataset.shapes`` is replaced.
        command: A ``ModificationCommand`` or its wire dict.
        rules: ``StencilRules``, a dict of overrides, or None for defaults.

    Returns:
        Counts of changed shapes and created panes. Unsupported actions
        change nothing and report zero modifications.
    """
    if isinstance(command, Mapping):
        command = ModificationCommand.from_dict(command)

    logger.info(
        "Applying %s to %s (value=%s%s, selectedOnly=%s)",
        command.action, command.target, command.value, command.unit, command.selected_only,
    )

    handler = _HANDLERS.get(command.action)
    if handler is None:
        logger.warning("Unsupported action %r; no shapes modified", command.action)
        return ModificationResult(shape_count=len(dataset.shapes))

    inches = is_inches(dataset)
    ctx = _EditContext(
        dataset=dataset,
        command=command,
        rules=resolve_rules(rules).scaled(unit_scale(dataset)),
        inches=inches,
    )

    result = ModificationResult()
    new_shapes: List[Shape] = []
    for shape in dataset.shapes:
        if not _is_candidate(shape, ctx):
            new_shapes.append(shape)
            continue

        replacement = handler(ctx, shape)
        if replacement is None:
            if command.action == "windowPane":
                result.not_applicable.append(shape.id)
            new_shapes.append(shape)
            continue

        if replacement[0] != shape:
            result.modified_count += 1
        result.panes_created += len(replacement) - 1
        new_shapes.extend(replacement)

    if command.action == "reset":
        new_shapes = _retire_orphan_fiducials(_retire_orphan_panes(new_shapes))

    dataset.shapes = new_shapes
    result.shape_count = len(new_shapes)
    logger.info(
        "Modified %d shapes, total now %d", result.modified_count, result.shape_count,
    )
    return result


def extract_fiducials(dataset: BoardDataset) -> List[Shape]:
    """Turn every live selected shape into a fiducial.

    The source shapes are retired and one deselected fiducial copy per source
    is appended to the dataset.
    """
    fiducials = []
    new_shapes = []
    for shape in dataset.shapes:
        if shape.selected and not shape.deleted:
            w, h = dataset.shape_size(shape)
            fiducials.append(Shape(
                id=f"{shape.id}{FIDUCIAL_SUFFIX}",
                kind=shape.kind,
                x=shape.x,
                y=shape.y,
                tool=shape.tool,
                width=w,
                height=h,
                points=shape.points,
                is_fiducial=True,
            ))
            new_shapes.append(shape.edited(w, h, deleted=True, edit_type="fiducial"))
        else:
            new_shapes.append(shape)
    dataset.shapes = new_shapes + fiducials
    logger.info("Extracted %d fiducials", len(fiducials))
    return fiducials


# ─── Candidate selection ────────────────────────────────────────────────────

def _is_candidate(shape: Shape, ctx: _EditContext) -> bool:
    command = ctx.command
    if command.selected_only and not shape.selected:
        return False

    if command.action == "reset":
        if shape.is_pane:
            return False
    elif command.action == "modifyFids":
        return shape.is_fiducial and not shape.deleted
    else:
        if shape.deleted:
            return False
        if shape.is_pane and (not command.include_panes or command.action == "windowPane"):
            return False

    return matches_target(command.target, shape, ctx.dataset, ctx.rules)


# ─── Action handlers ────────────────────────────────────────────────────────
# Each returns None when the shape is left untouched, otherwise a list whose
# first element replaces the shape and whose remaining elements are new panes.

def _resize(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    command = ctx.command
    w, h = ctx.dataset.shape_size(shape)
    shrink = command.action == "reduce"

    if command.unit in ("mm", "mil", "in"):
        delta = to_native(command.value, command.unit, ctx.inches)
        if not shrink:
            delta = -delta
        new_w = w - 2 * delta
        new_h = h - 2 * delta
    else:
        factor = 1 - command.value / 100 if shrink else 1 + command.value / 100
        new_w = w * factor
        new_h = h * factor

    return [shape.edited(
        w, h,
        modified_width=max(MIN_EDIT_SIZE, new_w),
        modified_height=max(MIN_EDIT_SIZE, new_h),
        edit_type="reduce",
    )]


def _corner_radius(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    command = ctx.command
    w, h = ctx.dataset.shape_size(shape)
    if command.unit in ("mm", "mil", "in"):
        radius = to_native(command.value, command.unit, ctx.inches)
    else:
        # Percent of the smaller side.
        radius = min(w, h) * command.value / 100
    radius = max(0.0, min(radius, min(w, h) / 2))
    return [shape.edited(w, h, corner_radius=radius, edit_type="cornerRadius")]


def _window_pane(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    if not is_paneable(shape):
        return None

    spec = ctx.command.window_pane or WindowPaneSpec()
    w, h = ctx.dataset.shape_size(shape)
    eff_w, eff_h = w, h
    if spec.reduction > 0:
        factor = 1 - spec.reduction / 100
        eff_w, eff_h = w * factor, h * factor

    web = ctx.rules.pane_web_width if spec.web_width is None else to_native(spec.web_width, spec.unit, ctx.inches)
    edge = ctx.rules.pane_edge_gap if spec.edge_gap is None else to_native(spec.edge_gap, spec.unit, ctx.inches)

    rects = tile_rectangle(
        shape.x, shape.y, eff_w, eff_h, spec.rows, spec.cols, web, edge,
        min_pane_size=min(eff_w, eff_h) * ctx.rules.min_pane_fraction,
    )
    if not rects:
        logger.info("Window pane not applicable to %s", shape.id)
        return None

    parent = shape.edited(
        w, h, deleted=True, replaced_by_panes=True, edit_type="windowPane",
    )
    return [parent] + make_panes(parent, rects)


def _delete(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    w, h = ctx.dataset.shape_size(shape)
    return [shape.edited(w, h, deleted=True, edit_type="delete")]


def _reset(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    return [shape.restored()]


def _modify_fiducial(ctx: _EditContext, shape: Shape) -> Optional[List[Shape]]:
    command = ctx.command
    if command.fid_size is None or command.fid_size <= 0:
        return None
    size = to_native(command.fid_size, command.fid_unit, ctx.inches)
    w, h = ctx.dataset.shape_size(shape)
    return [shape.edited(
        w, h,
        modified_width=size,
        modified_height=size,
        shape_type="rect" if command.fid_shape == "rect" else "circle",
        edit_type="modifyFids",
    )]


_HANDLERS: Dict[str, Callable[[_EditContext, Shape], Optional[List[Shape]]]] = {
    "reduce": _resize,
    "enlarge": _resize,
    "scale": _resize,
    "cornerRadius": _corner_radius,
    "windowPane": _window_pane,
    "delete": _delete,
    "reset": _reset,
    "modifyFids": _modify_fiducial,
}


# ─── Helpers ────────────────────────────────────────────────────────────────

def make_panes(parent: Shape, rects, corner_radius: Optional[float] = None) -> List[Shape]:
    """Pane shapes for a retired parent, in tiling order."""
    panes = []
    for i, rect in enumerate(rects):
        radius = None
        if corner_radius is not None:
            radius = min(corner_radius, min(rect.width, rect.height) / 4)
        panes.append(Shape(
            id=f"{parent.id}-pane-{i}",
            kind=ShapeKind.PANE,
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            corner_radius=radius,
            modified=True,
            edit_type="windowPane",
            parent_id=parent.id,
            parent_x=parent.x,
            parent_y=parent.y,
            parent_original_width=parent.original_width,
            parent_original_height=parent.original_height,
        ))
    return panes


def _retire_orphan_panes(shapes: List[Shape]) -> List[Shape]:
    """Retire live panes whose parent is no longer replaced by panes."""
    paned_parents = {s.id for s in shapes if s.replaced_by_panes}
    out = []
    for shape in shapes:
        if shape.is_pane and not shape.deleted and shape.parent_id not in paned_parents:
            w, h = shape.width, shape.height
            shape = shape.edited(w, h, deleted=True)
        out.append(shape)
    return out


def _retire_orphan_fiducials(shapes: List[Shape]) -> List[Shape]:
    """Retire live fiducials whose source shape is live again."""
    live_ids = {s.id for s in shapes if not s.deleted and not s.is_fiducial}
    out = []
    for shape in shapes:
        if (
            shape.is_fiducial
            and not shape.deleted
            and shape.id.endswith(FIDUCIAL_SUFFIX)
            and shape.id[:-len(FIDUCIAL_SUFFIX)] in live_ids
        ):
            w, h = shape.width, shape.height
            shape = shape.edited(w, h, deleted=True)
        out.append(shape)
    return out


def is_paneable(shape: Shape) -> bool:
    """Pads, and fills whose outline is (nearly) its bounding rectangle."""
    if shape.is_fiducial or shape.is_pane:
        return False
    if shape.kind is ShapeKind.PAD:
        return True
    return shape.kind is ShapeKind.FILL and is_rectangular(shape.points)


def _number(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key)
    if value is None or value == "":
        return float(default)
    if isinstance(value, bool):
        raise CommandError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise CommandError(f"{key} must be a number, got {value!r}")


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
