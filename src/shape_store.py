"""
In-memory entity model for a stencil paste layer.

A ``BoardDataset`` holds the aperture table (``Tool``), the ordered shape
sequence (``Shape``), a bounding box and a unit tag. Shapes are frozen; every
edit goes through ``Shape.edited`` which records the pre-edit size exactly
once in ``original_width/height`` and writes new sizes only to
``modified_width/height``.

The wire format (``to_dict`` / ``from_dict``) uses the camelCase keys the
editing front-end exchanges with the service.
"""
import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

Point2D = Tuple[float, float]

# Geometry used when an ingest record or tool is missing its size.
FALLBACK_SIZE = 0.01
# Smallest width/height an edit may produce, in native units.
MIN_EDIT_SIZE = 0.001


class DatasetError(ValueError):
    """Structurally unusable dataset payload."""
    pass


class ToolKind(Enum):
    """Aperture geometry kinds."""
    CIRCLE = "circle"
    RECT = "rect"
    POLYGON = "polygon"


class ShapeKind(Enum):
    """Kinds of stencil shapes."""
    PAD = "pad"
    FILL = "fill"
    STROKE = "stroke"
    PANE = "pane"


@dataclass(frozen=True)
class Tool:
    """An aperture definition, immutable once ingested."""
    tool_id: str
    kind: ToolKind = ToolKind.RECT
    width: float = FALLBACK_SIZE
    height: float = FALLBACK_SIZE
    vertices: Optional[Tuple[Point2D, ...]] = None
    centroid: Optional[Point2D] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": self.kind.value,
            "width": self.width,
            "height": self.height,
        }
        if self.vertices is not None:
            out["vertices"] = [list(p) for p in self.vertices]
        if self.centroid is not None:
            out["centroid"] = list(self.centroid)
        return out

    @classmethod
    def from_dict(cls, tool_id: str, data: Mapping[str, Any]) -> "Tool":
        kind = _tool_kind(data.get("type"))
        width = _float_or(data.get("width"), FALLBACK_SIZE)
        height = _float_or(data.get("height"), width)
        vertices = data.get("vertices")
        centroid = data.get("centroid")
        return cls(
            tool_id=str(tool_id),
            kind=kind,
            width=width,
            height=height,
            vertices=tuple((float(x), float(y)) for x, y in vertices) if vertices else None,
            centroid=(float(centroid[0]), float(centroid[1])) if centroid else None,
        )


@dataclass(frozen=True)
class Shape:
    """A flash, fill, stroke or derived window pane.

    Pane shapes refer back to their source through ``parent_id`` plus cached
    parent position and original size; the parent is never reached through
    the pane.
    """
    id: str
    kind: ShapeKind
    x: float = 0.0
    y: float = 0.0
    tool: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    points: Optional[Tuple[Point2D, ...]] = None
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None

    # Edit state
    original_width: Optional[float] = None
    original_height: Optional[float] = None
    modified_width: Optional[float] = None
    modified_height: Optional[float] = None
    corner_radius: Optional[float] = None
    modified: bool = False
    edit_type: Optional[str] = None
    selected: bool = False
    deleted: bool = False
    replaced_by_panes: bool = False
    is_fiducial: bool = False
    convert_to_oblong: bool = False
    shape_type: Optional[str] = None

    # Pane back-references
    parent_id: Optional[str] = None
    parent_x: Optional[float] = None
    parent_y: Optional[float] = None
    parent_original_width: Optional[float] = None
    parent_original_height: Optional[float] = None

    @property
    def is_pane(self) -> bool:
        return self.kind is ShapeKind.PANE

    @property
    def is_live(self) -> bool:
        return not self.deleted

    def edited(self, width: float, height: float, **changes) -> "Shape":
        """Return a copy with ``changes`` applied and ``modified`` set.

        ``width``/``height`` are the shape's effective size before this edit;
        they become ``original_width/height`` only if no original was
        recorded yet.
        """
        if self.original_width is None:
            changes.setdefault("original_width", width)
            changes.setdefault("original_height", height)
        else:
            changes.pop("original_width", None)
            changes.pop("original_height", None)
        changes.setdefault("modified", True)
        return replace(self, **changes)

    def restored(self) -> "Shape":
        """Return the shape as it was ingested (selection is kept)."""
        return replace(
            self,
            original_width=None,
            original_height=None,
            modified_width=None,
            modified_height=None,
            corner_radius=None,
            modified=False,
            edit_type=None,
            deleted=False,
            replaced_by_panes=False,
            convert_to_oblong=False,
            shape_type=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            key = _SHAPE_WIRE_KEYS[f.name]
            if f.name == "kind":
                out[key] = value.value
            elif f.name == "points":
                if value is not None:
                    out[key] = [{"x": p[0], "y": p[1]} for p in value]
            elif isinstance(value, bool):
                if value:
                    out[key] = True
            elif value is not None:
                out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Shape":
        kwargs: Dict[str, Any] = {}
        for name, key in _SHAPE_WIRE_KEYS.items():
            if key not in data or data[key] is None:
                continue
            value = data[key]
            if name == "kind":
                kwargs[name] = _shape_kind(value)
            elif name == "points":
                kwargs[name] = tuple(_point(p) for p in value)
            elif name in _BOOL_FIELDS:
                kwargs[name] = bool(value)
            elif name in _STR_FIELDS:
                kwargs[name] = str(value)
            else:
                kwargs[name] = float(value)
        if "id" not in kwargs:
            raise DatasetError(f"Shape record without id: {dict(data)!r}")
        kwargs.setdefault("kind", ShapeKind.PAD)
        return cls(**kwargs)


@dataclass
class Bounds:
    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 1.0
    max_y: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return {"minX": self.min_x, "minY": self.min_y, "maxX": self.max_x, "maxY": self.max_y}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Bounds":
        return cls(
            min_x=float(data.get("minX", 0.0)),
            min_y=float(data.get("minY", 0.0)),
            max_x=float(data.get("maxX", 1.0)),
            max_y=float(data.get("maxY", 1.0)),
        )


@dataclass
class BoardDataset:
    """Tool table, ordered shapes, bounds and unit tag of one paste layer."""
    tools: Dict[str, Tool] = field(default_factory=dict)
    shapes: List[Shape] = field(default_factory=list)
    bounds: Optional[Bounds] = None
    units: Optional[str] = None

    def tool_for(self, shape: Shape) -> Optional[Tool]:
        if shape.tool is None:
            return None
        return self.tools.get(shape.tool)

    def tool_kind(self, shape: Shape) -> ToolKind:
        tool = self.tool_for(shape)
        return tool.kind if tool is not None else ToolKind.RECT

    def shape_size(self, shape: Shape) -> Tuple[float, float]:
        """Effective (width, height): modified, then own, then tool, then fallback.

        Height falls back to width when nothing gives an explicit height.
        """
        tool = self.tool_for(shape)
        width = _first(
            shape.modified_width,
            shape.width,
            tool.width if tool is not None else None,
            FALLBACK_SIZE,
        )
        height = _first(
            shape.modified_height,
            shape.height,
            tool.height if tool is not None else None,
            width,
        )
        return width, height

    def ingested_size(self, shape: Shape) -> Tuple[float, float]:
        """Size ignoring edits (own size, then tool, then fallback)."""
        return self.shape_size(replace(shape, modified_width=None, modified_height=None))

    def live_shapes(self) -> List[Shape]:
        return [s for s in self.shapes if not s.deleted]

    def find(self, shape_id: str) -> Optional[Shape]:
        for shape in self.shapes:
            if shape.id == shape_id:
                return shape
        return None

    def panes_of(self, parent_id: str) -> List[Shape]:
        return [s for s in self.shapes if s.is_pane and s.parent_id == parent_id]

    def compute_bounds(self) -> Optional[Bounds]:
        """Bounding box of all shapes with a position, or None."""
        min_x = min_y = float("inf")
        max_x = max_y = float("-inf")
        for shape in self.shapes:
            w = shape.width if shape.width is not None else FALLBACK_SIZE
            h = shape.height if shape.height is not None else FALLBACK_SIZE
            min_x = min(min_x, shape.x - w / 2)
            max_x = max(max_x, shape.x + w / 2)
            min_y = min(min_y, shape.y - h / 2)
            max_y = max(max_y, shape.y + h / 2)
        if min_x == float("inf"):
            return None
        return Bounds(min_x, min_y, max_x, max_y)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "tools": {tid: tool.to_dict() for tid, tool in self.tools.items()},
            "shapes": [s.to_dict() for s in self.shapes],
            "bounds": self.bounds.to_dict() if self.bounds is not None else None,
        }
        if self.units is not None:
            out["units"] = self.units
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "BoardDataset":
        """Rebuild a dataset from its wire form.

        Raises:
            DatasetError: if the payload is not a mapping or carries neither a
                tool table nor a shape list.
        """
        if not isinstance(data, Mapping):
            raise DatasetError("Dataset payload must be an object")
        if data.get("tools") is None and data.get("shapes") is None:
            raise DatasetError("Dataset has no tool table and no shapes")
        tools = {
            str(tid): Tool.from_dict(str(tid), tdata)
            for tid, tdata in (data.get("tools") or {}).items()
        }
        shapes = [Shape.from_dict(s) for s in (data.get("shapes") or [])]
        bounds = data.get("bounds")
        return cls(
            tools=tools,
            shapes=shapes,
            bounds=Bounds.from_dict(bounds) if bounds else None,
            units=data.get("units"),
        )


# ─── Internal helpers ────────────────────────────────────────────────────────

_SHAPE_WIRE_KEYS = {
    "id": "id",
    "kind": "type",
    "x": "x",
    "y": "y",
    "tool": "tool",
    "width": "width",
    "height": "height",
    "points": "points",
    "x1": "x1",
    "y1": "y1",
    "x2": "x2",
    "y2": "y2",
    "original_width": "originalWidth",
    "original_height": "originalHeight",
    "modified_width": "modifiedWidth",
    "modified_height": "modifiedHeight",
    "corner_radius": "cornerRadius",
    "modified": "modified",
    "edit_type": "editType",
    "selected": "selected",
    "deleted": "deleted",
    "replaced_by_panes": "replacedByPanes",
    "is_fiducial": "isFiducial",
    "convert_to_oblong": "convertToOblong",
    "shape_type": "shapeType",
    "parent_id": "parentId",
    "parent_x": "parentX",
    "parent_y": "parentY",
    "parent_original_width": "parentOriginalWidth",
    "parent_original_height": "parentOriginalHeight",
}

_BOOL_FIELDS = {
    "modified", "selected", "deleted", "replaced_by_panes",
    "is_fiducial", "convert_to_oblong",
}
_STR_FIELDS = {"id", "tool", "edit_type", "shape_type", "parent_id"}


def _first(*values: Optional[float]) -> float:
    for value in values:
        if value is not None:
            return value
    return FALLBACK_SIZE


def _float_or(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _point(p: Any) -> Point2D:
    if isinstance(p, Mapping):
        return (float(p.get("x", 0.0)), float(p.get("y", 0.0)))
    return (float(p[0]), float(p[1]))


def _tool_kind(value: Any) -> ToolKind:
    if value in ("poly", "polygon"):
        return ToolKind.POLYGON
    if value == "circle":
        return ToolKind.CIRCLE
    return ToolKind.RECT


def _shape_kind(value: Any) -> ShapeKind:
    try:
        return ShapeKind(value)
    except ValueError:
        logger.warning("Unknown shape type %r, treating as pad", value)
        return ShapeKind.PAD
