"""
Gerber paste-layer ingestion.

Two stages:

  gerber_events(text)   Gerber text -> plotter-style event records, using
                        gerbonara to parse the RS-274X source
  GerberIngest          event records -> BoardDataset

Events are plain dicts (``shape``, ``pad``, ``fill``, ``stroke``, ``size``)
so datasets can also be built from any other plotter that emits the same
records. Ingestion is single pass and tolerant: a record with missing
geometry falls back to 0.01 native units, and a record that cannot be
interpreted at all is logged and skipped.
"""
import logging
import math
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from gerbonara import GerberFile
from gerbonara import apertures as apt
from gerbonara import graphic_objects as go
from gerbonara.utils import MM, Inch

from shape_store import FALLBACK_SIZE, Bounds, BoardDataset, Shape, ShapeKind, Tool, ToolKind

logger = logging.getLogger(__name__)

# Consecutive fill points closer than this are merged.
DUPLICATE_POINT_TOLERANCE = 1e-4


class GerberIngest:
    """Accumulates plotter events into a ``BoardDataset``.

    Usage:
        ingest = GerberIngest()
        for event in events:
            ingest.feed(event)
        dataset = ingest.finish()
    """

    def __init__(self, units: Optional[str] = None):
        self.tools: Dict[str, Tool] = {}
        self.shapes: List[Shape] = []
        self.bounds: Optional[Bounds] = None
        self.units = units
        self._next_id = 0
        self.skipped = 0

    def feed(self, event: Mapping[str, Any]) -> None:
        kind = event.get("type") if isinstance(event, Mapping) else None
        handler = {
            "shape": self._on_shape,
            "pad": self._on_pad,
            "fill": self._on_fill,
            "stroke": self._on_stroke,
            "size": self._on_size,
        }.get(kind)
        if handler is None:
            return
        try:
            handler(event)
        except (TypeError, ValueError, KeyError, IndexError) as e:
            self.skipped += 1
            logger.warning("Skipping malformed %s event: %s", kind, e)

    def finish(self) -> BoardDataset:
        dataset = BoardDataset(tools=self.tools, shapes=self.shapes, units=self.units)
        dataset.bounds = self.bounds or dataset.compute_bounds() or Bounds(0.0, 0.0, 1.0, 1.0)
        logger.info(
            "Parsed %d shapes, %d tools (%d events skipped)",
            len(self.shapes), len(self.tools), self.skipped,
        )
        return dataset

    # ─── Event handlers ──────────────────────────────────────────────────

    def _new_id(self, prefix: str) -> str:
        shape_id = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return shape_id

    def _on_shape(self, event):
        primitives = event.get("shape") or []
        if not primitives:
            return
        first = primitives[0]
        tool_id = str(event.get("tool"))
        kind = first.get("type") or "rect"

        if kind == "circle":
            d = _num(first.get("r"), FALLBACK_SIZE / 2) * 2
            tool = Tool(tool_id, ToolKind.CIRCLE, d, d)
        elif kind == "poly":
            vertices = tuple((float(x), float(y)) for x, y in first.get("points") or [])
            if vertices:
                xs = [v[0] for v in vertices]
                ys = [v[1] for v in vertices]
                tool = Tool(
                    tool_id, ToolKind.POLYGON,
                    max(xs) - min(xs) or FALLBACK_SIZE,
                    max(ys) - min(ys) or FALLBACK_SIZE,
                    vertices=vertices,
                    centroid=(sum(xs) / len(xs), sum(ys) / len(ys)),
                )
            else:
                tool = Tool(tool_id, ToolKind.POLYGON)
        else:
            w = _num(first.get("width"), FALLBACK_SIZE)
            h = _num(first.get("height"), w)
            tool = Tool(tool_id, ToolKind.RECT, w, h)
        self.tools[tool_id] = tool

    def _on_pad(self, event):
        tool_id = str(event.get("tool"))
        tool = self.tools.get(tool_id) or Tool(tool_id)
        self.shapes.append(Shape(
            id=self._new_id("pad"),
            kind=ShapeKind.PAD,
            tool=tool_id,
            x=_num(event.get("x"), 0.0),
            y=_num(event.get("y"), 0.0),
            width=tool.width,
            height=tool.height,
        ))

    def _on_fill(self, event):
        path = event.get("path") or []
        raw = [(float(seg["start"][0]), float(seg["start"][1])) for seg in path if seg.get("start")]
        points: List[Tuple[float, float]] = []
        for p in raw:
            if points and (
                abs(p[0] - points[-1][0]) <= DUPLICATE_POINT_TOLERANCE
                and abs(p[1] - points[-1][1]) <= DUPLICATE_POINT_TOLERANCE
            ):
                continue
            points.append(p)
        if len(points) < 3:
            logger.debug("Dropping fill with %d distinct points", len(points))
            return

        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        self.shapes.append(Shape(
            id=self._new_id("fill"),
            kind=ShapeKind.FILL,
            x=(min(xs) + max(xs)) / 2,
            y=(min(ys) + max(ys)) / 2,
            width=max(xs) - min(xs),
            height=max(ys) - min(ys),
            points=tuple(points),
        ))

    def _on_stroke(self, event):
        start, end = event.get("start"), event.get("end")
        if not start or not end:
            return
        x1, y1 = float(start[0]), float(start[1])
        x2, y2 = float(end[0]), float(end[1])
        tool = event.get("tool")
        self.shapes.append(Shape(
            id=self._new_id("stroke"),
            kind=ShapeKind.STROKE,
            tool=str(tool) if tool is not None else None,
            x1=x1, y1=y1, x2=x2, y2=y2,
            x=(x1 + x2) / 2,
            y=(y1 + y2) / 2,
        ))

    def _on_size(self, event):
        box = event.get("box")
        if box and len(box) == 4:
            self.bounds = Bounds(*(float(v) for v in box))
        if event.get("units") and self.units is None:
            self.units = str(event["units"])


def ingest_events(events: Iterable[Mapping[str, Any]], units: Optional[str] = None) -> BoardDataset:
    """Build a dataset from an ordered event sequence."""
    ingest = GerberIngest(units=units)
    for event in events:
        ingest.feed(event)
    return ingest.finish()


# ─── gerbonara event source ─────────────────────────────────────────────────


def gerber_events(text: str) -> Iterator[Dict[str, Any]]:
    """Parse Gerber text with gerbonara and yield plotter events.

    Coordinates are expressed in the file's declared unit (inches when the
    file declares none). Clear-polarity objects are skipped; arcs are
    reduced to their chord.
    """
    gf = GerberFile.from_string(text)
    settings_unit = getattr(gf.import_settings, "unit", None) if gf.import_settings else None
    unit = settings_unit or Inch
    unit_tag = "mm" if unit == MM else "in"

    tool_ids: Dict[int, str] = {}

    def tool_for(aperture) -> Tuple[str, Optional[Dict[str, Any]]]:
        key = id(aperture)
        if key in tool_ids:
            return tool_ids[key], None
        number = getattr(aperture, "original_number", None)
        tool_id = str(number) if number is not None else str(10 + len(tool_ids))
        tool_ids[key] = tool_id
        return tool_id, {"type": "shape", "tool": tool_id, "shape": [_aperture_primitive(aperture, unit)]}

    for obj in gf.objects:
        if not getattr(obj, "polarity_dark", True):
            continue
        conv = _converter(getattr(obj, "unit", None), unit)

        if isinstance(obj, go.Flash):
            tool_id, shape_event = tool_for(obj.aperture)
            if shape_event:
                yield shape_event
            yield {"type": "pad", "tool": tool_id, "x": conv(obj.x), "y": conv(obj.y)}

        elif isinstance(obj, go.Region):
            outline = [(conv(x), conv(y)) for x, y in obj.outline]
            if outline:
                path = [
                    {"type": "line", "start": list(a), "end": list(b)}
                    for a, b in zip(outline, outline[1:] + outline[:1])
                ]
                yield {"type": "fill", "path": path}

        elif isinstance(obj, (go.Line, go.Arc)):
            tool_id, shape_event = tool_for(obj.aperture)
            if shape_event:
                yield shape_event
            yield {
                "type": "stroke",
                "tool": tool_id,
                "start": [conv(obj.x1), conv(obj.y1)],
                "end": [conv(obj.x2), conv(obj.y2)],
            }

    (min_x, min_y), (max_x, max_y) = gf.bounding_box(unit, default=((0, 0), (0, 0)))
    if max_x > min_x or max_y > min_y:
        yield {"type": "size", "box": [min_x, min_y, max_x, max_y], "units": unit_tag}
    else:
        yield {"type": "size", "units": unit_tag}


def parse_gerber(text: str) -> BoardDataset:
    """Gerber text to dataset (gerbonara parse plus event ingestion)."""
    return ingest_events(gerber_events(text))


def _aperture_primitive(aperture, unit) -> Dict[str, Any]:
    conv = _converter(getattr(aperture, "unit", None), unit)
    if isinstance(aperture, apt.CircleAperture):
        return {"type": "circle", "r": conv(aperture.diameter) / 2}
    if isinstance(aperture, (apt.RectangleAperture, apt.ObroundAperture)):
        return {"type": "rect", "width": conv(aperture.w), "height": conv(aperture.h)}
    if isinstance(aperture, apt.PolygonAperture):
        # Regular polygon circumscribed by the given diameter; rotation is radians.
        r = conv(aperture.diameter) / 2
        n = max(int(aperture.n_vertices), 3)
        rot = aperture.rotation or 0.0
        return {
            "type": "poly",
            "points": [
                [r * math.cos(rot + 2 * math.pi * i / n), r * math.sin(rot + 2 * math.pi * i / n)]
                for i in range(n)
            ],
        }
    logger.warning("Unsupported aperture %s, using fallback size", type(aperture).__name__)
    return {"type": "rect"}


def _converter(src_unit, dst_unit):
    if src_unit is None or src_unit == dst_unit:
        return lambda v: float(v)
    return lambda v: float(dst_unit.convert_from(src_unit, v))


def _num(value: Any, default: float) -> float:
    if value is None:
        return default
    return float(value)
