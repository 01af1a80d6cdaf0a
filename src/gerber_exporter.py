"""
Gerber text encoders for edited stencil layers.

Two dialects share one aperture planner:

  export_gerber   RS-274X in inches, 3.6 format, coordinates x 10^6
  export_machine  millimetre dialect for stencil cutters, 4.3 format,
                  coordinates x 10^3, tool select before every flash, job
                  suffix ``.1`` (cut) or ``.5`` (engrave)

Only live shapes are written. Pads and fiducials are flashed grouped by
aperture, window panes and fills become G36/G37 regions, strokes are drawn
with a circular aperture.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from shapely import affinity
from shapely.geometry import Polygon

from pad_classifier import PadMetrics, is_fine_pitch
from shape_store import BoardDataset, Shape, ShapeKind, ToolKind
from stencil_rules import ScaledRules, resolve_rules
from unit_model import is_inches, native_to_inches, native_to_mm, unit_scale

logger = logging.getLogger(__name__)

FIRST_APERTURE_CODE = 10

STANDARD_PRECISION = 6
STANDARD_QUANT = 1_000_000
MACHINE_PRECISION = 5
MACHINE_QUANT = 1_000

MACHINE_MODES = {"cut": 1, "engrave": 5}


# ─── Aperture table ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Aperture:
    code: int
    kind: str  # "C", "R" or "O"
    width: float
    height: float

    def definition(self, precision: int) -> str:
        if self.kind == "C":
            return f"%ADD{self.code}C,{self.width:.{precision}f}*%"
        return (
            f"%ADD{self.code}{self.kind},"
            f"{self.width:.{precision}f}X{self.height:.{precision}f}*%"
        )


class ApertureTable:
    """Deduplicated apertures keyed by (kind, width, height) at fixed precision.

    Codes are handed out from D10 in first-seen order.
    """

    def __init__(self, precision: int):
        self.precision = precision
        self._by_key: Dict[Tuple[str, str, str], Aperture] = {}

    def lookup(self, kind: str, width: float, height: float) -> Aperture:
        if kind == "C":
            height = width
        key = (kind, f"{width:.{self.precision}f}", f"{height:.{self.precision}f}")
        aperture = self._by_key.get(key)
        if aperture is None:
            aperture = Aperture(
                code=FIRST_APERTURE_CODE + len(self._by_key),
                kind=kind,
                width=width,
                height=height,
            )
            self._by_key[key] = aperture
        return aperture

    def __iter__(self) -> Iterator[Aperture]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)


# ─── Planning ────────────────────────────────────────────────────────────────


@dataclass
class _Plan:
    table: ApertureTable
    flashes: Dict[int, List[Tuple[float, float]]] = field(default_factory=dict)
    strokes: List[Tuple[int, Tuple[float, float], Tuple[float, float]]] = field(default_factory=list)
    regions: List[List[Tuple[float, float]]] = field(default_factory=list)


def aperture_kind(
    shape: Shape,
    dataset: BoardDataset,
    rules: ScaledRules,
) -> Tuple[str, float, float]:
    """Final aperture (kind, width, height) of a flashed shape, in native units."""
    w, h = dataset.shape_size(shape)
    if shape.is_fiducial:
        if shape.shape_type == "rect":
            return "R", w, h
        return "C", w, w

    tool_kind = dataset.tool_kind(shape)
    if tool_kind is ToolKind.CIRCLE:
        return "C", w, w

    if shape.convert_to_oblong or is_fine_pitch(PadMetrics(w, h), tool_kind, rules):
        if w <= h:
            w = max(w, rules.fine_pitch_min_width)
        else:
            h = max(h, rules.fine_pitch_min_width)
        return "O", w, h
    return "R", w, h


def _plan(
    dataset: BoardDataset,
    rules: ScaledRules,
    to_out: Callable[[float], float],
    precision: int,
    circles_as_squares: bool = False,
) -> _Plan:
    plan = _Plan(table=ApertureTable(precision))

    for shape in dataset.live_shapes():
        if shape.is_pane:
            plan.regions.append(_pane_outline(shape, dataset, to_out))
        elif shape.kind is ShapeKind.FILL and shape.points and not shape.is_fiducial:
            outline = _fill_outline(shape, dataset, to_out)
            if outline:
                plan.regions.append(outline)
        elif shape.kind is ShapeKind.STROKE:
            width, _ = dataset.shape_size(shape)
            aperture = plan.table.lookup("C", to_out(width), to_out(width))
            plan.strokes.append((
                aperture.code,
                (to_out(_coord(shape.x1, shape.x)), to_out(_coord(shape.y1, shape.y))),
                (to_out(_coord(shape.x2, shape.x)), to_out(_coord(shape.y2, shape.y))),
            ))
        else:
            kind, w, h = aperture_kind(shape, dataset, rules)
            if kind == "C" and circles_as_squares and not shape.is_fiducial:
                kind = "R"
            aperture = plan.table.lookup(kind, to_out(w), to_out(h))
            plan.flashes.setdefault(aperture.code, []).append((to_out(shape.x), to_out(shape.y)))

    logger.debug(
        "Planned %d apertures, %d regions, %d strokes",
        len(plan.table), len(plan.regions), len(plan.strokes),
    )
    return plan


def _pane_outline(shape, dataset, to_out) -> List[Tuple[float, float]]:
    w, h = dataset.shape_size(shape)
    x0, y0 = shape.x - w / 2, shape.y - h / 2
    x1, y1 = shape.x + w / 2, shape.y + h / 2
    return [
        (to_out(x0), to_out(y0)),
        (to_out(x1), to_out(y0)),
        (to_out(x1), to_out(y1)),
        (to_out(x0), to_out(y1)),
        (to_out(x0), to_out(y0)),
    ]


def _fill_outline(shape, dataset, to_out) -> List[Tuple[float, float]]:
    if len(shape.points) < 3:
        return []
    polygon = Polygon(shape.points)
    if shape.modified_width is not None or shape.modified_height is not None:
        w0, h0 = dataset.ingested_size(shape)
        w1, h1 = dataset.shape_size(shape)
        polygon = affinity.scale(
            polygon,
            xfact=w1 / w0 if w0 else 1.0,
            yfact=h1 / h0 if h0 else 1.0,
            origin=(shape.x, shape.y),
        )
    return [(to_out(x), to_out(y)) for x, y in polygon.exterior.coords]


def _coord(value: Optional[float], default: float) -> float:
    return default if value is None else value


def _quantize(value: float, quant: int) -> int:
    return int(math.floor(value * quant + 0.5))


# ─── Encoders ────────────────────────────────────────────────────────────────


def export_gerber(dataset: BoardDataset, rules=None) -> str:
    """Encode the live shapes of ``dataset`` as an inch RS-274X paste layer.

    Args:
        dataset: Board to encode (not modified).
        rules: ``StencilRules``, overrides dict, or None for defaults.

    Returns:
        Gerber text, newline separated, ending in ``M02*``.
    """
    scaled = resolve_rules(rules).scaled(unit_scale(dataset))
    inches = is_inches(dataset)
    plan = _plan(
        dataset, scaled,
        to_out=lambda v: native_to_inches(v, inches),
        precision=STANDARD_PRECISION,
    )

    def xy(point) -> str:
        return f"X{_quantize(point[0], STANDARD_QUANT)}Y{_quantize(point[1], STANDARD_QUANT)}"

    lines = ["G04 Stencil paste layer*", "%FSLAX36Y36*%", "%MOIN*%", "%LPD*%"]
    lines.extend(a.definition(STANDARD_PRECISION) for a in plan.table)

    current = None
    for code, points in plan.flashes.items():
        if code != current:
            lines.append(f"D{code}*")
            current = code
        lines.extend(f"{xy(p)}D03*" for p in points)

    for code, start, end in plan.strokes:
        if code != current:
            lines.append(f"D{code}*")
            current = code
        lines.append(f"{xy(start)}D02*")
        lines.append(f"{xy(end)}D01*")

    if plan.regions:
        lines.append("G01*")
    for outline in plan.regions:
        lines.append("G36*")
        lines.append(f"{xy(outline[0])}D02*")
        lines.extend(f"{xy(p)}D01*" for p in outline[1:])
        lines.append("G37*")

    lines.append("M02*")
    logger.info(
        "Exported Gerber: %d apertures, %d flashes, %d regions",
        len(plan.table), sum(len(p) for p in plan.flashes.values()), len(plan.regions),
    )
    return "\n".join(lines)


def export_machine(
    dataset: BoardDataset,
    mode: str = "cut",
    job: str = "STENCIL",
    rules=None,
) -> str:
    """Encode ``dataset`` in the millimetre cutter dialect.

    ``mode`` is ``cut`` (circular pads become square cuts) or ``engrave``
    (circles kept). Fiducials stay circular in both modes.

    Raises:
        ValueError: for an unknown ``mode``.
    """
    if mode not in MACHINE_MODES:
        raise ValueError(f"Unknown machine mode {mode!r}, expected one of {sorted(MACHINE_MODES)}")
    scaled = resolve_rules(rules).scaled(unit_scale(dataset))
    inches = is_inches(dataset)
    plan = _plan(
        dataset, scaled,
        to_out=lambda v: native_to_mm(v, inches),
        precision=MACHINE_PRECISION,
        circles_as_squares=(mode == "cut"),
    )

    def xy(point) -> str:
        return f"X{_quantize(point[0], MACHINE_QUANT)}Y{_quantize(point[1], MACHINE_QUANT)}"

    lines = [f"G04 JOB {job}.{MACHINE_MODES[mode]}*", "%FSLAX43Y43*%", "%MOMM*%", "%LPD*%"]
    lines.extend(a.definition(MACHINE_PRECISION) for a in plan.table)

    for code, points in plan.flashes.items():
        for point in points:
            lines.append(f"G54D{code}*")
            lines.append(f"G1{xy(point)}D3*")

    for code, start, end in plan.strokes:
        lines.append(f"G54D{code}*")
        lines.append(f"G1{xy(start)}D2*")
        lines.append(f"G1{xy(end)}D1*")

    for outline in plan.regions:
        lines.append("G36*")
        lines.append(f"G1{xy(outline[0])}D2*")
        lines.extend(f"G1{xy(p)}D1*" for p in outline[1:])
        lines.append("G37*")

    lines.append("M02*")
    logger.info("Exported machine file (%s): %d apertures", mode, len(plan.table))
    return "\n".join(lines)
