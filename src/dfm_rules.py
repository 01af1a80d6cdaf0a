"""
Design-for-Manufacturing (DFM) analysis of stencil paste apertures.

Scans a board dataset read-only and reports printability issues (apertures
below the printable width, fine-pitch leads, large thermal pads, missing
corner radii, untreated pads, datasheet deviations). Each issue carries a
ready-to-apply command in the modification-engine schema; nothing here
mutates the dataset.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from modification_engine import is_paneable
from pad_classifier import PadCategory, PadMetrics, classify_shape
from shape_store import BoardDataset, ShapeKind
from stencil_rules import ScaledRules, resolve_rules
from unit_model import is_inches, native_to_mils, to_native, unit_scale

logger = logging.getLogger(__name__)


@dataclass
class DFMIssue:
    """A single DFM finding with its suggested command."""

    rule_name: str
    severity: str  # "info" or "warning"
    title: str
    description: str
    action: Optional[Dict[str, Any]] = None
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule_name,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "count": self.count,
        }


@dataclass
class ComponentDatasheet:
    """Recommended aperture and pitch from a component datasheet."""

    part_number: Optional[str] = None
    recommended_width: Optional[float] = None
    recommended_height: Optional[float] = None
    pitch: Optional[float] = None
    unit: str = "mm"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComponentDatasheet":
        aperture = data.get("recommendedAperture") or {}
        return cls(
            part_number=data.get("partNumber"),
            recommended_width=_opt_float(aperture.get("width", data.get("recommendedWidth"))),
            recommended_height=_opt_float(aperture.get("height", data.get("recommendedHeight"))),
            pitch=_opt_float(data.get("pitch")),
            unit=str(aperture.get("unit") or data.get("unit") or "mm"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "partNumber": self.part_number,
            "recommendedAperture": {
                "width": self.recommended_width,
                "height": self.recommended_height,
                "unit": self.unit,
            },
            "pitch": self.pitch,
            "unit": self.unit,
        }


@dataclass
class DFMReport:
    issues: List[DFMIssue] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    component_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary,
            "componentInfo": self.component_info,
        }


def analyze_dataset(
    dataset: BoardDataset,
    datasheet=None,
    rules=None,
) -> DFMReport:
    """Run all DFM checks on a dataset.

    Args:
        dataset: The board to scan (not modified).
        datasheet: Optional ``ComponentDatasheet`` or its wire dict.
        rules: ``StencilRules``, overrides dict, or None.

    Returns:
        Report with issues, summary statistics and echoed component info.
    """
    base_rules = resolve_rules(rules)
    scaled = base_rules.scaled(unit_scale(dataset))
    inches = is_inches(dataset)
    if isinstance(datasheet, Mapping):
        datasheet = ComponentDatasheet.from_dict(datasheet)

    pads = [s for s in dataset.live_shapes() if s.kind is not ShapeKind.STROKE]
    summary = board_stats(dataset, scaled)

    issues: List[DFMIssue] = []
    issues.extend(_check_min_width(dataset, pads, scaled))
    issues.extend(_check_fine_pitch(dataset, pads, scaled))
    issues.extend(_check_large_pads(dataset, pads, scaled))
    issues.extend(_check_corner_radius(pads, summary, scaled, base_rules.corner_radius_mil))
    issues.extend(_check_unmodified(pads))
    if datasheet is not None:
        issues.extend(_check_datasheet(dataset, pads, datasheet, scaled, inches, base_rules))

    logger.info("DFM analysis: %d issues on %d pads", len(issues), len(pads))
    return DFMReport(
        issues=issues,
        summary=summary,
        component_info=datasheet.to_dict() if datasheet is not None else None,
    )


def board_stats(dataset: BoardDataset, rules: Optional[ScaledRules] = None) -> Dict[str, Any]:
    """Summary statistics over live shapes (sizes in native units)."""
    if rules is None:
        rules = resolve_rules(None).scaled(unit_scale(dataset))
    live = dataset.live_shapes()
    sized = [s for s in live if s.kind is not ShapeKind.STROKE]

    type_histogram: Dict[str, int] = {}
    for shape in live:
        type_histogram[shape.kind.value] = type_histogram.get(shape.kind.value, 0) + 1

    category_histogram: Dict[str, int] = {}
    for shape in sized:
        cat = classify_shape(shape, dataset, rules).value
        category_histogram[cat] = category_histogram.get(cat, 0) + 1

    stats: Dict[str, Any] = {
        "units": "in" if rules.scale == 1.0 else "mm",
        "shapeCount": len(dataset.shapes),
        "liveCount": len(live),
        "toolCount": len(dataset.tools),
        "typeHistogram": type_histogram,
        "categoryHistogram": category_histogram,
        "selectedCount": sum(1 for s in live if s.selected),
        "fiducialCount": sum(1 for s in live if s.is_fiducial),
    }
    if not sized:
        stats.update(minWidth=None, maxWidth=None, avgAspect=None, totalArea=0.0)
        return stats

    dims = np.array([dataset.shape_size(s) for s in sized], dtype=float)
    mins = dims.min(axis=1)
    maxs = dims.max(axis=1)
    aspects = np.divide(maxs, mins, out=np.zeros_like(maxs), where=mins > 0)
    stats.update(
        minWidth=float(mins.min()),
        maxWidth=float(maxs.max()),
        avgAspect=float(aspects.mean()),
        totalArea=float((dims[:, 0] * dims[:, 1]).sum()),
    )
    return stats


# ─── Individual checks ───────────────────────────────────────────────────────


def _check_min_width(dataset, pads, rules: ScaledRules) -> List[DFMIssue]:
    narrow = [s for s in pads if not s.is_pane and min(dataset.shape_size(s)) < rules.min_pad_size]
    if not narrow:
        return []
    return [DFMIssue(
        rule_name="min_width",
        severity="warning",
        title="Apertures below printable width",
        description=(
            f"{len(narrow)} apertures are narrower than the "
            f"{_mils(rules.min_pad_size, rules):.0f} mil printability floor; "
            "paste release will be unreliable"
        ),
        action={
            "action": "enlarge", "target": "tooSmall", "value": 1.0,
            "unit": "mil", "selectedOnly": False,
        },
        count=len(narrow),
    )]


def _check_fine_pitch(dataset, pads, rules: ScaledRules) -> List[DFMIssue]:
    elongated = [
        s for s in pads
        if PadMetrics(*dataset.shape_size(s)).aspect >= rules.fine_pitch_aspect_ratio
    ]
    if not elongated:
        return []
    return [DFMIssue(
        rule_name="fine_pitch",
        severity="warning",
        title="Fine-pitch leads detected",
        description=(
            f"{len(elongated)} apertures have aspect ratio >= "
            f"{rules.fine_pitch_aspect_ratio:.1f}; reduce width to prevent bridging"
        ),
        action={"action": "reduce", "target": "finePitch", "value": 10.0, "unit": "%", "selectedOnly": False},
        count=len(elongated),
    )]


def _check_large_pads(dataset, pads, rules: ScaledRules) -> List[DFMIssue]:
    large = [
        s for s in pads
        if is_paneable(s)
        and classify_shape(s, dataset, rules) is PadCategory.LARGE_THERMAL
    ]
    if not large:
        return []
    return [DFMIssue(
        rule_name="large_pad",
        severity="warning",
        title="Large thermal pads",
        description=(
            f"{len(large)} apertures exceed the window-pane area threshold; "
            "excess paste will cause voiding and component float"
        ),
        action={
            "action": "windowPane", "target": "largeThermal", "value": 0.0, "unit": "%",
            "selectedOnly": False, "windowPane": {"rows": 2, "cols": 2, "reduction": 0.0},
        },
        count=len(large),
    )]


def _check_corner_radius(pads, summary, rules: ScaledRules, radius_mil: float) -> List[DFMIssue]:
    avg_aspect = summary.get("avgAspect")
    if avg_aspect is None or avg_aspect >= rules.low_aspect_ratio:
        return []
    square = [s for s in pads if not s.corner_radius]
    if not square:
        return []
    return [DFMIssue(
        rule_name="corner_radius",
        severity="info",
        title="Sharp aperture corners",
        description=(
            f"{len(square)} apertures have no corner radius; rounded corners "
            "improve paste release"
        ),
        action={"action": "cornerRadius", "target": "all", "value": radius_mil, "unit": "mil", "selectedOnly": False},
        count=len(square),
    )]


def _check_unmodified(pads) -> List[DFMIssue]:
    untouched = [s for s in pads if not s.modified and not s.is_pane]
    if not untouched:
        return []
    return [DFMIssue(
        rule_name="unmodified",
        severity="info",
        title="Apertures still at copper size",
        description=(
            f"{len(untouched)} apertures match the copper pad 1:1; a 10% "
            "reduction is typical for SMT stencils"
        ),
        action={"action": "reduce", "target": "all", "value": 10.0, "unit": "%", "selectedOnly": False},
        count=len(untouched),
    )]


def _check_datasheet(
    dataset,
    pads,
    datasheet: ComponentDatasheet,
    rules: ScaledRules,
    inches: bool,
    base_rules,
) -> List[DFMIssue]:
    issues = []
    name = datasheet.part_number or "component"

    if datasheet.recommended_width and pads:
        rec_w = to_native(datasheet.recommended_width, datasheet.unit, inches)
        rec_h = to_native(datasheet.recommended_height or datasheet.recommended_width, datasheet.unit, inches)
        rec_short, rec_long = sorted((rec_w, rec_h))

        deltas = []
        for shape in pads:
            short, long_ = sorted(dataset.shape_size(shape))
            deltas.append((short - rec_short, long_ - rec_long))
        deltas = np.array(deltas)
        off = np.abs(deltas).max(axis=1) > rules.aperture_tolerance
        if off.any():
            mean_short = float(deltas[off, 0].mean())
            per_side_mil = round(abs(native_to_mils(mean_short, inches)) / 2, 2)
            issues.append(DFMIssue(
                rule_name="datasheet_aperture",
                severity="warning",
                title=f"Apertures deviate from {name} recommendation",
                description=(
                    f"{int(off.sum())} apertures differ from the recommended "
                    f"{datasheet.recommended_width}x{datasheet.recommended_height or datasheet.recommended_width}"
                    f"{datasheet.unit} by more than {base_rules.aperture_tolerance_mil:.0f} mil"
                ),
                action={
                    "action": "reduce" if mean_short > 0 else "enlarge",
                    "target": "all", "value": per_side_mil, "unit": "mil", "selectedOnly": False,
                },
                count=int(off.sum()),
            ))

    if datasheet.pitch:
        pitch_mm = to_native(datasheet.pitch, datasheet.unit, inches=False)
        if pitch_mm <= base_rules.fine_pitch_pitch_mm:
            issues.append(DFMIssue(
                rule_name="datasheet_pitch",
                severity="warning",
                title=f"{name} is fine pitch",
                description=(
                    f"Pitch {datasheet.pitch}{datasheet.unit} calls for fine-pitch "
                    "apertures (oblong, reduced width)"
                ),
                action={"action": "reduce", "target": "finePitch", "value": 10.0, "unit": "%", "selectedOnly": False},
            ))

    return issues


def _mils(value: float, rules: ScaledRules) -> float:
    return value / rules.scale * 1000.0


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
