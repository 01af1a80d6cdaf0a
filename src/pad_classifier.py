"""
Manufacturing categories for stencil apertures.

Categories are evaluated in a fixed priority order and the first match wins:
tooSmall, finePitch, largeThermal, thermal, circle, standard. Thresholds come
from ``ScaledRules`` so they are already in the dataset's native unit.
"""
from dataclasses import dataclass
from enum import Enum

from shape_store import BoardDataset, Shape, ShapeKind, ToolKind
from stencil_rules import ScaledRules


class PadCategory(Enum):
    TOO_SMALL = "tooSmall"
    FINE_PITCH = "finePitch"
    LARGE_THERMAL = "largeThermal"
    THERMAL = "thermal"
    CIRCLE = "circle"
    STANDARD = "standard"


TARGETS = (
    "all", "selected", "thermal", "largeThermal", "tooSmall", "finePitch", "circles", "rectangles",
)


@dataclass(frozen=True)
class PadMetrics:
    width: float
    height: float

    @property
    def min_dim(self) -> float:
        return min(self.width, self.height)

    @property
    def max_dim(self) -> float:
        return max(self.width, self.height)

    @property
    def aspect(self) -> float:
        if self.min_dim <= 0:
            return float("inf")
        return self.max_dim / self.min_dim

    @property
    def area(self) -> float:
        return self.width * self.height


def is_fine_pitch(metrics: PadMetrics, tool_kind: ToolKind, rules: ScaledRules) -> bool:
    """Narrow, elongated, non-circular opening typical of QFP/SOIC leads."""
    return (
        tool_kind is not ToolKind.CIRCLE
        and metrics.aspect >= rules.fine_pitch_aspect_ratio
        and metrics.min_dim < rules.fine_pitch_max_width
    )


def classify_size(
    width: float,
    height: float,
    tool_kind: ToolKind,
    rules: ScaledRules,
) -> PadCategory:
    metrics = PadMetrics(width, height)
    if metrics.min_dim < rules.min_pad_size:
        return PadCategory.TOO_SMALL
    if is_fine_pitch(metrics, tool_kind, rules):
        return PadCategory.FINE_PITCH
    if metrics.area > rules.pane_area_threshold:
        return PadCategory.LARGE_THERMAL
    if (
        metrics.area > rules.thermal_area_threshold
        or metrics.max_dim > rules.thermal_dim_threshold
    ):
        return PadCategory.THERMAL
    if tool_kind is ToolKind.CIRCLE:
        return PadCategory.CIRCLE
    return PadCategory.STANDARD


def classify_shape(shape: Shape, dataset: BoardDataset, rules: ScaledRules) -> PadCategory:
    width, height = dataset.shape_size(shape)
    return classify_size(width, height, dataset.tool_kind(shape), rules)


def matches_target(
    target: str,
    shape: Shape,
    dataset: BoardDataset,
    rules: ScaledRules,
) -> bool:
    """Whether ``shape`` belongs to a command's target group.

    Unknown targets match nothing.
    """
    if target == "all":
        return True
    if target == "selected":
        return shape.selected
    if target == "circles":
        return dataset.tool_kind(shape) is ToolKind.CIRCLE
    if target == "rectangles":
        return dataset.tool_kind(shape) is ToolKind.RECT and shape.kind is not ShapeKind.STROKE
    if target == "thermal":
        return classify_shape(shape, dataset, rules) in (
            PadCategory.LARGE_THERMAL, PadCategory.THERMAL,
        )
    if target == "largeThermal":
        return classify_shape(shape, dataset, rules) is PadCategory.LARGE_THERMAL
    if target == "tooSmall":
        return classify_shape(shape, dataset, rules) is PadCategory.TOO_SMALL
    if target == "finePitch":
        return classify_shape(shape, dataset, rules) is PadCategory.FINE_PITCH
    return False
