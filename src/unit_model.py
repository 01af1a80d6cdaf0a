"""
Linear-unit resolution for board datasets.

Gerber files declare a unit (MOIN / MOMM) but the declaration is frequently
unreliable once data has passed through intermediate tools, and every rule
threshold in this project is authored in mils. This module decides whether a
dataset's raw numbers are inches or millimetres and converts between the
units used by commands (``mm``, ``mil``, ``in``) and the dataset's native one.

The magnitude fallback is a best-effort guess: it assumes a first feature
narrower than 1.0 raw units must be inches. It is wrong for boards whose first
feature straddles the 1.0 boundary, so callers that need certainty must set
an explicit unit tag on the dataset.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

INCH_TO_MM = 25.4
MIL_PER_INCH = 1000.0

# Largest raw width still treated as inches by the magnitude heuristic.
INCH_MAGNITUDE_LIMIT = 1.0


class UnitStrategy(ABC):
    """One way of deciding a dataset's unit.

    ``resolve`` returns True for inches, False for millimetres, or None when
    the strategy has no opinion and the next one should be asked.
    """

    @abstractmethod
    def resolve(self, dataset) -> Optional[bool]:
        ...


class ExplicitUnitStrategy(UnitStrategy):
    """Trust an explicit ``in`` / ``mm`` tag on the dataset."""

    def resolve(self, dataset) -> Optional[bool]:
        units = (getattr(dataset, "units", None) or "").strip().lower()
        if units in ("in", "inch", "inches"):
            return True
        if units in ("mm", "metric", "millimeter", "millimeters"):
            return False
        return None


class MagnitudeUnitStrategy(UnitStrategy):
    """Guess from the first shape's width (sub-1.0 raw widths are inches)."""

    def __init__(self, limit: float = INCH_MAGNITUDE_LIMIT):
        self.limit = limit

    def resolve(self, dataset) -> Optional[bool]:
        shapes = getattr(dataset, "shapes", None) or []
        if not shapes:
            return None
        width, _ = dataset.shape_size(shapes[0])
        guess = width < self.limit
        logger.debug(
            "Unit guessed from first shape width %.6f: %s",
            width, "in" if guess else "mm",
        )
        return guess


DEFAULT_STRATEGIES: Sequence[UnitStrategy] = (
    ExplicitUnitStrategy(),
    MagnitudeUnitStrategy(),
)


def is_inches(dataset, strategies: Optional[Sequence[UnitStrategy]] = None) -> bool:
    """Return True when the dataset's raw values are inches.

    Strategies are consulted in order; the first definite answer wins. With
    no answer at all (no tag, no shapes) inches are assumed, matching the
    Gerber default.
    """
    for strategy in strategies or DEFAULT_STRATEGIES:
        answer = strategy.resolve(dataset)
        if answer is not None:
            return answer
    return True


def unit_scale(dataset, strategies: Optional[Sequence[UnitStrategy]] = None) -> float:
    """Multiplier turning an inch-based value into the dataset's native unit."""
    return 1.0 if is_inches(dataset, strategies) else INCH_TO_MM


def mil_to_native(mils: float, scale: float) -> float:
    return mils / MIL_PER_INCH * scale


def to_native(value: float, unit: str, inches: bool) -> float:
    """Convert a linear ``value`` given in ``unit`` into native dataset units.

    ``unit`` is one of ``mm``, ``mil`` or ``in``. Any other unit is assumed to
    already be native.
    """
    unit = (unit or "").lower()
    if unit == "mm":
        return value / INCH_TO_MM if inches else value
    if unit == "mil":
        inch_value = value / MIL_PER_INCH
        return inch_value if inches else inch_value * INCH_TO_MM
    if unit in ("in", "inch"):
        return value if inches else value * INCH_TO_MM
    return value


def native_to_mm(value: float, inches: bool) -> float:
    return value * INCH_TO_MM if inches else value


def native_to_inches(value: float, inches: bool) -> float:
    return value if inches else value / INCH_TO_MM


def native_to_mils(value: float, inches: bool) -> float:
    return native_to_inches(value, inches) * MIL_PER_INCH
