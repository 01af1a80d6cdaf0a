"""
Professional CAM ruleset for SMT paste stencils.

All thresholds are authored in mils (areas in square mils) and converted to a
board's native unit with ``StencilRules.scaled``. One ruleset is canonical:
fine-pitch aspect 2.5, fixed (non-adaptive) thermal area thresholds.
"""
import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from unit_model import MIL_PER_INCH, mil_to_native

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StencilRules:
    """Stencil aperture thresholds and instant-edit treatments, in mils."""

    # Classification
    min_pad_size_mil: float = 8.0  # printability floor
    fine_pitch_aspect_ratio: float = 2.5
    fine_pitch_max_width_mil: float = 15.0
    fine_pitch_min_width_mil: float = 9.0
    pane_area_threshold_sqmil: float = 15000.0
    thermal_area_threshold_sqmil: float = 10000.0
    thermal_dim_threshold_mil: float = 100.0

    # Instant-edit treatments (per side)
    standard_reduction_mil: float = 1.0
    fine_pitch_reduction_mil: float = 1.0
    thermal_reduction_mil: float = 3.0
    corner_radius_mil: float = 2.0  # BGA home-plate radius
    pane_web_width_mil: float = 16.0
    pane_edge_gap_mil: float = 6.0
    min_pane_fraction: float = 0.01  # of the source's smaller side

    # DFM analysis
    aperture_tolerance_mil: float = 2.0
    fine_pitch_pitch_mm: float = 0.5
    low_aspect_ratio: float = 1.5

    def scaled(self, scale: float) -> "ScaledRules":
        """Convert every threshold into native units (scale: 1 in, 25.4 mm)."""
        area = (scale / MIL_PER_INCH) ** 2
        return ScaledRules(
            scale=scale,
            min_pad_size=mil_to_native(self.min_pad_size_mil, scale),
            fine_pitch_aspect_ratio=self.fine_pitch_aspect_ratio,
            fine_pitch_max_width=mil_to_native(self.fine_pitch_max_width_mil, scale),
            fine_pitch_min_width=mil_to_native(self.fine_pitch_min_width_mil, scale),
            pane_area_threshold=self.pane_area_threshold_sqmil * area,
            thermal_area_threshold=self.thermal_area_threshold_sqmil * area,
            thermal_dim_threshold=mil_to_native(self.thermal_dim_threshold_mil, scale),
            standard_reduction=mil_to_native(self.standard_reduction_mil, scale),
            fine_pitch_reduction=mil_to_native(self.fine_pitch_reduction_mil, scale),
            thermal_reduction=mil_to_native(self.thermal_reduction_mil, scale),
            corner_radius=mil_to_native(self.corner_radius_mil, scale),
            pane_web_width=mil_to_native(self.pane_web_width_mil, scale),
            pane_edge_gap=mil_to_native(self.pane_edge_gap_mil, scale),
            min_pane_fraction=self.min_pane_fraction,
            aperture_tolerance=mil_to_native(self.aperture_tolerance_mil, scale),
            low_aspect_ratio=self.low_aspect_ratio,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, overrides: Optional[Mapping[str, Any]]) -> "StencilRules":
        """Build a ruleset from partial overrides; unknown keys are ignored."""
        if not overrides:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in overrides.items():
            if key not in known:
                logger.debug("Ignoring unknown rule override %r", key)
                continue
            values[key] = float(value)
        return cls(**values)


@dataclass(frozen=True)
class ScaledRules:
    """``StencilRules`` expressed in a dataset's native unit."""

    scale: float
    min_pad_size: float
    fine_pitch_aspect_ratio: float
    fine_pitch_max_width: float
    fine_pitch_min_width: float
    pane_area_threshold: float
    thermal_area_threshold: float
    thermal_dim_threshold: float
    standard_reduction: float
    fine_pitch_reduction: float
    thermal_reduction: float
    corner_radius: float
    pane_web_width: float
    pane_edge_gap: float
    min_pane_fraction: float
    aperture_tolerance: float
    low_aspect_ratio: float


DEFAULT_RULES = StencilRules()


def resolve_rules(rules) -> StencilRules:
    """Accept None, a ``StencilRules`` or a dict of overrides."""
    if rules is None:
        return DEFAULT_RULES
    if isinstance(rules, StencilRules):
        return rules
    return StencilRules.from_dict(rules)
