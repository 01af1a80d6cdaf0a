"""
Shared test fixtures for stencil editing tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shape_store import Bounds, BoardDataset, Shape, ShapeKind, Tool, ToolKind
from stencil_rules import DEFAULT_RULES


def _build_board(tools, pads, units="in", strokes=()):
    """Dataset from (tool_id, kind, w, h) tools and (tool_id, x, y) pads.

    Pads are sized from their tool, as ingestion does. Ids are pad-N and
    stroke-N from one counter.
    """
    tool_map = {tid: Tool(tid, kind, w, h) for tid, kind, w, h in tools}
    shapes = []
    for tid, x, y in pads:
        tool = tool_map[tid]
        shapes.append(Shape(
            id=f"pad-{len(shapes)}", kind=ShapeKind.PAD, tool=tid, x=x, y=y,
            width=tool.width, height=tool.height,
        ))
    for tid, (x1, y1), (x2, y2) in strokes:
        shapes.append(Shape(
            id=f"stroke-{len(shapes)}", kind=ShapeKind.STROKE, tool=tid,
            x1=x1, y1=y1, x2=x2, y2=y2, x=(x1 + x2) / 2, y=(y1 + y2) / 2,
        ))
    dataset = BoardDataset(tools=tool_map, shapes=shapes, units=units)
    dataset.bounds = dataset.compute_bounds() or Bounds()
    return dataset


@pytest.fixture
def board_factory():
    """Callable building ad-hoc datasets (see ``_build_board``)."""
    return _build_board


@pytest.fixture
def inch_board():
    """One pad per manufacturing category plus a stroke, in inches.

    pad-0  20 mil circle            circle
    pad-1  60 x 20 mil rect         standard
    pad-2  12 x 50 mil rect         finePitch
    pad-3  200 x 200 mil rect       largeThermal
    pad-4  110 x 50 mil rect        thermal
    pad-5  5 x 5 mil rect           tooSmall
    stroke-6  drawn with the 20 mil circle
    """
    return _build_board(
        tools=[
            ("10", ToolKind.CIRCLE, 0.02, 0.02),
            ("11", ToolKind.RECT, 0.06, 0.02),
            ("12", ToolKind.RECT, 0.012, 0.05),
            ("13", ToolKind.RECT, 0.2, 0.2),
            ("14", ToolKind.RECT, 0.11, 0.05),
            ("15", ToolKind.RECT, 0.005, 0.005),
        ],
        pads=[
            ("10", 0.1, 0.1),
            ("11", 0.2, 0.1),
            ("12", 0.3, 0.1),
            ("13", 0.5, 0.5),
            ("14", 0.8, 0.2),
            ("15", 0.9, 0.9),
        ],
        strokes=[("10", (0.0, 0.0), (0.1, 0.0))],
    )


@pytest.fixture
def mm_board():
    """Metric board without a unit tag (unit comes from magnitude)."""
    return _build_board(
        tools=[
            ("10", ToolKind.RECT, 1.5, 0.8),
            ("11", ToolKind.CIRCLE, 0.5, 0.5),
        ],
        pads=[
            ("10", 5.0, 5.0),
            ("10", 7.0, 5.0),
            ("11", 10.0, 2.0),
        ],
        units=None,
    )


@pytest.fixture
def inch_rules():
    return DEFAULT_RULES.scaled(1.0)


@pytest.fixture
def simple_gerber():
    """Small RS-274X paste layer: two circles and one rectangle, inches."""
    return "\n".join([
        "G04 test paste layer*",
        "%FSLAX36Y36*%",
        "%MOIN*%",
        "%ADD10C,0.020000*%",
        "%ADD11R,0.060000X0.020000*%",
        "D10*",
        "X100000Y100000D03*",
        "X300000Y100000D03*",
        "D11*",
        "X200000Y200000D03*",
        "M02*",
    ]) + "\n"
