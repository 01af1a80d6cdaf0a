"""Tests for instant_rules module."""
import pytest

from instant_rules import apply_instant_rules
from shape_store import Shape, ShapeKind


class TestInstantEdit:
    """One pass of the professional ruleset over the category fixture board."""

    def test_counts_per_category(self, inch_board):
        result = apply_instant_rules(inch_board)
        assert result.counts == {
            "tooSmall": 1,
            "finePitch": 1,
            "largeThermal": 1,
            "thermal": 1,
            "circle": 1,
            "standard": 1,
            "panes": 4,
        }
        assert result.panes_created == 4

    def test_circle_home_plate(self, inch_board):
        apply_instant_rules(inch_board)
        pad = inch_board.find("pad-0")
        assert pad.modified_width == pytest.approx(0.018)
        assert pad.corner_radius == pytest.approx(0.002)
        assert pad.edit_type == "bga"

    def test_standard_reduction(self, inch_board):
        apply_instant_rules(inch_board)
        pad = inch_board.find("pad-1")
        assert (pad.modified_width, pad.modified_height) == pytest.approx((0.058, 0.018))
        assert pad.edit_type == "standard"

    def test_fine_pitch_becomes_oblong(self, inch_board):
        apply_instant_rules(inch_board)
        pad = inch_board.find("pad-2")
        assert pad.modified_width == pytest.approx(0.010)
        assert pad.modified_height == pytest.approx(0.048)
        assert pad.convert_to_oblong is True

    def test_fine_pitch_width_floor(self, board_factory):
        from shape_store import ToolKind
        board = board_factory(tools=[("10", ToolKind.RECT, 0.0095, 0.04)], pads=[("10", 0, 0)])
        apply_instant_rules(board)
        assert board.shapes[0].modified_width == pytest.approx(0.009)

    def test_thermal_reduction(self, inch_board):
        apply_instant_rules(inch_board)
        pad = inch_board.find("pad-4")
        assert (pad.modified_width, pad.modified_height) == pytest.approx((0.104, 0.044))
        assert pad.corner_radius == pytest.approx(0.002)

    def test_large_thermal_window_panes(self, inch_board):
        apply_instant_rules(inch_board)
        parent = inch_board.find("pad-3")
        assert parent.deleted and parent.replaced_by_panes
        panes = inch_board.panes_of("pad-3")
        assert len(panes) == 4
        # 194 mil after the thermal reduction, 6 mil edges, 16 mil web.
        for pane in panes:
            assert pane.width == pytest.approx(0.083)
            assert pane.corner_radius == pytest.approx(0.002)

    def test_too_small_and_strokes_untouched(self, inch_board):
        apply_instant_rules(inch_board)
        assert not inch_board.find("pad-5").modified
        stroke = inch_board.find("stroke-6")
        assert stroke.kind is ShapeKind.STROKE and not stroke.modified

    def test_second_run_is_a_no_op(self, inch_board):
        apply_instant_rules(inch_board)
        snapshot = list(inch_board.shapes)
        result = apply_instant_rules(inch_board)
        assert inch_board.shapes == snapshot
        assert result.panes_created == 0
        # tooSmall pads stay eligible and are counted again.
        assert sum(v for k, v in result.counts.items() if k not in ("tooSmall", "panes")) == 0

    def test_log_lines(self, inch_board):
        result = apply_instant_rules(inch_board)
        assert "Window panes: 1 thermal pads (4 panes)" in result.log
        assert "Fine pitch oblong reduction: 1 leads" in result.log

    def test_untileable_thermal_falls_back_to_reduction(self, inch_board):
        result = apply_instant_rules(inch_board, rules={"pane_web_width_mil": 500})
        pad = inch_board.find("pad-3")
        assert not pad.deleted
        assert pad.modified_width == pytest.approx(0.194)
        assert result.counts["largeThermal"] == 0
        assert result.counts["thermal"] == 2
        assert result.panes_created == 0

    def test_metric_board(self, mm_board):
        apply_instant_rules(mm_board)
        pad = mm_board.shapes[0]
        # 1 mil per side is 0.0254 mm.
        assert pad.modified_width == pytest.approx(1.5 - 0.0508)

    def test_non_rectangular_fill_is_not_paned(self, board_factory):
        board = board_factory(tools=[], pads=[])
        board.shapes.append(Shape(
            id="fill-0", kind=ShapeKind.FILL, x=0.15, y=0.15, width=0.3, height=0.3,
            points=((0.0, 0.0), (0.3, 0.0), (0.0, 0.3)),
        ))
        result = apply_instant_rules(board)
        fill = board.find("fill-0")
        assert result.panes_created == 0
        assert result.counts["largeThermal"] == 0
        assert result.counts["thermal"] == 1
        assert not fill.deleted
        assert fill.modified_width == pytest.approx(0.294)
        assert board.panes_of("fill-0") == []
