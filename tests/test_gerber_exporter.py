"""Tests for gerber_exporter module."""
from dataclasses import replace

import pytest

from gerber_exporter import ApertureTable, export_gerber, export_machine
from modification_engine import apply_modification, extract_fiducials
from shape_store import Shape, ShapeKind, ToolKind


def _apertures(text):
    return [line for line in text.splitlines() if line.startswith("%ADD")]


@pytest.fixture
def circle_board(board_factory):
    return board_factory(tools=[("10", ToolKind.CIRCLE, 0.02, 0.02)], pads=[("10", 0.1, 0.1)])


class TestExportGerber:
    def test_single_circle(self, circle_board):
        text = export_gerber(circle_board)
        lines = text.splitlines()
        assert lines[1:4] == ["%FSLAX36Y36*%", "%MOIN*%", "%LPD*%"]
        assert "%ADD10C,0.020000*%" in lines
        assert lines[-3:] == ["D10*", "X100000Y100000D03*", "M02*"]

    def test_rectangle_aperture(self, board_factory):
        board = board_factory(tools=[("11", ToolKind.RECT, 0.06, 0.02)], pads=[("11", -0.1, 0.25)])
        text = export_gerber(board)
        assert _apertures(text) == ["%ADD10R,0.060000X0.020000*%"]
        assert "X-100000Y250000D03*" in text

    def test_dedup_and_grouping(self, board_factory):
        board = board_factory(
            tools=[("10", ToolKind.RECT, 0.03, 0.03), ("11", ToolKind.RECT, 0.04, 0.03)],
            pads=[("10", 0.1, 0.0), ("11", 0.2, 0.0), ("10", 0.3, 0.0), ("11", 0.4, 0.0), ("10", 0.5, 0.0)],
        )
        lines = export_gerber(board).splitlines()
        assert len(_apertures("\n".join(lines))) == 2
        assert lines.count("D10*") == 1
        assert lines.count("D11*") == 1
        assert sum(1 for line in lines if line.endswith("D03*")) == 5

    def test_modified_size_used(self, circle_board):
        apply_modification(circle_board, {"action": "reduce", "value": 10})
        assert _apertures(export_gerber(circle_board)) == ["%ADD10C,0.018000*%"]

    def test_fine_pitch_exported_oblong_with_width_floor(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 0.008, 0.05)], pads=[("10", 0.0, 0.0)])
        assert _apertures(export_gerber(board)) == ["%ADD10O,0.009000X0.050000*%"]

    def test_convert_to_oblong_flag(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 0.03, 0.02)], pads=[("10", 0.0, 0.0)])
        board.shapes[0] = replace(board.shapes[0], convert_to_oblong=True)
        assert _apertures(export_gerber(board))[0].startswith("%ADD10O,")

    def test_fiducials_are_circles(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 0.04, 0.04)], pads=[("10", 0.5, 0.5)])
        board.shapes[0] = replace(board.shapes[0], selected=True)
        extract_fiducials(board)
        assert _apertures(export_gerber(board)) == ["%ADD10C,0.040000*%"]

    def test_deleted_shapes_skipped(self, inch_board):
        apply_modification(inch_board, {"action": "delete", "target": "all"})
        text = export_gerber(inch_board)
        assert _apertures(text) == []
        assert "D03*" not in text
        assert text.splitlines()[-1] == "M02*"

    def test_panes_as_regions(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 0.2, 0.2)], pads=[("10", 0.5, 0.5)])
        apply_modification(board, {"action": "windowPane", "target": "thermal"})
        lines = export_gerber(board).splitlines()
        assert _apertures("\n".join(lines)) == []
        assert lines.count("G36*") == 4
        assert lines.count("G37*") == 4
        start = lines.index("G36*")
        region = lines[start + 1:start + 6]
        # Lower-left pane: 406..492 thousandths.
        assert region[0] == "X406000Y406000D02*"
        assert region[-1] == "X406000Y406000D01*"
        assert lines[start + 6] == "G37*"

    def test_strokes(self, inch_board):
        lines = export_gerber(inch_board).splitlines()
        assert "X0Y0D02*" in lines
        assert "X100000Y0D01*" in lines

    def test_metric_board_exported_in_inches(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 1.27, 2.54)], pads=[("10", 25.4, 12.7)], units="mm")
        text = export_gerber(board)
        assert _apertures(text) == ["%ADD10R,0.050000X0.100000*%"]
        assert "X1000000Y500000D03*" in text

    def test_fill_region(self, board_factory):
        board = board_factory(tools=[], pads=[])
        board.shapes.append(Shape(
            id="fill-0", kind=ShapeKind.FILL, x=0.05, y=0.05, width=0.1, height=0.1,
            points=((0.0, 0.0), (0.1, 0.0), (0.1, 0.1), (0.0, 0.1)),
        ))
        lines = export_gerber(board).splitlines()
        assert "G36*" in lines
        assert "X100000Y100000D01*" in lines


class TestApertureTable:
    def test_codes_in_first_seen_order(self):
        table = ApertureTable(precision=6)
        a = table.lookup("R", 0.03, 0.02)
        b = table.lookup("C", 0.02, 0.02)
        again = table.lookup("R", 0.0300000001, 0.02)
        assert (a.code, b.code) == (10, 11)
        assert again is a
        assert len(table) == 2

    def test_kind_is_part_of_key(self):
        table = ApertureTable(precision=6)
        table.lookup("R", 0.03, 0.03)
        table.lookup("O", 0.03, 0.03)
        assert len(table) == 2


class TestExportMachine:
    def test_header_and_flash(self, circle_board):
        lines = export_machine(circle_board, mode="engrave", job="TEST").splitlines()
        assert lines[0] == "G04 JOB TEST.5*"
        assert "%FSLAX43Y43*%" in lines
        assert "%MOMM*%" in lines
        assert "%ADD10C,0.50800*%" in lines
        assert lines[-3:] == ["G54D10*", "G1X2540Y2540D3*", "M02*"]

    def test_cut_mode_squares_circles(self, circle_board):
        lines = export_machine(circle_board, mode="cut", job="TEST").splitlines()
        assert lines[0] == "G04 JOB TEST.1*"
        assert "%ADD10R,0.50800X0.50800*%" in lines

    def test_cut_mode_keeps_fiducial_circles(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.CIRCLE, 0.04, 0.04)], pads=[("10", 0.5, 0.5)])
        board.shapes[0] = replace(board.shapes[0], selected=True)
        extract_fiducials(board)
        assert "%ADD10C,1.01600*%" in export_machine(board, mode="cut").splitlines()

    def test_tool_select_before_every_flash(self, board_factory):
        board = board_factory(
            tools=[("10", ToolKind.RECT, 0.03, 0.03)],
            pads=[("10", 0.1, 0.0), ("10", 0.2, 0.0), ("10", 0.3, 0.0)],
        )
        lines = export_machine(board).splitlines()
        assert lines.count("G54D10*") == 3
        assert len([line for line in lines if line.startswith("%ADD")]) == 1

    def test_panes_in_millimetres(self, board_factory):
        board = board_factory(tools=[("10", ToolKind.RECT, 0.2, 0.2)], pads=[("10", 0.5, 0.5)])
        apply_modification(board, {"action": "windowPane", "target": "thermal"})
        lines = export_machine(board).splitlines()
        assert lines.count("G36*") == 4
        # 0.406 in is 10.3124 mm.
        assert "G1X10312Y10312D2*" in lines

    def test_unknown_mode(self, circle_board):
        with pytest.raises(ValueError):
            export_machine(circle_board, mode="laser")
