"""Tests for shape_store module."""
import pytest

from shape_store import (
    FALLBACK_SIZE,
    BoardDataset,
    DatasetError,
    Shape,
    ShapeKind,
    Tool,
    ToolKind,
)


class TestShapeSize:
    """Effective size resolution order."""

    def test_modified_size_wins(self, inch_board):
        shape = inch_board.shapes[1].edited(0.06, 0.02, modified_width=0.05, modified_height=0.015)
        assert inch_board.shape_size(shape) == (0.05, 0.015)

    def test_tool_size_when_shape_has_none(self, inch_board):
        shape = Shape(id="x", kind=ShapeKind.PAD, tool="11")
        assert inch_board.shape_size(shape) == (0.06, 0.02)

    def test_fallback_without_tool(self):
        shape = Shape(id="x", kind=ShapeKind.PAD, tool="99")
        assert BoardDataset().shape_size(shape) == (FALLBACK_SIZE, FALLBACK_SIZE)

    def test_height_defaults_to_width(self):
        shape = Shape(id="x", kind=ShapeKind.PAD, width=0.03)
        assert BoardDataset().shape_size(shape) == (0.03, 0.03)

    def test_ingested_size_ignores_edits(self, inch_board):
        shape = inch_board.shapes[0].edited(0.02, 0.02, modified_width=0.01, modified_height=0.01)
        assert inch_board.ingested_size(shape) == (0.02, 0.02)


class TestEdits:
    def test_original_recorded_once(self):
        shape = Shape(id="p", kind=ShapeKind.PAD, width=0.02, height=0.02)
        first = shape.edited(0.02, 0.02, modified_width=0.018, modified_height=0.018)
        second = first.edited(0.018, 0.018, modified_width=0.016, modified_height=0.016)
        assert second.original_width == 0.02
        assert second.modified_width == 0.016
        assert second.modified is True

    def test_edit_never_touches_ingest_size(self):
        shape = Shape(id="p", kind=ShapeKind.PAD, width=0.02, height=0.02)
        edited = shape.edited(0.02, 0.02, modified_width=0.01, modified_height=0.01)
        assert (edited.width, edited.height) == (0.02, 0.02)

    def test_restored_keeps_selection(self):
        shape = Shape(id="p", kind=ShapeKind.PAD, width=0.02, selected=True)
        edited = shape.edited(0.02, 0.02, deleted=True, corner_radius=0.001)
        restored = edited.restored()
        assert restored == Shape(id="p", kind=ShapeKind.PAD, width=0.02, selected=True)


class TestWireFormat:
    """camelCase dict form used by the editing front-end."""

    def test_shape_keys(self):
        shape = Shape(
            id="pad-0", kind=ShapeKind.PAD, tool="10", x=1.0, y=2.0,
            width=0.02, height=0.02,
        ).edited(0.02, 0.02, modified_width=0.018, modified_height=0.018, edit_type="reduce")
        data = shape.to_dict()
        assert data["type"] == "pad"
        assert data["modifiedWidth"] == 0.018
        assert data["originalWidth"] == 0.02
        assert data["editType"] == "reduce"
        assert data["modified"] is True
        assert "deleted" not in data
        assert "parentId" not in data

    def test_points_as_xy_objects(self):
        shape = Shape(id="fill-0", kind=ShapeKind.FILL, points=((0.0, 0.0), (1.0, 0.0), (1.0, 1.0)))
        data = shape.to_dict()
        assert data["points"][1] == {"x": 1.0, "y": 0.0}
        assert Shape.from_dict(data).points == shape.points

    def test_dataset_round_trip(self, inch_board):
        data = inch_board.to_dict()
        assert data["units"] == "in"
        assert set(data["bounds"]) == {"minX", "minY", "maxX", "maxY"}
        rebuilt = BoardDataset.from_dict(data)
        assert rebuilt.shapes == inch_board.shapes
        assert rebuilt.tools == inch_board.tools

    def test_poly_tool_type(self):
        tool = Tool.from_dict("20", {"type": "poly", "width": 0.1, "vertices": [[0, 0], [1, 0], [0, 1]]})
        assert tool.kind is ToolKind.POLYGON
        assert tool.height == 0.1
        assert tool.vertices == ((0.0, 0.0), (1.0, 0.0), (0.0, 1.0))

    def test_unknown_shape_type_becomes_pad(self):
        assert Shape.from_dict({"id": "a", "type": "blob"}).kind is ShapeKind.PAD


class TestStructuralErrors:
    def test_non_mapping_payload(self):
        with pytest.raises(DatasetError):
            BoardDataset.from_dict([1, 2, 3])

    def test_empty_payload(self):
        with pytest.raises(DatasetError):
            BoardDataset.from_dict({})

    def test_shape_without_id(self):
        with pytest.raises(DatasetError):
            BoardDataset.from_dict({"shapes": [{"type": "pad"}]})

    def test_tools_only_is_accepted(self):
        dataset = BoardDataset.from_dict({"tools": {"10": {"type": "circle", "width": 0.02}}})
        assert dataset.shapes == []
        assert dataset.tools["10"].kind is ToolKind.CIRCLE


class TestQueries:
    def test_compute_bounds(self, inch_board):
        bounds = inch_board.compute_bounds()
        # The stroke has no own size and gets the fallback extent.
        assert bounds.min_x == pytest.approx(0.05 - FALLBACK_SIZE / 2)
        assert bounds.min_y == pytest.approx(-FALLBACK_SIZE / 2)
        assert bounds.max_x == pytest.approx(0.9 + 0.0025)
        assert bounds.max_y == pytest.approx(0.9 + 0.0025)

    def test_empty_bounds(self):
        assert BoardDataset().compute_bounds() is None

    def test_find_and_live(self, inch_board):
        inch_board.shapes[0] = inch_board.shapes[0].edited(0.02, 0.02, deleted=True)
        assert inch_board.find("pad-0").deleted
        assert len(inch_board.live_shapes()) == len(inch_board.shapes) - 1
        assert inch_board.find("nope") is None
