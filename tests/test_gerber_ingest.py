"""Tests for gerber_ingest module."""
import pytest

from gerber_exporter import export_gerber
from gerber_ingest import GerberIngest, gerber_events, ingest_events, parse_gerber
from shape_store import FALLBACK_SIZE, ShapeKind, ToolKind


SQUARE_PATH = [
    {"type": "line", "start": [0.0, 0.0], "end": [0.2, 0.0]},
    {"type": "line", "start": [0.2, 0.0], "end": [0.2, 0.1]},
    {"type": "line", "start": [0.2, 0.1], "end": [0.0, 0.1]},
    {"type": "line", "start": [0.0, 0.1], "end": [0.0, 0.0]},
]


class TestIngestEvents:
    """Plotter event records to a dataset."""

    def test_tools_and_pads(self):
        dataset = ingest_events([
            {"type": "shape", "tool": "10", "shape": [{"type": "circle", "r": 0.01}]},
            {"type": "shape", "tool": "11", "shape": [{"type": "rect", "width": 0.06, "height": 0.02}]},
            {"type": "pad", "tool": "10", "x": 0.1, "y": 0.2},
            {"type": "pad", "tool": "11", "x": 0.3, "y": 0.2},
        ])
        assert dataset.tools["10"].kind is ToolKind.CIRCLE
        assert dataset.tools["10"].width == pytest.approx(0.02)
        assert (dataset.tools["11"].width, dataset.tools["11"].height) == (0.06, 0.02)
        pad = dataset.shapes[1]
        assert pad.id == "pad-1"
        assert (pad.x, pad.y, pad.width, pad.height) == (0.3, 0.2, 0.06, 0.02)

    def test_shared_id_counter(self):
        dataset = ingest_events([
            {"type": "pad", "tool": "10", "x": 0, "y": 0},
            {"type": "fill", "path": SQUARE_PATH},
            {"type": "stroke", "tool": "10", "start": [0, 0], "end": [1, 0]},
        ])
        assert [s.id for s in dataset.shapes] == ["pad-0", "fill-1", "stroke-2"]

    def test_fill_geometry(self):
        dataset = ingest_events([{"type": "fill", "path": SQUARE_PATH}])
        fill = dataset.shapes[0]
        assert fill.kind is ShapeKind.FILL
        assert (fill.x, fill.y) == pytest.approx((0.1, 0.05))
        assert (fill.width, fill.height) == pytest.approx((0.2, 0.1))
        assert len(fill.points) == 4

    def test_fill_duplicate_points_merged(self):
        path = [{"start": [0.0, 0.0]}, {"start": [0.00005, 0.0]}] + SQUARE_PATH[1:]
        dataset = ingest_events([{"type": "fill", "path": path}])
        assert len(dataset.shapes[0].points) == 4

    def test_degenerate_fill_dropped(self):
        dataset = ingest_events([
            {"type": "fill", "path": SQUARE_PATH[:2]},
            {"type": "pad", "tool": "10", "x": 0, "y": 0},
        ])
        assert [s.id for s in dataset.shapes] == ["pad-0"]

    def test_stroke_midpoint(self):
        dataset = ingest_events([{"type": "stroke", "tool": "10", "start": [0, 0], "end": [0.2, 0.4]}])
        stroke = dataset.shapes[0]
        assert (stroke.x, stroke.y) == pytest.approx((0.1, 0.2))
        assert (stroke.x1, stroke.y2) == (0.0, 0.4)

    def test_missing_tool_falls_back(self):
        dataset = ingest_events([{"type": "pad", "tool": "99", "x": 1, "y": 1}])
        assert dataset.shapes[0].width == FALLBACK_SIZE

    def test_malformed_event_skipped(self):
        ingest = GerberIngest()
        ingest.feed({"type": "pad", "tool": "10", "x": "not-a-number"})
        ingest.feed({"type": "pad", "tool": "10", "x": 0.5, "y": 0.5})
        ingest.feed("garbage")
        dataset = ingest.finish()
        assert ingest.skipped == 1
        assert [s.x for s in dataset.shapes] == [0.5]

    def test_bounds_from_size_event(self):
        dataset = ingest_events([{"type": "size", "box": [0, 0, 2, 1], "units": "in"}])
        assert (dataset.bounds.max_x, dataset.bounds.max_y) == (2.0, 1.0)
        assert dataset.units == "in"

    def test_bounds_computed_or_default(self):
        dataset = ingest_events([{"type": "pad", "tool": "10", "x": 1, "y": 1}])
        assert dataset.bounds.min_x == pytest.approx(1 - FALLBACK_SIZE / 2)
        empty = ingest_events([])
        assert (empty.bounds.min_x, empty.bounds.max_x) == (0.0, 1.0)

    def test_explicit_units_not_overridden(self):
        dataset = ingest_events([{"type": "size", "units": "in"}], units="mm")
        assert dataset.units == "mm"


class TestParseGerber:
    """End to end through gerbonara."""

    def test_events_from_gerber(self, simple_gerber):
        events = list(gerber_events(simple_gerber))
        kinds = [e["type"] for e in events]
        assert kinds.count("shape") == 2
        assert kinds.count("pad") == 3
        assert kinds[-1] == "size"

    def test_parse_gerber(self, simple_gerber):
        dataset = parse_gerber(simple_gerber)
        assert dataset.units == "in"
        assert len(dataset.shapes) == 3
        assert len(dataset.tools) == 2
        first = dataset.shapes[0]
        assert (first.x, first.y) == pytest.approx((0.1, 0.1))
        assert first.width == pytest.approx(0.02)
        assert dataset.tool_kind(first) is ToolKind.CIRCLE
        rect = dataset.shapes[2]
        assert (rect.width, rect.height) == pytest.approx((0.06, 0.02))
        assert dataset.bounds.max_x > dataset.bounds.min_x

    def test_export_reparses(self, simple_gerber):
        dataset = parse_gerber(simple_gerber)
        again = parse_gerber(export_gerber(dataset))
        assert len(again.shapes) == len(dataset.shapes)
        assert sorted(s.x for s in again.shapes) == pytest.approx(sorted(s.x for s in dataset.shapes))
