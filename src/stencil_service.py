"""Request-scoped stencil operations on JSON-compatible payloads.

Every function deserializes its own dataset, works on it, and returns fresh
dicts or text; nothing is shared between calls.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from command_interpreter import InterpreterConfig, interpret_command
from dfm_rules import analyze_dataset, board_stats
from gerber_exporter import export_gerber, export_machine as encode_machine
from gerber_ingest import parse_gerber
from instant_rules import apply_instant_rules
from modification_engine import apply_modification, extract_fiducials
from shape_store import BoardDataset
from stencil_rules import resolve_rules

logger = logging.getLogger(__name__)


def parse(gerber_text: str) -> Dict[str, Any]:
    return parse_gerber(gerber_text).to_dict()


def modify(data: Mapping[str, Any], command: Mapping[str, Any], rules=None) -> Dict[str, Any]:
    """Apply one structured command and return the edited dataset with counts."""
    dataset = BoardDataset.from_dict(data)
    result = apply_modification(dataset, command, rules=rules)
    return {
        "data": dataset.to_dict(),
        "modifiedCount": result.modified_count,
        "shapeCount": result.shape_count,
        "panesCreated": result.panes_created,
        "notApplicable": result.not_applicable,
    }


def instant_edit(data: Mapping[str, Any], rules=None) -> Dict[str, Any]:
    dataset = BoardDataset.from_dict(data)
    result = apply_instant_rules(dataset, rules=rules)
    return {"data": dataset.to_dict(), "log": result.log, "counts": result.counts}


def fiducials(data: Mapping[str, Any]) -> Dict[str, Any]:
    dataset = BoardDataset.from_dict(data)
    created = extract_fiducials(dataset)
    return {"data": dataset.to_dict(), "count": len(created)}


def export(data: Mapping[str, Any], rules=None) -> str:
    return export_gerber(BoardDataset.from_dict(data), rules=rules)


def export_machine(
    data: Mapping[str, Any],
    mode: str = "cut",
    job: str = "STENCIL",
    rules=None,
) -> str:
    return encode_machine(BoardDataset.from_dict(data), mode=mode, job=job, rules=rules)


def analyze(
    data: Mapping[str, Any],
    datasheet: Optional[Mapping[str, Any]] = None,
    rules=None,
) -> Dict[str, Any]:
    return analyze_dataset(BoardDataset.from_dict(data), datasheet=datasheet, rules=rules).to_dict()


def interpret(
    prompt: str,
    data: Optional[Mapping[str, Any]] = None,
    use_remote: bool = True,
    config: Optional[InterpreterConfig] = None,
) -> Dict[str, Any]:
    """Interpret a free-text command; board statistics feed the remote prompt."""
    stats = board_stats(BoardDataset.from_dict(data)) if data else {}
    return interpret_command(prompt, stats=stats, config=config, use_remote=use_remote).to_dict()


def defaults(rules=None) -> Dict[str, float]:
    return resolve_rules(rules).to_dict()
