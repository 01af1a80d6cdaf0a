#!/usr/bin/env python3
"""
Edit an SMT paste-stencil layer and write cutter-ready outputs.

Usage:
    # Apply the professional ruleset and export a modified Gerber
    python scripts/stencil_edit.py board.gtp --instant --export board_mod.gtp

    # Free-text command (local keyword parser unless --ai)
    python scripts/stencil_edit.py board.gtp --command "reduce all pads by 10%"
    python scripts/stencil_edit.py board.gtp --command "2x2 window panes on thermal pads" --ai

    # DFM report and machine / DXF output
    python scripts/stencil_edit.py board.gtp --report --machine board.cut --mode cut --dxf board.dxf

Input may be Gerber text or a dataset JSON file (``.json``) saved with
--save-json. The AI interpreter reads ANTHROPIC_API_KEY from the environment,
or pass --api-key.
"""
import sys
import json
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from command_interpreter import InterpreterConfig, interpret_command
from dfm_rules import analyze_dataset, board_stats
from dxf_exporter import DXFExportConfig, dataset_to_dxf
from gerber_exporter import MACHINE_MODES, export_gerber, export_machine
from gerber_ingest import parse_gerber
from instant_rules import apply_instant_rules
from modification_engine import apply_modification
from shape_store import BoardDataset, DatasetError
from stencil_rules import StencilRules


def load_dataset(path: Path) -> BoardDataset:
    text = path.read_text()
    if path.suffix.lower() == ".json":
        return BoardDataset.from_dict(json.loads(text))
    return parse_gerber(text)


def load_rules(path) -> StencilRules:
    if not path:
        return StencilRules()
    return StencilRules.from_dict(json.loads(Path(path).read_text()))


def main():
    parser = argparse.ArgumentParser(
        description="Edit SMT stencil apertures and export Gerber, machine or DXF files"
    )
    parser.add_argument("input", type=str, help="Gerber paste layer or dataset JSON")

    # Edits
    parser.add_argument("--instant", action="store_true", help="Apply the instant-edit ruleset")
    parser.add_argument("--command", type=str, action="append", default=[],
                        help="Free-text edit command (repeatable, applied in order)")
    parser.add_argument("--ai", action="store_true", help="Interpret commands with the remote model")
    parser.add_argument("--api-key", type=str, default=None, help="API key override")
    parser.add_argument("--rules", type=str, default=None,
                        help="JSON file with rule overrides (mil values)")

    # Reports and outputs
    parser.add_argument("--report", action="store_true", help="Print the DFM report")
    parser.add_argument("--datasheet", type=str, default=None,
                        help="Component datasheet JSON for the DFM report")
    parser.add_argument("--export", type=str, default=None, help="Write modified Gerber here")
    parser.add_argument("--machine", type=str, default=None, help="Write machine-format file here")
    parser.add_argument("--mode", type=str, default="cut", choices=sorted(MACHINE_MODES),
                        help="Machine output mode (default: cut)")
    parser.add_argument("--job", type=str, default="STENCIL", help="Machine job name (default: STENCIL)")
    parser.add_argument("--dxf", type=str, default=None, help="Write DXF cut file here")
    parser.add_argument("--save-json", type=str, default=None, help="Write the edited dataset JSON here")
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: input file not found: {input_path}")
        return 1

    try:
        dataset = load_dataset(input_path)
        rules = load_rules(args.rules)
    except (DatasetError, json.JSONDecodeError) as e:
        print(f"Error: {e}")
        return 1

    stats = board_stats(dataset)
    print(f"Board: {stats['liveCount']} shapes, {stats['toolCount']} tools ({stats['units']})")

    if args.instant:
        result = apply_instant_rules(dataset, rules=rules)
        print("\nInstant edit:")
        for line in result.log:
            print(f"  {line}")

    config = InterpreterConfig()
    if args.api_key:
        config.api_key = args.api_key
    for text in args.command:
        interpreted = interpret_command(
            text, stats=board_stats(dataset), config=config, use_remote=args.ai,
        )
        applied = apply_modification(dataset, interpreted.command, rules=rules)
        print(
            f"\n[{interpreted.source}] {interpreted.command.explanation or interpreted.command.action}: "
            f"{applied.modified_count} modified, {applied.panes_created} panes, "
            f"{applied.shape_count} shapes"
        )

    if args.report:
        datasheet = json.loads(Path(args.datasheet).read_text()) if args.datasheet else None
        report = analyze_dataset(dataset, datasheet=datasheet, rules=rules)
        print(f"\nDFM: {len(report.issues)} issues")
        for issue in report.issues:
            print(f"  [{issue.severity}] {issue.title}: {issue.description}")

    if args.export:
        Path(args.export).write_text(export_gerber(dataset, rules=rules))
        print(f"\nGerber: {args.export}")
    if args.machine:
        Path(args.machine).write_text(export_machine(dataset, mode=args.mode, job=args.job, rules=rules))
        print(f"Machine file ({args.mode}): {args.machine}")
    if args.dxf:
        dataset_to_dxf(dataset, args.dxf, config=DXFExportConfig(label=args.job), rules=rules)
        print(f"DXF: {args.dxf}")
    if args.save_json:
        Path(args.save_json).write_text(json.dumps(dataset.to_dict(), indent=2))
        print(f"Dataset JSON: {args.save_json}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
