"""Recalculate a character sheet file and dump the computed values.

Loads a sheet JSON file, runs the engine until the sheet settles, and
prints the exported state as JSON.

Usage:
    python -m scripts.dump_sheet SHEET.json [--max-iterations N] [--summary]

Without --summary the full export is printed; with it, only the derived
``calc`` block and the attribute values.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from sheetcalc.engine.engine_config import EngineConfig
from sheetcalc.engine.sheet_engine import SheetEngine
from sheetcalc.persistence.export_state import export_character
from sheetcalc.persistence.loader import load_character


def _load_json(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")
    return data


def _summary(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": payload["profile"]["name"],
        "attributes": {row["attr_id"]: row["calc"]["value"] for row in payload["attributes"]},
        "calc": payload["calc"],
    }


def dump_sheet(data: dict[str, Any], max_iterations: int = 5, summary: bool = False) -> dict[str, Any]:
    config = EngineConfig(max_iterations=max_iterations)
    engine = SheetEngine(load_character(data), config)
    state = engine.recalculate()
    payload = export_character(engine.character, state, config)
    return _summary(payload) if summary else payload


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate and dump a character sheet")
    parser.add_argument("sheet", type=Path, help="Character sheet JSON file")
    parser.add_argument("--max-iterations", type=int, default=5,
                        help="Convergence pass budget (default: 5)")
    parser.add_argument("--summary", action="store_true",
                        help="Only print attribute values and the calc block")
    args = parser.parse_args(argv)

    if args.max_iterations < 1:
        parser.error("--max-iterations must be >= 1")
    try:
        data = _load_json(args.sheet)
        payload = dump_sheet(data, args.max_iterations, args.summary)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
