import json
from pathlib import Path

import pytest

from scripts.dump_sheet import dump_sheet, main


SAMPLE = Path(__file__).parent / "data" / "sample_sheet.json"


def _sample() -> dict:
    return json.loads(SAMPLE.read_text(encoding="utf-8"))


def test_dump_sheet_summary():
    summary = dump_sheet(_sample(), summary=True)
    assert summary["name"] == "Aria Vale"
    assert summary["attributes"]["st"] == "12"
    assert summary["calc"]["points"]["unspent"] == 83


def test_dump_sheet_respects_iteration_budget():
    """One pass already picks up the DX bonus; only the settling pass is skipped."""
    payload = dump_sheet(_sample(), max_iterations=1)
    assert payload["calc"]["passes"] == 1
    assert payload["skills"][0]["level"] == 13


def test_main_prints_json(capsys):
    assert main([str(SAMPLE), "--summary"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["calc"]["encumbrance"] == "None"


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "missing.json")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_main_rejects_non_object(tmp_path, capsys):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert main([str(path)]) == 1
    assert "expected a JSON object" in capsys.readouterr().err


def test_main_reports_bad_sheet(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"skills": [{"type": "vehicle"}]}), encoding="utf-8")
    assert main([str(path)]) == 1
    assert "Unknown trait type" in capsys.readouterr().err


def test_main_rejects_zero_budget():
    with pytest.raises(SystemExit):
        main([str(SAMPLE), "--max-iterations", "0"])
