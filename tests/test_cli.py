"""CLI integration smoke tests for pivot-explorer."""

from __future__ import annotations

import json
from pathlib import Path

from openpyxl import load_workbook
from typer.testing import CliRunner

from pivot_explorer import __version__
from pivot_explorer.cli import app

runner = CliRunner()
FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
SALES = FIXTURES_DIR / "sales.csv"


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows)
    return path


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_pivot_writes_all_artifacts(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["pivot", "--input", str(SALES), "--out-dir", str(out_dir),
         "--row", "Region", "--value", "Sales", "--quiet"],
    )

    assert result.exit_code == 0, result.stdout
    csv_lines = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")
    assert csv_lines == [
        '"Region / Values","Total","Row Total"',
        '"East",2450.5,2450.5',
        '"West",1300,1300',
        "Grand Total,3750.5,3750.5",
    ]
    assert (out_dir / "Pivot_Report.xlsx").exists()

    parse_report = json.loads((out_dir / "parse_report.json").read_text())
    assert parse_report["lines_in"] == 7
    assert parse_report["rows_out"] == 6
    assert parse_report["dropped_line_numbers"] == [8]

    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["status"] == "success"
    assert manifest["rows_out"] == 6
    assert len(manifest["sha256"]) == 64


def test_pivot_with_columns_and_average(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["pivot", "-i", str(SALES), "-o", str(out_dir), "-r", "Product", "-c", "Quarter",
         "-v", "Units", "--agg", "average", "--quiet"],
    )

    assert result.exit_code == 0, result.stdout
    lines = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")
    assert lines[0] == '"Product / Quarter","Q1","Q2","Row Total"'
    # Gadget units: Q1=[5], Q2=[2]; Widget: Q1=[12, 3], Q2=[8, 10]
    assert lines[1] == '"Gadget",5,2,3.5'
    assert lines[2] == '"Widget",7.5,9,8.25'


def test_pivot_nonquiet_shows_table_and_panels(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["pivot", "-i", str(SALES), "-o", str(tmp_path / "out"), "-r", "Region", "-v", "Sales"],
    )

    assert result.exit_code == 0, result.stdout
    assert "Pivot Start" in result.stdout
    assert "Aggregating" in result.stdout
    assert "Grand Total" in result.stdout
    assert "Pivot Complete" in result.stdout
    assert "Dropped 1 line" in result.stdout


def test_pivot_unknown_fields_fall_back_and_warn(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["pivot", "-i", str(SALES), "-o", str(out_dir), "-r", "Region", "-r", "Nope",
         "-c", "Month", "-v", "Sales"],
    )

    assert result.exit_code == 0, result.stdout
    assert "Ignored unknown row field" in result.stdout
    assert "Ignored unknown column field" in result.stdout
    first = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")[0]
    assert first == '"Region / Values","Total","Row Total"'


def test_pivot_workspace_remembers_last_config(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace.json"
    out_dir = tmp_path / "out"

    first = runner.invoke(
        app,
        ["pivot", "-i", str(SALES), "-o", str(out_dir), "-w", str(workspace),
         "-r", "Product", "-v", "Units", "--agg", "MAX", "--quiet"],
    )
    assert first.exit_code == 0, first.stdout
    saved = json.loads(workspace.read_text(encoding="utf-8"))
    assert saved["config"] == {
        "rowField": ["Product"],
        "colField": None,
        "valueField": "Units",
        "aggregator": "MAX",
    }

    second = runner.invoke(
        app, ["pivot", "-i", str(SALES), "-o", str(out_dir), "-w", str(workspace), "--quiet"]
    )
    assert second.exit_code == 0, second.stdout
    lines = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")
    assert lines[1] == '"Gadget",5,5'
    assert lines[2] == '"Widget",12,12'


def test_pivot_no_rows_gives_single_total(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["pivot", "-i", str(SALES), "-o", str(out_dir), "--no-rows", "-v", "Sales", "-q"]
    )

    assert result.exit_code == 0, result.stdout
    lines = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")
    assert lines[1:] == ['"Total",3750.5,3750.5', "Grand Total,3750.5,3750.5"]


def test_pivot_empty_input_fails_with_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "empty.csv", "\n\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["pivot", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert "no data rows" in result.stdout
    manifest = json.loads((out_dir / "run_manifest.json").read_text())
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2
    assert (out_dir / "parse_report.json").exists()
    assert not (out_dir / "pivot_analysis.csv").exists()


def test_pivot_corrupt_workspace_fails(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace.json"
    workspace.write_text("{broken", encoding="utf-8")

    result = runner.invoke(
        app, ["pivot", "-i", str(SALES), "-o", str(tmp_path / "out"), "-w", str(workspace), "-q"]
    )

    assert result.exit_code == 2
    assert "Malformed JSON" in result.stdout


def test_validate_pass_writes_artifacts(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "--input", str(SALES), "--out-dir", str(out_dir)])

    assert result.exit_code == 0
    assert "Validation Summary" in result.stdout
    assert "PASS" in result.stdout
    parse_report = json.loads((out_dir / "parse_report.json").read_text())
    assert parse_report["dropped_lines"] == 1
    assert (out_dir / "run_manifest.json").exists()
    assert not (out_dir / "pivot_analysis.csv").exists()


def test_validate_all_lines_malformed_exits_2(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "bad.csv", "a,b,c\n1,2\n3\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["validate", "-i", str(csv_path), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    parse_report = json.loads((out_dir / "parse_report.json").read_text())
    assert parse_report["lines_in"] == 2
    assert parse_report["rows_out"] == 0


def test_log_lists_records(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "small.csv", "name,amount\nAda,5\nBob,7\nCy,9\n")

    result = runner.invoke(app, ["log", "-i", str(csv_path), "--limit", "2"])

    assert result.exit_code == 0
    assert "Ada" in result.stdout
    assert "Bob" in result.stdout
    assert "Cy" not in result.stdout
    assert "1 more" in result.stdout


def test_assist_show_prompt(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["assist", "-i", str(SALES), "-w", str(tmp_path / "ws.json"),
         "--query", "Sales by region", "--show-prompt"],
    )

    assert result.exit_code == 0
    assert 'User Query: "Sales by region"' in result.stdout
    assert not (tmp_path / "ws.json").exists()


def test_assist_applies_reply_to_workspace(tmp_path: Path) -> None:
    workspace = tmp_path / "ws.json"
    reply = tmp_path / "reply.json"
    reply.write_text(
        json.dumps(
            {
                "explanation": "Grouped sales by region and quarter.",
                "updateConfig": True,
                "config": {"rowField": ["Region"], "colField": "Quarter", "valueField": "Sales"},
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        ["assist", "-i", str(SALES), "-w", str(workspace),
         "--query", "Sales by region per quarter", "--reply", str(reply)],
    )

    assert result.exit_code == 0, result.stdout
    saved = json.loads(workspace.read_text(encoding="utf-8"))
    assert saved["config"]["rowField"] == ["Region"]
    assert saved["config"]["colField"] == "Quarter"
    assert [m["role"] for m in saved["messages"]] == ["assistant", "user", "assistant"]
    assert saved["messages"][-1]["text"] == "Grouped sales by region and quarter."


def test_assist_bad_reply_exits_2(tmp_path: Path) -> None:
    reply = tmp_path / "reply.json"
    reply.write_text("sorry, I cannot help", encoding="utf-8")

    result = runner.invoke(
        app,
        ["assist", "-i", str(SALES), "-w", str(tmp_path / "ws.json"),
         "--query", "q", "--reply", str(reply)],
    )

    assert result.exit_code == 2
    assert "not valid JSON" in result.stdout


def test_report_pivot_sheet_matches_csv(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    runner.invoke(
        app, ["pivot", "-i", str(SALES), "-o", str(out_dir), "-r", "Region", "-v", "Sales", "-q"]
    )

    ws = load_workbook(out_dir / "Pivot_Report.xlsx")["Pivot"]

    assert ws.cell(row=5, column=1).value == "East"
    assert ws.cell(row=5, column=3).value == 2450.5


def test_validate_prints_bracketed_header_names_literally(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "tags.csv", "Price [/USD],Region\n5,East\n")

    result = runner.invoke(app, ["validate", "-i", str(csv_path), "-o", str(tmp_path / "out")])

    assert result.exit_code == 0, result.stdout
    assert "Price [/USD]" in result.stdout
    assert "PASS" in result.stdout


def test_pivot_with_bracketed_headers_writes_artifacts(tmp_path: Path) -> None:
    csv_path = _write_csv(tmp_path, "tags.csv", "[/x],[/x],v\nA,B,1\nC,D,2\n")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["pivot", "-i", str(csv_path), "-o", str(out_dir), "-r", "[/x]", "-v", "[/nope]"]
    )

    assert result.exit_code == 0, result.stdout
    assert "last column wins): [/x]" in result.stdout
    assert "[/nope]" in result.stdout
    lines = (out_dir / "pivot_analysis.csv").read_text(encoding="utf-8").split("\n")
    assert lines[0] == '"[/x] / Values","Total","Row Total"'
    assert lines[1:] == ['"B",1,1', '"D",2,2', "Grand Total,3,3"]
    assert json.loads((out_dir / "run_manifest.json").read_text())["status"] == "success"
