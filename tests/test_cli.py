from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from javasentinel import __version__
from javasentinel.cli import app

POINT = """
class Point {
    private int x;

    @Override
    public boolean equals(Object o) {
        return o instanceof Point;
    }
}
"""


def _project(tmp_path: Path, config: str | None = None) -> Path:
    if config is not None:
        (tmp_path / "pyproject.toml").write_text(config.lstrip(), encoding="utf-8")
    src = tmp_path / "src"
    src.mkdir(parents=True, exist_ok=True)
    (src / "Point.java").write_text(POINT, encoding="utf-8")
    return tmp_path


def test_version_flag() -> None:
    res = CliRunner().invoke(app, ["--version"])
    assert res.exit_code == 0
    assert res.stdout.strip() == __version__


def test_scan_json_exits_1_on_error_findings(tmp_path: Path) -> None:
    root = _project(tmp_path)
    res = CliRunner().invoke(app, ["scan", str(root), "--format", "json"])
    assert res.exit_code == 1, res.output

    payload = json.loads(res.stdout)
    assert payload["schema_version"] == 1
    assert payload["files_scanned"] == 1
    assert payload["cancelled"] is False
    g10 = [f for f in payload["findings"] if f["rule_id"] == "G10"]
    assert len(g10) == 1
    assert g10[0]["severity"] == "error"
    assert g10[0]["location"] == {
        "path": "src/Point.java",
        "start_line": 6,
        "start_col": 20,
        "end_line": 6,
        "end_col": 26,
    }


def test_scan_fail_on_threshold(tmp_path: Path) -> None:
    root = _project(tmp_path)
    runner = CliRunner()
    assert runner.invoke(app, ["scan", str(root), "--format", "json", "--fail-on", "never"]).exit_code == 0

    _project(tmp_path, '[tool.javasentinel.rules]\nseverity_overrides = { G10 = "warning" }\n')
    assert runner.invoke(app, ["scan", str(root), "--format", "json"]).exit_code == 0
    assert runner.invoke(app, ["scan", str(root), "--format", "json", "--fail-on", "warn"]).exit_code == 1

    _project(tmp_path, '[tool.javasentinel.rules]\ndisable = ["G10"]\n')
    assert runner.invoke(app, ["scan", str(root), "--format", "json", "--fail-on", "info"]).exit_code == 0


def test_scan_terminal_output(tmp_path: Path) -> None:
    root = _project(tmp_path)
    res = CliRunner().invoke(app, ["--no-progress", "scan", str(root), "--fail-on", "never"])
    assert res.exit_code == 0, res.output
    assert "src/Point.java" in res.stdout
    assert "G10" in res.stdout


def test_scan_terminal_lists_units_that_failed_to_parse(tmp_path: Path) -> None:
    root = _project(tmp_path)
    (root / "src" / "Broken.java").write_text("class Broken {", encoding="utf-8")
    res = CliRunner().invoke(app, ["--quiet", "scan", str(root), "--fail-on", "never"])
    assert res.exit_code == 0, res.output
    assert "Units: 1 failed" in res.stdout

    verbose = CliRunner().invoke(app, ["--no-progress", "scan", str(root), "--fail-on", "never"])
    assert "Not analysed" in verbose.stdout
    assert "src/Broken.java" in verbose.stdout


def test_scan_rejects_unknown_format(tmp_path: Path) -> None:
    res = CliRunner().invoke(app, ["scan", str(_project(tmp_path)), "--format", "xml"])
    assert res.exit_code == 2
    assert "Unsupported format" in res.output


def test_invalid_config_exits_2(tmp_path: Path) -> None:
    root = _project(tmp_path, "[tool.javasentinel]\nworkers = 0\n")
    res = CliRunner().invoke(app, ["scan", str(root)])
    assert res.exit_code == 2
    assert "Invalid configuration" in res.output


def test_missing_plugin_exits_2(tmp_path: Path) -> None:
    root = _project(tmp_path, '[tool.javasentinel]\nplugins = ["no_such_plugin_98765"]\n')
    res = CliRunner().invoke(app, ["rules", str(root)])
    assert res.exit_code == 2
    assert "Failed to load plugins" in res.output


def test_rules_command_json_lists_builtins(tmp_path: Path) -> None:
    res = CliRunner().invoke(app, ["rules", str(tmp_path), "--format", "json"])
    assert res.exit_code == 0, res.output

    rows = json.loads(res.stdout)
    assert [row["rule_id"] for row in rows] == [f"G{n:02d}" for n in range(1, 11)]
    assert all(row["enabled"] for row in rows)
    assert {row["category"] for row in rows} == {"style", "safety", "design"}


def test_rules_command_enabled_only_respects_config(tmp_path: Path) -> None:
    _project(tmp_path, '[tool.javasentinel.rules]\nenable = ["safety"]\n')
    res = CliRunner().invoke(app, ["rules", str(tmp_path), "--enabled-only", "--format", "json"])
    assert res.exit_code == 0, res.output
    assert [row["rule_id"] for row in json.loads(res.stdout)] == ["G03", "G04", "G05"]


def test_explain_json(tmp_path: Path) -> None:
    res = CliRunner().invoke(app, ["explain", "g05", "--path", str(tmp_path), "--format", "json"])
    assert res.exit_code == 0, res.output

    payload = json.loads(res.stdout)
    assert payload["rule_id"] == "G05"
    assert payload["category"] == "safety"
    assert payload["example"]["language"] == "java"
    assert "catch" in payload["example"]["bad"]


def test_explain_terminal_and_unknown_rule(tmp_path: Path) -> None:
    runner = CliRunner()
    res = runner.invoke(app, ["explain", "G10", "--path", str(tmp_path)])
    assert res.exit_code == 0, res.output
    assert "equals/hashCode pairing" in res.stdout
    assert "javasentinel: disable=G10" in res.stdout

    missing = runner.invoke(app, ["explain", "Q42", "--path", str(tmp_path)])
    assert missing.exit_code == 2
    assert "Unknown rule id" in missing.output


def test_scan_rules_option_narrows_selection(tmp_path: Path) -> None:
    root = _project(tmp_path)
    runner = CliRunner()

    style_only = runner.invoke(app, ["scan", str(root), "--format", "json", "--rules", "style", "--workers", "64"])
    assert style_only.exit_code == 0, style_only.output
    assert {f["rule_id"] for f in json.loads(style_only.stdout)["findings"]} <= {"G01", "G02"}

    g10 = runner.invoke(app, ["scan", str(root), "--format", "json", "--rules", "g10"])
    assert g10.exit_code == 1
    assert [f["rule_id"] for f in json.loads(g10.stdout)["findings"]] == ["G10"]

    bogus = runner.invoke(app, ["scan", str(root), "--rules", "bogus"])
    assert bogus.exit_code == 2
