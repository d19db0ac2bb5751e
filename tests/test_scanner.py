from __future__ import annotations

from pathlib import Path

import pytest

from javasentinel.audit import AuditCallbacks, audit_path
from javasentinel.engine.tree import CompilationUnit
from javasentinel.scanner import (
    DEFAULT_MAX_WORKERS,
    discover_files,
    load_units,
    prepare_target,
    relative_path,
    resolve_worker_count,
    worker_count_from_env,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, 3),
        ("", 3),
        ("auto", 3),
        ("0", 3),
        ("-2", 3),
        ("nope", 3),
        ("5", 5),
        ("500", DEFAULT_MAX_WORKERS),
    ],
)
def test_resolve_worker_count(raw: str | None, expected: int) -> None:
    assert resolve_worker_count(raw, default=3) == expected


def test_worker_count_from_env(monkeypatch) -> None:
    monkeypatch.setenv("JAVASENTINEL_WORKERS", "7")
    assert worker_count_from_env(default=2) == 7
    monkeypatch.delenv("JAVASENTINEL_WORKERS")
    assert worker_count_from_env(default=2) == 2


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_discover_files_skips_build_dirs_and_ignored_paths(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.javasentinel.ignore]\npaths = ["src/generated/", "*Test.java"]\n',
        encoding="utf-8",
    )
    keep = _write(tmp_path / "src" / "main" / "App.java", "class App { }")
    _write(tmp_path / "src" / "main" / "AppTest.java", "class AppTest { }")
    _write(tmp_path / "src" / "generated" / "Gen.java", "class Gen { }")
    _write(tmp_path / "target" / "classes" / "Out.java", "class Out { }")
    _write(tmp_path / "build" / "Tmp.java", "class Tmp { }")
    _write(tmp_path / "src" / "main" / "notes.txt", "not java")

    target = prepare_target(tmp_path)
    assert target.project_root == tmp_path.resolve()
    assert discover_files(target) == [keep.resolve()]


def test_single_file_target_uses_nearest_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[tool.javasentinel]\nworkers = 2\n", encoding="utf-8")
    file = _write(tmp_path / "src" / "App.java", "class App { }")

    target = prepare_target(file)
    assert target.project_root == tmp_path.resolve()
    assert target.config.workers == 2
    assert discover_files(target) == [file.resolve()]
    assert relative_path(file, tmp_path) == "src/App.java"


def test_load_units_reports_parse_failures(tmp_path: Path) -> None:
    good = _write(tmp_path / "Good.java", "class Good { }")
    bad = _write(tmp_path / "Bad.java", "class Bad { void f( { }")
    done: list[Path] = []

    loaded = load_units([bad, good], project_root=tmp_path, workers=2, on_path_done=done.append)

    assert [u.path for u in loaded.units] == ["Good.java"]
    assert all(isinstance(u, CompilationUnit) for u in loaded.units)
    (failure,) = loaded.failures
    assert failure.path == "Bad.java"
    assert failure.error is not None and "syntax error" in failure.error
    assert done == [bad, good]


def test_audit_path_analyses_valid_units_despite_broken_ones(tmp_path: Path) -> None:
    _write(tmp_path / "src" / "Point.java", "class Point { public boolean equals(Object o) { return true; } }")
    _write(tmp_path / "src" / "Broken.java", "class Broken {")
    ready: list[int] = []

    result = audit_path(tmp_path, workers=1, callbacks=AuditCallbacks(on_units_ready=ready.append))

    assert ready == [1]
    assert [r.path for r in result.result.units] == ["src/Broken.java", "src/Point.java"]
    assert [r.path for r in result.result.failed] == ["src/Broken.java"]
    assert [f.rule_id for f in result.findings] == ["G10"]


def test_audit_parallel_matches_serial(tmp_path: Path, monkeypatch) -> None:
    for name in ("Alpha", "Beta", "Gamma", "Delta"):
        _write(
            tmp_path / "src" / f"{name}.java",
            f"""
import java.util.Vector;

public class {name} {{
    private Vector<String> items = new Vector<>();

    public String first() {{
        String x = System.getenv("HOME");
        return x.trim();
    }}
}}
""",
        )

    monkeypatch.setenv("JAVASENTINEL_WORKERS", "1")
    serial = audit_path(tmp_path)
    monkeypatch.setenv("JAVASENTINEL_WORKERS", "4")
    parallel = audit_path(tmp_path)

    assert serial.findings
    assert serial.findings == parallel.findings
    assert serial.result == parallel.result


def test_audit_scope_decides_index_completeness(tmp_path: Path) -> None:
    _write(tmp_path / "Port.java", "interface Port { void send(); }")
    _write(tmp_path / "Adapter.java", "class Adapter implements Port { public void send() { } }")

    whole = [f for f in audit_path(tmp_path).findings if f.rule_id == "G09"]
    assert [(f.severity, f.confidence) for f in whole] == [("warning", "high")]

    single = audit_path(tmp_path / "Port.java").findings
    assert [f for f in single if f.rule_id == "G09"] == []


def test_maven_module_root_and_module_descriptor(tmp_path: Path) -> None:
    module = tmp_path / "service"
    (module / "pom.xml").parent.mkdir(parents=True)
    (module / "pom.xml").write_text("<project/>", encoding="utf-8")
    app = _write(module / "src" / "main" / "java" / "App.java", "class App { }")
    _write(module / "src" / "main" / "java" / "module-info.java", "module service { }")

    target = prepare_target(app.parent)
    assert target.project_root == module.resolve()
    assert discover_files(target) == [app.resolve()]
    assert relative_path(app, target.project_root) == "src/main/java/App.java"


def test_bom_prefixed_source_parses(tmp_path: Path) -> None:
    path = tmp_path / "Bom.java"
    path.write_bytes("\ufeffclass Bom { }".encode())

    loaded = load_units([path], project_root=tmp_path)
    assert loaded.failures == ()
    assert [t.name for t in loaded.units[0].types] == ["Bom"]
