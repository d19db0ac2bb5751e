from __future__ import annotations

from pathlib import Path

import pytest

from javasentinel.audit import audit_path
from javasentinel.rules.plugins import PluginLoadError, load_plugin_rules

PLUGIN_SOURCE = """
from __future__ import annotations

from javasentinel.engine.types import Finding
from javasentinel.rules.base import BaseRule, RuleMeta


class X99NoTodo(BaseRule):
    meta = RuleMeta(
        rule_id="X99",
        title="No TODO comments",
        description="A test plugin rule.",
        default_severity="warning",
        category="style",
    )

    def evaluate(self, unit, resolver, index) -> list[Finding]:
        source = unit.source or ""
        if "TODO" not in source:
            return []
        line = source[: source.index("TODO")].count("\\n") + 1
        return [self._finding(unit, unit.types[0], message=f"TODO on line {line}")]


def javasentinel_rules() -> list[BaseRule]:
    return [X99NoTodo()]
"""


def test_plugin_rules_are_loaded_and_reported(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "my_plugin.py").write_text(PLUGIN_SOURCE.lstrip(), encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    (tmp_path / "pyproject.toml").write_text(
        """
[tool.javasentinel]
plugins = ["my_plugin"]
""".lstrip(),
        encoding="utf-8",
    )
    src = tmp_path / "src" / "App.java"
    src.parent.mkdir(parents=True, exist_ok=True)
    src.write_text("class App {\n    // TODO remove\n}\n", encoding="utf-8")

    result = audit_path(tmp_path, workers=1)
    hits = [f for f in result.findings if f.rule_id == "X99"]
    assert [f.message for f in hits] == ["TODO on line 2"]
    assert hits[0].location.path == "src/App.java"


def test_load_plugin_rules_missing_module_raises() -> None:
    with pytest.raises(PluginLoadError):
        load_plugin_rules(("this_module_should_not_exist_12345",))


def test_load_plugin_rules_missing_exports_raises(tmp_path, monkeypatch) -> None:
    (tmp_path / "no_exports.py").write_text("x = 1\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(PluginLoadError, match="javasentinel_rules"):
        load_plugin_rules(("no_exports",))


def test_load_plugin_rules_missing_attr_raises(tmp_path, monkeypatch) -> None:
    (tmp_path / "simple_plugin.py").write_text("RULES = []\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    assert load_plugin_rules(("simple_plugin",)) == []
    with pytest.raises(PluginLoadError):
        load_plugin_rules(("simple_plugin:missing_attr",))


def test_load_plugin_rules_rejects_non_rule_items(tmp_path, monkeypatch) -> None:
    (tmp_path / "bad_rules.py").write_text("RULES = [1, 2, 3]\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(PluginLoadError, match="BaseRule instances"):
        load_plugin_rules(("bad_rules",))


def test_load_plugin_rules_rejects_unsupported_export_type(tmp_path, monkeypatch) -> None:
    (tmp_path / "bad_export.py").write_text("javasentinel_rules = 123\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(PluginLoadError, match="Unsupported plugin export type"):
        load_plugin_rules(("bad_export",))


def test_load_plugin_rules_instantiates_rule_classes(tmp_path, monkeypatch) -> None:
    source = PLUGIN_SOURCE.replace("def javasentinel_rules() -> list[BaseRule]:\n    return [X99NoTodo()]\n", "")
    (tmp_path / "class_plugin.py").write_text(source.lstrip(), encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    (rule,) = load_plugin_rules(("class_plugin:X99NoTodo",))
    assert rule.meta.rule_id == "X99"
    assert [r.meta.rule_id for r in load_plugin_rules((" class_plugin:X99NoTodo ", ""))] == ["X99"]
