from __future__ import annotations

from pathlib import Path

import pytest

from javasentinel.config import (
    ConfigError,
    RulesConfig,
    check_rule_ids,
    compute_enabled_rule_ids,
    load_config,
    parse_config_table,
    path_is_ignored,
)
from javasentinel.rules.registry import rule_ids


def test_load_config_defaults_without_pyproject(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    assert config.rules.enable == ("all",)
    assert config.plugins == ()
    assert config.workers is None


def test_load_config_reads_tool_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
[tool.javasentinel]
workers = 4
plugins = ["acme_rules"]

[tool.javasentinel.rules]
enable = ["safety", "G06"]
disable = ["G04"]
severity_overrides = { g03 = "warn" }

[tool.javasentinel.rules.G05]
enabled = false

[tool.javasentinel.rules.G06]
severity = "error"

[tool.javasentinel.ignore]
paths = ["generated/", "*Test.java"]
""",
        encoding="utf-8",
    )
    config = load_config(tmp_path)

    assert config.workers == 4
    assert config.plugins == ("acme_rules",)
    assert config.ignore.paths == ("generated/", "*Test.java")
    assert config.rules.severity_for("G03") == "warning"
    assert config.rules.severity_for("G06") == "error"
    assert config.rules.severity_for("G01") is None
    assert compute_enabled_rule_ids(config.rules, available_rule_ids=rule_ids()) == {"G03", "G06"}


def test_invalid_toml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[tool.javasentinel\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path)


@pytest.mark.parametrize(
    ("table", "message"),
    [
        ({"workers": 0}, "workers"),
        ({"workers": True}, "workers"),
        ({"plugins": "acme"}, "plugins"),
        ({"rules": {"enable": ["nonsense"]}}, "unknown rule group"),
        ({"rules": {"severity_overrides": {"G03": "fatal"}}}, "must be one of"),
        ({"rules": {"G03": {"enabled": "yes"}}}, "must be a boolean"),
        ({"ignore": ["x"]}, "ignore"),
    ],
)
def test_parse_config_table_rejects_invalid_values(table: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        parse_config_table(table)


def test_enable_accepts_comma_separated_string() -> None:
    config = parse_config_table({"rules": {"enable": "style, g10"}})
    assert compute_enabled_rule_ids(config.rules, available_rule_ids=rule_ids()) == {"G01", "G02", "G10"}


def test_unknown_rule_ids_only_warn() -> None:
    rules = RulesConfig(enable=("G01", "Z42"), severity_overrides={"Q10": "info"})
    warnings = check_rule_ids(rules, available_rule_ids=rule_ids())
    assert [str(w) for w in warnings] == [
        "unknown rule id in configuration: Q10",
        "unknown rule id in configuration: Z42",
    ]
    assert compute_enabled_rule_ids(rules, available_rule_ids=rule_ids()) == {"G01"}


def test_path_is_ignored_patterns(tmp_path: Path) -> None:
    patterns = ["generated/", "*Test.java", "src/**/legacy/*.java"]
    assert path_is_ignored(tmp_path / "generated" / "A.java", project_root=tmp_path, ignore_patterns=patterns)
    assert path_is_ignored(tmp_path / "src" / "FooTest.java", project_root=tmp_path, ignore_patterns=patterns)
    assert path_is_ignored(
        tmp_path / "src" / "main" / "legacy" / "Old.java", project_root=tmp_path, ignore_patterns=patterns
    )
    assert not path_is_ignored(tmp_path / "src" / "Foo.java", project_root=tmp_path, ignore_patterns=patterns)
    assert not path_is_ignored(Path("/elsewhere/A.java"), project_root=tmp_path, ignore_patterns=patterns)


def test_selectors_are_canonicalised_and_groups_can_be_disabled() -> None:
    config = parse_config_table({"rules": {"enable": ["ALL", "g03", "G03"], "disable": "Design; g01"}})
    assert config.rules.enable == ("all", "G03")
    assert config.rules.disable == ("design", "G01")
    assert compute_enabled_rule_ids(config.rules, available_rule_ids=rule_ids()) == {"G02", "G03", "G04", "G05"}
