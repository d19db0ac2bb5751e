from __future__ import annotations

import pytest

from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.resolver import Resolver
from javasentinel.engine.tree import CompilationUnit
from javasentinel.engine.types import Finding
from javasentinel.rules.base import BaseRule, RuleMeta
from javasentinel.rules.examples import EXAMPLES
from javasentinel.rules.registry import all_rules, builtin_rules, rule_by_id, rule_ids, rule_meta_by_id, set_extra_rules


class _PluginRule(BaseRule):
    meta = RuleMeta(
        rule_id="Z99",
        title="Plugin rule",
        description="plugin",
        default_severity="info",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        return []


def test_builtin_rules_cover_the_ten_guidelines() -> None:
    ids = [r.meta.rule_id for r in builtin_rules()]
    assert ids == [f"G{n:02d}" for n in range(1, 11)]
    categories = {r.meta.rule_id: r.meta.category for r in builtin_rules()}
    assert [k for k, v in categories.items() if v == "style"] == ["G01", "G02"]
    assert [k for k, v in categories.items() if v == "safety"] == ["G03", "G04", "G05"]
    assert set(EXAMPLES) == set(ids)


def test_rule_registry_caches_invalidate_when_plugins_change() -> None:
    assert rule_by_id("Z99") is None
    assert "Z99" not in rule_meta_by_id()

    set_extra_rules([_PluginRule()])
    assert rule_by_id("Z99") is not None
    assert "Z99" in rule_meta_by_id()
    assert "Z99" in rule_ids()
    assert all_rules()[-1].meta.rule_id == "Z99"

    set_extra_rules([])
    assert rule_by_id("Z99") is None
    assert "Z99" not in rule_meta_by_id()


def test_plugin_rules_cannot_shadow_builtins() -> None:
    class _Clash(_PluginRule):
        meta = RuleMeta(
            rule_id="G03",
            title="Clash",
            description="clash",
            default_severity="info",
            category="safety",
        )

    with pytest.raises(RuntimeError, match="conflicts with built-in rule id: G03"):
        set_extra_rules([_Clash()])
