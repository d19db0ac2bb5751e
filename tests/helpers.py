from __future__ import annotations

from collections.abc import Iterable

from javasentinel.engine.detection import RuleEngine
from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.tree import CompilationUnit
from javasentinel.engine.tree_sitter import parse_unit
from javasentinel.engine.types import Finding


def parse(source: str, path: str = "Sample.java") -> CompilationUnit:
    return parse_unit(source, path=path)


def run_rule(rule_id: str, source: str, *, path: str = "Sample.java", index: ProjectIndex | None = None) -> list[Finding]:
    unit = parse(source, path)
    return RuleEngine.default().run(unit, enabled_rule_ids=[rule_id], index=index)


def run_project(rule_id: str, sources: Iterable[tuple[str, str]]) -> list[Finding]:
    """Run one rule over several files treated as the whole project."""

    units = [parse(text, path) for path, text in sources]
    index = ProjectIndex.build(units, complete=True)
    engine = RuleEngine.default()
    out: list[Finding] = []
    for unit in units:
        out.extend(engine.run(unit, enabled_rule_ids=[rule_id], index=index))
    return out
