from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType

from javasentinel.config import CATEGORY_RULES
from javasentinel.rules.base import BaseRule, RuleMeta
from javasentinel.rules.design import builtin_design_rules
from javasentinel.rules.safety import builtin_safety_rules
from javasentinel.rules.style import builtin_style_rules

_RULE_ID_RE = re.compile(r"^[A-Z][0-9]{2,}$")

# Plugin rules installed for this process; bumping the generation drops every
# cached catalogue built from an older set.
_plugin_rules: tuple[BaseRule, ...] = ()
_generation = 0


@dataclass(frozen=True, slots=True)
class _Catalog:
    rules: tuple[BaseRule, ...]
    by_id: Mapping[str, BaseRule]
    meta: Mapping[str, RuleMeta]


def _check_rule_id(rule_id: str) -> None:
    if not _RULE_ID_RE.match(rule_id):
        raise RuntimeError(f"Rule id must be an uppercase letter followed by digits: {rule_id!r}")


@lru_cache(maxsize=1)
def builtin_rules() -> tuple[BaseRule, ...]:
    """The ten guideline evaluators, ordered G01..G10."""

    rules = (*builtin_style_rules(), *builtin_safety_rules(), *builtin_design_rules())
    by_id: dict[str, BaseRule] = {}
    for rule in rules:
        meta = rule.meta
        _check_rule_id(meta.rule_id)
        if meta.rule_id in by_id:  # pragma: no cover
            raise RuntimeError(f"Duplicate rule id: {meta.rule_id}")
        if meta.rule_id not in CATEGORY_RULES.get(meta.category, ()):  # pragma: no cover
            raise RuntimeError(f"Rule {meta.rule_id} is missing from the {meta.category!r} config group")
        by_id[meta.rule_id] = rule
    return tuple(by_id[rule_id] for rule_id in sorted(by_id))


def set_extra_rules(rules: Iterable[BaseRule]) -> None:
    """
    Install plugin rules for this process, replacing any installed before.

    One scan runs per CLI process, so a process-wide set is enough; it also
    lets reporters and `explain` find metadata for plugin rule ids. Passing
    an empty iterable restores the built-in catalogue.
    """

    global _plugin_rules, _generation  # noqa: PLW0603

    reserved = {rule.meta.rule_id for rule in builtin_rules()}
    accepted: dict[str, BaseRule] = {}
    for rule in rules:
        rule_id = rule.meta.rule_id
        _check_rule_id(rule_id)
        if rule_id in reserved:
            raise RuntimeError(f"Plugin rule id conflicts with built-in rule id: {rule_id}")
        if rule_id in accepted:
            raise RuntimeError(f"Duplicate plugin rule id: {rule_id}")
        accepted[rule_id] = rule

    _plugin_rules = tuple(accepted.values())
    _generation += 1


@lru_cache(maxsize=4)
def _catalog(generation: int) -> _Catalog:
    del generation  # cache key only
    by_id = {rule.meta.rule_id: rule for rule in (*builtin_rules(), *_plugin_rules)}
    ordered = tuple(by_id[rule_id] for rule_id in sorted(by_id))
    return _Catalog(
        rules=ordered,
        by_id=MappingProxyType(by_id),
        meta=MappingProxyType({rule.meta.rule_id: rule.meta for rule in ordered}),
    )


def all_rules() -> tuple[BaseRule, ...]:
    """Built-in plus plugin rules, ordered by id."""

    return _catalog(_generation).rules


def rule_ids() -> set[str]:
    return set(_catalog(_generation).by_id)


def rule_meta_by_id() -> Mapping[str, RuleMeta]:
    return _catalog(_generation).meta


def rule_by_id(rule_id: str) -> BaseRule | None:
    return _catalog(_generation).by_id.get(rule_id)
