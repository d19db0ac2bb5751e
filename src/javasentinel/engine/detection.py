from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from javasentinel.config import ConfigurationWarning, RulesConfig, compute_enabled_rule_ids
from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.resolver import Resolver
from javasentinel.engine.tree import CompilationUnit, MalformedTree
from javasentinel.engine.types import BatchResult, Finding, Location, UnitReport
from javasentinel.rules.base import BaseRule
from javasentinel.suppressions import NO_SUPPRESSIONS, parse_suppressions

logger = logging.getLogger(__name__)

_RULE_ID_RE = re.compile(r"^[A-Z][0-9]{2,}$")


class RuleInternalError(RuntimeError):
    """An evaluator failed while analysing a unit; isolated to that evaluator."""

    def __init__(self, rule_id: str, path: str | None, cause: BaseException) -> None:
        super().__init__(f"rule {rule_id} failed on {path or '<unit>'}: {type(cause).__name__}: {cause}")
        self.rule_id = rule_id
        self.path = path
        self.cause = cause


class RuleEngine:
    """
    Holds rule evaluators and runs them over compilation units.

    Evaluators are independent: each one sees the same read-only unit,
    resolver and index, and a failure in one never affects the others.
    """

    def __init__(self, rules: Iterable[BaseRule] = ()) -> None:
        self._rules: dict[str, BaseRule] = {}
        self._lock = threading.Lock()
        for rule in rules:
            self.register(rule)

    @classmethod
    def default(cls) -> RuleEngine:
        from javasentinel.rules.registry import all_rules

        return cls(all_rules())

    def register(self, rule: BaseRule) -> None:
        rule_id = rule.meta.rule_id
        if not _RULE_ID_RE.match(rule_id):
            raise ValueError(f"Rule id must match {_RULE_ID_RE.pattern}: {rule_id!r}")
        with self._lock:
            if rule_id in self._rules:
                raise ValueError(f"Duplicate rule id: {rule_id}")
            self._rules[rule_id] = rule

    @property
    def rules(self) -> tuple[BaseRule, ...]:
        with self._lock:
            return tuple(self._rules[k] for k in sorted(self._rules))

    def run(
        self,
        unit: CompilationUnit,
        resolver: Resolver | None = None,
        enabled_rule_ids: Iterable[str] | None = None,
        *,
        index: ProjectIndex | None = None,
        settings: RulesConfig | None = None,
    ) -> list[Finding]:
        """Run every enabled evaluator over `unit` and return ordered, deduplicated findings."""

        selected = self._select(enabled_rule_ids, settings)
        findings, _errors = self._run(unit, resolver, selected, index=index, settings=settings)
        return findings

    def run_batch(
        self,
        units: Iterable[CompilationUnit],
        enabled_rule_ids: Iterable[str] | None = None,
        *,
        index: ProjectIndex | None = None,
        settings: RulesConfig | None = None,
        complete: bool = False,
        workers: int = 1,
        cancel: threading.Event | None = None,
    ) -> BatchResult:
        """
        Analyse many units, optionally on a thread pool.

        The project index and the rule selection are resolved once and shared
        read-only. `cancel` is checked before each unit starts; units not
        started are reported as skipped. A batch always returns a report for
        every unit.
        """

        unit_list = list(units)
        if index is None:
            index = ProjectIndex.build(unit_list, complete=complete)
        selected = self._select(enabled_rule_ids, settings)

        def work(unit: CompilationUnit) -> UnitReport:
            if cancel is not None and cancel.is_set():
                return UnitReport(path=unit.path, skipped=True)
            try:
                findings, errors = self._run(unit, None, selected, index=index, settings=settings)
            except MalformedTree as exc:
                logger.warning("skipping malformed unit %s: %s", unit.path, exc)
                return UnitReport(path=unit.path, error=str(exc))
            return UnitReport(path=unit.path, findings=tuple(findings), partial=bool(errors))

        if workers <= 1 or len(unit_list) <= 1:
            reports = [work(unit) for unit in unit_list]
        else:
            with ThreadPoolExecutor(max_workers=min(workers, len(unit_list))) as executor:
                reports = list(executor.map(work, unit_list))

        reports.sort(key=lambda r: r.path or "")
        return BatchResult(units=tuple(reports), cancelled=any(r.skipped for r in reports))

    # --- internals ---------------------------------------------------------

    def _select(self, enabled_rule_ids: Iterable[str] | None, settings: RulesConfig | None) -> list[BaseRule]:
        rules = self.rules
        available = {r.meta.rule_id for r in rules}
        if enabled_rule_ids is None:
            wanted = set(available)
        else:
            wanted = {rule_id.strip().upper() for rule_id in enabled_rule_ids}
            for rule_id in sorted(wanted - available):
                logger.warning("%s", ConfigurationWarning(f"ignoring unknown rule id: {rule_id}"))
        if settings is not None:
            wanted &= compute_enabled_rule_ids(settings, available_rule_ids=available)
        return [r for r in rules if r.meta.rule_id in wanted]

    def _run(
        self,
        unit: CompilationUnit,
        resolver: Resolver | None,
        selected: list[BaseRule],
        *,
        index: ProjectIndex | None,
        settings: RulesConfig | None,
    ) -> tuple[list[Finding], list[RuleInternalError]]:
        if index is None:
            index = resolver.index if resolver is not None else ProjectIndex.build([unit])
        if resolver is None:
            resolver = Resolver(unit, index)

        suppressions = parse_suppressions(unit.source) if unit.source else NO_SUPPRESSIONS
        findings: list[Finding] = []
        errors: list[RuleInternalError] = []
        for rule in selected:
            category = rule.meta.category
            try:
                produced = rule.evaluate(unit, resolver, index)
            except Exception as exc:  # noqa: BLE001
                error = RuleInternalError(rule.meta.rule_id, unit.path, exc)
                logger.warning("%s", error)
                logger.debug("rule %s traceback", rule.meta.rule_id, exc_info=exc)
                errors.append(error)
                produced = [_internal_error_finding(unit, error)]
            else:
                produced = _apply_overrides(settings, produced)
            findings.extend(
                f
                for f in produced
                if not suppressions.covers(f.rule_id, category, line=f.location.start_line)
            )

        return _ordered(findings), errors


def _internal_error_finding(unit: CompilationUnit, error: RuleInternalError) -> Finding:
    return Finding(
        rule_id=error.rule_id,
        severity="info",
        message=f"Rule {error.rule_id} could not analyse this unit ({type(error.cause).__name__}: {error.cause}).",
        location=Location(path=unit.path),
        confidence="low",
    )


def _apply_overrides(settings: RulesConfig | None, findings: list[Finding]) -> list[Finding]:
    if settings is None:
        return findings
    out: list[Finding] = []
    for finding in findings:
        severity = settings.severity_for(finding.rule_id)
        out.append(replace(finding, severity=severity) if severity is not None else finding)
    return out


def _ordered(findings: list[Finding]) -> list[Finding]:
    unique = list(dict.fromkeys(findings))
    unique.sort(key=Finding.sort_key)
    return unique
