from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.resolver import Resolver
from javasentinel.engine.tree import CompilationUnit, Node, Span
from javasentinel.engine.types import Category, Confidence, Finding, Location, Severity


@dataclass(frozen=True, slots=True)
class RuleMeta:
    rule_id: str
    title: str
    description: str
    default_severity: Severity
    category: Category


class BaseRule(ABC):
    """
    Capability contract for rule evaluators.

    Evaluators read the unit, resolver and index and return findings; they
    must not mutate any of them. The engine isolates failures per evaluator.
    """

    meta: RuleMeta

    @abstractmethod
    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        raise NotImplementedError

    def _finding(
        self,
        unit: CompilationUnit,
        at: Node | Span,
        *,
        message: str,
        suggestion: str | None = None,
        severity: Severity | None = None,
        confidence: Confidence = "high",
    ) -> Finding:
        span = at if isinstance(at, Span) else at.span
        return Finding(
            rule_id=self.meta.rule_id,
            severity=severity or self.meta.default_severity,
            message=message,
            location=Location.from_span(unit.path, span),
            suggestion=suggestion,
            confidence=confidence,
        )
