from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from javasentinel.engine.tree import Span

Severity = Literal["info", "warning", "error"]
Confidence = Literal["low", "high"]
Category = Literal["style", "safety", "design"]

SEVERITY_ORDER: dict[str, int] = {"info": 0, "warning": 1, "error": 2}


@dataclass(frozen=True, slots=True)
class Location:
    path: str | None = None
    start_line: int | None = None  # 1-based
    start_col: int | None = None  # 1-based
    end_line: int | None = None  # 1-based
    end_col: int | None = None  # 1-based

    @classmethod
    def from_span(cls, path: str | None, span: Span) -> Location:
        if not span.known:
            return cls(path=path)
        return cls(
            path=path,
            start_line=span.start_line,
            start_col=span.start_col,
            end_line=span.end_line,
            end_col=span.end_col,
        )


@dataclass(frozen=True, slots=True)
class Finding:
    rule_id: str
    severity: Severity
    message: str
    location: Location
    suggestion: str | None = None
    confidence: Confidence = "high"

    def sort_key(self) -> tuple[str, int, int, str, str]:
        return (
            self.location.path or "",
            self.location.start_line or 0,
            self.location.start_col or 0,
            self.rule_id,
            self.message,
        )


@dataclass(frozen=True, slots=True)
class UnitReport:
    """Findings for one compilation unit of a batch."""

    path: str | None
    findings: tuple[Finding, ...] = ()
    error: str | None = None
    partial: bool = False
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class BatchResult:
    units: tuple[UnitReport, ...]
    cancelled: bool = False

    @property
    def findings(self) -> tuple[Finding, ...]:
        out: list[Finding] = []
        for report in self.units:
            out.extend(report.findings)
        return tuple(out)

    @property
    def failed(self) -> tuple[UnitReport, ...]:
        return tuple(r for r in self.units if r.error is not None)
