from __future__ import annotations

import json
from typing import Any

from javasentinel import __version__
from javasentinel.audit import AuditResult
from javasentinel.engine.types import Finding, UnitReport

REPORT_SCHEMA_VERSION = 1


def render_json(audit: AuditResult) -> str:
    result = audit.result
    payload = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "tool": {"name": "JavaSentinel", "version": __version__},
        "files_scanned": len(audit.files),
        "cancelled": result.cancelled,
        "warnings": [str(w) for w in audit.warnings],
        "findings": [finding_to_dict(f) for f in result.findings],
        "units": [_unit_to_dict(r) for r in result.units if r.error is not None or r.partial or r.skipped],
    }
    return json.dumps(payload, indent=2, sort_keys=False)


def finding_to_dict(finding: Finding) -> dict[str, Any]:
    loc = finding.location
    return {
        "rule_id": finding.rule_id,
        "severity": finding.severity,
        "confidence": finding.confidence,
        "message": finding.message,
        "suggestion": finding.suggestion,
        "location": {
            "path": loc.path,
            "start_line": loc.start_line,
            "start_col": loc.start_col,
            "end_line": loc.end_line,
            "end_col": loc.end_col,
        },
    }


def _unit_to_dict(report: UnitReport) -> dict[str, Any]:
    return {
        "path": report.path,
        "error": report.error,
        "partial": report.partial,
        "skipped": report.skipped,
    }
