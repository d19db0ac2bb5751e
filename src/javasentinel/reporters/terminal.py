from __future__ import annotations

from collections import defaultdict
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from javasentinel import __version__
from javasentinel.audit import AuditResult
from javasentinel.engine.types import Finding, UnitReport

_SEVERITY_ICON = {"error": "✖", "warning": "⚠", "info": "ℹ"}
_SEVERITY_STYLE = {"error": "bold red", "warning": "yellow", "info": "dim"}


def render_terminal(audit: AuditResult, *, console: Console, show_details: bool = True) -> None:
    project_root = audit.target.project_root
    header = Text()
    header.append("JavaSentinel ", style="bold")
    header.append(f"v{__version__}", style="dim")
    header.append(" · Java review guidelines", style="dim")

    console.print(
        Panel(
            header,
            subtitle=f"Scanned {len(audit.files)} files",
            border_style="cyan",
        )
    )

    for warning in audit.warnings:
        console.print(Text(f"config: {warning}", style="yellow"))

    if not show_details:
        _print_summary(audit, console=console)
        return

    by_file: dict[str, list[Finding]] = defaultdict(list)
    for finding in audit.findings:
        by_file[finding.location.path or "<unit>"].append(finding)

    for file_path in sorted(by_file):
        console.print(Text(file_path, style="bold"))
        file_lines = _read_lines(project_root / file_path)
        for finding in sorted(by_file[file_path], key=_sort_key):
            _print_finding(console, finding, file_lines=file_lines)
        console.print()

    failed = audit.result.failed
    if failed:
        console.print(Text("Not analysed", style="bold red"))
        for report in failed:
            _print_failure(console, report)
        console.print()

    _print_summary(audit, console=console)


def _print_finding(console: Console, finding: Finding, *, file_lines: list[str]) -> None:
    icon = _SEVERITY_ICON.get(finding.severity, "•")
    style = _SEVERITY_STYLE.get(finding.severity, "")
    location = finding.location

    loc = ""
    if location.start_line is not None:
        loc = f"{location.start_line}"
        if location.start_col is not None:
            loc += f":{location.start_col}"

    line = Text()
    line.append(f"  {icon} ", style=style)
    line.append(finding.rule_id, style="bold")
    if loc:
        line.append(f"  ({loc})", style="dim")
    line.append(f"  {finding.message}")
    if finding.confidence == "low":
        line.append("  [low confidence]", style="dim italic")
    console.print(line)

    if location.start_line is not None:
        idx = location.start_line - 1
        if 0 <= idx < len(file_lines):
            console.print(f"     {location.start_line:>4} │ {file_lines[idx].rstrip()}", style="dim")

    if finding.suggestion:
        first, *rest = finding.suggestion.splitlines()
        console.print(f"     → {first}", style="dim")
        for extra in rest:
            console.print(f"       {extra}", style="dim")


def _print_failure(console: Console, report: UnitReport) -> None:
    line = Text()
    line.append("  ✖ ", style="bold red")
    line.append(report.path or "<unit>", style="bold")
    line.append(f"  {report.error}")
    console.print(line)


def _print_summary(audit: AuditResult, *, console: Console) -> None:
    counts = {"error": 0, "warning": 0, "info": 0}
    for finding in audit.findings:
        counts[finding.severity] = counts.get(finding.severity, 0) + 1
    partial = sum(1 for r in audit.result.units if r.partial)

    console.print(Text("─" * 60, style="dim"))
    console.print(
        Text(
            f"Findings: {len(audit.findings)} "
            f"({counts['error']} errors, {counts['warning']} warnings, {counts['info']} info)",
            style="bold",
        )
    )
    if audit.result.failed or partial:
        console.print(Text(f"Units: {len(audit.result.failed)} failed, {partial} partially analysed", style="dim"))
    if audit.result.cancelled:
        console.print(Text("Scan cancelled before every unit was analysed.", style="yellow"))
    console.print(Text("─" * 60, style="dim"))


def _sort_key(finding: Finding) -> tuple[int, int, str]:
    severity_rank = {"error": 0, "warning": 1, "info": 2}.get(finding.severity, 3)
    line = finding.location.start_line or 10**9
    return severity_rank, line, finding.rule_id


def _read_lines(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return []
