from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import click
import typer
from rich.console import Console

from javasentinel import __version__
from javasentinel.audit import AuditCallbacks, AuditResult, audit_files
from javasentinel.config import ConfigError, RulesConfig, compute_enabled_rule_ids, parse_rule_selectors
from javasentinel.engine.tree_sitter import TreeSitterError
from javasentinel.engine.types import SEVERITY_ORDER
from javasentinel.logging_utils import configure_logging
from javasentinel.reporters.json_reporter import render_json
from javasentinel.reporters.terminal import render_terminal
from javasentinel.rules.base import RuleMeta
from javasentinel.rules.examples import EXAMPLES
from javasentinel.rules.plugins import PluginLoadError, load_plugin_rules
from javasentinel.rules.registry import all_rules, rule_by_id, rule_ids, set_extra_rules
from javasentinel.scanner import DEFAULT_MAX_WORKERS, ScanTarget, discover_files, prepare_target

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="JavaSentinel: rule-based review of Java sources.",
)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("terminal", "json")
FAIL_ON_CHOICES = ("error", "warning", "info", "never")

FormatOption = Annotated[
    str,
    typer.Option("--format", help="Output format: terminal, json.", show_default=True),
]


@dataclass(frozen=True, slots=True)
class _GlobalOptions:
    verbose: bool = False
    quiet: bool = False
    progress: bool = True


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def _main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logs on stderr.")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Summary only, warnings-only logs.")] = False,
    progress: Annotated[
        bool,
        typer.Option("--progress/--no-progress", help="Show a parse progress bar on stderr.", show_default=True),
    ] = True,
) -> None:
    """JavaSentinel CLI."""

    if verbose and quiet:
        raise typer.BadParameter("Choose at most one: --verbose or --quiet.")
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.obj = _GlobalOptions(verbose=verbose, quiet=quiet, progress=progress)


def _global_options() -> _GlobalOptions:
    ctx = click.get_current_context(silent=True)
    obj = ctx.find_object(_GlobalOptions) if ctx is not None else None
    return obj or _GlobalOptions()


def _output_format(value: str) -> str:
    normalized = value.strip().lower()
    if normalized not in OUTPUT_FORMATS:
        raise typer.BadParameter(f"Unsupported format {value!r}. Use: {', '.join(OUTPUT_FORMATS)}.")
    return normalized


def _fail_threshold(value: str) -> str:
    normalized = value.strip().lower()
    normalized = "warning" if normalized == "warn" else normalized
    if normalized not in FAIL_ON_CHOICES:
        raise typer.BadParameter(f"Unsupported --fail-on value. Use: {', '.join(FAIL_ON_CHOICES)}.")
    return normalized


def _prepare(path: Path) -> ScanTarget:
    """Load config and plugins; configuration problems exit with code 2."""

    try:
        target = prepare_target(path)
        set_extra_rules(load_plugin_rules(target.config.plugins))
    except ConfigError as exc:
        err_console.print(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2) from exc
    except PluginLoadError as exc:
        err_console.print(f"Failed to load plugins: {exc}")
        raise typer.Exit(code=2) from exc
    return target


def _selected_rule_ids(raw: str | None) -> set[str] | None:
    """Expand `--rules style,G05` into rule ids; None keeps the configured selection."""

    if raw is None:
        return None
    try:
        selectors = parse_rule_selectors(raw, where="--rules")
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not selectors:
        raise typer.BadParameter("--rules needs at least one rule id or group.")
    return compute_enabled_rule_ids(RulesConfig(enable=selectors), available_rule_ids=rule_ids())


def _run_audit(
    target: ScanTarget,
    *,
    enabled_rule_ids: set[str] | None,
    workers: int | None,
    show_progress: bool,
) -> AuditResult:
    from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

    files = discover_files(target)
    logger.debug("discovered %d Java file(s) under %s", len(files), target.scan_path)

    def audit(callbacks: AuditCallbacks | None = None) -> AuditResult:
        return audit_files(
            target,
            files=files,
            complete=target.scan_path.is_dir(),
            enabled_rule_ids=enabled_rule_ids,
            workers=workers,
            callbacks=callbacks,
        )

    if not show_progress or not files:
        return audit()

    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=err_console,
        transient=True,
    )
    task = progress.add_task("Parsing Java sources", total=len(files))
    with progress:
        return audit(AuditCallbacks(on_unit_parsed=lambda _path: progress.advance(task)))


@app.command()
def scan(
    path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=True,
            resolve_path=True,
            help="Java file or directory to scan (default: current directory).",
        ),
    ] = Path("."),
    output_format: FormatOption = "terminal",
    fail_on: Annotated[
        str,
        typer.Option("--fail-on", help="Exit 1 when a finding at or above this severity exists (or `never`)."),
    ] = "error",
    rules: Annotated[
        str | None,
        typer.Option("--rules", help="Only run these rule ids or groups, e.g. `safety,G10`."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, max=DEFAULT_MAX_WORKERS, clamp=True, help="Parallel parse/analysis workers."),
    ] = None,
) -> None:
    """Scan Java sources and report findings."""

    options = _global_options()
    fmt = _output_format(output_format)
    threshold = _fail_threshold(fail_on)

    target = _prepare(path)
    selected = _selected_rule_ids(rules)
    try:
        result = _run_audit(
            target,
            enabled_rule_ids=selected,
            workers=workers,
            show_progress=options.progress and not options.quiet and fmt == "terminal",
        )
    except TreeSitterError as exc:
        err_console.print(f"Java parser unavailable: {exc}")
        raise typer.Exit(code=2) from exc

    if fmt == "json":
        typer.echo(render_json(result))
    else:
        render_terminal(result, console=console, show_details=not options.quiet)

    if threshold != "never":
        floor = SEVERITY_ORDER[threshold]
        if any(SEVERITY_ORDER[f.severity] >= floor for f in result.findings):
            raise typer.Exit(code=1)


def _rule_row(meta: RuleMeta, *, enabled: bool) -> dict[str, Any]:
    return {
        "rule_id": meta.rule_id,
        "enabled": enabled,
        "title": meta.title,
        "description": meta.description,
        "category": meta.category,
        "default_severity": meta.default_severity,
    }


@app.command()
def rules(
    path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Project directory whose configuration and plugins apply (default: current directory).",
        ),
    ] = Path("."),
    output_format: FormatOption = "terminal",
    enabled_only: Annotated[
        bool,
        typer.Option("--enabled-only", help="Only show rules enabled by the project configuration."),
    ] = False,
) -> None:
    """List built-in and plugin rules with their metadata."""

    from rich.table import Table

    fmt = _output_format(output_format)
    target = _prepare(path)
    catalogue = all_rules()
    enabled_ids = compute_enabled_rule_ids(
        target.config.rules,
        available_rule_ids=[r.meta.rule_id for r in catalogue],
    )
    rows = [
        _rule_row(rule.meta, enabled=rule.meta.rule_id in enabled_ids)
        for rule in catalogue
        if rule.meta.rule_id in enabled_ids or not enabled_only
    ]

    if fmt == "json":
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return

    table = Table(title="JavaSentinel Rules")
    for column, justify in (("ID", "left"), ("Enabled", "center"), ("Severity", "left"), ("Category", "left")):
        table.add_column(column, justify=justify, style="bold" if column == "ID" else None)
    table.add_column("Title")
    for row in rows:
        table.add_row(
            row["rule_id"],
            "yes" if row["enabled"] else "no",
            row["default_severity"],
            row["category"],
            row["title"],
        )
    console.print(table)


def _explain_payload(meta: RuleMeta) -> dict[str, Any]:
    example = EXAMPLES.get(meta.rule_id)
    payload = _rule_row(meta, enabled=True)
    del payload["enabled"]
    payload["example"] = (
        None
        if example is None
        else {"language": example.language, "bad": example.bad, "good": example.good, "notes": example.notes}
    )
    return payload


def _print_explanation(meta: RuleMeta) -> None:
    from rich.panel import Panel
    from rich.syntax import Syntax
    from rich.text import Text

    title = Text()
    title.append(meta.rule_id, style="bold")
    title.append(" · ", style="dim")
    title.append(meta.title)
    body = f"{meta.description}\n\nDefault severity: {meta.default_severity}\nCategory: {meta.category}"
    console.print(Panel(body, title=title, border_style="cyan"))

    console.print(Text("Configure (pyproject.toml):", style="bold"))
    toml = f'[tool.javasentinel.rules.{meta.rule_id}]\nenabled = true\nseverity = "warning"  # info, warning or error\n'
    console.print(Syntax(toml, "toml", word_wrap=True))

    console.print(Text("Suppress in Java source (rule id, category or `all`):", style="bold"))
    java = (
        f"// javasentinel: disable-file={meta.rule_id}\n"
        f"int value = 1; // javasentinel: disable={meta.rule_id}\n"
        f"// javasentinel: disable-next-line={meta.category}\n"
        "int other = 2;\n"
    )
    console.print(Syntax(java, "java", word_wrap=True))

    example = EXAMPLES.get(meta.rule_id)
    if example is None:
        return
    console.print(Text("Example:", style="bold"))
    if example.notes:
        console.print(Text(example.notes, style="dim"))
    for label, snippet in (("Flagged:", example.bad), ("Preferred:", example.good)):
        if snippet is not None:
            console.print(Text(label, style="bold"))
            console.print(Syntax(snippet, example.language, word_wrap=True))


@app.command()
def explain(
    rule_id: Annotated[str, typer.Argument(help="Rule id to explain (e.g. G03).")],
    path: Annotated[
        Path,
        typer.Option(
            "--path",
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Project directory used to load config and plugin rules (default: current directory).",
        ),
    ] = Path("."),
    output_format: FormatOption = "terminal",
) -> None:
    """Explain one rule: what it checks, how to configure or suppress it, and an example."""

    fmt = _output_format(output_format)
    _prepare(path)
    rule = rule_by_id(rule_id.strip().upper())
    if rule is None:
        raise typer.BadParameter(f"Unknown rule id: {rule_id!r}. Use `javasentinel rules` to list available rules.")

    if fmt == "json":
        typer.echo(json.dumps(_explain_payload(rule.meta), indent=2, sort_keys=True))
    else:
        _print_explanation(rule.meta)


def main() -> None:
    app()
