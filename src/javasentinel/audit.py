from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from javasentinel.config import ConfigurationWarning, check_rule_ids
from javasentinel.engine.detection import RuleEngine
from javasentinel.engine.types import BatchResult, Finding
from javasentinel.rules.plugins import load_plugin_rules
from javasentinel.rules.registry import all_rules, set_extra_rules
from javasentinel.scanner import ScanTarget, discover_files, load_units, prepare_target, worker_count_from_env

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditResult:
    target: ScanTarget
    files: tuple[Path, ...]
    result: BatchResult
    warnings: tuple[ConfigurationWarning, ...] = ()

    @property
    def findings(self) -> tuple[Finding, ...]:
        return self.result.findings


@dataclass(frozen=True, slots=True)
class AuditCallbacks:
    on_unit_parsed: Callable[[Path], None] | None = None
    on_units_ready: Callable[[int], None] | None = None


def audit_path(
    scan_path: Path,
    *,
    enabled_rule_ids: Iterable[str] | None = None,
    workers: int | None = None,
    cancel: threading.Event | None = None,
    callbacks: AuditCallbacks | None = None,
) -> AuditResult:
    """
    Scan a file or directory.

    A directory scan is treated as the whole project, so rules that need
    project-wide knowledge (unused public members, implementation counts)
    report with full confidence. Single-file scans keep them conservative.

    `enabled_rule_ids` narrows the rules further than the configuration does.

    Raises `ConfigError` for an invalid configuration and `PluginLoadError`
    when a configured plugin cannot be loaded.
    """

    target = prepare_target(scan_path)
    files = discover_files(target)
    return audit_files(
        target,
        files=files,
        complete=target.scan_path.is_dir(),
        enabled_rule_ids=enabled_rule_ids,
        workers=workers,
        cancel=cancel,
        callbacks=callbacks,
    )


def audit_files(
    target: ScanTarget,
    *,
    files: list[Path],
    complete: bool = False,
    enabled_rule_ids: Iterable[str] | None = None,
    workers: int | None = None,
    cancel: threading.Event | None = None,
    callbacks: AuditCallbacks | None = None,
) -> AuditResult:
    set_extra_rules(load_plugin_rules(target.config.plugins))
    available_ids = {r.meta.rule_id for r in all_rules()}
    warnings = check_rule_ids(target.config.rules, available_rule_ids=available_ids)

    if workers is None:
        workers = worker_count_from_env(default=target.config.workers)

    loaded = load_units(
        files,
        project_root=target.project_root,
        workers=workers,
        on_path_done=callbacks.on_unit_parsed if callbacks else None,
    )
    if callbacks is not None and callbacks.on_units_ready is not None:
        callbacks.on_units_ready(len(loaded.units))
    logger.debug("parsed %d of %d files", len(loaded.units), len(files))

    engine = RuleEngine.default()
    batch = engine.run_batch(
        loaded.units,
        enabled_rule_ids,
        settings=target.config.rules,
        complete=complete,
        workers=workers,
        cancel=cancel,
    )
    reports = sorted((*batch.units, *loaded.failures), key=lambda r: r.path or "")
    return AuditResult(
        target=target,
        files=tuple(files),
        result=BatchResult(units=tuple(reports), cancelled=batch.cancelled),
        warnings=tuple(warnings),
    )
