from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from javasentinel.config import JavaSentinelConfig, load_config, path_is_ignored
from javasentinel.engine.tree import CompilationUnit, MalformedTree
from javasentinel.engine.tree_sitter import parse_unit
from javasentinel.engine.types import UnitReport

logger = logging.getLogger(__name__)

# VCS metadata, IDE state and Maven/Gradle output directories.
DEFAULT_SKIP_DIRS = frozenset(
    {".git", ".hg", ".svn", ".idea", ".vscode", ".gradle", ".mvn", "node_modules", "build", "target", "out", "bin"}
)
# Descriptors that parse as Java but declare no types.
NON_TYPE_SOURCES = frozenset({"module-info.java"})
BUILD_MARKERS = ("pom.xml", "build.gradle", "build.gradle.kts", "settings.gradle", "settings.gradle.kts")

JAVASENTINEL_WORKERS_ENV = "JAVASENTINEL_WORKERS"
DEFAULT_MAX_WORKERS = 32


@dataclass(frozen=True, slots=True)
class ScanTarget:
    project_root: Path
    scan_path: Path
    config: JavaSentinelConfig


@dataclass(frozen=True, slots=True)
class LoadedUnits:
    """Parsed units plus reports for files that could not be read or parsed."""

    units: tuple[CompilationUnit, ...]
    failures: tuple[UnitReport, ...]


def resolve_worker_count(
    raw_value: str | None,
    *,
    default: int | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> int:
    """
    Turn a `JAVASENTINEL_WORKERS`-style string into a worker count.

    Missing, empty, `auto`, non-numeric and non-positive values all mean
    `default` (the CPU count when that is None); the result never exceeds
    `max_workers`.
    """

    fallback = max(1, default if default is not None else (os.cpu_count() or 1))
    text = (raw_value or "").strip().lower()
    if text in {"", "auto", "default"}:
        return min(fallback, max_workers)
    try:
        requested = int(text)
    except ValueError:
        logger.warning("ignoring invalid %s value: %r", JAVASENTINEL_WORKERS_ENV, raw_value)
        return min(fallback, max_workers)
    return min(requested if requested > 0 else fallback, max_workers)


def worker_count_from_env(*, default: int | None = None) -> int:
    return resolve_worker_count(os.environ.get(JAVASENTINEL_WORKERS_ENV), default=default)


def prepare_target(scan_path: Path) -> ScanTarget:
    """
    Resolve the project root for `scan_path` and load its configuration.

    The root is the nearest enclosing directory with a `pyproject.toml`
    (the only place configuration is read from), else the nearest one with a
    Maven or Gradle build file, else the scanned directory itself.
    """

    scan_path = scan_path.resolve()
    project_root = find_project_root(scan_path)
    return ScanTarget(project_root=project_root, scan_path=scan_path, config=load_config(project_root))


def find_project_root(start: Path) -> Path:
    base = start if start.is_dir() else start.parent
    chain = [base, *base.parents]
    for markers in (("pyproject.toml",), BUILD_MARKERS):
        for directory in chain:
            if any((directory / marker).is_file() for marker in markers):
                return directory
    return base


def _is_candidate(path: Path, target: ScanTarget) -> bool:
    if path.suffix != ".java" or path.name in NON_TYPE_SOURCES:
        return False
    return not path_is_ignored(path, project_root=target.project_root, ignore_patterns=target.config.ignore.paths)


def _walk_java_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        dirnames[:] = [name for name in dirnames if name not in DEFAULT_SKIP_DIRS]
        for filename in filenames:
            yield Path(dirpath, filename)


def discover_files(target: ScanTarget) -> list[Path]:
    """Java sources to analyse under `target.scan_path`, sorted."""

    if target.scan_path.is_file():
        return [target.scan_path] if _is_candidate(target.scan_path, target) else []
    return sorted({path for path in _walk_java_files(target.scan_path) if _is_candidate(path, target)})


def load_unit(path: Path, *, project_root: Path) -> CompilationUnit | UnitReport:
    """Read and parse one file; failures come back as an error report."""

    relative = relative_path(path, project_root)
    try:
        # utf-8-sig drops the BOM some Windows editors write into .java files.
        text = path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as exc:
        logger.warning("cannot read %s: %s", relative, exc)
        return UnitReport(path=relative, error=f"unreadable: {exc}")
    try:
        return parse_unit(text, path=relative)
    except MalformedTree as exc:
        logger.warning("cannot parse %s: %s", relative, exc)
        return UnitReport(path=relative, error=str(exc))


def load_units(
    paths: list[Path],
    *,
    project_root: Path,
    workers: int = 1,
    on_path_done: Callable[[Path], None] | None = None,
) -> LoadedUnits:
    """
    Read and parse `paths`, on a thread pool when `workers > 1`.

    Results keep the order of `paths`, and `on_path_done` is called in that
    order too.
    """

    def load(path: Path) -> CompilationUnit | UnitReport:
        return load_unit(path, project_root=project_root)

    if workers <= 1 or len(paths) <= 1:
        outcomes: Iterator[CompilationUnit | UnitReport] = map(load, paths)
        return _collect(paths, outcomes, on_path_done)
    with ThreadPoolExecutor(max_workers=min(workers, len(paths))) as executor:
        return _collect(paths, executor.map(load, paths), on_path_done)


def _collect(
    paths: list[Path],
    outcomes: Iterator[CompilationUnit | UnitReport],
    on_path_done: Callable[[Path], None] | None,
) -> LoadedUnits:
    units: list[CompilationUnit] = []
    failures: list[UnitReport] = []
    for path, outcome in zip(paths, outcomes, strict=True):
        if isinstance(outcome, CompilationUnit):
            units.append(outcome)
        else:
            failures.append(outcome)
        if on_path_done is not None:
            on_path_done(path)
    return LoadedUnits(units=tuple(units), failures=tuple(failures))


def relative_path(path: Path, root: Path) -> str:
    """POSIX path relative to `root` for reports; `path.as_posix()` when outside it."""

    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except (OSError, ValueError):
        return path.as_posix()
