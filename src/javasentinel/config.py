from __future__ import annotations

import fnmatch
import logging
import re
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, cast

from javasentinel.engine.types import Severity

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a JavaSentinel configuration file is invalid."""


class ConfigurationWarning(UserWarning):
    """Non-fatal configuration problem, e.g. a rule id no installed rule provides."""


RuleId = str

_TABLE = "tool.javasentinel"
_RULE_ID_RE = re.compile(r"^[A-Z][0-9]{2,}$")
_SEVERITY_ALIASES = {"warn": "warning", "err": "error"}

# Resolvable without importing the rule modules; `rules.registry` asserts the
# built-in categories agree with this table.
CATEGORY_RULES: Mapping[str, tuple[RuleId, ...]] = MappingProxyType(
    {
        "style": ("G01", "G02"),
        "safety": ("G03", "G04", "G05"),
        "design": ("G06", "G07", "G08", "G09", "G10"),
    }
)
RULE_GROUPS = frozenset({"all", *CATEGORY_RULES})


@dataclass(frozen=True, slots=True)
class RuleOverride:
    """A per-rule `[tool.javasentinel.rules.Gxx]` table."""

    enabled: bool | None = None
    severity: Severity | None = None


@dataclass(frozen=True, slots=True)
class RulesConfig:
    """
    Rule selection and severity settings.

    `enable` and `disable` hold selectors: rule ids (`G03`) or the groups
    `all`, `style`, `safety` and `design`.
    """

    enable: tuple[str, ...] = ("all",)
    disable: tuple[str, ...] = ()
    overrides: Mapping[RuleId, RuleOverride] = field(default_factory=lambda: MappingProxyType({}))
    severity_overrides: Mapping[RuleId, Severity] = field(default_factory=lambda: MappingProxyType({}))

    def severity_for(self, rule_id: str) -> Severity | None:
        override = self.overrides.get(rule_id)
        if override is not None and override.severity is not None:
            return override.severity
        return self.severity_overrides.get(rule_id)

    def mentioned_rule_ids(self) -> set[RuleId]:
        """Explicit rule ids named anywhere in this table (groups excluded)."""

        named = {_canonical(token) for token in (*self.enable, *self.disable)}
        named = {token for token in named if token not in RULE_GROUPS}
        return named | set(self.overrides) | set(self.severity_overrides)


@dataclass(frozen=True, slots=True)
class IgnoreConfig:
    paths: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class JavaSentinelConfig:
    rules: RulesConfig = field(default_factory=RulesConfig)
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)
    plugins: tuple[str, ...] = ()
    workers: int | None = None


def load_config(project_dir: Path | str = ".") -> JavaSentinelConfig:
    """
    Load `[tool.javasentinel]` from the `pyproject.toml` in `project_dir`.

    A Java project usually has no `pyproject.toml` at all; that, or a file
    without the table, yields the defaults.
    """

    table = _read_tool_table(Path(project_dir) / "pyproject.toml")
    return parse_config_table(table) if table else JavaSentinelConfig()


def _read_tool_table(pyproject: Path) -> dict[str, Any]:
    if not pyproject.is_file():
        return {}
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {pyproject}: {exc}") from exc
    table = data.get("tool", {})
    table = table.get("javasentinel", {}) if isinstance(table, dict) else {}
    return table if isinstance(table, dict) else {}


def parse_config_table(table: Mapping[str, Any]) -> JavaSentinelConfig:
    workers = table.get("workers")
    if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0):
        raise ConfigError(f"`{_TABLE}.workers` must be a positive integer.")

    ignore_table = _subtable(table, "ignore")
    return JavaSentinelConfig(
        rules=_parse_rules(_subtable(table, "rules")),
        ignore=IgnoreConfig(paths=_string_list(ignore_table.get("paths"), where=f"{_TABLE}.ignore.paths")),
        plugins=_string_list(table.get("plugins"), where=f"{_TABLE}.plugins"),
        workers=workers,
    )


def _subtable(table: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = table.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"`{_TABLE}.{key}` must be a table.")
    return value


def _string_list(value: Any, *, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"`{where}` must be a list of strings.")
    return tuple(item.strip() for item in value)


def _parse_rules(table: Mapping[str, Any]) -> RulesConfig:
    enable = parse_rule_selectors(table.get("enable", "all"), where=f"{_TABLE}.rules.enable") or ("all",)
    disable = parse_rule_selectors(table.get("disable", []), where=f"{_TABLE}.rules.disable")

    raw_severities = table.get("severity_overrides", table.get("severity-overrides", {}))
    if not isinstance(raw_severities, dict):
        raise ConfigError(f"`{_TABLE}.rules.severity_overrides` must be a table.")
    severity_overrides = {
        _rule_id_key(key, where=f"{_TABLE}.rules.severity_overrides.{key}"): parse_severity(
            value, where=f"{_TABLE}.rules.severity_overrides.{key}"
        )
        for key, value in raw_severities.items()
    }

    overrides: dict[RuleId, RuleOverride] = {}
    for key, sub in table.items():
        if isinstance(sub, dict) and key not in {"severity_overrides", "severity-overrides"}:
            rule_id = _rule_id_key(key, where=f"{_TABLE}.rules.{key}")
            overrides[rule_id] = _parse_rule_table(sub, where=f"{_TABLE}.rules.{key}")

    return RulesConfig(
        enable=enable,
        disable=disable,
        overrides=MappingProxyType(overrides),
        severity_overrides=MappingProxyType(severity_overrides),
    )


def _parse_rule_table(sub: Mapping[str, Any], *, where: str) -> RuleOverride:
    enabled = sub.get("enabled")
    if enabled is not None and not isinstance(enabled, bool):
        raise ConfigError(f"`{where}.enabled` must be a boolean.")
    severity = sub.get("severity")
    return RuleOverride(
        enabled=enabled,
        severity=parse_severity(severity, where=f"{where}.severity") if severity is not None else None,
    )


def parse_severity(value: Any, *, where: str) -> Severity:
    if not isinstance(value, str):
        raise ConfigError(f"`{where}` must be a string.")
    normalized = value.strip().lower()
    normalized = _SEVERITY_ALIASES.get(normalized, normalized)
    if normalized not in {"info", "warning", "error"}:
        raise ConfigError(f"`{where}` must be one of: info, warning, error.")
    return cast(Severity, normalized)


def _canonical(token: str) -> str:
    """Groups are lowercase and rule ids uppercase; selectors are case-insensitive."""

    stripped = token.strip()
    return stripped.lower() if stripped.lower() in RULE_GROUPS else stripped.upper()


def _rule_id_key(key: str, *, where: str) -> RuleId:
    rule_id = _canonical(str(key))
    if not _RULE_ID_RE.match(rule_id):
        raise ConfigError(f"`{where}` is invalid; expected a rule id like G03.")
    return rule_id


def parse_rule_selectors(value: Any, *, where: str) -> tuple[str, ...]:
    """Accept `"style, G10"` or `["style", "G10"]` and return canonical selectors."""

    if isinstance(value, str):
        raw = [value]
    elif isinstance(value, list) and all(isinstance(item, str) for item in value):
        raw = value
    else:
        raise ConfigError(f"`{where}` must be a string or a list of strings.")

    out: list[str] = []
    for chunk in raw:
        for token in re.split(r"[,;]", chunk):
            if not token.strip():
                continue
            selector = _canonical(token)
            if selector not in RULE_GROUPS and not _RULE_ID_RE.match(selector):
                raise ConfigError(
                    f"`{where}` contains unknown rule group or invalid rule id: {token.strip()!r}. "
                    f"Valid groups: {', '.join(sorted(RULE_GROUPS))}. Valid ids look like G03."
                )
            out.append(selector)
    return tuple(dict.fromkeys(out))


def _expand(selector: str, available: set[RuleId] | None) -> set[RuleId]:
    if selector == "all":
        return set(available) if available is not None else {r for ids in CATEGORY_RULES.values() for r in ids}
    if selector in CATEGORY_RULES:
        return set(CATEGORY_RULES[selector])
    return {selector}


def compute_enabled_rule_ids(
    rules: RulesConfig,
    *,
    available_rule_ids: Iterable[RuleId] | None = None,
) -> set[RuleId]:
    """
    Resolve the enabled rule ids.

    `enable` selectors are added, then `disable` selectors removed; a per-rule
    table with `enabled = true/false` wins over both. With `available_rule_ids`
    the result is restricted to rules that actually exist, and `all` also
    covers plugin rules.
    """

    available = set(available_rule_ids) if available_rule_ids is not None else None

    enabled: set[RuleId] = set()
    for selector in rules.enable:
        enabled |= _expand(_canonical(selector), available)
    for selector in rules.disable:
        enabled -= _expand(_canonical(selector), available)

    for rule_id, override in rules.overrides.items():
        if override.enabled is True:
            enabled.add(rule_id)
        elif override.enabled is False:
            enabled.discard(rule_id)

    return enabled & available if available is not None else enabled


def check_rule_ids(rules: RulesConfig, *, available_rule_ids: Iterable[RuleId]) -> list[ConfigurationWarning]:
    """Warn (never raise) about rule ids that no registered rule provides."""

    unknown = sorted(rules.mentioned_rule_ids() - set(available_rule_ids))
    warnings = [ConfigurationWarning(f"unknown rule id in configuration: {rule_id}") for rule_id in unknown]
    for warning in warnings:
        logger.warning("%s", warning)
    return warnings


def path_is_ignored(path: Path, *, project_root: Path, ignore_patterns: Iterable[str]) -> bool:
    """
    Return True if `path` matches one of `ignore_patterns`.

    Patterns apply to the POSIX path relative to `project_root`:
    - `generated/` ignores everything below that directory;
    - `*Test.java` (no slash) matches the file name;
    - `src/**/legacy/*.java` matches the whole relative path.

    Paths outside the project root are never ignored.
    """

    try:
        relative = path.resolve().relative_to(project_root.resolve())
    except (ValueError, OSError, RuntimeError):
        return False
    rel_posix = relative.as_posix()
    return any(_pattern_matches(rel_posix, relative.name, pattern) for pattern in ignore_patterns)


def _pattern_matches(rel_posix: str, name: str, raw: str) -> bool:
    pattern = raw.strip().replace("\\", "/").removeprefix("./")
    if not pattern:
        return False
    if pattern.endswith("/"):
        return rel_posix.startswith(pattern)
    if "/" in pattern:
        return fnmatch.fnmatch(rel_posix, pattern)
    return fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(rel_posix, pattern)
