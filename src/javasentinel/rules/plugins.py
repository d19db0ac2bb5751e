from __future__ import annotations

import importlib
from collections.abc import Iterable

from javasentinel.rules.base import BaseRule

# Module-level names looked up when an entry has no `:attr` part.
_EXPORT_NAMES = ("javasentinel_rules", "RULES")


class PluginLoadError(RuntimeError):
    """Raised when a configured plugin cannot be imported or exports no usable rules."""


def load_plugin_rules(plugin_specs: Iterable[str]) -> list[BaseRule]:
    """
    Import each configured `module` or `module:attr` entry and collect its rules.

    An export may be a rule instance, a `BaseRule` subclass (instantiated with
    no arguments), a list/tuple of either, or a callable returning one of
    those.
    """

    loaded: list[BaseRule] = []
    for entry in plugin_specs:
        entry = entry.strip()
        if entry:
            loaded.extend(_coerce(_export_of(entry), origin=entry))
    return loaded


def _export_of(entry: str) -> object:
    module_name, _, attr = entry.partition(":")
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:  # noqa: BLE001
        raise PluginLoadError(f"Failed to import plugin module {module_name!r}: {exc}") from exc

    if attr:
        if not hasattr(module, attr):
            raise PluginLoadError(f"Plugin module {module_name!r} has no attribute {attr!r}")
        return getattr(module, attr)
    for name in _EXPORT_NAMES:
        if hasattr(module, name):
            return getattr(module, name)
    raise PluginLoadError(f"Plugin module {module_name!r} must define `javasentinel_rules` or `RULES`.")


def _as_rule(obj: object) -> BaseRule | None:
    if isinstance(obj, type) and issubclass(obj, BaseRule):
        return obj()
    return obj if isinstance(obj, BaseRule) else None


def _coerce(export: object, *, origin: str) -> list[BaseRule]:
    single = _as_rule(export)
    if single is not None:
        return [single]
    if isinstance(export, list | tuple):
        rules: list[BaseRule] = []
        for item in export:
            rule = _as_rule(item)
            if rule is None:
                raise PluginLoadError(
                    f"Plugin {origin!r} exported {type(item).__name__}; rules must be BaseRule instances"
                )
            rules.append(rule)
        return rules
    if callable(export):
        return _coerce(export(), origin=origin)
    raise PluginLoadError(f"Unsupported plugin export type from {origin!r}: {type(export).__name__}")
