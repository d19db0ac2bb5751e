from __future__ import annotations

import pytest
from helpers import parse

from javasentinel.engine.resolver import Resolver, UnresolvedSymbol
from javasentinel.engine.tree import FieldAccess, MethodCall, Name, walk

SOURCE = """
import javax.annotation.Nullable;

class Greeter {
    private String name = null;
    private final int count = 3;

    String greet(String name, @Nullable String title) {
        String label = title;
        label = "Dr.";
        this.name = name;
        return label + name + format(title) + Helpers.wrap(name);
    }

    String format(String text) {
        if (text.isEmpty()) {
            return null;
        }
        return text;
    }
}
"""


def _names(unit, identifier: str) -> list[Name]:
    return [n for n in walk(unit) if isinstance(n, Name) and n.identifier == identifier]


def test_parameters_shadow_fields() -> None:
    unit = parse(SOURCE, "Greeter.java")
    resolver = Resolver(unit)

    for ref in _names(unit, "name"):
        symbol = resolver.symbol_for(ref)
        assert symbol is not None
        assert symbol.kind == "parameter"

    access = next(n for n in walk(unit) if isinstance(n, FieldAccess) and n.name == "name")
    field_symbol = resolver.symbol_for(access)
    assert field_symbol is not None and field_symbol.kind == "field"
    assert field_symbol is resolver.field_symbol(unit.types[0].field("name"))


def test_unknown_identifiers_become_external() -> None:
    unit = parse(SOURCE, "Greeter.java")
    resolver = Resolver(unit)

    (helpers_ref,) = _names(unit, "Helpers")
    symbol = resolver.symbol_for(helpers_ref)
    assert symbol is not None and symbol.external
    with pytest.raises(UnresolvedSymbol, match="Helpers"):
        resolver.require(helpers_ref)


def test_field_nullability_from_initializer_and_annotations() -> None:
    unit = parse(SOURCE, "Greeter.java")
    resolver = Resolver(unit)
    greeter = unit.types[0]

    name_symbol = resolver.field_symbol(greeter.field("name"))
    count_symbol = resolver.field_symbol(greeter.field("count"))
    assert name_symbol is not None and name_symbol.maybe_null
    assert count_symbol is not None and count_symbol.nullability == "non_null"

    (title_ref, *_rest) = _names(unit, "title")
    assert resolver.nullability_at(title_ref) == "maybe_null"


def test_local_nullability_follows_latest_preceding_assignment() -> None:
    unit = parse(
        """
class Flow {
    void run() {
        String value = null;
        value.trim();
        value = "x";
        value.trim();
    }
}
""",
        "Flow.java",
    )
    resolver = Resolver(unit)
    first, second = [
        n.target for n in walk(unit) if isinstance(n, MethodCall) and n.name == "trim"
    ]
    assert resolver.nullability_at(first) == "maybe_null"
    assert resolver.nullability_at(second) == "unknown"


def test_resolve_call_and_method_nullability() -> None:
    unit = parse(SOURCE, "Greeter.java")
    resolver = Resolver(unit)
    greeter = unit.types[0]

    call = next(n for n in walk(unit) if isinstance(n, MethodCall) and n.name == "format")
    method = resolver.resolve_call(call)
    assert method is greeter.methods_named("format")[0]
    assert resolver.method_nullability(method) == "maybe_null"
    assert resolver.is_nullable_expression(call) is True

    external_call = next(n for n in walk(unit) if isinstance(n, MethodCall) and n.name == "wrap")
    assert resolver.resolve_call(external_call) is None


def test_assignment_sites_are_recorded_in_order() -> None:
    unit = parse(SOURCE, "Greeter.java")
    resolver = Resolver(unit)
    label_ref = _names(unit, "label")[0]
    symbol = resolver.symbol_for(label_ref)
    assert symbol is not None and symbol.kind == "local"

    sites = resolver.assignment_sites(symbol)
    assert len(sites) == 2
    assert isinstance(sites[0][1], Name) and sites[0][1].identifier == "title"
