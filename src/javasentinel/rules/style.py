from __future__ import annotations

import re
from dataclasses import dataclass

from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.resolver import Resolver
from javasentinel.engine.tree import (
    Assign,
    Binary,
    Block,
    Break,
    CatchClause,
    CompilationUnit,
    Continue,
    Expr,
    ExpressionStmt,
    FieldAccess,
    FieldDecl,
    If,
    LiteralExpr,
    LocalVarDecl,
    Loop,
    MethodCall,
    Name,
    New,
    Node,
    Return,
    Span,
    Statement,
    Throw,
    TypeDeclaration,
    Unary,
    walk,
)
from javasentinel.engine.types import Finding
from javasentinel.rules.base import BaseRule, RuleMeta
from javasentinel.rules.utils import (
    iter_type_declarations,
    references,
    snippet,
    to_camel_case,
    to_pascal_case,
    to_upper_snake_case,
)

_CAMEL_RE = re.compile(r"^[a-z][a-zA-Z0-9]*$")
_PASCAL_RE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_UPPER_SNAKE_RE = re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*$")

_EXEMPT_CONSTANTS = frozenset({"serialVersionUID", "serialPersistentFields"})
_LOGGER_TYPES = frozenset({"Logger", "Log"})


class G01NamingConvention(BaseRule):
    """
    Java naming conventions.

    Packages are lowercase, types PascalCase, constants UPPER_SNAKE_CASE and
    every other field, local, parameter and method camelCase. Names fixed by
    an overridden signature are left alone because they cannot be renamed here.
    """

    meta = RuleMeta(
        rule_id="G01",
        title="Naming convention",
        description="Names should follow Java conventions: lowercase packages, PascalCase types, "
        "UPPER_SNAKE_CASE constants and camelCase members.",
        default_severity="warning",
        category="style",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []

        if unit.package and unit.package != unit.package.lower():
            out.append(
                self._finding(
                    unit,
                    unit.package_span or unit.span,
                    message=f"Package name `{unit.package}` contains uppercase characters; package names are all lowercase.",
                    suggestion=f"package {unit.package.lower()};",
                )
            )

        for decl in iter_type_declarations(unit, include_anonymous=True):
            if decl.name and not _PASCAL_RE.match(decl.name):
                out.append(self._rename(unit, decl.name_span, f"Type `{decl.name}`", "PascalCase", to_pascal_case(decl.name)))
            for field_decl in decl.fields:
                out.extend(self._check_field(unit, decl, field_decl))
            for method in decl.methods:
                if method.is_constructor or method.is_override:
                    continue
                if not _CAMEL_RE.match(method.name):
                    out.append(
                        self._rename(unit, method.name_span, f"Method `{method.name}`", "camelCase", to_camel_case(method.name))
                    )
                for param in method.parameters:
                    if param.name and not _CAMEL_RE.match(param.name):
                        out.append(
                            self._rename(unit, param.span, f"Parameter `{param.name}`", "camelCase", to_camel_case(param.name))
                        )

        for node in walk(unit):
            if isinstance(node, LocalVarDecl | CatchClause) and node.name and not _CAMEL_RE.match(node.name):
                if node.name == "_":
                    continue
                out.append(self._rename(unit, node.name_span, f"Variable `{node.name}`", "camelCase", to_camel_case(node.name)))

        return out

    def _check_field(self, unit: CompilationUnit, decl: TypeDeclaration, field_decl: FieldDecl) -> list[Finding]:
        name = field_decl.name
        if not name or name in _EXEMPT_CONSTANTS:
            return []
        mods = field_decl.modifiers
        constant = field_decl.enum_constant or decl.is_interface or (mods.is_static and mods.is_final)
        if constant:
            if field_decl.type.name in _LOGGER_TYPES and _CAMEL_RE.match(name):
                return []
            if _UPPER_SNAKE_RE.match(name):
                return []
            what = "Enum constant" if field_decl.enum_constant else "Constant"
            return [self._rename(unit, field_decl.name_span, f"{what} `{name}`", "UPPER_SNAKE_CASE", to_upper_snake_case(name))]
        if _CAMEL_RE.match(name):
            return []
        return [self._rename(unit, field_decl.name_span, f"Field `{name}`", "camelCase", to_camel_case(name))]

    def _rename(self, unit: CompilationUnit, span: Span, what: str, convention: str, replacement: str) -> Finding:
        return self._finding(
            unit,
            span,
            message=f"{what} should be {convention}.",
            suggestion=f"Rename to `{replacement}`.",
        )


# Empty-constructible collections and the collector that rebuilds them.
_COLLECTORS = {
    "ArrayList": "Collectors.toList()",
    "List": "Collectors.toList()",
    "HashSet": "Collectors.toSet()",
    "Set": "Collectors.toSet()",
    "LinkedList": "Collectors.toCollection(LinkedList::new)",
    "LinkedHashSet": "Collectors.toCollection(LinkedHashSet::new)",
    "TreeSet": "Collectors.toCollection(TreeSet::new)",
    "ArrayDeque": "Collectors.toCollection(ArrayDeque::new)",
}


class G02ImperativeToFunctional(BaseRule):
    """
    Detect accumulate-into-a-new-collection loops.

    Shape: `C x = new C<>();` followed (with no use of `x` in between) by a
    foreach loop, or a counting loop `for (int i = 0; i < a.length; i++)`
    over an array length or `list.size()`, whose body is exactly `x.add(e)`
    or `if (cond) x.add(e)`. Any early exit, assignment or second use of `x`
    in the loop disqualifies the loop, since the stream form would change
    behaviour.
    """

    meta = RuleMeta(
        rule_id="G02",
        title="Imperative loop could be a stream",
        description="A loop whose only effect is filling a freshly created collection reads better as a "
        "stream pipeline (filter/map/collect).",
        default_severity="info",
        category="style",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for node in walk(unit):
            if not isinstance(node, Block):
                continue
            for position, stmt in enumerate(node.statements):
                if isinstance(stmt, Loop) and stmt.kind in {"foreach", "for"}:
                    finding = self._check_loop(unit, resolver, node.statements, position, stmt)
                    if finding is not None:
                        out.append(finding)
        return out

    def _check_loop(
        self,
        unit: CompilationUnit,
        resolver: Resolver,
        siblings: tuple[Statement, ...],
        position: int,
        loop: Loop,
    ) -> Finding | None:
        shape = _append_shape(loop.body)
        if shape is None:
            return None
        counting: _CountingHeader | None = None
        if loop.kind == "for":
            counting = _counting_header(resolver, loop)
            if counting is None:
                return None
            header: Expr | None = counting.bound
        elif loop.iterable is None or loop.variable is None:
            return None
        else:
            header = loop.iterable
        call, condition = shape
        symbol = resolver.symbol_for(call.target) if call.target is not None else None
        if symbol is None or symbol.kind != "local":
            return None

        decl = symbol.declaration
        if not isinstance(decl, LocalVarDecl) or decl not in siblings[:position]:
            return None
        init = decl.initializer
        if not isinstance(init, New) or init.args or init.anonymous_body is not None or init.type.name not in _COLLECTORS:
            return None

        between = siblings[siblings.index(decl) + 1 : position]
        if any(references(stmt, symbol, resolver) for stmt in between):
            return None
        if header is not None and references(header, symbol, resolver):
            return None
        if loop.body is None or _has_side_exit(loop.body) or references(loop.body, symbol, resolver, ignore=call.target):
            return None

        element = call.args[0]
        declared = decl.type.text if decl.type is not None else "var"
        if counting is not None:
            suggestion = f"{declared} {decl.name} = {_indexed_stream(unit, counting, element, condition, init.type.name)};"
        else:
            suggestion = self._foreach_suggestion(unit, resolver, loop, decl, declared, element, condition)

        kind = "conditionally appends" if condition is not None else "appends"
        return self._finding(
            unit,
            loop,
            message=f"Loop only {kind} to the new collection `{decl.name}`; express it as a stream pipeline.",
            suggestion=suggestion,
        )

    def _foreach_suggestion(
        self,
        unit: CompilationUnit,
        resolver: Resolver,
        loop: Loop,
        decl: LocalVarDecl,
        declared: str,
        element: Expr,
        condition: Expr | None,
    ) -> str:
        assert loop.iterable is not None and loop.variable is not None and isinstance(decl.initializer, New)
        collection = decl.initializer.type.name
        var = loop.variable.name
        source = snippet(unit, loop.iterable)
        iterable_type = resolver.declared_type(loop.iterable)
        is_array = iterable_type is not None and iterable_type.is_array
        identity = isinstance(element, Name) and element.identifier == var

        if condition is None and identity and not is_array:
            return f"{declared} {decl.name} = new {collection}<>({source});"
        stream = f"Arrays.stream({source})" if is_array else f"{source}.stream()"
        if condition is not None:
            stream += f"\n        .filter({var} -> {snippet(unit, condition)})"
        if not identity:
            stream += f"\n        .map({var} -> {snippet(unit, element)})"
        stream += f"\n        .collect({_COLLECTORS[collection]})"
        return f"{declared} {decl.name} = {stream};"


@dataclass(frozen=True, slots=True)
class _CountingHeader:
    """`for (int i = 0; i < bound; i++)` where `bound` is `a.length` or `list.size()`."""

    counter: LocalVarDecl
    bound: Expr


def _counting_header(resolver: Resolver, loop: Loop) -> _CountingHeader | None:
    if len(loop.init) != 1 or len(loop.update) != 1:
        return None
    counter = loop.init[0]
    if not isinstance(counter, LocalVarDecl) or counter.type is None or counter.type.text != "int":
        return None
    start = counter.initializer
    if not (isinstance(start, LiteralExpr) and start.kind == "number" and start.value == "0"):
        return None

    def is_counter(expr: Node) -> bool:
        symbol = resolver.symbol_for(expr)
        return symbol is not None and symbol.declaration is counter

    cond = loop.condition
    if not isinstance(cond, Binary) or cond.operator != "<" or not is_counter(cond.left):
        return None
    bound = cond.right
    over_array = isinstance(bound, FieldAccess) and bound.name == "length"
    over_list = isinstance(bound, MethodCall) and bound.name == "size" and not bound.args and bound.target is not None
    if not (over_array or over_list) or any(is_counter(node) for node in walk(bound)):
        return None

    step = loop.update[0]
    if not (isinstance(step, Unary) and step.operator == "++" and is_counter(step.operand)):
        return None
    return _CountingHeader(counter=counter, bound=bound)


def _indexed_stream(
    unit: CompilationUnit, header: _CountingHeader, element: Expr, condition: Expr | None, collection: str
) -> str:
    var = header.counter.name
    stream = f"IntStream.range(0, {snippet(unit, header.bound)})"
    if condition is not None:
        stream += f"\n        .filter({var} -> {snippet(unit, condition)})"
    if isinstance(element, Name) and element.identifier == var:
        stream += "\n        .boxed()"
    else:
        stream += f"\n        .mapToObj({var} -> {snippet(unit, element)})"
    stream += f"\n        .collect({_COLLECTORS[collection]})"
    return stream


def _unwrap(stmt: Statement | None) -> Statement | None:
    while isinstance(stmt, Block) and len(stmt.statements) == 1:
        stmt = stmt.statements[0]
    return stmt


def _add_call(stmt: Statement | None) -> MethodCall | None:
    stmt = _unwrap(stmt)
    if not isinstance(stmt, ExpressionStmt):
        return None
    call = stmt.expr
    if isinstance(call, MethodCall) and call.name == "add" and len(call.args) == 1 and isinstance(call.target, Name):
        return call
    return None


def _append_shape(body: Statement | None) -> tuple[MethodCall, Expr | None] | None:
    inner = _unwrap(body)
    call = _add_call(inner)
    if call is not None:
        return call, None
    if isinstance(inner, If) and inner.otherwise is None:
        call = _add_call(inner.then)
        if call is not None:
            return call, inner.condition
    return None


def _has_side_exit(body: Statement) -> bool:
    for node in walk(body):
        if isinstance(node, Break | Continue | Return | Throw | Assign):
            return True
        if isinstance(node, Unary) and node.operator in {"++", "--"}:
            return True
    return False


def builtin_style_rules() -> list[BaseRule]:
    return [
        G01NamingConvention(),
        G02ImperativeToFunctional(),
    ]
