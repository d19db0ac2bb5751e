from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Literal

from javasentinel.engine.hierarchy import TypeHierarchy, type_key
from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.tree import (
    Assign,
    Block,
    Cast,
    CatchClause,
    CompilationUnit,
    Conditional,
    Expr,
    FieldAccess,
    FieldDecl,
    Lambda,
    LiteralExpr,
    LocalVarDecl,
    Loop,
    MethodCall,
    MethodDecl,
    Modifiers,
    Name,
    New,
    Node,
    Return,
    This,
    Try,
    TypeDeclaration,
    TypeRef,
    iter_children,
    walk_skipping_nested,
)

logger = logging.getLogger(__name__)

Nullability = Literal["non_null", "unknown", "maybe_null"]
SymbolKind = Literal["field", "parameter", "local", "method", "external"]

NULLABLE_ANNOTATIONS = ("Nullable", "CheckForNull")
NON_NULL_ANNOTATIONS = ("NonNull", "Nonnull", "NotNull")
MAP_TYPES = frozenset(
    {
        "Map",
        "HashMap",
        "LinkedHashMap",
        "TreeMap",
        "SortedMap",
        "NavigableMap",
        "ConcurrentMap",
        "ConcurrentHashMap",
        "Hashtable",
        "EnumMap",
    }
)


class UnresolvedSymbol(LookupError):
    """Raised when an identifier cannot be bound to a declaration in the analyzed units."""

    def __init__(self, name: str, *, node: Node | None = None) -> None:
        super().__init__(f"unresolved symbol: {name}")
        self.name = name
        self.node = node


@dataclass(frozen=True, slots=True, eq=False)
class Symbol:
    name: str
    kind: SymbolKind
    declared_type: TypeRef | None = None
    declaration: Node | None = None
    owner: TypeDeclaration | None = None
    declared_nullability: Nullability = "unknown"
    nullability: Nullability = "unknown"

    @property
    def external(self) -> bool:
        return self.kind == "external"

    @property
    def maybe_null(self) -> bool:
        return self.nullability == "maybe_null"


def declared_nullability(modifiers: Modifiers, declared_type: TypeRef | None) -> Nullability:
    if declared_type is not None and declared_type.is_primitive:
        return "non_null"
    if modifiers.has_annotation(*NULLABLE_ANNOTATIONS):
        return "maybe_null"
    if modifiers.has_annotation(*NON_NULL_ANNOTATIONS):
        return "non_null"
    return "unknown"


class _Scope:
    __slots__ = ("parent", "owner", "names")

    def __init__(self, parent: _Scope | None, owner: TypeDeclaration | None) -> None:
        self.parent = parent
        self.owner = owner
        self.names: dict[str, Symbol] = {}

    def child(self) -> _Scope:
        return _Scope(self, self.owner)

    def type_scope(self) -> _Scope:
        """The member scope of the enclosing type; `this.x` skips locals and parameters."""

        scope = self
        while scope.parent is not None and scope.parent.owner is self.owner:
            scope = scope.parent
        return scope

    def declare(self, symbol: Symbol) -> None:
        self.names[symbol.name] = symbol

    def lookup(self, name: str) -> Symbol:
        scope: _Scope | None = self
        while scope is not None:
            found = scope.names.get(name)
            if found is not None:
                return found
            scope = scope.parent
        raise UnresolvedSymbol(name)


class Resolver:
    """
    Per-unit symbol table and nullability facts.

    Every `Name` expression (and every `this.x` access) is bound to the Symbol
    it refers to. References that cannot be bound within the analyzed units
    become `external` symbols; rules must treat those conservatively.

    Nullability inference is shallow and intraprocedural: it looks at
    annotations and at the syntactic shape of assignment sites. It does not
    follow values across method boundaries beyond "this same-type method can
    return null".
    """

    def __init__(self, unit: CompilationUnit, index: ProjectIndex | None = None) -> None:
        self.unit = unit
        self.index = index if index is not None else ProjectIndex.build([unit])
        self.hierarchy: TypeHierarchy = self.index.hierarchy

        self._bindings: dict[Node, Symbol] = {}
        self._externals: dict[str, Symbol] = {}
        self._field_symbols: dict[FieldDecl, Symbol] = {}
        self._method_symbols: dict[MethodDecl, Symbol] = {}
        self._sites: dict[Symbol, list[tuple[Node, Expr]]] = defaultdict(list)

        for decl in unit.types:
            self._bind_type(decl, None)
        self._infer_nullability()

    # --- public API --------------------------------------------------------

    def symbol_for(self, node: Node) -> Symbol | None:
        return self._bindings.get(node)

    def require(self, node: Node) -> Symbol:
        symbol = self._bindings.get(node)
        if symbol is None or symbol.external:
            name = symbol.name if symbol is not None else type(node).__name__
            raise UnresolvedSymbol(name, node=node)
        return symbol

    def field_symbol(self, decl: FieldDecl) -> Symbol | None:
        return self._field_symbols.get(decl)

    def bindings(self) -> Mapping[Node, Symbol]:
        return dict(self._bindings)

    def assignment_sites(self, symbol: Symbol) -> tuple[tuple[Node, Expr], ...]:
        return tuple(self._sites.get(symbol, ()))

    def resolve_type(self, ref: TypeRef) -> str:
        """Hierarchy key of the type `ref` names, as written in this unit."""

        return self.hierarchy.resolve_ref(ref, self.unit)

    def type_key(self, decl: TypeDeclaration) -> str:
        key = self.index.key_of(decl)
        return key if key is not None else type_key(self.unit, decl)

    def declared_type(self, expr: Expr) -> TypeRef | None:
        if isinstance(expr, New):
            return expr.type
        if isinstance(expr, Cast):
            return expr.type
        if isinstance(expr, MethodCall):
            method = self.resolve_call(expr)
            return method.return_type if method is not None else None
        symbol = self._bindings.get(expr)
        if symbol is None or symbol.external:
            return None
        return symbol.declared_type

    def resolve_call(self, call: MethodCall) -> MethodDecl | None:
        """Resolve calls on `this`/unqualified or on a project-typed receiver to a declaration."""

        candidates: list[TypeDeclaration] = []
        if call.target is None or isinstance(call.target, This):
            for ancestor in self.unit.ancestors(call):
                if isinstance(ancestor, TypeDeclaration):
                    candidates.append(ancestor)
        else:
            receiver = self.declared_type(call.target) if isinstance(call.target, Name | FieldAccess) else None
            declaration = self.index.types.get(self.resolve_type(receiver)) if receiver is not None else None
            if declaration is not None:
                candidates.append(declaration)

        for decl in candidates:
            for owner in self._with_superclasses(decl):
                for method in owner.methods:
                    if method.name == call.name and not method.is_constructor and len(method.parameters) == len(call.args):
                        return method
        return None

    def method_nullability(self, method: MethodDecl) -> Nullability:
        symbol = self._method_symbols.get(method)
        if symbol is not None:
            return symbol.nullability
        return _method_nullability(method)

    def nullability_at(self, expr: Expr) -> Nullability:
        """
        Nullability of the value `expr` refers to at its position.

        For locals only the latest assignment textually preceding the use is
        considered; branches are not modelled.
        """

        symbol = self._bindings.get(expr)
        if symbol is None or symbol.external:
            return "unknown"
        if symbol.kind != "local" or symbol.declared_nullability != "unknown":
            return symbol.nullability

        use = (expr.span.start_line, expr.span.start_col)
        if use == (0, 0):
            return symbol.nullability
        latest: tuple[tuple[int, int], Expr] | None = None
        for site, value in self._sites.get(symbol, ()):
            end = (site.span.end_line, site.span.end_col)
            if end > use:
                continue
            if latest is None or end >= latest[0]:
                latest = (end, value)
        if latest is None:
            return "unknown"
        return "maybe_null" if self.is_nullable_expression(latest[1]) else "unknown"

    def is_nullable_expression(self, expr: Expr) -> bool:
        if isinstance(expr, LiteralExpr):
            return expr.kind == "null"
        if isinstance(expr, Conditional):
            return self.is_nullable_expression(expr.then) or self.is_nullable_expression(expr.otherwise)
        if isinstance(expr, Cast):
            return self.is_nullable_expression(expr.value)
        if isinstance(expr, MethodCall):
            method = self.resolve_call(expr)
            if method is not None:
                return _method_nullability(method) == "maybe_null"
            if expr.name == "get" and len(expr.args) == 1 and expr.target is not None:
                receiver = self.declared_type(expr.target) if isinstance(expr.target, Name | FieldAccess) else None
                return receiver is not None and receiver.name in MAP_TYPES
            if isinstance(expr.target, Name) and expr.target.identifier == "System":
                return expr.name in {"getenv", "getProperty"} and len(expr.args) == 1
        return False

    # --- binding -----------------------------------------------------------

    def _with_superclasses(self, decl: TypeDeclaration) -> Iterable[TypeDeclaration]:
        seen: set[int] = set()
        current: TypeDeclaration | None = decl
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            parent_ref = current.extends[0] if current.extends and not current.is_interface else None
            if parent_ref is None:
                break
            # Supertypes are written relative to the file that declares them.
            home = self.index.declaring_units.get(current, self.unit)
            current = self.index.types.get(self.hierarchy.resolve_ref(parent_ref, home))

    def _bind_type(self, decl: TypeDeclaration, outer: _Scope | None) -> None:
        scope = _Scope(outer, decl)
        inherited = list(self._with_superclasses(decl))
        for owner in reversed(inherited):
            for field_decl in owner.fields:
                symbol = self._field_symbols.get(field_decl)
                if symbol is None:
                    symbol = Symbol(
                        name=field_decl.name,
                        kind="field",
                        declared_type=field_decl.type,
                        declaration=field_decl,
                        owner=owner,
                        declared_nullability=declared_nullability(field_decl.modifiers, field_decl.type),
                    )
                    if self.unit.contains(field_decl):
                        self._field_symbols[field_decl] = symbol
                scope.declare(symbol)

        for field_decl in decl.fields:
            if field_decl.initializer is not None:
                self._bind(field_decl.initializer, scope)
                self._sites[self._field_symbols[field_decl]].append((field_decl, field_decl.initializer))

        for method in decl.methods:
            self._method_symbols[method] = Symbol(
                name=method.name,
                kind="method",
                declared_type=method.return_type,
                declaration=method,
                owner=decl,
                declared_nullability=declared_nullability(method.modifiers, method.return_type),
            )
            method_scope = scope.child()
            for param in method.parameters:
                method_scope.declare(
                    Symbol(
                        name=param.name,
                        kind="parameter",
                        declared_type=param.type,
                        declaration=param,
                        owner=decl,
                        declared_nullability=declared_nullability(param.modifiers, param.type),
                    )
                )
            if method.body is not None:
                self._bind(method.body, method_scope)

        for nested in decl.types:
            self._bind_type(nested, scope)

    def _declare_local(self, scope: _Scope, decl: LocalVarDecl | CatchClause) -> Symbol:
        if isinstance(decl, CatchClause):
            declared = decl.types[0] if len(decl.types) == 1 else None
            modifiers = Modifiers()
        else:
            declared = decl.type
            modifiers = decl.modifiers
        symbol = Symbol(
            name=decl.name,
            kind="local",
            declared_type=declared,
            declaration=decl,
            owner=scope.owner,
            declared_nullability=declared_nullability(modifiers, declared),
        )
        scope.declare(symbol)
        return symbol

    def _bind(self, node: Node, scope: _Scope) -> None:
        if isinstance(node, Name):
            self._bindings[node] = self._lookup(node, scope)
            return
        if isinstance(node, Block):
            inner = scope.child()
            for stmt in node.statements:
                self._bind(stmt, inner)
            return
        if isinstance(node, LocalVarDecl):
            if node.initializer is not None:
                self._bind(node.initializer, scope)
            symbol = self._declare_local(scope, node)
            if node.initializer is not None:
                self._sites[symbol].append((node, node.initializer))
            return
        if isinstance(node, Loop):
            inner = scope.child()
            if node.iterable is not None:
                self._bind(node.iterable, scope)
            if node.variable is not None:
                self._declare_local(inner, node.variable)
            for init in node.init:
                self._bind(init, inner)
            for part in (node.condition, *node.update, node.body):
                if part is not None:
                    self._bind(part, inner)
            return
        if isinstance(node, Try):
            inner = scope.child()
            for resource in node.resources:
                self._bind(resource, inner)
            self._bind(node.body, inner)
            for clause in node.catches:
                catch_scope = scope.child()
                self._declare_local(catch_scope, clause)
                self._bind(clause.body, catch_scope)
            if node.finally_block is not None:
                self._bind(node.finally_block, scope)
            return
        if isinstance(node, Lambda):
            inner = scope.child()
            for param in node.parameters:
                inner.declare(Symbol(name=param.name, kind="parameter", declared_type=param.type, declaration=param, owner=scope.owner))
            self._bind(node.body, inner)
            return
        if isinstance(node, TypeDeclaration):
            self._bind_type(node, scope)
            return
        if isinstance(node, New):
            for arg in node.args:
                self._bind(arg, scope)
            if node.anonymous_body is not None:
                self._bind_type(node.anonymous_body, scope)
            return
        if isinstance(node, FieldAccess):
            self._bind(node.target, scope)
            if isinstance(node.target, This):
                try:
                    self._bindings[node] = scope.type_scope().lookup(node.name)
                except UnresolvedSymbol:
                    self._bindings[node] = self._external(node.name)
            return
        if isinstance(node, Assign):
            self._bind(node.target, scope)
            self._bind(node.value, scope)
            target = self._bindings.get(node.target)
            if target is not None and not target.external and node.operator == "=":
                self._sites[target].append((node, node.value))
            return
        for child in iter_children(node):
            if isinstance(child, TypeRef):
                continue
            self._bind(child, scope)

    def _lookup(self, node: Name, scope: _Scope) -> Symbol:
        try:
            return scope.lookup(node.identifier)
        except UnresolvedSymbol:
            logger.debug("unresolved symbol %r at line %s; treating as external", node.identifier, node.span.start_line)
            return self._external(node.identifier)

    def _external(self, name: str) -> Symbol:
        symbol = self._externals.get(name)
        if symbol is None:
            symbol = Symbol(name=name, kind="external")
            self._externals[name] = symbol
        return symbol

    # --- nullability -------------------------------------------------------

    def _infer_nullability(self) -> None:
        remap: dict[Symbol, Symbol] = {}
        for symbol in self._method_symbols.values():
            remap[symbol] = replace(symbol, nullability=_method_nullability(symbol.declaration))  # type: ignore[arg-type]

        candidates = {id(s): s for s in (*self._field_symbols.values(), *self._bindings.values())}
        for symbol in candidates.values():
            if symbol.external or symbol in remap:
                continue
            remap[symbol] = replace(symbol, nullability=self._summarize(symbol))

        self._method_symbols = {k: remap.get(v, v) for k, v in self._method_symbols.items()}
        self._field_symbols = {k: remap.get(v, v) for k, v in self._field_symbols.items()}
        self._bindings = {k: remap.get(v, v) for k, v in self._bindings.items()}
        sites: dict[Symbol, list[tuple[Node, Expr]]] = defaultdict(list)
        for symbol, entries in self._sites.items():
            sites[remap.get(symbol, symbol)].extend(entries)
        self._sites = sites

    def _summarize(self, symbol: Symbol) -> Nullability:
        if symbol.declared_nullability != "unknown":
            return symbol.declared_nullability
        if symbol.kind == "parameter":
            return "unknown"
        for _site, value in self._sites.get(symbol, ()):
            if self.is_nullable_expression(value):
                return "maybe_null"
        return "unknown"


def _method_nullability(method: MethodDecl) -> Nullability:
    if method.is_constructor or method.return_type is None or method.return_type.is_primitive:
        return "non_null"
    declared = declared_nullability(method.modifiers, method.return_type)
    if declared != "unknown":
        return declared
    if method.body is None:
        return "unknown"
    for node in walk_skipping_nested(method.body):
        if isinstance(node, Return) and node.value is not None and _is_null_like(node.value):
            return "maybe_null"
    return "unknown"


def _is_null_like(expr: Expr) -> bool:
    if isinstance(expr, LiteralExpr):
        return expr.kind == "null"
    if isinstance(expr, Conditional):
        return _is_null_like(expr.then) or _is_null_like(expr.otherwise)
    return False


def has_return_null(method: MethodDecl) -> Return | None:
    """First `return null;` of the method body, ignoring lambdas and nested types."""

    if method.body is None:
        return None
    for node in walk_skipping_nested(method.body):
        if isinstance(node, Return) and isinstance(node.value, LiteralExpr) and node.value.kind == "null":
            return node
    return None
