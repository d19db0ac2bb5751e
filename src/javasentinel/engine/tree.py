from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Any, Literal, TypeVar

TypeKind = Literal["class", "interface", "enum", "record"]
Visibility = Literal["public", "protected", "private", "package"]
LoopKind = Literal["for", "foreach", "while", "do"]
LiteralKind = Literal["null", "string", "number", "boolean", "char"]

VISIBILITY_KEYWORDS = ("public", "protected", "private")
PRIMITIVE_TYPES = frozenset({"boolean", "byte", "char", "short", "int", "long", "float", "double", "void"})

_N = TypeVar("_N", bound="Node")


class MalformedTree(ValueError):
    """Raised when a parsed tree violates the structural invariants of the model."""

    def __init__(self, message: str, *, node: Node | None = None) -> None:
        super().__init__(message)
        self.node = node


@dataclass(frozen=True, slots=True)
class Span:
    start_line: int = 0  # 1-based, 0 = unknown
    start_col: int = 0  # 1-based
    end_line: int = 0
    end_col: int = 0
    start_byte: int | None = None
    end_byte: int | None = None

    @property
    def known(self) -> bool:
        return self.start_line > 0


UNKNOWN_SPAN = Span()


@dataclass(frozen=True, slots=True)
class Modifiers:
    keywords: frozenset[str] = frozenset()
    annotations: tuple[str, ...] = ()

    @property
    def visibility(self) -> Visibility:
        for keyword in VISIBILITY_KEYWORDS:
            if keyword in self.keywords:
                return keyword  # type: ignore[return-value]
        return "package"

    @property
    def is_static(self) -> bool:
        return "static" in self.keywords

    @property
    def is_final(self) -> bool:
        return "final" in self.keywords

    def has_annotation(self, *names: str) -> bool:
        # Annotations are stored by simple name; `@javax.annotation.Nullable` -> "Nullable".
        return any(a in names for a in self.annotations)


NO_MODIFIERS = Modifiers()


# --- base node kinds -------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Node:
    span: Span = UNKNOWN_SPAN


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Statement(Node):
    pass


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Expr(Node):
    pass


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class TypeRef(Node):
    name: str
    args: tuple[TypeRef, ...] = ()
    dims: int = 0
    qualifier: str | None = None

    @property
    def is_primitive(self) -> bool:
        return self.dims == 0 and self.name in PRIMITIVE_TYPES

    @property
    def is_array(self) -> bool:
        return self.dims > 0

    @property
    def text(self) -> str:
        out = f"{self.qualifier}.{self.name}" if self.qualifier else self.name
        if self.args:
            out += "<" + ", ".join(a.text for a in self.args) + ">"
        return out + "[]" * self.dims


# --- declarations ----------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Parameter(Node):
    name: str
    type: TypeRef | None = None
    modifiers: Modifiers = NO_MODIFIERS


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class FieldDecl(Node):
    name: str
    type: TypeRef
    modifiers: Modifiers = NO_MODIFIERS
    initializer: Expr | None = None
    name_span: Span = UNKNOWN_SPAN
    enum_constant: bool = False


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class MethodDecl(Node):
    name: str
    return_type: TypeRef | None = None
    parameters: tuple[Parameter, ...] = ()
    modifiers: Modifiers = NO_MODIFIERS
    throws: tuple[TypeRef, ...] = ()
    body: Block | None = None
    is_constructor: bool = False
    name_span: Span = UNKNOWN_SPAN

    @property
    def statements(self) -> tuple[Statement, ...]:
        return self.body.statements if self.body is not None else ()

    @property
    def is_override(self) -> bool:
        return self.modifiers.has_annotation("Override")


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class TypeDeclaration(Node):
    name: str
    kind: TypeKind = "class"
    modifiers: Modifiers = NO_MODIFIERS
    extends: tuple[TypeRef, ...] = ()
    implements: tuple[TypeRef, ...] = ()
    fields: tuple[FieldDecl, ...] = ()
    methods: tuple[MethodDecl, ...] = ()
    types: tuple[TypeDeclaration, ...] = ()
    name_span: Span = UNKNOWN_SPAN

    @property
    def members(self) -> tuple[FieldDecl | MethodDecl, ...]:
        return (*self.fields, *self.methods)

    @property
    def is_interface(self) -> bool:
        return self.kind == "interface"

    @property
    def supertypes(self) -> tuple[TypeRef, ...]:
        return (*self.extends, *self.implements)

    def field(self, name: str) -> FieldDecl | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def methods_named(self, name: str) -> tuple[MethodDecl, ...]:
        return tuple(m for m in self.methods if m.name == name)


# --- statements ------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Block(Statement):
    statements: tuple[Statement, ...] = ()


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class LocalVarDecl(Statement):
    name: str
    type: TypeRef | None = None  # None for `var`
    initializer: Expr | None = None
    modifiers: Modifiers = NO_MODIFIERS
    name_span: Span = UNKNOWN_SPAN


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class ExpressionStmt(Statement):
    expr: Expr


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class If(Statement):
    condition: Expr
    then: Statement
    otherwise: Statement | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Loop(Statement):
    kind: LoopKind
    body: Statement | None = None
    condition: Expr | None = None
    init: tuple[Node, ...] = ()
    update: tuple[Expr, ...] = ()
    variable: LocalVarDecl | None = None  # foreach loop variable
    iterable: Expr | None = None  # foreach source


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Return(Statement):
    value: Expr | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Throw(Statement):
    value: Expr


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Break(Statement):
    label: str | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Continue(Statement):
    label: str | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Labeled(Statement):
    label: str
    body: Statement


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class CatchClause(Node):
    types: tuple[TypeRef, ...]
    name: str
    body: Block
    name_span: Span = UNKNOWN_SPAN


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Try(Statement):
    body: Block
    catches: tuple[CatchClause, ...] = ()
    finally_block: Block | None = None
    resources: tuple[Node, ...] = ()


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class OtherStatement(Statement):
    kind: str
    children: tuple[Node, ...] = ()


# --- expressions -----------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Name(Expr):
    identifier: str


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class LiteralExpr(Expr):
    kind: LiteralKind
    value: str


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class This(Expr):
    pass


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class FieldAccess(Expr):
    target: Expr
    name: str


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class MethodCall(Expr):
    name: str
    target: Expr | None = None
    args: tuple[Expr, ...] = ()
    name_span: Span = UNKNOWN_SPAN


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class MethodReference(Expr):
    name: str
    target: Node | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class New(Expr):
    type: TypeRef
    args: tuple[Expr, ...] = ()
    anonymous_body: TypeDeclaration | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Lambda(Expr):
    parameters: tuple[Parameter, ...]
    body: Node


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class CollectionLiteral(Expr):
    elements: tuple[Expr, ...] = ()
    element_type: TypeRef | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Assign(Expr):
    target: Expr
    value: Expr
    operator: str = "="


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Binary(Expr):
    operator: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Unary(Expr):
    operator: str
    operand: Expr
    prefix: bool = True


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Conditional(Expr):
    condition: Expr
    then: Expr
    otherwise: Expr


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class Cast(Expr):
    type: TypeRef
    value: Expr


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class InstanceOf(Expr):
    value: Expr
    type: TypeRef | None = None


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class OtherExpr(Expr):
    kind: str
    children: tuple[Node, ...] = ()


# --- compilation unit ------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False, kw_only=True)
class CompilationUnit(Node):
    """
    Root of one parsed Java source file.

    Construction validates the structural invariants of the whole subtree and
    builds the parent index used for upward navigation. The unit and every
    node below it are read-only afterwards.
    """

    path: str | None = None
    source: str | None = None
    package: str | None = None
    package_span: Span | None = None
    imports: tuple[str, ...] = ()
    types: tuple[TypeDeclaration, ...] = ()
    _parents: dict[Node, Node] = field(init=False, repr=False, compare=False)
    _source_bytes: bytes | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_parents", _index_parents(self))
        raw = self.source.encode("utf-8", errors="replace") if self.source is not None else None
        object.__setattr__(self, "_source_bytes", raw)

    def parent(self, node: Node) -> Node | None:
        return self._parents.get(node)

    def ancestors(self, node: Node) -> Iterator[Node]:
        current = self._parents.get(node)
        while current is not None:
            yield current
            current = self._parents.get(current)

    def enclosing(self, node: Node, kind: type[_N]) -> _N | None:
        for ancestor in self.ancestors(node):
            if isinstance(ancestor, kind):
                return ancestor
        return None

    def top_level_type(self, node: Node) -> TypeDeclaration | None:
        outermost: TypeDeclaration | None = node if isinstance(node, TypeDeclaration) else None
        for ancestor in self.ancestors(node):
            if isinstance(ancestor, TypeDeclaration):
                outermost = ancestor
        return outermost

    def all_types(self) -> tuple[TypeDeclaration, ...]:
        """Named type declarations in source order, nested ones included."""

        out: list[TypeDeclaration] = []

        def visit(decl: TypeDeclaration) -> None:
            out.append(decl)
            for nested in decl.types:
                visit(nested)

        for decl in self.types:
            visit(decl)
        return tuple(out)

    def contains(self, node: Node) -> bool:
        return node is self or node in self._parents

    def text_of(self, node: Node) -> str | None:
        span = node.span
        if self._source_bytes is None or span.start_byte is None or span.end_byte is None:
            return None
        return self._source_bytes[span.start_byte : span.end_byte].decode("utf-8", errors="replace")


# --- traversal -------------------------------------------------------------


@lru_cache(maxsize=None)
def _node_field_names(cls: type) -> tuple[str, ...]:
    skip = {"span", "name_span", "package_span", "_parents", "_source_bytes", "source", "path"}
    return tuple(f.name for f in fields(cls) if f.name not in skip)


def iter_children(node: Node) -> Iterator[Node]:
    for name in _node_field_names(type(node)):
        value: Any = getattr(node, name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of `node` and all of its descendants."""

    stack = [node]
    while stack:
        n = stack.pop()
        yield n
        stack.extend(reversed(list(iter_children(n))))


def walk_skipping_nested(node: Node) -> Iterator[Node]:
    """
    Like `walk`, but does not descend into lambdas or nested/anonymous types.

    Used for per-method questions ("does this method return null?") where a
    `return` inside a lambda belongs to a different body.
    """

    stack = [node]
    while stack:
        n = stack.pop()
        yield n
        if n is not node and isinstance(n, Lambda | TypeDeclaration):
            continue
        stack.extend(reversed(list(iter_children(n))))


def _index_parents(unit: CompilationUnit) -> dict[Node, Node]:
    parents: dict[Node, Node] = {}
    stack: list[Node] = [unit]
    while stack:
        node = stack.pop()
        _check_node(node)
        for child in iter_children(node):
            if child is unit or child in parents:
                raise MalformedTree(
                    f"{type(child).__name__} at line {child.span.start_line} is owned by more than one parent",
                    node=child,
                )
            parents[child] = node
            stack.append(child)
    return parents


def _check_node(node: Node) -> None:
    span = node.span
    if span.known and (span.end_line, span.end_col) < (span.start_line, span.start_col):
        raise MalformedTree(f"{type(node).__name__} has an inverted source span: {span}", node=node)

    modifiers = getattr(node, "modifiers", None)
    if isinstance(modifiers, Modifiers):
        visibility = [k for k in VISIBILITY_KEYWORDS if k in modifiers.keywords]
        if len(visibility) > 1:
            raise MalformedTree(
                f"{getattr(node, 'name', type(node).__name__)!s} declares more than one visibility: {', '.join(visibility)}",
                node=node,
            )

    if isinstance(node, Block):
        for stmt in node.statements:
            if not isinstance(stmt, Statement):
                raise MalformedTree(f"block contains a non-statement node: {type(stmt).__name__}", node=node)
    elif isinstance(node, MethodDecl):
        if node.body is not None and not isinstance(node.body, Block):
            raise MalformedTree(f"method {node.name!r} has a body that is not a block", node=node)
    elif isinstance(node, TypeDeclaration):
        if any(not isinstance(f, FieldDecl) for f in node.fields):
            raise MalformedTree(f"type {node.name!r} lists a non-field member as a field", node=node)
        if any(not isinstance(m, MethodDecl) for m in node.methods):
            raise MalformedTree(f"type {node.name!r} lists a non-method member as a method", node=node)
