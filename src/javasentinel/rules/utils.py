from __future__ import annotations

import re
from collections.abc import Iterator

from javasentinel.engine.resolver import Resolver, Symbol
from javasentinel.engine.tree import (
    Binary,
    Block,
    Break,
    CompilationUnit,
    Continue,
    FieldAccess,
    LiteralExpr,
    MethodCall,
    Name,
    New,
    Node,
    Return,
    Statement,
    This,
    Throw,
    TypeDeclaration,
    TypeRef,
    Unary,
    walk,
)

# Mutable JDK containers, keyed by simple name.
MUTABLE_LISTS = frozenset({"List", "ArrayList", "LinkedList", "Vector", "Stack", "CopyOnWriteArrayList"})
MUTABLE_SETS = frozenset({"Set", "HashSet", "LinkedHashSet", "TreeSet", "SortedSet", "NavigableSet", "EnumSet"})
MUTABLE_MAPS = frozenset(
    {
        "Map",
        "HashMap",
        "LinkedHashMap",
        "TreeMap",
        "SortedMap",
        "NavigableMap",
        "Hashtable",
        "ConcurrentHashMap",
        "EnumMap",
    }
)
MUTABLE_QUEUES = frozenset({"Collection", "Queue", "Deque", "ArrayDeque", "PriorityQueue"})
MUTABLE_OTHER = frozenset({"Date"})
MUTABLE_CONTAINERS = MUTABLE_LISTS | MUTABLE_SETS | MUTABLE_MAPS | MUTABLE_QUEUES | MUTABLE_OTHER

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")


def is_mutable_container(ref: TypeRef | None) -> bool:
    if ref is None:
        return False
    return ref.is_array or ref.name in MUTABLE_CONTAINERS


def split_words(name: str) -> list[str]:
    words: list[str] = []
    for part in re.split(r"[_$]+", name):
        words.extend(_WORD_RE.findall(part))
    return words


def to_camel_case(name: str) -> str:
    words = split_words(name)
    if not words:
        return name
    return words[0].lower() + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])


def to_pascal_case(name: str) -> str:
    words = split_words(name)
    if not words:
        return name
    return "".join(w[:1].upper() + w[1:].lower() for w in words)


def to_upper_snake_case(name: str) -> str:
    words = split_words(name)
    if not words:
        return name
    return "_".join(w.upper() for w in words)


def iter_type_declarations(unit: CompilationUnit, *, include_anonymous: bool = False) -> Iterator[TypeDeclaration]:
    """Named declarations (nested included), plus anonymous class bodies when asked."""

    if not include_anonymous:
        yield from unit.all_types()
        return
    for node in walk(unit):
        if isinstance(node, TypeDeclaration):
            yield node


def references(node: Node, symbol: Symbol, resolver: Resolver, *, ignore: Node | None = None) -> bool:
    """True if any name below `node` (other than `ignore`) is bound to `symbol`."""

    for child in walk(node):
        if child is ignore:
            continue
        if resolver.symbol_for(child) is symbol:
            return True
    return False


def is_null(expr: Node | None) -> bool:
    return isinstance(expr, LiteralExpr) and expr.kind == "null"


def is_exit(stmt: Statement) -> bool:
    if isinstance(stmt, Block):
        return bool(stmt.statements) and is_exit(stmt.statements[-1])
    return isinstance(stmt, Return | Throw | Break | Continue)


def snippet(unit: CompilationUnit, node: Node) -> str:
    """Source text of `node`, or a best-effort rendering for trees built without source."""

    text = unit.text_of(node)
    if text is not None:
        return " ".join(text.split())
    return render(node)


def render(node: Node) -> str:
    if isinstance(node, Name):
        return node.identifier
    if isinstance(node, This):
        return "this"
    if isinstance(node, LiteralExpr):
        return node.value
    if isinstance(node, FieldAccess):
        return f"{render(node.target)}.{node.name}"
    if isinstance(node, MethodCall):
        args = ", ".join(render(a) for a in node.args)
        prefix = f"{render(node.target)}." if node.target is not None else ""
        return f"{prefix}{node.name}({args})"
    if isinstance(node, New):
        return f"new {node.type.text}({', '.join(render(a) for a in node.args)})"
    if isinstance(node, Binary):
        return f"{render(node.left)} {node.operator} {render(node.right)}"
    if isinstance(node, Unary):
        return f"{node.operator}{render(node.operand)}" if node.prefix else f"{render(node.operand)}{node.operator}"
    if isinstance(node, TypeRef):
        return node.text
    return "..."
