from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator

from javasentinel.engine.hierarchy import simple_name
from javasentinel.engine.index import ProjectIndex, type_key
from javasentinel.engine.resolver import Resolver, Symbol
from javasentinel.engine.tree import (
    Assign,
    CompilationUnit,
    FieldDecl,
    Lambda,
    LiteralExpr,
    LocalVarDecl,
    Loop,
    MethodCall,
    MethodDecl,
    MethodReference,
    New,
    Parameter,
    Node,
    TypeDeclaration,
    TypeRef,
    walk,
)
from javasentinel.engine.types import Finding
from javasentinel.rules.base import BaseRule, RuleMeta
from javasentinel.rules.utils import iter_type_declarations

# --- G06 --------------------------------------------------------------------

LEGACY_TYPES = {
    "Vector": ("ArrayList", "wrap it with `Collections.synchronizedList` only where it is shared between threads"),
    "Hashtable": ("HashMap", "use `ConcurrentHashMap` where it is shared between threads"),
    "Stack": ("ArrayDeque", "use `push`/`pop` on a `Deque`"),
    "StringBuffer": ("StringBuilder", "synchronize explicitly in the rare case a builder is shared"),
}


class G06CollectionChoice(BaseRule):
    """
    Collection choice heuristics, by type name only.

    - legacy synchronized types (Vector, Hashtable, Stack, StringBuffer)
    - inserting/removing at index 0 of an ArrayList
    - `LinkedList.get(int)` inside a loop
    """

    meta = RuleMeta(
        rule_id="G06",
        title="Collection choice",
        description="Prefer unsynchronized modern collections and pick implementations that suit the access pattern.",
        default_severity="warning",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for node in walk(unit):
            if isinstance(node, TypeRef) and node.name in LEGACY_TYPES and not _duplicate_legacy_ref(unit, node):
                replacement, advice = LEGACY_TYPES[node.name]
                out.append(
                    self._finding(
                        unit,
                        node,
                        message=f"`{node.name}` is a legacy synchronized type; prefer `{replacement}` and {advice}.",
                        suggestion=node.text.replace(node.name, replacement, 1),
                    )
                )
            elif isinstance(node, MethodCall):
                finding = self._check_access(unit, resolver, node)
                if finding is not None:
                    out.append(finding)
        return out

    def _check_access(self, unit: CompilationUnit, resolver: Resolver, call: MethodCall) -> Finding | None:
        if call.target is None:
            return None
        concrete = concrete_type(resolver, call.target)
        if concrete == "ArrayList":
            front_remove = call.name == "remove" and len(call.args) == 1 and _is_zero(call.args[0])
            front_insert = call.name == "add" and len(call.args) == 2 and _is_zero(call.args[0])
            if front_remove or front_insert:
                op = "Removing from" if front_remove else "Inserting at"
                return self._finding(
                    unit,
                    call,
                    message=f"{op} the front of an `ArrayList` shifts every element; the list is being used as a queue.",
                    suggestion="Use an `ArrayDeque` (`pollFirst()` / `addFirst()`) for front access.",
                )
        if concrete == "LinkedList" and call.name == "get" and len(call.args) == 1 and _inside_loop(unit, call):
            return self._finding(
                unit,
                call,
                message="`LinkedList.get(int)` walks the list on every call; inside a loop this is quadratic.",
                suggestion="Iterate with a for-each loop or use an `ArrayList` for indexed access.",
            )
        return None


def _duplicate_legacy_ref(unit: CompilationUnit, ref: TypeRef) -> bool:
    parent = unit.parent(ref)
    # Anonymous bodies repeat the created type.
    if isinstance(parent, TypeDeclaration) and not parent.name:
        return True
    if not isinstance(parent, New) or parent.type is not ref:
        return False
    holder = unit.parent(parent)
    declared: TypeRef | None = None
    if isinstance(holder, LocalVarDecl | FieldDecl):
        declared = holder.type
    return declared is not None and declared.name == ref.name


def _is_zero(expr: Node) -> bool:
    return isinstance(expr, LiteralExpr) and expr.kind == "number" and expr.value == "0"


def _inside_loop(unit: CompilationUnit, node: Node) -> bool:
    for ancestor in unit.ancestors(node):
        if isinstance(ancestor, Loop):
            return True
        if isinstance(ancestor, MethodDecl | Lambda | TypeDeclaration):
            return False
    return False


def concrete_type(resolver: Resolver, expr: Node) -> str | None:
    """Concrete class behind `expr`: its declared class, or the class every assignment site creates."""

    symbol = resolver.symbol_for(expr)
    if symbol is None or symbol.external or symbol.declared_type is None:
        return None
    declared = symbol.declared_type.name
    if resolver.hierarchy.category(resolver.resolve_type(symbol.declared_type)) == "class":
        return declared
    values = [value for _site, value in resolver.assignment_sites(symbol)]
    if not values or not all(isinstance(v, New) for v in values):
        return None
    created = {v.type.name for v in values if isinstance(v, New)}
    return created.pop() if len(created) == 1 else None


# --- G07 --------------------------------------------------------------------

_OBJECT_CONTRACT = frozenset({"equals", "hashCode", "toString", "clone", "finalize", "compareTo"})


class G07Visibility(BaseRule):
    """
    Public/protected members never referenced outside their top-level type.

    Needs a complete project index: when the analyzed units are not the
    whole project, outside references are unknown and nothing is flagged.
    """

    meta = RuleMeta(
        rule_id="G07",
        title="Visibility too wide",
        description="Members that nothing outside their class uses should not be public or protected.",
        default_severity="info",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        if not index.complete:
            return []
        out: list[Finding] = []
        for decl in unit.all_types():
            if decl.is_interface:
                continue
            top = unit.top_level_type(decl) or decl
            owner_key = type_key(unit, top)
            inherited = _inherited_member_names(resolver, decl)
            for member in decl.members:
                visibility = member.modifiers.visibility
                if visibility not in {"public", "protected"} or member.modifiers.annotations:
                    continue
                if isinstance(member, FieldDecl):
                    if member.enum_constant or member.name == "serialVersionUID":
                        continue
                    kind = "field"
                else:
                    if member.is_constructor or member.name in _OBJECT_CONTRACT:
                        continue
                    if member.name == "main" and member.modifiers.is_static:
                        continue
                    if inherited is None or member.name in inherited:
                        continue
                    kind = "method"
                if index.referenced_outside(member.name, owner_key):
                    continue
                out.append(
                    self._finding(
                        unit,
                        member.name_span,
                        message=f"{visibility.capitalize()} {kind} `{member.name}` is never used outside `{top.name}`.",
                        suggestion=f"Make `{member.name}` private (or package-private if tests need it).",
                    )
                )
        return out


def _inherited_member_names(resolver: Resolver, decl: TypeDeclaration) -> frozenset[str] | None:
    """Method names `decl` may be implementing; None when a supertype is unknown."""

    hierarchy = resolver.hierarchy
    names: set[str] = set()
    for ancestor in hierarchy.ancestors(resolver.type_key(decl)):
        members = hierarchy.members(ancestor)
        if members is None:
            return None
        names.update(members)
    return frozenset(names)


# --- G08 --------------------------------------------------------------------

CONCRETE_COLLECTIONS = frozenset(
    {
        "ArrayList",
        "LinkedList",
        "Vector",
        "Stack",
        "CopyOnWriteArrayList",
        "HashSet",
        "LinkedHashSet",
        "TreeSet",
        "ArrayDeque",
        "PriorityQueue",
        "HashMap",
        "LinkedHashMap",
        "TreeMap",
        "Hashtable",
        "ConcurrentHashMap",
        "EnumMap",
    }
)


class G08InterfaceOverImplementation(BaseRule):
    """
    Concrete implementation types where an interface would do.

    Considers private fields, parameters of non-override methods and return
    types of private methods. A value is flagged only when every member used
    on it exists on a known interface of its type and the value never escapes
    (passed as an argument, assigned elsewhere, returned).
    """

    meta = RuleMeta(
        rule_id="G08",
        title="Program to an interface",
        description="Declare fields, parameters and return types by the interface whose operations are used, "
        "not by the implementation class.",
        default_severity="info",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        uses: dict[Symbol, list[Node]] = defaultdict(list)
        for node, symbol in resolver.bindings().items():
            if not symbol.external:
                uses[symbol].append(node)

        out: list[Finding] = []
        for decl in iter_type_declarations(unit, include_anonymous=True):
            for field_decl in decl.fields:
                symbol = resolver.field_symbol(field_decl)
                if symbol is None or field_decl.modifiers.visibility != "private":
                    continue
                finding = self._check_value(unit, resolver, field_decl.type, f"Field `{field_decl.name}`", uses[symbol])
                if finding is not None:
                    out.append(finding)

            for method in decl.methods:
                if not method.is_override:
                    for param, symbol in _parameter_symbols(resolver, method, uses):
                        finding = self._check_value(unit, resolver, param.type, f"Parameter `{param.name}`", uses[symbol])
                        if finding is not None:
                            out.append(finding)
                if method.modifiers.visibility == "private" and method.return_type is not None:
                    finding = self._check_return(unit, resolver, method)
                    if finding is not None:
                        out.append(finding)
        return out

    def _check_value(
        self, unit: CompilationUnit, resolver: Resolver, declared: TypeRef, what: str, occurrences: list[Node]
    ) -> Finding | None:
        if not _candidate_type(resolver, declared):
            return None
        used: set[str] = set()
        for occurrence in occurrences:
            parent = unit.parent(occurrence)
            if isinstance(parent, MethodCall) and parent.target is occurrence:
                used.add(parent.name)
            elif isinstance(parent, Assign) and parent.target is occurrence:
                continue
            elif isinstance(parent, Loop) and parent.iterable is occurrence:
                used.add("iterator")
            else:
                return None
        return self._suggest(unit, resolver, declared, what, used)

    def _check_return(self, unit: CompilationUnit, resolver: Resolver, method: MethodDecl) -> Finding | None:
        declared = method.return_type
        assert declared is not None
        if not _candidate_type(resolver, declared):
            return None
        used: set[str] = set()
        for node in walk(unit):
            if isinstance(node, MethodReference) and node.name == method.name:
                return None
            if not isinstance(node, MethodCall) or resolver.resolve_call(node) is not method:
                continue
            parent = unit.parent(node)
            if isinstance(parent, MethodCall) and parent.target is node:
                used.add(parent.name)
            else:
                return None
        return self._suggest(unit, resolver, declared, f"Return type of `{method.name}`", used)

    def _suggest(
        self, unit: CompilationUnit, resolver: Resolver, declared: TypeRef, what: str, used: set[str]
    ) -> Finding | None:
        hierarchy = resolver.hierarchy
        for interface in hierarchy.interfaces_of(resolver.resolve_type(declared)):
            members = hierarchy.members(interface)
            if members is None or not used <= members:
                continue
            replacement = _retyped(declared, simple_name(interface))
            return self._finding(
                unit,
                declared,
                message=f"{what} is declared as `{declared.text}`, but every use fits `{simple_name(interface)}`.",
                suggestion=replacement,
            )
        return None


def _candidate_type(resolver: Resolver, ref: TypeRef) -> bool:
    if ref.is_array or ref.is_primitive:
        return False
    hierarchy = resolver.hierarchy
    key = resolver.resolve_type(ref)
    if hierarchy.is_project_type(key):
        return hierarchy.category(key) == "class"
    return ref.name in CONCRETE_COLLECTIONS


def _parameter_symbols(
    resolver: Resolver, method: MethodDecl, uses: dict[Symbol, list[Node]]
) -> Iterator[tuple[Parameter, Symbol]]:
    by_declaration = {id(s.declaration): s for s in uses if s.kind == "parameter"}
    for param in method.parameters:
        symbol = by_declaration.get(id(param))
        if symbol is not None and param.type is not None:
            yield param, symbol


def _retyped(ref: TypeRef, name: str) -> str:
    out = name
    if ref.args:
        out += "<" + ", ".join(a.text for a in ref.args) + ">"
    return out


# --- G09 --------------------------------------------------------------------


class G09InterfaceNecessity(BaseRule):
    """
    Interfaces with exactly one implementation.

    Counts named implementers and anonymous classes across the index. With
    an incomplete index the count may be missing implementers, so the finding
    is advisory (info, low confidence).
    """

    meta = RuleMeta(
        rule_id="G09",
        title="Single-implementation interface",
        description="An interface with exactly one implementation adds indirection without enabling polymorphism.",
        default_severity="warning",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for decl in unit.all_types():
            if not decl.is_interface or decl.modifiers.has_annotation("FunctionalInterface"):
                continue
            key = resolver.type_key(decl)
            if index.implementation_count(key) != 1:
                continue
            implementers = index.implementers(key)
            impl = f"`{simple_name(implementers[0])}`" if implementers else "an anonymous class"
            if index.complete:
                out.append(
                    self._finding(
                        unit,
                        decl.name_span,
                        message=f"Interface `{decl.name}` has a single implementation ({impl}).",
                        suggestion=f"Use {impl} directly unless `{decl.name}` is a published extension point.",
                    )
                )
            else:
                out.append(
                    self._finding(
                        unit,
                        decl.name_span,
                        severity="info",
                        confidence="low",
                        message=f"Interface `{decl.name}` has a single implementation ({impl}) among the analyzed files.",
                        suggestion=f"If no other implementation exists in the project, use {impl} directly.",
                    )
                )
        return out


# --- G10 --------------------------------------------------------------------


class G10EqualsHashCode(BaseRule):
    """equals(Object) and hashCode() must be overridden together."""

    meta = RuleMeta(
        rule_id="G10",
        title="equals/hashCode pairing",
        description="A type that overrides equals(Object) must override hashCode(), and vice versa.",
        default_severity="error",
        category="design",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for decl in iter_type_declarations(unit, include_anonymous=True):
            if decl.is_interface:
                continue
            equals = next((m for m in decl.methods if _is_equals(m)), None)
            hash_code = next((m for m in decl.methods if _is_hash_code(m)), None)
            name = decl.name or "anonymous class"
            if equals is not None and hash_code is None:
                out.append(
                    self._finding(
                        unit,
                        equals.name_span,
                        message=f"`{name}` overrides equals(Object) but not hashCode(); equal objects would hash differently.",
                        suggestion=_hash_code_template(decl),
                    )
                )
            elif hash_code is not None and equals is None:
                out.append(
                    self._finding(
                        unit,
                        hash_code.name_span,
                        message=f"`{name}` overrides hashCode() but not equals(Object); the hash is not tied to equality.",
                        suggestion=_equals_template(decl),
                    )
                )
        return out


def _is_equals(method: MethodDecl) -> bool:
    if method.name != "equals" or method.modifiers.is_static or len(method.parameters) != 1:
        return False
    param_type = method.parameters[0].type
    return param_type is not None and param_type.name == "Object" and param_type.dims == 0


def _is_hash_code(method: MethodDecl) -> bool:
    return method.name == "hashCode" and not method.parameters and not method.modifiers.is_static


def _instance_fields(decl: TypeDeclaration) -> list[FieldDecl]:
    return [f for f in decl.fields if not f.modifiers.is_static and not f.enum_constant]


def _hash_code_template(decl: TypeDeclaration) -> str:
    names = ", ".join(f.name for f in _instance_fields(decl))
    body = f"return Objects.hash({names});" if names else "return getClass().hashCode();"
    return f"@Override\npublic int hashCode() {{\n    {body}\n}}"


def _equals_template(decl: TypeDeclaration) -> str:
    name = decl.name or "Self"
    comparisons: list[str] = []
    for f in _instance_fields(decl):
        if f.type.name in {"float", "double"} and f.type.dims == 0:
            boxed = "Float" if f.type.name == "float" else "Double"
            comparisons.append(f"{boxed}.compare({f.name}, other.{f.name}) == 0")
        elif f.type.is_primitive:
            comparisons.append(f"{f.name} == other.{f.name}")
        else:
            comparisons.append(f"Objects.equals({f.name}, other.{f.name})")
    result = " && ".join(comparisons) if comparisons else "true"
    return (
        "@Override\n"
        "public boolean equals(Object o) {\n"
        "    if (this == o) return true;\n"
        "    if (o == null || getClass() != o.getClass()) return false;\n"
        f"    {name} other = ({name}) o;\n"
        f"    return {result};\n"
        "}"
    )


def builtin_design_rules() -> list[BaseRule]:
    return [
        G06CollectionChoice(),
        G07Visibility(),
        G08InterfaceOverImplementation(),
        G09InterfaceNecessity(),
        G10EqualsHashCode(),
    ]
