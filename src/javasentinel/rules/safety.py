from __future__ import annotations

import re
from collections.abc import Iterator

from javasentinel.engine.index import ProjectIndex
from javasentinel.engine.resolver import Resolver, Symbol, has_return_null
from javasentinel.engine.tree import (
    Assign,
    Binary,
    Block,
    CompilationUnit,
    Conditional,
    Expr,
    ExpressionStmt,
    FieldAccess,
    If,
    InstanceOf,
    Lambda,
    Loop,
    MethodCall,
    MethodDecl,
    Name,
    New,
    Node,
    OtherStatement,
    Return,
    This,
    Throw,
    Try,
    TypeDeclaration,
    TypeRef,
    Unary,
    walk,
    walk_skipping_nested,
)
from javasentinel.engine.types import Finding
from javasentinel.rules.base import BaseRule, RuleMeta
from javasentinel.rules.utils import is_exit, is_mutable_container, is_null, iter_type_declarations

# --- G03 --------------------------------------------------------------------


class G03NullSafety(BaseRule):
    """
    Null-safety.

    (a) A method call or field access on a value the resolver considers
    maybe-null, with no guard on the path: `x != null && ...`,
    `x == null || ...`, a ternary or enclosing `if`/`while` on `x`, an
    earlier early-exit `if (x == null)`, `Objects.requireNonNull(x)` or
    `assert x != null`. External symbols are never flagged.

    (b) An explicit `return null` from a method returning a reference type:
    suggest `Optional<T>` instead (advisory, one per method).
    """

    meta = RuleMeta(
        rule_id="G03",
        title="Null-safety",
        description="Values that may be null must be checked before they are dereferenced; prefer Optional "
        "over returning null.",
        default_severity="warning",
        category="safety",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for node in walk(unit):
            target = _dereferenced(node)
            if target is None:
                continue
            finding = self._check_dereference(unit, resolver, node, target)
            if finding is not None:
                out.append(finding)

        for decl in iter_type_declarations(unit, include_anonymous=True):
            for method in decl.methods:
                finding = self._check_return_null(unit, method)
                if finding is not None:
                    out.append(finding)
        return out

    def _check_dereference(self, unit: CompilationUnit, resolver: Resolver, deref: Expr, target: Expr) -> Finding | None:
        if isinstance(target, MethodCall):
            method = resolver.resolve_call(target)
            if method is None or resolver.method_nullability(method) != "maybe_null":
                return None
            return self._finding(
                unit,
                deref,
                message=f"`{method.name}()` may return null and its result is dereferenced without a check.",
                suggestion=f"Store the result of `{method.name}()` and check it for null, or have it return Optional.",
            )

        symbol = resolver.symbol_for(target)
        if symbol is None or symbol.external:
            return None
        if resolver.nullability_at(target) != "maybe_null":
            return None
        if _is_guarded(unit, resolver, deref, symbol):
            return None
        what = "field" if symbol.kind == "field" else "variable" if symbol.kind == "local" else symbol.kind
        return self._finding(
            unit,
            deref,
            message=f"{what.capitalize()} `{symbol.name}` may be null here and is dereferenced without a null check.",
            suggestion=f"if ({symbol.name} != null) {{ ... }}  // or Objects.requireNonNull({symbol.name})",
        )

    def _check_return_null(self, unit: CompilationUnit, method: MethodDecl) -> Finding | None:
        rt = method.return_type
        if method.is_constructor or method.is_override or rt is None or rt.is_primitive or rt.name == "Optional":
            return None
        ret = has_return_null(method)
        if ret is None:
            return None
        return self._finding(
            unit,
            ret,
            severity="info",
            message=f"Method `{method.name}` returns null explicitly; callers cannot see that the result may be absent.",
            suggestion=f"Declare the return type as `Optional<{_boxed(rt)}>` and `return Optional.empty();`.",
        )


_BOXES = {
    "int": "Integer",
    "char": "Character",
    "boolean": "Boolean",
    "long": "Long",
    "double": "Double",
    "float": "Float",
    "short": "Short",
    "byte": "Byte",
}


def _boxed(ref: TypeRef) -> str:
    return _BOXES.get(ref.text, ref.text)


def _dereferenced(node: Node) -> Expr | None:
    if isinstance(node, MethodCall):
        target = node.target
    elif isinstance(node, FieldAccess) and node.name not in {"class", "this"}:
        target = node.target
    else:
        return None
    if target is None or isinstance(target, This):
        return None
    if isinstance(target, Name | MethodCall) or (isinstance(target, FieldAccess) and isinstance(target.target, This)):
        return target
    return None


def _refers(resolver: Resolver, expr: Node, symbol: Symbol) -> bool:
    return resolver.symbol_for(expr) is symbol


def _ensures_non_null(resolver: Resolver, cond: Node, symbol: Symbol, *, when: bool) -> bool:
    """True when `cond` evaluating to `when` implies `symbol` is not null."""

    if isinstance(cond, Binary):
        op = cond.operator
        if op in {"!=", "=="}:
            compared = cond.left if is_null(cond.right) else cond.right if is_null(cond.left) else None
            if compared is None or not _refers(resolver, compared, symbol):
                return False
            return when if op == "!=" else not when
        if op == "&&" and when:
            return _ensures_non_null(resolver, cond.left, symbol, when=True) or _ensures_non_null(
                resolver, cond.right, symbol, when=True
            )
        if op == "||" and not when:
            return _ensures_non_null(resolver, cond.left, symbol, when=False) or _ensures_non_null(
                resolver, cond.right, symbol, when=False
            )
        return False
    if isinstance(cond, Unary) and cond.operator == "!":
        return _ensures_non_null(resolver, cond.operand, symbol, when=not when)
    if isinstance(cond, InstanceOf):
        return when and _refers(resolver, cond.value, symbol)
    if isinstance(cond, MethodCall) and isinstance(cond.target, Name) and cond.target.identifier == "Objects":
        if len(cond.args) == 1 and _refers(resolver, cond.args[0], symbol):
            if cond.name == "nonNull":
                return when
            if cond.name == "isNull":
                return not when
    return False


def _is_guarded(unit: CompilationUnit, resolver: Resolver, deref: Node, symbol: Symbol) -> bool:
    child: Node = deref
    for ancestor in unit.ancestors(deref):
        if isinstance(ancestor, Binary):
            if child is ancestor.right and ancestor.operator == "&&":
                if _ensures_non_null(resolver, ancestor.left, symbol, when=True):
                    return True
            if child is ancestor.right and ancestor.operator == "||":
                if _ensures_non_null(resolver, ancestor.left, symbol, when=False):
                    return True
        elif isinstance(ancestor, Conditional):
            if child is ancestor.then and _ensures_non_null(resolver, ancestor.condition, symbol, when=True):
                return True
            if child is ancestor.otherwise and _ensures_non_null(resolver, ancestor.condition, symbol, when=False):
                return True
        elif isinstance(ancestor, If):
            if child is ancestor.then and _ensures_non_null(resolver, ancestor.condition, symbol, when=True):
                return True
            if child is ancestor.otherwise and _ensures_non_null(resolver, ancestor.condition, symbol, when=False):
                return True
        elif isinstance(ancestor, Loop):
            if ancestor.kind == "while" and child is ancestor.body and ancestor.condition is not None:
                if _ensures_non_null(resolver, ancestor.condition, symbol, when=True):
                    return True
        elif isinstance(ancestor, Block):
            for stmt in ancestor.statements:
                if stmt is child:
                    break
                if _statement_guards(resolver, stmt, symbol):
                    return True
        elif isinstance(ancestor, Lambda):
            # Captured locals and parameters are effectively final, so outer guards still hold.
            if symbol.kind not in {"local", "parameter"}:
                return False
        elif isinstance(ancestor, MethodDecl | TypeDeclaration):
            return False
        child = ancestor
    return False


def _statement_guards(resolver: Resolver, stmt: Node, symbol: Symbol) -> bool:
    if isinstance(stmt, If) and stmt.otherwise is None:
        # `if (x == null) return;` or lazy init `if (x == null) { x = new ...; }`
        if is_exit(stmt.then) or _ends_with_non_null_assignment(resolver, stmt.then, symbol):
            return _ensures_non_null(resolver, stmt.condition, symbol, when=False)
        return False
    if isinstance(stmt, ExpressionStmt):
        expr = stmt.expr
        if isinstance(expr, MethodCall) and expr.name == "requireNonNull" and expr.args:
            return _refers(resolver, expr.args[0], symbol)
        return _assigns_non_null(resolver, stmt, symbol)
    if isinstance(stmt, OtherStatement) and stmt.kind == "assert" and stmt.children:
        return _ensures_non_null(resolver, stmt.children[0], symbol, when=True)
    return False


def _assigns_non_null(resolver: Resolver, stmt: Node, symbol: Symbol) -> bool:
    if not isinstance(stmt, ExpressionStmt):
        return False
    expr = stmt.expr
    if isinstance(expr, Assign) and expr.operator == "=" and _refers(resolver, expr.target, symbol):
        return not resolver.is_nullable_expression(expr.value)
    return False


def _ends_with_non_null_assignment(resolver: Resolver, stmt: Node, symbol: Symbol) -> bool:
    if isinstance(stmt, Block):
        return bool(stmt.statements) and _assigns_non_null(resolver, stmt.statements[-1], symbol)
    return _assigns_non_null(resolver, stmt, symbol)


# --- G04 --------------------------------------------------------------------

_SETTER_RE = re.compile(r"^set[A-Z]")

_COPY_CONSTRUCTORS = {
    "List": "ArrayList",
    "Collection": "ArrayList",
    "ArrayList": "ArrayList",
    "LinkedList": "LinkedList",
    "Vector": "Vector",
    "Stack": "ArrayList",
    "CopyOnWriteArrayList": "CopyOnWriteArrayList",
    "Set": "HashSet",
    "HashSet": "HashSet",
    "LinkedHashSet": "LinkedHashSet",
    "SortedSet": "TreeSet",
    "NavigableSet": "TreeSet",
    "TreeSet": "TreeSet",
    "Map": "HashMap",
    "HashMap": "HashMap",
    "LinkedHashMap": "LinkedHashMap",
    "SortedMap": "TreeMap",
    "NavigableMap": "TreeMap",
    "TreeMap": "TreeMap",
    "Hashtable": "Hashtable",
    "ConcurrentHashMap": "ConcurrentHashMap",
    "EnumMap": "EnumMap",
    "Queue": "ArrayDeque",
    "Deque": "ArrayDeque",
    "ArrayDeque": "ArrayDeque",
    "PriorityQueue": "PriorityQueue",
}


def copy_expression(ref: TypeRef, source: str) -> str:
    if ref.is_array:
        return f"{source}.clone()"
    if ref.name == "Date":
        return f"new Date({source}.getTime())"
    if ref.name == "EnumSet":
        return f"EnumSet.copyOf({source})"
    return f"new {_COPY_CONSTRUCTORS.get(ref.name, ref.name)}<>({source})"


class G04DefensiveCopy(BaseRule):
    """
    Defensive copies of mutable containers.

    Flags constructors/setters that store a mutable-container parameter in a
    field as-is, and non-private getters that hand out a mutable-container
    field as-is. Immutable or wrapped types are not in the container set and
    are never flagged.
    """

    meta = RuleMeta(
        rule_id="G04",
        title="Missing defensive copy",
        description="Mutable containers crossing an object boundary should be copied so callers cannot "
        "modify the object's internal state.",
        default_severity="warning",
        category="safety",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        out: list[Finding] = []
        for decl in iter_type_declarations(unit, include_anonymous=True):
            if decl.kind == "record" or decl.is_interface:
                continue
            for method in decl.methods:
                if method.body is None:
                    continue
                if method.is_constructor or _SETTER_RE.match(method.name):
                    out.extend(self._check_stores(unit, resolver, decl, method))
                elif not method.parameters and method.modifiers.visibility != "private":
                    out.extend(self._check_exposes(unit, resolver, decl, method))
        return out

    def _check_stores(
        self, unit: CompilationUnit, resolver: Resolver, decl: TypeDeclaration, method: MethodDecl
    ) -> Iterator[Finding]:
        params = {id(p) for p in method.parameters}
        assert method.body is not None
        for node in walk_skipping_nested(method.body):
            if not isinstance(node, Assign) or node.operator != "=" or not isinstance(node.value, Name):
                continue
            field_sym = resolver.symbol_for(node.target)
            param_sym = resolver.symbol_for(node.value)
            if field_sym is None or field_sym.kind != "field" or field_sym.owner is not decl:
                continue
            if param_sym is None or param_sym.kind != "parameter" or id(param_sym.declaration) not in params:
                continue
            if not is_mutable_container(param_sym.declared_type):
                continue
            assert param_sym.declared_type is not None
            kind = "constructor" if method.is_constructor else f"setter `{method.name}`"
            yield self._finding(
                unit,
                node,
                message=f"The {kind} stores the caller's mutable `{param_sym.declared_type.text}` "
                f"`{param_sym.name}` in field `{field_sym.name}` without copying it.",
                suggestion=f"this.{field_sym.name} = {copy_expression(param_sym.declared_type, param_sym.name)};",
            )

    def _check_exposes(
        self, unit: CompilationUnit, resolver: Resolver, decl: TypeDeclaration, method: MethodDecl
    ) -> Iterator[Finding]:
        assert method.body is not None
        for node in walk_skipping_nested(method.body):
            if not isinstance(node, Return) or node.value is None:
                continue
            value = node.value
            if not isinstance(value, Name) and not (isinstance(value, FieldAccess) and isinstance(value.target, This)):
                continue
            field_sym = resolver.symbol_for(value)
            if field_sym is None or field_sym.kind != "field" or field_sym.owner is not decl:
                continue
            if not is_mutable_container(field_sym.declared_type):
                continue
            assert field_sym.declared_type is not None
            yield self._finding(
                unit,
                node,
                message=f"`{method.name}()` returns the internal mutable `{field_sym.declared_type.text}` "
                f"field `{field_sym.name}` directly.",
                suggestion=f"return {copy_expression(field_sym.declared_type, field_sym.name)};",
            )


# --- G05 --------------------------------------------------------------------


class G05ExceptionOrdering(BaseRule):
    """
    Exception handling order and checked-exception coverage.

    A catch clause for a subtype that follows a catch for one of its
    supertypes can never run. A checked exception that is thrown (or
    declared by a called method of this unit) must be caught or declared.
    Types the hierarchy cannot resolve are skipped.
    """

    meta = RuleMeta(
        rule_id="G05",
        title="Exception ordering",
        description="Catch specific exceptions before general ones, and catch or declare every checked exception.",
        default_severity="warning",
        category="safety",
    )

    def evaluate(self, unit: CompilationUnit, resolver: Resolver, index: ProjectIndex) -> list[Finding]:
        hierarchy = resolver.hierarchy
        out: list[Finding] = []

        for node in walk(unit):
            if not isinstance(node, Try):
                continue
            for later_pos, later in enumerate(node.catches):
                shadow = _shadowing_catch(resolver, node, later_pos)
                if shadow is None:
                    continue
                sub, sup = shadow
                out.append(
                    self._finding(
                        unit,
                        later,
                        message=f"`catch ({sub})` is unreachable: the earlier `catch ({sup})` already handles "
                        f"`{sub}`, which is a subtype.",
                        suggestion=f"Move `catch ({sub})` above `catch ({sup})`.",
                    )
                )

        for decl in iter_type_declarations(unit, include_anonymous=True):
            for method in decl.methods:
                if method.body is None:
                    continue
                for site, thrown in _thrown_types(resolver, method):
                    key = resolver.resolve_type(thrown)
                    checked = hierarchy.is_checked_exception(key)
                    if checked is not True or _is_handled(unit, resolver, site, key, method):
                        continue
                    out.append(
                        self._finding(
                            unit,
                            site,
                            severity="error",
                            message=f"Checked exception `{thrown.name}` is neither caught nor declared by `{method.name or decl.name}`.",
                            suggestion=f"Add `throws {thrown.name}` to the signature or handle it in a try/catch.",
                        )
                    )
        return out


def _shadowing_catch(resolver: Resolver, node: Try, later_pos: int) -> tuple[str, str] | None:
    later = node.catches[later_pos]
    for earlier in node.catches[:later_pos]:
        for sub in later.types:
            for sup in earlier.types:
                sub_key, sup_key = resolver.resolve_type(sub), resolver.resolve_type(sup)
                if sub_key != sup_key and resolver.hierarchy.is_subtype(sub_key, sup_key) is True:
                    return sub.name, sup.name
    return None


def _thrown_types(resolver: Resolver, method: MethodDecl) -> Iterator[tuple[Node, TypeRef]]:
    assert method.body is not None
    for node in walk_skipping_nested(method.body):
        if isinstance(node, Throw) and isinstance(node.value, New):
            yield node, node.value.type
        elif isinstance(node, MethodCall):
            callee = resolver.resolve_call(node)
            if callee is not None:
                yield from ((node, ref) for ref in callee.throws)


def _is_handled(unit: CompilationUnit, resolver: Resolver, site: Node, thrown: str, method: MethodDecl) -> bool:
    def covers(ref: TypeRef) -> bool:
        # Unknown relationships count as handled.
        return resolver.hierarchy.is_subtype(thrown, resolver.resolve_type(ref)) is not False

    child: Node = site
    for ancestor in unit.ancestors(site):
        if isinstance(ancestor, Try) and child is ancestor.body:
            if any(covers(t) for clause in ancestor.catches for t in clause.types):
                return True
        if ancestor is method:
            break
        child = ancestor
    return any(covers(ref) for ref in method.throws)


def builtin_safety_rules() -> list[BaseRule]:
    return [
        G03NullSafety(),
        G04DefensiveCopy(),
        G05ExceptionOrdering(),
    ]
