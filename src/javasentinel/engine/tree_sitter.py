from __future__ import annotations

import logging
import threading
from functools import lru_cache

import tree_sitter_java
from tree_sitter import Language, Parser
from tree_sitter import Node as CSTNode

from javasentinel.engine.tree import (
    Assign,
    Binary,
    Block,
    Break,
    Cast,
    CatchClause,
    CollectionLiteral,
    CompilationUnit,
    Conditional,
    Continue,
    Expr,
    ExpressionStmt,
    FieldAccess,
    FieldDecl,
    If,
    InstanceOf,
    Labeled,
    Lambda,
    LiteralExpr,
    LiteralKind,
    LocalVarDecl,
    Loop,
    MalformedTree,
    MethodCall,
    MethodDecl,
    MethodReference,
    Modifiers,
    Name,
    New,
    Node,
    OtherExpr,
    OtherStatement,
    Parameter,
    Return,
    Span,
    Statement,
    This,
    Throw,
    Try,
    TypeDeclaration,
    TypeKind,
    TypeRef,
    Unary,
)

logger = logging.getLogger(__name__)


class TreeSitterError(RuntimeError):
    """Raised when the tree-sitter Java grammar cannot be loaded."""


COMMENT_KINDS = frozenset({"line_comment", "block_comment", "comment"})
TYPE_KINDS = frozenset(
    {
        "type_identifier",
        "scoped_type_identifier",
        "generic_type",
        "array_type",
        "integral_type",
        "floating_point_type",
        "boolean_type",
        "void_type",
    }
)
DECLARATION_KINDS: dict[str, TypeKind] = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
}
STATEMENT_KINDS = frozenset(
    {
        "block",
        "local_variable_declaration",
        "expression_statement",
        "if_statement",
        "while_statement",
        "for_statement",
        "enhanced_for_statement",
        "do_statement",
        "return_statement",
        "throw_statement",
        "break_statement",
        "continue_statement",
        "labeled_statement",
        "try_statement",
        "try_with_resources_statement",
        "assert_statement",
        "synchronized_statement",
        "yield_statement",
        "explicit_constructor_invocation",
        "switch_block_statement_group",
        "switch_rule",
    }
)
_NUMBER_LITERALS = frozenset(
    {
        "decimal_integer_literal",
        "hex_integer_literal",
        "octal_integer_literal",
        "binary_integer_literal",
        "decimal_floating_point_literal",
        "hex_floating_point_literal",
    }
)


@lru_cache(maxsize=1)
def _java_language() -> Language:
    try:
        return Language(tree_sitter_java.language())
    except (TypeError, ValueError, OSError) as exc:  # pragma: no cover (depends on installed grammar)
        raise TreeSitterError(f"tree-sitter Java grammar is not usable: {exc}") from exc


_PARSER_LOCAL = threading.local()


def _get_parser() -> Parser:
    """
    Return a per-thread Parser instance.

    tree-sitter Parser objects are not thread-safe; sharing a single cached
    Parser across threads can lead to crashes or corrupted parse output.
    """

    parser: Parser | None = getattr(_PARSER_LOCAL, "parser", None)
    if parser is None:
        parser = Parser(_java_language())
        _PARSER_LOCAL.parser = parser
    return parser


def parse_unit(source: str, path: str | None = None) -> CompilationUnit:
    """
    Parse Java source text into a validated CompilationUnit.

    Raises MalformedTree when the source has syntax errors or the converted
    tree violates the model's structural invariants.
    """

    data = source.encode("utf-8", errors="replace")
    tree = _get_parser().parse(data)
    root = tree.root_node
    if root.has_error:
        bad = _first_error(root)
        where = f"line {bad.start_point[0] + 1}" if bad is not None else "unknown location"
        raise MalformedTree(f"{path or '<source>'}: syntax error at {where}")
    return _Builder(data).unit(root, source, path)


def _first_error(node: CSTNode) -> CSTNode | None:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return current
        if current.has_error:
            stack.extend(reversed(current.children))
    return None


class _Builder:
    """Converts tree-sitter-java concrete syntax into Tree Model nodes."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    # --- helpers -----------------------------------------------------------

    def span(self, node: CSTNode) -> Span:
        (sl, sc), (el, ec) = node.start_point, node.end_point
        return Span(sl + 1, sc + 1, el + 1, ec + 1, node.start_byte, node.end_byte)

    def text(self, node: CSTNode) -> str:
        return self._data[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def named(node: CSTNode) -> list[CSTNode]:
        return [c for c in node.named_children if c.type not in COMMENT_KINDS]

    @staticmethod
    def child_of_type(node: CSTNode, *kinds: str) -> CSTNode | None:
        for child in node.children:
            if child.type in kinds:
                return child
        return None

    def modifiers(self, node: CSTNode) -> Modifiers:
        mods = self.child_of_type(node, "modifiers")
        if mods is None:
            return Modifiers()
        keywords: set[str] = set()
        annotations: list[str] = []
        for child in mods.children:
            if child.type in {"marker_annotation", "annotation"}:
                name = child.child_by_field_name("name")
                if name is not None:
                    annotations.append(self.text(name).rsplit(".", 1)[-1])
            elif not child.is_named:
                keywords.add(child.type)
        return Modifiers(keywords=frozenset(keywords), annotations=tuple(annotations))

    def _dims(self, node: CSTNode | None) -> int:
        return self.text(node).count("[") if node is not None else 0

    # --- unit / declarations ---------------------------------------------

    def unit(self, root: CSTNode, source: str, path: str | None) -> CompilationUnit:
        package: str | None = None
        package_span: Span | None = None
        imports: list[str] = []
        types: list[TypeDeclaration] = []
        for child in self.named(root):
            if child.type == "package_declaration":
                name = self.child_of_type(child, "scoped_identifier", "identifier")
                if name is not None:
                    package = self.text(name)
                    package_span = self.span(name)
            elif child.type == "import_declaration":
                imports.append(self._import(child))
            elif child.type in DECLARATION_KINDS:
                types.append(self.type_decl(child))
            else:
                logger.debug("skipping top-level %s in %s", child.type, path)
        return CompilationUnit(
            span=self.span(root),
            path=path,
            source=source,
            package=package,
            package_span=package_span,
            imports=tuple(imports),
            types=tuple(types),
        )

    def _import(self, node: CSTNode) -> str:
        name = self.child_of_type(node, "scoped_identifier", "identifier")
        out = self.text(name) if name is not None else ""
        if self.child_of_type(node, "asterisk") is not None:
            out += ".*"
        return out

    def type_decl(self, node: CSTNode) -> TypeDeclaration:
        kind = DECLARATION_KINDS[node.type]
        name_node = node.child_by_field_name("name")
        name = self.text(name_node) if name_node is not None else ""

        extends: list[TypeRef] = []
        implements: list[TypeRef] = []
        superclass = node.child_by_field_name("superclass")
        if superclass is not None:
            extends.extend(self.type_list(superclass))
        extends_interfaces = self.child_of_type(node, "extends_interfaces")
        if extends_interfaces is not None:
            extends.extend(self.type_list(extends_interfaces))
        interfaces = node.child_by_field_name("interfaces")
        if interfaces is not None:
            implements.extend(self.type_list(interfaces))

        fields: list[FieldDecl] = []
        methods: list[MethodDecl] = []
        nested: list[TypeDeclaration] = []

        if kind == "record":
            params = node.child_by_field_name("parameters")
            for param in self.named(params) if params is not None else ():
                if param.type != "formal_parameter":
                    continue
                p = self.parameter(param)
                fields.append(
                    FieldDecl(
                        span=self.span(param),
                        name=p.name,
                        type=self.type(param.child_by_field_name("type")),  # type: ignore[arg-type]
                        modifiers=Modifiers(keywords=frozenset({"private", "final"}), annotations=p.modifiers.annotations),
                        name_span=p.span,
                    )
                )

        body = node.child_by_field_name("body")
        if body is not None:
            self._members(body, name, fields, methods, nested)

        return TypeDeclaration(
            span=self.span(node),
            name=name,
            kind=kind,
            modifiers=self.modifiers(node),
            extends=tuple(extends),
            implements=tuple(implements),
            fields=tuple(fields),
            methods=tuple(methods),
            types=tuple(nested),
            name_span=self.span(name_node) if name_node is not None else self.span(node),
        )

    def _members(
        self,
        body: CSTNode,
        owner: str,
        fields: list[FieldDecl],
        methods: list[MethodDecl],
        nested: list[TypeDeclaration],
    ) -> None:
        for member in self.named(body):
            kind = member.type
            if kind in {"field_declaration", "constant_declaration"}:
                fields.extend(self.fields(member))
            elif kind in {"method_declaration", "constructor_declaration", "compact_constructor_declaration"}:
                methods.append(self.method(member))
            elif kind in DECLARATION_KINDS:
                nested.append(self.type_decl(member))
            elif kind == "enum_constant":
                fields.append(self.enum_constant(member, owner))
            elif kind == "enum_body_declarations":
                self._members(member, owner, fields, methods, nested)
            else:
                # initializer blocks, annotation types
                logger.debug("skipping %s in type %s", kind, owner)

    def fields(self, node: CSTNode) -> list[FieldDecl]:
        out: list[FieldDecl] = []
        modifiers = self.modifiers(node)
        type_node = node.child_by_field_name("type")
        for declarator in node.children_by_field_name("declarator"):
            name = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            declared = self.type(type_node, extra_dims=self._dims(declarator.child_by_field_name("dimensions")))
            out.append(
                FieldDecl(
                    span=self.span(node),
                    name=self.text(name) if name is not None else "",
                    type=declared,
                    modifiers=modifiers,
                    initializer=self.initializer(value) if value is not None else None,
                    name_span=self.span(name) if name is not None else self.span(declarator),
                )
            )
        return out

    def enum_constant(self, node: CSTNode, owner: str) -> FieldDecl:
        name = node.child_by_field_name("name")
        arguments = node.child_by_field_name("arguments")
        body = node.child_by_field_name("body")
        initializer: Expr | None = None
        if arguments is not None or body is not None:
            initializer = New(
                span=self.span(node),
                type=TypeRef(name=owner),
                args=self.arguments(arguments),
                anonymous_body=self.anonymous_type(body, owner) if body is not None else None,
            )
        return FieldDecl(
            span=self.span(node),
            name=self.text(name) if name is not None else "",
            type=TypeRef(name=owner),
            modifiers=Modifiers(keywords=frozenset({"public", "static", "final"})),
            initializer=initializer,
            name_span=self.span(name) if name is not None else self.span(node),
            enum_constant=True,
        )

    def anonymous_type(self, body: CSTNode, base: str) -> TypeDeclaration:
        fields: list[FieldDecl] = []
        methods: list[MethodDecl] = []
        nested: list[TypeDeclaration] = []
        self._members(body, base, fields, methods, nested)
        return TypeDeclaration(
            span=self.span(body),
            name="",
            kind="class",
            extends=(TypeRef(name=base),),
            fields=tuple(fields),
            methods=tuple(methods),
            types=tuple(nested),
            name_span=self.span(body),
        )

    def method(self, node: CSTNode) -> MethodDecl:
        name = node.child_by_field_name("name")
        is_constructor = node.type != "method_declaration"
        type_node = node.child_by_field_name("type")
        params_node = node.child_by_field_name("parameters")
        throws_node = self.child_of_type(node, "throws")
        body_node = node.child_by_field_name("body")

        parameters: list[Parameter] = []
        for param in self.named(params_node) if params_node is not None else ():
            if param.type in {"formal_parameter", "spread_parameter"}:
                parameters.append(self.parameter(param))

        return_type: TypeRef | None = None
        if not is_constructor and type_node is not None:
            return_type = self.type(type_node, extra_dims=self._dims(node.child_by_field_name("dimensions")))

        return MethodDecl(
            span=self.span(node),
            name=self.text(name) if name is not None else "",
            return_type=return_type,
            parameters=tuple(parameters),
            modifiers=self.modifiers(node),
            throws=self.type_list(throws_node) if throws_node is not None else (),
            body=self.block(body_node) if body_node is not None else None,
            is_constructor=is_constructor,
            name_span=self.span(name) if name is not None else self.span(node),
        )

    def parameter(self, node: CSTNode) -> Parameter:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            type_node = next((c for c in node.named_children if c.type in TYPE_KINDS), None)
        if node.type == "spread_parameter":
            declarator = self.child_of_type(node, "variable_declarator")
            name = declarator.child_by_field_name("name") if declarator is not None else None
            declared = self.type(type_node, extra_dims=1) if type_node is not None else None
        else:
            name = node.child_by_field_name("name")
            dims = self._dims(node.child_by_field_name("dimensions"))
            declared = self.type(type_node, extra_dims=dims) if type_node is not None else None
        return Parameter(
            span=self.span(name) if name is not None else self.span(node),
            name=self.text(name) if name is not None else "",
            type=declared,
            modifiers=self.modifiers(node),
        )

    # --- types -------------------------------------------------------------

    def type_list(self, node: CSTNode) -> tuple[TypeRef, ...]:
        out: list[TypeRef] = []
        for child in self.named(node):
            if child.type in TYPE_KINDS:
                out.append(self.type(child))
            elif child.type == "type_list":
                out.extend(self.type_list(child))
        return tuple(out)

    def type(self, node: CSTNode | None, *, extra_dims: int = 0) -> TypeRef:
        if node is None:
            return TypeRef(name="?")
        kind = node.type
        if kind == "generic_type":
            children = self.named(node)
            base = self.type(children[0]) if children else TypeRef(name="?")
            args_node = self.child_of_type(node, "type_arguments")
            args: list[TypeRef] = []
            for arg in self.named(args_node) if args_node is not None else ():
                args.append(self.type(arg) if arg.type in TYPE_KINDS else TypeRef(span=self.span(arg), name="?"))
            return TypeRef(span=self.span(node), name=base.name, args=tuple(args), dims=extra_dims, qualifier=base.qualifier)
        if kind == "array_type":
            element = self.type(node.child_by_field_name("element"))
            dims = self._dims(node.child_by_field_name("dimensions"))
            return TypeRef(
                span=self.span(node),
                name=element.name,
                args=_fresh_args(element.args),
                dims=element.dims + dims + extra_dims,
                qualifier=element.qualifier,
            )
        text = self.text(node)
        qualifier: str | None = None
        if kind == "scoped_type_identifier" and "." in text:
            qualifier, text = text.rsplit(".", 1)
        return TypeRef(span=self.span(node), name=text.strip(), dims=extra_dims, qualifier=qualifier)

    # --- statements --------------------------------------------------------

    def block(self, node: CSTNode) -> Block:
        statements: list[Statement] = []
        for child in self.named(node):
            statements.extend(self.statements(child))
        return Block(span=self.span(node), statements=tuple(statements))

    def statements(self, node: CSTNode) -> list[Statement]:
        kind = node.type
        if kind == "local_variable_declaration":
            return list(self.locals(node))
        if kind in DECLARATION_KINDS:
            return [OtherStatement(span=self.span(node), kind="local_class", children=(self.type_decl(node),))]
        return [self.statement(node)]

    def statement(self, node: CSTNode) -> Statement:
        kind = node.type
        span = self.span(node)
        if kind == "block":
            return self.block(node)
        if kind in {"local_variable_declaration", *DECLARATION_KINDS}:
            converted = self.statements(node)
            return converted[0] if len(converted) == 1 else Block(span=span, statements=tuple(converted))
        if kind == "expression_statement":
            inner = self.named(node)
            return ExpressionStmt(span=span, expr=self.expr(inner[0]))
        if kind == "if_statement":
            alternative = node.child_by_field_name("alternative")
            return If(
                span=span,
                condition=self.expr(node.child_by_field_name("condition")),  # type: ignore[arg-type]
                then=self.statement(node.child_by_field_name("consequence")),  # type: ignore[arg-type]
                otherwise=self.statement(alternative) if alternative is not None else None,
            )
        if kind in {"while_statement", "do_statement"}:
            body = node.child_by_field_name("body")
            return Loop(
                span=span,
                kind="while" if kind == "while_statement" else "do",
                condition=self.expr(node.child_by_field_name("condition")),  # type: ignore[arg-type]
                body=self.statement(body) if body is not None else None,
            )
        if kind == "for_statement":
            init: list[Node] = []
            for part in node.children_by_field_name("init"):
                if part.type == "local_variable_declaration":
                    init.extend(self.locals(part))
                else:
                    init.append(self.expr(part))
            condition = node.child_by_field_name("condition")
            body = node.child_by_field_name("body")
            return Loop(
                span=span,
                kind="for",
                init=tuple(init),
                condition=self.expr(condition) if condition is not None else None,
                update=tuple(self.expr(u) for u in node.children_by_field_name("update")),
                body=self.statement(body) if body is not None else None,
            )
        if kind == "enhanced_for_statement":
            name = node.child_by_field_name("name")
            type_node = node.child_by_field_name("type")
            body = node.child_by_field_name("body")
            variable = LocalVarDecl(
                span=self.span(name) if name is not None else span,
                name=self.text(name) if name is not None else "",
                type=self._local_type(type_node),
                modifiers=self.modifiers(node),
                name_span=self.span(name) if name is not None else span,
            )
            return Loop(
                span=span,
                kind="foreach",
                variable=variable,
                iterable=self.expr(node.child_by_field_name("value")),  # type: ignore[arg-type]
                body=self.statement(body) if body is not None else None,
            )
        if kind == "return_statement":
            inner = self.named(node)
            return Return(span=span, value=self.expr(inner[0]) if inner else None)
        if kind == "throw_statement":
            return Throw(span=span, value=self.expr(self.named(node)[0]))
        if kind in {"break_statement", "continue_statement"}:
            label = self.child_of_type(node, "identifier")
            cls = Break if kind == "break_statement" else Continue
            return cls(span=span, label=self.text(label) if label is not None else None)
        if kind == "labeled_statement":
            inner = self.named(node)
            return Labeled(span=span, label=self.text(inner[0]), body=self.statement(inner[1]))
        if kind in {"try_statement", "try_with_resources_statement"}:
            return self._try(node)
        if kind == "assert_statement":
            return OtherStatement(span=span, kind="assert", children=tuple(self.expr(c) for c in self.named(node)))
        return OtherStatement(span=span, kind=kind, children=self.generic(node))

    def locals(self, node: CSTNode) -> list[LocalVarDecl]:
        out: list[LocalVarDecl] = []
        modifiers = self.modifiers(node)
        type_node = node.child_by_field_name("type")
        for declarator in node.children_by_field_name("declarator"):
            name = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            declared = self._local_type(type_node, extra_dims=self._dims(declarator.child_by_field_name("dimensions")))
            out.append(
                LocalVarDecl(
                    span=self.span(node),
                    name=self.text(name) if name is not None else "",
                    type=declared,
                    initializer=self.initializer(value) if value is not None else None,
                    modifiers=modifiers,
                    name_span=self.span(name) if name is not None else self.span(declarator),
                )
            )
        return out

    def _local_type(self, node: CSTNode | None, *, extra_dims: int = 0) -> TypeRef | None:
        if node is None or (node.type == "type_identifier" and self.text(node) == "var"):
            return None
        return self.type(node, extra_dims=extra_dims)

    def _try(self, node: CSTNode) -> Try:
        resources: list[Node] = []
        spec = node.child_by_field_name("resources")
        for resource in self.named(spec) if spec is not None else ():
            if resource.type != "resource":
                continue
            type_node = resource.child_by_field_name("type")
            if type_node is None:
                resources.append(self.expr(self.named(resource)[0]))
                continue
            name = resource.child_by_field_name("name")
            value = resource.child_by_field_name("value")
            resources.append(
                LocalVarDecl(
                    span=self.span(resource),
                    name=self.text(name) if name is not None else "",
                    type=self._local_type(type_node),
                    initializer=self.expr(value) if value is not None else None,
                    modifiers=self.modifiers(resource),
                    name_span=self.span(name) if name is not None else self.span(resource),
                )
            )

        catches: list[CatchClause] = []
        finally_block: Block | None = None
        for child in node.named_children:
            if child.type == "catch_clause":
                catches.append(self._catch(child))
            elif child.type == "finally_clause":
                inner = self.child_of_type(child, "block")
                if inner is not None:
                    finally_block = self.block(inner)

        return Try(
            span=self.span(node),
            body=self.block(node.child_by_field_name("body")),  # type: ignore[arg-type]
            catches=tuple(catches),
            finally_block=finally_block,
            resources=tuple(resources),
        )

    def _catch(self, node: CSTNode) -> CatchClause:
        param = self.child_of_type(node, "catch_formal_parameter")
        types: tuple[TypeRef, ...] = ()
        name: CSTNode | None = None
        if param is not None:
            catch_type = self.child_of_type(param, "catch_type")
            if catch_type is not None:
                types = self.type_list(catch_type)
            name = param.child_by_field_name("name")
        return CatchClause(
            span=self.span(node),
            types=types,
            name=self.text(name) if name is not None else "",
            body=self.block(node.child_by_field_name("body")),  # type: ignore[arg-type]
            name_span=self.span(name) if name is not None else self.span(node),
        )

    # --- expressions -------------------------------------------------------

    def arguments(self, node: CSTNode | None) -> tuple[Expr, ...]:
        if node is None:
            return ()
        return tuple(self.expr(c) for c in self.named(node))

    def initializer(self, node: CSTNode) -> Expr:
        return self.expr(node)

    def expr(self, node: CSTNode) -> Expr:
        kind = node.type
        span = self.span(node)

        if kind == "parenthesized_expression":
            inner = self.named(node)
            return self.expr(inner[0]) if inner else OtherExpr(span=span, kind=kind)
        if kind == "identifier":
            return Name(span=span, identifier=self.text(node))
        if kind == "this":
            return This(span=span)
        literal = _literal_kind(kind)
        if literal is not None:
            return LiteralExpr(span=span, kind=literal, value=self.text(node))
        if kind == "field_access":
            target = node.child_by_field_name("object")
            field_node = node.child_by_field_name("field")
            return FieldAccess(
                span=span,
                target=self.expr(target) if target is not None else OtherExpr(span=span, kind="missing"),
                name=self.text(field_node) if field_node is not None else "",
            )
        if kind == "method_invocation":
            target = node.child_by_field_name("object")
            name = node.child_by_field_name("name")
            return MethodCall(
                span=span,
                name=self.text(name) if name is not None else "",
                target=self.expr(target) if target is not None else None,
                args=self.arguments(node.child_by_field_name("arguments")),
                name_span=self.span(name) if name is not None else span,
            )
        if kind == "object_creation_expression":
            type_node = node.child_by_field_name("type")
            created = self.type(type_node)
            body = self.child_of_type(node, "class_body")
            return New(
                span=span,
                type=created,
                args=self.arguments(node.child_by_field_name("arguments")),
                anonymous_body=self.anonymous_type(body, created.name) if body is not None else None,
            )
        if kind == "array_creation_expression":
            value = node.child_by_field_name("value")
            return CollectionLiteral(
                span=span,
                elements=self.arguments(value),
                element_type=self.type(node.child_by_field_name("type")),
            )
        if kind == "array_initializer":
            return CollectionLiteral(span=span, elements=self.arguments(node))
        if kind == "assignment_expression":
            operator = node.child_by_field_name("operator")
            return Assign(
                span=span,
                target=self.expr(node.child_by_field_name("left")),  # type: ignore[arg-type]
                value=self.expr(node.child_by_field_name("right")),  # type: ignore[arg-type]
                operator=self.text(operator) if operator is not None else "=",
            )
        if kind == "binary_expression":
            operator = node.child_by_field_name("operator")
            return Binary(
                span=span,
                operator=self.text(operator) if operator is not None else "",
                left=self.expr(node.child_by_field_name("left")),  # type: ignore[arg-type]
                right=self.expr(node.child_by_field_name("right")),  # type: ignore[arg-type]
            )
        if kind == "unary_expression":
            operator = node.child_by_field_name("operator")
            return Unary(
                span=span,
                operator=self.text(operator) if operator is not None else "",
                operand=self.expr(node.child_by_field_name("operand")),  # type: ignore[arg-type]
            )
        if kind == "update_expression":
            operand = self.named(node)[0]
            prefix = not node.children[0].is_named
            operator = node.children[0] if prefix else node.children[-1]
            return Unary(span=span, operator=self.text(operator), operand=self.expr(operand), prefix=prefix)
        if kind == "ternary_expression":
            return Conditional(
                span=span,
                condition=self.expr(node.child_by_field_name("condition")),  # type: ignore[arg-type]
                then=self.expr(node.child_by_field_name("consequence")),  # type: ignore[arg-type]
                otherwise=self.expr(node.child_by_field_name("alternative")),  # type: ignore[arg-type]
            )
        if kind == "cast_expression":
            return Cast(
                span=span,
                type=self.type(node.child_by_field_name("type")),
                value=self.expr(node.child_by_field_name("value")),  # type: ignore[arg-type]
            )
        if kind == "instanceof_expression":
            right = node.child_by_field_name("right")
            return InstanceOf(
                span=span,
                value=self.expr(node.child_by_field_name("left")),  # type: ignore[arg-type]
                type=self.type(right) if right is not None and right.type in TYPE_KINDS else None,
            )
        if kind == "lambda_expression":
            return self._lambda(node)
        if kind == "method_reference":
            parts = self.named(node)
            target: Node | None = None
            if parts:
                first = parts[0]
                target = self.type(first) if first.type in TYPE_KINDS else self.expr(first)
            return MethodReference(span=span, name=self.text(node.children[-1]), target=target)
        return OtherExpr(span=span, kind=kind, children=self.generic(node))

    def _lambda(self, node: CSTNode) -> Lambda:
        params_node = node.child_by_field_name("parameters")
        parameters: list[Parameter] = []
        if params_node is not None:
            if params_node.type == "identifier":
                parameters.append(Parameter(span=self.span(params_node), name=self.text(params_node)))
            else:
                for param in self.named(params_node):
                    if param.type == "identifier":
                        parameters.append(Parameter(span=self.span(param), name=self.text(param)))
                    elif param.type in {"formal_parameter", "spread_parameter"}:
                        parameters.append(self.parameter(param))
        body_node = node.child_by_field_name("body")
        body: Node
        if body_node is None:
            body = OtherExpr(span=self.span(node), kind="missing")
        elif body_node.type == "block":
            body = self.block(body_node)
        else:
            body = self.expr(body_node)
        return Lambda(span=self.span(node), parameters=tuple(parameters), body=body)

    def generic(self, node: CSTNode) -> tuple[Node, ...]:
        out: list[Node] = []
        for child in self.named(node):
            kind = child.type
            if kind in STATEMENT_KINDS:
                out.extend(self.statements(child))
            elif kind in TYPE_KINDS:
                out.append(self.type(child))
            elif kind in DECLARATION_KINDS:
                out.append(self.type_decl(child))
            else:
                out.append(self.expr(child))
        return tuple(out)


def _literal_kind(kind: str) -> LiteralKind | None:
    if kind == "null_literal":
        return "null"
    if kind in {"true", "false"}:
        return "boolean"
    if kind in {"string_literal", "text_block"}:
        return "string"
    if kind == "character_literal":
        return "char"
    if kind in _NUMBER_LITERALS:
        return "number"
    return None


def _fresh_args(args: tuple[TypeRef, ...]) -> tuple[TypeRef, ...]:
    # A TypeRef may only have one parent; re-wrapping an element's arguments needs copies.
    return tuple(
        TypeRef(span=a.span, name=a.name, args=_fresh_args(a.args), dims=a.dims, qualifier=a.qualifier) for a in args
    )
