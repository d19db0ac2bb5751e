from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from javasentinel.engine.hierarchy import TypeHierarchy, type_key
from javasentinel.engine.tree import (
    CompilationUnit,
    FieldAccess,
    MethodCall,
    MethodReference,
    Name,
    New,
    Node,
    TypeDeclaration,
    walk,
)

__all__ = ["ProjectIndex", "type_key"]


@dataclass(frozen=True, slots=True)
class ProjectIndex:
    """
    Project-wide, read-only usage index built once per batch.

    `complete` states whether the indexed units are the whole project. Rules
    that need whole-project knowledge (unused public members, implementer
    counts) must treat an incomplete index as "unknown" and stay conservative.
    Types are keyed by `type_key`, so same-named types in different packages
    stay apart.
    """

    units: tuple[CompilationUnit, ...]
    complete: bool
    hierarchy: TypeHierarchy
    types: Mapping[str, TypeDeclaration]
    # member name -> keys of the top-level types that reference it
    references: Mapping[str, frozenset[str]]
    anonymous_implementations: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    declaring_units: Mapping[TypeDeclaration, CompilationUnit] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, units: Iterable[CompilationUnit], *, complete: bool = False) -> ProjectIndex:
        unit_list = tuple(units)
        types: dict[str, TypeDeclaration] = {}
        declaring: dict[TypeDeclaration, CompilationUnit] = {}
        references: dict[str, set[str]] = defaultdict(set)
        anonymous: Counter[str] = Counter()

        for unit in unit_list:
            for decl in unit.all_types():
                types.setdefault(type_key(unit, decl), decl)
                declaring[decl] = unit
        hierarchy = TypeHierarchy((declaring[decl], decl) for decl in types.values())

        for unit in unit_list:
            for node in walk(unit):
                name = _referenced_member(node)
                if name is not None:
                    owner = unit.top_level_type(node)
                    if owner is not None:
                        references[name].add(type_key(unit, owner))
                if isinstance(node, New) and node.anonymous_body is not None:
                    anonymous[hierarchy.resolve_ref(node.type, unit)] += 1

        return cls(
            units=unit_list,
            complete=complete,
            hierarchy=hierarchy,
            types=MappingProxyType(types),
            references=MappingProxyType({k: frozenset(v) for k, v in references.items()}),
            anonymous_implementations=MappingProxyType(dict(anonymous)),
            declaring_units=MappingProxyType(declaring),
        )

    def key_of(self, decl: TypeDeclaration) -> str | None:
        unit = self.declaring_units.get(decl)
        return type_key(unit, decl) if unit is not None else None

    def referenced_outside(self, member: str, owner_key: str) -> bool:
        return bool(self.references.get(member, frozenset()) - {owner_key})

    def implementers(self, interface: str) -> tuple[str, ...]:
        """Keys of named non-interface project types that are subtypes of the `interface` key."""

        out = [
            key
            for key, decl in self.types.items()
            if not decl.is_interface and interface in self.hierarchy.ancestors(key)
        ]
        return tuple(sorted(out))

    def implementation_count(self, interface: str) -> int:
        return len(self.implementers(interface)) + self.anonymous_implementations.get(interface, 0)


def _referenced_member(node: Node) -> str | None:
    if isinstance(node, MethodCall | FieldAccess | MethodReference):
        return node.name
    if isinstance(node, Name):
        return node.identifier
    return None
