from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

from javasentinel.engine.tree import CompilationUnit, TypeDeclaration, TypeRef

TypeCategory = Literal["class", "interface", "external"]
EdgeRelation = Literal["extends", "implements"]

EXTERNAL: TypeCategory = "external"


def type_key(unit: CompilationUnit, decl: TypeDeclaration) -> str:
    """Package-qualified key of a project type; nested types are keyed by their own name."""

    return f"{unit.package}.{decl.name}" if unit.package else decl.name


def simple_name(key: str) -> str:
    return key.rsplit(".", 1)[-1]


@dataclass(frozen=True, slots=True)
class LibraryType:
    name: str
    kind: Literal["class", "interface"]
    supertypes: tuple[str, ...] = ()
    members: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class TypeHierarchyEdge:
    subtype: str
    supertype: str
    relation: EdgeRelation


_OBJECT_MEMBERS = frozenset({"equals", "hashCode", "toString", "getClass"})
_ITERABLE_MEMBERS = frozenset({"iterator", "forEach", "spliterator"})
_COLLECTION_MEMBERS = _ITERABLE_MEMBERS | frozenset(
    {
        "size",
        "isEmpty",
        "contains",
        "containsAll",
        "add",
        "addAll",
        "remove",
        "removeAll",
        "removeIf",
        "retainAll",
        "clear",
        "stream",
        "parallelStream",
        "toArray",
    }
)
_LIST_MEMBERS = _COLLECTION_MEMBERS | frozenset(
    {"get", "set", "indexOf", "lastIndexOf", "subList", "listIterator", "sort", "replaceAll"}
)
_SORTED_SET_MEMBERS = _COLLECTION_MEMBERS | frozenset({"first", "last", "headSet", "tailSet", "subSet", "comparator"})
_NAVIGABLE_SET_MEMBERS = _SORTED_SET_MEMBERS | frozenset(
    {"lower", "floor", "ceiling", "higher", "pollFirst", "pollLast", "descendingSet", "descendingIterator"}
)
_QUEUE_MEMBERS = _COLLECTION_MEMBERS | frozenset({"offer", "poll", "peek", "element"})
_DEQUE_MEMBERS = _QUEUE_MEMBERS | frozenset(
    {
        "push",
        "pop",
        "addFirst",
        "addLast",
        "offerFirst",
        "offerLast",
        "pollFirst",
        "pollLast",
        "peekFirst",
        "peekLast",
        "removeFirst",
        "removeLast",
        "getFirst",
        "getLast",
        "descendingIterator",
        "removeFirstOccurrence",
        "removeLastOccurrence",
    }
)
_MAP_MEMBERS = frozenset(
    {
        "get",
        "put",
        "remove",
        "containsKey",
        "containsValue",
        "keySet",
        "values",
        "entrySet",
        "size",
        "isEmpty",
        "clear",
        "putAll",
        "getOrDefault",
        "putIfAbsent",
        "computeIfAbsent",
        "computeIfPresent",
        "compute",
        "merge",
        "forEach",
        "replace",
        "replaceAll",
    }
)
_SORTED_MAP_MEMBERS = _MAP_MEMBERS | frozenset({"firstKey", "lastKey", "headMap", "tailMap", "subMap", "comparator"})
_NAVIGABLE_MAP_MEMBERS = _SORTED_MAP_MEMBERS | frozenset(
    {
        "lowerKey",
        "floorKey",
        "ceilingKey",
        "higherKey",
        "firstEntry",
        "lastEntry",
        "pollFirstEntry",
        "pollLastEntry",
        "descendingMap",
        "navigableKeySet",
        "descendingKeySet",
        "floorEntry",
        "ceilingEntry",
        "lowerEntry",
        "higherEntry",
    }
)
_CHAR_SEQUENCE_MEMBERS = frozenset({"length", "charAt", "subSequence", "chars", "codePoints", "isEmpty"})


def _lib(name: str, kind: Literal["class", "interface"], supertypes: Iterable[str] = (), members: Iterable[str] = ()) -> LibraryType:
    return LibraryType(name=name, kind=kind, supertypes=tuple(supertypes), members=frozenset(members))


def _exception(name: str, parent: str) -> LibraryType:
    return _lib(name, "class", (parent,))


# Well-known JDK types, keyed by simple name. Concrete classes list the
# interfaces they implement in preference order (most commonly suggested first).
LIBRARY_TYPES: Mapping[str, LibraryType] = MappingProxyType(
    {
        t.name: t
        for t in (
            _lib("Object", "class", (), _OBJECT_MEMBERS),
            # exceptions
            _exception("Throwable", "Object"),
            _exception("Exception", "Throwable"),
            _exception("Error", "Throwable"),
            _exception("RuntimeException", "Exception"),
            _exception("IOException", "Exception"),
            _exception("FileNotFoundException", "IOException"),
            _exception("EOFException", "IOException"),
            _exception("UnsupportedEncodingException", "IOException"),
            _exception("MalformedURLException", "IOException"),
            _exception("UnknownHostException", "IOException"),
            _exception("SocketException", "IOException"),
            _exception("NoSuchFileException", "FileSystemException"),
            _exception("FileSystemException", "IOException"),
            _exception("UncheckedIOException", "RuntimeException"),
            _exception("SQLException", "Exception"),
            _exception("InterruptedException", "Exception"),
            _exception("TimeoutException", "Exception"),
            _exception("ExecutionException", "Exception"),
            _exception("CloneNotSupportedException", "Exception"),
            _exception("URISyntaxException", "Exception"),
            _exception("ParseException", "Exception"),
            _exception("ReflectiveOperationException", "Exception"),
            _exception("ClassNotFoundException", "ReflectiveOperationException"),
            _exception("NoSuchMethodException", "ReflectiveOperationException"),
            _exception("NoSuchFieldException", "ReflectiveOperationException"),
            _exception("IllegalAccessException", "ReflectiveOperationException"),
            _exception("InstantiationException", "ReflectiveOperationException"),
            _exception("IllegalArgumentException", "RuntimeException"),
            _exception("NumberFormatException", "IllegalArgumentException"),
            _exception("IllegalStateException", "RuntimeException"),
            _exception("NullPointerException", "RuntimeException"),
            _exception("ClassCastException", "RuntimeException"),
            _exception("ArithmeticException", "RuntimeException"),
            _exception("IndexOutOfBoundsException", "RuntimeException"),
            _exception("ArrayIndexOutOfBoundsException", "IndexOutOfBoundsException"),
            _exception("StringIndexOutOfBoundsException", "IndexOutOfBoundsException"),
            _exception("UnsupportedOperationException", "RuntimeException"),
            _exception("ConcurrentModificationException", "RuntimeException"),
            _exception("NoSuchElementException", "RuntimeException"),
            _exception("DateTimeException", "RuntimeException"),
            _exception("SecurityException", "RuntimeException"),
            _exception("StackOverflowError", "Error"),
            _exception("OutOfMemoryError", "Error"),
            _exception("AssertionError", "Error"),
            # strings
            _lib("CharSequence", "interface", (), _CHAR_SEQUENCE_MEMBERS),
            _lib("String", "class", ("CharSequence",)),
            _lib("StringBuilder", "class", ("CharSequence",), _CHAR_SEQUENCE_MEMBERS | {"append", "insert", "reverse", "setLength", "deleteCharAt", "delete"}),
            _lib("StringBuffer", "class", ("CharSequence",), _CHAR_SEQUENCE_MEMBERS | {"append", "insert", "reverse", "setLength", "deleteCharAt", "delete"}),
            # collections
            _lib("Iterable", "interface", (), _ITERABLE_MEMBERS),
            _lib("Collection", "interface", ("Iterable",), _COLLECTION_MEMBERS),
            _lib("List", "interface", ("Collection",), _LIST_MEMBERS),
            _lib("Set", "interface", ("Collection",), _COLLECTION_MEMBERS),
            _lib("SortedSet", "interface", ("Set",), _SORTED_SET_MEMBERS),
            _lib("NavigableSet", "interface", ("SortedSet",), _NAVIGABLE_SET_MEMBERS),
            _lib("Queue", "interface", ("Collection",), _QUEUE_MEMBERS),
            _lib("Deque", "interface", ("Queue",), _DEQUE_MEMBERS),
            _lib("Map", "interface", (), _MAP_MEMBERS),
            _lib("SortedMap", "interface", ("Map",), _SORTED_MAP_MEMBERS),
            _lib("NavigableMap", "interface", ("SortedMap",), _NAVIGABLE_MAP_MEMBERS),
            _lib("ConcurrentMap", "interface", ("Map",), _MAP_MEMBERS),
            _lib("ArrayList", "class", ("List",), _LIST_MEMBERS | {"ensureCapacity", "trimToSize", "clone"}),
            _lib("LinkedList", "class", ("List", "Deque"), _LIST_MEMBERS | _DEQUE_MEMBERS | {"clone"}),
            _lib("Vector", "class", ("List",), _LIST_MEMBERS | {"elementAt", "addElement", "firstElement", "lastElement", "capacity", "clone"}),
            _lib("Stack", "class", ("Vector",), _LIST_MEMBERS | {"push", "pop", "peek", "empty", "search"}),
            _lib("CopyOnWriteArrayList", "class", ("List",), _LIST_MEMBERS | {"addIfAbsent"}),
            _lib("HashSet", "class", ("Set",), _COLLECTION_MEMBERS | {"clone"}),
            _lib("LinkedHashSet", "class", ("HashSet", "Set"), _COLLECTION_MEMBERS | {"clone"}),
            _lib("TreeSet", "class", ("NavigableSet",), _NAVIGABLE_SET_MEMBERS | {"clone"}),
            _lib("ArrayDeque", "class", ("Deque",), _DEQUE_MEMBERS | {"clone"}),
            _lib("PriorityQueue", "class", ("Queue",), _QUEUE_MEMBERS | {"comparator"}),
            _lib("HashMap", "class", ("Map",), _MAP_MEMBERS | {"clone"}),
            _lib("LinkedHashMap", "class", ("HashMap", "Map"), _MAP_MEMBERS | {"clone"}),
            _lib("TreeMap", "class", ("NavigableMap",), _NAVIGABLE_MAP_MEMBERS | {"clone"}),
            _lib("Hashtable", "class", ("Map",), _MAP_MEMBERS | {"elements", "keys", "contains", "clone"}),
            _lib("ConcurrentHashMap", "class", ("ConcurrentMap",), _MAP_MEMBERS | {"mappingCount", "keys", "elements"}),
            _lib("EnumMap", "class", ("Map",), _MAP_MEMBERS | {"clone"}),
        )
    }
)


@dataclass(frozen=True, slots=True)
class _ProjectType:
    name: str
    kind: Literal["class", "interface"]
    supertypes: tuple[str, ...]
    members: frozenset[str]


class TypeHierarchy:
    """
    Directed acyclic subtype relation over project types and the JDK catalogue.

    Project types are keyed by `type_key` (package-qualified), library types
    by simple name. Names written in source go through `resolve` first.
    Types that are neither declared in the analyzed units nor listed in
    `LIBRARY_TYPES` resolve to the `EXTERNAL` sentinel; questions about them
    answer `None` ("unknown") instead of guessing. Project declarations shadow
    library types of the same simple name.
    """

    def __init__(self, declarations: Iterable[tuple[CompilationUnit, TypeDeclaration]] = ()) -> None:
        entries: list[tuple[CompilationUnit, TypeDeclaration, str]] = []
        by_simple: dict[str, list[str]] = defaultdict(list)
        for unit, decl in declarations:
            key = type_key(unit, decl)
            if key in by_simple[decl.name]:
                continue
            by_simple[decl.name].append(key)
            entries.append((unit, decl, key))
        self._keys = frozenset(key for _unit, _decl, key in entries)
        self._by_simple = {name: tuple(keys) for name, keys in by_simple.items()}

        project: dict[str, _ProjectType] = {}
        for unit, decl, key in entries:
            kind: Literal["class", "interface"] = "interface" if decl.is_interface else "class"
            project[key] = _ProjectType(
                name=key,
                kind=kind,
                supertypes=tuple(self.resolve_ref(ref, unit) for ref in decl.supertypes),
                members=frozenset(m.name for m in decl.methods if not m.is_constructor),
            )
        self._project = project

    def resolve(self, name: str, unit: CompilationUnit | None = None, *, qualifier: str | None = None) -> str:
        """
        Key of the type `name` denotes when written inside `unit`.

        Tries the qualified spelling, single-type imports, the unit's own
        package and on-demand imports, in that order, then the only project
        type with that simple name. Anything else (library types, externals,
        ambiguous names) comes back unchanged.
        """

        candidates = self._by_simple.get(name, ())
        if qualifier:
            qualified = f"{qualifier}.{name}"
            if qualified in self._keys:
                return qualified
            if qualifier[:1].islower():
                # Package-qualified, but not a project type.
                return name if name in LIBRARY_TYPES and not candidates else qualified
        if not candidates:
            return name
        if unit is not None:
            for imported in unit.imports:
                if imported.endswith(f".{name}"):
                    if imported in self._keys:
                        return imported
                    # An import from outside the project hides same-named project types.
                    return name if name in LIBRARY_TYPES else imported
            own = f"{unit.package}.{name}" if unit.package else name
            if own in self._keys:
                return own
            for imported in unit.imports:
                if imported.endswith(".*") and f"{imported[:-2]}.{name}" in self._keys:
                    return f"{imported[:-2]}.{name}"
        if len(candidates) == 1:
            return candidates[0]
        return name

    def resolve_ref(self, ref: TypeRef, unit: CompilationUnit | None = None) -> str:
        return self.resolve(ref.name, unit, qualifier=ref.qualifier)

    def category(self, name: str) -> TypeCategory:
        if name in self._project:
            return self._project[name].kind
        lib = LIBRARY_TYPES.get(name)
        if lib is not None:
            return lib.kind
        return EXTERNAL

    def is_known(self, name: str) -> bool:
        return self.category(name) != EXTERNAL

    def is_project_type(self, name: str) -> bool:
        return name in self._project

    def direct_supertypes(self, name: str) -> tuple[str, ...]:
        if name in self._project:
            info = self._project[name]
            if not info.supertypes and info.kind == "class":
                return ("Object",)
            return info.supertypes
        lib = LIBRARY_TYPES.get(name)
        if lib is not None:
            return lib.supertypes
        return ()

    def edges(self) -> Iterator[TypeHierarchyEdge]:
        for name in sorted(self._project):
            info = self._project[name]
            for sup in info.supertypes:
                relation: EdgeRelation = (
                    "implements" if info.kind == "class" and self.category(sup) == "interface" else "extends"
                )
                yield TypeHierarchyEdge(subtype=name, supertype=sup, relation=relation)

    def ancestors(self, name: str) -> tuple[str, ...]:
        """All transitive supertypes in breadth-first order (nearest first)."""

        seen: set[str] = {name}
        order: list[str] = []
        queue = deque(self.direct_supertypes(name))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)
            queue.extend(self.direct_supertypes(current))
        return tuple(order)

    def is_subtype(self, sub: str, sup: str) -> bool | None:
        """
        True/False when the answer is certain, None when a type on the path is external.
        """

        if sub == sup:
            return True
        if not self.is_known(sub) or not self.is_known(sup):
            return None
        ancestors = self.ancestors(sub)
        if sup in ancestors:
            return True
        if any(not self.is_known(a) for a in ancestors):
            return None
        return False

    def is_checked_exception(self, name: str) -> bool | None:
        if self.is_subtype(name, "Throwable") is not True:
            return None
        for unchecked_root in ("RuntimeException", "Error"):
            if self.is_subtype(name, unchecked_root):
                return False
        return True

    def members(self, name: str) -> frozenset[str] | None:
        """Method names callable on `name`, or None when not fully known."""

        if name in self._project:
            out = set(self._project[name].members)
            for ancestor in self.ancestors(name):
                if not self.is_known(ancestor):
                    return None
                out.update(self._own_members(ancestor))
            out.update(_OBJECT_MEMBERS)
            return frozenset(out)
        lib = LIBRARY_TYPES.get(name)
        if lib is None:
            return None
        return lib.members | _OBJECT_MEMBERS

    def _own_members(self, name: str) -> frozenset[str]:
        if name in self._project:
            return self._project[name].members
        lib = LIBRARY_TYPES.get(name)
        return lib.members if lib is not None else frozenset()

    def interfaces_of(self, name: str) -> tuple[str, ...]:
        """Known interfaces implemented by `name`, nearest first."""

        return tuple(a for a in self.ancestors(name) if self.category(a) == "interface")
