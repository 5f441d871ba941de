"""Symbol graph entities.

An entity is created once, during the top-to-bottom walk of its AST
subtree, and is never mutated afterwards except for the relink of
external references. Scopes collect their members in plain lists while
the walk is running and are frozen to tuples when it completes.

Ownership is a tree: every entity except a file is owned by exactly one
scope (recorded in that scope's ``_children``). The typed member lists
(``classes``, ``functions``, ...) are views and may mention an entity
owned elsewhere, e.g. a file's default namespace lists the classes the
file itself owns.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

from symindex.config.constants import GLOBAL_NAMESPACE, NAMESPACE_SEPARATOR
from symindex.graph.arena import EntityArena

if TYPE_CHECKING:
    from symindex.graph.file import File


class EntityKind(str, Enum):
    """Closed set of entity tags."""

    FILE = "file"
    NAMESPACE = "namespace"
    CLASS = "class"
    INTERFACE = "interface"
    TRAIT = "trait"
    FUNCTION = "function"
    VARIABLE = "variable"
    BLOCK = "block"
    EXTERNAL = "external"
    DEFINE = "define"


def coerce_kind(kind: EntityKind | str) -> EntityKind | None:
    """Map a caller supplied tag to an EntityKind, ``None`` if unknown."""
    if isinstance(kind, EntityKind):
        return kind
    try:
        return EntityKind(kind)
    except ValueError:
        return None


def normalize_namespace(name: str) -> str:
    """Single leading separator, no trailing one: ``App\\`` -> ``\\App``."""
    if not name.startswith(NAMESPACE_SEPARATOR):
        name = NAMESPACE_SEPARATOR + name
    if len(name) > 1 and name.endswith(NAMESPACE_SEPARATOR):
        name = name[:-1]
    return name


@dataclass(frozen=True, slots=True)
class SourceRange:
    """Byte offsets ``[start, end]`` of a construct in its source."""

    start: int
    end: int

    def contains(self, offset: int) -> bool:
        return self.start <= offset <= self.end

    @classmethod
    def from_node(cls, node: Mapping[str, Any]) -> SourceRange | None:
        """Read ``range`` (pair or start/end mapping) or ``loc`` offsets."""
        raw = node.get("range")
        if isinstance(raw, Mapping):
            return cls._build(raw.get("start"), raw.get("end"))
        if isinstance(raw, Sequence) and not isinstance(raw, str) and len(raw) == 2:
            return cls._build(raw[0], raw[1])
        loc = node.get("loc")
        if isinstance(loc, Mapping):
            start, end = loc.get("start"), loc.get("end")
            if isinstance(start, Mapping) and isinstance(end, Mapping):
                return cls._build(start.get("offset"), end.get("offset"))
        return None

    @classmethod
    def _build(cls, start: Any, end: Any) -> SourceRange | None:
        if isinstance(start, int) and isinstance(end, int) and start <= end:
            return cls(start, end)
        return None


class _Unresolved:
    """Marker for a cross-file reference that could not be relinked."""

    _instance: ClassVar[_Unresolved | None] = None

    def __new__(cls) -> _Unresolved:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()


class Entity:
    """Base unit of the symbol graph."""

    kind: ClassVar[EntityKind]

    def __init__(
        self,
        parent: Scope | None,
        *,
        name: str | None = None,
        source_range: SourceRange | None = None,
        doc: str | None = None,
        arena: EntityArena | None = None,
    ) -> None:
        self.name = name
        self.range = source_range
        self.doc = doc
        self._arena = parent._arena if parent is not None else arena
        self.parent_id = parent.id if parent is not None else None
        self.id = self._arena.add(self) if self._arena is not None else None
        if parent is not None and self.id is not None:
            parent._children.append(self.id)

    @property
    def parent(self) -> Scope | None:
        if self._arena is None:
            return None
        return self._arena.get(self.parent_id)  # type: ignore[return-value]

    def iter_ancestors(self) -> Iterator[Scope]:
        scope = self.parent
        while scope is not None:
            yield scope
            scope = scope.parent

    def get_file(self) -> File | None:
        if self.kind is EntityKind.FILE:
            return self  # type: ignore[return-value]
        for scope in self.iter_ancestors():
            if scope.kind is EntityKind.FILE:
                return scope  # type: ignore[return-value]
        return None

    def get_namespace(self) -> Namespace | None:
        """Nearest enclosing namespace, else the file's default namespace."""
        if isinstance(self, Namespace):
            return self
        for scope in self.iter_ancestors():
            if isinstance(scope, Namespace):
                return scope
        file = self.get_file()
        return file.default_namespace if file is not None else None

    # -- snapshot hooks -------------------------------------------------

    def _payload(self) -> dict[str, Any]:
        return {}

    def _restore(self, payload: Mapping[str, Any]) -> None:  # noqa: ARG002
        return None

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name is not None else ""
        return f"<{type(self).__name__}{label} #{self.id}>"


class Scope(Entity):
    """An entity owning nested declarations."""

    LISTS: ClassVar[tuple[str, ...]] = (
        "variables",
        "defines",
        "functions",
        "classes",
        "interfaces",
        "traits",
        "blocks",
    )

    def __init__(self, parent: Scope | None, **kwargs: Any) -> None:
        self._children: list[int] = []
        self.variables: list[Variable] | tuple[Variable, ...] = []
        self.defines: list[Entity] | tuple[Entity, ...] = []
        self.functions: list[FunctionEntity] | tuple[FunctionEntity, ...] = []
        self.classes: list[ClassEntity] | tuple[ClassEntity, ...] = []
        self.interfaces: list[Entity] | tuple[Entity, ...] = []
        self.traits: list[Entity] | tuple[Entity, ...] = []
        self.blocks: list[Block] | tuple[Block, ...] = []
        super().__init__(parent, **kwargs)

    def children(self) -> Iterator[Entity]:
        """Owned entities in declaration order."""
        if self._arena is None:
            return
        for child_id in self._children:
            child = self._arena.get(child_id)
            if child is not None:
                yield child

    def iter_descendants(self) -> Iterator[Entity]:
        """Depth-first, source-ordered walk over ownership edges."""
        stack = list(reversed(list(self.children())))
        while stack:
            entity = stack.pop()
            yield entity
            if isinstance(entity, Scope):
                stack.extend(reversed(list(entity.children())))

    def get_by_type(self, kind: EntityKind | str, limit: int = 100) -> list[Entity]:
        return self._collect(kind, None, limit)

    def get_by_name(self, kind: EntityKind | str, name: str, limit: int = 100) -> list[Entity]:
        return self._collect(kind, name, limit)

    def get_first_by_name(self, kind: EntityKind | str, name: str) -> Entity | None:
        found = self._collect(kind, name, 1)
        return found[0] if found else None

    def _collect(self, kind: EntityKind | str, name: str | None, limit: int) -> list[Entity]:
        wanted = coerce_kind(kind)
        if wanted is None:
            return []
        if wanted is EntityKind.NAMESPACE and name is not None:
            name = normalize_namespace(name)
        result: list[Entity] = []
        for entity in self.iter_descendants():
            if entity.kind is not wanted:
                continue
            if name is not None and entity.name != name:
                continue
            result.append(entity)
            if 0 < limit <= len(result):
                break
        return result

    def get_scope(self, offset: int) -> Scope:
        """Innermost owned scope whose range contains ``offset``.

        At every level the last declared candidate wins. Returns ``self``
        when no narrower scope matches.
        """
        current: Scope = self
        while True:
            candidate: Scope | None = None
            for child in current.children():
                if (
                    isinstance(child, Scope)
                    and child.range is not None
                    and child.range.contains(offset)
                ):
                    candidate = child
            if candidate is None:
                return current
            current = candidate

    def freeze(self) -> None:
        for list_name in self.LISTS:
            setattr(self, list_name, tuple(getattr(self, list_name)))

    def _detach(self) -> None:
        for list_name in self.LISTS:
            setattr(self, list_name, ())
        self._children = []


class Namespace(Scope):
    """A namespace scope; names are stored normalised (``\\App``)."""

    kind = EntityKind.NAMESPACE

    def __init__(
        self, parent: Scope | None, *, name: str | None = GLOBAL_NAMESPACE, **kwargs: Any
    ) -> None:
        super().__init__(parent, name=normalize_namespace(name or ""), **kwargs)

    @property
    def constants(self) -> Sequence[Entity]:
        return self.defines

    @property
    def is_global(self) -> bool:
        return self.name == GLOBAL_NAMESPACE


class ClassEntity(Scope):
    kind = EntityKind.CLASS


class FunctionEntity(Scope):
    """A function, or a method when declared directly in a class body."""

    kind = EntityKind.FUNCTION

    def __init__(self, parent: Scope | None, *, is_method: bool = False, **kwargs: Any) -> None:
        self.is_method = is_method
        super().__init__(parent, **kwargs)

    def _payload(self) -> dict[str, Any]:
        return {"is_method": self.is_method}

    def _restore(self, payload: Mapping[str, Any]) -> None:
        self.is_method = bool(payload.get("is_method", False))


class Block(Scope):
    """Body of a control-flow branch (if/else, try/catch/finally)."""

    kind = EntityKind.BLOCK


class Variable(Entity):
    kind = EntityKind.VARIABLE


class ExternalReference(Entity):
    """An include/require directive.

    ``target`` is the literal path when the directive names one, otherwise
    the opaque target expression node. ``resolved`` is the included
    :class:`File` once relinked, ``UNRESOLVED`` when relinking failed and
    ``None`` before the first relink.
    """

    kind = EntityKind.EXTERNAL

    def __init__(
        self,
        parent: Scope | None,
        *,
        target: Any = None,
        once: bool = False,
        require: bool = False,
        **kwargs: Any,
    ) -> None:
        self.target = target
        self.once = once
        self.require = require
        self.resolved: File | _Unresolved | None = None
        super().__init__(parent, **kwargs)

    @property
    def is_literal(self) -> bool:
        return isinstance(self.target, str)

    def _payload(self) -> dict[str, Any]:
        resolved = self.resolved
        return {
            "target": self.target,
            "once": self.once,
            "require": self.require,
            "resolved": resolved.name if resolved and resolved.kind is EntityKind.FILE else None,
        }

    def _restore(self, payload: Mapping[str, Any]) -> None:
        self.target = payload.get("target")
        self.once = bool(payload.get("once", False))
        self.require = bool(payload.get("require", False))


ENTITY_TYPES: dict[EntityKind, type[Entity]] = {
    EntityKind.NAMESPACE: Namespace,
    EntityKind.CLASS: ClassEntity,
    EntityKind.FUNCTION: FunctionEntity,
    EntityKind.BLOCK: Block,
    EntityKind.VARIABLE: Variable,
    EntityKind.EXTERNAL: ExternalReference,
}
"""Entity classes restorable from a snapshot (files are built separately)."""
