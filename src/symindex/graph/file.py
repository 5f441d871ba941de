"""File: the root scope of one source unit.

A file owns the arena holding every entity declared in it and a default
(global) namespace through which its top-level classes and functions are
also visible.

Cross-file references (include/require targets) are never stored as
descriptors on the entities themselves: each external reference gets an
entry in the file's resolution queue listing the filenames it may point
to, and :meth:`File.refresh` resolves the queue against the owning
repository. Loading a batch of snapshots is therefore two-phase:
:meth:`File.import_snapshot` for every file, then :meth:`File.refresh` once
all of them are registered.
"""

from __future__ import annotations

import posixpath
import weakref
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from pydantic import ValidationError

from symindex.core.errors import CacheError
from symindex.graph.arena import EntityArena
from symindex.graph.models import (
    ENTITY_TYPES,
    UNRESOLVED,
    EntityKind,
    ExternalReference,
    Namespace,
    Scope,
    SourceRange,
)
from symindex.graph.snapshot import EntitySnapshot, FileSnapshot
from symindex.graph.walker import consume

if TYPE_CHECKING:
    from symindex.graph.models import Entity

logger = structlog.get_logger()


class FileResolver(Protocol):
    """What a file needs from its repository to relink references."""

    def resolve(self, name: str) -> File | None: ...


@dataclass(frozen=True, slots=True)
class _Link:
    entity_id: int
    candidates: tuple[str, ...]


class File(Scope):
    kind = EntityKind.FILE

    def __init__(
        self,
        name: str,
        *,
        repository: FileResolver | None = None,
        content_hash: str | None = None,
        mtime: float | None = None,
        size: int | None = None,
        source_range: SourceRange | None = None,
        with_default_namespace: bool = True,
    ) -> None:
        self.arena = EntityArena()
        super().__init__(None, name=name, source_range=source_range, arena=self.arena)
        self.content_hash = content_hash
        self.mtime = mtime
        self.size = size
        self.detached = False
        self._repository = weakref.ref(repository) if repository is not None else None
        self._resolution_queue: list[_Link] = []
        self.namespaces: list[Namespace] | tuple[Namespace, ...] = []
        self.externals: list[ExternalReference] | tuple[ExternalReference, ...] = []
        self.default_namespace: Namespace | None = None
        if with_default_namespace:
            self.default_namespace = Namespace(self)
            self.namespaces.append(self.default_namespace)

    @property
    def repository(self) -> FileResolver | None:
        return self._repository() if self._repository is not None else None

    def attach(self, repository: FileResolver) -> None:
        self._repository = weakref.ref(repository)

    @property
    def symbol_count(self) -> int:
        """Entities declared in the file, the file itself excluded."""
        return max(len(self.arena) - 1, 0)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_ast(
        cls,
        name: str,
        ast: Any,
        *,
        repository: FileResolver | None = None,
        content_hash: str | None = None,
        mtime: float | None = None,
        size: int | None = None,
    ) -> File:
        """Walk a parsed tree into a new file.

        ``ast`` is either the root ``program`` node or a list of statements.
        """
        body = ast
        source_range = None
        if isinstance(ast, Mapping):
            source_range = SourceRange.from_node(ast)
            if "children" in ast:
                body = ast["children"]
        file = cls(
            name,
            repository=repository,
            content_hash=content_hash,
            mtime=mtime,
            size=size,
            source_range=source_range,
        )
        consume(file, body)
        for ext in file.externals:
            file._enqueue(ext)
        file._freeze_all()
        return file

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export(self) -> dict[str, Any]:
        """Plain, JSON-ready snapshot of the whole entity tree."""
        entities = [self._export_entity(entity) for entity in self.arena]
        snapshot = FileSnapshot(
            name=self.name or "",
            content_hash=self.content_hash,
            mtime=self.mtime,
            size=self.size,
            default_namespace=self.default_namespace.id if self.default_namespace else 0,
            namespaces=[ns.id for ns in self.namespaces if ns.id is not None],
            externals=[ext.id for ext in self.externals if ext.id is not None],
            entities=entities,
        )
        return snapshot.model_dump(mode="json")

    @staticmethod
    def _export_entity(entity: Entity) -> EntitySnapshot:
        lists: dict[str, list[int]] = {}
        if isinstance(entity, Scope):
            for list_name in Scope.LISTS:
                members = getattr(entity, list_name)
                if members:
                    lists[list_name] = [member.id for member in members]
        source_range = entity.range
        return EntitySnapshot(
            id=entity.id if entity.id is not None else -1,
            kind=entity.kind,
            name=entity.name,
            parent=entity.parent_id,
            range=(source_range.start, source_range.end) if source_range else None,
            doc=entity.doc,
            lists=lists,
            payload=entity._payload(),
        )

    @classmethod
    def import_snapshot(
        cls,
        repository: FileResolver | None,
        data: FileSnapshot | Mapping[str, Any],
    ) -> File:
        """Rebuild a file from :meth:`export` output without re-walking.

        Cross-file references are only queued here; call :meth:`refresh`
        once every file of the batch is registered.

        Raises:
            CacheError: The snapshot is malformed or internally inconsistent.
        """
        try:
            snapshot = (
                data if isinstance(data, FileSnapshot) else FileSnapshot.model_validate(data)
            )
        except ValidationError as e:
            name = data.get("name") if isinstance(data, Mapping) else None
            raise CacheError.invalid_snapshot(str(e), name=name) from e

        entities = sorted(snapshot.entities, key=lambda es: es.id)
        if [es.id for es in entities] != list(range(len(entities))):
            raise CacheError.invalid_snapshot("entity ids are not contiguous", snapshot.name)
        if not entities or entities[0].kind is not EntityKind.FILE:
            raise CacheError.invalid_snapshot("entity 0 must be the file", snapshot.name)

        root = entities[0]
        file = cls(
            snapshot.name,
            repository=repository,
            content_hash=snapshot.content_hash,
            mtime=snapshot.mtime,
            size=snapshot.size,
            source_range=_range_of(root),
            with_default_namespace=False,
        )
        file.doc = root.doc

        # Phase 1: entities, in id order so every parent precedes its children
        for es in entities[1:]:
            parent = file.arena.get(es.parent)
            entity_type = ENTITY_TYPES.get(es.kind)
            if not isinstance(parent, Scope) or es.parent is None or es.parent >= es.id:
                raise CacheError.invalid_snapshot(f"entity {es.id} has no valid parent", snapshot.name)
            if entity_type is None:
                raise CacheError.invalid_snapshot(f"entity {es.id} has kind {es.kind.value}", snapshot.name)
            entity = entity_type(parent, name=es.name, source_range=_range_of(es), doc=es.doc)
            entity._restore(es.payload)

        for es in entities:
            entity = file.arena[es.id]
            for list_name, ids in es.lists.items():
                if not isinstance(entity, Scope) or list_name not in Scope.LISTS:
                    raise CacheError.invalid_snapshot(f"entity {es.id} has no list {list_name}", snapshot.name)
                setattr(entity, list_name, [file._member(i, snapshot.name) for i in ids])

        default_namespace = file.arena.get(snapshot.default_namespace)
        if not isinstance(default_namespace, Namespace):
            raise CacheError.invalid_snapshot("default namespace is missing", snapshot.name)
        file.default_namespace = default_namespace
        file.namespaces = [file._member(i, snapshot.name, Namespace) for i in snapshot.namespaces]
        file.externals = [
            file._member(i, snapshot.name, ExternalReference) for i in snapshot.externals
        ]

        # Phase 2 is deferred: descriptors go to the resolution queue
        for es in entities:
            entity = file.arena[es.id]
            if isinstance(entity, ExternalReference):
                file._enqueue(entity, es.payload.get("resolved"))

        file._freeze_all()
        return file

    def _member(self, entity_id: int, file_name: str, expected: type[Entity] | None = None) -> Any:
        entity = self.arena.get(entity_id)
        if entity is None or (expected is not None and not isinstance(entity, expected)):
            raise CacheError.invalid_snapshot(f"dangling entity reference {entity_id}", file_name)
        return entity

    # ------------------------------------------------------------------
    # Cross-file relink
    # ------------------------------------------------------------------

    def _enqueue(self, ext: ExternalReference, resolved_name: str | None = None) -> None:
        candidates: list[str] = []
        if resolved_name:
            candidates.append(resolved_name)
        if ext.is_literal:
            target = str(ext.target).replace("\\", "/")
            base = posixpath.dirname((self.name or "").replace("\\", "/"))
            for candidate in (posixpath.join(base, target), target):
                candidate = posixpath.normpath(candidate)
                if candidate not in candidates:
                    candidates.append(candidate)
        if not candidates or ext.id is None:
            ext.resolved = UNRESOLVED
            return
        self._resolution_queue.append(_Link(ext.id, tuple(candidates)))

    def refresh(self) -> int:
        """Relink external references against the repository.

        Every queued reference is re-resolved, so references to a file that
        was re-parsed or removed since the last refresh are corrected too.

        Returns:
            Number of references left ``UNRESOLVED``.
        """
        repository = self.repository
        unresolved = 0
        for link in self._resolution_queue:
            ext = self.arena.get(link.entity_id)
            if not isinstance(ext, ExternalReference):
                continue
            target = None
            if repository is not None:
                for candidate in link.candidates:
                    target = repository.resolve(candidate)
                    if target is not None:
                        break
            if target is None:
                ext.resolved = UNRESOLVED
                unresolved += 1
            else:
                ext.resolved = target
        if unresolved:
            logger.debug("external_unresolved", file=self.name, count=unresolved)
        return unresolved

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _freeze_all(self) -> None:
        for entity in self.arena:
            if isinstance(entity, Scope):
                entity.freeze()
        self.namespaces = tuple(self.namespaces)
        self.externals = tuple(self.externals)

    def remove(self) -> None:
        """Detach the entity tree so it can be reclaimed."""
        for entity in self.arena:
            if isinstance(entity, Scope) and entity is not self:
                entity._detach()
        self._detach()
        self.arena.clear()
        self._resolution_queue = []
        self.namespaces = ()
        self.externals = ()
        self.default_namespace = None
        self.detached = True


def _range_of(snapshot: EntitySnapshot) -> SourceRange | None:
    if snapshot.range is None:
        return None
    return SourceRange(*snapshot.range)
