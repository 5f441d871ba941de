"""Per-file entity storage.

Every entity of a file lives in that file's arena and is addressed by its
index there. Parent links are indices, not object references, so the
ownership structure stays a tree and a whole file is released at once by
clearing its arena.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from symindex.graph.models import Entity


class EntityArena:
    """Append-only entity store for one file."""

    __slots__ = ("_entities",)

    def __init__(self) -> None:
        self._entities: list[Entity] = []

    def add(self, entity: Entity) -> int:
        self._entities.append(entity)
        return len(self._entities) - 1

    def get(self, entity_id: int | None) -> Entity | None:
        """Resolve a handle, or ``None`` for a missing/cleared one."""
        if entity_id is None or not 0 <= entity_id < len(self._entities):
            return None
        return self._entities[entity_id]

    def __getitem__(self, entity_id: int) -> Entity:
        return self._entities[entity_id]

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities)

    def clear(self) -> None:
        self._entities.clear()
