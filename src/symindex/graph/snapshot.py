"""Cache snapshot wire format.

The snapshot is the only persisted/exchanged representation of the index.
Entity references are encoded as arena indices of the owning file, and
cross-file references as filenames, so a snapshot is plain JSON.
"""

from typing import Any

from pydantic import BaseModel, Field

from symindex.config.constants import CACHE_SNAPSHOT_VERSION
from symindex.graph.models import EntityKind


class EntitySnapshot(BaseModel):
    id: int
    kind: EntityKind
    name: str | None = None
    parent: int | None = None
    range: tuple[int, int] | None = None
    doc: str | None = None
    lists: dict[str, list[int]] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)


class FileSnapshot(BaseModel):
    name: str
    content_hash: str | None = None
    mtime: float | None = None
    size: int | None = None
    default_namespace: int
    namespaces: list[int] = Field(default_factory=list)
    externals: list[int] = Field(default_factory=list)
    entities: list[EntitySnapshot]


class CacheSnapshot(BaseModel):
    directory: str
    version: int = CACHE_SNAPSHOT_VERSION
    files: dict[str, FileSnapshot] = Field(default_factory=dict)
