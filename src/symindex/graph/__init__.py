"""Symbol graph: entities, the tree walker and files."""

from symindex.graph.arena import EntityArena
from symindex.graph.file import File
from symindex.graph.models import (
    UNRESOLVED,
    Block,
    ClassEntity,
    Entity,
    EntityKind,
    ExternalReference,
    FunctionEntity,
    Namespace,
    Scope,
    SourceRange,
    Variable,
    normalize_namespace,
)
from symindex.graph.snapshot import CacheSnapshot, EntitySnapshot, FileSnapshot
from symindex.graph.walker import WalkState, consume, consume_child

__all__ = [
    # Entities
    "Entity",
    "EntityKind",
    "Scope",
    "Namespace",
    "ClassEntity",
    "FunctionEntity",
    "Block",
    "Variable",
    "ExternalReference",
    "SourceRange",
    "UNRESOLVED",
    "normalize_namespace",
    # Storage
    "EntityArena",
    "File",
    # Snapshots
    "CacheSnapshot",
    "FileSnapshot",
    "EntitySnapshot",
    # Walker
    "WalkState",
    "consume",
    "consume_child",
]
