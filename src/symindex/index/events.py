"""Lifecycle events published by the repository.

Observers subscribe and receive an ``asyncio.Queue`` of events instead of
registering callbacks, so repository logic never runs observer code.
A subscriber that falls behind loses events; the repository never blocks
on a full queue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from symindex.core.errors import SymIndexError
    from symindex.graph.file import File

logger = structlog.get_logger()


class EventKind(str, Enum):
    READ = "read"  # a file read started
    CACHE = "cache"  # refresh found the file unchanged
    PARSE = "parse"  # a file was walked into a new File
    ERROR = "error"  # a read or parse failed
    PROGRESS = "progress"  # one more file of a scan settled


@dataclass(frozen=True, slots=True)
class ScanProgress:
    done: int
    total: int


@dataclass(frozen=True, slots=True)
class IndexEvent:
    kind: EventKind
    name: str
    file: File | None = None
    error: SymIndexError | None = None
    progress: ScanProgress | None = None


class EventChannel:
    """Fan-out of index events to bounded subscriber queues."""

    def __init__(self, default_maxsize: int = 1000) -> None:
        self._default_maxsize = default_maxsize
        self._subscribers: list[asyncio.Queue[IndexEvent]] = []

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue[IndexEvent]:
        queue: asyncio.Queue[IndexEvent] = asyncio.Queue(
            maxsize=self._default_maxsize if maxsize is None else maxsize
        )
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[IndexEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: IndexEvent) -> None:
        for queue in self._subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("event_dropped", kind=event.kind.value, name=event.name)
