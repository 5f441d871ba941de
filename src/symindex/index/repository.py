"""Repository: the cross-file symbol index.

The repository owns every :class:`File`, drives reads and parses, and
answers aggregate queries by delegating to its files.

Per filename the state machine is::

    absent -> loading (Task in ``files``) -> loaded (File in ``files``)
                      \\-> error (entry dropped, error recorded)

Concurrent ``parse``/``refresh`` calls for a filename that is loading
await the same Task, so a filename is never parsed twice at once. The
walk itself is synchronous; the only suspension points are the file read
and an asynchronous parser.

Usage::

    repo = Repository("/srv/app", parser=TreeSitterPhpParser())
    await repo.scan()

    repo.get_by_name("class", "Foo")
    repo.get_namespace("App\\Http").functions
    repo.scope("src/index.php", offset=120)

    snapshot = repo.cache          # JSON-ready
    other.cache = snapshot         # import + relink, no re-walk
"""

from __future__ import annotations

import asyncio
import fnmatch
import hashlib
import inspect
import os
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from symindex.config.constants import MB
from symindex.config.models import SymIndexConfig
from symindex.core.errors import CacheError, IndexingError
from symindex.core.logging import scan_context
from symindex.graph.file import File
from symindex.graph.models import Entity, EntityKind, Namespace, Scope, normalize_namespace
from symindex.graph.snapshot import CacheSnapshot
from symindex.index.events import EventChannel, EventKind, IndexEvent, ScanProgress

logger = structlog.get_logger()

Parser = Callable[[str, str], Any]
"""``parser(source, filename)`` returning the root tagged node."""


@dataclass
class IndexCounters:
    """Progress bookkeeping."""

    total: int = 0
    loading: int = 0
    loaded: int = 0
    error: int = 0
    symbols: int = 0
    size: int = 0


@dataclass
class ScanResult:
    """Outcome of :meth:`Repository.scan`."""

    files: list[File] = field(default_factory=list)
    parsed: int = 0
    cache_hits: int = 0
    errors: dict[str, IndexingError] = field(default_factory=dict)


class Repository:
    """Stores a set of files with their symbols and acts like a database."""

    def __init__(
        self,
        directory: str | Path,
        *,
        parser: Parser,
        config: SymIndexConfig | None = None,
    ) -> None:
        self.directory = Path(directory).resolve()
        self.config = config or SymIndexConfig()
        self.files: dict[str, File | asyncio.Task[File]] = {}
        self.errors: dict[str, IndexingError] = {}
        self.counters = IndexCounters()
        self.events = EventChannel(self.config.limits.event_queue_size)
        self._parser = parser
        # Files being re-parsed, still counted until their Task settles
        self._replacing: dict[str, File] = {}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: int | None = None) -> asyncio.Queue[IndexEvent]:
        return self.events.subscribe(maxsize)

    def unsubscribe(self, queue: asyncio.Queue[IndexEvent]) -> None:
        self.events.unsubscribe(queue)

    def _emit(self, kind: EventKind, name: str, **kwargs: Any) -> None:
        self.events.publish(IndexEvent(kind=kind, name=name, **kwargs))

    # ------------------------------------------------------------------
    # Parse / refresh
    # ------------------------------------------------------------------

    async def parse(
        self,
        filename: str,
        encoding: str | None = None,
        stat: os.stat_result | None = None,
    ) -> File:
        """Read and walk a file, replacing any prior entry.

        Raises:
            IndexingError: The file could not be read or parsed. The entry
                is dropped and the error recorded in ``errors``.
        """
        entry = self.files.get(filename)
        if isinstance(entry, asyncio.Task):
            return await asyncio.shield(entry)
        return await self._start(filename, encoding, stat, previous=entry)

    async def refresh(
        self,
        filename: str,
        encoding: str | None = None,
        stat: os.stat_result | None = None,
    ) -> File:
        """Re-validate a file, re-parsing only when it changed.

        A cache hit returns the very same File object. Change detection
        uses mtime and size, or the content hash when
        ``cache_by_file_hash`` is enabled.
        """
        entry = self.files.get(filename)
        if entry is None:
            return await self.parse(filename, encoding, stat)
        if isinstance(entry, asyncio.Task):
            return await asyncio.shield(entry)

        content: bytes | None = None
        if self.config.index.cache_by_file_hash:
            try:
                content = await self._read(filename)
            except IndexingError:
                # Let the regular parse path record the failure
                return await self._start(filename, encoding, stat, previous=entry)
            unchanged = hashlib.sha256(content).hexdigest() == entry.content_hash
        else:
            try:
                stat = stat or await asyncio.to_thread(os.stat, self._path(filename))
            except OSError:
                return await self._start(filename, encoding, None, previous=entry)
            unchanged = entry.mtime == stat.st_mtime and entry.size == stat.st_size

        if unchanged:
            logger.debug("file_cache_hit", name=filename)
            self._emit(EventKind.CACHE, filename, file=entry)
            return entry
        return await self._start(filename, encoding, stat, previous=entry, content=content)

    async def _start(
        self,
        filename: str,
        encoding: str | None,
        stat: os.stat_result | None,
        *,
        previous: File | None,
        content: bytes | None = None,
    ) -> File:
        if previous is None:
            self.counters.total += 1
        else:
            self._replacing[filename] = previous
        task = asyncio.create_task(
            self._load(filename, encoding, stat, content),
            name=f"symindex-parse:{filename}",
        )
        self.files[filename] = task
        return await asyncio.shield(task)

    async def _load(
        self,
        filename: str,
        encoding: str | None,
        stat: os.stat_result | None,
        content: bytes | None,
    ) -> File:
        task = asyncio.current_task()
        self.counters.loading += 1
        try:
            file = await self._read_and_walk(filename, encoding, stat, content)
        except IndexingError as e:
            if self.files.get(filename) is task:
                del self.files[filename]
                self.errors[filename] = e
                self.counters.error += 1
                replaced = self._replacing.pop(filename, None)
                if replaced is not None:
                    self._forget(replaced)
            logger.warning("file_parse_failed", name=filename, error=e.error_name, reason=e.message)
            self._emit(EventKind.ERROR, filename, error=e)
            raise
        finally:
            self.counters.loading -= 1

        if self.files.get(filename) is not task:
            # Removed, renamed or replaced while loading
            file.remove()
            return file

        self.files[filename] = file
        self.errors.pop(filename, None)
        replaced = self._replacing.pop(filename, None)
        if replaced is not None:
            self._forget(replaced)
        self.counters.loaded += 1
        self.counters.symbols += file.symbol_count
        self.counters.size += file.size or 0
        file.refresh()
        logger.debug("file_parsed", name=filename, symbols=file.symbol_count)
        self._emit(EventKind.PARSE, filename, file=file)
        return file

    async def _read_and_walk(
        self,
        filename: str,
        encoding: str | None,
        stat: os.stat_result | None,
        content: bytes | None,
    ) -> File:
        self._emit(EventKind.READ, filename)
        path = self._path(filename)
        if stat is None:
            try:
                stat = await asyncio.to_thread(os.stat, path)
            except OSError as e:
                raise IndexingError.read_failed(filename, str(e)) from e

        limit = self.config.index.max_file_size_mb * MB
        if stat.st_size > limit:
            raise IndexingError.file_too_large(filename, stat.st_size, limit)

        if content is None:
            content = await self._read(filename)
        try:
            source = content.decode(encoding or self.config.index.encoding)
        except (UnicodeDecodeError, LookupError) as e:
            raise IndexingError.read_failed(filename, str(e)) from e

        try:
            ast = self._parser(source, filename)
            if inspect.isawaitable(ast):
                ast = await ast
        except Exception as e:  # noqa: BLE001
            raise IndexingError.parse_failed(filename, str(e)) from e

        return File.from_ast(
            filename,
            ast,
            repository=self,
            content_hash=hashlib.sha256(content).hexdigest(),
            mtime=stat.st_mtime,
            size=len(content),
        )

    async def _read(self, filename: str) -> bytes:
        try:
            return await asyncio.to_thread(self._path(filename).read_bytes)
        except OSError as e:
            raise IndexingError.read_failed(filename, str(e)) from e

    def _path(self, filename: str) -> Path:
        return self.directory / filename

    def _forget(self, file: File) -> None:
        self.counters.loaded -= 1
        self.counters.symbols -= file.symbol_count
        self.counters.size -= file.size or 0
        file.remove()

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan(self, paths: str | Sequence[str] | None = None) -> ScanResult:
        """Refresh every matching file under ``directory``.

        Args:
            paths: Sub-paths relative to the repository root (default: root).

        Single file failures are counted in the result, never raised.
        """
        with scan_context(self.directory):
            names = await asyncio.to_thread(self._discover, paths)
            result = ScanResult()
            semaphore = asyncio.Semaphore(self.config.index.max_concurrent_parses)
            done = 0

            async def settle(name: str) -> None:
                nonlocal done
                async with semaphore:
                    before = self.files.get(name)
                    try:
                        file = await self.refresh(name)
                    except IndexingError as e:
                        result.errors[name] = e
                    else:
                        result.files.append(file)
                        if file is before:
                            result.cache_hits += 1
                        else:
                            result.parsed += 1
                done += 1
                self._emit(EventKind.PROGRESS, name, progress=ScanProgress(done, len(names)))

            await asyncio.gather(*(settle(name) for name in names))

            for file in self:
                file.refresh()
            logger.info(
                "scan_complete",
                files=len(names),
                parsed=result.parsed,
                cache_hits=result.cache_hits,
                errors=len(result.errors),
            )
            return result

    def _discover(self, paths: str | Sequence[str] | None) -> list[str]:
        if paths is None:
            roots = [self.directory]
        elif isinstance(paths, str):
            roots = [self.directory / paths]
        else:
            roots = [self.directory / p for p in paths]

        patterns = self.config.index.extensions
        excluded = set(self.config.index.exclude_dirs)
        found: list[str] = []
        for root in roots:
            if root.is_file():
                candidates: list[Path] = [root]
            else:
                candidates = []
                for dirpath, dirnames, filenames in os.walk(root):
                    dirnames[:] = sorted(d for d in dirnames if d not in excluded)
                    candidates.extend(Path(dirpath) / f for f in sorted(filenames))
            for path in candidates:
                if any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns):
                    name = path.relative_to(self.directory).as_posix()
                    if name not in found:
                        found.append(name)
        return found

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[File]:
        """Loaded files, in insertion order."""
        return iter([f for f in self.files.values() if isinstance(f, File)])

    def each(self, callback: Callable[[File, str], None]) -> Repository:
        for name, file in list(self.files.items()):
            if isinstance(file, File):
                callback(file, name)
        return self

    def __contains__(self, filename: object) -> bool:
        return isinstance(self.files.get(filename), File)  # type: ignore[arg-type]

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def get(self, filename: str) -> File | None:
        entry = self.files.get(filename)
        return entry if isinstance(entry, File) else None

    def resolve(self, name: str) -> File | None:
        """Find a loaded file by relative name or absolute path."""
        file = self.get(name)
        if file is None and os.path.isabs(name):
            try:
                relative = Path(name).resolve().relative_to(self.directory).as_posix()
            except ValueError:
                return None
            file = self.get(relative)
        return file

    def scope(self, filename: str, offset: int) -> Scope | None:
        file = self.get(filename)
        return file.get_scope(offset) if file is not None else None

    def _limit(self, limit: int | None) -> int:
        return self.config.limits.query_default if limit is None else limit

    def get_by_type(self, kind: EntityKind | str, limit: int | None = None) -> list[Entity]:
        limit = self._limit(limit)
        result: list[Entity] = []
        for file in self:
            remaining = limit - len(result) if limit > 0 else 0
            result.extend(file.get_by_type(kind, remaining))
            if 0 < limit <= len(result):
                break
        return result

    def get_by_name(
        self, kind: EntityKind | str, name: str, limit: int | None = None
    ) -> list[Entity]:
        limit = self._limit(limit)
        result: list[Entity] = []
        for file in self:
            remaining = limit - len(result) if limit > 0 else 0
            result.extend(file.get_by_name(kind, name, remaining))
            if 0 < limit <= len(result):
                break
        return result

    def get_first_by_name(self, kind: EntityKind | str, name: str) -> Entity | None:
        for file in self:
            found = file.get_first_by_name(kind, name)
            if found is not None:
                return found
        return None

    def get_namespace(self, name: str) -> Namespace | None:
        """Merge every file's namespace of that name into a synthetic one.

        The result is rebuilt on every call and owned by no file.
        """
        name = normalize_namespace(name)
        matches = [
            ns
            for ns in self.get_by_name(EntityKind.NAMESPACE, name, limit=0)
            if isinstance(ns, Namespace)
        ]
        if not matches:
            return None
        merged = Namespace(None, name=name)
        for ns in matches:
            merged.defines.extend(ns.defines)  # type: ignore[union-attr]
            merged.functions.extend(ns.functions)  # type: ignore[union-attr]
            merged.classes.extend(ns.classes)  # type: ignore[union-attr]
            merged.traits.extend(ns.traits)  # type: ignore[union-attr]
            merged.interfaces.extend(ns.interfaces)  # type: ignore[union-attr]
        merged.freeze()
        return merged

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def remove(self, filename: str) -> Repository:
        entry = self.files.pop(filename, None)
        if isinstance(entry, asyncio.Task):
            # The pending parse notices it was superseded and discards its result
            entry = self._replacing.pop(filename, None)
        if isinstance(entry, File):
            self._forget(entry)
        self.errors.pop(filename, None)
        return self

    def rename(self, old_name: str, new_name: str) -> Repository:
        entry = self.files.get(old_name)
        if not isinstance(entry, File):
            reason = "loading" if entry is not None else "not_loaded"
            logger.warning("rename_skipped", name=old_name, new_name=new_name, reason=reason)
        elif new_name in self.files:
            logger.warning(
                "rename_skipped", name=old_name, new_name=new_name, reason="target_exists"
            )
        else:
            del self.files[old_name]
            entry.name = new_name
            self.files[new_name] = entry
        return self

    def clean_all(self) -> Repository:
        for file in [*self, *self._replacing.values()]:
            file.remove()
        self.files = {}
        self._replacing = {}
        self.errors = {}
        self.counters = IndexCounters(loading=self.counters.loading)
        return self

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @property
    def cache(self) -> dict[str, Any]:
        """JSON-ready snapshot of every loaded file."""
        snapshot = CacheSnapshot(directory=str(self.directory))
        data = snapshot.model_dump(mode="json")
        data["files"] = {name: file.export() for name, file in self.files.items() if isinstance(file, File)}
        return data

    @cache.setter
    def cache(self, data: Mapping[str, Any] | None) -> None:
        """Replace every file from a snapshot, then relink cross-file references.

        Raises:
            CacheError: The snapshot is malformed. The repository is left
                unchanged.
        """
        if not data:
            self.clean_all()
            return
        try:
            snapshot = CacheSnapshot.model_validate(data)
        except ValidationError as e:
            raise CacheError.invalid_snapshot(str(e)) from e

        files = {name: File.import_snapshot(self, fs) for name, fs in snapshot.files.items()}

        self.clean_all()
        self.directory = Path(snapshot.directory)
        for name, file in files.items():
            file.name = name
            self.files[name] = file
            self.counters.total += 1
            self.counters.loaded += 1
            self.counters.symbols += file.symbol_count
            self.counters.size += file.size or 0

        unresolved = sum(file.refresh() for file in files.values())
        logger.info("cache_loaded", files=len(files), unresolved=unresolved)
