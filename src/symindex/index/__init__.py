"""Index layer: the repository and its lifecycle events.

Usage::

    from symindex.index import Repository
    from symindex.parsing import TreeSitterPhpParser

    repo = Repository("/srv/app", parser=TreeSitterPhpParser())
    await repo.scan()
    for cls in repo.get_by_type("class"):
        print(cls.name, cls.get_file().name)

The index only logs through structlog. To see per-file events, configure
output before scanning; every event of one scan carries the same
``scan_id``::

    from symindex.config import load_config
    from symindex.core import configure_logging

    root = Path("/srv/app")
    config = load_config(root)
    configure_logging(config.logging, level="DEBUG")
    repo = Repository(root, parser=TreeSitterPhpParser(), config=config)
"""

from symindex.index.events import EventChannel, EventKind, IndexEvent, ScanProgress
from symindex.index.repository import IndexCounters, Parser, Repository, ScanResult

__all__ = [
    # Repository
    "Repository",
    "Parser",
    "IndexCounters",
    "ScanResult",
    # Events
    "EventChannel",
    "EventKind",
    "IndexEvent",
    "ScanProgress",
]
