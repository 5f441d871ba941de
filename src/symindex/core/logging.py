"""Logging setup for symindex.

Library code only ever calls ``structlog.get_logger()``; nothing under
``symindex`` installs handlers on its own. An application that wants to
see index activity configures output once, usually from the ``logging``
section of its loaded config::

    config = load_config(root)
    configure_logging(config.logging)
    repo = Repository(root, parser=TreeSitterPhpParser(), config=config)
    await repo.scan()

While :meth:`Repository.scan` runs, every event (including those logged by
the parse tasks it spawns) carries the same ``scan_id`` and the repository
``directory``. Both are bound through :mod:`structlog.contextvars`, so they
survive ``asyncio.gather`` and ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from symindex.config.models import LoggingConfig, LogOutputConfig

# Third-party loggers whose DEBUG output drowns per-file events
_QUIET = ("asyncio",)


@contextmanager
def scan_context(directory: str | Path, scan_id: str | None = None) -> Iterator[str]:
    """Bind a scan correlation ID (and the scanned directory) to log events."""
    sid = scan_id or uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(scan_id=sid, directory=str(directory)):
        yield sid


def get_scan_id() -> str | None:
    """The ID of the scan running in the current context, if any."""
    value = structlog.contextvars.get_contextvars().get("scan_id")
    return value if isinstance(value, str) else None


def configure_logging(config: LoggingConfig | None = None, *, level: str | None = None) -> None:
    """Route structlog through stdlib handlers, one per configured output.

    Args:
        config: Outputs and default level. Defaults to console on stderr.
        level: Overrides ``config.level``, e.g. for a ``--verbose`` flag.
    """
    from symindex.config.models import LoggingConfig

    config = config or LoggingConfig()
    default_level = logging.getLevelName((level or config.level).upper())
    if not isinstance(default_level, int):
        default_level = logging.INFO

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    ]
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(default_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguring must take effect for loggers already handed out
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(default_level)
    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        handler = _handler(output.destination)
        output_level = logging.getLevelName((output.level or level or config.level).upper())
        handler.setLevel(output_level if isinstance(output_level, int) else default_level)
        handler.setFormatter(_formatter(output, shared))
        root.addHandler(handler)


def _handler(destination: str) -> logging.Handler:
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


def _formatter(
    output: LogOutputConfig, shared: list[structlog.types.Processor]
) -> logging.Formatter:
    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        stream = sys.stdout if output.destination == "stdout" else sys.stderr
        colors = output.destination in ("stderr", "stdout") and stream.isatty()
        renderer = structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared)
