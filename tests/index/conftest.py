"""Shared fixtures for index tests.

Sources on disk are the JSON encoding of the tagged tree the walker
consumes, and the ``parser`` fixture decodes them. This keeps repository
tests independent of any PHP grammar.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

WriteSource = Callable[..., Path]


class JsonParser:
    """Counting parser stand-in."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, source: str, filename: str) -> Any:
        self.calls.append(filename)
        return json.loads(source)


def program(*children: dict[str, Any], end: int = 1000) -> dict[str, Any]:
    return {"kind": "program", "range": [0, end], "children": list(children)}


@pytest.fixture
def parser() -> JsonParser:
    return JsonParser()


@pytest.fixture
def write_source(tmp_path: Path) -> WriteSource:
    """Write ``program(*children)`` (or raw text) under the temp root."""

    def write(name: str, *children: dict[str, Any], raw: str | None = None) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(raw if raw is not None else json.dumps(program(*children)))
        return path

    return write


@pytest.fixture
def cls() -> Callable[..., dict[str, Any]]:
    def build(name: str, start: int = 0, end: int = 10) -> dict[str, Any]:
        return {"kind": "class", "name": name, "range": [start, end], "body": []}

    return build
