"""Shared fixtures for graph tests.

``sample_program`` is the tagged tree of::

    <?php
    /** Greeter doc */
    class Greeter {                       // [10, 100]
        function hello() { $x = 1; }      // [20, 60]
    }
    function helper() {                   // [110, 150]
        if ($a) { $y = 2; }               // block [120, 130]
        else { class Inner {} }           // block [131, 144], Inner [132, 140]
    }
    require_once "lib/util.php";          // [152, 158]
    namespace App\\Http {                 // [160, 300]
        /** Route doc */
        function route() {}               // [180, 220]
        // plain
        class Kernel {}                   // [260, 290]
    }
"""

from __future__ import annotations

from typing import Any

import pytest


def node(kind: str, start: int | None = None, end: int | None = None, **fields: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"kind": kind, **fields}
    if start is not None and end is not None:
        result["range"] = [start, end]
    return result


def assign(name: str, start: int, end: int) -> dict[str, Any]:
    return node(
        "assign",
        start,
        end,
        left=node("variable", name=name),
        right=node("number", value="1"),
    )


@pytest.fixture
def sample_program() -> dict[str, Any]:
    return node(
        "program",
        0,
        400,
        children=[
            node("doc", body="/** Greeter doc */"),
            node(
                "class",
                10,
                100,
                name="Greeter",
                body=[node("method", 20, 60, name="hello", body=[assign("x", 30, 40)])],
            ),
            node(
                "function",
                110,
                150,
                name="helper",
                body=[
                    node(
                        "if",
                        115,
                        145,
                        test=node("variable", name="a"),
                        body=node("block", 120, 130, children=[assign("y", 121, 129)]),
                        alternate=node(
                            "block",
                            131,
                            144,
                            children=[node("class", 132, 140, name="Inner", body=[])],
                        ),
                    )
                ],
            ),
            node(
                "include",
                152,
                158,
                once=True,
                require=True,
                target=node("string", value="lib/util.php"),
            ),
            node(
                "namespace",
                160,
                300,
                name="App\\Http",
                children=[
                    node("doc", body="/** Route doc */"),
                    node("function", 180, 220, name="route", body=[]),
                    node("comment", value="// plain"),
                    node("class", 260, 290, name="Kernel", body=[]),
                ],
            ),
        ],
    )
