"""Tests for the tree walker.

Covers classification of tagged nodes, doc comment attachment, the
generic recursion fallback and malformed node recovery.
"""

from __future__ import annotations

from typing import Any

from structlog.testing import capture_logs

from symindex.graph.file import File
from symindex.graph.models import (
    Block,
    ClassEntity,
    EntityKind,
    ExternalReference,
    FunctionEntity,
    Namespace,
    SourceRange,
    Variable,
)
from symindex.graph.walker import WalkState, consume, consume_child


def _node(kind: str, start: int | None = None, end: int | None = None, **fields: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"kind": kind, **fields}
    if start is not None and end is not None:
        result["range"] = [start, end]
    return result


def _walk(*nodes: dict[str, Any]) -> File:
    file = File("test.php")
    consume(file, list(nodes))
    return file


class TestDeclarations:
    """Declaration nodes become entities in the right lists."""

    def test_given_class_when_walked_then_in_file_and_default_namespace(self) -> None:
        # Given / When
        file = _walk(_node("class", 0, 10, name="Foo", body=[]))

        # Then
        (cls,) = file.classes
        assert isinstance(cls, ClassEntity)
        assert cls.name == "Foo"
        assert cls.range == SourceRange(0, 10)
        assert cls.parent is file
        assert file.default_namespace is not None
        assert list(file.default_namespace.classes) == [cls]

    def test_given_class_in_namespace_when_walked_then_only_in_namespace(self) -> None:
        file = _walk(
            _node("namespace", 0, 50, name="App", children=[_node("class", 5, 20, name="Foo")])
        )

        ns = file.namespaces[-1]
        assert ns.name == "\\App"
        assert [c.name for c in ns.classes] == ["Foo"]
        assert file.classes == []
        assert file.default_namespace is not None
        assert file.default_namespace.classes == []

    def test_given_namespace_inside_block_when_walked_then_owned_by_file(self) -> None:
        """Namespaces nested in other statements still hang off the file."""
        file = _walk(
            _node(
                "declare",
                children=[_node("namespace", 0, 10, name="Nested", children=[])],
            )
        )

        ns = file.namespaces[-1]
        assert ns.name == "\\Nested"
        assert ns.parent is file

    def test_given_method_when_walked_then_not_in_namespace(self) -> None:
        file = _walk(
            _node("class", 0, 40, name="Foo", body=[_node("method", 5, 30, name="bar", body=[])])
        )

        cls = file.classes[0]
        (method,) = cls.functions
        assert isinstance(method, FunctionEntity)
        assert method.is_method is True
        assert file.default_namespace is not None
        assert file.default_namespace.functions == []

    def test_given_method_outside_class_when_walked_then_not_indexed(self) -> None:
        """Interface members are not indexed, their bodies are still walked."""
        file = _walk(
            _node(
                "interface",
                0,
                40,
                name="Countable",
                body=[_node("method", 5, 30, name="count", body=[])],
            )
        )

        assert file.get_by_type(EntityKind.FUNCTION) == []
        assert file.interfaces == []

    def test_given_nested_function_when_walked_then_namespace_view_updated(self) -> None:
        file = _walk(
            _node(
                "function",
                0,
                50,
                name="outer",
                body=[_node("function", 10, 40, name="inner", body=[])],
            )
        )

        outer = file.functions[0]
        inner = outer.functions[0]
        assert inner.is_method is False
        assert file.default_namespace is not None
        assert list(file.default_namespace.functions) == [outer, inner]

    def test_given_variable_assignment_when_walked_then_variable_added(self) -> None:
        file = _walk(
            _node("assign", 0, 8, left=_node("variable", name="x"), right=_node("number"))
        )

        (var,) = file.variables
        assert isinstance(var, Variable)
        assert var.name == "x"

    def test_given_property_assignment_when_walked_then_recurses_into_right(self) -> None:
        """Only plain variables are captured; closures on the right are still found."""
        file = _walk(
            _node(
                "assign",
                0,
                40,
                left=_node("propertylookup", what=_node("variable", name="this")),
                right=_node("function", 10, 30, name="closure", body=[]),
            )
        )

        assert file.variables == []
        assert [f.name for f in file.functions] == ["closure"]


class TestBlocks:
    """Control-flow constructs create block scopes."""

    def test_given_if_else_when_walked_then_two_blocks(self) -> None:
        file = _walk(
            _node(
                "if",
                0,
                40,
                body=_node("block", 5, 15, children=[]),
                alternate=_node("block", 20, 35, children=[]),
            )
        )

        assert [b.range for b in file.blocks] == [SourceRange(5, 15), SourceRange(20, 35)]
        assert all(isinstance(b, Block) for b in file.blocks)

    def test_given_if_without_else_when_walked_then_one_block(self) -> None:
        file = _walk(_node("if", 0, 20, body=_node("block", 5, 15, children=[])))

        assert len(file.blocks) == 1

    def test_given_try_catch_finally_when_walked_then_block_per_clause(self) -> None:
        file = _walk(
            _node(
                "try",
                0,
                90,
                body=_node("block", 5, 20, children=[]),
                catches=[
                    {"kind": "catch", "body": _node("block", 25, 40, children=[])},
                    {"kind": "catch", "body": _node("block", 45, 60, children=[])},
                ],
                allways=_node("block", 65, 85, children=[]),
            )
        )

        assert len(file.blocks) == 4
        assert file.blocks[-1].range == SourceRange(65, 85)

    def test_given_class_in_block_when_walked_then_namespace_view_updated(self) -> None:
        file = _walk(
            _node(
                "if",
                0,
                40,
                body=_node("block", 5, 30, children=[_node("class", 10, 20, name="Late")]),
            )
        )

        block = file.blocks[0]
        assert [c.name for c in block.classes] == ["Late"]
        assert file.default_namespace is not None
        assert [c.name for c in file.default_namespace.classes] == ["Late"]


class TestIncludes:
    def test_given_literal_include_when_walked_then_target_is_path(self) -> None:
        file = _walk(
            _node(
                "include",
                0,
                20,
                once=True,
                require=False,
                target=_node("string", value="lib/a.php"),
            )
        )

        (ext,) = file.externals
        assert isinstance(ext, ExternalReference)
        assert ext.target == "lib/a.php"
        assert ext.is_literal
        assert ext.once is True
        assert ext.require is False

    def test_given_dynamic_include_when_walked_then_target_is_node(self) -> None:
        target = _node("bin", left=_node("magic", value="__DIR__"), right=_node("string", value="/a.php"))

        file = _walk(_node("include", 0, 20, target=target))

        assert file.externals[0].target == target
        assert not file.externals[0].is_literal

    def test_given_include_in_function_when_walked_then_listed_on_file(self) -> None:
        file = _walk(
            _node(
                "function",
                0,
                50,
                name="boot",
                body=[_node("include", 10, 30, target="config.php")],
            )
        )

        (ext,) = file.externals
        assert ext.parent is file.functions[0]


class TestDocComments:
    """A pending doc attaches to the next tagged sibling."""

    def test_given_doc_before_class_when_walked_then_attached(self) -> None:
        file = _walk(_node("doc", body="/** Foo */"), _node("class", 10, 20, name="Foo"))

        assert file.classes[0].doc == "/** Foo */"

    def test_given_two_docs_when_walked_then_last_wins(self) -> None:
        file = _walk(
            _node("doc", body="/** first */"),
            _node("doc", lines=["second", "line"]),
            _node("class", 10, 20, name="Foo"),
        )

        assert file.classes[0].doc == "second\nline"

    def test_given_plain_comment_between_when_walked_then_doc_kept(self) -> None:
        file = _walk(
            _node("doc", body="/** Foo */"),
            _node("comment", value="// note"),
            _node("class", 10, 20, name="Foo"),
        )

        assert file.classes[0].doc == "/** Foo */"

    def test_given_statement_between_when_walked_then_doc_consumed(self) -> None:
        file = _walk(
            _node("doc", body="/** var doc */"),
            _node("assign", 0, 5, left=_node("variable", name="x")),
            _node("class", 10, 20, name="Foo"),
        )

        assert file.variables[0].doc == "/** var doc */"
        assert file.classes[0].doc is None

    def test_given_trailing_doc_in_body_when_walked_then_not_leaked(self) -> None:
        """Each scope body has its own pending doc."""
        file = _walk(
            _node("class", 0, 20, name="A", body=[_node("doc", body="/** orphan */")]),
            _node("class", 30, 40, name="B"),
        )

        assert file.classes[1].doc is None

    def test_given_comment_flagged_as_doc_when_walked_then_attached(self) -> None:
        file = _walk(
            _node("comment", isDoc=True, value="Foo docs"),
            _node("function", 0, 10, name="foo"),
        )

        assert file.functions[0].doc == "Foo docs"


class TestGenericRecursion:
    def test_given_unknown_wrapper_when_walked_then_children_found(self) -> None:
        file = _walk(
            _node(
                "expressionstatement",
                expression=_node("assign", 0, 5, left=_node("variable", name="x")),
            )
        )

        assert [v.name for v in file.variables] == ["x"]

    def test_given_non_node_items_when_walked_then_ignored(self) -> None:
        file = File("test.php")

        consume(file, [None, 42, "text", {"no_kind": True}, _node("class", 0, 5, name="A")])

        assert [c.name for c in file.classes] == ["A"]

    def test_given_node_without_range_when_walked_then_entity_has_no_range(self) -> None:
        file = _walk(_node("class", name="NoRange"))

        assert file.classes[0].range is None


class TestMalformedNodes:
    def test_given_broken_node_when_walked_then_skipped_and_siblings_kept(self) -> None:
        class _BrokenBody(dict):  # type: ignore[type-arg]
            def get(self, key: str, default: Any = None) -> Any:
                if key == "body":
                    raise KeyError(key)
                return super().get(key, default)

        file = File("test.php")
        with capture_logs() as logs:
            consume(
                file,
                [
                    _BrokenBody(kind="class", name="Broken"),
                    _node("function", 0, 10, name="survivor"),
                ],
            )

        assert [f.name for f in file.functions] == ["survivor"]
        assert any(log["event"] == "malformed_node_skipped" for log in logs)


class TestConsumeChild:
    def test_given_explicit_state_when_doc_consumed_then_state_updated(self) -> None:
        file = File("test.php")
        state = WalkState()

        consume_child(file, _node("doc", body="/** pending */"), state)
        assert state.pending_doc == "/** pending */"

        consume_child(file, _node("class", 0, 5, name="A"), state)
        assert state.pending_doc is None
        assert file.classes[0].doc == "/** pending */"

    def test_given_namespace_when_consumed_then_is_namespace(self) -> None:
        file = File("test.php")

        consume_child(file, _node("namespace", 0, 5, name="\\A\\B\\", children=[]))

        ns = file.namespaces[-1]
        assert isinstance(ns, Namespace)
        assert ns.name == "\\A\\B"
