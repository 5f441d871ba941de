"""Tree-sitter PHP front end.

Converts a tree-sitter-php concrete syntax tree into the kind-tagged
mapping tree consumed by :mod:`symindex.graph.walker`. Only the
constructs the walker classifies get a dedicated shape; every other named
node becomes ``{"kind": <node type>, "range": [...], "children": [...]}``
so the generic recursion still reaches declarations nested in it.

Offsets are byte offsets into the UTF-8 encoding of the source.

Usage::

    parser = TreeSitterPhpParser()
    ast = parser(source, "src/index.php")
    repo = Repository(root, parser=parser)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog
import tree_sitter
import tree_sitter_php

logger = structlog.get_logger()

Node = dict[str, Any]

_INCLUDES: dict[str, tuple[bool, bool]] = {
    # node type -> (once, require)
    "include_expression": (False, False),
    "include_once_expression": (True, False),
    "require_expression": (False, True),
    "require_once_expression": (True, True),
}

_STRING_TYPES = frozenset({"string", "encapsed_string"})
_STRING_PARTS = frozenset({"string_content", "string_value", "escape_sequence"})


class PhpSyntaxError(ValueError):
    """The source has syntax errors and the parser runs in strict mode."""

    def __init__(self, filename: str, offset: int) -> None:
        self.filename = filename
        self.offset = offset
        super().__init__(f"syntax error in {filename} at offset {offset}")


@dataclass
class TreeSitterPhpParser:
    """Callable PHP parser for :class:`symindex.index.Repository`.

    Args:
        strict: Reject sources containing syntax errors. When false, error
            nodes are walked like any other node.
    """

    strict: bool = True
    _parser: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self._parser = tree_sitter.Parser()
        self._parser.language = tree_sitter.Language(tree_sitter_php.language_php())

    def __call__(self, source: str, filename: str) -> Node:
        tree = self._parser.parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            offset = _first_error_offset(root)
            if self.strict:
                raise PhpSyntaxError(filename, offset)
            logger.debug("syntax_error_tolerated", name=filename, offset=offset)
        return {
            "kind": "program",
            "range": _range(root),
            "children": _statements(root.named_children),
        }


# ---------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------


def _statements(nodes: list[Any]) -> list[Node]:
    """Convert a statement list, grouping ``namespace X;`` with what follows."""
    result: list[Node] = []
    current: Node | None = None
    for child in nodes:
        if child.type == "namespace_definition" and child.child_by_field_name("body") is None:
            current = _namespace(child)
            result.append(current)
            continue
        if child.type == "namespace_definition":
            current = None
        converted = _convert(child)
        if current is not None:
            current["children"].append(converted)
            current["range"][1] = max(current["range"][1], child.end_byte)
        else:
            result.append(converted)
    return result


def _convert(node: Any) -> Node:
    handler = _HANDLERS.get(node.type)
    if handler is not None:
        return handler(node)
    if node.type in _INCLUDES:
        return _include(node)
    return _generic(node)


def _generic(node: Any) -> Node:
    return {
        "kind": node.type,
        "range": _range(node),
        "children": [_convert(child) for child in node.named_children],
    }


def _expression_statement(node: Any) -> Node:
    # `$x = 1;` is a statement wrapping the assignment; docs attach to the latter
    children = node.named_children
    if len(children) == 1:
        return _convert(children[0])
    return _generic(node)


def _body(node: Any, field_name: str = "body") -> Node | None:
    body = node.child_by_field_name(field_name)
    return _convert(body) if body is not None else None


def _comment(node: Any) -> Node:
    text = _text(node)
    if text.startswith("/**"):
        return {"kind": "doc", "range": _range(node), "body": text}
    return {"kind": "comment", "range": _range(node), "value": text}


def _namespace(node: Any) -> Node:
    body = node.child_by_field_name("body")
    return {
        "kind": "namespace",
        "range": _range(node),
        "name": _field_text(node, "name") or "",
        "children": _statements(body.named_children) if body is not None else [],
    }


def _declaration(kind: str) -> Any:
    def convert(node: Any) -> Node:
        return {
            "kind": kind,
            "range": _range(node),
            "name": _field_text(node, "name"),
            "body": _body(node),
        }

    return convert


def _if(node: Any) -> Node:
    alternatives = node.children_by_field_name("alternative")
    return {
        "kind": "if",
        "range": _range(node),
        "test": _body(node, "condition"),
        "body": _body(node),
        "alternate": _alternate(alternatives),
    }


def _alternate(clauses: list[Any]) -> Node | None:
    """Fold ``elseif``/``else`` clauses into nested ``if`` alternates."""
    if not clauses:
        return None
    clause, rest = clauses[0], clauses[1:]
    if clause.type == "else_if_clause":
        return {
            "kind": "if",
            "range": _range(clause),
            "test": _body(clause, "condition"),
            "body": _body(clause),
            "alternate": _alternate(rest),
        }
    return _body(clause)


def _try(node: Any) -> Node:
    catches: list[Node] = []
    always: Node | None = None
    for child in node.named_children:
        if child.type == "catch_clause":
            catches.append({"kind": "catch", "range": _range(child), "body": _body(child)})
        elif child.type == "finally_clause":
            always = _body(child)
    return {
        "kind": "try",
        "range": _range(node),
        "body": _body(node),
        "catches": catches,
        "always": always,
    }


def _include(node: Any) -> Node:
    once, require = _INCLUDES[node.type]
    target = node.named_children[0] if node.named_children else None
    while target is not None and target.type == "parenthesized_expression" and target.named_children:
        target = target.named_children[0]
    return {
        "kind": "include",
        "range": _range(node),
        "once": once,
        "require": require,
        "target": _string(target) if target is not None else None,
    }


def _string(node: Any) -> Node:
    if node.type in _STRING_TYPES and all(c.type in _STRING_PARTS for c in node.named_children):
        text = _text(node)
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
            text = text[1:-1]
        return {"kind": "string", "range": _range(node), "value": text}
    return _convert(node)


def _assign(node: Any) -> Node:
    left = node.child_by_field_name("left")
    right = node.child_by_field_name("right")
    if left is not None and left.type == "variable_name":
        converted_left: Node = {
            "kind": "variable",
            "range": _range(left),
            "name": _text(left).lstrip("$"),
        }
    else:
        converted_left = _convert(left) if left is not None else {}
    return {
        "kind": "assign",
        "range": _range(node),
        "left": converted_left,
        "right": _convert(right) if right is not None else None,
    }


_HANDLERS = {
    "comment": _comment,
    "namespace_definition": _namespace,
    "class_declaration": _declaration("class"),
    "interface_declaration": _declaration("interface"),
    "trait_declaration": _declaration("trait"),
    "function_definition": _declaration("function"),
    "method_declaration": _declaration("method"),
    "expression_statement": _expression_statement,
    "if_statement": _if,
    "try_statement": _try,
    "assignment_expression": _assign,
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def _range(node: Any) -> list[int]:
    return [node.start_byte, node.end_byte]


def _text(node: Any) -> str:
    text = node.text
    return text.decode("utf-8", errors="replace") if text is not None else ""


def _field_text(node: Any, field_name: str) -> str | None:
    child = node.child_by_field_name(field_name)
    return _text(child) if child is not None else None


def _first_error_offset(root: Any) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_byte
        stack.extend(reversed(node.children))
    return root.start_byte
