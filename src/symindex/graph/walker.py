"""Tree walker: turns a kind-tagged AST into symbol graph entities.

The input is a tree of mappings produced by an external parser. Every
node carrying a string ``kind`` is classified through ``_HANDLERS``; kinds
without a handler fall back to generic recursion over the node's fields,
so declarations nested in constructs the walker does not know about are
still found.

The pending documentation comment is walker state, threaded through the
recursion in a :class:`WalkState` that lives as long as the walk of one
scope body. At most one doc is pending: a second doc replaces the first,
and any other tagged node consumes it.

A malformed node is logged and skipped; the rest of the file is still
walked.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from symindex.graph.models import (
    Block,
    ClassEntity,
    ExternalReference,
    FunctionEntity,
    Namespace,
    Scope,
    SourceRange,
    Variable,
)

logger = structlog.get_logger()

DOC_KINDS = frozenset({"doc", "comment"})


@dataclass
class WalkState:
    """Per-scope walk accumulator."""

    pending_doc: str | None = None


def consume(scope: Scope, ast: Any, state: WalkState | None = None) -> None:
    """Walk a node or a sequence of nodes into ``scope``."""
    if state is None:
        state = WalkState()
    if _is_sequence(ast):
        for item in ast:
            if _is_node(item):
                _consume_guarded(scope, item, state)
    elif _is_node(ast):
        _consume_guarded(scope, ast, state)


def consume_child(scope: Scope, node: Mapping[str, Any], state: WalkState | None = None) -> None:
    """Classify one tagged node and populate ``scope`` accordingly."""
    if state is None:
        state = WalkState()
    kind = node.get("kind")
    if not isinstance(kind, str):
        return

    if kind in DOC_KINDS:
        text = _doc_text(node)
        if text is not None:
            state.pending_doc = text
        return

    doc, state.pending_doc = state.pending_doc, None
    handler = _HANDLERS.get(kind, _consume_generic)
    handler(scope, node, doc, state)


def _consume_guarded(scope: Scope, node: Mapping[str, Any], state: WalkState) -> None:
    try:
        consume_child(scope, node, state)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(
            "malformed_node_skipped",
            kind=node.get("kind"),
            range=node.get("range"),
            error=str(e),
        )


def walk_body(scope: Scope, body: Any) -> None:
    """Walk the body of a freshly created scope with its own doc state."""
    consume(scope, body, WalkState())


# ---------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------

Handler = Callable[[Scope, Mapping[str, Any], "str | None", WalkState], None]


def _consume_class(scope: Scope, node: Mapping[str, Any], doc: str | None, _state: WalkState) -> None:
    cls = ClassEntity(
        scope,
        name=_name_of(node),
        source_range=SourceRange.from_node(node),
        doc=doc,
    )
    scope.classes.append(cls)  # type: ignore[union-attr]
    if not isinstance(scope, Namespace):
        _enclosing_namespace(scope).classes.append(cls)  # type: ignore[union-attr]
    walk_body(cls, node.get("body"))


def _consume_namespace(
    scope: Scope, node: Mapping[str, Any], doc: str | None, _state: WalkState
) -> None:
    # Namespaces are always owned by the file, whatever statement holds them.
    file = scope.get_file()
    if file is None:
        raise ValueError("namespace outside of a file")
    ns = Namespace(
        file,
        name=_name_of(node) or "",
        source_range=SourceRange.from_node(node),
        doc=doc,
    )
    file.namespaces.append(ns)
    walk_body(ns, node.get("children"))


def _consume_include(
    scope: Scope, node: Mapping[str, Any], doc: str | None, _state: WalkState
) -> None:
    file = scope.get_file()
    ext = ExternalReference(
        scope,
        target=_include_target(node.get("target")),
        once=bool(node.get("once", False)),
        require=bool(node.get("require", False)),
        source_range=SourceRange.from_node(node),
        doc=doc,
    )
    if file is not None:
        file.externals.append(ext)


def _consume_if(scope: Scope, node: Mapping[str, Any], _doc: str | None, _state: WalkState) -> None:
    for branch in (node.get("body"), node.get("alternate")):
        if branch:
            _add_block(scope, branch)


def _consume_try(scope: Scope, node: Mapping[str, Any], _doc: str | None, _state: WalkState) -> None:
    if node.get("body"):
        _add_block(scope, node["body"])
    catches = node.get("catches")
    if _is_sequence(catches):
        for clause in catches:
            if isinstance(clause, Mapping) and clause.get("body"):
                _add_block(scope, clause["body"])
    finalizer = node.get("always") or node.get("allways")
    if finalizer:
        _add_block(scope, finalizer)


def _consume_function(
    scope: Scope, node: Mapping[str, Any], doc: str | None, state: WalkState
) -> None:
    is_method = node.get("kind") == "method"
    if is_method and not isinstance(scope, ClassEntity):
        # Interface and trait members are not indexed
        _consume_generic(scope, node, doc, state)
        return
    fn = FunctionEntity(
        scope,
        name=_name_of(node),
        source_range=SourceRange.from_node(node),
        doc=doc,
        is_method=is_method,
    )
    scope.functions.append(fn)  # type: ignore[union-attr]
    if not is_method and not isinstance(scope, Namespace):
        _enclosing_namespace(scope).functions.append(fn)  # type: ignore[union-attr]
    walk_body(fn, node.get("body"))


def _consume_assign(
    scope: Scope, node: Mapping[str, Any], doc: str | None, state: WalkState
) -> None:
    left = node.get("left")
    if not (isinstance(left, Mapping) and left.get("kind") == "variable"):
        _consume_generic(scope, node, doc, state)
        return
    # TODO: capture variables declared by global and static statements
    var = Variable(
        scope,
        name=_name_of(left),
        source_range=SourceRange.from_node(node),
        doc=doc,
    )
    scope.variables.append(var)  # type: ignore[union-attr]


def _consume_generic(
    scope: Scope, node: Mapping[str, Any], _doc: str | None, state: WalkState
) -> None:
    for key, value in node.items():
        if key == "kind":
            continue
        if _is_sequence(value):
            consume(scope, value, state)
        elif _is_node(value):
            _consume_guarded(scope, value, state)


_HANDLERS: dict[str, Handler] = {
    "class": _consume_class,
    "namespace": _consume_namespace,
    "include": _consume_include,
    "if": _consume_if,
    "try": _consume_try,
    "function": _consume_function,
    "method": _consume_function,
    "assign": _consume_assign,
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def _add_block(scope: Scope, body: Any) -> Block:
    source_range = SourceRange.from_node(body) if isinstance(body, Mapping) else None
    block = Block(scope, source_range=source_range)
    scope.blocks.append(block)  # type: ignore[union-attr]
    walk_body(block, body)
    return block


def _enclosing_namespace(scope: Scope) -> Namespace:
    ns = scope.get_namespace()
    if ns is None:
        raise ValueError(f"{scope!r} has no enclosing namespace")
    return ns


def _is_node(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("kind"), str)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _name_of(node: Mapping[str, Any]) -> str | None:
    name = node.get("name")
    if isinstance(name, str):
        return name
    if isinstance(name, Mapping):
        inner = name.get("name")
        if isinstance(inner, str):
            return inner
    return None


def _doc_text(node: Mapping[str, Any]) -> str | None:
    """Text of a documentation node; plain comments return ``None``."""
    if node.get("kind") == "comment" and not node.get("isDoc"):
        text = node.get("value") or node.get("body")
        if not (isinstance(text, str) and text.startswith("/**")):
            return None
    for key in ("body", "value"):
        text = node.get(key)
        if isinstance(text, str):
            return text
    lines = node.get("lines")
    if _is_sequence(lines):
        return "\n".join(str(line) for line in lines)
    return None


def _include_target(target: Any) -> Any:
    """Literal path of an include target, else the target node itself."""
    if isinstance(target, str):
        return target
    if isinstance(target, Mapping) and target.get("kind") == "string":
        value = target.get("value")
        if isinstance(value, str):
            return value
    return target
