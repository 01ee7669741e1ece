"""
Map a validator path back onto a node of the syntax tree.

A validator reports errors against *data*: a sequence of map keys and vector
indices from the top-level form down to the offending value.  ``resolve``
follows the same path through the position-preserving tree built by
:func:`zenlsp.reader.parse`.

The walk is best effort.  The text may have moved on since the validator ran,
so a step that finds no matching child stops at the deepest node matched so
far (``Resolution.PARTIAL``) instead of failing.  Only a mismatch on the very
first step leaves nothing to point at, in which case ``resolve`` returns None.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from zenlsp.reader import NodeKind, Position, SyntaxNode

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    EXACT = 'exact'       # every path element matched
    PARTIAL = 'partial'   # stopped at an ancestor of the intended node


@dataclass(frozen=True)
class ResolvedLocation:
    node: SyntaxNode
    status: Resolution
    matched: tuple  # the prefix of the path that was actually followed

    @property
    def start(self) -> Position:
        return self.node.start

    @property
    def end(self) -> Position:
        return self.node.end


def _top_level_form(tree: SyntaxNode) -> SyntaxNode | None:
    if tree.kind == NodeKind.DOCUMENT:
        return tree.forms[0] if tree.forms else None
    return tree


def resolve(
    tree: SyntaxNode,
    path: Sequence,
    unknown_key: bool = False,
) -> ResolvedLocation | None:
    """Return the node *path* points at in *tree*.

    With *unknown_key* the last path element names a key that the schema does
    not recognise.  There is no value to point at beyond the key itself, so
    the path is resolved to the containing map instead.
    """
    path = tuple(path)
    if unknown_key and path:
        path = path[:-1]

    node = _top_level_form(tree)
    if node is None:
        return None

    matched: list = []
    for element in path:
        child = node.unwrap().child(element)
        if child is None:
            if not matched:
                logger.debug('resolve: no top-level entry for %r', element)
                return None
            logger.debug('resolve: path %r diverges from source after %r', path, tuple(matched))
            return ResolvedLocation(node, Resolution.PARTIAL, tuple(matched))
        node = child
        matched.append(element)

    return ResolvedLocation(node, Resolution.EXACT, tuple(matched))
