from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from ..analysis.base import Diagnostic, Issue
from ..ir import ActionNode, ActionTree, evolve


class EditKind(str, Enum):
    INSERT_AFTER = "insert-after"
    REPLACE = "replace"
    DELETE = "delete"


class Fixer:
    id: str = ""
    issue_types: Tuple[str, ...] = ()
    kind: EditKind = EditKind.REPLACE

    def can_fix(self, issue: Issue) -> bool:
        return issue.issue_type in self.issue_types

    def fix(self, tree: ActionTree, issue: Issue) -> List[ActionNode]:
        raise NotImplementedError


@dataclass(frozen=True)
class FixOutcome:
    tree: ActionTree
    applied: bool
    issue: Issue
    fixer: Optional[str] = None
    diagnostic: Optional[Diagnostic] = None


class FixerRegistry:
    """Registration order is priority: the first fixer that accepts an issue wins."""

    def __init__(self, fixers: Iterable[Fixer] = ()) -> None:
        self._fixers: List[Fixer] = []
        for fixer in fixers:
            self.register(fixer)

    def register(self, fixer: Fixer) -> None:
        if any(existing.id == fixer.id for existing in self._fixers):
            raise ValueError(f"fixer {fixer.id!r} is already registered")
        self._fixers.append(fixer)

    def select(self, issue: Issue) -> Optional[Fixer]:
        for fixer in self._fixers:
            if fixer.can_fix(issue):
                return fixer
        return None

    def __iter__(self):
        return iter(list(self._fixers))

    def __len__(self) -> int:
        return len(self._fixers)


def reidentify(node: ActionNode, suffix: str) -> ActionNode:
    """Copy a node (and its handler body) under fresh ids."""
    body = tuple(reidentify(child, suffix) for child in node.handler)
    return evolve(node, id=f"{node.id}{suffix}", handler=body)


def locate(tree: Sequence[ActionNode], node_id: str) -> Optional[List[int]]:
    """Index path to the node with ``node_id``, descending into handler bodies."""
    for index, node in enumerate(tree):
        if node.id == node_id:
            return [index]
        if node.handler:
            inner = locate(node.handler, node_id)
            if inner is not None:
                return [index] + inner
    return None


def node_at(tree: Sequence[ActionNode], path: Sequence[int]) -> ActionNode:
    node = tree[path[0]]
    for index in path[1:]:
        node = node.handler[index]
    return node


def current_anchor(tree: Sequence[ActionNode], issue: Issue) -> ActionNode:
    path = locate(tree, issue.anchor.id)
    if path is None:
        raise LookupError(f"anchor {issue.anchor.id} is not in the tree")
    return node_at(tree, path)
