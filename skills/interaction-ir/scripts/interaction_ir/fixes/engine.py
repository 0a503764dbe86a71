from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..analysis.base import FIX_FAILED, Diagnostic, Issue
from ..ir import ActionNode, ActionTree, evolve
from .aria import AriaHiddenFocusableFixer, LiveRegionPolitenessFixer
from .base import EditKind, FixerRegistry, FixOutcome, locate
from .focus import TabIndexFixer
from .keyboard import KeyboardHandlerFixer


logger = logging.getLogger(__name__)


def default_fixers() -> FixerRegistry:
    return FixerRegistry(
        [
            KeyboardHandlerFixer(),
            TabIndexFixer(),
            LiveRegionPolitenessFixer(),
            AriaHiddenFocusableFixer(),
        ]
    )


def splice(
    tree: ActionTree, path: Sequence[int], kind: EditKind, nodes: Sequence[ActionNode]
) -> ActionTree:
    """Copy-on-write edit at ``path``; untouched subtrees are shared."""
    index = path[0]
    if len(path) > 1:
        parent = tree[index]
        body = splice(parent.handler, path[1:], kind, nodes)
        return tree[:index] + (evolve(parent, handler=body),) + tree[index + 1 :]
    if kind is EditKind.INSERT_AFTER:
        return tree[: index + 1] + tuple(nodes) + tree[index + 1 :]
    if kind is EditKind.REPLACE:
        return tree[:index] + tuple(nodes) + tree[index + 1 :]
    return tree[:index] + tree[index + 1 :]


@dataclass(frozen=True)
class FixBatch:
    tree: ActionTree
    outcomes: Tuple[FixOutcome, ...]

    @property
    def applied(self) -> List[FixOutcome]:
        return [outcome for outcome in self.outcomes if outcome.applied]

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return [outcome.diagnostic for outcome in self.outcomes if outcome.diagnostic is not None]


class FixEngine:
    def __init__(self, registry: Optional[FixerRegistry] = None) -> None:
        self.registry = registry if registry is not None else default_fixers()

    def _failed(self, tree: ActionTree, issue: Issue, fixer: str, message: str) -> FixOutcome:
        logger.info("fix for %s not applied: %s", issue.id, message)
        return FixOutcome(
            tree=tree,
            applied=False,
            issue=issue,
            fixer=fixer,
            diagnostic=Diagnostic(kind=FIX_FAILED, source=fixer, message=message, file=issue.location.file),
        )

    def apply(self, tree: ActionTree, issue: Issue) -> FixOutcome:
        tree = tuple(tree)
        fixer = self.registry.select(issue)
        if fixer is None:
            return FixOutcome(tree=tree, applied=False, issue=issue)
        path = locate(tree, issue.anchor.id)
        if path is None:
            return self._failed(tree, issue, fixer.id, f"anchor {issue.anchor.id} is no longer in the tree")
        try:
            nodes = list(fixer.fix(tree, issue))
        except Exception as exc:
            logger.debug("fixer %s raised", fixer.id, exc_info=True)
            return self._failed(tree, issue, fixer.id, f"{type(exc).__name__}: {exc}")
        if fixer.kind is not EditKind.DELETE and not nodes:
            return self._failed(tree, issue, fixer.id, f"{fixer.kind.value} produced no nodes")
        if not all(isinstance(node, ActionNode) for node in nodes):
            return self._failed(tree, issue, fixer.id, "fixer returned something other than ActionNodes")
        return FixOutcome(
            tree=splice(tree, path, fixer.kind, nodes),
            applied=True,
            issue=issue,
            fixer=fixer.id,
        )

    def apply_all(self, tree: ActionTree, issues: Iterable[Issue]) -> FixBatch:
        current = tuple(tree)
        outcomes: List[FixOutcome] = []
        for issue in issues:
            # Positions are looked up again on every pass since earlier edits shift them.
            outcome = self.apply(current, issue)
            outcomes.append(outcome)
            current = outcome.tree
        return FixBatch(tree=current, outcomes=tuple(outcomes))
