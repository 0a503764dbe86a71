from __future__ import annotations

from typing import List

from ..analysis.base import Issue
from ..ir import ActionNode, ActionTree, evolve
from .base import EditKind, Fixer, current_anchor


class LiveRegionPolitenessFixer(Fixer):
    id = "live-region-polite"
    issue_types = ("assertive-live-region",)
    kind = EditKind.REPLACE

    def fix(self, tree: ActionTree, issue: Issue) -> List[ActionNode]:
        node = current_anchor(tree, issue)
        metadata = dict(node.metadata)
        metadata["fixedBy"] = self.id
        return [evolve(node, old_value=node.new_value, new_value="polite", metadata=metadata)]


class AriaHiddenFocusableFixer(Fixer):
    """Drops the aria-hidden="true" mutation; the element stays focusable and exposed."""

    id = "drop-aria-hidden"
    issue_types = ("aria-hidden-focusable",)
    kind = EditKind.DELETE

    def fix(self, tree: ActionTree, issue: Issue) -> List[ActionNode]:
        current_anchor(tree, issue)
        return []
