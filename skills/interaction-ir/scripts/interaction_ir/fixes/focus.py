from __future__ import annotations

from typing import List

from ..analysis.base import Issue
from ..ir import ActionNode, ActionTree, evolve
from .base import EditKind, Fixer, current_anchor


class TabIndexFixer(Fixer):
    id = "tabindex-zero"
    issue_types = ("positive-tabindex",)
    kind = EditKind.REPLACE

    def fix(self, tree: ActionTree, issue: Issue) -> List[ActionNode]:
        node = current_anchor(tree, issue)
        metadata = dict(node.metadata)
        metadata["fixedBy"] = self.id
        return [evolve(node, old_value=node.new_value, new_value=0, metadata=metadata)]
