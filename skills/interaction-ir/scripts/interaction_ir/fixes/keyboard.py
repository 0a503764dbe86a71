from __future__ import annotations

from typing import List

from ..analysis.base import Issue
from ..ir import EVENT_HANDLER, ActionNode, ActionTree
from .base import EditKind, Fixer, current_anchor, reidentify

ACTIVATION_KEYS = ["Enter", " "]


class KeyboardHandlerFixer(Fixer):
    """Adds a keydown handler that mirrors the click handler for Enter and Space."""

    id = "keyboard-handler"
    issue_types = ("mouse-only-click",)
    kind = EditKind.INSERT_AFTER

    def fix(self, tree: ActionTree, issue: Issue) -> List[ActionNode]:
        click = current_anchor(tree, issue)
        suffix = "~keydown"
        body = tuple(reidentify(child, suffix) for child in click.handler)
        metadata = {
            "keys": list(ACTIVATION_KEYS),
            "wcag": ["2.1.1"],
            "fixedBy": self.id,
        }
        language = click.meta("language")
        if language:
            metadata["language"] = language
        return [
            ActionNode(
                id=f"{click.id}{suffix}",
                action_type=EVENT_HANDLER,
                element=click.element,
                location=click.location,
                event="keydown",
                handler=body,
                metadata=metadata,
            )
        ]
