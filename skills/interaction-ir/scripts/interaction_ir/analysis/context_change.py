from __future__ import annotations

from typing import List

from ..ir import NAVIGATION, ActionTree, walk
from .base import Analyzer, Issue, Severity

INPUT_EVENTS = ("input", "change")
FOCUS_EVENTS = ("focus", "focusin")


class ContextChangeAnalyzer(Analyzer):
    """Navigation started by input, change or focus handlers (WCAG 3.2.1 / 3.2.2)."""

    id = "context-change"
    wcag = ("3.2.1", "3.2.2")
    issue_types = ("unexpected-navigation",)

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        for handler in walk(tree):
            event = (handler.event or "").lower()
            if event in INPUT_EVENTS:
                wcag, trigger = ("3.2.2",), f"{event} handler"
            elif event in FOCUS_EVENTS:
                wcag, trigger = ("3.2.1",), "focus handler"
            else:
                continue
            for child in walk(handler.handler):
                if child.action_type != NAVIGATION:
                    continue
                method = child.meta("method") or "navigation"
                issues.append(
                    self.issue(
                        "unexpected-navigation",
                        child,
                        f"Navigation ({method}) in the {trigger} of {handler.element.label()} "
                        "changes context without an explicit user request",
                        ctx,
                        severity=Severity.WARNING,
                        wcag=wcag,
                        related=(handler,),
                    )
                )
        return issues
