from __future__ import annotations

from typing import List, Optional

from ..ir import DOM_MUTATION, NAVIGATION, TIMING, ActionNode, ActionTree, walk
from .base import Analyzer, Issue, Severity

SIGNIFICANT_DELAY_MS = 5000
MAJOR_DOM_OPS = {"remove", "removechild", "replacechildren", "innerhtml", "outerhtml", "textcontent"}


def timer_kind(node: ActionNode) -> str:
    if node.action_type != TIMING:
        return ""
    raw = str(node.meta("method") or node.meta("kind") or "").lower()
    if raw.startswith("set"):
        raw = raw[3:]
    return raw


def delay_ms(node: ActionNode) -> Optional[int]:
    raw = node.meta("delay")
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _major_change(node: ActionNode) -> str:
    for child in walk(node.handler):
        if child.action_type == NAVIGATION:
            return "navigation"
        if child.action_type == DOM_MUTATION and str(child.meta("operation") or "").lower() in MAJOR_DOM_OPS:
            return "major DOM changes"
    return ""


class TimingAnalyzer(Analyzer):
    id = "timing"
    wcag = ("2.2.1", "2.2.2")
    issue_types = ("uncontrolled-auto-update", "unannounced-timeout", "session-timeout")

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        for node in walk(tree):
            kind = timer_kind(node)
            if kind == "interval":
                if not self._cleared(node, ctx):
                    issues.append(
                        self.issue(
                            "uncontrolled-auto-update",
                            node,
                            "setInterval without clearInterval; auto-updating content cannot be "
                            "paused or stopped by the user",
                            ctx,
                            severity=Severity.WARNING,
                            wcag=("2.2.2",),
                        )
                    )
            elif kind == "timeout":
                delay = delay_ms(node)
                if delay is None or delay < SIGNIFICANT_DELAY_MS:
                    continue
                change = _major_change(node)
                if change:
                    issues.append(
                        self.issue(
                            "unannounced-timeout",
                            node,
                            f"setTimeout with {delay}ms delay performs {change} without warning the user",
                            ctx,
                            severity=Severity.WARNING,
                            wcag=("2.2.1",),
                        )
                    )
                    continue
                session = ctx.classifier.matches(
                    "session", (node.element.binding, node.element.selector, node.meta("name"))
                )
                if session is not None:
                    issues.append(
                        self.issue(
                            "session-timeout",
                            node,
                            f"timer {node.element.label()} looks like a session limit ({session.matched}); "
                            "warn users and let them extend it",
                            ctx,
                            severity=Severity.WARNING,
                            wcag=("2.2.1",),
                            heuristic=True,
                        )
                    )
        return issues

    @staticmethod
    def _cleared(node: ActionNode, ctx) -> bool:
        if node.element.is_empty():
            return False
        for peer in ctx.nodes_for_element(ctx.canonical(node.element)):
            if timer_kind(peer) == "clearinterval" or (
                peer.action_type == TIMING and str(peer.meta("operation") or "").lower() == "clear"
            ):
                return True
        return False
