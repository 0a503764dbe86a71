from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ..ir import (
    ARIA_STATE_CHANGE,
    DOM_MUTATION,
    FOCUS_CHANGE,
    TAB_INDEX_CHANGE,
    ActionNode,
    ActionTree,
    walk,
)
from .base import Analyzer, Issue, Severity

BLUR_WINDOW = 3
REMOVAL_WINDOW = 5
REMOVAL_OPS = {"remove", "removechild", "replacechildren", "replacewith", "hide", "close"}


def tabindex_value(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def focus_method(node: ActionNode) -> str:
    if node.action_type != FOCUS_CHANGE:
        return ""
    return str(node.meta("method") or "focus").lower()


def _by_file(tree: ActionTree) -> Dict[str, List[ActionNode]]:
    grouped: Dict[str, List[ActionNode]] = {}
    for node in walk(tree):
        grouped.setdefault(node.location.file, []).append(node)
    return grouped


def _window(nodes: List[ActionNode], index: int, radius: int) -> List[ActionNode]:
    return nodes[max(0, index - radius) : index] + nodes[index + 1 : index + 1 + radius]


class TabIndexAnalyzer(Analyzer):
    id = "tabindex"
    wcag = ("2.4.3",)
    issue_types = ("positive-tabindex", "duplicate-tabindex")

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        positives: Dict[int, List[Tuple[str, ActionNode]]] = {}
        for node in walk(tree):
            if node.action_type != TAB_INDEX_CHANGE:
                continue
            value = tabindex_value(node.new_value)
            if value is None or value <= 0:
                continue
            issues.append(
                self.issue(
                    "positive-tabindex",
                    node,
                    f"tabindex={value} on {node.element.label()} overrides the natural focus order; "
                    "use 0 and order the DOM instead",
                    ctx,
                    severity=Severity.WARNING,
                )
            )
            canonical = ctx.canonical(node.element) or node.id
            positives.setdefault(value, []).append((canonical, node))
        for value in sorted(positives):
            entries = positives[value]
            elements = {canonical for canonical, _ in entries}
            if len(elements) < 2:
                continue
            ordered = sorted(entries, key=lambda item: (item[1].location.sort_key(), item[1].id))
            first_canonical, first = ordered[0]
            for canonical, node in ordered[1:]:
                if canonical == first_canonical:
                    continue
                issues.append(
                    self.issue(
                        "duplicate-tabindex",
                        node,
                        f"tabindex={value} on {node.element.label()} is also used by "
                        f"{first.element.label()}; their focus order is ambiguous",
                        ctx,
                        severity=Severity.ERROR,
                        related=(first,),
                    )
                )
        return issues


def _checks_active_element(node: ActionNode) -> bool:
    ref = node.element
    texts = (ref.binding or "", ref.selector or "", str(node.meta("property") or ""))
    return any("activeElement" in text for text in texts)


class FocusManagementAnalyzer(Analyzer):
    id = "focus-management"
    wcag = ("2.4.3", "2.4.7")
    issue_types = ("standalone-blur", "removal-without-focus-management", "focus-restoration-missing")

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        for _path, nodes in sorted(_by_file(tree).items()):
            for index, node in enumerate(nodes):
                if focus_method(node) == "blur":
                    nearby = _window(nodes, index, BLUR_WINDOW)
                    if not any(focus_method(other) == "focus" for other in nearby):
                        issues.append(
                            self.issue(
                                "standalone-blur",
                                node,
                                f".blur() on {node.element.label()} removes focus without moving focus "
                                "to another element",
                                ctx,
                                severity=Severity.INFO,
                                wcag=("2.4.7",),
                            )
                        )
                    continue
                if not self._is_closing(node):
                    continue
                nearby = _window(nodes, index, REMOVAL_WINDOW)
                moves_focus = any(focus_method(other) == "focus" for other in nearby)
                dialog = ctx.classifier.matches(
                    "dialog", (node.element.binding, node.element.selector, node.element.id)
                )
                if dialog is not None:
                    if moves_focus:
                        continue
                    issues.append(
                        self.issue(
                            "focus-restoration-missing",
                            node,
                            f"{node.element.label()} looks like a dialog ({dialog.matched}) and is closed "
                            "without returning focus to the element that opened it",
                            ctx,
                            severity=Severity.WARNING,
                            wcag=("2.4.3",),
                            heuristic=True,
                        )
                    )
                    continue
                if node.action_type != DOM_MUTATION:
                    continue
                if moves_focus or any(_checks_active_element(other) for other in nearby):
                    continue
                issues.append(
                    self.issue(
                        "removal-without-focus-management",
                        node,
                        f"{node.element.label()} is removed or hidden without focus management; "
                        "focus is lost if it was inside",
                        ctx,
                        severity=Severity.WARNING,
                    )
                )
        return issues

    @staticmethod
    def _is_closing(node: ActionNode) -> bool:
        if node.action_type == DOM_MUTATION:
            return str(node.meta("operation") or "").lower() in REMOVAL_OPS
        if node.action_type == ARIA_STATE_CHANGE and node.attribute == "aria-hidden":
            return str(node.new_value).lower() == "true"
        return False
