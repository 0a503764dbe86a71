from __future__ import annotations

from typing import Dict, List, Set, Tuple

from ..context.elements import alias_keys
from ..ir import ARIA_STATE_CHANGE, TAB_INDEX_CHANGE, ActionNode, ActionTree, walk, walk_with_parent
from .base import Analyzer, Issue, Severity
from .focus import focus_method, tabindex_value

STATE_ATTRIBUTES = ("aria-expanded", "aria-pressed", "aria-checked", "aria-selected")
ID_REFERENCE_ATTRIBUTES = (
    "aria-controls",
    "aria-labelledby",
    "aria-describedby",
    "aria-owns",
    "aria-activedescendant",
)


def _is_true(value) -> bool:
    return value is True or str(value).strip().lower() == "true"


def _tabbable(node: ActionNode) -> bool:
    if node.action_type != TAB_INDEX_CHANGE:
        return False
    value = tabindex_value(node.new_value)
    return value is not None and value >= 0


class AriaStateAnalyzer(Analyzer):
    id = "aria-state"
    wcag = ("4.1.2", "4.1.3")
    issue_types = ("static-aria-state", "assertive-live-region", "aria-hidden-focusable")

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        counts: Dict[Tuple[str, str], int] = {}
        for node in ctx.nodes():
            if node.action_type == ARIA_STATE_CHANGE and node.attribute in STATE_ATTRIBUTES:
                key = (ctx.canonical(node.element) or node.id, node.attribute)
                counts[key] = counts.get(key, 0) + 1

        for node, parent in walk_with_parent(tree):
            if node.action_type != ARIA_STATE_CHANGE:
                continue
            if node.attribute in STATE_ATTRIBUTES and parent is None:
                key = (ctx.canonical(node.element) or node.id, node.attribute)
                if counts.get(key, 0) <= 1:
                    issues.append(
                        self.issue(
                            "static-aria-state",
                            node,
                            f"{node.attribute} on {node.element.label()} is set to "
                            f"{node.new_value!r} but never updated; it should follow the widget state",
                            ctx,
                            severity=Severity.WARNING,
                            wcag=("4.1.2",),
                        )
                    )
            elif node.attribute == "aria-live" and str(node.new_value).lower() == "assertive":
                issues.append(
                    self.issue(
                        "assertive-live-region",
                        node,
                        f'aria-live="assertive" on {node.element.label()} interrupts screen readers; '
                        'use "polite" unless the update is urgent',
                        ctx,
                        severity=Severity.INFO,
                        wcag=("4.1.3",),
                    )
                )
            elif node.attribute == "aria-hidden" and _is_true(node.new_value):
                focusable = [
                    peer
                    for peer in ctx.nodes_for_element(ctx.canonical(node.element))
                    if focus_method(peer) == "focus" or _tabbable(peer)
                ]
                if focusable:
                    issues.append(
                        self.issue(
                            "aria-hidden-focusable",
                            node,
                            f'aria-hidden="true" on {node.element.label()} hides a focusable element '
                            "from assistive technology",
                            ctx,
                            severity=Severity.ERROR,
                            wcag=("4.1.2",),
                            related=focusable,
                        )
                    )
        return issues


def _known_ids(ctx) -> Set[str]:
    ids: Set[str] = set()
    for ref in ctx.graph.refs():
        for key in alias_keys(ref):
            if key.startswith("id:"):
                ids.add(key[3:])
    return ids


class MissingAriaConnectionAnalyzer(Analyzer):
    id = "missing-aria-connection"
    wcag = ("1.3.1", "4.1.2")
    issue_types = ("missing-aria-connection",)

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        known = None
        for node in walk(tree):
            if node.action_type != ARIA_STATE_CHANGE or node.attribute not in ID_REFERENCE_ATTRIBUTES:
                continue
            if not isinstance(node.new_value, str):
                continue
            if known is None:
                known = _known_ids(ctx)
            missing = [ref for ref in node.new_value.split() if ref not in known]
            if not missing:
                continue
            issues.append(
                self.issue(
                    "missing-aria-connection",
                    node,
                    f"{node.attribute} on {node.element.label()} references "
                    f"{', '.join(repr(ref) for ref in missing)} but no element with that id exists",
                    ctx,
                    severity=Severity.ERROR,
                )
            )
        return issues
