from __future__ import annotations

from typing import List, Sequence

from ..ir import EVENT_HANDLER, ActionNode, ActionTree, walk
from .base import Analyzer, Issue, Severity

KEY_EVENTS = ("keydown", "keyup", "keypress")
GLOBAL_TARGETS = {"document", "window", "body", "document.body"}
MODIFIER_KEYS = {"ctrl", "control", "alt", "meta", "shift", "cmd", "command", "option"}


def is_event(node: ActionNode, events: Sequence[str]) -> bool:
    return node.action_type == EVENT_HANDLER and (node.event or "").lower() in events


def is_key_handler(node: ActionNode) -> bool:
    return is_event(node, KEY_EVENTS)


class MouseOnlyClickAnalyzer(Analyzer):
    id = "mouse-only-click"
    wcag = ("2.1.1",)
    issue_types = ("mouse-only-click",)

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        for node in walk(tree):
            if not is_event(node, ("click",)) or node.element.is_empty():
                continue
            peers = ctx.nodes_for_element(ctx.canonical(node.element))
            if any(is_key_handler(peer) for peer in peers):
                continue
            issues.append(
                self.issue(
                    "mouse-only-click",
                    node,
                    f"{node.element.label()} has a click handler but no keyboard handler; "
                    "keyboard users cannot activate it",
                    ctx,
                    severity=Severity.ERROR,
                )
            )
        return issues


def _is_global(node: ActionNode) -> bool:
    ref = node.element
    return any(value in GLOBAL_TARGETS for value in (ref.binding, ref.selector) if value)


def _single_keys(node: ActionNode) -> List[str]:
    keys = node.meta("keys") or ()
    if isinstance(keys, str):
        keys = (keys,)
    out = []
    for key in keys:
        if isinstance(key, str) and len(key) == 1 and key.isprintable() and not key.isspace():
            out.append(key)
    return out


def _has_modifier(node: ActionNode) -> bool:
    modifiers = node.meta("modifiers") or ()
    if isinstance(modifiers, str):
        modifiers = (modifiers,)
    return any(str(mod).lower() in MODIFIER_KEYS for mod in modifiers)


class SingleLetterShortcutAnalyzer(Analyzer):
    id = "single-letter-shortcut"
    wcag = ("2.1.4",)
    issue_types = ("single-letter-shortcut",)

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        for node in walk(tree):
            if not is_key_handler(node) or not _is_global(node) or _has_modifier(node):
                continue
            keys = _single_keys(node)
            if not keys:
                continue
            shown = ", ".join(repr(key) for key in keys)
            issues.append(
                self.issue(
                    "single-letter-shortcut",
                    node,
                    f"Global {node.event} shortcut on {shown} uses a single character without a modifier; "
                    "provide a way to turn it off or remap it",
                    ctx,
                    severity=Severity.WARNING,
                )
            )
        return issues


TAB_KEYS = {"tab"}
ESCAPE_KEYS = {"escape", "esc"}


def _keys(node: ActionNode) -> List[str]:
    keys = node.meta("keys") or ()
    if isinstance(keys, str):
        keys = (keys,)
    return [str(key).lower() for key in keys]


def _handles(node: ActionNode, wanted: Sequence[str]) -> bool:
    return is_key_handler(node) and any(key in wanted for key in _keys(node))


class KeyboardTrapAnalyzer(Analyzer):
    """Tab handlers that cancel the default move with no Escape way out.

    An Escape handler on the same canonical element, in the same handler, or
    on a document/window target counts as the way out.
    """

    id = "keyboard-trap"
    wcag = ("2.1.2",)
    issue_types = ("keyboard-trap",)

    def analyze(self, tree: ActionTree, ctx) -> List[Issue]:
        issues: List[Issue] = []
        global_escape = any(_handles(node, ESCAPE_KEYS) and _is_global(node) for node in ctx.nodes())
        for node in walk(tree):
            if not _handles(node, TAB_KEYS) or not node.meta("preventDefault"):
                continue
            if node.element.is_empty() or _handles(node, ESCAPE_KEYS) or global_escape:
                continue
            peers = ctx.nodes_for_element(ctx.canonical(node.element))
            if any(_handles(peer, ESCAPE_KEYS) for peer in peers):
                continue
            issues.append(
                self.issue(
                    "keyboard-trap",
                    node,
                    f"{node.element.label()} cancels Tab in its {node.event} handler and has no Escape handler; "
                    "keyboard users cannot move focus away",
                    ctx,
                    severity=Severity.ERROR,
                )
            )
        return issues
