from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .context.elements import ElementGraph
from .ir import EVENT_HANDLER, INTERNAL_PREFIX, ActionNode, ActionTree, evolve, walk


def _superseded(tree: Iterable[ActionNode]) -> Set[str]:
    dead: Set[str] = set()
    for node in walk(tree):
        targets = node.meta("supersedes") or ()
        if isinstance(targets, str):
            targets = (targets,)
        dead.update(str(target) for target in targets)
        if node.meta("_dead"):
            dead.add(node.id)
    return dead


def _public_metadata(node: ActionNode) -> Dict[str, Any]:
    return {k: v for k, v in node.metadata.items() if not str(k).startswith(INTERNAL_PREFIX)}


def _shape(node: ActionNode) -> Any:
    """Structure of a node ignoring ids and locations."""
    return (
        node.action_type,
        node.event,
        node.attribute,
        json.dumps(node.old_value, sort_keys=True, default=str),
        json.dumps(node.new_value, sort_keys=True, default=str),
        json.dumps(_public_metadata(node), sort_keys=True, default=str),
        tuple(_shape(child) for child in node.handler),
    )


def _element_key(node: ActionNode, graph: ElementGraph) -> str:
    return graph.canonical(node.element) or node.element.key()


def _prune(tree: Iterable[ActionNode], dead: Set[str], graph: ElementGraph) -> ActionTree:
    # Duplicates are only looked for among siblings; each handler body is its own scope.
    seen: Set[Tuple[str, Any]] = set()
    out: List[ActionNode] = []
    for node in tree:
        if node.id in dead:
            continue
        body = _prune(node.handler, dead, graph) if node.handler else ()
        metadata = _public_metadata(node)
        if body != node.handler or len(metadata) != len(node.metadata):
            node = evolve(node, handler=body, metadata=metadata)
        if node.action_type == EVENT_HANDLER and not node.element.is_empty():
            signature = (_element_key(node, graph), _shape(node))
            if signature in seen:
                continue
            seen.add(signature)
        out.append(node)
    return tuple(out)


def optimize(tree: Iterable[ActionNode], graph: Optional[ElementGraph] = None) -> ActionTree:
    """DELETE stage: drop dead and duplicate handlers, strip internal metadata.

    Deterministic and idempotent; the first of a set of duplicates is kept.
    """
    tree = tuple(tree)
    if graph is None:
        graph = ElementGraph()
        graph.add_all(node.element for node in walk(tree))
    return _prune(tree, _superseded(tree), graph)
