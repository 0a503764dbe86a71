from __future__ import annotations

import json
from typing import Dict, List

from ..ir import walk


def build_element_graph(snapshot) -> Dict[str, object]:
    """Element refs, their canonical identities, and the files that mention them."""
    graph = snapshot.graph
    owners: Dict[str, set] = {}
    for path in sorted(snapshot.trees):
        for node in walk(snapshot.trees[path]):
            if not node.element.is_empty():
                owners.setdefault(node.element.key(), set()).add(node.location.file or path)

    nodes: List[Dict[str, object]] = []
    edges: List[Dict[str, object]] = []
    for canonical, refs in sorted(graph.components().items()):
        files = sorted({f for ref in refs for f in owners.get(ref.key(), ())})
        nodes.append(
            {
                "id": canonical,
                "type": "element",
                "label": refs[0].label(),
                "files": files,
            }
        )
        for ref in refs:
            ref_id = f"ref:{ref.key()}"
            nodes.append(
                {
                    "id": ref_id,
                    "type": "ref",
                    "label": ref.label(),
                    "files": sorted(owners.get(ref.key(), ())),
                }
            )
            edges.append({"source": ref_id, "target": canonical, "type": "canonical"})
    for left, right in graph.edges():
        edges.append({"source": f"ref:{left}", "target": f"ref:{right}", "type": "alias"})
    return {"directed": False, "nodes": nodes, "edges": edges}


def export_graph_json(graph: Dict[str, object]) -> str:
    return json.dumps(graph, ensure_ascii=True, indent=2)


def export_graphml(graph: Dict[str, object]) -> str:
    def esc(value: object) -> str:
        text = "" if value is None else str(value)
        return (
            text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&apos;")
        )

    keys = [
        ("n_label", "node", "label", "string"),
        ("n_type", "node", "type", "string"),
        ("n_files", "node", "files", "string"),
        ("e_type", "edge", "type", "string"),
    ]
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<graphml xmlns="http://graphml.graphdrawing.org/xmlns">',
    ]
    for key_id, scope, name, key_type in keys:
        lines.append(f'<key id="{key_id}" for="{scope}" attr.name="{name}" attr.type="{key_type}"/>')
    lines.append('<graph id="elements" edgedefault="undirected">')
    for node in graph.get("nodes", []):
        lines.append(f'<node id="{esc(node.get("id"))}">')
        lines.append(f'  <data key="n_label">{esc(node.get("label"))}</data>')
        lines.append(f'  <data key="n_type">{esc(node.get("type"))}</data>')
        files = node.get("files") or []
        if files:
            lines.append(f'  <data key="n_files">{esc(" ".join(files))}</data>')
        lines.append("</node>")
    for edge in graph.get("edges", []):
        lines.append(f'<edge source="{esc(edge.get("source"))}" target="{esc(edge.get("target"))}">')
        lines.append(f'  <data key="e_type">{esc(edge.get("type"))}</data>')
        lines.append("</edge>")
    lines.append("</graph>")
    lines.append("</graphml>")
    return "\n".join(lines)
