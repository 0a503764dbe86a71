import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from interaction_ir.errors import IRFormatError
from interaction_ir.ir import (
    ActionNode,
    ElementRef,
    SourceLocation,
    evolve,
    files_in,
    load_tree,
    node_from_json,
    node_id,
    node_to_json,
    save_tree,
    tree_from_json,
    walk,
)


SAMPLE = {
    "id": "eventHandler:app.js#L3:5",
    "actionType": "eventHandler",
    "element": {"binding": "submitButton", "selector": "#submit"},
    "event": "click",
    "handler": {
        "body": [
            {
                "actionType": "ariaStateChange",
                "element": {"id": "panel"},
                "attribute": "aria-expanded",
                "newValue": "true",
                "location": {"line": 4, "column": 7},
            }
        ]
    },
    "location": {"file": "app.js", "line": 3, "column": 5},
    "metadata": {"wcag": ["2.1.1"], "language": "javascript"},
}


class TestIRModel(unittest.TestCase):
    def test_node_from_json_reads_handler_body(self):
        node = node_from_json(SAMPLE)
        self.assertEqual(node.action_type, "eventHandler")
        self.assertEqual(node.event, "click")
        self.assertEqual(node.element, ElementRef(binding="submitButton", selector="#submit"))
        self.assertEqual(node.wcag, ("2.1.1",))
        self.assertEqual(len(node.handler), 1)
        child = node.handler[0]
        # Nested nodes inherit the parent's file and get a generated id.
        self.assertEqual(child.location.file, "app.js")
        self.assertEqual(child.id, "ariaStateChange:app.js#L4:7")

    def test_node_to_json_matches_interchange_shape(self):
        payload = node_to_json(node_from_json(SAMPLE))
        self.assertEqual(payload["actionType"], "eventHandler")
        self.assertEqual(payload["element"], {"binding": "submitButton", "selector": "#submit"})
        self.assertEqual(payload["location"], {"file": "app.js", "line": 3, "column": 5})
        self.assertEqual(payload["handler"]["body"][0]["attribute"], "aria-expanded")
        self.assertNotIn("oldValue", payload)
        self.assertEqual(node_from_json(payload), node_from_json(SAMPLE))

    def test_unknown_action_type_is_rejected(self):
        with self.assertRaises(IRFormatError):
            node_from_json({"actionType": "teleport", "location": {"file": "a.js"}})

    def test_variant_fields_are_validated(self):
        with self.assertRaises(IRFormatError):
            node_from_json({"actionType": "eventHandler", "location": {"file": "a.js"}})
        with self.assertRaises(IRFormatError):
            node_from_json(
                {"actionType": "ariaStateChange", "attribute": "class", "location": {"file": "a.js"}}
            )
        with self.assertRaises(IRFormatError):
            node_from_json({"actionType": "tabIndexChange", "location": {"file": "a.js"}})
        role = node_from_json(
            {"actionType": "ariaStateChange", "attribute": "role", "newValue": "dialog"}
        )
        self.assertEqual(role.attribute, "role")

    def test_ir_format_error_is_value_error(self):
        with self.assertRaises(ValueError):
            tree_from_json({"nodes": "nope"})

    def test_nodes_are_immutable(self):
        node = node_from_json(SAMPLE)
        with self.assertRaises(Exception):
            node.event = "keydown"
        with self.assertRaises(TypeError):
            node.metadata["wcag"] = []
        changed = evolve(node, event="keydown")
        self.assertEqual(changed.event, "keydown")
        self.assertEqual(node.event, "click")

    def test_node_id_format(self):
        self.assertEqual(node_id("focusChange", "src/a.js", 12, 4), "focusChange:src/a.js#L12:4")
        self.assertEqual(node_id("timing", "a.js", None, -1), "timing:a.js#L0:0")

    def test_walk_and_files_in(self):
        tree = tree_from_json([SAMPLE, {"actionType": "navigation", "location": {"file": "b.js", "line": 1}}])
        kinds = [node.action_type for node in walk(tree)]
        self.assertEqual(kinds, ["eventHandler", "ariaStateChange", "navigation"])
        self.assertEqual(files_in(tree), {"app.js", "b.js"})

    def test_element_ref_helpers(self):
        self.assertTrue(ElementRef().is_empty())
        ref = ElementRef(binding="btn", selector=".primary", id="save")
        self.assertEqual(ref.key(), "id=save|sel=.primary|bind=btn")
        self.assertEqual(ref.label(), ".primary")
        self.assertEqual(ElementRef(id="save").label(), "#save")

    def test_handler_list_is_stored_as_tuple(self):
        node = ActionNode(
            id="n1",
            action_type="eventHandler",
            element=ElementRef(binding="b"),
            location=SourceLocation("a.js", 1, 1),
            event="click",
            handler=[],
        )
        self.assertEqual(node.handler, ())
        self.assertEqual(hash(node), hash(evolve(node)))

    def test_save_and_load_tree(self):
        tree = tree_from_json([SAMPLE])
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "out" / "tree.air.json"
            save_tree(path, tree)
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(payload["meta"]["version"], 1)
            self.assertEqual(load_tree(path), tree)
            self.assertIsNone(load_tree(Path(tmp) / "missing.air.json"))
            broken = Path(tmp) / "broken.air.json"
            broken.write_text("{", encoding="utf-8")
            with self.assertRaises(IRFormatError):
                load_tree(broken)


if __name__ == "__main__":
    unittest.main()
