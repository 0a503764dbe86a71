import os
import sys
import unittest

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from interaction_ir.context import ElementGraph
from interaction_ir.ir import ActionNode, ElementRef, SourceLocation, node_id
from interaction_ir.optimizer import optimize


def make(action_type, line, *, file="app.js", body=(), binding=None, selector=None, el_id=None, **fields):
    return ActionNode(
        id=node_id(action_type, file, line, 1),
        action_type=action_type,
        element=ElementRef(binding=binding, selector=selector, id=el_id),
        location=SourceLocation(file, line, 1),
        handler=tuple(body),
        **fields,
    )


class TestOptimizer(unittest.TestCase):
    def setUp(self):
        self.old = make("eventHandler", 1, event="click", binding="save")
        self.tree = (
            self.old,
            make(
                "eventHandler",
                2,
                event="click",
                binding="save",
                metadata={"supersedes": [self.old.id], "_scratch": 1},
                body=[make("navigation", 3, metadata={"_origin": "inline"})],
            ),
            make("eventHandler", 4, event="keydown", selector="#save"),
            make("eventHandler", 5, event="keydown", el_id="save"),
            make("focusChange", 6, selector="#x", metadata={"_dead": True}),
            make("eventHandler", 7, event="keyup", el_id="save"),
        )

    def test_removes_superseded_dead_and_internal_data(self):
        result = optimize(self.tree)
        ids = [node.id for node in result]
        self.assertNotIn(self.old.id, ids)
        self.assertNotIn(self.tree[4].id, ids)
        replacement = result[0]
        self.assertEqual(dict(replacement.metadata), {"supersedes": [self.old.id]})
        self.assertEqual(dict(replacement.handler[0].metadata), {})

    def test_dedupes_handlers_on_the_same_element(self):
        result = optimize(self.tree)
        events = [node.event for node in result]
        # "#save" and id "save" are one element; the later keydown is a duplicate.
        self.assertEqual(events, ["click", "keydown", "keyup"])
        self.assertEqual(result[1].id, self.tree[2].id)

    def test_idempotent_and_deterministic(self):
        once = optimize(self.tree)
        self.assertEqual(optimize(once), once)
        self.assertEqual(optimize(self.tree), once)

    def test_uses_supplied_graph(self):
        tree = (
            make("eventHandler", 1, event="keydown", binding="a"),
            make("eventHandler", 2, event="keydown", binding="b"),
        )
        self.assertEqual(len(optimize(tree)), 2)
        graph = ElementGraph()
        graph.add_all([ElementRef(binding="a", selector=".same"), ElementRef(binding="b", selector=".same")])
        graph.add_all(node.element for node in tree)
        self.assertEqual(len(optimize(tree, graph)), 1)

    def test_duplicates_with_nested_handlers_are_removed_whole(self):
        first = make(
            "eventHandler", 1, event="click", binding="menu",
            body=[make("eventHandler", 2, event="keydown", binding="menu")],
        )
        second = make(
            "eventHandler", 3, event="click", binding="menu",
            body=[make("eventHandler", 4, event="keydown", binding="menu")],
        )
        result = optimize((first, second))
        self.assertEqual([node.id for node in result], [first.id])
        self.assertEqual([child.id for child in result[0].handler], [first.handler[0].id])

    def test_duplicates_inside_one_body_are_removed(self):
        outer = make(
            "eventHandler", 1, event="click", binding="menu",
            body=[
                make("eventHandler", 2, event="keydown", binding="item"),
                make("eventHandler", 3, event="keydown", binding="item"),
            ],
        )
        result = optimize((outer,))
        self.assertEqual(len(result[0].handler), 1)

    def test_handlers_with_different_bodies_are_kept(self):
        tree = (
            make("eventHandler", 1, event="click", binding="a", body=[make("navigation", 2)]),
            make("eventHandler", 3, event="click", binding="a"),
        )
        self.assertEqual(len(optimize(tree)), 2)


if __name__ == "__main__":
    unittest.main()
