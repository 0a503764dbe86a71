import os
import sys
import unittest

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from interaction_ir.analysis import (
    ANALYZER_FAILED,
    AnalysisEngine,
    Analyzer,
    AnalyzerRegistry,
    Severity,
    default_analyzers,
)
from interaction_ir.analysis.keyboard import MouseOnlyClickAnalyzer
from interaction_ir.context import ContextSnapshot
from interaction_ir.evidence import ConfidenceLevel, NullClassifier
from interaction_ir.ir import ActionNode, ElementRef, SourceLocation, node_id


def make(action_type, line, *, file="app.js", body=(), binding=None, selector=None, el_id=None, **fields):
    return ActionNode(
        id=node_id(action_type, file, line, 1),
        action_type=action_type,
        element=ElementRef(binding=binding, selector=selector, id=el_id),
        location=SourceLocation(file, line, 1),
        handler=tuple(body),
        **fields,
    )


def types_of(result):
    return [issue.issue_type for issue in result.issues]


class TestKeyboardAnalyzers(unittest.TestCase):
    def setUp(self):
        self.engine = AnalysisEngine()

    def test_tab_trap_without_escape(self):
        trap = make(
            "eventHandler", 1, event="keydown", selector="#dialog",
            metadata={"keys": ["Tab"], "preventDefault": True},
        )
        result = self.engine.run((trap,))
        self.assertEqual(types_of(result), ["keyboard-trap"])
        issue = result.issues[0]
        self.assertIs(issue.severity, Severity.ERROR)
        self.assertEqual(list(issue.wcag), ["2.1.2"])

    def test_tab_trap_with_escape_exit(self):
        trap = make(
            "eventHandler", 1, event="keydown", selector="#dialog",
            metadata={"keys": ["Tab"], "preventDefault": True},
        )
        same_element = make("eventHandler", 2, event="keyup", el_id="dialog", metadata={"keys": ["Escape"]})
        on_document = make("eventHandler", 2, event="keydown", binding="document", metadata={"keys": ["Esc"]})
        both_keys = make(
            "eventHandler", 1, event="keydown", selector="#dialog",
            metadata={"keys": ["Tab", "Escape"], "preventDefault": True},
        )
        self.assertEqual(types_of(self.engine.run((trap, same_element))), [])
        self.assertEqual(types_of(self.engine.run((trap, on_document))), [])
        self.assertEqual(types_of(self.engine.run((both_keys,))), [])

    def test_tab_handler_that_keeps_default_is_not_a_trap(self):
        tree = (make("eventHandler", 1, event="keydown", selector="#menu", metadata={"keys": ["Tab"]}),)
        self.assertEqual(types_of(self.engine.run(tree)), [])

    def test_tab_trap_escape_in_other_file(self):
        trap = make(
            "eventHandler", 1, file="a.js", event="keydown", selector="#dialog",
            metadata={"keys": ["Tab"], "preventDefault": True},
        )
        escape = make("eventHandler", 1, file="b.js", event="keydown", el_id="dialog", metadata={"keys": ["Escape"]})
        ctx = ContextSnapshot.from_trees({"a.js": (trap,), "b.js": (escape,)})
        self.assertEqual(types_of(self.engine.run((trap,), ctx)), [])
        self.assertEqual(types_of(self.engine.run((trap,))), ["keyboard-trap"])

    def test_click_without_keyboard_handler(self):
        tree = (make("eventHandler", 1, event="click", binding="submitButton", selector="#submit"),)
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["mouse-only-click"])
        issue = result.issues[0]
        self.assertEqual(issue.severity, Severity.ERROR)
        self.assertEqual(issue.wcag, ("2.1.1",))
        self.assertEqual(issue.confidence, ConfidenceLevel.HIGH)
        self.assertEqual(issue.id, "mouse-only-click@eventHandler:app.js#L1:1")

    def test_keyboard_handler_on_alias_counts(self):
        tree = (
            make("eventHandler", 1, event="click", binding="submitButton", selector="#submit"),
            make("eventHandler", 9, event="keydown", el_id="submit"),
        )
        self.assertEqual(types_of(self.engine.run(tree)), [])

    def test_cross_file_keyboard_handler(self):
        click = make("eventHandler", 1, event="click", file="a.js", selector="#E", binding="submitButton")
        key = make("eventHandler", 2, event="keydown", file="b.js", selector="#E", binding="btn")
        file_only = ContextSnapshot.from_trees({"a.js": (click,)}).with_ceiling(ConfidenceLevel.MEDIUM)
        result = self.engine.run((click,), file_only)
        self.assertEqual(types_of(result), ["mouse-only-click"])
        self.assertEqual(result.issues[0].confidence, ConfidenceLevel.MEDIUM)

        full = ContextSnapshot.from_trees({"a.js": (click,), "b.js": (key,)}).with_ceiling(ConfidenceLevel.HIGH)
        self.assertEqual(types_of(self.engine.run((click,), full)), [])

    def test_single_letter_shortcut(self):
        tree = (
            make("eventHandler", 1, event="keydown", binding="document", metadata={"keys": ["s"]}),
            make("eventHandler", 2, event="keydown", binding="document", metadata={"keys": ["s"], "modifiers": ["ctrl"]}),
            make("eventHandler", 3, event="keydown", selector="#search", metadata={"keys": ["/"]}),
            make("eventHandler", 4, event="keyup", binding="window", metadata={"keys": ["Escape"]}),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["single-letter-shortcut"])
        self.assertEqual(result.issues[0].anchor.location.line, 1)
        self.assertEqual(result.issues[0].severity, Severity.WARNING)


class TestFocusAnalyzers(unittest.TestCase):
    def setUp(self):
        self.engine = AnalysisEngine()

    def test_positive_tabindex_only_for_values_above_zero(self):
        tree = (
            make("tabIndexChange", 1, selector=".a", new_value=5),
            make("tabIndexChange", 2, selector=".b", new_value=0),
            make("tabIndexChange", 3, selector=".c", new_value=-1),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["positive-tabindex"])
        self.assertEqual(result.issues[0].anchor.element.selector, ".a")
        self.assertEqual(result.issues[0].wcag, ("2.4.3",))

    def test_duplicate_positive_tabindex(self):
        tree = (
            make("tabIndexChange", 1, selector=".a", new_value="2"),
            make("tabIndexChange", 2, selector=".b", new_value=2),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["duplicate-tabindex", "positive-tabindex", "positive-tabindex"])
        duplicate = result.by_type("duplicate-tabindex")[0]
        self.assertEqual(duplicate.anchor.element.selector, ".b")
        self.assertEqual(duplicate.related[0].element.selector, ".a")

    def test_standalone_blur(self):
        lonely = (make("focusChange", 1, selector="#field", metadata={"method": "blur"}),)
        result = self.engine.run(lonely)
        self.assertEqual(types_of(result), ["standalone-blur"])
        self.assertEqual(result.issues[0].severity, Severity.INFO)
        paired = lonely + (make("focusChange", 2, selector="#next"),)
        self.assertEqual(types_of(self.engine.run(paired)), [])

    def test_removal_without_focus_management(self):
        removal = make("domMutation", 1, selector="#row", metadata={"operation": "remove"})
        self.assertEqual(types_of(self.engine.run((removal,))), ["removal-without-focus-management"])
        guarded = (
            make("domMutation", 1, selector="#row", metadata={"operation": "remove"}),
            make("domMutation", 2, binding="document.activeElement", metadata={"operation": "read"}),
        )
        self.assertEqual(types_of(self.engine.run(guarded)), [])

    def test_dialog_close_without_focus_restoration(self):
        tree = (make("ariaStateChange", 1, selector="#settings-modal", attribute="aria-hidden", new_value="true"),)
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["focus-restoration-missing"])
        self.assertEqual(result.issues[0].confidence, ConfidenceLevel.LOW)
        restored = tree + (make("focusChange", 2, selector="#open-settings"),)
        self.assertEqual(types_of(self.engine.run(restored)), [])

    def test_null_classifier_disables_heuristics(self):
        tree = (make("ariaStateChange", 1, selector="#settings-modal", attribute="aria-hidden", new_value="true"),)
        snapshot = ContextSnapshot.for_tree(tree, classifier=NullClassifier())
        self.assertEqual(types_of(self.engine.run(tree, snapshot)), [])


class TestAriaAnalyzers(unittest.TestCase):
    def setUp(self):
        self.engine = AnalysisEngine()

    def test_static_aria_state(self):
        static = (make("ariaStateChange", 1, selector="#menu", attribute="aria-expanded", new_value="false"),)
        result = self.engine.run(static)
        self.assertEqual(types_of(result), ["static-aria-state"])
        toggled = static + (
            make(
                "eventHandler",
                2,
                event="click",
                selector="#menu",
                body=[make("ariaStateChange", 3, selector="#menu", attribute="aria-expanded", new_value="true")],
            ),
            make("eventHandler", 4, event="keydown", selector="#menu"),
        )
        self.assertEqual(types_of(self.engine.run(toggled)), [])

    def test_assertive_live_region(self):
        tree = (make("ariaStateChange", 1, selector="#status", attribute="aria-live", new_value="assertive"),)
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["assertive-live-region"])
        self.assertEqual(result.issues[0].severity, Severity.INFO)
        self.assertEqual(result.issues[0].wcag, ("4.1.3",))

    def test_aria_hidden_on_focusable_element(self):
        tree = (
            make("tabIndexChange", 1, selector="#card", new_value=0),
            make("ariaStateChange", 2, selector="#card", attribute="aria-hidden", new_value=True),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["aria-hidden-focusable"])
        self.assertEqual(result.issues[0].related[0].action_type, "tabIndexChange")

    def test_missing_aria_connection(self):
        tree = (
            make("ariaStateChange", 1, selector="#toggle", attribute="aria-controls", new_value="panel"),
            make("ariaStateChange", 2, selector="#toggle", attribute="aria-describedby", new_value="hint"),
            make("domMutation", 3, el_id="hint", metadata={"operation": "create"}),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["missing-aria-connection"])
        self.assertIn("'panel'", result.issues[0].message)


class TestTimingAndContextChange(unittest.TestCase):
    def setUp(self):
        self.engine = AnalysisEngine()

    def test_interval_without_clear(self):
        tree = (make("timing", 1, binding="ticker", metadata={"method": "setInterval", "delay": 3000}),)
        self.assertEqual(types_of(self.engine.run(tree)), ["uncontrolled-auto-update"])
        cleared = tree + (make("timing", 2, binding="ticker", metadata={"method": "clearInterval"}),)
        self.assertEqual(types_of(self.engine.run(cleared)), [])

    def test_long_timeout_with_navigation(self):
        navigate = make("navigation", 2, metadata={"method": "location.assign"})
        tree = (make("timing", 1, binding="redirect", body=[navigate], metadata={"method": "setTimeout", "delay": 10000}),)
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["unannounced-timeout"])
        self.assertEqual(result.issues[0].wcag, ("2.2.1",))
        short = (make("timing", 1, binding="redirect", body=[navigate], metadata={"method": "setTimeout", "delay": 200}),)
        self.assertEqual(types_of(self.engine.run(short)), [])

    def test_session_timeout_is_heuristic(self):
        tree = (make("timing", 1, binding="sessionTimer", metadata={"method": "setTimeout", "delay": 900000}),)
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["session-timeout"])
        self.assertEqual(result.issues[0].confidence, ConfidenceLevel.LOW)
        self.assertEqual(types_of(self.engine.run(tree, min_confidence=ConfidenceLevel.MEDIUM)), [])

    def test_navigation_in_change_and_focus_handlers(self):
        tree = (
            make("eventHandler", 1, event="change", selector="#country", body=[make("navigation", 2)]),
            make("eventHandler", 3, event="focus", selector="#promo", body=[make("navigation", 4)]),
            make("eventHandler", 5, event="click", selector="#go", body=[make("navigation", 6)]),
            make("eventHandler", 7, event="keydown", selector="#go"),
        )
        result = self.engine.run(tree)
        self.assertEqual(types_of(result), ["unexpected-navigation", "unexpected-navigation"])
        self.assertEqual([issue.wcag for issue in result.issues], [("3.2.2",), ("3.2.1",)])
        self.assertEqual(result.issues[0].related[0].element.selector, "#country")


class ExplodingAnalyzer(Analyzer):
    id = "exploding"
    issue_types = ("never",)

    def analyze(self, tree, ctx):
        raise RuntimeError("boom")


class TestAnalysisEngine(unittest.TestCase):
    def test_results_are_sorted_and_deterministic(self):
        tree = (
            make("ariaStateChange", 1, selector="#status", attribute="aria-live", new_value="assertive"),
            make("tabIndexChange", 2, selector=".a", new_value=3),
            make("eventHandler", 3, event="click", binding="open"),
        )
        engine = AnalysisEngine()
        first = engine.run(tree)
        second = engine.run(tree)
        self.assertEqual(first.issues, second.issues)
        self.assertEqual([issue.severity for issue in first.issues], [Severity.ERROR, Severity.WARNING, Severity.INFO])

    def test_analyzer_failure_becomes_diagnostic(self):
        registry = AnalyzerRegistry([ExplodingAnalyzer(), MouseOnlyClickAnalyzer()])
        tree = (make("eventHandler", 1, event="click", binding="open"),)
        result = AnalysisEngine(registry).run(tree)
        self.assertEqual(types_of(result), ["mouse-only-click"])
        self.assertEqual(len(result.diagnostics), 1)
        self.assertEqual(result.diagnostics[0].kind, ANALYZER_FAILED)
        self.assertEqual(result.diagnostics[0].source, "exploding")

    def test_registry_rejects_duplicate_ids(self):
        registry = default_analyzers()
        with self.assertRaises(ValueError):
            registry.register(MouseOnlyClickAnalyzer())
        self.assertIs(registry.for_issue_type("duplicate-tabindex"), registry.get("tabindex"))
        self.assertIn("session-timeout", registry.issue_types())

    def test_confidence_hint_caps_issue(self):
        tree = (make("eventHandler", 1, event="click", binding="open", metadata={"confidence": "low"}),)
        result = AnalysisEngine().run(tree)
        self.assertEqual(result.issues[0].confidence, ConfidenceLevel.LOW)
        filtered = AnalysisEngine().run(tree, min_confidence=ConfidenceLevel.HIGH)
        self.assertEqual(filtered.issues, ())
        self.assertEqual(filtered.filtered, 1)


if __name__ == "__main__":
    unittest.main()
