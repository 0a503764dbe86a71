import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

# Add scripts/ to path to import modules
sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from interaction_ir.cli.main import build_parser, main


CLICK = {
    "actionType": "eventHandler",
    "event": "click",
    "element": {"selector": "#E", "binding": "submitButton"},
    "location": {"line": 1, "column": 1},
    "metadata": {"references": ["lib/b.air.json"]},
}
KEYDOWN = {
    "actionType": "eventHandler",
    "event": "keydown",
    "element": {"selector": "#E"},
    "location": {"line": 1, "column": 1},
}


def run_cli(*argv):
    out = io.StringIO()
    err = io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(list(argv))
    return code, out.getvalue(), err.getvalue()


class TestCli(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.repo = Path(self._tmp.name)
        (self.repo / "a.air.json").write_text(json.dumps({"nodes": [CLICK]}), encoding="utf-8")
        (self.repo / "lib").mkdir()
        (self.repo / "lib" / "b.air.json").write_text(json.dumps({"nodes": [KEYDOWN]}), encoding="utf-8")
        (self.repo / "lonely.air.json").write_text(
            json.dumps({"nodes": [dict(CLICK, metadata={})]}), encoding="utf-8"
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_parser_defaults(self):
        args = build_parser().parse_args(["analyze", "a.air.json"])
        self.assertEqual(args.repo, ".")
        self.assertEqual(args.fail_on, "none")
        self.assertIsNone(args.mode)
        self.assertEqual(args.format, "text")

    def test_no_command_prints_help(self):
        code, out, _ = run_cli()
        self.assertEqual(code, 2)
        self.assertIn("usage", out)

    def test_analyze_file_mode_json(self):
        code, out, err = run_cli("--repo", str(self.repo), "analyze", "a.air.json", "--mode", "file", "--format", "json")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["state"], "FileOnly")
        self.assertEqual(payload["confidence"], "MEDIUM")
        self.assertEqual([issue["type"] for issue in payload["issues"]], ["mouse-only-click"])
        self.assertIn("Analyzing a.air.json", err)

    def test_analyze_smart_mode_text(self):
        code, out, _ = run_cli("--repo", str(self.repo), "analyze", "a.air.json", "--mode", "smart")
        self.assertEqual(code, 0)
        self.assertIn("[SUMMARY]", out)
        self.assertIn("state=SmartComplete confidence=HIGH", out)
        self.assertIn("issues=0", out)

    def test_fail_on_error(self):
        code, _, _ = run_cli("--repo", str(self.repo), "--fail-on", "error", "analyze", "lonely.air.json")
        self.assertEqual(code, 1)
        code, _, _ = run_cli("--repo", str(self.repo), "--fail-on", "error", "analyze", "a.air.json")
        self.assertEqual(code, 0)

    def test_min_confidence_filters_file_mode(self):
        code, out, _ = run_cli(
            "--repo", str(self.repo), "analyze", "lonely.air.json",
            "--mode", "file", "--min-confidence", "HIGH", "--format", "json",
        )
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["issues"], [])

    def test_missing_document(self):
        code, out, err = run_cli("--repo", str(self.repo), "analyze", "nope.air.json")
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertIn("document not found", json.loads(err.strip().splitlines()[-1])["error"])

    def test_invalid_config(self):
        (self.repo / ".interaction-ir.json").write_text(json.dumps({"analysisMode": "bogus"}), encoding="utf-8")
        code, _, err = run_cli("--repo", str(self.repo), "analyze", "a.air.json")
        self.assertEqual(code, 2)
        self.assertIn("analysisMode", err)

    def test_config_file_sets_mode(self):
        (self.repo / ".interaction-ir.json").write_text(json.dumps({"analysisMode": "project"}), encoding="utf-8")
        code, out, _ = run_cli("--repo", str(self.repo), "analyze", "lonely.air.json", "--format", "json")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["state"], "ProjectComplete")

    def test_fix_prints_and_writes(self):
        code, out, err = run_cli("--repo", str(self.repo), "fix", "lonely.air.json", "--mode", "file")
        self.assertEqual(code, 0)
        nodes = json.loads(out)["nodes"]
        self.assertEqual([node["event"] for node in nodes], ["click", "keydown"])
        self.assertIn("Applied 1 of 1 fixes", err)

        code, _, _ = run_cli("--repo", str(self.repo), "fix", "lonely.air.json", "--mode", "file", "--write")
        self.assertEqual(code, 0)
        code, out, _ = run_cli(
            "--repo", str(self.repo), "analyze", "lonely.air.json", "--mode", "file", "--format", "json"
        )
        self.assertEqual(json.loads(out)["issues"], [])

    def test_out_writes_artifacts(self):
        out_dir = self.repo / "artifacts"
        cwd = os.getcwd()
        os.chdir(self.repo)
        try:
            code, _, err = run_cli("--repo", str(self.repo), "--out", str(out_dir), "analyze", "lonely.air.json")
            self.assertEqual(code, 0)
            payload = json.loads((out_dir / "issues.json").read_text(encoding="utf-8"))
            self.assertEqual(payload["issues"][0]["type"], "mouse-only-click")
            self.assertIn("[SUMMARY]", (out_dir / "digest.txt").read_text(encoding="utf-8"))

            code, _, err = run_cli("--repo", str(self.repo), "--out", str(out_dir), "fix", "lib/b.air.json")
            self.assertEqual(code, 0)
            self.assertTrue((out_dir / "fixed" / "lib" / "b.air.json").is_file())
            self.assertIn("Wrote", err)
        finally:
            os.chdir(cwd)

    def test_graph_export(self):
        code, out, _ = run_cli("--repo", str(self.repo), "graph")
        self.assertEqual(code, 0)
        graph = json.loads(out)
        merged = [node for node in graph["nodes"] if node["type"] == "element" and len(node["files"]) == 3]
        self.assertEqual(len(merged), 1)
        code, out, _ = run_cli("--repo", str(self.repo), "graph", "--format", "graphml")
        self.assertEqual(code, 0)
        self.assertIn("<graphml", out)


if __name__ == "__main__":
    unittest.main()
