#!/usr/bin/env python3
"""Interaction IR CLI: analyze documents, apply fixes, export the element graph."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .._fs import ensure_workspace, preview, write_fixed_document, write_issue_artifacts
from ..analysis.base import Severity
from ..errors import InteractionIRError
from ..report import (
    build_element_graph,
    configure_tokenizer,
    export_graph_json,
    export_graphml,
    issues_to_json,
    render_digest,
)
from ..scheduler import AnalysisMode, AnalysisSession, AnalysisSettings, IssueSet
from ..utils import progress, report_warnings
from .config import load_settings, resolve_out_dir


LOG_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def fail(message: str) -> int:
    print(json.dumps({"error": message}, ensure_ascii=True), file=sys.stderr)
    return 2


def document_path(repo: Path, raw: str) -> Optional[str]:
    path = Path(raw)
    if path.is_absolute():
        try:
            return path.resolve().relative_to(repo.resolve()).as_posix()
        except ValueError:
            return None
    return path.as_posix()


def settings_for(args: argparse.Namespace, repo: Path, warnings: List[str]) -> AnalysisSettings:
    overrides: Dict[str, Any] = {
        "analysisMode": getattr(args, "mode", None),
        "minConfidence": getattr(args, "min_confidence", None),
        "maxFilesToAnalyze": getattr(args, "max_files", None),
    }
    settings, source = load_settings(repo, warnings, overrides)
    if source:
        progress(f"Loaded settings from {source}", done=True)
    return settings


def meets_fail_on(issue_set: IssueSet, fail_on: str) -> bool:
    if fail_on == "none":
        return False
    threshold = Severity.parse(fail_on)
    return any(issue.severity >= threshold for issue in issue_set.issues)


async def analyze_document(repo: Path, document: str, settings: AnalysisSettings) -> IssueSet:
    session = AnalysisSession(repo, settings)
    try:
        progress(f"Analyzing {document} ({settings.mode.value} mode)")
        session.open_document(document)
        await session.wait_idle(document)
        issue_set = session.latest(document)
    finally:
        await session.dispose()
    if issue_set is None:
        raise InteractionIRError(f"no analysis result for {document}")
    progress(
        f"{len(issue_set.issues)} issues, state={issue_set.state.value}, confidence={issue_set.confidence.label}",
        done=True,
    )
    return issue_set


async def fix_document(
    repo: Path, document: str, settings: AnalysisSettings, issue_types: Optional[Sequence[str]]
):
    session = AnalysisSession(repo, settings)
    try:
        session.open_document(document)
        await session.wait_idle(document)
        result = session.fix(document, issue_types)
    finally:
        await session.dispose()
    return result


async def build_graph(repo: Path, settings: AnalysisSettings) -> Dict[str, object]:
    session = AnalysisSession(repo, settings)
    try:
        files, truncated = await session.workspace_files()
        progress(f"Building context for {len(files)} files")
        report = await session.builder.build_workspace(files, session.read, truncated=truncated)
        progress(f"Parsed {len(report.files) - len(report.failed)} files ({len(report.failed)} failed)", done=True)
        return build_element_graph(session.builder.snapshot)
    finally:
        await session.dispose()


def write_artifacts(out_dir: Path, issue_set: IssueSet, digest: Dict[str, Any]) -> None:
    paths = write_issue_artifacts(out_dir, issues_to_json(issue_set), digest["text"])
    progress("Wrote " + " and ".join(str(path) for path in paths), done=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="interaction-ir", description=__doc__)
    parser.add_argument("--repo", default=".", help="Workspace root (default: .)")
    parser.add_argument("--out", default=None, help="Artifact directory under workspace/")
    parser.add_argument(
        "--fail-on",
        choices=["error", "warning", "info", "none"],
        default="none",
        help="Exit 1 when an issue at or above this severity is reported",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging on stderr")
    subparsers = parser.add_subparsers(dest="command")

    analyze_parser = subparsers.add_parser("analyze", help="Analyze one document")
    analyze_parser.add_argument("path", help="Document path relative to --repo")
    analyze_parser.add_argument("--mode", choices=[mode.value for mode in AnalysisMode], default=None)
    analyze_parser.add_argument("--min-confidence", choices=["LOW", "MEDIUM", "HIGH"], default=None)
    analyze_parser.add_argument("--max-files", type=int, default=None, help="File ceiling for discovery")
    analyze_parser.add_argument("--format", choices=["text", "json"], default="text")
    analyze_parser.add_argument("--budget", type=int, default=4000, help="Token budget for text output")
    analyze_parser.add_argument(
        "--precise-tokens", action="store_true", help="Count tokens with tiktoken (cl100k_base)"
    )

    fix_parser = subparsers.add_parser("fix", help="Apply fixes to one document")
    fix_parser.add_argument("path", help="Document path relative to --repo")
    fix_parser.add_argument("--mode", choices=[mode.value for mode in AnalysisMode], default=None)
    fix_parser.add_argument(
        "--issue-type", action="append", default=None, dest="issue_types", help="Limit to an issue type"
    )
    fix_parser.add_argument("--write", action="store_true", help="Write the fixed document in place")

    graph_parser = subparsers.add_parser("graph", help="Export the canonical element graph")
    graph_parser.add_argument("--format", choices=["json", "graphml"], default="json")
    graph_parser.add_argument("--max-files", type=int, default=None, help="File ceiling")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2
    configure_logging(args.verbose)

    repo = Path(args.repo)
    if not repo.is_dir():
        return fail(f"repo not found: {repo}")
    warnings: List[str] = []
    try:
        settings = settings_for(args, repo, warnings)
    except InteractionIRError as exc:
        return fail(str(exc))
    report_warnings(warnings)

    if args.command == "analyze":
        document = document_path(repo, args.path)
        if document is None or not (repo / document).is_file():
            return fail(f"document not found: {args.path}")
        configure_tokenizer(args.precise_tokens)
        try:
            issue_set = asyncio.run(analyze_document(repo, document, settings))
        except InteractionIRError as exc:
            return fail(str(exc))
        digest = render_digest(issue_set, args.budget)
        if args.format == "json":
            print(json.dumps(issues_to_json(issue_set), ensure_ascii=True, indent=2))
        else:
            print(digest["text"])
        if args.out:
            out_dir = resolve_out_dir(repo, args.out, workspace_root=ensure_workspace())
            write_artifacts(out_dir, issue_set, digest)
        return 1 if meets_fail_on(issue_set, args.fail_on) else 0

    if args.command == "fix":
        document = document_path(repo, args.path)
        if document is None or not (repo / document).is_file():
            return fail(f"document not found: {args.path}")
        try:
            result = asyncio.run(fix_document(repo, document, settings, args.issue_types))
        except InteractionIRError as exc:
            return fail(str(exc))
        applied = result.batch.applied
        for diag in result.batch.diagnostics:
            progress(f"{diag.kind}: {diag.message}", done=True)
        progress(f"Applied {len(applied)} of {len(result.batch.outcomes)} fixes", done=True)
        if args.write:
            (repo / document).write_text(result.source, encoding="utf-8")
            progress(f"Wrote {document}", done=True)
        else:
            print(result.source, end="")
        if args.out:
            out_dir = resolve_out_dir(repo, args.out, workspace_root=ensure_workspace())
            path = write_fixed_document(out_dir, document, result.source)
            progress(f"Wrote {path}: {preview(result.source)!r}", done=True)
        return 0

    if args.command == "graph":
        try:
            graph = asyncio.run(build_graph(repo, settings))
        except InteractionIRError as exc:
            return fail(str(exc))
        if args.format == "graphml":
            print(export_graphml(graph))
        else:
            print(export_graph_json(graph))
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
