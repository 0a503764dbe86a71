from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Optional

from ..analysis.base import Issue, Severity
from .budget import SECTION_BUDGETS, estimate_tokens

SEVERITY_TAGS = {Severity.ERROR: "E", Severity.WARNING: "W", Severity.INFO: "I"}


def issue_line(issue: Issue) -> str:
    loc = issue.location
    wcag = ",".join(issue.wcag) or "-"
    return (
        f"{SEVERITY_TAGS[issue.severity]} {issue.confidence.label} {issue.issue_type} "
        f"{loc.file}:{loc.line}:{loc.column} wcag={wcag} {issue.message}"
    )


def summary_lines(issue_set) -> List[str]:
    counts = Counter(issue.severity for issue in issue_set.issues)
    return [
        f"document={issue_set.document} version={issue_set.version}",
        f"state={issue_set.state.value} confidence={issue_set.confidence.label} "
        f"complete={'yes' if issue_set.complete else 'no'} files={len(issue_set.files)}",
        "issues={total} errors={e} warnings={w} info={i}".format(
            total=len(issue_set.issues),
            e=counts.get(Severity.ERROR, 0),
            w=counts.get(Severity.WARNING, 0),
            i=counts.get(Severity.INFO, 0),
        ),
    ]


def render_digest(
    issue_set,
    budget: int = 4000,
    *,
    section_budgets: Optional[Dict[str, float]] = None,
) -> Dict[str, Any]:
    """Pack an IssueSet into a text digest that fits ``budget`` tokens."""
    budget_cap = max(1, int(budget))
    shares = dict(SECTION_BUDGETS)
    if section_budgets:
        shares.update(section_budgets)
    caps = {name: max(1, int(budget_cap * ratio)) for name, ratio in shares.items()}
    usage: Dict[str, int] = {}
    lines: List[str] = []
    dropped: Dict[str, int] = {}

    def append_line(section: str, line: str) -> bool:
        projected_section = usage.get(section, 0) + estimate_tokens(line)
        if projected_section > caps.get(section, budget_cap):
            dropped[section] = dropped.get(section, 0) + 1
            return False
        if estimate_tokens("\n".join(lines + [line])) > budget_cap:
            dropped[section] = dropped.get(section, 0) + 1
            return False
        usage[section] = projected_section
        lines.append(line)
        return True

    append_line("SUMMARY", "[SUMMARY]")
    for line in summary_lines(issue_set):
        append_line("SUMMARY", line)

    append_line("ISSUES", "[ISSUES]")
    shown = 0
    for issue in issue_set.issues:
        if append_line("ISSUES", issue_line(issue)):
            shown += 1

    if issue_set.diagnostics:
        append_line("DIAGNOSTICS", "[DIAGNOSTICS]")
        for diag in issue_set.diagnostics:
            where = f" {diag.file}" if diag.file else ""
            append_line("DIAGNOSTICS", f"{diag.kind} {diag.source}{where}: {diag.message}")

    truncated = bool(dropped)
    append_line("LIMITS", "[LIMITS]")
    append_line(
        "LIMITS",
        f"truncated={'yes' if truncated else 'no'} issues_shown={shown}/{len(issue_set.issues)}",
    )
    text = "\n".join(lines)
    return {"text": text, "tokens": estimate_tokens(text), "truncated": truncated, "dropped": dropped}


def issues_to_json(issue_set) -> Dict[str, Any]:
    return issue_set.to_json()
