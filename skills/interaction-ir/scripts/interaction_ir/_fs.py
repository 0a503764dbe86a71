"""Artifact files for CLI runs.

Everything lands under an output directory inside ``workspace/``; stdout only
ever carries the result itself, and progress lines show short previews.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

WORKSPACE_DIR = Path("workspace")
ISSUES_FILE = "issues.json"
DIGEST_FILE = "digest.txt"
FIXED_DIR = "fixed"


def ensure_workspace(base: Optional[Path] = None) -> Path:
    root = base or WORKSPACE_DIR
    root.mkdir(parents=True, exist_ok=True)
    return root


def _artifact(out_dir: Path, *parts: str) -> Path:
    path = out_dir.joinpath(*parts)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_issue_artifacts(out_dir: Path, payload: Any, digest_text: str) -> List[Path]:
    """Write the IssueSet JSON and its text digest side by side."""
    issues_path = _artifact(out_dir, ISSUES_FILE)
    issues_path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")
    digest_path = _artifact(out_dir, DIGEST_FILE)
    digest_path.write_text(digest_text.rstrip("\n") + "\n", encoding="utf-8")
    return [issues_path, digest_path]


def write_fixed_document(out_dir: Path, document: str, source: str) -> Path:
    # Keep the document's relative path so two files named alike do not collide.
    path = _artifact(out_dir, FIXED_DIR, *Path(document).parts)
    path.write_text(source, encoding="utf-8")
    return path


def preview(text: str, max_bytes: int = 120) -> str:
    data = text.encode("utf-8", errors="replace")
    if len(data) <= max_bytes:
        return text
    return data[:max_bytes].decode("utf-8", errors="ignore") + "..."
