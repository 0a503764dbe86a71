from __future__ import annotations

import fnmatch
import logging
import os
import posixpath
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..ir import ActionNode, walk


logger = logging.getLogger(__name__)

EXCLUDE_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    "dist",
    "build",
    "out",
    ".next",
    ".nuxt",
    ".svelte-kit",
    ".output",
    ".cache",
    ".turbo",
    ".venv",
    "venv",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    "coverage",
    "workspace",
}

IR_SUFFIX = ".air.json"

LANGUAGE_BY_SUFFIX: Tuple[Tuple[str, str], ...] = (
    (IR_SUFFIX, "actionir"),
    (".tsx", "tsx"),
    (".ts", "typescript"),
    (".jsx", "jsx"),
    (".mjs", "javascript"),
    (".cjs", "javascript"),
    (".js", "javascript"),
    (".html", "html"),
    (".htm", "html"),
    (".vue", "vue"),
    (".svelte", "svelte"),
    (".py", "python"),
)

_EXTERNAL_PREFIXES = ("http://", "https://", "//", "data:", "mailto:", "javascript:")


def language_for_path(path: str) -> str:
    lowered = path.lower()
    for suffix, language in LANGUAGE_BY_SUFFIX:
        if lowered.endswith(suffix):
            return language
    return "unknown"


def match_globs(path: str, globs: Sequence[str]) -> bool:
    if not globs:
        return False
    lower_path = path.lower()
    lower_name = Path(path).name.lower()
    for pattern in globs:
        lowered = pattern.lower()
        if any(token in lowered for token in ("*", "?", "[")):
            if fnmatch.fnmatch(lower_path, lowered) or fnmatch.fnmatch(lower_name, lowered):
                return True
            continue
        if lowered in lower_path or lowered == lower_name:
            return True
    return False


def list_workspace_files(
    root: Path,
    *,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    max_files: Optional[int] = None,
) -> Tuple[List[str], bool]:
    """Walk the workspace; returns (relative posix paths, truncated)."""
    files: List[str] = []
    skipped_symlinks = 0
    for current, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in EXCLUDE_DIRS)
        for filename in sorted(filenames):
            full = Path(current) / filename
            if full.is_symlink():
                skipped_symlinks += 1
                continue
            try:
                rel = full.relative_to(root).as_posix()
            except ValueError:
                continue
            if language_for_path(rel) == "unknown":
                continue
            if include and not match_globs(rel, include):
                continue
            if exclude and match_globs(rel, exclude):
                continue
            files.append(rel)
    files.sort()
    if skipped_symlinks:
        logger.debug("skipped %d symlinks under %s", skipped_symlinks, root)
    if max_files is not None and max_files >= 0 and len(files) > max_files:
        return files[:max_files], True
    return files, False


def is_external(target: str) -> bool:
    return target.lower().startswith(_EXTERNAL_PREFIXES)


def resolve_reference(importer: str, target: str, known: Optional[Set[str]] = None) -> Optional[str]:
    """Normalize a reference relative to the importing file.

    When ``known`` is given the first candidate present in it wins; otherwise
    the literal normalized path is returned.
    """
    if not target or is_external(target):
        return None
    target = target.split("?", 1)[0].split("#", 1)[0]
    if not target:
        return None
    if target.startswith("/"):
        base = target.lstrip("/")
    else:
        base = posixpath.join(posixpath.dirname(importer), target)
    base = posixpath.normpath(base)
    if base.startswith("../") or base == "..":
        return None
    if known is None:
        return base
    return probe_known(base, known)


def probe_known(base: str, known: Set[str]) -> Optional[str]:
    candidates = [base]
    if not base.endswith(IR_SUFFIX):
        stem, _ = posixpath.splitext(base)
        candidates.append(base + IR_SUFFIX)
        candidates.append(stem + IR_SUFFIX)
        for suffix, _lang in LANGUAGE_BY_SUFFIX:
            candidates.append(base + suffix)
    for candidate in candidates:
        if candidate in known:
            return candidate
    return None


def reference_targets(tree: Iterable[ActionNode], path: str) -> List[str]:
    """Workspace-relative files a tree points at.

    ``metadata.references`` entries are resolved against the importing file;
    ``location.file`` values naming another file are taken as-is.
    """
    targets: List[str] = []
    seen: Set[str] = {path}

    def push(candidate: Optional[str]) -> None:
        if candidate and candidate not in seen:
            seen.add(candidate)
            targets.append(candidate)

    for node in walk(tree):
        refs = node.meta("references") or ()
        if isinstance(refs, str):
            refs = (refs,)
        for raw in refs:
            if isinstance(raw, str):
                push(resolve_reference(path, raw))
        foreign = node.location.file
        if foreign and foreign != path:
            push(posixpath.normpath(foreign))
    return targets
