from .builder import (
    AnalysisContext,
    CancelToken,
    ContextBuilder,
    ContextSnapshot,
    DiscoveryReport,
)
from .cache import ParseCache, content_hash
from .discovery import (
    EXCLUDE_DIRS,
    language_for_path,
    list_workspace_files,
    match_globs,
    reference_targets,
    resolve_reference,
)
from .elements import ElementGraph, UnionFind, alias_keys, same_alias, same_element, with_selector_id

__all__ = [
    "AnalysisContext",
    "CancelToken",
    "ContextBuilder",
    "ContextSnapshot",
    "DiscoveryReport",
    "EXCLUDE_DIRS",
    "ElementGraph",
    "ParseCache",
    "UnionFind",
    "alias_keys",
    "content_hash",
    "language_for_path",
    "list_workspace_files",
    "match_globs",
    "reference_targets",
    "resolve_reference",
    "same_alias",
    "same_element",
    "with_selector_id",
]
