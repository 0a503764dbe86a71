from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..context.builder import ContextSnapshot
from ..evidence import ConfidenceLevel, confidence_at_least
from ..ir import ActionTree
from .aria import AriaStateAnalyzer, MissingAriaConnectionAnalyzer
from .base import ANALYZER_FAILED, Analyzer, Diagnostic, Issue
from .context_change import ContextChangeAnalyzer
from .focus import FocusManagementAnalyzer, TabIndexAnalyzer
from .keyboard import KeyboardTrapAnalyzer, MouseOnlyClickAnalyzer, SingleLetterShortcutAnalyzer
from .timing import TimingAnalyzer


logger = logging.getLogger(__name__)


class AnalyzerRegistry:
    """Explicit registration table; order is preserved and ids are unique."""

    def __init__(self, analyzers: Iterable[Analyzer] = ()) -> None:
        self._analyzers: Dict[str, Analyzer] = {}
        for analyzer in analyzers:
            self.register(analyzer)

    def register(self, analyzer: Analyzer) -> None:
        if not analyzer.id:
            raise ValueError(f"{type(analyzer).__name__} has no id")
        if analyzer.id in self._analyzers:
            raise ValueError(f"analyzer {analyzer.id!r} is already registered")
        self._analyzers[analyzer.id] = analyzer

    def get(self, analyzer_id: str) -> Optional[Analyzer]:
        return self._analyzers.get(analyzer_id)

    def for_issue_type(self, issue_type: str) -> Optional[Analyzer]:
        for analyzer in self._analyzers.values():
            if issue_type in analyzer.issue_types:
                return analyzer
        return None

    def issue_types(self) -> List[str]:
        out: List[str] = []
        for analyzer in self._analyzers.values():
            out.extend(t for t in analyzer.issue_types if t not in out)
        return out

    def __iter__(self):
        return iter(list(self._analyzers.values()))

    def __len__(self) -> int:
        return len(self._analyzers)


def default_analyzers() -> AnalyzerRegistry:
    return AnalyzerRegistry(
        [
            MouseOnlyClickAnalyzer(),
            SingleLetterShortcutAnalyzer(),
            KeyboardTrapAnalyzer(),
            TabIndexAnalyzer(),
            FocusManagementAnalyzer(),
            AriaStateAnalyzer(),
            MissingAriaConnectionAnalyzer(),
            TimingAnalyzer(),
            ContextChangeAnalyzer(),
        ]
    )


@dataclass(frozen=True)
class AnalysisResult:
    issues: Tuple[Issue, ...]
    diagnostics: Tuple[Diagnostic, ...] = ()
    filtered: int = 0

    def by_type(self, issue_type: str) -> List[Issue]:
        return [issue for issue in self.issues if issue.issue_type == issue_type]


class AnalysisEngine:
    def __init__(self, registry: Optional[AnalyzerRegistry] = None) -> None:
        self.registry = registry if registry is not None else default_analyzers()

    def run(
        self,
        tree: ActionTree,
        ctx: Optional[ContextSnapshot] = None,
        min_confidence: ConfidenceLevel = ConfidenceLevel.LOW,
    ) -> AnalysisResult:
        view = (ctx or ContextSnapshot.for_tree(tree)).overlay(tuple(tree))
        issues: List[Issue] = []
        diagnostics: List[Diagnostic] = []
        for analyzer in self.registry:
            try:
                found = list(analyzer.analyze(tree, view))
            except Exception as exc:
                logger.warning("analyzer %s failed: %s", analyzer.id, exc, exc_info=True)
                diagnostics.append(
                    Diagnostic(
                        kind=ANALYZER_FAILED,
                        source=analyzer.id,
                        message=f"{type(exc).__name__}: {exc}",
                    )
                )
                continue
            issues.extend(found)
        kept = [issue for issue in issues if confidence_at_least(issue.confidence, min_confidence)]
        kept.sort(key=lambda issue: issue.sort_key())
        return AnalysisResult(
            issues=tuple(kept),
            diagnostics=tuple(diagnostics),
            filtered=len(issues) - len(kept),
        )
