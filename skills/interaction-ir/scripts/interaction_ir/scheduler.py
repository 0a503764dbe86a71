from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .adapters import AdapterRegistry
from .analysis.base import DISCOVERY_TRUNCATED, PARSE_FAILED, Diagnostic, Issue
from .analysis.engine import AnalysisEngine, AnalyzerRegistry
from .context.builder import CancelToken, ContextBuilder, ContextSnapshot, default_workers
from .context.discovery import language_for_path, list_workspace_files
from .errors import ConfigError, SessionError
from .evidence import Classifier, ConfidenceLevel
from .fixes.engine import FixBatch, FixEngine
from .fixes.base import FixerRegistry, locate
from .ir import ActionTree
from .optimizer import optimize


logger = logging.getLogger(__name__)


class AnalysisMode(str, Enum):
    FILE = "file"
    SMART = "smart"
    PROJECT = "project"


class SchedulerState(str, Enum):
    FILE_ONLY = "FileOnly"
    SMART_INSTANT = "SmartInstant"
    SMART_ENHANCING = "SmartEnhancing"
    SMART_COMPLETE = "SmartComplete"
    PROJECT_BUILDING = "ProjectBuilding"
    PROJECT_COMPLETE = "ProjectComplete"


DEFAULT_MAX_FILES = 500

_SETTINGS_KEYS = {
    "analysisMode": "mode",
    "maxFilesToAnalyze": "max_files",
    "includePatterns": "include",
    "excludePatterns": "exclude",
    "minConfidence": "min_confidence",
    "debounceMs": "debounce_seconds",
    "workers": "workers",
}


def _patterns(key: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigError(f"{key} must be a list of strings")


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{key} must be a positive integer, got {value!r}")
    return value


@dataclass(frozen=True)
class AnalysisSettings:
    mode: AnalysisMode = AnalysisMode.SMART
    max_files: int = DEFAULT_MAX_FILES
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    min_confidence: ConfidenceLevel = ConfidenceLevel.LOW
    debounce_seconds: float = 0.5
    workers: int = field(default_factory=default_workers)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["AnalysisSettings"] = None) -> "AnalysisSettings":
        """Build settings from the camelCase configuration surface."""
        if not isinstance(data, Mapping):
            raise ConfigError("configuration must be an object")
        unknown = sorted(key for key in data if key not in _SETTINGS_KEYS)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
        changes: Dict[str, Any] = {}
        if "analysisMode" in data:
            try:
                changes["mode"] = AnalysisMode(str(data["analysisMode"]).lower())
            except ValueError as exc:
                raise ConfigError(f"analysisMode must be file, smart or project, got {data['analysisMode']!r}") from exc
        if "maxFilesToAnalyze" in data:
            changes["max_files"] = _positive_int("maxFilesToAnalyze", data["maxFilesToAnalyze"])
        if "includePatterns" in data:
            changes["include"] = _patterns("includePatterns", data["includePatterns"])
        if "excludePatterns" in data:
            changes["exclude"] = _patterns("excludePatterns", data["excludePatterns"])
        if "minConfidence" in data:
            try:
                changes["min_confidence"] = ConfidenceLevel.parse(data["minConfidence"])
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        if "debounceMs" in data:
            raw = data["debounceMs"]
            if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
                raise ConfigError(f"debounceMs must be a non-negative number, got {raw!r}")
            changes["debounce_seconds"] = float(raw) / 1000.0
        if "workers" in data:
            changes["workers"] = _positive_int("workers", data["workers"])
        return replace(base or cls(), **changes)

    def to_json(self) -> Dict[str, Any]:
        return {
            "analysisMode": self.mode.value,
            "maxFilesToAnalyze": self.max_files,
            "includePatterns": list(self.include),
            "excludePatterns": list(self.exclude),
            "minConfidence": self.min_confidence.label,
            "debounceMs": int(self.debounce_seconds * 1000),
            "workers": self.workers,
        }


@dataclass(frozen=True)
class IssueSet:
    """Complete replacement of the issues for one document version."""

    document: str
    version: int
    state: SchedulerState
    confidence: ConfidenceLevel
    issues: Tuple[Issue, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    complete: bool = False
    files: Tuple[str, ...] = ()

    def to_json(self) -> Dict[str, Any]:
        return {
            "document": self.document,
            "version": self.version,
            "state": self.state.value,
            "confidence": self.confidence.label,
            "complete": self.complete,
            "files": list(self.files),
            "issues": [issue.to_json() for issue in self.issues],
            "diagnostics": [diag.to_json() for diag in self.diagnostics],
        }


def completion_ceiling(snapshot: ContextSnapshot, root: str, files: Sequence[str]) -> ConfidenceLevel:
    if snapshot.is_complete(root) and not snapshot.truncated and not snapshot.has_failures(files):
        return ConfidenceLevel.HIGH
    return ConfidenceLevel.MEDIUM


class DocumentScheduler:
    """Per-document state machine; each new version cancels in-flight work."""

    def __init__(self, session: "AnalysisSession", document: str) -> None:
        self.session = session
        self.document = document
        self.version = 0
        self.text: Optional[str] = None
        self.state: Optional[SchedulerState] = None
        self.transitions: List[Tuple[int, SchedulerState]] = []
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancelToken] = None
        self._error: Optional[BaseException] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def open(self, text: str) -> None:
        self._new_version(text, delay=0.0)

    def edit(self, text: str) -> None:
        self._new_version(text, delay=self.session.settings.debounce_seconds)

    def save(self, text: Optional[str] = None) -> None:
        self._new_version(self.text if text is None else text, delay=0.0)

    def restart(self) -> None:
        self._new_version(self.text, delay=0.0)

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_idle(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        if self._error is not None:
            error, self._error = self._error, None
            raise error

    def _new_version(self, text: Optional[str], *, delay: float) -> None:
        self.cancel()
        self.version += 1
        self.text = text
        token = CancelToken()
        self._token = token
        self._error = None
        task = asyncio.get_running_loop().create_task(self._run(self.version, text, token, delay))
        task.add_done_callback(self._finished)
        self._task = task

    def _finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("analysis of %s failed: %s", self.document, exc, exc_info=exc)
            if task is self._task:
                self._error = exc

    def _enter(self, version: int, state: SchedulerState) -> None:
        if version != self.version:
            return
        self.state = state
        self.transitions.append((version, state))
        logger.debug("%s v%d -> %s", self.document, version, state.value)

    def _current(self, version: int, token: CancelToken) -> bool:
        return version == self.version and not token.cancelled

    async def _run(self, version: int, text: Optional[str], token: CancelToken, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        session = self.session
        builder = session.builder
        mode = session.settings.mode
        if text is not None:
            result = await builder.ingest(self.document, text, token=token)
        else:
            result = None
        token.raise_if_cancelled()
        await builder.invalidate(self.document)

        if mode is AnalysisMode.FILE:
            self._enter(version, SchedulerState.FILE_ONLY)
            self._analyze(version, token, SchedulerState.FILE_ONLY, [self.document], ConfidenceLevel.MEDIUM)
            return

        if mode is AnalysisMode.SMART:
            self._enter(version, SchedulerState.SMART_INSTANT)
            snapshot = builder.snapshot
            self._analyze(
                version, token, SchedulerState.SMART_INSTANT, snapshot.closure(self.document), ConfidenceLevel.MEDIUM
            )
            if result is not None and not result.success:
                return
            self._enter(version, SchedulerState.SMART_ENHANCING)
            known = await session.known_files()
            await builder.discover(
                self.document,
                session.read,
                known=known,
                max_files=session.settings.max_files,
                token=token,
            )
            token.raise_if_cancelled()
            self._enter(version, SchedulerState.SMART_COMPLETE)
            snapshot = builder.snapshot
            files = snapshot.closure(self.document)
            self._analyze(
                version,
                token,
                SchedulerState.SMART_COMPLETE,
                files,
                completion_ceiling(snapshot, self.document, files),
                complete=True,
            )
            return

        self._enter(version, SchedulerState.PROJECT_BUILDING)
        files, truncated = await session.workspace_files()
        if self.document not in files:
            files = sorted(set(files) | {self.document})
        await builder.build_workspace(files, session.read, truncated=truncated, token=token)
        token.raise_if_cancelled()
        self._enter(version, SchedulerState.PROJECT_COMPLETE)
        snapshot = builder.snapshot
        all_files = snapshot.files
        if self.document not in all_files and self.document in snapshot.failures:
            all_files = all_files + [self.document]
        self._analyze(
            version,
            token,
            SchedulerState.PROJECT_COMPLETE,
            all_files,
            completion_ceiling(snapshot, self.document, all_files),
            complete=True,
        )

    def _analyze(
        self,
        version: int,
        token: CancelToken,
        state: SchedulerState,
        files: Sequence[str],
        ceiling: ConfidenceLevel,
        *,
        complete: bool = False,
    ) -> None:
        if not self._current(version, token):
            return
        session = self.session
        snapshot = session.builder.snapshot
        if state is SchedulerState.FILE_ONLY:
            view = snapshot.restricted([self.document])
        else:
            view = snapshot
        view = view.with_ceiling(ceiling)
        tree = view.tree_for(files)
        result = session.engine.run(tree, view, session.settings.min_confidence)
        diagnostics: List[Diagnostic] = []
        for path in files:
            message = snapshot.failures.get(path)
            if message is not None:
                diagnostics.append(Diagnostic(kind=PARSE_FAILED, source="context", message=message, file=path))
        if snapshot.truncated and state is not SchedulerState.FILE_ONLY:
            diagnostics.append(
                Diagnostic(
                    kind=DISCOVERY_TRUNCATED,
                    source="context",
                    message=f"file ceiling of {session.settings.max_files} reached; results capped at MEDIUM",
                )
            )
        diagnostics.extend(result.diagnostics)
        issue_set = IssueSet(
            document=self.document,
            version=version,
            state=state,
            confidence=ceiling,
            issues=result.issues,
            diagnostics=tuple(diagnostics),
            complete=complete,
            files=tuple(path for path in files if path in view.trees),
        )
        session.deliver(issue_set)


@dataclass(frozen=True)
class FixResult:
    document: str
    tree: ActionTree
    source: str
    batch: FixBatch


Subscriber = Callable[[IssueSet], None]


class AnalysisSession:
    """One workspace session: open -> active -> disposed."""

    def __init__(
        self,
        root: Optional[Path] = None,
        settings: Optional[AnalysisSettings] = None,
        *,
        analyzers: Optional[AnalyzerRegistry] = None,
        fixers: Optional[FixerRegistry] = None,
        adapters: Optional[AdapterRegistry] = None,
        classifier: Optional[Classifier] = None,
        sources: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.root = root
        self.settings = settings or AnalysisSettings()
        self.builder = ContextBuilder(adapters=adapters, classifier=classifier, workers=self.settings.workers)
        self.engine = AnalysisEngine(analyzers)
        self.fix_engine = FixEngine(fixers)
        self.status = "open"
        self._sources: Dict[str, str] = dict(sources or {})
        self._documents: Dict[str, DocumentScheduler] = {}
        self._latest: Dict[str, IssueSet] = {}
        self._subscribers: List[Subscriber] = []
        self._workspace: Optional[Tuple[List[str], bool]] = None

    def _check(self) -> None:
        if self.status == "disposed":
            raise SessionError("analysis session is disposed")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._check()
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def deliver(self, issue_set: IssueSet) -> None:
        if self.status == "disposed":
            return
        self._latest[issue_set.document] = issue_set
        for callback in list(self._subscribers):
            try:
                callback(issue_set)
            except Exception:
                logger.exception("issue subscriber failed for %s", issue_set.document)

    def latest(self, document: str) -> Optional[IssueSet]:
        return self._latest.get(document)

    def read(self, path: str) -> str:
        scheduler = self._documents.get(path)
        if scheduler is not None and scheduler.text is not None:
            return scheduler.text
        if path in self._sources:
            return self._sources[path]
        if self.root is None:
            raise FileNotFoundError(path)
        return (self.root / path).read_text(encoding="utf-8")

    def _list_workspace(self) -> Tuple[List[str], bool]:
        files: Set[str] = set(self._sources)
        truncated = False
        if self.root is not None:
            listed, truncated = list_workspace_files(
                self.root, include=self.settings.include, exclude=self.settings.exclude
            )
            files.update(listed)
        ordered = sorted(files)
        if len(ordered) > self.settings.max_files:
            return ordered[: self.settings.max_files], True
        return ordered, truncated

    async def workspace_files(self) -> Tuple[List[str], bool]:
        if self._workspace is None:
            loop = asyncio.get_running_loop()
            self._workspace = await loop.run_in_executor(None, self._list_workspace)
        return self._workspace

    async def known_files(self) -> Optional[Set[str]]:
        if self.root is None and not self._sources:
            return None
        loop = asyncio.get_running_loop()
        files: Set[str] = set(self._sources)
        if self.root is not None:
            listed, _ = await loop.run_in_executor(
                None,
                lambda: list_workspace_files(self.root, include=self.settings.include, exclude=self.settings.exclude),
            )
            files.update(listed)
        files.update(self._documents)
        return files

    def document(self, path: str) -> DocumentScheduler:
        self._check()
        scheduler = self._documents.get(path)
        if scheduler is None:
            raise SessionError(f"document {path} is not open")
        return scheduler

    def open_document(self, path: str, text: Optional[str] = None) -> DocumentScheduler:
        self._check()
        if text is None:
            text = self.read(path)
        scheduler = self._documents.get(path)
        if scheduler is None:
            scheduler = DocumentScheduler(self, path)
            self._documents[path] = scheduler
        self.status = "active"
        scheduler.open(text)
        return scheduler

    def edit_document(self, path: str, text: str) -> None:
        self.document(path).edit(text)

    def save_document(self, path: str, text: Optional[str] = None) -> None:
        self._workspace = None
        self.document(path).save(text)

    async def close_document(self, path: str) -> None:
        scheduler = self.document(path)
        scheduler.cancel()
        await scheduler.wait_idle()
        del self._documents[path]
        self._latest.pop(path, None)

    def set_mode(self, mode: AnalysisMode) -> None:
        self._check()
        self.settings = replace(self.settings, mode=AnalysisMode(mode))
        for scheduler in self._documents.values():
            scheduler.restart()

    async def wait_idle(self, path: Optional[str] = None) -> None:
        if path is not None:
            await self.document(path).wait_idle()
            return
        for scheduler in list(self._documents.values()):
            await scheduler.wait_idle()

    def fix(self, document: str, issue_types: Optional[Iterable[str]] = None) -> FixResult:
        """UPDATE, DELETE and GENERATE for one document against its latest issue set."""
        self._check()
        snapshot = self.builder.snapshot
        tree = snapshot.trees.get(document)
        if tree is None:
            raise SessionError(f"no IR available for {document}")
        wanted = set(issue_types) if issue_types else None
        latest = self._latest.get(document)
        issues = [
            issue
            for issue in (latest.issues if latest else ())
            if (wanted is None or issue.issue_type in wanted) and locate(tree, issue.anchor.id) is not None
        ]
        batch = self.fix_engine.apply_all(tree, issues)
        fixed = optimize(batch.tree, snapshot.overlay(batch.tree).graph)
        source = self.builder.adapters.generate(fixed, language_for_path(document))
        return FixResult(document=document, tree=fixed, source=source, batch=batch)

    async def dispose(self) -> None:
        if self.status == "disposed":
            return
        for scheduler in self._documents.values():
            scheduler.cancel()
        for scheduler in self._documents.values():
            try:
                await scheduler.wait_idle()
            except Exception:
                logger.debug("ignoring failure of %s during dispose", scheduler.document, exc_info=True)
        self.status = "disposed"
        self._documents.clear()
        self._subscribers.clear()
        self.builder.close()
