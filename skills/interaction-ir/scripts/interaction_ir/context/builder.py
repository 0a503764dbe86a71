from __future__ import annotations

import asyncio
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import cached_property
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from ..adapters import AdapterRegistry, CreateResult, default_registry
from ..evidence import Classifier, ConfidenceLevel, KeywordClassifier
from ..ir import ActionNode, ActionTree, walk
from .cache import ParseCache
from .discovery import language_for_path, probe_known, reference_targets
from .elements import ElementGraph


logger = logging.getLogger(__name__)

Reader = Callable[[str], str]


class CancelToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError()


def _graph_for(trees: Mapping[str, ActionTree]) -> ElementGraph:
    graph = ElementGraph()
    for path in sorted(trees):
        graph.add_all(node.element for node in walk(trees[path]))
    return graph


def _group_by_file(tree: Iterable[ActionNode], fallback: str = "") -> Dict[str, ActionTree]:
    grouped: Dict[str, List[ActionNode]] = {}
    for node in tree:
        grouped.setdefault(node.location.file or fallback, []).append(node)
    return {path: tuple(nodes) for path, nodes in grouped.items()}


@dataclass(frozen=True)
class ContextSnapshot:
    """Read-only view of the merged context, published after each completed write."""

    trees: Mapping[str, ActionTree] = field(default_factory=dict)
    graph: ElementGraph = field(default_factory=ElementGraph)
    complete: FrozenSet[str] = frozenset()
    failures: Mapping[str, str] = field(default_factory=dict)
    references: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    resolved: Mapping[str, str] = field(default_factory=dict)
    truncated: bool = False
    version: int = 0
    classifier: Classifier = field(default_factory=KeywordClassifier)
    ceiling: Optional[ConfidenceLevel] = None

    @classmethod
    def from_trees(
        cls,
        trees: Mapping[str, ActionTree],
        *,
        complete: Iterable[str] = (),
        classifier: Optional[Classifier] = None,
    ) -> "ContextSnapshot":
        frozen = {path: tuple(tree) for path, tree in trees.items()}
        references = {path: tuple(reference_targets(tree, path)) for path, tree in frozen.items()}
        return cls(
            trees=MappingProxyType(frozen),
            graph=_graph_for(frozen),
            complete=frozenset(complete),
            references=MappingProxyType(references),
            classifier=classifier or KeywordClassifier(),
        )

    @classmethod
    def for_tree(cls, tree: ActionTree, *, classifier: Optional[Classifier] = None) -> "ContextSnapshot":
        return cls.from_trees(_group_by_file(tree), classifier=classifier)

    @property
    def files(self) -> List[str]:
        return sorted(self.trees)

    def canonical(self, ref) -> Optional[str]:
        return self.graph.canonical(ref)

    def tree_for(self, files: Optional[Iterable[str]] = None) -> ActionTree:
        selected = sorted(self.trees) if files is None else [f for f in files if f in self.trees]
        merged: List[ActionNode] = []
        for path in selected:
            merged.extend(self.trees[path])
        return tuple(merged)

    def closure(self, root: str) -> List[str]:
        """Files reachable from ``root``, following references as discovery resolved them."""
        seen: Set[str] = {root}
        order = [root]
        queue = [root]
        while queue:
            current = queue.pop(0)
            for raw in self.references.get(current, ()):
                target = self.resolved.get(raw, raw)
                if target not in seen:
                    seen.add(target)
                    order.append(target)
                    queue.append(target)
        return order

    @cached_property
    def _element_index(self) -> Dict[str, Tuple[ActionNode, ...]]:
        index: Dict[str, List[ActionNode]] = {}
        for path in sorted(self.trees):
            for node in walk(self.trees[path]):
                canonical = self.graph.canonical(node.element)
                if canonical is not None:
                    index.setdefault(canonical, []).append(node)
        return {key: tuple(nodes) for key, nodes in index.items()}

    @cached_property
    def _top_level(self) -> Dict[str, ActionNode]:
        return {node.id: node for path in sorted(self.trees) for node in self.trees[path]}

    def nodes_for_element(self, canonical: Optional[str]) -> Tuple[ActionNode, ...]:
        if canonical is None:
            return ()
        return self._element_index.get(canonical, ())

    def nodes(self) -> Iterable[ActionNode]:
        for path in sorted(self.trees):
            yield from walk(self.trees[path])

    def is_complete(self, file: str) -> bool:
        return file in self.complete

    def has_failures(self, files: Optional[Iterable[str]] = None) -> bool:
        if files is None:
            return bool(self.failures)
        return any(path in self.failures for path in files)

    def with_ceiling(self, ceiling: Optional[ConfidenceLevel]) -> "ContextSnapshot":
        return replace(self, ceiling=ceiling)

    def restricted(self, files: Iterable[str]) -> "ContextSnapshot":
        keep = {path: self.trees[path] for path in files if path in self.trees}
        return replace(
            self,
            trees=MappingProxyType(keep),
            graph=_graph_for(keep),
            complete=frozenset(path for path in self.complete if path in keep),
            failures=MappingProxyType({k: v for k, v in self.failures.items() if k in keep}),
            references=MappingProxyType({k: v for k, v in self.references.items() if k in keep}),
        )

    def overlay(self, tree: ActionTree) -> "ContextSnapshot":
        """Context with the files owned by ``tree`` replaced by its nodes.

        A tree assembled from this snapshot's own files is returned unchanged.
        """
        if all(self._top_level.get(node.id) == node for node in tree):
            return self
        grouped = _group_by_file(tree)
        trees = dict(self.trees)
        trees.update(grouped)
        references = dict(self.references)
        for path, nodes in grouped.items():
            references[path] = tuple(reference_targets(nodes, path))
        replaced_existing = any(path in self.trees for path in grouped)
        if replaced_existing:
            graph = _graph_for(trees)
        else:
            graph = self.graph.copy()
            for path in sorted(grouped):
                graph.add_all(node.element for node in walk(grouped[path]))
        return replace(
            self,
            trees=MappingProxyType(trees),
            graph=graph,
            references=MappingProxyType(references),
        )


class AnalysisContext:
    """Mutable aggregate owned by a ContextBuilder; never read directly by analyzers."""

    def __init__(self) -> None:
        self.trees: Dict[str, ActionTree] = {}
        self.graph = ElementGraph()
        self.complete: Set[str] = set()
        self.failures: Dict[str, str] = {}
        self.references: Dict[str, Tuple[str, ...]] = {}
        # Reference target as written -> workspace file it was found at.
        self.resolved: Dict[str, str] = {}
        self.truncated = False
        self.version = 0

    def freeze(self, classifier: Classifier) -> ContextSnapshot:
        return ContextSnapshot(
            trees=MappingProxyType(dict(self.trees)),
            graph=self.graph.copy(),
            complete=frozenset(self.complete),
            failures=MappingProxyType(dict(self.failures)),
            references=MappingProxyType(dict(self.references)),
            resolved=MappingProxyType(dict(self.resolved)),
            truncated=self.truncated,
            version=self.version,
            classifier=classifier,
        )


@dataclass
class DiscoveryReport:
    root: str
    files: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    truncated: bool = False
    cancelled: bool = False


def default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


class ContextBuilder:
    """Single writer for an AnalysisContext.

    Writes are serialized with an asyncio lock and each completed write
    publishes a fresh snapshot; readers only ever see published snapshots.
    """

    def __init__(
        self,
        *,
        adapters: Optional[AdapterRegistry] = None,
        classifier: Optional[Classifier] = None,
        cache: Optional[ParseCache] = None,
        workers: Optional[int] = None,
    ) -> None:
        self.adapters = adapters or default_registry()
        self.classifier = classifier or KeywordClassifier()
        self.cache = cache if cache is not None else ParseCache()
        self.workers = workers or default_workers()
        self.context = AnalysisContext()
        self._lock = asyncio.Lock()
        self._cache_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._snapshot = self.context.freeze(self.classifier)

    @property
    def snapshot(self) -> ContextSnapshot:
        return self._snapshot

    def _publish(self) -> None:
        self.context.version += 1
        self._snapshot = self.context.freeze(self.classifier)

    def _executor_for(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="air-parse")
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _merge(self, path: str, tree: ActionTree) -> None:
        ctx = self.context
        previous = ctx.trees.get(path)
        ctx.trees[path] = tree
        ctx.failures.pop(path, None)
        ctx.references[path] = tuple(reference_targets(tree, path))
        if previous is not None:
            # Union-find cannot forget unions, so a replaced file rebuilds the graph.
            ctx.graph = _graph_for(ctx.trees)
        else:
            ctx.graph.add_all(node.element for node in walk(tree))

    async def add_file(self, path: str, tree: ActionTree, token: Optional[CancelToken] = None) -> bool:
        async with self._lock:
            if token is not None and token.cancelled:
                return False
            self._merge(path, tuple(tree))
            self._publish()
        logger.debug("merged %s (%d nodes)", path, len(tree))
        return True

    async def remove_file(self, path: str) -> None:
        async with self._lock:
            ctx = self.context
            ctx.failures.pop(path, None)
            ctx.complete.discard(path)
            ctx.references.pop(path, None)
            if ctx.trees.pop(path, None) is not None:
                ctx.graph = _graph_for(ctx.trees)
            self.cache.drop(path)
            self._publish()

    async def invalidate(self, root: str) -> None:
        async with self._lock:
            self.context.complete.discard(root)
            self._publish()

    async def reset_truncation(self) -> None:
        async with self._lock:
            self.context.truncated = False
            self._publish()

    async def record_failure(self, path: str, message: str, token: Optional[CancelToken] = None) -> bool:
        async with self._lock:
            if token is not None and token.cancelled:
                return False
            ctx = self.context
            if ctx.trees.pop(path, None) is not None:
                ctx.graph = _graph_for(ctx.trees)
            ctx.references.pop(path, None)
            ctx.failures[path] = message
            self._publish()
        logger.info("parse failed for %s: %s", path, message)
        return True

    def parse(self, path: str, source: str, language: Optional[str] = None) -> CreateResult:
        language = language or language_for_path(path)
        with self._cache_lock:
            cached = self.cache.get(path, source, language)
        if cached is not None:
            return cached
        result = self.adapters.create(source, language, path=path)
        with self._cache_lock:
            self.cache.put(path, source, language, result)
        return result

    async def ingest(
        self,
        path: str,
        source: str,
        *,
        language: Optional[str] = None,
        token: Optional[CancelToken] = None,
    ) -> CreateResult:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._executor_for(), self.parse, path, source, language)
        if result.success:
            await self.add_file(path, result.tree, token)
        else:
            await self.record_failure(path, result.error or "parse failed", token)
        return result

    def _read_and_parse(self, path: str, reader: Reader) -> CreateResult:
        try:
            source = reader(path)
        except (OSError, UnicodeDecodeError) as exc:
            return CreateResult.failed(f"unreadable: {exc}")
        return self.parse(path, source)

    async def _load(
        self,
        paths: List[str],
        reader: Reader,
        token: Optional[CancelToken],
        report: DiscoveryReport,
    ) -> List[str]:
        loop = asyncio.get_running_loop()
        executor = self._executor_for()
        semaphore = asyncio.Semaphore(self.workers)

        async def one(path: str) -> Tuple[str, CreateResult]:
            async with semaphore:
                if token is not None:
                    token.raise_if_cancelled()
                result = await loop.run_in_executor(executor, self._read_and_parse, path, reader)
                return path, result

        loaded: List[str] = []
        tasks = [asyncio.ensure_future(one(path)) for path in paths]
        try:
            for future in asyncio.as_completed(tasks):
                path, result = await future
                if token is not None:
                    token.raise_if_cancelled()
                if result.success:
                    await self.add_file(path, result.tree, token)
                    loaded.append(path)
                else:
                    await self.record_failure(path, result.error or "parse failed", token)
                    report.failed.append(path)
                report.files.append(path)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
        return sorted(loaded)

    async def discover(
        self,
        root: str,
        reader: Reader,
        *,
        known: Optional[Set[str]] = None,
        max_files: Optional[int] = None,
        token: Optional[CancelToken] = None,
    ) -> DiscoveryReport:
        """Breadth-first discovery of the files reachable from ``root``."""
        report = DiscoveryReport(root=root)
        try:
            if root not in self.context.trees and root not in self.context.failures:
                await self._load([root], reader, token, report)
            visited: Set[str] = {root}
            frontier = [root]
            while frontier:
                pending: List[str] = []
                aliases: Dict[str, str] = {}
                for current in frontier:
                    for target in self._snapshot.references.get(current, ()):
                        resolved = probe_known(target, known) if known is not None else target
                        if resolved is None:
                            logger.debug("unresolved reference %s from %s", target, current)
                            continue
                        if resolved != target:
                            aliases[target] = resolved
                        if resolved in visited:
                            continue
                        if max_files is not None and len(visited) >= max_files:
                            report.truncated = True
                            break
                        visited.add(resolved)
                        pending.append(resolved)
                if aliases:
                    async with self._lock:
                        if token is not None and token.cancelled:
                            raise asyncio.CancelledError()
                        self.context.resolved.update(aliases)
                        self._publish()
                fresh = [path for path in pending if path not in self.context.trees]
                await self._load(fresh, reader, token, report)
                frontier = sorted(pending)
            if token is not None:
                token.raise_if_cancelled()
            async with self._lock:
                if token is not None and token.cancelled:
                    raise asyncio.CancelledError()
                if report.truncated:
                    self.context.truncated = True
                self.context.complete.add(root)
                self._publish()
        except asyncio.CancelledError:
            report.cancelled = True
            logger.debug("discovery for %s cancelled", root)
            raise
        return report

    async def build_workspace(
        self,
        files: List[str],
        reader: Reader,
        *,
        truncated: bool = False,
        token: Optional[CancelToken] = None,
    ) -> DiscoveryReport:
        """Project mode: load every listed file, then mark all of them complete."""
        report = DiscoveryReport(root="*", truncated=truncated)
        fresh = [path for path in files if path not in self.context.trees]
        await self._load(fresh, reader, token, report)
        async with self._lock:
            if token is not None and token.cancelled:
                raise asyncio.CancelledError()
            self.context.truncated = truncated
            self.context.complete.update(files)
            self._publish()
        return report
