from __future__ import annotations

import re
from dataclasses import replace
from typing import Dict, Hashable, Iterable, List, Optional, Set, Tuple

from ..ir import ElementRef


_ID_SELECTOR_RE = re.compile(r"^#([A-Za-z_][\w\-:.]*)$")


def same_element(a: Optional[ElementRef], b: Optional[ElementRef]) -> bool:
    """Binding first, then selector, then id; False when nothing is comparable."""
    if a is None or b is None:
        return False
    if a.binding and b.binding and a.binding == b.binding:
        return True
    if a.selector and b.selector and a.selector == b.selector:
        return True
    if a.id and b.id and a.id == b.id:
        return True
    return False


def selector_id(selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    match = _ID_SELECTOR_RE.match(selector.strip())
    return match.group(1) if match else None


def with_selector_id(ref: ElementRef) -> ElementRef:
    """Copy of ``ref`` whose id is filled from a simple ``#id`` selector."""
    if ref.id:
        return ref
    sid = selector_id(ref.selector)
    return replace(ref, id=sid) if sid else ref


def same_alias(a: ElementRef, b: ElementRef) -> bool:
    """same_element after ``#id`` selectors are read as ids."""
    return same_element(with_selector_id(a), with_selector_id(b))


def alias_keys(ref: ElementRef) -> List[str]:
    keys: List[str] = []
    if ref.binding:
        keys.append(f"binding:{ref.binding}")
    if ref.selector:
        keys.append(f"selector:{ref.selector}")
        sid = selector_id(ref.selector)
        if sid:
            keys.append(f"id:{sid}")
    if ref.id:
        key = f"id:{ref.id}"
        if key not in keys:
            keys.append(key)
    return keys


class UnionFind:
    def __init__(self) -> None:
        self._parent: Dict[Hashable, Hashable] = {}
        self._size: Dict[Hashable, int] = {}

    def __contains__(self, item: Hashable) -> bool:
        return item in self._parent

    def __len__(self) -> int:
        return len(self._parent)

    def add(self, item: Hashable) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1

    def find(self, item: Hashable) -> Hashable:
        self.add(item)
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            nxt = self._parent[item]
            self._parent[item] = root
            item = nxt
        return root

    def union(self, a: Hashable, b: Hashable) -> Hashable:
        ra = self.find(a)
        rb = self.find(b)
        if ra == rb:
            return ra
        if self._size[ra] < self._size[rb]:
            ra, rb = rb, ra
        self._parent[rb] = ra
        self._size[ra] += self._size[rb]
        return ra

    def groups(self) -> Dict[Hashable, List[Hashable]]:
        out: Dict[Hashable, List[Hashable]] = {}
        for item in self._parent:
            out.setdefault(self.find(item), []).append(item)
        return out

    def copy(self) -> "UnionFind":
        clone = UnionFind()
        clone._parent = dict(self._parent)
        clone._size = dict(self._size)
        return clone


class ElementGraph:
    """Alias graph over element refs.

    Graph vertices are ref keys. Alias keys only find candidates; a pair is
    unioned once same_alias confirms it.
    Canonical ids are derived from the smallest ref key in a component so
    they do not depend on the order files were merged in.
    """

    def __init__(self) -> None:
        self._uf = UnionFind()
        self._refs: Dict[str, ElementRef] = {}
        self._by_alias: Dict[str, str] = {}
        self._edges: Set[Tuple[str, str]] = set()
        self._canonical_cache: Dict[Hashable, str] = {}

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, ref: ElementRef) -> bool:
        return ref.key() in self._refs

    def add(self, ref: ElementRef) -> Optional[str]:
        if ref.is_empty():
            return None
        key = ref.key()
        if key not in self._refs:
            self._refs[key] = ref
            self._uf.add(key)
        for alias in alias_keys(ref):
            other = self._by_alias.get(alias)
            if other is None:
                self._by_alias[alias] = key
                continue
            if other == key or not same_alias(self._refs[other], ref):
                continue
            if self._uf.find(other) != self._uf.find(key):
                self._uf.union(other, key)
                self._canonical_cache.clear()
            self._edges.add(tuple(sorted((other, key))))
        return key

    def add_all(self, refs: Iterable[ElementRef]) -> None:
        for ref in refs:
            self.add(ref)

    def canonical(self, ref: Optional[ElementRef]) -> Optional[str]:
        if ref is None or ref.is_empty():
            return None
        key = ref.key()
        if key not in self._refs:
            # Unknown refs resolve through their aliases when one is registered.
            for alias in alias_keys(ref):
                other = self._by_alias.get(alias)
                if other is not None and same_alias(self._refs[other], ref):
                    key = other
                    break
            else:
                return f"el:{key}"
        root = self._uf.find(key)
        cached = self._canonical_cache.get(root)
        if cached is not None:
            return cached
        members = [item for item in self._refs if self._uf.find(item) == root]
        canonical = f"el:{min(members)}"
        self._canonical_cache[root] = canonical
        return canonical

    def same(self, a: Optional[ElementRef], b: Optional[ElementRef]) -> bool:
        if same_element(a, b):
            return True
        ca = self.canonical(a)
        return ca is not None and ca == self.canonical(b)

    def components(self) -> Dict[str, List[ElementRef]]:
        out: Dict[str, List[ElementRef]] = {}
        for key in sorted(self._refs):
            ref = self._refs[key]
            out.setdefault(self.canonical(ref) or f"el:{key}", []).append(ref)
        return out

    def refs(self) -> List[ElementRef]:
        return [self._refs[key] for key in sorted(self._refs)]

    def edges(self) -> List[Tuple[str, str]]:
        return sorted(self._edges)

    def copy(self) -> "ElementGraph":
        clone = ElementGraph()
        clone._uf = self._uf.copy()
        clone._refs = dict(self._refs)
        clone._by_alias = dict(self._by_alias)
        clone._edges = set(self._edges)
        clone._canonical_cache = dict(self._canonical_cache)
        return clone
