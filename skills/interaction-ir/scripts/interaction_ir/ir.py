from __future__ import annotations

import json
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .errors import IRFormatError


IR_VERSION = 1

EVENT_HANDLER = "eventHandler"
FOCUS_CHANGE = "focusChange"
TAB_INDEX_CHANGE = "tabIndexChange"
ARIA_STATE_CHANGE = "ariaStateChange"
DOM_MUTATION = "domMutation"
NAVIGATION = "navigation"
TIMING = "timing"

ACTION_TYPES = (
    EVENT_HANDLER,
    FOCUS_CHANGE,
    TAB_INDEX_CHANGE,
    ARIA_STATE_CHANGE,
    DOM_MUTATION,
    NAVIGATION,
    TIMING,
)

INTERNAL_PREFIX = "_"


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def node_id(action_type: str, file: str, line: int | None, column: int | None) -> str:
    line_part = line if line is not None and line > 0 else 0
    col_part = column if column is not None and column > 0 else 0
    return f"{action_type}:{file}#L{line_part}:{col_part}"


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int = 0
    column: int = 0
    end_column: Optional[int] = None

    def sort_key(self) -> Tuple[str, int, int]:
        return (self.file, self.line, self.column)


@dataclass(frozen=True)
class ElementRef:
    binding: Optional[str] = None
    selector: Optional[str] = None
    id: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.binding or self.selector or self.id)

    def key(self) -> str:
        parts = []
        if self.id:
            parts.append(f"id={self.id}")
        if self.selector:
            parts.append(f"sel={self.selector}")
        if self.binding:
            parts.append(f"bind={self.binding}")
        return "|".join(parts) or "anonymous"

    def label(self) -> str:
        if self.selector:
            return self.selector
        if self.id:
            return f"#{self.id}"
        return self.binding or "<unknown element>"


@dataclass(frozen=True)
class ActionNode:
    """One unit of interaction semantics; immutable once created."""

    id: str
    action_type: str
    element: ElementRef
    location: SourceLocation
    event: Optional[str] = None
    attribute: Optional[str] = None
    old_value: Any = field(default=None, hash=False)
    new_value: Any = field(default=None, hash=False)
    handler: Tuple["ActionNode", ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.action_type not in ACTION_TYPES:
            raise IRFormatError(f"Unknown actionType: {self.action_type!r}")
        if not self.id:
            raise IRFormatError(f"{self.action_type} node is missing an id")
        if self.action_type == EVENT_HANDLER and not self.event:
            raise IRFormatError(f"eventHandler node {self.id} is missing event")
        if self.action_type == ARIA_STATE_CHANGE:
            attribute = self.attribute or ""
            if not (attribute.startswith("aria-") or attribute == "role"):
                raise IRFormatError(
                    f"ariaStateChange node {self.id} has non-ARIA attribute {attribute!r}"
                )
        if self.action_type == TAB_INDEX_CHANGE and self.new_value is None:
            raise IRFormatError(f"tabIndexChange node {self.id} is missing newValue")
        if not isinstance(self.handler, tuple):
            object.__setattr__(self, "handler", tuple(self.handler))
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def wcag(self) -> Tuple[str, ...]:
        raw = self.metadata.get("wcag")
        if isinstance(raw, (list, tuple)):
            return tuple(str(item) for item in raw)
        return ()

    def meta(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)


ActionTree = Tuple[ActionNode, ...]


def evolve(node: ActionNode, **changes: Any) -> ActionNode:
    return replace(node, **changes)


def walk(tree: Iterable[ActionNode]) -> Iterator[ActionNode]:
    for node in tree:
        yield node
        if node.handler:
            yield from walk(node.handler)


def walk_with_parent(
    tree: Iterable[ActionNode], parent: Optional[ActionNode] = None
) -> Iterator[Tuple[ActionNode, Optional[ActionNode]]]:
    for node in tree:
        yield node, parent
        if node.handler:
            yield from walk_with_parent(node.handler, node)


def files_in(tree: Iterable[ActionNode]) -> Set[str]:
    return {node.location.file for node in walk(tree) if node.location.file}


def element_from_json(payload: Any) -> ElementRef:
    if payload is None:
        return ElementRef()
    if not isinstance(payload, dict):
        raise IRFormatError("element must be an object")

    def text(key: str) -> Optional[str]:
        value = payload.get(key)
        if value is None or value == "":
            return None
        return str(value)

    return ElementRef(binding=text("binding"), selector=text("selector"), id=text("id"))


def element_to_json(ref: ElementRef) -> Dict[str, str]:
    out: Dict[str, str] = {}
    if ref.binding:
        out["binding"] = ref.binding
    if ref.selector:
        out["selector"] = ref.selector
    if ref.id:
        out["id"] = ref.id
    return out


def location_from_json(payload: Any, default_file: str = "") -> SourceLocation:
    if payload is None:
        return SourceLocation(file=default_file)
    if not isinstance(payload, dict):
        raise IRFormatError("location must be an object")

    def as_int(value: Any) -> int:
        if isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    end_column = payload.get("endColumn")
    return SourceLocation(
        file=str(payload.get("file") or default_file),
        line=as_int(payload.get("line")),
        column=as_int(payload.get("column")),
        end_column=as_int(end_column) if end_column is not None else None,
    )


def location_to_json(location: SourceLocation) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "file": location.file,
        "line": location.line,
        "column": location.column,
    }
    if location.end_column is not None:
        out["endColumn"] = location.end_column
    return out


def node_from_json(payload: Any, *, default_file: str = "") -> ActionNode:
    if not isinstance(payload, dict):
        raise IRFormatError("ActionNode must be a JSON object")
    action_type = payload.get("actionType")
    if not isinstance(action_type, str):
        raise IRFormatError("ActionNode is missing actionType")
    location = location_from_json(payload.get("location"), default_file)
    raw_id = payload.get("id")
    nid = str(raw_id) if raw_id else node_id(action_type, location.file, location.line, location.column)
    handler_payload = payload.get("handler")
    handler: Tuple[ActionNode, ...] = ()
    if handler_payload is not None:
        if not isinstance(handler_payload, dict):
            raise IRFormatError(f"handler of {nid} must be an object with a body")
        body = handler_payload.get("body") or []
        if not isinstance(body, list):
            raise IRFormatError(f"handler body of {nid} must be a list")
        handler = tuple(node_from_json(item, default_file=location.file) for item in body)
    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise IRFormatError(f"metadata of {nid} must be an object")
    return ActionNode(
        id=nid,
        action_type=action_type,
        element=element_from_json(payload.get("element")),
        location=location,
        event=payload.get("event"),
        attribute=payload.get("attribute"),
        old_value=payload.get("oldValue"),
        new_value=payload.get("newValue"),
        handler=handler,
        metadata=metadata,
    )


def node_to_json(node: ActionNode) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": node.id,
        "actionType": node.action_type,
        "element": element_to_json(node.element),
    }
    if node.event is not None:
        out["event"] = node.event
    if node.attribute is not None:
        out["attribute"] = node.attribute
    if node.old_value is not None:
        out["oldValue"] = node.old_value
    if node.new_value is not None:
        out["newValue"] = node.new_value
    if node.handler:
        out["handler"] = {"body": [node_to_json(child) for child in node.handler]}
    out["location"] = location_to_json(node.location)
    out["metadata"] = dict(node.metadata)
    return out


def tree_from_json(payload: Any, *, default_file: str = "") -> ActionTree:
    if isinstance(payload, dict):
        payload = payload.get("nodes")
    if not isinstance(payload, list):
        raise IRFormatError("IR tree must be a list of nodes or an object with 'nodes'")
    return tuple(node_from_json(item, default_file=default_file) for item in payload)


def tree_to_json(tree: Iterable[ActionNode]) -> List[Dict[str, Any]]:
    return [node_to_json(node) for node in tree]


def load_tree(path: Path, *, default_file: str = "") -> ActionTree | None:
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IRFormatError(f"{path}: {exc}") from exc
    return tree_from_json(payload, default_file=default_file or path.as_posix())


def save_tree(path: Path, tree: Iterable[ActionNode]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "meta": {"version": IR_VERSION, "generated_at": now_iso()},
        "nodes": tree_to_json(tree),
    }
    path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")
