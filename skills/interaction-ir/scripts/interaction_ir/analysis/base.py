from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..evidence import ConfidenceLevel, cap_confidence
from ..ir import ActionNode, ActionTree, SourceLocation, location_to_json

if TYPE_CHECKING:
    from ..context.builder import ContextSnapshot


class Severity(IntEnum):
    INFO = 0
    WARNING = 1
    ERROR = 2

    @classmethod
    def parse(cls, value: object) -> "Severity":
        if isinstance(value, Severity):
            return value
        if isinstance(value, str) and value.strip().upper() in cls.__members__:
            return cls[value.strip().upper()]
        raise ValueError(f"Unknown severity: {value!r}")

    @property
    def label(self) -> str:
        return self.name.lower()


ANALYZER_FAILED = "analyzer-failed"
PARSE_FAILED = "parse-failed"
FIX_FAILED = "fix-failed"
DISCOVERY_TRUNCATED = "discovery-truncated"

DIAGNOSTIC_KINDS = (ANALYZER_FAILED, PARSE_FAILED, FIX_FAILED, DISCOVERY_TRUNCATED)


@dataclass(frozen=True)
class Issue:
    issue_type: str
    severity: Severity
    message: str
    anchor: ActionNode
    confidence: ConfidenceLevel
    wcag: Tuple[str, ...] = ()
    related: Tuple[ActionNode, ...] = ()
    analyzer: str = ""

    @property
    def id(self) -> str:
        return f"{self.issue_type}@{self.anchor.id}"

    @property
    def location(self) -> SourceLocation:
        return self.anchor.location

    def sort_key(self) -> Tuple[int, str, int, int, str, str]:
        loc = self.anchor.location
        return (-int(self.severity), loc.file, loc.line, loc.column, self.issue_type, self.anchor.id)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.issue_type,
            "severity": self.severity.label,
            "confidence": self.confidence.label,
            "wcag": list(self.wcag),
            "message": self.message,
            "anchor": self.anchor.id,
            "location": location_to_json(self.anchor.location),
            "related": [node.id for node in self.related],
            "analyzer": self.analyzer,
        }


@dataclass(frozen=True)
class Diagnostic:
    """Internal failure surfaced next to issues; never an accessibility finding."""

    kind: str
    source: str
    message: str
    file: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind, "source": self.source, "message": self.message}
        if self.file:
            out["file"] = self.file
        return out


class Analyzer:
    """Pure analysis pass over an IR tree.

    ``tree`` holds the nodes issues may be anchored on; ``ctx`` answers
    cross-file questions (canonical identities, nodes on the same element).
    """

    id: str = ""
    wcag: Tuple[str, ...] = ()
    issue_types: Tuple[str, ...] = ()

    def analyze(self, tree: ActionTree, ctx: "ContextSnapshot") -> List[Issue]:
        raise NotImplementedError

    def issue(
        self,
        issue_type: str,
        anchor: ActionNode,
        message: str,
        ctx: "ContextSnapshot",
        *,
        severity: Severity,
        wcag: Optional[Sequence[str]] = None,
        related: Iterable[ActionNode] = (),
        heuristic: bool = False,
    ) -> Issue:
        level = ConfidenceLevel.LOW if heuristic else ConfidenceLevel.HIGH
        level = cap_confidence(level, ctx.ceiling)
        hint = anchor.meta("confidence")
        if hint is not None:
            try:
                level = cap_confidence(level, ConfidenceLevel.parse(hint))
            except ValueError:
                pass
        return Issue(
            issue_type=issue_type,
            severity=severity,
            message=message,
            anchor=anchor,
            confidence=level,
            wcag=tuple(wcag if wcag is not None else self.wcag),
            related=tuple(related),
            analyzer=self.id,
        )
