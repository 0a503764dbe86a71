from __future__ import annotations

import sys
from typing import Iterable


def progress(message: str, done: bool = False) -> None:
    """Status line on stderr; stdout is reserved for results."""
    marker = "done" if done else "...."
    print(f"  [{marker}] {message}", file=sys.stderr)


def report_warnings(warnings: Iterable[str]) -> int:
    count = 0
    for warning in warnings:
        progress(f"warning: {warning}", done=True)
        count += 1
    return count
