from __future__ import annotations

import logging
import re
from typing import Dict

import tiktoken


logger = logging.getLogger(__name__)

_TOKENIZER = None
_USE_PRECISE_TOKENS = False
_TOKEN_SPLIT_RE = re.compile(r"[A-Za-z0-9_]+|[^\s]")

SECTION_BUDGETS: Dict[str, float] = {
    "SUMMARY": 0.10,
    "ISSUES": 0.75,
    "DIAGNOSTICS": 0.10,
    "LIMITS": 0.05,
}


def configure_tokenizer(precise: bool) -> None:
    global _TOKENIZER, _USE_PRECISE_TOKENS
    _USE_PRECISE_TOKENS = bool(precise)
    if not _USE_PRECISE_TOKENS or _TOKENIZER is not None:
        return
    try:
        _TOKENIZER = tiktoken.get_encoding("cl100k_base")
    except Exception as exc:
        # Encodings are fetched on first use; offline runs keep the regex estimate.
        logger.warning("precise token counting unavailable: %s", exc)
        _TOKENIZER = None
        _USE_PRECISE_TOKENS = False


def precise_tokens_enabled() -> bool:
    return _USE_PRECISE_TOKENS and _TOKENIZER is not None


def estimate_tokens(text: str) -> int:
    if _USE_PRECISE_TOKENS and _TOKENIZER is not None:
        return max(1, len(_TOKENIZER.encode(text)))
    tokens = _TOKEN_SPLIT_RE.findall(text)
    return max(1, len(tokens))
