from .aria import AriaHiddenFocusableFixer, LiveRegionPolitenessFixer
from .base import EditKind, Fixer, FixerRegistry, FixOutcome, current_anchor, locate, node_at
from .engine import FixBatch, FixEngine, default_fixers, splice
from .focus import TabIndexFixer
from .keyboard import KeyboardHandlerFixer

__all__ = [name for name in globals().keys() if not name.startswith("_")]
