from __future__ import annotations

from .errors import ConfigError, InteractionIRError, IRFormatError, SessionError
from .evidence import ConfidenceLevel
from .ir import ActionNode, ActionTree, ElementRef, SourceLocation, load_tree, save_tree

__version__ = "0.1.0"

__all__ = [
    "ActionNode",
    "ActionTree",
    "ConfidenceLevel",
    "ConfigError",
    "ElementRef",
    "IRFormatError",
    "InteractionIRError",
    "SessionError",
    "SourceLocation",
    "load_tree",
    "save_tree",
]
