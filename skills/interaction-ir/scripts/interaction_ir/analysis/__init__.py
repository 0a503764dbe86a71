from .base import (
    ANALYZER_FAILED,
    DIAGNOSTIC_KINDS,
    DISCOVERY_TRUNCATED,
    FIX_FAILED,
    PARSE_FAILED,
    Analyzer,
    Diagnostic,
    Issue,
    Severity,
)
from .engine import AnalysisEngine, AnalysisResult, AnalyzerRegistry, default_analyzers

__all__ = [name for name in globals().keys() if not name.startswith("_")]
