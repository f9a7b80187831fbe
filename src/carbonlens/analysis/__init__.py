"""
Analysis Module
===============

External batch analysis (activity and emissions estimation).

Components:
    - Analyzer: Protocol for analyzer backends
    - MockAnalyzer: Deterministic offline backend
    - GeminiAnalyzer: Google Gemini backend (production)

Design Philosophy:
    The vision model is a pluggable black box. The pipeline reasons over
    AnalysisResult values only, never over model internals.
"""

from carbonlens.analysis.engine import (
    REFERENCE_DAILY_CO2_KG,
    Analyzer,
    AnalyzerUnavailable,
    MissingCredential,
    MockAnalyzer,
    compute_score_change,
    parse_analysis_text,
)
from carbonlens.analysis.gemini import GeminiAnalyzer


__all__ = [
    "REFERENCE_DAILY_CO2_KG",
    "Analyzer",
    "AnalyzerUnavailable",
    "MissingCredential",
    "MockAnalyzer",
    "GeminiAnalyzer",
    "compute_score_change",
    "parse_analysis_text",
]
