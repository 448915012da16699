"""Dimension-level root-cause analysis."""

from .dimensions import DimensionAnalyzer, Segment, compare_distributions, normalize_rows, score_segment

__all__ = ["DimensionAnalyzer", "Segment", "compare_distributions", "normalize_rows", "score_segment"]
