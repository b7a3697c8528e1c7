"""Pattern detection: strengths, challenges, breakthroughs, regression warnings."""

from src.patterns.breakthroughs import breakthrough_confidence
from src.patterns.detector import PatternDetector, pattern_sort_key

__all__ = ["PatternDetector", "breakthrough_confidence", "pattern_sort_key"]
