"""Recommendation engine: expansion, scoring, ranking, bundling, adaptation."""

from src.recommendations.bundles import create_bundle, pathway_coherence, synergy_score
from src.recommendations.catalog import ACTIVITY_CATALOG, match_templates
from src.recommendations.engine import (
    RecommendationEngine,
    difficulty_for_mastery,
    effectiveness_metrics,
    filter_by_context,
    rank_recommendations,
    style_match_factor,
)

__all__ = [
    "ACTIVITY_CATALOG",
    "RecommendationEngine",
    "create_bundle",
    "difficulty_for_mastery",
    "effectiveness_metrics",
    "filter_by_context",
    "match_templates",
    "pathway_coherence",
    "rank_recommendations",
    "style_match_factor",
    "synergy_score",
]
