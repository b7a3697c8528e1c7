"""Narrative-insight collaborator: request payloads, HTTP client, cache, parser."""

from src.insights.client import CachedInsightClient, HttpInsightClient, InsightClient
from src.insights.models import AnalysisRequest, InsightResponse
from src.insights.narrative import parse_narrative

__all__ = [
    "AnalysisRequest",
    "CachedInsightClient",
    "HttpInsightClient",
    "InsightClient",
    "InsightResponse",
    "parse_narrative",
]
