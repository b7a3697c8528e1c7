"""Outcome feedback: closes the loop from recommendations back into the profile."""

from src.feedback.loop import FeedbackLoop, FeedbackResult, derive_adaptive_insights, prune_outcomes

__all__ = ["FeedbackLoop", "FeedbackResult", "derive_adaptive_insights", "prune_outcomes"]
