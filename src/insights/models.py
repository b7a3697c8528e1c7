"""
Request/response payloads for the narrative-insight collaborator.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from src.core.models import LearningProfile, Pattern


@dataclass
class AnalysisRequest:
    """Structured payload sent to the narrative-insight service."""

    user_id: str
    profile_summary: dict[str, Any]
    patterns: list[dict[str, Any]] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert request to API payload format."""
        return {
            "user_id": self.user_id,
            "profile_summary": self.profile_summary,
            "patterns": self.patterns,
            "open_questions": self.open_questions,
        }

    def content_hash(self) -> str:
        """SHA-256 of the canonical JSON form, used as the cache key."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @classmethod
    def build(cls, profile: LearningProfile, patterns: list[Pattern]) -> AnalysisRequest:
        """Summarize a profile and its active patterns for the service."""
        skills = {
            name: {
                "mastery_pct": round(sp.mastery_pct, 1),
                "level": sp.level,
                "improvement_rate": round(sp.improvement_rate, 2),
                "sessions_practiced": sp.sessions_practiced,
            }
            for name, sp in sorted(profile.skills.items())
        }
        summary = {
            "skills": skills,
            "session_count": profile.session_count,
            "average_session_minutes": round(profile.average_session_minutes, 1),
            "engagement_trend": profile.engagement_trend.value,
            "preferred_modality": profile.style.preferred_modality(),
            "optimal_session_length": profile.style.optimal_session_length,
        }
        pattern_payload = [
            {
                "type": p.type.value,
                "description": p.description,
                "skill": p.skill,
                "confidence": round(p.confidence, 2),
                "significance": p.significance.value,
            }
            for p in patterns
        ]
        questions = [
            "Which skill areas should this learner focus on next?",
            "What adjustments would sustain engagement?",
        ]
        if any(p.type.value == "regression_warning" for p in patterns):
            questions.append("What might explain the recent drop in accuracy?")
        return cls(
            user_id=profile.user_id,
            profile_summary=summary,
            patterns=pattern_payload,
            open_questions=questions,
        )


@dataclass
class InsightResponse:
    """Unstructured narrative plus the service's self-reported confidence."""

    text: str
    confidence: float
