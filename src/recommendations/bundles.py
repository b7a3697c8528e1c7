"""
Time-boxed recommendation bundles.

Selection is greedy by confidence and never exceeds the time budget. A bundle
is scored for synergy (how well its parts reinforce each other) and pathway
coherence (how well it lines up with the current focus areas).
"""

from __future__ import annotations

from datetime import datetime
from itertools import combinations

from src.core.errors import ValidationError
from src.core.models import Bundle, FocusArea, Recommendation, RecommendationStatus, new_id

SYNERGY_BASE = 25.0
SYNERGY_TYPE_DIVERSITY = 20.0
SYNERGY_SKILL_OVERLAP = 30.0
SYNERGY_PROGRESSION = 25.0
COHERENCE_PER_MATCH = 20.0


def synergy_score(recommendations: list[Recommendation]) -> float:
    """
    0-100 synergy of a bundle, in bundle order.

    Empty bundles score 0; otherwise base 25, plus type diversity, overlapping
    target skills, and non-decreasing difficulty.
    """
    if not recommendations:
        return 0.0
    score = SYNERGY_BASE
    if len({r.type for r in recommendations}) > 1:
        score += SYNERGY_TYPE_DIVERSITY
    if any(set(a.activity.target_skills) & set(b.activity.target_skills) for a, b in combinations(recommendations, 2)):
        score += SYNERGY_SKILL_OVERLAP
    difficulties = [r.activity.difficulty for r in recommendations]
    if all(x <= y for x, y in zip(difficulties, difficulties[1:])):
        score += SYNERGY_PROGRESSION
    return min(100.0, score)


def pathway_coherence(recommendations: list[Recommendation], focus_areas: list[FocusArea]) -> float:
    """Average of 20 points per matching focus area per recommendation, max 100."""
    if not recommendations:
        return 0.0
    per_rec = []
    for rec in recommendations:
        matches = sum(
            1 for area in focus_areas
            if area.area.lower() == rec.focus_area.lower()
            or (area.skill is not None and area.skill in rec.activity.target_skills)
        )
        per_rec.append(min(100.0, matches * COHERENCE_PER_MATCH))
    return min(100.0, sum(per_rec) / len(per_rec))


def _matches_focus(rec: Recommendation, focus: str) -> bool:
    wanted = focus.strip().lower().replace("_", " ")
    area = rec.focus_area.lower().replace("_", " ")
    skills = " ".join(rec.activity.target_skills).lower().replace("_", " ")
    return wanted in area or area in wanted or wanted in skills


def create_bundle(
    user_id: str,
    recommendations: list[Recommendation],
    focus_area: str | None,
    time_budget_minutes: int,
    now: datetime,
    current_focus: list[FocusArea] | None = None,
) -> Bundle:
    """
    Assemble the best bundle of active recommendations that fits the budget.

    Args:
        user_id: Learner identifier
        recommendations: The user's recommendations (non-active ones are ignored)
        focus_area: Focus to bundle for; empty means any focus
        time_budget_minutes: Hard upper bound on total duration
        now: Creation time
        current_focus: Latest focus areas, for pathway coherence

    Raises:
        ValidationError: Non-positive time budget
    """
    if time_budget_minutes <= 0:
        raise ValidationError("Bundle time budget must be positive", field="minutes")

    candidates = [r for r in recommendations if r.status == RecommendationStatus.ACTIVE]
    if focus_area:
        candidates = [r for r in candidates if _matches_focus(r, focus_area)]
    candidates.sort(key=lambda r: (-r.confidence, -r.score, r.id))

    chosen: list[Recommendation] = []
    used = 0
    for rec in candidates:
        if used + rec.timing.duration_minutes <= time_budget_minutes:
            chosen.append(rec)
            used += rec.timing.duration_minutes

    label = focus_area or "mixed"
    return Bundle(
        id=new_id("bundle"),
        user_id=user_id,
        focus_area=label,
        name=f"{label.replace('_', ' ').title()} Practice Bundle",
        created_at=now,
        time_budget_minutes=time_budget_minutes,
        recommendations=chosen,
        synergy_score=synergy_score(chosen),
        pathway_coherence=pathway_coherence(chosen, current_focus or []),
    )
