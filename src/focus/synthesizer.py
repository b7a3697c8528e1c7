"""
Focus Synthesizer.

Turns a profile and its active patterns into up to five prioritized focus
areas. The deterministic baseline always comes first:

1. the three lowest-mastery challenge patterns -> skill_building
2. skills idle for more than inactivity_days -> reinforcement
3. 60 < mastery < 80 with positive improvement -> breakthrough_acceleration

When a narrative-insight client is configured, its suggestions may fill the
slots the baseline left free. Any collaborator failure leaves the baseline
untouched.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timedelta

from loguru import logger

from src.core.clock import Clock, SystemClock, days_between
from src.core.errors import CollaboratorUnavailableError, InsightTimeoutError, MalformedInsightResponseError
from src.core.models import (
    FocusArea,
    FocusKind,
    FocusRun,
    FocusSource,
    LearningProfile,
    Pattern,
    PatternType,
    Priority,
    new_id,
)
from src.core.tunables import Tunables
from src.insights.client import InsightClient
from src.insights.models import AnalysisRequest
from src.insights.narrative import parse_narrative

NARRATIVE_CONFIDENCE_FACTOR = 0.8
REINFORCEMENT_CONFIDENCE = 0.7


def display_skill(skill: str) -> str:
    return skill.replace("_", " ")


class FocusSynthesizer:
    def __init__(
        self,
        tunables: Tunables | None = None,
        insight_client: InsightClient | None = None,
        insight_timeout: float = 8.0,
        clock: Clock | None = None,
    ):
        self.tunables = tunables or Tunables()
        self.insight_client = insight_client
        self.insight_timeout = insight_timeout
        self.clock = clock or SystemClock()

    async def synthesize_focus_areas(
        self,
        profile: LearningProfile,
        patterns: list[Pattern],
        now: datetime | None = None,
    ) -> FocusRun:
        """
        Produce this run's focus areas.

        Never raises on collaborator failure; the error is recorded on the run.
        """
        now = now or self.clock.now()
        areas = self.baseline(profile, patterns, now)
        run = FocusRun(id=new_id("focus"), user_id=profile.user_id, created_at=now, areas=areas)

        free_slots = self.tunables.max_focus_areas - len(areas)
        if self.insight_client is None or free_slots <= 0:
            return run

        try:
            narrative_areas = await self._narrative_areas(profile, patterns)
        except CollaboratorUnavailableError as e:
            logger.warning(f"{profile.user_id}: narrative insight unavailable, using rules only ({e})")
            run.insight_error = str(e)
            return run

        run.insight_used = True
        taken = {a.area.lower() for a in areas}
        taken_skills = {a.skill for a in areas if a.skill}
        for area in narrative_areas:
            if len(run.areas) >= self.tunables.max_focus_areas:
                break
            if area.area.lower() in taken or (area.skill and area.skill in taken_skills):
                continue
            run.areas.append(area)
            taken.add(area.area.lower())
        return run

    # ========================================
    # Deterministic baseline
    # ========================================

    def baseline(self, profile: LearningProfile, patterns: list[Pattern], now: datetime) -> list[FocusArea]:
        t = self.tunables
        areas: list[FocusArea] = []
        covered: set[str] = set()

        challenges = [
            p for p in patterns
            if p.type == PatternType.CHALLENGE and p.skill in profile.skills
        ]
        challenges.sort(key=lambda p: (profile.skills[p.skill].mastery_pct, p.skill))
        for pattern in challenges[: t.max_challenge_focus]:
            mastery = profile.skills[pattern.skill].mastery_pct
            areas.append(
                FocusArea(
                    area=f"{display_skill(pattern.skill)} skill building",
                    kind=FocusKind.SKILL_BUILDING,
                    rationale=pattern.description,
                    priority=Priority.CRITICAL if mastery < 20 else Priority.HIGH,
                    confidence=pattern.confidence,
                    skill=pattern.skill,
                )
            )
            covered.add(pattern.skill)

        idle = [
            sp for sp in profile.skills.values()
            if sp.last_practice is not None
            and now - sp.last_practice > timedelta(days=t.inactivity_days)
            and sp.skill not in covered
        ]
        idle.sort(key=lambda sp: (sp.last_practice, sp.skill))
        for progress in idle:
            days = days_between(progress.last_practice, now)
            areas.append(
                FocusArea(
                    area=f"Resume practice in {display_skill(progress.skill)}",
                    kind=FocusKind.REINFORCEMENT,
                    rationale=f"No {display_skill(progress.skill)} practice for {days:.0f} days",
                    priority=Priority.MEDIUM,
                    confidence=REINFORCEMENT_CONFIDENCE,
                    skill=progress.skill,
                )
            )
            covered.add(progress.skill)

        near = [
            sp for sp in profile.skills.values()
            if t.near_breakthrough_low < sp.mastery_pct < t.near_breakthrough_high
            and sp.improvement_rate > 0
            and sp.skill not in covered
        ]
        near_with_weeks = [(weeks_to_breakthrough(sp.mastery_pct, sp.improvement_rate, t), sp) for sp in near]
        near_with_weeks.sort(key=lambda item: (item[0], item[1].skill))
        for weeks, progress in near_with_weeks:
            areas.append(
                FocusArea(
                    area=f"{display_skill(progress.skill)} breakthrough acceleration",
                    kind=FocusKind.BREAKTHROUGH_ACCELERATION,
                    rationale=(
                        f"{progress.mastery_pct:.0f}% mastery improving {progress.improvement_rate:.1f} "
                        f"points/week, about {weeks} week(s) from mastery"
                    ),
                    priority=Priority.HIGH,
                    confidence=min(1.0, progress.improvement_rate * 20 / 100),
                    skill=progress.skill,
                    weeks_to_breakthrough=weeks,
                )
            )

        areas.sort(key=lambda a: -a.priority.rank)
        return areas[: t.max_focus_areas]

    # ========================================
    # Narrative supplement
    # ========================================

    async def _narrative_areas(self, profile: LearningProfile, patterns: list[Pattern]) -> list[FocusArea]:
        request = AnalysisRequest.build(profile, patterns)
        try:
            response = await asyncio.wait_for(
                self.insight_client.analyze(request, self.insight_timeout),
                timeout=self.insight_timeout,
            )
        except asyncio.TimeoutError as e:
            raise InsightTimeoutError(f"Insight service exceeded {self.insight_timeout}s") from e

        items = parse_narrative(response.text)
        if not items:
            raise MalformedInsightResponseError("Narrative contained no recognizable focus areas")

        confidence = response.confidence * NARRATIVE_CONFIDENCE_FACTOR
        return [
            FocusArea(
                area=item,
                kind=FocusKind.NARRATIVE,
                rationale="Suggested by narrative analysis",
                priority=Priority.MEDIUM if confidence >= 0.5 else Priority.LOW,
                confidence=confidence,
                skill=_match_skill(item, profile),
                source=FocusSource.INSIGHT,
            )
            for item in items
        ]


def weeks_to_breakthrough(mastery: float, improvement_rate: float, tunables: Tunables | None = None) -> int:
    t = tunables or Tunables()
    return math.ceil((t.near_breakthrough_high - mastery) / max(1.0, improvement_rate))


def _match_skill(text: str, profile: LearningProfile) -> str | None:
    lowered = text.lower()
    for skill in sorted(profile.skills, key=len, reverse=True):
        if skill.lower() in lowered or display_skill(skill).lower() in lowered:
            return skill
    return None


def prune_focus_runs(runs: list[FocusRun], now: datetime, history_days: int = 30) -> list[FocusRun]:
    """Keep runs from the last history_days, oldest first."""
    cutoff = now - timedelta(days=history_days)
    return sorted((r for r in runs if r.created_at >= cutoff), key=lambda r: r.created_at)
