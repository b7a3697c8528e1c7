"""
Unit tests for focus synthesis: deterministic baseline and narrative fallback.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from src.core.errors import CollaboratorUnavailableError
from src.core.models import (
    FocusKind,
    FocusSource,
    LearningProfile,
    Pattern,
    PatternType,
    Priority,
    Significance,
    SkillProgress,
)
from src.core.tunables import Tunables
from src.focus.synthesizer import FocusSynthesizer, prune_focus_runs, weeks_to_breakthrough
from src.insights.client import InsightClient
from src.insights.models import InsightResponse

NOW = datetime(2026, 1, 20, 9, 0, tzinfo=UTC)


class StaticInsightClient(InsightClient):
    """Answers every request with the same narrative."""

    def __init__(self, text, confidence=0.9):
        self.text = text
        self.confidence = confidence
        self.calls = 0

    async def analyze(self, request, timeout=None):
        self.calls += 1
        return InsightResponse(text=self.text, confidence=self.confidence)


class SlowInsightClient(InsightClient):
    async def analyze(self, request, timeout=None):
        await asyncio.sleep(5)
        return InsightResponse(text="Focus on counting", confidence=0.9)


class BrokenInsightClient(InsightClient):
    async def analyze(self, request, timeout=None):
        raise CollaboratorUnavailableError("Insight service returned 503")


def make_profile(**skills):
    """skills: name -> (mastery, improvement_rate, days_since_practice)"""
    profile = LearningProfile(user_id="learner-1", created_at=NOW - timedelta(days=60))
    for name, (mastery, rate, idle_days) in skills.items():
        profile.skills[name] = SkillProgress(
            skill=name,
            mastery_pct=mastery,
            improvement_rate=rate,
            sessions_practiced=10,
            last_practice=NOW - timedelta(days=idle_days),
        )
    return profile


def challenge(skill, confidence=0.5):
    return Pattern(
        user_id="learner-1",
        type=PatternType.CHALLENGE,
        key=f"challenge:{skill}",
        description=f"{skill} needs support",
        confidence=confidence,
        first_observed=NOW,
        last_observed=NOW,
        significance=Significance.MODERATE,
        skill=skill,
    )


class TestBaseline:
    @pytest.mark.asyncio
    async def test_lowest_mastery_challenges_first(self):
        profile = make_profile(
            counting=(35.0, 0.0, 1),
            phonics=(10.0, 0.0, 1),
            spelling=(25.0, 0.0, 1),
            arithmetic=(30.0, 0.0, 1),
        )
        patterns = [challenge(s) for s in ("counting", "phonics", "spelling", "arithmetic")]

        run = await FocusSynthesizer().synthesize_focus_areas(profile, patterns, NOW)

        skill_building = [a for a in run.areas if a.kind == FocusKind.SKILL_BUILDING]
        assert [a.skill for a in skill_building] == ["phonics", "spelling", "arithmetic"]
        assert skill_building[0].priority == Priority.CRITICAL
        assert skill_building[1].priority == Priority.HIGH
        assert skill_building[0].area == "phonics skill building"

    @pytest.mark.asyncio
    async def test_idle_skill_gets_reinforcement(self):
        profile = make_profile(counting=(50.0, 0.0, 9))

        run = await FocusSynthesizer().synthesize_focus_areas(profile, [], NOW)

        assert len(run.areas) == 1
        area = run.areas[0]
        assert area.kind == FocusKind.REINFORCEMENT
        assert area.priority == Priority.MEDIUM
        assert area.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_near_breakthrough(self):
        profile = make_profile(sound_blending=(70.0, 2.0, 1))

        run = await FocusSynthesizer().synthesize_focus_areas(profile, [], NOW)

        area = run.areas[0]
        assert area.kind == FocusKind.BREAKTHROUGH_ACCELERATION
        assert area.area == "sound blending breakthrough acceleration"
        assert area.weeks_to_breakthrough == 5
        assert area.confidence == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_never_more_than_five(self):
        profile = make_profile(
            a=(5.0, 0.0, 1), b=(6.0, 0.0, 1), c=(7.0, 0.0, 1),
            d=(50.0, 0.0, 10), e=(50.0, 0.0, 11), f=(50.0, 0.0, 12),
        )
        patterns = [challenge(s) for s in ("a", "b", "c")]

        run = await FocusSynthesizer().synthesize_focus_areas(profile, patterns, NOW)

        assert len(run.areas) == 5
        ranks = [a.priority.rank for a in run.areas]
        assert ranks == sorted(ranks, reverse=True)

    @pytest.mark.asyncio
    async def test_empty_profile_has_no_focus(self):
        run = await FocusSynthesizer().synthesize_focus_areas(make_profile(), [], NOW)
        assert run.areas == []
        assert run.insight_used is False

    def test_weeks_to_breakthrough_floor(self):
        assert weeks_to_breakthrough(79.5, 0.2) == 1
        assert weeks_to_breakthrough(61.0, 3.0) == 7


class TestNarrativeSupplement:
    @pytest.mark.asyncio
    async def test_narrative_fills_free_slots(self):
        profile = make_profile(phonics=(10.0, 0.0, 1), counting=(50.0, 0.0, 1))
        client = StaticInsightClient("Recommendations:\n- Counting games with real objects\n- Short daily reading")
        synthesizer = FocusSynthesizer(insight_client=client)

        run = await synthesizer.synthesize_focus_areas(profile, [challenge("phonics")], NOW)

        assert run.insight_used is True
        assert run.areas[0].skill == "phonics"
        narrative = [a for a in run.areas if a.source == FocusSource.INSIGHT]
        assert [a.area for a in narrative] == ["Counting games with real objects", "Short daily reading"]
        assert narrative[0].skill == "counting"
        assert narrative[0].confidence == pytest.approx(0.72)

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_baseline(self):
        profile = make_profile(phonics=(10.0, 0.0, 1))
        synthesizer = FocusSynthesizer(insight_client=SlowInsightClient(), insight_timeout=0.05)

        run = await synthesizer.synthesize_focus_areas(profile, [challenge("phonics")], NOW)

        assert [a.area for a in run.areas] == ["phonics skill building"]
        assert run.insight_used is False
        assert "exceeded" in run.insight_error

    @pytest.mark.asyncio
    async def test_unparseable_narrative_falls_back(self):
        profile = make_profile(phonics=(10.0, 0.0, 1))
        client = StaticInsightClient("The learner is doing fine overall.")
        synthesizer = FocusSynthesizer(insight_client=client)

        run = await synthesizer.synthesize_focus_areas(profile, [challenge("phonics")], NOW)

        assert len(run.areas) == 1
        assert "no recognizable focus areas" in run.insight_error

    @pytest.mark.asyncio
    async def test_service_error_falls_back(self):
        profile = make_profile(phonics=(10.0, 0.0, 1))
        synthesizer = FocusSynthesizer(insight_client=BrokenInsightClient())

        run = await synthesizer.synthesize_focus_areas(profile, [challenge("phonics")], NOW)

        assert [a.kind for a in run.areas] == [FocusKind.SKILL_BUILDING]
        assert "503" in run.insight_error

    @pytest.mark.asyncio
    async def test_no_call_when_baseline_is_full(self):
        profile = make_profile(
            a=(5.0, 0.0, 1), b=(6.0, 0.0, 1), c=(7.0, 0.0, 1), d=(50.0, 0.0, 10), e=(50.0, 0.0, 11),
        )
        client = StaticInsightClient("Focus on breathing exercises")
        synthesizer = FocusSynthesizer(Tunables(), insight_client=client)

        await synthesizer.synthesize_focus_areas(profile, [challenge(s) for s in "abc"], NOW)

        assert client.calls == 0


class TestHistory:
    @pytest.mark.asyncio
    async def test_prune_keeps_window(self):
        synthesizer = FocusSynthesizer()
        profile = make_profile(phonics=(10.0, 0.0, 1))
        old = await synthesizer.synthesize_focus_areas(profile, [], NOW - timedelta(days=40))
        recent = await synthesizer.synthesize_focus_areas(profile, [], NOW - timedelta(days=2))

        kept = prune_focus_runs([recent, old], NOW, history_days=30)

        assert [r.id for r in kept] == [recent.id]
