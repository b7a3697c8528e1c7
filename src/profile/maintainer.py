"""
Profile Maintainer.

Folds interaction events into a LearningProfile:

- Skill mastery: success adds accuracy/100 * gain, error subtracts the penalty,
  clamped to [0, 100]. Other event kinds leave mastery alone.
- Levels: a skill advances while mastery >= (level + 1) * level_step and emits
  a level_up milestone for the pattern detector.
- Improvement rate: trailing 5 per-session mastery samples vs the preceding 5,
  normalized to percentage points per week.
- Sessions: a start event or a gap longer than session_gap_minutes opens a new
  session. Rolling engagement = interaction_rate*10 + diversity*5 + goal_pct.

apply() is idempotent on event id and refuses events earlier than the last
applied one.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger

from src.core.errors import OutOfOrderEventError
from src.core.models import (
    EngagementTrend,
    Event,
    EventKind,
    LearningProfile,
    LearningStyleProfile,
    MasterySample,
    MilestoneKind,
    MilestoneSignal,
    SessionSummary,
    SkillProgress,
    clamp,
)
from src.core.tunables import Tunables
from src.profile.skills import skills_for_tool

RECENT_EVENT_IDS_LIMIT = 500
MAX_SAMPLES_PER_SKILL = 20
ENGAGEMENT_TREND_WINDOW = 5
ENGAGEMENT_TREND_THRESHOLD_PCT = 10.0


def compute_improvement_rate(samples: list[MasterySample], window: int = 5) -> float:
    """
    Percentage points per week between the trailing and preceding sample windows.

    With fewer than 2 samples there is no trend (0.0). With fewer than
    window + 1 samples the available samples are split into halves.
    """
    n = len(samples)
    if n < 2:
        return 0.0

    if n <= window:
        half = n // 2
        previous, recent = samples[:half], samples[half:]
    else:
        recent = samples[-window:]
        previous = samples[-2 * window:-window]

    delta = _mean([s.mastery for s in recent]) - _mean([s.mastery for s in previous])
    elapsed = _mean_time(recent) - _mean_time(previous)
    weeks = max(elapsed, timedelta(days=1)).total_seconds() / timedelta(weeks=1).total_seconds()
    return delta / weeks


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _mean_time(samples: list[MasterySample]) -> datetime:
    base = samples[0].timestamp
    offset = sum((s.timestamp - base).total_seconds() for s in samples) / len(samples)
    return base + timedelta(seconds=offset)


def session_engagement(session: SessionSummary) -> float:
    """
    Rolling engagement for one session.

    interaction_rate is events per minute over at least one minute;
    goal completion defaults to 50 when no goals were started.
    """
    minutes = max(1.0, session.duration_minutes)
    interaction_rate = session.event_count / minutes
    diversity = len(session.tools)
    if session.goals_started:
        goal_pct = min(100.0, session.goals_completed / session.goals_started * 100.0)
    else:
        goal_pct = 50.0
    return clamp(interaction_rate * 10 + diversity * 5 + goal_pct)


class ProfileMaintainer:
    """Applies events to profiles. Holds no per-user state itself."""

    def __init__(self, tunables: Tunables | None = None):
        self.tunables = tunables or Tunables()

    def new_profile(self, user_id: str, created_at: datetime) -> LearningProfile:
        style = LearningStyleProfile(optimal_session_length=self.tunables.default_session_minutes)
        return LearningProfile(user_id=user_id, created_at=created_at, style=style)

    def apply(self, profile: LearningProfile | None, event: Event) -> LearningProfile:
        """
        Fold one event into the profile.

        Args:
            profile: Current profile, or None for a user's first event
            event: Validated event

        Returns:
            The updated profile (the same object when one was passed in)

        Raises:
            OutOfOrderEventError: Event earlier than the last applied event
        """
        if profile is None:
            profile = self.new_profile(event.user_id, event.timestamp)

        if event.id in profile.recent_event_ids:
            return profile
        if profile.last_event_at is not None and event.timestamp < profile.last_event_at:
            raise OutOfOrderEventError(
                f"Event {event.id} is earlier than the last applied event for {profile.user_id}",
                field="timestamp",
            )

        session = self._update_session(profile, event)

        if event.event_kind.is_graded:
            for skill in skills_for_tool(event.tool_name):
                self._update_skill(profile, skill, event, session.session_id)

        profile.last_event_at = event.timestamp
        profile.event_count += 1
        profile.recent_event_ids.append(event.id)
        if len(profile.recent_event_ids) > RECENT_EVENT_IDS_LIMIT:
            del profile.recent_event_ids[:-RECENT_EVENT_IDS_LIMIT]
        self._prune_milestones(profile, event.timestamp)
        return profile

    # ========================================
    # Skills
    # ========================================

    def _update_skill(self, profile: LearningProfile, skill: str, event: Event, session_id: int) -> None:
        t = self.tunables
        progress = profile.skills.get(skill)
        if progress is None:
            progress = SkillProgress(skill=skill)
            profile.skills[skill] = progress

        prior_attempts = progress.successes + progress.failures
        progress.sessions_practiced += 1
        progress.last_practice = event.timestamp
        if event.performance.latency_ms:
            progress.total_minutes += event.performance.latency_ms / 60000.0

        if event.event_kind == EventKind.SUCCESS:
            accuracy = event.performance.accuracy
            if accuracy is None:
                accuracy = t.default_accuracy
            progress.mastery_pct = clamp(progress.mastery_pct + accuracy / 100.0 * t.mastery_success_gain)
            progress.successes += 1
        else:
            progress.mastery_pct = clamp(progress.mastery_pct - t.mastery_failure_penalty)
            progress.failures += 1

        while progress.level < t.max_level and progress.mastery_pct >= (progress.level + 1) * t.level_step:
            progress.level += 1
            profile.milestones.append(
                MilestoneSignal(
                    kind=MilestoneKind.LEVEL_UP,
                    skill=skill,
                    level=progress.level,
                    event_id=event.id,
                    timestamp=event.timestamp,
                    prior_attempts=prior_attempts,
                )
            )
            logger.info(f"{profile.user_id}: {skill} reached level {progress.level}")

        self._record_sample(progress, session_id, event.timestamp)

        previous_rate = progress.improvement_rate
        progress.improvement_rate = compute_improvement_rate(
            progress.samples, t.improvement_window_sessions
        )
        progress.previous_improvement_rate = previous_rate
        if previous_rate <= 0 < progress.improvement_rate:
            profile.milestones.append(
                MilestoneSignal(
                    kind=MilestoneKind.IMPROVEMENT_TURNAROUND,
                    skill=skill,
                    event_id=event.id,
                    timestamp=event.timestamp,
                    prior_attempts=prior_attempts,
                )
            )

    @staticmethod
    def _record_sample(progress: SkillProgress, session_id: int, timestamp: datetime) -> None:
        """Keep one mastery sample per session: the latest value within it."""
        if progress.samples and progress.samples[-1].session_id == session_id:
            progress.samples[-1].mastery = progress.mastery_pct
            progress.samples[-1].timestamp = timestamp
        else:
            progress.samples.append(
                MasterySample(session_id=session_id, timestamp=timestamp, mastery=progress.mastery_pct)
            )
        if len(progress.samples) > MAX_SAMPLES_PER_SKILL:
            del progress.samples[:-MAX_SAMPLES_PER_SKILL]

    def _prune_milestones(self, profile: LearningProfile, now: datetime) -> None:
        cutoff = now - timedelta(days=self.tunables.pattern_window_days)
        profile.milestones = [m for m in profile.milestones if m.timestamp >= cutoff]

    # ========================================
    # Sessions
    # ========================================

    def _update_session(self, profile: LearningProfile, event: Event) -> SessionSummary:
        gap = timedelta(minutes=self.tunables.session_gap_minutes)
        current = profile.current_session
        opens_session = (
            current is None
            or event.event_kind == EventKind.START
            or event.timestamp - current.last_event_at > gap
        )
        if opens_session:
            if current is not None:
                self._close_session(profile, current)
            profile.session_count += 1
            current = SessionSummary(
                session_id=profile.session_count,
                started_at=event.timestamp,
                last_event_at=event.timestamp,
            )
            profile.current_session = current

        current.event_count += 1
        current.last_event_at = event.timestamp
        if event.tool_name not in current.tools:
            current.tools.append(event.tool_name)
        if event.event_kind == EventKind.START:
            current.goals_started += 1
        elif event.event_kind == EventKind.COMPLETE:
            current.goals_completed += 1
        current.engagement = session_engagement(current)

        self._refresh_session_stats(profile)
        return current

    def _close_session(self, profile: LearningProfile, session: SessionSummary) -> None:
        profile.sessions.append(session)
        limit = self.tunables.session_history_limit
        if len(profile.sessions) > limit:
            del profile.sessions[:-limit]

    def _refresh_session_stats(self, profile: LearningProfile) -> None:
        all_sessions = list(profile.sessions)
        if profile.current_session is not None:
            all_sessions.append(profile.current_session)
        if all_sessions:
            profile.average_session_minutes = _mean([s.duration_minutes for s in all_sessions])
        profile.engagement_trend = engagement_trend(all_sessions)


def engagement_trend(sessions: list[SessionSummary]) -> EngagementTrend:
    """Compare the last 5 sessions' engagement with the 5 before them."""
    recent = sessions[-ENGAGEMENT_TREND_WINDOW:]
    previous = sessions[-2 * ENGAGEMENT_TREND_WINDOW:-ENGAGEMENT_TREND_WINDOW]
    if not previous or not recent:
        return EngagementTrend.STABLE

    previous_avg = _mean([s.engagement for s in previous])
    recent_avg = _mean([s.engagement for s in recent])
    if previous_avg <= 0:
        return EngagementTrend.IMPROVING if recent_avg > 0 else EngagementTrend.STABLE

    change_pct = (recent_avg - previous_avg) / previous_avg * 100.0
    if change_pct > ENGAGEMENT_TREND_THRESHOLD_PCT:
        return EngagementTrend.IMPROVING
    if change_pct < -ENGAGEMENT_TREND_THRESHOLD_PCT:
        return EngagementTrend.DECLINING
    return EngagementTrend.STABLE
