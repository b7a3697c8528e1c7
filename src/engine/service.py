"""
Learning analytics service facade.

Wires the components together over one key-value store:

    EventStore -> ProfileMaintainer -> PatternDetector -> FocusSynthesizer
        -> RecommendationEngine -> FeedbackLoop

Writes for one user are serialized by a per-user lock; different users never
share state. Downstream recomputation runs from the scheduler, computes in
memory and commits whole snapshots, so a cancelled run leaves the previous
snapshot in place.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from loguru import logger

from src.core.clock import Clock, SystemClock
from src.core.errors import NotFoundError, OutOfOrderEventError, ValidationError
from src.core.models import (
    Bundle,
    Energy,
    Event,
    FocusRun,
    LearningProfile,
    Outcome,
    Pattern,
    Recommendation,
    RecommendationStatus,
)
from src.core.tunables import Tunables
from src.feedback.loop import FeedbackLoop, FeedbackResult, prune_outcomes
from src.focus.synthesizer import FocusSynthesizer, prune_focus_runs
from src.insights.client import CachedInsightClient, HttpInsightClient, InsightClient
from src.patterns.detector import PatternDetector
from src.persistence.base import KeyValueStore
from src.persistence.memory_store import InMemoryKeyValueStore
from src.persistence.repository import AnalyticsRepository
from src.persistence.sql_store import SqlKeyValueStore
from src.profile.maintainer import ProfileMaintainer
from src.recommendations.bundles import create_bundle
from src.recommendations.engine import (
    RecommendationEngine,
    effectiveness_metrics,
    filter_by_context,
    rank_recommendations,
)
from src.scheduling.scheduler import QueueScheduler
from src.scheduling.worker import BatchReport, RecomputeWorker
from src.telemetry.event_store import EventStore
from src.telemetry.reorder import ReorderBuffer

if TYPE_CHECKING:
    from config import Settings

BUNDLE_HISTORY_LIMIT = 20


@dataclass
class IngestResult:
    event_id: str
    applied: bool

    def to_dict(self) -> dict[str, Any]:
        return {"event_id": self.event_id, "applied": self.applied}


@dataclass
class BatchIngestResult:
    applied: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    rejected: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": list(self.applied),
            "duplicates": list(self.duplicates),
            "rejected": dict(self.rejected),
        }


@dataclass
class RecomputeSummary:
    user_id: str
    computed_at: datetime
    patterns: int
    focus_areas: int
    active_recommendations: int
    insight_used: bool
    insight_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "computed_at": self.computed_at.isoformat(),
            "patterns": self.patterns,
            "focus_areas": self.focus_areas,
            "active_recommendations": self.active_recommendations,
            "insight_used": self.insight_used,
            "insight_error": self.insight_error,
        }


class LearningAnalyticsService:
    """Entry point used by the API, the CLI and the recompute worker."""

    def __init__(
        self,
        store: KeyValueStore,
        tunables: Tunables | None = None,
        clock: Clock | None = None,
        insight_client: InsightClient | None = None,
        insight_timeout: float = 8.0,
        recompute_interval_hours: float = 12.0,
        poll_seconds: float = 60.0,
    ):
        self.store = store
        self.tunables = tunables or Tunables()
        self.clock = clock or SystemClock()
        self.recompute_interval = timedelta(hours=recompute_interval_hours)

        self.repository = AnalyticsRepository(store)
        self.events = EventStore(self.repository, self.clock, self.tunables.event_retention_days)
        self.maintainer = ProfileMaintainer(self.tunables)
        self.detector = PatternDetector(self.tunables)
        self.insight_client = insight_client
        self.synthesizer = FocusSynthesizer(self.tunables, insight_client, insight_timeout, self.clock)
        self.recommender = RecommendationEngine(self.tunables)
        self.feedback = FeedbackLoop(self.recommender)
        self.scheduler = QueueScheduler(self.repository)
        self.worker = RecomputeWorker(self.recompute_user, self.scheduler, self.clock, poll_seconds)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> LearningAnalyticsService:
        """Build a service from application settings."""
        if settings.use_memory_store:
            store: KeyValueStore = InMemoryKeyValueStore()
        else:
            store = SqlKeyValueStore(settings.database_url, echo=settings.log_level == "DEBUG")

        insight_client: InsightClient | None = None
        if settings.has_insight_service():
            insight_client = CachedInsightClient(
                HttpInsightClient(
                    settings.insight_service_url,
                    api_key=settings.insight_api_key,
                    timeout_seconds=settings.insight_timeout_seconds,
                ),
                ttl_seconds=settings.insight_cache_ttl_seconds,
                max_entries=settings.insight_cache_max_entries,
                clock=clock,
            )

        return cls(
            store,
            tunables=Tunables.from_settings(settings),
            clock=clock,
            insight_client=insight_client,
            insight_timeout=settings.insight_timeout_seconds,
            recompute_interval_hours=settings.recompute_interval_hours,
            poll_seconds=settings.scheduler_poll_seconds,
        )

    def user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    async def aclose(self) -> None:
        if self.insight_client is not None:
            await self.insight_client.close()
        self.store.close()

    # ========================================
    # Ingestion
    # ========================================

    def ingest_event(self, event: Event) -> IngestResult:
        """
        Validate, store and apply one event.

        The profile is written before the event log. A retry after a failed
        log write finds the id on the profile and only completes the log, so
        a delivery retried after any partial failure is applied exactly once.

        Raises:
            ValidationError: Schema violation or outside retention
            OutOfOrderEventError: Earlier than the user's last applied event
        """
        event.validate()
        with self.user_lock(event.user_id):
            profile = self.repository.load_profile(event.user_id)
            if profile is not None and event.id in profile.recent_event_ids:
                self._complete_log(event)
                return IngestResult(event_id=event.id, applied=False)
            if self.events.contains(event.user_id, event.id):
                return IngestResult(event_id=event.id, applied=False)

            self.events.check_retention(event)
            updated = self.maintainer.apply(profile, event)
            self.repository.save_profile(updated)
            self.events.append(event)

        self.scheduler.schedule(event.user_id, self.clock.now() + self.recompute_interval)
        return IngestResult(event_id=event.id, applied=True)

    def ingest_batch(self, events: list[Event]) -> BatchIngestResult:
        """Reorder a batch by (timestamp, id) and apply it; bad events are reported, not raised."""
        buffer = ReorderBuffer(events)
        result = BatchIngestResult(duplicates=list(buffer.duplicates))
        for event in buffer.drain():
            try:
                outcome = self.ingest_event(event)
            except ValidationError as e:
                result.rejected[event.id] = str(e)
                continue
            if outcome.applied:
                result.applied.append(event.id)
            else:
                result.duplicates.append(event.id)
        logger.info(
            f"Batch ingest: {len(result.applied)} applied, {len(result.duplicates)} duplicates, "
            f"{len(result.rejected)} rejected"
        )
        return result

    # ========================================
    # Queries
    # ========================================

    def list_users(self) -> list[str]:
        return self.repository.list_users()

    def get_profile(self, user_id: str) -> LearningProfile:
        profile = self.repository.load_profile(user_id)
        if profile is None:
            raise NotFoundError("user", user_id)
        return profile

    def get_patterns(self, user_id: str) -> list[Pattern]:
        self.get_profile(user_id)
        return self.repository.load_patterns(user_id)

    def get_focus_history(self, user_id: str) -> list[FocusRun]:
        self.get_profile(user_id)
        return self.repository.load_focus_runs(user_id)

    def get_recommendations(
        self,
        user_id: str,
        limit: int = 10,
        energy: Energy | None = None,
        available_minutes: int | None = None,
        include_inactive: bool = False,
    ) -> list[Recommendation]:
        """
        Ranked recommendations; age-based supersession is applied on read.

        With available_minutes, session lengths are clamped to it (the
        stored recommendations keep their planned length). The energy level
        filters by session length after clamping.
        """
        profile = self.get_profile(user_id)
        recommendations = self._load_expired(user_id)
        if include_inactive:
            selected = rank_recommendations(recommendations)
        else:
            selected = rank_recommendations(
                [r for r in recommendations if r.status == RecommendationStatus.ACTIVE]
            )
        if available_minutes is not None:
            selected = self.recommender.fit_to_time(selected, available_minutes, profile.style)
        selected = filter_by_context(selected, energy)
        return selected[: max(0, limit)]

    def get_recommendation(self, recommendation_id: str) -> Recommendation:
        user_id = self._owner(recommendation_id)
        return self._find(self._load_expired(user_id), recommendation_id)

    def get_bundle(self, user_id: str, focus_area: str | None, minutes: int) -> Bundle:
        self.get_profile(user_id)
        recommendations = self._load_expired(user_id)
        runs = self.repository.load_focus_runs(user_id)
        current_focus = runs[-1].areas if runs else []
        bundle = create_bundle(user_id, recommendations, focus_area, minutes, self.clock.now(), current_focus)
        with self.user_lock(user_id):
            bundles = self.repository.load_bundles(user_id) + [bundle]
            self.repository.save_bundles(user_id, bundles[-BUNDLE_HISTORY_LIMIT:])
        return bundle

    def effectiveness(self, user_id: str) -> dict[str, Any]:
        self.get_profile(user_id)
        return effectiveness_metrics(
            self.repository.load_recommendations(user_id),
            self.repository.load_outcomes(user_id),
        )

    # ========================================
    # Feedback & lifecycle
    # ========================================

    def record_outcome(self, recommendation_id: str, outcome: Outcome) -> FeedbackResult:
        """
        Record an outcome and adapt.

        Raises:
            NotFoundError: Unknown recommendation
            ValidationError: Recommendation is completed or superseded
        """
        user_id = self._owner(recommendation_id)
        now = self.clock.now()
        with self.user_lock(user_id):
            profile = self.get_profile(user_id)
            recommendations = self.repository.load_recommendations(user_id)
            outcomes = self.repository.load_outcomes(user_id)
            self.recommender.expire(recommendations, now)

            result = self.feedback.record_outcome(
                profile, recommendations, outcomes, recommendation_id, outcome, now
            )
            if not result.duplicate:
                self.repository.save_recommendations(user_id, recommendations)
                self.repository.save_outcomes(
                    user_id, prune_outcomes(outcomes, now, self.tunables.recommendation_history_days)
                )
                self.repository.save_profile(profile)

        if result.recompute_requested:
            self.scheduler.schedule(user_id, now)
        return result

    def pause(self, recommendation_id: str) -> Recommendation:
        return self._transition(recommendation_id, RecommendationStatus.ACTIVE, RecommendationStatus.PAUSED)

    def resume(self, recommendation_id: str) -> Recommendation:
        return self._transition(recommendation_id, RecommendationStatus.PAUSED, RecommendationStatus.ACTIVE)

    def _transition(
        self,
        recommendation_id: str,
        expected: RecommendationStatus,
        target: RecommendationStatus,
    ) -> Recommendation:
        user_id = self._owner(recommendation_id)
        with self.user_lock(user_id):
            recommendations = self.repository.load_recommendations(user_id)
            self.recommender.expire(recommendations, self.clock.now())
            rec = self._find(recommendations, recommendation_id)
            if rec.status != expected:
                raise ValidationError(
                    f"Recommendation {rec.id} is {rec.status.value}, cannot move to {target.value}",
                    field="status",
                )
            rec.status = target
            self.repository.save_recommendations(user_id, recommendations)
        return rec

    # ========================================
    # Recomputation
    # ========================================

    async def recompute_user(self, user_id: str) -> RecomputeSummary:
        """
        Detect patterns, synthesize focus and refresh recommendations for one user.

        Store access runs in a worker thread so the event loop never waits on
        the database or a user lock. Patterns, focus history and
        recommendations are committed together; a failed commit leaves the
        previous snapshot in place.
        """
        now = self.clock.now()
        profile, events, previous = await asyncio.to_thread(self._recompute_inputs, user_id, now)

        patterns = self.detector.detect(profile, events, previous, now)
        run = await self.synthesizer.synthesize_focus_areas(profile, patterns, now)

        recommendations = await asyncio.to_thread(self._commit_recompute, user_id, patterns, run, now)

        active = sum(1 for r in recommendations if r.status == RecommendationStatus.ACTIVE)
        logger.info(
            f"Recomputed {user_id}: {len(patterns)} patterns, {len(run.areas)} focus areas, "
            f"{active} active recommendations"
        )
        return RecomputeSummary(
            user_id=user_id,
            computed_at=now,
            patterns=len(patterns),
            focus_areas=len(run.areas),
            active_recommendations=active,
            insight_used=run.insight_used,
            insight_error=run.insight_error,
        )

    def _recompute_inputs(self, user_id: str, now: datetime) -> tuple[LearningProfile, list[Event], list[Pattern]]:
        with self.user_lock(user_id):
            profile = self.get_profile(user_id)
            self.events.prune(user_id)
            since = now - timedelta(days=self.tunables.pattern_window_days)
            events = self.events.events(user_id, since=since)
            previous = self.repository.load_patterns(user_id)
        return profile, events, previous

    def _commit_recompute(
        self,
        user_id: str,
        patterns: list[Pattern],
        run: FocusRun,
        now: datetime,
    ) -> list[Recommendation]:
        with self.user_lock(user_id):
            current_profile = self.get_profile(user_id)
            recommendations = self.recommender.refresh(
                self.repository.load_recommendations(user_id), run, current_profile, now
            )
            runs = prune_focus_runs(
                self.repository.load_focus_runs(user_id) + [run], now, self.tunables.focus_history_days
            )
            self.repository.save_derived(user_id, patterns, runs, recommendations)
        return recommendations

    async def run_scheduled(self, now: datetime | None = None) -> BatchReport:
        return await self.worker.run_due(now)

    # ========================================
    # Helpers
    # ========================================

    def _complete_log(self, event: Event) -> None:
        """Append an event the profile already reflects, if the log missed it."""
        try:
            if self.events.append(event):
                logger.info(f"Recovered event {event.id} missing from the log of {event.user_id}")
        except OutOfOrderEventError as e:
            # Later events were logged since; the profile already counts this one.
            logger.warning(f"Event {event.id} not re-logged for {event.user_id}: {e}")

    def _owner(self, recommendation_id: str) -> str:
        user_id = self.repository.find_recommendation_owner(recommendation_id)
        if user_id is None:
            raise NotFoundError("recommendation", recommendation_id)
        return user_id

    @staticmethod
    def _find(recommendations: list[Recommendation], recommendation_id: str) -> Recommendation:
        rec = next((r for r in recommendations if r.id == recommendation_id), None)
        if rec is None:
            raise NotFoundError("recommendation", recommendation_id)
        return rec

    def _load_expired(self, user_id: str) -> list[Recommendation]:
        """Load recommendations, persisting any age-based supersession."""
        with self.user_lock(user_id):
            recommendations = self.repository.load_recommendations(user_id)
            if self.recommender.expire(recommendations, self.clock.now()):
                self.repository.save_recommendations(user_id, recommendations)
            return recommendations
