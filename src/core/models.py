"""
Domain models for the learnloop analytics engine.

All records are plain dataclasses with str Enums for discriminators and
explicit to_dict()/from_dict() methods. Timestamps are timezone-aware UTC and
serialize as ISO-8601 strings.

Flow of records:
    Event -> LearningProfile/SkillProgress -> Pattern -> FocusArea
          -> Recommendation/Bundle -> Outcome -> LearningStyleProfile
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from src.core.clock import parse_timestamp
from src.core.errors import ValidationError


def new_id(prefix: str) -> str:
    """Generate a short prefixed identifier."""
    return f"{prefix}_{uuid4().hex[:16]}"


def _iso(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment else None


def _dt(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e


def _enum(enum_cls: type[Enum], value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} {value!r} (expected one of: {allowed})", field=field_name
        ) from e


def _require(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {key}", field=key)
    return value


def _check_range(value: float | None, low: float, high: float, field_name: str) -> None:
    if value is None:
        return
    if not low <= value <= high:
        raise ValidationError(f"{field_name} must be within [{low}, {high}], got {value}", field=field_name)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ========================================
# Enums
# ========================================


class EventKind(str, Enum):
    """Kinds of interaction telemetry."""

    SUCCESS = "success"
    ERROR = "error"
    START = "start"
    COMPLETE = "complete"
    NAVIGATION = "navigation"
    COMMUNICATION_ATTEMPT = "communication_attempt"

    @property
    def is_graded(self) -> bool:
        """Only successes and errors move mastery."""
        return self in (EventKind.SUCCESS, EventKind.ERROR)


class EngagementTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Pace(str, Enum):
    SLOW = "slow"
    MODERATE = "moderate"
    FAST = "fast"


class ChallengeTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PatternType(str, Enum):
    STRENGTH = "strength"
    CHALLENGE = "challenge"
    BREAKTHROUGH = "breakthrough"
    REGRESSION_WARNING = "regression_warning"


class BreakthroughKind(str, Enum):
    FIRST_SUCCESS = "first_success"
    CONSISTENCY_ACHIEVED = "consistency_achieved"
    LEVEL_UP = "level_up"
    SPEED_IMPROVEMENT = "speed_improvement"
    INDEPENDENCE_GAINED = "independence_gained"


class Significance(str, Enum):
    """Pattern significance, ordered low -> critical."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SIGNIFICANCE_RANK[self]


_SIGNIFICANCE_RANK = {
    Significance.LOW: 0,
    Significance.MODERATE: 1,
    Significance.HIGH: 2,
    Significance.CRITICAL: 3,
}


class Trend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class FocusKind(str, Enum):
    SKILL_BUILDING = "skill_building"
    REINFORCEMENT = "reinforcement"
    BREAKTHROUGH_ACCELERATION = "breakthrough_acceleration"
    NARRATIVE = "narrative"


class FocusSource(str, Enum):
    RULES = "rules"
    INSIGHT = "insight"


class Priority(str, Enum):
    """Recommendation / focus priority, ordered low -> critical."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2, "critical": 3}[self.value]


class RecommendationType(str, Enum):
    IMMEDIATE_ACTION = "immediate_action"
    SHORT_TERM_GOAL = "short_term_goal"
    LONG_TERM_PATHWAY = "long_term_pathway"
    ADAPTIVE_ADJUSTMENT = "adaptive_adjustment"
    BREAKTHROUGH_ACCELERATION = "breakthrough_acceleration"


class RecommendationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return self in (RecommendationStatus.COMPLETED, RecommendationStatus.SUPERSEDED)


class OutcomeType(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    NO_PROGRESS = "no_progress"
    REGRESSION = "regression"

    @property
    def is_positive(self) -> bool:
        return self in (OutcomeType.SUCCESS, OutcomeType.PARTIAL_SUCCESS)


class Energy(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ========================================
# Events
# ========================================


@dataclass
class Performance:
    accuracy: float | None = None
    latency_ms: float | None = None
    attempts: int = 1
    difficulty: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "latency_ms": self.latency_ms,
            "attempts": self.attempts,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Performance:
        data = data or {}
        return cls(
            accuracy=_float_or_none(data.get("accuracy"), "performance.accuracy"),
            latency_ms=_float_or_none(data.get("latency_ms"), "performance.latency_ms"),
            attempts=_int(data.get("attempts", 1), "performance.attempts"),
            difficulty=_int(data.get("difficulty", 1), "performance.difficulty"),
        )


@dataclass
class Behavior:
    engagement: float = 50.0
    frustration: float = 0.0
    persistence: float = 50.0
    attention: float = 50.0
    mood: str = "neutral"

    def to_dict(self) -> dict[str, Any]:
        return {
            "engagement": self.engagement,
            "frustration": self.frustration,
            "persistence": self.persistence,
            "attention": self.attention,
            "mood": self.mood,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Behavior:
        data = data or {}
        return cls(
            engagement=_float(data.get("engagement", 50.0), "behavior.engagement"),
            frustration=_float(data.get("frustration", 0.0), "behavior.frustration"),
            persistence=_float(data.get("persistence", 50.0), "behavior.persistence"),
            attention=_float(data.get("attention", 50.0), "behavior.attention"),
            mood=str(data.get("mood") or "neutral"),
        )


@dataclass
class Environment:
    time_of_day: str = "unknown"
    location: str | None = None
    distractions: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_of_day": self.time_of_day,
            "location": self.location,
            "distractions": self.distractions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Environment:
        data = data or {}
        distractions = data.get("distractions")
        return cls(
            time_of_day=str(data.get("time_of_day") or "unknown"),
            location=data.get("location"),
            distractions=_int(distractions, "environment.distractions") if distractions is not None else None,
        )


def _float(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number, got {value!r}", field=field_name) from e


def _float_or_none(value: Any, field_name: str) -> float | None:
    return None if value is None else _float(value, field_name)


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    try:
        as_float = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be an integer, got {value!r}", field=field_name) from e
    if not as_float.is_integer():
        raise ValidationError(f"{field_name} must be an integer, got {value!r}", field=field_name)
    return int(as_float)


@dataclass(frozen=True)
class Event:
    """
    Immutable interaction fact submitted by the telemetry collector.

    Never mutated after ingestion; pruned once older than the retention window.
    """

    id: str
    user_id: str
    timestamp: datetime
    tool_name: str
    event_kind: EventKind
    performance: Performance = field(default_factory=Performance)
    behavior: Behavior = field(default_factory=Behavior)
    environment: Environment = field(default_factory=Environment)

    def validate(self) -> Event:
        """Check field ranges, raising ValidationError on the first violation."""
        for name in ("id", "user_id", "tool_name"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{name} must be a non-empty string", field=name)
        perf = self.performance
        _check_range(perf.accuracy, 0, 100, "performance.accuracy")
        if perf.latency_ms is not None and perf.latency_ms < 0:
            raise ValidationError("performance.latency_ms must be >= 0", field="performance.latency_ms")
        if perf.attempts < 1:
            raise ValidationError("performance.attempts must be >= 1", field="performance.attempts")
        _check_range(perf.difficulty, 1, 5, "performance.difficulty")
        for name in ("engagement", "frustration", "persistence", "attention"):
            _check_range(getattr(self.behavior, name), 0, 100, f"behavior.{name}")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "timestamp": _iso(self.timestamp),
            "tool_name": self.tool_name,
            "event_kind": self.event_kind.value,
            "performance": self.performance.to_dict(),
            "behavior": self.behavior.to_dict(),
            "environment": self.environment.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Build and validate an event from a raw payload."""
        if not isinstance(data, dict):
            raise ValidationError("Event payload must be an object")
        event = cls(
            id=str(_require(data, "id")),
            user_id=str(_require(data, "user_id")),
            timestamp=_dt(_require(data, "timestamp")),
            tool_name=str(_require(data, "tool_name")),
            event_kind=_enum(EventKind, _require(data, "event_kind"), "event_kind"),
            performance=Performance.from_dict(data.get("performance")),
            behavior=Behavior.from_dict(data.get("behavior")),
            environment=Environment.from_dict(data.get("environment")),
        )
        return event.validate()


# ========================================
# Profile
# ========================================


@dataclass
class MasterySample:
    """Mastery observed at the end of one session's graded attempts."""

    session_id: int
    timestamp: datetime
    mastery: float

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "timestamp": _iso(self.timestamp), "mastery": self.mastery}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MasterySample:
        return cls(
            session_id=int(data["session_id"]),
            timestamp=_dt(data["timestamp"]),
            mastery=float(data["mastery"]),
        )


@dataclass
class SkillProgress:
    """Per (user, skill) progress. Mutated only by the profile maintainer."""

    skill: str
    mastery_pct: float = 0.0
    level: int = 1
    sessions_practiced: int = 0
    total_minutes: float = 0.0
    improvement_rate: float = 0.0
    previous_improvement_rate: float = 0.0
    last_practice: datetime | None = None
    successes: int = 0
    failures: int = 0
    samples: list[MasterySample] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill": self.skill,
            "mastery_pct": round(self.mastery_pct, 4),
            "level": self.level,
            "sessions_practiced": self.sessions_practiced,
            "total_minutes": round(self.total_minutes, 4),
            "improvement_rate": round(self.improvement_rate, 4),
            "previous_improvement_rate": round(self.previous_improvement_rate, 4),
            "last_practice": _iso(self.last_practice),
            "successes": self.successes,
            "failures": self.failures,
            "samples": [s.to_dict() for s in self.samples],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillProgress:
        return cls(
            skill=data["skill"],
            mastery_pct=float(data.get("mastery_pct", 0.0)),
            level=int(data.get("level", 1)),
            sessions_practiced=int(data.get("sessions_practiced", 0)),
            total_minutes=float(data.get("total_minutes", 0.0)),
            improvement_rate=float(data.get("improvement_rate", 0.0)),
            previous_improvement_rate=float(data.get("previous_improvement_rate", 0.0)),
            last_practice=_dt(data.get("last_practice")),
            successes=int(data.get("successes", 0)),
            failures=int(data.get("failures", 0)),
            samples=[MasterySample.from_dict(s) for s in data.get("samples", [])],
        )


@dataclass
class SessionSummary:
    session_id: int
    started_at: datetime
    last_event_at: datetime
    event_count: int = 0
    tools: list[str] = field(default_factory=list)
    goals_started: int = 0
    goals_completed: int = 0
    engagement: float = 0.0

    @property
    def duration_minutes(self) -> float:
        return (self.last_event_at - self.started_at).total_seconds() / 60.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": _iso(self.started_at),
            "last_event_at": _iso(self.last_event_at),
            "event_count": self.event_count,
            "tools": list(self.tools),
            "goals_started": self.goals_started,
            "goals_completed": self.goals_completed,
            "engagement": round(self.engagement, 4),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSummary:
        return cls(
            session_id=int(data["session_id"]),
            started_at=_dt(data["started_at"]),
            last_event_at=_dt(data["last_event_at"]),
            event_count=int(data.get("event_count", 0)),
            tools=list(data.get("tools", [])),
            goals_started=int(data.get("goals_started", 0)),
            goals_completed=int(data.get("goals_completed", 0)),
            engagement=float(data.get("engagement", 0.0)),
        )


class MilestoneKind(str, Enum):
    LEVEL_UP = "level_up"
    IMPROVEMENT_TURNAROUND = "improvement_turnaround"


@dataclass
class MilestoneSignal:
    """
    Emitted by the profile maintainer, consumed by pattern detection.

    level_up: a skill crossed a level threshold.
    improvement_turnaround: improvement_rate went from <= 0 to > 0.
    """

    kind: MilestoneKind
    skill: str
    event_id: str
    timestamp: datetime
    prior_attempts: int
    level: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "skill": self.skill,
            "level": self.level,
            "event_id": self.event_id,
            "timestamp": _iso(self.timestamp),
            "prior_attempts": self.prior_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MilestoneSignal:
        level = data.get("level")
        return cls(
            kind=MilestoneKind(data["kind"]),
            skill=data["skill"],
            level=int(level) if level is not None else None,
            event_id=data["event_id"],
            timestamp=_dt(data["timestamp"]),
            prior_attempts=int(data.get("prior_attempts", 0)),
        )


@dataclass
class LearningStyleProfile:
    """Modality and pacing preferences that bias recommendation scoring."""

    visual_preference: float = 70.0
    auditory_preference: float = 40.0
    kinesthetic_preference: float = 60.0
    pace_preference: Pace = Pace.MODERATE
    challenge_tolerance: ChallengeTolerance = ChallengeTolerance.MEDIUM
    optimal_session_length: int = 20
    break_frequency_minutes: int = 10
    intrinsic_motivation: float = 60.0
    reward_responsiveness: float = 70.0

    def preferred_modality(self) -> str:
        prefs = {
            "visual": self.visual_preference,
            "auditory": self.auditory_preference,
            "kinesthetic": self.kinesthetic_preference,
        }
        return max(prefs, key=lambda k: prefs[k])

    def to_dict(self) -> dict[str, Any]:
        return {
            "visual_preference": self.visual_preference,
            "auditory_preference": self.auditory_preference,
            "kinesthetic_preference": self.kinesthetic_preference,
            "pace_preference": self.pace_preference.value,
            "challenge_tolerance": self.challenge_tolerance.value,
            "optimal_session_length": self.optimal_session_length,
            "break_frequency_minutes": self.break_frequency_minutes,
            "intrinsic_motivation": self.intrinsic_motivation,
            "reward_responsiveness": self.reward_responsiveness,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LearningStyleProfile:
        data = data or {}
        default = cls()
        return cls(
            visual_preference=float(data.get("visual_preference", default.visual_preference)),
            auditory_preference=float(data.get("auditory_preference", default.auditory_preference)),
            kinesthetic_preference=float(data.get("kinesthetic_preference", default.kinesthetic_preference)),
            pace_preference=Pace(data.get("pace_preference", default.pace_preference.value)),
            challenge_tolerance=ChallengeTolerance(
                data.get("challenge_tolerance", default.challenge_tolerance.value)
            ),
            optimal_session_length=int(data.get("optimal_session_length", default.optimal_session_length)),
            break_frequency_minutes=int(data.get("break_frequency_minutes", default.break_frequency_minutes)),
            intrinsic_motivation=float(data.get("intrinsic_motivation", default.intrinsic_motivation)),
            reward_responsiveness=float(data.get("reward_responsiveness", default.reward_responsiveness)),
        )


@dataclass
class LearningProfile:
    """Per-user longitudinal profile. Created on the first event, long-lived."""

    user_id: str
    created_at: datetime
    skills: dict[str, SkillProgress] = field(default_factory=dict)
    session_count: int = 0
    average_session_minutes: float = 0.0
    engagement_trend: EngagementTrend = EngagementTrend.STABLE
    current_session: SessionSummary | None = None
    sessions: list[SessionSummary] = field(default_factory=list)
    style: LearningStyleProfile = field(default_factory=LearningStyleProfile)
    milestones: list[MilestoneSignal] = field(default_factory=list)
    last_event_at: datetime | None = None
    recent_event_ids: list[str] = field(default_factory=list)
    event_count: int = 0

    @property
    def engagement_score(self) -> float:
        return self.current_session.engagement if self.current_session else 0.0

    def skill(self, name: str) -> SkillProgress | None:
        return self.skills.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "skills": {name: sp.to_dict() for name, sp in sorted(self.skills.items())},
            "session_count": self.session_count,
            "average_session_minutes": round(self.average_session_minutes, 4),
            "engagement_trend": self.engagement_trend.value,
            "engagement_score": round(self.engagement_score, 4),
            "current_session": self.current_session.to_dict() if self.current_session else None,
            "sessions": [s.to_dict() for s in self.sessions],
            "style": self.style.to_dict(),
            "milestones": [s.to_dict() for s in self.milestones],
            "last_event_at": _iso(self.last_event_at),
            "recent_event_ids": list(self.recent_event_ids),
            "event_count": self.event_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningProfile:
        current = data.get("current_session")
        return cls(
            user_id=data["user_id"],
            created_at=_dt(data["created_at"]),
            skills={name: SkillProgress.from_dict(sp) for name, sp in data.get("skills", {}).items()},
            session_count=int(data.get("session_count", 0)),
            average_session_minutes=float(data.get("average_session_minutes", 0.0)),
            engagement_trend=EngagementTrend(data.get("engagement_trend", "stable")),
            current_session=SessionSummary.from_dict(current) if current else None,
            sessions=[SessionSummary.from_dict(s) for s in data.get("sessions", [])],
            style=LearningStyleProfile.from_dict(data.get("style")),
            milestones=[MilestoneSignal.from_dict(s) for s in data.get("milestones", [])],
            last_event_at=_dt(data.get("last_event_at")),
            recent_event_ids=list(data.get("recent_event_ids", [])),
            event_count=int(data.get("event_count", 0)),
        )


# ========================================
# Patterns & Focus
# ========================================


@dataclass
class Pattern:
    """Derived observation, upserted by (user_id, type, key)."""

    user_id: str
    type: PatternType
    key: str
    description: str
    confidence: float
    first_observed: datetime
    last_observed: datetime
    significance: Significance
    skill: str | None = None
    breakthrough_kind: BreakthroughKind | None = None
    evidence_event_ids: list[str] = field(default_factory=list)
    frequency: int = 1
    trend: Trend = Trend.STABLE

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.user_id, self.type.value, self.key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.type.value,
            "key": self.key,
            "description": self.description,
            "skill": self.skill,
            "breakthrough_kind": self.breakthrough_kind.value if self.breakthrough_kind else None,
            "confidence": round(self.confidence, 6),
            "evidence_event_ids": list(self.evidence_event_ids),
            "first_observed": _iso(self.first_observed),
            "last_observed": _iso(self.last_observed),
            "frequency": self.frequency,
            "trend": self.trend.value,
            "significance": self.significance.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pattern:
        kind = data.get("breakthrough_kind")
        return cls(
            user_id=data["user_id"],
            type=PatternType(data["type"]),
            key=data["key"],
            description=data.get("description", ""),
            skill=data.get("skill"),
            breakthrough_kind=BreakthroughKind(kind) if kind else None,
            confidence=float(data["confidence"]),
            evidence_event_ids=list(data.get("evidence_event_ids", [])),
            first_observed=_dt(data["first_observed"]),
            last_observed=_dt(data["last_observed"]),
            frequency=int(data.get("frequency", 1)),
            trend=Trend(data.get("trend", "stable")),
            significance=Significance(data["significance"]),
        )


@dataclass
class FocusArea:
    area: str
    kind: FocusKind
    rationale: str
    priority: Priority
    confidence: float
    skill: str | None = None
    weeks_to_breakthrough: int | None = None
    source: FocusSource = FocusSource.RULES

    def to_dict(self) -> dict[str, Any]:
        return {
            "area": self.area,
            "kind": self.kind.value,
            "rationale": self.rationale,
            "priority": self.priority.value,
            "confidence": round(self.confidence, 6),
            "skill": self.skill,
            "weeks_to_breakthrough": self.weeks_to_breakthrough,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusArea:
        return cls(
            area=data["area"],
            kind=FocusKind(data["kind"]),
            rationale=data.get("rationale", ""),
            priority=Priority(data["priority"]),
            confidence=float(data["confidence"]),
            skill=data.get("skill"),
            weeks_to_breakthrough=data.get("weeks_to_breakthrough"),
            source=FocusSource(data.get("source", "rules")),
        )


@dataclass
class FocusRun:
    """One synthesis result. Superseded by the next run, kept for history."""

    id: str
    user_id: str
    created_at: datetime
    areas: list[FocusArea] = field(default_factory=list)
    insight_used: bool = False
    insight_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "areas": [a.to_dict() for a in self.areas],
            "insight_used": self.insight_used,
            "insight_error": self.insight_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FocusRun:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            created_at=_dt(data["created_at"]),
            areas=[FocusArea.from_dict(a) for a in data.get("areas", [])],
            insight_used=bool(data.get("insight_used", False)),
            insight_error=data.get("insight_error"),
        )


# ========================================
# Recommendations
# ========================================


@dataclass
class Activity:
    name: str
    game_type: str
    modality: str
    target_skills: list[str] = field(default_factory=list)
    difficulty: int = 2

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "game_type": self.game_type,
            "modality": self.modality,
            "target_skills": list(self.target_skills),
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Activity:
        return cls(
            name=data["name"],
            game_type=data.get("game_type", "practice"),
            modality=data.get("modality", "visual"),
            target_skills=list(data.get("target_skills", [])),
            difficulty=int(data.get("difficulty", 2)),
        )


@dataclass
class Timing:
    duration_minutes: int
    frequency: str = "daily"

    def to_dict(self) -> dict[str, Any]:
        return {"duration_minutes": self.duration_minutes, "frequency": self.frequency}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Timing:
        return cls(duration_minutes=int(data["duration_minutes"]), frequency=data.get("frequency", "daily"))


@dataclass
class Progress:
    attempts: int = 0
    successes: int = 0
    last_activity: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "last_activity": _iso(self.last_activity),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Progress:
        data = data or {}
        return cls(
            attempts=int(data.get("attempts", 0)),
            successes=int(data.get("successes", 0)),
            last_activity=_dt(data.get("last_activity")),
        )


@dataclass
class Recommendation:
    id: str
    user_id: str
    type: RecommendationType
    priority: Priority
    confidence: float
    title: str
    description: str
    focus_area: str
    activity: Activity
    timing: Timing
    generated_at: datetime
    actions: list[str] = field(default_factory=list)
    expected_outcomes: list[str] = field(default_factory=list)
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    progress: Progress = field(default_factory=Progress)
    score: float = 0.0
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "priority": self.priority.value,
            "confidence": round(self.confidence, 6),
            "title": self.title,
            "description": self.description,
            "focus_area": self.focus_area,
            "actions": list(self.actions),
            "expected_outcomes": list(self.expected_outcomes),
            "activity": self.activity.to_dict(),
            "timing": self.timing.to_dict(),
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "generated_at": _iso(self.generated_at),
            "score": round(self.score, 6),
            "rationale": self.rationale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Recommendation:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=RecommendationType(data["type"]),
            priority=Priority(data["priority"]),
            confidence=float(data["confidence"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            focus_area=data.get("focus_area", ""),
            actions=list(data.get("actions", [])),
            expected_outcomes=list(data.get("expected_outcomes", [])),
            activity=Activity.from_dict(data["activity"]),
            timing=Timing.from_dict(data["timing"]),
            status=RecommendationStatus(data.get("status", "active")),
            progress=Progress.from_dict(data.get("progress")),
            generated_at=_dt(data["generated_at"]),
            score=float(data.get("score", 0.0)),
            rationale=data.get("rationale", ""),
        )


@dataclass
class Bundle:
    """Time-boxed group of recommendations for one focus area."""

    id: str
    user_id: str
    focus_area: str
    name: str
    created_at: datetime
    time_budget_minutes: int
    recommendations: list[Recommendation] = field(default_factory=list)
    synergy_score: float = 0.0
    pathway_coherence: float = 0.0

    @property
    def estimated_total_minutes(self) -> int:
        return sum(r.timing.duration_minutes for r in self.recommendations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "focus_area": self.focus_area,
            "name": self.name,
            "created_at": _iso(self.created_at),
            "time_budget_minutes": self.time_budget_minutes,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "estimated_total_minutes": self.estimated_total_minutes,
            "synergy_score": round(self.synergy_score, 4),
            "pathway_coherence": round(self.pathway_coherence, 4),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bundle:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            focus_area=data["focus_area"],
            name=data.get("name", ""),
            created_at=_dt(data["created_at"]),
            time_budget_minutes=int(data.get("time_budget_minutes", 0)),
            recommendations=[Recommendation.from_dict(r) for r in data.get("recommendations", [])],
            synergy_score=float(data.get("synergy_score", 0.0)),
            pathway_coherence=float(data.get("pathway_coherence", 0.0)),
        )


# ========================================
# Outcomes
# ========================================


@dataclass
class OutcomeMetric:
    name: str
    achieved: float
    target: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "achieved": self.achieved, "target": self.target}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutcomeMetric:
        return cls(
            name=str(_require(data, "name")),
            achieved=_float(data.get("achieved"), "metrics.achieved"),
            target=_float(data.get("target"), "metrics.target"),
        )


@dataclass
class OutcomeFeedback:
    """Subjective 1-5 ratings from the learner or facilitator."""

    engagement: int
    difficulty: int
    enjoyment: int

    def to_dict(self) -> dict[str, Any]:
        return {"engagement": self.engagement, "difficulty": self.difficulty, "enjoyment": self.enjoyment}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutcomeFeedback:
        feedback = cls(
            engagement=_int(data.get("engagement", 3), "feedback.engagement"),
            difficulty=_int(data.get("difficulty", 3), "feedback.difficulty"),
            enjoyment=_int(data.get("enjoyment", 3), "feedback.enjoyment"),
        )
        for name in ("engagement", "difficulty", "enjoyment"):
            _check_range(getattr(feedback, name), 1, 5, f"feedback.{name}")
        return feedback


@dataclass
class Outcome:
    """Result of executing a recommendation. Immutable once recorded."""

    id: str
    recommendation_id: str
    outcome_type: OutcomeType
    metrics: list[OutcomeMetric] = field(default_factory=list)
    feedback: OutcomeFeedback | None = None
    recorded_at: datetime | None = None
    adaptive_insights: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recommendation_id": self.recommendation_id,
            "outcome_type": self.outcome_type.value,
            "metrics": [m.to_dict() for m in self.metrics],
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "recorded_at": _iso(self.recorded_at),
            "adaptive_insights": list(self.adaptive_insights),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Outcome:
        if not isinstance(data, dict):
            raise ValidationError("Outcome payload must be an object")
        feedback = data.get("feedback")
        metrics = data.get("metrics") or []
        if not isinstance(metrics, list):
            raise ValidationError("metrics must be a list", field="metrics")
        return cls(
            id=str(_require(data, "id")),
            recommendation_id=str(_require(data, "recommendation_id")),
            outcome_type=_enum(OutcomeType, _require(data, "outcome_type"), "outcome_type"),
            metrics=[OutcomeMetric.from_dict(m) for m in metrics],
            feedback=OutcomeFeedback.from_dict(feedback) if feedback else None,
            recorded_at=_dt(data.get("recorded_at")),
            adaptive_insights=list(data.get("adaptive_insights", [])),
        )
