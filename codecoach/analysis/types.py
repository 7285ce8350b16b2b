"""
Value types passed between the engine components.

Components exchange these frozen dataclasses rather than ORM rows so that
the ranking, selection and scoring logic stays free of session state.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
}


class Difficulty(str, Enum):
    EASY = 'easy'
    MEDIUM = 'medium'
    HARD = 'hard'


DIFFICULTY_ORDER = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)


class SkillLevel(str, Enum):
    BEGINNER = 'beginner'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'


@dataclass(frozen=True)
class ReportedError:
    """A single error as reported by the analysis provider."""

    type: str
    severity: Severity
    line: int | None
    message: str
    suggestion: str | None = None
    area: str | None = None


@dataclass(frozen=True)
class AnalysisReport:
    """A provider response that passed structural validation."""

    errors: tuple[ReportedError, ...]
    weak_areas: frozenset[str]
    quality_score: float
    analysis_time_ms: int = 0
    provider: str = ''


@dataclass(frozen=True)
class RankedWeakArea:
    """A weak area as seen by downstream consumers, decay already applied."""

    tag: str
    weight: float
    severity_ema: float
    frequency: int
    last_seen: datetime

    def to_dict(self) -> dict:
        return {
            'tag': self.tag,
            'weight': round(self.weight, 6),
            'severity_ema': round(self.severity_ema, 6),
            'frequency': self.frequency,
            'last_seen': self.last_seen.isoformat(),
        }


@dataclass(frozen=True)
class GrowthScore:
    """Current per-event growth score of a user."""

    overall: float
    quality_component: float | None
    error_reduction_component: float
    problem_solving_component: float | None
    event_count: int = 0

    def to_dict(self) -> dict:
        return {
            'overall': self.overall,
            'quality_component': self.quality_component,
            'error_reduction_component': self.error_reduction_component,
            'problem_solving_component': self.problem_solving_component,
            'event_count': self.event_count,
        }


@dataclass
class PracticeSelection:
    """Selector output. An empty selection with ``no_candidates`` is a valid result."""

    problems: list = field(default_factory=list)
    no_candidates: bool = False

    @property
    def difficulties(self) -> set:
        return {p.difficulty for p in self.problems}
