"""
Growth score engine.

The current score of a user is a pure fold over their most recent analysis
outcomes (in ``submitted_at`` order) and practice attempts, so a late
outcome simply lands in its place on the next recomputation. The result is
stored as the user's ``GrowthState``; no score lives in process memory.

Weekly snapshots are the same fold cut off at the week's end. Closing a
week is idempotent, and a closed week is never rewritten: a correction is
appended as a new snapshot that supersedes the old one.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from codecoach.utils import utcnow, week_bounds, week_start_of

from .errors import NonMonotonicSnapshotError, ReferentialIntegrityError
from .locks import get_user_lock
from .types import GrowthScore

logger = logging.getLogger(__name__)

QUALITY_ALPHA = 0.2
ERROR_WINDOW = 5
ATTEMPT_WINDOW = 10
ERROR_REDUCTION_NEUTRAL = 50.0
ERROR_REDUCTION_STEP = 20.0
REPLAY_WINDOW = 50
TREND_THRESHOLD = 1.0

COMPONENT_WEIGHTS = {
    'quality': 0.4,
    'error_reduction': 0.3,
    'problem_solving': 0.3,
}


class TrendDirection(str, Enum):
    IMPROVING = 'improving'
    DECLINING = 'declining'
    STABLE = 'stable'


@dataclass(frozen=True)
class GrowthTrend:
    direction: TrendDirection
    slope: float
    weeks: int

    def to_dict(self) -> dict:
        return {
            'direction': self.direction.value,
            'slope': round(self.slope, 4),
            'weeks': self.weeks,
        }


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def relative_change(prior_avg: float, current: float) -> float:
    """Relative drop in error rate, in [-1, 1]. Positive means fewer errors."""
    denominator = max(prior_avg, current)
    if denominator <= 0:
        return 0.0
    return (prior_avg - current) / denominator


def combine(quality, error_reduction, problem_solving) -> float:
    """Weighted overall score; absent components hand their weight to the rest."""
    parts = [
        (COMPONENT_WEIGHTS['quality'], quality),
        (COMPONENT_WEIGHTS['error_reduction'], error_reduction),
        (COMPONENT_WEIGHTS['problem_solving'], problem_solving),
    ]
    present = [(w, v) for w, v in parts if v is not None]
    total_weight = sum(w for w, _ in present)
    if not total_weight:
        return 0.0
    return clamp(sum(w * v for w, v in present) / total_weight)


def fold_score(events, attempts) -> GrowthScore:
    """Compute a growth score from outcomes and practice attempts.

    Args:
        events: (submission, outcome) pairs, oldest first.
        attempts: Practice attempts, oldest first; the last ten count.

    Returns:
        The resulting ``GrowthScore``.
    """
    quality = None
    error_reduction = ERROR_REDUCTION_NEUTRAL
    rates = []
    for submission, outcome in events:
        score = float(outcome.quality_score)
        quality = score if quality is None else (
            QUALITY_ALPHA * score + (1 - QUALITY_ALPHA) * quality
        )
        rate = len(outcome.errors) / submission.line_count
        prior = rates[-ERROR_WINDOW:]
        if prior:
            change = relative_change(sum(prior) / len(prior), rate)
            error_reduction = clamp(error_reduction + ERROR_REDUCTION_STEP * change)
        rates.append(rate)

    recent = list(attempts)[-ATTEMPT_WINDOW:]
    problem_solving = None
    if recent:
        problem_solving = 100.0 * sum(1 for a in recent if a.passed) / len(recent)

    score = GrowthScore(
        overall=combine(quality, error_reduction, problem_solving),
        quality_component=quality,
        error_reduction_component=error_reduction,
        problem_solving_component=problem_solving,
        event_count=len(events),
    )
    return score


def least_squares_slope(points) -> float:
    """Slope of the least-squares line through (x, y) points."""
    n = len(points)
    if n < 2:
        return 0.0
    mean_x = sum(x for x, _ in points) / n
    mean_y = sum(y for _, y in points) / n
    sxx = sum((x - mean_x) ** 2 for x, _ in points)
    if sxx == 0:
        return 0.0
    sxy = sum((x - mean_x) * (y - mean_y) for x, y in points)
    return sxy / sxx


def classify_slope(slope: float) -> TrendDirection:
    if slope > TREND_THRESHOLD:
        return TrendDirection.IMPROVING
    if slope < -TREND_THRESHOLD:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _rounded(value):
    return None if value is None else round(value, 4)


class GrowthScoreEngine:
    """Per-user growth scoring and weekly snapshots.

    All writes for a user happen under that user's lock.
    """

    def __init__(self, repository, replay_window: int = REPLAY_WINDOW,
                 trend_weeks: int = 8):
        self.repository = repository
        self.replay_window = replay_window
        self.trend_weeks = trend_weeks

    # ------------------------------------------------------------------
    # Per-event score
    # ------------------------------------------------------------------

    def record_submission(self, user_id: int, outcome) -> GrowthScore:
        """Update the current score after an analysis outcome."""
        if outcome.submission.owner_id != user_id:
            raise ReferentialIntegrityError(
                f"outcome for submission {outcome.submission_id} does not belong "
                f"to user {user_id}"
            )
        with get_user_lock(user_id):
            return self._refresh_state(user_id)

    def record_practice_attempt(self, user_id: int, problem_id: int, passed: bool,
                                attempted_at: datetime = None) -> GrowthScore:
        """Store a practice attempt and update the current score."""
        with get_user_lock(user_id):
            self.repository.put_practice_attempt(
                user_id, problem_id, passed, attempted_at=attempted_at,
            )
            return self._refresh_state(user_id)

    def current_score(self, user_id: int) -> GrowthScore:
        state = self.repository.get_growth_state(user_id)
        if state is None:
            return GrowthScore(
                overall=combine(None, ERROR_REDUCTION_NEUTRAL, None),
                quality_component=None,
                error_reduction_component=ERROR_REDUCTION_NEUTRAL,
                problem_solving_component=None,
                event_count=0,
            )
        return GrowthScore(
            overall=state.overall,
            quality_component=state.quality_component,
            error_reduction_component=state.error_reduction_component,
            problem_solving_component=state.problem_solving_component,
            event_count=state.event_count,
        )

    def _compute(self, user_id: int, before: datetime = None):
        events = self.repository.list_user_outcomes(
            user_id, before=before, limit=self.replay_window,
        )
        attempts = self.repository.list_practice_attempts(
            user_id, before=before, limit=ATTEMPT_WINDOW,
        )
        return fold_score(events, attempts)

    def _refresh_state(self, user_id: int) -> GrowthScore:
        score = self._compute(user_id)
        self.repository.save_growth_state(
            user_id,
            quality_component=score.quality_component,
            error_reduction_component=score.error_reduction_component,
            problem_solving_component=score.problem_solving_component,
            overall=score.overall,
            event_count=score.event_count,
            last_event_at=utcnow(),
        )
        logger.debug(
            f"Growth score user={user_id}: overall={score.overall:.2f} "
            f"events={score.event_count}"
        )
        return score

    # ------------------------------------------------------------------
    # Weekly snapshots
    # ------------------------------------------------------------------

    def close_week(self, user_id: int, week_start: date, now: datetime = None):
        """Finalize the snapshot for the week beginning on *week_start*.

        Weeks between the latest closed week and this one are closed first,
        so the series has no gaps. Closing an already-closed week returns the
        stored snapshot unchanged.

        Raises:
            ValueError: If the week has not ended yet.
            NonMonotonicSnapshotError: If a later week is already closed.
        """
        week_start = week_start_of(week_start)
        _, end = week_bounds(week_start)
        now = now or utcnow()
        if end > now:
            raise ValueError(f"week starting {week_start} has not ended yet")

        with get_user_lock(user_id):
            existing = self.repository.get_growth_snapshot(user_id, week_start)
            if existing is not None:
                return existing

            latest = self.repository.latest_growth_snapshot(user_id)
            if latest is not None and week_start < latest.week_start:
                raise NonMonotonicSnapshotError(
                    f"cannot close week {week_start} for user {user_id}: "
                    f"week {latest.week_start} is already closed"
                )

            weeks = []
            if latest is not None:
                cursor = latest.week_start + timedelta(days=7)
                while cursor < week_start:
                    weeks.append(cursor)
                    cursor += timedelta(days=7)
            weeks.append(week_start)
            if len(weeks) > 1:
                logger.info(
                    f"Closing {len(weeks) - 1} skipped week(s) for user {user_id} "
                    f"before {week_start}"
                )

            snapshot = latest
            for week in weeks:
                snapshot = self._append_week(user_id, week, prior=snapshot)
            return snapshot

    def revise_week(self, user_id: int, week_start: date, now: datetime = None):
        """Recompute the latest closed week after late data arrived.

        Appends a superseding snapshot when the value changed and returns
        it; returns the existing snapshot when nothing changed.

        Raises:
            NonMonotonicSnapshotError: If *week_start* is not the latest
                closed week.
        """
        week_start = week_start_of(week_start)
        with get_user_lock(user_id):
            latest = self.repository.latest_growth_snapshot(user_id)
            if latest is None or latest.week_start != week_start:
                raise NonMonotonicSnapshotError(
                    f"week {week_start} is not the latest closed week of user {user_id}"
                )
            history = self.repository.list_growth_snapshots(user_id, limit=2)
            prior = history[0] if len(history) == 2 else None
            values = self._week_values(user_id, week_start, prior)
            if all(getattr(latest, key) == value for key, value in values.items()):
                return latest
            return self.repository.append_growth_snapshot(
                user_id, week_start, week_start + timedelta(days=6),
                supersedes=latest, **values,
            )

    def _week_values(self, user_id: int, week_start: date, prior) -> dict:
        _, end = week_bounds(week_start)
        score = self._compute(user_id, before=end)
        overall = round(score.overall, 4)
        if prior is None:
            improvement = 0.0
        else:
            improvement = (overall - prior.overall) / max(1.0, prior.overall) * 100
        return {
            'overall': overall,
            'quality_component': _rounded(score.quality_component),
            'error_reduction_component': round(score.error_reduction_component, 4),
            'problem_solving_component': _rounded(score.problem_solving_component),
            'improvement_pct': round(improvement, 4),
        }

    def _append_week(self, user_id: int, week_start: date, prior):
        values = self._week_values(user_id, week_start, prior)
        return self.repository.append_growth_snapshot(
            user_id, week_start, week_start + timedelta(days=6), **values,
        )

    def trend(self, user_id: int, weeks: int = None) -> GrowthTrend:
        """Classify the direction of ``overall`` over the last *weeks* snapshots."""
        weeks = weeks or self.trend_weeks
        snapshots = self.repository.list_growth_snapshots(user_id, limit=weeks)
        if not snapshots:
            return GrowthTrend(TrendDirection.STABLE, 0.0, 0)
        origin = snapshots[0].week_start
        points = [
            ((s.week_start - origin).days / 7.0, s.overall) for s in snapshots
        ]
        slope = least_squares_slope(points)
        return GrowthTrend(classify_slope(slope), slope, len(snapshots))
