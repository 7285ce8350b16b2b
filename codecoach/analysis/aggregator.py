"""
Weak-area aggregation and ranking.

Each analysis outcome contributes one observation per weak-area tag. A
record per (user, tag) keeps the frequency, a severity EMA and the last
time the tag was seen. Observations are folded in ``submitted_at`` order:
an outcome that arrives after a later one has already been ingested is
inserted at its original position by replaying the tag's recent history.

Healing decay is a pure function of elapsed time: the stored EMA is the
value at ``last_seen``, and every full healing window since then halves it.
The same decay is applied between observations during a fold, so replay
and incremental updates agree.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from codecoach.utils import utcnow

from .locks import get_user_lock
from .types import RankedWeakArea, SEVERITY_WEIGHTS, Severity

logger = logging.getLogger(__name__)

EMA_ALPHA = 0.3
REPLAY_WINDOW = 64


def tag_severity(outcome, tag: str) -> int:
    """Numeric severity of *tag* within one outcome.

    The highest severity among errors whose area (or type) names the tag;
    otherwise the highest severity in the outcome; ``low`` when the outcome
    has no errors at all.
    """
    matching = []
    overall = []
    for err in outcome.errors:
        weight = SEVERITY_WEIGHTS[Severity(err.severity)]
        overall.append(weight)
        if err.area == tag or err.type.strip().lower() == tag:
            matching.append(weight)
    if matching:
        return max(matching)
    if overall:
        return max(overall)
    return SEVERITY_WEIGHTS[Severity.LOW]


class WeakAreaAggregator:
    """Maintains WeakAreaRecords for users. Writes happen under the user lock.

    Args:
        repository: Storage collaborator.
        healing_window_days: Length of one healing window.
        decay_factor: Multiplier applied per elapsed window.
        rank_floor: Records whose decayed EMA falls below this are not ranked.
    """

    def __init__(self, repository, healing_window_days: int = 14,
                 decay_factor: float = 0.5, rank_floor: float = 0.1,
                 alpha: float = EMA_ALPHA, replay_window: int = REPLAY_WINDOW):
        self.repository = repository
        self.healing_window = timedelta(days=healing_window_days)
        self.decay_factor = decay_factor
        self.rank_floor = rank_floor
        self.alpha = alpha
        self.replay_window = replay_window

    def heal(self, ema: float, since: datetime, until: datetime) -> float:
        """Apply one decay step per full healing window between two times."""
        if until <= since:
            return ema
        windows = (until - since) // self.healing_window
        if windows <= 0:
            return ema
        return ema * (self.decay_factor ** windows)

    def ingest(self, user_id: int, outcome) -> list:
        """Fold one analysis outcome into the user's weak-area records.

        Re-ingesting the same outcome is a no-op for the tags it already
        contributed.

        Returns:
            The WeakAreaRecords touched by this outcome, by tag.
        """
        observed_at = outcome.submission.submitted_at
        touched = []
        with get_user_lock(user_id):
            for tag in sorted(outcome.weak_areas):
                severity = tag_severity(outcome, tag)
                added = self.repository.add_weak_area_observation(
                    user_id, tag, outcome.submission_id, severity, observed_at,
                )
                record = self.repository.get_weak_area_record(user_id, tag)
                if not added:
                    logged = self.repository.count_weak_area_observations(user_id, tag)
                    if record is not None and record.frequency == logged:
                        touched.append(record)
                        continue
                    # Observation stored but the record write was lost
                    logger.warning(
                        f"Weak-area record for user {user_id} tag {tag!r} out of "
                        f"step with its {logged} observation(s), replaying"
                    )
                    frequency, ema, last_seen = self._replay(user_id, tag)
                elif record is None:
                    frequency, ema, last_seen = 1, float(severity), observed_at
                elif observed_at >= record.last_seen:
                    decayed = self.heal(record.severity_ema, record.last_seen, observed_at)
                    frequency = record.frequency + 1
                    ema = self.alpha * severity + (1 - self.alpha) * decayed
                    last_seen = observed_at
                else:
                    logger.info(
                        f"Late observation for user {user_id} tag {tag!r} "
                        f"at {observed_at} (last_seen {record.last_seen}), replaying"
                    )
                    frequency, ema, last_seen = self._replay(user_id, tag)

                touched.append(self.repository.upsert_weak_area_record(
                    user_id, tag, frequency, ema, last_seen,
                ))
        return touched

    def _replay(self, user_id: int, tag: str):
        """Recompute (frequency, ema, last_seen) from the observation log."""
        observations = self.repository.list_weak_area_observations(
            user_id, tag, limit=self.replay_window,
        )
        ema = None
        previous = None
        for obs in observations:
            if ema is None:
                ema = float(obs.severity)
            else:
                ema = self.heal(ema, previous, obs.observed_at)
                ema = self.alpha * obs.severity + (1 - self.alpha) * ema
            previous = obs.observed_at
        frequency = self.repository.count_weak_area_observations(user_id, tag)
        return frequency, ema, previous

    def rank(self, user_id: int, now: datetime | None = None) -> list[RankedWeakArea]:
        """Rank a user's weak areas for downstream consumers.

        Sorted by ``decayed_ema * log(1 + frequency)`` descending, then most
        recent ``last_seen``, then tag name. Records below the floor are left
        out but never deleted.
        """
        now = now or utcnow()
        ranked = []
        for record in self.repository.list_weak_area_records(user_id):
            effective = self.heal(record.severity_ema, record.last_seen, now)
            if effective < self.rank_floor:
                continue
            ranked.append(RankedWeakArea(
                tag=record.tag,
                weight=effective * math.log1p(record.frequency),
                severity_ema=effective,
                frequency=record.frequency,
                last_seen=record.last_seen,
            ))

        ranked.sort(key=lambda a: a.tag)
        ranked.sort(key=lambda a: a.last_seen, reverse=True)
        ranked.sort(key=lambda a: a.weight, reverse=True)
        return ranked
