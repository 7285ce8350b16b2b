"""Storage collaborator for the orchestration engine.

Every public write commits on its own, so each entity is written
atomically and no multi-entity transaction is assumed. A failed write
rolls the session back before the exception propagates.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from codecoach.analysis.errors import NonMonotonicSnapshotError, ReferentialIntegrityError
from codecoach.extensions import db
from codecoach.models import (
    AnalysisOutcome, CodeError, GrowthScoreSnapshot, GrowthState,
    PracticeAttempt, PracticeProblem, Submission, User, WeakAreaObservation,
    WeakAreaRecord,
)
from codecoach.utils import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

STALLABLE_STATES = ('received', 'analyzing', 'aggregating', 'scoring', 'generating')


class Repository:
    """Narrow storage interface over the Flask-SQLAlchemy session."""

    @property
    def session(self):
        return db.session

    def _commit(self):
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def rollback(self):
        self.session.rollback()

    # ------------------------------------------------------------------
    # Users and submissions
    # ------------------------------------------------------------------

    def get_user(self, user_id: int):
        return self.session.get(User, user_id)

    def list_user_ids(self) -> list[int]:
        return [row[0] for row in self.session.query(User.id).order_by(User.id)]

    def put_submission(self, owner_id: int, code_text: str, language: str,
                       topic: str = None, submitted_at: datetime = None) -> Submission:
        """Create a submission.

        Raises:
            ReferentialIntegrityError: If the owner does not exist.
        """
        if self.get_user(owner_id) is None:
            raise ReferentialIntegrityError(f"unknown user {owner_id}")
        now = utcnow()
        submission = Submission(
            owner_id=owner_id,
            code_text=code_text,
            language=language,
            topic=topic,
            submitted_at=to_naive_utc(submitted_at) if submitted_at else now,
            state='received',
            created_at=now,
            updated_at=now,
        )
        self.session.add(submission)
        self._commit()
        return submission

    def get_submission(self, submission_id: int):
        return self.session.get(Submission, submission_id)

    def list_stalled_submission_ids(self, idle_seconds: int, now: datetime = None,
                                    limit: int = None) -> list[int]:
        """Unfinished, unqueued submissions nobody is working on.

        A submission is stalled when its lease expired, or when it has no
        lease and its state has not changed for *idle_seconds*.
        """
        now = now or utcnow()
        idle_since = now - timedelta(seconds=idle_seconds)
        query = Submission.query.filter(
            Submission.state.in_(STALLABLE_STATES),
            db.or_(
                db.and_(
                    Submission.lease_owner.isnot(None),
                    Submission.lease_expires_at < now,
                ),
                db.and_(
                    Submission.lease_owner.is_(None),
                    Submission.updated_at < idle_since,
                ),
            ),
        ).order_by(Submission.updated_at, Submission.id)
        if limit is not None:
            query = query.limit(limit)
        return [s.id for s in query.all()]

    def acquire_lease(self, submission_id: int, owner: str, ttl_seconds: int,
                      now: datetime = None) -> bool:
        """Claim the processing lease on a submission if it is free or expired."""
        now = now or utcnow()
        count = Submission.query.filter(
            Submission.id == submission_id,
            db.or_(
                Submission.lease_owner.is_(None),
                Submission.lease_expires_at < now,
                Submission.lease_owner == owner,
            ),
        ).update(
            {
                Submission.lease_owner: owner,
                Submission.lease_expires_at: now + timedelta(seconds=ttl_seconds),
            },
            synchronize_session=False,
        )
        self._commit()
        return count == 1

    def release_lease(self, submission_id: int, owner: str) -> bool:
        count = Submission.query.filter_by(
            id=submission_id, lease_owner=owner,
        ).update(
            {Submission.lease_owner: None, Submission.lease_expires_at: None},
            synchronize_session=False,
        )
        self._commit()
        return count == 1

    def set_submission_state(self, submission_id: int, state: str, expected: str,
                             lease_owner: str, error_kind: str = None,
                             error_message: str = None,
                             practice_problem_ids=None) -> bool:
        """Move a submission from *expected* to *state* while holding the lease.

        Returns False when the submission is not in the expected state or the
        lease belongs to someone else.
        """
        values = {
            Submission.state: state,
            Submission.error_kind: error_kind,
            Submission.error_message: (error_message or '')[:500] or None,
            Submission.updated_at: utcnow(),
        }
        if practice_problem_ids is not None:
            values[Submission.practice_problem_ids_json] = json.dumps(list(practice_problem_ids))
        count = Submission.query.filter_by(
            id=submission_id, state=expected, lease_owner=lease_owner,
        ).update(values, synchronize_session=False)
        self._commit()
        return count == 1

    # ------------------------------------------------------------------
    # Analysis outcomes
    # ------------------------------------------------------------------

    def put_analysis_outcome(self, submission_id: int, report,
                             completed_at: datetime = None) -> AnalysisOutcome:
        """Store the outcome for a submission; idempotent on submission_id.

        A second call returns the stored outcome unchanged.

        Raises:
            ReferentialIntegrityError: If the submission does not exist.
        """
        existing = self.get_analysis_outcome(submission_id)
        if existing is not None:
            return existing
        if self.get_submission(submission_id) is None:
            raise ReferentialIntegrityError(f"unknown submission {submission_id}")

        outcome = AnalysisOutcome(
            submission_id=submission_id,
            quality_score=report.quality_score,
            analysis_time_ms=report.analysis_time_ms,
            provider=report.provider or None,
            completed_at=completed_at or utcnow(),
        )
        outcome.weak_areas = report.weak_areas
        for position, err in enumerate(report.errors):
            outcome.errors.append(CodeError(
                position=position,
                type=err.type,
                severity=err.severity.value,
                line=err.line,
                message=err.message,
                suggestion=err.suggestion,
                area=err.area,
            ))
        self.session.add(outcome)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race with another writer for the same submission
            self.session.rollback()
            existing = self.get_analysis_outcome(submission_id)
            if existing is None:
                raise
            return existing
        except Exception:
            self.session.rollback()
            raise
        return outcome

    def get_analysis_outcome(self, submission_id: int):
        return AnalysisOutcome.query.filter_by(submission_id=submission_id).first()

    def list_user_outcomes(self, user_id: int, before: datetime = None,
                           limit: int = 50) -> list[tuple]:
        """Most recent (submission, outcome) pairs, oldest first.

        Ordered by ``submitted_at`` then submission id, so late arrivals land
        in their original position.
        """
        query = (
            self.session.query(Submission, AnalysisOutcome)
            .join(AnalysisOutcome, AnalysisOutcome.submission_id == Submission.id)
            .filter(Submission.owner_id == user_id)
        )
        if before is not None:
            query = query.filter(Submission.submitted_at < before)
        rows = (
            query.order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .limit(limit)
            .all()
        )
        rows.reverse()
        return rows

    # ------------------------------------------------------------------
    # Weak areas
    # ------------------------------------------------------------------

    def get_weak_area_record(self, user_id: int, tag: str):
        return WeakAreaRecord.query.filter_by(user_id=user_id, tag=tag).first()

    def list_weak_area_records(self, user_id: int) -> list[WeakAreaRecord]:
        return (
            WeakAreaRecord.query.filter_by(user_id=user_id)
            .order_by(WeakAreaRecord.tag)
            .all()
        )

    def upsert_weak_area_record(self, user_id: int, tag: str, frequency: int,
                                severity_ema: float, last_seen: datetime) -> WeakAreaRecord:
        record = self.get_weak_area_record(user_id, tag)
        if record is None:
            record = WeakAreaRecord(user_id=user_id, tag=tag)
            self.session.add(record)
        record.frequency = frequency
        record.severity_ema = severity_ema
        record.last_seen = last_seen
        record.updated_at = utcnow()
        self._commit()
        return record

    def add_weak_area_observation(self, user_id: int, tag: str, submission_id: int,
                                  severity: int, observed_at: datetime) -> bool:
        """Log one tag observation. Returns False if it was already logged."""
        exists = WeakAreaObservation.query.filter_by(
            submission_id=submission_id, tag=tag,
        ).first()
        if exists is not None:
            return False
        self.session.add(WeakAreaObservation(
            user_id=user_id,
            tag=tag,
            submission_id=submission_id,
            severity=severity,
            observed_at=observed_at,
        ))
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        except Exception:
            self.session.rollback()
            raise
        return True

    def list_weak_area_observations(self, user_id: int, tag: str,
                                     limit: int = 64) -> list[WeakAreaObservation]:
        """Most recent observations of a tag, oldest first."""
        rows = (
            WeakAreaObservation.query.filter_by(user_id=user_id, tag=tag)
            .order_by(
                WeakAreaObservation.observed_at.desc(),
                WeakAreaObservation.submission_id.desc(),
            )
            .limit(limit)
            .all()
        )
        rows.reverse()
        return rows

    def count_weak_area_observations(self, user_id: int, tag: str) -> int:
        return WeakAreaObservation.query.filter_by(user_id=user_id, tag=tag).count()

    # ------------------------------------------------------------------
    # Practice catalog and attempts
    # ------------------------------------------------------------------

    def query_practice_catalog(self, tags, difficulty: str = None) -> list[PracticeProblem]:
        """Problems whose target areas intersect *tags*, ordered by id."""
        wanted = set(tags)
        if not wanted:
            return []
        query = PracticeProblem.query
        if difficulty:
            query = query.filter_by(difficulty=difficulty)
        return [
            p for p in query.order_by(PracticeProblem.id).all()
            if p.target_areas & wanted
        ]

    def get_practice_problems(self, problem_ids) -> list[PracticeProblem]:
        if not problem_ids:
            return []
        by_id = {
            p.id: p for p in
            PracticeProblem.query.filter(PracticeProblem.id.in_(list(problem_ids))).all()
        }
        return [by_id[pid] for pid in problem_ids if pid in by_id]

    def put_practice_attempt(self, user_id: int, problem_id: int, passed: bool,
                             attempted_at: datetime = None) -> PracticeAttempt:
        """Record a practice attempt.

        Raises:
            ReferentialIntegrityError: If the user or problem does not exist.
        """
        if self.get_user(user_id) is None:
            raise ReferentialIntegrityError(f"unknown user {user_id}")
        if self.session.get(PracticeProblem, problem_id) is None:
            raise ReferentialIntegrityError(f"unknown practice problem {problem_id}")
        attempt = PracticeAttempt(
            user_id=user_id,
            problem_id=problem_id,
            passed=bool(passed),
            attempted_at=to_naive_utc(attempted_at) if attempted_at else utcnow(),
        )
        self.session.add(attempt)
        self._commit()
        return attempt

    def list_practice_attempts(self, user_id: int, before: datetime = None,
                               limit: int = 10) -> list[PracticeAttempt]:
        """Most recent attempts, oldest first."""
        query = PracticeAttempt.query.filter_by(user_id=user_id)
        if before is not None:
            query = query.filter(PracticeAttempt.attempted_at < before)
        rows = (
            query.order_by(PracticeAttempt.attempted_at.desc(), PracticeAttempt.id.desc())
            .limit(limit)
            .all()
        )
        rows.reverse()
        return rows

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    def get_growth_state(self, user_id: int):
        return self.session.get(GrowthState, user_id)

    def save_growth_state(self, user_id: int, **values) -> GrowthState:
        state = self.get_growth_state(user_id)
        if state is None:
            state = GrowthState(user_id=user_id)
            self.session.add(state)
        for key, value in values.items():
            setattr(state, key, value)
        state.updated_at = utcnow()
        self._commit()
        return state

    def latest_growth_snapshot(self, user_id: int):
        return (
            GrowthScoreSnapshot.query.filter_by(user_id=user_id, superseded=False)
            .order_by(GrowthScoreSnapshot.week_start.desc())
            .first()
        )

    def get_growth_snapshot(self, user_id: int, week_start):
        return GrowthScoreSnapshot.query.filter_by(
            user_id=user_id, week_start=week_start, superseded=False,
        ).first()

    def list_growth_snapshots(self, user_id: int, limit: int = None) -> list[GrowthScoreSnapshot]:
        """Current (non-superseded) snapshots, oldest first."""
        query = (
            GrowthScoreSnapshot.query.filter_by(user_id=user_id, superseded=False)
            .order_by(GrowthScoreSnapshot.week_start.desc())
        )
        if limit:
            query = query.limit(limit)
        rows = query.all()
        rows.reverse()
        return rows

    def append_growth_snapshot(self, user_id: int, week_start, week_end,
                               supersedes: GrowthScoreSnapshot = None,
                               **values) -> GrowthScoreSnapshot:
        """Append a snapshot.

        Without *supersedes*, ``week_start`` must be later than the latest
        snapshot's. With it, the new row replaces that snapshot, which must be
        the latest one for the same week.

        Raises:
            NonMonotonicSnapshotError: On an out-of-order append.
            ReferentialIntegrityError: If the user does not exist.
        """
        if self.get_user(user_id) is None:
            raise ReferentialIntegrityError(f"unknown user {user_id}")
        latest = self.latest_growth_snapshot(user_id)
        if supersedes is None:
            if latest is not None and week_start <= latest.week_start:
                raise NonMonotonicSnapshotError(
                    f"week {week_start} is not after latest closed week "
                    f"{latest.week_start} for user {user_id}"
                )
        elif latest is None or latest.id != supersedes.id or supersedes.week_start != week_start:
            raise NonMonotonicSnapshotError(
                f"only the latest snapshot of user {user_id} can be superseded"
            )

        snapshot = GrowthScoreSnapshot(
            user_id=user_id,
            week_start=week_start,
            week_end=week_end,
            supersedes_id=supersedes.id if supersedes is not None else None,
            computed_at=utcnow(),
            **values,
        )
        if supersedes is not None:
            supersedes.superseded = True
        self.session.add(snapshot)
        self._commit()
        logger.info(
            f"Appended growth snapshot user={user_id} week={week_start} "
            f"overall={snapshot.overall} supersedes={snapshot.supersedes_id}"
        )
        return snapshot
