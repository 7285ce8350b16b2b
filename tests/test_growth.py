"""Tests for the growth score engine and weekly snapshots."""

from datetime import date, datetime, timedelta

import pytest

from codecoach.analysis.errors import NonMonotonicSnapshotError, ReferentialIntegrityError
from codecoach.analysis.growth import (
    GrowthScoreEngine, TrendDirection, classify_slope, combine,
    least_squares_slope, relative_change,
)
from codecoach.analysis.validation import validate_analysis_response
from codecoach.models import GrowthScoreSnapshot
from codecoach.services.repository import Repository

WEEK1 = date(2026, 1, 5)
LATER = datetime(2026, 3, 1)
FOUR_LINES = 'a = 1\nb = 2\nc = 3\nd = 4\n'


def _at(week_start, days=1, hours=10):
    return datetime.combine(week_start, datetime.min.time()) + timedelta(days=days, hours=hours)


@pytest.fixture()
def repo(app, db):
    return Repository()


@pytest.fixture()
def engine(repo):
    return GrowthScoreEngine(repo)


def _submit(repo, engine, user_id, submitted_at, quality, error_count=0):
    submission = repo.put_submission(user_id, FOUR_LINES, 'python', submitted_at=submitted_at)
    errors = [
        {'type': 'style', 'severity': 'low', 'line': i + 1, 'message': 'm', 'area': 'naming'}
        for i in range(error_count)
    ]
    report = validate_analysis_response({
        'errors': errors,
        'weak_areas': ['naming'] if errors else [],
        'quality_score': quality,
    })
    outcome = repo.put_analysis_outcome(submission.id, report)
    return engine.record_submission(user_id, outcome)


def _snapshot(repo, user_id, week_start, overall):
    return repo.append_growth_snapshot(
        user_id, week_start, week_start + timedelta(days=6),
        overall=overall, quality_component=None, error_reduction_component=50.0,
        problem_solving_component=None, improvement_pct=0.0,
    )


class TestScoreFunctions:
    def test_combine_redistributes_absent_weight(self):
        assert combine(80, 50, 100) == pytest.approx(0.4 * 80 + 0.3 * 50 + 0.3 * 100)
        assert combine(80, 50, None) == pytest.approx((0.4 * 80 + 0.3 * 50) / 0.7)
        assert combine(None, 50, None) == pytest.approx(50)

    def test_relative_change(self):
        assert relative_change(1.0, 0.25) == pytest.approx(0.75)
        assert relative_change(0.25, 1.0) == pytest.approx(-0.75)
        assert relative_change(0.0, 0.0) == 0.0

    def test_least_squares_slope_uses_every_point(self):
        # Endpoints rise by 2, the fitted line falls
        points = list(enumerate([50, 70, 60, 55, 52]))
        assert least_squares_slope(points) == pytest.approx(-1.1)
        assert classify_slope(-1.1) == TrendDirection.DECLINING

    def test_classify_threshold(self):
        assert classify_slope(1.0) == TrendDirection.STABLE
        assert classify_slope(1.01) == TrendDirection.IMPROVING
        assert classify_slope(-0.5) == TrendDirection.STABLE


class TestCurrentScore:
    def test_neutral_default(self, engine, sample_data):
        score = engine.current_score(sample_data['user_id'])
        assert score.overall == pytest.approx(50)
        assert score.quality_component is None
        assert score.problem_solving_component is None
        assert score.event_count == 0

    def test_rising_quality_raises_score(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        scores = [
            _submit(repo, engine, uid, _at(WEEK1, days=d), q)
            for d, q in ((0, 40), (1, 60), (2, 80))
        ]
        assert [s.quality_component for s in scores] == pytest.approx([40, 44, 51.2])
        assert scores[0].overall < scores[1].overall < scores[2].overall
        assert engine.current_score(uid).overall == pytest.approx(scores[-1].overall)

    def test_fewer_errors_raise_error_reduction(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1, days=0), 50, error_count=4)
        score = _submit(repo, engine, uid, _at(WEEK1, days=1), 50, error_count=1)
        assert score.error_reduction_component == pytest.approx(65.0)

    def test_more_errors_lower_error_reduction(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1, days=0), 50, error_count=1)
        score = _submit(repo, engine, uid, _at(WEEK1, days=1), 50, error_count=4)
        assert score.error_reduction_component == pytest.approx(35.0)

    def test_late_outcome_lands_in_place(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1, days=2), 80)
        late = _submit(repo, engine, uid, _at(WEEK1, days=0), 40)
        # Folded as 40 then 80, not 80 then 40
        assert late.quality_component == pytest.approx(0.2 * 80 + 0.8 * 40)

    def test_practice_attempts(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        problem_id = sample_data['problem_ids']['loops_easy']
        for passed in (True, True, False, True):
            score = engine.record_practice_attempt(uid, problem_id, passed)
        assert score.problem_solving_component == pytest.approx(75.0)
        assert score.overall == pytest.approx((0.3 * 50 + 0.3 * 75) / 0.6)

    def test_practice_attempt_unknown_problem(self, engine, sample_data):
        with pytest.raises(ReferentialIntegrityError):
            engine.record_practice_attempt(sample_data['user_id'], 9999, True)

    def test_outcome_of_another_user(self, repo, engine, sample_data):
        submission = repo.put_submission(sample_data['user_id'], FOUR_LINES, 'python')
        report = validate_analysis_response({'errors': [], 'quality_score': 70})
        outcome = repo.put_analysis_outcome(submission.id, report)
        with pytest.raises(ReferentialIntegrityError):
            engine.record_submission(sample_data['advanced_user_id'], outcome)


class TestWeeklySnapshots:
    def test_first_week_has_zero_improvement(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1), 40)
        snapshot = engine.close_week(uid, WEEK1, now=LATER)

        assert snapshot.week_start == WEEK1
        assert snapshot.week_end == date(2026, 1, 11)
        assert snapshot.improvement_pct == 0.0
        assert snapshot.overall == pytest.approx((0.4 * 40 + 0.3 * 50) / 0.7, abs=1e-4)

    def test_close_week_is_idempotent(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1), 55)
        first = engine.close_week(uid, WEEK1, now=LATER)
        again = engine.close_week(uid, WEEK1 + timedelta(days=3), now=LATER)

        assert again.to_dict() == first.to_dict()
        assert GrowthScoreSnapshot.query.filter_by(user_id=uid).count() == 1

    def test_week_not_ended(self, engine, sample_data):
        with pytest.raises(ValueError):
            engine.close_week(
                sample_data['user_id'], date(2026, 3, 2), now=datetime(2026, 3, 4),
            )

    def test_snapshot_excludes_later_outcomes(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1), 40)
        _submit(repo, engine, uid, _at(WEEK1 + timedelta(days=7)), 90)
        snapshot = engine.close_week(uid, WEEK1, now=LATER)
        assert snapshot.quality_component == pytest.approx(40)

    def test_improvement_pct(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        week2 = WEEK1 + timedelta(days=7)
        _submit(repo, engine, uid, _at(WEEK1), 40)
        _submit(repo, engine, uid, _at(week2), 80)
        s1 = engine.close_week(uid, WEEK1, now=LATER)
        s2 = engine.close_week(uid, week2, now=LATER)

        expected = (s2.overall - s1.overall) / max(1.0, s1.overall) * 100
        assert s2.improvement_pct == pytest.approx(expected, abs=1e-3)
        assert s2.improvement_pct > 0

    def test_skipped_weeks_are_filled(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1), 60)
        engine.close_week(uid, WEEK1, now=LATER)
        engine.close_week(uid, WEEK1 + timedelta(days=21), now=LATER)

        weeks = [s.week_start for s in repo.list_growth_snapshots(uid)]
        assert weeks == [WEEK1 + timedelta(days=7 * i) for i in range(4)]

    def test_earlier_week_after_later_is_rejected(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        engine.close_week(uid, WEEK1 + timedelta(days=14), now=LATER)
        with pytest.raises(NonMonotonicSnapshotError):
            engine.close_week(uid, WEEK1, now=LATER)

    def test_repository_rejects_out_of_order_append(self, repo, sample_data):
        uid = sample_data['user_id']
        _snapshot(repo, uid, WEEK1 + timedelta(days=7), 50)
        with pytest.raises(NonMonotonicSnapshotError):
            _snapshot(repo, uid, WEEK1, 50)
        with pytest.raises(NonMonotonicSnapshotError):
            _snapshot(repo, uid, WEEK1 + timedelta(days=7), 50)


class TestReviseWeek:
    def test_late_outcome_appends_superseding_snapshot(self, db, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1, days=0), 40)
        original = engine.close_week(uid, WEEK1, now=LATER)
        original_id = original.id

        _submit(repo, engine, uid, _at(WEEK1, days=3), 90)
        revised = engine.revise_week(uid, WEEK1, now=LATER)

        assert revised.id != original_id
        assert revised.supersedes_id == original_id
        assert revised.overall > original.overall
        assert db.session.get(GrowthScoreSnapshot, original_id).superseded
        assert [s.id for s in repo.list_growth_snapshots(uid)] == [revised.id]

    def test_unchanged_week_is_not_rewritten(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        _submit(repo, engine, uid, _at(WEEK1), 40)
        original = engine.close_week(uid, WEEK1, now=LATER)
        assert engine.revise_week(uid, WEEK1, now=LATER).id == original.id

    def test_only_latest_week_can_be_revised(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        engine.close_week(uid, WEEK1 + timedelta(days=7), now=LATER)
        with pytest.raises(NonMonotonicSnapshotError):
            engine.revise_week(uid, WEEK1, now=LATER)


class TestTrend:
    def _series(self, repo, user_id, values):
        for i, value in enumerate(values):
            _snapshot(repo, user_id, WEEK1 + timedelta(days=7 * i), value)

    def test_improving(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        self._series(repo, uid, [50, 55, 53, 60, 62])
        trend = engine.trend(uid)
        assert trend.direction == TrendDirection.IMPROVING
        assert trend.slope == pytest.approx(2.9)
        assert trend.weeks == 5

    def test_declining_despite_higher_last_week(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        self._series(repo, uid, [50, 70, 60, 55, 52])
        assert engine.trend(uid).direction == TrendDirection.DECLINING

    def test_window_limits_weeks(self, repo, engine, sample_data):
        uid = sample_data['user_id']
        self._series(repo, uid, [10, 20, 30, 60, 55, 52])
        trend = engine.trend(uid, weeks=3)
        assert trend.weeks == 3
        assert trend.slope == pytest.approx(-4.0)

    def test_no_snapshots_is_stable(self, engine, sample_data):
        trend = engine.trend(sample_data['user_id'])
        assert trend.to_dict() == {'direction': 'stable', 'slope': 0.0, 'weeks': 0}
