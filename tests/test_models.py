"""Tests for model helpers: JSON-backed properties and derived values."""

from datetime import date, datetime, timedelta

from codecoach.models import (
    AnalysisOutcome, AnalysisQueueItem, GrowthScoreSnapshot,
    PracticeProblem, Submission, User,
)
from codecoach.utils import utcnow, week_bounds, week_start_of


class TestSubmission:
    def test_line_count_ignores_blank_lines(self):
        sub = Submission(code_text='def f():\n\n    return 1\n   \n')
        assert sub.line_count == 2

    def test_line_count_at_least_one(self):
        assert Submission(code_text='').line_count == 1

    def test_practice_problem_ids_round_trip(self, app, db):
        user = User(name='u')
        db.session.add(user)
        db.session.flush()
        sub = Submission(
            owner_id=user.id, code_text='x = 1', language='python',
            submitted_at=utcnow(),
        )
        sub.practice_problem_ids = [3, 1, 2]
        db.session.add(sub)
        db.session.commit()

        fetched = db.session.get(Submission, sub.id)
        assert fetched.practice_problem_ids == [3, 1, 2]
        assert fetched.state == 'received'

    def test_practice_problem_ids_default_empty(self):
        assert Submission().practice_problem_ids == []


class TestJsonColumns:
    def test_weak_areas_stored_sorted(self):
        outcome = AnalysisOutcome()
        outcome.weak_areas = {'recursion', 'loops'}
        assert outcome.weak_areas_json == '["loops", "recursion"]'
        assert outcome.weak_areas == frozenset({'loops', 'recursion'})

    def test_corrupt_json_reads_as_empty(self):
        problem = PracticeProblem(target_areas_json='{not json', test_cases_json='[')
        assert problem.target_areas == frozenset()
        assert problem.test_cases == []

    def test_practice_problem_to_dict(self):
        problem = PracticeProblem(id=4, title='FizzBuzz', difficulty='easy')
        problem.target_areas = ['loops', 'conditionals']
        data = problem.to_dict()
        assert data['target_areas'] == ['conditionals', 'loops']
        assert data['test_cases'] == []


class TestSnapshotAndQueue:
    def test_snapshot_to_dict(self):
        snap = GrowthScoreSnapshot(
            id=1, user_id=2,
            week_start=date(2026, 1, 5), week_end=date(2026, 1, 11),
            overall=55.5, quality_component=60.0, error_reduction_component=50.0,
            problem_solving_component=None, improvement_pct=0.0,
            computed_at=datetime(2026, 1, 12, 0, 30),
        )
        data = snap.to_dict()
        assert data['week_start'] == '2026-01-05'
        assert data['week_end'] == '2026-01-11'
        assert data['supersedes_id'] is None

    def test_queue_item_age(self):
        item = AnalysisQueueItem(enqueued_at=utcnow() - timedelta(seconds=90))
        assert 89 <= item.age_seconds <= 91


class TestWeekHelpers:
    def test_week_start_is_monday(self):
        assert week_start_of(date(2026, 1, 8)) == date(2026, 1, 5)
        assert week_start_of(datetime(2026, 1, 11, 23, 59)) == date(2026, 1, 5)
        assert week_start_of(date(2026, 1, 5)) == date(2026, 1, 5)

    def test_week_bounds(self):
        start, end = week_bounds(date(2026, 1, 5))
        assert start == datetime(2026, 1, 5)
        assert end == datetime(2026, 1, 12)
