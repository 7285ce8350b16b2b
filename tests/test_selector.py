"""Tests for practice set selection."""

from datetime import datetime

import pytest

from codecoach.analysis.selector import (
    PracticeSelector, allocate_slots, largest_remainder,
)
from codecoach.analysis.types import RankedWeakArea
from codecoach.models import PracticeProblem
from codecoach.services.repository import Repository

SEEN = datetime(2026, 3, 2, 9, 0)


def _area(tag, weight):
    return RankedWeakArea(
        tag=tag, weight=weight, severity_ema=weight, frequency=1, last_seen=SEEN,
    )


def _add_problem(db, title, difficulty, areas):
    problem = PracticeProblem(title=title, difficulty=difficulty)
    problem.target_areas = areas
    db.session.add(problem)
    db.session.commit()
    return problem.id


@pytest.fixture()
def selector(app, db):
    return PracticeSelector(Repository())


class TestApportionment:
    def test_largest_remainder(self):
        assert largest_remainder([0.6, 0.3, 0.1], 5) == [3, 2, 0]
        assert largest_remainder([0.6, 0.3, 0.1], 10) == [6, 3, 1]

    def test_remainder_ties_go_to_larger_weight(self):
        # beginner split of 5: quotas 3, 1.5, 0.5
        assert largest_remainder([0.6, 0.3, 0.1], 5) == [3, 2, 0]
        assert largest_remainder([1, 1], 3) == [2, 1]

    def test_sums_to_total(self):
        for total in range(0, 12):
            assert sum(largest_remainder([5.0, 2.2, 0.7, 0.1], total)) == total

    def test_zero_weights_split_evenly(self):
        assert largest_remainder([0, 0, 0], 3) == [1, 1, 1]

    def test_every_area_gets_a_slot_when_possible(self):
        assert allocate_slots([10.0, 0.1, 0.1], 3) == [1, 1, 1]
        assert allocate_slots([10.0, 0.1, 0.1], 2) == [2, 0, 0]


class TestSelect:
    def test_weak_recursion_beginner(self, selector, sample_data):
        ids = sample_data['problem_ids']
        ranked = [_area('recursion', 3.0), _area('loops', 0.5)]

        selection = selector.select(ranked, 'beginner', 5)

        assert not selection.no_candidates
        assert [p.id for p in selection.problems] == [
            ids['recursion_easy_1'], ids['recursion_easy_2'],
            ids['recursion_medium'], ids['recursion_hard'], ids['loops_easy'],
        ]
        assert selection.difficulties == {'easy', 'medium', 'hard'}

    def test_deterministic(self, selector, sample_data):
        ranked = [_area('recursion', 3.0), _area('loops', 0.5)]
        first = selector.select(ranked, 'intermediate', 4)
        second = selector.select(ranked, 'intermediate', 4)
        assert [p.id for p in first.problems] == [p.id for p in second.problems]

    def test_no_duplicates_and_count_capped(self, selector, sample_data):
        ranked = [_area('recursion', 3.0), _area('loops', 0.5)]
        selection = selector.select(ranked, 'advanced', 20)
        ids = [p.id for p in selection.problems]
        assert len(ids) == 6
        assert len(set(ids)) == 6

    def test_no_candidates(self, selector, sample_data):
        selection = selector.select([_area('pointers', 2.0)], 'beginner', 5)
        assert selection.problems == []
        assert selection.no_candidates

    def test_zero_count(self, selector, sample_data):
        selection = selector.select([_area('recursion', 2.0)], 'beginner', 0)
        assert selection.problems == []
        assert not selection.no_candidates

    def test_only_top_five_areas_considered(self, selector, sample_data):
        ranked = [_area(f'tag{i}', 10.0 - i) for i in range(5)] + [_area('loops', 1.0)]
        selection = selector.select(ranked, 'beginner', 3)
        assert selection.no_candidates

    def test_unknown_skill_level_uses_beginner(self, selector, sample_data):
        ranked = [_area('recursion', 3.0), _area('loops', 0.5)]
        unknown = selector.select(ranked, 'wizard', 5)
        beginner = selector.select(ranked, 'beginner', 5)
        assert [p.id for p in unknown.problems] == [p.id for p in beginner.problems]

    def test_forces_second_difficulty(self, selector, db):
        a1 = _add_problem(db, 'A easy 1', 'easy', ['arrays'])
        _add_problem(db, 'A easy 2', 'easy', ['arrays'])
        _add_problem(db, 'B easy', 'easy', ['graphs'])
        b_hard = _add_problem(db, 'B hard', 'hard', ['graphs'])
        ranked = [_area('arrays', 3.0), _area('graphs', 0.3)]

        selection = selector.select(ranked, 'beginner', 2)

        assert [p.id for p in selection.problems] == [a1, b_hard]

    def test_single_difficulty_catalog(self, selector, db):
        _add_problem(db, 'easy 1', 'easy', ['arrays'])
        _add_problem(db, 'easy 2', 'easy', ['arrays'])
        selection = selector.select([_area('arrays', 1.0)], 'advanced', 2)
        assert len(selection.problems) == 2
        assert selection.difficulties == {'easy'}

    def test_problem_covering_more_areas_first(self, selector, db):
        single = _add_problem(db, 'single', 'easy', ['arrays'])
        both = _add_problem(db, 'both', 'easy', ['arrays', 'loops'])
        selection = selector.select([_area('arrays', 1.0), _area('loops', 0.1)], 'beginner', 1)
        assert [p.id for p in selection.problems] == [both]
        assert single != both
