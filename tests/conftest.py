"""Shared test fixtures for the codecoach test suite."""

import random

import pytest

from codecoach import create_app
from codecoach.analysis.providers import MockFixtureProvider
from codecoach.extensions import db as _db
from codecoach.models import PracticeProblem, User
from codecoach.services.coach_service import CoachService, install_coach_service


@pytest.fixture()
def app():
    """Create a Flask application configured for testing."""
    application = create_app('testing')
    yield application


@pytest.fixture()
def db(app):
    """Provide a clean database for each test."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app, db):
    """Provide a Flask test client."""
    return app.test_client()


@pytest.fixture()
def provider():
    """Scripted analysis provider; the default answer is a clean report."""
    return MockFixtureProvider()


@pytest.fixture()
def sleeps():
    """Backoff delays the analysis client asked to sleep for."""
    return []


@pytest.fixture()
def coach(app, db, provider, sleeps):
    """CoachService wired to the scripted provider and a recording sleep."""
    service = CoachService(
        app, provider=provider, sleep=sleeps.append, rng=random.Random(7),
    )
    install_coach_service(app, service)
    yield service
    service.client.shutdown()


def _problem(title, difficulty, areas):
    problem = PracticeProblem(title=title, difficulty=difficulty)
    problem.target_areas = areas
    problem.test_cases = [{'input': '1', 'output': '1'}]
    return problem


@pytest.fixture()
def sample_data(app, db):
    """Create two learners and a small practice catalog.

    Returns a dict of plain IDs (not model objects) so they survive
    across Flask request context boundaries without DetachedInstanceError.
    """
    beginner = User(name='Ada', skill_level='beginner')
    advanced = User(name='Grace', skill_level='advanced')
    db.session.add_all([beginner, advanced])
    db.session.flush()

    problems = {
        'recursion_easy_1': _problem('Factorial', 'easy', ['recursion']),
        'recursion_easy_2': _problem('Sum of digits', 'easy', ['recursion']),
        'recursion_medium': _problem('Power set', 'medium', ['recursion']),
        'recursion_hard': _problem('N-Queens', 'hard', ['recursion']),
        'loops_easy': _problem('Sum of a list', 'easy', ['loops']),
        'loops_medium': _problem('Rotate an array', 'medium', ['loops']),
    }
    # Insertion order fixes the ids the selector breaks ties on
    for problem in problems.values():
        db.session.add(problem)
        db.session.flush()
    db.session.commit()

    return {
        'user_id': beginner.id,
        'advanced_user_id': advanced.id,
        'problem_ids': {key: p.id for key, p in problems.items()},
    }


def make_response(errors=None, weak_areas=None, quality_score=70, analysis_time_ms=12):
    """Build a raw provider response body."""
    return {
        'errors': errors or [],
        'weak_areas': weak_areas or [],
        'quality_score': quality_score,
        'analysis_time_ms': analysis_time_ms,
    }


def make_error(area, severity='medium', error_type='logic', line=3):
    return {
        'type': error_type,
        'severity': severity,
        'line': line,
        'message': f'{area} problem',
        'suggestion': f'Review {area}',
        'area': area,
    }


@pytest.fixture()
def response_factory():
    """Expose ``make_response`` and ``make_error`` to tests."""
    class _Factory:
        response = staticmethod(make_response)
        error = staticmethod(make_error)
    return _Factory
