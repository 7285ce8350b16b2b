import json

from codecoach.extensions import db
from codecoach.utils import utcnow


class PracticeProblem(db.Model):
    """Catalog entry supplied by the external problem bank. Read-only here."""

    __tablename__ = 'practice_problem'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    difficulty = db.Column(
        db.String(10), nullable=False, index=True
    )  # easy | medium | hard
    target_areas_json = db.Column(db.Text, nullable=False, default='[]')
    test_cases_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def target_areas(self) -> frozenset:
        """Parse target_areas_json into a frozenset of tags."""
        try:
            return frozenset(json.loads(self.target_areas_json or '[]'))
        except (json.JSONDecodeError, TypeError):
            return frozenset()

    @target_areas.setter
    def target_areas(self, value):
        self.target_areas_json = json.dumps(sorted(value or []), ensure_ascii=False)

    @property
    def test_cases(self) -> list:
        if self.test_cases_json:
            try:
                return json.loads(self.test_cases_json)
            except (json.JSONDecodeError, TypeError):
                return []
        return []

    @test_cases.setter
    def test_cases(self, value):
        self.test_cases_json = json.dumps(value, ensure_ascii=False) if value else None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'difficulty': self.difficulty,
            'target_areas': sorted(self.target_areas),
            'test_cases': self.test_cases,
        }

    def __repr__(self) -> str:
        return f'<PracticeProblem {self.id} {self.title!r} {self.difficulty}>'


class PracticeAttempt(db.Model):
    """Result of a learner running a practice problem's test cases."""

    __tablename__ = 'practice_attempt'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey('user.id'), nullable=False, index=True
    )
    problem_id = db.Column(
        db.Integer, db.ForeignKey('practice_problem.id'), nullable=False
    )
    passed = db.Column(db.Boolean, nullable=False)
    attempted_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    problem = db.relationship('PracticeProblem')

    def __repr__(self) -> str:
        return (
            f'<PracticeAttempt user={self.user_id} problem={self.problem_id} '
            f'passed={self.passed}>'
        )
