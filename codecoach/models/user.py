from __future__ import annotations

from codecoach.extensions import db
from codecoach.utils import utcnow


class User(db.Model):
    """Learner profile. Accounts and sessions live in an external service."""

    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    skill_level = db.Column(
        db.String(20), nullable=False, default='beginner'
    )  # beginner | intermediate | advanced
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Relationships
    submissions = db.relationship('Submission', back_populates='owner', lazy='dynamic')

    def __repr__(self) -> str:
        return f'<User {self.id} {self.name!r} level={self.skill_level}>'
