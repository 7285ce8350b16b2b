import json

from codecoach.extensions import db
from codecoach.utils import utcnow


class AnalysisOutcome(db.Model):
    """Validated analysis result for exactly one submission.

    Written once; a second write for the same submission returns the
    stored row unchanged.
    """

    __tablename__ = 'analysis_outcome'

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer,
        db.ForeignKey('submission.id'),
        nullable=False,
        unique=True,
        index=True,
    )
    quality_score = db.Column(db.Float, nullable=False)
    weak_areas_json = db.Column(db.Text, nullable=False, default='[]')
    analysis_time_ms = db.Column(db.Integer, nullable=False, default=0)
    provider = db.Column(db.String(100), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Relationships
    submission = db.relationship('Submission', back_populates='outcome')
    errors = db.relationship(
        'CodeError',
        back_populates='outcome',
        cascade='all, delete-orphan',
        order_by='CodeError.position',
    )

    @property
    def weak_areas(self) -> frozenset:
        """Parse weak_areas_json into a frozenset of tags."""
        try:
            return frozenset(json.loads(self.weak_areas_json or '[]'))
        except (json.JSONDecodeError, TypeError):
            return frozenset()

    @weak_areas.setter
    def weak_areas(self, value):
        """Serialize tags sorted, so the stored text is stable."""
        self.weak_areas_json = json.dumps(sorted(value or []), ensure_ascii=False)

    def __repr__(self) -> str:
        return (
            f'<AnalysisOutcome submission_id={self.submission_id} '
            f'quality={self.quality_score}>'
        )


class CodeError(db.Model):
    """One error reported for a submission, in provider order."""

    __tablename__ = 'code_error'

    id = db.Column(db.Integer, primary_key=True)
    outcome_id = db.Column(
        db.Integer,
        db.ForeignKey('analysis_outcome.id'),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    type = db.Column(db.String(100), nullable=False)
    severity = db.Column(db.String(10), nullable=False)  # low | medium | high
    line = db.Column(db.Integer, nullable=True)
    message = db.Column(db.Text, nullable=False)
    suggestion = db.Column(db.Text, nullable=True)
    area = db.Column(db.String(100), nullable=True)

    outcome = db.relationship('AnalysisOutcome', back_populates='errors')

    def __repr__(self) -> str:
        return f'<CodeError {self.type!r} severity={self.severity} line={self.line}>'
