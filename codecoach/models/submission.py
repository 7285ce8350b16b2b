import json

from codecoach.extensions import db
from codecoach.utils import utcnow


class Submission(db.Model):
    """A code submission taken in for analysis.

    The content columns (owner, code, language, topic, submitted_at) are
    written once on intake. The remaining columns track the orchestration
    state machine and the processing lease.
    """

    __tablename__ = 'submission'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer,
        db.ForeignKey('user.id'),
        nullable=False,
        index=True,
    )
    code_text = db.Column(db.Text, nullable=False)
    language = db.Column(db.String(50), nullable=False)
    topic = db.Column(db.String(100), nullable=True)
    submitted_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Orchestration bookkeeping
    state = db.Column(
        db.String(20), nullable=False, default='received', index=True
    )  # received | analyzing | aggregating | scoring | generating | completed | queued | errored
    error_kind = db.Column(db.String(40), nullable=True)
    error_message = db.Column(db.String(500), nullable=True)
    lease_owner = db.Column(db.String(64), nullable=True)
    lease_expires_at = db.Column(db.DateTime, nullable=True)
    practice_problem_ids_json = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Relationships
    owner = db.relationship('User', back_populates='submissions')
    outcome = db.relationship(
        'AnalysisOutcome',
        back_populates='submission',
        uselist=False,
        cascade='all, delete-orphan',
    )

    @property
    def practice_problem_ids(self) -> list:
        """Ids of the practice set generated for this submission, in order."""
        if self.practice_problem_ids_json:
            try:
                return json.loads(self.practice_problem_ids_json)
            except (json.JSONDecodeError, TypeError):
                return []
        return []

    @practice_problem_ids.setter
    def practice_problem_ids(self, value):
        self.practice_problem_ids_json = json.dumps(list(value)) if value is not None else None

    @property
    def line_count(self) -> int:
        """Number of non-blank source lines (at least 1)."""
        lines = [ln for ln in (self.code_text or '').splitlines() if ln.strip()]
        return max(1, len(lines))

    def __repr__(self) -> str:
        return (
            f'<Submission {self.id} owner={self.owner_id} '
            f'state={self.state!r}>'
        )
