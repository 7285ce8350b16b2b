from codecoach.extensions import db
from codecoach.utils import utcnow


class GrowthState(db.Model):
    """Current per-event growth score for one user.

    Only the growth engine writes this row, under the user's lock.
    """

    __tablename__ = 'growth_state'

    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    quality_component = db.Column(db.Float, nullable=True)
    error_reduction_component = db.Column(db.Float, nullable=False, default=50.0)
    problem_solving_component = db.Column(db.Float, nullable=True)
    overall = db.Column(db.Float, nullable=False, default=0.0)
    event_count = db.Column(db.Integer, nullable=False, default=0)
    last_event_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f'<GrowthState user={self.user_id} overall={self.overall:.2f}>'


class GrowthScoreSnapshot(db.Model):
    """Finalized growth score for one closed week. Append-only.

    A correction is a new row with ``supersedes_id`` pointing at the row it
    replaces; the replaced row gets ``superseded`` set and is otherwise
    left untouched.
    """

    __tablename__ = 'growth_score_snapshot'
    __table_args__ = (
        db.Index('ix_growth_snapshot_user_week', 'user_id', 'week_start'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    week_start = db.Column(db.Date, nullable=False)
    week_end = db.Column(db.Date, nullable=False)
    overall = db.Column(db.Float, nullable=False)
    quality_component = db.Column(db.Float, nullable=True)
    error_reduction_component = db.Column(db.Float, nullable=False)
    problem_solving_component = db.Column(db.Float, nullable=True)
    improvement_pct = db.Column(db.Float, nullable=False, default=0.0)
    computed_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    supersedes_id = db.Column(
        db.Integer, db.ForeignKey('growth_score_snapshot.id'), nullable=True
    )
    superseded = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'week_start': self.week_start.isoformat(),
            'week_end': self.week_end.isoformat(),
            'overall': self.overall,
            'quality_component': self.quality_component,
            'error_reduction_component': self.error_reduction_component,
            'problem_solving_component': self.problem_solving_component,
            'improvement_pct': self.improvement_pct,
            'computed_at': self.computed_at.isoformat(),
            'supersedes_id': self.supersedes_id,
        }

    def __repr__(self) -> str:
        return (
            f'<GrowthScoreSnapshot user={self.user_id} '
            f'week={self.week_start} overall={self.overall:.2f}>'
        )
