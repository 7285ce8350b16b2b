from codecoach.extensions import db
from codecoach.utils import utcnow


class WeakAreaRecord(db.Model):
    """Per-user, per-tag weakness state maintained by the aggregator.

    Records are never deleted. ``severity_ema`` holds the value as of
    ``last_seen``; healing decay for time elapsed since then is applied
    when the record is read.
    """

    __tablename__ = 'weak_area_record'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'tag', name='uq_weak_area_user_tag'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey('user.id'), nullable=False, index=True
    )
    tag = db.Column(db.String(100), nullable=False)
    frequency = db.Column(db.Integer, nullable=False, default=0)
    severity_ema = db.Column(db.Float, nullable=False, default=0.0)
    last_seen = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship('User', backref=db.backref('weak_areas', lazy='dynamic'))

    def __repr__(self) -> str:
        return (
            f'<WeakAreaRecord user={self.user_id} tag={self.tag!r} '
            f'freq={self.frequency} ema={self.severity_ema:.3f}>'
        )


class WeakAreaObservation(db.Model):
    """One tag observed in one analysis outcome, stamped with submission time.

    The observation log lets the aggregator replay a tag's history in
    ``submitted_at`` order when an outcome arrives late.
    """

    __tablename__ = 'weak_area_observation'
    __table_args__ = (
        db.UniqueConstraint(
            'submission_id', 'tag', name='uq_weak_area_obs_submission_tag',
        ),
        db.Index('ix_weak_area_obs_user_tag_time', 'user_id', 'tag', 'observed_at'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    tag = db.Column(db.String(100), nullable=False)
    submission_id = db.Column(
        db.Integer, db.ForeignKey('submission.id'), nullable=False
    )
    severity = db.Column(db.Integer, nullable=False)  # 1 low, 2 medium, 3 high
    observed_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f'<WeakAreaObservation user={self.user_id} tag={self.tag!r} '
            f'submission={self.submission_id}>'
        )
