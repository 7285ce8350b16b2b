from codecoach.extensions import db
from codecoach.utils import utcnow


class AnalysisQueueItem(db.Model):
    """Deferred analysis request for a submission whose retries ran out.

    ``submission_id`` is the deduplication key: one row per submission, and
    the lease columns allow at most one in-flight delivery at a time.
    """

    __tablename__ = 'analysis_queue_item'

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer,
        db.ForeignKey('submission.id'),
        nullable=False,
        unique=True,
        index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default='pending', index=True
    )  # pending | in_flight | done | expired
    deliveries = db.Column(db.Integer, nullable=False, default=0)
    last_error_kind = db.Column(db.String(40), nullable=True)
    last_error_message = db.Column(db.String(500), nullable=True)
    enqueued_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    available_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    lease_owner = db.Column(db.String(64), nullable=True)
    lease_expires_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)

    submission = db.relationship('Submission')

    @property
    def age_seconds(self):
        """Seconds since the item was first enqueued."""
        if self.enqueued_at:
            return int((utcnow() - self.enqueued_at).total_seconds())
        return None

    def __repr__(self) -> str:
        return (
            f'<AnalysisQueueItem submission={self.submission_id} '
            f'status={self.status} deliveries={self.deliveries}>'
        )
