"""Durable queue of analysis requests whose in-line retries ran out.

Rows live in ``analysis_queue_item``, keyed by submission_id. Delivery is
at-least-once: a claimed item whose worker dies becomes claimable again
when its lease expires. At most one delivery per submission is in flight,
because claiming is a conditional update on the row.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from codecoach.extensions import db
from codecoach.models import AnalysisQueueItem
from codecoach.utils import utcnow

logger = logging.getLogger(__name__)


class DeferredAnalysisQueue:

    def __init__(self, max_age_seconds: int = 3600, lease_ttl_seconds: int = 120):
        self.max_age_seconds = max_age_seconds
        self.lease_ttl_seconds = lease_ttl_seconds

    def _commit(self):
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def enqueue(self, submission_id: int, error_kind: str = None,
                error_message: str = None, delay: float = 0.0, now=None) -> AnalysisQueueItem:
        """Add or re-arm the item for a submission.

        Re-enqueueing keeps the original ``enqueued_at`` so the item still
        ages out relative to its first deferral.
        """
        now = now or utcnow()
        item = AnalysisQueueItem.query.filter_by(submission_id=submission_id).first()
        if item is None:
            item = AnalysisQueueItem(submission_id=submission_id, enqueued_at=now)
            db.session.add(item)
        item.status = 'pending'
        item.available_at = now + timedelta(seconds=delay)
        item.last_error_kind = error_kind
        item.last_error_message = (error_message or '')[:500] or None
        item.lease_owner = None
        item.lease_expires_at = None
        item.finished_at = None
        self._commit()
        logger.info(
            f"Queued analysis for submission {submission_id} "
            f"(deliveries={item.deliveries or 0}, last_error={error_kind})"
        )
        return item

    def get(self, submission_id: int):
        return AnalysisQueueItem.query.filter_by(submission_id=submission_id).first()

    def claim_due(self, worker: str, limit: int = 20, now=None) -> list[int]:
        """Claim items that are due for delivery.

        Returns:
            Submission ids now leased to *worker*, oldest first. Items older
            than the maximum age are left for expiry.
        """
        now = now or utcnow()
        oldest_allowed = now - timedelta(seconds=self.max_age_seconds)
        candidates = (
            AnalysisQueueItem.query.filter(
                AnalysisQueueItem.enqueued_at >= oldest_allowed,
                db.or_(
                    db.and_(
                        AnalysisQueueItem.status == 'pending',
                        AnalysisQueueItem.available_at <= now,
                    ),
                    db.and_(
                        AnalysisQueueItem.status == 'in_flight',
                        AnalysisQueueItem.lease_expires_at < now,
                    ),
                ),
            )
            .order_by(AnalysisQueueItem.enqueued_at, AnalysisQueueItem.id)
            .limit(limit)
            .all()
        )

        claimed = []
        for item in candidates:
            count = AnalysisQueueItem.query.filter(
                AnalysisQueueItem.id == item.id,
                AnalysisQueueItem.status == item.status,
                db.or_(
                    AnalysisQueueItem.lease_owner.is_(None),
                    AnalysisQueueItem.lease_expires_at < now,
                ),
            ).update(
                {
                    AnalysisQueueItem.status: 'in_flight',
                    AnalysisQueueItem.lease_owner: worker,
                    AnalysisQueueItem.lease_expires_at: now + timedelta(
                        seconds=self.lease_ttl_seconds
                    ),
                    AnalysisQueueItem.deliveries: AnalysisQueueItem.deliveries + 1,
                },
                synchronize_session=False,
            )
            self._commit()
            if count == 1:
                claimed.append(item.submission_id)
        return claimed

    def release(self, submission_id: int, worker: str) -> bool:
        """Return a claimed item to pending without counting it as done."""
        count = AnalysisQueueItem.query.filter_by(
            submission_id=submission_id, lease_owner=worker, status='in_flight',
        ).update(
            {
                AnalysisQueueItem.status: 'pending',
                AnalysisQueueItem.lease_owner: None,
                AnalysisQueueItem.lease_expires_at: None,
            },
            synchronize_session=False,
        )
        self._commit()
        return count == 1

    def complete(self, submission_id: int, now=None) -> bool:
        now = now or utcnow()
        count = AnalysisQueueItem.query.filter(
            AnalysisQueueItem.submission_id == submission_id,
            AnalysisQueueItem.status.in_(('pending', 'in_flight')),
        ).update(
            {
                AnalysisQueueItem.status: 'done',
                AnalysisQueueItem.lease_owner: None,
                AnalysisQueueItem.lease_expires_at: None,
                AnalysisQueueItem.finished_at: now,
            },
            synchronize_session=False,
        )
        self._commit()
        return count == 1

    def _idle_clause(self, now):
        """Items nobody is working on: pending, or in flight with a dead lease."""
        return db.or_(
            AnalysisQueueItem.status == 'pending',
            db.and_(
                AnalysisQueueItem.status == 'in_flight',
                AnalysisQueueItem.lease_expires_at < now,
            ),
        )

    def stale_submission_ids(self, now=None) -> list[int]:
        """Idle items older than the maximum age."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.max_age_seconds)
        rows = (
            AnalysisQueueItem.query.filter(
                self._idle_clause(now),
                AnalysisQueueItem.enqueued_at < cutoff,
            )
            .order_by(AnalysisQueueItem.enqueued_at)
            .all()
        )
        return [row.submission_id for row in rows]

    def mark_expired(self, submission_id: int, now=None) -> bool:
        now = now or utcnow()
        count = AnalysisQueueItem.query.filter(
            AnalysisQueueItem.submission_id == submission_id,
            self._idle_clause(now),
        ).update(
            {
                AnalysisQueueItem.status: 'expired',
                AnalysisQueueItem.lease_owner: None,
                AnalysisQueueItem.lease_expires_at: None,
                AnalysisQueueItem.finished_at: now,
            },
            synchronize_session=False,
        )
        self._commit()
        return count == 1

    def pending_count(self) -> int:
        return AnalysisQueueItem.query.filter(
            AnalysisQueueItem.status.in_(('pending', 'in_flight'))
        ).count()
