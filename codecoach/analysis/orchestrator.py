"""
Submission orchestrator.

Drives one submission through

    received -> analyzing -> aggregating -> scoring -> generating -> completed

with ``errored`` reachable from every non-terminal state and ``queued``
reachable only from ``analyzing`` when the analysis client defers the
request. A queued submission re-enters ``analyzing`` on redelivery or ends
in ``errored`` (kind expired) when it ages out.

Every state change is a conditional write that requires the current state
and the caller's lease, so two workers can never advance the same
submission. Each step is idempotent, which lets a worker pick up a
submission whose previous lease expired mid-pipeline.
"""
from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum

from codecoach.utils import utcnow

from .errors import (
    AnalysisDeferred, AnalysisError, CodecoachError, ErrorKind, InvalidTransition,
    LeaseUnavailable,
)
from .types import GrowthScore, PracticeSelection

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    RECEIVED = 'received'
    ANALYZING = 'analyzing'
    AGGREGATING = 'aggregating'
    SCORING = 'scoring'
    GENERATING = 'generating'
    COMPLETED = 'completed'
    QUEUED = 'queued'
    ERRORED = 'errored'


TRANSITIONS = {
    SubmissionState.RECEIVED: {SubmissionState.ANALYZING, SubmissionState.ERRORED},
    SubmissionState.ANALYZING: {
        SubmissionState.AGGREGATING, SubmissionState.QUEUED, SubmissionState.ERRORED,
    },
    SubmissionState.AGGREGATING: {SubmissionState.SCORING, SubmissionState.ERRORED},
    SubmissionState.SCORING: {SubmissionState.GENERATING, SubmissionState.ERRORED},
    SubmissionState.GENERATING: {SubmissionState.COMPLETED, SubmissionState.ERRORED},
    SubmissionState.QUEUED: {SubmissionState.ANALYZING, SubmissionState.ERRORED},
    SubmissionState.COMPLETED: set(),
    SubmissionState.ERRORED: set(),
}

TERMINAL_STATES = frozenset({SubmissionState.COMPLETED, SubmissionState.ERRORED})


@dataclass
class SubmissionResult:
    """What the caller gets back: completed, queued, or errored."""

    status: str
    submission_id: int | None = None
    error_kind: str | None = None
    error_message: str | None = None
    quality_score: float | None = None
    errors: list = field(default_factory=list)
    weak_areas: list = field(default_factory=list)
    growth: GrowthScore | None = None
    practice: list = field(default_factory=list)
    no_candidates: bool = False

    @property
    def completed(self) -> bool:
        return self.status == SubmissionState.COMPLETED.value

    def to_dict(self) -> dict:
        data = {
            'status': self.status,
            'submission_id': self.submission_id,
        }
        if self.status == SubmissionState.ERRORED.value:
            data['error'] = {'kind': self.error_kind, 'message': self.error_message}
        if self.status == SubmissionState.QUEUED.value:
            data['last_error'] = {'kind': self.error_kind, 'message': self.error_message}
        if self.completed:
            data.update({
                'quality_score': self.quality_score,
                'errors': self.errors,
                'weak_areas': self.weak_areas,
                'growth': self.growth.to_dict() if self.growth else None,
                'practice': [p.to_dict() for p in self.practice],
                'no_candidates': self.no_candidates,
            })
        return data


def _error_dicts(outcome) -> list[dict]:
    return [
        {
            'type': e.type,
            'severity': e.severity,
            'line': e.line,
            'message': e.message,
            'suggestion': e.suggestion,
            'area': e.area,
        }
        for e in outcome.errors
    ]


class Orchestrator:
    """Coordinates the analysis client and the three in-process components.

    Args:
        repository: Storage collaborator.
        client: ``AnalysisClient``; its queue receives deferred requests.
        aggregator: ``WeakAreaAggregator``.
        growth: ``GrowthScoreEngine``.
        selector: ``PracticeSelector``.
        queue: ``DeferredAnalysisQueue`` drained by ``drain_queue``.
        lease_ttl: Seconds a processing lease stays valid.
        practice_set_size: Problems per generated practice set.
        app: Flask app, needed only by ``process_many`` worker threads.
    """

    def __init__(self, repository, client, aggregator, growth, selector,
                 queue=None, lease_ttl: int = 120, practice_set_size: int = 5,
                 max_workers: int = 4, app=None):
        self.repository = repository
        self.client = client
        self.aggregator = aggregator
        self.growth = growth
        self.selector = selector
        self.queue = queue
        self.lease_ttl = lease_ttl
        self.practice_set_size = practice_set_size
        self.max_workers = max_workers
        self.app = app

    # ------------------------------------------------------------------
    # Caller-facing operation
    # ------------------------------------------------------------------

    def submit_for_analysis(self, user_id: int, code: str, language: str,
                            topic: str = None, submitted_at=None) -> SubmissionResult:
        """Take in a submission and run it through the pipeline.

        An unknown user is reported as errored (referential integrity)
        before any submission is stored or any remote call is made.
        """
        if self.repository.get_user(user_id) is None:
            logger.warning(f"Submission rejected: unknown user {user_id}")
            return SubmissionResult(
                status=SubmissionState.ERRORED.value,
                error_kind=ErrorKind.REFERENTIAL_INTEGRITY.value,
                error_message=f"unknown user {user_id}",
            )
        submission = self.repository.put_submission(
            user_id, code, language, topic=topic, submitted_at=submitted_at,
        )
        logger.info(
            f"Received submission {submission.id} from user {user_id} ({language})"
        )
        return self.process(submission.id)

    def process(self, submission_id: int) -> SubmissionResult:
        """Advance a submission as far as it can go under a fresh lease.

        Raises:
            LeaseUnavailable: Another worker holds the submission.
        """
        token = uuid.uuid4().hex
        if not self.repository.acquire_lease(submission_id, token, self.lease_ttl):
            raise LeaseUnavailable(f"submission {submission_id} is leased by another worker")
        try:
            result = self._run(submission_id, token)
        finally:
            self.repository.release_lease(submission_id, token)
        if self.queue is not None and result.status != SubmissionState.QUEUED.value:
            # Settles any queue item, whoever delivered the submission
            self.queue.complete(submission_id)
        return result

    def process_many(self, submission_ids) -> dict:
        """Process submissions concurrently, one app context per worker thread.

        Returns:
            Mapping of submission id to ``SubmissionResult`` or the exception
            that stopped it (for example ``LeaseUnavailable``).
        """
        if self.app is None:
            raise RuntimeError("process_many needs the Flask app for worker threads")

        def _run_one(submission_id):
            with self.app.app_context():
                return self.process(submission_id)

        results = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(_run_one, sid): sid for sid in submission_ids}
            for future in as_completed(futures):
                submission_id = futures[future]
                try:
                    results[submission_id] = future.result()
                except CodecoachError as e:
                    logger.warning(f"Submission {submission_id} not processed: {e.message}")
                    results[submission_id] = e
        return results

    # ------------------------------------------------------------------
    # Queue maintenance
    # ------------------------------------------------------------------

    def drain_queue(self, limit: int = 20, now=None) -> list[SubmissionResult]:
        """Redeliver due queued submissions to the pipeline."""
        if self.queue is None:
            return []
        worker = uuid.uuid4().hex
        results = []
        for submission_id in self.queue.claim_due(worker, limit=limit, now=now):
            try:
                result = self.process(submission_id)
            except LeaseUnavailable:
                self.queue.release(submission_id, worker)
                continue
            results.append(result)
        if results:
            logger.info(f"Drained {len(results)} queued submission(s)")
        return results

    def expire_stale_queue(self, now=None) -> list[int]:
        """Move submissions queued longer than the maximum age to errored.

        A redelivered submission whose worker died mid-pipeline still has its
        queue item; it is errored (kind expired) from whatever state it was
        left in.
        """
        if self.queue is None:
            return []
        now = now or utcnow()
        expired = []
        for submission_id in self.queue.stale_submission_ids(now=now):
            token = uuid.uuid4().hex
            if not self.repository.acquire_lease(submission_id, token, self.lease_ttl):
                continue
            try:
                submission = self.repository.get_submission(submission_id)
                state = SubmissionState(submission.state) if submission else None
                if state is not None and state not in TERMINAL_STATES:
                    self._transition(
                        submission_id, state, SubmissionState.ERRORED, token,
                        error_kind=ErrorKind.EXPIRED.value,
                        error_message=(
                            f"queued for more than {self.queue.max_age_seconds}s "
                            f"without a successful analysis"
                        ),
                    )
                    expired.append(submission_id)
                self.queue.mark_expired(submission_id, now=now)
            finally:
                self.repository.release_lease(submission_id, token)
        if expired:
            logger.warning(f"Expired {len(expired)} queued submission(s): {expired}")
        return expired

    def recover_stalled(self, limit: int = 20, now=None) -> list[SubmissionResult]:
        """Resume submissions abandoned mid-pipeline by a crashed worker."""
        results = []
        for submission_id in self.repository.list_stalled_submission_ids(
            self.lease_ttl, now=now, limit=limit,
        ):
            try:
                result = self.process(submission_id)
            except LeaseUnavailable:
                continue
            results.append(result)
        if results:
            logger.warning(
                f"Recovered {len(results)} stalled submission(s): "
                f"{[r.submission_id for r in results]}"
            )
        return results

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _transition(self, submission_id, current: SubmissionState,
                    target: SubmissionState, token: str, **values):
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(
                f"submission {submission_id}: {current.value} -> {target.value} "
                f"is not allowed"
            )
        if not self.repository.set_submission_state(
            submission_id, target.value, expected=current.value,
            lease_owner=token, **values,
        ):
            raise LeaseUnavailable(
                f"submission {submission_id} changed state or lease during "
                f"{current.value} -> {target.value}"
            )
        logger.info(f"Submission {submission_id}: {current.value} -> {target.value}")
        return target

    def _fail(self, submission_id, current, token, kind: ErrorKind, message: str):
        self.repository.rollback()
        self._transition(
            submission_id, current, SubmissionState.ERRORED, token,
            error_kind=kind.value, error_message=message,
        )
        logger.warning(f"Submission {submission_id} errored ({kind.value}): {message}")
        return SubmissionResult(
            status=SubmissionState.ERRORED.value,
            submission_id=submission_id,
            error_kind=kind.value,
            error_message=message,
        )

    def _run(self, submission_id: int, token: str) -> SubmissionResult:
        submission = self.repository.get_submission(submission_id)
        if submission is None:
            return SubmissionResult(
                status=SubmissionState.ERRORED.value,
                submission_id=submission_id,
                error_kind=ErrorKind.REFERENTIAL_INTEGRITY.value,
                error_message=f"unknown submission {submission_id}",
            )

        state = SubmissionState(submission.state)
        user_id = submission.owner_id
        if state in TERMINAL_STATES:
            return self._result_for(submission_id)

        # Analyzing
        if state in (SubmissionState.RECEIVED, SubmissionState.QUEUED):
            state = self._transition(submission_id, state, SubmissionState.ANALYZING, token)
        if state == SubmissionState.ANALYZING:
            outcome = self.repository.get_analysis_outcome(submission_id)
            if outcome is None:
                try:
                    report = self.client.analyze(
                        submission.code_text, submission.language,
                        submission_id=submission_id,
                    )
                except AnalysisDeferred as e:
                    self._transition(
                        submission_id, state, SubmissionState.QUEUED, token,
                        error_kind=e.kind.value, error_message=e.message,
                    )
                    return SubmissionResult(
                        status=SubmissionState.QUEUED.value,
                        submission_id=submission_id,
                        error_kind=e.kind.value,
                        error_message=e.message,
                    )
                except AnalysisError as e:
                    return self._fail(submission_id, state, token, e.kind, e.message)
                try:
                    self.repository.put_analysis_outcome(submission_id, report)
                except CodecoachError as e:
                    return self._fail(
                        submission_id, state, token,
                        e.kind or ErrorKind.COMPONENT_FAILURE, e.message,
                    )
            state = self._transition(submission_id, state, SubmissionState.AGGREGATING, token)

        outcome = self.repository.get_analysis_outcome(submission_id)

        # Aggregating
        if state == SubmissionState.AGGREGATING:
            _, failure = self._step(submission_id, state, token, 'aggregator',
                                    self.aggregator.ingest, user_id, outcome)
            if failure:
                return failure
            state = self._transition(submission_id, state, SubmissionState.SCORING, token)

        # Scoring
        if state == SubmissionState.SCORING:
            _, failure = self._step(submission_id, state, token, 'growth',
                                    self.growth.record_submission, user_id, outcome)
            if failure:
                return failure
            state = self._transition(submission_id, state, SubmissionState.GENERATING, token)

        # Generating
        selection = None
        if state == SubmissionState.GENERATING:
            user = self.repository.get_user(user_id)

            def _generate():
                ranked = self.aggregator.rank(user_id)
                return self.selector.select(ranked, user.skill_level, self.practice_set_size)

            selection, failure = self._step(submission_id, state, token, 'selector', _generate)
            if failure:
                return failure
            self._transition(
                submission_id, state, SubmissionState.COMPLETED, token,
                practice_problem_ids=[p.id for p in selection.problems],
            )

        return self._result_for(submission_id, selection=selection)

    def _step(self, submission_id, state, token, component, func, *args):
        """Run one in-process component.

        Returns:
            (value, None) on success; (None, errored result) when the
            component failed and the submission was moved to errored.
        """
        try:
            value = func(*args)
        except CodecoachError as e:
            return None, self._fail(
                submission_id, state, token,
                e.kind or ErrorKind.COMPONENT_FAILURE, f"{component}: {e.message}",
            )
        except Exception as e:
            logger.exception(f"Submission {submission_id}: {component} failed")
            return None, self._fail(
                submission_id, state, token, ErrorKind.COMPONENT_FAILURE,
                f"{component}: {type(e).__name__}: {e}",
            )
        return value, None

    def _result_for(self, submission_id: int,
                    selection: PracticeSelection = None) -> SubmissionResult:
        submission = self.repository.get_submission(submission_id)
        state = SubmissionState(submission.state)
        if state != SubmissionState.COMPLETED:
            return SubmissionResult(
                status=state.value,
                submission_id=submission_id,
                error_kind=submission.error_kind,
                error_message=submission.error_message,
            )

        outcome = submission.outcome
        if selection is None:
            problems = self.repository.get_practice_problems(submission.practice_problem_ids)
            selection = PracticeSelection(
                problems=problems,
                no_candidates=not problems,
            )
        return SubmissionResult(
            status=state.value,
            submission_id=submission_id,
            quality_score=outcome.quality_score,
            errors=_error_dicts(outcome),
            weak_areas=sorted(outcome.weak_areas),
            growth=self.growth.current_score(submission.owner_id),
            practice=selection.problems,
            no_candidates=selection.no_candidates,
        )
