"""Wiring of the orchestration engine from Flask config, plus read models.

One ``CoachService`` is built per app and cached in ``app.extensions``.
Tests replace it with ``install_coach_service`` to inject a scripted
provider and a no-op sleep.
"""
from __future__ import annotations

import logging
import time

from flask import current_app

from codecoach.analysis.aggregator import WeakAreaAggregator
from codecoach.analysis.client import AnalysisClient
from codecoach.analysis.growth import GrowthScoreEngine
from codecoach.analysis.orchestrator import Orchestrator
from codecoach.analysis.providers import get_analysis_provider
from codecoach.analysis.selector import PracticeSelector
from codecoach.services.analysis_queue import DeferredAnalysisQueue
from codecoach.services.repository import Repository

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'codecoach'

_API_KEY_SETTINGS = {
    'claude': 'ANTHROPIC_API_KEY',
    'openai': 'OPENAI_API_KEY',
    'zhipu': 'ZHIPU_API_KEY',
}


def build_analysis_provider(config):
    """Create the analysis provider named by ``ANALYSIS_PROVIDER``."""
    name = config.get('ANALYSIS_PROVIDER', 'remote_llm')
    if name == 'remote_llm':
        ai_provider = config.get('AI_PROVIDER', 'claude')
        api_key = config.get(_API_KEY_SETTINGS.get(ai_provider, ''), '')
        if not api_key:
            logger.warning(
                f"No API key configured for AI provider {ai_provider!r}; "
                f"analysis calls will fail"
            )
        return get_analysis_provider(
            name,
            ai_provider=ai_provider,
            api_key=api_key or None,
            model=config.get('AI_MODEL') or None,
        )
    return get_analysis_provider(name)


class CoachService:
    """Engine components built from one app's configuration."""

    def __init__(self, app, provider=None, sleep=time.sleep, rng=None):
        config = app.config
        self.repository = Repository()
        self.queue = DeferredAnalysisQueue(
            max_age_seconds=config['QUEUE_MAX_AGE_SECONDS'],
            lease_ttl_seconds=config['LEASE_TTL_SECONDS'],
        )
        self.provider = provider or build_analysis_provider(config)
        self.client = AnalysisClient(
            self.provider,
            queue=self.queue,
            timeout=config['ANALYSIS_TIMEOUT_SECONDS'],
            max_attempts=config['ANALYSIS_MAX_ATTEMPTS'],
            backoff_base=config['ANALYSIS_BACKOFF_BASE_SECONDS'],
            jitter=config['ANALYSIS_BACKOFF_JITTER'],
            max_code_chars=config['ANALYSIS_MAX_CODE_CHARS'],
            supported_languages=config['SUPPORTED_LANGUAGES'],
            redelivery_delay=config['QUEUE_REDELIVERY_DELAY_SECONDS'],
            sleep=sleep,
            rng=rng,
        )
        self.aggregator = WeakAreaAggregator(
            self.repository,
            healing_window_days=config['HEALING_WINDOW_DAYS'],
            decay_factor=config['HEALING_DECAY_FACTOR'],
            rank_floor=config['WEAK_AREA_RANK_FLOOR'],
        )
        self.growth = GrowthScoreEngine(
            self.repository, trend_weeks=config['TREND_WEEKS'],
        )
        self.selector = PracticeSelector(self.repository)
        self.orchestrator = Orchestrator(
            self.repository,
            self.client,
            self.aggregator,
            self.growth,
            self.selector,
            queue=self.queue,
            lease_ttl=config['LEASE_TTL_SECONDS'],
            practice_set_size=config['PRACTICE_SET_SIZE'],
            max_workers=config['ORCHESTRATOR_MAX_WORKERS'],
            app=app,
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def submission_view(self, submission_id: int):
        """Current state of a submission, or None if it does not exist."""
        submission = self.repository.get_submission(submission_id)
        if submission is None:
            return None
        data = {
            'submission_id': submission.id,
            'user_id': submission.owner_id,
            'language': submission.language,
            'topic': submission.topic,
            'submitted_at': submission.submitted_at.isoformat(),
            'state': submission.state,
        }
        if submission.error_kind:
            data['error'] = {
                'kind': submission.error_kind,
                'message': submission.error_message,
            }
        outcome = submission.outcome
        if outcome is not None:
            data['outcome'] = {
                'quality_score': outcome.quality_score,
                'weak_areas': sorted(outcome.weak_areas),
                'errors': [
                    {
                        'type': e.type,
                        'severity': e.severity,
                        'line': e.line,
                        'message': e.message,
                        'suggestion': e.suggestion,
                    }
                    for e in outcome.errors
                ],
                'completed_at': outcome.completed_at.isoformat(),
            }
        if submission.state == 'completed':
            data['practice'] = [
                p.to_dict() for p in
                self.repository.get_practice_problems(submission.practice_problem_ids)
            ]
        return data

    def weak_areas_view(self, user_id: int) -> list[dict]:
        return [area.to_dict() for area in self.aggregator.rank(user_id)]

    def growth_view(self, user_id: int, weeks: int = None) -> dict:
        weeks = weeks or current_app.config['TREND_WEEKS']
        return {
            'current': self.growth.current_score(user_id).to_dict(),
            'snapshots': [
                s.to_dict() for s in
                self.repository.list_growth_snapshots(user_id, limit=weeks)
            ],
            'trend': self.growth.trend(user_id, weeks).to_dict(),
        }


def get_coach_service(app=None) -> CoachService:
    """Return the app's CoachService, building it on first use."""
    app = app or current_app._get_current_object()
    service = app.extensions.get(EXTENSION_KEY)
    if service is None:
        service = CoachService(app)
        app.extensions[EXTENSION_KEY] = service
    return service


def install_coach_service(app, service: CoachService) -> CoachService:
    app.extensions[EXTENSION_KEY] = service
    return service
