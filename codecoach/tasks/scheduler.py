import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)
scheduler = BackgroundScheduler()


def run_queue_maintenance(app):
    """Expire stale queued submissions, redeliver the due ones, then resume
    submissions a crashed worker left mid-pipeline."""
    with app.app_context():
        from codecoach.services.coach_service import get_coach_service

        orchestrator = get_coach_service(app).orchestrator
        batch_size = app.config['QUEUE_DRAIN_BATCH_SIZE']
        expired = orchestrator.expire_stale_queue()
        results = orchestrator.drain_queue(limit=batch_size)
        recovered = orchestrator.recover_stalled(limit=batch_size)
        if expired or results or recovered:
            logger.info(
                f"Queue maintenance: expired={len(expired)}, "
                f"redelivered={len(results)}, recovered={len(recovered)}"
            )
        return expired, results, recovered


def run_weekly_close(app, now=None):
    """Close the previous week for every user."""
    with app.app_context():
        from codecoach.services.coach_service import get_coach_service
        from codecoach.utils import utcnow, week_start_of

        service = get_coach_service(app)
        now = now or utcnow()
        previous_week = week_start_of(now) - timedelta(days=7)
        closed = 0
        for user_id in service.repository.list_user_ids():
            try:
                service.growth.close_week(user_id, previous_week, now=now)
                closed += 1
            except Exception as e:
                service.repository.rollback()
                logger.error(
                    f"Closing week {previous_week} failed for user {user_id}: {e}"
                )
        logger.info(f"Weekly close for {previous_week}: {closed} user(s)")
        return closed


def init_scheduler(app):
    """Initialize and start the scheduler with app context."""
    if not app.config.get('SCHEDULER_ENABLED', False):
        logger.info("Scheduler disabled by config")
        return

    # Deferred analysis queue: expiry and redelivery
    @scheduler.scheduled_job(
        'interval',
        seconds=app.config.get('QUEUE_DRAIN_INTERVAL_SECONDS', 30),
        id='analysis_queue',
        max_instances=1,
        coalesce=True,
    )
    def queue_job():
        run_queue_maintenance(app)

    # Growth snapshots - Monday at 00:30 UTC, for the week that just ended
    @scheduler.scheduled_job(
        'cron', day_of_week='mon', hour=0, minute=30, id='weekly_close',
        timezone='UTC',
    )
    def weekly_close_job():
        run_weekly_close(app)

    try:
        scheduler.start()
        logger.info("Scheduler started successfully")
    except Exception as e:
        logger.error(f"Scheduler failed to start: {e}")
