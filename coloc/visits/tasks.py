import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def dispatch_due_reminders_task():
    """Runs every 5 min via Celery Beat.
    Non-reentrant: a tick is skipped while the previous pass holds the lock.
    Stops between items once the worker starts shutting down."""
    from coloc.celery import shutdown_requested
    from .reminders import run_dispatch_pass

    summary = run_dispatch_pass(should_stop=shutdown_requested.is_set)
    return str(summary) if summary is not None else 'skipped'


@shared_task
def flag_unvalidated_visits_task():
    """Runs hourly. Notifies requesters of past confirmed visits not yet validated."""
    from .services import flag_unvalidated_visits
    return flag_unvalidated_visits()
