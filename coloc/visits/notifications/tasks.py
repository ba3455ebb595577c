import logging

from celery import shared_task

from visits.exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=1, default_retry_delay=5)
def send_push_task(self, user_id, title, body, data=None):
    """Async push delivery. Called by notify_user after the sync Notification write."""
    from .dispatcher import deliver_push

    try:
        deliver_push(user_id, title, body, data)
    except DependencyUnavailable as exc:
        logger.warning("Push failed for user %s: %s", user_id, exc)
        raise self.retry(exc=exc)
