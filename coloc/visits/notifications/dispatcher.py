import logging

from visits.models import Notification

from . import get_push_deliverer

logger = logging.getLogger(__name__)


def notify_user(user_id, notification_type, title, body, *, visit=None,
                role="", sent_by_id=None, data=None, push=True):
    """In-app notification + push for a single user.

    The Notification row is written synchronously (inbox UI). Push delivery
    is enqueued asynchronously so provider calls never block the request.
    Failures are logged and swallowed: a notification must never fail the
    operation that triggered it.
    """
    try:
        notification = Notification.objects.create(
            user_id=user_id,
            visit=visit,
            housing_id=visit.housing_id if visit else "",
            notification_type=notification_type,
            role=role,
            sent_by_id=sent_by_id,
            title=title,
            body=body,
        )
    except Exception:
        logger.exception(
            "Failed to store %s notification for user %s", notification_type, user_id,
        )
        return None

    if push:
        from .tasks import send_push_task

        payload = {"type": notification_type, "notification_id": notification.pk}
        if visit is not None:
            payload["visit_id"] = visit.pk
        payload.update(data or {})
        try:
            send_push_task.delay(user_id=user_id, title=title, body=body, data=payload)
        except Exception:
            logger.exception("Failed to enqueue push for user %s", user_id)
    return notification


def deliver_push(user_id, title, body, data=None):
    """Synchronous push to every active device of a user.

    Zero registered tokens is a successful no-op. Raises DependencyUnavailable
    when the provider is unreachable.
    """
    deliverer = get_push_deliverer()
    tokens = deliverer.tokens_for(user_id)
    if not tokens:
        logger.debug("No device tokens for user %s; push skipped", user_id)
        return []

    outcomes = deliverer.send(tokens, title, body, data or {})
    failed = [o for o in outcomes if not o.success]
    if failed:
        logger.info(
            "Push to user %s: %d/%d tokens failed", user_id, len(failed), len(outcomes),
        )
    return outcomes
