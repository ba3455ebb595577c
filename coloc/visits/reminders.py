"""Visit reminders: scheduling on confirmation and the periodic dispatch pass."""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, transaction
from django.utils import timezone

from .lookups import display_name_for, find_housing
from .models import Notification, ReminderItem, TaskHeartbeat, Visit

logger = logging.getLogger(__name__)

DISPATCH_TASK_NAME = 'dispatch_due_reminders'
DISPATCH_LOCK_KEY = 'visits:reminder-dispatch:lock'


@dataclass(frozen=True)
class ReminderOffset:
    kind: str
    delta: timedelta
    title: str
    requester_body: str
    host_body: str


REMINDER_OFFSETS = [
    ReminderOffset(
        ReminderItem.Kind.DAYS_2, timedelta(days=2), 'Visit reminder (2 days)',
        'You have a visit for {housing} in 2 days.',
        'You have a visit with {client} for {housing} in 2 days.',
    ),
    ReminderOffset(
        ReminderItem.Kind.DAYS_1, timedelta(days=1), 'Visit reminder (tomorrow)',
        'You have a visit for {housing} tomorrow.',
        'You have a visit with {client} for {housing} tomorrow.',
    ),
    ReminderOffset(
        ReminderItem.Kind.HOURS_2, timedelta(hours=2), 'Visit reminder (2 hours)',
        'You have a visit for {housing} in 2 hours.',
        'You have a visit with {client} for {housing} in 2 hours.',
    ),
    ReminderOffset(
        ReminderItem.Kind.HOURS_1, timedelta(hours=1), 'Visit reminder (1 hour)',
        'You have a visit for {housing} in 1 hour.',
        'You have a visit with {client} for {housing} in 1 hour.',
    ),
    ReminderOffset(
        ReminderItem.Kind.MINUTES_30, timedelta(minutes=30), 'Visit reminder (30 min)',
        'You have a visit for {housing} in 30 minutes.',
        'You have a visit with {client} for {housing} in 30 minutes.',
    ),
]


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

def build_reminders(visit, host_id=None, now=None):
    """Unsaved ReminderItems for every offset still in the future.

    fire_at is anchored on visit.scheduled_at; instants at or before `now`
    are dropped. Host items are only built when host_id is known.
    """
    now = now or timezone.now()
    housing = find_housing(visit.housing_id)
    housing_title = housing.title if housing else 'the housing'

    recipients = [(Visit.Role.REQUESTER, visit.requester_id)]
    if host_id is not None:
        recipients.append((Visit.Role.HOST, host_id))
        client_name = display_name_for(visit.requester_id, default='a client')

    items = []
    for role, recipient_id in recipients:
        for offset in REMINDER_OFFSETS:
            fire_at = visit.scheduled_at - offset.delta
            if fire_at <= now:
                continue
            if role == Visit.Role.HOST:
                body = offset.host_body.format(client=client_name, housing=housing_title)
            else:
                body = offset.requester_body.format(housing=housing_title)
            items.append(ReminderItem(
                visit=visit,
                recipient_id=recipient_id,
                recipient_role=role,
                kind=offset.kind,
                fire_at=fire_at,
                title=offset.title,
                body=body,
            ))
    return items


def schedule_reminders(visit, host_id=None, now=None):
    """Persist the reminders of a freshly confirmed visit.

    Saved as one batch; if the batch fails, each item is retried on its own
    so one bad row never loses the others. Returns the items persisted.
    """
    items = build_reminders(visit, host_id=host_id, now=now)
    if not items:
        logger.info('Visit %s: no future reminder instants to schedule', visit.pk)
        return []

    try:
        with transaction.atomic():
            created = ReminderItem.objects.bulk_create(items)
        logger.info('Visit %s: scheduled %d reminders', visit.pk, len(created))
        return created
    except DatabaseError:
        logger.warning(
            'Visit %s: reminder batch insert failed, retrying per item',
            visit.pk, exc_info=True,
        )

    created = []
    for item in items:
        item.pk = None
        try:
            with transaction.atomic():
                item.save()
        except DatabaseError:
            logger.exception(
                'Visit %s: failed to schedule %s reminder for %s',
                visit.pk, item.kind, item.recipient_role,
            )
            continue
        created.append(item)
    logger.info('Visit %s: scheduled %d/%d reminders', visit.pk, len(created), len(items))
    return created


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

@dataclass
class DispatchSummary:
    selected: int = 0
    delivered: int = 0
    skipped: int = 0
    failed: int = 0
    interrupted: bool = False

    def __str__(self):
        text = (
            f'selected={self.selected} delivered={self.delivered} '
            f'skipped={self.skipped} failed={self.failed}'
        )
        if self.interrupted:
            text += ' interrupted'
        return text


def _claim(item, now):
    """Flip delivered on a single undelivered item. False if someone got there first."""
    return ReminderItem.objects.filter(
        pk=item.pk, delivered=False,
    ).update(delivered=True, delivered_at=now) == 1


def _deliver(item):
    from .notifications.dispatcher import deliver_push

    Notification.objects.create(
        user_id=item.recipient_id,
        visit=item.visit,
        housing_id=item.visit.housing_id,
        notification_type=Notification.NotificationType.VISIT_REMINDER,
        role=item.recipient_role,
        title=item.title,
        body=item.body,
    )
    deliver_push(item.recipient_id, item.title, item.body, data={
        'type': Notification.NotificationType.VISIT_REMINDER,
        'visit_id': item.visit_id,
        'reminder': item.kind,
    })


def dispatch_due_reminders(now=None, should_stop=None):
    """One dispatch pass over reminders due within the tolerance window.

    Each item is claimed (delivered=True) before sending, so an item is
    handed to the push provider at most once and a failed send is never
    retried. Items whose visit is no longer confirmed are consumed without
    sending. `should_stop` is polled between items to honour shutdown.
    """
    now = now or timezone.now()
    tolerance = settings.REMINDER_DISPATCH_TOLERANCE
    summary = DispatchSummary()

    try:
        due = list(
            ReminderItem.objects.filter(
                delivered=False,
                fire_at__gte=now - tolerance,
                fire_at__lte=now + tolerance,
            ).select_related('visit').order_by('fire_at')
        )
        summary.selected = len(due)

        for item in due:
            if should_stop is not None and should_stop():
                summary.interrupted = True
                logger.info('Reminder dispatch interrupted')
                break

            if not _claim(item, now):
                continue

            if item.visit.status != Visit.Status.CONFIRMED:
                ReminderItem.objects.filter(pk=item.pk).update(
                    skip_reason=f'visit_{item.visit.status}',
                )
                summary.skipped += 1
                continue

            try:
                _deliver(item)
            except Exception as exc:
                logger.exception('Reminder %s for visit %s failed', item.pk, item.visit_id)
                ReminderItem.objects.filter(pk=item.pk).update(last_error=str(exc)[:1000])
                summary.failed += 1
                continue
            summary.delivered += 1
    except Exception as exc:
        TaskHeartbeat.objects.update_or_create(
            task_name=DISPATCH_TASK_NAME,
            defaults={
                'last_run': now,
                'status': TaskHeartbeat.HeartbeatStatus.FAILED,
                'details': str(exc)[:1000],
            },
        )
        raise

    TaskHeartbeat.objects.update_or_create(
        task_name=DISPATCH_TASK_NAME,
        defaults={
            'last_run': now,
            'status': TaskHeartbeat.HeartbeatStatus.OK,
            'details': str(summary),
        },
    )
    if summary.selected:
        logger.info('Reminder dispatch: %s', summary)
    return summary


def run_dispatch_pass(now=None, should_stop=None):
    """Non-reentrant entry point for the periodic ticker.

    Returns None without doing anything while another pass holds the lock.
    The lock TTL is refreshed between items, and the pass stops itself once
    it has used REMINDER_DISPATCH_MAX_PASS_SECONDS or lost the lock.
    """
    token = uuid.uuid4().hex
    ttl = settings.REMINDER_DISPATCH_LOCK_TTL_SECONDS
    if not cache.add(DISPATCH_LOCK_KEY, token, ttl):
        logger.info('Reminder dispatch already in flight; skipping this tick')
        return None

    started = time.monotonic()
    budget = settings.REMINDER_DISPATCH_MAX_PASS_SECONDS

    def stop():
        if should_stop is not None and should_stop():
            return True
        if time.monotonic() - started >= budget:
            logger.warning('Reminder dispatch used its %ss budget; stopping', budget)
            return True
        if cache.get(DISPATCH_LOCK_KEY) != token:
            logger.warning('Reminder dispatch lost its lock; stopping')
            return True
        cache.touch(DISPATCH_LOCK_KEY, ttl)
        return False

    try:
        return dispatch_due_reminders(now=now, should_stop=stop)
    finally:
        if cache.get(DISPATCH_LOCK_KEY) == token:
            cache.delete(DISPATCH_LOCK_KEY)
