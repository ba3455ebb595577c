"""Tests for reminder scheduling and the dispatch pass.

Covers:
- Offsets anchored on scheduled_at, past instants never created
- Host reminders only when a host id is known, role-specific text
- Batch insert failure degrades to per-item inserts
- Dispatch window (tolerance), at-most-once delivery, zero-token no-op
- Status re-check at dispatch time (cancelled visits are skipped)
- Per-item failure isolation, shutdown signal, heartbeat
- Non-reentrant pass guard (lock refresh, time budget) and the dispatch_reminders command
"""
import time
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase, override_settings

from housing.models import Housing
from users.models import DeviceToken, User
from visits.models import Notification, ReminderItem, TaskHeartbeat, Visit
from visits.reminders import (
    DISPATCH_LOCK_KEY, build_reminders, dispatch_due_reminders,
    run_dispatch_pass, schedule_reminders,
)
from visits.tests.fakes import InMemoryPushDeliverer


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


SCHEDULED_AT = utc(2025, 3, 10, 10, 0)
CONFIRMED_AT = utc(2025, 3, 1, 0, 0)


class CacheClock:
    """Stands in for the `time` module used by the locmem cache backend."""

    def __init__(self):
        self.now = time.time()

    def time(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ReminderSetupMixin:

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.host = User.objects.create_user(
            email='host@test.com', password='pass',
            first_name='Hana', last_name='Host',
        )
        cls.requester = User.objects.create_user(
            email='requester@test.com', password='pass',
            first_name='Rémi', last_name='Requester',
        )
        cls.housing = Housing.objects.create(
            external_key='annonce-7', owner=cls.host, title='Loft near the station',
        )

    def setUp(self):
        InMemoryPushDeliverer.reset()
        cache.delete(DISPATCH_LOCK_KEY)

    def _make_visit(self, status=Visit.Status.CONFIRMED, **kwargs):
        defaults = {
            'housing_id': str(self.housing.pk),
            'requester': self.requester,
            'scheduled_at': SCHEDULED_AT,
            'status': status,
        }
        defaults.update(kwargs)
        return Visit.objects.create(**defaults)

    def _register(self, user, token):
        return DeviceToken.objects.create(user=user, platform='ANDROID', token=token)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

class ScheduleRemindersTest(ReminderSetupMixin, TestCase):

    def test_requester_instants(self):
        visit = self._make_visit()
        items = schedule_reminders(visit, host_id=None, now=CONFIRMED_AT)

        self.assertEqual(
            sorted(item.fire_at for item in items),
            [
                utc(2025, 3, 8, 10, 0),
                utc(2025, 3, 9, 10, 0),
                utc(2025, 3, 10, 8, 0),
                utc(2025, 3, 10, 9, 0),
                utc(2025, 3, 10, 9, 30),
            ],
        )
        self.assertEqual(ReminderItem.objects.filter(visit=visit).count(), 5)
        self.assertTrue(all(i.recipient_id == self.requester.pk for i in items))

    def test_host_reminders_double_the_set(self):
        visit = self._make_visit()
        schedule_reminders(visit, host_id=self.host.pk, now=CONFIRMED_AT)

        host_items = ReminderItem.objects.filter(visit=visit, recipient_role='host')
        self.assertEqual(host_items.count(), 5)
        self.assertEqual(ReminderItem.objects.filter(visit=visit).count(), 10)
        body = host_items.get(kind=ReminderItem.Kind.DAYS_1).body
        self.assertIn('Rémi Requester', body)
        self.assertIn('Loft near the station', body)

    def test_requester_text(self):
        visit = self._make_visit()
        schedule_reminders(visit, now=CONFIRMED_AT)

        item = ReminderItem.objects.get(visit=visit, kind=ReminderItem.Kind.MINUTES_30)
        self.assertEqual(item.body, 'You have a visit for Loft near the station in 30 minutes.')

    def test_past_instants_are_skipped(self):
        visit = self._make_visit()
        items = schedule_reminders(visit, host_id=self.host.pk, now=utc(2025, 3, 10, 8, 30))

        self.assertEqual(len(items), 4)
        self.assertEqual(
            {item.kind for item in items},
            {ReminderItem.Kind.HOURS_1, ReminderItem.Kind.MINUTES_30},
        )

    def test_instant_equal_to_now_is_skipped(self):
        visit = self._make_visit()
        items = build_reminders(visit, now=utc(2025, 3, 10, 9, 0))

        self.assertEqual([item.kind for item in items], [ReminderItem.Kind.MINUTES_30])

    def test_nothing_to_schedule_after_visit_time(self):
        visit = self._make_visit()
        self.assertEqual(schedule_reminders(visit, now=utc(2025, 3, 11)), [])
        self.assertFalse(ReminderItem.objects.filter(visit=visit).exists())

    def test_batch_failure_falls_back_to_single_inserts(self):
        visit = self._make_visit()
        with patch.object(ReminderItem.objects, 'bulk_create', side_effect=IntegrityError('batch')):
            items = schedule_reminders(visit, host_id=self.host.pk, now=CONFIRMED_AT)

        self.assertEqual(len(items), 10)
        self.assertEqual(ReminderItem.objects.filter(visit=visit).count(), 10)

    def test_partial_failure_keeps_other_items(self):
        visit = self._make_visit()
        ReminderItem.objects.create(
            visit=visit, recipient=self.requester, recipient_role='requester',
            kind=ReminderItem.Kind.DAYS_2, fire_at=utc(2025, 3, 8, 10, 0),
            title='existing', body='existing',
        )
        with self.assertLogs('visits.reminders', level='ERROR'):
            items = schedule_reminders(visit, now=CONFIRMED_AT)

        self.assertEqual(len(items), 4)
        self.assertEqual(ReminderItem.objects.filter(visit=visit).count(), 5)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class DispatchTest(ReminderSetupMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.visit = self._make_visit()
        schedule_reminders(self.visit, host_id=self.host.pk, now=CONFIRMED_AT)
        self._register(self.requester, 'tok-requester')
        self._register(self.host, 'tok-host')

    def _item(self, role, kind):
        return ReminderItem.objects.get(visit=self.visit, recipient_role=role, kind=kind)

    def test_item_inside_tolerance_is_delivered(self):
        summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 2))

        self.assertEqual(summary.delivered, 2)
        item = self._item('requester', ReminderItem.Kind.DAYS_2)
        self.assertTrue(item.delivered)
        self.assertEqual(item.delivered_at, utc(2025, 3, 8, 10, 2))
        sent = InMemoryPushDeliverer.sent_to(['tok-requester'])
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0]['title'], 'Visit reminder (2 days)')
        self.assertEqual(sent[0]['data']['reminder'], ReminderItem.Kind.DAYS_2)

    def test_item_outside_tolerance_is_not_delivered(self):
        summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 7))

        self.assertEqual(summary.selected, 0)
        self.assertFalse(self._item('requester', ReminderItem.Kind.DAYS_2).delivered)
        self.assertEqual(InMemoryPushDeliverer.sent, [])

    def test_early_item_within_tolerance_is_delivered(self):
        dispatch_due_reminders(now=utc(2025, 3, 8, 9, 56))

        self.assertTrue(self._item('requester', ReminderItem.Kind.DAYS_2).delivered)

    def test_second_pass_delivers_nothing(self):
        first = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))
        second = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 3))

        self.assertEqual(first.delivered, 2)
        self.assertEqual(second.selected, 0)
        self.assertEqual(len(InMemoryPushDeliverer.sent_to(['tok-requester'])), 1)

    def test_delivery_is_stored_in_inbox(self):
        dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        notification = Notification.objects.get(user=self.host)
        self.assertEqual(
            notification.notification_type, Notification.NotificationType.VISIT_REMINDER,
        )
        self.assertEqual(notification.role, 'host')
        self.assertEqual(notification.housing_id, str(self.housing.pk))

    def test_zero_tokens_is_successful_noop(self):
        DeviceToken.objects.all().delete()
        summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        self.assertEqual(summary.delivered, 2)
        self.assertEqual(summary.failed, 0)
        self.assertEqual(InMemoryPushDeliverer.sent, [])
        self.assertTrue(self._item('host', ReminderItem.Kind.DAYS_2).delivered)

    def test_cancelled_visit_is_skipped_without_sending(self):
        Visit.objects.filter(pk=self.visit.pk).update(status=Visit.Status.CANCELLED)
        summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        self.assertEqual(summary.skipped, 2)
        self.assertEqual(summary.delivered, 0)
        item = self._item('requester', ReminderItem.Kind.DAYS_2)
        self.assertTrue(item.delivered)
        self.assertEqual(item.skip_reason, 'visit_cancelled')
        self.assertEqual(InMemoryPushDeliverer.sent, [])
        self.assertFalse(Notification.objects.exists())

    def test_provider_failure_consumes_item(self):
        InMemoryPushDeliverer.fail = True
        with self.assertLogs('visits.reminders', level='ERROR'):
            summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        self.assertEqual(summary.failed, 2)
        item = self._item('requester', ReminderItem.Kind.DAYS_2)
        self.assertTrue(item.delivered)
        self.assertIn('push provider down', item.last_error)

        InMemoryPushDeliverer.fail = False
        retry = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 1))
        self.assertEqual(retry.selected, 0)

    def test_one_failure_does_not_abort_the_pass(self):
        with patch(
            'visits.notifications.dispatcher.deliver_push',
            side_effect=[RuntimeError('lookup failed'), []],
        ):
            with self.assertLogs('visits.reminders', level='ERROR'):
                summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        self.assertEqual(summary.failed, 1)
        self.assertEqual(summary.delivered, 1)
        self.assertEqual(
            ReminderItem.objects.filter(kind=ReminderItem.Kind.DAYS_2, delivered=True).count(), 2,
        )

    def test_shutdown_stops_between_items(self):
        summary = dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0), should_stop=lambda: True)

        self.assertTrue(summary.interrupted)
        self.assertEqual(summary.delivered, 0)
        self.assertFalse(ReminderItem.objects.filter(delivered=True).exists())

    def test_heartbeat_is_written(self):
        dispatch_due_reminders(now=utc(2025, 3, 8, 10, 0))

        heartbeat = TaskHeartbeat.objects.get(task_name='dispatch_due_reminders')
        self.assertEqual(heartbeat.status, TaskHeartbeat.HeartbeatStatus.OK)
        self.assertEqual(heartbeat.last_run, utc(2025, 3, 8, 10, 0))
        self.assertIn('delivered=2', heartbeat.details)


class DispatchGuardTest(ReminderSetupMixin, TestCase):

    def test_pass_is_skipped_while_lock_is_held(self):
        cache.add(DISPATCH_LOCK_KEY, 'other-run', 60)
        with self.assertLogs('visits.reminders', level='INFO') as logs:
            self.assertIsNone(run_dispatch_pass(now=utc(2025, 3, 8, 10, 0)))
        self.assertIn('already in flight', logs.output[0])
        self.assertEqual(cache.get(DISPATCH_LOCK_KEY), 'other-run')

    def test_lock_is_released_after_pass(self):
        summary = run_dispatch_pass(now=utc(2025, 3, 8, 10, 0))

        self.assertIsNotNone(summary)
        self.assertIsNone(cache.get(DISPATCH_LOCK_KEY))

    def test_lock_is_released_when_pass_raises(self):
        with patch('visits.reminders.dispatch_due_reminders', side_effect=RuntimeError('db')):
            with self.assertRaises(RuntimeError):
                run_dispatch_pass()
        self.assertIsNone(cache.get(DISPATCH_LOCK_KEY))

    def _schedule_due_pair(self):
        visit = self._make_visit()
        schedule_reminders(visit, host_id=self.host.pk, now=CONFIRMED_AT)
        return visit

    @override_settings(REMINDER_DISPATCH_LOCK_TTL_SECONDS=240)
    def test_lock_is_refreshed_while_pass_runs(self):
        self._schedule_due_pair()
        clock = CacheClock()
        overlapping = []

        def slow_delivery(item):
            clock.advance(200)
            overlapping.append(run_dispatch_pass(now=utc(2025, 3, 8, 10, 0)))

        with patch('django.core.cache.backends.base.time', clock), \
                patch('django.core.cache.backends.locmem.time', clock), \
                patch('visits.reminders._deliver', side_effect=slow_delivery):
            summary = run_dispatch_pass(now=utc(2025, 3, 8, 10, 0))

        # 400s into a pass with a 240s TTL, the second tick is still refused.
        self.assertEqual(summary.delivered, 2)
        self.assertEqual(overlapping, [None, None])
        self.assertIsNone(cache.get(DISPATCH_LOCK_KEY))

    @override_settings(REMINDER_DISPATCH_MAX_PASS_SECONDS=0)
    def test_pass_stops_at_time_budget(self):
        self._schedule_due_pair()
        with self.assertLogs('visits.reminders', level='WARNING') as logs:
            summary = run_dispatch_pass(now=utc(2025, 3, 8, 10, 0))

        self.assertTrue(summary.interrupted)
        self.assertEqual(summary.delivered, 0)
        self.assertIn('budget', logs.output[0])
        self.assertFalse(ReminderItem.objects.filter(delivered=True).exists())

    def test_pass_stops_when_lock_is_lost(self):
        self._schedule_due_pair()

        def lose_lock(item):
            cache.delete(DISPATCH_LOCK_KEY)

        with patch('visits.reminders._deliver', side_effect=lose_lock):
            summary = run_dispatch_pass(now=utc(2025, 3, 8, 10, 0))

        self.assertTrue(summary.interrupted)
        self.assertEqual(summary.delivered, 1)
        self.assertEqual(ReminderItem.objects.filter(delivered=True).count(), 1)

    def test_command_dispatches_at_given_instant(self):
        visit = self._make_visit()
        schedule_reminders(visit, now=CONFIRMED_AT)
        out = StringIO()
        call_command('dispatch_reminders', at='2025-03-08T10:02:00Z', stdout=out)

        self.assertIn('delivered=1', out.getvalue())
        self.assertTrue(
            ReminderItem.objects.get(visit=visit, kind=ReminderItem.Kind.DAYS_2).delivered
        )
