"""Tests for the visit HTTP API.

Covers:
- Booking a visit (201, 400 past date, 404 unknown housing, 401 anonymous)
- Listing by role, detail visibility
- Status endpoint: role derived from the visit, error codes 403/404/409
- Validate, documents and review endpoints
- Notification list / mark-read
- Device token registration
"""
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from housing.models import Housing
from users.models import DeviceToken, User
from visits.models import Notification, Visit
from visits.tests.fakes import InMemoryPushDeliverer


class APISetupMixin:

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.host = User.objects.create_user(email='host@test.com', password='pass')
        cls.requester = User.objects.create_user(email='requester@test.com', password='pass')
        cls.stranger = User.objects.create_user(email='stranger@test.com', password='pass')
        cls.housing = Housing.objects.create(
            external_key='annonce-5', owner=cls.host, title='Attic room',
        )

    def setUp(self):
        InMemoryPushDeliverer.reset()
        self.client = APIClient()

    def _as(self, user):
        self.client.force_authenticate(user=user)
        return self.client

    def _make_visit(self, **kwargs):
        defaults = {
            'housing_id': str(self.housing.pk),
            'requester': self.requester,
            'scheduled_at': timezone.now() + timedelta(days=4),
        }
        defaults.update(kwargs)
        return Visit.objects.create(**defaults)


class VisitCreateAPITest(APISetupMixin, TestCase):

    def test_book_visit(self):
        when = (timezone.now() + timedelta(days=3)).isoformat()
        resp = self._as(self.requester).post('/api/v1/visits/', {
            'housing_id': 'annonce-5', 'scheduled_at': when, 'notes': 'After 6pm',
        }, format='json')

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['status'], 'pending')
        self.assertEqual(resp.data['housing_id'], str(self.housing.pk))
        self.assertEqual(resp.data['requester'], self.requester.pk)

    def test_past_date(self):
        when = (timezone.now() - timedelta(days=1)).isoformat()
        resp = self._as(self.requester).post('/api/v1/visits/', {
            'housing_id': 'annonce-5', 'scheduled_at': when,
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_unknown_housing(self):
        when = (timezone.now() + timedelta(days=1)).isoformat()
        resp = self._as(self.requester).post('/api/v1/visits/', {
            'housing_id': 'missing', 'scheduled_at': when,
        }, format='json')
        self.assertEqual(resp.status_code, 404)

    def test_anonymous(self):
        resp = self.client.get('/api/v1/visits/')
        self.assertEqual(resp.status_code, 401)


class VisitListAPITest(APISetupMixin, TestCase):

    def test_list_by_role(self):
        visit = self._make_visit()

        resp = self._as(self.host).get('/api/v1/visits/', {'role': 'host'})
        self.assertEqual([v['id'] for v in resp.data['results']], [visit.pk])

        resp = self._as(self.host).get('/api/v1/visits/', {'role': 'requester'})
        self.assertEqual(resp.data['results'], [])

        resp = self._as(self.stranger).get('/api/v1/visits/')
        self.assertEqual(resp.data['results'], [])

    def test_filter_by_status(self):
        self._make_visit()
        confirmed = self._make_visit(status=Visit.Status.CONFIRMED)

        resp = self._as(self.requester).get('/api/v1/visits/', {'status': 'confirmed'})
        self.assertEqual([v['id'] for v in resp.data['results']], [confirmed.pk])

    def test_unknown_role(self):
        resp = self._as(self.requester).get('/api/v1/visits/', {'role': 'admin'})
        self.assertEqual(resp.status_code, 400)

    def test_detail_hidden_from_strangers(self):
        visit = self._make_visit()
        self.assertEqual(self._as(self.host).get(f'/api/v1/visits/{visit.pk}/').status_code, 200)
        self.assertEqual(self._as(self.stranger).get(f'/api/v1/visits/{visit.pk}/').status_code, 404)


class VisitStatusAPITest(APISetupMixin, TestCase):

    def _post_status(self, user, visit, new_status):
        return self._as(user).post(
            f'/api/v1/visits/{visit.pk}/status/', {'status': new_status}, format='json',
        )

    def test_host_confirms(self):
        visit = self._make_visit()
        resp = self._post_status(self.host, visit, 'confirmed')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['status'], 'confirmed')
        self.assertEqual(visit.reminders.count(), 10)

    def test_host_cancel_becomes_refused(self):
        visit = self._make_visit()
        resp = self._post_status(self.host, visit, 'cancelled')

        self.assertEqual(resp.data['status'], 'refused')

    def test_requester_cannot_confirm(self):
        visit = self._make_visit()
        resp = self._post_status(self.requester, visit, 'confirmed')

        self.assertEqual(resp.status_code, 409)
        self.assertIn('requester', resp.data['detail'])

    def test_terminal_visit(self):
        visit = self._make_visit(status=Visit.Status.CANCELLED)
        resp = self._post_status(self.host, visit, 'confirmed')
        self.assertEqual(resp.status_code, 409)

    def test_stranger_gets_404(self):
        visit = self._make_visit()
        resp = self._post_status(self.stranger, visit, 'confirmed')
        self.assertEqual(resp.status_code, 404)

    def test_missing_status(self):
        visit = self._make_visit()
        resp = self._as(self.host).post(f'/api/v1/visits/{visit.pk}/status/', {}, format='json')
        self.assertEqual(resp.status_code, 400)


class VisitActionsAPITest(APISetupMixin, TestCase):

    def test_validate(self):
        visit = self._make_visit(status=Visit.Status.CONFIRMED)
        resp = self._as(self.requester).post(f'/api/v1/visits/{visit.pk}/validate/')

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['status'], 'completed')
        self.assertTrue(resp.data['validated_by_requester'])

    def test_host_cannot_validate(self):
        visit = self._make_visit(status=Visit.Status.CONFIRMED)
        resp = self._as(self.host).post(f'/api/v1/visits/{visit.pk}/validate/')
        self.assertEqual(resp.status_code, 403)

    def test_documents_and_review(self):
        visit = self._make_visit(status=Visit.Status.COMPLETED)
        client = self._as(self.requester)

        resp = client.post(
            f'/api/v1/visits/{visit.pk}/documents/', {'documents': ['id.pdf']}, format='json',
        )
        self.assertEqual(resp.data['attached_documents'], ['id.pdf'])

        resp = client.post(
            f'/api/v1/visits/{visit.pk}/review/', {'review_id': 'rev-9'}, format='json',
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['linked_review_id'], 'rev-9')

    def test_reminders_for_current_user(self):
        visit = self._make_visit()
        self._as(self.host).post(
            f'/api/v1/visits/{visit.pk}/status/', {'status': 'confirmed'}, format='json',
        )

        resp = self._as(self.requester).get(f'/api/v1/visits/{visit.pk}/reminders/')
        self.assertEqual(len(resp.data), 5)
        self.assertTrue(all(r['recipient_role'] == 'requester' for r in resp.data))


class NotificationAPITest(APISetupMixin, TestCase):

    def test_list_and_mark_read(self):
        visit = self._make_visit()
        self._as(self.host).post(
            f'/api/v1/visits/{visit.pk}/status/', {'status': 'confirmed'}, format='json',
        )

        resp = self._as(self.requester).get('/api/v1/notifications/', {'is_read': 'false'})
        self.assertEqual(resp.data['count'], 1)
        self.assertEqual(resp.data['results'][0]['notification_type'], 'VISIT_ACCEPTED')

        resp = self._as(self.requester).post('/api/v1/notifications/mark-read/', {}, format='json')
        self.assertEqual(resp.data['updated'], 1)
        self.assertFalse(Notification.objects.filter(user=self.requester, is_read=False).exists())


class DeviceTokenAPITest(APISetupMixin, TestCase):

    def test_register_token(self):
        client = self._as(self.requester)
        resp = client.post('/api/v1/me/device-tokens/', {
            'platform': 'ANDROID', 'token': 'fcm-abc',
        }, format='json')
        self.assertEqual(resp.status_code, 204)

        client.post('/api/v1/me/device-tokens/', {
            'platform': 'ANDROID', 'token': 'fcm-abc',
        }, format='json')
        self.assertEqual(DeviceToken.objects.filter(user=self.requester).count(), 1)

    def test_bad_platform(self):
        resp = self._as(self.requester).post('/api/v1/me/device-tokens/', {
            'platform': 'SYMBIAN', 'token': 'x',
        }, format='json')
        self.assertEqual(resp.status_code, 400)

    def test_delete_all(self):
        DeviceToken.objects.create(user=self.requester, platform='WEB', token='w')
        resp = self._as(self.requester).delete('/api/v1/me/device-tokens/all/')
        self.assertEqual(resp.status_code, 204)
        self.assertFalse(DeviceToken.objects.filter(user=self.requester).exists())
