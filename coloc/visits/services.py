import logging
from datetime import datetime

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import DependencyUnavailable, Forbidden, InvalidTransition, NotFound, ValidationError
from .lookups import get_housing_lookup, resolve_host_id
from .models import Notification, Visit

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------

def create_visit(housing_id, requester_id, scheduled_at, notes='', contact_phone=''):
    """Book a visit. The housing key is resolved once and stored canonically."""
    if not isinstance(scheduled_at, datetime) or timezone.is_naive(scheduled_at):
        raise ValidationError('scheduled_at must be a timezone-aware datetime.')
    if scheduled_at <= timezone.now():
        raise ValidationError('scheduled_at must be in the future.')

    key = str(housing_id or '').strip()
    if not key:
        raise ValidationError('housing_id is required.')

    try:
        housing = get_housing_lookup().find_by_id_or_external_key(key)
    except DependencyUnavailable:
        logger.warning('Housing lookup unavailable; storing key %s as given', key, exc_info=True)
        canonical_id = key
    else:
        if housing is None:
            raise NotFound(f'Housing {key} not found.')
        canonical_id = housing.id

    visit = Visit.objects.create(
        housing_id=canonical_id,
        requester_id=requester_id,
        scheduled_at=scheduled_at,
        notes=notes or '',
        contact_phone=contact_phone or '',
    )
    logger.info('Visit %s requested by %s for housing %s', visit.pk, requester_id, canonical_id)
    return visit


def visits_for_user(user_id, role=None):
    """Visits the user requested, hosts, or both when role is None."""
    hosted = Q(pk__in=[])
    if role != Visit.Role.REQUESTER:
        try:
            housing_ids = get_housing_lookup().owned_housing_ids(user_id)
        except DependencyUnavailable:
            logger.warning('Housing lookup unavailable; hosted visits omitted', exc_info=True)
            housing_ids = []
        hosted = Q(housing_id__in=housing_ids)

    if role == Visit.Role.REQUESTER:
        condition = Q(requester_id=user_id)
    elif role == Visit.Role.HOST:
        condition = hosted
    else:
        condition = Q(requester_id=user_id) | hosted
    return Visit.objects.filter(condition)


def get_visit(visit_id, user_id):
    """A visit the user takes part in. Others' visits look like unknown ids."""
    try:
        visit = Visit.objects.get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, TypeError):
        raise NotFound(f'Visit {visit_id} not found.')
    if visit.requester_id != user_id and resolve_host_id(visit) != user_id:
        raise NotFound(f'Visit {visit_id} not found.')
    return visit


def _lock_for_requester(visit_id, requester_id):
    try:
        visit = Visit.objects.select_for_update().get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, TypeError):
        raise NotFound(f'Visit {visit_id} not found.')
    if visit.requester_id != requester_id:
        raise Forbidden('Only the requester of this visit can do this.')
    return visit


def attach_documents(visit_id, requester_id, names):
    names = [str(n).strip() for n in (names or []) if str(n).strip()]
    if not names:
        raise ValidationError('At least one document name is required.')

    with transaction.atomic():
        visit = _lock_for_requester(visit_id, requester_id)
        if visit.status in (Visit.Status.CANCELLED, Visit.Status.REFUSED):
            raise InvalidTransition(f'Cannot attach documents to a {visit.status} visit.')
        documents = list(visit.attached_documents or [])
        for name in names:
            if name not in documents:
                documents.append(name)
        visit.attached_documents = documents
        visit.save(update_fields=['attached_documents', 'updated_at'])
    return visit


def link_review(visit_id, requester_id, review_id):
    review_id = str(review_id or '').strip()
    if not review_id:
        raise ValidationError('review_id is required.')

    with transaction.atomic():
        visit = _lock_for_requester(visit_id, requester_id)
        if visit.status != Visit.Status.COMPLETED:
            raise InvalidTransition('Only a completed visit can be reviewed.')
        visit.linked_review_id = review_id
        visit.save(update_fields=['linked_review_id', 'updated_at'])
    return visit


# ---------------------------------------------------------------------------
# Notification inbox
# ---------------------------------------------------------------------------

def list_notifications(user_id, is_read=None):
    qs = Notification.objects.filter(user_id=user_id)
    if is_read is not None:
        qs = qs.filter(is_read=is_read)
    return qs


def mark_notifications_read(user_id, ids=None):
    """Mark the given notifications (or all unread ones) as read. Returns the count."""
    qs = Notification.objects.filter(user_id=user_id, is_read=False)
    if ids is not None:
        qs = qs.filter(pk__in=ids)
    return qs.update(is_read=True)


# ---------------------------------------------------------------------------
# Unvalidated visits
# ---------------------------------------------------------------------------

def flag_unvalidated_visits(now=None):
    """Remind requesters to validate confirmed visits whose time has passed.

    Sent at most once per visit: not_validated_notified_at is claimed with a
    conditional update before notifying.
    """
    from .notifications.dispatcher import notify_user

    now = now or timezone.now()
    overdue = Visit.objects.filter(
        status=Visit.Status.CONFIRMED,
        validated_by_requester=False,
        scheduled_at__lt=now,
        not_validated_notified_at__isnull=True,
    )

    flagged = 0
    for visit in overdue:
        claimed = Visit.objects.filter(
            pk=visit.pk, not_validated_notified_at__isnull=True,
        ).update(not_validated_notified_at=now)
        if not claimed:
            continue
        local_date = timezone.localtime(visit.scheduled_at).date()
        notify_user(
            visit.requester_id,
            Notification.NotificationType.VISIT_NOT_VALIDATED,
            'Visit not validated',
            f'Your visit of {local_date:%d/%m/%Y} has not been validated yet. '
            f'Remember to validate it!',
            visit=visit, role=Visit.Role.REQUESTER,
        )
        flagged += 1

    if flagged:
        logger.info('Flagged %d unvalidated visits', flagged)
    return flagged
