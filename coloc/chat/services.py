import logging

from django.db import transaction
from django.utils import timezone

from visits.exceptions import Forbidden, NotFound, ValidationError
from visits.lookups import display_name_for, find_housing
from visits.models import Notification, Visit

from .authorization import authorizer, resolve_receiver
from .models import Message
from .realtime import publish_message_event

logger = logging.getLogger(__name__)

PUSH_PREVIEW_LENGTH = 120


def _get_visit(visit_id):
    try:
        return Visit.objects.get(pk=visit_id)
    except (Visit.DoesNotExist, ValueError, TypeError):
        raise NotFound(f'Visit {visit_id} not found.')


def _clean_attachments(attachments):
    if attachments is None:
        return []
    if not isinstance(attachments, (list, tuple)):
        raise ValidationError('attachments must be a list of strings.')
    return [str(a).strip() for a in attachments if str(a).strip()]


def send_message(visit_id, sender_id, content=None, attachments=None):
    """Store a chat message and notify the counter-party.

    The receiver is always resolved here, never taken from the caller. The
    message is kept even when no receiver can be found; notification and
    realtime failures never fail the send.
    """
    content = (content or '').strip()
    attachments = _clean_attachments(attachments)
    if not content and not attachments:
        raise ValidationError('A message needs text or at least one attachment.')

    visit = _get_visit(visit_id)
    access = authorizer.authorize(visit, sender_id)

    message = Message.objects.create(
        visit=visit,
        sender_id=sender_id,
        receiver_id=access.counterparty_id,
        content=content,
        attachments=attachments,
        kind=Message.kind_for(content, attachments),
    )
    logger.info(
        'Message %s on visit %s from %s (%s) to %s',
        message.pk, visit.pk, sender_id, access.role, message.receiver_id,
    )

    transaction.on_commit(lambda: _after_send(message, visit, access.host_id))
    return message


def _after_send(message, visit, host_id):
    publish_message_event('message_sent', message, message.sender_id)

    target_id = message.receiver_id
    if target_id is None or target_id == message.sender_id:
        # Stored receiver may be unresolved: search again for the push target.
        target_id = resolve_receiver(visit, message.sender_id, host_id)
    if target_id is None:
        logger.info('Message %s: no recipient resolved; notification skipped', message.pk)
        return

    publish_message_event('new_message', message, target_id)
    _notify_new_message(message, visit, target_id)


def _notify_new_message(message, visit, target_id):
    from visits.notifications.dispatcher import notify_user

    try:
        sender_name = display_name_for(message.sender_id, default='Someone')
        housing = find_housing(visit.housing_id)
        housing_title = housing.title if housing else 'Housing'
        if message.content:
            preview = message.content[:PUSH_PREVIEW_LENGTH]
        else:
            preview = 'Sent an image'
        notify_user(
            target_id,
            Notification.NotificationType.NEW_MESSAGE,
            f'{sender_name} ({housing_title})',
            preview,
            visit=visit,
            sent_by_id=message.sender_id,
            data={'message_id': message.pk},
        )
    except Exception:
        logger.exception('Message %s: new-message notification failed', message.pk)


def list_messages(visit_id, actor_id):
    visit = _get_visit(visit_id)
    authorizer.authorize(visit, actor_id)
    return Message.objects.filter(visit=visit).select_related('sender', 'receiver')


def mark_message_read(message_id, actor_id):
    """Receiver-only, and only while the conversation is open. Returns the message."""
    try:
        message = Message.objects.select_related('visit').get(pk=message_id)
    except (Message.DoesNotExist, ValueError, TypeError):
        raise NotFound(f'Message {message_id} not found.')
    authorizer.authorize(message.visit, actor_id, allow_fallback=False)
    if message.receiver_id != actor_id:
        raise Forbidden('Only the receiver can mark a message as read.')

    if not message.read:
        message.read = True
        message.read_at = timezone.now()
        message.save(update_fields=['read', 'read_at'])
        publish_message_event('message_read', message, message.sender_id)
    return message


def mark_all_read(visit_id, actor_id):
    """Mark every message the actor received on this visit as read."""
    visit = _get_visit(visit_id)
    authorizer.authorize(visit, actor_id, allow_fallback=False)
    return Message.objects.filter(
        visit=visit, receiver_id=actor_id, read=False,
    ).update(read=True, read_at=timezone.now())


def unread_count(user_id):
    return Message.objects.filter(receiver_id=user_id, read=False).count()
