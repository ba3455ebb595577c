"""Who may chat about a visit, and who receives what they send.

Access is decided in a fixed order, first match wins:

1. the visit's requester;
2. the verified host (owner of the visit's housing);
3. anyone already present on a message of the visit;
4. the unverified-requester policy (see allow_unverified_requester).

Chat only exists while the visit is confirmed; every other status denies.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db.models import Q

from visits.exceptions import Forbidden
from visits.lookups import resolve_host_id
from visits.models import Visit

from .models import Message

logger = logging.getLogger(__name__)

ROLE_REQUESTER = 'requester'
ROLE_HOST = 'host'
ROLE_PARTICIPANT = 'participant'


@dataclass(frozen=True)
class ConversationAccess:
    role: str
    counterparty_id: Optional[int]
    host_id: Optional[int] = None


def allow_unverified_requester(visit, actor_id, host_id):
    """Policy: let an actor we could not place talk as the requester.

    Ids that fail to line up across services must not block a legitimate
    first message on a confirmed visit. Switched off with
    CHAT_ALLOW_UNVERIFIED_REQUESTER=False.
    """
    if not settings.CHAT_ALLOW_UNVERIFIED_REQUESTER:
        return False
    return visit.status == Visit.Status.CONFIRMED and actor_id != host_id


def resolve_receiver(visit, actor_id, host_id):
    """Counter-party for a message sent by actor_id, or None when unknown.

    Tries the housing owner, then the sender of the latest message not
    authored by the actor, then any other id seen on the visit's messages.
    """
    if host_id is not None and host_id != actor_id:
        return host_id

    latest_other = (
        Message.objects.filter(visit=visit)
        .exclude(sender_id=actor_id)
        .order_by('-created_at', '-id')
        .values_list('sender_id', flat=True)
        .first()
    )
    if latest_other is not None:
        return latest_other

    for sender_id, receiver_id in Message.objects.filter(visit=visit).values_list(
        'sender_id', 'receiver_id',
    ):
        for candidate in (sender_id, receiver_id):
            if candidate is not None and candidate != actor_id:
                return candidate
    return None


class ConversationAuthorizer:

    def authorize(self, visit, actor_id, allow_fallback=True):
        """Return the actor's ConversationAccess or raise Forbidden."""
        if visit.status != Visit.Status.CONFIRMED:
            logger.info(
                'Chat denied on visit %s for %s: visit is %s', visit.pk, actor_id, visit.status,
            )
            raise Forbidden(
                f'Chat is only available for confirmed visits (current: {visit.status}).'
            )

        host_id = resolve_host_id(visit)

        if actor_id == visit.requester_id:
            return ConversationAccess(
                ROLE_REQUESTER, resolve_receiver(visit, actor_id, host_id), host_id,
            )

        if host_id is not None and actor_id == host_id:
            return ConversationAccess(ROLE_HOST, visit.requester_id, host_id)

        last = (
            Message.objects.filter(visit=visit)
            .filter(Q(sender_id=actor_id) | Q(receiver_id=actor_id))
            .order_by('-created_at', '-id')
            .first()
        )
        if last is not None:
            other = last.receiver_id if last.sender_id == actor_id else last.sender_id
            return ConversationAccess(ROLE_PARTICIPANT, other, host_id)

        if allow_fallback and allow_unverified_requester(visit, actor_id, host_id):
            logger.warning(
                'Visit %s: actor %s not verified, allowed as requester by policy',
                visit.pk, actor_id,
            )
            return ConversationAccess(
                ROLE_REQUESTER, resolve_receiver(visit, actor_id, host_id), host_id,
            )

        logger.info('Chat denied on visit %s for actor %s', visit.pk, actor_id)
        raise Forbidden('You are not a participant of this visit conversation.')


authorizer = ConversationAuthorizer()
