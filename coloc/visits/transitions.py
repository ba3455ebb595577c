import logging

from django.db import transaction

from .exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from .lookups import find_housing, resolve_host_id
from .models import Notification, Visit

logger = logging.getLogger(__name__)


class VisitStateMachine:
    """Owns visit status changes and the side effects that follow them.

    Status writes happen under a row lock inside one transaction. Side
    effects (notifications, reminder scheduling) run after commit and never
    undo the status change when they fail.
    """

    def transition(self, visit_id, actor_id, actor_role, requested_status):
        requested_status = (requested_status or '').strip().lower()
        if requested_status not in Visit.Status.values:
            raise ValidationError(f'Unknown status: {requested_status or "(empty)"}')
        if actor_role not in Visit.Role.values:
            raise Forbidden(f'Unknown actor role: {actor_role}')

        # housing_id never changes, so the host is resolved before taking the lock.
        host_id = resolve_host_id(self._get(visit_id))
        with transaction.atomic():
            visit = self._lock(visit_id)
            self._verify_actor(visit, actor_id, actor_role, host_id)

            allowed = Visit.ROLE_REQUESTABLE_STATUSES[actor_role]
            if requested_status not in allowed:
                logger.info(
                    'Visit %s: %s may not request %s', visit.pk, actor_role, requested_status,
                )
                raise InvalidTransition(
                    f'A {actor_role} cannot set a visit to {requested_status}.'
                )

            new_status = requested_status
            if actor_role == Visit.Role.HOST and new_status == Visit.Status.CANCELLED:
                # A host declining is always recorded as a refusal.
                new_status = Visit.Status.REFUSED

            self._check_transition(visit, new_status, actor_role)
            previous = visit.status
            visit.status = new_status
            visit.save(update_fields=['status', 'updated_at'])

        logger.info(
            'Visit %s: %s -> %s by %s %s', visit.pk, previous, new_status, actor_role, actor_id,
        )
        self._after_transition(visit, actor_id, host_id)
        return visit

    def validate(self, visit_id, requester_id):
        """Requester confirms the visit took place: confirmed -> completed."""
        with transaction.atomic():
            visit = self._lock(visit_id)
            if visit.requester_id != requester_id:
                raise Forbidden('Only the requester can validate a visit.')
            if visit.status != Visit.Status.CONFIRMED:
                raise InvalidTransition(
                    f'Only a confirmed visit can be validated (current: {visit.status}).'
                )
            visit.validated_by_requester = True
            visit.status = Visit.Status.COMPLETED
            visit.save(update_fields=['validated_by_requester', 'status', 'updated_at'])
        logger.info('Visit %s validated by requester %s', visit.pk, requester_id)
        return visit

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, visit_id, queryset=None):
        queryset = Visit.objects if queryset is None else queryset
        try:
            return queryset.get(pk=visit_id)
        except (Visit.DoesNotExist, ValueError, TypeError):
            raise NotFound(f'Visit {visit_id} not found.')

    def _lock(self, visit_id):
        return self._get(visit_id, Visit.objects.select_for_update())

    def _verify_actor(self, visit, actor_id, actor_role, host_id):
        """Check the actor really holds the claimed role."""
        if actor_role == Visit.Role.REQUESTER:
            if visit.requester_id != actor_id:
                raise Forbidden('Only the requester of this visit can act as requester.')
            return
        if host_id is None or host_id != actor_id:
            logger.info('Visit %s: actor %s is not the verified host', visit.pk, actor_id)
            raise Forbidden('Only the host of this housing can act as host.')

    def _check_transition(self, visit, new_status, actor_role):
        if visit.is_terminal:
            raise InvalidTransition(
                f'Visit is {visit.status}; no further transitions are allowed '
                f'(requested by {actor_role}).'
            )
        if visit.status == new_status:
            raise InvalidTransition(f'Visit is already {new_status}.')

    def _after_transition(self, visit, actor_id, host_id):
        from .notifications.dispatcher import notify_user
        from .reminders import schedule_reminders

        housing = find_housing(visit.housing_id)
        housing_title = housing.title if housing else 'the housing'

        if visit.status == Visit.Status.CONFIRMED:
            notify_user(
                visit.requester_id,
                Notification.NotificationType.VISIT_ACCEPTED,
                'Visit accepted',
                f'Your visit for {housing_title} has been accepted.',
                visit=visit, role=Visit.Role.REQUESTER, sent_by_id=actor_id,
            )
            try:
                schedule_reminders(visit, host_id=host_id)
            except Exception:
                logger.exception('Visit %s: reminder scheduling failed', visit.pk)

        elif visit.status == Visit.Status.REFUSED:
            notify_user(
                visit.requester_id,
                Notification.NotificationType.VISIT_REFUSED,
                'Visit refused',
                f'Your visit for {housing_title} has been refused.',
                visit=visit, role=Visit.Role.REQUESTER, sent_by_id=actor_id,
            )

        elif visit.status == Visit.Status.CANCELLED:
            if host_id is None:
                logger.warning('Visit %s cancelled but host is unknown; not notified', visit.pk)
                return
            notify_user(
                host_id,
                Notification.NotificationType.VISIT_CANCELLED,
                'Visit cancelled',
                f'The visit for {housing_title} was cancelled by the requester.',
                visit=visit, role=Visit.Role.HOST, sent_by_id=actor_id,
            )


state_machine = VisitStateMachine()


def transition_visit(visit_id, actor_id, actor_role, requested_status):
    return state_machine.transition(visit_id, actor_id, actor_role, requested_status)


def validate_visit(visit_id, requester_id):
    return state_machine.validate(visit_id, requester_id)
