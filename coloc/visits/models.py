from django.conf import settings
from django.db import models


class Visit(models.Model):
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        REFUSED = 'refused', 'Refused'

    class Role(models.TextChoices):
        REQUESTER = 'requester', 'Requester'
        HOST = 'host', 'Host'

    # Statuses each role may request through the generic status update.
    # A host asking for CANCELLED is stored as REFUSED.
    ROLE_REQUESTABLE_STATUSES = {
        'requester': {'cancelled'},
        'host': {'confirmed', 'refused', 'cancelled', 'completed'},
    }

    TERMINAL_STATUSES = {'completed', 'cancelled', 'refused'}

    housing_id = models.CharField(max_length=64, db_index=True)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
        related_name='requested_visits',
    )
    scheduled_at = models.DateTimeField()
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING,
    )
    validated_by_requester = models.BooleanField(default=False)
    notes = models.TextField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)
    attached_documents = models.JSONField(default=list, blank=True)
    linked_review_id = models.CharField(max_length=64, blank=True)
    not_validated_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['requester', 'status'], name='visit_requester_status_idx'),
            models.Index(fields=['status', 'scheduled_at'], name='visit_status_scheduled_idx'),
        ]
        ordering = ['-scheduled_at']

    def __str__(self):
        return f'Visit {self.pk} ({self.status})'

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_scheduled_at = instance.__dict__.get('scheduled_at')
        return instance

    def save(self, *args, **kwargs):
        loaded = getattr(self, '_loaded_scheduled_at', None)
        if self.pk and loaded is not None and self.scheduled_at != loaded:
            raise ValueError('scheduled_at cannot change after creation')
        super().save(*args, **kwargs)
        self._loaded_scheduled_at = self.scheduled_at

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


class ReminderItem(models.Model):
    """One reminder instant for one recipient of a confirmed visit."""

    class Kind(models.TextChoices):
        DAYS_2 = 'D2', '2 days before'
        DAYS_1 = 'D1', '1 day before'
        HOURS_2 = 'H2', '2 hours before'
        HOURS_1 = 'H1', '1 hour before'
        MINUTES_30 = 'M30', '30 minutes before'

    visit = models.ForeignKey(
        Visit, on_delete=models.CASCADE, related_name='reminders',
    )
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
        related_name='visit_reminders',
    )
    recipient_role = models.CharField(max_length=10, choices=Visit.Role.choices)
    kind = models.CharField(max_length=4, choices=Kind.choices)
    fire_at = models.DateTimeField()
    title = models.CharField(max_length=255)
    body = models.TextField()
    delivered = models.BooleanField(default=False)
    delivered_at = models.DateTimeField(null=True, blank=True)
    skip_reason = models.CharField(max_length=50, blank=True)
    last_error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['visit', 'recipient_role', 'kind'],
                name='unique_reminder_per_visit_role_kind',
            ),
        ]
        indexes = [
            models.Index(fields=['delivered', 'fire_at'], name='reminder_delivered_fire_idx'),
        ]
        ordering = ['fire_at']

    def __str__(self):
        return f'{self.kind} reminder for visit {self.visit_id} ({self.recipient_role})'


class Notification(models.Model):
    class NotificationType(models.TextChoices):
        VISIT_ACCEPTED = 'VISIT_ACCEPTED', 'Visit Accepted'
        VISIT_REFUSED = 'VISIT_REFUSED', 'Visit Refused'
        VISIT_CANCELLED = 'VISIT_CANCELLED', 'Visit Cancelled'
        VISIT_REMINDER = 'VISIT_REMINDER', 'Visit Reminder'
        VISIT_NOT_VALIDATED = 'VISIT_NOT_VALIDATED', 'Visit Not Validated'
        NEW_MESSAGE = 'NEW_MESSAGE', 'New Message'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
        related_name='notifications',
    )
    visit = models.ForeignKey(
        Visit, on_delete=models.CASCADE,
        null=True, blank=True, related_name='notifications',
    )
    housing_id = models.CharField(max_length=64, blank=True)
    notification_type = models.CharField(
        max_length=20, choices=NotificationType.choices,
    )
    role = models.CharField(max_length=10, choices=Visit.Role.choices, blank=True)
    sent_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+',
    )
    title = models.CharField(max_length=255)
    body = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', 'is_read', 'created_at'], name='notification_user_read_idx'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.notification_type}: {self.title}'


class TaskHeartbeat(models.Model):
    class HeartbeatStatus(models.TextChoices):
        OK = 'OK', 'OK'
        FAILED = 'FAILED', 'Failed'

    task_name = models.CharField(max_length=100, unique=True)
    last_run = models.DateTimeField()
    status = models.CharField(
        max_length=10, choices=HeartbeatStatus.choices,
    )
    details = models.TextField(blank=True)

    def __str__(self):
        return f'{self.task_name}: {self.status} ({self.last_run})'
