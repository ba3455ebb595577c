from django.conf import settings
from django.db import models

from visits.models import Visit


class Message(models.Model):
    class Kind(models.TextChoices):
        TEXT = 'text', 'Text'
        IMAGE = 'image', 'Image'
        TEXT_IMAGE = 'text_image', 'Text + Image'

    visit = models.ForeignKey(
        Visit, on_delete=models.CASCADE, related_name='messages',
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
        related_name='sent_messages',
    )
    # Null when no counter-party could be resolved at send time.
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='received_messages',
    )
    content = models.TextField(blank=True)
    attachments = models.JSONField(default=list, blank=True)
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.TEXT)
    read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['visit', 'created_at'], name='message_visit_created_idx'),
            models.Index(fields=['receiver', 'read'], name='message_receiver_read_idx'),
        ]
        ordering = ['created_at', 'id']

    def __str__(self):
        return f'Message {self.pk} on visit {self.visit_id}'

    @classmethod
    def kind_for(cls, content, attachments):
        if content and attachments:
            return cls.Kind.TEXT_IMAGE
        if attachments:
            return cls.Kind.IMAGE
        return cls.Kind.TEXT
