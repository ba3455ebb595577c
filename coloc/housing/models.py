from django.conf import settings
from django.db import models


class Housing(models.Model):
    """A listed shared-housing offer. Visits reference it by id or external key."""
    external_key = models.CharField(max_length=64, unique=True)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='housings',
    )
    title = models.CharField(max_length=200)
    address = models.CharField(max_length=300, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.title
