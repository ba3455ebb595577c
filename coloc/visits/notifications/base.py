from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction

from users.models import DeviceToken
from visits.exceptions import ValidationError


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of sending one payload to one device token."""

    token: str
    success: bool
    error_code: Optional[str] = None


class PushDeliverer(ABC):
    """Base class for push transports.

    Token registration is shared by every transport and backed by the
    DeviceToken table; subclasses only implement send().
    """

    def register_token(self, user_id, platform, token):
        """Register a device token, replacing any prior registration of the
        identical token for this user."""
        platform = (platform or "").strip().upper()
        token = (token or "").strip()
        if platform not in DeviceToken.Platform.values:
            raise ValidationError(f"Unknown platform: {platform or '(empty)'}")
        if not token:
            raise ValidationError("Device token must not be empty.")

        User = get_user_model()
        with transaction.atomic():
            # Lock the user row: select_for_update on DeviceToken is a no-op
            # when no matching row exists yet.
            User.objects.select_for_update().filter(pk=user_id).first()
            DeviceToken.objects.filter(user_id=user_id, token=token).delete()
            return DeviceToken.objects.create(
                user_id=user_id, platform=platform, token=token,
            )

    def tokens_for(self, user_id):
        return list(
            DeviceToken.objects.filter(
                user_id=user_id, is_active=True,
            ).values_list("token", flat=True)
        )

    def deactivate(self, tokens):
        if tokens:
            DeviceToken.objects.filter(token__in=tokens).update(is_active=False)

    @abstractmethod
    def send(self, tokens, title, body, data=None) -> list:
        """Send one payload to every token. Returns a DeliveryOutcome per token.

        Raises DependencyUnavailable when the provider cannot be reached at all.
        """
