import logging

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging
from django.conf import settings

from visits.exceptions import DependencyUnavailable

from .base import DeliveryOutcome, PushDeliverer

logger = logging.getLogger(__name__)

FCM_APP_NAME = "coloc-push"

# FCM rejects multicast batches larger than this.
FCM_MAX_TOKENS_PER_BATCH = 500


def get_firebase_app():
    """Return the Firebase app used for push, initializing it on first use."""
    try:
        return firebase_admin.get_app(FCM_APP_NAME)
    except ValueError:
        pass

    if not settings.FCM_CREDENTIALS_FILE:
        raise DependencyUnavailable("FCM is not configured (FCM_CREDENTIALS_FILE).")
    cred = credentials.Certificate(settings.FCM_CREDENTIALS_FILE)
    options = {"httpTimeout": settings.FCM_HTTP_TIMEOUT_SECONDS}
    if settings.FCM_PROJECT_ID:
        options["projectId"] = settings.FCM_PROJECT_ID
    app = firebase_admin.initialize_app(cred, options, name=FCM_APP_NAME)
    logger.info("Firebase Admin initialized for push delivery")
    return app


class FCMPushDeliverer(PushDeliverer):
    """Firebase Cloud Messaging transport for ANDROID, IOS and WEB tokens."""

    # Errors meaning the token will never work again.
    PERMANENT_ERRORS = (messaging.UnregisteredError, firebase_exceptions.InvalidArgumentError)

    def send(self, tokens, title, body, data=None):
        tokens = list(tokens)
        if not tokens:
            return []

        app = get_firebase_app()
        payload = {str(k): str(v) for k, v in (data or {}).items()}
        outcomes = []
        dead_tokens = []

        for start in range(0, len(tokens), FCM_MAX_TOKENS_PER_BATCH):
            batch = tokens[start:start + FCM_MAX_TOKENS_PER_BATCH]
            message = messaging.MulticastMessage(
                tokens=batch,
                notification=messaging.Notification(title=title, body=body),
                data=payload,
            )
            try:
                response = messaging.send_each_for_multicast(message, app=app)
            except (firebase_exceptions.FirebaseError, ValueError) as exc:
                raise DependencyUnavailable(f"FCM send failed: {exc}") from exc

            for token, result in zip(batch, response.responses):
                if result.success:
                    outcomes.append(DeliveryOutcome(token=token, success=True))
                    continue
                exc = result.exception
                code = getattr(exc, "code", None) or exc.__class__.__name__
                logger.warning("FCM delivery failed for token %s...: %s", token[:12], code)
                outcomes.append(DeliveryOutcome(token=token, success=False, error_code=code))
                if isinstance(exc, self.PERMANENT_ERRORS):
                    dead_tokens.append(token)

        self.deactivate(dead_tokens)
        return outcomes
