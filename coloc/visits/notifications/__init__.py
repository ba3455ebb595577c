from django.conf import settings
from django.utils.module_loading import import_string


def get_push_deliverer():
    """Instantiate the PushDeliverer configured in settings.PUSH_DELIVERER."""
    return import_string(settings.PUSH_DELIVERER)()
