import os
import threading

from celery import Celery
from celery.signals import task_prerun, task_postrun, worker_shutting_down

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'coloc.settings.prod')

app = Celery('coloc')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Set when the worker receives a warm shutdown; long-running passes poll it
# between items so they stop cleanly instead of being killed mid-batch.
shutdown_requested = threading.Event()


@task_prerun.connect
def close_old_connections_prerun(**kwargs):
    """Close stale DB connections before each task to prevent
    'connection already closed' errors in long-lived workers."""
    from django.db import close_old_connections
    close_old_connections()


@task_postrun.connect
def close_old_connections_postrun(**kwargs):
    """Close DB connections after each task to return them to the pool."""
    from django.db import close_old_connections
    close_old_connections()


@worker_shutting_down.connect
def flag_shutdown(**kwargs):
    shutdown_requested.set()
