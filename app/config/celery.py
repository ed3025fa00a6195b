"""
Celery configuration for the Django application.

The payments app uses Celery only for periodic housekeeping:
- Reconciling pending transactions whose callback never arrived
- Failing card binding sessions that were never completed
- Resetting subscriptions whose expiry date has passed

Webhooks are processed synchronously in the request so the gateway gets an
answer that reflects the committed state.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up payments/tasks.py
app.autodiscover_tasks()
