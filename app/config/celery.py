"""
Celery configuration for the studio payments application.

Celery runs the payment background work:
- Polling the M-Pesa gateway for a push payment outcome
- The periodic sweep that times out stale push payments (CELERY_BEAT_SCHEDULE)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from payments.tasks import poll_gateway_payment

    poll_gateway_payment.delay(correlation_id)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
