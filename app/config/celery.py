"""
Celery configuration for the Django application.

Celery runs the upload pipeline's background work:
- Assembling uploads in a worker instead of the request cycle
- Periodic storage maintenance (orphaned chunks, stale multipart uploads)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; periodic schedules
live in the database (django-celery-beat).

Usage:
    from uploads.tasks import assemble_upload

    assemble_upload.delay(session_id="a1b2c3", target_key=key, expected_parts=4)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
# The name should match the Django project name
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all registered Django apps
# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
