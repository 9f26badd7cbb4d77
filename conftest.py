"""
Root pytest configuration for the Django project.

This module points pytest-django at the settings module and provides the
environment the settings file expects, so the suite runs without Docker:
SQLite instead of PostgreSQL and the local filesystem chunk store.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///test_db.sqlite3")
os.environ.setdefault("UPLOAD_STORAGE_BACKEND", "local")
# Production security settings (HTTPS redirect, secure cookies) stay off
os.environ.setdefault("DEBUG", "True")


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    # The test client speaks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # Leases and throttles only need a per-process cache in tests
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "uploads-tests",
        }
    }
    django.setup()
