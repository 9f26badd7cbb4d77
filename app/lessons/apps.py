"""Django app configuration for lessons app."""

from django.apps import AppConfig


class LessonsConfig(AppConfig):
    """Configuration for the lessons app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "lessons"
    verbose_name = "Lessons"
