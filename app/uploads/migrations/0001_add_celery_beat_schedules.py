"""
Add Celery Beat schedules for upload maintenance tasks.

This migration creates periodic task schedules for:
- Sweeping chunks of abandoned upload sessions (hourly)
- Aborting stale multipart uploads (daily)
"""

from django.db import migrations


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for upload maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every 1 hour
    schedule_1hour, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="hours",
    )

    # Daily at 3 AM UTC
    crontab_daily_3am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name="Uploads: Sweep Orphaned Chunks",
        defaults={
            "task": "uploads.tasks.sweep_orphaned_chunks",
            "interval": schedule_1hour,
            "enabled": True,
            "description": (
                "Deletes chunk objects of upload sessions that were never "
                "completed and saw no new chunk within the retention window."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Uploads: Abort Stale Multipart Uploads",
        defaults={
            "task": "uploads.tasks.abort_stale_multipart_uploads",
            "crontab": crontab_daily_3am,
            "enabled": True,
            "description": (
                "Safety net for multipart uploads left open by workers that "
                "died mid-assembly. Prevents storage accumulation."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove upload periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    task_names = [
        "Uploads: Sweep Orphaned Chunks",
        "Uploads: Abort Stale Multipart Uploads",
    ]

    PeriodicTask.objects.filter(name__in=task_names).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
