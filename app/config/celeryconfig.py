from celery.schedules import crontab
from .settings import settings

_redis_url = (
    f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:"
    f"{settings.REDIS_PORT}/{settings.REDIS_DB}"
)

broker_url = _redis_url
result_backend = _redis_url
result_expires = 3600

include = ["app.tasks"]

# Beat fires in the business timezone, payloads stay in UTC
timezone = settings.TIMEZONE
enable_utc = True

task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

task_track_started = True
# A sweep sends at most NOTIFICATION_SWEEP_BATCH_SIZE messages
task_time_limit = 10 * 60
task_soft_time_limit = 8 * 60

worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Sweeps and scheduling are idempotent, redelivery after a crash is safe
task_acks_late = True
task_reject_on_worker_lost = True
task_default_retry_delay = 60

task_default_queue = "booking_notifications"

beat_schedule = {
    "scheduled-notifications-sweeper": {
        "task": "app.tasks.cron.scheduled_notification_sweeper.scheduled_notification_sweeper_task",
        "schedule": crontab(minute=f"*/{settings.NOTIFICATION_SWEEP_INTERVAL_MINUTES}"),
        "args": ("scheduled_notification_sweeper_cron",),
    },
}
beat_schedule_filename = "tmp/celerybeat-schedule"
