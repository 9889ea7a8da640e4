"""Celery application configuration."""

from celery import Celery

from propertyledger.config import get_settings

settings = get_settings()

app = Celery(
    "property_ledger",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["propertyledger.tasks.thumbnails"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,  # thumbnails are small; fail fast
    task_soft_time_limit=90,
)
