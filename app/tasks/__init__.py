"""Celery configuration"""
from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

celery_app = Celery(
    "waf_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.analytics_tasks",
    ]
)

celery_app.conf.task_routes = {
    "app.tasks.analytics.*": {"queue": "analytics"},
}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Analysis results are cached in Redis, task results are only for debugging
    result_expires=3600,
    worker_prefetch_multiplier=1,
)

# Periodic tasks
celery_app.conf.beat_schedule = {
    "analyze-threats": {
        "task": "app.tasks.analytics.analyze_threats",
        "schedule": crontab(minute=f"*/{settings.THREAT_ANALYSIS_INTERVAL_MINUTES}"),
    },
}

if settings.THREAT_MODEL_PATH:
    celery_app.conf.beat_schedule["retrain-threat-model-nightly"] = {
        "task": "app.tasks.analytics.train_threat_model",
        "schedule": crontab(hour=3, minute=0),
    }
