from celery import Celery

from flaggate.core.config import settings


celery = Celery(
    "flaggate",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.CELERY_ACCEPT_CONTENT,
    timezone=settings.TIMEZONE,
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    task_routes={
        "flaggate.tasks.feature_flag_retention.purge_feature_flag_evaluations": {"queue": "maintenance"},
    },
    imports=("flaggate.tasks.feature_flag_retention",),
    beat_schedule={
        "purge-feature-flag-evaluations": {
            "task": "flaggate.tasks.feature_flag_retention.purge_feature_flag_evaluations",
            "schedule": float(settings.FEATURE_FLAG_RETENTION_SCHEDULE_SECONDS),
        },
    },
)

celery_app = celery
