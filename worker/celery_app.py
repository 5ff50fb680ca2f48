from celery import Celery

from gbp_hub.core.config import settings

celery = Celery(
    "gbp-hub-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "worker.tasks.sync_organization_listings": {"queue": "sync"},
    },
    beat_schedule={
        "sync-all-organizations": {
            "task": "worker.tasks.sync_all_organizations",
            "schedule": settings.scheduled_sync_minutes * 60.0,
        },
    },
)
