from celery import Celery
from market.core.config import settings

celery = Celery(
    "market-worker",
    broker=settings.rabbitmq_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    # one outbox event is a handful of blob deletes or a single mail API call
    task_soft_time_limit=60,
    task_time_limit=90,
    broker_connection_retry_on_startup=True,
    task_routes={
        "worker.tasks.process_outbox_event": {"queue": "outbox"},
    },
)
