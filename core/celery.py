from celery import Celery
from core.config import settings

broker_url = settings.REDIS_URL
backend_url = settings.REDIS_URL

celery_app = Celery(
    "tsr_fashion",
    broker=broker_url,
    backend=backend_url,
    include=["tasks.email_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    # Tests run tasks inline, without a broker
    task_always_eager=settings.TESTING,
    task_eager_propagates=False,
)
