"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, plus the
beat schedule that opens each business day's ticket series.
"""

from celery import Celery
from celery.schedules import crontab

from ticket_queue.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'ticket_queue_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['ticket_queue.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone=settings.business_timezone,  # Beat runs on local business time
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=2,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    beat_schedule={
        'daily-queue-reset': {
            'task': 'ticket_queue.tasks.check_queue_reset',
            'schedule': crontab(hour=0, minute=1),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
