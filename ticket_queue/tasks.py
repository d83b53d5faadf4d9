"""
Celery Tasks
Background jobs that run against the same queue document as the API.
"""

import time
from datetime import datetime

from celery.utils.log import get_task_logger

from ticket_queue.celery_worker import celery_app
from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.services.queue import get_queue_service

logger = get_task_logger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(QueuePersistenceError,),
    retry_backoff=True
)
def check_queue_reset(self) -> dict:
    """
    Open today's ticket series if the API has not done it yet.

    Takes the same file lock as the API, so a reset triggered here and a
    ticket request arriving at midnight never interleave.

    Returns:
        dict: Whether a reset happened and the series now in effect
    """
    task_id = self.request.id
    start_time = time.time()
    sequencer = get_queue_service().sequencer

    was_reset = sequencer.check_and_reset_for_new_day()
    state = sequencer.store.load()
    elapsed = round(time.time() - start_time, 3)

    if was_reset:
        logger.info(f"🔄 Task {task_id}: queue reset, series {state.current_prefix} started in {elapsed}s")
    else:
        logger.info(f"✅ Task {task_id}: queue already current ({state.last_reset_date})")

    return {
        'reset': was_reset,
        'current_prefix': state.current_prefix,
        'current_number': state.current_number,
        'last_reset_date': state.last_reset_date.isoformat() if state.last_reset_date else None,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
