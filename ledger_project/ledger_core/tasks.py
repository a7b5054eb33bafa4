import logging

from celery import shared_task

from .exceptions import StorageUnavailableError, UnknownBatchError

logger = logging.getLogger(__name__)


@shared_task(  # register this function as a Celery task
    bind=True,
    autoretry_for=(StorageUnavailableError,),
    retry_backoff=True,
    max_retries=5,
)
def run_batch(self, batch_id):
    # import services lazily to avoid circular imports at module import time
    from .services.batches import process_batch

    try:
        batch = process_batch(batch_id)
    except UnknownBatchError:
        # discarded between submit and pickup
        logger.info("Batch %s no longer exists, nothing to run", batch_id)
        return None
    return {
        "batch_id": batch.pk,
        "status": batch.status,
        "posted_count": batch.posted_count,
        "failed_count": batch.failed_count,
    }
