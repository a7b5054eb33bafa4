import logging

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from ..exceptions import (InvalidTransitionError, LedgerError,
                          StorageUnavailableError, UnknownBatchError,
                          UnknownEntryError)
from ..models import Batch, BatchEntry, JournalEntry
from .audit_helper import log_action
from .guards import storage_guard
from .posting import post_journal_entry

logger = logging.getLogger(__name__)


def _get_batch(batch_id, company=None, lock=False):
    qs = Batch.objects.all()
    if company is not None:
        qs = qs.for_company(company)
    if lock:
        qs = qs.select_for_update()
    batch = qs.filter(pk=batch_id).first()
    if batch is None:
        raise UnknownBatchError(f"Batch {batch_id} does not exist.", batch_id=batch_id)
    return batch


def _error_record(exc):
    """Structured error stored on a failed BatchEntry."""
    if isinstance(exc, LedgerError):
        return exc.as_dict()
    # Model-level ValidationError from full_clean()
    return {
        "code": "validation_error",
        "message": "; ".join(exc.messages),
        "context": {},
    }


@storage_guard
def submit_batch(company, user, entry_ids, description=""):
    """
    Queue many journal entries to be posted together.
    The worker is only dispatched once the batch rows are committed.
    """
    entry_ids = list(entry_ids)
    if not entry_ids:
        raise ValidationError("A batch needs at least one journal entry.")
    if len(set(entry_ids)) != len(entry_ids):
        raise ValidationError("A journal entry can appear only once in a batch.")

    found = set(
        JournalEntry.objects.for_company(company)
        .filter(pk__in=entry_ids)
        .values_list("pk", flat=True)
    )
    missing = [pk for pk in entry_ids if pk not in found]
    if missing:
        raise UnknownEntryError(
            f"Journal entries {missing} do not exist.",
            entry_ids=missing,
        )

    with transaction.atomic():
        batch = Batch.objects.create(
            company=company,
            user=user,
            description=description,
            total_count=len(entry_ids),
        )
        BatchEntry.objects.bulk_create([
            BatchEntry(batch=batch, journal_id=pk, position=position)
            for position, pk in enumerate(entry_ids)
        ])
        log_action(
            action="submit_batch",
            instance=batch,
            user=user,
            changes={"entry_ids": entry_ids},
        )

        # Local import: tasks imports this module
        from ..tasks import run_batch
        transaction.on_commit(lambda: run_batch.delay(batch.pk))

    logger.info("Submitted batch %s with %s entries", batch.pk, len(entry_ids))
    return batch


def _refresh_counts(batch):
    counts = batch.entries.aggregate(
        posted=models.Count("id", filter=models.Q(outcome="posted")),
        failed=models.Count("id", filter=models.Q(outcome="failed")),
    )
    # update() keeps mid-flight readers seeing progress without a full save
    Batch.objects.filter(pk=batch.pk).update(
        posted_count=counts["posted"], failed_count=counts["failed"])
    batch.posted_count = counts["posted"]
    batch.failed_count = counts["failed"]
    return batch


def _process_entry(batch, entry_pk):
    """Post one batch entry in its own transaction and record the outcome."""
    with transaction.atomic():
        be = BatchEntry.objects.select_for_update().get(pk=entry_pk)
        if be.outcome != "pending":
            # already handled by an earlier (retried) run
            return be
        try:
            post_journal_entry(be.journal_id, user=batch.user, company=batch.company)
        except StorageUnavailableError:
            raise
        except (LedgerError, ValidationError) as exc:
            be.outcome = "failed"
            be.error = _error_record(exc)
            logger.warning("Batch %s: JE %s failed (%s)",
                           batch.pk, be.journal_id, be.error["code"])
        else:
            be.outcome = "posted"
        be.processed_at = timezone.now()
        be.save(update_fields=["outcome", "error", "processed_at"])
    return be


@storage_guard
def process_batch(batch_id):
    """
    Post every entry of a batch, one transaction per entry.

    A failing entry never blocks the others: its error is stored on its
    BatchEntry row. A batch already Processing is resumed from its pending
    entries (a retried worker), a finished one is returned untouched.
    StorageUnavailableError propagates so the task can retry.
    """
    with transaction.atomic():
        batch = _get_batch(batch_id, lock=True)
        if batch.is_terminal:
            return batch
        if batch.status == "pending":
            batch.transition_to("processing")
            batch.started_at = timezone.now()
            batch.save(update_fields=["status", "started_at"])
            log_action(action="process_batch", instance=batch)

    pending = list(
        batch.entries.filter(outcome="pending")
        .order_by("position")
        .values_list("pk", flat=True)
    )
    for entry_pk in pending:
        _process_entry(batch, entry_pk)
        _refresh_counts(batch)

    with transaction.atomic():
        batch = _get_batch(batch_id, lock=True)
        if batch.is_terminal:
            return batch
        _refresh_counts(batch)
        if batch.entries.filter(outcome="pending").exists():
            # someone else is still working through it
            return batch
        batch.transition_to(batch.final_status())
        batch.completed_at = timezone.now()
        batch.save(update_fields=["status", "completed_at"])
        log_action(
            action="complete_batch",
            instance=batch,
            changes={
                "status": batch.status,
                "posted_count": batch.posted_count,
                "failed_count": batch.failed_count,
            },
        )
    logger.info("Batch %s finished %s: %s posted, %s failed",
                batch.pk, batch.status, batch.posted_count, batch.failed_count)
    return batch


def get_batch_status(batch_id, company=None):
    """Read-only; safe to call while the batch is being processed."""
    return _get_batch(batch_id, company=company)


@storage_guard
def discard_batch(batch_id, user=None, company=None):
    """Drop a batch no worker has picked up yet."""
    with transaction.atomic():
        batch = _get_batch(batch_id, company=company, lock=True)
        if batch.status != "pending":
            raise InvalidTransitionError(
                f"Only pending batches can be discarded (batch {batch.pk} is {batch.status}).",
                batch_id=batch.pk,
                status=batch.status,
            )
        log_action(
            action="discard_batch",
            instance=batch,
            user=user,
            changes={"total_count": batch.total_count},
        )
        batch.delete()
    logger.info("Discarded batch %s", batch_id)
