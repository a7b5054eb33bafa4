from django.conf import settings
from django.db import models
from ..exceptions import InvalidTransitionError
from ..managers import TenantManager
from .company import Company
from .journal import JournalEntry

BATCH_STATUS = [
    ("pending", "Pending"),  # submitted, not yet picked up by a worker
    ("processing", "Processing"),
    ("completed", "Completed"),  # every entry posted
    ("failed", "Failed"),  # no entry posted
    ("partially_completed", "Partially completed"),
]

BATCH_TRANSITIONS = {
    "pending": ["processing"],
    "processing": ["completed", "failed", "partially_completed"],
    "completed": [],
    "failed": [],
    "partially_completed": [],
}

TERMINAL_BATCH_STATUSES = ("completed", "failed", "partially_completed")

ENTRY_OUTCOMES = [
    ("pending", "Pending"),
    ("posted", "Posted"),
    ("failed", "Failed"),
]


# ---------- Batch posting ----------
class Batch(models.Model):  # One request to post many journal entries together
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    # Who asked for the batch (trusted from the session)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )
    description = models.CharField(max_length=200, blank=True, default="")
    status = models.CharField(
        max_length=20, choices=BATCH_STATUS, default="pending")

    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    total_count = models.PositiveIntegerField(default=0)
    posted_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)

    # Ordered journal references, one row per entry
    journals = models.ManyToManyField(
        JournalEntry, through="BatchEntry", related_name="batches")

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        verbose_name_plural = "batches"
        indexes = [
            models.Index(fields=["company", "status"], name="batch_company_status"),
            models.Index(fields=["company", "created_at"], name="batch_company_created"),
        ]

    def __str__(self):
        return (f"Batch {self.pk} [{self.status}] "
                f"{self.posted_count}/{self.total_count} posted")

    @property
    def is_terminal(self):
        return self.status in TERMINAL_BATCH_STATUSES

    @property
    def errors(self):
        """Per-entry error records, in batch order."""
        return [
            {"journal_id": be.journal_id, **(be.error or {})}
            for be in self.entries.filter(outcome="failed").order_by("position")
        ]

    def final_status(self):
        if self.failed_count == 0:
            return "completed"
        if self.posted_count == 0 and self.failed_count == self.total_count:
            return "failed"
        return "partially_completed"

    def transition_to(self, new_status):
        if new_status not in BATCH_TRANSITIONS.get(self.status, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.status} to {new_status}",
                batch_id=self.pk,
                status=self.status,
            )
        self.status = new_status
        return self


class BatchEntry(models.Model):  # Outcome of one journal inside a batch
    batch = models.ForeignKey(
        Batch, on_delete=models.CASCADE, related_name="entries")
    journal = models.ForeignKey(
        JournalEntry, on_delete=models.PROTECT, related_name="batch_entries")
    position = models.PositiveIntegerField()
    outcome = models.CharField(
        max_length=10, choices=ENTRY_OUTCOMES, default="pending")
    # {"code": ..., "message": ..., "context": {...}} when outcome is failed
    error = models.JSONField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("batch", "position")
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "journal"], name="uq_batch_journal"),
            models.UniqueConstraint(
                fields=["batch", "position"], name="uq_batch_position"),
        ]

    def __str__(self):
        return f"Batch {self.batch_id} #{self.position} JE {self.journal_id} ({self.outcome})"
