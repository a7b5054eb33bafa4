from decimal import Decimal
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from ..exceptions import InvalidTransitionError
from ..managers import TenantManager
from .account import Account
from .company import Company
from .journal import JournalEntry, JournalLine

RECONCILIATION_STATUS = [
    ("in_progress", "In progress"),
    ("completed", "Completed"),  # waiting for review
    ("approved", "Approved"),
    ("rejected", "Rejected"),  # sent back, reopen to keep matching
    ("cancelled", "Cancelled"),
]

RECONCILIATION_TRANSITIONS = {
    "in_progress": ["completed", "cancelled"],
    "completed": ["approved", "rejected", "cancelled"],
    "rejected": ["in_progress", "cancelled"],
    "approved": [],
    "cancelled": [],
}

ITEM_TYPES = [
    ("book", "Book"),  # snapshot of a posted journal line
    ("statement", "Statement"),  # line from the bank statement
    ("adjustment", "Adjustment"),  # manual item used to force a match
]


# ---------- Bank reconciliation ----------
class Reconciliation(models.Model):  # Book vs statement for one account and date range
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    from_date = models.DateField()
    to_date = models.DateField()

    status = models.CharField(
        max_length=20, choices=RECONCILIATION_STATUS, default="in_progress")

    # Balances in the account's sign convention
    book_balance = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # NULL until a statement has been imported
    statement_balance = models.DecimalField(
        max_digits=18, decimal_places=2, null=True, blank=True)
    # book_balance - statement_balance, persisted for audit
    difference = models.DecimalField(
        max_digits=18, decimal_places=2, null=True, blank=True)

    reconciled_count = models.PositiveIntegerField(default=0)
    unreconciled_count = models.PositiveIntegerField(default=0)

    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )

    # Optimistic concurrency stamp, bumped on every write
    version = models.PositiveIntegerField(default=1)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "account"], name="rec_company_account"),
            models.Index(fields=["company", "status"], name="rec_company_status"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(from_date__lte=models.F("to_date")),
                name="rec_from_before_to",
            ),
        ]

    def __str__(self):
        return f"Rec {self.pk} {self.account_id} {self.from_date}..{self.to_date} [{self.status}]"

    @property
    def is_editable(self):
        return self.status == "in_progress"

    def compute_difference(self):
        if self.statement_balance is None:
            return None
        return self.book_balance - self.statement_balance

    def recount(self):
        """Refresh reconciled/unreconciled counters from the items."""
        counts = self.items.aggregate(
            reconciled=models.Count("id", filter=models.Q(is_reconciled=True)),
            unreconciled=models.Count("id", filter=models.Q(is_reconciled=False)),
        )
        self.reconciled_count = counts["reconciled"]
        self.unreconciled_count = counts["unreconciled"]
        self.difference = self.compute_difference()
        return self

    def transition_to(self, new_status):
        if new_status not in RECONCILIATION_TRANSITIONS.get(self.status, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.status} to {new_status}",
                reconciliation_id=self.pk,
                status=self.status,
            )
        self.status = new_status
        return self

    def clean(self):
        if self.account_id and self.account.company_id != self.company_id:
            raise ValidationError("Account must belong to the same company.")
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValidationError("from_date must not be after to_date")


class ReconciliationItem(models.Model):  # One book, statement or adjustment row
    reconciliation = models.ForeignKey(
        Reconciliation, on_delete=models.CASCADE, related_name="items")

    # Book items only: the ledger line this row snapshots
    journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )
    journal_line = models.ForeignKey(
        JournalLine, null=True, blank=True, on_delete=models.PROTECT,
        related_name="+",
    )

    transaction_date = models.DateField()
    description = models.CharField(max_length=500, blank=True, default="")
    debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    is_reconciled = models.BooleanField(default=False)
    reconciled_at = models.DateTimeField(null=True, blank=True)
    reconciled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )
    # The counterpart this item was paired with
    matched_item = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )

    # Statement items only: bank transaction id
    external_reference = models.CharField(max_length=200, null=True, blank=True)
    item_type = models.CharField(max_length=10, choices=ITEM_TYPES, default="book")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("reconciliation", "id")
        indexes = [
            models.Index(fields=["reconciliation", "item_type", "is_reconciled"],
                         name="rec_item_type_state"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["reconciliation", "external_reference"],
                name="uq_rec_item_external_ref",
            ),
            # Which optional fields are set depends on the item type
            models.CheckConstraint(
                condition=(
                    models.Q(item_type="book", journal_entry__isnull=False,
                             external_reference__isnull=True)
                    | models.Q(item_type="statement", journal_entry__isnull=True,
                               external_reference__isnull=False)
                    | models.Q(item_type="adjustment", journal_entry__isnull=True,
                               external_reference__isnull=True)
                ),
                name="rec_item_fields_match_type",
            ),
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="rec_item_non_negative_amounts",
            ),
        ]

    def __str__(self):
        return f"{self.item_type} {self.transaction_date} D:{self.debit} C:{self.credit}"

    def signed_amount(self, account=None):
        """Amount in the reconciled account's sign convention."""
        account = account or self.reconciliation.account
        return account.signed(self.debit, self.credit)

    def clean(self):
        if self.item_type == "book" and not self.journal_entry_id:
            raise ValidationError("Book items must reference a journal entry.")
        if self.item_type == "statement" and not self.external_reference:
            raise ValidationError("Statement items must carry an external reference.")
        if self.item_type != "book" and (self.journal_entry_id or self.journal_line_id):
            raise ValidationError(
                f"{self.get_item_type_display()} items cannot reference the ledger.")
        if self.item_type != "statement" and self.external_reference:
            raise ValidationError(
                f"{self.get_item_type_display()} items cannot carry an external reference.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
