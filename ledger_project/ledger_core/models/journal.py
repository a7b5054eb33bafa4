import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone
from ..exceptions import (AlreadyPostedDifferentPayload,
                          ConcurrentModificationError, InvalidTransitionError)
from ..managers import JournalEntryManager, TenantManager
from ..rules import validate_for_posting
from .account import Account
from .company import Company
from .currency import Currency
from .period import Period

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized
    ("reversed", "Reversed"),  # posted, then cancelled out by a reversing entry
    ("cancelled", "Cancelled"),  # draft discarded before posting
]

# Allowed status moves; everything else is refused
JOURNAL_TRANSITIONS = {
    "draft": ["posted", "cancelled"],
    "posted": ["reversed"],
    "reversed": [],
    "cancelled": [],
}


# ---------- Journal (Header) & JournalLine ----------
class JournalEntry(models.Model):  # Represents one accounting transaction
    # Multi-tenant: every entry belongs to a company
    company = models.ForeignKey(Company, on_delete=models.CASCADE)
    period = models.ForeignKey(
        Period,
        on_delete=models.PROTECT,  # Prevent breaking historical ledger
        related_name="entries",
    )
    date = models.DateField()
    reference = models.CharField(max_length=200, null=True, blank=True)
    description = models.TextField(blank=True, default="")

    # Lines are in this currency; balance is checked in it
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)
    # Rate to the company base currency, display/aggregation only
    exchange_rate = models.DecimalField(
        max_digits=18, decimal_places=6, default=Decimal("1"))

    status = models.CharField(
        max_length=10,
        choices=JOURNAL_STATUS,
        default="draft",
    )
    posted_at = models.DateTimeField(null=True, blank=True)
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    # Fingerprint-based idempotency (safe to post twice if nothing has changed)
    posting_fingerprint = models.CharField(
        max_length=64, null=True, blank=True)

    # Optimistic concurrency stamp, bumped on every write
    version = models.PositiveIntegerField(default=1)

    # Set on a reversing entry, pointing at the entry it cancels out
    reverses = models.OneToOneField(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="reversal",
    )

    # Enforce tenant scoping
    objects = JournalEntryManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "date"], name="je_company_date"),
            models.Index(fields=["company", "status"], name="je_company_status"),
            models.Index(fields=["period", "status"], name="je_period_status"),
        ]

        constraints = [
            # Within one company, each reference must be unique
            # Across companies, duplicates are allowed
            models.UniqueConstraint(
                fields=["company", "reference"], name="uq_je_company_ref"
            ),
            models.CheckConstraint(
                condition=models.Q(exchange_rate__gt=0),
                name="je_exchange_rate_positive",
            ),
        ]

    def __str__(self):
        return f"JE {self.pk} {self.date} [{self.status}]"

    # Aggregate all debit and credit amounts across entry’s lines
    def compute_totals(self):
        """Return debits, credits sums for lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    # True if double-entry rule holds: total debits = total credits
    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def base_totals(self):
        """Totals converted to the company base currency (display only)."""
        debit, credit = self.compute_totals()
        rate = self.exchange_rate or Decimal("1")
        return (
            (debit * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            (credit * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        )

    def _posting_payload(self, lines=None):
        """Deterministic representation of what matters for posting

        If the data hasn't changed, the JSON string always looks the same,
        so a retried post can tell "same entry" from "tampered entry".
        """
        if lines is None:
            lines = self.lines.order_by("line_no", "id")
        payload = {
            "company": self.company_id,
            "period": self.period_id,
            "date": self.date.isoformat(),
            "currency": self.currency_id,
            "lines": [
                {
                    "acct": line.account_id,
                    "debit": str(line.debit),
                    "credit": str(line.credit),
                    "desc": line.narrative or "",
                }
                for line in lines
            ],
        }
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def _fingerprint(self, lines=None):
        return hashlib.sha256(self._posting_payload(lines).encode()).hexdigest()

    def _cas_update(self, expected_version, from_status=None, **fields):
        """Compare-and-swap write guarded by the version stamp."""
        qs = JournalEntry.objects.filter(pk=self.pk, version=expected_version)
        if from_status is not None:
            qs = qs.filter(status=from_status)
        updated = qs.update(version=models.F("version") + 1, **fields)
        if not updated:
            raise ConcurrentModificationError(
                f"JournalEntry {self.pk} was modified by another operation.",
                entry_id=self.pk,
                expected_version=expected_version,
            )
        self.refresh_from_db()
        return self

    def post(self, user=None, audit=True):
        """
        Post the entry: lock, validate (period, accounts, balance), flip status.
        Returns the posted entry; retrying an already posted entry is a no-op.
        With ``audit=False`` the caller records the operation itself.
        """
        with transaction.atomic():
            # Lock the period row first: close_period() takes the same lock,
            # so an entry cannot be posted into a period while it is closing
            period = Period.objects.select_for_update().get(pk=self.period_id)
            je = JournalEntry.objects.select_for_update().get(pk=self.pk)
            if je.period_id != period.pk:
                raise ConcurrentModificationError(
                    f"JournalEntry {je.pk} moved to another period while posting.",
                    entry_id=je.pk,
                )
            lines = list(je.lines.select_for_update().order_by("line_no", "id"))
            fp = je._fingerprint(lines)

            """ Idempotency & immutability """
            if je.status == "posted":
                if je.posting_fingerprint == fp:
                    return je
                raise AlreadyPostedDifferentPayload(
                    "Journal already posted with different payload.",
                    entry_id=je.pk,
                )
            if je.status != "draft":
                raise InvalidTransitionError(
                    f"Cannot post a {je.status} journal entry.",
                    entry_id=je.pk,
                    status=je.status,
                )

            accounts = Account.objects.in_bulk({line.account_id for line in lines})
            validate_for_posting(
                entry_id=je.pk,
                company_id=je.company_id,
                period=period,
                lines=lines,
                accounts=accounts,
                quantum=je.currency.quantum,
            )

            je._cas_update(
                je.version,
                from_status="draft",
                status="posted",
                posted_at=timezone.now(),
                posted_by=user,
                posting_fingerprint=fp,
            )

            if not audit:
                return je
            # Local import: services import the models package
            from ..services.audit_helper import log_action
            debit, credit = je.compute_totals()
            log_action(
                action="post",
                instance=je,
                user=user,
                changes={"lines": len(lines), "total_debit": debit,
                         "total_credit": credit, "fingerprint": fp},
            )
            return je

    def transition_to(self, new_status, user=None):
        # prevent skipping validations
        if new_status not in JOURNAL_TRANSITIONS.get(self.status, []):
            raise InvalidTransitionError(
                f"Cannot go from {self.status} to {new_status}",
                entry_id=self.pk,
                status=self.status,
            )

        if new_status == "posted":
            # call posting logic (validations, fingerprint, etc.)
            return self.post(user=user)
        return self._cas_update(
            self.version, from_status=self.status, status=new_status)

    def clean(self):
        """ Don't allow journals outside or inside closed periods """
        if not self.period_id:
            return
        if self.period.company_id != self.company_id:
            raise ValidationError(
                "Period must belong to the same company as journal")
        if self.period.is_closed:
            raise ValidationError(
                "Cannot create or edit journal inside a closed period."
            )
        if self.date and not self.period.contains(self.date):
            raise ValidationError(
                f"Journal date {self.date} is outside period {self.period.name}."
            )

    def save(self, *args, **kwargs):
        if self.pk:  # Does this row already exist in DB?
            orig_status = (
                JournalEntry.objects.filter(pk=self.pk)
                .values_list("status", flat=True).first()
            )
            # status changes go through transition_to(); saves are for drafts
            if orig_status and orig_status != "draft":
                raise ValidationError(
                    f"Cannot modify a {orig_status} JournalEntry. It is immutable."
                )
        self.full_clean()
        super().save(*args, **kwargs)


class JournalLine(models.Model):  # Stores Lines ( credits / debits )
    """
    Each line belongs to one journal entry and to one GL account.
    """

    journal = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    # Display order inside the entry; irrelevant for balance
    line_no = models.PositiveIntegerField(default=0)

    # Must point to one Account (can’t delete account if lines exist → PROTECT)
    account = models.ForeignKey(Account, on_delete=models.PROTECT)

    debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    narrative = models.CharField(max_length=400, blank=True, default="")

    class Meta:
        ordering = ("line_no", "id")
        indexes = [
            models.Index(fields=["account", "journal"], name="jl_account_journal"),
        ]

        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(debit__gte=0) &
                    models.Q(credit__gte=0)
                ),
                name="jl_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit=0) & models.Q(credit=0)),
                name="jl_debit_or_credit_nonzero",
            ),
            models.CheckConstraint(
                condition=~(models.Q(debit__gt=0) & models.Q(credit__gt=0)),
                name="jl_not_both_debit_and_credit",
            ),
        ]

    def __str__(self):
        return f"{self.journal_id} | {self.account_id} | D:{self.debit} C:{self.credit}"

    @property
    def signed_amount(self):
        """Amount in the account's sign convention (debit-normal: D - C)."""
        return self.account.signed(self.debit, self.credit)

    def clean(self):
        # Ensure no negative values sneak in
        # (redundant with CheckConstraint but useful at app-level)
        if self.debit < 0 or self.credit < 0:
            raise ValidationError("Debit and credit must be >= 0")
        if self.debit > 0 and self.credit > 0:
            raise ValidationError(
                "JournalLine should not have both debit and credit > 0"
            )
        if self.debit == 0 and self.credit == 0:
            raise ValidationError(
                "JournalLine requires a non-0 amount on either debit or credit"
            )

        if self.journal_id is None:
            return
        # Every line's account must belong to the same company as its journal
        if self.account_id and self.account.company_id != self.journal.company_id:
            raise ValidationError(
                "JournalLine.account must belong to the same company.")

        # Lines of a posted (or reversed/cancelled) entry are frozen
        status = (
            JournalEntry.objects.filter(pk=self.journal_id)
            .values_list("status", flat=True).first()
        )
        if status and status != "draft":
            raise ValidationError(
                f"Cannot add or modify JournalLine: parent journal is {status}."
            )

    def delete(self, *args, **kwargs):
        # Prevent deletion if parent journal is no longer a draft
        if JournalEntry.objects.filter(
            pk=self.journal_id
        ).exclude(status="draft").exists():
            raise ValidationError(
                "Cannot delete JournalLine: parent JournalEntry is posted."
            )
        return super().delete(*args, **kwargs)

    def save(self, *args, **kwargs):
        # clean()+field validation always run whenever
        # you save a JournalLine programmatically
        self.full_clean()
        return super().save(*args, **kwargs)
