from django.core.exceptions import ValidationError
from django.db import models
from ..managers import TenantManager
from .company import Company
from .currency import Currency

# Choice Lists
ACCOUNT_CATEGORIES = [
    # The 5 basic accounting types
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("expense", "Expense"),
]

# Categories that normally increase on the debit side
DEBIT_NORMAL_CATEGORIES = ("asset", "expense")

# Fields frozen once journal lines reference the account
FROZEN_AFTER_POSTING = ("code", "category")


class Account(models.Model):
    """
    Ledger account in the Chart of Accounts.
    - code is unique per company
    - category fixes the sign convention used for balances
    - is_posted_restricted marks summary/header accounts that
      cannot receive journal lines directly
    """

    company = models.ForeignKey(  # Each account belongs to one company
        Company,
        on_delete=models.CASCADE,
    )
    code = models.CharField(max_length=32)  # e.g. "1000"
    name = models.CharField(max_length=200)  # e.g. "Cash on Hand"

    category = models.CharField(
        max_length=10,
        choices=ACCOUNT_CATEGORIES,
    )
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT)

    # Optional hierarchy:
    # (e.g. 1000 Cash, 1001 Petty Cash, 1002 Bank Account)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        # you can’t delete a parent if children exist
        related_name="children",
    )

    # Header accounts only aggregate their children
    is_posted_restricted = models.BooleanField(default=False)

    # “soft deactivate” accounts without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "category"], name="acct_company_category"),
            models.Index(fields=["company", "code"], name="acct_company_code"),
            models.Index(fields=["company", "parent"], name="acct_company_parent"),
        ]

        """ Each company defines its own chart of accounts.
               Codes repeat across companies but must be unique within one. """
        constraints = [
            models.UniqueConstraint(
                fields=["company", "code"], name="uq_company_account_code"
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"

    @property
    def is_debit_normal(self):
        return self.category in DEBIT_NORMAL_CATEGORIES

    @property
    def sign(self):
        """+1 when balance = debit - credit, -1 when balance = credit - debit."""
        return 1 if self.is_debit_normal else -1

    def signed(self, debit, credit):
        return self.sign * (debit - credit)

    def is_used(self):
        from .journal import JournalLine

        return self.pk is not None and JournalLine.objects.filter(account=self).exists()

    def clean(self):
        if self.parent_id is None:
            return

        # Check if parent account belongs to same company
        if self.parent.company_id != self.company_id:
            raise ValidationError(
                "Parent & child accounts must belong to the same company"
            )

        # Walk up the tree; reaching self again means a cycle
        seen = set()
        node = self.parent
        while node is not None:
            if self.pk is not None and node.pk == self.pk:
                raise ValidationError(
                    f"Account {self.code} cannot be its own ancestor."
                )
            if node.pk in seen:
                break
            seen.add(node.pk)
            node = node.parent

    def save(self, *args, **kwargs):
        """Enforce business immutability once the account is used"""
        self.full_clean()
        if not self.pk:
            return super().save(*args, **kwargs)

        old = Account.objects.filter(pk=self.pk).first()
        if old and self.is_used():
            changed = [
                f for f in FROZEN_AFTER_POSTING
                if getattr(old, f) != getattr(self, f)
            ]
            if changed:
                raise ValidationError(
                    f"Cannot change {', '.join(changed)} of an account "
                    "used in journal lines."
                )
            # If account was active before, but now being set to inactive
            if old.is_active and not self.is_active:
                raise ValidationError(
                    "Cannot disable an account that is used in journal lines."
                )
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        # runs before Django's PROTECT collector so callers get a ValidationError
        if self.is_used():
            raise ValidationError("Cannot delete account used in journal lines.")
        return super().delete(*args, **kwargs)
