from django.conf import settings
from django.core.exceptions import ValidationError  # Built-in way to raise validation errors
from django.db import models        # ORM base classes to define database tables as Python classes
from ..managers import TenantManager
from .company import Company


# ---------- Period (accounting period) ----------
class Period(models.Model): # Each Period is a time bucket in which transactions are recorded

    # Every company has its own independent calendar of periods
    company = models.ForeignKey(Company,
                                # Prevent accidental deletion of periods tied to journal entries
                                on_delete=models.PROTECT
                                )
    """
        Tenant isolation:
        "Company A" can close July while "Company B" is still open.
    """

    # Human-readable label for the period
    name = models.CharField(max_length=50)  # Example: "2025-Q3" or "FY2025-01"

    # Half-open range: start_date is inside, end_date is the first day after
    start_date = models.DateField()
    end_date = models.DateField()

    is_closed = models.BooleanField(default=False)
    """
        When is_closed=True:
            No new postings, edits or reversals land here.
            Closing is one-way.
    """
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL,
        related_name="+",
    )

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:

        # for filtering open periods
        indexes = [
                    models.Index(fields=["company", "start_date"], name="period_company_start"),
                    models.Index(fields=["company", "is_closed"], name="period_company_closed"),
                ]

        # Prevent duplicate period names inside the same company
        constraints = [
          models.UniqueConstraint(fields=["company", "name"],
                                  name="uq_company_period_name"),
          models.CheckConstraint(condition=models.Q(start_date__lt=models.F("end_date")),
                                 name="period_start_before_end"),
      ]

        ordering = ("company", "start_date")

    def __str__(self):
        return f"{self.company.slug} {self.name}" # Example: "acme 2025-07".

    def contains(self, date):
        return self.start_date <= date < self.end_date

    def overlaps(self, start_date, end_date):
        return self.start_date < end_date and start_date < self.end_date

    def is_open_at(self, date):
        return not self.is_closed and self.contains(date)

    def clean(self):
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValidationError("start_date must be before end_date")

    def save(self, *args, **kwargs):
        if self.pk:
            orig = Period.objects.filter(pk=self.pk).values_list("is_closed", flat=True).first()
            if orig and not self.is_closed:
                # closing is terminal for write purposes
                raise ValidationError("Cannot reopen a closed period")
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if Period.objects.filter(pk=self.pk, is_closed=True).exists():
            raise ValidationError("Cannot delete a closed period.")
        if self.entries.exists():
            raise ValidationError("Cannot delete a period with journal entries.")
        return super().delete(*args, **kwargs)
