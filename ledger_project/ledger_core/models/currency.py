from decimal import Decimal
from django.db import models


# ---------- Currency ----------
class Currency(models.Model):
    """
    Reference data: one row per ISO 4217 currency.
    Entries and accounts point here by code; the number of minor units
    decides how precisely an entry's debits and credits must agree.
    """
    code = models.CharField(max_length=3, primary_key=True)  # ISO code, e.g. 'EUR'
    name = models.CharField(max_length=64)
    symbol = models.CharField(max_length=8, blank=True, null=True)
    # minor units: 2 for USD/EUR, 0 for JPY, 3 for KWD
    decimal_places = models.PositiveSmallIntegerField(default=2)

    class Meta:
        verbose_name_plural = "currencies"
        ordering = ["code"]

    def __str__(self):
        return self.code if not self.symbol else f"{self.code} {self.symbol}"

    @property
    def quantum(self):
        # 2 places → Decimal("0.01"), 0 places → Decimal("1")
        return Decimal(1).scaleb(-self.decimal_places)
