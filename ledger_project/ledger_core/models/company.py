from django.db import models
from django.utils.text import slugify


# ---------- Tenant / Company ----------
class Company(models.Model):

    """Tenant / Organization"""
    # Store company’s full display name
    name = models.CharField(max_length=200)

    slug = models.SlugField(  # A URL-friendly identifier
        max_length=80, unique=True  # no two companies can have the same slug
    )

    # Functional currency of the books; entries in other currencies
    # carry an exchange rate to it
    base_currency = models.ForeignKey(
        "Currency",
        # don’t allow deleting a currency that a company depends on
        on_delete=models.PROTECT,
        related_name="companies",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._unique_slug()
        return super().save(*args, **kwargs)

    def _unique_slug(self, max_tries=100):
        # "Test Co" → "test-co" → "test-co-1" → ...
        base = slugify(self.name) or "company"
        slug = base
        i = 1
        while Company.objects.filter(slug=slug).exists():
            slug = f"{base}-{i}"
            i += 1
            if i > max_tries:
                raise RuntimeError("Couldn't generate unique slug")
        return slug
