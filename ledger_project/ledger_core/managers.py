from django.db import models

# -----------------------------------------
# Enforce tenant scoping across all models
# that belong to a company
# -----------------------------------------
class TenantQuerySet(models.QuerySet):
    def for_company(self, company):
        return self.filter(company=company)

    def active(self, company):
        return self.filter(
                            company=company, # enforce tenant scoping
                            is_active=True   # only fetch active records
                        )
    # Enables query:
    # Account.objects.active(company)


# Attach TenantQuerySet to .objects
class TenantManager(models.Manager.from_queryset(TenantQuerySet)):
    pass


class JournalEntryQuerySet(TenantQuerySet):
    # Entries whose lines are part of the ledger
    # (a reversed entry stays in history next to its reversal)
    def in_ledger(self):
        return self.filter(status__in=["posted", "reversed"])

    def drafts(self):
        return self.filter(status="draft")


class JournalEntryManager(models.Manager.from_queryset(JournalEntryQuerySet)):
    pass
