from django.conf import settings  # To access global project settings
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from ..managers import TenantManager
from .company import Company


# ---------- Audit / Event log ----------
class AuditLog(
    models.Model
):  # Append-only record of who did what, when
    # Nullable because some actions might not belong to a specific company
    company = models.ForeignKey(
        Company,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    # Which user performed the action
    # (Nullable in case the action was automated, e.g. a Celery worker)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL
    )
    action = models.CharField(
        max_length=50
    )  # e.g. post, reverse, close_period, submit_batch, auto_match
    object_type = models.CharField(
        max_length=100
    )  # (e.g., "JournalEntry", "Period", "Reconciliation")
    object_id = models.CharField(max_length=100)
    # Details of the action, in JSON format
    changes = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "user"], name="audit_company_user"),
            models.Index(fields=["company", "created_at"], name="audit_company_created"),
            models.Index(fields=["company", "action"], name="audit_company_action"),
        ]
        ordering = ("-created_at", "-id")

    def __str__(self):
        time = self.created_at
        return f"[{time:%Y-%m-%d %H:%M}] {self.user} {self.action} {self.object_type}({self.object_id})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError("AuditLog entries are append-only.")
        self.full_clean()  # run validations before saving
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("AuditLog entries cannot be deleted.")
