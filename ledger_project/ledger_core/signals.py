from django.core.exceptions import ValidationError
from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .models import JournalEntry

"""Posted history is never deleted, only reversed."""


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_non_draft_journal(sender, instance, **kwargs):
    status = (
        JournalEntry.objects.filter(pk=instance.pk)
        .values_list("status", flat=True).first()
    )
    if status and status not in ("draft", "cancelled"):
        raise ValidationError(f"Cannot delete a {status} journal entry.")

