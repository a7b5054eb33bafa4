from django.core.management.base import BaseCommand

from ledger_core.models import Batch
from ledger_core.services import process_batch


class Command(BaseCommand):
    help = (
        "Run every batch still pending or processing in this process. "
        "Use it when the broker lost a dispatch or a worker died mid-batch."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--company",
            type=int,
            default=None,
            help="Only process batches of this company id.",
        )

    def handle(self, *args, **options):
        qs = Batch.objects.filter(status__in=["pending", "processing"])
        if options["company"] is not None:
            qs = qs.filter(company_id=options["company"])

        batch_ids = list(qs.order_by("created_at", "id").values_list("pk", flat=True))
        if not batch_ids:
            self.stdout.write(self.style.NOTICE("No pending batches."))
            return

        for batch_id in batch_ids:
            batch = process_batch(batch_id)
            style = self.style.SUCCESS if batch.failed_count == 0 else self.style.WARNING
            self.stdout.write(style(
                f"Batch {batch.pk}: {batch.status} "
                f"({batch.posted_count} posted, {batch.failed_count} failed)"
            ))
