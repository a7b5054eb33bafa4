import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError

from ledger_core.models import AuditLog
from ledger_core.services import (audit_page, audit_trail, close_period,
                                  post_journal_entry, reverse_journal_entry)

from .base import LedgerTestCase


class AuditRecorderTests(LedgerTestCase):

    def test_every_mutating_call_leaves_one_record(self):
        sale = self.make_sale(100)
        post_journal_entry(sale.pk, user=self.user)
        reverse_journal_entry(sale.pk, user=self.user)
        close_period(self.march.pk, user=self.user)

        actions = list(
            audit_trail(self.company).order_by("id").values_list("action", flat=True))
        # open_period ran in setUp
        self.assertEqual(actions, [
            "open_period", "create", "post", "reverse", "close_period",
        ])

    def test_reversal_is_one_record_carrying_the_posting(self):
        sale = self.make_sale(100)
        post_journal_entry(sale.pk, user=self.user)
        before = AuditLog.objects.count()

        reversal = reverse_journal_entry(sale.pk, user=self.user)

        self.assertEqual(AuditLog.objects.count(), before + 1)
        log = AuditLog.objects.latest("id")
        self.assertEqual(log.action, "reverse")
        self.assertEqual(log.object_id, str(sale.pk))
        self.assertEqual(log.changes["reversal_id"], reversal.pk)
        self.assertEqual(Decimal(log.changes["total_debit"]), Decimal("100"))
        self.assertEqual(log.changes["fingerprint"], reversal.posting_fingerprint)

    def test_audit_records_are_append_only(self):
        log = AuditLog.objects.for_company(self.company).first()
        log.action = "tampered"
        with self.assertRaises(ValidationError):
            log.save()
        with self.assertRaises(ValidationError):
            log.delete()

    def test_trail_filters(self):
        post_journal_entry(self.make_sale(100).pk, user=self.user)
        post_journal_entry(self.make_sale(200).pk)

        self.assertEqual(audit_trail(self.company, action="post").count(), 2)
        self.assertEqual(audit_trail(self.company, user=self.user, action="post").count(), 1)
        tomorrow = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=1)
        self.assertEqual(audit_trail(self.company, since=tomorrow).count(), 0)

    def test_audit_page(self):
        for amount in (10, 20, 30):
            self.make_sale(amount)
        page = audit_page(self.company, page=2, page_size=2)
        # open_period + 3 creates
        self.assertEqual(page["total"], 4)
        self.assertEqual(page["total_pages"], 2)
        self.assertEqual(page["page"], 2)
        self.assertEqual(len(page["data"]), 2)
