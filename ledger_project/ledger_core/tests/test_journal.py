import datetime
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db.models.deletion import ProtectedError

from ledger_core.exceptions import (AlreadyPostedDifferentPayload,
                                    ConcurrentModificationError,
                                    InvalidLineError, InvalidTransitionError,
                                    PeriodClosedError, RestrictedAccountError,
                                    UnbalancedJournalError, UnknownAccountError)
from ledger_core.models import (AuditLog, Company, Currency, JournalEntry,
                                JournalLine, Period)
from ledger_core.services import (cancel_journal_entry, close_period,
                                  open_period, post_journal_entry,
                                  reverse_journal_entry, update_journal_entry)

from .base import LedgerTestCase

""" Success tests """


class JournalEntrySuccessTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        # Arrange: Debit 100 -> Cash, Credit 100 -> Revenue
        self.je = self.make_sale(100)

    """ Test Balanced Entry """
    def test_balanced_entry_posts_successfully(self):
        post_journal_entry(self.je.pk, user=self.user)

        self.je.refresh_from_db()  # get up-to-date values
        self.assertEqual(self.je.status, "posted")
        self.assertEqual(self.je.posted_by, self.user)
        self.assertIsNotNone(self.je.posted_at)
        self.assertIsNotNone(self.je.posting_fingerprint)
        self.assertEqual(self.je.version, 2)

        # posted entries always balance
        debit, credit = self.je.compute_totals()
        self.assertEqual(debit, credit)

    """ Test for Idempotency
          1. Post a balanced entry once.
          2. Post it again → same entry back, nothing written.
    """
    def test_post_is_idempotent_when_called_twice(self):
        first = post_journal_entry(self.je.pk, user=self.user)
        audit_before = AuditLog.objects.count()
        lines_before = list(self.je.lines.values_list("id", "debit", "credit"))

        second = post_journal_entry(self.je.pk, user=self.user)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.posting_fingerprint, second.posting_fingerprint)
        self.assertEqual(second.version, first.version)  # no extra write
        self.assertEqual(AuditLog.objects.count(), audit_before)
        self.assertEqual(
            list(self.je.lines.values_list("id", "debit", "credit")), lines_before)

    def test_post_writes_audit_record(self):
        post_journal_entry(self.je.pk, user=self.user)
        log = AuditLog.objects.filter(action="post", object_id=str(self.je.pk)).get()
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.company, self.company)
        self.assertEqual(log.changes["lines"], 2)

    def test_base_totals_use_exchange_rate(self):
        je = self.make_sale(100, exchange_rate=Decimal("1.5"))
        self.assertEqual(je.base_totals(), (Decimal("150.00"), Decimal("150.00")))


""" Failure tests """


class JournalEntryFailureTests(LedgerTestCase):

    def test_unbalanced_entry_cannot_be_posted(self):
        je = self.make_entry([(self.cash, 100, 0), (self.revenue, 0, 90)])

        with self.assertRaises(UnbalancedJournalError) as cm:
            post_journal_entry(je.pk, user=self.user)

        self.assertEqual(cm.exception.difference, Decimal("10.00"))
        self.assertEqual(cm.exception.context["entry_id"], je.pk)
        self.assertIn("Journal not balanced", str(cm.exception))

    def test_post_atomicity_on_failure(self):
        je = self.make_entry([(self.cash, 100, 0), (self.revenue, 0, 90)])
        before = JournalLine.objects.filter(journal=je).count()
        audit_before = AuditLog.objects.filter(action="post").count()

        with self.assertRaises(UnbalancedJournalError):
            post_journal_entry(je.pk, user=self.user)

        je.refresh_from_db()
        self.assertEqual(je.status, "draft")
        self.assertIsNone(je.posted_at)
        self.assertIsNone(je.posting_fingerprint)
        self.assertEqual(je.version, 1)
        self.assertEqual(JournalLine.objects.filter(journal=je).count(), before)
        self.assertEqual(AuditLog.objects.filter(action="post").count(), audit_before)

    def test_restricted_account_is_refused_before_balance(self):
        je = self.make_entry([(self.assets, 100, 0), (self.revenue, 0, 90)])
        with self.assertRaises(RestrictedAccountError) as cm:
            post_journal_entry(je.pk)
        self.assertEqual(cm.exception.context["account_id"], self.assets.pk)
        self.assertEqual(cm.exception.context["line_index"], 0)

    def test_closed_period_is_refused_before_accounts(self):
        je = self.make_entry([(self.assets, 100, 0), (self.revenue, 0, 90)])
        # close at DB level, bypassing the draft check of close_period()
        Period.objects.filter(pk=self.march.pk).update(is_closed=True)

        with self.assertRaises(PeriodClosedError) as cm:
            post_journal_entry(je.pk)
        self.assertEqual(cm.exception.context["period_id"], self.march.pk)
        je.refresh_from_db()
        self.assertEqual(je.status, "draft")

    def test_entry_without_lines_is_invalid(self):
        je = JournalEntry.objects.create(
            company=self.company, period=self.march,
            date=datetime.date(2024, 3, 5), currency=self.usd)
        with self.assertRaises(InvalidLineError) as cm:
            post_journal_entry(je.pk)
        self.assertIsNone(cm.exception.context["line_index"])

    def test_degenerate_line_is_refused_on_create(self):
        with self.assertRaises(InvalidLineError) as cm:
            self.make_entry([(self.cash, 100, 0), (self.revenue, 0, 0)])
        self.assertEqual(cm.exception.context["line_index"], 1)
        with self.assertRaises(InvalidLineError):
            self.make_entry([(self.cash, 100, 100)])

    def test_post_enforces_tenant_scope(self):
        other = Company.objects.create(
            name="Other Co", base_currency=self.usd)
        foreign_cash = self.make_account("1110", "Cash B", "asset", company=other)

        with self.assertRaises(UnknownAccountError):
            self.make_entry([(self.cash, 100, 0), (foreign_cash, 0, 100)])

        # a line smuggled in at model level is refused by validation
        je = self.make_sale(100)
        with self.assertRaises(ValidationError):
            JournalLine.objects.create(journal=je, account=foreign_cash, debit=5)
        self.assertEqual(je.lines.count(), 2)

    def test_post_raises_if_already_posted_and_data_changed(self):
        """ Posted rows tampered with at DB level no longer match the fingerprint """
        je = self.make_sale(100)
        post_journal_entry(je.pk, user=self.user)

        debitline = je.lines.order_by("pk").first()
        creditline = je.lines.order_by("pk").last()
        # DB-level update (bypasses model validation), still balanced
        JournalLine.objects.filter(pk=debitline.pk).update(debit=Decimal("150.00"))
        JournalLine.objects.filter(pk=creditline.pk).update(credit=Decimal("150.00"))

        with self.assertRaises(AlreadyPostedDifferentPayload):
            post_journal_entry(je.pk, user=self.user)

    def test_cancelled_entry_cannot_be_posted(self):
        je = self.make_sale(100)
        cancel_journal_entry(je.pk, user=self.user)
        with self.assertRaises(InvalidTransitionError):
            post_journal_entry(je.pk)



class ZeroDecimalCurrencyTests(LedgerTestCase):
    """Amounts must fit the currency's minor unit, so totals compare exactly."""

    def setUp(self):
        super().setUp()
        self.jpy = Currency.objects.create(code="JPY", name="Yen", decimal_places=0)

    def test_fractional_yen_is_refused_on_create(self):
        with self.assertRaises(InvalidLineError) as cm:
            self.make_entry([(self.cash, "100.40", 0), (self.revenue, 0, 100)],
                            currency=self.jpy)
        self.assertEqual(cm.exception.context["line_index"], 0)
        self.assertEqual(cm.exception.context["amount"], Decimal("100.40"))
        self.assertFalse(JournalEntry.objects.filter(currency=self.jpy).exists())

    def test_fractional_yen_written_behind_the_service_is_refused_on_post(self):
        je = self.make_entry([(self.cash, 100, 0), (self.revenue, 0, 100)],
                             currency=self.jpy)
        JournalLine.objects.filter(journal=je, account=self.cash).update(
            debit=Decimal("100.40"))

        with self.assertRaises(InvalidLineError):
            post_journal_entry(je.pk)
        je.refresh_from_db()
        self.assertEqual(je.status, "draft")
        self.assertFalse(je.is_balanced())

    def test_whole_yen_posts(self):
        je = self.make_entry([(self.cash, 1500, 0), (self.revenue, 0, 1500)],
                             currency=self.jpy)
        je = post_journal_entry(je.pk)
        self.assertEqual(je.status, "posted")
        self.assertEqual(je.compute_totals(), (Decimal("1500"), Decimal("1500")))


class JournalEntryFreezeTests(LedgerTestCase):

    def test_post_freezes_lines_on_update__raises_validationerror(self):
        je = self.make_sale(100)
        post_journal_entry(je.pk)

        line = je.lines.order_by("pk").first()
        original_debit = line.debit
        line.debit = original_debit + Decimal("50.00")

        with self.assertRaises(ValidationError):
            line.save()

        line.refresh_from_db()
        self.assertEqual(line.debit, original_debit)

    def test_post_prevents_line_deletion(self):
        je = self.make_sale(100)
        post_journal_entry(je.pk)

        line = je.lines.first()
        with self.assertRaises((ProtectedError, ValidationError)):
            line.delete()
        self.assertTrue(je.lines.filter(pk=line.pk).exists())

    def test_posted_entry_cannot_be_saved_or_deleted(self):
        je = post_journal_entry(self.make_sale(100).pk)
        je.description = "changed"
        with self.assertRaises(ValidationError):
            je.save()
        with self.assertRaises(ValidationError):
            je.delete()

    def test_status_cannot_skip_back_to_draft(self):
        je = post_journal_entry(self.make_sale(100).pk)
        with self.assertRaises(InvalidTransitionError):
            je.transition_to("draft")
        with self.assertRaises(InvalidTransitionError):
            je.transition_to("cancelled")


class JournalEntryUpdateTests(LedgerTestCase):

    def test_update_bumps_version_and_replaces_lines(self):
        je = self.make_sale(100)
        je = update_journal_entry(
            je.pk, expected_version=1, user=self.user,
            description="Corrected sale",
            lines=[
                {"account": self.cash, "debit": "120"},
                {"account": self.revenue, "credit": "120"},
            ],
        )
        self.assertEqual(je.version, 2)
        self.assertEqual(je.description, "Corrected sale")
        self.assertEqual(je.compute_totals(), (Decimal("120.00"), Decimal("120.00")))

    def test_stale_version_is_a_concurrent_modification(self):
        je = self.make_sale(100)
        update_journal_entry(je.pk, expected_version=1, description="first writer")
        with self.assertRaises(ConcurrentModificationError) as cm:
            update_journal_entry(je.pk, expected_version=1, description="second writer")
        self.assertEqual(cm.exception.context["actual_version"], 2)
        je.refresh_from_db()
        self.assertEqual(je.description, "first writer")

    def test_posted_entry_cannot_be_updated(self):
        je = post_journal_entry(self.make_sale(100).pk)
        with self.assertRaises(InvalidTransitionError):
            update_journal_entry(je.pk, expected_version=je.version, description="x")

    def test_date_outside_period_is_refused(self):
        with self.assertRaises(ValidationError):
            self.make_sale(100, date=datetime.date(2024, 4, 1))


class ReversalTests(LedgerTestCase):

    def setUp(self):
        super().setUp()
        self.original = post_journal_entry(self.make_entry(
            [(self.rent, 400, 0), (self.cash, 0, 300), (self.payable, 0, 100)]).pk)

    def test_reversal_swaps_every_line(self):
        reversal = reverse_journal_entry(self.original.pk, user=self.user)

        self.original.refresh_from_db()
        self.assertEqual(self.original.status, "reversed")
        self.assertEqual(reversal.status, "posted")
        self.assertEqual(reversal.reverses_id, self.original.pk)

        orig_lines = list(self.original.lines.values_list("account_id", "debit", "credit"))
        rev_lines = list(reversal.lines.values_list("account_id", "credit", "debit"))
        self.assertEqual(orig_lines, rev_lines)

    def test_reversal_nets_every_account_to_zero(self):
        reversal = reverse_journal_entry(self.original.pk)
        for account in (self.rent, self.cash, self.payable):
            net = sum(
                (line.signed_amount for line in JournalLine.objects.filter(
                    account=account, journal__in=[self.original, reversal])),
                Decimal("0"),
            )
            self.assertEqual(net, 0, account.code)

    def test_reversal_retry_returns_existing_reversal(self):
        first = reverse_journal_entry(self.original.pk)
        second = reverse_journal_entry(self.original.pk)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(JournalEntry.objects.filter(reverses=self.original).count(), 1)

    def test_reversal_can_land_in_a_later_open_period(self):
        april = open_period(self.company, "2024-04",
                            datetime.date(2024, 4, 1), datetime.date(2024, 5, 1))
        reversal = reverse_journal_entry(self.original.pk, date=datetime.date(2024, 4, 2))
        self.assertEqual(reversal.period, april)
        self.assertEqual(reversal.date, datetime.date(2024, 4, 2))

    def test_reversal_blocked_when_original_period_closed(self):
        close_period(self.march.pk)
        april = open_period(self.company, "2024-04",
                            datetime.date(2024, 4, 1), datetime.date(2024, 5, 1))
        with self.assertRaises(PeriodClosedError):
            reverse_journal_entry(self.original.pk, period=april)
        self.original.refresh_from_db()
        self.assertEqual(self.original.status, "posted")
        self.assertFalse(JournalEntry.objects.filter(reverses=self.original).exists())

    def test_draft_cannot_be_reversed(self):
        draft = self.make_sale(10)
        with self.assertRaises(InvalidTransitionError):
            reverse_journal_entry(draft.pk)
