from django.core.exceptions import ValidationError

from ledger_core.models import Account
from ledger_core.services import post_journal_entry

from .base import LedgerTestCase


class ChartOfAccountsTests(LedgerTestCase):

    def test_sign_follows_category(self):
        self.assertEqual(self.cash.sign, 1)
        self.assertEqual(self.rent.sign, 1)
        self.assertEqual(self.revenue.sign, -1)
        self.assertEqual(self.payable.signed(0, 40), 40)

    def test_code_is_unique_per_company(self):
        with self.assertRaises(ValidationError):
            self.make_account("1110", "Second cash", "asset")

    def test_code_and_category_freeze_once_used(self):
        # unused: free to change
        self.payable.code = "2100"
        self.payable.save()

        post_journal_entry(self.make_sale(10).pk)
        self.cash.category = "liability"
        with self.assertRaises(ValidationError):
            self.cash.save()
        self.cash.refresh_from_db()
        self.cash.code = "1111"
        with self.assertRaises(ValidationError):
            self.cash.save()

        # renaming stays allowed
        self.cash.refresh_from_db()
        self.cash.name = "Main bank"
        self.cash.save()

    def test_used_account_cannot_be_deactivated_or_deleted(self):
        self.make_sale(10)
        self.cash.is_active = False
        with self.assertRaises(ValidationError):
            self.cash.save()
        with self.assertRaises(ValidationError):
            self.revenue.delete()
        self.assertTrue(Account.objects.filter(pk=self.revenue.pk).exists())

    def test_unused_account_can_be_deleted(self):
        pk = self.payable.pk
        self.payable.delete()
        self.assertFalse(Account.objects.filter(pk=pk).exists())

    def test_hierarchy_rejects_cycles(self):
        self.assets.parent = self.cash  # cash already sits under assets
        with self.assertRaises(ValidationError):
            self.assets.save()

    def test_parent_must_share_the_company(self):
        other = self.company.__class__.objects.create(name="Other", base_currency=self.usd)
        with self.assertRaises(ValidationError):
            self.make_account("1500", "Foreign child", "asset", company=other, parent=self.assets)
