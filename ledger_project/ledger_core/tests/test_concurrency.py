"""
Row locks only mean something on a database that takes them;
SQLite ignores select_for_update, so these run on PostgreSQL only.
"""
import threading
import unittest

from django.db import connection, connections, transaction

from ledger_core.exceptions import PeriodClosedError
from ledger_core.models import AuditLog, JournalEntry, Period
from ledger_core.services import close_period, post_journal_entry

from .base import LedgerTransactionTestCase


def in_thread(func, results, barrier=None):
    def target():
        try:
            if barrier is not None:
                barrier.wait()
            results.append(func())
        except Exception as exc:  # handed back to the test thread
            results.append(exc)
        finally:
            connections.close_all()

    thread = threading.Thread(target=target)
    thread.start()
    return thread


@unittest.skipUnless(connection.vendor == "postgresql", "needs row-level locks")
class PeriodLockTests(LedgerTransactionTestCase):

    def test_post_waits_for_closing_and_then_sees_the_closed_period(self):
        sale = self.make_sale(100)
        results = []

        with transaction.atomic():
            # hold the lock close_period() takes
            Period.objects.select_for_update().get(pk=self.march.pk)
            poster = in_thread(lambda: post_journal_entry(sale.pk), results)
            poster.join(timeout=0.5)
            self.assertTrue(poster.is_alive())
            Period.objects.filter(pk=self.march.pk).update(is_closed=True)

        poster.join(timeout=10)
        self.assertFalse(poster.is_alive())
        self.assertIsInstance(results[0], PeriodClosedError)
        sale.refresh_from_db()
        self.assertEqual(sale.status, "draft")

    def test_close_and_post_race_leaves_a_consistent_ledger(self):
        sale = self.make_sale(100)
        results = []
        barrier = threading.Barrier(2)

        threads = [
            in_thread(lambda: post_journal_entry(sale.pk), results, barrier),
            in_thread(lambda: close_period(self.march.pk), results, barrier),
        ]
        for thread in threads:
            thread.join(timeout=10)

        sale.refresh_from_db()
        self.march.refresh_from_db()
        # either close went first and was refused over the draft,
        # or post went first and close then succeeded
        self.assertEqual(sale.status, "posted")
        if self.march.is_closed:
            self.assertLessEqual(sale.posted_at, self.march.closed_at)


@unittest.skipUnless(connection.vendor == "postgresql", "needs row-level locks")
class ConcurrentPostTests(LedgerTransactionTestCase):

    def test_two_posts_of_one_entry_write_once(self):
        sale = self.make_sale(100)
        results = []
        barrier = threading.Barrier(2)

        threads = [
            in_thread(lambda: post_journal_entry(sale.pk), results, barrier)
            for _ in range(2)
        ]
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(len(results), 2)
        for result in results:
            self.assertIsInstance(result, JournalEntry)
            self.assertEqual(result.status, "posted")
        sale.refresh_from_db()
        self.assertEqual(sale.version, 2)
        self.assertEqual(
            AuditLog.objects.filter(action="post", object_id=str(sale.pk)).count(), 1)
