from .account import Account
from .auditlog import AuditLog
from .batch import Batch, BatchEntry
from .company import Company
from .currency import Currency
from .journal import JournalEntry, JournalLine
from .period import Period
from .reconciliation import Reconciliation, ReconciliationItem
