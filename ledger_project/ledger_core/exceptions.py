class LedgerError(Exception):
    """Base class for caller-facing ledger errors.

    Every error carries a stable ``code`` and a ``context`` dict with enough
    detail (entry id, line index, account id, amounts) to render a message
    without re-querying.
    """

    code = "ledger_error"

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def as_dict(self):
        # JSON-safe: Decimals, dates and ids are stringified
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value):
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


class PeriodClosedError(LedgerError):
    """Raised when posting, editing or reversing into a closed period."""
    code = "period_closed"


class UnbalancedJournalError(LedgerError):
    """Raised when a JournalEntry fails double-entry balance check."""
    code = "unbalanced_entry"

    @property
    def difference(self):
        return self.context.get("difference")


class InvalidLineError(LedgerError):
    """Raised when a line has both or neither of debit/credit set."""
    code = "invalid_line"


class RestrictedAccountError(LedgerError):
    """Raised when a line targets an account closed to direct posting."""
    code = "restricted_account"


class UnknownAccountError(LedgerError):
    code = "unknown_account"


class UnknownPeriodError(LedgerError):
    code = "unknown_period"


class UnknownEntryError(LedgerError):
    code = "unknown_entry"


class UnknownBatchError(LedgerError):
    code = "unknown_batch"


class UnknownReconciliationError(LedgerError):
    code = "unknown_reconciliation"


class PeriodOverlapError(LedgerError):
    code = "period_overlap"


class PeriodHasOpenEntriesError(LedgerError):
    """Raised when closing a period that still has draft entries."""
    code = "period_has_open_entries"


class ReconciliationNotReadyError(LedgerError):
    code = "reconciliation_not_ready"


class ConcurrentModificationError(LedgerError):
    """Raised when a version stamp no longer matches the stored row."""
    code = "concurrent_modification"


class InvalidTransitionError(LedgerError):
    code = "invalid_transition"


class StorageUnavailableError(LedgerError):
    """Durable store unreachable. Retriable, unlike the other kinds."""
    code = "storage_unavailable"
    retriable = True


class AlreadyPostedDifferentPayload(LedgerError):
    """Raised when a JournalEntry already posted with different payload """
    code = "already_posted_different_payload"
