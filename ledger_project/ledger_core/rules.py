"""
Posting invariants as pure functions.

Nothing here touches the database: callers fetch the period, the lines and
the referenced accounts, then hand them over. Each check raises the typed
error for the first violation it finds.

Lines are any objects with ``account_id``, ``debit`` and ``credit``
attributes (saved ``JournalLine`` rows or unsaved drafts).
"""
from decimal import Decimal

from .exceptions import (InvalidLineError, PeriodClosedError,
                         RestrictedAccountError, UnbalancedJournalError,
                         UnknownAccountError, UnknownPeriodError)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def check_lines(lines, entry_id=None, quantum=CENT):
    """
    Input constraints: at least one line, every line debit XOR credit,
    no amount finer than the currency's minor unit.
    """
    if not lines:
        raise InvalidLineError(
            "JournalEntry must have at least one JournalLine.",
            entry_id=entry_id,
            line_index=None,
        )
    for index, line in enumerate(lines):
        debit = line.debit or ZERO
        credit = line.credit or ZERO
        if debit < 0 or credit < 0 or (debit > 0) == (credit > 0):
            raise InvalidLineError(
                f"Line {index} must carry exactly one positive amount "
                f"(debit={debit}, credit={credit}).",
                entry_id=entry_id,
                line_index=index,
                account_id=line.account_id,
                debit=debit,
                credit=credit,
            )
        amount = debit or credit
        if amount != amount.quantize(quantum):
            raise InvalidLineError(
                f"Line {index} amount {amount} has more decimal places "
                f"than the currency allows ({quantum}).",
                entry_id=entry_id,
                line_index=index,
                account_id=line.account_id,
                amount=amount,
                quantum=quantum,
            )


def check_period_open(period, entry_id=None, period_id=None):
    """The period exists and is not closed."""
    if period is None:
        raise UnknownPeriodError(
            f"Accounting period {period_id} does not exist.",
            entry_id=entry_id,
            period_id=period_id,
        )
    if period.is_closed:
        raise PeriodClosedError(
            f"Period {period.name} is closed.",
            entry_id=entry_id,
            period_id=period.pk,
        )


def check_accounts_postable(lines, accounts, company_id, entry_id=None):
    """Every account resolves, belongs to the company, and is postable.

    ``accounts`` maps account id → Account.
    """
    for index, line in enumerate(lines):
        account = accounts.get(line.account_id)
        if account is None or account.company_id != company_id:
            raise UnknownAccountError(
                f"Account {line.account_id} not found.",
                entry_id=entry_id,
                line_index=index,
                account_id=line.account_id,
            )
        if account.is_posted_restricted:
            raise RestrictedAccountError(
                f"Account {account.code} does not accept direct postings.",
                entry_id=entry_id,
                line_index=index,
                account_id=account.pk,
                account_code=account.code,
            )


def totals(lines):
    debit = sum((line.debit or ZERO for line in lines), ZERO)
    credit = sum((line.credit or ZERO for line in lines), ZERO)
    return debit, credit


def check_balanced(lines, entry_id=None):
    """sum(debit) == sum(credit), exactly."""
    debit, credit = totals(lines)
    if debit != credit:
        raise UnbalancedJournalError(
            f"Journal not balanced: debits={debit}, credits={credit}",
            entry_id=entry_id,
            total_debit=debit,
            total_credit=credit,
            difference=debit - credit,
        )


def validate_for_posting(*, entry_id, company_id, period, lines, accounts,
                         quantum=CENT, period_id=None):
    """Full posting gate, fail-fast: lines, open period, accounts, balance."""
    check_lines(lines, entry_id=entry_id, quantum=quantum)
    check_period_open(period, entry_id=entry_id, period_id=period_id)
    check_accounts_postable(lines, accounts, company_id, entry_id=entry_id)
    check_balanced(lines, entry_id=entry_id)
