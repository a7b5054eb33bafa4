import logging
from decimal import Decimal

from django.db import transaction

from ..exceptions import (ConcurrentModificationError, InvalidTransitionError,
                          LedgerError, PeriodClosedError, UnknownAccountError,
                          UnknownEntryError, UnknownPeriodError)
from ..models import Account, JournalEntry, JournalLine, Period
from ..rules import check_lines
from .audit_helper import log_action
from .guards import storage_guard
from .periods import resolve_period

logger = logging.getLogger(__name__)


def _as_decimal(value):
    if value in (None, ""):
        return Decimal("0.00")
    return Decimal(str(value))


def _pk(obj):
    return getattr(obj, "pk", obj)


def get_journal_entry(journal_entry_id, company=None):
    qs = JournalEntry.objects.all()
    if company is not None:
        qs = qs.for_company(company)
    je = qs.filter(pk=journal_entry_id).first()
    if je is None:
        raise UnknownEntryError(
            f"Journal entry {journal_entry_id} does not exist.",
            entry_id=journal_entry_id,
        )
    return je


def _lock_period(company, period):
    """Row-lock the period (same lock close_period() takes)."""
    period_id = _pk(period)
    locked = (
        Period.objects.for_company(company)
        .select_for_update()
        .filter(pk=period_id)
        .first()
    )
    if locked is None:
        raise UnknownPeriodError(
            f"Accounting period {period_id} does not exist.",
            period_id=period_id,
        )
    return locked


def _ensure_open(period, entry_id=None):
    if period.is_closed:
        raise PeriodClosedError(
            f"Period {period.name} is closed.",
            entry_id=entry_id,
            period_id=period.pk,
        )


def _build_lines(company, lines, currency):
    """
    Turn line mappings ({account, debit, credit, narrative}) into unsaved
    JournalLine objects, resolving accounts within the company. Amounts
    must fit the minor unit of ``currency``.
    """
    drafts = [
        JournalLine(
            line_no=index,
            account_id=_pk(line["account"]),
            debit=_as_decimal(line.get("debit")),
            credit=_as_decimal(line.get("credit")),
            narrative=line.get("narrative") or "",
        )
        for index, line in enumerate(lines)
    ]
    accounts = Account.objects.for_company(company).in_bulk(
        {line.account_id for line in drafts})
    for index, line in enumerate(drafts):
        if line.account_id not in accounts:
            raise UnknownAccountError(
                f"Account {line.account_id} not found.",
                line_index=index,
                account_id=line.account_id,
            )
    check_lines(drafts, quantum=currency.quantum)
    return drafts


def _save_lines(je, drafts):
    for line in drafts:
        line.journal = je
        line.save()


# ----------------------------
# Journal-related workflows
# ----------------------------
@storage_guard
def create_journal_entry(company, period, date, lines, user=None,
                         description="", reference=None, currency=None,
                         exchange_rate=Decimal("1")):
    """
    Record a Draft entry. Balance is only enforced when posting,
    but lines must already be well-formed.
    """
    with transaction.atomic():
        period = _lock_period(company, period)
        _ensure_open(period)
        currency = currency or company.base_currency
        drafts = _build_lines(company, lines, currency)

        je = JournalEntry(
            company=company,
            period=period,
            date=date,
            reference=reference,
            description=description,
            currency=currency,
            exchange_rate=_as_decimal(exchange_rate),
            created_by=user,
        )
        je.save()
        _save_lines(je, drafts)

        log_action(
            action="create",
            instance=je,
            user=user,
            changes={"lines": len(drafts), "period_id": period.pk},
        )
    return je


@storage_guard
def update_journal_entry(journal_entry_id, expected_version, user=None,
                         company=None, **changes):
    """
    Edit a Draft entry (description, date, reference, lines).
    ``expected_version`` is the version the caller last read.
    """
    je = get_journal_entry(journal_entry_id, company)
    with transaction.atomic():
        period = _lock_period(je.company, je.period_id)
        je = JournalEntry.objects.select_for_update().get(pk=je.pk)
        if je.version != expected_version:
            raise ConcurrentModificationError(
                f"JournalEntry {je.pk} was modified by another operation.",
                entry_id=je.pk,
                expected_version=expected_version,
                actual_version=je.version,
            )
        if je.status != "draft":
            raise InvalidTransitionError(
                f"Cannot edit a {je.status} journal entry.",
                entry_id=je.pk,
                status=je.status,
            )
        _ensure_open(period, entry_id=je.pk)

        for field in ("description", "date", "reference"):
            if field in changes:
                setattr(je, field, changes[field])
        drafts = None
        if "lines" in changes:
            drafts = _build_lines(je.company, changes["lines"], je.currency)

        je.version = expected_version + 1
        je.save()
        if drafts is not None:
            je.lines.all().delete()
            _save_lines(je, drafts)

        log_action(
            action="update",
            instance=je,
            user=user,
            changes={k: (len(v) if k == "lines" else v) for k, v in changes.items()},
        )
    return je


@storage_guard
def cancel_journal_entry(journal_entry_id, user=None, company=None):
    """Discard a Draft so it no longer blocks closing its period."""
    je = get_journal_entry(journal_entry_id, company)
    with transaction.atomic():
        je = JournalEntry.objects.select_for_update().get(pk=je.pk)
        je.transition_to("cancelled", user=user)
        log_action(action="cancel", instance=je, user=user)
    return je


@storage_guard
def post_journal_entry(journal_entry_id, user=None, company=None):
    """
    Wraps the model posting logic with tenant lookup and logging.
    The entry's own post() holds the transaction and the row locks.
    """
    je = get_journal_entry(journal_entry_id, company)
    try:
        posted = je.post(user=user)
    except LedgerError as exc:
        logger.warning("Posting JE %s refused: %s", je.pk, exc.message)
        raise
    logger.info("Posted JE %s (version %s)", posted.pk, posted.version)
    return posted


@storage_guard
def reverse_journal_entry(journal_entry_id, user=None, date=None, period=None,
                          company=None):
    """
    Cancel out a Posted entry with a new entry whose lines swap debit and
    credit. The original becomes Reversed.

    The reversing entry lands in ``period`` if given, else in the open
    period covering ``date``, else in the original's period. Both the
    original's period and the target period must be open.
    """
    orig = get_journal_entry(journal_entry_id, company)
    company = orig.company
    if period is None and date is not None:
        period = resolve_period(company, date)
    target_id = _pk(period) if period is not None else orig.period_id

    with transaction.atomic():
        # Lock periods in pk order, then the entry (same order as post())
        locked = {
            pid: _lock_period(company, pid)
            for pid in sorted({orig.period_id, target_id})
        }
        orig_period, target = locked[orig.period_id], locked[target_id]
        orig = JournalEntry.objects.select_for_update().get(pk=orig.pk)

        if orig.status == "reversed":
            # already done: hand back the existing reversal
            return orig.reversal
        if orig.status != "posted":
            raise InvalidTransitionError(
                f"Only posted entries can be reversed (JE {orig.pk} is {orig.status}).",
                entry_id=orig.pk,
                status=orig.status,
            )
        _ensure_open(orig_period, entry_id=orig.pk)
        _ensure_open(target, entry_id=orig.pk)

        if date is None:
            date = orig.date if target.contains(orig.date) else target.start_date

        reversal = JournalEntry(
            company=company,
            period=target,
            date=date,
            description=f"Reversal of JE {orig.pk}: {orig.description}".strip(),
            currency=orig.currency,
            exchange_rate=orig.exchange_rate,
            reverses=orig,
            created_by=user,
        )
        reversal.save()
        _save_lines(reversal, [
            JournalLine(
                line_no=line.line_no,
                account_id=line.account_id,
                debit=line.credit,
                credit=line.debit,
                narrative=line.narrative,
            )
            for line in orig.lines.order_by("line_no", "id")
        ])
        # one audit record for the whole reversal, posting details included
        reversal = reversal.post(user=user, audit=False)
        orig.transition_to("reversed", user=user)

        debit, credit = reversal.compute_totals()
        log_action(
            action="reverse",
            instance=orig,
            user=user,
            changes={
                "reversal_id": reversal.pk,
                "period_id": target.pk,
                "total_debit": debit,
                "total_credit": credit,
                "fingerprint": reversal.posting_fingerprint,
            },
        )
    logger.info("Reversed JE %s with JE %s", orig.pk, reversal.pk)
    return reversal
