"""
Bank reconciliation: book lines of one account against a bank statement.

Book items are snapshots of posted journal lines, statement items come from
an already parsed statement, adjustment items let an operator force a match.
Every mutating call locks the reconciliation row, so matching on the same
reconciliation is serialized while different reconciliations run in parallel.
"""
import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..exceptions import (ConcurrentModificationError, InvalidTransitionError,
                          ReconciliationNotReadyError, UnknownAccountError,
                          UnknownReconciliationError)
from ..models import Account, JournalLine, Reconciliation, ReconciliationItem
from .audit_helper import log_action
from .guards import storage_guard

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

BOOK_SIDE = ("book", "adjustment")
STATEMENT_SIDE = ("statement", "adjustment")


@dataclass
class MatchedPair:
    statement_item_id: int
    book_item_id: int
    amount: Decimal
    date_delta_days: int


@dataclass
class MatchReport:
    reconciliation_id: int
    matched: List[MatchedPair] = field(default_factory=list)
    unmatched_statement_ids: List[int] = field(default_factory=list)
    unmatched_book_ids: List[int] = field(default_factory=list)
    reconciled_count: int = 0
    unreconciled_count: int = 0
    difference: Optional[Decimal] = None

    @property
    def matched_count(self):
        return len(self.matched)

    def to_dict(self):
        return asdict(self)


@dataclass
class ManualMatchResult:
    book_item_id: int
    statement_item_id: int
    # book side minus statement side; non-zero when forced
    amount_difference: Decimal
    difference: Optional[Decimal]
    reconciled_count: int
    unreconciled_count: int


def _pk(obj):
    return getattr(obj, "pk", obj)


def _split(amount, account):
    """Signed amount (account convention) -> (debit, credit)."""
    raw = amount * account.sign
    return max(raw, ZERO), max(-raw, ZERO)


def get_reconciliation(reconciliation_id, company=None):
    qs = Reconciliation.objects.select_related("account")
    if company is not None:
        qs = qs.for_company(company)
    rec = qs.filter(pk=reconciliation_id).first()
    if rec is None:
        raise UnknownReconciliationError(
            f"Reconciliation {reconciliation_id} does not exist.",
            reconciliation_id=reconciliation_id,
        )
    return rec


def _lock(reconciliation_id, company=None, expected_version=None, editable=True):
    """
    Row-lock the reconciliation for the rest of the transaction.
    ``expected_version`` turns the call into a compare-and-swap.
    """
    qs = Reconciliation.objects.select_for_update()
    if company is not None:
        qs = qs.for_company(company)
    rec = qs.filter(pk=reconciliation_id).first()
    if rec is None:
        raise UnknownReconciliationError(
            f"Reconciliation {reconciliation_id} does not exist.",
            reconciliation_id=reconciliation_id,
        )
    if expected_version is not None and rec.version != expected_version:
        raise ConcurrentModificationError(
            f"Reconciliation {rec.pk} was modified by another operation.",
            reconciliation_id=rec.pk,
            expected_version=expected_version,
            actual_version=rec.version,
        )
    if editable and not rec.is_editable:
        raise InvalidTransitionError(
            f"Reconciliation {rec.pk} is {rec.status}; matching is closed.",
            reconciliation_id=rec.pk,
            status=rec.status,
        )
    return rec


def _save(rec, *fields):
    rec.version += 1
    rec.save(update_fields=[*fields, "version"])
    return rec


def _recount_and_save(rec, *fields):
    rec.recount()
    return _save(rec, "reconciled_count", "unreconciled_count", "difference", *fields)


def _pair(first, second, user, now):
    for item, other in ((first, second), (second, first)):
        item.is_reconciled = True
        item.reconciled_at = now
        item.reconciled_by = user
        item.matched_item = other
        item.save(update_fields=[
            "is_reconciled", "reconciled_at", "reconciled_by", "matched_item"])


def _unpair(item):
    item.is_reconciled = False
    item.reconciled_at = None
    item.reconciled_by = None
    item.matched_item = None
    item.save(update_fields=[
        "is_reconciled", "reconciled_at", "reconciled_by", "matched_item"])


def _statement_balance(rec):
    items = rec.items.filter(item_type="statement")
    return sum((item.signed_amount(rec.account) for item in items), ZERO)


# ----------------------------
# Session lifecycle
# ----------------------------
@storage_guard
def start_reconciliation(company, account, from_date, to_date, user=None,
                         book_balance=None, notes=""):
    """
    Open a reconciliation and snapshot the account's ledger lines dated
    within [from_date, to_date] as book items.
    """
    account_id = _pk(account)
    account = Account.objects.for_company(company).filter(pk=account_id).first()
    if account is None:
        raise UnknownAccountError(
            f"Account {account_id} not found.", account_id=account_id)
    if from_date > to_date:
        raise ValidationError("from_date must not be after to_date")

    lines = list(
        JournalLine.objects.filter(
            account=account,
            journal__company=company,
            journal__status__in=["posted", "reversed"],
            journal__date__gte=from_date,
            journal__date__lte=to_date,
        )
        .select_related("journal")
        .order_by("journal__date", "journal_id", "line_no", "id")
    )
    computed = sum((account.signed(line.debit, line.credit) for line in lines), ZERO)
    if book_balance is not None and Decimal(str(book_balance)) != computed:
        raise ValidationError(
            f"Book balance {book_balance} does not match the ledger ({computed}) "
            f"for account {account.code} between {from_date} and {to_date}."
        )

    with transaction.atomic():
        rec = Reconciliation(
            company=company,
            account=account,
            from_date=from_date,
            to_date=to_date,
            book_balance=computed,
            notes=notes,
            created_by=user,
        )
        rec.full_clean()
        rec.save()
        for line in lines:
            ReconciliationItem(
                reconciliation=rec,
                item_type="book",
                journal_entry=line.journal,
                journal_line=line,
                transaction_date=line.journal.date,
                description=line.narrative or line.journal.description[:500],
                debit=line.debit,
                credit=line.credit,
            ).save()
        rec.recount()
        rec.save(update_fields=["reconciled_count", "unreconciled_count", "difference"])

        log_action(
            action="start_reconciliation",
            instance=rec,
            user=user,
            changes={
                "account_id": account.pk,
                "from_date": from_date,
                "to_date": to_date,
                "book_items": len(lines),
                "book_balance": computed,
            },
        )
    logger.info("Started reconciliation %s for account %s (%s book items)",
                rec.pk, account.code, len(lines))
    return rec


@storage_guard
def import_statement_lines(reconciliation_id, lines, user=None, company=None,
                           expected_version=None):
    """
    Add parsed statement lines ({date, amount, external_reference,
    description}) as statement items. Amounts use the account's sign
    convention, so money leaving a bank account is negative.
    """
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        account = rec.account

        seen = set(
            rec.items.filter(item_type="statement")
            .values_list("external_reference", flat=True)
        )
        created = 0
        for index, line in enumerate(lines):
            ref = (line.get("external_reference") or "").strip()
            amount = Decimal(str(line["amount"]))
            if not ref:
                raise ValidationError(
                    f"Statement line {index} has no external reference.")
            if ref in seen:
                raise ValidationError(
                    f"Statement line {index}: reference {ref} already imported.")
            if amount == 0:
                raise ValidationError(f"Statement line {index} has a zero amount.")
            seen.add(ref)

            debit, credit = _split(amount, account)
            ReconciliationItem(
                reconciliation=rec,
                item_type="statement",
                external_reference=ref,
                transaction_date=line["date"],
                description=(line.get("description") or "")[:500],
                debit=debit,
                credit=credit,
            ).save()
            created += 1

        rec.statement_balance = _statement_balance(rec)
        _recount_and_save(rec, "statement_balance")
        log_action(
            action="import_statement",
            instance=rec,
            user=user,
            changes={"lines": created, "statement_balance": rec.statement_balance},
        )
    logger.info("Imported %s statement lines into reconciliation %s", created, rec.pk)
    return rec


@storage_guard
def add_adjustment(reconciliation_id, date, amount, description="", user=None,
                   company=None, expected_version=None):
    """Adjustment items exist only to be paired; they move no balance."""
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        debit, credit = _split(Decimal(str(amount)), rec.account)
        item = ReconciliationItem(
            reconciliation=rec,
            item_type="adjustment",
            transaction_date=date,
            description=description[:500],
            debit=debit,
            credit=credit,
        )
        item.save()
        _recount_and_save(rec)
        log_action(
            action="add_adjustment",
            instance=rec,
            user=user,
            changes={"item_id": item.pk, "amount": amount},
        )
    return item


# ----------------------------
# Matching
# ----------------------------
@storage_guard
def auto_match(reconciliation_id, user=None, company=None, window_days=None,
               amount_tolerance=None, expected_version=None):
    """
    Pair each unreconciled statement item with an unreconciled book item of
    the same signed amount dated within the window. Closest date wins, then
    the earliest created book item. Unmatched items are reported, not raised.
    """
    if window_days is None:
        window_days = settings.LEDGER_RECONCILIATION_MATCH_WINDOW_DAYS
    if amount_tolerance is None:
        amount_tolerance = settings.LEDGER_RECONCILIATION_AMOUNT_TOLERANCE
    amount_tolerance = Decimal(str(amount_tolerance))

    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        account = rec.account
        unreconciled = rec.items.filter(is_reconciled=False).order_by("created_at", "id")
        statements = list(unreconciled.filter(item_type="statement"))
        books = list(unreconciled.filter(item_type="book"))

        report = MatchReport(reconciliation_id=rec.pk)
        now = timezone.now()
        for st in statements:
            amount = st.signed_amount(account)
            candidates = []
            for book in books:
                delta = abs((book.transaction_date - st.transaction_date).days)
                if delta > window_days:
                    continue
                if abs(book.signed_amount(account) - amount) > amount_tolerance:
                    continue
                candidates.append((delta, book.created_at, book.pk, book))
            if not candidates:
                report.unmatched_statement_ids.append(st.pk)
                continue

            delta, _, _, book = min(candidates, key=lambda c: c[:3])
            books.remove(book)
            _pair(st, book, user, now)
            report.matched.append(MatchedPair(
                statement_item_id=st.pk,
                book_item_id=book.pk,
                amount=amount,
                date_delta_days=delta,
            ))

        report.unmatched_book_ids = [book.pk for book in books]
        _recount_and_save(rec)
        report.reconciled_count = rec.reconciled_count
        report.unreconciled_count = rec.unreconciled_count
        report.difference = rec.difference

        log_action(
            action="auto_match",
            instance=rec,
            user=user,
            changes={
                "matched": report.matched_count,
                "unmatched_statement": len(report.unmatched_statement_ids),
                "window_days": window_days,
            },
        )
    logger.info("Auto-matched %s pairs in reconciliation %s (%s statement lines left)",
                report.matched_count, rec.pk, len(report.unmatched_statement_ids))
    return report


def _item(rec, item_id, sides):
    item = rec.items.filter(pk=item_id).first()
    if item is None:
        raise ValidationError(
            f"Item {item_id} does not belong to reconciliation {rec.pk}.")
    if item.item_type not in sides:
        raise ValidationError(
            f"Item {item_id} is a {item.item_type} item and cannot be used here.")
    if item.is_reconciled:
        raise ValidationError(f"Item {item_id} is already reconciled.")
    return item


@storage_guard
def manual_match(reconciliation_id, book_item_id, statement_item_id, user=None,
                 company=None, expected_version=None):
    """
    Force-pair two items whatever their amounts. Adjustment items may stand
    on either side. The amount gap is returned rather than hidden.
    """
    if book_item_id == statement_item_id:
        raise ValidationError("An item cannot be matched with itself.")

    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        book = _item(rec, book_item_id, BOOK_SIDE)
        statement = _item(rec, statement_item_id, STATEMENT_SIDE)

        gap = book.signed_amount(rec.account) - statement.signed_amount(rec.account)
        _pair(book, statement, user, timezone.now())
        _recount_and_save(rec)

        log_action(
            action="manual_match",
            instance=rec,
            user=user,
            changes={
                "book_item_id": book.pk,
                "statement_item_id": statement.pk,
                "amount_difference": gap,
            },
        )
    if gap:
        logger.warning("Reconciliation %s: forced match %s/%s leaves a gap of %s",
                       rec.pk, book.pk, statement.pk, gap)
    return ManualMatchResult(
        book_item_id=book.pk,
        statement_item_id=statement.pk,
        amount_difference=gap,
        difference=rec.difference,
        reconciled_count=rec.reconciled_count,
        unreconciled_count=rec.unreconciled_count,
    )


@storage_guard
def unmatch_item(reconciliation_id, item_id, user=None, company=None,
                 expected_version=None):
    """Undo a pair; both sides go back to unreconciled."""
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        item = rec.items.filter(pk=item_id).first()
        if item is None or not item.is_reconciled:
            raise ValidationError(f"Item {item_id} is not a matched item of this reconciliation.")
        partner = item.matched_item
        _unpair(item)
        if partner is not None:
            _unpair(partner)
        _recount_and_save(rec)
        log_action(
            action="unmatch",
            instance=rec,
            user=user,
            changes={"item_id": item.pk, "partner_id": _pk(partner)},
        )
    return rec


# ----------------------------
# Review workflow
# ----------------------------
@storage_guard
def complete_reconciliation(reconciliation_id, user=None, company=None,
                            accept_difference=False, expected_version=None):
    """
    Finish matching and hand the reconciliation over for review.
    Refused while items are unreconciled or no statement was imported,
    unless the caller accepts the difference.
    """
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version)
        rec.recount()
        if not accept_difference and (
            rec.unreconciled_count > 0 or rec.statement_balance is None
        ):
            raise ReconciliationNotReadyError(
                f"Reconciliation {rec.pk} has {rec.unreconciled_count} "
                "unreconciled items.",
                reconciliation_id=rec.pk,
                unreconciled_count=rec.unreconciled_count,
                statement_imported=rec.statement_balance is not None,
                difference=rec.difference,
            )
        if rec.statement_balance is None:
            # accepted without any statement: nothing on the bank side
            rec.statement_balance = ZERO
        rec.difference = rec.compute_difference()

        rec.transition_to("completed")
        rec.completed_at = timezone.now()
        rec.completed_by = user
        _save(rec, "status", "statement_balance", "difference", "reconciled_count",
              "unreconciled_count", "completed_at", "completed_by")
        log_action(
            action="complete_reconciliation",
            instance=rec,
            user=user,
            changes={
                "book_balance": rec.book_balance,
                "statement_balance": rec.statement_balance,
                "difference": rec.difference,
                "unreconciled_count": rec.unreconciled_count,
                "accept_difference": accept_difference,
            },
        )
    logger.info("Completed reconciliation %s with difference %s", rec.pk, rec.difference)
    return rec


def _review(reconciliation_id, new_status, action, user, company,
            expected_version, notes=None):
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version, editable=False)
        rec.transition_to(new_status)
        fields = ["status"]
        if notes:
            rec.notes = f"{rec.notes}\n{notes}".strip()
            fields.append("notes")
        if new_status == "in_progress":
            rec.completed_at = None
            rec.completed_by = None
            fields += ["completed_at", "completed_by"]
        _save(rec, *fields)
        log_action(action=action, instance=rec, user=user,
                   changes={"status": new_status, "notes": notes})
    return rec


@storage_guard
def approve_reconciliation(reconciliation_id, user=None, company=None,
                           expected_version=None):
    return _review(reconciliation_id, "approved", "approve_reconciliation",
                   user, company, expected_version)


@storage_guard
def reject_reconciliation(reconciliation_id, reason="", user=None, company=None,
                          expected_version=None):
    return _review(reconciliation_id, "rejected", "reject_reconciliation",
                   user, company, expected_version, notes=reason)


@storage_guard
def reopen_reconciliation(reconciliation_id, user=None, company=None,
                          expected_version=None):
    """Rejected -> InProgress, so matching can continue."""
    return _review(reconciliation_id, "in_progress", "reopen_reconciliation",
                   user, company, expected_version)


@storage_guard
def cancel_reconciliation(reconciliation_id, user=None, company=None,
                          expected_version=None, reason=""):
    """Terminal. Every match made so far is discarded."""
    with transaction.atomic():
        rec = _lock(reconciliation_id, company, expected_version, editable=False)
        rec.transition_to("cancelled")
        for item in rec.items.filter(is_reconciled=True):
            _unpair(item)
        if reason:
            rec.notes = f"{rec.notes}\n{reason}".strip()
        _recount_and_save(rec, "status", "notes")
        log_action(action="cancel_reconciliation", instance=rec, user=user,
                   changes={"reason": reason})
    logger.info("Cancelled reconciliation %s", rec.pk)
    return rec
