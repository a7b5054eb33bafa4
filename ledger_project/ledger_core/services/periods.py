import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..exceptions import (PeriodHasOpenEntriesError, PeriodOverlapError,
                          UnknownPeriodError)
from ..models import Company, Period
from .audit_helper import log_action
from .guards import storage_guard

logger = logging.getLogger(__name__)


def _get_period(period_id, company=None, lock=False):
    qs = Period.objects.all()
    if company is not None:
        qs = qs.for_company(company)
    if lock:
        qs = qs.select_for_update()
    period = qs.filter(pk=period_id).first()
    if period is None:
        raise UnknownPeriodError(
            f"Accounting period {period_id} does not exist.",
            period_id=period_id,
        )
    return period


@storage_guard
def open_period(company, name, start_date, end_date, user=None):
    """Create an open period covering [start_date, end_date)."""
    if start_date >= end_date:
        raise ValidationError("start_date must be before end_date")

    with transaction.atomic():
        # Serialize period creation per company so two overlapping
        # periods cannot both pass the check
        Company.objects.select_for_update().get(pk=company.pk)

        clash = (
            Period.objects.for_company(company)
            .filter(start_date__lt=end_date, end_date__gt=start_date)
            .order_by("start_date")
            .first()
        )
        if clash is not None:
            raise PeriodOverlapError(
                f"Period overlaps with existing period {clash.name} "
                f"({clash.start_date} to {clash.end_date}).",
                period_id=clash.pk,
                start_date=clash.start_date,
                end_date=clash.end_date,
            )

        period = Period.objects.create(
            company=company, name=name,
            start_date=start_date, end_date=end_date,
        )
        log_action(
            action="open_period",
            instance=period,
            user=user,
            changes={"start_date": start_date, "end_date": end_date},
        )
    logger.info("Opened period %s (%s to %s) for %s",
                period.name, start_date, end_date, company)
    return period


@storage_guard
def close_period(period_id, user=None, company=None):
    """
    Close a period for good.
    Refused while draft entries still point at it.
    """
    with transaction.atomic():
        # Exclusive lock: posting takes the same lock before committing
        period = _get_period(period_id, company=company, lock=True)
        if period.is_closed:
            return period

        drafts = list(
            period.entries.drafts().order_by("id").values_list("id", flat=True)
        )
        if drafts:
            raise PeriodHasOpenEntriesError(
                f"Cannot close period {period.name} with "
                f"{len(drafts)} draft journal entries. Post or cancel them first.",
                period_id=period.pk,
                draft_count=len(drafts),
                draft_ids=drafts[:50],
            )

        period.is_closed = True
        period.closed_at = timezone.now()
        period.closed_by = user
        period.save(update_fields=["is_closed", "closed_at", "closed_by"])
        log_action(
            action="close_period",
            instance=period,
            user=user,
            changes={"start_date": period.start_date, "end_date": period.end_date},
        )
    logger.info("Closed period %s of %s", period.name, period.company_id)
    return period


def is_period_open(period_id, at):
    period = Period.objects.filter(pk=period_id).first()
    return period is not None and period.is_open_at(at)


"""
    Posting date determines the period.
    Changing the date before posting should affect the period.
"""
def resolve_period(company, date):
    period = (
        Period.objects.for_company(company)
        .filter(start_date__lte=date, end_date__gt=date, is_closed=False)
        .first()
    )
    if period is None:
        raise UnknownPeriodError(
            f"No open accounting period for {date} in {company}",
            date=date,
        )
    return period


def list_periods(company):
    return Period.objects.for_company(company).order_by("-start_date")


@storage_guard
def delete_period(period_id, user=None, company=None):
    with transaction.atomic():
        period = _get_period(period_id, company=company, lock=True)
        if period.is_closed:
            raise ValidationError("Cannot delete a closed period.")
        if period.entries.exists():
            raise ValidationError(
                "Cannot delete period with existing journal entries.")
        log_action(
            action="delete_period",
            instance=period,
            user=user,
            changes={"name": period.name},
        )
        period.delete()
