from typing import Optional
from django.core.paginator import Paginator
from ..models import AuditLog, Company

def log_action(
    *,
    action: str,
    instance,
    user=None,
    company: Optional[Company] = None,
    changes: dict | None = None,
):
    """
    Central audit logger.
    Call it inside the same transaction as the change it records,
    so a rolled-back operation leaves no audit trace either.
    """

    if not company:
        company = getattr(instance, "company", None)

    return AuditLog.objects.create(
        company=company,
        user=user,
        action=action,
        object_type=instance.__class__.__name__,
        object_id=str(instance.pk),
        changes=changes,
    )


def audit_trail(company, user=None, action=None, since=None, until=None):
    """Newest-first audit records of a company, optionally filtered."""
    qs = AuditLog.objects.for_company(company).select_related("user")
    if user is not None:
        qs = qs.filter(user=user)
    if action:
        qs = qs.filter(action__icontains=action)
    if since is not None:
        qs = qs.filter(created_at__gte=since)
    if until is not None:
        qs = qs.filter(created_at__lte=until)
    return qs.order_by("-created_at", "-id")


def audit_page(company, page=1, page_size=50, **filters):
    paginator = Paginator(audit_trail(company, **filters), page_size)
    current = paginator.get_page(page)
    return {
        "total": paginator.count,
        "page": current.number,
        "page_size": page_size,
        "total_pages": paginator.num_pages,
        "data": list(current.object_list),
    }
