import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from ledger_core.models import Account, Company, Currency, JournalEntry, Period
from ledger_core.services import (create_journal_entry, open_period,
                                  post_journal_entry)

User = get_user_model()

# code, name, category, parent code, posting restricted
DEMO_CHART = [
    ("1000", "Current Assets", "asset", None, True),
    ("1110", "Cash at Bank", "asset", "1000", False),
    ("1200", "Accounts Receivable", "asset", "1000", False),
    ("2000", "Accounts Payable", "liability", None, False),
    ("3000", "Owner's Equity", "equity", None, False),
    ("4000", "Sales Revenue", "revenue", None, False),
    ("6100", "Rent Expense", "expense", None, False),
]


class Command(BaseCommand):
    help = (
        "Create a demo tenant (company), user, chart of accounts, "
        "an open period and sample journal entries."
    )

    # Define command-line arguments
    def add_arguments(self, parser):
        parser.add_argument(
            "--company-name",  # Define flag
            default="Demo Company",
            help="Name of the demo company to create.",
        )
        parser.add_argument(
            "--username", default="demo", help="Username for the demo user."
        )
        parser.add_argument(
            "--password", default="demo123", help="Password for the demo user."
        )

    @transaction.atomic
    def handle(self, *args, **options):
        # Read arguments from add_arguments()
        company_name = options["company_name"]
        username = options["username"]
        password = options["password"]

        # 1. Currency + company
        usd, _ = Currency.objects.get_or_create(
            code="USD", defaults={"name": "US Dollar", "symbol": "$"}
        )
        # slug is generated from the name on save
        company, _ = Company.objects.get_or_create(
            name=company_name, defaults={"base_currency": usd}
        )
        self.stdout.write(self.style.SUCCESS(f"Created company: {company}"))

        # 2. User
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"email": f"{username}@example.com"},
        )
        if created:  # if user newly created
            user.set_password(password)
            user.save()
        self.stdout.write(
            self.style.SUCCESS(f"Created user: {user.username} (pw={password})")
        )

        # 3. Chart of accounts (parents come first in DEMO_CHART)
        accounts = {}
        for code, name, category, parent, restricted in DEMO_CHART:
            accounts[code], _ = Account.objects.get_or_create(
                company=company,
                code=code,
                defaults={
                    "name": name,
                    "category": category,
                    "currency": usd,
                    "parent": accounts.get(parent),
                    "is_posted_restricted": restricted,
                },
            )
        self.stdout.write(self.style.SUCCESS(f"Created {len(accounts)} accounts"))

        # 4. Current month as an open period
        today = datetime.date.today()
        start = today.replace(day=1)
        end = (start + datetime.timedelta(days=32)).replace(day=1)
        period = Period.objects.for_company(company).filter(
            start_date__lte=today, end_date__gt=today).first()
        if period is None:
            period = open_period(company, start.strftime("%Y-%m"), start, end, user=user)
        self.stdout.write(self.style.SUCCESS(f"Using period: {period}"))

        # 5. One posted sale, one draft rent payment, keyed by reference
        #    so a second run leaves them alone
        existing = set(
            JournalEntry.objects.for_company(company)
            .filter(reference__in=("DEMO-SALE", "DEMO-RENT"))
            .values_list("reference", flat=True)
        )
        if "DEMO-SALE" not in existing:
            sale = create_journal_entry(
                company, period, today,
                [
                    {"account": accounts["1110"], "debit": Decimal("1000.00"), "narrative": "Cash sale"},
                    {"account": accounts["4000"], "credit": Decimal("1000.00"), "narrative": "Cash sale"},
                ],
                user=user,
                description="Demo cash sale",
                reference="DEMO-SALE",
            )
            post_journal_entry(sale.pk, user=user, company=company)
        if "DEMO-RENT" not in existing:
            create_journal_entry(
                company, period, today,
                [
                    {"account": accounts["6100"], "debit": Decimal("400.00")},
                    {"account": accounts["1110"], "credit": Decimal("400.00")},
                ],
                user=user,
                description="Demo rent payment (draft)",
                reference="DEMO-RENT",
            )
        self.stdout.write(self.style.SUCCESS(
            f"Journal entries: {2 - len(existing)} created, {len(existing)} already present"))
        self.stdout.write(self.style.SUCCESS("Demo tenant setup complete!"))
