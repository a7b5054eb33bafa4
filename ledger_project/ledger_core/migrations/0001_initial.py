from decimal import Decimal

import django.core.serializers.json
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Currency",
            fields=[
                ("code", models.CharField(max_length=3, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=64)),
                ("symbol", models.CharField(blank=True, max_length=8, null=True)),
                ("decimal_places", models.PositiveSmallIntegerField(default=2)),
            ],
            options={
                "verbose_name_plural": "currencies",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=80, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("base_currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="companies", to="ledger_core.currency")),
            ],
            options={
                "verbose_name_plural": "companies",
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=32)),
                ("name", models.CharField(max_length=200)),
                ("category", models.CharField(choices=[("asset", "Asset"), ("liability", "Liability"), ("equity", "Equity"), ("revenue", "Revenue"), ("expense", "Expense")], max_length=10)),
                ("is_posted_restricted", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.currency")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="ledger_core.account")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "category"], name="acct_company_category"),
                    models.Index(fields=["company", "code"], name="acct_company_code"),
                    models.Index(fields=["company", "parent"], name="acct_company_parent"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "code"), name="uq_company_account_code"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Period",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=50)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("is_closed", models.BooleanField(default=False)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("closed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.company")),
            ],
            options={
                "ordering": ("company", "start_date"),
                "indexes": [
                    models.Index(fields=["company", "start_date"], name="period_company_start"),
                    models.Index(fields=["company", "is_closed"], name="period_company_closed"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "name"), name="uq_company_period_name"),
                    models.CheckConstraint(condition=models.Q(("start_date__lt", models.F("end_date"))), name="period_start_before_end"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField()),
                ("reference", models.CharField(blank=True, max_length=200, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("exchange_rate", models.DecimalField(decimal_places=6, default=Decimal("1"), max_digits=18)),
                ("status", models.CharField(choices=[("draft", "Draft"), ("posted", "Posted"), ("reversed", "Reversed"), ("cancelled", "Cancelled")], default="draft", max_length=10)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("posting_fingerprint", models.CharField(blank=True, max_length=64, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("currency", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.currency")),
                ("period", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="entries", to="ledger_core.period")),
                ("posted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("reverses", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="reversal", to="ledger_core.journalentry")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "date"], name="je_company_date"),
                    models.Index(fields=["company", "status"], name="je_company_status"),
                    models.Index(fields=["period", "status"], name="je_period_status"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("company", "reference"), name="uq_je_company_ref"),
                    models.CheckConstraint(condition=models.Q(("exchange_rate__gt", 0)), name="je_exchange_rate_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_no", models.PositiveIntegerField(default=0)),
                ("debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("narrative", models.CharField(blank=True, default="", max_length=400)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("journal", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="ledger_core.journalentry")),
            ],
            options={
                "ordering": ("line_no", "id"),
                "indexes": [
                    models.Index(fields=["account", "journal"], name="jl_account_journal"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="jl_non_negative_amounts"),
                    models.CheckConstraint(condition=models.Q(("debit", 0), ("credit", 0), _negated=True), name="jl_debit_or_credit_nonzero"),
                    models.CheckConstraint(condition=models.Q(("debit__gt", 0), ("credit__gt", 0), _negated=True), name="jl_not_both_debit_and_credit"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(blank=True, default="", max_length=200)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed"), ("partially_completed", "Partially completed")], default="pending", max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("total_count", models.PositiveIntegerField(default=0)),
                ("posted_count", models.PositiveIntegerField(default=0)),
                ("failed_count", models.PositiveIntegerField(default=0)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "batches",
                "indexes": [
                    models.Index(fields=["company", "status"], name="batch_company_status"),
                    models.Index(fields=["company", "created_at"], name="batch_company_created"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BatchEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("position", models.PositiveIntegerField()),
                ("outcome", models.CharField(choices=[("pending", "Pending"), ("posted", "Posted"), ("failed", "Failed")], default="pending", max_length=10)),
                ("error", models.JSONField(blank=True, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="ledger_core.batch")),
                ("journal", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="batch_entries", to="ledger_core.journalentry")),
            ],
            options={
                "ordering": ("batch", "position"),
                "constraints": [
                    models.UniqueConstraint(fields=("batch", "journal"), name="uq_batch_journal"),
                    models.UniqueConstraint(fields=("batch", "position"), name="uq_batch_position"),
                ],
            },
        ),
        migrations.AddField(
            model_name="batch",
            name="journals",
            field=models.ManyToManyField(related_name="batches", through="ledger_core.BatchEntry", to="ledger_core.journalentry"),
        ),
        migrations.CreateModel(
            name="Reconciliation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("from_date", models.DateField()),
                ("to_date", models.DateField()),
                ("status", models.CharField(choices=[("in_progress", "In progress"), ("completed", "Completed"), ("approved", "Approved"), ("rejected", "Rejected"), ("cancelled", "Cancelled")], default="in_progress", max_length=20)),
                ("book_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("statement_balance", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("difference", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("reconciled_count", models.PositiveIntegerField(default=0)),
                ("unreconciled_count", models.PositiveIntegerField(default=0)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, to="ledger_core.account")),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="ledger_core.company")),
                ("completed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["company", "account"], name="rec_company_account"),
                    models.Index(fields=["company", "status"], name="rec_company_status"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("from_date__lte", models.F("to_date"))), name="rec_from_before_to"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReconciliationItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("transaction_date", models.DateField()),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                ("debit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("is_reconciled", models.BooleanField(default=False)),
                ("reconciled_at", models.DateTimeField(blank=True, null=True)),
                ("external_reference", models.CharField(blank=True, max_length=200, null=True)),
                ("item_type", models.CharField(choices=[("book", "Book"), ("statement", "Statement"), ("adjustment", "Adjustment")], default="book", max_length=10)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="ledger_core.journalentry")),
                ("journal_line", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="ledger_core.journalline")),
                ("matched_item", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to="ledger_core.reconciliationitem")),
                ("reconciled_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("reconciliation", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="ledger_core.reconciliation")),
            ],
            options={
                "ordering": ("reconciliation", "id"),
                "indexes": [
                    models.Index(fields=["reconciliation", "item_type", "is_reconciled"], name="rec_item_type_state"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("reconciliation", "external_reference"), name="uq_rec_item_external_ref"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("external_reference__isnull", True), ("item_type", "book"), ("journal_entry__isnull", False)),
                            models.Q(("external_reference__isnull", False), ("item_type", "statement"), ("journal_entry__isnull", True)),
                            models.Q(("external_reference__isnull", True), ("item_type", "adjustment"), ("journal_entry__isnull", True)),
                            _connector="OR",
                        ),
                        name="rec_item_fields_match_type",
                    ),
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="rec_item_non_negative_amounts"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=50)),
                ("object_type", models.CharField(max_length=100)),
                ("object_id", models.CharField(max_length=100)),
                ("changes", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="ledger_core.company")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ("-created_at", "-id"),
                "indexes": [
                    models.Index(fields=["company", "user"], name="audit_company_user"),
                    models.Index(fields=["company", "created_at"], name="audit_company_created"),
                    models.Index(fields=["company", "action"], name="audit_company_action"),
                ],
            },
        ),
    ]
