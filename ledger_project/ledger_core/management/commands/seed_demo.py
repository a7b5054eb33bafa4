from django.core.management import call_command
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Seeds a demo ledger (wraps create_demo_tenant)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--company",
            type=str,
            default="Demo Ltd",
            help="Name of the demo company (default: Demo Ltd)",
        )
        parser.add_argument("--username", type=str, default="demo")

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE(
            f"Seeding demo ledger for {options['company']}..."))
        call_command(
            "create_demo_tenant",
            company_name=options["company"],
            username=options["username"],
        )
        self.stdout.write(self.style.SUCCESS("Demo ledger seeded."))
