from django.core.management.base import BaseCommand, CommandError

from ops.invoices import invoice_repository


class Command(BaseCommand):
    help = "Mark sent invoices past their due date as overdue"

    def handle(self, *args, **options):
        if not invoice_repository.is_available():
            raise CommandError("Firestore is not configured")

        flipped = invoice_repository.sweep_overdue()
        for invoice in flipped:
            self.stdout.write(f"  {invoice.get('invoiceNumber')} -> overdue")
        self.stdout.write(self.style.SUCCESS(f"{len(flipped)} invoice(s) marked overdue"))
