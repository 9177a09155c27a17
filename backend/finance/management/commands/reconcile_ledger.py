from django.core.management.base import BaseCommand

from finance.ledger import reconcile_balances


class Command(BaseCommand):
    help = 'Compare cached account balances with the transaction log'

    def add_arguments(self, parser):
        parser.add_argument('--fix', action='store_true', help='Overwrite cached balances with ledger totals')

    def handle(self, *args, **options):
        drift = reconcile_balances(fix=options['fix'])
        if not drift:
            self.stdout.write(self.style.SUCCESS('All account balances match the ledger.'))
            return
        for row in drift:
            self.stdout.write(
                f"#{row['account_id']} {row['account_name']}: cached {row['cached_balance']}, "
                f"ledger {row['ledger_balance']} (drift {row['drift']})"
            )
        verb = 'Fixed' if options['fix'] else 'Found'
        self.stdout.write(self.style.WARNING(f'{verb} drift on {len(drift)} account(s).'))
