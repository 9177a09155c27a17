from django.core.management.base import BaseCommand

from finance.postings import process_pending


class Command(BaseCommand):
    help = 'Retry pending and failed ledger postings'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=None, help='Process at most this many postings')
        parser.add_argument('--max-attempts', type=int, default=None, help='Skip postings tried this many times')

    def handle(self, *args, **options):
        done, failed = process_pending(limit=options['limit'], max_attempts=options['max_attempts'])
        style = self.style.SUCCESS if not failed else self.style.WARNING
        self.stdout.write(style(f'Ledger postings applied: {done}, still failing: {failed}'))
