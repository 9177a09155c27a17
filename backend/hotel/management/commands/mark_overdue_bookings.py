from django.core.management.base import BaseCommand

from hotel.booking import mark_overdue_bookings


class Command(BaseCommand):
    help = 'Mark unpaid bookings past check-out as overdue'

    def handle(self, *args, **options):
        count = mark_overdue_bookings()
        self.stdout.write(self.style.SUCCESS(f'{count} booking(s) marked overdue.'))
